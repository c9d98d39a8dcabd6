# backend/treatbook/repositories/factory.py
"""
Repository Factory for Treatbook

Provides centralized creation of repository instances,
ensuring consistent initialization and dependency injection.
"""

from typing import TYPE_CHECKING

from sqlalchemy.orm import Session

# Avoid circular imports
if TYPE_CHECKING:
    from .appointment_repository import AppointmentRepository
    from .availability_repository import AvailabilityRepository
    from .booking_counter_repository import BookingCounterRepository
    from .treatment_repository import TreatmentRepository
    from .user_repository import UserRepository


class RepositoryFactory:
    """
    Factory class for creating repository instances.

    Centralizes repository creation to ensure consistent initialization
    and makes it easy to swap implementations if needed.
    """

    @staticmethod
    def create_availability_repository(db: Session) -> "AvailabilityRepository":
        """Create repository for practitioner calendar queries."""
        from .availability_repository import AvailabilityRepository

        return AvailabilityRepository(db)

    @staticmethod
    def create_appointment_repository(db: Session) -> "AppointmentRepository":
        """Create repository for appointment operations."""
        from .appointment_repository import AppointmentRepository

        return AppointmentRepository(db)

    @staticmethod
    def create_booking_counter_repository(db: Session) -> "BookingCounterRepository":
        """Create repository for the booking number counter."""
        from .booking_counter_repository import BookingCounterRepository

        return BookingCounterRepository(db)

    @staticmethod
    def create_user_repository(db: Session) -> "UserRepository":
        """Create repository for user and credit history operations."""
        from .user_repository import UserRepository

        return UserRepository(db)

    @staticmethod
    def create_treatment_repository(db: Session) -> "TreatmentRepository":
        """Create repository for treatment catalogue operations."""
        from .treatment_repository import TreatmentRepository

        return TreatmentRepository(db)

# backend/treatbook/repositories/availability_repository.py
"""
Availability Repository for Treatbook

Data access for the slot availability check. Works exclusively with the
appointment's own fields (practitioner, slot_date, slot_time, duration).
"""

from datetime import date
import logging
from typing import List, Optional

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..models.appointment import Appointment
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class AvailabilityRepository(BaseRepository[Appointment]):
    """Repository for practitioner calendar queries."""

    def __init__(self, db: Session):
        """Initialize with Appointment model as primary."""
        super().__init__(db, Appointment)
        self.logger = logging.getLogger(__name__)

    def get_appointments_for_conflict_check(
        self,
        practitioner: str,
        slot_date: date,
        exclude_appointment_id: Optional[str] = None,
    ) -> List[Appointment]:
        """
        Get non-cancelled appointments for a practitioner on a date.

        Args:
            practitioner: Practitioner to check
            slot_date: Calendar date to check
            exclude_appointment_id: Optional appointment to leave out

        Returns:
            Appointments ordered by start time
        """
        try:
            query = self.db.query(Appointment).filter(
                Appointment.practitioner == practitioner,
                Appointment.slot_date == slot_date,
                Appointment.cancelled.is_(False),
            )
            if exclude_appointment_id:
                query = query.filter(Appointment.id != exclude_appointment_id)
            return query.order_by(Appointment.slot_time).all()
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting appointments for conflict check: {str(e)}")
            raise RepositoryException(f"Failed to get appointments for conflict check: {str(e)}")

    def lock_practitioner_day(self, practitioner: str, slot_date: date) -> None:
        """
        Take a transaction-scoped advisory lock for (practitioner, date).

        Only PostgreSQL has one; other dialects rely on the application lock.
        """
        if self.dialect_name != "postgresql":
            return
        try:
            self.db.execute(
                text("SELECT pg_advisory_xact_lock(hashtext(:lock_key))"),
                {"lock_key": f"{practitioner}:{slot_date.isoformat()}"},
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error taking practitioner-day advisory lock: {str(e)}")
            raise RepositoryException(f"Failed to lock practitioner calendar: {str(e)}")

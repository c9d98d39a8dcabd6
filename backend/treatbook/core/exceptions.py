# backend/treatbook/core/exceptions.py
"""
Domain-specific exceptions for Treatbook.

These exceptions provide clear, business-focused error messages
that can be caught and handled appropriately at the API layer.
"""

from typing import Any, Dict, Optional

from fastapi import HTTPException, status

HTTP_422_UNPROCESSABLE: int = getattr(status, "HTTP_422_UNPROCESSABLE_CONTENT", 422)


class DomainException(Exception):
    """Base exception for all domain-specific errors."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_http_exception(self) -> HTTPException:
        """Convert to an HTTPException carrying the message, code and details."""
        return HTTPException(
            status_code=self.status_code,
            detail={
                "message": self.message,
                "code": self.code,
                "details": self.details,
            },
        )


class ValidationException(DomainException):
    """Raised when business validation fails."""

    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundException(DomainException):
    """Raised when a requested resource is not found."""

    status_code = status.HTTP_404_NOT_FOUND


class ConflictException(DomainException):
    """Raised when there's a conflict with existing data."""

    status_code = status.HTTP_409_CONFLICT


class BusinessRuleException(DomainException):
    """Raised when a business rule is violated."""

    status_code = HTTP_422_UNPROCESSABLE


class ForbiddenException(DomainException):
    """Raised when the caller does not own the resource it acts on."""

    status_code = status.HTTP_403_FORBIDDEN


class ServiceException(DomainException):
    """Raised when a service operation fails."""

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={
                "message": self.message or "An error occurred processing your request",
                "code": self.code,
                "details": self.details if self.details else {},
            },
        )


# Specific business exceptions


class SlotUnavailableException(ConflictException):
    """Raised when a proposed time range overlaps or crowds an existing appointment."""

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message or "Slot not available",
            code="SLOT_UNAVAILABLE",
            details=details or {},
        )


class SlotLockTimeoutException(ConflictException):
    """Raised when another booking for the same practitioner/day holds the lock too long."""

    def __init__(self, practitioner: str, slot_date: str):
        super().__init__(
            message="Another booking for this practitioner is in progress, please retry",
            code="SLOT_LOCK_TIMEOUT",
            details={"practitioner": practitioner, "slot_date": slot_date},
        )


class DuplicatePhoneException(ConflictException):
    """Raised when registering a phone number that already has an account."""

    def __init__(self, phone: str):
        super().__init__(
            message="Phone number already registered",
            code="DUPLICATE_PHONE",
            details={"phone": phone},
        )


class CreditAlreadyProcessedException(ConflictException):
    """Raised when an appointment's paid amount was already returned as credit."""

    def __init__(self, appointment_id: str):
        super().__init__(
            message="Credit already processed for this appointment",
            code="CREDIT_ALREADY_PROCESSED",
            details={"appointment_id": appointment_id},
        )


class PaymentMismatchException(ConflictException):
    """Raised when a gateway confirmation does not match the pending payment."""

    def __init__(self, appointment_id: str, message: str = "No matching pending payment found"):
        super().__init__(
            message=message,
            code="PAYMENT_MISMATCH",
            details={"appointment_id": appointment_id},
        )


class AlreadyFinalException(BusinessRuleException):
    """Raised when acting on an appointment whose state no longer allows it."""


class PaymentAlreadyCompleteException(AlreadyFinalException):
    """Raised when paying towards an appointment that is already paid in full."""

    def __init__(self, appointment_id: str):
        super().__init__(
            message="Payment already completed",
            code="PAYMENT_ALREADY_COMPLETE",
            details={"appointment_id": appointment_id},
        )


class BookingNumberAllocationException(ServiceException):
    """Raised when the booking counter cannot produce a number."""

    def __init__(self, counter_name: str):
        super().__init__(
            message="Failed to allocate a booking number",
            code="BOOKING_NUMBER_ALLOCATION_FAILED",
            details={"counter": counter_name},
        )


class RepositoryException(Exception):
    """
    Exception raised for repository layer errors.

    This exception is used when data access operations fail,
    such as database connection issues, query failures, or
    constraint violations.
    """

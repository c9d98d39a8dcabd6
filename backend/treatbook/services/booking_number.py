# backend/treatbook/services/booking_number.py
"""Booking number allocation."""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.exceptions import BookingNumberAllocationException, RepositoryException
from ..repositories import RepositoryFactory
from ..repositories.booking_counter_repository import BookingCounterRepository
from .base import BaseService

logger = logging.getLogger(__name__)


class BookingNumberAllocator(BaseService):
    """
    Hands out unique, strictly increasing booking numbers.

    Must be called inside the caller's unit of work: the increment and the
    appointment insert commit or roll back together, and numbers are never
    reused after an appointment is deleted.
    """

    def __init__(
        self,
        db: Session,
        repository: Optional[BookingCounterRepository] = None,
        counter_name: Optional[str] = None,
        start: Optional[int] = None,
    ):
        super().__init__(db)
        self.repository = repository or RepositoryFactory.create_booking_counter_repository(db)
        self.counter_name = counter_name or settings.booking_counter_name
        self.start = settings.booking_number_start if start is None else start

    def next_booking_number(self) -> int:
        """
        Reserve the next booking number.

        Raises:
            BookingNumberAllocationException: if the counter cannot be incremented
        """
        try:
            number = self.repository.next_value(self.counter_name, start=self.start)
        except RepositoryException as exc:
            self.logger.error(f"Booking number allocation failed: {str(exc)}")
            raise BookingNumberAllocationException(self.counter_name) from exc
        self.logger.debug(f"Allocated booking number {number}")
        return number

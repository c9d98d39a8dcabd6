# backend/treatbook/repositories/booking_counter_repository.py
"""Atomic booking number counter."""

import logging
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..models.appointment import BookingCounter
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class BookingCounterRepository(BaseRepository[BookingCounter]):
    """
    Repository around the single-row counter table.

    The increment is one UPDATE statement, so two transactions can never
    read the same value; the row lock it takes is held until commit.
    """

    def __init__(self, db: Session):
        super().__init__(db, BookingCounter)

    def _increment(self, name: str) -> Optional[int]:
        stmt = (
            update(BookingCounter)
            .where(BookingCounter.name == name)
            .values(value=BookingCounter.value + 1)
            .execution_options(synchronize_session=False)
        )
        dialect = self.db.get_bind().dialect
        if getattr(dialect, "update_returning", False):
            return self.db.execute(stmt.returning(BookingCounter.value)).scalar_one_or_none()

        result = self.db.execute(stmt)
        if not result.rowcount:
            return None
        return self.db.execute(
            select(BookingCounter.value).where(BookingCounter.name == name)
        ).scalar_one()

    def _ensure_counter(self, name: str, start: int) -> None:
        try:
            with self.db.begin_nested():
                self.db.add(BookingCounter(name=name, value=start))
        except IntegrityError:
            # Another transaction created it first; its row is the one to increment.
            logger.debug("Booking counter %s already created concurrently", name)

    def next_value(self, name: str, start: int = 0) -> int:
        """
        Increment and return the named counter, creating it at ``start`` if absent.

        Raises:
            RepositoryException: if the counter cannot be incremented
        """
        try:
            value = self._increment(name)
            if value is None:
                self._ensure_counter(name, start)
                value = self._increment(name)
        except SQLAlchemyError as e:
            self.logger.error(f"Error incrementing booking counter {name}: {str(e)}")
            raise RepositoryException(f"Failed to increment booking counter: {str(e)}")

        if value is None:
            raise RepositoryException(f"Booking counter {name} is missing")
        return int(value)

    def current_value(self, name: str) -> Optional[int]:
        try:
            return self.db.execute(
                select(BookingCounter.value).where(BookingCounter.name == name)
            ).scalar_one_or_none()
        except SQLAlchemyError as e:
            self.logger.error(f"Error reading booking counter {name}: {str(e)}")
            raise RepositoryException(f"Failed to read booking counter: {str(e)}")

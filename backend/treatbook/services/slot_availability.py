# backend/treatbook/services/slot_availability.py
"""
Slot Availability Checker for Treatbook

Decides whether a practitioner can take a proposed time range on a date.
A range is rejected when it overlaps an existing non-cancelled appointment
or sits within the buffer before or after one.

The calendar is read fresh on every call. Callers that go on to book must
hold the practitioner-day lock across the check and the insert.
"""

from datetime import date, time
import logging
from typing import List, Optional, Union

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.exceptions import ValidationException
from ..repositories import RepositoryFactory
from ..repositories.availability_repository import AvailabilityRepository
from ..schemas.appointment import SlotConflict
from .base import BaseService

logger = logging.getLogger(__name__)

MINUTES_PER_DAY = 24 * 60


def to_minutes(value: time) -> int:
    """Minutes since midnight."""
    return value.hour * 60 + value.minute


def format_minutes(minutes: int) -> str:
    """Render minutes since midnight as HH:MM (wrapping past midnight)."""
    minutes %= MINUTES_PER_DAY
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def parse_slot_time(value: Union[str, time]) -> time:
    """Accept a ``time`` or an ``HH:MM`` string."""
    if isinstance(value, time):
        return value
    try:
        hours, minutes = value.strip().split(":")[:2]
        return time(int(hours), int(minutes))
    except (AttributeError, ValueError) as exc:
        raise ValidationException(
            f"Invalid slot time: {value!r}", code="INVALID_SLOT_TIME"
        ) from exc


def slot_conflict_reason(
    start: int,
    end: int,
    booked_start: int,
    booked_end: int,
    buffer_minutes: int = 15,
) -> Optional[str]:
    """
    Return why ``[start, end)`` cannot sit next to ``[booked_start, booked_end)``.

    All values are minutes since midnight. Returns None when the ranges are
    compatible, otherwise one of ``overlap``, ``buffer_after`` (the new range
    starts too soon after the booked one ends) or ``buffer_before`` (the new
    range ends too close to the booked one's start).
    """
    if start < booked_end and end > booked_start:
        return "overlap"
    if booked_end <= start < booked_end + buffer_minutes:
        return "buffer_after"
    if booked_start - buffer_minutes < end <= booked_start:
        return "buffer_before"
    return None


class SlotAvailabilityChecker(BaseService):
    """Read-only check of a practitioner's calendar for a proposed range."""

    def __init__(
        self,
        db: Session,
        repository: Optional[AvailabilityRepository] = None,
        buffer_minutes: Optional[int] = None,
    ):
        super().__init__(db)
        self.repository = repository or RepositoryFactory.create_availability_repository(db)
        self.buffer_minutes = (
            settings.slot_buffer_minutes if buffer_minutes is None else buffer_minutes
        )

    @BaseService.measure_operation("find_slot_conflicts")
    def find_conflicts(
        self,
        practitioner: str,
        slot_date: date,
        start_time: Union[str, time],
        duration_minutes: int,
        exclude_appointment_id: Optional[str] = None,
    ) -> List[SlotConflict]:
        """
        List the existing appointments that rule out the proposed range.

        Raises:
            ValidationException: if the duration is not positive
        """
        if duration_minutes is None or int(duration_minutes) <= 0:
            raise ValidationException(
                "Duration must be a positive number of minutes", code="INVALID_DURATION"
            )

        start = to_minutes(parse_slot_time(start_time))
        end = start + int(duration_minutes)

        conflicts: List[SlotConflict] = []
        for booked in self.repository.get_appointments_for_conflict_check(
            practitioner, slot_date, exclude_appointment_id
        ):
            reason = slot_conflict_reason(
                start, end, booked.start_minutes, booked.end_minutes, self.buffer_minutes
            )
            if reason is None:
                continue
            conflicts.append(
                SlotConflict(
                    appointment_id=booked.id,
                    booking_number=booked.booking_number,
                    start_time=format_minutes(booked.start_minutes),
                    end_time=format_minutes(booked.end_minutes),
                    reason=reason,
                )
            )

        if conflicts:
            self.logger.info(
                f"Slot {format_minutes(start)}-{format_minutes(end)} on {slot_date} "
                f"for {practitioner} conflicts with {len(conflicts)} appointment(s)"
            )
        return conflicts

    def is_available(
        self,
        practitioner: str,
        slot_date: date,
        start_time: Union[str, time],
        duration_minutes: int,
        exclude_appointment_id: Optional[str] = None,
    ) -> bool:
        """True when no existing appointment trips the overlap or buffer rules."""
        return not self.find_conflicts(
            practitioner, slot_date, start_time, duration_minutes, exclude_appointment_id
        )

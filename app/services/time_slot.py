"""
Bookable interval shared by training sessions and classes.
"""
import re
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Optional

from app.core.config import settings
from app.core.exceptions import ValidationError

START_TIME_PATTERN = re.compile(r"^([0-1]?[0-9]|2[0-3]):[0-5][0-9]$")


def parse_start_time(value: str) -> time:
    """Parse a 24-hour ``HH:MM`` (or ``H:MM``) string."""
    if not isinstance(value, str) or not START_TIME_PATTERN.match(value):
        raise ValidationError(
            f"Invalid time format: {value!r}",
            details={"field": "start_time", "expected": "HH:MM"},
        )
    hours, minutes = value.split(":")
    return time(int(hours), int(minutes))


def normalize_start_time(value: str) -> str:
    return parse_start_time(value).strftime("%H:%M")


def validate_duration(duration_minutes: int) -> int:
    if isinstance(duration_minutes, bool) or not isinstance(duration_minutes, int):
        raise ValidationError("Duration must be an integer number of minutes",
                              details={"field": "duration_minutes"})
    if duration_minutes <= 0:
        raise ValidationError("Duration must be positive",
                              details={"field": "duration_minutes", "value": duration_minutes})
    if not settings.min_duration_minutes <= duration_minutes <= settings.max_duration_minutes:
        raise ValidationError(
            f"Duration must be between {settings.min_duration_minutes} "
            f"and {settings.max_duration_minutes} minutes",
            details={"field": "duration_minutes", "value": duration_minutes},
        )
    return duration_minutes


@dataclass(frozen=True)
class TimeSlot:
    """A trainer's interval, optionally booked for one member.

    ``subject_id`` is the member of a 1:1 session and ``None`` for classes.
    Intervals are half-open: ``[start, end)``.
    """
    owner_id: int
    slot_date: date
    start_time: str
    duration_minutes: int
    subject_id: Optional[int] = None
    id: Optional[int] = None
    kind: str = "session"

    @classmethod
    def build(
        cls,
        owner_id: int,
        slot_date: date,
        start_time: str,
        duration_minutes: int,
        subject_id: Optional[int] = None,
        kind: str = "session",
    ) -> "TimeSlot":
        """Validate raw input and return a normalized slot."""
        if not isinstance(slot_date, date) or isinstance(slot_date, datetime):
            raise ValidationError("A calendar date is required", details={"field": "date"})
        return cls(
            owner_id=owner_id,
            slot_date=slot_date,
            start_time=normalize_start_time(start_time),
            duration_minutes=validate_duration(duration_minutes),
            subject_id=subject_id,
            kind=kind,
        )

    @classmethod
    def from_session(cls, row) -> "TimeSlot":
        return cls(
            owner_id=row.trainer_id,
            slot_date=row.session_date,
            start_time=row.start_time,
            duration_minutes=row.duration_minutes,
            subject_id=row.member_id,
            id=row.id,
            kind="session",
        )

    @classmethod
    def from_class(cls, row) -> "TimeSlot":
        return cls(
            owner_id=row.trainer_id,
            slot_date=row.class_date,
            start_time=row.start_time,
            duration_minutes=row.duration_minutes,
            id=row.id,
            kind="class",
        )

    @property
    def start(self) -> datetime:
        return datetime.combine(self.slot_date, parse_start_time(self.start_time))

    @property
    def end(self) -> datetime:
        return self.start + timedelta(minutes=self.duration_minutes)

    def overlaps(self, other: "TimeSlot") -> bool:
        return self.start < other.end and other.start < self.end

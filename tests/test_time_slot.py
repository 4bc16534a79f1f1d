from __future__ import annotations

from datetime import date, datetime

import pytest

from app.core.exceptions import ValidationError
from app.services.time_slot import TimeSlot, normalize_start_time, validate_duration

DAY = date(2025, 3, 1)


def slot(start: str, minutes: int, owner: int = 5, day: date = DAY) -> TimeSlot:
    return TimeSlot.build(owner, day, start, minutes)


def test_end_is_start_plus_duration() -> None:
    s = slot("10:00", 60)
    assert s.start == datetime(2025, 3, 1, 10, 0)
    assert s.end == datetime(2025, 3, 1, 11, 0)


def test_touching_slots_do_not_overlap() -> None:
    assert not slot("10:00", 60).overlaps(slot("11:00", 30))
    assert not slot("11:00", 30).overlaps(slot("10:00", 60))


def test_partial_overlap_is_symmetric() -> None:
    a, b = slot("10:00", 60), slot("10:30", 60)
    assert a.overlaps(b)
    assert b.overlaps(a)


def test_contained_slot_overlaps() -> None:
    assert slot("09:00", 120).overlaps(slot("09:30", 15))


def test_different_days_do_not_overlap() -> None:
    assert not slot("10:00", 60).overlaps(slot("10:00", 60, day=date(2025, 3, 2)))


def test_slot_crossing_midnight_ends_next_day() -> None:
    late = slot("23:30", 60)
    assert late.end == datetime(2025, 3, 2, 0, 30)
    assert late.overlaps(slot("00:00", 15, day=date(2025, 3, 2)))


def test_start_time_is_normalized() -> None:
    assert normalize_start_time("9:05") == "09:05"
    assert slot("7:30", 30).start_time == "07:30"


@pytest.mark.parametrize("value", ["24:00", "10:60", "1000", "", "ten", None])
def test_invalid_start_time_rejected(value) -> None:
    with pytest.raises(ValidationError):
        slot(value, 30)


@pytest.mark.parametrize("minutes", [0, -15, 10, 181, True, 30.5])
def test_invalid_duration_rejected(minutes) -> None:
    with pytest.raises(ValidationError):
        validate_duration(minutes)


def test_duration_bounds_are_inclusive() -> None:
    assert validate_duration(15) == 15
    assert validate_duration(180) == 180


def test_datetime_is_not_accepted_as_date() -> None:
    with pytest.raises(ValidationError):
        TimeSlot.build(5, datetime(2025, 3, 1, 10, 0), "10:00", 60)

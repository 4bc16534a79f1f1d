from __future__ import annotations

import asyncio
from datetime import date

import pytest

from app.core.exceptions import NotFoundError, ValidationError
from app.crud.classCrud import get_class, list_registrations, list_waitlist
from app.models.classModel import (
    REGISTRATION_ATTENDED,
    REGISTRATION_CANCELED,
    WAITLIST_EXPIRED,
    WAITLIST_WAITING,
)
from app.models.sessionModel import SLOT_CANCELLED
from app.services.booking_service import BookingService
from app.services.capacity_manager import CapacityManager
from app.services.results import (
    CapacityExceededError,
    ClassScheduled,
    Registered,
    Waitlisted,
)

DAY = date(2025, 3, 1)


async def _class(db, trainer_id: int, capacity: int, waitlist_capacity: int = 0, start: str = "18:00") -> int:
    result = await BookingService(db).schedule_class(
        trainer_id, "Pilates Mat", DAY, start, 60,
        capacity=capacity,
        waitlist_enabled=waitlist_capacity > 0,
        waitlist_capacity=waitlist_capacity,
    )
    assert isinstance(result, ClassScheduled)
    return result.class_instance.id


async def _capacity(db, class_id: int) -> dict:
    class_row = await get_class(db, class_id)
    await db.refresh(class_row)
    return await CapacityManager(db).capacity_info(class_row)


@pytest.mark.asyncio
async def test_full_class_waitlists_then_rejects(db, trainer, members) -> None:
    service = BookingService(db)
    class_id = await _class(db, trainer.id, capacity=2, waitlist_capacity=1)
    m = [p.id for p in members]

    assert isinstance(await service.book_class_seat(class_id, m[0]), Registered)
    assert isinstance(await service.book_class_seat(class_id, m[1]), Registered)

    waitlisted = await service.book_class_seat(class_id, m[2])
    assert isinstance(waitlisted, Waitlisted)
    assert waitlisted.position == 1

    rejected = await service.book_class_seat(class_id, m[3])
    assert isinstance(rejected, CapacityExceededError)
    assert rejected.class_id == class_id

    info = await _capacity(db, class_id)
    assert info["current_capacity"] == 2
    assert info["registered"] == 2
    assert info["waiting"] == 1
    assert info["is_full"]
    assert info["available_spots"] == 0


@pytest.mark.asyncio
async def test_full_class_without_waitlist_is_rejected(db, trainer, members) -> None:
    service = BookingService(db)
    class_id = await _class(db, trainer.id, capacity=1)

    assert isinstance(await service.book_class_seat(class_id, members[0].id), Registered)
    result = await service.book_class_seat(class_id, members[1].id)
    assert isinstance(result, CapacityExceededError)
    assert result.waitlist_capacity == 0


@pytest.mark.asyncio
async def test_cancel_promotes_first_waiting_member(db, trainer, members) -> None:
    service = BookingService(db)
    class_id = await _class(db, trainer.id, capacity=1, waitlist_capacity=3)
    m = [p.id for p in members]

    await service.book_class_seat(class_id, m[0])
    await service.book_class_seat(class_id, m[1])
    third = await service.book_class_seat(class_id, m[2])
    assert third.position == 2

    cancelled = await service.cancel_class_seat(class_id, m[0])
    assert cancelled.changed
    assert cancelled.registration.status == REGISTRATION_CANCELED
    assert cancelled.promoted is not None
    assert cancelled.promoted.member_id == m[1]

    waiting = await list_waitlist(db, class_id)
    assert [(e.member_id, e.position) for e in waiting] == [(m[2], 1)]

    roster = await list_registrations(db, class_id)
    assert [r.member_id for r in roster] == [m[1]]

    info = await _capacity(db, class_id)
    assert info["current_capacity"] == 1


@pytest.mark.asyncio
async def test_leaving_waitlist_compacts_positions(db, trainer, members) -> None:
    service = BookingService(db)
    class_id = await _class(db, trainer.id, capacity=1, waitlist_capacity=4)
    m = [p.id for p in members]

    for member_id in m[:5]:
        await service.book_class_seat(class_id, member_id)

    left = await service.cancel_class_seat(class_id, m[2])
    assert left.changed
    assert left.waitlist_entry.status == WAITLIST_EXPIRED

    waiting = await list_waitlist(db, class_id)
    assert [(e.member_id, e.position) for e in waiting] == [(m[1], 1), (m[3], 2), (m[4], 3)]

    # A freed waitlist spot can be taken again
    rejoined = await service.book_class_seat(class_id, m[2])
    assert isinstance(rejoined, Waitlisted)
    assert rejoined.position == 4


@pytest.mark.asyncio
async def test_registration_is_idempotent(db, trainer, members) -> None:
    service = BookingService(db)
    class_id = await _class(db, trainer.id, capacity=1, waitlist_capacity=2)
    m = [p.id for p in members]

    first = await service.book_class_seat(class_id, m[0])
    again = await service.book_class_seat(class_id, m[0])
    assert isinstance(again, Registered)
    assert again.registration.id == first.registration.id

    waiting = await service.book_class_seat(class_id, m[1])
    waiting_again = await service.book_class_seat(class_id, m[1])
    assert isinstance(waiting_again, Waitlisted)
    assert waiting_again.entry.id == waiting.entry.id

    info = await _capacity(db, class_id)
    assert info["current_capacity"] == 1
    assert info["waiting"] == 1


@pytest.mark.asyncio
async def test_cancel_twice_changes_nothing(db, trainer, members) -> None:
    service = BookingService(db)
    class_id = await _class(db, trainer.id, capacity=3)
    member_id = members[0].id

    await service.book_class_seat(class_id, member_id)
    assert (await service.cancel_class_seat(class_id, member_id)).changed
    second = await service.cancel_class_seat(class_id, member_id)
    assert not second.changed

    info = await _capacity(db, class_id)
    assert info["current_capacity"] == 0


@pytest.mark.asyncio
async def test_cancel_without_registration_is_not_found(db, trainer, members) -> None:
    class_id = await _class(db, trainer.id, capacity=3)
    member_id = members[0].id
    with pytest.raises(NotFoundError):
        await BookingService(db).cancel_class_seat(class_id, member_id)


@pytest.mark.asyncio
async def test_attended_seat_stays_counted(db, trainer, members) -> None:
    service = BookingService(db)
    class_id = await _class(db, trainer.id, capacity=2)
    member_id = members[0].id

    await service.book_class_seat(class_id, member_id)
    registration = await service.mark_attendance(class_id, member_id)
    assert registration.status == REGISTRATION_ATTENDED

    info = await _capacity(db, class_id)
    assert info["attended"] == 1
    assert info["current_capacity"] == 1

    with pytest.raises(ValidationError):
        await service.cancel_class_seat(class_id, member_id)


@pytest.mark.asyncio
async def test_cancel_class_releases_seats_and_waitlist(db, trainer, members) -> None:
    service = BookingService(db)
    class_id = await _class(db, trainer.id, capacity=2, waitlist_capacity=2)
    m = [p.id for p in members]
    for member_id in m[:4]:
        await service.book_class_seat(class_id, member_id)

    cancelled = await service.cancel_class(class_id)
    assert cancelled.changed
    assert cancelled.canceled_registrations == 2
    assert cancelled.expired_waitlist_entries == 2
    assert cancelled.class_instance.status == SLOT_CANCELLED
    assert cancelled.class_instance.current_capacity == 0

    assert (await service.cancel_class(class_id)).changed is False
    assert await list_registrations(db, class_id) == []
    assert all(e.status != WAITLIST_WAITING for e in await list_waitlist(db, class_id, include_inactive=True))

    with pytest.raises(ValidationError):
        await service.book_class_seat(class_id, m[4])


@pytest.mark.asyncio
async def test_concurrent_seat_requests_never_oversell(session_factory, trainer, members) -> None:
    async with session_factory() as session:
        class_id = await _class(session, trainer.id, capacity=2, waitlist_capacity=1)
    member_ids = [m.id for m in members]

    async def register(member_id: int):
        async with session_factory() as session:
            return await BookingService(session).book_class_seat(class_id, member_id)

    results = await asyncio.gather(*(register(member_id) for member_id in member_ids))

    assert sum(isinstance(r, Registered) for r in results) == 2
    assert sum(isinstance(r, Waitlisted) for r in results) == 1
    assert sum(isinstance(r, CapacityExceededError) for r in results) == 2

    async with session_factory() as session:
        info = await _capacity(session, class_id)
    assert info["current_capacity"] == info["registered"] == 2
    assert info["waiting"] == 1


@pytest.mark.asyncio
async def test_inactive_waitlist_entries_follow_waiting_ones(db, trainer, members) -> None:
    service = BookingService(db)
    class_id = await _class(db, trainer.id, capacity=1, waitlist_capacity=4)
    m = [p.id for p in members]
    for member_id in m[:5]:
        await service.book_class_seat(class_id, member_id)

    # m[1] is promoted (notified), m[3] withdraws (expired)
    await service.cancel_class_seat(class_id, m[0])
    await service.cancel_class_seat(class_id, m[3])

    entries = await list_waitlist(db, class_id, include_inactive=True)
    waiting = [(e.member_id, e.position) for e in entries if e.status == WAITLIST_WAITING]
    assert waiting == [(m[2], 1), (m[4], 2)]
    assert [e.status for e in entries][:2] == [WAITLIST_WAITING, WAITLIST_WAITING]
    assert {e.member_id for e in entries[2:]} == {m[1], m[3]}

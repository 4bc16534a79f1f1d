from __future__ import annotations

import asyncio
from datetime import date

import pytest
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.config import settings
from app.core.exceptions import (
    NotFoundError,
    TransientStoreError,
    ValidationError,
    is_transient_db_error,
)
from app.crud.sessionCrud import insert_training_session, list_sessions
from app.db.locks import owner_key, slot_lock
from app.models.sessionModel import SLOT_CANCELLED, SLOT_COMPLETED
from app.services.booking_service import BookingService
from app.services.results import ClassScheduled, ConflictError, SessionBooked
from app.services.time_slot import TimeSlot

DAY = date(2025, 3, 1)


@pytest.mark.asyncio
async def test_trainer_overlap_rejected_and_touching_slot_accepted(db, trainer, member, members) -> None:
    service = BookingService(db)

    first = await service.book_session(trainer.id, member.id, DAY, "10:00", 60)
    assert isinstance(first, SessionBooked)
    first_id = first.session.id

    overlapping = await service.book_session(trainer.id, members[0].id, DAY, "10:30", 60)
    assert isinstance(overlapping, ConflictError)
    assert overlapping.party == "owner"
    assert overlapping.party_id == trainer.id
    assert overlapping.conflicting_kind == "session"
    assert overlapping.conflicting_id == first_id

    touching = await service.book_session(trainer.id, members[0].id, DAY, "11:00", 30)
    assert isinstance(touching, SessionBooked)
    assert touching.session.start_time == "11:00"

    sessions = await list_sessions(db, DAY, DAY, trainer_id=trainer.id)
    assert [s.start_time for s in sessions] == ["10:00", "11:00"]


@pytest.mark.asyncio
async def test_member_cannot_be_in_two_sessions_at_once(db, trainer, other_trainer, member) -> None:
    service = BookingService(db)
    assert isinstance(await service.book_session(trainer.id, member.id, DAY, "09:00", 60), SessionBooked)

    result = await service.book_session(other_trainer.id, member.id, DAY, "09:45", 30)
    assert isinstance(result, ConflictError)
    assert result.party == "subject"
    assert result.party_id == member.id


@pytest.mark.asyncio
async def test_trainer_class_blocks_sessions(db, trainer, member) -> None:
    service = BookingService(db)
    scheduled = await service.schedule_class(trainer.id, "Spin", DAY, "18:00", 45, capacity=10)
    assert isinstance(scheduled, ClassScheduled)

    result = await service.book_session(trainer.id, member.id, DAY, "18:30", 30)
    assert isinstance(result, ConflictError)
    assert result.conflicting_kind == "class"
    assert result.conflicting_id == scheduled.class_instance.id


@pytest.mark.asyncio
async def test_cancelled_session_frees_the_slot(db, trainer, member, members) -> None:
    service = BookingService(db)
    booked = await service.book_session(trainer.id, member.id, DAY, "10:00", 60)
    session_id = booked.session.id

    cancelled = await service.cancel_session(session_id)
    assert cancelled.changed
    assert cancelled.session.status == SLOT_CANCELLED

    again = await service.cancel_session(session_id)
    assert not again.changed
    assert again.session.status == SLOT_CANCELLED

    rebooked = await service.book_session(trainer.id, members[0].id, DAY, "10:00", 60)
    assert isinstance(rebooked, SessionBooked)


@pytest.mark.asyncio
async def test_soft_deleted_session_frees_the_slot(db, trainer, member) -> None:
    service = BookingService(db)
    booked = await service.book_session(trainer.id, member.id, DAY, "10:00", 60)
    session_id = booked.session.id

    deleted = await service.delete_session(session_id)
    assert deleted.deleted_at is not None
    assert await list_sessions(db, DAY, DAY, trainer_id=trainer.id, include_cancelled=True) == []

    assert isinstance(await service.book_session(trainer.id, member.id, DAY, "10:15", 30), SessionBooked)

    with pytest.raises(NotFoundError):
        await service.cancel_session(session_id)


@pytest.mark.asyncio
async def test_reschedule_ignores_own_interval(db, trainer, member, members) -> None:
    service = BookingService(db)
    booked = await service.book_session(trainer.id, member.id, DAY, "10:00", 60)
    session_id = booked.session.id
    blocker = await service.book_session(trainer.id, members[0].id, DAY, "12:00", 60)
    blocker_id = blocker.session.id

    moved = await service.reschedule_session(session_id, DAY, "10:30", 60)
    assert isinstance(moved, SessionBooked)
    assert moved.session.start_time == "10:30"
    assert moved.session.duration_minutes == 60

    clash = await service.reschedule_session(session_id, DAY, "11:30", 60)
    assert isinstance(clash, ConflictError)
    assert clash.conflicting_id == blocker_id


@pytest.mark.asyncio
async def test_completed_session_cannot_be_cancelled(db, trainer, member) -> None:
    service = BookingService(db)
    booked = await service.book_session(trainer.id, member.id, DAY, "07:00", 30)
    session_id = booked.session.id

    completed = await service.complete_session(session_id)
    assert completed.status == SLOT_COMPLETED

    with pytest.raises(ValidationError):
        await service.cancel_session(session_id)


@pytest.mark.asyncio
async def test_invalid_input_is_rejected_before_writing(db, trainer, member) -> None:
    service = BookingService(db)
    trainer_id, member_id = trainer.id, member.id

    with pytest.raises(ValidationError):
        await service.book_session(trainer_id, member_id, DAY, "25:00", 60)
    with pytest.raises(ValidationError):
        await service.book_session(trainer_id, member_id, DAY, "10:00", 0)

    assert await list_sessions(db, DAY, DAY, trainer_id=trainer_id) == []


@pytest.mark.asyncio
async def test_unknown_people_are_not_found(db, trainer, member) -> None:
    service = BookingService(db)
    trainer_id, member_id = trainer.id, member.id

    with pytest.raises(NotFoundError):
        await service.book_session(9999, member_id, DAY, "10:00", 60)
    with pytest.raises(NotFoundError):
        # A member cannot be booked as the trainer
        await service.book_session(member_id, trainer_id, DAY, "10:00", 60)


@pytest.mark.asyncio
async def test_concurrent_overlapping_bookings_yield_one_session(session_factory, trainer, members) -> None:
    trainer_id = trainer.id
    member_ids = [m.id for m in members[:4]]

    async def book(member_id: int, start: str):
        async with session_factory() as session:
            return await BookingService(session).book_session(trainer_id, member_id, DAY, start, 60)

    results = await asyncio.gather(
        book(member_ids[0], "10:00"),
        book(member_ids[1], "10:30"),
        book(member_ids[2], "10:15"),
        book(member_ids[3], "09:30"),
    )

    assert sum(isinstance(r, SessionBooked) for r in results) == 1
    assert sum(isinstance(r, ConflictError) for r in results) == 3

    async with session_factory() as session:
        sessions = await list_sessions(session, DAY, DAY, trainer_id=trainer_id)
    assert len(sessions) == 1


class RollbackCountingSession(AsyncSession):
    rollbacks = 0

    async def rollback(self) -> None:
        self.rollbacks += 1
        await super().rollback()


@pytest.mark.asyncio
async def test_lock_timeout_surfaces_after_retries_and_rolls_back(
    engine, session_factory, trainer, member, monkeypatch
) -> None:
    monkeypatch.setattr(settings, "lock_timeout_ms", 20)
    monkeypatch.setattr(settings, "max_retries", 1)
    trainer_id, member_id = trainer.id, member.id

    async with session_factory() as session:
        booked = await BookingService(session).book_session(trainer_id, member_id, DAY, "10:00", 60)
        session_id = booked.session.id

    counting_factory = async_sessionmaker(engine, expire_on_commit=False, class_=RollbackCountingSession)
    async with session_factory() as holder, counting_factory() as db:
        async with slot_lock(holder, owner_key(trainer_id)):
            with pytest.raises(TransientStoreError):
                await BookingService(db).reschedule_session(session_id, DAY, "12:00", 60)

        # One rollback per failed attempt: the first try plus one retry
        assert db.rollbacks == 2

        moved = await BookingService(db).reschedule_session(session_id, DAY, "12:00", 60)
        assert isinstance(moved, SessionBooked)
        assert moved.session.start_time == "12:00"


async def _hold_owner_key(session_factory, trainer_id: int, held: asyncio.Event, blocker_member_id=None) -> None:
    async with session_factory() as holder:
        async with slot_lock(holder, owner_key(trainer_id)):
            held.set()
            if blocker_member_id is not None:
                slot = TimeSlot.build(trainer_id, DAY, "10:00", 60, subject_id=blocker_member_id)
                await insert_training_session(holder, slot)
            await asyncio.sleep(0.08)
            await holder.commit()


@pytest.mark.asyncio
async def test_retry_after_lock_release_books_the_slot(session_factory, trainer, members, monkeypatch) -> None:
    monkeypatch.setattr(settings, "lock_timeout_ms", 30)
    monkeypatch.setattr(settings, "max_retries", 3)
    monkeypatch.setattr(settings, "retry_base_delay_ms", 100)
    trainer_id, member_id = trainer.id, members[1].id

    held = asyncio.Event()
    holder_task = asyncio.create_task(_hold_owner_key(session_factory, trainer_id, held))
    await held.wait()

    async with session_factory() as db:
        result = await BookingService(db).book_session(trainer_id, member_id, DAY, "10:30", 60)
    await holder_task

    assert isinstance(result, SessionBooked)


@pytest.mark.asyncio
async def test_retry_re_evaluates_conflicts_committed_by_lock_holder(
    session_factory, trainer, members, monkeypatch
) -> None:
    monkeypatch.setattr(settings, "lock_timeout_ms", 30)
    monkeypatch.setattr(settings, "max_retries", 3)
    monkeypatch.setattr(settings, "retry_base_delay_ms", 100)
    trainer_id, blocker_id, member_id = trainer.id, members[0].id, members[1].id

    held = asyncio.Event()
    holder_task = asyncio.create_task(_hold_owner_key(session_factory, trainer_id, held, blocker_id))
    await held.wait()

    async with session_factory() as db:
        result = await BookingService(db).book_session(trainer_id, member_id, DAY, "10:30", 60)
    await holder_task

    assert isinstance(result, ConflictError)
    assert result.party == "owner"

    async with session_factory() as db:
        sessions = await list_sessions(db, DAY, DAY, trainer_id=trainer_id)
    assert [(s.member_id, s.start_time) for s in sessions] == [(blocker_id, "10:00")]


class FakeDriverError(Exception):
    def __init__(self, message: str, pgcode=None) -> None:
        super().__init__(message)
        self.pgcode = pgcode


@pytest.mark.parametrize("sqlstate", ["55P03", "40001", "40P01"])
def test_transient_sqlstates_are_retryable(sqlstate) -> None:
    exc = DBAPIError("SELECT 1", {}, FakeDriverError("driver failure", pgcode=sqlstate))
    assert is_transient_db_error(exc)


def test_other_database_errors_are_not_retryable() -> None:
    exc = DBAPIError("INSERT", {}, FakeDriverError("duplicate key value", pgcode="23505"))
    assert not is_transient_db_error(exc)


def test_invalidated_connection_and_sqlite_lock_are_retryable() -> None:
    dropped = DBAPIError("SELECT 1", {}, FakeDriverError("connection reset"), connection_invalidated=True)
    locked = DBAPIError("INSERT", {}, FakeDriverError("database is locked"))
    assert is_transient_db_error(dropped)
    assert is_transient_db_error(locked)

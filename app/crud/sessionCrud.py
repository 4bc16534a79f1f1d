"""
CRUD operations for one-to-one training sessions.

Functions here never commit; the booking service owns the transaction.
"""
from datetime import date, datetime, timedelta
from typing import List, Optional

from sqlalchemy import select, and_
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.sessionModel import TrainingSession, SLOT_SCHEDULED, SLOT_CANCELLED
from app.services.time_slot import TimeSlot


def _active_sessions():
    return and_(
        TrainingSession.status == SLOT_SCHEDULED,
        TrainingSession.deleted_at.is_(None),
    )


async def get_training_session(
    db: AsyncSession,
    session_id: int,
    for_update: bool = False
) -> Optional[TrainingSession]:
    """Get a training session by ID"""
    query = select(TrainingSession).where(TrainingSession.id == session_id)
    if for_update:
        query = query.with_for_update().execution_options(populate_existing=True)
    result = await db.execute(query)
    return result.scalar_one_or_none()


async def find_overlapping_sessions(
    db: AsyncSession,
    *,
    start_at: datetime,
    end_at: datetime,
    trainer_id: Optional[int] = None,
    member_id: Optional[int] = None,
    exclude_id: Optional[int] = None
) -> List[TrainingSession]:
    """Active sessions of a trainer or a member whose interval intersects [start_at, end_at)"""
    query = select(TrainingSession).where(
        _active_sessions(),
        TrainingSession.start_at < end_at,
        TrainingSession.end_at > start_at,
    )
    if trainer_id is not None:
        query = query.where(TrainingSession.trainer_id == trainer_id)
    if member_id is not None:
        query = query.where(TrainingSession.member_id == member_id)
    if exclude_id is not None:
        query = query.where(TrainingSession.id != exclude_id)

    result = await db.execute(query.order_by(TrainingSession.start_at))
    return list(result.scalars().all())


async def insert_training_session(
    db: AsyncSession,
    slot: TimeSlot,
    notes: Optional[str] = None
) -> TrainingSession:
    """Insert a scheduled session for an already conflict-checked slot"""
    session_row = TrainingSession(
        trainer_id=slot.owner_id,
        member_id=slot.subject_id,
        session_date=slot.slot_date,
        start_time=slot.start_time,
        duration_minutes=slot.duration_minutes,
        start_at=slot.start,
        end_at=slot.end,
        status=SLOT_SCHEDULED,
        notes=notes,
    )
    db.add(session_row)
    await db.flush()
    return session_row


def apply_slot(session_row: TrainingSession, slot: TimeSlot) -> None:
    """Move an existing session to a new interval"""
    session_row.session_date = slot.slot_date
    session_row.start_time = slot.start_time
    session_row.duration_minutes = slot.duration_minutes
    session_row.start_at = slot.start
    session_row.end_at = slot.end


async def list_sessions(
    db: AsyncSession,
    start_date: date,
    end_date: date,
    trainer_id: Optional[int] = None,
    member_id: Optional[int] = None,
    include_cancelled: bool = False
) -> List[TrainingSession]:
    """Get sessions within a date range, soft-deleted rows excluded"""
    query = select(TrainingSession).where(
        TrainingSession.deleted_at.is_(None),
        TrainingSession.start_at >= datetime.combine(start_date, datetime.min.time()),
        TrainingSession.start_at < datetime.combine(end_date + timedelta(days=1), datetime.min.time()),
    )
    if trainer_id is not None:
        query = query.where(TrainingSession.trainer_id == trainer_id)
    if member_id is not None:
        query = query.where(TrainingSession.member_id == member_id)
    if not include_cancelled:
        query = query.where(TrainingSession.status != SLOT_CANCELLED)

    result = await db.execute(query.order_by(TrainingSession.start_at))
    return list(result.scalars().all())

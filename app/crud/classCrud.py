"""
CRUD operations for classes, templates, registrations and waitlists.

Functions here never commit; the booking service owns the transaction.
"""
from datetime import date, datetime
from typing import List, Optional, Dict

from sqlalchemy import select, and_, case, func, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.classModel import (
    ClassInstance, ClassTemplate, ClassRegistration, ClassWaitlist,
    SEAT_HOLDING_STATUSES, WAITLIST_WAITING,
)
from app.models.sessionModel import SLOT_SCHEDULED, SLOT_CANCELLED
from app.services.time_slot import TimeSlot


# ------------------------------
# Classes
# ------------------------------
async def get_class(
    db: AsyncSession,
    class_id: int,
    for_update: bool = False
) -> Optional[ClassInstance]:
    """Get a class by ID"""
    query = select(ClassInstance).where(ClassInstance.id == class_id)
    if for_update:
        query = query.with_for_update().execution_options(populate_existing=True)
    result = await db.execute(query)
    return result.scalar_one_or_none()


async def find_overlapping_classes(
    db: AsyncSession,
    *,
    trainer_id: int,
    start_at: datetime,
    end_at: datetime,
    exclude_id: Optional[int] = None
) -> List[ClassInstance]:
    """Scheduled classes taught by a trainer that intersect [start_at, end_at)"""
    query = select(ClassInstance).where(
        ClassInstance.trainer_id == trainer_id,
        ClassInstance.status == SLOT_SCHEDULED,
        ClassInstance.start_at < end_at,
        ClassInstance.end_at > start_at,
    )
    if exclude_id is not None:
        query = query.where(ClassInstance.id != exclude_id)
    result = await db.execute(query.order_by(ClassInstance.start_at))
    return list(result.scalars().all())


async def insert_class(
    db: AsyncSession,
    slot: TimeSlot,
    *,
    name: str,
    capacity: int,
    waitlist_enabled: bool = False,
    waitlist_capacity: int = 0,
    description: Optional[str] = None,
    template_id: Optional[int] = None
) -> ClassInstance:
    """Insert a scheduled class for an already conflict-checked slot"""
    class_row = ClassInstance(
        template_id=template_id,
        trainer_id=slot.owner_id,
        name=name,
        description=description,
        class_date=slot.slot_date,
        start_time=slot.start_time,
        duration_minutes=slot.duration_minutes,
        start_at=slot.start,
        end_at=slot.end,
        capacity=capacity,
        current_capacity=0,
        waitlist_enabled=waitlist_enabled,
        waitlist_capacity=waitlist_capacity,
        status=SLOT_SCHEDULED,
    )
    db.add(class_row)
    await db.flush()
    return class_row


async def list_classes(
    db: AsyncSession,
    start_date: date,
    end_date: date,
    trainer_id: Optional[int] = None,
    template_id: Optional[int] = None,
    status: Optional[str] = None,
    include_cancelled: bool = False
) -> List[ClassInstance]:
    """Get classes within a date range with optional filters"""
    query = select(ClassInstance).where(
        and_(
            ClassInstance.class_date >= start_date,
            ClassInstance.class_date <= end_date
        )
    )
    if trainer_id is not None:
        query = query.where(ClassInstance.trainer_id == trainer_id)
    if template_id is not None:
        query = query.where(ClassInstance.template_id == template_id)
    if status:
        query = query.where(ClassInstance.status == status)
    elif not include_cancelled:
        query = query.where(ClassInstance.status != SLOT_CANCELLED)

    result = await db.execute(query.order_by(ClassInstance.start_at))
    return list(result.scalars().all())


# ------------------------------
# Templates
# ------------------------------
async def create_class_template(
    db: AsyncSession,
    *,
    trainer_id: int,
    name: str,
    weekday: int,
    start_time: str,
    duration_minutes: int,
    capacity: int,
    waitlist_enabled: bool = True,
    waitlist_capacity: int = 5,
    description: Optional[str] = None
) -> ClassTemplate:
    template = ClassTemplate(
        trainer_id=trainer_id,
        name=name,
        description=description,
        weekday=weekday,
        start_time=start_time,
        duration_minutes=duration_minutes,
        capacity=capacity,
        waitlist_enabled=waitlist_enabled,
        waitlist_capacity=waitlist_capacity,
        is_active=True,
    )
    db.add(template)
    await db.flush()
    return template


async def get_class_template(db: AsyncSession, template_id: int) -> Optional[ClassTemplate]:
    result = await db.execute(select(ClassTemplate).where(ClassTemplate.id == template_id))
    return result.scalar_one_or_none()


async def list_active_templates(db: AsyncSession) -> List[ClassTemplate]:
    result = await db.execute(
        select(ClassTemplate).where(ClassTemplate.is_active == True).order_by(ClassTemplate.id)
    )
    return list(result.scalars().all())


async def template_dates_with_classes(
    db: AsyncSession,
    template_id: int,
    start_date: date,
    end_date: date
) -> set:
    """Dates in range that already hold an instance of the template, cancelled ones included"""
    result = await db.execute(
        select(ClassInstance.class_date).where(
            ClassInstance.template_id == template_id,
            ClassInstance.class_date >= start_date,
            ClassInstance.class_date <= end_date,
        )
    )
    return {row[0] for row in result.all()}


# ------------------------------
# Registrations
# ------------------------------
async def get_active_registration(
    db: AsyncSession,
    class_id: int,
    member_id: int
) -> Optional[ClassRegistration]:
    """The member's seat-holding registration for the class, if any"""
    result = await db.execute(
        select(ClassRegistration).where(
            ClassRegistration.class_id == class_id,
            ClassRegistration.member_id == member_id,
            ClassRegistration.status.in_(SEAT_HOLDING_STATUSES),
        )
    )
    return result.scalar_one_or_none()


async def get_latest_registration(
    db: AsyncSession,
    class_id: int,
    member_id: int
) -> Optional[ClassRegistration]:
    result = await db.execute(
        select(ClassRegistration)
        .where(
            ClassRegistration.class_id == class_id,
            ClassRegistration.member_id == member_id,
        )
        .order_by(ClassRegistration.id.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def insert_registration(
    db: AsyncSession,
    class_id: int,
    member_id: int,
    status: str
) -> ClassRegistration:
    registration = ClassRegistration(class_id=class_id, member_id=member_id, status=status)
    db.add(registration)
    await db.flush()
    return registration


async def list_registrations(
    db: AsyncSession,
    class_id: int,
    include_canceled: bool = False
) -> List[ClassRegistration]:
    query = select(ClassRegistration).where(ClassRegistration.class_id == class_id)
    if not include_canceled:
        query = query.where(ClassRegistration.status.in_(SEAT_HOLDING_STATUSES))
    result = await db.execute(query.order_by(ClassRegistration.id))
    return list(result.scalars().all())


async def count_registrations_by_status(db: AsyncSession, class_id: int) -> Dict[str, int]:
    result = await db.execute(
        select(ClassRegistration.status, func.count(ClassRegistration.id))
        .where(ClassRegistration.class_id == class_id)
        .group_by(ClassRegistration.status)
    )
    return {status: count for status, count in result.all()}


# ------------------------------
# Waitlist
# ------------------------------
async def get_waiting_entry(
    db: AsyncSession,
    class_id: int,
    member_id: int
) -> Optional[ClassWaitlist]:
    result = await db.execute(
        select(ClassWaitlist).where(
            ClassWaitlist.class_id == class_id,
            ClassWaitlist.member_id == member_id,
            ClassWaitlist.status == WAITLIST_WAITING,
        )
    )
    return result.scalar_one_or_none()


async def count_waiting(db: AsyncSession, class_id: int) -> int:
    result = await db.execute(
        select(func.count(ClassWaitlist.id)).where(
            ClassWaitlist.class_id == class_id,
            ClassWaitlist.status == WAITLIST_WAITING,
        )
    )
    return result.scalar() or 0


async def max_waiting_position(db: AsyncSession, class_id: int) -> int:
    result = await db.execute(
        select(func.max(ClassWaitlist.position)).where(
            ClassWaitlist.class_id == class_id,
            ClassWaitlist.status == WAITLIST_WAITING,
        )
    )
    return result.scalar() or 0


async def insert_waitlist_entry(
    db: AsyncSession,
    class_id: int,
    member_id: int,
    position: int
) -> ClassWaitlist:
    entry = ClassWaitlist(
        class_id=class_id,
        member_id=member_id,
        position=position,
        status=WAITLIST_WAITING,
    )
    db.add(entry)
    await db.flush()
    return entry


async def first_waiting_entry(db: AsyncSession, class_id: int) -> Optional[ClassWaitlist]:
    result = await db.execute(
        select(ClassWaitlist)
        .where(
            ClassWaitlist.class_id == class_id,
            ClassWaitlist.status == WAITLIST_WAITING,
        )
        .order_by(ClassWaitlist.position)
        .limit(1)
    )
    return result.scalar_one_or_none()


async def close_waitlist_gap(db: AsyncSession, class_id: int, vacated_position: int) -> int:
    """Shift waiting entries behind a vacated position forward by one"""
    result = await db.execute(
        update(ClassWaitlist)
        .where(
            ClassWaitlist.class_id == class_id,
            ClassWaitlist.status == WAITLIST_WAITING,
            ClassWaitlist.position > vacated_position,
        )
        .values(position=ClassWaitlist.position - 1)
        .execution_options(synchronize_session="fetch")
    )
    return result.rowcount or 0


async def list_waitlist(
    db: AsyncSession,
    class_id: int,
    include_inactive: bool = False
) -> List[ClassWaitlist]:
    query = select(ClassWaitlist).where(ClassWaitlist.class_id == class_id)
    if not include_inactive:
        query = query.where(ClassWaitlist.status == WAITLIST_WAITING)
    result = await db.execute(query.order_by(
        case((ClassWaitlist.status == WAITLIST_WAITING, 0), else_=1),
        ClassWaitlist.position,
        ClassWaitlist.id,
    ))
    return list(result.scalars().all())

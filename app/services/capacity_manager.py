"""
Capacity and waitlist management for group classes.

current_capacity on the class row is a running count of seat-holding
registrations (registered or attended). It is only changed in the same
transaction as the registration row it summarises, and every mutation
re-checks it against the rows before the transaction commits.

Waiting positions are dense: 1..n with no gaps. When an entry leaves the
queue (promotion, withdrawal) every entry behind it moves forward by one.
"""
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import SchedulingError, ValidationError
from app.core.logging_config import get_logger
from app.db.postgresql import utcnow
from app.crud.classCrud import (
    close_waitlist_gap,
    count_registrations_by_status,
    count_waiting,
    first_waiting_entry,
    get_active_registration,
    get_latest_registration,
    get_waiting_entry,
    insert_registration,
    insert_waitlist_entry,
    list_registrations,
    list_waitlist,
    max_waiting_position,
)
from app.models.classModel import (
    ClassInstance,
    ClassRegistration,
    REGISTRATION_ATTENDED,
    REGISTRATION_CANCELED,
    REGISTRATION_REGISTERED,
    WAITLIST_EXPIRED,
    WAITLIST_NOTIFIED,
)
from app.services.results import (
    CapacityExceededError,
    Registered,
    RegistrationResult,
    SeatCancelled,
    Waitlisted,
)

logger = get_logger("services.capacity_manager")


class CapacityManager:
    """Keeps class enrollment counters and waitlists consistent"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def register(self, class_row: ClassInstance, member_id: int) -> RegistrationResult:
        """
        Give the member a seat, a waitlist position, or report the class full.

        Registering twice returns the existing seat or position unchanged.
        """
        existing = await get_active_registration(self.db, class_row.id, member_id)
        if existing:
            return Registered(existing)

        waiting = await get_waiting_entry(self.db, class_row.id, member_id)
        if waiting:
            return Waitlisted(waiting)

        if class_row.current_capacity < class_row.capacity:
            registration = await insert_registration(
                self.db, class_row.id, member_id, REGISTRATION_REGISTERED
            )
            class_row.current_capacity += 1
            await self.verify_counters(class_row)
            logger.info(
                "Member %s registered for class %s (%s/%s)",
                member_id, class_row.id, class_row.current_capacity, class_row.capacity,
            )
            return Registered(registration)

        if class_row.waitlist_enabled:
            waiting_count = await count_waiting(self.db, class_row.id)
            if waiting_count < class_row.waitlist_capacity:
                position = await max_waiting_position(self.db, class_row.id) + 1
                entry = await insert_waitlist_entry(self.db, class_row.id, member_id, position)
                logger.info(
                    "Member %s waitlisted for class %s at position %s",
                    member_id, class_row.id, position,
                )
                return Waitlisted(entry)

        logger.info("Class %s full, member %s rejected", class_row.id, member_id)
        return CapacityExceededError(
            class_id=class_row.id,
            capacity=class_row.capacity,
            waitlist_capacity=class_row.waitlist_capacity if class_row.waitlist_enabled else 0,
        )

    async def cancel_registration(self, class_row: ClassInstance, member_id: int) -> Optional[SeatCancelled]:
        """
        Release the member's seat (promoting the waitlist) or drop their waitlist entry.

        Returns None when the member never registered or waited for the class.
        """
        registration = await get_active_registration(self.db, class_row.id, member_id)
        if registration:
            if registration.status == REGISTRATION_ATTENDED:
                raise ValidationError(
                    "Attendance already recorded, the seat cannot be cancelled",
                    details={"class_id": class_row.id, "member_id": member_id},
                )
            registration.status = REGISTRATION_CANCELED
            registration.canceled_at = utcnow()
            class_row.current_capacity -= 1
            await self.db.flush()

            promoted = await self.promote_next(class_row)
            await self.verify_counters(class_row)
            return SeatCancelled(
                class_id=class_row.id,
                member_id=member_id,
                changed=True,
                registration=registration,
                promoted=promoted,
            )

        waiting = await get_waiting_entry(self.db, class_row.id, member_id)
        if waiting:
            await self._leave_waitlist(class_row, waiting, WAITLIST_EXPIRED)
            return SeatCancelled(
                class_id=class_row.id,
                member_id=member_id,
                changed=True,
                waitlist_entry=waiting,
            )

        previous = await get_latest_registration(self.db, class_row.id, member_id)
        if previous:
            # Already cancelled: report current state, counters untouched
            return SeatCancelled(
                class_id=class_row.id,
                member_id=member_id,
                changed=False,
                registration=previous,
            )
        return None

    async def promote_next(self, class_row: ClassInstance) -> Optional[ClassRegistration]:
        """Move the first waiting member into a free seat, if there is one"""
        if class_row.current_capacity >= class_row.capacity:
            return None

        entry = await first_waiting_entry(self.db, class_row.id)
        if entry is None:
            return None

        registration = await insert_registration(
            self.db, class_row.id, entry.member_id, REGISTRATION_REGISTERED
        )
        class_row.current_capacity += 1
        await self._leave_waitlist(class_row, entry, WAITLIST_NOTIFIED)
        logger.info(
            "Promoted member %s from waitlist position %s into class %s",
            entry.member_id, entry.position, class_row.id,
        )
        return registration

    async def mark_attended(self, class_row: ClassInstance, member_id: int) -> ClassRegistration:
        registration = await get_active_registration(self.db, class_row.id, member_id)
        if registration is None:
            raise ValidationError(
                "Member holds no seat in this class",
                details={"class_id": class_row.id, "member_id": member_id},
            )
        if registration.status != REGISTRATION_ATTENDED:
            registration.status = REGISTRATION_ATTENDED
            registration.attended_at = utcnow()
            await self.db.flush()
        return registration

    async def release_all(self, class_row: ClassInstance) -> Dict[str, int]:
        """Cancel every seat and expire the whole waitlist of a class"""
        canceled = 0
        for registration in await list_registrations(self.db, class_row.id):
            registration.status = REGISTRATION_CANCELED
            registration.canceled_at = utcnow()
            canceled += 1

        expired = 0
        for entry in await list_waitlist(self.db, class_row.id):
            entry.status = WAITLIST_EXPIRED
            expired += 1

        class_row.current_capacity = 0
        await self.db.flush()
        await self.verify_counters(class_row)
        return {"canceled_registrations": canceled, "expired_waitlist_entries": expired}

    async def capacity_info(self, class_row: ClassInstance) -> Dict[str, Any]:
        counts = await count_registrations_by_status(self.db, class_row.id)
        waiting = await count_waiting(self.db, class_row.id)
        registered = counts.get(REGISTRATION_REGISTERED, 0)
        attended = counts.get(REGISTRATION_ATTENDED, 0)
        return {
            "class_id": class_row.id,
            "capacity": class_row.capacity,
            "current_capacity": class_row.current_capacity,
            "registered": registered,
            "attended": attended,
            "waiting": waiting,
            "waitlist_capacity": class_row.waitlist_capacity if class_row.waitlist_enabled else 0,
            "available_spots": class_row.available_spots,
            "is_full": class_row.current_capacity >= class_row.capacity,
        }

    async def verify_counters(self, class_row: ClassInstance) -> None:
        """Fail the transaction if the counter drifted from the registration rows"""
        await self.db.flush()
        counts = await count_registrations_by_status(self.db, class_row.id)
        seats = counts.get(REGISTRATION_REGISTERED, 0) + counts.get(REGISTRATION_ATTENDED, 0)
        if seats != class_row.current_capacity or not 0 <= seats <= class_row.capacity:
            logger.error(
                "Capacity drift on class %s: counter=%s seats=%s capacity=%s",
                class_row.id, class_row.current_capacity, seats, class_row.capacity,
            )
            raise SchedulingError(
                "Class capacity counter out of sync",
                details={"class_id": class_row.id, "counter": class_row.current_capacity, "seats": seats},
            )
        waiting = await count_waiting(self.db, class_row.id)
        if waiting > class_row.waitlist_capacity and class_row.waitlist_enabled:
            raise SchedulingError(
                "Class waitlist over capacity",
                details={"class_id": class_row.id, "waiting": waiting},
            )

    async def _leave_waitlist(self, class_row: ClassInstance, entry, status: str) -> None:
        vacated = entry.position
        entry.status = status
        if status == WAITLIST_NOTIFIED:
            entry.notified_at = utcnow()
        await self.db.flush()
        shifted = await close_waitlist_gap(self.db, class_row.id, vacated)
        if shifted:
            logger.debug("Shifted %s waitlist entries forward in class %s", shifted, class_row.id)

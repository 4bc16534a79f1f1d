"""
Booking Service for the studio

Single entry point for every schedule mutation. Each operation runs as one
transaction that first takes the trainer/member/class locks it needs, then
checks conflicts or capacity, then writes. Expected business outcomes
(conflicts, full classes) come back as result values; lock timeouts and
other transient database failures are retried with exponential backoff
and re-evaluate the whole check on every attempt.
"""
import asyncio
import random
from contextlib import asynccontextmanager
from datetime import date
from typing import Any, Awaitable, Callable, Optional

from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import (
    NotFoundError,
    TransientStoreError,
    ValidationError,
    is_transient_db_error,
)
from app.core.logging_config import get_logger, log_booking_event
from app.crud.classCrud import get_class, get_class_template, insert_class
from app.crud.peopleCrud import get_person_by_id, person_has_role
from app.crud.sessionCrud import apply_slot, get_training_session, insert_training_session
from app.db.postgresql import utcnow
from app.db.locks import class_key, member_key, owner_key, slot_lock
from app.models.classModel import ClassRegistration
from app.models.sessionModel import (
    TrainingSession,
    SLOT_CANCELLED,
    SLOT_COMPLETED,
    SLOT_SCHEDULED,
)
from app.models.userModel import ROLE_ADMIN, ROLE_MEMBER, ROLE_TRAINER
from app.services.capacity_manager import CapacityManager
from app.services.conflict_checker import ConflictChecker
from app.services.results import (
    ClassCancelled,
    ClassScheduled,
    ConflictError,
    Registered,
    RegistrationResult,
    SeatCancelled,
    SessionBooked,
    SessionCancelled,
    Waitlisted,
)
from app.services.time_slot import TimeSlot

logger = get_logger("services.booking")


def validate_capacity(capacity: int, waitlist_capacity: int) -> None:
    if isinstance(capacity, bool) or not isinstance(capacity, int) or capacity < 1:
        raise ValidationError("Class must have at least 1 spot",
                              details={"field": "capacity", "value": capacity})
    if isinstance(waitlist_capacity, bool) or not isinstance(waitlist_capacity, int) or waitlist_capacity < 0:
        raise ValidationError("Waitlist capacity cannot be negative",
                              details={"field": "waitlist_capacity", "value": waitlist_capacity})


class BookingService:
    """Orchestrates conflict checks, capacity management and persistence"""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.conflicts = ConflictChecker(db)
        self.capacity = CapacityManager(db)

    # ------------------------------
    # Transaction plumbing
    # ------------------------------
    @asynccontextmanager
    async def _atomic(self, *keys):
        """Lock the keys, run the block, commit; roll back on any failure."""
        try:
            async with slot_lock(self.db, *keys):
                try:
                    yield
                    await self.db.commit()
                except BaseException:
                    # Roll back before the keys are released
                    await self.db.rollback()
                    raise
        except BaseException as exc:
            # A failed lock acquisition leaves the transaction open (aborted on PostgreSQL)
            await self.db.rollback()
            if isinstance(exc, DBAPIError) and is_transient_db_error(exc):
                raise TransientStoreError(
                    "Schedule store temporarily unavailable",
                    details={"error": exc.__class__.__name__},
                ) from exc
            raise

    async def _with_retry(self, operation: str, attempt_fn: Callable[[], Awaitable[Any]]) -> Any:
        attempt = 0
        while True:
            try:
                return await attempt_fn()
            except TransientStoreError as exc:
                attempt += 1
                if attempt > settings.max_retries:
                    logger.error("%s gave up after %s attempts: %s", operation, attempt, exc.message)
                    raise
                base = settings.retry_base_delay_ms / 1000
                delay = base * (2 ** (attempt - 1)) + random.uniform(0, base)
                logger.warning(
                    "%s hit a transient store error (attempt %s/%s), retrying in %.3fs",
                    operation, attempt, settings.max_retries, delay,
                )
                await asyncio.sleep(delay)

    async def _require_person(self, person_id: Optional[int], role: str, label: str) -> None:
        if person_id is None:
            raise ValidationError(f"{label} is required", details={"field": f"{label.lower()}_id"})
        person = await get_person_by_id(self.db, person_id)
        if person is None or not await person_has_role(self.db, person_id, role, ROLE_ADMIN):
            raise NotFoundError(f"{label} {person_id} not found", details={f"{label.lower()}_id": person_id})

    async def _load_session(self, session_id: int, for_update: bool = False) -> TrainingSession:
        session_row = await get_training_session(self.db, session_id, for_update=for_update)
        if session_row is None or session_row.deleted_at is not None:
            raise NotFoundError(f"Session {session_id} not found", details={"session_id": session_id})
        return session_row

    async def _load_class(self, class_id: int):
        class_row = await get_class(self.db, class_id, for_update=True)
        if class_row is None:
            raise NotFoundError(f"Class {class_id} not found", details={"class_id": class_id})
        return class_row

    # ------------------------------
    # One-to-one sessions
    # ------------------------------
    async def book_session(
        self,
        trainer_id: int,
        member_id: int,
        session_date: date,
        start_time: str,
        duration_minutes: int,
        notes: Optional[str] = None
    ) -> SessionBooked | ConflictError:
        """Book a trainer with a member unless either is already busy"""
        slot = TimeSlot.build(trainer_id, session_date, start_time, duration_minutes, subject_id=member_id)
        if member_id is None:
            raise ValidationError("Member is required", details={"field": "member_id"})

        async def attempt():
            async with self._atomic(owner_key(trainer_id), member_key(member_id)):
                await self._require_person(trainer_id, ROLE_TRAINER, "Trainer")
                await self._require_person(member_id, ROLE_MEMBER, "Member")
                conflict = await self.conflicts.check_conflict(slot)
                if isinstance(conflict, ConflictError):
                    return conflict
                return SessionBooked(await insert_training_session(self.db, slot, notes))

        result = await self._with_retry("book_session", attempt)
        log_booking_event(
            "book_session", "ok" if isinstance(result, SessionBooked) else "conflict",
            owner_id=trainer_id, member_id=member_id,
            slot_id=result.session.id if isinstance(result, SessionBooked) else result.conflicting_id,
        )
        return result

    async def reschedule_session(
        self,
        session_id: int,
        session_date: date,
        start_time: str,
        duration_minutes: int
    ) -> SessionBooked | ConflictError:
        """Move a scheduled session; its current interval does not count as a conflict"""
        current = await self._load_session(session_id)
        trainer_id, member_id = current.trainer_id, current.member_id
        slot = TimeSlot.build(
            trainer_id, session_date, start_time, duration_minutes, subject_id=member_id,
        )

        async def attempt():
            async with self._atomic(owner_key(trainer_id), member_key(member_id)):
                session_row = await self._load_session(session_id, for_update=True)
                if session_row.status != SLOT_SCHEDULED:
                    raise ValidationError(
                        f"Cannot reschedule a {session_row.status} session",
                        details={"session_id": session_id, "status": session_row.status},
                    )
                conflict = await self.conflicts.check_conflict(slot, exclude_session_id=session_id)
                if isinstance(conflict, ConflictError):
                    return conflict
                apply_slot(session_row, slot)
                await self.db.flush()
                return SessionBooked(session_row)

        result = await self._with_retry("reschedule_session", attempt)
        log_booking_event(
            "reschedule_session", "ok" if isinstance(result, SessionBooked) else "conflict",
            owner_id=trainer_id, member_id=member_id, slot_id=session_id,
        )
        return result

    async def cancel_session(self, session_id: int) -> SessionCancelled:
        """Cancel a session. Cancelling twice returns the session unchanged."""
        async def attempt():
            async with self._atomic():
                session_row = await self._load_session(session_id, for_update=True)
                if session_row.status == SLOT_CANCELLED:
                    return SessionCancelled(session_row, changed=False)
                if session_row.status == SLOT_COMPLETED:
                    raise ValidationError(
                        "Cannot cancel a completed session",
                        details={"session_id": session_id},
                    )
                session_row.status = SLOT_CANCELLED
                await self.db.flush()
                return SessionCancelled(session_row, changed=True)

        result = await self._with_retry("cancel_session", attempt)
        log_booking_event("cancel_session", "ok" if result.changed else "noop", slot_id=session_id)
        return result

    async def complete_session(self, session_id: int) -> TrainingSession:
        async def attempt():
            async with self._atomic():
                session_row = await self._load_session(session_id, for_update=True)
                if session_row.status == SLOT_CANCELLED:
                    raise ValidationError(
                        "Cannot complete a cancelled session",
                        details={"session_id": session_id},
                    )
                session_row.status = SLOT_COMPLETED
                await self.db.flush()
                return session_row

        return await self._with_retry("complete_session", attempt)

    async def delete_session(self, session_id: int) -> TrainingSession:
        """Soft-delete a session; its interval becomes bookable again"""
        async def attempt():
            async with self._atomic():
                session_row = await self._load_session(session_id, for_update=True)
                session_row.deleted_at = utcnow()
                await self.db.flush()
                return session_row

        result = await self._with_retry("delete_session", attempt)
        log_booking_event("delete_session", "ok", slot_id=session_id)
        return result

    # ------------------------------
    # Group classes
    # ------------------------------
    async def schedule_class(
        self,
        trainer_id: int,
        name: str,
        class_date: date,
        start_time: str,
        duration_minutes: int,
        capacity: int,
        waitlist_enabled: bool = False,
        waitlist_capacity: int = 0,
        description: Optional[str] = None,
        template_id: Optional[int] = None
    ) -> ClassScheduled | ConflictError:
        """Put a class on the trainer's schedule unless the trainer is busy"""
        slot = TimeSlot.build(trainer_id, class_date, start_time, duration_minutes, kind="class")
        validate_capacity(capacity, waitlist_capacity)
        if not name or not name.strip():
            raise ValidationError("Class name is required", details={"field": "name"})

        async def attempt():
            async with self._atomic(owner_key(trainer_id)):
                await self._require_person(trainer_id, ROLE_TRAINER, "Trainer")
                if template_id is not None and await get_class_template(self.db, template_id) is None:
                    raise NotFoundError(f"Template {template_id} not found",
                                        details={"template_id": template_id})
                conflict = await self.conflicts.check_conflict(slot)
                if isinstance(conflict, ConflictError):
                    return conflict
                class_row = await insert_class(
                    self.db,
                    slot,
                    name=name.strip(),
                    capacity=capacity,
                    waitlist_enabled=waitlist_enabled,
                    waitlist_capacity=waitlist_capacity,
                    description=description,
                    template_id=template_id,
                )
                return ClassScheduled(class_row)

        result = await self._with_retry("schedule_class", attempt)
        log_booking_event(
            "schedule_class", "ok" if isinstance(result, ClassScheduled) else "conflict",
            owner_id=trainer_id,
            class_id=result.class_instance.id if isinstance(result, ClassScheduled) else None,
        )
        return result

    async def cancel_class(self, class_id: int) -> ClassCancelled:
        """Cancel a class, release every seat and expire its waitlist"""
        async def attempt():
            async with self._atomic(class_key(class_id)):
                class_row = await self._load_class(class_id)
                if class_row.status == SLOT_CANCELLED:
                    return ClassCancelled(class_row, changed=False)
                if class_row.status == SLOT_COMPLETED:
                    raise ValidationError("Cannot cancel a completed class",
                                          details={"class_id": class_id})
                stats = await self.capacity.release_all(class_row)
                class_row.status = SLOT_CANCELLED
                await self.db.flush()
                return ClassCancelled(class_row, changed=True, **stats)

        result = await self._with_retry("cancel_class", attempt)
        log_booking_event("cancel_class", "ok" if result.changed else "noop", class_id=class_id)
        return result

    async def complete_class(self, class_id: int):
        async def attempt():
            async with self._atomic(class_key(class_id)):
                class_row = await self._load_class(class_id)
                if class_row.status == SLOT_CANCELLED:
                    raise ValidationError("Cannot complete a cancelled class",
                                          details={"class_id": class_id})
                class_row.status = SLOT_COMPLETED
                await self.db.flush()
                return class_row

        return await self._with_retry("complete_class", attempt)

    async def book_class_seat(self, class_id: int, member_id: int) -> RegistrationResult:
        """Register a member for a class, falling back to the waitlist"""
        async def attempt():
            async with self._atomic(class_key(class_id)):
                class_row = await self._load_class(class_id)
                if class_row.status != SLOT_SCHEDULED:
                    raise ValidationError(
                        f"Class {class_id} is {class_row.status}",
                        details={"class_id": class_id, "status": class_row.status},
                    )
                await self._require_person(member_id, ROLE_MEMBER, "Member")
                return await self.capacity.register(class_row, member_id)

        result = await self._with_retry("book_class_seat", attempt)
        outcome = {Registered: "registered", Waitlisted: "waitlisted"}.get(type(result), "full")
        log_booking_event("book_class_seat", "ok" if outcome != "full" else outcome,
                          class_id=class_id, member_id=member_id)
        return result

    async def cancel_class_seat(self, class_id: int, member_id: int) -> SeatCancelled:
        """Give up a seat or a waitlist spot. Repeating the call changes nothing."""
        async def attempt():
            async with self._atomic(class_key(class_id)):
                class_row = await self._load_class(class_id)
                if class_row.status == SLOT_COMPLETED:
                    raise ValidationError("Cannot cancel a seat in a completed class",
                                          details={"class_id": class_id})
                result = await self.capacity.cancel_registration(class_row, member_id)
                if result is None:
                    raise NotFoundError(
                        f"Member {member_id} has no registration for class {class_id}",
                        details={"class_id": class_id, "member_id": member_id},
                    )
                return result

        result = await self._with_retry("cancel_class_seat", attempt)
        log_booking_event("cancel_class_seat", "ok" if result.changed else "noop",
                          class_id=class_id, member_id=member_id)
        return result

    async def mark_attendance(self, class_id: int, member_id: int) -> ClassRegistration:
        async def attempt():
            async with self._atomic(class_key(class_id)):
                class_row = await self._load_class(class_id)
                if class_row.status == SLOT_CANCELLED:
                    raise ValidationError("Class was cancelled", details={"class_id": class_id})
                return await self.capacity.mark_attended(class_row, member_id)

        return await self._with_retry("mark_attendance", attempt)

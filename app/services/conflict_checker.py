"""
Conflict Checker for studio scheduling

Enforces the no-double-booking rule: a trainer's scheduled sessions and
classes never overlap, and neither do a member's scheduled sessions.
Cancelled, completed and soft-deleted slots free their interval.

The check is only meaningful inside the caller's transaction after the
trainer/member locks are held (see app.db.locks).
"""
from datetime import date
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.logging_config import get_logger
from app.crud.classCrud import find_overlapping_classes, list_classes
from app.crud.sessionCrud import find_overlapping_sessions, list_sessions
from app.models.sessionModel import SLOT_SCHEDULED
from app.services.results import ConflictError, ConflictResult, NoConflict
from app.services.time_slot import TimeSlot

logger = get_logger("services.conflict_checker")


class ConflictChecker:
    """Detects overlaps between a candidate slot and existing bookings"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def owner_blocks(
        self,
        candidate: TimeSlot,
        exclude_session_id: Optional[int] = None,
        exclude_class_id: Optional[int] = None
    ) -> List[TimeSlot]:
        """Active sessions and classes of the candidate's trainer near its interval"""
        sessions = await find_overlapping_sessions(
            self.db,
            trainer_id=candidate.owner_id,
            start_at=candidate.start,
            end_at=candidate.end,
            exclude_id=exclude_session_id,
        )
        classes = await find_overlapping_classes(
            self.db,
            trainer_id=candidate.owner_id,
            start_at=candidate.start,
            end_at=candidate.end,
            exclude_id=exclude_class_id,
        )
        blocks = [TimeSlot.from_session(s) for s in sessions]
        blocks.extend(TimeSlot.from_class(c) for c in classes)
        return sorted(blocks, key=lambda block: block.start)

    async def subject_blocks(
        self,
        candidate: TimeSlot,
        exclude_session_id: Optional[int] = None
    ) -> List[TimeSlot]:
        """Active sessions of the candidate's member near its interval"""
        if candidate.subject_id is None:
            return []
        sessions = await find_overlapping_sessions(
            self.db,
            member_id=candidate.subject_id,
            start_at=candidate.start,
            end_at=candidate.end,
            exclude_id=exclude_session_id,
        )
        return [TimeSlot.from_session(s) for s in sessions]

    async def check_conflict(
        self,
        candidate: TimeSlot,
        exclude_session_id: Optional[int] = None,
        exclude_class_id: Optional[int] = None
    ) -> ConflictResult:
        """
        Check a candidate slot against the trainer's and member's bookings.

        Args:
            candidate: Slot not yet persisted (or being moved)
            exclude_session_id: Session being rescheduled, ignored in the scan
            exclude_class_id: Class being rescheduled, ignored in the scan

        Returns:
            ConflictError for the first overlapping booking, NoConflict otherwise
        """
        for block in await self.owner_blocks(candidate, exclude_session_id, exclude_class_id):
            if candidate.overlaps(block):
                logger.info(
                    "Trainer %s conflict on %s %s: overlaps %s %s",
                    candidate.owner_id, candidate.slot_date, candidate.start_time,
                    block.kind, block.id,
                )
                return ConflictError(
                    party="owner",
                    party_id=candidate.owner_id,
                    conflicting_kind=block.kind,
                    conflicting_id=block.id,
                )

        for block in await self.subject_blocks(candidate, exclude_session_id):
            if candidate.overlaps(block):
                logger.info(
                    "Member %s conflict on %s %s: overlaps session %s",
                    candidate.subject_id, candidate.slot_date, candidate.start_time, block.id,
                )
                return ConflictError(
                    party="subject",
                    party_id=candidate.subject_id,
                    conflicting_kind=block.kind,
                    conflicting_id=block.id,
                )

        return NoConflict()

    async def scheduled_blocks(
        self,
        trainer_id: int,
        start_date: date,
        end_date: date
    ) -> List[TimeSlot]:
        """Every scheduled session and class of a trainer between two dates"""
        sessions = await list_sessions(
            self.db, start_date, end_date, trainer_id=trainer_id
        )
        classes = await list_classes(
            self.db, start_date, end_date, trainer_id=trainer_id, status=SLOT_SCHEDULED
        )
        blocks = [TimeSlot.from_session(s) for s in sessions if s.status == SLOT_SCHEDULED]
        blocks.extend(TimeSlot.from_class(c) for c in classes)
        return sorted(blocks, key=lambda block: block.start)

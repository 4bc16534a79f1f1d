"""
GraphQL queries for training sessions
"""
from typing import List, Optional
import strawberry
from strawberry.types import Info

from app.crud.sessionCrud import get_training_session, list_sessions
from app.graphql.auth.permissions import IsAuthenticated
from app.services.conflict_checker import ConflictChecker
from .types import (
    GetSessionsInput,
    ScheduleBlock,
    TrainingSession,
    TrainingSessionsResponse,
)


@strawberry.type
class TrainingSessionQueries:
    """Training session queries"""

    @strawberry.field(permission_classes=[IsAuthenticated])
    async def get_training_session(
        self,
        info: Info,
        session_id: int
    ) -> Optional[TrainingSession]:
        """Get a single session by ID"""
        session = await get_training_session(info.context.db, session_id)
        if session and session.deleted_at is None:
            return TrainingSession.from_model(session)
        return None

    @strawberry.field(permission_classes=[IsAuthenticated])
    async def get_training_sessions(
        self,
        info: Info,
        filters: GetSessionsInput
    ) -> TrainingSessionsResponse:
        """Sessions in a date range, optionally for one trainer or member"""
        sessions = await list_sessions(
            info.context.db,
            filters.start_date,
            filters.end_date,
            trainer_id=filters.trainer_id,
            member_id=filters.member_id,
            include_cancelled=filters.include_cancelled
        )
        session_list = [TrainingSession.from_model(s) for s in sessions]
        return TrainingSessionsResponse(sessions=session_list, total_count=len(session_list))

    @strawberry.field(permission_classes=[IsAuthenticated])
    async def trainer_schedule(
        self,
        info: Info,
        filters: GetSessionsInput
    ) -> List[ScheduleBlock]:
        """Every block (session or class) a trainer is booked for"""
        if filters.trainer_id is None:
            return []
        blocks = await ConflictChecker(info.context.db).scheduled_blocks(
            filters.trainer_id, filters.start_date, filters.end_date
        )
        return [ScheduleBlock.from_slot(block) for block in blocks]

"""
GraphQL mutations for training sessions
"""
import strawberry
from sqlalchemy.exc import SQLAlchemyError
from strawberry.types import Info

from app.core.exceptions import SchedulingError
from app.core.logging_config import get_logger
from app.graphql.auth.permissions import IsAuthenticated
from app.services.booking_service import BookingService
from app.services.results import ConflictError
from .types import (
    BookSessionInput,
    ConflictInfo,
    RescheduleSessionInput,
    TrainingSession,
    TrainingSessionResponse,
)

logger = get_logger("graphql.sessions.mutations")


def _failure(exc: Exception) -> TrainingSessionResponse:
    if isinstance(exc, SchedulingError):
        return TrainingSessionResponse(success=False, message=exc.message, error_code=exc.code)
    logger.exception("Unexpected database error")
    return TrainingSessionResponse(success=False, message="Database error", error_code="DatabaseError")


def _booking_response(result, message: str) -> TrainingSessionResponse:
    if isinstance(result, ConflictError):
        return TrainingSessionResponse(
            success=False,
            message=result.message,
            conflict=ConflictInfo.from_result(result),
            error_code="ConflictError"
        )
    return TrainingSessionResponse(
        success=True,
        message=message,
        session=TrainingSession.from_model(result.session)
    )


@strawberry.type
class TrainingSessionMutations:
    """Training session mutations"""

    @strawberry.mutation(permission_classes=[IsAuthenticated])
    async def book_session(
        self,
        info: Info,
        input: BookSessionInput
    ) -> TrainingSessionResponse:
        """Book a 1:1 session between a trainer and a member"""
        try:
            result = await BookingService(info.context.db).book_session(
                trainer_id=input.trainer_id,
                member_id=input.member_id,
                session_date=input.session_date,
                start_time=input.start_time,
                duration_minutes=input.duration_minutes,
                notes=input.notes
            )
        except (SchedulingError, SQLAlchemyError) as e:
            return _failure(e)
        return _booking_response(result, "Session booked successfully")

    @strawberry.mutation(permission_classes=[IsAuthenticated])
    async def reschedule_session(
        self,
        info: Info,
        input: RescheduleSessionInput
    ) -> TrainingSessionResponse:
        """Move a session to a new time"""
        try:
            result = await BookingService(info.context.db).reschedule_session(
                session_id=input.session_id,
                session_date=input.session_date,
                start_time=input.start_time,
                duration_minutes=input.duration_minutes
            )
        except (SchedulingError, SQLAlchemyError) as e:
            return _failure(e)
        return _booking_response(result, "Session rescheduled successfully")

    @strawberry.mutation(permission_classes=[IsAuthenticated])
    async def cancel_session(self, info: Info, session_id: int) -> TrainingSessionResponse:
        """Cancel a session; cancelling twice is a no-op"""
        try:
            result = await BookingService(info.context.db).cancel_session(session_id)
        except (SchedulingError, SQLAlchemyError) as e:
            return _failure(e)
        return TrainingSessionResponse(
            success=True,
            message="Session cancelled" if result.changed else "Session was already cancelled",
            session=TrainingSession.from_model(result.session)
        )

    @strawberry.mutation(permission_classes=[IsAuthenticated])
    async def complete_session(self, info: Info, session_id: int) -> TrainingSessionResponse:
        try:
            session = await BookingService(info.context.db).complete_session(session_id)
        except (SchedulingError, SQLAlchemyError) as e:
            return _failure(e)
        return TrainingSessionResponse(
            success=True,
            message="Session completed",
            session=TrainingSession.from_model(session)
        )

    @strawberry.mutation(permission_classes=[IsAuthenticated])
    async def delete_session(self, info: Info, session_id: int) -> TrainingSessionResponse:
        """Soft-delete a session, freeing its slot"""
        try:
            session = await BookingService(info.context.db).delete_session(session_id)
        except (SchedulingError, SQLAlchemyError) as e:
            return _failure(e)
        return TrainingSessionResponse(
            success=True,
            message="Session deleted",
            session=TrainingSession.from_model(session)
        )

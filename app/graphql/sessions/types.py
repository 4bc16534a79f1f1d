"""
GraphQL types for 1:1 training sessions
"""
from datetime import date, datetime
from typing import List, Optional
import strawberry

from app.models.sessionModel import TrainingSession as TrainingSessionModel
from app.services.results import ConflictError
from app.services.time_slot import TimeSlot


@strawberry.type
class TrainingSession:
    """Training session GraphQL type"""
    id: int
    trainer_id: int
    member_id: int
    session_date: date
    start_time: str
    duration_minutes: int
    start_at: datetime
    end_at: datetime
    status: str
    notes: Optional[str]
    created_at: Optional[datetime]

    @classmethod
    def from_model(cls, session: TrainingSessionModel) -> "TrainingSession":
        return cls(
            id=session.id,
            trainer_id=session.trainer_id,
            member_id=session.member_id,
            session_date=session.session_date,
            start_time=session.start_time,
            duration_minutes=session.duration_minutes,
            start_at=session.start_at,
            end_at=session.end_at,
            status=session.status,
            notes=session.notes,
            created_at=session.created_at
        )


@strawberry.type
class ConflictInfo:
    """The active slot that blocked a booking"""
    party: str
    party_id: int
    conflicting_kind: str
    conflicting_id: int

    @classmethod
    def from_result(cls, conflict: ConflictError) -> "ConflictInfo":
        return cls(
            party=conflict.party,
            party_id=conflict.party_id,
            conflicting_kind=conflict.conflicting_kind,
            conflicting_id=conflict.conflicting_id
        )


@strawberry.type
class ScheduleBlock:
    """A scheduled session or class occupying a trainer"""
    kind: str
    id: Optional[int]
    trainer_id: int
    member_id: Optional[int]
    start_at: datetime
    end_at: datetime
    duration_minutes: int

    @classmethod
    def from_slot(cls, slot: TimeSlot) -> "ScheduleBlock":
        return cls(
            kind=slot.kind,
            id=slot.id,
            trainer_id=slot.owner_id,
            member_id=slot.subject_id,
            start_at=slot.start,
            end_at=slot.end,
            duration_minutes=slot.duration_minutes
        )


# Input types
@strawberry.input
class BookSessionInput:
    """Input for booking a 1:1 session"""
    trainer_id: int
    member_id: int
    session_date: date
    start_time: str
    duration_minutes: int
    notes: Optional[str] = None


@strawberry.input
class RescheduleSessionInput:
    """Input for moving a session"""
    session_id: int
    session_date: date
    start_time: str
    duration_minutes: int


@strawberry.input
class GetSessionsInput:
    """Input for filtering sessions"""
    start_date: date
    end_date: date
    trainer_id: Optional[int] = None
    member_id: Optional[int] = None
    include_cancelled: bool = False


# Response types
@strawberry.type
class TrainingSessionResponse:
    """Response for session operations"""
    success: bool
    message: str
    session: Optional[TrainingSession] = None
    conflict: Optional[ConflictInfo] = None
    error_code: Optional[str] = None


@strawberry.type
class TrainingSessionsResponse:
    """Response for sessions query"""
    sessions: List[TrainingSession]
    total_count: int

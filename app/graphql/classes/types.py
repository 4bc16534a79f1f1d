"""
GraphQL types for group classes, templates, registrations and waitlists
"""
from datetime import date, datetime
from typing import Any, Dict, List, Optional
import strawberry

from app.graphql.sessions.types import ConflictInfo
from app.models.classModel import (
    ClassInstance as ClassInstanceModel,
    ClassRegistration as ClassRegistrationModel,
    ClassTemplate as ClassTemplateModel,
    ClassWaitlist as ClassWaitlistModel,
)


@strawberry.type
class StudioClass:
    """Class instance GraphQL type"""
    id: int
    template_id: Optional[int]
    trainer_id: int
    name: str
    description: Optional[str]
    class_date: date
    start_time: str
    duration_minutes: int
    start_at: datetime
    end_at: datetime
    capacity: int
    current_capacity: int
    available_spots: int
    waitlist_enabled: bool
    waitlist_capacity: int
    status: str

    @classmethod
    def from_model(cls, class_row: ClassInstanceModel) -> "StudioClass":
        return cls(
            id=class_row.id,
            template_id=class_row.template_id,
            trainer_id=class_row.trainer_id,
            name=class_row.name,
            description=class_row.description,
            class_date=class_row.class_date,
            start_time=class_row.start_time,
            duration_minutes=class_row.duration_minutes,
            start_at=class_row.start_at,
            end_at=class_row.end_at,
            capacity=class_row.capacity,
            current_capacity=class_row.current_capacity,
            available_spots=class_row.available_spots,
            waitlist_enabled=class_row.waitlist_enabled,
            waitlist_capacity=class_row.waitlist_capacity,
            status=class_row.status
        )


@strawberry.type
class ClassTemplate:
    id: int
    trainer_id: int
    name: str
    description: Optional[str]
    weekday: int
    start_time: str
    duration_minutes: int
    capacity: int
    waitlist_enabled: bool
    waitlist_capacity: int
    is_active: bool

    @classmethod
    def from_model(cls, template: ClassTemplateModel) -> "ClassTemplate":
        return cls(
            id=template.id,
            trainer_id=template.trainer_id,
            name=template.name,
            description=template.description,
            weekday=template.weekday,
            start_time=template.start_time,
            duration_minutes=template.duration_minutes,
            capacity=template.capacity,
            waitlist_enabled=template.waitlist_enabled,
            waitlist_capacity=template.waitlist_capacity,
            is_active=template.is_active
        )


@strawberry.type
class ClassRegistration:
    id: int
    class_id: int
    member_id: int
    status: str
    registered_at: Optional[datetime]
    attended_at: Optional[datetime]
    canceled_at: Optional[datetime]

    @classmethod
    def from_model(cls, registration: ClassRegistrationModel) -> "ClassRegistration":
        return cls(
            id=registration.id,
            class_id=registration.class_id,
            member_id=registration.member_id,
            status=registration.status,
            registered_at=registration.registered_at,
            attended_at=registration.attended_at,
            canceled_at=registration.canceled_at
        )


@strawberry.type
class WaitlistEntry:
    id: int
    class_id: int
    member_id: int
    position: int
    status: str
    created_at: Optional[datetime]

    @classmethod
    def from_model(cls, entry: ClassWaitlistModel) -> "WaitlistEntry":
        return cls(
            id=entry.id,
            class_id=entry.class_id,
            member_id=entry.member_id,
            position=entry.position,
            status=entry.status,
            created_at=entry.created_at
        )


@strawberry.type
class ClassCapacityInfo:
    """Seat and waitlist usage of a class"""
    class_id: int
    capacity: int
    current_capacity: int
    registered: int
    attended: int
    waiting: int
    waitlist_capacity: int
    available_spots: int
    is_full: bool


@strawberry.type
class ClassGenerationStats:
    """Statistics from generating classes out of a template"""
    template_id: int
    template_name: Optional[str]
    classes_created: int
    skipped_existing: int
    skipped_conflicts: int
    created_ids: List[int]
    date_range: str


@strawberry.type
class ClassWindowStats:
    """Statistics from maintaining the rolling class window"""
    templates_processed: int
    classes_created: int
    skipped_conflicts: int
    date_range: str
    templates_with_classes: List[ClassGenerationStats]


# Input types
@strawberry.input
class ScheduleClassInput:
    trainer_id: int
    name: str
    class_date: date
    start_time: str
    duration_minutes: int
    capacity: int
    waitlist_enabled: bool = False
    waitlist_capacity: int = 0
    description: Optional[str] = None


@strawberry.input
class CreateClassTemplateInput:
    trainer_id: int
    name: str
    weekday: int
    start_time: str
    duration_minutes: int
    capacity: int
    waitlist_enabled: bool = True
    waitlist_capacity: int = 5
    description: Optional[str] = None


@strawberry.input
class GenerateClassesInput:
    """Input for generating classes from a template"""
    template_id: int
    start_date: date
    end_date: date


@strawberry.input
class ClassSeatInput:
    class_id: int
    member_id: int


@strawberry.input
class GetClassesInput:
    """Input for filtering classes"""
    start_date: date
    end_date: date
    trainer_id: Optional[int] = None
    template_id: Optional[int] = None
    status: Optional[str] = None
    include_cancelled: bool = False


# Response types
@strawberry.type
class StudioClassResponse:
    """Response for class operations"""
    success: bool
    message: str
    studio_class: Optional[StudioClass] = None
    conflict: Optional[ConflictInfo] = None
    error_code: Optional[str] = None


@strawberry.type
class CancelClassResponse:
    success: bool
    message: str
    studio_class: Optional[StudioClass] = None
    canceled_registrations: int = 0
    expired_waitlist_entries: int = 0
    error_code: Optional[str] = None


@strawberry.type
class ClassTemplateResponse:
    success: bool
    message: str
    template: Optional[ClassTemplate] = None
    error_code: Optional[str] = None


@strawberry.type
class ClassGenerationResponse:
    success: bool
    message: str
    stats: Optional[ClassGenerationStats] = None
    error_code: Optional[str] = None


@strawberry.type
class ClassWindowResponse:
    success: bool
    message: str
    stats: Optional[ClassWindowStats] = None
    error_code: Optional[str] = None


@strawberry.type
class RegistrationResponse:
    """Response for seat bookings: registered, waitlisted or rejected"""
    success: bool
    message: str
    outcome: Optional[str] = None  # 'registered' | 'waitlisted' | 'attended'
    registration: Optional[ClassRegistration] = None
    waitlist_entry: Optional[WaitlistEntry] = None
    error_code: Optional[str] = None


@strawberry.type
class CancelSeatResponse:
    success: bool
    message: str
    changed: bool = False
    registration: Optional[ClassRegistration] = None
    waitlist_entry: Optional[WaitlistEntry] = None
    promoted: Optional[ClassRegistration] = None
    error_code: Optional[str] = None


@strawberry.type
class ClassesResponse:
    classes: List[StudioClass]
    total_count: int


# Helper functions for converting data
def convert_generation_stats(stats: Dict[str, Any]) -> ClassGenerationStats:
    return ClassGenerationStats(
        template_id=stats["template_id"],
        template_name=stats.get("template_name"),
        classes_created=stats.get("classes_created", 0),
        skipped_existing=stats.get("skipped_existing", 0),
        skipped_conflicts=stats.get("skipped_conflicts", 0),
        created_ids=list(stats.get("created_ids", [])),
        date_range=stats.get("date_range", "")
    )


def convert_window_stats(stats: Dict[str, Any]) -> ClassWindowStats:
    return ClassWindowStats(
        templates_processed=stats.get("templates_processed", 0),
        classes_created=stats.get("classes_created", 0),
        skipped_conflicts=stats.get("skipped_conflicts", 0),
        date_range=stats.get("date_range", ""),
        templates_with_classes=[
            convert_generation_stats(t) for t in stats.get("templates_with_classes", [])
        ]
    )


def convert_capacity_info(capacity: Dict[str, Any]) -> ClassCapacityInfo:
    return ClassCapacityInfo(**capacity)

"""
GraphQL mutations for group classes
"""
import strawberry
from sqlalchemy.exc import SQLAlchemyError
from strawberry.types import Info

from app.core.exceptions import SchedulingError
from app.core.logging_config import get_logger
from app.graphql.auth.permissions import IsAuthenticated
from app.graphql.sessions.types import ConflictInfo
from app.services.booking_service import BookingService
from app.services.class_generator import ClassGeneratorService
from app.services.results import CapacityExceededError, ConflictError, Registered
from .types import (
    CancelClassResponse,
    CancelSeatResponse,
    ClassGenerationResponse,
    ClassRegistration,
    ClassSeatInput,
    ClassTemplate,
    ClassTemplateResponse,
    ClassWindowResponse,
    CreateClassTemplateInput,
    GenerateClassesInput,
    RegistrationResponse,
    ScheduleClassInput,
    StudioClass,
    StudioClassResponse,
    WaitlistEntry,
    convert_generation_stats,
    convert_window_stats,
)

logger = get_logger("graphql.classes.mutations")


def _failure(response_cls, exc: Exception):
    if isinstance(exc, SchedulingError):
        return response_cls(success=False, message=exc.message, error_code=exc.code)
    logger.exception("Unexpected database error")
    return response_cls(success=False, message="Database error", error_code="DatabaseError")


@strawberry.type
class ClassMutations:
    """Group class mutations"""

    @strawberry.mutation(permission_classes=[IsAuthenticated])
    async def schedule_class(self, info: Info, input: ScheduleClassInput) -> StudioClassResponse:
        """Put a one-off class on a trainer's schedule"""
        try:
            result = await BookingService(info.context.db).schedule_class(
                trainer_id=input.trainer_id,
                name=input.name,
                class_date=input.class_date,
                start_time=input.start_time,
                duration_minutes=input.duration_minutes,
                capacity=input.capacity,
                waitlist_enabled=input.waitlist_enabled,
                waitlist_capacity=input.waitlist_capacity,
                description=input.description
            )
        except (SchedulingError, SQLAlchemyError) as e:
            return _failure(StudioClassResponse, e)

        if isinstance(result, ConflictError):
            return StudioClassResponse(
                success=False,
                message=result.message,
                conflict=ConflictInfo.from_result(result),
                error_code="ConflictError"
            )
        return StudioClassResponse(
            success=True,
            message="Class scheduled successfully",
            studio_class=StudioClass.from_model(result.class_instance)
        )

    @strawberry.mutation(permission_classes=[IsAuthenticated])
    async def cancel_class(self, info: Info, class_id: int) -> CancelClassResponse:
        """Cancel a class, releasing all seats and expiring its waitlist"""
        try:
            result = await BookingService(info.context.db).cancel_class(class_id)
        except (SchedulingError, SQLAlchemyError) as e:
            return _failure(CancelClassResponse, e)
        return CancelClassResponse(
            success=True,
            message="Class cancelled" if result.changed else "Class was already cancelled",
            studio_class=StudioClass.from_model(result.class_instance),
            canceled_registrations=result.canceled_registrations,
            expired_waitlist_entries=result.expired_waitlist_entries
        )

    @strawberry.mutation(permission_classes=[IsAuthenticated])
    async def complete_class(self, info: Info, class_id: int) -> StudioClassResponse:
        try:
            class_row = await BookingService(info.context.db).complete_class(class_id)
        except (SchedulingError, SQLAlchemyError) as e:
            return _failure(StudioClassResponse, e)
        return StudioClassResponse(
            success=True,
            message="Class completed",
            studio_class=StudioClass.from_model(class_row)
        )

    @strawberry.mutation(permission_classes=[IsAuthenticated])
    async def book_class_seat(self, info: Info, input: ClassSeatInput) -> RegistrationResponse:
        """Take a seat, or a waitlist spot when the class is full"""
        try:
            result = await BookingService(info.context.db).book_class_seat(
                input.class_id, input.member_id
            )
        except (SchedulingError, SQLAlchemyError) as e:
            return _failure(RegistrationResponse, e)

        if isinstance(result, CapacityExceededError):
            return RegistrationResponse(
                success=False,
                message=result.message,
                error_code="CapacityExceededError"
            )
        if isinstance(result, Registered):
            return RegistrationResponse(
                success=True,
                message="Seat booked",
                outcome="registered",
                registration=ClassRegistration.from_model(result.registration)
            )
        return RegistrationResponse(
            success=True,
            message=f"Added to waitlist at position {result.position}",
            outcome="waitlisted",
            waitlist_entry=WaitlistEntry.from_model(result.entry)
        )

    @strawberry.mutation(permission_classes=[IsAuthenticated])
    async def cancel_class_seat(self, info: Info, input: ClassSeatInput) -> CancelSeatResponse:
        """Give up a seat or waitlist spot; a freed seat goes to the first waiting member"""
        try:
            result = await BookingService(info.context.db).cancel_class_seat(
                input.class_id, input.member_id
            )
        except (SchedulingError, SQLAlchemyError) as e:
            return _failure(CancelSeatResponse, e)
        return CancelSeatResponse(
            success=True,
            message="Registration cancelled" if result.changed else "Nothing to cancel",
            changed=result.changed,
            registration=ClassRegistration.from_model(result.registration) if result.registration else None,
            waitlist_entry=WaitlistEntry.from_model(result.waitlist_entry) if result.waitlist_entry else None,
            promoted=ClassRegistration.from_model(result.promoted) if result.promoted else None
        )

    @strawberry.mutation(permission_classes=[IsAuthenticated])
    async def mark_attendance(self, info: Info, input: ClassSeatInput) -> RegistrationResponse:
        try:
            registration = await BookingService(info.context.db).mark_attendance(
                input.class_id, input.member_id
            )
        except (SchedulingError, SQLAlchemyError) as e:
            return _failure(RegistrationResponse, e)
        return RegistrationResponse(
            success=True,
            message="Attendance recorded",
            outcome="attended",
            registration=ClassRegistration.from_model(registration)
        )

    @strawberry.mutation(permission_classes=[IsAuthenticated])
    async def create_class_template(
        self,
        info: Info,
        input: CreateClassTemplateInput
    ) -> ClassTemplateResponse:
        try:
            template = await ClassGeneratorService(info.context.db).create_template(
                trainer_id=input.trainer_id,
                name=input.name,
                weekday=input.weekday,
                start_time=input.start_time,
                duration_minutes=input.duration_minutes,
                capacity=input.capacity,
                waitlist_enabled=input.waitlist_enabled,
                waitlist_capacity=input.waitlist_capacity,
                description=input.description
            )
        except (SchedulingError, SQLAlchemyError) as e:
            return _failure(ClassTemplateResponse, e)
        return ClassTemplateResponse(
            success=True,
            message="Template created",
            template=ClassTemplate.from_model(template)
        )

    @strawberry.mutation(permission_classes=[IsAuthenticated])
    async def generate_classes_from_template(
        self,
        info: Info,
        input: GenerateClassesInput
    ) -> ClassGenerationResponse:
        """Generate classes for a template over a date range"""
        try:
            stats = await ClassGeneratorService(info.context.db).generate_from_template(
                template_id=input.template_id,
                start_date=input.start_date,
                end_date=input.end_date
            )
        except (SchedulingError, SQLAlchemyError) as e:
            return _failure(ClassGenerationResponse, e)
        return ClassGenerationResponse(
            success=True,
            message=f"Generated {stats['classes_created']} classes",
            stats=convert_generation_stats(stats)
        )

    @strawberry.mutation(permission_classes=[IsAuthenticated])
    async def maintain_class_window(
        self,
        info: Info,
        weeks_ahead: int = 8
    ) -> ClassWindowResponse:
        """Keep every active template generated a number of weeks ahead"""
        try:
            stats = await ClassGeneratorService(info.context.db).maintain_class_window(weeks_ahead)
        except (SchedulingError, SQLAlchemyError) as e:
            return _failure(ClassWindowResponse, e)
        return ClassWindowResponse(
            success=True,
            message=f"Maintenance completed: {stats['classes_created']} classes created",
            stats=convert_window_stats(stats)
        )

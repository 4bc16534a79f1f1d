"""
Class Generator Service
Creates class instances from recurring templates and keeps a rolling
window of upcoming classes on the schedule
"""
from datetime import date, timedelta
from typing import Any, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import NotFoundError, ValidationError
from app.core.logging_config import get_logger
from app.crud.classCrud import (
    create_class_template,
    get_class_template,
    list_active_templates,
    template_dates_with_classes,
)
from app.crud.peopleCrud import person_has_role
from app.models.classModel import ClassTemplate
from app.models.userModel import ROLE_ADMIN, ROLE_TRAINER
from app.services.booking_service import BookingService, validate_capacity
from app.services.results import ClassScheduled
from app.services.time_slot import normalize_start_time, validate_duration

logger = get_logger("services.class_generator")


class ClassGeneratorService:
    """Manages recurring class templates and the classes generated from them"""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.booking = BookingService(db)

    async def create_template(
        self,
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
        """Validate and store a weekly class template (0=Monday .. 6=Sunday)"""
        if not isinstance(weekday, int) or not 0 <= weekday <= 6:
            raise ValidationError("Weekday must be between 0 (Monday) and 6 (Sunday)",
                                  details={"field": "weekday", "value": weekday})
        start_time = normalize_start_time(start_time)
        validate_duration(duration_minutes)
        validate_capacity(capacity, waitlist_capacity)
        if not name or not name.strip():
            raise ValidationError("Class name is required", details={"field": "name"})

        if not await person_has_role(self.db, trainer_id, ROLE_TRAINER, ROLE_ADMIN):
            raise NotFoundError(f"Trainer {trainer_id} not found", details={"trainer_id": trainer_id})

        try:
            template = await create_class_template(
                self.db,
                trainer_id=trainer_id,
                name=name.strip(),
                weekday=weekday,
                start_time=start_time,
                duration_minutes=duration_minutes,
                capacity=capacity,
                waitlist_enabled=waitlist_enabled,
                waitlist_capacity=waitlist_capacity,
                description=description,
            )
            await self.db.commit()
        except SQLAlchemyError:
            await self.db.rollback()
            raise
        return template

    async def generate_from_template(
        self,
        template_id: int,
        start_date: date,
        end_date: date
    ) -> Dict[str, Any]:
        """
        Generate classes for every template weekday in [start_date, end_date]

        Dates that already hold an instance of the template are skipped, and so
        are dates where the trainer is already booked at that time. Each class
        is booked in its own transaction.

        Returns:
            Statistics about the classes created and skipped
        """
        if end_date < start_date:
            raise ValidationError("End date must not be before start date",
                                  details={"start_date": str(start_date), "end_date": str(end_date)})

        template = await get_class_template(self.db, template_id)
        if template is None:
            raise NotFoundError(f"Template {template_id} not found", details={"template_id": template_id})

        stats: Dict[str, Any] = {
            "template_id": template_id,
            "template_name": template.name,
            "classes_created": 0,
            "skipped_existing": 0,
            "skipped_conflicts": 0,
            "created_ids": [],
            "date_range": f"{start_date} to {end_date}",
        }
        if not template.is_active:
            return stats

        # Snapshot the template defaults; later edits to instances never flow back
        defaults = {
            "trainer_id": template.trainer_id,
            "name": template.name,
            "description": template.description,
            "start_time": template.start_time,
            "duration_minutes": template.duration_minutes,
            "capacity": template.capacity or settings.default_class_capacity,
            "waitlist_enabled": template.waitlist_enabled,
            "waitlist_capacity": template.waitlist_capacity,
        }
        weekday = template.weekday
        existing_dates = await template_dates_with_classes(self.db, template_id, start_date, end_date)

        current_date = start_date
        while current_date <= end_date:
            if current_date.weekday() == weekday:
                if current_date in existing_dates:
                    stats["skipped_existing"] += 1
                else:
                    result = await self.booking.schedule_class(
                        class_date=current_date, template_id=template_id, **defaults
                    )
                    if isinstance(result, ClassScheduled):
                        stats["classes_created"] += 1
                        stats["created_ids"].append(result.class_instance.id)
                    else:
                        logger.info(
                            "Skipping template %s on %s: %s",
                            template_id, current_date, result.message,
                        )
                        stats["skipped_conflicts"] += 1
            current_date += timedelta(days=1)

        logger.info(
            "Template %s generated %s classes (%s existing, %s conflicts)",
            template_id, stats["classes_created"], stats["skipped_existing"], stats["skipped_conflicts"],
        )
        return stats

    async def maintain_class_window(
        self,
        weeks_ahead: Optional[int] = None,
        start_from_date: Optional[date] = None
    ) -> Dict[str, Any]:
        """Keep a rolling window of future classes for all active templates"""
        weeks_ahead = settings.default_weeks_ahead if weeks_ahead is None else weeks_ahead
        if weeks_ahead < 0:
            raise ValidationError("weeks_ahead must not be negative", details={"weeks_ahead": weeks_ahead})
        start_date = start_from_date or date.today()
        end_date = start_date + timedelta(weeks=weeks_ahead)

        templates = await list_active_templates(self.db)
        stats: Dict[str, Any] = {
            "templates_processed": 0,
            "classes_created": 0,
            "skipped_conflicts": 0,
            "templates_with_classes": [],
            "date_range": f"{start_date} to {end_date}",
        }

        for template_id in [t.id for t in templates]:
            template_stats = await self.generate_from_template(template_id, start_date, end_date)
            stats["templates_processed"] += 1
            stats["classes_created"] += template_stats["classes_created"]
            stats["skipped_conflicts"] += template_stats["skipped_conflicts"]
            if template_stats["classes_created"]:
                stats["templates_with_classes"].append(template_stats)

        return stats

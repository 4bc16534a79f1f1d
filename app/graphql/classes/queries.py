"""
GraphQL queries for group classes
"""
from typing import List, Optional
import strawberry
from strawberry.types import Info

from app.crud.classCrud import get_class, list_classes, list_registrations, list_waitlist
from app.graphql.auth.permissions import IsAuthenticated
from app.services.capacity_manager import CapacityManager
from .types import (
    ClassCapacityInfo,
    ClassesResponse,
    ClassRegistration,
    GetClassesInput,
    StudioClass,
    WaitlistEntry,
    convert_capacity_info,
)


@strawberry.type
class ClassQueries:
    """Group class queries"""

    @strawberry.field(permission_classes=[IsAuthenticated])
    async def get_class(self, info: Info, class_id: int) -> Optional[StudioClass]:
        class_row = await get_class(info.context.db, class_id)
        if class_row:
            return StudioClass.from_model(class_row)
        return None

    @strawberry.field(permission_classes=[IsAuthenticated])
    async def get_classes(self, info: Info, filters: GetClassesInput) -> ClassesResponse:
        """Classes in a date range with optional filters"""
        classes = await list_classes(
            info.context.db,
            filters.start_date,
            filters.end_date,
            trainer_id=filters.trainer_id,
            template_id=filters.template_id,
            status=filters.status,
            include_cancelled=filters.include_cancelled
        )
        class_list = [StudioClass.from_model(c) for c in classes]
        return ClassesResponse(classes=class_list, total_count=len(class_list))

    @strawberry.field(permission_classes=[IsAuthenticated])
    async def class_roster(
        self,
        info: Info,
        class_id: int,
        include_canceled: bool = False
    ) -> List[ClassRegistration]:
        """Members holding a seat in the class"""
        registrations = await list_registrations(info.context.db, class_id, include_canceled)
        return [ClassRegistration.from_model(r) for r in registrations]

    @strawberry.field(permission_classes=[IsAuthenticated])
    async def class_waitlist(
        self,
        info: Info,
        class_id: int,
        include_inactive: bool = False
    ) -> List[WaitlistEntry]:
        """Waiting members in position order"""
        entries = await list_waitlist(info.context.db, class_id, include_inactive)
        return [WaitlistEntry.from_model(e) for e in entries]

    @strawberry.field(permission_classes=[IsAuthenticated])
    async def class_capacity(self, info: Info, class_id: int) -> Optional[ClassCapacityInfo]:
        db = info.context.db
        class_row = await get_class(db, class_id)
        if class_row is None:
            return None
        return convert_capacity_info(await CapacityManager(db).capacity_info(class_row))

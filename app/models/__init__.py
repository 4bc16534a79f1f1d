# Studio scheduling models
from app.models.userModel import People, Role, PersonRole
from app.models.sessionModel import TrainingSession
from app.models.classModel import (
    ClassTemplate, ClassInstance, ClassRegistration, ClassWaitlist
)

__all__ = [
    "People", "Role", "PersonRole",
    "TrainingSession",
    "ClassTemplate", "ClassInstance", "ClassRegistration", "ClassWaitlist",
]

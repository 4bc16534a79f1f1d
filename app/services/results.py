"""
Outcome values returned by the scheduling services.

Conflicts and full classes are expected outcomes, so they are returned
as values alongside the success variants instead of being raised.
"""
from dataclasses import dataclass
from typing import Optional, Union

from app.models.classModel import ClassInstance, ClassRegistration, ClassWaitlist
from app.models.sessionModel import TrainingSession


@dataclass(frozen=True)
class NoConflict:
    pass


@dataclass(frozen=True)
class ConflictError:
    """The candidate slot overlaps an active slot of the trainer or member."""
    party: str  # "owner" or "subject"
    party_id: int
    conflicting_kind: str  # "session" or "class"
    conflicting_id: int

    @property
    def message(self) -> str:
        who = "Trainer" if self.party == "owner" else "Member"
        return (f"{who} {self.party_id} is already booked "
                f"({self.conflicting_kind} {self.conflicting_id})")


ConflictResult = Union[NoConflict, ConflictError]


@dataclass(frozen=True)
class SessionBooked:
    session: TrainingSession


@dataclass(frozen=True)
class ClassScheduled:
    class_instance: ClassInstance


@dataclass(frozen=True)
class Registered:
    registration: ClassRegistration


@dataclass(frozen=True)
class Waitlisted:
    entry: ClassWaitlist

    @property
    def position(self) -> int:
        return self.entry.position


@dataclass(frozen=True)
class CapacityExceededError:
    """Both the class and its waitlist are full."""
    class_id: int
    capacity: int
    waitlist_capacity: int

    @property
    def message(self) -> str:
        return f"Class {self.class_id} and its waitlist are full"


RegistrationResult = Union[Registered, Waitlisted, CapacityExceededError]


@dataclass(frozen=True)
class SessionCancelled:
    session: TrainingSession
    changed: bool


@dataclass(frozen=True)
class SeatCancelled:
    """A member gave up a seat or left the waitlist.

    ``promoted`` is the registration created for the first waiting member,
    if the freed seat went to the waitlist.
    """
    class_id: int
    member_id: int
    changed: bool
    registration: Optional[ClassRegistration] = None
    waitlist_entry: Optional[ClassWaitlist] = None
    promoted: Optional[ClassRegistration] = None


@dataclass(frozen=True)
class ClassCancelled:
    class_instance: ClassInstance
    changed: bool
    canceled_registrations: int = 0
    expired_waitlist_entries: int = 0

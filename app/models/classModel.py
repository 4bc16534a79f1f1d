"""
Group class scheduling, registration and waitlist models
"""
from datetime import datetime, date
from typing import Optional, List, TYPE_CHECKING
from sqlalchemy import (
    Date, DateTime, ForeignKey, Integer, BigInteger, String, Text,
    Boolean, CheckConstraint, Index, text
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import TIMESTAMP

from app.db.postgresql import Base, BigIntPK, utcnow

if TYPE_CHECKING:
    from app.models.userModel import People

REGISTRATION_REGISTERED = "registered"
REGISTRATION_ATTENDED = "attended"
REGISTRATION_CANCELED = "canceled"
# Registrations that hold a seat and are counted in current_capacity
SEAT_HOLDING_STATUSES = (REGISTRATION_REGISTERED, REGISTRATION_ATTENDED)

WAITLIST_WAITING = "waiting"
WAITLIST_NOTIFIED = "notified"
WAITLIST_EXPIRED = "expired"


class ClassTemplate(Base):
    """Recurring class definition used to generate class instances"""

    __tablename__ = "class_templates"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    trainer_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("people.id"), nullable=False)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    weekday: Mapped[int] = mapped_column(Integer, nullable=False)  # 0=Monday, 6=Sunday
    start_time: Mapped[str] = mapped_column(String(5), nullable=False)
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    capacity: Mapped[int] = mapped_column(Integer, nullable=False)
    waitlist_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    waitlist_capacity: Mapped[int] = mapped_column(Integer, nullable=False, default=5)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False, default=utcnow)

    classes: Mapped[List["ClassInstance"]] = relationship(back_populates="template")

    __table_args__ = (
        CheckConstraint("weekday BETWEEN 0 AND 6", name="ck_class_template_weekday"),
        CheckConstraint("capacity > 0", name="ck_class_template_capacity"),
        CheckConstraint("waitlist_capacity >= 0", name="ck_class_template_waitlist"),
    )


class ClassInstance(Base):
    """A single scheduled group class"""

    __tablename__ = "classes"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    template_id: Mapped[Optional[int]] = mapped_column(BigInteger, ForeignKey("class_templates.id"))
    trainer_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("people.id"), nullable=False)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    class_date: Mapped[date] = mapped_column(Date, nullable=False)
    start_time: Mapped[str] = mapped_column(String(5), nullable=False)
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    start_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    end_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    capacity: Mapped[int] = mapped_column(Integer, nullable=False)
    current_capacity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    waitlist_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    waitlist_capacity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="scheduled")
    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), default=utcnow, onupdate=utcnow)

    # Relationships
    template: Mapped[Optional["ClassTemplate"]] = relationship(back_populates="classes")
    trainer: Mapped["People"] = relationship(back_populates="taught_classes")
    registrations: Mapped[List["ClassRegistration"]] = relationship(back_populates="class_instance")
    waitlist: Mapped[List["ClassWaitlist"]] = relationship(back_populates="class_instance")

    @property
    def available_spots(self) -> int:
        return max(0, self.capacity - self.current_capacity)

    __table_args__ = (
        CheckConstraint("capacity > 0", name="ck_class_capacity"),
        CheckConstraint("current_capacity BETWEEN 0 AND capacity", name="ck_class_current_capacity"),
        CheckConstraint("waitlist_capacity >= 0", name="ck_class_waitlist_capacity"),
        CheckConstraint("end_at > start_at", name="ck_class_bounds"),
        CheckConstraint("status IN ('scheduled','completed','cancelled')", name="ck_class_status"),
        Index("idx_classes_trainer", "trainer_id", "start_at"),
        Index("idx_classes_template", "template_id", "class_date"),
    )


class ClassRegistration(Base):
    """A member's seat in a class"""

    __tablename__ = "class_registrations"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    class_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("classes.id"), nullable=False)
    member_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("people.id"), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=REGISTRATION_REGISTERED)
    registered_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False, default=utcnow)
    attended_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True))
    canceled_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True))

    class_instance: Mapped["ClassInstance"] = relationship(back_populates="registrations")
    member: Mapped["People"] = relationship(back_populates="class_registrations")

    __table_args__ = (
        CheckConstraint("status IN ('registered','attended','canceled')", name="ck_class_registration_status"),
        Index(
            "uq_class_registration_active", "class_id", "member_id", unique=True,
            postgresql_where=text("status IN ('registered','attended')"),
            sqlite_where=text("status IN ('registered','attended')"),
        ),
        Index("idx_class_registrations_member", "member_id", "status"),
    )


class ClassWaitlist(Base):
    """Ordered overflow queue for a full class"""

    __tablename__ = "class_waitlist"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    class_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("classes.id"), nullable=False)
    member_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("people.id"), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=WAITLIST_WAITING)
    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False, default=utcnow)
    notified_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True))

    class_instance: Mapped["ClassInstance"] = relationship(back_populates="waitlist")

    __table_args__ = (
        CheckConstraint("position > 0", name="ck_class_waitlist_position"),
        CheckConstraint("status IN ('waiting','notified','expired')", name="ck_class_waitlist_status"),
        Index(
            "uq_class_waitlist_waiting_member", "class_id", "member_id", unique=True,
            postgresql_where=text("status = 'waiting'"),
            sqlite_where=text("status = 'waiting'"),
        ),
        Index("idx_class_waitlist_position", "class_id", "status", "position"),
    )

"""
One-to-one personal training sessions
"""
from datetime import datetime, date
from typing import Optional, TYPE_CHECKING
from sqlalchemy import (
    Date, DateTime, ForeignKey, Integer, BigInteger, String, Text,
    CheckConstraint, Index
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import TIMESTAMP

from app.db.postgresql import Base, BigIntPK, utcnow

if TYPE_CHECKING:
    from app.models.userModel import People

SLOT_SCHEDULED = "scheduled"
SLOT_COMPLETED = "completed"
SLOT_CANCELLED = "cancelled"


class TrainingSession(Base):
    """A trainer booked with one member for a time slot"""

    __tablename__ = "training_sessions"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    trainer_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("people.id"), nullable=False)
    member_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("people.id"), nullable=False)
    session_date: Mapped[date] = mapped_column(Date, nullable=False)
    start_time: Mapped[str] = mapped_column(String(5), nullable=False)
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    # Studio wall-clock bounds, derived from date + start_time + duration
    start_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    end_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=SLOT_SCHEDULED)
    notes: Mapped[Optional[str]] = mapped_column(Text)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True))
    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), default=utcnow, onupdate=utcnow)

    # Relationships
    trainer: Mapped["People"] = relationship(back_populates="trainer_sessions", foreign_keys=[trainer_id])
    member: Mapped["People"] = relationship(back_populates="member_sessions", foreign_keys=[member_id])

    __table_args__ = (
        CheckConstraint("duration_minutes > 0", name="ck_training_session_duration"),
        CheckConstraint("end_at > start_at", name="ck_training_session_bounds"),
        CheckConstraint("status IN ('scheduled','completed','cancelled')", name="ck_training_session_status"),
        Index("idx_training_sessions_trainer", "trainer_id", "start_at"),
        Index("idx_training_sessions_member", "member_id", "start_at"),
    )

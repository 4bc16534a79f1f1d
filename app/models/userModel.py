"""
People and role models for the studio
"""
from datetime import datetime
from typing import Optional, List, TYPE_CHECKING
from sqlalchemy import ForeignKey, BigInteger, String, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import TIMESTAMP

from app.db.postgresql import Base, BigIntPK, utcnow

if TYPE_CHECKING:
    from app.models.sessionModel import TrainingSession
    from app.models.classModel import ClassInstance, ClassRegistration

ROLE_MEMBER = "member"
ROLE_TRAINER = "trainer"
ROLE_ADMIN = "admin"


class People(Base):
    """Unified people table for members, trainers and staff"""

    __tablename__ = "people"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    full_name: Mapped[Optional[str]] = mapped_column(String(200))
    email: Mapped[Optional[str]] = mapped_column(String(200))
    phone_number: Mapped[Optional[str]] = mapped_column(String(32))
    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False, default=utcnow)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True))

    # Relationships
    roles: Mapped[List["PersonRole"]] = relationship(back_populates="person")
    trainer_sessions: Mapped[List["TrainingSession"]] = relationship(
        back_populates="trainer",
        foreign_keys="TrainingSession.trainer_id"
    )
    member_sessions: Mapped[List["TrainingSession"]] = relationship(
        back_populates="member",
        foreign_keys="TrainingSession.member_id"
    )
    taught_classes: Mapped[List["ClassInstance"]] = relationship(back_populates="trainer")
    class_registrations: Mapped[List["ClassRegistration"]] = relationship(back_populates="member")

    __table_args__ = (
        Index("idx_people_email", "email", postgresql_where="email IS NOT NULL"),
    )


class Role(Base):
    """System roles (member, trainer, admin)"""

    __tablename__ = "roles"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    code: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(String(200))

    person_roles: Mapped[List["PersonRole"]] = relationship(back_populates="role")


class PersonRole(Base):
    """Many-to-many relationship between people and roles"""

    __tablename__ = "person_roles"

    person_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("people.id"), primary_key=True)
    role_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("roles.id"), primary_key=True)

    person: Mapped["People"] = relationship(back_populates="roles")
    role: Mapped["Role"] = relationship(back_populates="person_roles")

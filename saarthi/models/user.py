"""User and caregiver relationship models.

Two kinds of users talk to Saarthi:
- elderly users, who receive reminders, check-ins and symptom follow-ups
- caregivers ("child" users), who manage one or more elderly parents through
  proxy commands and receive daily reports
"""

from datetime import datetime
from enum import Enum

from sqlalchemy import Boolean, DateTime, Index, Integer, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from saarthi.models.base import Base, TimestampMixin, UUIDMixin


class UserType(str, Enum):
    """Account type."""

    ELDERLY = "elderly"
    CHILD = "child"


class CaregiverPermission(str, Enum):
    """What a caregiver may do on behalf of a parent."""

    VIEW_MEDICATIONS = "view_medications"
    MANAGE_MEDICATIONS = "manage_medications"
    VIEW_SYMPTOMS = "view_symptoms"
    VIEW_REPORTS = "view_reports"


DEFAULT_CAREGIVER_PERMISSIONS = [p.value for p in CaregiverPermission]


class User(Base, UUIDMixin, TimestampMixin):
    """A registered Saarthi user, keyed by normalized phone number."""

    __tablename__ = "users"

    phone_number: Mapped[str] = mapped_column(String(32), unique=True, nullable=False)
    user_type: Mapped[str] = mapped_column(
        String(20), nullable=False, default=UserType.ELDERLY.value
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    age: Mapped[int | None] = mapped_column(Integer, nullable=True)
    location: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Emergency contact (self sign-up) or the caregiver who created the account
    emergency_contact: Mapped[str | None] = mapped_column(String(32), nullable=True)
    emergency_contact_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    emergency_relationship: Mapped[str | None] = mapped_column(String(100), nullable=True)
    created_by: Mapped[str | None] = mapped_column(String(32), nullable=True)

    # interests, activities, health_conditions - used to personalize check-ins
    profile: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)

    check_ins_opt_out: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    last_interaction_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    __table_args__ = (Index("ix_users_user_type", "user_type"),)

    def __repr__(self) -> str:
        return f"<User(phone={self.phone_number}, type={self.user_type}, name='{self.name}')>"


class CaregiverRelationship(Base, UUIDMixin, TimestampMixin):
    """Links a caregiver (child) to an elderly parent."""

    __tablename__ = "caregiver_relationships"

    parent_phone: Mapped[str] = mapped_column(String(32), nullable=False)
    child_phone: Mapped[str] = mapped_column(String(32), nullable=False)
    relationship_type: Mapped[str | None] = mapped_column(String(100), nullable=True)
    permissions: Mapped[list] = mapped_column(
        JSONB, nullable=False, default=lambda: list(DEFAULT_CAREGIVER_PERMISSIONS)
    )

    __table_args__ = (
        Index("ix_caregiver_rel_child", "child_phone"),
        Index("ix_caregiver_rel_parent", "parent_phone"),
        Index("ix_caregiver_rel_pair", "child_phone", "parent_phone", unique=True),
    )

    def __repr__(self) -> str:
        return f"<CaregiverRelationship(child={self.child_phone}, parent={self.parent_phone})>"

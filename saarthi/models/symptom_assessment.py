"""Symptom assessment model - result of a completed symptom questionnaire.

An assessment stays `active` while daily follow-ups are being collected and becomes
`completed` when the user reports the symptom resolved (follow-up option 4).
"""

from datetime import datetime
from enum import Enum

from sqlalchemy import DateTime, Index, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from saarthi.models.base import Base, TimestampMixin, UUIDMixin


class AssessmentStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"


class FollowUpStatus(str, Enum):
    """How the user is feeling compared to the previous report."""

    IMPROVED = "improved"
    SAME = "same"
    WORSE = "worse"
    COMPLETED = "completed"


class SymptomAssessment(Base, UUIDMixin, TimestampMixin):
    __tablename__ = "symptom_assessments"

    user_phone: Mapped[str] = mapped_column(String(32), nullable=False)
    primary_symptom: Mapped[str] = mapped_column(String(255), nullable=False)
    answers: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
    assessment: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=AssessmentStatus.ACTIVE.value
    )
    # [{"date": iso, "status": FollowUpStatus, "notes": str | None}, ...]
    follow_ups: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
    last_follow_up_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    next_follow_up_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    __table_args__ = (
        Index("ix_assessments_user_status", "user_phone", "status"),
        Index("ix_assessments_next_follow_up", "status", "next_follow_up_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<SymptomAssessment(user={self.user_phone}, symptom='{self.primary_symptom}', "
            f"status={self.status}, follow_ups={len(self.follow_ups or [])})>"
        )

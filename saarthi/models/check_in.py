"""Wellness check-in and daily report models.

Check-in conversation states:
    initial → follow_up_1 → follow_up_2 → completed

A check-in is created `initial` and `is_active` when the scheduled question is sent.
Each reply either asks a follow-up or finalizes the conversation, which stores the
analysis and deactivates it. Completed check-ins feed the caregiver's daily report.
"""

from datetime import date, datetime
from enum import Enum

from sqlalchemy import Boolean, Date, DateTime, Index, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from saarthi.models.base import Base, TimestampMixin, UUIDMixin


class CheckInState(str, Enum):
    INITIAL = "initial"
    FOLLOW_UP_1 = "follow_up_1"
    FOLLOW_UP_2 = "follow_up_2"
    COMPLETED = "completed"


class CheckInTimeSlot(str, Enum):
    MORNING = "morning"
    MIDDAY = "midday"
    EVENING = "evening"


class CheckIn(Base, UUIDMixin, TimestampMixin):
    __tablename__ = "check_ins"

    user_phone: Mapped[str] = mapped_column(String(32), nullable=False)
    time_slot: Mapped[str] = mapped_column(String(20), nullable=False)
    question: Mapped[str] = mapped_column(Text, nullable=False)
    conversation_state: Mapped[str] = mapped_column(
        String(20), nullable=False, default=CheckInState.INITIAL.value
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # [{"role": "assistant" | "user", "content": str}, ...]
    conversation_history: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
    initial_analysis: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    analysis: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    sentiment: Mapped[str | None] = mapped_column(String(20), nullable=True)

    reported: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    report_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("ix_check_ins_user_active", "user_phone", "is_active"),
        Index("ix_check_ins_user_created", "user_phone", "created_at"),
    )

    @property
    def first_response(self) -> str | None:
        """The user's first reply, if any."""
        for message in self.conversation_history or []:
            if message.get("role") == "user":
                return message.get("content")
        return None

    def __repr__(self) -> str:
        return (
            f"<CheckIn(user={self.user_phone}, slot={self.time_slot}, "
            f"state={self.conversation_state}, active={self.is_active})>"
        )


class DailyReport(Base, UUIDMixin, TimestampMixin):
    """A daily summary sent to a caregiver about one elderly user."""

    __tablename__ = "daily_reports"

    report_key: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    elderly_phone: Mapped[str] = mapped_column(String(32), nullable=False)
    caregiver_phone: Mapped[str] = mapped_column(String(32), nullable=False)
    report_date: Mapped[date] = mapped_column(Date, nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    check_in_ids: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
    delivered: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    __table_args__ = (Index("ix_daily_reports_elderly_date", "elderly_phone", "report_date"),)

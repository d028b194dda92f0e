"""Medication and medication reminder models."""

from datetime import datetime
from enum import Enum

from sqlalchemy import Boolean, DateTime, Index, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from saarthi.models.base import Base, TimestampMixin, UUIDMixin


class Medication(Base, UUIDMixin, TimestampMixin):
    """A medication schedule for one user.

    `taken_times` and `missed_times` hold ISO-8601 timestamps of each response to a
    reminder; the history and daily-report views filter them by date.
    """

    __tablename__ = "medications"

    user_phone: Mapped[str] = mapped_column(String(32), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    dosage: Mapped[str | None] = mapped_column(String(100), nullable=True)
    time: Mapped[str] = mapped_column(String(20), nullable=False)  # "08:00 am"
    reminder_times: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
    frequency: Mapped[str] = mapped_column(String(100), nullable=False, default="daily")
    duration_days: Mapped[int | None] = mapped_column(Integer, nullable=True)  # None = ongoing
    start_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    added_by: Mapped[str | None] = mapped_column(String(32), nullable=True)

    taken_times: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
    missed_times: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)

    __table_args__ = (Index("ix_medications_user_phone", "user_phone"),)

    def __repr__(self) -> str:
        return f"<Medication(user={self.user_phone}, name='{self.name}', times={self.reminder_times})>"


class ReminderStatus(str, Enum):
    """Lifecycle of a sent reminder."""

    SENT = "sent"
    TAKEN = "taken"
    MISSED = "missed"
    POSTPONED = "postponed"
    SKIPPED = "skipped"  # User answered a competing conversation instead


class MedicationReminder(Base, UUIDMixin, TimestampMixin):
    """One reminder message sent to a user.

    An unresponded reminder younger than the response window is an active
    conversation and outranks every other dialog.
    """

    __tablename__ = "medication_reminders"

    user_phone: Mapped[str] = mapped_column(String(32), nullable=False)
    medicine: Mapped[str] = mapped_column(String(255), nullable=False)
    scheduled_time: Mapped[str | None] = mapped_column(String(20), nullable=True)
    responded: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ReminderStatus.SENT.value
    )
    conflict_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    message_sent: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    __table_args__ = (
        Index("ix_reminders_user_created", "user_phone", "created_at"),
        Index("ix_reminders_user_responded", "user_phone", "responded"),
    )

    def __repr__(self) -> str:
        return (
            f"<MedicationReminder(user={self.user_phone}, medicine='{self.medicine}', "
            f"responded={self.responded}, status={self.status})>"
        )

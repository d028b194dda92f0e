"""Read-only queries that tell the router which stored conversations are live.

Failures are logged and reported as "nothing active" so routing falls through to
the next stage instead of aborting the message.
"""

import logging
from datetime import datetime, timedelta, timezone
from uuid import UUID

from sqlalchemy import Executable, Result, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from saarthi.config import get_settings
from saarthi.models import (
    AssessmentStatus,
    CheckIn,
    MedicationReminder,
    SymptomAssessment,
)

logger = logging.getLogger(__name__)


class ConversationLookups:
    """Reminder, assessment and check-in queries used by the router and conflict detector."""

    def __init__(self, db: AsyncSession, response_window_minutes: int | None = None):
        self.db = db
        self.response_window = timedelta(
            minutes=response_window_minutes or get_settings().reminder_response_window_minutes
        )

    async def _savepoint_read(self, statement: Executable) -> Result:
        """Run a read inside a SAVEPOINT so a failure leaves the request transaction usable."""
        async with self.db.begin_nested():
            return await self.db.execute(statement)

    async def get_latest_unresponded_reminder(
        self, identity: str, now: datetime | None = None
    ) -> MedicationReminder | None:
        """Newest reminder still awaiting a yes/no inside the response window."""
        now = now or datetime.now(timezone.utc)
        try:
            result = await self._savepoint_read(
                select(MedicationReminder)
                .where(
                    MedicationReminder.user_phone == identity,
                    MedicationReminder.responded.is_(False),
                    MedicationReminder.created_at >= now - self.response_window,
                )
                .order_by(MedicationReminder.created_at.desc())
                .limit(1)
            )
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.warning(f"⚠️ Reminder lookup failed for {identity}: {e}")
            return None

    async def get_active_symptom_assessments(self, identity: str) -> list[SymptomAssessment]:
        try:
            result = await self._savepoint_read(
                select(SymptomAssessment)
                .where(
                    SymptomAssessment.user_phone == identity,
                    SymptomAssessment.status == AssessmentStatus.ACTIVE.value,
                )
                .order_by(SymptomAssessment.created_at.desc())
            )
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            logger.warning(f"⚠️ Assessment lookup failed for {identity}: {e}")
            return []

    async def get_active_check_in(self, identity: str) -> CheckIn | None:
        try:
            result = await self._savepoint_read(
                select(CheckIn)
                .where(CheckIn.user_phone == identity, CheckIn.is_active.is_(True))
                .order_by(CheckIn.created_at.desc())
                .limit(1)
            )
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.warning(f"⚠️ Check-in lookup failed for {identity}: {e}")
            return None

    async def get_reminder(self, reminder_id: str | None) -> MedicationReminder | None:
        """A specific reminder, e.g. one captured in a pending disambiguation."""
        if not reminder_id:
            return None
        try:
            result = await self._savepoint_read(
                select(MedicationReminder).where(MedicationReminder.id == UUID(reminder_id))
            )
            return result.scalar_one_or_none()
        except (SQLAlchemyError, ValueError) as e:
            logger.warning(f"⚠️ Reminder {reminder_id} lookup failed: {e}")
            return None

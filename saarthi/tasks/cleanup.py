"""Nightly pruning of traces and finished conversation rows."""

import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

from saarthi.models import CheckIn, FunctionTrace, MedicationReminder
from saarthi.tasks.celery_app import celery_app

logger = logging.getLogger(__name__)


async def prune_old_records(
    db: AsyncSession,
    trace_days: int,
    conversation_days: int,
    now: datetime | None = None,
) -> dict:
    """Delete old traces, reported check-ins and answered reminders.

    Active or unreported check-ins are kept whatever their age, so a daily report
    that failed to send can still pick them up. Caller commits.
    """
    now = now or datetime.now(timezone.utc)
    trace_cutoff = now - timedelta(days=trace_days)
    conversation_cutoff = now - timedelta(days=conversation_days)

    traces = await db.execute(delete(FunctionTrace).where(FunctionTrace.created_at < trace_cutoff))
    check_ins = await db.execute(
        delete(CheckIn).where(
            CheckIn.reported.is_(True),
            CheckIn.is_active.is_(False),
            CheckIn.created_at < conversation_cutoff,
        )
    )
    reminders = await db.execute(
        delete(MedicationReminder).where(
            MedicationReminder.responded.is_(True),
            MedicationReminder.created_at < conversation_cutoff,
        )
    )

    counts = {
        "function_traces": traces.rowcount,
        "check_ins": check_ins.rowcount,
        "medication_reminders": reminders.rowcount,
    }
    logger.info(
        f"🧹 Pruned {counts['function_traces']} trace(s) older than {trace_days} days, "
        f"{counts['check_ins']} reported check-in(s) and {counts['medication_reminders']} "
        f"answered reminder(s) older than {conversation_days} days"
    )
    return counts


@celery_app.task(name="saarthi.tasks.cleanup.prune_old_records")
def prune_old_records_task(
    trace_days: int | None = None, conversation_days: int | None = None
) -> dict:
    """
    Daily task bounding the traces, check-ins and reminders tables.

    Args:
        trace_days: Days of function traces to keep (default from settings)
        conversation_days: Days of reported check-ins and answered reminders to keep
    """
    import asyncio

    async def _prune():
        from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

        from saarthi.config import get_settings

        settings = get_settings()
        engine = create_async_engine(settings.async_database_url)
        session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

        try:
            async with session_factory() as db:
                counts = await prune_old_records(
                    db,
                    trace_days or settings.trace_retention_days,
                    conversation_days or settings.conversation_retention_days,
                )
                await db.commit()
        finally:
            await engine.dispose()
        return counts

    return asyncio.run(_prune())

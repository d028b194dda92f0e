"""Daily caregiver report tasks."""

import logging

from saarthi.tasks.celery_app import celery_app

logger = logging.getLogger(__name__)


@celery_app.task(name="saarthi.tasks.reports.send_daily_reports")
def send_daily_reports() -> dict:
    """
    Send each caregiver a report for every parent they look after.

    Runs once a day via Celery Beat. Each report covers the parent's unreported
    completed check-ins for today plus a medication summary, and is stored as a
    `DailyReport` before delivery.
    """
    import asyncio

    async def _send_reports():
        from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

        from saarthi.ai.client import OpenAIClient
        from saarthi.config import get_settings
        from saarthi.services import user as user_service
        from saarthi.services.check_in import CheckInService
        from saarthi.services.whatsapp import WhatsAppClient

        settings = get_settings()
        engine = create_async_engine(settings.async_database_url)
        session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

        sent_count = 0
        async with session_factory() as db:
            relationships = await user_service.list_relationships(db)
            parents_by_caregiver: dict[str, list[str]] = {}
            for relationship in relationships:
                parents_by_caregiver.setdefault(relationship.child_phone, []).append(
                    relationship.parent_phone
                )

            service = CheckInService(db, OpenAIClient())
            whatsapp = WhatsAppClient(mock_mode=not settings.twilio_account_sid)
            try:
                for caregiver_phone, parent_phones in parents_by_caregiver.items():
                    for parent_phone in parent_phones:
                        report = await service.build_daily_report(caregiver_phone, parent_phone)
                        report.delivered = await whatsapp.send_text_message(
                            caregiver_phone, report.content
                        )
                        await db.commit()
                        if report.delivered:
                            sent_count += 1
            except Exception as e:
                logger.error(f"Failed to send daily reports: {e}")
                await db.rollback()
            finally:
                await whatsapp.close()

        await engine.dispose()
        logger.info(
            f"📊 Sent {sent_count} daily report(s) to {len(parents_by_caregiver)} caregivers"
        )
        return {"caregivers": len(parents_by_caregiver), "sent": sent_count}

    return asyncio.run(_send_reports())

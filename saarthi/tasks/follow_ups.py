"""Symptom follow-up tasks."""

import logging

from saarthi.tasks.celery_app import celery_app

logger = logging.getLogger(__name__)


@celery_app.task(name="saarthi.tasks.follow_ups.send_symptom_follow_ups")
def send_symptom_follow_ups() -> dict:
    """
    Ask users with an active assessment how their symptom is progressing.

    Runs once a day via Celery Beat. Replies (1-4 or free text) are picked up by
    the follow-up dialog or the direct follow-up shortcut.
    """
    import asyncio

    async def _send_follow_ups():
        from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

        from saarthi.config import get_settings
        from saarthi.services import symptom_assessment as assessment_service
        from saarthi.services.whatsapp import WhatsAppClient

        settings = get_settings()
        engine = create_async_engine(settings.async_database_url)
        session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

        sent_count = 0
        async with session_factory() as db:
            assessments = await assessment_service.get_assessments_due_for_follow_up(db)

            whatsapp = WhatsAppClient(mock_mode=not settings.twilio_account_sid)
            try:
                for assessment in assessments:
                    message = assessment_service.follow_up_message(assessment)
                    if await whatsapp.send_text_message(assessment.user_phone, message):
                        sent_count += 1
            except Exception as e:
                logger.error(f"Failed to send symptom follow-ups: {e}")
            finally:
                await whatsapp.close()

        await engine.dispose()
        logger.info(f"🩺 Sent {sent_count}/{len(assessments)} symptom follow-ups")
        return {"due": len(assessments), "sent": sent_count}

    return asyncio.run(_send_follow_ups())

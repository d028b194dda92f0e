"""Scheduled wellness check-in tasks."""

import logging

from saarthi.tasks.celery_app import celery_app

logger = logging.getLogger(__name__)


@celery_app.task(name="saarthi.tasks.check_ins.send_scheduled_check_ins")
def send_scheduled_check_ins(time_slot: str) -> dict:
    """
    Open a check-in conversation with every elderly user who hasn't opted out.

    Args:
        time_slot: "morning", "midday" or "evening"

    Returns:
        Counts of users contacted and messages delivered
    """
    import asyncio

    async def _send_check_ins():
        from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

        from saarthi.ai.client import OpenAIClient
        from saarthi.config import get_settings
        from saarthi.services import user as user_service
        from saarthi.services.check_in import CheckInService
        from saarthi.services.tracing import (
            clear_trace_context,
            save_pending_traces,
            set_phone_number,
            start_trace_context,
        )
        from saarthi.services.whatsapp import WhatsAppClient

        settings = get_settings()
        engine = create_async_engine(settings.async_database_url)
        session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

        sent_count = 0
        start_trace_context()
        async with session_factory() as db:
            users = await user_service.list_check_in_recipients(db)
            service = CheckInService(db, OpenAIClient())

            whatsapp = WhatsAppClient(mock_mode=not settings.twilio_account_sid)
            try:
                for user in users:
                    set_phone_number(user.phone_number)
                    check_in = await service.start_check_in(user, time_slot)
                    await save_pending_traces(db)
                    # Commit before sending so a fast reply finds the active check-in
                    await db.commit()
                    if await whatsapp.send_text_message(user.phone_number, check_in.question):
                        sent_count += 1
            except Exception as e:
                logger.error(f"Failed to send {time_slot} check-ins: {e}")
                await db.rollback()
            finally:
                await whatsapp.close()
                clear_trace_context()

        await engine.dispose()
        logger.info(f"🌅 {time_slot} check-ins: {sent_count}/{len(users)} delivered")
        return {"time_slot": time_slot, "users": len(users), "sent": sent_count}

    return asyncio.run(_send_check_ins())

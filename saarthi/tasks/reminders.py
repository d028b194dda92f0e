"""Medication reminder tasks."""

import logging

from saarthi.tasks.celery_app import celery_app

logger = logging.getLogger(__name__)


@celery_app.task(name="saarthi.tasks.reminders.send_due_medication_reminders")
def send_due_medication_reminders() -> dict:
    """
    Periodic task to send reminders for medications due this minute.

    Runs every minute via Celery Beat. A medication is due when one of its
    reminder times equals the current local time and it has not ended.
    """
    # Import here to avoid circular imports and to get fresh db session
    import asyncio

    async def _send_due():
        from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

        from saarthi.config import get_settings
        from saarthi.services import medication as medication_service
        from saarthi.services.whatsapp import WhatsAppClient
        from saarthi.utils.dates import current_local_time_string

        settings = get_settings()
        engine = create_async_engine(settings.async_database_url)
        session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

        local_time = current_local_time_string()
        sent_count = 0

        async with session_factory() as db:
            medications = await medication_service.get_due_medications(db, local_time)
            if not medications:
                await engine.dispose()
                return {"time": local_time, "due": 0, "sent": 0}

            logger.info(f"⏰ {len(medications)} medication reminder(s) due at {local_time}")
            whatsapp = WhatsAppClient(mock_mode=not settings.twilio_account_sid)
            try:
                for medication in medications:
                    reminder = await medication_service.create_reminder(
                        db, medication.user_phone, medication.name, scheduled_time=local_time
                    )
                    try:
                        sent = await whatsapp.send_reminder_message(
                            medication.user_phone, medication.name
                        )
                    except Exception as e:
                        logger.error(f"Failed to send reminder for {medication.name}: {e}")
                        sent = False
                    reminder.message_sent = sent
                    if sent:
                        sent_count += 1
                await db.commit()
            finally:
                await whatsapp.close()

        await engine.dispose()
        return {"time": local_time, "due": len(medications), "sent": sent_count}

    return asyncio.run(_send_due())


@celery_app.task(name="saarthi.tasks.reminders.send_follow_up_reminder")
def send_follow_up_reminder(phone_number: str, medicine: str) -> dict:
    """
    Re-send a reminder the user postponed with "later".

    Args:
        phone_number: Normalized identity of the user
        medicine: Medicine name from the original reminder
    """
    import asyncio

    async def _send_follow_up():
        from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

        from saarthi.config import get_settings
        from saarthi.services import medication as medication_service
        from saarthi.services.whatsapp import WhatsAppClient

        settings = get_settings()
        engine = create_async_engine(settings.async_database_url)
        session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

        async with session_factory() as db:
            reminder = await medication_service.create_reminder(db, phone_number, medicine)

            whatsapp = WhatsAppClient(mock_mode=not settings.twilio_account_sid)
            try:
                reminder.message_sent = await whatsapp.send_reminder_message(
                    phone_number, medicine
                )
                logger.info(f"🔁 Follow-up reminder for {medicine} sent to {phone_number}")
            except Exception as e:
                logger.error(f"Failed to send follow-up reminder via WhatsApp: {e}")
                return {"success": False, "error": str(e)}
            finally:
                await whatsapp.close()

            await db.commit()

        await engine.dispose()
        return {"success": reminder.message_sent, "phone": phone_number}

    return asyncio.run(_send_follow_up())

"""WhatsApp webhook endpoints - receive messages from Twilio."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Form, status
from fastapi.responses import PlainTextResponse
from sqlalchemy.ext.asyncio import AsyncSession

from saarthi.api.deps import get_db, get_store
from saarthi.config import get_settings
from saarthi.services.message_router import MessageRouter
from saarthi.services.sessions import SessionStore
from saarthi.services.tracing import (
    clear_trace_context,
    save_pending_traces,
    start_trace_context,
)
from saarthi.services.whatsapp import WhatsAppClient
from saarthi.utils.text import normalize_identity

router = APIRouter(prefix="/webhooks", tags=["webhooks"])
logger = logging.getLogger(__name__)
settings = get_settings()


def _repair_sender(twilio_number: str) -> str:
    """Undo form decoding of the '+' in 'whatsapp:+919...' into a space.

    Args:
        twilio_number: Sender as posted, e.g. 'whatsapp:+919812345678'

    Returns:
        The sender with its '+' restored; the transport prefix is kept
    """
    prefix, sep, number = twilio_number.partition(":")
    if sep and number.startswith(" "):
        return f"{prefix}:+{number.strip()}"
    return twilio_number.strip()


@router.post("/whatsapp", status_code=status.HTTP_200_OK)
async def receive_twilio_webhook(
    db: Annotated[AsyncSession, Depends(get_db)],
    store: Annotated[SessionStore, Depends(get_store)],
    From: Annotated[str, Form()],
    Body: Annotated[str, Form()] = "",
    ProfileName: Annotated[str | None, Form()] = None,
    MessageSid: Annotated[str | None, Form()] = None,
    To: Annotated[str | None, Form()] = None,
    NumMedia: Annotated[str | None, Form()] = None,
) -> PlainTextResponse:
    """Receive incoming WhatsApp messages from Twilio.

    Twilio sends webhook data as form-encoded POST. Replies go out through the
    Messages API, so the response body is only a short status string.

    Args:
        From: Sender number (format: whatsapp:+919812345678)
        Body: Message content
        ProfileName: Sender's WhatsApp profile name
        MessageSid: Unique message identifier
        To: Recipient number (our Twilio number)
        NumMedia: Number of media attachments

    Returns:
        200 with the routing status, or 500 if routing failed
    """
    logger.info(
        f"\n{'='*80}\n"
        f"📬 TWILIO WEBHOOK RECEIVED\n"
        f"{'='*80}\n"
        f"  MessageSid: {MessageSid}\n"
        f"  From: {From}\n"
        f"  To: {To}\n"
        f"  Body: {Body}\n"
        f"  ProfileName: {ProfileName}\n"
        f"{'='*80}"
    )

    sender = _repair_sender(From)

    # Skip media-only messages
    if NumMedia and NumMedia.isdigit() and int(NumMedia) > 0 and not Body.strip():
        logger.info("Skipping media-only message (no text)")
        return PlainTextResponse(content="ignored")

    mock_mode = not settings.twilio_account_sid
    if mock_mode:
        logger.info("🔧 WhatsApp client in MOCK mode (no TWILIO credentials)")
    else:
        logger.info("✅ WhatsApp client in REAL mode")

    whatsapp_client = WhatsAppClient(mock_mode=mock_mode)
    start_trace_context(phone_number=normalize_identity(sender))
    try:
        message_router = MessageRouter(db=db, whatsapp_client=whatsapp_client, store=store)
        result = await message_router.route_message(sender, Body, profile_name=ProfileName)

        await save_pending_traces(db)
        await db.commit()

    except Exception as e:
        logger.error(f"❌ Error processing Twilio webhook: {e}", exc_info=True)
        return PlainTextResponse(
            content="error", status_code=status.HTTP_500_INTERNAL_SERVER_ERROR
        )

    finally:
        clear_trace_context()
        await whatsapp_client.close()

    if result["status"] == "error":
        return PlainTextResponse(
            content="error", status_code=status.HTTP_500_INTERNAL_SERVER_ERROR
        )
    return PlainTextResponse(content=result["status"] or "processed")


@router.get("/whatsapp/status", status_code=status.HTTP_200_OK)
async def webhook_status() -> dict[str, str]:
    """Health check endpoint for webhook configuration."""
    return {
        "status": "ok",
        "provider": "twilio",
        "whatsapp_number": settings.twilio_whatsapp_number or "not configured",
    }

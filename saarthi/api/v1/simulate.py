"""Simulation endpoints for testing message flows without real WhatsApp.

Only registered when APP_ENV != production.
"""

import logging
from typing import Annotated
from uuid import uuid4

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from saarthi.api.deps import get_db, get_store
from saarthi.schemas.simulate import SimulateMessageRequest, SimulateMessageResponse
from saarthi.services.message_router import MessageRouter
from saarthi.services.sessions import SessionStore
from saarthi.services.tracing import (
    clear_trace_context,
    save_pending_traces,
    start_trace_context,
)
from saarthi.services.whatsapp import WhatsAppClient
from saarthi.utils.text import normalize_identity

router = APIRouter(prefix="/simulate", tags=["simulate"])
logger = logging.getLogger(__name__)


@router.post("/message", response_model=SimulateMessageResponse)
async def simulate_message(
    request: SimulateMessageRequest,
    db: Annotated[AsyncSession, Depends(get_db)],
    store: Annotated[SessionStore, Depends(get_store)],
) -> SimulateMessageResponse:
    """Simulate an incoming WhatsApp message.

    Calls the same MessageRouter.route_message() as the real webhook,
    but with WhatsApp in mock mode so no real messages are sent.
    """
    message_id = f"sim_{uuid4().hex[:16]}"
    start_trace_context(phone_number=normalize_identity(request.sender_phone))
    whatsapp_client = WhatsAppClient(mock_mode=True)

    try:
        message_router = MessageRouter(db=db, whatsapp_client=whatsapp_client, store=store)

        result = await message_router.route_message(
            request.sender_phone,
            request.message_body,
            profile_name=request.sender_name,
        )

        await save_pending_traces(db)
        await db.commit()

        return SimulateMessageResponse(
            message_id=message_id,
            status=result.get("status") or "unknown",
            route=result.get("route"),
            response_text=result.get("response_text"),
            sent_messages=[m["body"] for m in whatsapp_client.sent_messages],
        )

    except Exception as e:
        logger.error(f"Simulation error: {e}", exc_info=True)
        raise

    finally:
        clear_trace_context()
        await whatsapp_client.close()

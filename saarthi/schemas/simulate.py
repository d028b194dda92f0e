"""Schemas for message simulation endpoints."""

from pydantic import BaseModel


class SimulateMessageRequest(BaseModel):
    """Request to simulate an incoming WhatsApp message."""

    sender_phone: str  # "+919812345678" or "whatsapp:+919812345678"
    message_body: str
    sender_name: str | None = None


class SimulateMessageResponse(BaseModel):
    """Response from simulating a message."""

    message_id: str
    status: str
    route: str | None = None
    response_text: str | None = None
    sent_messages: list[str] = []

"""WhatsApp API client - sends messages via Twilio."""

import asyncio
import logging
from typing import Any

import httpx

from saarthi.config import get_settings
from saarthi.services.tracing import traced
from saarthi.utils.text import format_reminder_message, split_message_into_chunks

logger = logging.getLogger(__name__)
settings = get_settings()


class WhatsAppClient:
    """Client for the Twilio WhatsApp API."""

    def __init__(self, mock_mode: bool = False):
        """Initialize WhatsApp client.

        Args:
            mock_mode: If True, log messages instead of calling Twilio
        """
        self.mock_mode = mock_mode
        self.base_url = "https://api.twilio.com/2010-04-01"
        self.account_sid = settings.twilio_account_sid
        self.auth_token = settings.twilio_auth_token
        self.from_number = settings.twilio_whatsapp_number
        self.chunk_limit = settings.message_chunk_limit
        self.chunk_size = settings.message_chunk_size
        self.chunk_delay = settings.message_chunk_delay_seconds
        self.client = httpx.AsyncClient(timeout=30.0)
        # Messages delivered in mock mode, newest last
        self.sent_messages: list[dict[str, str]] = []

    def _format_whatsapp_number(self, phone: str) -> str:
        """Add the whatsapp: prefix (and a leading +) Twilio expects."""
        if phone.startswith("whatsapp:"):
            return phone
        if not phone.startswith("+"):
            phone = f"+{phone}"
        return f"whatsapp:{phone}"

    @traced(trace_type="external_api", capture_args=["to"])
    async def send_text_message(self, to: str, message: str) -> bool:
        """Send a text message, splitting it when it exceeds the transport limit.

        Chunks are sent in order with a short delay and an "(i/n) " label.

        Args:
            to: Recipient's phone number (with or without whatsapp: prefix)
            message: Message content

        Returns:
            True if every part was accepted, False otherwise
        """
        if len(message) <= self.chunk_limit:
            return await self._deliver(to, message)

        chunks = split_message_into_chunks(message, self.chunk_size)
        logger.info(f"✂️ Splitting message to {to} into {len(chunks)} parts")

        for i, chunk in enumerate(chunks, start=1):
            if not await self._deliver(to, f"({i}/{len(chunks)}) {chunk}"):
                return False
            if i < len(chunks):
                await asyncio.sleep(self.chunk_delay)
        return True

    async def send_reminder_message(self, to: str, medicine: str) -> bool:
        return await self.send_text_message(to, format_reminder_message(medicine))

    async def _deliver(self, to: str, body: str) -> bool:
        if self.mock_mode:
            logger.info(
                f"📱 [MOCK] Sending WhatsApp message:\n"
                f"  To: {to}\n"
                f"  Message: {body}"
            )
            self.sent_messages.append({"to": to, "body": body})
            return True

        try:
            await self._send_via_twilio(to, body)
            return True
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"❌ Failed to deliver WhatsApp message to {to}: {e}")
            return False

    async def _send_via_twilio(self, to: str, message: str) -> dict[str, Any]:
        """POST one message to Twilio's Messages resource."""
        url = f"{self.base_url}/Accounts/{self.account_sid}/Messages.json"

        if not self.from_number:
            raise ValueError("Missing WhatsApp sender number")

        data = {
            "From": self._format_whatsapp_number(self.from_number),
            "To": self._format_whatsapp_number(to),
            "Body": message,
        }

        try:
            response = await self.client.post(
                url,
                data=data,
                auth=(self.account_sid, self.auth_token),
            )
            response.raise_for_status()
            result = response.json()
            logger.info(f"✅ Sent WhatsApp message via Twilio to {to} (SID: {result.get('sid')})")
            return result
        except httpx.HTTPError as e:
            logger.error(f"❌ Twilio rejected message to {to}: {e}")
            if isinstance(e, httpx.HTTPStatusError):
                logger.error(f"   Response: {e.response.text}")
            raise

    async def close(self) -> None:
        await self.client.aclose()
"""Pytest configuration and fixtures.

Routing tests run against an in-memory SessionStore, fake lookups and a mocked
database session, so no Postgres, Twilio or OpenAI access is needed.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from saarthi.models import User
from saarthi.services import medication as medication_service
from saarthi.services import user as user_service
from saarthi.services.message_router import MessageRouter
from saarthi.services.sessions import SessionStore
from saarthi.services.whatsapp import WhatsAppClient
from tests.helpers import FakeClock, FakeLookups, MockOpenAIClient, make_user


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(clock: FakeClock) -> SessionStore:
    """Fresh session store per test."""
    return SessionStore(clock=clock)


@pytest.fixture
def lookups() -> FakeLookups:
    return FakeLookups()


@pytest.fixture
def mock_ai() -> MockOpenAIClient:
    return MockOpenAIClient()


@pytest.fixture
def db() -> MagicMock:
    """Mocked AsyncSession: coroutine methods are AsyncMocks, add() is a plain mock."""
    return MagicMock(spec=AsyncSession)


@pytest.fixture
def mock_whatsapp_client() -> WhatsAppClient:
    """WhatsApp client in mock mode; delivered messages land in sent_messages."""
    client = WhatsAppClient(mock_mode=True)
    client.chunk_delay = 0
    return client


@pytest.fixture
def user() -> User:
    return make_user()


@pytest.fixture
def user_patches(user: User):
    """Patch user lookups so routing sees a registered elderly user."""
    with (
        patch.object(user_service, "get_user", AsyncMock(return_value=user)) as get_user,
        patch.object(user_service, "touch_last_interaction", AsyncMock()),
        patch.object(medication_service, "record_medication_response", AsyncMock()),
    ):
        yield get_user


@pytest.fixture
def router(db, mock_whatsapp_client, store, mock_ai, lookups, user_patches) -> MessageRouter:
    return MessageRouter(
        db=db,
        whatsapp_client=mock_whatsapp_client,
        store=store,
        ai=mock_ai,
        lookups=lookups,
    )

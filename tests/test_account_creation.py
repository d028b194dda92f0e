"""Tests for the account creation wizard."""

from unittest.mock import AsyncMock, patch

import pytest

from saarthi.models import UserType
from saarthi.services import user as user_service
from saarthi.services.account_creation import (
    ACCOUNT_TYPE_PROMPT,
    INVALID_AGE,
    INVALID_PHONE,
    AccountCreationHandler,
    is_valid_phone,
    parse_age,
)
from tests.helpers import PHONE

pytestmark = pytest.mark.asyncio

CONTACT = "+919900011122"


@pytest.fixture
def handler(db, store, mock_whatsapp_client) -> AccountCreationHandler:
    return AccountCreationHandler(db, store, mock_whatsapp_client)


@pytest.fixture
def user_writes():
    with (
        patch.object(user_service, "create_user", AsyncMock()) as create_user,
        patch.object(user_service, "create_relationship", AsyncMock()) as create_relationship,
        patch.object(user_service, "user_exists", AsyncMock(return_value=False)),
    ):
        yield create_user, create_relationship


async def answer(handler: AccountCreationHandler, *replies: str) -> list[str]:
    last: list[str] = []
    for reply in replies:
        last = await handler.continue_creation(PHONE, reply, profile_name="Meera")
    return last


async def test_parse_helpers():
    assert parse_age("72 years") == 72
    assert parse_age("0") is None
    assert parse_age("old") is None
    assert is_valid_phone(" +919900011122 ")
    assert not is_valid_phone("9900011122")


async def test_start_asks_account_type(handler, store):
    assert handler.start(PHONE) == [ACCOUNT_TYPE_PROMPT]
    assert store.account.get(PHONE).stage == "account_type"


async def test_self_sign_up(handler, store, user_writes, mock_whatsapp_client):
    create_user, create_relationship = user_writes
    handler.start(PHONE)

    [done] = await answer(
        handler, "1", "Asha Verma", "74", "Pune, Maharashtra", CONTACT, "Ravi", "son"
    )

    assert done.startswith("✅ Thank you, Asha Verma!")
    assert store.account.get(PHONE) is None
    create_user.assert_awaited_once()
    assert create_user.await_args.args[1:3] == (PHONE, UserType.ELDERLY)
    assert create_user.await_args.kwargs["emergency_contact"] == CONTACT
    create_relationship.assert_awaited_once_with(
        handler.db, parent_phone=PHONE, child_phone=CONTACT, relationship_type="son"
    )
    assert mock_whatsapp_client.sent_messages[0]["to"] == CONTACT


async def test_invalid_answers_keep_stage(handler, store, user_writes):
    handler.start(PHONE)

    assert await answer(handler, "1", "Asha", "abc") == [INVALID_AGE]
    assert store.account.get(PHONE).stage == "self_age"

    assert await answer(handler, "74", "Pune", "12345") == [INVALID_PHONE]
    assert store.account.get(PHONE).stage == "self_emergency_contact"


async def test_parent_sign_up_registers_caregiver(handler, store, user_writes):
    create_user, _ = user_writes
    handler.start(PHONE)

    [done] = await answer(
        handler, "2", "1", CONTACT, "Kamala", "80", "Chennai, Tamil Nadu", "daughter"
    )

    assert done.startswith("✅ Your parent's account has been created successfully!")
    created = [(call.args[1], call.args[2]) for call in create_user.await_args_list]
    assert created == [(CONTACT, UserType.ELDERLY), (PHONE, UserType.CHILD)]
    assert store.account.get(PHONE) is None


async def test_parent_number_already_registered(handler, store, user_writes):
    handler.start(PHONE)
    await answer(handler, "2", "2")

    with patch.object(user_service, "user_exists", AsyncMock(return_value=True)):
        [reply] = await answer(handler, CONTACT)

    assert reply.startswith("This phone number already has an account.")
    assert store.account.get(PHONE).stage == "parent_phone"


async def test_missing_session_restarts(handler, store):
    replies = await handler.continue_creation(PHONE, "hello")

    assert replies[-1] == ACCOUNT_TYPE_PROMPT
    assert store.account.get(PHONE) is not None

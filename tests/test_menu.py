"""Tests for the welcome message and menu selections."""

from unittest.mock import AsyncMock, patch

import pytest

from saarthi.models import Medication, UserType
from saarthi.services import medication as medication_service
from saarthi.services import user as user_service
from saarthi.services.medication_flows import ADD_PROMPTS, MedicationHandler
from saarthi.services.menu import (
    MAIN_MENU_TEXT,
    MEDICATION_MENU_OPTIONS,
    MEDICATION_MENU_TEXT,
    MenuHandler,
)
from saarthi.services.sessions import DialogType, MenuStage, WizardFlow
from saarthi.services.symptom_flows import SYMPTOM_PROMPT, SymptomHandler
from tests.helpers import PHONE, make_user

pytestmark = pytest.mark.asyncio


@pytest.fixture
def medication(db, store, mock_whatsapp_client, mock_ai, lookups) -> MedicationHandler:
    return MedicationHandler(db, store, mock_whatsapp_client, mock_ai, lookups)


@pytest.fixture
def menu(db, store, medication, mock_ai) -> MenuHandler:
    return MenuHandler(db, store, medication, SymptomHandler(db, store, mock_ai))


class TestWelcome:
    async def test_elderly_user(self, menu, store, user_patches):
        replies = await menu.welcome(PHONE, "Asha")

        assert replies[0].startswith("Hello Asha, welcome to Saarthi!")
        assert "for:[their number]" not in replies[0]
        assert replies[1] == MAIN_MENU_TEXT
        assert store.dialog.get(PHONE).stage == MenuStage.MAIN_MENU.value

    async def test_caregiver_gets_proxy_instructions(self, menu):
        with (
            patch.object(
                user_service,
                "get_user",
                AsyncMock(return_value=make_user(UserType.CHILD)),
            ),
            patch.object(
                user_service, "get_child_relationships", AsyncMock(return_value=[object()])
            ),
        ):
            replies = await menu.welcome(PHONE, None)

        assert replies[0].startswith("Hello User,")
        assert "managing accounts for 1 family member(s)" in replies[0]


class TestMainMenu:
    @pytest.mark.parametrize("reply", ["1", "symptom", "Check my symptoms"])
    async def test_symptom_choice(self, menu, store, reply):
        menu.show_main_menu(PHONE)

        assert await menu.handle_main_menu_selection(PHONE, reply) == [SYMPTOM_PROMPT]
        session = store.dialog.get(PHONE)
        assert session.type == DialogType.SYMPTOM
        assert session.stage == "primary"

    @pytest.mark.parametrize("reply", ["2", "medication", "Medicine"])
    async def test_medication_choice(self, menu, store, reply):
        menu.show_main_menu(PHONE)

        assert await menu.handle_main_menu_selection(PHONE, reply) == [MEDICATION_MENU_TEXT]
        assert store.dialog.get(PHONE).stage == MenuStage.MEDICATION_MENU.value

    async def test_other_reply_reprompts(self, menu, store):
        menu.show_main_menu(PHONE)

        replies = await menu.handle_main_menu_selection(PHONE, "3")

        assert replies == ["Please select either 1 for symptoms or 2 for medications."]
        assert store.dialog.get(PHONE).stage == MenuStage.MAIN_MENU.value


class TestMedicationMenu:
    async def test_add_starts_wizard(self, menu, store):
        replies = await menu.handle_medication_menu_selection(PHONE, "1")

        assert replies == [ADD_PROMPTS["name"]]
        assert store.dialog.get(PHONE) is None
        assert store.medication.get(PHONE).stage.flow == WizardFlow.ADD

    @pytest.mark.parametrize(
        "reply, expected",
        [
            ("2", "You don't have any medications to update. Type 'add medicine' to add one."),
            ("3", "You don't have any medications to delete."),
        ],
    )
    async def test_update_and_delete_without_medications(self, menu, store, reply, expected):
        with patch.object(
            medication_service, "get_user_medications", AsyncMock(return_value=[])
        ):
            replies = await menu.handle_medication_menu_selection(PHONE, reply)

        assert replies == [expected]
        assert store.medication.get(PHONE) is None

    async def test_info_lists_medications(self, menu, store):
        medications = [
            Medication(name="Aspirin", dosage="75mg"),
            Medication(name="Metformin", dosage=None),
        ]
        with patch.object(
            medication_service, "get_user_medications", AsyncMock(return_value=medications)
        ):
            replies = await menu.handle_medication_menu_selection(PHONE, "4")

        assert "1. Aspirin\n2. Metformin" in replies[0]
        session = store.dialog.get(PHONE)
        assert session.stage == MenuStage.MEDICATION_INFO_SELECTION.value
        assert session.data["medications"] == [
            {"name": "Aspirin", "dosage": "75mg"},
            {"name": "Metformin", "dosage": None},
        ]

    async def test_info_without_medications_stays_in_menu(self, menu, store):
        with patch.object(
            medication_service, "get_user_medications", AsyncMock(return_value=[])
        ):
            replies = await menu.handle_medication_menu_selection(PHONE, "4")

        assert replies[1] == MEDICATION_MENU_TEXT
        assert store.dialog.get(PHONE).stage == MenuStage.MEDICATION_MENU.value

    @pytest.mark.parametrize("reply, days", [("5", 7), ("6", None)])
    async def test_history_choices(self, menu, medication, reply, days):
        with patch.object(
            medication, "show_history", AsyncMock(return_value=["history"])
        ) as show_history:
            replies = await menu.handle_medication_menu_selection(PHONE, reply)

        assert replies == ["history"]
        show_history.assert_awaited_once_with(PHONE, last_n_days=days)

    async def test_back_returns_to_main_menu(self, menu, store):
        assert await menu.handle_medication_menu_selection(PHONE, "7") == [MAIN_MENU_TEXT]
        assert store.dialog.get(PHONE).stage == MenuStage.MAIN_MENU.value

    async def test_unknown_choice_repeats_options(self, menu):
        replies = await menu.handle_medication_menu_selection(PHONE, "9")

        assert replies[0].endswith(MEDICATION_MENU_OPTIONS)

"""Menu navigation - welcome, main menu and medication menu.

Menus are marked by a DialogSession with only `stage` set, so a numeric reply while a
menu is showing is read as a menu choice.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlalchemy.ext.asyncio import AsyncSession

from saarthi.models import UserType
from saarthi.services import medication as medication_service
from saarthi.services import user as user_service
from saarthi.services.sessions import DialogSession, MenuStage, SessionStore

if TYPE_CHECKING:
    from saarthi.services.medication_flows import MedicationHandler
    from saarthi.services.symptom_flows import SymptomHandler

logger = logging.getLogger(__name__)


MAIN_MENU_TEXT = """What would you like to do today?

1️⃣ Check symptoms
2️⃣ Manage medications

Please reply with the number of your choice."""

MEDICATION_MENU_OPTIONS = """1️⃣ Add a new medication
2️⃣ Update existing medication
3️⃣ Delete a medication
4️⃣ View medication information
5️⃣ Check medication history (last week)
6️⃣ Check all medication history
7️⃣ Back to main menu

Please reply with the number of your choice."""

MEDICATION_MENU_TEXT = (
    "*Medication Management* 💊\n\n"
    "What would you like to do with your medications?\n\n" + MEDICATION_MENU_OPTIONS
)


def main_menu(store: SessionStore, identity: str) -> str:
    """Mark the main menu as showing and return its text."""
    store.dialog.set(identity, DialogSession(stage=MenuStage.MAIN_MENU.value))
    return MAIN_MENU_TEXT


def medication_menu(store: SessionStore, identity: str) -> str:
    store.dialog.set(identity, DialogSession(stage=MenuStage.MEDICATION_MENU.value))
    return MEDICATION_MENU_TEXT


class MenuHandler:
    """Welcome message and menu selections."""

    def __init__(
        self,
        db: AsyncSession,
        store: SessionStore,
        medication: MedicationHandler,
        symptoms: SymptomHandler,
    ):
        self.db = db
        self.store = store
        self.medication = medication
        self.symptoms = symptoms

    async def welcome(self, identity: str, profile_name: str | None) -> list[str]:
        """Greeting (with proxy instructions for caregivers) followed by the main menu."""
        message = f"Hello {profile_name or 'User'}, welcome to Saarthi! 🌿\n"

        user = await user_service.get_user(self.db, identity)
        if user is not None and user.user_type == UserType.CHILD.value:
            relationships = await user_service.get_child_relationships(self.db, identity)
            if relationships:
                message += (
                    f"\nYou're managing accounts for {len(relationships)} family member(s).\n"
                    'To send commands on their behalf, start your message with "for:[their number]" '
                    "followed by your command.\n"
                    'Example: "for:+917XXXXXXXX check medications"\n\n'
                )

        message += (
            "I can assist with health tracking, symptom assessment, and medication reminders.\n"
            "Type 'symptom' if you're feeling unwell or 'add medicine' to set up reminders."
        )
        return [message, main_menu(self.store, identity)]

    def show_main_menu(self, identity: str) -> list[str]:
        return [main_menu(self.store, identity)]

    async def handle_main_menu_selection(self, identity: str, text: str) -> list[str]:
        choice = text.strip().lower()
        if choice == "1" or "symptom" in choice or "check" in choice:
            return self.symptoms.start(identity)
        if choice == "2" or "medication" in choice or "medicine" in choice:
            return [medication_menu(self.store, identity)]
        return ["Please select either 1 for symptoms or 2 for medications."]

    async def handle_medication_menu_selection(self, identity: str, text: str) -> list[str]:
        choice = text.strip().lower()
        if choice == "1" or "add" in choice:
            self.store.dialog.delete(identity)
            return self.medication.start_add(identity)
        if choice == "2" or "update" in choice:
            self.store.dialog.delete(identity)
            return await self.medication.start_update(identity)
        if choice == "3" or "delete" in choice:
            self.store.dialog.delete(identity)
            return await self.medication.start_delete(identity)
        if choice == "4" or "info" in choice:
            return await self.show_medication_info_list(identity)
        if choice == "5" or ("history" in choice and "week" in choice):
            self.store.dialog.delete(identity)
            return await self.medication.show_history(identity, last_n_days=7)
        if choice == "6" or ("all" in choice and "history" in choice):
            self.store.dialog.delete(identity)
            return await self.medication.show_history(identity, last_n_days=None)
        if choice == "7" or "back" in choice or "main" in choice:
            return self.show_main_menu(identity)

        return [
            "I'm not sure what you'd like to do with your medications. "
            "Please select one of the following options:\n\n" + MEDICATION_MENU_OPTIONS
        ]

    async def show_medication_info_list(self, identity: str) -> list[str]:
        medications = await medication_service.get_user_medications(self.db, identity)
        if not medications:
            return [
                "You don't have any medications set up yet. Type '1' to add a medication first.",
                medication_menu(self.store, identity),
            ]

        lines = [f"{i}. {m.name}" for i, m in enumerate(medications, start=1)]
        self.store.dialog.set(
            identity,
            DialogSession(
                stage=MenuStage.MEDICATION_INFO_SELECTION.value,
                data={
                    "medications": [{"name": m.name, "dosage": m.dosage} for m in medications]
                },
            ),
        )
        return [
            "Which medication would you like information about?\n\n"
            + "\n".join(lines)
            + "\n\nPlease reply with the number of your choice."
        ]

"""Medication dialogs - add/update/delete wizards and reminder responses.

Wizard position is a WizardStage (flow + step). Each continuation reads the step,
validates the reply, stores it in the session and asks the next question; invalid
input re-asks the same question without touching the session.
"""

import logging
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from saarthi.ai.client import OpenAIClient
from saarthi.ai.prompts import describe_medication
from saarthi.config import get_settings
from saarthi.models import Medication, MedicationReminder, ReminderStatus
from saarthi.services import medication as medication_service
from saarthi.services import user as user_service
from saarthi.services.lookups import ConversationLookups
from saarthi.services.medication_info import (
    get_medication_info,
    process_medication_info_request,
)
from saarthi.services.menu import main_menu
from saarthi.services.sessions import (
    DialogSession,
    MedicationWizardSession,
    SessionStore,
    WizardFlow,
    WizardStage,
)
from saarthi.services.tracing import traced
from saarthi.services.whatsapp import WhatsAppClient
from saarthi.utils.dates import is_valid_time, parse_duration_days
from saarthi.utils.text import is_affirmative_medication_response, parse_number_choice

logger = logging.getLogger(__name__)


FREQUENCY_CHOICES = {
    "1": "once daily",
    "2": "twice daily",
    "3": "three times daily",
    "4": "four times daily",
}

FREQUENCY_OPTIONS = (
    "1️⃣ Once daily\n"
    "2️⃣ Twice daily\n"
    "3️⃣ Three times daily\n"
    "4️⃣ Four times daily"
)

ADD_PROMPTS = {
    "name": "Please enter the medicine name:",
    "time": "At what time should I remind you? (Format: HH:MM AM/PM)",
    "dosage": "Please enter the dosage (e.g., '500mg') or type 'none' if not applicable:",
    "frequency": (
        "How many times per day do you need to take this medicine?\n\n"
        f"{FREQUENCY_OPTIONS}\n\n"
        "Reply with the number or specify a different frequency (e.g., '5 times a day'):"
    ),
    "duration": (
        "For how many days do you need to take this medicine? "
        "(Type a number or 'ongoing' for medications without an end date)"
    ),
}

INVALID_TIME = "Please enter a valid time (Format: HH:MM AM/PM), for example 08:30 AM."
INVALID_DURATION = "Please type a number of days, or 'ongoing'."
INVALID_SELECTION = "Please enter a valid number from the list."
SESSION_ERROR = "Sorry, there was an error with your request. Let's start again."
UNKNOWN_REMINDER = (
    "I'm not sure which medication you're referring to. Please specify the medicine name."
)


def schedule_follow_up_reminder(phone_number: str, medicine: str, delay_minutes: int) -> bool:
    """Queue a repeat reminder for a missed dose."""
    from saarthi.tasks.reminders import send_follow_up_reminder

    try:
        send_follow_up_reminder.apply_async(
            args=[phone_number, medicine], countdown=delay_minutes * 60
        )
    except Exception as e:
        logger.error(f"❌ Could not schedule follow-up reminder for {phone_number}: {e}")
        return False
    return True


def _frequency_from_reply(text: str) -> str:
    return FREQUENCY_CHOICES.get(text.strip(), text.strip())


def _is_same(text: str) -> bool:
    return text.strip().lower() == "same"


def _format_schedule(medication: Medication) -> str:
    times = medication.reminder_times or [medication.time]
    if len(times) > 1:
        times_line = f"*Times:* {', '.join(times)}"
    else:
        times_line = f"*Time:* {times[0]}"
    duration = (
        f"*Duration:* {medication.duration_days} days"
        if medication.duration_days
        else "*Duration:* Ongoing"
    )
    return (
        f"*Medicine:* {medication.name}\n"
        f"*Dosage:* {medication.dosage or 'Not specified'}\n"
        f"*Frequency:* {medication.frequency}\n"
        f"{times_line}\n"
        f"{duration}"
    )


class MedicationHandler:
    """Medication wizards, reminder responses, history and info."""

    def __init__(
        self,
        db: AsyncSession,
        store: SessionStore,
        whatsapp_client: WhatsAppClient,
        ai: OpenAIClient,
        lookups: ConversationLookups | None = None,
    ):
        self.db = db
        self.store = store
        self.whatsapp = whatsapp_client
        self.ai = ai
        self.lookups = lookups or ConversationLookups(db)
        self.settings = get_settings()

    def _session(self, identity: str) -> MedicationWizardSession | None:
        return self.store.medication.get(identity)

    def _advance(self, identity: str, session: MedicationWizardSession) -> WizardStage:
        """Move the session to its next step and return it."""
        next_stage = session.stage.next()
        session.stage = next_stage
        self.store.medication.set(identity, session)
        return next_stage

    def _restart(self, identity: str) -> list[str]:
        self.store.medication.delete(identity)
        return [SESSION_ERROR, main_menu(self.store, identity)]

    async def continue_wizard(self, identity: str, text: str) -> list[str]:
        """Dispatch a reply to whichever wizard is in progress."""
        session = self._session(identity)
        if session is None:
            return [SESSION_ERROR, main_menu(self.store, identity)]

        flow = session.stage.flow
        if flow == WizardFlow.ADD:
            return await self.continue_add(identity, text)
        if flow == WizardFlow.UPDATE:
            return await self.continue_update(identity, text)
        return await self.continue_delete(identity, text)

    # =========================================================================
    # Add
    # =========================================================================

    def start_add(
        self, identity: str, target_phone: str | None = None, is_proxy: bool = False
    ) -> list[str]:
        self.store.medication.set(
            identity,
            MedicationWizardSession(
                stage=WizardStage(flow=WizardFlow.ADD, step="name"),
                target_phone=target_phone,
                is_proxy=is_proxy,
            ),
        )
        return [ADD_PROMPTS["name"]]

    @traced(capture_args=["identity", "text"])
    async def continue_add(self, identity: str, text: str) -> list[str]:
        session = self._session(identity)
        if session is None or session.stage.flow != WizardFlow.ADD:
            return self._restart(identity)

        reply = text.strip()
        step = session.stage.step

        if step == "name":
            if not reply:
                return [ADD_PROMPTS["name"]]
            session.data["medicine"] = reply
        elif step == "time":
            if not is_valid_time(reply):
                return [INVALID_TIME]
            session.data["time"] = reply
        elif step == "dosage":
            session.data["dosage"] = None if reply.lower() == "none" else reply
        elif step == "frequency":
            session.data["frequency"] = _frequency_from_reply(reply)
        elif step == "duration":
            days = parse_duration_days(reply)
            if reply.lower() != "ongoing" and days is None:
                return [INVALID_DURATION]
            session.data["duration"] = days
            return await self._finish_add(identity, session)

        next_stage = self._advance(identity, session)
        return [ADD_PROMPTS[next_stage.step]]

    async def _finish_add(self, identity: str, session: MedicationWizardSession) -> list[str]:
        data = session.data
        if "medicine" not in data or "time" not in data:
            return self._restart(identity)

        owner = session.target_phone or identity
        try:
            medication = await medication_service.add_medication(
                self.db,
                owner,
                name=data["medicine"],
                time=data["time"],
                dosage=data.get("dosage"),
                frequency=data.get("frequency") or "once daily",
                duration=data.get("duration"),
                added_by=identity if session.is_proxy else None,
            )
        except SQLAlchemyError as e:
            logger.error(f"❌ Failed to add medication for {owner}: {e}", exc_info=True)
            await self.db.rollback()
            self.store.medication.delete(identity)
            return [
                "❌ Sorry, there was an error adding your medication. Please try again later.",
                main_menu(self.store, identity),
            ]

        self.store.medication.delete(identity)

        message = "✅ Medication added successfully!\n\n" + _format_schedule(medication)
        if session.is_proxy:
            message += f"\n\nThe medication has been added for {owner}."
            await self._notify_parent_of_addition(owner, identity, medication)

        return [message, main_menu(self.store, identity)]

    async def _notify_parent_of_addition(
        self, parent_phone: str, caregiver_phone: str, medication: Medication
    ) -> None:
        caregiver = await user_service.get_user(self.db, caregiver_phone)
        proxy_name = caregiver.name if caregiver and caregiver.name else "Your caregiver"
        await self.whatsapp.send_text_message(
            parent_phone,
            f"{proxy_name} has added a new medication for you: {medication.name} "
            f"({medication.dosage or 'No dosage specified'}) at {medication.time}",
        )

    # =========================================================================
    # Update
    # =========================================================================

    async def start_update(self, identity: str) -> list[str]:
        medications = await medication_service.get_user_medications(self.db, identity)
        if not medications:
            return [
                "You don't have any medications to update. Type 'add medicine' to add one."
            ]

        lines = [f"{i}. {describe_medication(m)}" for i, m in enumerate(medications, start=1)]
        self.store.medication.set(
            identity,
            MedicationWizardSession(
                stage=WizardStage(flow=WizardFlow.UPDATE, step="start"),
                data={"medication_ids": [str(m.id) for m in medications]},
            ),
        )
        return ["Which medication would you like to update?\n\n" + "\n".join(lines)]

    @traced(capture_args=["identity", "text"])
    async def continue_update(self, identity: str, text: str) -> list[str]:
        session = self._session(identity)
        if session is None or session.stage.flow != WizardFlow.UPDATE:
            return self._restart(identity)

        reply = text.strip()
        data = session.data
        step = session.stage.step

        if step == "start":
            ids = data.get("medication_ids") or []
            number = parse_number_choice(reply)
            if number is None or not 1 <= number <= len(ids):
                return [INVALID_SELECTION]
            medication = await medication_service.get_medication(self.db, ids[number - 1])
            if medication is None:
                return self._restart(identity)
            data["medication_id"] = str(medication.id)
            data["current"] = {
                "name": medication.name,
                "dosage": medication.dosage,
                "time": medication.time,
                "frequency": medication.frequency,
                "duration_days": medication.duration_days,
            }
            self._advance(identity, session)
            return [
                f"You selected: {medication.name}\n\n"
                "Please enter the new name for this medication "
                "(or type 'same' to keep it the same):"
            ]

        current: dict[str, Any] | None = data.get("current")
        if current is None:
            return self._restart(identity)

        if step == "name":
            data["name"] = current["name"] if _is_same(reply) else reply
            self._advance(identity, session)
            dosage = current["dosage"] or "none"
            return [
                f"Please enter the dosage for {data['name']} "
                f"(e.g., \"500mg\" or type 'same' to keep \"{dosage}\"):"
            ]

        if step == "dosage":
            if _is_same(reply):
                data["dosage"] = current["dosage"]
            else:
                data["dosage"] = None if reply.lower() == "none" else reply
            self._advance(identity, session)
            return [
                f"Current reminder time is {current['time']}. Please enter the new time "
                "(Format: HH:MM AM/PM) or type 'same' to keep it the same:"
            ]

        if step == "time":
            if _is_same(reply):
                data["time"] = current["time"]
            elif is_valid_time(reply):
                data["time"] = reply
            else:
                return [INVALID_TIME]
            self._advance(identity, session)
            return [
                f"Current frequency is \"{current['frequency']}\". "
                "How many times per day should this medicine be taken?\n\n"
                f"{FREQUENCY_OPTIONS}\n\n"
                "Reply with the number, specify a different frequency, "
                "or type 'same' to keep it the same:"
            ]

        if step == "frequency":
            data["frequency"] = (
                current["frequency"] if _is_same(reply) else _frequency_from_reply(reply)
            )
            self._advance(identity, session)
            days = current["duration_days"]
            current_duration = f"{days} days" if days else "ongoing (no end date)"
            return [
                f"Current duration is {current_duration}. For how many days should this "
                "medicine be taken? (Type a number, 'ongoing' for medications without an "
                "end date, or 'same' to keep it the same)"
            ]

        # duration
        if _is_same(reply):
            data["duration_days"] = current["duration_days"]
        elif reply.lower() == "ongoing":
            data["duration_days"] = None
        elif parse_duration_days(reply) is not None:
            data["duration_days"] = parse_duration_days(reply)
        else:
            return [INVALID_DURATION]
        return await self._finish_update(identity, session)

    async def _finish_update(self, identity: str, session: MedicationWizardSession) -> list[str]:
        data = session.data
        self.store.medication.delete(identity)

        medication = await medication_service.get_medication(self.db, data["medication_id"])
        if medication is None:
            return [SESSION_ERROR, main_menu(self.store, identity)]

        try:
            medication = await medication_service.update_medication(
                self.db,
                medication,
                name=data["name"],
                dosage=data["dosage"],
                time=data["time"],
                frequency=data["frequency"],
                duration_days=data["duration_days"],
            )
        except SQLAlchemyError as e:
            logger.error(f"❌ Failed to update medication for {identity}: {e}", exc_info=True)
            await self.db.rollback()
            return [
                "❌ Sorry, there was an error updating your medication. Please try again later.",
                main_menu(self.store, identity),
            ]

        return [
            "✅ Medication updated successfully!\n\n" + _format_schedule(medication),
            main_menu(self.store, identity),
        ]

    # =========================================================================
    # Delete
    # =========================================================================

    async def start_delete(self, identity: str) -> list[str]:
        medications = await medication_service.get_user_medications(self.db, identity)
        if not medications:
            return ["You don't have any medications to delete."]

        lines = [f"{i}. {describe_medication(m)}" for i, m in enumerate(medications, start=1)]
        self.store.medication.set(
            identity,
            MedicationWizardSession(
                stage=WizardStage(flow=WizardFlow.DELETE, step="select"),
                data={"medication_ids": [str(m.id) for m in medications]},
            ),
        )
        return [
            "Which medication would you like to delete?\n\n"
            + "\n".join(lines)
            + "\n\nPlease reply with the number of your choice."
        ]

    @traced(capture_args=["identity", "text"])
    async def continue_delete(self, identity: str, text: str) -> list[str]:
        session = self._session(identity)
        if session is None or session.stage.flow != WizardFlow.DELETE:
            return self._restart(identity)

        reply = text.strip()
        data = session.data

        if session.stage.step == "select":
            ids = data.get("medication_ids") or []
            number = parse_number_choice(reply)
            if number is None or not 1 <= number <= len(ids):
                return [INVALID_SELECTION]
            medication = await medication_service.get_medication(self.db, ids[number - 1])
            if medication is None:
                return self._restart(identity)
            data["medication_id"] = str(medication.id)
            data["medicine"] = medication.name
            self._advance(identity, session)
            return [
                f"Are you sure you want to delete *{medication.name}*?\n\n"
                "This will also delete all reminders for this medication.\n\n"
                "Reply with *Yes* to confirm or *No* to cancel."
            ]

        if "medication_id" not in data:
            return self._restart(identity)

        self.store.medication.delete(identity)
        if reply.lower() not in ("yes", "y"):
            return [
                "Deletion cancelled. Your medication has not been changed.",
                main_menu(self.store, identity),
            ]

        medication = await medication_service.get_medication(self.db, data["medication_id"])
        try:
            if medication is None:
                raise LookupError(data["medication_id"])
            await medication_service.delete_medication(self.db, medication)
        except (SQLAlchemyError, LookupError) as e:
            logger.error(f"❌ Failed to delete medication for {identity}: {e}")
            await self.db.rollback()
            return [
                "❌ Sorry, there was an error deleting the medication. Please try again later.",
                main_menu(self.store, identity),
            ]

        return [
            f"✅ The medication *{data['medicine']}* has been deleted successfully.",
            main_menu(self.store, identity),
        ]

    # =========================================================================
    # Reminder responses
    # =========================================================================

    async def handle_medication_response(
        self,
        identity: str,
        text: str,
        reminder: MedicationReminder | None = None,
    ) -> list[str]:
        """Route yes/taken to taken, no/missed to missed."""
        if is_affirmative_medication_response(text):
            return await self.handle_taken(identity, reminder)
        return await self.handle_missed(identity, reminder)

    @traced(capture_args=["identity"])
    async def handle_taken(
        self, identity: str, reminder: MedicationReminder | None = None
    ) -> list[str]:
        reminder = reminder or await self.lookups.get_latest_unresponded_reminder(identity)
        if reminder is None:
            return [UNKNOWN_REMINDER]

        medicine = reminder.medicine
        try:
            await medication_service.set_reminder_status(self.db, reminder, ReminderStatus.TAKEN)
            await medication_service.record_medication_response(
                self.db, identity, medicine, taken=True
            )
        except SQLAlchemyError as e:
            logger.error(f"❌ Failed to mark {medicine} taken for {identity}: {e}")
            await self.db.rollback()
            return [
                f"⚠️ Sorry, I couldn't mark {medicine} as taken. "
                "Please try again later."
            ]

        logger.info(f"✅ {identity} took {medicine}")
        return [f"✅ Great! I've marked *{medicine}* as taken."]

    @traced(capture_args=["identity"])
    async def handle_missed(
        self, identity: str, reminder: MedicationReminder | None = None
    ) -> list[str]:
        reminder = reminder or await self.lookups.get_latest_unresponded_reminder(identity)
        if reminder is None:
            return [UNKNOWN_REMINDER]

        medicine = reminder.medicine
        try:
            await medication_service.set_reminder_status(self.db, reminder, ReminderStatus.MISSED)
            await medication_service.record_medication_response(
                self.db, identity, medicine, taken=False
            )
        except SQLAlchemyError as e:
            logger.error(f"❌ Failed to mark {medicine} missed for {identity}: {e}")
            await self.db.rollback()
            return [
                "⚠️ Sorry, I couldn't process your response. "
                "I'll still remind you again later."
            ]

        delay = self.settings.follow_up_reminder_delay_minutes
        schedule_follow_up_reminder(identity, medicine, delay)
        logger.info(f"❗ {identity} missed {medicine}, follow-up in {delay} min")
        return [
            f"❗ No problem! I'll remind you to take *{medicine}* again in {delay} minutes."
        ]

    # =========================================================================
    # History and info
    # =========================================================================

    async def show_history(self, identity: str, last_n_days: int | None = None) -> list[str]:
        logger.info(f"📋 Medication history for {identity}, last {last_n_days or 'all'} days")
        medications = await medication_service.get_user_medications(self.db, identity)
        if not medications:
            return [
                "You don't have any medications set up yet. Type 'add medicine' to add one."
            ]

        history = await medication_service.get_medication_history(
            self.db, identity, last_n_days
        )
        if history.strip() == medication_service.history_header(identity).strip():
            return [
                f"You have {len(medications)} medications set up, but no history of taking "
                "them has been recorded yet.\n\n"
                "Your medication history will be displayed here once you start responding "
                "to medication reminders."
            ]
        return [history.rstrip()]

    async def handle_info_selection(self, identity: str, text: str) -> list[str]:
        session: DialogSession | None = self.store.dialog.get(identity)
        medications = (session.data.get("medications") if session else None) or []

        number = parse_number_choice(text)
        if number is None or not 1 <= number <= len(medications):
            return [INVALID_SELECTION]

        selected = medications[number - 1]
        self.store.dialog.delete(identity)
        info = await get_medication_info(self.ai, selected["name"], selected.get("dosage"))
        return [info, main_menu(self.store, identity)]

    async def handle_info_request(self, identity: str, text: str) -> list[str] | None:
        """Answer a free-text medication question; None when the text isn't one."""
        medications = await medication_service.get_user_medications(self.db, identity)
        info = await process_medication_info_request(self.ai, text, medications)
        return [info] if info else None

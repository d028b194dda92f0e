"""Conversation conflict detection and disambiguation.

Several subsystems talk to the same person independently: scheduled medication
reminders, symptom tracking, proactive wellness check-ins and the interactive
menus/wizards. When more than one of them is waiting for an answer, an inbound
message is ambiguous. This module:

1. Detects every live conversation for an identity and ranks it by a fixed priority.
2. Auto-attributes the message when its shape is unambiguous (a yes/no while a
   reminder is pending).
3. Otherwise produces the options and the numbered question to ask the user.

Detection is recomputed on every message because any source can change between
messages (a check-in can fire in the middle of a wizard).
"""

import logging

from saarthi.models import CheckIn, MedicationReminder
from saarthi.schemas.conversation import (
    ActiveConversation,
    ConflictResult,
    ConflictType,
    ConversationKind,
    Resolution,
)
from saarthi.services.lookups import ConversationLookups
from saarthi.services.sessions import (
    AccountCreationSession,
    DialogSession,
    DialogType,
    MedicationWizardSession,
    SessionStore,
)
from saarthi.services.tracing import traced
from saarthi.utils.text import is_medication_response, parse_number_choice

logger = logging.getLogger(__name__)


# Higher wins
CONVERSATION_PRIORITIES: dict[ConversationKind, int] = {
    ConversationKind.MEDICATION_REMINDER: 100,
    ConversationKind.SYMPTOM_EMERGENCY: 90,
    ConversationKind.CHECK_IN_RESPONSE: 80,
    ConversationKind.SYMPTOM_ASSESSMENT: 70,
    ConversationKind.MEDICATION_MANAGEMENT: 60,
    ConversationKind.ACCOUNT_CREATION: 50,
    ConversationKind.MENU_NAVIGATION: 40,
    ConversationKind.GENERAL_QUERY: 10,
}

OPTION_LABELS = {
    ConversationKind.MENU_NAVIGATION: "Menu selection",
    ConversationKind.SYMPTOM_ASSESSMENT: "Symptom assessment",
}


def _record(kind: ConversationKind, description: str, payload: dict) -> ActiveConversation:
    return ActiveConversation(
        kind=kind,
        priority=CONVERSATION_PRIORITIES[kind],
        description=description,
        payload=payload,
    )


def account_conversation(session: AccountCreationSession) -> ActiveConversation:
    return _record(
        ConversationKind.ACCOUNT_CREATION,
        f"Account creation (stage: {session.stage})",
        session.model_dump(mode="json"),
    )


def dialog_conversation(session: DialogSession) -> ActiveConversation:
    """Classify a general dialog session."""
    payload = session.model_dump(mode="json", exclude={"options"})
    if session.type == DialogType.SYMPTOM:
        return _record(
            ConversationKind.SYMPTOM_ASSESSMENT,
            f"Symptom assessment (stage: {session.stage})",
            payload,
        )
    if session.type == DialogType.FOLLOW_UP:
        return _record(
            ConversationKind.SYMPTOM_ASSESSMENT,
            f"Symptom follow-up (stage: {session.stage})",
            payload,
        )
    if session.is_menu:
        return _record(
            ConversationKind.MENU_NAVIGATION,
            f"Menu navigation ({session.stage})",
            payload,
        )
    return _record(ConversationKind.GENERAL_QUERY, "Unknown conversation", payload)


def medication_conversation(session: MedicationWizardSession) -> ActiveConversation:
    return _record(
        ConversationKind.MEDICATION_MANAGEMENT,
        f"Medication management (stage: {session.stage})",
        session.model_dump(mode="json"),
    )


def check_in_conversation(check_in: CheckIn) -> ActiveConversation:
    return _record(
        ConversationKind.CHECK_IN_RESPONSE,
        f"Check-in (state: {check_in.conversation_state})",
        {
            "id": str(check_in.id),
            "conversation_state": check_in.conversation_state,
            "time_slot": check_in.time_slot,
        },
    )


def reminder_conversation(reminder: MedicationReminder) -> ActiveConversation:
    return _record(
        ConversationKind.MEDICATION_REMINDER,
        f"Medication reminder ({reminder.medicine})",
        {
            "id": str(reminder.id),
            "medicine": reminder.medicine,
            "created_at": reminder.created_at.isoformat() if reminder.created_at else None,
        },
    )


@traced(capture_args=["keys"])
async def detect_conversation_conflicts(
    keys: list[str],
    store: SessionStore,
    lookups: ConversationLookups,
) -> ConflictResult:
    """Enumerate live conversations for an identity, highest priority first.

    Args:
        keys: Identity keys, normalized form first
        store: Session store
        lookups: Reminder / check-in lookups

    Returns:
        ConflictResult with has_conflict set when two or more are live
    """
    identity = keys[0]
    found: dict[ConversationKind, ActiveConversation] = {}

    def add(conversation: ActiveConversation) -> None:
        # Normalized key is read first, so it wins over a raw-key duplicate
        found.setdefault(conversation.kind, conversation)

    for key in keys:
        account = store.account.get(key)
        if account is not None:
            add(account_conversation(account))

        dialog = store.dialog.get(key)
        if dialog is not None and not dialog.is_disambiguation:
            add(dialog_conversation(dialog))

        wizard = store.medication.get(key)
        if wizard is not None:
            add(medication_conversation(wizard))

    check_in = await lookups.get_active_check_in(identity)
    if check_in is not None:
        add(check_in_conversation(check_in))

    reminder = await lookups.get_latest_unresponded_reminder(identity)
    if reminder is not None and not reminder.responded:
        add(reminder_conversation(reminder))

    active = sorted(found.values(), key=lambda c: c.priority, reverse=True)
    result = ConflictResult(active_conversations=active, has_conflict=len(active) > 1)

    if result.has_conflict:
        logger.info(
            f"⚖️ Conflict for {identity}: "
            + ", ".join(c.kind.value for c in result.active_conversations)
        )
    return result


def resolve_disambiguation(message_text: str, conflict: ConflictResult) -> Resolution:
    """Decide whether a message can be attributed without asking.

    Rules, first match wins:
    1. No conflict: proceed with the only (or no) conversation.
    2. yes/no/taken/missed with a reminder pending: the reminder.
    3. A bare number while exactly a menu and a symptom dialog are live: ask
       between those two.
    4. Anything else still conflicted: ask between all of them.
    """
    conversations = conflict.active_conversations

    if not conflict.has_conflict:
        return Resolution(
            needs_disambiguation=False,
            target_conversation=conversations[0] if conversations else None,
        )

    reminder = conflict.find(ConversationKind.MEDICATION_REMINDER)
    if reminder is not None and is_medication_response(message_text):
        return Resolution(needs_disambiguation=False, target_conversation=reminder)

    if parse_number_choice(message_text) is not None:
        menu = conflict.find(ConversationKind.MENU_NAVIGATION)
        symptom = conflict.find(ConversationKind.SYMPTOM_ASSESSMENT)
        # With a third conversation live the general question is safer
        if menu is not None and symptom is not None and len(conversations) == 2:
            return Resolution(
                needs_disambiguation=True,
                conflict_type=ConflictType.MENU_VS_SYMPTOM,
                options=[c for c in conversations if c.kind in OPTION_LABELS],
            )

    return Resolution(
        needs_disambiguation=True,
        conflict_type=ConflictType.GENERAL,
        options=list(conversations),
    )


def reminder_vs_check_in_options(
    reminder: MedicationReminder, check_in: CheckIn
) -> list[ActiveConversation]:
    return [reminder_conversation(reminder), check_in_conversation(check_in)]


def build_disambiguation_prompt(
    conflict_type: ConflictType | None, options: list[ActiveConversation]
) -> str:
    """Numbered (1-based) question for a pending disambiguation."""
    if conflict_type == ConflictType.REMINDER_VS_CHECKIN:
        medicine = options[0].payload.get("medicine", "your medicine")
        return (
            "I noticed you have both a medication reminder and an active check-in "
            "conversation. Which one are you responding to?\n\n"
            f"1️⃣ Medication reminder ({medicine})\n"
            "2️⃣ Check-in conversation\n\n"
            "Please reply with 1 or 2."
        )

    if conflict_type == ConflictType.MENU_VS_SYMPTOM:
        lines = [
            f"{i}. {OPTION_LABELS.get(option.kind, option.description)}"
            for i, option in enumerate(options, start=1)
        ]
        return (
            "I noticed you sent a number, but you have both a menu selection and a "
            "symptom assessment in progress. What are you responding to?\n\n"
            + "\n".join(lines)
            + f"\n\nPlease reply with {' or '.join(str(i) for i in range(1, len(options) + 1))}."
        )

    lines = [f"{i}. {option.description}" for i, option in enumerate(options, start=1)]
    return (
        "I noticed you have multiple conversations active. What are you responding to?\n\n"
        + "\n".join(lines)
        + "\n\nPlease reply with the number of your choice."
    )


def parse_choice(message_text: str, options: list[ActiveConversation]) -> ActiveConversation | None:
    """The option picked by a 1-based numeric reply, or None if invalid."""
    number = parse_number_choice(message_text)
    if number is None or not 1 <= number <= len(options):
        return None
    return options[number - 1]


def invalid_choice_message(session: DialogSession) -> str:
    return (
        f"Please select a valid option between 1 and {len(session.options)}.\n\n"
        + build_disambiguation_prompt(session.conflict_type, session.options)
    )

"""Tests for conflict detection, resolution and the disambiguation prompt."""

from itertools import permutations

import pytest

from saarthi.schemas.conversation import ConflictResult, ConflictType, ConversationKind
from saarthi.services.conversation_conflicts import (
    CONVERSATION_PRIORITIES,
    build_disambiguation_prompt,
    detect_conversation_conflicts,
    dialog_conversation,
    invalid_choice_message,
    parse_choice,
    reminder_conversation,
    reminder_vs_check_in_options,
    resolve_disambiguation,
)
from saarthi.services.sessions import (
    AccountCreationSession,
    DialogSession,
    DialogType,
    MedicationWizardSession,
    MenuStage,
    WizardStage,
)
from tests.helpers import PHONE, RAW_PHONE, make_check_in, make_reminder

KEYS = [PHONE, RAW_PHONE]


def _menu() -> DialogSession:
    return DialogSession(stage=MenuStage.MAIN_MENU.value)


def _symptom() -> DialogSession:
    return DialogSession(type=DialogType.SYMPTOM, stage="follow_up")


def _wizard() -> MedicationWizardSession:
    return MedicationWizardSession(stage=WizardStage.parse("update_dosage"))


class TestPriorities:
    def test_reminder_highest_general_query_lowest(self):
        ranked = sorted(CONVERSATION_PRIORITIES, key=CONVERSATION_PRIORITIES.get, reverse=True)
        assert ranked[0] == ConversationKind.MEDICATION_REMINDER
        assert ranked[-1] == ConversationKind.GENERAL_QUERY

    def test_priorities_are_distinct(self):
        values = list(CONVERSATION_PRIORITIES.values())
        assert len(values) == len(set(values))


class TestDetect:
    @pytest.mark.asyncio
    async def test_nothing_active(self, store, lookups):
        result = await detect_conversation_conflicts(KEYS, store, lookups)
        assert result.active_conversations == []
        assert not result.has_conflict

    @pytest.mark.asyncio
    async def test_single_conversation_is_not_a_conflict(self, store, lookups):
        store.medication.set(PHONE, _wizard())
        result = await detect_conversation_conflicts(KEYS, store, lookups)
        assert [c.kind for c in result.active_conversations] == [
            ConversationKind.MEDICATION_MANAGEMENT
        ]
        assert not result.has_conflict

    @pytest.mark.asyncio
    async def test_ranks_every_source(self, store, lookups):
        store.account.set(PHONE, AccountCreationSession())
        store.dialog.set(PHONE, _symptom())
        store.medication.set(PHONE, _wizard())
        lookups.check_in = make_check_in()
        lookups.add_reminder(make_reminder())

        result = await detect_conversation_conflicts(KEYS, store, lookups)

        assert result.has_conflict
        assert [c.kind for c in result.active_conversations] == [
            ConversationKind.MEDICATION_REMINDER,
            ConversationKind.CHECK_IN_RESPONSE,
            ConversationKind.SYMPTOM_ASSESSMENT,
            ConversationKind.MEDICATION_MANAGEMENT,
            ConversationKind.ACCOUNT_CREATION,
        ]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("order", list(permutations(["account", "dialog", "medication"])))
    async def test_order_independent_of_insertion(self, store, lookups, order):
        sessions = {
            "account": AccountCreationSession(),
            "dialog": DialogSession(stage="unknown_stage"),
            "medication": _wizard(),
        }
        for kind in order:
            getattr(store, kind).set(PHONE, sessions[kind])
        lookups.add_reminder(make_reminder())

        result = await detect_conversation_conflicts(KEYS, store, lookups)

        kinds = [c.kind for c in result.active_conversations]
        assert kinds[0] == ConversationKind.MEDICATION_REMINDER
        assert kinds[-1] == ConversationKind.GENERAL_QUERY
        priorities = [c.priority for c in result.active_conversations]
        assert priorities == sorted(priorities, reverse=True)

    @pytest.mark.asyncio
    async def test_reads_raw_and_normalized_keys(self, store, lookups):
        store.dialog.set(PHONE, _menu())
        store.dialog.set(RAW_PHONE, _symptom())

        result = await detect_conversation_conflicts(KEYS, store, lookups)

        assert [c.kind for c in result.active_conversations] == [
            ConversationKind.SYMPTOM_ASSESSMENT,
            ConversationKind.MENU_NAVIGATION,
        ]

    @pytest.mark.asyncio
    async def test_normalized_key_wins_for_same_kind(self, store, lookups):
        store.medication.set(PHONE, _wizard())
        store.medication.set(
            RAW_PHONE, MedicationWizardSession(stage=WizardStage.parse("add_name"))
        )

        result = await detect_conversation_conflicts(KEYS, store, lookups)

        assert len(result.active_conversations) == 1
        assert "update_dosage" in result.active_conversations[0].description

    @pytest.mark.asyncio
    async def test_pending_disambiguation_is_not_a_conversation(self, store, lookups):
        store.dialog.set(PHONE, DialogSession(type=DialogType.DISAMBIGUATION))
        result = await detect_conversation_conflicts(KEYS, store, lookups)
        assert result.active_conversations == []

    @pytest.mark.asyncio
    async def test_responded_reminder_is_ignored(self, store, lookups):
        reminder = make_reminder()
        reminder.responded = True
        lookups.add_reminder(reminder)
        result = await detect_conversation_conflicts(KEYS, store, lookups)
        assert result.active_conversations == []

    def test_follow_up_dialog_counts_as_symptom_assessment(self):
        conversation = dialog_conversation(DialogSession(type=DialogType.FOLLOW_UP, stage="status"))
        assert conversation.kind == ConversationKind.SYMPTOM_ASSESSMENT


def _conflict(*conversations) -> ConflictResult:
    active = sorted(conversations, key=lambda c: c.priority, reverse=True)
    return ConflictResult(active_conversations=active, has_conflict=len(active) > 1)


class TestResolve:
    def test_no_conflict_targets_only_conversation(self):
        menu = dialog_conversation(_menu())
        resolution = resolve_disambiguation("2", _conflict(menu))
        assert not resolution.needs_disambiguation
        assert resolution.target_conversation == menu

    def test_no_conversations(self):
        resolution = resolve_disambiguation("hello", _conflict())
        assert not resolution.needs_disambiguation
        assert resolution.target_conversation is None

    @pytest.mark.parametrize("text", ["yes", "No", "taken", "missed"])
    def test_yes_no_goes_to_pending_reminder(self, text):
        reminder = reminder_conversation(make_reminder())
        symptom = dialog_conversation(_symptom())
        resolution = resolve_disambiguation(text, _conflict(reminder, symptom))
        assert not resolution.needs_disambiguation
        assert resolution.target_conversation == reminder

    def test_menu_vs_symptom_for_bare_number(self):
        menu = dialog_conversation(_menu())
        symptom = dialog_conversation(_symptom())
        resolution = resolve_disambiguation("2", _conflict(menu, symptom))
        assert resolution.needs_disambiguation
        assert resolution.conflict_type == ConflictType.MENU_VS_SYMPTOM
        assert [o.kind for o in resolution.options] == [
            ConversationKind.SYMPTOM_ASSESSMENT,
            ConversationKind.MENU_NAVIGATION,
        ]

    def test_third_conversation_falls_back_to_general(self):
        menu = dialog_conversation(_menu())
        symptom = dialog_conversation(_symptom())
        check_in = reminder_vs_check_in_options(make_reminder(), make_check_in())[1]
        resolution = resolve_disambiguation("2", _conflict(menu, symptom, check_in))
        assert resolution.conflict_type == ConflictType.GENERAL
        assert len(resolution.options) == 3

    def test_free_text_asks_between_all(self):
        menu = dialog_conversation(_menu())
        symptom = dialog_conversation(_symptom())
        resolution = resolve_disambiguation("my head hurts", _conflict(menu, symptom))
        assert resolution.needs_disambiguation
        assert resolution.conflict_type == ConflictType.GENERAL
        assert len(resolution.options) == 2


class TestPrompt:
    def test_reminder_vs_check_in_names_medicine(self):
        options = reminder_vs_check_in_options(make_reminder("Metformin"), make_check_in())
        prompt = build_disambiguation_prompt(ConflictType.REMINDER_VS_CHECKIN, options)
        assert "1️⃣ Medication reminder (Metformin)" in prompt
        assert "2️⃣ Check-in conversation" in prompt

    def test_menu_vs_symptom_labels(self):
        options = [dialog_conversation(_symptom()), dialog_conversation(_menu())]
        prompt = build_disambiguation_prompt(ConflictType.MENU_VS_SYMPTOM, options)
        assert "1. Symptom assessment" in prompt
        assert "2. Menu selection" in prompt
        assert "Please reply with 1 or 2." in prompt

    def test_general_lists_descriptions(self):
        options = [dialog_conversation(_symptom()), dialog_conversation(_menu())]
        prompt = build_disambiguation_prompt(ConflictType.GENERAL, options)
        assert "1. Symptom assessment (stage: follow_up)" in prompt
        assert "2. Menu navigation (main_menu)" in prompt


class TestParseChoice:
    OPTIONS = [dialog_conversation(_symptom()), dialog_conversation(_menu())]

    def test_one_based(self):
        assert parse_choice("1", self.OPTIONS) == self.OPTIONS[0]
        assert parse_choice(" 2 ", self.OPTIONS) == self.OPTIONS[1]

    @pytest.mark.parametrize("text", ["0", "3", "9", "abc", ""])
    def test_invalid(self, text):
        assert parse_choice(text, self.OPTIONS) is None

    def test_invalid_choice_message_repeats_prompt(self):
        session = DialogSession(
            type=DialogType.DISAMBIGUATION,
            options=self.OPTIONS,
            conflict_type=ConflictType.GENERAL,
        )
        message = invalid_choice_message(session)
        assert message.startswith("Please select a valid option between 1 and 2.")
        assert "multiple conversations active" in message

"""Tests for the wellness check-in conversation."""

from datetime import date
from unittest.mock import AsyncMock, patch

import pytest

from saarthi.models import CheckInState
from saarthi.services import medication as medication_service
from saarthi.services import user as user_service
from saarthi.services.check_in import (
    FALLBACK_QUESTIONS,
    NO_ACTIVE_CHECK_IN,
    CheckInService,
    follow_up_focus,
    has_urgent_concerns,
    needs_follow_up,
    needs_second_follow_up,
)
from tests.helpers import PHONE, POSITIVE_ANALYSIS, make_check_in, make_user

CONCERNING = {
    "sentiment": "negative",
    "activities": [],
    "wellbeing": {"physical": "concerning", "emotional": "fair", "social": "good"},
    "concerns": ["knee pain"],
}


class TestAnalysisRules:
    def test_positive_answer_needs_no_follow_up(self):
        assert needs_follow_up(POSITIVE_ANALYSIS) is False

    @pytest.mark.parametrize(
        "change",
        [
            {"sentiment": "neutral"},
            {"concerns": ["lonely"]},
            {"wellbeing": {"physical": "fair", "emotional": "good", "social": "good"}},
        ],
    )
    def test_anything_less_needs_follow_up(self, change):
        assert needs_follow_up({**POSITIVE_ANALYSIS, **change}) is True

    def test_second_follow_up_for_pain_or_short_reply(self):
        assert needs_second_follow_up(CONCERNING, "It has been hurting all week long") is True
        assert needs_second_follow_up(POSITIVE_ANALYSIS, "fine") is True
        assert needs_second_follow_up(POSITIVE_ANALYSIS, "I went for a long walk today") is False

    def test_follow_up_focus_prefers_physical(self):
        assert follow_up_focus(CONCERNING) == "physical_wellbeing"
        assert follow_up_focus({**POSITIVE_ANALYSIS, "concerns": ["bills"]}) == "expressed_concerns"
        assert follow_up_focus(POSITIVE_ANALYSIS) == "general_wellbeing"

    def test_urgent_concerns(self):
        assert has_urgent_concerns({"concerns": ["Severe chest pain"]}) is True
        assert has_urgent_concerns(CONCERNING) is False


@pytest.fixture
def service(db, mock_ai, lookups) -> CheckInService:
    return CheckInService(db, mock_ai, lookups)


@pytest.fixture
def get_user():
    with patch.object(user_service, "get_user", AsyncMock(return_value=make_user())) as mocked:
        yield mocked


class TestConversation:
    @pytest.mark.asyncio
    async def test_no_active_check_in(self, service):
        result = await service.process_check_in_response(PHONE, "hello")

        assert result.success is False
        assert result.follow_up == NO_ACTIVE_CHECK_IN

    @pytest.mark.asyncio
    async def test_positive_reply_completes(self, service, lookups, mock_ai, get_user):
        check_in = make_check_in()
        lookups.check_in = check_in
        mock_ai.queue_text("Wonderful, Asha! 💙")

        result = await service.process_check_in_response(PHONE, "Slept like a baby, thank you")

        assert result.success is True
        assert result.conversation_complete is True
        assert result.follow_up == "Wonderful, Asha! 💙"
        assert check_in.conversation_state == CheckInState.COMPLETED.value
        assert check_in.is_active is False
        assert check_in.sentiment == "positive"
        assert check_in.completed_at is not None
        assert [m["role"] for m in check_in.conversation_history] == [
            "assistant",
            "user",
            "assistant",
        ]

    @pytest.mark.asyncio
    async def test_concerning_reply_runs_two_follow_ups(
        self, service, lookups, mock_ai, get_user
    ):
        check_in = make_check_in()
        lookups.check_in = check_in

        mock_ai.queue_json(CONCERNING)
        mock_ai.queue_text("I'm sorry to hear that. Is your knee worse today?")
        first = await service.process_check_in_response(PHONE, "My knee hurts")
        assert first.conversation_complete is False
        assert check_in.conversation_state == CheckInState.FOLLOW_UP_1.value
        assert check_in.initial_analysis == CONCERNING

        mock_ai.queue_json(CONCERNING)
        mock_ai.queue_text("Have you been able to rest it?")
        second = await service.process_check_in_response(PHONE, "yes worse")
        assert second.follow_up == "Have you been able to rest it?"
        assert check_in.conversation_state == CheckInState.FOLLOW_UP_2.value

        mock_ai.queue_json(CONCERNING)
        mock_ai.queue_text("Please rest, Asha. I'll let your family know. 💙")
        third = await service.process_check_in_response(PHONE, "a little")
        assert third.conversation_complete is True
        assert check_in.conversation_state == CheckInState.COMPLETED.value
        assert check_in.sentiment == "negative"

    @pytest.mark.asyncio
    async def test_detailed_follow_up_answer_completes_early(
        self, service, lookups, mock_ai, get_user
    ):
        check_in = make_check_in(CheckInState.FOLLOW_UP_1)
        check_in.initial_analysis = {**POSITIVE_ANALYSIS, "sentiment": "neutral"}
        lookups.check_in = check_in

        result = await service.process_check_in_response(
            PHONE, "I had a quiet afternoon reading with my granddaughter"
        )

        assert result.conversation_complete is True
        assert check_in.is_active is False


class TestStartAndReport:
    @pytest.mark.asyncio
    async def test_start_check_in_closes_stale_one(self, service, db, mock_ai):
        mock_ai.queue_text("Good morning Asha! Did you sleep well?")

        with patch.object(service, "get_recent_check_ins", AsyncMock(return_value=[])):
            check_in = await service.start_check_in(make_user(), "morning")

        db.execute.assert_awaited_once()
        db.add.assert_called_once_with(check_in)
        assert check_in.question == "Good morning Asha! Did you sleep well?"
        assert check_in.conversation_state == CheckInState.INITIAL.value
        assert check_in.conversation_history == [
            {"role": "assistant", "content": "Good morning Asha! Did you sleep well?"}
        ]

    @pytest.mark.asyncio
    async def test_question_falls_back_to_template(self, service, mock_ai):
        with (
            patch.object(service, "get_recent_check_ins", AsyncMock(return_value=[])),
            patch.object(mock_ai, "generate_text", AsyncMock(side_effect=ValueError("empty"))),
        ):
            question = await service.generate_check_in_question(make_user(), "evening")

        assert question == FALLBACK_QUESTIONS["evening"].format(name="Asha")

    @pytest.mark.asyncio
    async def test_report_without_check_ins(self, service, get_user):
        with patch.object(
            medication_service,
            "get_medication_summary",
            AsyncMock(return_value="💊 All doses taken today."),
        ):
            report = await service.generate_daily_report(PHONE, date(2026, 1, 15), check_ins=[])

        assert report.startswith("*Daily Report for Asha*")
        assert report.endswith("💊 All doses taken today.")

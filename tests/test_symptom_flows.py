"""Tests for the symptom questionnaire and daily follow-ups."""

from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy.exc import SQLAlchemyError

from saarthi.ai.prompts import FOLLOW_UP_DISCLAIMER
from saarthi.models import AssessmentStatus, FollowUpStatus, SymptomAssessment
from saarthi.services import symptom_assessment as assessment_service
from saarthi.services.menu import MAIN_MENU_TEXT
from saarthi.services.sessions import DialogSession, DialogType, MenuStage
from saarthi.services.symptom_flows import (
    FOLLOW_UP_COMPLETE,
    FOLLOW_UP_CONTINUES,
    FOLLOW_UP_NOTICE,
    NO_ACTIVE_ASSESSMENTS,
    SYMPTOM_PROMPT,
    SYMPTOM_RESTART,
    FollowUpHandler,
    SymptomHandler,
)
from tests.helpers import PHONE, make_assessment


class TestClassifyFollowUpResponse:
    @pytest.mark.parametrize(
        "reply, expected",
        [
            ("1", FollowUpStatus.IMPROVED),
            ("2", FollowUpStatus.SAME),
            ("3", FollowUpStatus.WORSE),
            ("4", FollowUpStatus.COMPLETED),
        ],
    )
    def test_numbers(self, reply, expected):
        assert assessment_service.classify_follow_up_response(reply) == (expected, None)

    @pytest.mark.parametrize(
        "reply, expected",
        [
            ("Feeling much better", FollowUpStatus.IMPROVED),
            ("unchanged really", FollowUpStatus.SAME),
            ("It got worse overnight", FollowUpStatus.WORSE),
            ("done with this", FollowUpStatus.COMPLETED),
        ],
    )
    def test_keywords(self, reply, expected):
        assert assessment_service.classify_follow_up_response(reply) == (expected, None)

    def test_other_text_is_kept_as_notes(self):
        assert assessment_service.classify_follow_up_response("a bit dizzy") == (
            FollowUpStatus.SAME,
            "a bit dizzy",
        )


@pytest.fixture
def symptoms(db, store, mock_ai) -> SymptomHandler:
    return SymptomHandler(db, store, mock_ai)


@pytest.fixture
def follow_ups(db, store, mock_ai, lookups) -> FollowUpHandler:
    return FollowUpHandler(db, store, mock_ai, lookups)


def last_question_session() -> DialogSession:
    """A questionnaire waiting on its third answer."""
    return DialogSession(
        type=DialogType.SYMPTOM,
        stage="follow_up",
        data={
            "primary_symptom": "cough",
            "question_number": 3,
            "answers": [
                {"question": "How long?", "answer": "2 days"},
                {"question": "Any fever?", "answer": "No"},
            ],
            "current_question": {"question": "How severe?", "options": None},
        },
    )


@pytest.mark.asyncio
class TestSymptomHandler:
    async def test_start_asks_for_primary_symptom(self, symptoms, store):
        assert symptoms.start(PHONE) == [SYMPTOM_PROMPT]
        session = store.dialog.get(PHONE)
        assert session.type == DialogType.SYMPTOM
        assert session.stage == "primary"

    async def test_primary_symptom_gets_first_question(self, symptoms, store, mock_ai):
        symptoms.start(PHONE)
        mock_ai.queue_text("How long have you had it?\n1. Since today\n2. A few days")

        replies = await symptoms.continue_assessment(PHONE, "headache")

        assert replies == [
            "How long have you had it?\n\n"
            "1️⃣ Since today\n"
            "2️⃣ A few days\n"
            "\nPlease reply with the number of your answer."
        ]
        data = store.dialog.get(PHONE).data
        assert data["primary_symptom"] == "headache"
        assert data["question_number"] == 1

    async def test_three_questions_then_saved_assessment(self, symptoms, store, db, mock_ai):
        symptoms.start(PHONE)
        mock_ai.queue_text("How long have you had it?\n1. Since today\n2. A few days")
        mock_ai.queue_text("Do you have a fever?")
        mock_ai.queue_text("How bad is the pain?\n1. Mild\n2. Severe")
        mock_ai.queue_text("Likely a tension headache. Rest and drink water.")

        await symptoms.continue_assessment(PHONE, "headache")
        second = await symptoms.continue_assessment(PHONE, "2")
        third = await symptoms.continue_assessment(PHONE, "no fever")
        final = await symptoms.continue_assessment(PHONE, "1")

        assert second == ["Do you have a fever?\n\nPlease describe in a few words."]
        assert third[0].startswith("How bad is the pain?")
        assert final == [
            "Likely a tension headache. Rest and drink water.",
            FOLLOW_UP_NOTICE,
            MAIN_MENU_TEXT,
        ]

        saved = db.add.call_args.args[0]
        assert isinstance(saved, SymptomAssessment)
        assert saved.user_phone == PHONE
        assert saved.primary_symptom == "headache"
        assert saved.status == AssessmentStatus.ACTIVE.value
        assert saved.next_follow_up_at is not None
        assert [a["answer"] for a in saved.answers] == ["A few days", "no fever", "Mild"]
        db.flush.assert_awaited()
        assert store.dialog.get(PHONE).stage == MenuStage.MAIN_MENU.value

    async def test_failed_save_still_shows_assessment(self, symptoms, store, db, mock_ai):
        store.dialog.set(PHONE, last_question_session())
        db.flush.side_effect = SQLAlchemyError("disk full")
        mock_ai.queue_text("Rest and drink water.")

        replies = await symptoms.continue_assessment(PHONE, "mild")

        assert replies == ["Rest and drink water.", MAIN_MENU_TEXT]
        db.rollback.assert_awaited_once()

    async def test_missing_session_restarts(self, symptoms, store):
        replies = await symptoms.continue_assessment(PHONE, "2")

        assert replies == [SYMPTOM_RESTART, SYMPTOM_PROMPT]
        assert store.dialog.get(PHONE).stage == "primary"


@pytest.mark.asyncio
class TestFollowUpStatus:
    async def test_nothing_active(self, follow_ups, store):
        assert await follow_ups.show_status(PHONE) == [NO_ACTIVE_ASSESSMENTS, MAIN_MENU_TEXT]
        assert store.dialog.get(PHONE).is_menu

    async def test_single_assessment_asks_directly(self, follow_ups, store, lookups):
        assessment = make_assessment("headache")
        lookups.assessments = [assessment]

        replies = await follow_ups.show_status(PHONE)

        assert replies == [assessment_service.follow_up_message(assessment)]
        session = store.dialog.get(PHONE)
        assert session.type == DialogType.FOLLOW_UP
        assert session.stage == "status"
        assert session.data == {"assessment_id": str(assessment.id)}

    async def test_several_assessments_offer_a_list(self, follow_ups, store, lookups):
        headache, cough = make_assessment("headache"), make_assessment("cough")
        lookups.assessments = [headache, cough]

        replies = await follow_ups.show_status(PHONE)

        assert replies[0].startswith("You have multiple active symptom assessments.")
        assert "1. headache (started on" in replies[0]
        assert "2. cough (started on" in replies[0]
        session = store.dialog.get(PHONE)
        assert session.stage == "selection"
        assert session.data["assessment_ids"] == [str(headache.id), str(cough.id)]

    async def test_selection_out_of_range_reprompts(self, follow_ups, store, lookups):
        lookups.assessments = [make_assessment("headache"), make_assessment("cough")]
        await follow_ups.show_status(PHONE)

        replies = await follow_ups.handle_response(PHONE, "5")

        assert replies == ["Please enter a valid number from the list."]
        assert store.dialog.get(PHONE).stage == "selection"

    async def test_selection_moves_to_status(self, follow_ups, store, lookups):
        headache, cough = make_assessment("headache"), make_assessment("cough")
        lookups.assessments = [headache, cough]
        await follow_ups.show_status(PHONE)

        with patch.object(assessment_service, "get_assessment", AsyncMock(return_value=cough)):
            replies = await follow_ups.handle_response(PHONE, "2")

        assert replies[0].startswith("👋 *Follow-up: cough*")
        session = store.dialog.get(PHONE)
        assert session.stage == "status"
        assert session.data["assessment_id"] == str(cough.id)


@pytest.mark.asyncio
class TestFollowUpResponses:
    @pytest.fixture
    def assessment(self, lookups):
        assessment = make_assessment("headache")
        lookups.assessments = [assessment]
        return assessment

    @pytest.mark.parametrize(
        "reply, expected, closing",
        [
            ("1", FollowUpStatus.IMPROVED, FOLLOW_UP_CONTINUES),
            ("2", FollowUpStatus.SAME, FOLLOW_UP_CONTINUES),
            ("3", FollowUpStatus.WORSE, FOLLOW_UP_CONTINUES),
            ("4", FollowUpStatus.COMPLETED, FOLLOW_UP_COMPLETE),
        ],
    )
    async def test_status_reply_is_recorded(
        self, follow_ups, store, db, mock_ai, assessment, reply, expected, closing
    ):
        await follow_ups.show_status(PHONE)
        mock_ai.queue_text("Keep resting.")

        with patch.object(
            assessment_service, "get_assessment", AsyncMock(return_value=assessment)
        ):
            replies = await follow_ups.handle_response(PHONE, reply)

        assert replies == ["Keep resting." + FOLLOW_UP_DISCLAIMER, closing, MAIN_MENU_TEXT]
        assert assessment.follow_ups[-1]["status"] == expected.value
        db.flush.assert_awaited()

    async def test_resolved_symptom_closes_assessment(self, follow_ups, assessment):
        await follow_ups.show_status(PHONE)

        with patch.object(
            assessment_service, "get_assessment", AsyncMock(return_value=assessment)
        ):
            await follow_ups.handle_response(PHONE, "4")

        assert assessment.status == AssessmentStatus.COMPLETED.value
        assert assessment.next_follow_up_at is None

    async def test_keyword_reply_keeps_notes(self, follow_ups, assessment):
        await follow_ups.show_status(PHONE)

        with patch.object(
            assessment_service, "get_assessment", AsyncMock(return_value=assessment)
        ):
            await follow_ups.handle_response(PHONE, "still a bit dizzy")

        assert assessment.follow_ups[-1]["status"] == FollowUpStatus.SAME.value
        assert assessment.follow_ups[-1]["notes"] == "still a bit dizzy"

    async def test_missing_assessment_rolls_back(self, follow_ups, db, assessment):
        await follow_ups.show_status(PHONE)

        with patch.object(assessment_service, "get_assessment", AsyncMock(return_value=None)):
            replies = await follow_ups.handle_response(PHONE, "1")

        assert replies[0].startswith("I'm sorry, there was an error processing your follow-up.")
        db.rollback.assert_awaited_once()


@pytest.mark.asyncio
class TestDirectFollowUp:
    async def test_no_assessments_returns_none(self, follow_ups):
        assert await follow_ups.try_direct_follow_up(PHONE, "1") is None

    async def test_answers_newest_assessment(self, follow_ups, lookups, mock_ai):
        newest, older = make_assessment("cough"), make_assessment("headache")
        lookups.assessments = [newest, older]
        mock_ai.queue_text("See a doctor if it persists.")

        replies = await follow_ups.try_direct_follow_up(PHONE, "3")

        assert replies == [
            "See a doctor if it persists." + FOLLOW_UP_DISCLAIMER,
            FOLLOW_UP_CONTINUES,
            MAIN_MENU_TEXT,
        ]
        assert newest.follow_ups == [
            {
                "date": newest.follow_ups[0]["date"],
                "status": FollowUpStatus.WORSE.value,
                "notes": None,
            }
        ]
        assert older.follow_ups == []

    async def test_database_error_returns_none(self, follow_ups, lookups, db):
        lookups.assessments = [make_assessment()]
        db.flush.side_effect = SQLAlchemyError("deadlock")

        assert await follow_ups.try_direct_follow_up(PHONE, "1") is None
        db.rollback.assert_awaited_once()

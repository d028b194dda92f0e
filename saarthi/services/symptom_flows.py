"""Symptom dialogs - the assessment questionnaire and daily follow-ups."""

import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from saarthi.ai.client import OpenAIClient
from saarthi.models import SymptomAssessment
from saarthi.schemas.symptom import FollowUpOutcome, SymptomQuestion
from saarthi.services import symptom_assessment as assessment_service
from saarthi.services.lookups import ConversationLookups
from saarthi.services.menu import main_menu
from saarthi.services.sessions import DialogSession, DialogType, SessionStore
from saarthi.services.tracing import traced
from saarthi.utils.dates import format_date
from saarthi.utils.text import parse_number_choice

logger = logging.getLogger(__name__)

SYMPTOM_PROMPT = (
    "What symptom are you experiencing? Please describe it briefly.\n\n"
    "Examples: 'headache', 'stomach pain', 'cough', etc."
)
SYMPTOM_RESTART = "I'm sorry, something went wrong with your symptom assessment. Let's start again."
FOLLOW_UP_NOTICE = (
    "I'll check in with you tomorrow to see how your symptoms are progressing. "
    "I'll provide updated recommendations based on whether you're feeling better, "
    "the same, or worse."
)
FOLLOW_UP_COMPLETE = (
    "✅ Thank you for using Saarthi symptom tracking. Your symptom follow-up is now complete."
)
FOLLOW_UP_CONTINUES = (
    "I'll check in with you again tomorrow. If your symptoms change significantly before "
    "then, please use the symptom assessment option from the main menu."
)
FOLLOW_UP_RESTART = "I'm sorry, something went wrong with your follow-up. Let's start again."
FOLLOW_UP_UNREADABLE = "I'm sorry, I couldn't process your response. Let's start again."
NO_ACTIVE_ASSESSMENTS = (
    "You don't have any active symptom assessments. If you're experiencing symptoms, "
    "you can start a new assessment by typing 'symptom'."
)


class SymptomHandler:
    """Primary symptom, three generated questions, then the final assessment."""

    def __init__(self, db: AsyncSession, store: SessionStore, ai: OpenAIClient):
        self.db = db
        self.store = store
        self.ai = ai

    def start(self, identity: str) -> list[str]:
        self.store.dialog.set(
            identity,
            DialogSession(type=DialogType.SYMPTOM, stage="primary", data={"answers": []}),
        )
        return [SYMPTOM_PROMPT]

    @traced(capture_args=["identity", "text"])
    async def continue_assessment(self, identity: str, text: str) -> list[str]:
        session = self.store.dialog.get(identity)
        if session is None or session.type != DialogType.SYMPTOM:
            return [SYMPTOM_RESTART, *self.start(identity)]

        reply = text.strip()
        data = session.data

        if session.stage == "primary":
            question = await assessment_service.get_next_question(self.ai, reply, [], 1)
            session.stage = "follow_up"
            data.update(
                primary_symptom=reply,
                question_number=1,
                answers=[],
                current_question=question.model_dump(),
            )
            self.store.dialog.set(identity, session)
            return [assessment_service.format_question_message(question)]

        if session.stage != "follow_up" or "current_question" not in data:
            return [SYMPTOM_RESTART, *self.start(identity)]

        current = SymptomQuestion.model_validate(data["current_question"])
        answers = [
            *data.get("answers", []),
            {
                "question": current.question,
                "answer": assessment_service.process_answer(reply, current),
            },
        ]
        question_number = data.get("question_number", 1) + 1

        if question_number >= assessment_service.FINAL_QUESTION_NUMBER:
            return await self._finish(identity, data["primary_symptom"], answers)

        question = await assessment_service.get_next_question(
            self.ai, data["primary_symptom"], answers, question_number
        )
        data.update(
            answers=answers,
            question_number=question_number,
            current_question=question.model_dump(),
        )
        self.store.dialog.set(identity, session)
        return [assessment_service.format_question_message(question)]

    async def _finish(self, identity: str, primary_symptom: str, answers: list[dict]) -> list[str]:
        assessment = await assessment_service.generate_final_assessment(
            self.ai, primary_symptom, answers
        )
        saved = await assessment_service.save_assessment(
            self.db, identity, primary_symptom, answers, assessment
        )
        self.store.dialog.delete(identity)

        replies = [assessment]
        if saved is not None:
            replies.append(FOLLOW_UP_NOTICE)
        replies.append(main_menu(self.store, identity))
        return replies


class FollowUpHandler:
    """Daily "how are you feeling" follow-ups on active assessments."""

    def __init__(
        self,
        db: AsyncSession,
        store: SessionStore,
        ai: OpenAIClient,
        lookups: ConversationLookups | None = None,
    ):
        self.db = db
        self.store = store
        self.ai = ai
        self.lookups = lookups or ConversationLookups(db)

    def _status_session(self, identity: str, assessment: SymptomAssessment) -> None:
        self.store.dialog.set(
            identity,
            DialogSession(
                type=DialogType.FOLLOW_UP,
                stage="status",
                data={"assessment_id": str(assessment.id)},
            ),
        )

    def _outcome_replies(self, identity: str, outcome: FollowUpOutcome) -> list[str]:
        closing = FOLLOW_UP_COMPLETE if outcome.is_completed else FOLLOW_UP_CONTINUES
        return [outcome.recommendations, closing, main_menu(self.store, identity)]

    def _start_over(self, identity: str, message: str) -> list[str]:
        self.store.dialog.delete(identity)
        return [message, main_menu(self.store, identity)]

    async def show_status(self, identity: str) -> list[str]:
        """`symptom status`: prompt directly for one assessment, or ask which one."""
        assessments = await self.lookups.get_active_symptom_assessments(identity)
        if not assessments:
            return [NO_ACTIVE_ASSESSMENTS, main_menu(self.store, identity)]

        if len(assessments) == 1:
            self._status_session(identity, assessments[0])
            return [assessment_service.follow_up_message(assessments[0])]

        lines = [
            f"{i}. {a.primary_symptom} (started on {format_date(a.created_at)})"
            for i, a in enumerate(assessments, start=1)
        ]
        self.store.dialog.set(
            identity,
            DialogSession(
                type=DialogType.FOLLOW_UP,
                stage="selection",
                data={"assessment_ids": [str(a.id) for a in assessments]},
            ),
        )
        return [
            "You have multiple active symptom assessments. Which one would you like to update?\n\n"
            + "\n".join(lines)
            + "\n\nPlease reply with the number of your choice."
        ]

    @traced(capture_args=["identity", "text"])
    async def handle_response(self, identity: str, text: str) -> list[str]:
        session = self.store.dialog.get(identity)
        if session is None or session.type != DialogType.FOLLOW_UP:
            return self._start_over(identity, FOLLOW_UP_UNREADABLE)

        if session.stage == "selection":
            ids = session.data.get("assessment_ids") or []
            number = parse_number_choice(text)
            if number is None or not 1 <= number <= len(ids):
                return ["Please enter a valid number from the list."]
            assessment = await assessment_service.get_assessment(self.db, ids[number - 1])
            if assessment is None:
                return self._start_over(identity, FOLLOW_UP_RESTART)
            self._status_session(identity, assessment)
            return [
                f"👋 *Follow-up: {assessment.primary_symptom}*\n\n"
                "How are you feeling now?\n\n" + assessment_service.FOLLOW_UP_OPTIONS
            ]

        if session.stage != "status" or "assessment_id" not in session.data:
            return self._start_over(identity, FOLLOW_UP_RESTART)

        self.store.dialog.delete(identity)
        try:
            assessment_id = session.data["assessment_id"]
            assessment = await assessment_service.get_assessment(self.db, assessment_id)
            if assessment is None:
                raise LookupError(assessment_id)
            outcome = await assessment_service.process_follow_up_response(
                self.db, self.ai, assessment, text
            )
        except (SQLAlchemyError, LookupError) as e:
            logger.error(f"❌ Follow-up processing failed for {identity}: {e}")
            await self.db.rollback()
            return [
                "I'm sorry, there was an error processing your follow-up. Please try again later.",
                main_menu(self.store, identity),
            ]
        return self._outcome_replies(identity, outcome)

    async def try_direct_follow_up(self, identity: str, text: str) -> list[str] | None:
        """A bare 1-4 with no dialog open answers the newest active assessment.

        Returns None when there is nothing to follow up, so routing continues.
        """
        assessments = await self.lookups.get_active_symptom_assessments(identity)
        if not assessments:
            return None

        logger.info(f"📱 Direct follow-up reply {text} for assessment {assessments[0].id}")
        try:
            outcome = await assessment_service.process_follow_up_response(
                self.db, self.ai, assessments[0], text
            )
        except SQLAlchemyError as e:
            logger.error(f"❌ Direct follow-up failed for {identity}: {e}")
            await self.db.rollback()
            return None
        return self._outcome_replies(identity, outcome)

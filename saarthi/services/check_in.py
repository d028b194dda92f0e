"""Wellness check-in service - scheduled questions, follow-ups and daily reports.

A check-in opens with a generated question. The first reply is analysed; a
not-so-positive answer earns up to two follow-up questions before the conversation
is closed with a warm final message. Completed check-ins are rolled into a daily
report for each caregiver.
"""

import logging
from datetime import date, datetime, time, timezone
from typing import Any

from openai import APIError
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from saarthi.ai.client import OpenAIClient
from saarthi.ai.prompts import (
    ANALYSIS_SYSTEM_PROMPT,
    CHECK_IN_CLOSING_SYSTEM_PROMPT,
    CHECK_IN_FOLLOW_UP_SYSTEM_PROMPT,
    CHECK_IN_SYSTEM_PROMPT,
    DAILY_REPORT_SYSTEM_PROMPT,
    build_check_in_question_prompt,
    build_conversation_analysis_prompt,
    build_daily_report_prompt,
    build_final_response_prompt,
    build_follow_up_question_prompt,
    build_response_analysis_prompt,
    build_second_follow_up_prompt,
)
from saarthi.models import CheckIn, CheckInState, DailyReport, User
from saarthi.schemas.conversation import CheckInResult
from saarthi.services import medication as medication_service
from saarthi.services import user as user_service
from saarthi.services.lookups import ConversationLookups
from saarthi.services.tracing import traced
from saarthi.utils.dates import local_tz
from saarthi.utils.text import normalize_identity

logger = logging.getLogger(__name__)

FALLBACK_ANALYSIS: dict[str, Any] = {
    "sentiment": "neutral",
    "activities": [],
    "wellbeing": {"physical": "fair", "emotional": "fair", "social": "fair"},
    "concerns": [],
}

FALLBACK_QUESTIONS = {
    "morning": "Good morning {name}! ☀️ How are you feeling today? Did you sleep well?",
    "midday": "Hi {name}! 🌿 How has your day been so far? Have you had lunch yet?",
    "evening": "Good evening {name}! 🌙 How was your day? Did you do anything nice today?",
}
FALLBACK_FOLLOW_UP = (
    "Thank you for sharing, {name}. Could you tell me a little more about how you're feeling? 💙"
)
FALLBACK_CLOSING = (
    "Thank you for chatting with me, {name}! "
    "Take care and I'll check in with you again soon. 💙"
)
FINALIZE_ERROR = (
    "Error processing your responses, but thank you for checking in. "
    "I'll check in with you again later."
)
NO_ACTIVE_CHECK_IN = "No active check-in found."
REPORT_ERROR = "Error generating daily report. Please try again later."
MEDICATION_SUMMARY_ERROR = "❌ Medication summary unavailable. Please try again later."

CONCERNING_LEVELS = ("concerning", "fair")
URGENT_WORDS = ("emergency", "severe", "urgent")
SECOND_FOLLOW_UP_WORDS = ("pain", "severe", "worried")


def needs_follow_up(analysis: dict[str, Any]) -> bool:
    """Anything short of a positive, concern-free, healthy answer gets a follow-up."""
    wellbeing = analysis.get("wellbeing") or {}
    return (
        analysis.get("sentiment") in ("negative", "neutral")
        or bool(analysis.get("concerns"))
        or wellbeing.get("physical") in CONCERNING_LEVELS
        or wellbeing.get("emotional") in CONCERNING_LEVELS
    )


def needs_second_follow_up(analysis: dict[str, Any], last_response: str) -> bool:
    concerns = [str(c).lower() for c in analysis.get("concerns") or []]
    if any(word in concern for concern in concerns for word in SECOND_FOLLOW_UP_WORDS):
        return True
    return len(last_response.split(" ")) < 5


def follow_up_focus(analysis: dict[str, Any]) -> str:
    wellbeing = analysis.get("wellbeing") or {}
    for area in ("physical", "emotional", "social"):
        if wellbeing.get(area) in CONCERNING_LEVELS:
            return f"{area}_wellbeing"
    if analysis.get("concerns"):
        return "expressed_concerns"
    return "general_wellbeing"


def has_urgent_concerns(analysis: dict[str, Any]) -> bool:
    return any(
        word in str(concern).lower()
        for concern in analysis.get("concerns") or []
        for word in URGENT_WORDS
    )


def local_day_start(day: date) -> datetime:
    """Midnight of a local calendar day, as an aware datetime."""
    return datetime.combine(day, time.min, tzinfo=local_tz())


class CheckInService:
    """Check-in conversations stored as `CheckIn` rows."""

    def __init__(
        self,
        db: AsyncSession,
        ai: OpenAIClient,
        lookups: ConversationLookups | None = None,
    ):
        self.db = db
        self.ai = ai
        self.lookups = lookups or ConversationLookups(db)

    async def get_active_check_in(self, identity: str) -> CheckIn | None:
        return await self.lookups.get_active_check_in(normalize_identity(identity))

    async def get_recent_check_ins(self, phone_number: str, limit: int = 3) -> list[CheckIn]:
        result = await self.db.execute(
            select(CheckIn)
            .where(CheckIn.user_phone == normalize_identity(phone_number))
            .order_by(CheckIn.created_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    # =========================================================================
    # Starting a check-in
    # =========================================================================

    async def generate_check_in_question(
        self, user: User, time_slot: str, now: datetime | None = None
    ) -> str:
        now = now or datetime.now(local_tz())
        recent = await self.get_recent_check_ins(user.phone_number)
        try:
            return await self.ai.generate_text(
                CHECK_IN_SYSTEM_PROMPT,
                build_check_in_question_prompt(user, time_slot, recent, now),
                temperature=0.8,
                max_tokens=150,
            )
        except (APIError, ValueError) as e:
            logger.error(f"❌ Check-in question generation failed for {user.phone_number}: {e}")
            template = FALLBACK_QUESTIONS.get(time_slot, FALLBACK_QUESTIONS["morning"])
            return template.format(name=user.name)

    @traced(capture_args=["time_slot"])
    async def start_check_in(self, user: User, time_slot: str) -> CheckIn:
        """Close any stale check-in and open a new one with a fresh question."""
        await self.clear_active_check_in(user.phone_number)
        question = await self.generate_check_in_question(user, time_slot)
        check_in = CheckIn(
            user_phone=user.phone_number,
            time_slot=time_slot,
            question=question,
            conversation_state=CheckInState.INITIAL.value,
            is_active=True,
            conversation_history=[{"role": "assistant", "content": question}],
        )
        self.db.add(check_in)
        await self.db.flush()
        logger.info(f"🌅 Started {time_slot} check-in {check_in.id} for {user.phone_number}")
        return check_in

    # =========================================================================
    # Conversation
    # =========================================================================

    async def analyze_response(self, question: str, response: str) -> dict[str, Any]:
        try:
            return await self.ai.generate_json(
                ANALYSIS_SYSTEM_PROMPT,
                build_response_analysis_prompt(question, response),
                temperature=0.3,
                max_tokens=500,
            )
        except (APIError, ValueError) as e:
            logger.error(f"❌ Check-in response analysis failed: {e}")
            return dict(FALLBACK_ANALYSIS)

    async def analyze_conversation(
        self, history: list[dict[str, str]], initial_analysis: dict[str, Any]
    ) -> dict[str, Any]:
        try:
            return await self.ai.generate_json(
                ANALYSIS_SYSTEM_PROMPT,
                build_conversation_analysis_prompt(history, initial_analysis),
                temperature=0.3,
                max_tokens=500,
            )
        except (APIError, ValueError) as e:
            logger.error(f"❌ Check-in conversation analysis failed: {e}")
            return initial_analysis

    async def _ask(self, system_prompt: str, prompt: str, fallback: str) -> str:
        try:
            return await self.ai.generate_text(
                system_prompt, prompt, temperature=0.7, max_tokens=150
            )
        except (APIError, ValueError) as e:
            logger.error(f"❌ Check-in message generation failed: {e}")
            return fallback

    def _append(self, check_in: CheckIn, role: str, content: str) -> None:
        check_in.conversation_history = [
            *(check_in.conversation_history or []),
            {"role": role, "content": content},
        ]

    @traced(capture_args=["identity", "text"])
    async def process_check_in_response(self, identity: str, text: str) -> CheckInResult:
        """Record a reply to the active check-in and decide what to say next."""
        check_in = await self.get_active_check_in(identity)
        if check_in is None:
            return CheckInResult(success=False, follow_up=NO_ACTIVE_CHECK_IN)

        user = await user_service.get_user(self.db, check_in.user_phone)
        name = user.name if user else "there"
        self._append(check_in, "user", text)
        state = check_in.conversation_state

        if state == CheckInState.INITIAL.value:
            analysis = await self.analyze_response(check_in.question, text)
            check_in.initial_analysis = analysis
            if not needs_follow_up(analysis):
                return await self._finalize(check_in, name, text)

            question = await self._ask(
                CHECK_IN_FOLLOW_UP_SYSTEM_PROMPT,
                build_follow_up_question_prompt(name, text, analysis, follow_up_focus(analysis)),
                FALLBACK_FOLLOW_UP.format(name=name),
            )
            return await self._continue(check_in, CheckInState.FOLLOW_UP_1, question)

        if state == CheckInState.FOLLOW_UP_1.value:
            analysis = await self.analyze_conversation(
                check_in.conversation_history, check_in.initial_analysis or FALLBACK_ANALYSIS
            )
            if not needs_second_follow_up(analysis, text):
                return await self._finalize(check_in, name, text, analysis)

            question = await self._ask(
                CHECK_IN_FOLLOW_UP_SYSTEM_PROMPT,
                build_second_follow_up_prompt(name, analysis),
                FALLBACK_FOLLOW_UP.format(name=name),
            )
            return await self._continue(check_in, CheckInState.FOLLOW_UP_2, question)

        return await self._finalize(check_in, name, text)

    async def _continue(
        self, check_in: CheckIn, state: CheckInState, question: str
    ) -> CheckInResult:
        self._append(check_in, "assistant", question)
        check_in.conversation_state = state.value
        await self.db.flush()
        logger.info(f"💬 Check-in {check_in.id} moved to {state.value}")
        return CheckInResult(success=True, follow_up=question, conversation_complete=False)

    async def _finalize(
        self,
        check_in: CheckIn,
        name: str,
        last_message: str,
        analysis: dict[str, Any] | None = None,
    ) -> CheckInResult:
        try:
            if analysis is None:
                analysis = await self.analyze_conversation(
                    check_in.conversation_history,
                    check_in.initial_analysis or FALLBACK_ANALYSIS,
                )
            closing = await self._ask(
                CHECK_IN_CLOSING_SYSTEM_PROMPT,
                build_final_response_prompt(name, last_message, analysis),
                FALLBACK_CLOSING.format(name=name),
            )
            self._append(check_in, "assistant", closing)
            check_in.analysis = analysis
            check_in.sentiment = analysis.get("sentiment")
            check_in.conversation_state = CheckInState.COMPLETED.value
            check_in.is_active = False
            check_in.completed_at = datetime.now(timezone.utc)
            await self.db.flush()
        except SQLAlchemyError as e:
            logger.error(f"❌ Could not finalize check-in {check_in.id}: {e}", exc_info=True)
            await self.db.rollback()
            return CheckInResult(success=False, follow_up=FINALIZE_ERROR)

        if has_urgent_concerns(analysis):
            logger.warning(
                f"🚨 Urgent concerns in check-in {check_in.id} for {check_in.user_phone}: "
                f"{analysis.get('concerns')}"
            )
        logger.info(f"✅ Check-in {check_in.id} completed ({check_in.sentiment})")
        return CheckInResult(success=True, follow_up=closing, conversation_complete=True)

    async def clear_active_check_in(self, identity: str) -> None:
        """Deactivate every open check-in for a user."""
        await self.db.execute(
            update(CheckIn)
            .where(
                CheckIn.user_phone == normalize_identity(identity),
                CheckIn.is_active.is_(True),
            )
            .values(is_active=False)
        )

    # =========================================================================
    # Daily reports
    # =========================================================================

    async def get_unreported_check_ins(self, phone_number: str, day: date) -> list[CheckIn]:
        result = await self.db.execute(
            select(CheckIn)
            .where(
                CheckIn.user_phone == normalize_identity(phone_number),
                CheckIn.conversation_state == CheckInState.COMPLETED.value,
                CheckIn.reported.is_(False),
                CheckIn.created_at >= local_day_start(day),
            )
            .order_by(CheckIn.created_at)
        )
        return list(result.scalars().all())

    async def get_medication_summary(self, phone_number: str) -> str:
        try:
            async with self.db.begin_nested():
                return await medication_service.get_medication_summary(self.db, phone_number)
        except SQLAlchemyError as e:
            logger.error(f"❌ Medication summary failed for {phone_number}: {e}")
            return MEDICATION_SUMMARY_ERROR

    @traced(capture_args=["elderly_phone"])
    async def generate_daily_report(
        self,
        elderly_phone: str,
        day: date | None = None,
        check_ins: list[CheckIn] | None = None,
    ) -> str:
        day = day or datetime.now(local_tz()).date()
        user = await user_service.get_user(self.db, elderly_phone)
        if user is None:
            return REPORT_ERROR

        if check_ins is None:
            check_ins = await self.get_unreported_check_ins(elderly_phone, day)
        medication_summary = await self.get_medication_summary(elderly_phone)

        if not check_ins:
            return (
                f"*Daily Report for {user.name}*\n\n"
                "No check-ins were recorded today. This could mean they were away or did "
                f"not respond to the check-in messages.\n\n{medication_summary}"
            )

        try:
            return await self.ai.generate_text(
                DAILY_REPORT_SYSTEM_PROMPT,
                build_daily_report_prompt(user, check_ins, medication_summary, day.isoformat()),
                temperature=0.5,
                max_tokens=700,
            )
        except (APIError, ValueError) as e:
            logger.error(f"❌ Daily report generation failed for {elderly_phone}: {e}")
            return REPORT_ERROR

    async def build_daily_report(
        self, caregiver_phone: str, elderly_phone: str, day: date | None = None
    ) -> DailyReport:
        """Generate and store today's report, marking its check-ins as reported."""
        day = day or datetime.now(local_tz()).date()
        check_ins = await self.get_unreported_check_ins(elderly_phone, day)
        content = await self.generate_daily_report(elderly_phone, day, check_ins)

        report_key = f"{caregiver_phone}_{elderly_phone}_{day.isoformat()}"
        report = DailyReport(
            report_key=report_key,
            elderly_phone=normalize_identity(elderly_phone),
            caregiver_phone=normalize_identity(caregiver_phone),
            report_date=day,
            content=content,
            check_in_ids=[str(c.id) for c in check_ins],
        )
        self.db.add(report)
        for check_in in check_ins:
            check_in.reported = True
            check_in.report_id = report_key
        await self.db.flush()
        logger.info(f"📊 Stored daily report {report_key} ({len(check_ins)} check-ins)")
        return report

    async def get_report(self, report_key: str) -> DailyReport | None:
        result = await self.db.execute(
            select(DailyReport).where(DailyReport.report_key == report_key)
        )
        return result.scalar_one_or_none()

"""Symptom assessment service - questions, assessments and daily follow-ups.

An assessment is three AI-generated questions followed by a final analysis at
question four. Saved assessments stay active and get a follow-up prompt every 24
hours until the user reports the symptom resolved.
"""

import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import UUID

from openai import APIError
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from saarthi.ai.client import OpenAIClient
from saarthi.ai.prompts import (
    FOLLOW_UP_DISCLAIMER,
    FOLLOW_UP_SYSTEM_PROMPT,
    SYMPTOM_QUESTION_SYSTEM_PROMPT,
    build_final_assessment_prompt,
    build_progression_prompt,
    build_symptom_question_prompt,
)
from saarthi.models import AssessmentStatus, FollowUpStatus, SymptomAssessment
from saarthi.schemas.symptom import FollowUpOutcome, SymptomQuestion
from saarthi.services.tracing import traced
from saarthi.utils.text import normalize_identity

logger = logging.getLogger(__name__)

FINAL_QUESTION_NUMBER = 4
FOLLOW_UP_INTERVAL = timedelta(hours=24)

FALLBACK_QUESTION = SymptomQuestion(
    question="How long have you been experiencing this symptom?",
    options=["Less than a day", "1-3 days", "4-7 days", "More than a week"],
)

FALLBACK_ASSESSMENT = (
    "I'm sorry, I couldn't complete your symptom assessment at this time. "
    "If you're concerned about your symptoms, please consult a healthcare provider."
)

FALLBACK_RECOMMENDATIONS = (
    "I'm having trouble analyzing your symptom progression. As a general precaution, if "
    "your symptoms persist or worsen, please consult a healthcare professional. Would you "
    "like to continue tracking these symptoms?"
)

FOLLOW_UP_OPTIONS = (
    "1️⃣ Better/Improved\n"
    "2️⃣ About the same\n"
    "3️⃣ Worse\n"
    "4️⃣ Complete follow-up (symptom resolved or no longer wish to track)\n\n"
    "Please reply with the number of your choice."
)

_OPTION_RE = re.compile(r"(?:\d+[.)]\s+[^\n]+|-\s+[^\n]+)")
_OPTION_PREFIX_RE = re.compile(r"^(?:\d+[.)]\s+|-\s+)")

_STATUS_BY_NUMBER = {
    "1": FollowUpStatus.IMPROVED,
    "2": FollowUpStatus.SAME,
    "3": FollowUpStatus.WORSE,
    "4": FollowUpStatus.COMPLETED,
}

_STATUS_KEYWORDS = [
    (FollowUpStatus.IMPROVED, ("better", "improv")),
    (FollowUpStatus.SAME, ("same", "unchanged")),
    (FollowUpStatus.WORSE, ("worse", "bad")),
    (FollowUpStatus.COMPLETED, ("complete", "stop", "done")),
]


# =============================================================================
# Questions
# =============================================================================


def parse_question(content: str) -> SymptomQuestion:
    """Split generated text into the question (first sentence) and its options."""
    question = re.split(r"\n|\.\s+", content.strip(), maxsplit=1)[0].strip()
    options = [
        _OPTION_PREFIX_RE.sub("", match).strip() for match in _OPTION_RE.findall(content)
    ]
    return SymptomQuestion(question=question, options=options or None)


@traced(capture_args=["primary_symptom", "question_number"])
async def get_next_question(
    ai: OpenAIClient,
    primary_symptom: str,
    answers: list[dict[str, Any]],
    question_number: int,
) -> SymptomQuestion:
    try:
        content = await ai.generate_text(
            SYMPTOM_QUESTION_SYSTEM_PROMPT,
            build_symptom_question_prompt(primary_symptom, answers, question_number),
            temperature=0.4,
            max_tokens=300,
        )
    except (APIError, ValueError) as e:
        logger.error(f"❌ Symptom question generation failed: {e}")
        return FALLBACK_QUESTION
    return parse_question(content)


@traced(capture_args=["primary_symptom"])
async def generate_final_assessment(
    ai: OpenAIClient, primary_symptom: str, answers: list[dict[str, Any]]
) -> str:
    try:
        return await ai.generate_text(
            SYMPTOM_QUESTION_SYSTEM_PROMPT,
            build_final_assessment_prompt(primary_symptom, answers),
            temperature=0.4,
            max_tokens=450,
        )
    except (APIError, ValueError) as e:
        logger.error(f"❌ Final assessment generation failed: {e}")
        return FALLBACK_ASSESSMENT


def format_question_message(question: SymptomQuestion) -> str:
    message = f"{question.question}\n\n"
    if question.options:
        message += "".join(
            f"{i}️⃣ {option}\n" for i, option in enumerate(question.options, start=1)
        )
        message += "\nPlease reply with the number of your answer."
    else:
        message += "Please describe in a few words."
    return message


def process_answer(response: str, question: SymptomQuestion) -> str:
    """Map a numeric reply to its option text; anything else is kept verbatim."""
    if question.options and response.strip().isdigit():
        number = int(response.strip())
        if 1 <= number <= len(question.options):
            return question.options[number - 1]
    return response


# =============================================================================
# Persistence
# =============================================================================


async def save_assessment(
    db: AsyncSession,
    phone_number: str,
    primary_symptom: str,
    answers: list[dict[str, Any]],
    assessment: str,
) -> SymptomAssessment | None:
    """Store a completed assessment; the first follow-up is due in 24 hours."""
    record = SymptomAssessment(
        user_phone=normalize_identity(phone_number),
        primary_symptom=primary_symptom,
        answers=answers,
        assessment=assessment,
        status=AssessmentStatus.ACTIVE.value,
        follow_ups=[],
        next_follow_up_at=datetime.now(timezone.utc) + FOLLOW_UP_INTERVAL,
    )
    try:
        db.add(record)
        await db.flush()
    except SQLAlchemyError as e:
        logger.error(f"❌ Error saving assessment for {phone_number}: {e}")
        await db.rollback()
        return None

    logger.info(f"🩺 Saved assessment {record.id} ({primary_symptom}) for {record.user_phone}")
    return record


async def get_assessment(db: AsyncSession, assessment_id: UUID | str) -> SymptomAssessment | None:
    if isinstance(assessment_id, str):
        assessment_id = UUID(assessment_id)
    result = await db.execute(
        select(SymptomAssessment).where(SymptomAssessment.id == assessment_id)
    )
    return result.scalar_one_or_none()


async def get_assessments_due_for_follow_up(
    db: AsyncSession, now: datetime | None = None
) -> list[SymptomAssessment]:
    now = now or datetime.now(timezone.utc)
    result = await db.execute(
        select(SymptomAssessment)
        .where(
            SymptomAssessment.status == AssessmentStatus.ACTIVE.value,
            SymptomAssessment.next_follow_up_at <= now,
        )
        .order_by(SymptomAssessment.next_follow_up_at)
    )
    return list(result.scalars().all())


def classify_follow_up_response(response: str) -> tuple[FollowUpStatus, str | None]:
    """Status for a 1-4 reply or keyword; other free text counts as "same" with notes."""
    text = response.strip()
    if text in _STATUS_BY_NUMBER:
        return _STATUS_BY_NUMBER[text], None

    lowered = text.lower()
    for status, keywords in _STATUS_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return status, None
    return FollowUpStatus.SAME, text


async def add_follow_up(
    db: AsyncSession,
    assessment: SymptomAssessment,
    status: FollowUpStatus,
    notes: str | None = None,
    now: datetime | None = None,
) -> SymptomAssessment:
    now = now or datetime.now(timezone.utc)
    assessment.follow_ups = [
        *(assessment.follow_ups or []),
        {"date": now.isoformat(), "status": status.value, "notes": notes},
    ]
    assessment.last_follow_up_at = now
    if status == FollowUpStatus.COMPLETED:
        assessment.status = AssessmentStatus.COMPLETED.value
        assessment.next_follow_up_at = None
    else:
        assessment.next_follow_up_at = now + FOLLOW_UP_INTERVAL
    await db.flush()
    return assessment


async def get_progression_recommendations(
    ai: OpenAIClient, assessment: SymptomAssessment, current_status: FollowUpStatus
) -> str:
    try:
        recommendations = await ai.generate_text(
            FOLLOW_UP_SYSTEM_PROMPT,
            build_progression_prompt(assessment, current_status.value),
            temperature=0.4,
            max_tokens=400,
        )
    except (APIError, ValueError) as e:
        logger.error(f"❌ Progression recommendations failed: {e}")
        return FALLBACK_RECOMMENDATIONS
    return recommendations + FOLLOW_UP_DISCLAIMER


@traced(capture_args=["response"])
async def process_follow_up_response(
    db: AsyncSession,
    ai: OpenAIClient,
    assessment: SymptomAssessment,
    response: str,
) -> FollowUpOutcome:
    """Record a follow-up answer and produce recommendations for it."""
    status, notes = classify_follow_up_response(response)
    await add_follow_up(db, assessment, status, notes)
    recommendations = await get_progression_recommendations(ai, assessment, status)
    logger.info(f"🩺 Follow-up for {assessment.id}: {status.value}")
    return FollowUpOutcome(
        status=status,
        recommendations=recommendations,
        is_completed=status == FollowUpStatus.COMPLETED,
    )


def follow_up_message(assessment: SymptomAssessment) -> str:
    another = "another " if assessment.follow_ups else ""
    return (
        f"👋 *Follow-up: {assessment.primary_symptom}*\n\n"
        f"It's been {another}day since you reported {assessment.primary_symptom}. "
        "How are you feeling now?\n\n" + FOLLOW_UP_OPTIONS
    )

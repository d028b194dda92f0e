"""Schemas for symptom assessment and follow-up."""

from pydantic import BaseModel

from saarthi.models import FollowUpStatus


class SymptomQuestion(BaseModel):
    """One generated assessment question with optional numbered answers."""

    question: str
    options: list[str] | None = None


class FollowUpOutcome(BaseModel):
    status: FollowUpStatus
    recommendations: str
    is_completed: bool = False

"""Fakes and factories shared by the routing tests."""

from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import uuid4

from saarthi.models import (
    AssessmentStatus,
    CheckIn,
    CheckInState,
    MedicationReminder,
    SymptomAssessment,
    User,
    UserType,
)
from saarthi.services.whatsapp import WhatsAppClient

PHONE = "+919812345678"
RAW_PHONE = f"whatsapp:{PHONE}"

POSITIVE_ANALYSIS: dict[str, Any] = {
    "sentiment": "positive",
    "activities": ["walk"],
    "wellbeing": {"physical": "good", "emotional": "good", "social": "good"},
    "concerns": [],
}


class FakeClock:
    """Controllable clock for session timestamps."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2026, 1, 15, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


class FakeLookups:
    """In-memory stand-in for ConversationLookups."""

    def __init__(self):
        self.reminder: MedicationReminder | None = None
        self.check_in: CheckIn | None = None
        self.reminders_by_id: dict[str, MedicationReminder] = {}
        self.assessments: list[SymptomAssessment] = []

    def add_reminder(self, reminder: MedicationReminder) -> None:
        self.reminder = reminder
        self.reminders_by_id[str(reminder.id)] = reminder

    async def get_latest_unresponded_reminder(
        self, identity: str, now: datetime | None = None
    ) -> MedicationReminder | None:
        if self.reminder is not None and not self.reminder.responded:
            return self.reminder
        return None

    async def get_active_check_in(self, identity: str) -> CheckIn | None:
        if self.check_in is not None and self.check_in.is_active:
            return self.check_in
        return None

    async def get_active_symptom_assessments(self, identity: str) -> list[SymptomAssessment]:
        return list(self.assessments)

    async def get_reminder(self, reminder_id: str | None) -> MedicationReminder | None:
        return self.reminders_by_id.get(reminder_id or "")


class MockOpenAIClient:
    """Mock OpenAI client for deterministic AI responses in tests.

    Usage:
        client = MockOpenAIClient()
        client.queue_text("Hello!")
        client.queue_json({"sentiment": "positive", ...})
    """

    is_configured = True

    def __init__(self):
        self._text_queue: list[str] = []
        self._json_queue: list[dict[str, Any]] = []
        self.calls: list[str] = []

    def queue_text(self, content: str) -> None:
        self._text_queue.append(content)

    def queue_json(self, content: dict[str, Any]) -> None:
        self._json_queue.append(content)

    async def generate_text(
        self, system_prompt: str, prompt: str, temperature: float = 0.7, max_tokens: int = 400
    ) -> str:
        self.calls.append(prompt)
        if self._text_queue:
            return self._text_queue.pop(0)
        return "OK"

    async def generate_json(
        self, system_prompt: str, prompt: str, temperature: float = 0.3, max_tokens: int = 500
    ) -> dict[str, Any]:
        self.calls.append(prompt)
        if self._json_queue:
            return self._json_queue.pop(0)
        return dict(POSITIVE_ANALYSIS)


def make_reminder(medicine: str = "Aspirin", minutes_ago: int = 5) -> MedicationReminder:
    return MedicationReminder(
        id=uuid4(),
        user_phone=PHONE,
        medicine=medicine,
        responded=False,
        status="sent",
        message_sent=True,
        created_at=datetime.now(timezone.utc) - timedelta(minutes=minutes_ago),
    )


def make_check_in(state: CheckInState = CheckInState.INITIAL) -> CheckIn:
    question = "Good morning Asha! How did you sleep?"
    return CheckIn(
        id=uuid4(),
        user_phone=PHONE,
        time_slot="morning",
        question=question,
        conversation_state=state.value,
        is_active=True,
        reported=False,
        conversation_history=[{"role": "assistant", "content": question}],
    )


def make_user(user_type: UserType = UserType.ELDERLY, phone: str = PHONE) -> User:
    return User(
        id=uuid4(),
        phone_number=phone,
        user_type=user_type.value,
        name="Asha",
        profile={},
        check_ins_opt_out=False,
    )


def make_assessment(symptom: str = "headache", follow_ups: list | None = None) -> SymptomAssessment:
    return SymptomAssessment(
        id=uuid4(),
        user_phone=PHONE,
        primary_symptom=symptom,
        answers=[],
        assessment="Rest and hydrate.",
        status=AssessmentStatus.ACTIVE.value,
        follow_ups=follow_ups or [],
        created_at=datetime.now(timezone.utc),
    )


def sent_bodies(client: WhatsAppClient) -> list[str]:
    return [m["body"] for m in client.sent_messages]

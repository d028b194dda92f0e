"""Schemas for conversation routing."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class ConversationKind(str, Enum):
    """The dialog categories a message can belong to."""

    MEDICATION_REMINDER = "medication_reminder"
    SYMPTOM_EMERGENCY = "symptom_emergency"
    CHECK_IN_RESPONSE = "check_in_response"
    SYMPTOM_ASSESSMENT = "symptom_assessment"
    MEDICATION_MANAGEMENT = "medication_management"
    ACCOUNT_CREATION = "account_creation"
    MENU_NAVIGATION = "menu_navigation"
    GENERAL_QUERY = "general_query"


class ConflictType(str, Enum):
    GENERAL = "general"
    MENU_VS_SYMPTOM = "menu_vs_symptom"
    REMINDER_VS_CHECKIN = "reminder_vs_checkin"


class ActiveConversation(BaseModel):
    """An in-progress dialog found for a sender. Built per message, never persisted
    outside a pending disambiguation."""

    kind: ConversationKind
    priority: int
    description: str
    payload: dict[str, Any] = Field(default_factory=dict)


class ConflictResult(BaseModel):
    active_conversations: list[ActiveConversation] = Field(default_factory=list)
    has_conflict: bool = False

    def find(self, kind: ConversationKind) -> ActiveConversation | None:
        for conversation in self.active_conversations:
            if conversation.kind == kind:
                return conversation
        return None


class Resolution(BaseModel):
    """Outcome of conflict resolution for one message."""

    needs_disambiguation: bool = False
    target_conversation: ActiveConversation | None = None
    conflict_type: ConflictType | None = None
    options: list[ActiveConversation] = Field(default_factory=list)


class DispatchResult(BaseModel):
    """Which handler took the message and what it answered."""

    route: str
    replies: list[str] = Field(default_factory=list)
    status: str = "processed"

    @property
    def response_text(self) -> str | None:
        return "\n\n".join(self.replies) if self.replies else None


class CheckInResult(BaseModel):
    success: bool
    follow_up: str | None = None
    conversation_complete: bool = False

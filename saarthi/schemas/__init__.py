"""Pydantic schemas for Saarthi."""

from saarthi.schemas.conversation import (
    ActiveConversation,
    CheckInResult,
    ConflictResult,
    ConflictType,
    ConversationKind,
    DispatchResult,
    Resolution,
)
from saarthi.schemas.simulate import SimulateMessageRequest, SimulateMessageResponse
from saarthi.schemas.symptom import FollowUpOutcome, SymptomQuestion

__all__ = [
    # Routing
    "ActiveConversation",
    "CheckInResult",
    "ConflictResult",
    "ConflictType",
    "ConversationKind",
    "DispatchResult",
    "Resolution",
    # Symptoms
    "FollowUpOutcome",
    "SymptomQuestion",
    # Simulation
    "SimulateMessageRequest",
    "SimulateMessageResponse",
]

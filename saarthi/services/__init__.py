"""Business logic services for Saarthi."""

# Service modules are imported individually where needed
# to avoid circular imports

__all__ = [
    "user",
    "medication",
    "symptom_assessment",
    "check_in",
    "lookups",
    "conversation_conflicts",
    "message_router",
]

"""SQLAlchemy models for Saarthi."""

from saarthi.models.base import Base, TimestampMixin, UUIDMixin
from saarthi.models.check_in import CheckIn, CheckInState, CheckInTimeSlot, DailyReport
from saarthi.models.function_trace import FunctionTrace, FunctionTraceType
from saarthi.models.medication import Medication, MedicationReminder, ReminderStatus
from saarthi.models.symptom_assessment import (
    AssessmentStatus,
    FollowUpStatus,
    SymptomAssessment,
)
from saarthi.models.user import (
    DEFAULT_CAREGIVER_PERMISSIONS,
    CaregiverPermission,
    CaregiverRelationship,
    User,
    UserType,
)

__all__ = [
    # Base
    "Base",
    "TimestampMixin",
    "UUIDMixin",
    # Models
    "User",
    "CaregiverRelationship",
    "Medication",
    "MedicationReminder",
    "SymptomAssessment",
    "CheckIn",
    "DailyReport",
    "FunctionTrace",
    # Enums
    "UserType",
    "CaregiverPermission",
    "ReminderStatus",
    "AssessmentStatus",
    "FollowUpStatus",
    "CheckInState",
    "CheckInTimeSlot",
    "FunctionTraceType",
    "DEFAULT_CAREGIVER_PERMISSIONS",
]

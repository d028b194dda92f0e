"""In-process session store for multi-turn dialogs.

Three independent session kinds are kept per identity, and one of each may exist
at the same time:

- AccountCreationSession: onboarding wizard
- DialogSession: symptom assessment, symptom follow-up, pending disambiguation,
  or a bare menu marker (stage without type)
- MedicationWizardSession: add / update / delete medication wizard

Sessions are written under the normalized identity only. Reads accept a list of
keys so callers holding the raw transport form still find them. A periodic sweep
drops anything untouched for longer than the TTL; a missing session simply means
no dialog of that kind is in progress.
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from enum import Enum
from functools import lru_cache
from typing import Any, Callable, Generic, TypeVar

from pydantic import BaseModel, Field, field_validator, model_validator

from saarthi.config import get_settings
from saarthi.schemas.conversation import ActiveConversation, ConflictType

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SessionBase(BaseModel):
    updated_at: datetime | None = None


# =============================================================================
# Account creation
# =============================================================================


class AccountType(str, Enum):
    SELF = "self"
    PARENT = "parent"


class AccountCreationSession(SessionBase):
    stage: str = "account_type"
    account_type: AccountType | None = None
    data: dict[str, Any] = Field(default_factory=dict)
    parent_count: int | None = None
    parent_index: int = 0
    parents: list[dict[str, Any]] = Field(default_factory=list)


# =============================================================================
# General dialog
# =============================================================================


class DialogType(str, Enum):
    SYMPTOM = "symptom"
    FOLLOW_UP = "follow_up"
    DISAMBIGUATION = "disambiguation"


class MenuStage(str, Enum):
    """Menu markers carried in DialogSession.stage with no type set."""

    MAIN_MENU = "main_menu"
    MEDICATION_MENU = "medication_menu"
    MEDICATION_INFO_SELECTION = "medication_info_selection"


MENU_STAGES = {stage.value for stage in MenuStage}


class DialogSession(SessionBase):
    type: DialogType | None = None
    stage: str | None = None
    data: dict[str, Any] = Field(default_factory=dict)

    # Pending disambiguation
    options: list[ActiveConversation] = Field(default_factory=list)
    original_text: str | None = None
    conflict_type: ConflictType | None = None

    @property
    def is_disambiguation(self) -> bool:
        return self.type == DialogType.DISAMBIGUATION

    @property
    def is_menu(self) -> bool:
        return self.type is None and self.stage in MENU_STAGES


# =============================================================================
# Medication wizard
# =============================================================================


class WizardFlow(str, Enum):
    ADD = "add"
    UPDATE = "update"
    DELETE = "delete"


WIZARD_STEPS: dict[WizardFlow, tuple[str, ...]] = {
    WizardFlow.ADD: ("name", "time", "dosage", "frequency", "duration"),
    WizardFlow.UPDATE: ("start", "name", "dosage", "time", "frequency", "duration"),
    WizardFlow.DELETE: ("select", "confirm"),
}

# Early add-wizard stages were numbered
_LEGACY_ADD_STEPS = {1: "name", 2: "time"}


class WizardStage(BaseModel):
    """A wizard position as (flow, step) rather than a free-form stage string."""

    model_config = {"frozen": True}

    flow: WizardFlow
    step: str

    @model_validator(mode="after")
    def _check_step(self) -> "WizardStage":
        if self.step not in WIZARD_STEPS[self.flow]:
            raise ValueError(f"Unknown {self.flow.value} wizard step: {self.step}")
        return self

    @classmethod
    def parse(cls, raw: "str | int | WizardStage") -> "WizardStage":
        """Accept the stored forms: 1, 2, "1", "add_dosage", "update_time", ..."""
        if isinstance(raw, WizardStage):
            return raw
        if isinstance(raw, int) or (isinstance(raw, str) and raw.strip().isdigit()):
            number = int(raw)
            if number not in _LEGACY_ADD_STEPS:
                raise ValueError(f"Unknown numeric wizard stage: {raw}")
            return cls(flow=WizardFlow.ADD, step=_LEGACY_ADD_STEPS[number])

        flow_name, _, step = str(raw).partition("_")
        try:
            flow = WizardFlow(flow_name)
        except ValueError as e:
            raise ValueError(f"Unknown wizard stage: {raw}") from e
        return cls(flow=flow, step=step)

    def next(self) -> "WizardStage | None":
        steps = WIZARD_STEPS[self.flow]
        index = steps.index(self.step)
        if index + 1 >= len(steps):
            return None
        return WizardStage(flow=self.flow, step=steps[index + 1])

    def __str__(self) -> str:
        return f"{self.flow.value}_{self.step}"


class MedicationWizardSession(SessionBase):
    stage: WizardStage
    data: dict[str, Any] = Field(default_factory=dict)
    # Set when a caregiver runs the wizard for a parent
    target_phone: str | None = None
    is_proxy: bool = False

    @field_validator("stage", mode="before")
    @classmethod
    def _parse_stage(cls, value: Any) -> Any:
        if isinstance(value, (str, int)):
            return WizardStage.parse(value)
        return value


# =============================================================================
# Store
# =============================================================================

S = TypeVar("S", bound=SessionBase)


class SessionMap(Generic[S]):
    """get / set / delete / sweep for one session kind."""

    def __init__(self, name: str, clock: Callable[[], datetime] = utc_now):
        self.name = name
        self._clock = clock
        self._sessions: dict[str, S] = {}

    def get(self, *keys: str) -> S | None:
        """Return the first session found under any of the given keys."""
        for key in keys:
            if key and key in self._sessions:
                return self._sessions[key]
        return None

    def set(self, key: str, session: S) -> S:
        session.updated_at = self._clock()
        self._sessions[key] = session
        return session

    def delete(self, *keys: str) -> None:
        for key in keys:
            self._sessions.pop(key, None)

    def adopt(self, key: str, *legacy_keys: str) -> S | None:
        """Move a session stored under a legacy key to key, keeping its timestamp.

        A session already under key wins; the legacy copy is dropped.
        """
        for legacy in legacy_keys:
            if legacy and legacy != key and legacy in self._sessions:
                self._sessions.setdefault(key, self._sessions.pop(legacy))
        return self._sessions.get(key)

    def sweep(self, now: datetime, ttl: timedelta) -> int:
        expired = [
            key
            for key, session in self._sessions.items()
            if session.updated_at is None or now - session.updated_at > ttl
        ]
        for key in expired:
            del self._sessions[key]
        return len(expired)

    def __contains__(self, key: str) -> bool:
        return key in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)


class SessionStore:
    """All per-identity dialog state for this process."""

    def __init__(self, clock: Callable[[], datetime] = utc_now):
        self.clock = clock
        self.account: SessionMap[AccountCreationSession] = SessionMap("account", clock)
        self.dialog: SessionMap[DialogSession] = SessionMap("dialog", clock)
        self.medication: SessionMap[MedicationWizardSession] = SessionMap("medication", clock)

    def has_any(self, *keys: str) -> bool:
        return any(m.get(*keys) is not None for m in (self.account, self.dialog, self.medication))

    def adopt(self, keys: list[str]) -> None:
        """Re-key raw-form sessions under the normalized identity (keys[0])."""
        for session_map in (self.account, self.dialog, self.medication):
            session_map.adopt(keys[0], *keys[1:])

    def clear(self, *keys: str) -> None:
        for session_map in (self.account, self.dialog, self.medication):
            session_map.delete(*keys)

    def sweep(self, now: datetime | None = None, ttl: timedelta | None = None) -> int:
        """Drop sessions idle longer than ttl. Returns how many were removed."""
        now = now or self.clock()
        ttl = ttl or timedelta(minutes=get_settings().session_ttl_minutes)
        removed = sum(
            m.sweep(now, ttl) for m in (self.account, self.dialog, self.medication)
        )
        if removed:
            logger.info(f"🧹 Session sweep removed {removed} expired session(s)")
        return removed


@lru_cache
def get_session_store() -> SessionStore:
    """Process-wide store used by the API."""
    return SessionStore()


async def run_session_sweeper(store: SessionStore, interval_seconds: float) -> None:
    """Sweep expired sessions forever. Started from the app lifespan."""
    logger.info(f"🧹 Session sweeper started (every {interval_seconds:.0f}s)")
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            store.sweep()
        except Exception as e:
            logger.error(f"❌ Session sweep failed: {e}", exc_info=True)

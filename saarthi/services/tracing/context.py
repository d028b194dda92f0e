"""Trace context held in contextvars.

Context variables follow the task through every await, so all @traced calls made
while handling one message land under the same correlation_id.
"""

from contextvars import ContextVar
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from saarthi.models.function_trace import FunctionTrace


_correlation_id: ContextVar[UUID | None] = ContextVar("correlation_id", default=None)
_phone_number: ContextVar[str | None] = ContextVar("phone_number", default=None)
_sequence_counter: ContextVar[int] = ContextVar("sequence_counter", default=0)
_pending_traces: ContextVar[list["FunctionTrace"] | None] = ContextVar(
    "pending_traces", default=None
)


def start_trace_context(phone_number: str | None = None) -> UUID:
    """Open a trace context for one inbound message or job run.

    Args:
        phone_number: Normalized identity of the sender, if known

    Returns:
        The correlation_id shared by every trace recorded in this context
    """
    corr_id = uuid4()
    _correlation_id.set(corr_id)
    _phone_number.set(phone_number)
    _sequence_counter.set(0)
    _pending_traces.set([])
    return corr_id


def get_correlation_id() -> UUID | None:
    return _correlation_id.get()


def get_phone_number() -> str | None:
    return _phone_number.get()


def set_phone_number(phone_number: str | None) -> None:
    """Attach the identity once it is known (jobs discover it per user)."""
    _phone_number.set(phone_number)


def get_next_sequence_number() -> int:
    seq = _sequence_counter.get()
    _sequence_counter.set(seq + 1)
    return seq


def add_pending_trace(trace: "FunctionTrace") -> None:
    traces = _pending_traces.get()
    if traces is not None:
        traces.append(trace)


async def save_pending_traces(db: "AsyncSession") -> int:
    """Flush the traces captured so far into the given session.

    Returns:
        Number of traces added
    """
    traces = _pending_traces.get()
    if not traces:
        return 0

    db.add_all(traces)
    await db.flush()
    _pending_traces.set([])
    return len(traces)


def clear_trace_context() -> None:
    _correlation_id.set(None)
    _phone_number.set(None)
    _sequence_counter.set(0)
    _pending_traces.set(None)

"""Function-call tracing for inbound messages and scheduled jobs.

Usage:
    from saarthi.services.tracing import traced, start_trace_context, save_pending_traces

    correlation_id = start_trace_context(phone_number="+9198...")

    @traced(capture_args=["message_text"])
    async def handle(identity, message_text):
        ...

    await save_pending_traces(db)
    clear_trace_context()
"""

from saarthi.services.tracing.context import (
    clear_trace_context,
    get_correlation_id,
    get_phone_number,
    save_pending_traces,
    set_phone_number,
    start_trace_context,
)
from saarthi.services.tracing.decorator import traced

__all__ = [
    "traced",
    "start_trace_context",
    "get_correlation_id",
    "get_phone_number",
    "set_phone_number",
    "save_pending_traces",
    "clear_trace_context",
]

"""The @traced decorator.

    @traced
    async def detect(...): ...

    @traced(trace_type="ai_call", capture_args=["prompt"])
    async def generate_text(self, system_prompt, prompt): ...

Calls made outside a trace context run untouched.
"""

import asyncio
import functools
import time
from typing import Any, Callable, ParamSpec, TypeVar
from uuid import UUID

from saarthi.models.function_trace import FunctionTrace, FunctionTraceType
from saarthi.services.tracing.context import (
    add_pending_trace,
    get_correlation_id,
    get_next_sequence_number,
    get_phone_number,
)
from saarthi.services.tracing.sanitize import build_input_summary, build_output_summary

P = ParamSpec("P")
T = TypeVar("T")


def _record(
    fn: Callable,
    corr_id: UUID,
    seq: int,
    trace_type: str,
    input_summary: dict,
    output_summary: dict,
    started: float,
    error: BaseException | None,
) -> None:
    add_pending_trace(
        FunctionTrace(
            correlation_id=corr_id,
            sequence_number=seq,
            function_name=fn.__name__,
            module_path=fn.__module__,
            trace_type=trace_type,
            input_summary=input_summary,
            output_summary=output_summary,
            duration_ms=int((time.perf_counter() - started) * 1000),
            phone_number=get_phone_number(),
            is_error=error is not None,
            error_type=type(error).__name__ if error else None,
            error_message=str(error)[:500] if error else None,
        )
    )


def traced(
    func: Callable[P, T] | None = None,
    *,
    trace_type: str = FunctionTraceType.SERVICE.value,
    capture_args: list[str] | None = None,
) -> Any:
    """Record inputs, output, duration and errors of the wrapped call.

    Args:
        func: The function (when used as bare @traced)
        trace_type: "service", "ai_call" or "external_api"
        capture_args: Argument names to capture (None = all)
    """

    def decorator(fn: Callable[P, T]) -> Callable[P, T]:
        if asyncio.iscoroutinefunction(fn):

            @functools.wraps(fn)
            async def async_wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
                corr_id = get_correlation_id()
                if corr_id is None:
                    return await fn(*args, **kwargs)

                input_summary = build_input_summary(fn, args, kwargs, capture_args)
                seq = get_next_sequence_number()
                started = time.perf_counter()
                output_summary: dict = {}
                error: BaseException | None = None
                try:
                    result = await fn(*args, **kwargs)
                    output_summary = build_output_summary(result)
                    return result
                except Exception as e:
                    error = e
                    raise
                finally:
                    _record(fn, corr_id, seq, trace_type, input_summary, output_summary, started, error)

            return async_wrapper

        @functools.wraps(fn)
        def sync_wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            corr_id = get_correlation_id()
            if corr_id is None:
                return fn(*args, **kwargs)

            input_summary = build_input_summary(fn, args, kwargs, capture_args)
            seq = get_next_sequence_number()
            started = time.perf_counter()
            output_summary: dict = {}
            error: BaseException | None = None
            try:
                result = fn(*args, **kwargs)
                output_summary = build_output_summary(result)
                return result
            except Exception as e:
                error = e
                raise
            finally:
                _record(fn, corr_id, seq, trace_type, input_summary, output_summary, started, error)

        return sync_wrapper

    if func is not None:
        return decorator(func)
    return decorator

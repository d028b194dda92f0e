"""Safe, bounded summaries of traced inputs and outputs.

Message bodies can carry health details, so strings are truncated early and
credentials are redacted by argument name.
"""

import inspect
from datetime import date, datetime
from enum import Enum
from typing import Any, Callable
from uuid import UUID

MAX_STRING_LENGTH = 200
MAX_COLLECTION_ITEMS = 10
MAX_DEPTH = 3

SENSITIVE_FIELDS = {
    "password", "token", "secret", "key", "auth", "credential",
}

# Objects that only add noise to a trace
SKIPPED_ARGS = {"self", "cls", "db"}


def is_sensitive_field(name: str) -> bool:
    name_lower = name.lower()
    return any(sensitive in name_lower for sensitive in SENSITIVE_FIELDS)


def _truncate(text: str) -> str:
    if len(text) > MAX_STRING_LENGTH:
        return text[:MAX_STRING_LENGTH] + f"... ({len(text)} chars)"
    return text


def sanitize_value(value: Any, field_name: str = "", depth: int = 0) -> Any:
    """Convert a value into a JSON-safe, size-bounded representation."""
    if field_name and is_sensitive_field(field_name):
        return "[REDACTED]"
    if depth > MAX_DEPTH:
        return f"<{type(value).__name__}>"

    if value is None or isinstance(value, (bool, int, float)):
        return value
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, str):
        return _truncate(value)
    if isinstance(value, bytes):
        return f"<bytes: {len(value)} bytes>"
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()

    if isinstance(value, (list, tuple, set)):
        items = [sanitize_value(v, depth=depth + 1) for v in list(value)[:MAX_COLLECTION_ITEMS]]
        if len(value) > MAX_COLLECTION_ITEMS:
            return {"_type": type(value).__name__, "_total": len(value), "items": items}
        return items

    if isinstance(value, dict):
        result = {}
        for i, (k, v) in enumerate(value.items()):
            if i >= MAX_COLLECTION_ITEMS:
                result["_total"] = len(value)
                break
            result[str(k)] = sanitize_value(v, field_name=str(k), depth=depth + 1)
        return result

    if hasattr(value, "model_dump"):
        data = value.model_dump(mode="json")
        return {"_type": type(value).__name__, **sanitize_value(data, depth=depth + 1)}

    if hasattr(value, "__tablename__"):
        return {"_type": type(value).__name__, "id": str(getattr(value, "id", None))}

    return f"<{type(value).__name__}>"


def build_input_summary(
    func: Callable,
    args: tuple,
    kwargs: dict,
    capture_args: list[str] | None = None,
) -> dict:
    """Map call arguments to names and sanitize the ones worth keeping."""
    try:
        params = list(inspect.signature(func).parameters.keys())
    except (ValueError, TypeError):
        params = []

    named = {
        (params[i] if i < len(params) else f"arg_{i}"): arg for i, arg in enumerate(args)
    }
    named.update(kwargs)

    return {
        name: sanitize_value(value, field_name=name)
        for name, value in named.items()
        if name not in SKIPPED_ARGS and (capture_args is None or name in capture_args)
    }


def build_output_summary(result: Any) -> dict:
    sanitized = sanitize_value(result)
    if isinstance(sanitized, dict):
        return sanitized
    if isinstance(sanitized, list):
        return {"_items": sanitized}
    return {"_value": sanitized}

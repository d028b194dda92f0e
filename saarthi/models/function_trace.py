"""FunctionTrace model - stores automatic function call traces for debugging.

Rows are written by the @traced decorator. All traces from one inbound WhatsApp
message (or one scheduled task run) share a correlation_id, so a single dispatch
can be replayed stage by stage.
"""

import uuid
from enum import Enum

from sqlalchemy import Boolean, Index, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from saarthi.models.base import Base, TimestampMixin, UUIDMixin


class FunctionTraceType(str, Enum):
    """Types of function traces."""

    SERVICE = "service"
    AI_CALL = "ai_call"
    EXTERNAL_API = "external_api"


class FunctionTrace(Base, UUIDMixin, TimestampMixin):
    """Stores function call trace data captured by @traced decorator."""

    __tablename__ = "function_traces"

    correlation_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        nullable=False,
        index=True,
    )
    sequence_number: Mapped[int] = mapped_column(Integer, nullable=False)

    function_name: Mapped[str] = mapped_column(String(255), nullable=False)
    module_path: Mapped[str] = mapped_column(String(255), nullable=False)
    trace_type: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default=FunctionTraceType.SERVICE.value,
    )

    input_summary: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)
    output_summary: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)
    duration_ms: Mapped[int] = mapped_column(Integer, nullable=False)

    # Normalized sender identity
    phone_number: Mapped[str | None] = mapped_column(String(50), nullable=True)

    is_error: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    error_type: Mapped[str | None] = mapped_column(String(255), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        Index("ix_func_trace_corr_seq", "correlation_id", "sequence_number"),
        Index("ix_func_trace_created", "created_at"),
        Index("ix_func_trace_phone", "phone_number"),
        Index("ix_func_trace_error", "is_error"),
    )

    def __repr__(self) -> str:
        return (
            f"<FunctionTrace(id={self.id}, corr={self.correlation_id}, "
            f"func='{self.function_name}', seq={self.sequence_number}, "
            f"duration={self.duration_ms}ms, error={self.is_error})>"
        )

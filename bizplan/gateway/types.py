"""Core types and DTOs for the request gateway."""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from bizplan.core.config import Settings


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class ErrorKind(str, Enum):
    """Stable error taxonomy surfaced to gateway callers."""

    RATE_LIMIT_EXCEEDED = "rate_limit_exceeded"
    PAYMENT_REQUIRED = "payment_required"
    UNAUTHORIZED = "unauthorized"
    MODEL_UNAVAILABLE = "model_unavailable"
    REQUEST_TIMEOUT = "request_timeout"
    MALFORMED_RESPONSE = "malformed_response"
    UPSTREAM_UNKNOWN = "upstream_unknown"


class SchedulerEventKind(str, Enum):
    """Progress notifications emitted by the scheduler."""

    QUEUED = "queued"
    CACHE_HIT = "cache_hit"
    THROTTLED = "throttled"
    DISPATCHING = "dispatching"
    RETRY_SCHEDULED = "retry_scheduled"
    COMPLETED = "completed"
    FAILED = "failed"


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ChatMessage:
    """A single chat-completion message."""

    role: str
    content: str

    def to_dict(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


def coerce_messages(messages: Iterable[ChatMessage | Mapping[str, Any]]) -> list[dict[str, Any]]:
    """Normalize caller messages into plain ``{role, content}`` dicts."""
    result: list[dict[str, Any]] = []
    for message in messages:
        if isinstance(message, ChatMessage):
            result.append(message.to_dict())
        elif isinstance(message, Mapping):
            if "role" not in message or "content" not in message:
                raise ValueError(f"Message is missing 'role' or 'content': {dict(message)!r}")
            result.append(dict(message))
        else:
            raise TypeError(f"Unsupported message type: {type(message).__name__}")
    return result


# ---------------------------------------------------------------------------
# Pending request: owned by the scheduler queue until completed
# ---------------------------------------------------------------------------


@dataclass
class PendingRequest:
    """A submitted request waiting for (or undergoing) dispatch.

    ``future`` is the completion handle returned to the submitter. It is
    fulfilled exactly once, either with the raw upstream payload or with
    a ``GatewayError``.
    """

    messages: list[dict[str, Any]]
    model: str
    future: asyncio.Future
    retry_count: int = 0
    request_id: str = field(default_factory=lambda: uuid.uuid4().hex[:16])
    submitted_at: float = 0.0  # Scheduler clock reading at submission

    @property
    def done(self) -> bool:
        return self.future.done()


# ---------------------------------------------------------------------------
# Observer payload
# ---------------------------------------------------------------------------


@dataclass
class SchedulerEvent:
    """Notification delivered to scheduler subscribers."""

    kind: SchedulerEventKind
    request_id: str
    queue_size: int = 0
    retry_count: int = 0
    delay: float = 0.0  # Seconds (throttle or backoff), when relevant
    waited: float = 0.0  # Seconds since submission
    message: str = ""

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "request_id": self.request_id,
            "queue_size": self.queue_size,
            "retry_count": self.retry_count,
            "delay": self.delay,
            "waited": self.waited,
            "message": self.message,
        }


# ---------------------------------------------------------------------------
# Scheduler config
# ---------------------------------------------------------------------------


@dataclass
class SchedulerConfig:
    """Rate limit, retry and request configuration for the scheduler."""

    default_model: str = "qwen/qwen2.5-vl-72b-instruct:free"
    rate_capacity: int = 2  # Successful dispatches per window
    window_seconds: float = 60.0
    max_concurrent: int = 2
    max_retries: int = 5
    base_retry_delay: float = 10.0
    timeout_seconds: float = 60.0

    @classmethod
    def from_settings(cls, settings: Settings) -> SchedulerConfig:
        return cls(
            default_model=settings.openrouter_default_model,
            rate_capacity=settings.gateway_rpm,
            max_concurrent=settings.gateway_max_concurrent,
            max_retries=settings.gateway_max_retries,
            base_retry_delay=settings.gateway_base_retry_delay,
            timeout_seconds=settings.gateway_request_timeout,
        )

"""Helpers for business-plan sections built on top of the request gateway.

Sections ask the model for JSON. Models routinely wrap it in Markdown fences
or emit slightly broken JSON, so parsing falls back to ``json_repair``.
When content still cannot be used, the whole request is repeated a small
number of times. Gateway errors (rate limits, auth, timeouts) are not
retried here; the scheduler already handled what was recoverable.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
from collections.abc import Awaitable, Callable, Iterable, Mapping
from typing import Any

from json_repair import repair_json

from bizplan.gateway.errors import GatewayError
from bizplan.gateway.normalizer import extract_message_content
from bizplan.gateway.scheduler import RequestScheduler
from bizplan.gateway.types import ChatMessage

logger = logging.getLogger(__name__)

CONTENT_ATTEMPTS = 3
CONTENT_RETRY_DELAY = 1.5  # seconds

_FENCE_PATTERN = re.compile(r"^```(?:json)?\s*\n?|\n?```\s*$", re.IGNORECASE)


class ContentValidationError(Exception):
    """Raised when upstream text cannot be turned into a usable section."""


def extract_content(payload: Any) -> str:
    """Text of the first choice in a gateway payload."""
    try:
        return extract_message_content(payload)
    except GatewayError as e:
        raise ContentValidationError(e.message) from e


def strip_code_fences(text: str) -> str:
    return _FENCE_PATTERN.sub("", text.strip()).strip()


def safe_json_parse(raw: str) -> Any:
    """Parse JSON, repairing common LLM output errors when plain parsing fails."""
    try:
        return json.loads(raw)
    except json.JSONDecodeError as err:
        try:
            repaired = repair_json(raw)
            if repaired.strip() in ("", '""'):
                raise ValueError("nothing recoverable")
            return json.loads(repaired)
        except (ValueError, TypeError) as repair_err:
            raise ContentValidationError(
                "Failed to parse and repair JSON. Original error: "
                f"{err}\nRepair error: {repair_err}\nRaw string: {raw[:1000]}"
            ) from repair_err


async def generate_json_section(
    scheduler: RequestScheduler,
    messages: Iterable[ChatMessage | Mapping[str, Any]],
    model: str | None = None,
    validate: Callable[[Any], Any] | None = None,
    attempts: int = CONTENT_ATTEMPTS,
    delay: float = CONTENT_RETRY_DELAY,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> Any:
    """Request a JSON section and return the parsed (optionally validated) value.

    ``validate`` receives the parsed JSON and returns the value to hand back;
    it signals bad content by raising ``ContentValidationError``.
    """
    messages = list(messages)
    last_error: ContentValidationError | None = None

    for attempt in range(1, attempts + 1):
        payload = await scheduler.request(messages, model)
        try:
            cleaned = strip_code_fences(extract_content(payload))
            if not cleaned:
                raise ContentValidationError("Empty content after cleaning response")
            data = safe_json_parse(cleaned)
            return validate(data) if validate else data
        except ContentValidationError as e:
            last_error = e
            logger.warning("Section content invalid (attempt %d/%d): %s", attempt, attempts, e)
            if attempt < attempts:
                # Otherwise the next attempt replays the same cached payload
                scheduler.invalidate(messages, model)
                await sleep(delay)

    raise ContentValidationError(
        f"Failed to generate valid content after {attempts} attempts. Details: {last_error}"
    )

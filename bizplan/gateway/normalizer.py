"""Response Normalizer — structural checks on upstream payloads.

The gateway only confirms that a body carries extractable text at
``choices[0].message.content``. Whatever that text says is for callers
to interpret.
"""

from __future__ import annotations

from typing import Any

from bizplan.gateway.errors import MalformedUpstreamResponse, UpstreamUnknown


def extract_message_content(payload: Any) -> str:
    """Return the first choice's text, or raise if the payload has none.

    Raises:
        UpstreamUnknown: the body carries an ``error`` object.
        MalformedUpstreamResponse: the body is not an object, has no
            choices, or the first choice has no non-empty text.
    """
    if not payload or not isinstance(payload, dict):
        raise MalformedUpstreamResponse("Invalid response format from OpenRouter API")

    error = payload.get("error")
    if error:
        detail = error.get("message") if isinstance(error, dict) else str(error)
        raise UpstreamUnknown(f"API Error: {detail or 'Unknown error'}")

    choices = payload.get("choices")
    if not isinstance(choices, list) or not choices:
        raise MalformedUpstreamResponse("Empty response from OpenRouter API")

    first = choices[0]
    message = first.get("message") if isinstance(first, dict) else None
    content = message.get("content") if isinstance(message, dict) else None
    if not content or not isinstance(content, str):
        raise MalformedUpstreamResponse("Invalid response format from AI")

    return content

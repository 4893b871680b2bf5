"""Upstream client — the OpenRouter chat-completions boundary.

Translates a message list + model into a single POST and returns the decoded
body untouched. HTTP-status and transport failures are raised as
``UpstreamError``; interpreting the body is left to the scheduler.
"""

from __future__ import annotations

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from typing import Any

import httpx

from bizplan.core.config import Settings
from bizplan.gateway.errors import UpstreamError

logger = logging.getLogger(__name__)


class BaseUpstreamClient(ABC):
    """Base class for anything the scheduler can dispatch to."""

    @abstractmethod
    async def complete(self, messages: list[dict[str, Any]], model: str, timeout: float = 60.0) -> Any:
        """Send one completion request and return the raw decoded body."""
        ...


class OpenRouterClient(BaseUpstreamClient):
    """OpenRouter Chat Completions client."""

    api_url = "https://openrouter.ai/api/v1/chat/completions"

    def __init__(
        self,
        api_key: str,
        api_url: str | None = None,
        referer: str = "http://localhost:3001",
        title: str = "Business Plan Generator",
        temperature: float = 0.7,
        max_tokens: int = 4096,
    ):
        self.api_key = api_key
        self.api_url = api_url or self.api_url
        self.referer = referer
        self.title = title
        self.temperature = temperature
        self.max_tokens = max_tokens

    @classmethod
    def from_settings(cls, settings: Settings) -> OpenRouterClient:
        return cls(
            api_key=settings.openrouter_api_key,
            api_url=settings.openrouter_api_url,
            referer=settings.openrouter_referer,
            title=settings.openrouter_title,
            temperature=settings.gateway_temperature,
            max_tokens=settings.gateway_max_tokens,
        )

    def build_payload(self, messages: list[dict[str, Any]], model: str) -> dict:
        return {
            "model": model,
            "messages": messages,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "stream": False,
        }

    def build_headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "HTTP-Referer": self.referer,
            "Content-Type": "application/json",
            "X-Title": self.title,
        }

    async def complete(self, messages: list[dict[str, Any]], model: str, timeout: float = 60.0) -> Any:
        payload = self.build_payload(messages, model)
        logger.debug("OpenRouter request messages: %s", json.dumps(messages, ensure_ascii=False))

        try:
            # httpx applies its timeout per phase; wait_for bounds the whole call
            resp = await asyncio.wait_for(self._post(payload, timeout), timeout)
        except (httpx.TimeoutException, asyncio.TimeoutError) as e:
            raise UpstreamError(f"Timeout after {timeout}s", timed_out=True) from e
        except httpx.TransportError as e:
            raise UpstreamError(str(e) or type(e).__name__) from e

        if resp.status_code >= 400:
            message = self._error_message(resp)
            logger.warning("OpenRouter API error: %s", message)
            raise UpstreamError(message, status_code=resp.status_code)

        try:
            return resp.json()
        except ValueError:
            # Non-JSON 2xx body; the scheduler reports it as malformed
            return resp.text

    async def _post(self, payload: dict, timeout: float) -> httpx.Response:
        async with httpx.AsyncClient(timeout=timeout) as client:
            return await client.post(self.api_url, json=payload, headers=self.build_headers())

    @staticmethod
    def _error_message(resp: httpx.Response) -> str:
        message = f"Request failed with status code {resp.status_code}"
        try:
            data = resp.json()
        except ValueError:
            return message

        detail = ""
        if isinstance(data, dict):
            error = data.get("error")
            if isinstance(error, dict):
                detail = str(error.get("message") or "")
            elif error:
                detail = str(error)
        return f"{message}: {detail}" if detail else message

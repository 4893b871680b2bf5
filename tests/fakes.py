from collections import deque
from dataclasses import dataclass
from typing import Any

from bizplan.gateway.upstream import BaseUpstreamClient


def make_payload(text: str = "Hello world", model: str = "test/model") -> dict:
    """Minimal OpenRouter-style chat completion body."""
    return {
        "id": "gen-test",
        "model": model,
        "choices": [{"message": {"role": "assistant", "content": text}, "finish_reason": "stop"}],
        "usage": {"prompt_tokens": 10, "completion_tokens": 20},
    }


def user(content: str) -> list[dict[str, str]]:
    return [{"role": "user", "content": content}]


class FakeClock:
    """Manually advanced monotonic clock with a matching async sleep."""

    def __init__(self, start: float = 0.0):
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@dataclass
class UpstreamCall:
    messages: list[dict[str, Any]]
    model: str
    at: float
    timeout: float

    @property
    def content(self) -> str:
        return self.messages[-1]["content"]


class FakeUpstream(BaseUpstreamClient):
    """Scripted upstream: replays payloads / raises exceptions in order.

    When the script runs out it answers with a payload echoing the prompt.
    """

    def __init__(self, clock: FakeClock, script: list | None = None):
        self.clock = clock
        self.script = deque(script or [])
        self.calls: list[UpstreamCall] = []

    async def complete(self, messages, model, timeout=60.0):
        self.calls.append(UpstreamCall(messages=messages, model=model, at=self.clock(), timeout=timeout))
        if self.script:
            item = self.script.popleft()
        else:
            item = make_payload(f"reply to {messages[-1]['content']}")
        if isinstance(item, BaseException):
            raise item
        return item



"""Response Cache — exact-match memo of successful upstream payloads.

Keys are a deterministic JSON serialization of the ordered message list and
the model identifier. Entries never expire and are never evicted by the cache
itself; only an explicit ``discard``/``clear`` removes them.
"""

from __future__ import annotations

import json
import logging
from typing import Any

logger = logging.getLogger(__name__)


class ResponseCache:
    """In-memory fingerprint → raw payload mapping."""

    def __init__(self):
        self._entries: dict[str, dict[str, Any]] = {}
        self.hits = 0
        self.misses = 0

    @staticmethod
    def key(messages: list[dict[str, Any]], model: str) -> str:
        """Fingerprint for a request; equal content gives an equal key."""
        return json.dumps(
            {"messages": messages, "model": model},
            sort_keys=True,
            ensure_ascii=False,
            separators=(",", ":"),
        )

    def get(self, key: str) -> dict[str, Any] | None:
        payload = self._entries.get(key)
        if payload is None:
            self.misses += 1
        else:
            self.hits += 1
        return payload

    def put(self, key: str, payload: dict[str, Any]) -> None:
        self._entries[key] = payload

    def discard(self, key: str) -> bool:
        """Remove one entry on explicit request. Returns True if it existed."""
        return self._entries.pop(key, None) is not None

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def clear(self) -> int:
        """Drop every entry. Returns count of cleared entries."""
        count = len(self._entries)
        self._entries.clear()
        logger.info("Response cache cleared (%d entries)", count)
        return count

    def get_stats(self) -> dict:
        return {
            "size": len(self._entries),
            "hits": self.hits,
            "misses": self.misses,
        }

"""
Bot Bu - Response Cache
========================
In-memory map from normalised message text to a computed answer.

  • Key = lower-cased, trimmed *raw* message (not the expanded query).
  • An entry older than ``ttl_seconds`` is never served; it is dropped
    on read and the caller recomputes.
  • ``put`` always overwrites with a fresh timestamp.
  • No size eviction: the cache lives for the process and is per instance.
  • No invalidation hook: the knowledge base is immutable for the
    process lifetime.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class CacheEntry:
    data: dict[str, Any]
    timestamp: float


class ResponseCache:
    """
    TTL cache for RAG answers.

    Parameters
    ----------
    ttl_seconds
        Entry lifetime.
    clock
        Returns the current time in seconds; injectable for tests.
    """

    __slots__ = ("_ttl", "_clock", "_entries")

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.time) -> None:
        self._ttl = ttl_seconds
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}


    @staticmethod
    def make_key(message: str) -> str:
        return message.lower().strip()


    def get(self, key: str) -> CacheEntry | None:
        """Return the live entry for ``key`` or ``None`` on miss / expiry."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() - entry.timestamp >= self._ttl:
            self._entries.pop(key, None)
            return None
        return entry


    def put(self, key: str, data: dict[str, Any]) -> CacheEntry:
        entry = CacheEntry(data=data, timestamp=self._clock())
        self._entries[key] = entry
        return entry


    def clear(self) -> None:
        self._entries.clear()


    def __len__(self) -> int:
        return len(self._entries)


    def __repr__(self) -> str:
        return f"ResponseCache(ttl={self._ttl}s, entries={len(self._entries)})"

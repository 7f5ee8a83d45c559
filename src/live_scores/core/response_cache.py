"""Short-lived in-memory caches.

``ResponseCache`` collapses bursts of identical client polls into one
computation. Its TTL is seconds-scale, while the sync cache's max-age is
days-scale: this one absorbs request bursts, the sync cache absorbs upstream
load.

``BoundedCache`` is the raw-response cache used by the upstream adapter. Same
TTL semantics plus an entry-count ceiling.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Generic, Optional, TypeVar

from .models import Stage

logger = logging.getLogger(__name__)

T = TypeVar("T")

Clock = Callable[[], float]


def make_key(content_type: int, competition_id: str, division: Optional[str] = None) -> str:
    """Deterministic cache key for a (competition, division) request."""
    return json.dumps([int(content_type), str(competition_id), division or "all"])


@dataclass
class _Entry(Generic[T]):
    value: T
    stored_at: float


class ResponseCache:
    """TTL memoization of computed stage lists, keyed by ``make_key``."""

    def __init__(self, ttl: float = 5.0, clock: Clock = time.monotonic):
        self._ttl = ttl
        self._clock = clock
        self._entries: dict[str, _Entry[list[Stage]]] = {}

    @property
    def ttl(self) -> float:
        return self._ttl

    def get(self, key: str) -> Optional[list[Stage]]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        age = self._clock() - entry.stored_at
        if age >= self._ttl:
            del self._entries[key]
            return None
        logger.debug("Response cache hit for %s (age: %.1fs)", key, age)
        return entry.value

    def put(self, key: str, stages: list[Stage]) -> None:
        self.evict_expired()
        self._entries[key] = _Entry(value=stages, stored_at=self._clock())

    def evict_expired(self) -> int:
        now = self._clock()
        expired = [k for k, e in self._entries.items() if now - e.stored_at >= self._ttl]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def clear(self) -> None:
        self._entries.clear()

    def stats(self) -> dict[str, Any]:
        self.evict_expired()
        return {"size": len(self._entries), "ttl": self._ttl}

    def __len__(self) -> int:
        return len(self._entries)


class BoundedCache(Generic[T]):
    """TTL cache with a fixed entry ceiling.

    When the ceiling is reached, the single entry with the oldest store time is
    evicted before the new one is inserted.
    """

    def __init__(self, max_entries: int = 100, ttl: float = 5.0, clock: Clock = time.monotonic):
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self._max_entries = max_entries
        self._ttl = ttl
        self._clock = clock
        self._entries: dict[str, _Entry[T]] = {}

    def get(self, key: str) -> Optional[T]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() - entry.stored_at >= self._ttl:
            del self._entries[key]
            return None
        return entry.value

    def put(self, key: str, value: T) -> None:
        if key not in self._entries and len(self._entries) >= self._max_entries:
            oldest = min(self._entries, key=lambda k: self._entries[k].stored_at)
            del self._entries[oldest]
            logger.debug("Raw cache full (%d entries); evicted %s", self._max_entries, oldest)
        self._entries[key] = _Entry(value=value, stored_at=self._clock())

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

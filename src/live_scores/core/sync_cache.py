"""Incremental-sync cache for live score snapshots.

Holds the latest full snapshot per competition and keeps it fresh by asking
the upstream only for scorecards updated after the newest ``updated`` value
seen so far. A full refetch happens when the snapshot is older than max-age,
and entries nobody has asked for within the idle window are dropped.

Runs on a single asyncio loop: mutations happen between awaits, so there are
no locks. Concurrent cold fetches for the same competition share one upstream
call.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Optional, Protocol

from .exceptions import LiveScoresError
from .models import Stage, count_scorecards, latest_update

logger = logging.getLogger(__name__)

DEFAULT_MAX_AGE_SECONDS = 3 * 24 * 60 * 60
DEFAULT_IDLE_EVICTION_SECONDS = 60 * 60

CacheKey = tuple[int, str]


class Upstream(Protocol):
    async def fetch(
        self,
        content_type: int,
        competition_id: str,
        updated_after: Optional[datetime] = None,
    ) -> list[Stage]: ...


@dataclass
class SyncEntry:
    stages: list[Stage]
    latest_updated: datetime
    fetched_at: float
    accessed_at: float


def merge_stages(cached: list[Stage], updates: list[Stage]) -> list[Stage]:
    """Merge changed scorecards into a snapshot.

    Scorecards are matched by (stage id, scorecard id): a match replaces the
    cached scorecard in place, anything else is appended. Unknown stages are
    appended whole. Nothing is ever removed, so merging the same payload twice
    gives the same result as merging it once.
    """
    merged: dict[str, Stage] = {
        stage.stage_id: stage.model_copy(update={"competitors": list(stage.competitors)})
        for stage in cached
    }

    for update in updates:
        stage = merged.get(update.stage_id)
        if stage is None:
            merged[update.stage_id] = update.model_copy(update={"competitors": list(update.competitors)})
            continue

        positions = {c.merge_id: i for i, c in enumerate(stage.competitors)}
        for scorecard in update.competitors:
            index = positions.get(scorecard.merge_id)
            if index is None:
                positions[scorecard.merge_id] = len(stage.competitors)
                stage.competitors.append(scorecard)
            else:
                stage.competitors[index] = scorecard

    return list(merged.values())


def filter_division(stages: list[Stage], division: Optional[str]) -> list[Stage]:
    """Project a snapshot onto one division code; ``None``/'all' is a no-op."""
    if not division or division == "all":
        return stages
    return [
        stage.model_copy(update={
            "competitors": [c for c in stage.competitors if c.division_code == division],
        })
        for stage in stages
    ]


class SyncCache:
    """Per-competition snapshot cache with incremental refresh."""

    def __init__(
        self,
        upstream: Upstream,
        max_age: float = DEFAULT_MAX_AGE_SECONDS,
        idle_eviction: float = DEFAULT_IDLE_EVICTION_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._upstream = upstream
        self._max_age = max_age
        self._idle_eviction = idle_eviction
        self._clock = clock
        self._entries: dict[CacheKey, SyncEntry] = {}
        self._inflight: dict[CacheKey, asyncio.Task] = {}
        self._generations: dict[CacheKey, int] = {}
        self._clear_count = 0

    async def get(
        self,
        content_type: int,
        competition_id: str,
        division: Optional[str] = None,
    ) -> list[Stage]:
        """Return the competition's stages, optionally projected onto a division.

        Raises:
            LiveScoresError: The full fetch failed and there is nothing to serve.
        """
        now = self._clock()
        self.evict_idle(now)

        key = (int(content_type), str(competition_id))
        entry = self._entries.get(key)

        if entry is None or now - entry.fetched_at >= self._max_age:
            if entry is not None:
                logger.info("Sync cache entry %s exceeded max age; full refetch", key)
            entry = await self._full_fetch(key)
        else:
            entry.accessed_at = now
            entry = await self._refresh(key, entry, now)

        return filter_division(entry.stages, division)

    async def _full_fetch(self, key: CacheKey) -> SyncEntry:
        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._load(key, self._generation(key)))
            self._inflight[key] = task
            task.add_done_callback(lambda done: self._forget_inflight(key, done))
        else:
            logger.debug("Joining in-flight full fetch for %s", key)
        return await asyncio.shield(task)

    def _forget_inflight(self, key: CacheKey, task: asyncio.Task) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]

    def _generation(self, key: CacheKey) -> tuple[int, int]:
        return self._clear_count, self._generations.get(key, 0)

    async def _load(self, key: CacheKey, generation: tuple[int, int]) -> SyncEntry:
        now = self._clock()
        stages = await self._upstream.fetch(*key)
        entry = SyncEntry(
            stages=stages,
            latest_updated=latest_update(stages),
            fetched_at=now,
            accessed_at=now,
        )
        if self._generation(key) != generation:
            # cleared while the call was outstanding
            logger.debug("Discarding late full fetch result for %s", key)
            return entry
        self._entries[key] = entry
        logger.info(
            "Full fetch for %s: %d stages, %d scorecards, latest update %s",
            key, len(stages), count_scorecards(stages), entry.latest_updated.isoformat(),
        )
        return entry

    async def _refresh(self, key: CacheKey, entry: SyncEntry, now: float) -> SyncEntry:
        try:
            updates = await self._upstream.fetch(*key, updated_after=entry.latest_updated)
        except LiveScoresError as exc:
            logger.warning("Incremental update for %s failed, serving cached snapshot: %s", key, exc)
            return entry

        if self._entries.get(key) is not entry:
            # replaced or cleared while the call was outstanding
            logger.debug("Discarding late incremental result for %s", key)
            return self._entries.get(key, entry)

        changed = count_scorecards(updates)
        if changed == 0:
            entry.fetched_at = now
            return entry

        merged = merge_stages(entry.stages, updates)
        new_entry = SyncEntry(
            stages=merged,
            latest_updated=max(entry.latest_updated, latest_update(merged)),
            fetched_at=now,
            accessed_at=now,
        )
        self._entries[key] = new_entry
        logger.info(
            "Merged %d updated scorecards into %s (latest update %s)",
            changed, key, new_entry.latest_updated.isoformat(),
        )
        return new_entry

    def evict_idle(self, now: Optional[float] = None) -> int:
        """Drop entries that have not been accessed within the idle window."""
        now = self._clock() if now is None else now
        idle = [k for k, e in self._entries.items() if now - e.accessed_at > self._idle_eviction]
        for key in idle:
            del self._entries[key]
            logger.info("Evicted idle sync cache entry %s", key)
        return len(idle)

    def clear(self, content_type: Optional[int] = None, competition_id: Optional[str] = None) -> None:
        """Remove one entry when both ids are given, otherwise everything.

        Full fetches still in flight for cleared keys will not store their result.
        """
        if content_type is not None and competition_id is not None:
            key = (int(content_type), str(competition_id))
            self._entries.pop(key, None)
            self._inflight.pop(key, None)
            self._generations[key] = self._generations.get(key, 0) + 1
        else:
            self._entries.clear()
            self._inflight.clear()
            self._clear_count += 1

    def latest_updated(self, content_type: int, competition_id: str) -> Optional[datetime]:
        entry = self._entries.get((int(content_type), str(competition_id)))
        return entry.latest_updated if entry else None

    def stats(self) -> dict[str, Any]:
        now = self._clock()
        return {
            "count": len(self._entries),
            "max_age": self._max_age,
            "idle_eviction": self._idle_eviction,
            "entries": {
                f"{ct}-{cid}": {
                    "age": now - entry.fetched_at,
                    "idle_time": now - entry.accessed_at,
                    "scorecard_count": count_scorecards(entry.stages),
                }
                for (ct, cid), entry in self._entries.items()
            },
        }

    def __contains__(self, key: CacheKey) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

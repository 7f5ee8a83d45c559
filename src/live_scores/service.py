"""Request flow: response cache → sync cache → score engine.

``LiveScoresService`` owns one instance of each cache and the upstream client.
Nothing here is global, so several services (one per test, say) can coexist.
"""

from __future__ import annotations

import logging
import re
import time
from typing import Any, Callable, Iterable, Optional

from .config import Settings
from .core.clients.ssi import DIVISION_DISPLAY_MAP, SsiClient
from .core.exceptions import ValidationError
from .core.models import CompetitorResult, Stage
from .core.response_cache import BoundedCache, ResponseCache, make_key
from .core.scoring import (
    calculate_competitor_scores,
    calculate_max_possible_scores,
    compare_competitors,
)
from .core.sync_cache import SyncCache, Upstream

logger = logging.getLogger(__name__)

VALID_DIVISIONS = ("all", *DIVISION_DISPLAY_MAP)

_NUMERIC = re.compile(r"\d+", re.ASCII)


def validate_request(content_type: Any, competition_id: Any, division: Optional[str] = None) -> None:
    """Reject malformed competition identifiers and unknown division codes."""
    if not _NUMERIC.fullmatch(str(content_type)) or int(content_type) <= 0:
        raise ValidationError("content_type must be a positive integer")
    if not _NUMERIC.fullmatch(str(competition_id)):
        raise ValidationError("competition_id must be numeric")
    if division and division not in VALID_DIVISIONS:
        raise ValidationError(f"Invalid division code. Valid values: {', '.join(VALID_DIVISIONS)}")


def parse_stage_list(value: Optional[str]) -> set[int]:
    """Parse a comma-separated list of stage numbers like '1, 3,7'."""
    if not value or not value.strip():
        return set()
    stages = set()
    for part in value.split(","):
        part = part.strip()
        if not part:
            continue
        if not _NUMERIC.fullmatch(part):
            raise ValidationError(f"Invalid stage number: {part!r}")
        stages.add(int(part))
    return stages


class LiveScoresService:
    """Serves scored stage lists for competitions."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        upstream: Optional[Upstream] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.settings = settings or Settings()
        if upstream is None:
            upstream = SsiClient(
                api_url=self.settings.ssi_graphql_url,
                timeout=self.settings.ssi_timeout_seconds,
                raw_cache=BoundedCache(
                    max_entries=self.settings.raw_cache_max_entries,
                    ttl=self.settings.raw_cache_ttl_seconds,
                    clock=clock,
                ),
            )
        self.upstream = upstream
        self.sync_cache = SyncCache(
            upstream,
            max_age=self.settings.sync_cache_max_age_seconds,
            idle_eviction=self.settings.sync_cache_idle_eviction_seconds,
            clock=clock,
        )
        self.response_cache = ResponseCache(ttl=self.settings.response_cache_ttl_seconds, clock=clock)

    async def get_stages(
        self,
        content_type: int,
        competition_id: str,
        division: Optional[str] = None,
    ) -> list[Stage]:
        """Stages with max possible scores, served from the response cache when fresh."""
        validate_request(content_type, competition_id, division)
        key = make_key(content_type, competition_id, division)

        cached = self.response_cache.get(key)
        if cached is not None:
            return cached

        start = time.monotonic()
        stages = await self.sync_cache.get(content_type, competition_id, division)
        stages = calculate_max_possible_scores(stages)
        self.response_cache.put(key, stages)
        logger.info("Computed %d stages for %s in %.2fs", len(stages), key, time.monotonic() - start)
        return stages

    def compute_scores(
        self,
        stages: list[Stage],
        category: Optional[str] = None,
        excluded_stages: Optional[Iterable[int]] = None,
    ) -> list[CompetitorResult]:
        return calculate_competitor_scores(stages, category=category, excluded_stages=excluded_stages)

    def compare_competitors(
        self,
        stages: list[Stage],
        competitor_keys: list[str],
        category: Optional[str] = None,
        excluded_stages: Optional[Iterable[int]] = None,
    ) -> list[CompetitorResult]:
        if not competitor_keys:
            raise ValidationError("At least one competitor key is required")
        return compare_competitors(
            stages, competitor_keys, category=category, excluded_stages=excluded_stages,
        )

    def clear_sync_cache(self, content_type: Optional[int] = None, competition_id: Optional[str] = None) -> None:
        self.sync_cache.clear(content_type, competition_id)
        logger.info(
            "Cleared sync cache (%s)",
            f"{content_type}-{competition_id}"
            if content_type is not None and competition_id is not None else "all entries",
        )

    def sync_cache_stats(self) -> dict[str, Any]:
        return self.sync_cache.stats()

    def response_cache_stats(self) -> dict[str, Any]:
        return self.response_cache.stats()

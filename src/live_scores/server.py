"""Live Scores MCP Server.

FastMCP server exposing IPSC live scores, rankings and competitor comparison
for ShootnScoreIt matches, plus cache maintenance tools.
Run: live-scores-mcp
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from mcp.server.fastmcp import FastMCP
from mcp.types import ToolAnnotations

from .config import Settings
from .core.models import CompetitorResult
from .core.scoring import common_stages, exclude_stages as drop_stages
from .service import LiveScoresService, parse_stage_list

logger = logging.getLogger(__name__)

READ_ONLY = ToolAnnotations(readOnlyHint=True, destructiveHint=False, idempotentHint=True, openWorldHint=True)
MAINTENANCE = ToolAnnotations(readOnlyHint=False, destructiveHint=True, idempotentHint=True, openWorldHint=False)

_service: Optional[LiveScoresService] = None


def get_service() -> LiveScoresService:
    global _service
    if _service is None:
        _service = LiveScoresService(Settings.from_env())
    return _service


@asynccontextmanager
async def lifespan(server: FastMCP) -> AsyncIterator[None]:
    """Configure logging and build the service; caches live for the process only."""
    service = get_service()
    logging.basicConfig(
        level=service.settings.log_level,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )
    logger.info("Live scores service ready (upstream: %s)", service.settings.ssi_graphql_url)
    yield


mcp = FastMCP(
    "Live Scores",
    instructions="IPSC match results from ShootnScoreIt — per-stage scores, overall rankings by category, and head-to-head competitor comparison.",
    lifespan=lifespan,
)


def _results_to_dict(results: list[CompetitorResult]) -> list[dict]:
    return [
        {"rank": i, **r.model_dump(mode="json")}
        for i, r in enumerate(results, start=1)
    ]


def _ranking_summary(results: list[CompetitorResult], stage_count: int) -> str:
    if not results:
        return "No competitors matched."
    leader = results[0]
    return f"{len(results)} competitors over {stage_count} stages. Leader: {leader.name} ({leader.total_score:.2f} points)"


# ─── Tool 1: Stages ──────────────────────────────────────────────────────────


@mcp.tool(annotations=READ_ONLY)
async def match_stages(content_type: int, competition_id: str, division: str = "all") -> dict:
    """Raw stage results for a match — every scorecard with hits, time, points and hit factor.

    Args:
        content_type: ShootnScoreIt content type (22 for IPSC matches).
        competition_id: Match id from the ShootnScoreIt URL.
        division: Division code ('hg1', 'hg2', 'hg3', 'hg5', 'hg12', 'hg18') or 'all'.
    """
    stages = await get_service().get_stages(content_type, competition_id, division)
    return {
        "title": "Stages",
        "stages": [s.model_dump(mode="json") for s in stages],
        "summary": f"{len(stages)} stages, {sum(len(s.competitors) for s in stages)} scorecards",
    }


# ─── Tool 2: Results ─────────────────────────────────────────────────────────


@mcp.tool(annotations=READ_ONLY)
async def match_results(
    content_type: int,
    competition_id: str,
    division: str = "all",
    category: str = "",
    exclude_stages: str = "",
) -> dict:
    """Overall ranking — stage scores normalized to the best hit factor, summed per competitor.

    Args:
        content_type: ShootnScoreIt content type (22 for IPSC matches).
        competition_id: Match id from the ShootnScoreIt URL.
        division: Division code or 'all'.
        category: Optional category code (e.g. 'S' Senior, 'L' Lady). The best
                  competitor in the category gets 100% of each stage.
        exclude_stages: Comma-separated stage numbers to leave out, e.g. '3,7'.
    """
    service = get_service()
    excluded = parse_stage_list(exclude_stages)
    stages = await service.get_stages(content_type, competition_id, division)
    results = service.compute_scores(stages, category=category or None, excluded_stages=excluded)
    stage_count = sum(1 for s in drop_stages(stages, excluded) if s.competitors)
    return {
        "title": "Results",
        "category": category or "Overall",
        "excluded_stages": sorted(excluded),
        "results": _results_to_dict(results),
        "summary": _ranking_summary(results, stage_count),
    }


# ─── Tool 3: Compare ─────────────────────────────────────────────────────────


@mcp.tool(annotations=READ_ONLY)
async def compare_competitors(
    content_type: int,
    competition_id: str,
    competitor_keys: list[str],
    division: str = "all",
    category: str = "",
    exclude_stages: str = "",
) -> dict:
    """Head-to-head comparison over the stages every selected competitor has shot.

    Args:
        content_type: ShootnScoreIt content type (22 for IPSC matches).
        competition_id: Match id from the ShootnScoreIt URL.
        competitor_keys: Competitor numbers (or 'Name|Division' when a number is missing).
        division: Division code or 'all'.
        category: Optional category code scoping the hit-factor pool.
        exclude_stages: Comma-separated stage numbers to leave out.
    """
    service = get_service()
    excluded = parse_stage_list(exclude_stages)
    stages = await service.get_stages(content_type, competition_id, division)
    results = service.compare_competitors(
        stages, competitor_keys, category=category or None, excluded_stages=excluded,
    )
    stage_count = len(common_stages(drop_stages(stages, excluded), competitor_keys))
    return {
        "title": "Comparison",
        "competitor_keys": competitor_keys,
        "common_stages": stage_count,
        "results": _results_to_dict(results),
        "summary": _ranking_summary(results, stage_count) if stage_count
        else "The selected competitors have no stages in common.",
    }


# ─── Tool 4: Cache maintenance ───────────────────────────────────────────────


@mcp.tool(annotations=MAINTENANCE)
async def clear_sync_cache(content_type: Optional[int] = None, competition_id: Optional[str] = None) -> dict:
    """Drop cached match snapshots so the next request does a full fetch.

    Args:
        content_type: Content type of the match to clear. Omit both arguments to clear everything.
        competition_id: Match id to clear.
    """
    service = get_service()
    service.clear_sync_cache(content_type, competition_id)
    return {"cleared": True, "sync_cache": service.sync_cache_stats()}


@mcp.tool(annotations=READ_ONLY)
async def cache_stats() -> dict:
    """Sync cache and response cache statistics."""
    service = get_service()
    sync_stats = service.sync_cache_stats()
    response_stats = service.response_cache_stats()
    return {
        "sync_cache": sync_stats,
        "response_cache": response_stats,
        "summary": f"{sync_stats['count']} match snapshots, {response_stats['size']} cached responses",
    }


def main():
    """Entry point for the CLI command."""
    mcp.run()


if __name__ == "__main__":
    main()

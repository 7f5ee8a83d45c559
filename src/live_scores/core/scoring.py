"""Stage scoring engine.

Turns raw hit-factor telemetry into comparable stage scores. Every stage score
is a ratio to the best hit factor in the comparison pool times the stage's
maximum possible score, so the top scorer of the pool always gets 100% of the
stage regardless of stronger shooters outside the pool.

All functions are pure: results are recomputed per call from the stage list.
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional

from .exceptions import ScoringError
from .models import (
    Competitor,
    CompetitorResult,
    Hits,
    PowerFactor,
    Stage,
    StageScore,
)

logger = logging.getLogger(__name__)

POINTS_PER_HIT = 5
PROCEDURE_PENALTY = 10

HIT_VALUES: dict[PowerFactor, dict[str, int]] = {
    PowerFactor.MAJOR: {"A": 5, "C": 4, "D": 2, "M": -10, "NS": -10},
    PowerFactor.MINOR: {"A": 5, "C": 3, "D": 1, "M": -10, "NS": -10},
}


def calculate_max_possible_scores(stages: list[Stage]) -> list[Stage]:
    """Return copies of ``stages`` with ``max_possible_score`` populated.

    An authoritative value supplied by the upstream (a 100% reference row) is
    kept. Otherwise the maximum is derived once from the first competitor's
    hit count, since every scorecard on a stage records the same number of
    scoring hits. Stages without competitors have no defined maximum.
    """
    result = []
    for stage in stages:
        if not stage.competitors:
            result.append(stage.model_copy(update={"max_possible_score": None}))
        elif stage.max_possible_score is not None and stage.max_possible_score > 0:
            result.append(stage)
        else:
            hits = stage.competitors[0].hits
            max_score = float((hits.A + hits.C + hits.D + hits.M) * POINTS_PER_HIT)
            result.append(stage.model_copy(update={"max_possible_score": max_score}))
    return result


def hit_score(hits: Hits, power_factor: PowerFactor) -> int:
    """Points the hits alone are worth under the competitor's power factor."""
    values = HIT_VALUES[power_factor]
    return (
        hits.A * values["A"]
        + hits.C * values["C"]
        + hits.D * values["D"]
        + hits.M * values["M"]
        + hits.NS * values["NS"]
    )


def infer_procedures(competitor: Competitor) -> float:
    """Approximate procedural penalties from unexplained point loss.

    Any shortfall between what the hits are worth and the reported points is
    attributed to 10-point procedurals. This is a heuristic, not the match
    director's penalty record.
    """
    gap = hit_score(competitor.hits, competitor.power_factor) - competitor.points
    return max(0.0, gap / PROCEDURE_PENALTY)


def _in_category(competitor: Competitor, category: Optional[str]) -> bool:
    return not category or competitor.category == category


def pool_max_hit_factor(competitors: Iterable[Competitor], category: Optional[str] = None) -> float:
    """Best positive hit factor among competitors in the category pool, else 0."""
    hit_factors = [
        c.hit_factor for c in competitors
        if _in_category(c, category) and c.hit_factor and c.hit_factor > 0
    ]
    return max(hit_factors) if hit_factors else 0.0


def score_stage(competitor: Competitor, stage: Stage, max_hit_factor: float) -> StageScore:
    """Score one competitor on one stage against the pool's best hit factor."""
    max_possible_score = stage.max_possible_score or 0.0
    if max_hit_factor <= 0:
        score = 0.0
        procedures = 0.0
    else:
        score = (competitor.hit_factor / max_hit_factor) * max_possible_score
        procedures = infer_procedures(competitor)

    return StageScore(
        stage=stage.number,
        stage_name=stage.display_name,
        score=score,
        max_possible_score=max_possible_score,
        procedures=procedures,
        hits=competitor.hits,
        time=competitor.time,
        points=competitor.points,
        hit_factor=competitor.hit_factor,
    )


def exclude_stages(stages: list[Stage], excluded: Optional[Iterable[int]]) -> list[Stage]:
    """Drop stages whose display number is in ``excluded``."""
    if not excluded:
        return list(stages)
    excluded = set(excluded)
    return [s for s in stages if s.number not in excluded]


def common_stages(stages: list[Stage], competitor_keys: list[str]) -> list[Stage]:
    """Stages on which every requested competitor has a scorecard."""
    return [
        stage for stage in stages
        if all(any(c.competitor_key == key for c in stage.competitors) for key in competitor_keys)
    ]


def _aggregate(
    stages: list[Stage],
    roster: list[Competitor],
    category: Optional[str],
) -> list[CompetitorResult]:
    results: dict[str, CompetitorResult] = {
        c.competitor_key: CompetitorResult(
            competitor_key=c.competitor_key,
            name=c.name,
            division=c.division,
        )
        for c in roster
    }

    for stage in stages:
        if not stage.competitors:
            continue
        if stage.max_possible_score is None:
            raise ScoringError(
                f"Stage {stage.number} has competitors but no max possible score; "
                "run calculate_max_possible_scores first"
            )

        max_hit_factor = pool_max_hit_factor(stage.competitors, category)
        for competitor in stage.competitors:
            entry = results.get(competitor.competitor_key)
            if entry is None or not _in_category(competitor, category):
                continue
            stage_score = score_stage(competitor, stage, max_hit_factor)
            entry.stage_scores.append(stage_score)
            entry.total_score += stage_score.score

    # sorted() is stable, so ties keep roster order
    return sorted(results.values(), key=lambda r: r.total_score, reverse=True)


def calculate_competitor_scores(
    stages: list[Stage],
    category: Optional[str] = None,
    excluded_stages: Optional[Iterable[int]] = None,
) -> list[CompetitorResult]:
    """Rank every competitor in the category over the included stages.

    Args:
        stages: Stages with ``max_possible_score`` populated.
        category: Optional category (e.g. 'S', 'L'); scopes both the roster and
            the hit-factor pool.
        excluded_stages: Stage numbers to leave out of the totals.

    Returns:
        Results sorted by descending total score.
    """
    included = exclude_stages(stages, excluded_stages)

    roster: dict[str, Competitor] = {}
    for stage in included:
        for competitor in stage.competitors:
            if _in_category(competitor, category):
                roster.setdefault(competitor.competitor_key, competitor)

    return _aggregate(included, list(roster.values()), category)


def compare_competitors(
    stages: list[Stage],
    competitor_keys: list[str],
    category: Optional[str] = None,
    excluded_stages: Optional[Iterable[int]] = None,
) -> list[CompetitorResult]:
    """Rank the requested competitors over the stages they all shot.

    Stage exclusion is applied before the common-stage intersection. A
    competitor with no overlap against the others collapses the stage set to
    empty, and the result is an empty ranking. Requested competitors outside
    the category are left out of the roster.
    """
    included = common_stages(exclude_stages(stages, excluded_stages), competitor_keys)
    if not included:
        logger.debug("No common stages for competitors %s", competitor_keys)
        return []

    # every requested key has a scorecard on every common stage
    by_key = {c.competitor_key: c for c in included[0].competitors}
    roster: dict[str, Competitor] = {}
    for key in competitor_keys:
        competitor = by_key[key]
        if _in_category(competitor, category):
            roster.setdefault(key, competitor)

    return _aggregate(included, list(roster.values()), category)

"""Pydantic data models — the shared business objects.

The upstream adapter produces ``Stage``/``Competitor`` objects, the caches hold
them, and the scoring engine turns them into ``CompetitorResult`` rankings.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class PowerFactor(str, Enum):
    """Ammunition power factor classification."""

    MAJOR = "Major"
    MINOR = "Minor"


class Hits(BaseModel):
    """Raw hit counts on one stage."""

    A: int = 0
    C: int = 0
    D: int = 0
    M: int = 0
    NS: int = 0


class Competitor(BaseModel):
    """One competitor's scorecard on one stage."""

    competitor_key: str
    name: str
    division: str = "Unknown"
    division_code: str = ""
    power_factor: PowerFactor = PowerFactor.MINOR
    category: Optional[str] = None
    hit_factor: float = 0.0
    time: float = 0.0
    points: float = 0.0
    hits: Hits = Field(default_factory=Hits)
    scorecard_id: Optional[str] = None
    updated: Optional[datetime] = None

    @field_validator("updated")
    @classmethod
    def _assume_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @property
    def merge_id(self) -> str:
        return self.scorecard_id or self.competitor_key


class Stage(BaseModel):
    """A scored course of fire and every scorecard shot on it."""

    stage_id: str
    number: int
    name: str = ""
    competitors: list[Competitor] = Field(default_factory=list)
    max_possible_score: Optional[float] = None

    @property
    def display_name(self) -> str:
        return self.name.strip() or f"Stage {self.number}"


class StageScore(BaseModel):
    """A competitor's normalized result on one stage."""

    stage: int
    stage_name: str
    score: float
    max_possible_score: float
    procedures: float = Field(ge=0.0, description="Penalties inferred from the point gap")
    hits: Hits
    time: float
    points: float
    hit_factor: float


class CompetitorResult(BaseModel):
    """Aggregate result for one competitor over the included stages."""

    competitor_key: str
    name: str
    division: str
    total_score: float = 0.0
    stage_scores: list[StageScore] = Field(default_factory=list)


def latest_update(stages: list[Stage]) -> datetime:
    """Most recent scorecard ``updated`` value across stages, or the epoch."""
    latest = EPOCH
    for stage in stages:
        for competitor in stage.competitors:
            if competitor.updated is not None and competitor.updated > latest:
                latest = competitor.updated
    return latest


def count_scorecards(stages: list[Stage]) -> int:
    return sum(len(stage.competitors) for stage in stages)

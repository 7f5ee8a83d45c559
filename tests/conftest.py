"""Shared fixtures: a manual clock, a scripted upstream and model factories."""

from datetime import datetime, timezone

import pytest

from live_scores.core.exceptions import FetchError
from live_scores.core.models import Competitor, Hits, PowerFactor, Stage


class ManualClock:
    """Monotonic clock the test moves by hand."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeUpstream:
    """Upstream stand-in that replays queued responses and records calls."""

    def __init__(self, full=None):
        self.full = full if full is not None else []
        self.incremental = []
        self.calls = []

    def queue_incremental(self, result):
        """Queue a stage list (or an exception) for the next incremental call."""
        self.incremental.append(result)

    async def fetch(self, content_type, competition_id, updated_after=None):
        self.calls.append((content_type, competition_id, updated_after))
        if updated_after is None:
            if isinstance(self.full, Exception):
                raise self.full
            return self.full
        result = self.incremental.pop(0) if self.incremental else []
        if isinstance(result, Exception):
            raise result
        return result

    @property
    def full_calls(self):
        return [c for c in self.calls if c[2] is None]

    @property
    def incremental_calls(self):
        return [c for c in self.calls if c[2] is not None]


def ts(minute: int) -> datetime:
    return datetime(2025, 6, 14, 9, minute, tzinfo=timezone.utc)


def make_competitor(
    key,
    hit_factor=4.0,
    hits=(27, 3, 0, 0, 0),
    points=None,
    category=None,
    division="Production Optics",
    division_code="hg18",
    power_factor=PowerFactor.MINOR,
    scorecard_id=None,
    updated=None,
    name=None,
):
    a, c, d, m, ns = hits
    hit_values = Hits(A=a, C=c, D=d, M=m, NS=ns)
    if points is None:
        points = a * 5 + c * 3 + d - (m + ns) * 10
    return Competitor(
        competitor_key=key,
        name=name or f"Shooter {key}",
        division=division,
        division_code=division_code,
        power_factor=power_factor,
        category=category,
        hit_factor=hit_factor,
        time=round(points / hit_factor, 2) if hit_factor else 0.0,
        points=points,
        hits=hit_values,
        scorecard_id=scorecard_id or f"sc-{key}",
        updated=updated,
    )


def make_stage(number, competitors, stage_id=None, max_possible_score=None, name=""):
    return Stage(
        stage_id=stage_id or f"st-{number}",
        number=number,
        name=name,
        competitors=competitors,
        max_possible_score=max_possible_score,
    )


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def upstream():
    return FakeUpstream()


@pytest.fixture
def fetch_error():
    return FetchError("upstream unavailable", 503)

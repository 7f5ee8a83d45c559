"""ShootnScoreIt GraphQL API client.

API endpoint: https://shootnscoreit.com/graphql/
Live scores are read per event (content type + event id). Each scorecard
carries an ISO-8601 ``updated`` timestamp, which the incremental query filters
on via ``scorecards(updated_after: ...)``.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from datetime import datetime
from typing import Any, Optional

import httpx
from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from ..exceptions import DataError, FetchError, FetchTimeoutError
from ..models import Competitor, Hits, PowerFactor, Stage
from ..response_cache import BoundedCache

logger = logging.getLogger(__name__)

API_URL = "https://shootnscoreit.com/graphql/"

_SCORECARD_FIELDS = """
          id
          ... on IpscScoreCardNode {
            time
            points
            hitfactor
            ascore
            bscore
            cscore
            dscore
            hscore
            updated
          }
          competitor {
            id
            first_name
            last_name
            number
            ... on IpscCompetitorNode {
              handgun_div
              handgun_pf
              get_handgun_div_display
              get_handgun_pf_display
              category
            }
          }
"""

LIVE_SCORES_QUERY = """
query GetLiveScores($contentType: Int!, $eventId: String!) {
  event(content_type: $contentType, id: $eventId) {
    id
    name
    stages {
      id
      number
      name
      scorecards {%s}
    }
  }
}
""" % _SCORECARD_FIELDS

LIVE_SCORES_INCREMENTAL_QUERY = """
query GetLiveScoresIncremental($contentType: Int!, $eventId: String!, $updatedAfter: String!) {
  event(content_type: $contentType, id: $eventId) {
    id
    name
    stages {
      id
      number
      name
      ... on IpscStageNode {
        scorecards(updated_after: $updatedAfter) {%s}
      }
    }
  }
}
""" % _SCORECARD_FIELDS

# Handgun division codes as used in handgun_div
DIVISION_DISPLAY_MAP: dict[str, str] = {
    "hg1": "Open",
    "hg2": "Standard",
    "hg3": "Production",
    "hg5": "Revolver",
    "hg12": "Classic",
    "hg18": "Production Optics",
}

# Which scorecard field feeds which hit zone. The M/NS sources are not
# confirmed by the provider; override per client if they turn out wrong.
DEFAULT_HIT_FIELDS: dict[str, str] = {
    "A": "ascore",
    "C": "cscore",
    "D": "dscore",
    "M": "hscore",
    "NS": "bscore",
}


class CompetitorNode(BaseModel):
    id: str
    first_name: str = ""
    last_name: str = ""
    number: Optional[str] = None
    handgun_div: Optional[str] = None
    handgun_pf: Optional[str] = None
    get_handgun_div_display: Optional[str] = None
    get_handgun_pf_display: Optional[str] = None
    category: Optional[str] = None


class ScorecardNode(BaseModel):
    id: str
    time: Optional[float] = None
    points: Optional[float] = None
    hitfactor: Optional[float] = None
    ascore: Optional[int] = None
    bscore: Optional[int] = None
    cscore: Optional[int] = None
    dscore: Optional[int] = None
    hscore: Optional[int] = None
    updated: Optional[datetime] = None
    competitor: CompetitorNode


class StageNode(BaseModel):
    id: str
    number: int
    name: Optional[str] = None
    scorecards: list[ScorecardNode] = Field(default_factory=list)


class EventNode(BaseModel):
    id: str
    name: str = ""
    stages: list[StageNode] = Field(default_factory=list)


def determine_power_factor(handgun_pf: Optional[str], pf_display: Optional[str]) -> PowerFactor:
    """Display value first, then the '+'/'-' code; Minor when unknown."""
    if pf_display:
        if pf_display.lower() == "major":
            return PowerFactor.MAJOR
        if pf_display.lower() == "minor":
            return PowerFactor.MINOR
    if handgun_pf == "+":
        return PowerFactor.MAJOR
    return PowerFactor.MINOR


def transform_scorecard(
    scorecard: ScorecardNode,
    hit_fields: Optional[dict[str, str]] = None,
) -> Competitor:
    """Map a GraphQL scorecard onto a ``Competitor``."""
    fields = hit_fields or DEFAULT_HIT_FIELDS
    node = scorecard.competitor
    full_name = f"{node.first_name} {node.last_name}".strip()
    division_code = node.handgun_div or ""
    division = (
        node.get_handgun_div_display
        or DIVISION_DISPLAY_MAP.get(division_code)
        or division_code
        or "Unknown"
    )
    hits = Hits(**{zone: getattr(scorecard, field) or 0 for zone, field in fields.items()})

    return Competitor(
        # name|division is the fallback identity; namesakes in one division collide
        competitor_key=str(node.number) if node.number else f"{full_name}|{division}",
        name=full_name,
        division=division,
        division_code=division_code,
        power_factor=determine_power_factor(node.handgun_pf, node.get_handgun_pf_display),
        category=node.category or None,
        hit_factor=scorecard.hitfactor or 0.0,
        time=scorecard.time or 0.0,
        points=scorecard.points or 0.0,
        hits=hits,
        scorecard_id=scorecard.id,
        updated=scorecard.updated,
    )


def transform_stages(
    stages: list[StageNode],
    hit_fields: Optional[dict[str, str]] = None,
) -> list[Stage]:
    return [
        Stage(
            stage_id=stage.id,
            number=stage.number,
            name=stage.name if stage.name and stage.name.strip() else f"Stage {stage.number}",
            competitors=[transform_scorecard(sc, hit_fields) for sc in stage.scorecards],
        )
        for stage in stages
    ]


class SsiClient:
    """Fetches live scores as ``Stage`` lists.

    Full fetches are memoized in a small bounded raw-response cache; incremental
    fetches are never cached because their result depends on the watermark.
    """

    def __init__(
        self,
        api_url: str = API_URL,
        timeout: float = 60.0,
        hit_fields: Optional[dict[str, str]] = None,
        raw_cache: Optional[BoundedCache[dict]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._api_url = api_url
        self._timeout = timeout
        self._hit_fields = hit_fields or dict(DEFAULT_HIT_FIELDS)
        self._raw_cache = raw_cache if raw_cache is not None else BoundedCache()
        self._transport = transport

    @property
    def raw_cache(self) -> BoundedCache[dict]:
        return self._raw_cache

    async def fetch(
        self,
        content_type: int,
        competition_id: str,
        updated_after: Optional[datetime] = None,
    ) -> list[Stage]:
        """Fetch every scorecard, or only those updated after ``updated_after``.

        Raises:
            FetchTimeoutError: The request exceeded the client timeout.
            FetchError: Network, HTTP or GraphQL-level failure.
            DataError: The payload does not match the expected schema.
        """
        variables: dict[str, Any] = {"contentType": int(content_type), "eventId": str(competition_id)}

        if updated_after is None:
            cache_key = json.dumps([variables["contentType"], variables["eventId"]])
            data = self._raw_cache.get(cache_key)
            if data is None:
                data = await self._execute(LIVE_SCORES_QUERY, variables)
                self._raw_cache.put(cache_key, data)
            else:
                logger.info("Using cached raw response for event %s", competition_id)
        else:
            variables["updatedAfter"] = updated_after.isoformat()
            data = await self._execute(LIVE_SCORES_INCREMENTAL_QUERY, variables)

        if data.get("event") is None:
            raise FetchError(f"Event not found: {content_type}/{competition_id}", 404)

        try:
            event = EventNode.model_validate(data["event"])
        except PydanticValidationError as exc:
            raise DataError(f"Unexpected live scores payload for event {competition_id}: {exc}") from exc

        return transform_stages(event.stages, self._hit_fields)

    async def _post(self, query: str, variables: dict[str, Any]) -> Any:
        async with httpx.AsyncClient(
            timeout=httpx.Timeout(self._timeout, connect=10.0),
            transport=self._transport,
        ) as client:
            response = await client.post(
                self._api_url,
                json={"query": query, "variables": variables},
                headers={"Accept": "application/json"},
            )
            response.raise_for_status()
            return response.json()

    async def _execute(self, query: str, variables: dict[str, Any]) -> dict:
        start = time.monotonic()
        try:
            # httpx timeouts apply per read; this bounds the whole request
            payload = await asyncio.wait_for(self._post(query, variables), timeout=self._timeout)
        except (httpx.TimeoutException, asyncio.TimeoutError) as exc:
            elapsed = time.monotonic() - start
            logger.error("GraphQL request to %s timed out after %.1fs", self._api_url, elapsed)
            raise FetchTimeoutError(f"GraphQL request timed out after {self._timeout:g}s") from exc
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            raise FetchError(f"GraphQL HTTP error: {status} {exc.response.reason_phrase}", status) from exc
        except httpx.HTTPError as exc:
            raise FetchError(f"GraphQL request failed: {exc}", 503) from exc
        except ValueError as exc:
            raise DataError(f"GraphQL response is not valid JSON: {exc}") from exc

        logger.info("GraphQL request to %s completed in %.2fs", self._api_url, time.monotonic() - start)

        if not isinstance(payload, dict):
            raise DataError("GraphQL response is not a JSON object")
        if payload.get("errors"):
            messages = "; ".join(
                str(e.get("message", e)) if isinstance(e, dict) else str(e)
                for e in payload["errors"]
            )
            raise FetchError(f"GraphQL errors: {messages}", 400)
        if not payload.get("data"):
            raise FetchError("GraphQL response missing data", 502)
        return payload["data"]

"""Exceptions raised by the live scores core.

The transport layer decides how these map to status codes; ``status_code`` on
fetch errors only records what the upstream said (or what we inferred).
"""

from __future__ import annotations

from typing import Optional


class LiveScoresError(Exception):
    """Base exception for live scores errors."""

    pass


class ValidationError(LiveScoresError):
    """Malformed caller input. Never retried."""

    pass


class FetchError(LiveScoresError):
    """Upstream network or HTTP failure."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class FetchTimeoutError(FetchError):
    """Upstream request exceeded its deadline."""

    def __init__(self, message: str, status_code: int = 504):
        super().__init__(message, status_code)


class DataError(LiveScoresError):
    """Upstream payload could not be mapped onto the stage schema."""

    pass


class ScoringError(LiveScoresError):
    """Score aggregation was called with stages that break its input contract."""

    pass

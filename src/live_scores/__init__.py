"""Live Scores MCP Server.

IPSC live scores from ShootnScoreIt — stage scores normalized to the best hit
factor, category rankings, stage exclusion and head-to-head comparison, backed
by an incremental-sync cache that keeps upstream load low.
"""

__version__ = "0.1.0"

from .service import LiveScoresService

__all__ = ["LiveScoresService"]

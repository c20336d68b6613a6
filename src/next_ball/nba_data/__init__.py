"""NBA data module: upstream sources, normalization and cache for the next-game aggregate."""

from next_ball.nba_data.cache_store import CacheKeys, CacheStore, CacheTTL
from next_ball.nba_data.errors import (
    NBADataError,
    NoUpcomingGameError,
    RateLimitedError,
    UpstreamUnavailableError,
)
from next_ball.nba_data.names import RosterNameIndex, normalize_for_match
from next_ball.nba_data.normalize import canonical_team_name, normalize_team, to_score

__all__ = [
    "CacheKeys",
    "CacheStore",
    "CacheTTL",
    "NBADataError",
    "NoUpcomingGameError",
    "RateLimitedError",
    "RosterNameIndex",
    "UpstreamUnavailableError",
    "canonical_team_name",
    "normalize_for_match",
    "normalize_team",
    "to_score",
]

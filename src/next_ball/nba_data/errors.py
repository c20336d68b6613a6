"""Error types for nba-data flows."""

from __future__ import annotations


class NBADataError(RuntimeError):
    """Base error for nba-data operations."""


class CLIError(NBADataError):
    """User-facing CLI error for next-ball commands."""


class UpstreamUnavailableError(NBADataError):
    """Network or HTTP failure talking to an upstream feed."""

    def __init__(self, message: str, *, url: str = "", status_code: int | None = None) -> None:
        self.url = url
        self.status_code = status_code
        super().__init__(message)


class ParseFailureError(NBADataError):
    """Upstream was reachable but returned a payload we cannot read."""


class RateLimitedError(UpstreamUnavailableError):
    """Upstream answered 429."""


class NoUpcomingGameError(NBADataError):
    """Schedule has no game at or after now for the requested team."""

    def __init__(self, team_id: int) -> None:
        self.team_id = team_id
        super().__init__(f"no upcoming game found for team {team_id}")


class FetchTimeoutError(NBADataError):
    """Aggregate build exceeded its deadline and no stale copy exists."""


class AdminAuthError(NBADataError):
    """Administrative call presented a missing or wrong shared secret."""

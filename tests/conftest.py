from __future__ import annotations

import asyncio
from datetime import UTC, datetime
from typing import Any

import pytest

from next_ball.nba_data.cache_store import CacheStore, MemoryCacheBackend
from next_ball.nba_data.schedule import parse_schedule
from next_ball.next_game import NextGameService

CLE = 1610612739
BOS = 1610612738
NYK = 1610612752

_TEAMS = {
    CLE: ("Cavaliers", "Cleveland", "CLE", "cavaliers"),
    BOS: ("Celtics", "Boston", "BOS", "celtics"),
    NYK: ("Knicks", "New York", "NYK", "knicks"),
}


def raw_team(team_id: int, *, score: Any = None, wins: int = 0, losses: int = 0) -> dict[str, Any]:
    name, city, tricode, slug = _TEAMS[team_id]
    return {
        "teamId": team_id,
        "teamName": name,
        "teamCity": city,
        "teamTricode": tricode,
        "teamSlug": slug,
        "score": score,
        "wins": wins,
        "losses": losses,
    }


def raw_game(
    game_id: str,
    start_utc: str,
    home: dict[str, Any],
    away: dict[str, Any],
    *,
    status: int = 1,
    status_text: str = "7:00 pm ET",
) -> dict[str, Any]:
    return {
        "gameId": game_id,
        "gameDateTimeUTC": start_utc,
        "gameStatus": status,
        "gameStatusText": status_text,
        "arenaName": "Rocket Arena",
        "arenaCity": "Cleveland",
        "arenaState": "OH",
        "homeTeam": home,
        "awayTeam": away,
        "broadcasters": {
            "nationalBroadcasters": [
                {
                    "broadcasterId": 1,
                    "broadcasterDisplay": "ESPN",
                    "broadcasterAbbreviation": "ESPN",
                }
            ]
        },
    }


def schedule_payload(games: list[dict[str, Any]]) -> dict[str, Any]:
    return {"leagueSchedule": {"gameDates": [{"gameDate": "ignored", "games": games}]}}


def season_schedule() -> dict[str, Any]:
    """Two finished CLE-BOS games, one CLE-NYK game and an upcoming CLE-BOS game."""
    return schedule_payload(
        [
            raw_game(
                "0022500101",
                "2026-01-10T00:30:00Z",
                raw_team(CLE, score=110, wins=20, losses=10),
                raw_team(BOS, score=104, wins=22, losses=8),
                status=3,
                status_text="Final",
            ),
            raw_game(
                "0022500202",
                "2026-01-20T00:30:00Z",
                raw_team(BOS, score="99", wins=25, losses=9),
                raw_team(CLE, score="101", wins=24, losses=11),
                status=3,
                status_text="Final",
            ),
            raw_game(
                "0022500250",
                "2026-01-22T00:30:00Z",
                raw_team(NYK, score=120, wins=26, losses=10),
                raw_team(CLE, score=115, wins=24, losses=12),
                status=3,
                status_text="Final",
            ),
            raw_game(
                "0022500303",
                "2026-01-26T00:00:00Z",
                raw_team(CLE, wins=24, losses=12),
                raw_team(BOS, wins=27, losses=9),
            ),
        ]
    )


@pytest.fixture
def memory_cache() -> CacheStore:
    return CacheStore(MemoryCacheBackend(), namespace="test")


NOW = datetime(2026, 1, 25, 12, 0, tzinfo=UTC)

CAVS_ROSTER = [
    {"person_id": 1628378, "first_name": "Donovan", "last_name": "Mitchell", "position": "G",
     "jersey_number": "45"},
    {"person_id": 1628386, "first_name": "Jarrett", "last_name": "Allen", "position": "C",
     "jersey_number": "31"},
]


class FakeSchedule:
    def __init__(
        self,
        payload: dict[str, Any] | None = None,
        *,
        error: Exception | None = None,
        delay: float = 0.0,
    ) -> None:
        self.games = parse_schedule(payload or season_schedule())
        self.error = error
        self.delay = delay
        self.calls = 0

    async def fetch_schedule(self) -> list[dict[str, Any]]:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.games


class FakeStandings:
    def __init__(self, entries: list[dict[str, Any]] | None = None, *, error=None) -> None:
        self.entries = entries or []
        self.error = error
        self.calls = 0

    async def fetch_standings(self) -> list[dict[str, Any]]:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.entries


class FakeTeamData:
    def __init__(self, *, rosters: dict[int, list[dict[str, Any]]] | None = None, error=None):
        self.rosters = rosters if rosters is not None else {CLE: CAVS_ROSTER}
        self.error = error

    async def fetch_roster(self, team_id: int) -> list[dict[str, Any]]:
        if self.error is not None:
            raise self.error
        return self.rosters.get(team_id, [])

    async def fetch_game_log(self, team_id: int) -> list[dict[str, Any]]:
        return []

    async def fetch_head_to_head(self, team_a: int, team_b: int) -> list[dict[str, Any]]:
        return []


class FakeInjuries:
    def __init__(self, reports: dict[int, list[dict[str, Any]]] | None = None, *, error=None):
        self.reports = reports or {}
        self.error = error
        self.calls: list[tuple[int, bool]] = []

    async def fetch_team_injuries(
        self, team_id: int, *, is_game_day: bool, now: datetime | None = None
    ) -> list[dict[str, Any]]:
        self.calls.append((team_id, is_game_day))
        if self.error is not None:
            raise self.error
        return [dict(entry) for entry in self.reports.get(team_id, [])]


class FakeLineups:
    def __init__(self, lineups: dict[int, list[dict[str, Any]]] | None = None) -> None:
        self.lineups = lineups or {}

    async def project(self, game, team_id: int, **kwargs: Any) -> list[dict[str, Any]]:
        return self.lineups.get(team_id, [])


class FakeBoxScores:
    def __init__(self, summary: dict[str, Any] | None = None) -> None:
        self.summary = summary
        self.calls: list[tuple[str, int, int]] = []

    async def top_performers(self, game_id: str, home_id: int, away_id: int):
        self.calls.append((game_id, home_id, away_id))
        return self.summary


def make_service(cache: CacheStore, **overrides: Any) -> NextGameService:
    parts: dict[str, Any] = {
        "schedule": FakeSchedule(),
        "standings": FakeStandings(),
        "team_data": FakeTeamData(),
        "injuries": FakeInjuries(),
        "lineups": FakeLineups(),
        "box_scores": FakeBoxScores(),
        "default_team_id": CLE,
        "fetch_timeout_s": 1.0,
        "clock": lambda: NOW,
    }
    parts.update(overrides)
    return NextGameService(cache=cache, **parts)

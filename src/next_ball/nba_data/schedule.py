"""League schedule ingestion and the pure derivations built on it."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from next_ball.logging import get_logger
from next_ball.nba_data.cache_store import CacheKeys, CacheStore, CacheTTL
from next_ball.nba_data.contracts import (
    Broadcast,
    Game,
    GameStatus,
    GameSummary,
    GameTeam,
    StandingsEntry,
    TeamInfo,
)
from next_ball.nba_data.endpoints import SCHEDULE_URL
from next_ball.nba_data.errors import ParseFailureError
from next_ball.nba_data.gateway import NBAGateway
from next_ball.nba_data.normalize import (
    WEST_TEAM_IDS,
    normalize_game_team,
    safe_int,
    team_info,
)
from next_ball.nba_data.standings import apply_computed_ranks, win_pct
from next_ball.time_utils import ET_ZONE, iso_z, parse_timestamp, utc_now

logger = get_logger("schedule")

HEAD_TO_HEAD_LIMIT = 4
BROADCAST_GROUPS = (
    ("nationalBroadcasters", "natl", "tv"),
    ("nationalRadioBroadcasters", "natl", "radio"),
    ("nationalOttBroadcasters", "natl", "ott"),
    ("homeTvBroadcasters", "home", "tv"),
    ("awayTvBroadcasters", "away", "tv"),
)


def game_status(code: Any, text: str) -> GameStatus:
    parsed = safe_int(code)
    cleaned = text.strip().lower()
    if parsed == 3 or cleaned.startswith("final"):
        return "final"
    if parsed == 2:
        return "in_progress"
    if parsed == 1:
        return "scheduled"
    return "unknown"


def _start_time_utc(raw: dict[str, Any]) -> datetime | None:
    parsed = parse_timestamp(str(raw.get("gameDateTimeUTC") or ""))
    if parsed is not None:
        return parsed
    return parse_timestamp(str(raw.get("gameDateTimeEst") or ""), naive_zone=ET_ZONE)


def _parse_broadcasts(raw: dict[str, Any]) -> list[Broadcast]:
    groups = raw.get("broadcasters")
    if not isinstance(groups, dict):
        return []
    broadcasts: list[Broadcast] = []
    for group_key, scope, media in BROADCAST_GROUPS:
        items = groups.get(group_key)
        if not isinstance(items, list):
            continue
        for item in items:
            if not isinstance(item, dict):
                continue
            broadcasts.append(
                {
                    "scope": scope,
                    "media": str(item.get("broadcasterMedia") or media),
                    "broadcaster_id": safe_int(item.get("broadcasterId")) or 0,
                    "display": str(item.get("broadcasterDisplay") or "").strip(),
                    "abbreviation": str(item.get("broadcasterAbbreviation") or "").strip(),
                }
            )
    return broadcasts


def parse_game(raw: dict[str, Any]) -> Game | None:
    game_id = str(raw.get("gameId") or "").strip()
    if not game_id:
        return None
    start = _start_time_utc(raw)
    status_text = str(raw.get("gameStatusText") or "").strip()
    return {
        "game_id": game_id,
        "start_time_utc": iso_z(start) if start else "",
        "start_time_local": start.astimezone(ET_ZONE).isoformat() if start else "",
        "status": game_status(raw.get("gameStatus"), status_text),
        "status_text": status_text,
        "home_team": normalize_game_team(raw.get("homeTeam")),
        "away_team": normalize_game_team(raw.get("awayTeam")),
        "venue": {
            "name": str(raw.get("arenaName") or "").strip(),
            "city": str(raw.get("arenaCity") or "").strip(),
            "state": str(raw.get("arenaState") or "").strip(),
        },
        "broadcasts": _parse_broadcasts(raw),
    }


def parse_schedule(payload: dict[str, Any]) -> list[Game]:
    """Flatten `leagueSchedule.gameDates[].games[]` into canonical games."""
    league = payload.get("leagueSchedule")
    if not isinstance(league, dict) or not isinstance(league.get("gameDates"), list):
        raise ParseFailureError("schedule payload missing leagueSchedule.gameDates")
    games: list[Game] = []
    for game_date in league["gameDates"]:
        if not isinstance(game_date, dict):
            continue
        for raw in game_date.get("games") or []:
            if not isinstance(raw, dict):
                continue
            game = parse_game(raw)
            if game is not None:
                games.append(game)
    return games


def game_start(game: Game) -> datetime | None:
    return parse_timestamp(game["start_time_utc"])


def involves(game: Game, team_id: int) -> bool:
    return team_id in (game["home_team"]["team_id"], game["away_team"]["team_id"])


def is_home(game: Game, team_id: int) -> bool:
    return game["home_team"]["team_id"] == team_id


def opponent_of(game: Game, team_id: int) -> TeamInfo:
    side = game["away_team"] if is_home(game, team_id) else game["home_team"]
    return team_info(side)


def game_location(game: Game) -> str:
    venue = game["venue"]
    return ", ".join(part for part in (venue["name"], venue["city"], venue["state"]) if part)


def find_next_game(
    schedule: list[Game], team_id: int, now: datetime | None = None
) -> Game | None:
    """Earliest game of `team_id` starting at or after `now`, or currently in progress."""
    now = now or utc_now()
    candidates: list[tuple[datetime, Game]] = []
    for game in schedule:
        if not involves(game, team_id):
            continue
        start = game_start(game)
        if start is None:
            continue
        if start >= now or game["status"] == "in_progress":
            candidates.append((start, game))
    if not candidates:
        return None
    return min(candidates, key=lambda item: item[0])[1]


def _result_for(
    focus_team_id: int, home: GameTeam, away: GameTeam
) -> str | None:
    home_score = home.get("score")
    away_score = away.get("score")
    if home_score is None or away_score is None or home_score == away_score:
        return None
    home_won = home_score > away_score
    focus_is_home = home["team_id"] == focus_team_id
    return "W" if home_won == focus_is_home else "L"


def game_summary(game: Game, focus_team_id: int) -> GameSummary:
    """Completed-game summary with `result` seen from `focus_team_id`."""
    home = game["home_team"]
    away = game["away_team"]
    summary: GameSummary = {
        "game_id": game["game_id"],
        "game_date": game["start_time_utc"],
        "home_team": team_info(home),
        "away_team": team_info(away),
        "home_score": home.get("score"),
        "away_score": away.get("score"),
        "status": "Final" if game["status"] == "final" else game["status_text"],
    }
    result = _result_for(focus_team_id, home, away)
    if result is not None:
        summary["result"] = result
    return summary


def _final_games_newest_first(schedule: list[Game], predicate) -> list[Game]:
    games = [game for game in schedule if game["status"] == "final" and predicate(game)]
    return sorted(games, key=lambda game: game["start_time_utc"], reverse=True)


def recent_games(schedule: list[Game], team_id: int, limit: int = 3) -> list[GameSummary]:
    games = _final_games_newest_first(schedule, lambda game: involves(game, team_id))
    return [game_summary(game, team_id) for game in games[: max(0, limit)]]


def head_to_head(schedule: list[Game], team_a: int, team_b: int) -> list[GameSummary]:
    """Completed meetings between two teams, newest first, at most four."""
    games = _final_games_newest_first(
        schedule, lambda game: involves(game, team_a) and involves(game, team_b)
    )
    return [game_summary(game, team_a) for game in games[:HEAD_TO_HEAD_LIMIT]]


def standings_from_schedule(schedule: list[Game]) -> list[StandingsEntry]:
    """Minimal standings from the record snapshots carried on schedule entries."""
    latest: dict[int, tuple[tuple[bool, str], GameTeam]] = {}
    # Records on unplayed CDN entries are not tied to a result and can be zeroed
    # or stale, so any played game outranks a later scheduled one.
    for game in schedule:
        played = game["status"] in {"final", "in_progress"}
        order_key = (played, game["start_time_utc"])
        for side in (game["home_team"], game["away_team"]):
            team_id = side["team_id"]
            if not team_id:
                continue
            current = latest.get(team_id)
            if current is None or order_key >= current[0]:
                latest[team_id] = (order_key, side)
    entries: list[StandingsEntry] = []
    for team_id, (_, side) in latest.items():
        wins = side.get("wins") or 0
        losses = side.get("losses") or 0
        entries.append(
            {
                "team_id": team_id,
                "team_name": side["team_name"],
                "team_city": side["team_city"],
                "tricode": side["tricode"],
                "wins": wins,
                "losses": losses,
                "win_pct": win_pct(wins, losses),
                "league_rank": 0,
                "conference_rank": 0,
                "division_rank": 0,
                "conference": "West" if team_id in WEST_TEAM_IDS else "East",
                "division": "",
            }
        )
    entries.sort(key=lambda entry: entry["team_id"])
    return apply_computed_ranks(entries)


class ScheduleSource:
    def __init__(self, gateway: NBAGateway, cache: CacheStore) -> None:
        self.gateway = gateway
        self.cache = cache

    async def fetch_schedule(self) -> list[Game]:
        """Full-season schedule, cached for six hours."""
        cached = await self.cache.get(CacheKeys.SCHEDULE)
        if cached:
            return cached
        payload = await self.gateway.get_json(SCHEDULE_URL)
        games = parse_schedule(payload)
        if games:
            await self.cache.set(CacheKeys.SCHEDULE, games, CacheTTL.SCHEDULE)
        logger.info("schedule_fetched", games=len(games))
        return games

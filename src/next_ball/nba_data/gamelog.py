"""Team roster, game log and head-to-head lookups from the stats API."""

from __future__ import annotations

import re
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from next_ball.logging import get_logger
from next_ball.nba_data.cache_store import CacheKeys, CacheStore, CacheTTL
from next_ball.nba_data.contracts import GameSummary, Player, TeamInfo
from next_ball.nba_data.endpoints import (
    GAME_FINDER_URL_TEMPLATE,
    TEAM_GAME_LOG_URL_TEMPLATE,
    TEAM_ROSTER_URL_TEMPLATE,
)
from next_ball.nba_data.gateway import NBAGateway
from next_ball.nba_data.normalize import (
    PLACEHOLDER,
    TEAM_IDS_BY_TRICODE,
    safe_int,
    team_info_for_id,
)
from next_ball.nba_data.schedule import HEAD_TO_HEAD_LIMIT
from next_ball.nba_data.tables import ResultSetTable, select_table

logger = get_logger("gamelog")

_MATCHUP_RE = re.compile(
    r"^\s*(?P<left>[A-Z]{2,4})\s+(?P<sep>vs\.?|@)\s+(?P<right>[A-Z]{2,4})\s*$",
    re.IGNORECASE,
)
_GAME_ID_RE = re.compile(r"^\d{10,}$")


@dataclass(frozen=True)
class Matchup:
    """Parsed stats-API matchup string, oriented around the row's team."""

    team: str
    opponent: str
    team_is_home: bool

    @property
    def home(self) -> str:
        return self.team if self.team_is_home else self.opponent

    @property
    def away(self) -> str:
        return self.opponent if self.team_is_home else self.team


def parse_matchup(raw: str) -> Matchup | None:
    """`"CLE vs. BOS"` puts CLE at home; `"CLE @ BOS"` puts CLE on the road."""
    match = _MATCHUP_RE.match(raw or "")
    if match is None:
        return None
    return Matchup(
        team=match.group("left").upper(),
        opponent=match.group("right").upper(),
        team_is_home=match.group("sep").lower().startswith("vs"),
    )


def parse_game_date(raw: Any) -> str:
    """ISO date from "JAN 25, 2026" or "2026-01-25" style values; passthrough otherwise."""
    text = str(raw or "").strip()
    for fmt in ("%b %d, %Y", "%Y-%m-%d", "%Y-%m-%dT%H:%M:%S"):
        try:
            return datetime.strptime(text, fmt).date().isoformat()
        except ValueError:
            continue
    return text


def _team_for_tricode(tricode: str, fallback_id: int = 0) -> TeamInfo:
    team_id = TEAM_IDS_BY_TRICODE.get(tricode.upper(), fallback_id)
    if team_id:
        return team_info_for_id(team_id)
    return {
        "team_id": 0,
        "team_name": PLACEHOLDER,
        "team_city": PLACEHOLDER,
        "tricode": tricode.upper() or PLACEHOLDER,
        "slug": tricode.lower(),
    }


def _result_code(raw: Any) -> str | None:
    code = str(raw or "").strip().upper()
    return code if code in {"W", "L"} else None


def _flip(result: str | None) -> str | None:
    if result is None:
        return None
    return "L" if result == "W" else "W"


def parse_game_log(payload: dict[str, Any], team_id: int) -> list[GameSummary]:
    """Team game log rows, newest first, seen from `team_id`."""
    table = select_table(payload, name="TeamGameLog", required_column="MATCHUP")
    if table is None or len(table) == 0:
        logger.warning("game_log_table_missing", team_id=team_id, keys=sorted(payload.keys()))
        return []
    games: list[GameSummary] = []
    for row in table.rows:
        matchup = parse_matchup(str(table.value(row, "MATCHUP", "")))
        if matchup is None:
            continue
        row_team = _team_for_tricode(matchup.team, fallback_id=team_id)
        opponent = _team_for_tricode(matchup.opponent)
        points = safe_int(table.value(row, "PTS"))
        summary: GameSummary = {
            "game_id": str(table.value(row, "Game_ID", "")).strip(),
            "game_date": parse_game_date(table.value(row, "GAME_DATE")),
            "home_team": row_team if matchup.team_is_home else opponent,
            "away_team": opponent if matchup.team_is_home else row_team,
            "home_score": points if matchup.team_is_home else None,
            "away_score": None if matchup.team_is_home else points,
            "status": "Final",
        }
        result = _result_code(table.value(row, "WL"))
        if row_team["team_id"] != team_id:
            result = _flip(result)
        if result is not None:
            summary["result"] = result
        games.append(summary)
    games.sort(key=lambda game: game["game_date"], reverse=True)
    return games


def _row_scores(table: ResultSetTable, row: list[Any]) -> tuple[int | None, int | None]:
    """Row team's points and, when PLUS_MINUS is present, the opponent's."""
    points = safe_int(table.value(row, "PTS"))
    plus_minus = safe_int(table.value(row, "PLUS_MINUS"))
    if points is None or plus_minus is None:
        return points, None
    return points, points - plus_minus


def _is_home_row(table: ResultSetTable, row: list[Any]) -> bool:
    matchup = parse_matchup(str(table.value(row, "MATCHUP", "")))
    return matchup is not None and matchup.team_is_home


def merge_head_to_head_rows(table: ResultSetTable, focus_team_id: int) -> list[GameSummary]:
    """Merge the per-team rows of each game into one summary, newest first, capped at four."""
    grouped: OrderedDict[str, list[list[Any]]] = OrderedDict()
    for row in table.rows:
        game_id = str(table.value(row, "GAME_ID", "")).strip()
        if not _GAME_ID_RE.match(game_id):
            continue
        grouped.setdefault(game_id, []).append(row)

    games: list[GameSummary] = []
    for game_id, rows in grouped.items():
        home_row = next((row for row in rows if _is_home_row(table, row)), None)
        away_row = next((row for row in rows if not _is_home_row(table, row)), None)
        anchor = home_row if home_row is not None else away_row
        if anchor is None:
            continue
        matchup = parse_matchup(str(table.value(anchor, "MATCHUP", "")))
        if matchup is None:
            continue
        home_score: int | None = None
        away_score: int | None = None
        if home_row is not None:
            home_score, away_score = _row_scores(table, home_row)
        if away_row is not None:
            away_points, derived_home = _row_scores(table, away_row)
            away_score = away_points
            if home_score is None:
                home_score = derived_home
        home = _team_for_tricode(matchup.home)
        away = _team_for_tricode(matchup.away)
        summary: GameSummary = {
            "game_id": game_id,
            "game_date": parse_game_date(table.value(anchor, "GAME_DATE")),
            "home_team": home,
            "away_team": away,
            "home_score": home_score,
            "away_score": away_score,
            "status": "Final",
        }
        if home_score is not None and away_score is not None and home_score != away_score:
            home_won = home_score > away_score
            summary["result"] = "W" if home_won == (home["team_id"] == focus_team_id) else "L"
        games.append(summary)
    games.sort(key=lambda game: game["game_date"], reverse=True)
    return games[:HEAD_TO_HEAD_LIMIT]


def _split_name(full_name: str) -> tuple[str, str]:
    parts = full_name.split()
    if not parts:
        return "", ""
    return parts[0], " ".join(parts[1:])


def parse_roster(payload: dict[str, Any]) -> list[Player]:
    table = select_table(payload, name="CommonTeamRoster", required_column="PLAYER_ID")
    if table is None:
        return []
    players: list[Player] = []
    for row in table.rows:
        person_id = safe_int(table.value(row, "PLAYER_ID"))
        if not person_id:
            continue
        first, last = _split_name(str(table.value(row, "PLAYER", "")).strip())
        player: Player = {
            "person_id": person_id,
            "first_name": first,
            "last_name": last,
            "position": str(table.value(row, "POSITION", "")).strip(),
        }
        jersey = str(table.value(row, "NUM", "")).strip()
        if jersey:
            player["jersey_number"] = jersey
        players.append(player)
    return players


class TeamDataSource:
    """Roster, game-log and head-to-head lookups for one season."""

    def __init__(self, gateway: NBAGateway, cache: CacheStore, *, season: str) -> None:
        self.gateway = gateway
        self.cache = cache
        self.season = season

    async def fetch_roster(self, team_id: int) -> list[Player]:
        key = CacheKeys.roster(team_id)
        cached = await self.cache.get(key)
        if cached:
            return cached
        payload = await self.gateway.get_json(
            TEAM_ROSTER_URL_TEMPLATE.format(season=self.season, team_id=team_id), stats=True
        )
        roster = parse_roster(payload)
        if roster:
            await self.cache.set(key, roster, CacheTTL.ROSTER)
        return roster

    async def fetch_game_log(self, team_id: int) -> list[GameSummary]:
        key = CacheKeys.game_log(team_id)
        cached = await self.cache.get(key)
        if cached is not None:
            return cached
        payload = await self.gateway.get_json(
            TEAM_GAME_LOG_URL_TEMPLATE.format(season=self.season, team_id=team_id), stats=True
        )
        games = parse_game_log(payload, team_id)
        await self.cache.set(key, games, CacheTTL.OPPONENT_GAMES)
        return games

    async def fetch_head_to_head(self, team_a: int, team_b: int) -> list[GameSummary]:
        key = CacheKeys.head_to_head(team_a, team_b)
        cached = await self.cache.get(key)
        if cached is not None:
            return cached
        payload = await self.gateway.get_json(
            GAME_FINDER_URL_TEMPLATE.format(
                season=self.season, team_id=team_a, opponent_id=team_b
            ),
            stats=True,
        )
        table = select_table(payload, required_column="GAME_ID")
        games = merge_head_to_head_rows(table, team_a) if table is not None else []
        await self.cache.set(key, games, CacheTTL.HEAD_TO_HEAD)
        logger.debug("head_to_head_fetched", team_a=team_a, team_b=team_b, games=len(games))
        return games

"""Box scores: schema-tagged adapters into one canonical row shape, plus game leaders."""

from __future__ import annotations

import re
from typing import Any, ClassVar

import polars as pl

from next_ball.logging import get_logger
from next_ball.nba_data.cache_store import CacheKeys, CacheStore, CacheTTL
from next_ball.nba_data.contracts import (
    BoxScoreRow,
    BoxScoreSchema,
    CanonicalBoxScore,
    LastH2HBoxScore,
    LeaderLine,
)
from next_ball.nba_data.endpoints import BOXSCORE_V3_URL_TEMPLATE, LIVE_BOXSCORE_URL_TEMPLATE
from next_ball.nba_data.errors import NBADataError, ParseFailureError
from next_ball.nba_data.gateway import NBAGateway
from next_ball.nba_data.normalize import safe_float, safe_int
from next_ball.nba_data.tables import ResultSetTable, result_tables

logger = get_logger("boxscore")

LEADER_COUNT = 3
LEADER_SCHEMA = {
    "team_id": pl.Int64,
    "person_id": pl.Int64,
    "player_name": pl.Utf8,
    "jersey_number": pl.Utf8,
    "points": pl.Int64,
    "rebounds": pl.Int64,
    "assists": pl.Int64,
}
_ISO_MINUTES_RE = re.compile(r"^PT(?:(?P<minutes>\d+)M)?(?:(?P<seconds>[\d.]+)S)?$")


def parse_minutes(raw: Any) -> float:
    """Minutes played from "PT34M12.00S", "34:12", "34.000000:12" or a plain number."""
    if raw is None or isinstance(raw, bool):
        return 0.0
    number = safe_float(raw)
    if number is not None:
        return number
    text = str(raw).strip()
    iso = _ISO_MINUTES_RE.match(text)
    if iso is not None and text != "PT":
        minutes = float(iso.group("minutes") or 0)
        seconds = float(iso.group("seconds") or 0)
        return round(minutes + seconds / 60.0, 2)
    if ":" in text:
        minutes_text, _, seconds_text = text.partition(":")
        minutes = safe_float(minutes_text) or 0.0
        seconds = safe_float(seconds_text) or 0.0
        return round(minutes + seconds / 60.0, 2)
    return 0.0


def _row(
    *,
    team_id: int,
    person_id: int,
    first_name: str,
    last_name: str,
    player_name: str = "",
    position: str = "",
    starter: bool | None,
    minutes: Any,
    points: Any,
    rebounds: Any,
    assists: Any,
    jersey_number: Any = "",
) -> BoxScoreRow:
    first_name = first_name.strip()
    last_name = last_name.strip()
    name = player_name.strip() or f"{first_name} {last_name}".strip()
    if name and not (first_name or last_name):
        first_name, _, last_name = name.partition(" ")
    return {
        "team_id": team_id,
        "person_id": person_id,
        "player_name": name,
        "first_name": first_name,
        "last_name": last_name,
        "position": position.strip(),
        "starter": starter,
        "minutes": parse_minutes(minutes),
        "points": safe_int(points) or 0,
        "rebounds": safe_int(rebounds) or 0,
        "assists": safe_int(assists) or 0,
        "jersey_number": str(jersey_number or "").strip(),
    }


class LiveBoxScoreAdapter:
    """CDN live-data box score: `game.homeTeam.players[].statistics`."""

    schema: ClassVar[BoxScoreSchema] = "live"

    @staticmethod
    def matches(payload: dict[str, Any]) -> bool:
        game = payload.get("game")
        if not isinstance(game, dict):
            return False
        home = game.get("homeTeam")
        return isinstance(home, dict) and isinstance(home.get("players"), list)

    def to_canonical(self, payload: dict[str, Any], game_id: str) -> CanonicalBoxScore:
        game = payload["game"]
        rows: list[BoxScoreRow] = []
        team_ids: dict[str, int] = {}
        for side in ("homeTeam", "awayTeam"):
            team = game.get(side) or {}
            team_id = safe_int(team.get("teamId")) or 0
            team_ids[side] = team_id
            for player in team.get("players") or []:
                if not isinstance(player, dict):
                    continue
                stats = player.get("statistics") or {}
                starter_flag = player.get("starter")
                rows.append(
                    _row(
                        team_id=team_id,
                        person_id=safe_int(player.get("personId")) or 0,
                        first_name=str(player.get("firstName") or ""),
                        last_name=str(player.get("familyName") or ""),
                        player_name=str(player.get("name") or ""),
                        position=str(player.get("position") or ""),
                        starter=None if starter_flag is None else str(starter_flag) == "1",
                        minutes=stats.get("minutesCalculated") or stats.get("minutes"),
                        points=stats.get("points"),
                        rebounds=stats.get("reboundsTotal"),
                        assists=stats.get("assists"),
                        jersey_number=player.get("jerseyNum"),
                    )
                )
        return {
            "game_id": str(game.get("gameId") or game_id),
            "schema": self.schema,
            "home_team_id": team_ids.get("homeTeam", 0),
            "away_team_id": team_ids.get("awayTeam", 0),
            "rows": rows,
        }


class TraditionalV3Adapter:
    """Stats API v3: nested `boxScoreTraditional.{homeTeam,awayTeam}.players`."""

    schema: ClassVar[BoxScoreSchema] = "v3"

    @staticmethod
    def matches(payload: dict[str, Any]) -> bool:
        return isinstance(payload.get("boxScoreTraditional"), dict)

    def to_canonical(self, payload: dict[str, Any], game_id: str) -> CanonicalBoxScore:
        box = payload["boxScoreTraditional"]
        rows: list[BoxScoreRow] = []
        team_ids: dict[str, int] = {}
        for side, id_key in (("homeTeam", "homeTeamId"), ("awayTeam", "awayTeamId")):
            team = box.get(side) or {}
            team_id = safe_int(team.get("teamId")) or safe_int(box.get(id_key)) or 0
            team_ids[side] = team_id
            players = [player for player in team.get("players") or [] if isinstance(player, dict)]
            # v3 only fills `position` for starters.
            has_positions = any(str(player.get("position") or "").strip() for player in players)
            for player in players:
                stats = player.get("statistics") or {}
                position = str(player.get("position") or "")
                rows.append(
                    _row(
                        team_id=team_id,
                        person_id=safe_int(player.get("personId")) or 0,
                        first_name=str(player.get("firstName") or ""),
                        last_name=str(player.get("familyName") or ""),
                        position=position,
                        starter=bool(position.strip()) if has_positions else None,
                        minutes=stats.get("minutes"),
                        points=stats.get("points"),
                        rebounds=stats.get("reboundsTotal"),
                        assists=stats.get("assists"),
                        jersey_number=player.get("jerseyNum"),
                    )
                )
        return {
            "game_id": str(box.get("gameId") or game_id),
            "schema": self.schema,
            "home_team_id": team_ids.get("homeTeam", 0),
            "away_team_id": team_ids.get("awayTeam", 0),
            "rows": rows,
        }


class ResultSetsV2Adapter:
    """Legacy row/column tables (`PlayerStats` or per-side player tables)."""

    schema: ClassVar[BoxScoreSchema] = "v2"
    SIDE_TABLES: ClassVar[dict[str, str]] = {
        "home_team_player_traditional": "home",
        "away_team_player_traditional": "away",
    }

    @staticmethod
    def _player_tables(payload: dict[str, Any]) -> list[ResultSetTable]:
        return [table for table in result_tables(payload) if table.has_column("PLAYER_ID")]

    @classmethod
    def matches(cls, payload: dict[str, Any]) -> bool:
        return bool(cls._player_tables(payload))

    def _table_rows(self, table: ResultSetTable) -> list[BoxScoreRow]:
        has_start_column = table.has_column("START_POSITION")
        rows: list[BoxScoreRow] = []
        for raw in table.rows:
            start_position = str(table.value(raw, "START_POSITION", "")).strip()
            rows.append(
                _row(
                    team_id=safe_int(table.value(raw, "TEAM_ID")) or 0,
                    person_id=safe_int(table.value(raw, "PLAYER_ID")) or 0,
                    first_name="",
                    last_name="",
                    player_name=str(table.value(raw, "PLAYER_NAME", "")),
                    position=start_position,
                    starter=bool(start_position) if has_start_column else None,
                    minutes=table.value(raw, "MIN"),
                    points=table.value(raw, "PTS"),
                    rebounds=table.value(raw, "REB"),
                    assists=table.value(raw, "AST"),
                    jersey_number=table.value(raw, "JERSEY_NUM", ""),
                )
            )
        return rows

    def to_canonical(self, payload: dict[str, Any], game_id: str) -> CanonicalBoxScore:
        tables = self._player_tables(payload)
        sides = {
            self.SIDE_TABLES[table.name.lower()]: table
            for table in tables
            if table.name.lower() in self.SIDE_TABLES
        }
        side_ids: dict[str, int] = {}
        if sides:
            rows: list[BoxScoreRow] = []
            for side, table in sides.items():
                table_rows = self._table_rows(table)
                side_ids[side] = table_rows[0]["team_id"] if table_rows else 0
                rows.extend(table_rows)
        else:
            preferred = next((t for t in tables if t.name == "PlayerStats"), tables[0])
            rows = self._table_rows(preferred)
        return {
            "game_id": game_id,
            "schema": self.schema,
            "home_team_id": side_ids.get("home", 0),
            "away_team_id": side_ids.get("away", 0),
            "rows": rows,
        }


BoxScoreAdapter = LiveBoxScoreAdapter | TraditionalV3Adapter | ResultSetsV2Adapter
ADAPTERS: tuple[BoxScoreAdapter, ...] = (
    LiveBoxScoreAdapter(),
    TraditionalV3Adapter(),
    ResultSetsV2Adapter(),
)


def detect_adapter(payload: dict[str, Any]) -> BoxScoreAdapter:
    for adapter in ADAPTERS:
        if adapter.matches(payload):
            return adapter
    raise ParseFailureError(f"unrecognized box score shape: keys={sorted(payload.keys())}")


def to_canonical_box_score(payload: dict[str, Any], game_id: str) -> CanonicalBoxScore:
    return detect_adapter(payload).to_canonical(payload, game_id)


def team_starters(box: CanonicalBoxScore, team_id: int) -> list[BoxScoreRow]:
    """Flagged starters when the schema carries them, else the top five by minutes then points."""
    rows = [row for row in box["rows"] if row["team_id"] == team_id]
    if any(row["starter"] is not None for row in rows):
        flagged = [row for row in rows if row["starter"]]
        if flagged:
            return flagged
    ranked = sorted(rows, key=lambda row: (-row["minutes"], -row["points"]))
    return [row for row in ranked if row["minutes"] > 0 or row["points"] > 0][:5]


class BoxScoreSource:
    """Fetches one game's box score, CDN first with the stats API as fallback."""

    def __init__(self, gateway: NBAGateway, cache: CacheStore) -> None:
        self.gateway = gateway
        self.cache = cache

    async def fetch_box_score(
        self, game_id: str, *, expected_team_ids: set[int] | None = None
    ) -> CanonicalBoxScore:
        key = CacheKeys.box_score(game_id)
        cached = await self.cache.get(key)
        if cached is not None:
            return cached
        box: CanonicalBoxScore | None = None
        try:
            live_url = LIVE_BOXSCORE_URL_TEMPLATE.format(game_id=game_id)
            payload = await self.gateway.get_json(live_url)
            box = to_canonical_box_score(payload, game_id)
        except NBADataError as exc:
            logger.debug("live_box_score_unavailable", game_id=game_id, error=str(exc))
        if box is not None and expected_team_ids:
            if {box["home_team_id"], box["away_team_id"]} != expected_team_ids:
                logger.warning("live_box_score_team_mismatch", game_id=game_id)
                box = None
        if box is None:
            payload = await self.gateway.get_json(
                BOXSCORE_V3_URL_TEMPLATE.format(game_id=game_id), stats=True
            )
            box = to_canonical_box_score(payload, game_id)
        if box["rows"]:
            await self.cache.set(key, box, CacheTTL.BOX_SCORE)
        return box


def _leader_frame(rows: list[BoxScoreRow]) -> pl.DataFrame:
    records = [{column: row[column] for column in LEADER_SCHEMA} for row in rows]
    frame = pl.DataFrame(records, schema=LEADER_SCHEMA)
    return frame.filter(
        (pl.col("points") > 0) | (pl.col("rebounds") > 0) | (pl.col("assists") > 0)
    )


def _leaders(frame: pl.DataFrame, team_id: int, column: str) -> list[LeaderLine]:
    top = (
        frame.filter((pl.col("team_id") == team_id) & (pl.col(column) > 0))
        .sort(column, descending=True, maintain_order=True)
        .head(LEADER_COUNT)
    )
    lines: list[LeaderLine] = []
    for record in top.iter_rows(named=True):
        line: LeaderLine = {
            "player_name": record["player_name"],
            "person_id": record["person_id"],
            "value": record[column],
        }
        if record["jersey_number"]:
            line["jersey_number"] = record["jersey_number"]
        lines.append(line)
    return lines


def _game_high(frame: pl.DataFrame, column: str) -> int | None:
    top = frame.filter(pl.col(column) > 0).sort(column, descending=True, maintain_order=True)
    if top.height == 0:
        return None
    return int(top.get_column("person_id")[0])


def summarize_top_performers(
    box: CanonicalBoxScore, home_team_id: int, away_team_id: int
) -> LastH2HBoxScore | None:
    """Top three per team in points, rebounds and assists, plus the game-high player per stat."""
    frame = _leader_frame(box["rows"])
    if frame.height == 0:
        return None
    return {
        "game_id": box["game_id"],
        "home_team_id": home_team_id,
        "away_team_id": away_team_id,
        "home_top_pts": _leaders(frame, home_team_id, "points"),
        "home_top_reb": _leaders(frame, home_team_id, "rebounds"),
        "home_top_ast": _leaders(frame, home_team_id, "assists"),
        "away_top_pts": _leaders(frame, away_team_id, "points"),
        "away_top_reb": _leaders(frame, away_team_id, "rebounds"),
        "away_top_ast": _leaders(frame, away_team_id, "assists"),
        "game_high_pts_person_id": _game_high(frame, "points"),
        "game_high_reb_person_id": _game_high(frame, "rebounds"),
        "game_high_ast_person_id": _game_high(frame, "assists"),
    }


class BoxScoreAggregator:
    def __init__(self, source: BoxScoreSource, cache: CacheStore) -> None:
        self.source = source
        self.cache = cache

    async def top_performers(
        self, game_id: str, home_team_id: int, away_team_id: int
    ) -> LastH2HBoxScore | None:
        key = CacheKeys.box_score_tops(game_id)
        cached = await self.cache.get(key)
        if cached is not None:
            return cached
        try:
            box = await self.source.fetch_box_score(
                game_id, expected_team_ids={home_team_id, away_team_id}
            )
        except NBADataError as exc:
            logger.warning("box_score_unavailable", game_id=game_id, error=str(exc))
            return None
        summary = summarize_top_performers(box, home_team_id, away_team_id)
        if summary is not None:
            await self.cache.set(key, summary, CacheTTL.BOX_SCORE)
        return summary

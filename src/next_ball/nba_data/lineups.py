"""Starting-five projection: actual starters once a game tips off, recent starts before."""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Literal, TypedDict

from next_ball.logging import get_logger
from next_ball.nba_data.boxscore import BoxScoreSource, team_starters
from next_ball.nba_data.cache_store import CacheKeys, CacheStore, CacheTTL
from next_ball.nba_data.contracts import BoxScoreRow, Game, InjuryEntry, Player
from next_ball.nba_data.errors import NBADataError
from next_ball.nba_data.gamelog import TeamDataSource
from next_ball.nba_data.names import NAME_SUFFIXES, RosterNameIndex, normalize_for_match
from next_ball.nba_data.schedule import game_start, recent_games
from next_ball.time_utils import utc_now

logger = get_logger("lineups")

LineupOrder = Literal["position", "minutes"]

LINEUP_SIZE = 5
EXCLUDED_STATUSES = frozenset({"Out", "Doubtful", "Questionable"})
POSITION_PRIORITY = {
    "PG": 0,
    "G": 1,
    "SG": 1,
    "G-F": 1,
    "SF": 2,
    "F": 2,
    "F-G": 2,
    "PF": 3,
    "F-C": 3,
    "C-F": 4,
    "C": 4,
}
UNKNOWN_POSITION_PRIORITY = 99


class StarterTally(TypedDict):
    """Starts and minutes accumulated by one player over recent games."""

    person_id: int
    first_name: str
    last_name: str
    position: str
    jersey_number: str
    starts: int
    minutes: float


def game_has_begun(game: Game, now: datetime | None = None) -> bool:
    if game["status"] in {"in_progress", "final"}:
        return True
    start = game_start(game)
    return start is not None and start <= (now or utc_now())


def _bare_surname(last: str) -> str:
    tokens = last.split()
    if len(tokens) > 1 and tokens[-1] in NAME_SUFFIXES:
        tokens = tokens[:-1]
    return " ".join(tokens)


def _matches_injury(first: str, last: str, injury_name: str) -> bool:
    if not last or not injury_name:
        return False
    if "," in injury_name:
        surname, _, given = injury_name.partition(",")
    else:
        tokens = injury_name.split()
        if len(tokens) < 2:
            return False
        given, surname = tokens[0], " ".join(tokens[1:])
    if _bare_surname(surname.strip()) != _bare_surname(last):
        return False
    given = given.strip()
    initial = given.rstrip(".")
    return given == first or (len(initial) == 1 and first.startswith(initial))


def excluded_by_injury(first_name: str, last_name: str, injuries: list[InjuryEntry]) -> bool:
    """Name-only check against Out, Doubtful and Questionable entries.

    Used when no roster is available. Accepts "First Last", "Last, First" and
    an initial for the first name; the surname must match exactly.
    """
    first = normalize_for_match(first_name)
    last = normalize_for_match(last_name)
    for entry in injuries:
        if entry.get("status") not in EXCLUDED_STATUSES:
            continue
        if _matches_injury(first, last, normalize_for_match(entry.get("player_name", ""))):
            return True
    return False


def injured_person_ids(roster: list[Player], injuries: list[InjuryEntry]) -> set[int]:
    """Roster ids resolved from Out, Doubtful and Questionable entries."""
    index = RosterNameIndex(roster)
    excluded: set[int] = set()
    for entry in injuries:
        if entry.get("status") not in EXCLUDED_STATUSES:
            continue
        player = index.lookup(entry.get("player_name", ""))
        if player is not None and player.get("person_id"):
            excluded.add(player["person_id"])
    return excluded


def _player_from_row(row: BoxScoreRow) -> Player:
    player: Player = {
        "person_id": row["person_id"],
        "first_name": row["first_name"],
        "last_name": row["last_name"],
        "position": row["position"],
    }
    if row["jersey_number"]:
        player["jersey_number"] = row["jersey_number"]
    return player


def _player_from_tally(tally: StarterTally) -> Player:
    player: Player = {
        "person_id": tally["person_id"],
        "first_name": tally["first_name"],
        "last_name": tally["last_name"],
        "position": tally["position"],
    }
    if tally["jersey_number"]:
        player["jersey_number"] = tally["jersey_number"]
    return player


def tally_starters(boxes: list[list[BoxScoreRow]]) -> list[StarterTally]:
    """Per-player starts and minutes, ranked by starts, then minutes, then person id."""
    tallies: dict[int, StarterTally] = {}
    for starters in boxes:
        for row in starters:
            tally = tallies.get(row["person_id"])
            if tally is None:
                tally = {
                    "person_id": row["person_id"],
                    "first_name": row["first_name"],
                    "last_name": row["last_name"],
                    "position": row["position"],
                    "jersey_number": row["jersey_number"],
                    "starts": 0,
                    "minutes": 0.0,
                }
                tallies[row["person_id"]] = tally
            tally["starts"] += 1
            tally["minutes"] = round(tally["minutes"] + row["minutes"], 2)
            if not tally["position"] and row["position"]:
                tally["position"] = row["position"]
    return sorted(tallies.values(), key=_rank_key)


def _rank_key(tally: StarterTally) -> tuple[int, float, int]:
    return (-tally["starts"], -tally["minutes"], tally["person_id"])


def position_priority(position: str) -> int:
    return POSITION_PRIORITY.get(position.strip().upper(), UNKNOWN_POSITION_PRIORITY)


def order_lineup(
    players: list[Player], minutes: dict[int, float], order: LineupOrder
) -> list[Player]:
    if order == "minutes":
        return sorted(
            players, key=lambda p: (-minutes.get(p.get("person_id", 0), 0.0), p.get("person_id", 0))
        )
    return sorted(players, key=lambda p: position_priority(p.get("position", "")))


def project_from_tallies(
    tallies: list[StarterTally],
    roster: list[Player],
    injuries: list[InjuryEntry],
    *,
    order: LineupOrder = "position",
) -> list[Player]:
    """Top five recent starters who are healthy and on the roster, topped up from the roster."""
    roster_by_id = {player["person_id"]: player for player in roster if player.get("person_id")}
    minutes = {tally["person_id"]: tally["minutes"] for tally in tallies}
    injured = injured_person_ids(roster, injuries) if roster_by_id else set()

    def unavailable(person_id: int, first_name: str, last_name: str) -> bool:
        if roster_by_id:
            return person_id in injured or person_id not in roster_by_id
        return excluded_by_injury(first_name, last_name, injuries)

    candidates = [
        tally
        for tally in tallies
        if not unavailable(tally["person_id"], tally["first_name"], tally["last_name"])
    ]
    selected = [_player_from_tally(tally) for tally in candidates[:LINEUP_SIZE]]
    chosen = {player["person_id"] for player in selected}
    if len(selected) < LINEUP_SIZE:
        fill = sorted(
            (
                player
                for person_id, player in roster_by_id.items()
                if person_id not in chosen and person_id not in injured
            ),
            key=lambda p: (-minutes.get(p["person_id"], 0.0), p["person_id"]),
        )
        for player in fill[: LINEUP_SIZE - len(selected)]:
            selected.append({**player})

    lineup: list[Player] = []
    for player in selected:
        listed = roster_by_id.get(player["person_id"], {})
        merged: Player = {**player}
        if listed.get("jersey_number"):
            merged["jersey_number"] = listed["jersey_number"]
        if not merged.get("position") and listed.get("position"):
            merged["position"] = listed["position"]
        lineup.append(merged)
    return order_lineup(lineup, minutes, order)


class LineupProjector:
    """Projected starting five per team and game."""

    def __init__(
        self,
        box_scores: BoxScoreSource,
        team_data: TeamDataSource,
        cache: CacheStore,
        *,
        order: LineupOrder = "position",
        recent_game_count: int = 5,
    ) -> None:
        self.box_scores = box_scores
        self.team_data = team_data
        self.cache = cache
        self.order = order
        self.recent_game_count = recent_game_count

    async def _recent_game_ids(self, team_id: int, schedule: list[Game]) -> list[str]:
        game_ids = [
            summary["game_id"]
            for summary in recent_games(schedule, team_id, limit=self.recent_game_count)
        ]
        if game_ids:
            return game_ids
        try:
            log = await self.team_data.fetch_game_log(team_id)
        except NBADataError as exc:
            logger.warning("recent_games_unavailable", team_id=team_id, error=str(exc))
            return []
        return [game["game_id"] for game in log if game.get("game_id")][: self.recent_game_count]

    async def recent_starters(self, team_id: int, schedule: list[Game]) -> list[StarterTally]:
        key = CacheKeys.recent_starters(team_id)
        cached = await self.cache.get(key)
        if cached:
            return cached
        game_ids = await self._recent_game_ids(team_id, schedule)
        results = await asyncio.gather(
            *(self.box_scores.fetch_box_score(game_id) for game_id in game_ids),
            return_exceptions=True,
        )
        starter_sets: list[list[BoxScoreRow]] = []
        for game_id, result in zip(game_ids, results):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                logger.info("recent_box_score_skipped", game_id=game_id, error=str(result))
                continue
            starter_sets.append(team_starters(result, team_id))
        tallies = tally_starters(starter_sets)
        if tallies:
            await self.cache.set(key, tallies, CacheTTL.LINEUPS)
        return tallies

    async def _actual_starters(self, game: Game, team_id: int) -> list[BoxScoreRow]:
        try:
            box = await self.box_scores.fetch_box_score(game["game_id"])
        except NBADataError as exc:
            logger.debug("actual_starters_unavailable", game_id=game["game_id"], error=str(exc))
            return []
        return team_starters(box, team_id)

    async def project(
        self,
        game: Game,
        team_id: int,
        *,
        injuries: list[InjuryEntry],
        roster: list[Player],
        schedule: list[Game],
        now: datetime | None = None,
    ) -> list[Player]:
        key = CacheKeys.lineups(game["game_id"], team_id)
        cached = await self.cache.get(key)
        if cached:
            return cached

        lineup: list[Player] = []
        if game_has_begun(game, now):
            starters = await self._actual_starters(game, team_id)
            if len(starters) == LINEUP_SIZE:
                jerseys = {p["person_id"]: p.get("jersey_number", "") for p in roster}
                lineup = [_player_from_row(row) for row in starters]
                for player in lineup:
                    if not player.get("jersey_number") and jerseys.get(player["person_id"]):
                        player["jersey_number"] = jerseys[player["person_id"]]
                minutes = {row["person_id"]: row["minutes"] for row in starters}
                lineup = order_lineup(lineup, minutes, self.order)
                logger.info("lineup_from_box_score", game_id=game["game_id"], team_id=team_id)

        if not lineup:
            tallies = await self.recent_starters(team_id, schedule)
            lineup = project_from_tallies(tallies, roster, injuries, order=self.order)

        if lineup:
            await self.cache.set(key, lineup, CacheTTL.LINEUPS)
        return lineup

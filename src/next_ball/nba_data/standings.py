"""League standings from the stats API, with locally computed ranks as fallback."""

from __future__ import annotations

from collections import defaultdict
from typing import Any

from next_ball.logging import get_logger
from next_ball.nba_data.cache_store import CacheKeys, CacheStore, CacheTTL
from next_ball.nba_data.contracts import StandingsEntry, TeamInfo
from next_ball.nba_data.endpoints import STANDINGS_URL_TEMPLATE
from next_ball.nba_data.gateway import NBAGateway
from next_ball.nba_data.normalize import (
    PLACEHOLDER,
    TEAM_TRICODES,
    WEST_TEAM_IDS,
    safe_float,
    safe_int,
)
from next_ball.nba_data.tables import ResultSetTable, select_table

logger = get_logger("standings")


def win_pct(wins: int, losses: int) -> float:
    total = wins + losses
    return round(wins / total, 3) if total > 0 else 0.0


def apply_computed_ranks(entries: list[StandingsEntry]) -> list[StandingsEntry]:
    """Recompute league, conference and division ranks as one consistent set.

    Order is win percentage descending with wins descending as the tie-break;
    input order decides exact ties.
    """
    ordered = sorted(entries, key=lambda entry: (-entry["win_pct"], -entry["wins"]))
    ranked: list[StandingsEntry] = []
    conference_counts: dict[str, int] = defaultdict(int)
    division_counts: dict[str, int] = defaultdict(int)
    for position, entry in enumerate(ordered, start=1):
        conference_counts[entry["conference"]] += 1
        division_rank = 0
        if entry["division"]:
            division_counts[entry["division"]] += 1
            division_rank = division_counts[entry["division"]]
        ranked.append(
            {
                **entry,
                "league_rank": position,
                "conference_rank": conference_counts[entry["conference"]],
                "division_rank": division_rank,
            }
        )
    return ranked


def _row_to_entry(table: ResultSetTable, row: list[Any]) -> StandingsEntry:
    team_id = safe_int(table.value(row, "TeamID")) or 0
    wins = safe_int(table.value(row, "WINS")) or 0
    losses = safe_int(table.value(row, "LOSSES")) or 0
    pct = safe_float(table.value(row, "WinPCT"))
    league_rank = safe_int(table.value(row, "LeagueRank")) or 0
    playoff_rank = safe_int(table.value(row, "PlayoffRank")) or 0
    conference = str(table.value(row, "Conference", "")).strip()
    if conference not in {"East", "West"}:
        conference = "West" if team_id in WEST_TEAM_IDS else "East"
    slug = str(table.value(row, "TeamSlug", "")).strip()
    return {
        "team_id": team_id,
        "team_name": str(table.value(row, "TeamName", "")).strip() or PLACEHOLDER,
        "team_city": str(table.value(row, "TeamCity", "")).strip() or PLACEHOLDER,
        "tricode": TEAM_TRICODES.get(team_id) or slug[:3].upper() or PLACEHOLDER,
        "wins": wins,
        "losses": losses,
        "win_pct": pct if pct is not None else win_pct(wins, losses),
        "league_rank": league_rank,
        "conference_rank": playoff_rank or league_rank,
        "division_rank": safe_int(table.value(row, "DivisionRank")) or 0,
        "conference": "West" if conference == "West" else "East",
        "division": str(table.value(row, "Division", "")).strip(),
    }


def parse_standings(payload: dict[str, Any]) -> list[StandingsEntry]:
    """Parse a standings response by header name; empty when the shape is unusable."""
    table = select_table(payload, name="Standings", required_column="TeamID")
    if table is None or len(table) == 0 or not table.has_column("TeamID"):
        logger.warning("standings_table_missing", keys=sorted(payload.keys()))
        return []
    entries = [_row_to_entry(table, row) for row in table.rows]
    entries = [entry for entry in entries if entry["team_id"]]
    if any(entry["league_rank"] <= 0 for entry in entries):
        entries = apply_computed_ranks(entries)
    return entries


def find_team_standings(
    standings: list[StandingsEntry], team_id: int
) -> StandingsEntry | None:
    for entry in standings:
        if entry["team_id"] == team_id:
            return entry
    return None


def placeholder_standings(team: TeamInfo) -> StandingsEntry:
    """Zero record for a team no standings source knows about."""
    return {
        "team_id": team["team_id"],
        "team_name": team["team_name"],
        "team_city": team["team_city"],
        "tricode": team["tricode"],
        "wins": 0,
        "losses": 0,
        "win_pct": 0.0,
        "league_rank": 0,
        "conference_rank": 0,
        "division_rank": 0,
        "conference": "West" if team["team_id"] in WEST_TEAM_IDS else "East",
        "division": "",
    }


class StandingsSource:
    def __init__(self, gateway: NBAGateway, cache: CacheStore, *, season: str) -> None:
        self.gateway = gateway
        self.cache = cache
        self.season = season

    async def fetch_standings(self) -> list[StandingsEntry]:
        cached = await self.cache.get(CacheKeys.STANDINGS)
        if cached:
            return cached
        payload = await self.gateway.get_json(
            STANDINGS_URL_TEMPLATE.format(season=self.season), stats=True
        )
        standings = parse_standings(payload)
        if standings:
            await self.cache.set(CacheKeys.STANDINGS, standings, CacheTTL.STANDINGS)
        logger.debug("standings_fetched", count=len(standings))
        return standings

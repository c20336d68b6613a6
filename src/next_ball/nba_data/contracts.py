"""Typed contracts for next-game aggregate payloads."""

from __future__ import annotations

from typing import Literal, TypedDict

GameStatus = Literal["scheduled", "in_progress", "final", "unknown"]
InjuryStatus = Literal["Out", "Doubtful", "Questionable", "Probable", "Available"]
Conference = Literal["East", "West"]
BoxScoreSchema = Literal["live", "v3", "v2"]


class TeamInfo(TypedDict):
    """Normalized team identity."""

    team_id: int
    team_name: str
    team_city: str
    tricode: str
    slug: str


class GameTeam(TeamInfo, total=False):
    """Team as it appears on a schedule entry, with running score and record."""

    score: int | None
    wins: int | None
    losses: int | None


class Venue(TypedDict):
    name: str
    city: str
    state: str


class Broadcast(TypedDict):
    scope: str
    media: str
    broadcaster_id: int
    display: str
    abbreviation: str


class Game(TypedDict):
    """One scheduled, live or completed game."""

    game_id: str
    start_time_local: str
    start_time_utc: str
    status: GameStatus
    status_text: str
    home_team: GameTeam
    away_team: GameTeam
    venue: Venue
    broadcasts: list[Broadcast]


class GameSummary(TypedDict, total=False):
    """Completed game seen from one focus team's perspective."""

    game_id: str
    game_date: str
    home_team: TeamInfo
    away_team: TeamInfo
    home_score: int | None
    away_score: int | None
    status: str
    result: Literal["W", "L"]


class StandingsEntry(TypedDict):
    team_id: int
    team_name: str
    team_city: str
    tricode: str
    wins: int
    losses: int
    win_pct: float
    league_rank: int
    conference_rank: int
    division_rank: int
    conference: Conference
    division: str


class InjuryEntry(TypedDict, total=False):
    player_name: str
    position: str
    status: InjuryStatus
    reason: str
    jersey_number: str


class Player(TypedDict, total=False):
    person_id: int
    first_name: str
    last_name: str
    position: str
    jersey_number: str


class BoxScoreRow(TypedDict):
    """Canonical player line shared by every box-score schema variant."""

    team_id: int
    person_id: int
    player_name: str
    first_name: str
    last_name: str
    position: str
    starter: bool | None
    minutes: float
    points: int
    rebounds: int
    assists: int
    jersey_number: str


class CanonicalBoxScore(TypedDict):
    game_id: str
    schema: BoxScoreSchema
    home_team_id: int
    away_team_id: int
    rows: list[BoxScoreRow]


class LeaderLine(TypedDict, total=False):
    player_name: str
    person_id: int
    value: int
    jersey_number: str


class LastH2HBoxScore(TypedDict):
    """Top performers of the most recent head-to-head game."""

    game_id: str
    home_team_id: int
    away_team_id: int
    home_top_pts: list[LeaderLine]
    home_top_reb: list[LeaderLine]
    home_top_ast: list[LeaderLine]
    away_top_pts: list[LeaderLine]
    away_top_reb: list[LeaderLine]
    away_top_ast: list[LeaderLine]
    game_high_pts_person_id: int | None
    game_high_reb_person_id: int | None
    game_high_ast_person_id: int | None


class StandingsPair(TypedDict):
    team: StandingsEntry
    opponent: StandingsEntry


class InjuryPair(TypedDict):
    team: list[InjuryEntry]
    opponent: list[InjuryEntry]


class LineupPair(TypedDict):
    team: list[Player]
    opponent: list[Player]


class NextGameResponse(TypedDict):
    """Aggregate handed to the presentation layer."""

    team_id: int
    game: Game
    opponent: TeamInfo
    is_home: bool
    location: str
    standings: StandingsPair
    injuries: InjuryPair
    projected_lineups: LineupPair
    team_recent_games: list[GameSummary]
    opponent_recent_games: list[GameSummary]
    head_to_head: list[GameSummary]
    last_head_to_head_box_score: LastH2HBoxScore | None
    last_updated: str

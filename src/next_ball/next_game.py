"""Next-game aggregate: cache, request coalescing, timeout and stale fallback around one build."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, TypeVar

from next_ball.logging import get_logger
from next_ball.nba_data.boxscore import BoxScoreAggregator, BoxScoreSource
from next_ball.nba_data.cache_store import CacheKeys, CacheStore, CacheTTL, build_cache_backend
from next_ball.nba_data.contracts import (
    Game,
    GameSummary,
    LastH2HBoxScore,
    NextGameResponse,
    StandingsEntry,
    TeamInfo,
)
from next_ball.nba_data.errors import (
    FetchTimeoutError,
    NoUpcomingGameError,
    ParseFailureError,
    UpstreamUnavailableError,
)
from next_ball.nba_data.gamelog import TeamDataSource
from next_ball.nba_data.gateway import NBAGateway
from next_ball.nba_data.injuries import InjuryReportSource
from next_ball.nba_data.lineups import LineupProjector
from next_ball.nba_data.names import enrich_injuries
from next_ball.nba_data.normalize import team_info
from next_ball.nba_data.schedule import (
    ScheduleSource,
    find_next_game,
    game_location,
    game_start,
    head_to_head,
    is_home,
    opponent_of,
    recent_games,
    standings_from_schedule,
)
from next_ball.nba_data.standings import (
    StandingsSource,
    find_team_standings,
    placeholder_standings,
)
from next_ball.settings import Settings
from next_ball.singleflight import SingleFlight
from next_ball.time_utils import same_et_day, utc_now, utc_now_str

logger = get_logger("next_game")

T = TypeVar("T")

STALE_FALLBACK_ERRORS = (UpstreamUnavailableError, ParseFailureError)


def _settled(label: str, result: T | BaseException, default: T) -> T:
    """Unwrap one `gather(..., return_exceptions=True)` slot, degrading failures to `default`."""
    if isinstance(result, BaseException):
        if not isinstance(result, Exception):
            raise result
        logger.warning("aggregate_slice_failed", slice=label, error=str(result))
        return default
    return result


async def _or_fetch(existing: list[T], fetch: Callable[[], Awaitable[list[T]]]) -> list[T]:
    if existing:
        return existing
    return await fetch()


def is_game_day(game: Game, now: datetime) -> bool:
    start = game_start(game)
    return start is not None and same_et_day(start, now)


def _team_side(game: Game, team_id: int) -> TeamInfo:
    side = game["home_team"] if game["home_team"]["team_id"] == team_id else game["away_team"]
    return team_info(side)


def _pick_standings(
    authoritative: list[StandingsEntry], derived: list[StandingsEntry], team: TeamInfo
) -> StandingsEntry:
    for source in (authoritative, derived):
        entry = find_team_standings(source, team["team_id"])
        if entry is not None:
            return entry
    return placeholder_standings(team)


class NextGameService:
    """Builds and caches the aggregate for a team's next game."""

    def __init__(
        self,
        *,
        cache: CacheStore,
        schedule: ScheduleSource,
        standings: StandingsSource,
        team_data: TeamDataSource,
        injuries: InjuryReportSource,
        lineups: LineupProjector,
        box_scores: BoxScoreAggregator,
        default_team_id: int,
        fetch_timeout_s: float = 10.0,
        recent_games_limit: int = 3,
        flights: SingleFlight | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.cache = cache
        self.schedule = schedule
        self.standings = standings
        self.team_data = team_data
        self.injuries = injuries
        self.lineups = lineups
        self.box_scores = box_scores
        self.default_team_id = default_team_id
        self.fetch_timeout_s = fetch_timeout_s
        self.recent_games_limit = recent_games_limit
        self.flights = flights or SingleFlight()
        self.clock = clock

    async def get_next_game_data(self, team_id: int | None = None) -> NextGameResponse:
        team_id = team_id or self.default_team_id
        key = CacheKeys.aggregate(team_id)
        cached = await self.cache.get(key)
        if cached is not None:
            logger.debug("aggregate_cache_hit", team_id=team_id)
            return cached

        if self.flights.in_flight(key):
            logger.debug("aggregate_join_in_flight", team_id=team_id)
        try:
            return await asyncio.wait_for(
                self.flights.run(key, lambda: self._build(team_id)), timeout=self.fetch_timeout_s
            )
        except TimeoutError:
            stale = await self._stale(team_id, reason="timeout")
            if stale is not None:
                return stale
            raise FetchTimeoutError(
                f"next-game data for team {team_id} timed out after {self.fetch_timeout_s}s"
            ) from None
        except STALE_FALLBACK_ERRORS as exc:
            stale = await self._stale(team_id, reason=type(exc).__name__)
            if stale is not None:
                return stale
            raise

    async def _stale(self, team_id: int, *, reason: str) -> NextGameResponse | None:
        stale = await self.cache.get(CacheKeys.aggregate_stale(team_id))
        if stale is not None:
            logger.warning("aggregate_served_stale", team_id=team_id, reason=reason)
        return stale

    async def _recent(self, schedule: list[Game], team_id: int) -> list[GameSummary]:
        games = recent_games(schedule, team_id, limit=self.recent_games_limit)
        if games:
            return games
        log = await self.team_data.fetch_game_log(team_id)
        return log[: self.recent_games_limit]

    async def _top_performers(self, meetings: list[GameSummary]) -> LastH2HBoxScore | None:
        if not meetings:
            return None
        latest = meetings[0]
        home_id = latest.get("home_team", {}).get("team_id")
        away_id = latest.get("away_team", {}).get("team_id")
        if not latest.get("game_id") or not home_id or not away_id:
            return None
        return await self.box_scores.top_performers(latest["game_id"], home_id, away_id)

    async def _build(self, team_id: int) -> NextGameResponse:
        schedule = await self.schedule.fetch_schedule()
        now = self.clock()
        game = find_next_game(schedule, team_id, now)
        if game is None:
            raise NoUpcomingGameError(team_id)

        opponent = opponent_of(game, team_id)
        opponent_id = opponent["team_id"]
        game_day = is_game_day(game, now)
        logger.info(
            "aggregate_build_started",
            team_id=team_id,
            game_id=game["game_id"],
            opponent_id=opponent_id,
            game_day=game_day,
        )

        scheduled_meetings = head_to_head(schedule, team_id, opponent_id)
        results: list[Any] = await asyncio.gather(
            self.standings.fetch_standings(),
            self.injuries.fetch_team_injuries(team_id, is_game_day=game_day, now=now),
            self.injuries.fetch_team_injuries(opponent_id, is_game_day=game_day, now=now),
            self.team_data.fetch_roster(team_id),
            self.team_data.fetch_roster(opponent_id),
            _or_fetch(
                scheduled_meetings,
                lambda: self.team_data.fetch_head_to_head(team_id, opponent_id),
            ),
            self._recent(schedule, team_id),
            self._recent(schedule, opponent_id),
            return_exceptions=True,
        )
        standings = _settled("standings", results[0], [])
        team_injuries = _settled("team_injuries", results[1], [])
        opponent_injuries = _settled("opponent_injuries", results[2], [])
        team_roster = _settled("team_roster", results[3], [])
        opponent_roster = _settled("opponent_roster", results[4], [])
        meetings = _settled("head_to_head", results[5], [])
        team_recent = _settled("team_recent_games", results[6], [])
        opponent_recent = _settled("opponent_recent_games", results[7], [])

        team_injuries = enrich_injuries(team_injuries, team_roster)
        opponent_injuries = enrich_injuries(opponent_injuries, opponent_roster)

        lineup_results = await asyncio.gather(
            self.lineups.project(
                game,
                team_id,
                injuries=team_injuries,
                roster=team_roster,
                schedule=schedule,
                now=now,
            ),
            self.lineups.project(
                game,
                opponent_id,
                injuries=opponent_injuries,
                roster=opponent_roster,
                schedule=schedule,
                now=now,
            ),
            self._top_performers(meetings),
            return_exceptions=True,
        )

        team = _team_side(game, team_id)
        derived = standings_from_schedule(schedule) if schedule else []
        response: NextGameResponse = {
            "team_id": team_id,
            "game": game,
            "opponent": opponent,
            "is_home": is_home(game, team_id),
            "location": game_location(game),
            "standings": {
                "team": _pick_standings(standings, derived, team),
                "opponent": _pick_standings(standings, derived, opponent),
            },
            "injuries": {"team": team_injuries, "opponent": opponent_injuries},
            "projected_lineups": {
                "team": _settled("team_lineup", lineup_results[0], []),
                "opponent": _settled("opponent_lineup", lineup_results[1], []),
            },
            "team_recent_games": team_recent,
            "opponent_recent_games": opponent_recent,
            "head_to_head": meetings,
            "last_head_to_head_box_score": _settled("box_score", lineup_results[2], None),
            "last_updated": utc_now_str(),
        }

        ttl_s = CacheTTL.AGGREGATE_GAME_DAY if game_day else CacheTTL.AGGREGATE
        await self.cache.set(CacheKeys.aggregate(team_id), response, ttl_s)
        await self.cache.set(CacheKeys.aggregate_stale(team_id), response, CacheTTL.AGGREGATE_STALE)
        logger.info("aggregate_build_finished", team_id=team_id, game_id=game["game_id"])
        return response


@asynccontextmanager
async def open_next_game_service(
    settings: Settings | None = None,
) -> AsyncIterator[NextGameService]:
    """Wire gateway, cache and sources from settings; close them on exit."""
    settings = settings or Settings()
    season = settings.current_season()
    backend = build_cache_backend(
        settings.cache_backend, cache_dir=settings.cache_dir, redis_url=settings.redis_url
    )
    cache = CacheStore(backend, namespace=settings.cache_namespace)
    gateway = NBAGateway(
        timeout_s=settings.http_timeout_s, retry_attempts=settings.http_retry_attempts
    )
    try:
        async with gateway:
            team_data = TeamDataSource(gateway, cache, season=season)
            box_source = BoxScoreSource(gateway, cache)
            yield NextGameService(
                cache=cache,
                schedule=ScheduleSource(gateway, cache),
                standings=StandingsSource(gateway, cache, season=season),
                team_data=team_data,
                injuries=InjuryReportSource(gateway, cache),
                lineups=LineupProjector(
                    box_source,
                    team_data,
                    cache,
                    order=settings.lineup_order,
                    recent_game_count=settings.lineup_recent_games,
                ),
                box_scores=BoxScoreAggregator(box_source, cache),
                default_team_id=settings.team_id,
                fetch_timeout_s=settings.fetch_timeout_s,
                recent_games_limit=settings.recent_games_limit,
            )
    finally:
        await cache.aclose()

"""Operator actions: cache invalidation and the scheduled warm-up refresh."""

from __future__ import annotations

import hmac
from collections.abc import Iterable
from typing import Any

from next_ball.logging import get_logger
from next_ball.nba_data.cache_store import CacheKeys, CacheStore
from next_ball.nba_data.errors import AdminAuthError, NBADataError
from next_ball.next_game import NextGameService
from next_ball.time_utils import utc_now_str

logger = get_logger("admin")


def check_secret(secret: str | None, expected_secret: str) -> None:
    """No-op when no secret is configured; otherwise the presented secret must match."""
    if not expected_secret:
        return
    if secret is None or not hmac.compare_digest(secret.encode(), expected_secret.encode()):
        raise AdminAuthError("admin secret missing or invalid")


async def clear_cache(
    cache: CacheStore,
    *,
    clear_all: bool = False,
    secret: str | None = None,
    expected_secret: str = "",
) -> dict[str, Any]:
    """Delete cached upstream data; stale aggregate copies survive unless `clear_all`."""
    check_secret(secret, expected_secret)
    if clear_all:
        keys = await cache.keys_matching("")
    else:
        aggregate_keys = [
            key
            for key in await cache.keys_matching(CacheKeys.AGGREGATE_PREFIX)
            if not key.startswith(CacheKeys.AGGREGATE_STALE_PREFIX)
        ]
        injury_keys = await cache.keys_matching(CacheKeys.INJURIES_PREFIX)
        keys = [CacheKeys.SCHEDULE, CacheKeys.STANDINGS, *aggregate_keys, *injury_keys]
    keys = sorted(set(keys))
    cleared = await cache.delete(*keys) if keys else 0
    logger.info("cache_cleared", clear_all=clear_all, keys=len(keys), cleared=cleared)
    return {"ok": True, "cleared": cleared, "keys": keys}


async def scheduled_refresh(
    service: NextGameService,
    *,
    team_ids: Iterable[int],
    secret: str | None = None,
    expected_secret: str = "",
) -> dict[str, Any]:
    """Drop the six-hourly keys, re-warm schedule and standings, then rebuild each aggregate."""
    check_secret(secret, expected_secret)
    team_ids = list(team_ids) or [service.default_team_id]
    cache = service.cache
    await cache.delete(
        CacheKeys.SCHEDULE,
        CacheKeys.STANDINGS,
        *(CacheKeys.aggregate(team_id) for team_id in team_ids),
    )

    failures: dict[str, str] = {}
    steps: dict[str, Any] = {
        "schedule": service.schedule.fetch_schedule,
        "standings": service.standings.fetch_standings,
    }
    for name, step in steps.items():
        try:
            await step()
        except NBADataError as exc:
            failures[name] = str(exc)
    refreshed: list[int] = []
    for team_id in team_ids:
        try:
            await service.get_next_game_data(team_id)
        except NBADataError as exc:
            failures[f"aggregate:{team_id}"] = str(exc)
        else:
            refreshed.append(team_id)
    if failures:
        logger.warning("scheduled_refresh_partial", failures=failures)
    return {
        "ok": not failures,
        "refreshed": refreshed,
        "failures": failures,
        "timestamp": utc_now_str(),
    }

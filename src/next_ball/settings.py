"""Application settings for next-ball."""

from __future__ import annotations

from datetime import date
from typing import Literal

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from next_ball.time_utils import et_today

CLEVELAND_TEAM_ID = 1610612739


def season_for_date(value: date) -> str:
    """NBA season label ("2025-26") containing `value`; seasons roll over in October."""
    start_year = value.year if value.month >= 10 else value.year - 1
    return f"{start_year}-{str(start_year + 1)[-2:]}"


class Settings(BaseSettings):
    """Runtime settings for upstream feeds, cache and aggregation."""

    model_config = SettingsConfigDict(
        env_prefix="NEXT_BALL_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    team_id: int = CLEVELAND_TEAM_ID
    season: str = ""
    cache_backend: Literal["none", "memory", "file", "redis"] = "memory"
    cache_dir: str = "data/next_ball_cache"
    cache_namespace: str = "nextball"
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        validation_alias=AliasChoices("REDIS_URL", "NEXT_BALL_REDIS_URL"),
    )
    http_timeout_s: float = 12.0
    http_retry_attempts: int = 3
    fetch_timeout_s: float = 10.0
    admin_secret: str = Field(
        default="",
        validation_alias=AliasChoices("CRON_SECRET", "NEXT_BALL_ADMIN_SECRET"),
    )
    lineup_order: Literal["position", "minutes"] = "position"
    recent_games_limit: int = 3
    lineup_recent_games: int = 5
    log_level: str = ""
    environment: str = "development"

    def current_season(self, today: date | None = None) -> str:
        if self.season.strip():
            return self.season.strip()
        return season_for_date(today or et_today())

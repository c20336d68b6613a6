from datetime import date

from next_ball.settings import CLEVELAND_TEAM_ID, Settings, season_for_date


def test_season_for_date_rolls_over_in_october() -> None:
    assert season_for_date(date(2026, 1, 25)) == "2025-26"
    assert season_for_date(date(2025, 10, 1)) == "2025-26"
    assert season_for_date(date(2025, 9, 30)) == "2024-25"
    assert season_for_date(date(2099, 11, 2)) == "2099-00"


def test_defaults(monkeypatch) -> None:
    for name in ["NEXT_BALL_TEAM_ID", "NEXT_BALL_SEASON", "REDIS_URL", "CRON_SECRET"]:
        monkeypatch.delenv(name, raising=False)
    settings = Settings(_env_file=None)
    assert settings.team_id == CLEVELAND_TEAM_ID
    assert settings.cache_backend == "memory"
    assert settings.lineup_order == "position"
    assert settings.current_season(date(2026, 1, 25)) == "2025-26"


def test_environment_overrides_and_aliases(monkeypatch) -> None:
    monkeypatch.setenv("NEXT_BALL_TEAM_ID", "1610612738")
    monkeypatch.setenv("NEXT_BALL_SEASON", " 2024-25 ")
    monkeypatch.setenv("NEXT_BALL_LINEUP_ORDER", "minutes")
    monkeypatch.setenv("REDIS_URL", "redis://cache:6379/1")
    monkeypatch.setenv("CRON_SECRET", "s3cret")
    settings = Settings(_env_file=None)
    assert settings.team_id == 1610612738
    assert settings.lineup_order == "minutes"
    assert settings.redis_url == "redis://cache:6379/1"
    assert settings.admin_secret == "s3cret"
    assert settings.current_season(date(2026, 1, 25)) == "2024-25"

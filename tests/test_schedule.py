from datetime import UTC, datetime

import pytest
from conftest import BOS, CLE, NYK, raw_game, raw_team, schedule_payload, season_schedule

from next_ball.nba_data.errors import ParseFailureError
from next_ball.nba_data.schedule import (
    find_next_game,
    game_location,
    game_status,
    head_to_head,
    is_home,
    opponent_of,
    parse_schedule,
    recent_games,
    standings_from_schedule,
)

NOW = datetime(2026, 1, 25, 12, 0, tzinfo=UTC)


def test_parse_schedule_flattens_game_dates() -> None:
    games = parse_schedule(season_schedule())
    assert [game["game_id"] for game in games] == [
        "0022500101",
        "0022500202",
        "0022500250",
        "0022500303",
    ]
    upcoming = games[-1]
    assert upcoming["status"] == "scheduled"
    assert upcoming["start_time_utc"] == "2026-01-26T00:00:00Z"
    assert upcoming["start_time_local"].startswith("2026-01-25T19:00:00")
    assert upcoming["broadcasts"][0]["display"] == "ESPN"
    assert game_location(upcoming) == "Rocket Arena, Cleveland, OH"


def test_parse_schedule_rejects_unknown_shape() -> None:
    with pytest.raises(ParseFailureError):
        parse_schedule({"games": []})


def test_parse_schedule_reads_eastern_wall_clock_when_utc_missing() -> None:
    raw = raw_game("0022500999", "", raw_team(CLE), raw_team(BOS))
    raw["gameDateTimeEst"] = "2026-01-25T19:30:00Z"
    games = parse_schedule(schedule_payload([raw]))
    assert games[0]["start_time_utc"] == "2026-01-26T00:30:00Z"


def test_game_status_codes() -> None:
    assert game_status(3, "Final") == "final"
    assert game_status(None, "Final/OT") == "final"
    assert game_status(2, "Q3 4:12") == "in_progress"
    assert game_status("1", "7:00 pm ET") == "scheduled"
    assert game_status(None, "PPD") == "unknown"


def test_find_next_game_picks_earliest_upcoming() -> None:
    games = parse_schedule(season_schedule())
    game = find_next_game(games, CLE, NOW)
    assert game is not None
    assert game["game_id"] == "0022500303"
    assert is_home(game, CLE)
    assert opponent_of(game, CLE)["tricode"] == "BOS"


def test_find_next_game_returns_none_after_last_game() -> None:
    games = parse_schedule(season_schedule())
    assert find_next_game(games, CLE, datetime(2026, 6, 1, tzinfo=UTC)) is None
    assert find_next_game(games, 1610612744, NOW) is None


def test_find_next_game_includes_game_in_progress() -> None:
    live = raw_game(
        "0022500400",
        "2026-01-25T11:00:00Z",
        raw_team(CLE, score=50),
        raw_team(NYK, score=48),
        status=2,
        status_text="Q3",
    )
    later = raw_game("0022500401", "2026-01-27T00:00:00Z", raw_team(BOS), raw_team(CLE))
    games = parse_schedule(schedule_payload([later, live]))
    game = find_next_game(games, CLE, NOW)
    assert game is not None
    assert game["game_id"] == "0022500400"


def test_recent_games_are_final_newest_first_with_results() -> None:
    games = parse_schedule(season_schedule())
    recent = recent_games(games, CLE, limit=3)
    assert [game["game_id"] for game in recent] == ["0022500250", "0022500202", "0022500101"]
    assert [game["result"] for game in recent] == ["L", "W", "W"]
    assert recent[1]["home_score"] == 99
    assert recent[1]["away_score"] == 101


def test_head_to_head_from_schedule() -> None:
    games = parse_schedule(season_schedule())
    meetings = head_to_head(games, CLE, BOS)
    assert [game["game_id"] for game in meetings] == ["0022500202", "0022500101"]
    assert all(game["result"] == "W" for game in meetings)
    assert head_to_head(games, BOS, CLE)[0]["result"] == "L"


def test_head_to_head_caps_at_four() -> None:
    raws = [
        raw_game(
            f"00225005{index:02d}",
            f"2026-01-{index + 1:02d}T00:30:00Z",
            raw_team(CLE, score=100 + index),
            raw_team(BOS, score=90),
            status=3,
            status_text="Final",
        )
        for index in range(6)
    ]
    meetings = head_to_head(parse_schedule(schedule_payload(raws)), CLE, BOS)
    assert len(meetings) == 4
    assert meetings[0]["game_id"] == "0022500505"


def test_standings_from_schedule_uses_latest_played_record() -> None:
    entries = standings_from_schedule(parse_schedule(season_schedule()))
    by_team = {entry["team_id"]: entry for entry in entries}
    assert (by_team[CLE]["wins"], by_team[CLE]["losses"]) == (24, 12)
    assert (by_team[BOS]["wins"], by_team[BOS]["losses"]) == (25, 9)
    assert [entry["tricode"] for entry in entries] == ["BOS", "NYK", "CLE"]
    assert [entry["league_rank"] for entry in entries] == [1, 2, 3]
    assert by_team[CLE]["conference_rank"] == 3

from typing import Any

import pytest

from next_ball.nba_data.boxscore import (
    BoxScoreAggregator,
    BoxScoreSource,
    LiveBoxScoreAdapter,
    ResultSetsV2Adapter,
    TraditionalV3Adapter,
    detect_adapter,
    parse_minutes,
    summarize_top_performers,
    team_starters,
    to_canonical_box_score,
)
from next_ball.nba_data.cache_store import CacheKeys, CacheStore
from next_ball.nba_data.errors import ParseFailureError, UpstreamUnavailableError

CLE = 1610612739
BOS = 1610612738


def _live_player(
    person_id: int,
    name: str,
    *,
    starter: str,
    minutes: str,
    points: int,
    rebounds: int = 0,
    assists: int = 0,
    position: str = "",
    jersey: str = "",
) -> dict[str, Any]:
    first, _, last = name.partition(" ")
    return {
        "personId": person_id,
        "name": name,
        "firstName": first,
        "familyName": last,
        "jerseyNum": jersey,
        "position": position,
        "starter": starter,
        "statistics": {
            "minutes": minutes,
            "points": points,
            "reboundsTotal": rebounds,
            "assists": assists,
        },
    }


def live_payload() -> dict[str, Any]:
    home = [
        _live_player(1, "Jayson Tatum", starter="1", minutes="PT36M30.00S", points=30,
                     rebounds=8, assists=5, position="SF", jersey="0"),
        _live_player(2, "Jaylen Brown", starter="1", minutes="PT34M00.00S", points=22,
                     rebounds=6, assists=5, position="SG", jersey="7"),
        _live_player(3, "Derrick White", starter="1", minutes="PT33M00.00S", points=12,
                     rebounds=3, assists=7, position="PG"),
        _live_player(4, "Kristaps Porzingis", starter="1", minutes="PT28M00.00S", points=18,
                     rebounds=9, assists=1, position="C"),
        _live_player(5, "Jrue Holiday", starter="1", minutes="PT30M00.00S", points=8,
                     rebounds=4, assists=4, position="PF"),
        _live_player(6, "Bench Guy", starter="0", minutes="PT00M00.00S", points=0),
    ]
    away = [
        _live_player(11, "Donovan Mitchell", starter="1", minutes="PT38M00.00S", points=30,
                     rebounds=4, assists=6, position="SG"),
        _live_player(12, "Evan Mobley", starter="1", minutes="PT35M00.00S", points=15,
                     rebounds=12, assists=3, position="PF"),
    ]
    return {
        "game": {
            "gameId": "0022500202",
            "homeTeam": {"teamId": BOS, "players": home},
            "awayTeam": {"teamId": CLE, "players": away},
        }
    }


def v3_payload() -> dict[str, Any]:
    def _player(person_id: int, first: str, last: str, position: str, minutes: str, points: int):
        return {
            "personId": person_id,
            "firstName": first,
            "familyName": last,
            "position": position,
            "jerseyNum": str(person_id),
            "statistics": {"minutes": minutes, "points": points, "reboundsTotal": 2, "assists": 1},
        }

    return {
        "boxScoreTraditional": {
            "gameId": "0022500101",
            "homeTeamId": CLE,
            "awayTeamId": BOS,
            "homeTeam": {
                "teamId": CLE,
                "players": [
                    _player(11, "Donovan", "Mitchell", "G", "36:30", 28),
                    _player(13, "Sam", "Merrill", "", "20:00", 9),
                ],
            },
            "awayTeam": {
                "teamId": BOS,
                "players": [_player(1, "Jayson", "Tatum", "F", "35:00", 25)],
            },
        }
    }


def v2_payload(*, with_start: bool = True) -> dict[str, Any]:
    headers = ["GAME_ID", "TEAM_ID", "PLAYER_ID", "PLAYER_NAME", "MIN", "PTS", "REB", "AST"]
    if with_start:
        headers.insert(4, "START_POSITION")
    rows = []
    for index in range(7):
        minutes = f"{40 - index}:00"
        row = ["0022500050", CLE, 100 + index, f"Player {index}", minutes, 10 + index, 3, 2]
        if with_start:
            row.insert(4, "G" if index in {2, 3, 4, 5, 6} else "")
        rows.append(row)
    return {"resultSets": [{"name": "PlayerStats", "headers": headers, "rowSet": rows}]}


def test_parse_minutes_formats() -> None:
    assert parse_minutes("PT34M12.00S") == 34.2
    assert parse_minutes("34:12") == 34.2
    assert parse_minutes("34.000000:30") == 34.5
    assert parse_minutes(28) == 28.0
    assert parse_minutes("") == 0.0
    assert parse_minutes(None) == 0.0


def test_detect_adapter_for_each_schema() -> None:
    assert isinstance(detect_adapter(live_payload()), LiveBoxScoreAdapter)
    assert isinstance(detect_adapter(v3_payload()), TraditionalV3Adapter)
    assert isinstance(detect_adapter(v2_payload()), ResultSetsV2Adapter)
    with pytest.raises(ParseFailureError):
        detect_adapter({"meta": {}})


def test_live_box_score_to_canonical() -> None:
    box = to_canonical_box_score(live_payload(), "ignored")
    assert box["schema"] == "live"
    assert box["game_id"] == "0022500202"
    assert (box["home_team_id"], box["away_team_id"]) == (BOS, CLE)
    tatum = box["rows"][0]
    assert tatum["player_name"] == "Jayson Tatum"
    assert tatum["minutes"] == 36.5
    assert tatum["starter"] is True
    assert tatum["jersey_number"] == "0"
    assert box["rows"][5]["starter"] is False


def test_v3_box_score_marks_starters_by_position() -> None:
    box = to_canonical_box_score(v3_payload(), "0022500101")
    assert box["schema"] == "v3"
    assert (box["home_team_id"], box["away_team_id"]) == (CLE, BOS)
    starters = team_starters(box, CLE)
    assert [row["person_id"] for row in starters] == [11]
    assert box["rows"][1]["starter"] is False
    assert box["rows"][0]["minutes"] == 36.5


def test_v2_box_score_uses_start_position() -> None:
    box = to_canonical_box_score(v2_payload(), "0022500050")
    assert box["schema"] == "v2"
    assert box["rows"][0]["player_name"] == "Player 0"
    starters = team_starters(box, CLE)
    assert [row["person_id"] for row in starters] == [102, 103, 104, 105, 106]


def test_starters_fall_back_to_minutes_then_points() -> None:
    box = to_canonical_box_score(v2_payload(with_start=False), "0022500050")
    assert all(row["starter"] is None for row in box["rows"])
    starters = team_starters(box, CLE)
    assert [row["person_id"] for row in starters] == [100, 101, 102, 103, 104]


def test_top_performers_per_team_and_game_high() -> None:
    box = to_canonical_box_score(live_payload(), "0022500202")
    summary = summarize_top_performers(box, BOS, CLE)
    assert summary is not None
    assert [line["player_name"] for line in summary["home_top_pts"]] == [
        "Jayson Tatum",
        "Jaylen Brown",
        "Kristaps Porzingis",
    ]
    assert [line["value"] for line in summary["home_top_ast"]] == [7, 5, 5]
    assert summary["home_top_ast"][1]["person_id"] == 1
    assert [line["person_id"] for line in summary["away_top_reb"]] == [12, 11]
    assert summary["home_top_pts"][0]["jersey_number"] == "0"
    assert "jersey_number" not in summary["home_top_reb"][0]
    assert summary["game_high_pts_person_id"] == 1
    assert summary["game_high_reb_person_id"] == 12
    assert summary["game_high_ast_person_id"] == 3
    all_ids = {
        line["person_id"]
        for key in ("home_top_pts", "home_top_reb", "home_top_ast")
        for line in summary[key]
    }
    assert 6 not in all_ids


def test_top_performers_empty_box_is_none() -> None:
    box = {"game_id": "1", "schema": "live", "home_team_id": 1, "away_team_id": 2, "rows": []}
    assert summarize_top_performers(box, 1, 2) is None


class _FakeGateway:
    def __init__(self, responses: dict[str, Any]) -> None:
        self.responses = responses
        self.calls: list[str] = []

    async def get_json(self, url: str, *, stats: bool = False) -> dict[str, Any]:
        self.calls.append(url)
        for fragment, response in self.responses.items():
            if fragment in url:
                if isinstance(response, Exception):
                    raise response
                return response
        raise UpstreamUnavailableError("not found", url=url, status_code=404)


@pytest.mark.asyncio
async def test_box_score_source_falls_back_to_stats(memory_cache: CacheStore) -> None:
    gateway = _FakeGateway({"boxscoretraditionalv3": v3_payload()})
    source = BoxScoreSource(gateway, memory_cache)
    box = await source.fetch_box_score("0022500101")
    assert box["schema"] == "v3"
    assert len(gateway.calls) == 2
    assert await memory_cache.get(CacheKeys.box_score("0022500101")) == box


@pytest.mark.asyncio
async def test_box_score_source_rejects_live_box_for_other_teams(
    memory_cache: CacheStore,
) -> None:
    gateway = _FakeGateway({"cdn.nba.com": live_payload(), "boxscoretraditionalv3": v3_payload()})
    source = BoxScoreSource(gateway, memory_cache)
    box = await source.fetch_box_score("0022500101", expected_team_ids={CLE, 1610612752})
    assert box["schema"] == "v3"


@pytest.mark.asyncio
async def test_aggregator_returns_none_when_unavailable(memory_cache: CacheStore) -> None:
    aggregator = BoxScoreAggregator(BoxScoreSource(_FakeGateway({}), memory_cache), memory_cache)
    assert await aggregator.top_performers("0022500999", BOS, CLE) is None


@pytest.mark.asyncio
async def test_aggregator_caches_summary(memory_cache: CacheStore) -> None:
    gateway = _FakeGateway({"cdn.nba.com": live_payload()})
    aggregator = BoxScoreAggregator(BoxScoreSource(gateway, memory_cache), memory_cache)
    first = await aggregator.top_performers("0022500202", BOS, CLE)
    assert first is not None
    gateway.calls.clear()
    assert await aggregator.top_performers("0022500202", BOS, CLE) == first
    assert gateway.calls == []

"""CLI entrypoint for next-ball."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from typing import Any

from next_ball.admin import clear_cache, scheduled_refresh
from next_ball.logging import configure_logging
from next_ball.nba_data.contracts import NextGameResponse
from next_ball.nba_data.errors import CLIError, NBADataError
from next_ball.next_game import open_next_game_service
from next_ball.settings import Settings


def _record(entry: dict[str, Any]) -> str:
    return f"{entry.get('wins', 0)}-{entry.get('losses', 0)}"


def _summary_lines(data: NextGameResponse) -> list[str]:
    game = data["game"]
    opponent = data["opponent"]
    standings = data["standings"]
    side = "vs" if data["is_home"] else "@"
    lines = [
        f"game_id={game['game_id']} {side} {opponent['tricode']} start={game['start_time_utc']}",
        f"location={data['location']}",
        f"record team={_record(standings['team'])} opponent={_record(standings['opponent'])}",
    ]
    for label in ("team", "opponent"):
        injuries = data["injuries"][label]
        lineup = data["projected_lineups"][label]
        names = ", ".join(
            f"{player.get('first_name', '')} {player.get('last_name', '')}".strip()
            for player in lineup
        )
        lines.append(f"{label}: injuries={len(injuries)} lineup=[{names}]")
    lines.append(f"head_to_head={len(data['head_to_head'])} last_updated={data['last_updated']}")
    return lines


async def _next_game(settings: Settings, team_id: int | None) -> NextGameResponse:
    async with open_next_game_service(settings) as service:
        return await service.get_next_game_data(team_id)


def _cmd_next_game(args: argparse.Namespace, settings: Settings) -> int:
    data = asyncio.run(_next_game(settings, args.team_id))
    if args.json:
        print(json.dumps(data, sort_keys=True, indent=2))
        return 0
    for line in _summary_lines(data):
        print(line)
    return 0


async def _cache_clear(settings: Settings, clear_all: bool, secret: str | None) -> dict[str, Any]:
    async with open_next_game_service(settings) as service:
        return await clear_cache(
            service.cache,
            clear_all=clear_all,
            secret=secret,
            expected_secret=settings.admin_secret,
        )


def _cmd_cache_clear(args: argparse.Namespace, settings: Settings) -> int:
    result = asyncio.run(_cache_clear(settings, args.all, args.secret))
    print(json.dumps(result, sort_keys=True))
    return 0


async def _refresh(settings: Settings, team_ids: list[int], secret: str | None) -> dict[str, Any]:
    async with open_next_game_service(settings) as service:
        return await scheduled_refresh(
            service,
            team_ids=team_ids,
            secret=secret,
            expected_secret=settings.admin_secret,
        )


def _cmd_refresh(args: argparse.Namespace, settings: Settings) -> int:
    result = asyncio.run(_refresh(settings, args.team_id or [], args.secret))
    print(json.dumps(result, sort_keys=True))
    return 0 if result.get("ok") else 1


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="next-ball")
    parser.add_argument(
        "--cache-backend",
        choices=["none", "memory", "file", "redis"],
        default="",
        help="Override the configured cache backend for this invocation.",
    )
    subparsers = parser.add_subparsers(dest="command")

    next_game = subparsers.add_parser("next-game", help="Show the aggregate for the next game")
    next_game.add_argument("--team-id", type=int, default=None)
    next_game.add_argument("--json", action="store_true", help="Print the full aggregate")
    next_game.set_defaults(func=_cmd_next_game)

    cache_clear = subparsers.add_parser("cache-clear", help="Invalidate cached upstream data")
    cache_clear.add_argument("--all", action="store_true", help="Delete every key in namespace")
    cache_clear.add_argument("--secret", default=None)
    cache_clear.set_defaults(func=_cmd_cache_clear)

    refresh = subparsers.add_parser("refresh", help="Invalidate and re-warm aggregates")
    refresh.add_argument("--team-id", type=int, action="append", default=None)
    refresh.add_argument("--secret", default=None)
    refresh.set_defaults(func=_cmd_refresh)
    return parser


def _validate_team_ids(value: int | list[int] | None) -> None:
    if value is None:
        return
    team_ids = value if isinstance(value, list) else [value]
    if any(team_id <= 0 for team_id in team_ids):
        raise CLIError("--team-id must be a positive NBA team id")


def _settings_for(args: argparse.Namespace) -> Settings:
    settings = Settings()
    if args.cache_backend:
        settings = settings.model_copy(update={"cache_backend": args.cache_backend})
    return settings


def main(argv: list[str] | None = None) -> int:
    """Run the CLI."""
    parser = _build_parser()
    args = parser.parse_args(argv)
    func = getattr(args, "func", None)
    if func is None:
        parser.print_help()
        return 0
    try:
        settings = _settings_for(args)
        configure_logging(settings)
        _validate_team_ids(getattr(args, "team_id", None))
        return int(func(args, settings))
    except NBADataError as exc:
        print(str(exc), file=sys.stderr)
        return 2


if __name__ == "__main__":
    raise SystemExit(main())

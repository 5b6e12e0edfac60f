"""CLI entrypoint for prop-dash."""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import json
import logging
import sys
from typing import Any

from prop_dash.client import PredictionAPIClient
from prop_dash.derive import entry_value, filter_games, find_player, group_games_by_date
from prop_dash.errors import MalformedInputError, PropDashError
from prop_dash.selection import STAT_CATEGORIES
from prop_dash.session import DashboardSession
from prop_dash.settings import Settings


def _build_client(settings: Settings) -> PredictionAPIClient:
    return PredictionAPIClient(settings)


def _print_json(payload: Any) -> None:
    if dataclasses.is_dataclass(payload):
        payload = dataclasses.asdict(payload)
    print(json.dumps(payload, sort_keys=True, indent=2, default=str))


async def _games(args: argparse.Namespace, session: DashboardSession) -> int:
    entry = await session.cache.wait(session.games_entry().key)
    if entry.status == "failed":
        raise PropDashError(f"games feed unavailable: {entry.error}")
    games = filter_games(entry_value(entry), args.team)
    if not games:
        print("no games")
        return 0
    for game_date, rows in sorted(group_games_by_date(games).items()):
        print(game_date)
        for game in rows:
            status = str(game.get("status", ""))
            print(
                f"  {game.get('gameId', '')} {game.get('awayTeam', '')} @ "
                f"{game.get('homeTeam', '')} {status}".rstrip()
            )
    return 0


async def _load_game(session: DashboardSession, game_id: str):
    # The feed decides which team queries exist, so resolve twice.
    session.game_view(game_id)
    await session.settle()
    view = session.game_view(game_id)
    await session.settle()
    view = session.game_view(game_id)
    if view.game is None:
        raise PropDashError(f"unknown game: {game_id}")
    return view


async def _game(args: argparse.Namespace, session: DashboardSession) -> int:
    for player_id in args.exclude_home:
        session.selection.add_excluded("home", player_id)
    for player_id in args.exclude_away:
        session.selection.add_excluded("away", player_id)
    view = await _load_game(session, args.game_id)
    _print_json(view)
    return 0


async def _player(args: argparse.Namespace, session: DashboardSession) -> int:
    selection = session.selection
    selection.set_stat_category(args.stat)
    selection.set_bookmaker_line(args.line)
    if args.analyze and not selection.has_valid_line:
        raise MalformedInputError(f"--line must be a positive number, got {args.line!r}")

    game_view = await _load_game(session, args.game_id)
    player = find_player(game_view.full_prediction, args.player_id)
    if player is None:
        raise PropDashError(f"player {args.player_id} not in game {args.game_id}")
    home_team_name = str(game_view.game.get("homeTeam", "")) if game_view.game else ""
    opponent = (
        game_view.away_team_id
        if str(player.get("team", "")) == home_team_name
        else game_view.home_team_id
    )

    def _view():
        return session.player_view(
            player, opponent_team_id=opponent, home_team_name=home_team_name
        )

    _view()
    if args.analyze:
        session.analyze(player)
    await session.settle()
    _print_json(_view())
    return 0


async def _run(args: argparse.Namespace) -> int:
    settings = Settings()
    async with _build_client(settings) as client:
        async with DashboardSession(client, settings=settings) as session:
            return await args.handler(args, session)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="prop-dash")
    parser.add_argument(
        "--log-level",
        default="",
        help="Logging level (default: PROP_DASH_LOG_LEVEL or INFO).",
    )
    subparsers = parser.add_subparsers(dest="command")

    games = subparsers.add_parser("games", help="List games for the next 48 hours")
    games.set_defaults(handler=_games)
    games.add_argument("--team", default="", help="Filter by team name substring.")

    game = subparsers.add_parser("game", help="Show predictions for one game")
    game.set_defaults(handler=_game)
    game.add_argument("game_id")
    game.add_argument("--exclude-home", action="append", default=[], metavar="PLAYER_ID")
    game.add_argument("--exclude-away", action="append", default=[], metavar="PLAYER_ID")

    player = subparsers.add_parser("player", help="Show one player's prop panel")
    player.set_defaults(handler=_player)
    player.add_argument("game_id")
    player.add_argument("player_id")
    player.add_argument("--stat", default="PTS", choices=STAT_CATEGORIES)
    player.add_argument("--line", default="", help="Bookmaker line, e.g. 24.5.")
    player.add_argument("--analyze", action="store_true", help="Run the probability calculator.")
    return parser


def main(argv: list[str] | None = None) -> int:
    """Run the CLI."""
    parser = _build_parser()
    args = parser.parse_args(argv)
    if getattr(args, "handler", None) is None:
        parser.print_help()
        return 0
    try:
        level = args.log_level or Settings().log_level
        logging.basicConfig(
            level=level.upper(),
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )
        return int(asyncio.run(_run(args)))
    except (PropDashError, ValueError) as exc:
        print(str(exc), file=sys.stderr)
        return 2


if __name__ == "__main__":
    raise SystemExit(main())

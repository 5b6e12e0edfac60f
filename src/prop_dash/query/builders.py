"""Descriptor builders, one per prediction service query."""

from __future__ import annotations

from collections.abc import Iterable

from prop_dash.query.request import RequestDescriptor
from prop_dash.selection import StatCategory


def _ids(values: Iterable[int | str]) -> frozenset[str]:
    return frozenset(str(value).strip() for value in values if str(value).strip())


def games_feed_request() -> RequestDescriptor:
    return RequestDescriptor(query_type="games_feed", params={}, label="games feed")


def team_roster_request(team_id: str) -> RequestDescriptor:
    return RequestDescriptor(
        query_type="team_roster",
        params={"team_id": str(team_id)},
        label=f"roster {team_id}",
    )


def match_prediction_request(
    home_team_id: str,
    away_team_id: str,
    excluded_home: Iterable[int | str] = (),
    excluded_away: Iterable[int | str] = (),
) -> RequestDescriptor:
    return RequestDescriptor(
        query_type="match_prediction",
        params={
            "home_team_id": str(home_team_id),
            "away_team_id": str(away_team_id),
            "excluded_home": _ids(excluded_home),
            "excluded_away": _ids(excluded_away),
        },
        label=f"match prediction {away_team_id}@{home_team_id}",
    )


def full_match_prediction_request(
    home_team_id: str,
    away_team_id: str,
    excluded_home: Iterable[int | str] = (),
    excluded_away: Iterable[int | str] = (),
) -> RequestDescriptor:
    return RequestDescriptor(
        query_type="full_match_prediction",
        params={
            "home_team_id": str(home_team_id),
            "away_team_id": str(away_team_id),
            "excluded_home": _ids(excluded_home),
            "excluded_away": _ids(excluded_away),
        },
        label=f"full match prediction {away_team_id}@{home_team_id}",
    )


def player_history_request(player_id: int | str, opponent_team_id: str) -> RequestDescriptor:
    # The bookmaker line never reaches this key; history does not depend on it.
    return RequestDescriptor(
        query_type="player_history",
        params={"player_id": str(player_id), "opponent_team_id": str(opponent_team_id)},
        label=f"player history {player_id} vs {opponent_team_id}",
    )


def calculator_request(
    player_id: int | str,
    projection: float,
    line: float,
    stat_category: StatCategory,
) -> RequestDescriptor:
    return RequestDescriptor(
        query_type="calculator_analysis",
        params={
            "player_id": str(player_id),
            "projection": float(projection),
            "line": float(line),
            "stat": stat_category,
        },
        label=f"calculator {player_id} {stat_category} {line:g}",
    )


def shooting_splits_request(
    home_team_code: str,
    away_team_code: str,
    excluded_home: Iterable[int | str] = (),
    excluded_away: Iterable[int | str] = (),
) -> RequestDescriptor:
    return RequestDescriptor(
        query_type="shooting_splits",
        params={
            "home_team_code": home_team_code,
            "away_team_code": away_team_code,
            "excluded_home": _ids(excluded_home),
            "excluded_away": _ids(excluded_away),
        },
        label=f"shooting splits {away_team_code}@{home_team_code}",
    )

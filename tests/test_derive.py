from datetime import UTC, datetime

import pytest

from prop_dash.derive import (
    build_game_view,
    build_player_view,
    compute_edge,
    filter_games,
    find_player,
    group_games_by_date,
    is_player_home,
    projection_value,
    recommendation_class,
    resolve_team_id,
    search_roster,
    shooting_battle,
    split_value,
)
from prop_dash.query.builders import games_feed_request, player_history_request
from prop_dash.query.cache import CacheEntry
from prop_dash.selection import SelectionState

PLAYER = {
    "player_id": 2544,
    "player": "LeBron James",
    "team": "Los Angeles Lakers",
    "predicted_stats": {"PTS": 24.3, "REB": 5.1, "AST": 7.8},
    "advanced_metrics_projected": {"PRA": 37.2},
}

HISTORY = {
    "recent_form_avg": {"PTS": 26.0, "REB": 6.0, "AST": 8.0, "PRA": 40.0, "GP": 5},
    "h2h_avg": {"PTS": 30.0, "REB": 7.0, "AST": 9.0, "PRA": 46.0, "GP": 0},
    "splits": {"home": {"PTS": 27.1}, "away": {"REB": 4.4}},
    "fatigue": {"status": "Rested", "color_code": "GREEN", "last_min": "31.5"},
    "matchup_context": "Elite perimeter defense",
}


def _entry(value, *, status="resolved", error=None) -> CacheEntry:
    request = player_history_request(2544, "BOS")
    return CacheEntry(
        key=request.key(),
        request=request,
        status=status,
        value=value,
        error=error,
        fetched_at=datetime(2026, 1, 1, tzinfo=UTC) if value is not None else None,
    )


def test_projection_value_reads_stat_specific_fields() -> None:
    assert projection_value(PLAYER, "PTS") == pytest.approx(24.3)
    assert projection_value(PLAYER, "AST") == pytest.approx(7.8)
    assert projection_value(PLAYER, "PRA") == pytest.approx(37.2)
    assert projection_value({}, "REB") == 0.0


@pytest.mark.parametrize("line", ["0", "", "-3", "abc", "nan"])
def test_edge_undefined_for_invalid_lines(line: str) -> None:
    assert compute_edge(24.3, line) is None


def test_edge_positive() -> None:
    assert compute_edge(24.3, "22.5") == pytest.approx(1.8)
    assert compute_edge(20.0, "22.5") == pytest.approx(-2.5)


def test_recommendation_mapping() -> None:
    assert recommendation_class("green", "Lean UNDER 22.5") == "OVER"
    assert recommendation_class("RED", "Lean OVER") == "UNDER"
    assert recommendation_class("amber", "OVER") == "NEUTRAL"
    assert recommendation_class("purple", "OVER") == "NEUTRAL"
    assert recommendation_class(None, "Lean UNDER 22.5") == "UNDER"
    assert recommendation_class("", "take the over") == "OVER"
    assert recommendation_class(None, None) == "NEUTRAL"


def test_split_value_never_raises() -> None:
    assert split_value(HISTORY, "home", "PTS") == pytest.approx(27.1)
    assert split_value(HISTORY, "home", "REB") is None
    assert split_value(None, "away", "PTS") is None
    assert split_value({"splits": {"away": "n/a"}}, "away", "PTS") is None


def test_is_player_home_uses_exact_names() -> None:
    assert is_player_home("Los Angeles Lakers", "Los Angeles Lakers") is True
    assert is_player_home("LA Lakers", "Los Angeles Lakers") is False
    assert is_player_home("", "") is False


def test_player_view_merges_history_and_hides_empty_h2h() -> None:
    selection = SelectionState()
    selection.set_bookmaker_line("22.5")
    view = build_player_view(
        selection,
        PLAYER,
        history=_entry(HISTORY),
        calculator=None,
        home_team_name="Los Angeles Lakers",
    )
    assert view.projection_value == pytest.approx(24.3)
    assert view.edge == pytest.approx(1.8)
    assert view.recent_form_average == pytest.approx(26.0)
    assert view.head_to_head_average is None
    assert view.home_split == pytest.approx(27.1)
    assert view.is_player_home is True
    assert view.fatigue is not None and view.fatigue.color_code == "green"
    assert view.fatigue.last_minutes == pytest.approx(31.5)
    assert view.calculator is None
    assert view.recommendation_class is None


def test_player_view_treats_failed_history_as_unresolved() -> None:
    failed = _entry(HISTORY, status="failed", error="timeout")
    view = build_player_view(SelectionState(), PLAYER, history=failed, calculator=None)
    assert view.recent_form is None
    assert view.history_error == "timeout"
    assert view.edge is None


def test_player_view_shows_calculator_only_when_open() -> None:
    result = {
        "probability_over": 61.2,
        "probability_under": 38.8,
        "advice": "OVER",
        "color_code": "green",
    }
    selection = SelectionState()
    selection.set_bookmaker_line("22.5")
    closed = build_player_view(selection, PLAYER, history=None, calculator=_entry(result))
    assert closed.calculator is None
    selection.set_calculator_open(True)
    opened = build_player_view(selection, PLAYER, history=None, calculator=_entry(result))
    assert opened.calculator is not None
    assert opened.calculator.probability_over == pytest.approx(61.2)
    assert opened.recommendation_class == "OVER"


def test_calculator_accepts_camel_case_payload() -> None:
    selection = SelectionState(calculator_open=True)
    payload = {
        "probabilityOver": 40,
        "probabilityUnder": 60,
        "advice": "Lean UNDER",
        "colorCode": "",
    }
    view = build_player_view(selection, PLAYER, history=None, calculator=_entry(payload))
    assert view.calculator is not None
    assert view.calculator.probability_under == pytest.approx(60.0)
    assert view.recommendation_class == "UNDER"


def test_find_player_searches_both_sides() -> None:
    full = {"home_players": [{"player_id": 1}], "away_players": [{"player_id": 2544}]}
    assert find_player(full, "2544") == {"player_id": 2544}
    assert find_player(full, 99) is None
    assert find_player(None, 1) is None


def test_resolve_team_id_falls_back_to_tricode() -> None:
    game = {"homeTeam": "Boston Celtics", "awayTeam": "Lakers", "awayTeamId": "1610612747"}
    assert resolve_team_id(game, "home") == "BOS"
    assert resolve_team_id(game, "away") == "1610612747"
    assert resolve_team_id(None, "home") == ""


def test_search_roster_is_accent_and_case_insensitive() -> None:
    roster = [{"id": 1, "full_name": "Nikola Jokić"}, {"id": 2, "full_name": "Jamal Murray"}]
    assert [item["id"] for item in search_roster(roster, "JOKIC")] == [1]
    assert len(search_roster(roster, "")) == 2


def test_filter_and_group_games() -> None:
    games = [
        {"gameId": "1", "gameDate": "2026-01-02", "homeTeam": "Celtics", "awayTeam": "Lakers"},
        {"gameId": "2", "gameDate": "2026-01-01", "homeTeam": "Utah Jazz", "awayTeam": "Suns"},
        {"gameId": "3", "gameDate": "2026-01-02", "homeTeam": "Miami Heat", "awayTeam": "Knicks"},
    ]
    assert [game["gameId"] for game in filter_games(games, "celtics")] == ["1"]
    grouped = group_games_by_date(filter_games(games, ""))
    assert list(grouped) == ["2026-01-02", "2026-01-01"]
    assert [game["gameId"] for game in grouped["2026-01-02"]] == ["1", "3"]


def test_shooting_battle_bars_and_winners() -> None:
    payload = {
        "matchup": "LAL @ BOS",
        "home": {"team": "BOS", "FG2M": 25.0, "FG3M": 15.0, "Total_FG": 40.0},
        "away": {"team": "LAL", "FG2M": 30.0, "FG3M": 10.0},
        "analysis": {"2pt_winner": "LAL", "3pt_winner": "BOS", "fatigue_impact": "no"},
    }
    battle = shooting_battle(payload)
    assert battle is not None
    assert battle.away.two_bar_pct == 100.0
    assert battle.home.two_bar_pct == pytest.approx(83.3)
    assert battle.away.total_made == pytest.approx(40.0)
    assert battle.away.wins_two and not battle.away.wins_three
    assert battle.home.wins_three
    assert shooting_battle({"home": {}}) is None


def test_game_view_tolerates_missing_entries() -> None:
    request = games_feed_request()
    games = CacheEntry(
        key=request.key(),
        request=request,
        status="resolved",
        value=[{"gameId": "g1", "homeTeam": "Boston Celtics", "awayTeam": "Los Angeles Lakers"}],
        fetched_at=datetime(2026, 1, 1, tzinfo=UTC),
    )
    selection = SelectionState()
    view = build_game_view(selection, "g1", games=games)
    assert view.home_team_id == "BOS"
    assert view.away_team_id == "LAL"
    assert view.prediction is None
    assert view.loading is False
    assert view.errors == {}

    pending = CacheEntry(key=request.key(), request=request, status="pending")
    assert build_game_view(selection, "g1", games=pending).loading is True

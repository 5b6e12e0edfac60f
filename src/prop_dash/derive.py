"""Pure derivations from cached payloads + selection state to view models.

Nothing here fetches or mutates. Every input may be missing: callers pass the
cache entries for the keys of the current selection, and an entry that is
absent, idle, still loading for the first time, or failed contributes nothing.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal

from prop_dash.normalize import normalize_person_name, team_code
from prop_dash.query.cache import CacheEntry
from prop_dash.selection import ActiveTab, SelectionState, Side, StatCategory
from prop_dash.util.parsing import positive_float, safe_float, safe_int

RecommendationClass = Literal["OVER", "UNDER", "NEUTRAL"]

_COLOR_RECOMMENDATIONS: dict[str, RecommendationClass] = {
    "green": "OVER",
    "red": "UNDER",
    "amber": "NEUTRAL",
    "yellow": "NEUTRAL",
}


@dataclass(frozen=True)
class StatLine:
    """Per-game averages over a sample of games."""

    pts: float | None
    reb: float | None
    ast: float | None
    pra: float | None
    pa: float | None
    pr: float | None
    stl: float | None
    blk: float | None
    games_played: int

    def value(self, stat: StatCategory) -> float | None:
        return {"PTS": self.pts, "REB": self.reb, "AST": self.ast, "PRA": self.pra}[stat]


@dataclass(frozen=True)
class FatigueState:
    status: str
    color_code: str
    last_minutes: float | None


@dataclass(frozen=True)
class CalculatorResult:
    probability_over: float | None
    probability_under: float | None
    advice: str
    color_code: str | None
    confidence: str | None
    recommendation: RecommendationClass


@dataclass(frozen=True)
class PlayerView:
    """Everything the player panel renders for one selection."""

    player_id: str
    player_name: str
    stat_category: StatCategory
    active_tab: ActiveTab
    projection_value: float
    bookmaker_line: float | None
    edge: float | None
    recent_form: StatLine | None
    head_to_head: StatLine | None
    recent_form_average: float | None
    head_to_head_average: float | None
    home_split: float | None
    away_split: float | None
    is_player_home: bool
    fatigue: FatigueState | None
    matchup_context: str | None
    history_loading: bool
    history_error: str | None
    calculator_open: bool
    calculator: CalculatorResult | None
    calculator_pending: bool
    calculator_error: str | None

    @property
    def recommendation_class(self) -> RecommendationClass | None:
        return self.calculator.recommendation if self.calculator is not None else None


@dataclass(frozen=True)
class ShootingSide:
    team: str
    two_made: float
    two_range: str
    three_made: float
    three_range: str
    total_made: float
    two_bar_pct: float
    three_bar_pct: float
    wins_two: bool
    wins_three: bool


@dataclass(frozen=True)
class ShootingBattle:
    matchup: str
    pace_context: str
    home: ShootingSide
    away: ShootingSide
    fatigue_impact: str


@dataclass(frozen=True)
class GameView:
    """Everything the game page renders for one selection."""

    game_id: str
    game: dict[str, Any] | None
    home_team_id: str
    away_team_id: str
    home_roster: list[dict[str, Any]]
    away_roster: list[dict[str, Any]]
    missing_home: list[dict[str, Any]]
    missing_away: list[dict[str, Any]]
    prediction: dict[str, Any] | None
    full_prediction: dict[str, Any] | None
    shooting: ShootingBattle | None
    loading: bool
    errors: dict[str, str]


def entry_value(entry: CacheEntry | None) -> Any:
    """Payload usable for merging, or None when unresolved or failed."""
    if entry is None or entry.status == "failed" or not entry.has_value:
        return None
    return entry.value


def entry_error(entry: CacheEntry | None) -> str | None:
    if entry is None or entry.status != "failed":
        return None
    return entry.error


def _as_dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def projection_value(player: dict[str, Any], stat: StatCategory) -> float:
    """Baseline projection for ``stat``; PRA comes from the advanced metrics block."""
    if stat == "PRA":
        raw = _as_dict(player.get("advanced_metrics_projected")).get("PRA")
    else:
        raw = _as_dict(player.get("predicted_stats")).get(stat)
    value = safe_float(raw)
    return value if value is not None else 0.0


def parse_bookmaker_line(text: Any) -> float | None:
    """Parse a user-entered line; only finite numbers above zero are valid."""
    return positive_float(text)


def compute_edge(projection: float, line_text: Any) -> float | None:
    """Projection minus line, or None when the line is not valid."""
    line = parse_bookmaker_line(line_text)
    if line is None:
        return None
    return round(projection - line, 2)


def recommendation_class(color_code: Any, advice: Any) -> RecommendationClass:
    """Classify a calculator result; a present color code always wins over advice text."""
    if isinstance(color_code, str) and color_code.strip():
        return _COLOR_RECOMMENDATIONS.get(color_code.strip().lower(), "NEUTRAL")
    if not isinstance(advice, str):
        return "NEUTRAL"
    upper = advice.upper()
    if "OVER" in upper:
        return "OVER"
    if "UNDER" in upper:
        return "UNDER"
    return "NEUTRAL"


def stat_line(payload: Any) -> StatLine | None:
    if not isinstance(payload, dict) or not payload:
        return None
    return StatLine(
        pts=safe_float(payload.get("PTS")),
        reb=safe_float(payload.get("REB")),
        ast=safe_float(payload.get("AST")),
        pra=safe_float(payload.get("PRA")),
        pa=safe_float(payload.get("PA")),
        pr=safe_float(payload.get("PR")),
        stl=safe_float(payload.get("STL")),
        blk=safe_float(payload.get("BLK")),
        games_played=safe_int(payload.get("GP")) or 0,
    )


def split_value(history: Any, side: Side, stat: StatCategory) -> float | None:
    """Stat-scoped home or away split; None when the split or the field is absent."""
    splits = _as_dict(_as_dict(history).get("splits"))
    side_split = splits.get(side)
    if not isinstance(side_split, dict):
        return None
    return safe_float(side_split.get(stat))


def is_player_home(player_team: Any, home_team_name: Any) -> bool:
    """Side identity by exact team-name match; no fallback when formats differ."""
    if not isinstance(player_team, str) or not isinstance(home_team_name, str):
        return False
    if not player_team or not home_team_name:
        return False
    return player_team == home_team_name


def fatigue_state(history: Any) -> FatigueState | None:
    fatigue = _as_dict(history).get("fatigue")
    if not isinstance(fatigue, dict) or not fatigue:
        return None
    return FatigueState(
        status=str(fatigue.get("status", "")),
        color_code=str(fatigue.get("color_code", "")).lower(),
        last_minutes=safe_float(fatigue.get("last_min")),
    )


def calculator_result(payload: Any) -> CalculatorResult | None:
    if not isinstance(payload, dict):
        return None
    color_code = payload.get("color_code", payload.get("colorCode"))
    advice = payload.get("advice")
    confidence = payload.get("confidence")
    return CalculatorResult(
        probability_over=safe_float(
            payload.get("probability_over", payload.get("probabilityOver"))
        ),
        probability_under=safe_float(
            payload.get("probability_under", payload.get("probabilityUnder"))
        ),
        advice=advice if isinstance(advice, str) else "",
        color_code=color_code if isinstance(color_code, str) and color_code else None,
        confidence=str(confidence) if confidence is not None else None,
        recommendation=recommendation_class(color_code, advice),
    )


def build_player_view(
    selection: SelectionState,
    player: dict[str, Any],
    *,
    history: CacheEntry | None,
    calculator: CacheEntry | None,
    home_team_name: str | None = None,
) -> PlayerView:
    """Combine the player's projection with history and calculator entries.

    ``calculator`` must be the entry for the calculator key of the current
    selection; a result for any other key never reaches the view.
    """
    stat = selection.stat_category
    projection = projection_value(player, stat)
    history_payload = entry_value(history)
    recent = stat_line(_as_dict(history_payload).get("recent_form_avg"))
    h2h = stat_line(_as_dict(history_payload).get("h2h_avg"))
    matchup_context = _as_dict(history_payload).get("matchup_context")
    calculator_payload = entry_value(calculator) if selection.calculator_open else None
    return PlayerView(
        player_id=str(player.get("player_id", "")),
        player_name=str(player.get("player", "")),
        stat_category=stat,
        active_tab=selection.active_tab,
        projection_value=projection,
        bookmaker_line=parse_bookmaker_line(selection.bookmaker_line),
        edge=compute_edge(projection, selection.bookmaker_line),
        recent_form=recent,
        head_to_head=h2h,
        recent_form_average=recent.value(stat) if recent is not None else None,
        head_to_head_average=(
            h2h.value(stat) if h2h is not None and h2h.games_played > 0 else None
        ),
        home_split=split_value(history_payload, "home", stat),
        away_split=split_value(history_payload, "away", stat),
        is_player_home=is_player_home(player.get("team"), home_team_name),
        fatigue=fatigue_state(history_payload),
        matchup_context=matchup_context if isinstance(matchup_context, str) else None,
        history_loading=history is not None and history.is_loading,
        history_error=entry_error(history),
        calculator_open=selection.calculator_open,
        calculator=calculator_result(calculator_payload),
        calculator_pending=calculator is not None and calculator.status == "pending",
        calculator_error=entry_error(calculator) if selection.calculator_open else None,
    )


def find_game(games: Any, game_id: str) -> dict[str, Any] | None:
    if not isinstance(games, list):
        return None
    for game in games:
        if isinstance(game, dict) and str(game.get("gameId", "")) == game_id:
            return game
    return None


def resolve_team_id(game: dict[str, Any] | None, side: Side) -> str:
    """Team id from the feed, else the tricode derived from the team name."""
    if not game:
        return ""
    explicit = str(game.get(f"{side}TeamId") or "").strip()
    if explicit:
        return explicit
    return team_code(str(game.get(f"{side}Team") or ""))


def find_player(full_prediction: Any, player_id: int | str) -> dict[str, Any] | None:
    """Locate one player's breakdown inside a full match prediction."""
    wanted = str(player_id)
    payload = _as_dict(full_prediction)
    for field in ("home_players", "away_players", "players"):
        players = payload.get(field)
        if not isinstance(players, list):
            continue
        for item in players:
            if isinstance(item, dict) and str(item.get("player_id", "")) == wanted:
                return item
    return None


def search_roster(roster: Any, query: str) -> list[dict[str, Any]]:
    """Roster players whose name contains ``query`` (accent/case-insensitive)."""
    if not isinstance(roster, list):
        return []
    players = [item for item in roster if isinstance(item, dict)]
    needle = normalize_person_name(query)
    if not needle:
        return players
    return [
        item for item in players if needle in normalize_person_name(str(item.get("full_name", "")))
    ]


def filter_games(games: Any, query: str) -> list[dict[str, Any]]:
    if not isinstance(games, list):
        return []
    needle = query.strip().lower()
    out: list[dict[str, Any]] = []
    for game in games:
        if not isinstance(game, dict):
            continue
        home = str(game.get("homeTeam", "")).lower()
        away = str(game.get("awayTeam", "")).lower()
        if needle in home or needle in away:
            out.append(game)
    return out


def group_games_by_date(games: list[dict[str, Any]]) -> dict[str, list[dict[str, Any]]]:
    grouped: dict[str, list[dict[str, Any]]] = {}
    for game in games:
        grouped.setdefault(str(game.get("gameDate", "")), []).append(game)
    return grouped


def _bar_pct(value: float, top: float) -> float:
    if top <= 0:
        return 0.0
    return round(value / top * 100.0, 1)


def shooting_battle(payload: Any) -> ShootingBattle | None:
    data = _as_dict(payload)
    home = data.get("home")
    away = data.get("away")
    if not isinstance(home, dict) or not isinstance(away, dict):
        return None
    analysis = _as_dict(data.get("analysis"))
    home_two = safe_float(home.get("FG2M")) or 0.0
    away_two = safe_float(away.get("FG2M")) or 0.0
    home_three = safe_float(home.get("FG3M")) or 0.0
    away_three = safe_float(away.get("FG3M")) or 0.0
    top_two = max(home_two, away_two)
    top_three = max(home_three, away_three)

    def _side(raw: dict[str, Any], two: float, three: float) -> ShootingSide:
        team = str(raw.get("team", ""))
        total = safe_float(raw.get("Total_FG"))
        return ShootingSide(
            team=team,
            two_made=two,
            two_range=str(raw.get("FG2M_Range", "")),
            three_made=three,
            three_range=str(raw.get("FG3M_Range", "")),
            total_made=total if total is not None else round(two + three, 1),
            two_bar_pct=_bar_pct(two, top_two),
            three_bar_pct=_bar_pct(three, top_three),
            wins_two=bool(team) and analysis.get("2pt_winner") == team,
            wins_three=bool(team) and analysis.get("3pt_winner") == team,
        )

    return ShootingBattle(
        matchup=str(data.get("matchup", "")),
        pace_context=str(data.get("pace_context", "")),
        home=_side(home, home_two, home_three),
        away=_side(away, away_two, away_three),
        fatigue_impact=str(analysis.get("fatigue_impact", "")),
    )


def _dict_items(value: Any) -> list[dict[str, Any]]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, dict)]


def _missing(roster: list[dict[str, Any]], excluded: frozenset[str]) -> list[dict[str, Any]]:
    return [item for item in roster if str(item.get("id", "")) in excluded]


def build_game_view(
    selection: SelectionState,
    game_id: str,
    *,
    games: CacheEntry | None,
    home_roster: CacheEntry | None = None,
    away_roster: CacheEntry | None = None,
    prediction: CacheEntry | None = None,
    full_prediction: CacheEntry | None = None,
    shooting: CacheEntry | None = None,
) -> GameView:
    """Combine the game feed, rosters, predictions and shooting splits for one game."""
    game = find_game(entry_value(games), game_id)
    home_list = _dict_items(entry_value(home_roster))
    away_list = _dict_items(entry_value(away_roster))
    prediction_payload = entry_value(prediction)
    full_payload = entry_value(full_prediction)
    sources = {
        "games_feed": games,
        "home_roster": home_roster,
        "away_roster": away_roster,
        "match_prediction": prediction,
        "full_match_prediction": full_prediction,
        "shooting_splits": shooting,
    }
    errors = {
        name: message
        for name, entry in sources.items()
        if (message := entry_error(entry)) is not None
    }
    loading = any(entry is not None and entry.is_loading for entry in (games, prediction))
    return GameView(
        game_id=game_id,
        game=game,
        home_team_id=resolve_team_id(game, "home"),
        away_team_id=resolve_team_id(game, "away"),
        home_roster=home_list,
        away_roster=away_list,
        missing_home=_missing(home_list, selection.excluded("home")),
        missing_away=_missing(away_list, selection.excluded("away")),
        prediction=prediction_payload if isinstance(prediction_payload, dict) else None,
        full_prediction=full_payload if isinstance(full_payload, dict) else None,
        shooting=shooting_battle(entry_value(shooting)),
        loading=loading,
        errors=errors,
    )

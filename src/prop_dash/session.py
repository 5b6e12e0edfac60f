"""Dashboard session: selection state, query keys, cache and derived views."""

from __future__ import annotations

import logging
from datetime import timedelta
from functools import partial
from typing import Any

from prop_dash.derive import (
    GameView,
    PlayerView,
    build_game_view,
    build_player_view,
    entry_value,
    find_game,
    projection_value,
    resolve_team_id,
)
from prop_dash.normalize import team_code
from prop_dash.query import CacheEntry, QueryCache, QueryOptions, QueryType, RequestDescriptor
from prop_dash.query.builders import (
    calculator_request,
    full_match_prediction_request,
    games_feed_request,
    match_prediction_request,
    player_history_request,
    shooting_splits_request,
    team_roster_request,
)
from prop_dash.selection import SelectionState
from prop_dash.settings import Settings

logger = logging.getLogger(__name__)

CALCULATOR_SLOT = "calculator"


class DashboardSession:
    """One user's dashboard: owns the selection and the query cache.

    ``client`` is anything exposing the prediction service coroutines of
    :class:`prop_dash.client.PredictionAPIClient`. The session closes its
    cache on exit; the client stays owned by the caller.
    """

    def __init__(
        self,
        client: Any,
        *,
        settings: Settings | None = None,
        cache: QueryCache | None = None,
        selection: SelectionState | None = None,
    ) -> None:
        self.client = client
        self.settings = settings or Settings()
        self.cache = cache or QueryCache()
        self.selection = selection or SelectionState()

    async def __aenter__(self) -> DashboardSession:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def close(self) -> None:
        await self.cache.close()

    async def settle(self) -> None:
        await self.cache.settle()

    def invalidate(self, query_type: QueryType | None = None) -> int:
        return self.cache.invalidate(query_type)

    def _exclusion_options(self, slot: str, request: RequestDescriptor) -> QueryOptions:
        # Slots are per matchup; only a key change within one waits out the debounce.
        active = self.cache.active_key(slot)
        changed = active is not None and active != request.key()
        return QueryOptions(
            slot=slot,
            debounce_s=self.settings.line_debounce_s if changed else 0.0,
        )

    def games_entry(self) -> CacheEntry:
        return self.cache.resolve(
            games_feed_request(),
            self.client.games_feed,
            QueryOptions(stale_after=timedelta(seconds=self.settings.games_refetch_interval_s)),
        )

    def game_view(self, game_id: str) -> GameView:
        """Resolve every query the game page needs and derive its view."""
        selection = self.selection
        games = self.games_entry()
        game = find_game(entry_value(games), game_id)
        home_team_id = resolve_team_id(game, "home")
        away_team_id = resolve_team_id(game, "away")
        excluded_home = selection.excluded("home")
        excluded_away = selection.excluded("away")

        home_roster = away_roster = None
        if home_team_id:
            home_roster = self.cache.resolve(
                team_roster_request(home_team_id),
                partial(self.client.team_roster, home_team_id),
            )
        if away_team_id:
            away_roster = self.cache.resolve(
                team_roster_request(away_team_id),
                partial(self.client.team_roster, away_team_id),
            )

        prediction = full_prediction = shooting = None
        if home_team_id and away_team_id:
            request = match_prediction_request(
                home_team_id, away_team_id, excluded_home, excluded_away
            )
            prediction = self.cache.resolve(
                request,
                partial(
                    self.client.match_prediction,
                    home_team_id,
                    away_team_id,
                    excluded_home,
                    excluded_away,
                ),
                self._exclusion_options(f"match_prediction:{home_team_id}:{away_team_id}", request),
            )
            request = full_match_prediction_request(
                home_team_id, away_team_id, excluded_home, excluded_away
            )
            full_prediction = self.cache.resolve(
                request,
                partial(
                    self.client.full_match_prediction,
                    home_team_id,
                    away_team_id,
                    excluded_home,
                    excluded_away,
                ),
                self._exclusion_options(
                    f"full_match_prediction:{home_team_id}:{away_team_id}", request
                ),
            )

        home_code = team_code(str((game or {}).get("homeTeam", "")))
        away_code = team_code(str((game or {}).get("awayTeam", "")))
        if home_code and away_code:
            request = shooting_splits_request(home_code, away_code, excluded_home, excluded_away)
            options = self._exclusion_options(f"shooting_splits:{home_code}:{away_code}", request)
            shooting = self.cache.resolve(
                request,
                partial(
                    self.client.shooting_splits,
                    home_code,
                    away_code,
                    excluded_home,
                    excluded_away,
                ),
                QueryOptions(
                    slot=options.slot,
                    debounce_s=options.debounce_s,
                    stale_after=timedelta(minutes=self.settings.shooting_stale_minutes),
                ),
            )

        return build_game_view(
            selection,
            game_id,
            games=games,
            home_roster=home_roster,
            away_roster=away_roster,
            prediction=prediction,
            full_prediction=full_prediction,
            shooting=shooting,
        )

    def _calculator_request(self, player: dict[str, Any]) -> RequestDescriptor | None:
        line = self.selection.line_value
        if line is None:
            return None
        stat = self.selection.stat_category
        return calculator_request(
            player.get("player_id", ""), projection_value(player, stat), line, stat
        )

    def _calculator_fetcher(self, request: RequestDescriptor):
        params = request.params
        return partial(
            self.client.calculator_analysis,
            params["player_id"],
            params["projection"],
            params["line"],
            params["stat"],
        )

    def _calculator_entry(self, request: RequestDescriptor) -> CacheEntry:
        return self.cache.resolve(
            request,
            self._calculator_fetcher(request),
            QueryOptions(enabled=False, slot=CALCULATOR_SLOT),
        )

    def player_view(
        self,
        player: dict[str, Any],
        *,
        opponent_team_id: str,
        home_team_name: str | None = None,
        is_open: bool = True,
    ) -> PlayerView:
        """Derive the player panel; history loads only while the panel is open.

        The calculator entry is lazy: it is keyed on the current line and
        stat but only fetched by :meth:`analyze`.
        """
        player_id = player.get("player_id", "")
        history = self.cache.resolve(
            player_history_request(player_id, opponent_team_id),
            partial(self.client.player_history, player_id, opponent_team_id),
            QueryOptions(enabled=is_open),
        )
        request = self._calculator_request(player)
        calculator = self._calculator_entry(request) if request is not None else None
        return build_player_view(
            self.selection,
            player,
            history=history,
            calculator=calculator,
            home_team_name=home_team_name,
        )

    def analyze(self, player: dict[str, Any]) -> CacheEntry | None:
        """Trigger the calculator for the current line; None when the line is invalid."""
        request = self._calculator_request(player)
        if request is None:
            logger.debug("analyze skipped: invalid line %r", self.selection.bookmaker_line)
            return None
        self._calculator_entry(request)
        entry = self.cache.refetch(request.key())
        self.selection.set_calculator_open(True)
        return entry

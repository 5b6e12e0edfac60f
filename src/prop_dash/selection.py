"""User-controlled selection state that drives query keys and derived views."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

from prop_dash.util.parsing import positive_float

StatCategory = Literal["PTS", "REB", "AST", "PRA"]
ActiveTab = Literal["recent_form", "head_to_head"]
Side = Literal["home", "away"]

STAT_CATEGORIES: tuple[StatCategory, ...] = ("PTS", "REB", "AST", "PRA")
_VALID_TABS: tuple[ActiveTab, ...] = ("recent_form", "head_to_head")
_VALID_SIDES: tuple[Side, ...] = ("home", "away")


def normalize_stat_category(value: str) -> StatCategory:
    """Normalize CLI/user value to a supported stat category."""
    cleaned = value.strip().upper()
    if cleaned in STAT_CATEGORIES:
        return cleaned
    raise ValueError(f"invalid stat category: {value}")


def normalize_tab(value: str) -> ActiveTab:
    cleaned = value.strip().lower().replace("-", "_")
    if cleaned in _VALID_TABS:
        return cleaned
    raise ValueError(f"invalid tab: {value}")


def normalize_side(value: str) -> Side:
    cleaned = value.strip().lower()
    if cleaned in _VALID_SIDES:
        return cleaned
    raise ValueError(f"invalid side: {value}")


@dataclass
class SelectionState:
    """Mutable selection inputs for one dashboard session.

    ``version`` increases on every effective change so callers can tell
    whether a previously computed view is still current. Re-adding an
    excluded player or re-selecting the current stat is a no-op.
    """

    stat_category: StatCategory = "PTS"
    bookmaker_line: str = ""
    excluded_home: set[str] = field(default_factory=set)
    excluded_away: set[str] = field(default_factory=set)
    active_tab: ActiveTab = "recent_form"
    calculator_open: bool = False
    version: int = 0

    def _bump(self) -> None:
        self.version += 1

    def set_stat_category(self, value: str) -> None:
        stat = normalize_stat_category(value)
        if stat == self.stat_category:
            return
        self.stat_category = stat
        self.calculator_open = False
        self._bump()

    def set_bookmaker_line(self, text: str) -> None:
        if text == self.bookmaker_line:
            return
        self.bookmaker_line = text
        self._bump()

    def set_active_tab(self, value: str) -> None:
        tab = normalize_tab(value)
        if tab == self.active_tab:
            return
        self.active_tab = tab
        self._bump()

    def set_calculator_open(self, value: bool) -> None:
        if value == self.calculator_open:
            return
        self.calculator_open = value
        self._bump()

    @property
    def line_value(self) -> float | None:
        """Bookmaker line as a number, or None unless finite and > 0."""
        return positive_float(self.bookmaker_line)

    @property
    def has_valid_line(self) -> bool:
        return self.line_value is not None

    def excluded(self, side: str) -> frozenset[str]:
        return frozenset(self._excluded_set(normalize_side(side)))

    def _excluded_set(self, side: Side) -> set[str]:
        return self.excluded_home if side == "home" else self.excluded_away

    def add_excluded(self, side: str, player_id: int | str) -> bool:
        """Mark a player absent; returns False when already excluded."""
        members = self._excluded_set(normalize_side(side))
        player_key = str(player_id).strip()
        if not player_key or player_key in members:
            return False
        members.add(player_key)
        self._bump()
        return True

    def remove_excluded(self, side: str, player_id: int | str) -> bool:
        members = self._excluded_set(normalize_side(side))
        player_key = str(player_id).strip()
        if player_key not in members:
            return False
        members.discard(player_key)
        self._bump()
        return True

    def clear_excluded(self, side: str) -> None:
        members = self._excluded_set(normalize_side(side))
        if not members:
            return
        members.clear()
        self._bump()

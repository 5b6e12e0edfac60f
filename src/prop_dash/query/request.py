"""Request descriptors and stable cache keys for prediction queries."""

from __future__ import annotations

import hashlib
import json
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any, Literal

QueryType = Literal[
    "games_feed",
    "team_roster",
    "match_prediction",
    "full_match_prediction",
    "player_history",
    "calculator_analysis",
    "shooting_splits",
]

NUMERIC_PRECISION = 4


def _id_sort_key(value: str) -> tuple[int, int, str]:
    if value.isdecimal():
        return (0, int(value), value)
    return (1, 0, value)


def join_ids(values: Iterable[Any]) -> str:
    """Serialize ids as a sorted, comma-joined list; empty input gives ``""``."""
    cleaned = {str(value).strip() for value in values}
    cleaned.discard("")
    return ",".join(sorted(cleaned, key=_id_sort_key))


def canonical_value(value: Any) -> Any:
    """Canonicalize one parameter value for key derivation."""
    if value is None or isinstance(value, (bool, str)):
        return value
    if isinstance(value, (set, frozenset, list, tuple)):
        return join_ids(value)
    if isinstance(value, (int, float)):
        # Ids arrive as str; bare numbers are quantities, so 22 and 22.0 key alike.
        try:
            return f"{float(value):.{NUMERIC_PRECISION}f}"
        except OverflowError:
            return str(value)
    return str(value)


def canonical_params(params: dict[str, Any]) -> dict[str, Any]:
    """Return a deterministic, JSON-safe copy of request params."""
    return {str(name): canonical_value(value) for name, value in params.items()}


def build_key(query_type: QueryType, params: dict[str, Any]) -> str:
    """Compute a stable key for one logical request."""
    payload = {
        "query": query_type,
        "params": canonical_params(params),
    }
    serialized = json.dumps(payload, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(serialized.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class RequestDescriptor:
    """Stable identity for one prediction service lookup."""

    query_type: QueryType
    params: dict[str, Any]
    label: str

    def key(self) -> str:
        return build_key(self.query_type, self.params)

"""Error types for prop-dash flows."""

from __future__ import annotations


class PropDashError(RuntimeError):
    """Base error for prop-dash operations."""


class PredictionAPIError(PropDashError):
    """Raised on prediction service transport failures."""


class UnknownQueryError(PropDashError, KeyError):
    """Raised when a cache operation names a key that was never resolved."""


class MalformedInputError(PropDashError, ValueError):
    """Raised when user input cannot form a valid request parameter."""

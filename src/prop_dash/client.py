"""Async HTTP client for the prediction service."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import UTC, datetime
from email.utils import parsedate_to_datetime
from time import perf_counter
from typing import Any

import httpx
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt

from prop_dash.errors import PredictionAPIError
from prop_dash.query.request import join_ids
from prop_dash.selection import StatCategory
from prop_dash.settings import Settings

logger = logging.getLogger(__name__)


class RetryableStatusError(RuntimeError):
    """Raised for retryable status codes."""

    def __init__(self, response: httpx.Response) -> None:
        self.response = response
        message = f"retryable status {response.status_code}"
        super().__init__(message)

    def retry_after_seconds(self) -> float | None:
        raw_value = self.response.headers.get("Retry-After")
        if not raw_value:
            return None
        try:
            return max(0.0, float(raw_value))
        except ValueError:
            try:
                date_value = parsedate_to_datetime(raw_value)
            except (TypeError, ValueError):
                return None
            now = datetime.now(UTC)
            return max(0.0, (date_value - now).total_seconds())


@dataclass(frozen=True)
class PredictionResponse:
    """Response data and metadata from an API call."""

    data: Any
    status_code: int
    duration_ms: int
    retry_count: int


def _wait_for_retry(retry_state) -> float:
    """Wait strategy for tenacity retries."""
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    if isinstance(exc, RetryableStatusError):
        retry_after = exc.retry_after_seconds()
        if retry_after is not None:
            return min(retry_after, 30.0)
    return min(2 ** (retry_state.attempt_number - 1), 15.0)


def _id_list(values: Iterable[int | str]) -> list[str]:
    joined = join_ids(values)
    return joined.split(",") if joined else []


def example_shooting_splits(home_team_code: str, away_team_code: str) -> dict[str, Any]:
    """Placeholder shooting splits used when the endpoint is unavailable."""
    return {
        "matchup": f"{away_team_code} @ {home_team_code}",
        "pace_context": "Fast pace: 100.8",
        "home": {
            "team": home_team_code,
            "FG2M": 25.6,
            "FG2M_Range": "20-31",
            "FG3M": 12.4,
            "FG3M_Range": "10-15",
            "Total_FG": 38.0,
        },
        "away": {
            "team": away_team_code,
            "FG2M": 31.9,
            "FG2M_Range": "27-37",
            "FG3M": 9.8,
            "FG3M_Range": "8-12",
            "Total_FG": 41.7,
        },
        "analysis": {
            "2pt_winner": away_team_code,
            "3pt_winner": home_team_code,
            "fatigue_impact": "yes",
        },
        "example": True,
    }


class PredictionAPIClient:
    """Thin async HTTP client around the prediction service."""

    def __init__(
        self,
        settings: Settings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.settings = settings
        headers = {"Accept": "application/json"}
        api_key = str(settings.api_key).strip()
        if api_key:
            headers["X-API-Key"] = api_key
        limits = httpx.Limits(max_connections=8, max_keepalive_connections=4)
        self._http = httpx.AsyncClient(
            base_url=settings.api_base_url.rstrip("/"),
            timeout=settings.api_timeout_s,
            limits=limits,
            headers=headers,
            transport=transport,
        )

    async def close(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> PredictionAPIClient:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
    ) -> PredictionResponse:
        retries = 0
        started = perf_counter()
        response: httpx.Response | None = None
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(max(1, self.settings.api_max_attempts)),
                retry=retry_if_exception_type(RetryableStatusError),
                wait=_wait_for_retry,
                reraise=True,
            ):
                with attempt:
                    retries = attempt.retry_state.attempt_number - 1
                    if retries:
                        logger.warning("retrying %s %s (attempt %d)", method, path, retries + 1)
                    response = await self._http.request(method, path, params=params, json=json)
                    if response.status_code == 429 or 500 <= response.status_code <= 599:
                        raise RetryableStatusError(response)
                    response.raise_for_status()
        except RetryableStatusError as exc:
            raise PredictionAPIError(
                f"{path} failed with status {exc.response.status_code} after retries"
            ) from exc
        except httpx.HTTPStatusError as exc:
            raise PredictionAPIError(
                f"{path} failed with status {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            raise PredictionAPIError(f"{path} failed with transport error: {exc}") from exc
        if response is None:
            raise PredictionAPIError(f"{path} failed without a response")

        try:
            data = response.json()
        except ValueError as exc:
            raise PredictionAPIError(f"{path} returned a non-JSON payload") from exc
        result = PredictionResponse(
            data=data,
            status_code=response.status_code,
            duration_ms=int((perf_counter() - started) * 1000),
            retry_count=retries,
        )
        logger.debug(
            "%s %s -> %d in %dms (retries=%d)",
            method,
            path,
            result.status_code,
            result.duration_ms,
            result.retry_count,
        )
        return result

    async def _get_list(self, path: str, **kwargs: Any) -> list[Any]:
        raw = await self._request("GET", path, **kwargs)
        if not isinstance(raw.data, list):
            raise PredictionAPIError(f"{path} payload is not a list")
        return raw.data

    async def _get_object(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        raw = await self._request(method, path, **kwargs)
        if not isinstance(raw.data, dict):
            raise PredictionAPIError(f"{path} payload is not an object")
        return raw.data

    async def games_feed(self) -> list[Any]:
        """Upcoming and live games for the next 48 hours."""
        return await self._get_list("/games/48h")

    async def team_roster(self, team_id: str) -> list[Any]:
        return await self._get_list(f"/teams/{team_id}/roster")

    async def match_prediction(
        self,
        home_team_id: str,
        away_team_id: str,
        excluded_home: Iterable[int | str] = (),
        excluded_away: Iterable[int | str] = (),
    ) -> dict[str, Any]:
        return await self._get_object(
            "POST",
            "/predict/match",
            json={
                "home_team_id": home_team_id,
                "away_team_id": away_team_id,
                "absent_home": _id_list(excluded_home),
                "absent_away": _id_list(excluded_away),
            },
        )

    async def full_match_prediction(
        self,
        home_team_id: str,
        away_team_id: str,
        excluded_home: Iterable[int | str] = (),
        excluded_away: Iterable[int | str] = (),
    ) -> dict[str, Any]:
        """Match prediction with the per-player breakdown."""
        return await self._get_object(
            "POST",
            "/predict/match/full",
            json={
                "home_team_id": home_team_id,
                "away_team_id": away_team_id,
                "absent_home": _id_list(excluded_home),
                "absent_away": _id_list(excluded_away),
            },
        )

    async def player_history(self, player_id: int | str, opponent_team_id: str) -> dict[str, Any]:
        """Recent form, head-to-head, splits, fatigue and matchup context."""
        return await self._get_object(
            "GET",
            f"/players/{player_id}/details-history",
            params={"opponent_team_id": opponent_team_id},
        )

    async def calculator_analysis(
        self,
        player_id: int | str,
        projection: float,
        line: float,
        stat_category: StatCategory,
    ) -> dict[str, Any]:
        return await self._get_object(
            "POST",
            "/calculator/analysis",
            json={
                "player_id": str(player_id),
                "projection": projection,
                "line": line,
                "stat": stat_category,
            },
        )

    async def shooting_splits(
        self,
        home_team_code: str,
        away_team_code: str,
        excluded_home: Iterable[int | str] = (),
        excluded_away: Iterable[int | str] = (),
    ) -> dict[str, Any]:
        params = {
            "home": home_team_code,
            "away": away_team_code,
            "absent_home": join_ids(excluded_home),
            "absent_away": join_ids(excluded_away),
        }
        try:
            return await self._get_object("GET", "/predict/shooting", params=params)
        except PredictionAPIError as exc:
            if not self.settings.shooting_fallback_enabled:
                raise
            logger.warning("shooting splits unavailable, using example data: %s", exc)
            return example_shooting_splits(home_team_code, away_team_code)

import json
import logging

import httpx
import pytest

from prop_dash.client import PredictionAPIClient, RetryableStatusError
from prop_dash.errors import PredictionAPIError
from prop_dash.settings import Settings


def _settings(**overrides) -> Settings:
    values = {
        "api_base_url": "http://testserver/api",
        "api_key": "",
        "api_max_attempts": 1,
        "shooting_fallback_enabled": False,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def _client(handler, **overrides) -> PredictionAPIClient:
    return PredictionAPIClient(_settings(**overrides), transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_games_feed_hits_base_url_with_api_key() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=[{"gameId": "g1"}])

    async with _client(handler, api_key="secret") as client:
        games = await client.games_feed()

    assert games == [{"gameId": "g1"}]
    assert seen[0].url.path == "/api/games/48h"
    assert seen[0].headers["X-API-Key"] == "secret"


@pytest.mark.asyncio
async def test_match_prediction_posts_sorted_absences() -> None:
    bodies: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(json.loads(request.content))
        return httpx.Response(200, json={"home_win_probability": 0.61})

    async with _client(handler) as client:
        payload = await client.match_prediction("LAL", "BOS", {"203", "17"}, [])

    assert payload == {"home_win_probability": 0.61}
    assert bodies == [
        {
            "home_team_id": "LAL",
            "away_team_id": "BOS",
            "absent_home": ["17", "203"],
            "absent_away": [],
        }
    ]


@pytest.mark.asyncio
async def test_player_history_sends_opponent() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/api/players/2544/details-history"
        assert request.url.params["opponent_team_id"] == "BOS"
        return httpx.Response(200, json={"recent_form_avg": {}})

    async with _client(handler) as client:
        assert await client.player_history(2544, "BOS") == {"recent_form_avg": {}}


@pytest.mark.asyncio
async def test_client_error_status_maps_to_api_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, json={"detail": "not found"})

    async with _client(handler) as client:
        with pytest.raises(PredictionAPIError, match="status 404"):
            await client.team_roster("XYZ")


@pytest.mark.asyncio
async def test_retryable_status_is_retried_then_succeeds() -> None:
    calls = {"count": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["count"] += 1
        if calls["count"] == 1:
            return httpx.Response(503, headers={"Retry-After": "0"})
        return httpx.Response(200, json=[])

    async with _client(handler, api_max_attempts=2) as client:
        assert await client.games_feed() == []
    assert calls["count"] == 2


@pytest.mark.asyncio
async def test_completed_request_logs_status_and_retry_count(caplog) -> None:
    calls = {"count": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["count"] += 1
        if calls["count"] == 1:
            return httpx.Response(429, headers={"Retry-After": "0"})
        return httpx.Response(200, json=[])

    caplog.set_level(logging.DEBUG, logger="prop_dash.client")
    async with _client(handler, api_max_attempts=2) as client:
        await client.games_feed()

    messages = [record.getMessage() for record in caplog.records]
    assert any(
        "GET /games/48h -> 200" in message and "retries=1" in message for message in messages
    )


@pytest.mark.asyncio
async def test_exhausted_retries_raise_api_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500)

    async with _client(handler) as client:
        with pytest.raises(PredictionAPIError, match="after retries"):
            await client.games_feed()


@pytest.mark.asyncio
async def test_transport_failure_maps_to_api_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    async with _client(handler) as client:
        with pytest.raises(PredictionAPIError, match="transport error"):
            await client.games_feed()


@pytest.mark.asyncio
async def test_wrong_payload_shape_is_rejected() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"games": []})

    async with _client(handler) as client:
        with pytest.raises(PredictionAPIError, match="not a list"):
            await client.games_feed()


@pytest.mark.asyncio
async def test_non_json_payload_is_rejected() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>")

    async with _client(handler) as client:
        with pytest.raises(PredictionAPIError, match="non-JSON"):
            await client.calculator_analysis(1, 20.0, 19.5, "PTS")


@pytest.mark.asyncio
async def test_shooting_splits_fallback_only_when_enabled() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500)

    async with _client(handler) as client:
        with pytest.raises(PredictionAPIError):
            await client.shooting_splits("BOS", "LAL")

    async with _client(handler, shooting_fallback_enabled=True) as client:
        payload = await client.shooting_splits("BOS", "LAL")
    assert payload["example"] is True
    assert payload["home"]["team"] == "BOS"
    assert payload["analysis"]["2pt_winner"] == "LAL"


def test_retry_after_seconds_parses_numbers() -> None:
    response = httpx.Response(429, headers={"Retry-After": "2.5"})
    assert RetryableStatusError(response).retry_after_seconds() == 2.5
    assert RetryableStatusError(httpx.Response(429)).retry_after_seconds() is None
    bad = httpx.Response(429, headers={"Retry-After": "soon"})
    assert RetryableStatusError(bad).retry_after_seconds() is None

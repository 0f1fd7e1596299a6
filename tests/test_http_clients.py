"""Tests for HTTP-based adapters."""

import asyncio

import httpx
import pytest

from inspection_journey.adapters.journey_api_client import HttpxJourneyApiClient
from inspection_journey.errors import (
    MalformedResponseError,
    NotFoundError,
    TransientError,
)


def _client(handler) -> HttpxJourneyApiClient:  # type: ignore[no-untyped-def]
    transport = httpx.MockTransport(handler)
    async_client = httpx.AsyncClient(transport=transport)
    return HttpxJourneyApiClient(
        base_url="https://content.example.test/api",
        http_client=async_client,
        api_token="token",
    )


def test_fetch_session_sends_token_and_returns_payload() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/api/sessions/S1"
        assert request.headers["Authorization"] == "Bearer token"
        return httpx.Response(200, json={"sessionId": "S1"})

    client = _client(handler)

    assert asyncio.run(client.fetch_session("S1")) == {"sessionId": "S1"}


def test_fetch_journey_passes_flow_kind_hint() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"id": "J1"})

    client = _client(handler)
    asyncio.run(client.fetch_journey("J1", "check-in"))
    asyncio.run(client.fetch_journey("J1"))

    assert seen[0].url.params["flowKind"] == "check-in"
    assert "flowKind" not in seen[1].url.params


def test_not_found_maps_to_not_found_error() -> None:
    client = _client(lambda request: httpx.Response(404))

    with pytest.raises(NotFoundError) as excinfo:
        asyncio.run(client.fetch_session("S404"))
    assert excinfo.value.resource_id == "S404"


def test_server_error_is_transient() -> None:
    client = _client(lambda request: httpx.Response(503))

    with pytest.raises(TransientError):
        asyncio.run(client.fetch_journey("J1"))


def test_transport_error_is_transient() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("offline", request=request)

    client = _client(handler)

    with pytest.raises(TransientError):
        asyncio.run(client.fetch_session("S1"))


def test_non_object_body_is_malformed() -> None:
    client = _client(lambda request: httpx.Response(200, json=["S1"]))

    with pytest.raises(MalformedResponseError):
        asyncio.run(client.fetch_session("S1"))


def test_create_strips_trailing_slash_and_closes() -> None:
    client = HttpxJourneyApiClient.create(base_url="https://content.example.test/")

    assert client.base_url == "https://content.example.test"
    asyncio.run(client.close())
    assert client.http_client.is_closed


def test_identifiers_are_escaped_in_the_request_path() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"id": "x"})

    client = _client(handler)

    async def run():
        await client.fetch_session("../x")
        await client.fetch_journey("a?b")

    asyncio.run(run())

    assert seen[0].url.raw_path == b"/api/sessions/..%2Fx"
    assert seen[1].url.raw_path == b"/api/journeys/a%3Fb"
    assert seen[1].url.query == b""

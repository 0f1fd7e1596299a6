"""Tests for container wiring."""

import asyncio

from inspection_journey.adapters.file_store import JsonFileSessionStore
from inspection_journey.containers import build_container


def test_build_container_creates_services(settings) -> None:
    container = build_container(settings)
    assert container.session_service is not None
    assert isinstance(container.session_store, JsonFileSessionStore)
    assert container.api_client.base_url == "https://content.example.test/api"
    assert container.guards.mount("tab").synchronizer.last_known_max_age == (
        settings.last_known_max_age
    )
    asyncio.run(container.close_resources())

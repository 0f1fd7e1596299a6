"""Dependency container wiring for the application."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from functools import partial

from inspection_journey.adapters.file_store import (
    JsonFileLastKnownStore,
    JsonFileSessionStore,
)
from inspection_journey.adapters.journey_api_client import (
    HttpxJourneyApiClient,
    JourneyApiClient,
)
from inspection_journey.config import Settings
from inspection_journey.services.cache import InMemoryResourceCache
from inspection_journey.services.cleanup import LogoutCleanupService
from inspection_journey.services.orchestrator import (
    DataLoadingOrchestrator,
    SessionStore,
)
from inspection_journey.services.route_guard import GuardRegistry
from inspection_journey.services.sessions import SessionService
from inspection_journey.services.synchronizer import LastKnownStore, UrlSynchronizer


@dataclass
class AppContainer:
    """Holds application-wide dependencies."""

    settings: Settings
    api_client: JourneyApiClient
    session_store: SessionStore
    last_known_store: LastKnownStore
    orchestrator: DataLoadingOrchestrator
    session_service: SessionService
    guards: GuardRegistry
    cleanup_service: LogoutCleanupService
    close_resources: Callable[[], Awaitable[None]]


def build_container(settings: Settings | None = None) -> AppContainer:
    """Create the default dependency container."""
    resolved_settings = settings or Settings()
    session_store = JsonFileSessionStore(resolved_settings.storage_dir)
    last_known_store = JsonFileLastKnownStore(resolved_settings.storage_dir)
    api_client = HttpxJourneyApiClient.create(
        base_url=resolved_settings.journey_api_base_url,
        api_token=resolved_settings.journey_api_token,
        timeout_seconds=resolved_settings.request_timeout_seconds,
    )
    orchestrator = DataLoadingOrchestrator(
        session_store=session_store,
        api_client=api_client,
        cache=InMemoryResourceCache(),
        freshness_window=resolved_settings.freshness_window,
        retry_attempts=resolved_settings.retry_attempts,
        retry_delay_seconds=resolved_settings.retry_delay_seconds,
    )
    session_service = SessionService(
        orchestrator=orchestrator, session_store=session_store
    )
    guards = GuardRegistry(
        orchestrator=orchestrator,
        synchronizer_factory=partial(
            UrlSynchronizer,
            last_known_store,
            last_known_max_age=resolved_settings.last_known_max_age,
        ),
    )
    cleanup_service = LogoutCleanupService(
        orchestrator=orchestrator,
        last_known_store=last_known_store,
        session_store=session_store,
    )

    async def close_resources() -> None:
        await api_client.close()

    return AppContainer(
        settings=resolved_settings,
        api_client=api_client,
        session_store=session_store,
        last_known_store=last_known_store,
        orchestrator=orchestrator,
        session_service=session_service,
        guards=guards,
        cleanup_service=cleanup_service,
        close_resources=close_resources,
    )

"""Shared test fixtures."""

import asyncio
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

import pytest

from inspection_journey.adapters.file_store import (
    InMemoryLastKnownStore,
    InMemorySessionStore,
)
from inspection_journey.config import Settings
from inspection_journey.containers import AppContainer
from inspection_journey.domain.sessions import FlowKind, Session, SessionStatus
from inspection_journey.errors import NotFoundError, TransientError
from inspection_journey.services.cache import InMemoryResourceCache
from inspection_journey.services.cleanup import LogoutCleanupService
from inspection_journey.services.orchestrator import DataLoadingOrchestrator
from inspection_journey.services.payloads import session_to_payload
from inspection_journey.services.route_guard import GuardRegistry
from inspection_journey.services.sessions import SessionService
from inspection_journey.services.synchronizer import UrlSynchronizer

NOW = datetime(2026, 3, 14, 9, 30, tzinfo=UTC)


@dataclass
class FixedClock:
    """Clock that only moves when told to."""

    now: datetime = NOW

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now = self.now + delta


def make_session(  # noqa: PLR0913
    session_id: str = "S1",
    journey_id: str = "J1",
    flow_kind: FlowKind = FlowKind.CHECK_IN,
    status: SessionStatus = SessionStatus.IN_PROGRESS,
    *,
    is_flow_completed: bool = False,
    last_touched_at: datetime = NOW,
    requires_initial_state: bool = False,
    initial_state_completed: bool = False,
    exit_questions_completed: bool = False,
) -> Session:
    return Session(
        session_id=session_id,
        journey_id=journey_id,
        flow_kind=flow_kind,
        status=status,
        is_flow_completed=is_flow_completed,
        last_touched_at=last_touched_at,
        created_at=last_touched_at,
        requires_initial_state=requires_initial_state,
        initial_state_completed=initial_state_completed,
        exit_questions_completed=exit_questions_completed,
    )


def journey_payload(
    journey_id: str = "J1",
    journey_type: str = "checkout",
    take_picture: str | None = None,
) -> dict[str, object]:
    return {
        "id": journey_id,
        "name": "Flat 4B",
        "type": journey_type,
        "takePicture": take_picture,
        "rooms": [
            {
                "id": "kitchen",
                "name": "Kitchen",
                "order": 1,
                "tasks": [{"id": "t1", "label": "Check the oven"}],
            },
            {"id": "hall", "name": "Hall", "order": 0, "tasks": []},
        ],
    }


@dataclass
class FakeJourneyApiClient:
    """Fake journey API with per-id payloads, failures and call counts."""

    sessions: dict[str, dict[str, object]] = field(default_factory=dict)
    journeys: dict[str, dict[str, object]] = field(default_factory=dict)
    failures: dict[str, list[Exception]] = field(default_factory=dict)
    calls: list[tuple[str, str, str | None]] = field(default_factory=list)
    gate: asyncio.Event | None = None
    closed: bool = False

    def add_session(self, session: Session) -> None:
        self.sessions[session.session_id] = session_to_payload(session)

    def fail_next(self, resource_id: str, *errors: Exception) -> None:
        self.failures.setdefault(resource_id, []).extend(errors)

    def call_count(self, resource_id: str) -> int:
        return sum(1 for _, rid, _ in self.calls if rid == resource_id)

    async def _respond(
        self,
        kind: str,
        resource_id: str,
        hint: str | None,
        source: dict[str, dict[str, object]],
    ) -> dict[str, object]:
        self.calls.append((kind, resource_id, hint))
        if self.gate is not None:
            await self.gate.wait()
        else:
            await asyncio.sleep(0)
        pending = self.failures.get(resource_id)
        if pending:
            raise pending.pop(0)
        payload = source.get(resource_id)
        if payload is None:
            raise NotFoundError(kind, resource_id)
        return payload

    async def fetch_session(self, session_id: str) -> dict[str, object]:
        return await self._respond("session", session_id, None, self.sessions)

    async def fetch_journey(
        self, journey_id: str, flow_kind_hint: str | None = None
    ) -> dict[str, object]:
        return await self._respond("journey", journey_id, flow_kind_hint, self.journeys)

    async def close(self) -> None:
        self.closed = True


def transient() -> TransientError:
    return TransientError("connection reset")


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def api_client() -> FakeJourneyApiClient:
    client = FakeJourneyApiClient()
    client.journeys["J1"] = journey_payload()
    return client


@pytest.fixture
def session_store(clock: FixedClock) -> InMemorySessionStore:
    return InMemorySessionStore(clock=clock)


@pytest.fixture
def last_known_store() -> InMemoryLastKnownStore:
    return InMemoryLastKnownStore()


@pytest.fixture
def orchestrator(
    api_client: FakeJourneyApiClient,
    session_store: InMemorySessionStore,
    clock: FixedClock,
) -> DataLoadingOrchestrator:
    return DataLoadingOrchestrator(
        session_store=session_store,
        api_client=api_client,
        cache=InMemoryResourceCache(),
        retry_attempts=1,
        retry_delay_seconds=0,
        clock=clock,
    )


@pytest.fixture
def synchronizer(
    last_known_store: InMemoryLastKnownStore, clock: FixedClock
) -> UrlSynchronizer:
    return UrlSynchronizer(last_known_store, clock=clock)


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        journey_api_base_url="https://content.example.test/api/",
        storage_dir=tmp_path / "store",
    )


@pytest.fixture
def container(
    settings: Settings,
    api_client: FakeJourneyApiClient,
    session_store: InMemorySessionStore,
    last_known_store: InMemoryLastKnownStore,
    orchestrator: DataLoadingOrchestrator,
    clock: FixedClock,
) -> AppContainer:
    ids = iter(f"S-new-{index}" for index in range(1, 100))
    session_service = SessionService(
        orchestrator=orchestrator,
        session_store=session_store,
        id_factory=lambda: next(ids),
        clock=clock,
    )
    guards = GuardRegistry(
        orchestrator=orchestrator,
        synchronizer_factory=lambda: UrlSynchronizer(last_known_store, clock=clock),
    )
    cleanup_service = LogoutCleanupService(
        orchestrator=orchestrator,
        last_known_store=last_known_store,
        session_store=session_store,
    )

    async def close_resources() -> None:
        await api_client.close()

    return AppContainer(
        settings=settings,
        api_client=api_client,
        session_store=session_store,
        last_known_store=last_known_store,
        orchestrator=orchestrator,
        session_service=session_service,
        guards=guards,
        cleanup_service=cleanup_service,
        close_resources=close_resources,
    )

"""Tests for the session lifecycle service."""

import asyncio
from datetime import timedelta

import pytest

from inspection_journey.adapters.file_store import InMemorySessionStore
from inspection_journey.domain.sessions import FlowKind, SessionStatus
from inspection_journey.errors import NotFoundError, SessionTransitionError
from inspection_journey.services.navigation import correct_route_for_session
from inspection_journey.services.orchestrator import DataLoadingOrchestrator
from inspection_journey.services.sessions import SessionService
from tests.conftest import (
    FakeJourneyApiClient,
    FixedClock,
    journey_payload,
    make_session,
)


@pytest.fixture
def service(
    orchestrator: DataLoadingOrchestrator,
    session_store: InMemorySessionStore,
    clock: FixedClock,
) -> SessionService:
    return SessionService(
        orchestrator=orchestrator,
        session_store=session_store,
        id_factory=lambda: "S-new",
        clock=clock,
    )


def test_check_in_runs_to_completion(
    service: SessionService,
    api_client: FakeJourneyApiClient,
    session_store: InMemorySessionStore,
) -> None:
    api_client.journeys["J2"] = journey_payload("J2", journey_type="voyage")

    async def run():
        created = await service.activate_journey("J2")
        started = await service.start(created.session_id)
        finished = await service.complete_tasks(created.session_id)
        return created, started, finished

    created, started, finished = asyncio.run(run())

    assert created.flow_kind == FlowKind.CHECK_IN
    assert created.status == SessionStatus.NOT_STARTED
    assert correct_route_for_session(created) == "/welcome"
    assert started.status == SessionStatus.IN_PROGRESS
    assert finished.status == SessionStatus.COMPLETED
    assert finished.is_flow_completed
    assert session_store.get("S-new") == finished


def test_check_out_with_initial_state_and_exit_questions(
    service: SessionService, api_client: FakeJourneyApiClient
) -> None:
    api_client.journeys["J1"] = journey_payload(take_picture="checkInAndCheckOut")

    async def run():
        session = await service.activate_journey("J1")
        session = await service.start(session.session_id)
        assert correct_route_for_session(session) == "/initial-state"
        with pytest.raises(SessionTransitionError):
            await service.complete_tasks(session.session_id)
        session = await service.complete_initial_state(session.session_id)
        assert correct_route_for_session(session) == "/rooms"
        session = await service.complete_tasks(session.session_id)
        assert correct_route_for_session(session) == "/exit-questions"
        return await service.complete_exit_questions(session.session_id)

    finished = asyncio.run(run())

    assert finished.status == SessionStatus.COMPLETED
    assert finished.exit_questions_completed
    assert correct_route_for_session(finished) == "/report"


def test_flow_kind_hint_overrides_journey_type(
    service: SessionService,
) -> None:
    session = asyncio.run(service.activate_journey("J1", FlowKind.CHECK_IN))

    assert session.flow_kind == FlowKind.CHECK_IN


def test_transitions_touch_the_session(
    service: SessionService,
    session_store: InMemorySessionStore,
    clock: FixedClock,
) -> None:
    session_store.put(make_session(status=SessionStatus.NOT_STARTED))
    clock.advance(timedelta(minutes=5))

    started = asyncio.run(service.start("S1"))

    assert started.last_touched_at == clock.now


def test_invalid_transitions_are_rejected(
    service: SessionService, session_store: InMemorySessionStore
) -> None:
    session_store.put(make_session())

    with pytest.raises(SessionTransitionError):
        asyncio.run(service.start("S1"))
    with pytest.raises(SessionTransitionError):
        asyncio.run(service.complete_exit_questions("S1"))
    with pytest.raises(SessionTransitionError):
        asyncio.run(service.complete_initial_state("S1"))


def test_unknown_journey_raises_not_found(service: SessionService) -> None:
    with pytest.raises(NotFoundError):
        asyncio.run(service.activate_journey("nope"))


def test_purge_expired_removes_old_sessions(
    service: SessionService,
    session_store: InMemorySessionStore,
    clock: FixedClock,
) -> None:
    session_store.put(make_session("old"))
    clock.advance(timedelta(hours=20))
    session_store.put(make_session("recent", last_touched_at=clock.now))
    clock.advance(timedelta(hours=5))

    purged = service.purge_expired(timedelta(hours=24))

    assert purged == ["old"]
    assert session_store.list_ids() == ["recent"]

"""Tests for navigation state rules."""

from datetime import datetime

import pytest

from inspection_journey.domain.routes import RouteKind, classify_path
from inspection_journey.domain.sessions import FlowKind, SessionStatus
from inspection_journey.services.navigation import (
    correct_route_for_session,
    get_redirect_target,
    is_route_allowed,
    is_session_modifiable,
    needs_flow_transition,
    next_step,
    requires_url_params,
)
from tests.conftest import make_session

ALL_PATHS = [
    "/",
    "/welcome",
    "/issues/pending",
    "/issues/history",
    "/rooms",
    "/rooms/3",
    "/initial-state",
    "/exit-questions",
    "/report",
    "/no-such-page",
]


def _sessions():
    return [
        None,
        make_session(status=SessionStatus.NOT_STARTED),
        make_session(),
        make_session(
            flow_kind=FlowKind.CHECK_OUT,
            requires_initial_state=True,
        ),
        make_session(
            flow_kind=FlowKind.CHECK_OUT,
            requires_initial_state=True,
            initial_state_completed=True,
        ),
        make_session(
            flow_kind=FlowKind.CHECK_OUT,
            status=SessionStatus.AWAITING_EXIT_QUESTIONS,
        ),
        make_session(status=SessionStatus.COMPLETED, is_flow_completed=True),
    ]


def test_room_route_without_session_redirects_to_welcome() -> None:
    assert get_redirect_target("/rooms/2", None) == "/welcome"


def test_completed_check_in_on_room_route_redirects_to_report() -> None:
    session = make_session(status=SessionStatus.COMPLETED, is_flow_completed=True)

    assert get_redirect_target("/rooms/2", session) == "/report"
    assert get_redirect_target("/report", session) is None


def test_public_routes_are_always_allowed() -> None:
    for path in ("/", "/welcome", "/issues/pending", "/fr/issues/history/"):
        assert is_route_allowed(path, None)


def test_unknown_routes_fail_closed() -> None:
    assert classify_path("/settings") == RouteKind.UNKNOWN
    assert not is_route_allowed("/settings", None)
    assert get_redirect_target("/settings", make_session()) == "/rooms"


def test_language_prefix_and_trailing_slash_are_ignored() -> None:
    session = make_session()

    assert is_route_allowed("/en/rooms/1/", session)
    assert get_redirect_target("/de/report", session) == "/rooms"


def test_pending_initial_state_pins_the_user() -> None:
    session = make_session(flow_kind=FlowKind.CHECK_OUT, requires_initial_state=True)

    assert correct_route_for_session(session) == "/initial-state"
    assert get_redirect_target("/rooms", session) == "/initial-state"
    assert is_route_allowed("/initial-state", session)


def test_exit_questions_only_for_check_out_awaiting() -> None:
    in_progress = make_session(flow_kind=FlowKind.CHECK_OUT)
    awaiting = make_session(
        flow_kind=FlowKind.CHECK_OUT, status=SessionStatus.AWAITING_EXIT_QUESTIONS
    )

    assert not is_route_allowed("/exit-questions", in_progress)
    assert is_route_allowed("/exit-questions", awaiting)
    assert correct_route_for_session(awaiting) == "/exit-questions"


def test_not_started_session_only_reaches_public_routes() -> None:
    session = make_session(status=SessionStatus.NOT_STARTED)

    assert get_redirect_target("/rooms", session) == "/welcome"
    assert is_route_allowed("/welcome", session)


def test_session_breaking_invariants_is_treated_as_absent() -> None:
    broken = make_session(status=SessionStatus.COMPLETED, is_flow_completed=False)

    assert get_redirect_target("/report", broken) == "/welcome"


def test_check_in_with_initial_state_flag_is_treated_as_absent() -> None:
    broken = make_session(flow_kind=FlowKind.CHECK_IN, requires_initial_state=True)

    assert get_redirect_target("/exit-questions", broken) == "/welcome"
    assert not is_route_allowed("/initial-state", broken)


def test_naive_timestamp_is_treated_as_absent() -> None:
    broken = make_session(last_touched_at=datetime(2026, 3, 14, 9, 30))

    assert correct_route_for_session(broken) == "/welcome"


@pytest.mark.parametrize("path", ALL_PATHS)
def test_redirect_target_is_always_allowed(path: str) -> None:
    for session in _sessions():
        target = get_redirect_target(path, session)
        if target is not None:
            assert is_route_allowed(target, session)
            assert get_redirect_target(target, session) is None


@pytest.mark.parametrize("path", ALL_PATHS)
def test_rules_are_deterministic(path: str) -> None:
    for session in _sessions():
        first = (is_route_allowed(path, session), get_redirect_target(path, session))
        second = (is_route_allowed(path, session), get_redirect_target(path, session))
        assert first == second


def test_requires_url_params_for_protected_routes_only() -> None:
    assert requires_url_params("/rooms/1")
    assert requires_url_params("/report")
    assert not requires_url_params("/welcome")
    assert not requires_url_params("/issues/pending")


def test_session_modifiable_and_flow_transition() -> None:
    done = make_session(status=SessionStatus.COMPLETED, is_flow_completed=True)

    assert is_session_modifiable(make_session())
    assert not is_session_modifiable(done)
    assert needs_flow_transition(done)
    assert not needs_flow_transition(
        make_session(
            flow_kind=FlowKind.CHECK_OUT,
            status=SessionStatus.COMPLETED,
            is_flow_completed=True,
            exit_questions_completed=True,
        )
    )


def test_next_step_describes_the_current_stage() -> None:
    assert next_step(None) == "Choose a journey to start"
    assert next_step(make_session(status=SessionStatus.NOT_STARTED)) == (
        "Start the inspection"
    )
    assert next_step(make_session()) == "Continue the check-in"

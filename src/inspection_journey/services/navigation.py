"""Navigation state rules: which routes a session may reach.

Every function here is a pure function of ``(path, session)``. No clock,
no storage, no randomness, so repeated calls always agree and a redirect
issued from these rules is idempotent.
"""

from inspection_journey.domain.routes import (
    EXIT_QUESTIONS_PATH,
    INITIAL_STATE_PATH,
    PUBLIC_KINDS,
    REPORT_PATH,
    ROOM_OVERVIEW_PATH,
    WELCOME_PATH,
    RouteKind,
    classify_path,
    is_public_path,
)
from inspection_journey.domain.sessions import (
    FlowKind,
    Session,
    SessionStatus,
    session_invariant_violations,
)

_JOURNEY_ROOM_KINDS = frozenset({RouteKind.ROOM_OVERVIEW, RouteKind.ROOM})


def _usable(session: Session | None) -> Session | None:
    """Treat sessions that break their invariants as absent."""
    if session is None or session_invariant_violations(session):
        return None
    return session


def _is_finished(session: Session) -> bool:
    return session.is_flow_completed or session.status == SessionStatus.COMPLETED


def correct_route_for_session(session: Session | None) -> str:
    """Return the route a session should currently be on."""
    session = _usable(session)
    if session is None:
        return WELCOME_PATH
    if _is_finished(session):
        return REPORT_PATH
    if session.status == SessionStatus.NOT_STARTED:
        return WELCOME_PATH
    if session.initial_state_pending:
        return INITIAL_STATE_PATH
    if session.status == SessionStatus.AWAITING_EXIT_QUESTIONS:
        return EXIT_QUESTIONS_PATH
    return ROOM_OVERVIEW_PATH


def _allowed_kinds(session: Session) -> frozenset[RouteKind]:
    if _is_finished(session):
        return frozenset({RouteKind.REPORT})
    if session.status == SessionStatus.NOT_STARTED:
        return frozenset()
    if session.initial_state_pending:
        return frozenset({RouteKind.INITIAL_STATE})
    kinds = set(_JOURNEY_ROOM_KINDS)
    if session.requires_initial_state:
        kinds.add(RouteKind.INITIAL_STATE)
    if (
        session.status == SessionStatus.AWAITING_EXIT_QUESTIONS
        and session.flow_kind == FlowKind.CHECK_OUT
    ):
        kinds.add(RouteKind.EXIT_QUESTIONS)
    return frozenset(kinds)


def is_route_allowed(path: str, session: Session | None) -> bool:
    """Return True when ``path`` is reachable for ``session``.

    Fails closed: protected paths, including unknown ones, need a valid
    session.
    """
    kind = classify_path(path)
    if kind in PUBLIC_KINDS:
        return True
    session = _usable(session)
    if session is None:
        return False
    return kind in _allowed_kinds(session)


def get_redirect_target(path: str, session: Session | None) -> str | None:
    """Return where to send the user, or None when ``path`` is allowed."""
    if is_route_allowed(path, session):
        return None
    return correct_route_for_session(session)


def requires_url_params(path: str) -> bool:
    """Return True when the route needs ``parcours`` and ``checkid``."""
    return not is_public_path(path)


def is_session_modifiable(session: Session) -> bool:
    return session.status in {
        SessionStatus.IN_PROGRESS,
        SessionStatus.AWAITING_EXIT_QUESTIONS,
    }


def needs_flow_transition(session: Session) -> bool:
    """Return True for a finished check-in that hands over to a check-out."""
    return session.flow_kind == FlowKind.CHECK_IN and _is_finished(session)


def next_step(session: Session | None) -> str:
    """Describe the next action for a session."""
    session = _usable(session)
    if session is None:
        return "Choose a journey to start"
    if _is_finished(session):
        if session.flow_kind == FlowKind.CHECK_IN:
            return "Check-in finished, start the check-out when leaving"
        return "Check-out finished, view the report"
    if session.status == SessionStatus.NOT_STARTED:
        return "Start the inspection"
    if session.initial_state_pending:
        return "Photograph the initial state"
    if session.status == SessionStatus.AWAITING_EXIT_QUESTIONS:
        return "Answer the exit questions"
    return f"Continue the {session.flow_kind.value}"

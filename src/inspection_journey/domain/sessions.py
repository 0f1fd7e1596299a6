"""Domain models for inspection sessions."""

from dataclasses import dataclass, replace
from datetime import datetime
from enum import StrEnum


class FlowKind(StrEnum):
    """Whether a session is a check-in or a check-out inspection."""

    CHECK_IN = "check-in"
    CHECK_OUT = "check-out"


class SessionStatus(StrEnum):
    """Progress of a session through its journey."""

    NOT_STARTED = "not-started"
    IN_PROGRESS = "in-progress"
    AWAITING_EXIT_QUESTIONS = "awaiting-exit-questions"
    COMPLETED = "completed"


@dataclass(frozen=True)
class Session:
    """One concrete run of a journey, identified by its check id."""

    session_id: str
    journey_id: str
    flow_kind: FlowKind
    status: SessionStatus
    is_flow_completed: bool
    last_touched_at: datetime
    created_at: datetime | None = None
    requires_initial_state: bool = False
    initial_state_completed: bool = False
    exit_questions_completed: bool = False

    @property
    def initial_state_pending(self) -> bool:
        """Return True while the initial-state photo pass is still owed."""
        return self.requires_initial_state and not self.initial_state_completed

    def touched(self, at: datetime, **changes: object) -> "Session":
        """Return a full replacement record with the given changes applied."""
        return replace(self, last_touched_at=at, **changes)


def session_invariant_violations(session: Session) -> list[str]:
    """Return the invariants a session breaks, empty when it is valid."""
    violations: list[str] = []
    if session.status == SessionStatus.COMPLETED and not session.is_flow_completed:
        violations.append("completed session must have is_flow_completed")
    if session.flow_kind == FlowKind.CHECK_IN:
        if session.status == SessionStatus.AWAITING_EXIT_QUESTIONS:
            violations.append("check-in sessions have no exit questions")
        if session.exit_questions_completed:
            violations.append("check-in sessions cannot complete exit questions")
        if session.requires_initial_state:
            violations.append("check-in sessions have no initial-state pass")
    if session.initial_state_completed and not session.requires_initial_state:
        violations.append("initial state completed on a journey without one")
    if session.last_touched_at.tzinfo is None:
        violations.append("last_touched_at must be timezone-aware")
    return violations

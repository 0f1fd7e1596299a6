"""Session lifecycle: creation, status transitions and expiry."""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from uuid import uuid4

from inspection_journey.domain.journeys import JourneyData
from inspection_journey.domain.sessions import (
    FlowKind,
    Session,
    SessionStatus,
    session_invariant_violations,
)
from inspection_journey.errors import MalformedResponseError, SessionTransitionError
from inspection_journey.services.cache import ResourceKind
from inspection_journey.services.orchestrator import (
    DataLoadingOrchestrator,
    LoadOptions,
    SessionStore,
)

_logger = logging.getLogger(__name__)


def _new_session_id() -> str:
    return str(uuid4())


@dataclass
class SessionService:
    """State machine for a session's status.

    Every change is written as a full replacement record; two tabs on the
    same session resolve by last write wins.
    """

    orchestrator: DataLoadingOrchestrator
    session_store: SessionStore
    id_factory: Callable[[], str] = _new_session_id
    clock: Callable[[], datetime] = field(default=lambda: datetime.now(tz=UTC))

    async def activate_journey(
        self, journey_id: str, flow_kind_hint: FlowKind | None = None
    ) -> Session:
        """Create a not-started session for a journey."""
        result = await self.orchestrator.load(
            ResourceKind.JOURNEY,
            journey_id,
            LoadOptions(flow_kind_hint=flow_kind_hint),
        )
        journey = result.value
        if not isinstance(journey, JourneyData):
            raise MalformedResponseError(f"journey {journey_id} did not load")
        now = self.clock()
        session = Session(
            session_id=self.id_factory(),
            journey_id=journey.journey_id,
            flow_kind=journey.flow_kind,
            status=SessionStatus.NOT_STARTED,
            is_flow_completed=False,
            last_touched_at=now,
            created_at=now,
            requires_initial_state=journey.requires_initial_state,
        )
        self.orchestrator.replace_session(session)
        _logger.info(
            "Created %s session %s for journey %s",
            session.flow_kind.value,
            session.session_id,
            journey_id,
        )
        return session

    async def start(self, session_id: str) -> Session:
        session = await self._current(session_id)
        if session.status != SessionStatus.NOT_STARTED:
            raise SessionTransitionError(f"session {session_id} already started")
        return self._save(session, status=SessionStatus.IN_PROGRESS)

    async def complete_initial_state(self, session_id: str) -> Session:
        session = await self._current(session_id)
        pending = session.initial_state_pending
        if session.status != SessionStatus.IN_PROGRESS or not pending:
            raise SessionTransitionError(
                f"session {session_id} has no pending initial state"
            )
        return self._save(session, initial_state_completed=True)

    async def complete_tasks(self, session_id: str) -> Session:
        """Record that every room is validated.

        Check-ins finish here; check-outs move on to the exit questions.
        """
        session = await self._current(session_id)
        if session.status != SessionStatus.IN_PROGRESS:
            raise SessionTransitionError(f"session {session_id} is not in progress")
        if session.initial_state_pending:
            raise SessionTransitionError(
                f"session {session_id} must finish its initial state first"
            )
        if session.flow_kind == FlowKind.CHECK_IN:
            return self._save(
                session, status=SessionStatus.COMPLETED, is_flow_completed=True
            )
        return self._save(session, status=SessionStatus.AWAITING_EXIT_QUESTIONS)

    async def complete_exit_questions(self, session_id: str) -> Session:
        session = await self._current(session_id)
        if session.status != SessionStatus.AWAITING_EXIT_QUESTIONS:
            raise SessionTransitionError(
                f"session {session_id} is not awaiting exit questions"
            )
        return self._save(
            session,
            status=SessionStatus.COMPLETED,
            is_flow_completed=True,
            exit_questions_completed=True,
        )

    def purge_expired(self, ttl: timedelta) -> list[str]:
        """Delete sessions untouched for longer than ``ttl``."""
        expired = self.session_store.list_expired(ttl)
        for session_id in expired:
            self.session_store.delete(session_id)
            self.orchestrator.discard(ResourceKind.SESSION, session_id)
        if expired:
            _logger.info("Purged %s expired sessions", len(expired))
        return expired

    async def _current(self, session_id: str) -> Session:
        result = await self.orchestrator.load(ResourceKind.SESSION, session_id)
        if not isinstance(result.value, Session):
            raise MalformedResponseError(f"session {session_id} did not load")
        return result.value

    def _save(self, session: Session, **changes: object) -> Session:
        updated = session.touched(self.clock(), **changes)
        violations = session_invariant_violations(updated)
        if violations:
            raise SessionTransitionError("; ".join(violations))
        self.orchestrator.replace_session(updated)
        _logger.info("Session %s now %s", updated.session_id, updated.status.value)
        return updated

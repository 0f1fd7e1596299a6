"""FastAPI application factory."""

import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request, status

from inspection_journey.api.models import (
    ActivateJourneyRequest,
    LogoutRequest,
    LogoutResponse,
    NavigationRequest,
    NavigationResponse,
    SessionResponse,
)
from inspection_journey.app_logging import configure_logging
from inspection_journey.containers import AppContainer
from inspection_journey.domain.routes import WELCOME_PATH
from inspection_journey.domain.sessions import Session
from inspection_journey.errors import (
    NotFoundError,
    SessionTransitionError,
    TransientError,
)
from inspection_journey.services.navigation import correct_route_for_session, next_step

_TRANSITIONS = {
    "start": "start",
    "initial-state": "complete_initial_state",
    "tasks": "complete_tasks",
    "exit-questions": "complete_exit_questions",
}


def create_app(container: AppContainer) -> FastAPI:
    """Create a FastAPI app configured with dependencies."""
    configure_logging()
    logger = logging.getLogger(__name__)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        state_container: AppContainer = app.state.container
        try:
            state_container.session_service.purge_expired(
                state_container.settings.session_ttl
            )
        except OSError:
            logger.exception("Failed to purge expired sessions")
        yield
        await state_container.close_resources()

    app = FastAPI(lifespan=lifespan)
    app.state.container = container

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Simple health check endpoint."""
        return {"status": "ok"}

    @app.post("/navigation/evaluate")
    async def evaluate_navigation(
        payload: NavigationRequest, request: Request
    ) -> NavigationResponse:
        """Run the route guard for a tab and report its single decision."""
        state_container: AppContainer = request.app.state.container
        guard = state_container.guards.mount(payload.tab_id)
        outcome = await guard.evaluate(payload.url)
        if outcome is None:
            return NavigationResponse(status="superseded")
        return NavigationResponse(
            status="ok",
            path=outcome.path,
            allowed=outcome.allowed,
            navigate_to=outcome.navigated_to,
            redirect_target=outcome.redirect_target,
            journey_id=outcome.params.journey_id,
            session_id=outcome.params.session_id,
            load_status=outcome.load.status.value if outcome.load else None,
            banner=outcome.banner,
            retryable=outcome.retryable_error,
            next_step=next_step(outcome.session),
        )

    @app.post("/journeys/{journey_id}/activate")
    async def activate_journey(
        journey_id: str, payload: ActivateJourneyRequest, request: Request
    ) -> SessionResponse:
        """Create a session for a journey and make it the tab's active one."""
        state_container: AppContainer = request.app.state.container
        session = await _run_data_call(
            lambda: state_container.session_service.activate_journey(
                journey_id, payload.flow_kind
            )
        )
        guard = state_container.guards.mount(payload.tab_id)
        url = guard.synchronizer.adopt_session(
            session.journey_id, session.session_id, WELCOME_PATH
        )
        return _session_response(session, url)

    @app.post("/sessions/{session_id}/transitions/{action}")
    async def transition_session(
        session_id: str, action: str, request: Request
    ) -> SessionResponse:
        """Apply a lifecycle transition and return the session's next route."""
        state_container: AppContainer = request.app.state.container
        method_name = _TRANSITIONS.get(action)
        if method_name is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND)
        method = getattr(state_container.session_service, method_name)
        try:
            session = await _run_data_call(lambda: method(session_id))
        except SessionTransitionError as exc:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT, detail=str(exc)
            ) from exc
        return _session_response(session, correct_route_for_session(session))

    @app.post("/logout")
    async def logout(payload: LogoutRequest, request: Request) -> LogoutResponse:
        """Clear caches and identifiers for every mounted tab."""
        state_container: AppContainer = request.app.state.container
        report = state_container.cleanup_service.logout(
            state_container.guards.synchronizers(),
            delete_sessions=payload.delete_sessions,
        )
        return LogoutResponse(
            cache_entries=report.cache_entries,
            sessions_deleted=report.sessions_deleted,
            synchronizers_reset=report.synchronizers_reset,
            failures=list(report.failures),
        )

    @app.delete("/tabs/{tab_id}")
    async def close_tab(tab_id: str, request: Request) -> dict[str, str]:
        """Unmount a tab so late results for it are dropped."""
        state_container: AppContainer = request.app.state.container
        state_container.guards.unmount(tab_id)
        return {"status": "ok"}

    return app


async def _run_data_call(call: Callable[[], Awaitable[Session]]) -> Session:
    """Map loader errors onto HTTP errors."""
    try:
        return await call()
    except NotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)
        ) from exc
    except TransientError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)
        ) from exc


def _session_response(session: Session, url: str | None) -> SessionResponse:
    return SessionResponse(
        session_id=session.session_id,
        journey_id=session.journey_id,
        flow_kind=session.flow_kind,
        status=session.status.value,
        is_flow_completed=session.is_flow_completed,
        url=url,
    )

"""Pydantic models for the HTTP surface."""

from pydantic import BaseModel, Field

from inspection_journey.domain.sessions import FlowKind


class NavigationRequest(BaseModel):
    """A URL the client router landed on."""

    tab_id: str = Field(min_length=1)
    url: str = Field(min_length=1)


class NavigationResponse(BaseModel):
    """Route guard decision for one navigation."""

    status: str
    path: str | None = None
    allowed: bool | None = None
    navigate_to: str | None = None
    redirect_target: str | None = None
    journey_id: str | None = None
    session_id: str | None = None
    load_status: str | None = None
    banner: str | None = None
    retryable: bool = False
    next_step: str | None = None


class ActivateJourneyRequest(BaseModel):
    """Start a new session for a journey in a tab."""

    tab_id: str = Field(min_length=1)
    flow_kind: FlowKind | None = None


class SessionResponse(BaseModel):
    """Session summary returned after a lifecycle change."""

    session_id: str
    journey_id: str
    flow_kind: FlowKind
    status: str
    is_flow_completed: bool
    url: str | None = None


class LogoutRequest(BaseModel):
    delete_sessions: bool = False


class LogoutResponse(BaseModel):
    cache_entries: int
    sessions_deleted: int
    synchronizers_reset: int
    failures: list[str]

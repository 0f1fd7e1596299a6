"""Pydantic models validating remote and persisted payloads."""

from pydantic import AwareDatetime, BaseModel, ConfigDict, Field, ValidationError

from inspection_journey.domain.journeys import JourneyData, Room, Task
from inspection_journey.domain.sessions import (
    FlowKind,
    Session,
    SessionStatus,
    session_invariant_violations,
)
from inspection_journey.errors import MalformedResponseError


class _Payload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)


class SessionPayload(_Payload):
    """Session record as exchanged with the content API and local storage."""

    session_id: str = Field(alias="sessionId", min_length=1)
    journey_id: str = Field(alias="journeyId", min_length=1)
    flow_kind: FlowKind = Field(alias="flowKind")
    status: SessionStatus
    is_flow_completed: bool = Field(alias="isFlowCompleted")
    last_touched_at: AwareDatetime = Field(alias="lastTouchedAt")
    created_at: AwareDatetime | None = Field(default=None, alias="createdAt")
    requires_initial_state: bool = Field(default=False, alias="requiresInitialState")
    initial_state_completed: bool = Field(
        default=False, alias="initialStateCompleted"
    )
    exit_questions_completed: bool = Field(
        default=False, alias="exitQuestionsCompleted"
    )

    @classmethod
    def from_session(cls, session: Session) -> "SessionPayload":
        return cls(
            session_id=session.session_id,
            journey_id=session.journey_id,
            flow_kind=session.flow_kind,
            status=session.status,
            is_flow_completed=session.is_flow_completed,
            last_touched_at=session.last_touched_at,
            created_at=session.created_at,
            requires_initial_state=session.requires_initial_state,
            initial_state_completed=session.initial_state_completed,
            exit_questions_completed=session.exit_questions_completed,
        )

    def to_session(self) -> Session:
        return Session(
            session_id=self.session_id,
            journey_id=self.journey_id,
            flow_kind=self.flow_kind,
            status=self.status,
            is_flow_completed=self.is_flow_completed,
            last_touched_at=self.last_touched_at,
            created_at=self.created_at,
            requires_initial_state=self.requires_initial_state,
            initial_state_completed=self.initial_state_completed,
            exit_questions_completed=self.exit_questions_completed,
        )


class TaskPayload(_Payload):
    """Task entry of a journey room."""

    id: str = Field(min_length=1)
    label: str
    type: str = "checkbox"
    mandatory: bool = True


class RoomPayload(_Payload):
    """Room entry of a journey."""

    id: str = Field(min_length=1)
    name: str
    order: int = Field(ge=0)
    tasks: list[TaskPayload] = Field(default_factory=list)


class JourneyPayload(_Payload):
    """Journey definition returned by the content API."""

    id: str = Field(min_length=1)
    name: str
    type: str
    take_picture: str | None = Field(default=None, alias="takePicture")
    rooms: list[RoomPayload]


def parse_session(payload: object, expected_id: str | None = None) -> Session:
    """Validate a raw session payload into a Session."""
    try:
        session = SessionPayload.model_validate(payload).to_session()
    except ValidationError as exc:
        raise MalformedResponseError(f"invalid session payload: {exc}") from exc
    if expected_id is not None and session.session_id != expected_id:
        raise MalformedResponseError(
            f"session payload id {session.session_id} does not match {expected_id}"
        )
    violations = session_invariant_violations(session)
    if violations:
        raise MalformedResponseError(
            f"session {session.session_id} breaks invariants: {'; '.join(violations)}"
        )
    return session


def parse_journey(
    payload: object,
    expected_id: str | None = None,
    flow_kind_hint: FlowKind | None = None,
) -> JourneyData:
    """Validate a raw journey payload into JourneyData."""
    try:
        parsed = JourneyPayload.model_validate(payload)
    except ValidationError as exc:
        raise MalformedResponseError(f"invalid journey payload: {exc}") from exc
    if expected_id is not None and parsed.id != expected_id:
        raise MalformedResponseError(
            f"journey payload id {parsed.id} does not match {expected_id}"
        )
    rooms = tuple(
        Room(
            room_id=room.id,
            name=room.name,
            order=room.order,
            tasks=tuple(
                Task(
                    task_id=task.id,
                    label=task.label,
                    kind=task.type,
                    mandatory=task.mandatory,
                )
                for task in room.tasks
            ),
        )
        for room in parsed.rooms
    )
    return JourneyData(
        journey_id=parsed.id,
        name=parsed.name,
        journey_type=parsed.type,
        rooms=rooms,
        take_picture=parsed.take_picture,
        flow_kind_hint=flow_kind_hint,
    )


def session_to_payload(session: Session) -> dict[str, object]:
    """Serialize a Session with the same field names the API uses."""
    return SessionPayload.from_session(session).model_dump(mode="json", by_alias=True)

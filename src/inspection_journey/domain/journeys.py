"""Domain models for journey (parcours) content."""

from dataclasses import dataclass

from inspection_journey.domain.sessions import FlowKind

INITIAL_STATE_PICTURE_MODE = "checkInAndCheckOut"

_CHECK_IN_MARKERS = ("voyage", "checkin", "check-in")


@dataclass(frozen=True)
class Task:
    """A single step inside a room."""

    task_id: str
    label: str
    kind: str = "checkbox"
    mandatory: bool = True


@dataclass(frozen=True)
class Room:
    """A room of the property and the tasks to perform in it."""

    room_id: str
    name: str
    order: int
    tasks: tuple[Task, ...] = ()


@dataclass(frozen=True)
class JourneyData:
    """Validated journey definition as served by the content API."""

    journey_id: str
    name: str
    journey_type: str
    rooms: tuple[Room, ...]
    take_picture: str | None = None
    flow_kind_hint: FlowKind | None = None

    @property
    def flow_kind(self) -> FlowKind:
        """Flow kind forced by the loader hint, else derived from the type."""
        if self.flow_kind_hint is not None:
            return self.flow_kind_hint
        return flow_kind_for_journey_type(self.journey_type)

    @property
    def requires_initial_state(self) -> bool:
        """Return True when check-outs must start with an initial-state pass."""
        return (
            self.flow_kind == FlowKind.CHECK_OUT
            and self.take_picture == INITIAL_STATE_PICTURE_MODE
        )

    def room_at(self, position: int) -> Room | None:
        """Return the room at a 1-based position in journey order."""
        ordered = sorted(self.rooms, key=lambda room: room.order)
        if 1 <= position <= len(ordered):
            return ordered[position - 1]
        return None


def flow_kind_for_journey_type(journey_type: str) -> FlowKind:
    """Map a journey type label to the flow it runs."""
    lowered = journey_type.lower()
    if any(marker in lowered for marker in _CHECK_IN_MARKERS):
        return FlowKind.CHECK_IN
    return FlowKind.CHECK_OUT

"""Route taxonomy and URL parameter helpers."""

import re
from dataclasses import dataclass
from enum import Enum
from urllib.parse import parse_qsl, urlencode, urlsplit

from inspection_journey.domain.sessions import Session

JOURNEY_PARAM = "parcours"
SESSION_PARAM = "checkid"

ROOT_PATH = "/"
WELCOME_PATH = "/welcome"
ROOM_OVERVIEW_PATH = "/rooms"
INITIAL_STATE_PATH = "/initial-state"
EXIT_QUESTIONS_PATH = "/exit-questions"
REPORT_PATH = "/report"
PENDING_ISSUES_PATH = "/issues/pending"
ISSUE_HISTORY_PATH = "/issues/history"

SUPPORTED_LANGUAGES = frozenset({"en", "fr", "es", "de", "pt", "ar"})

_ROOM_PATH = re.compile(r"^/rooms/(\d+)$")


class RouteKind(Enum):
    """Classification of a normalized path."""

    ENTRY = "entry"
    PUBLIC = "public"
    ROOM_OVERVIEW = "room_overview"
    ROOM = "room"
    INITIAL_STATE = "initial_state"
    EXIT_QUESTIONS = "exit_questions"
    REPORT = "report"
    UNKNOWN = "unknown"


_STATIC_ROUTES = {
    ROOT_PATH: RouteKind.ENTRY,
    WELCOME_PATH: RouteKind.ENTRY,
    PENDING_ISSUES_PATH: RouteKind.PUBLIC,
    ISSUE_HISTORY_PATH: RouteKind.PUBLIC,
    ROOM_OVERVIEW_PATH: RouteKind.ROOM_OVERVIEW,
    INITIAL_STATE_PATH: RouteKind.INITIAL_STATE,
    EXIT_QUESTIONS_PATH: RouteKind.EXIT_QUESTIONS,
    REPORT_PATH: RouteKind.REPORT,
}

PUBLIC_KINDS = frozenset({RouteKind.ENTRY, RouteKind.PUBLIC})


@dataclass(frozen=True)
class UrlParams:
    """Journey and session identifiers carried in the query string."""

    journey_id: str | None = None
    session_id: str | None = None

    @property
    def is_complete(self) -> bool:
        return bool(self.journey_id and self.session_id)

    @property
    def is_empty(self) -> bool:
        return not self.journey_id and not self.session_id


@dataclass(frozen=True)
class RouteRequest:
    """One navigation evaluation. Never persisted."""

    path: str
    query_journey_id: str | None
    query_session_id: str | None
    session: Session | None


def normalize_path(path: str) -> str:
    """Drop trailing slashes and a leading language prefix."""
    segments = [segment for segment in path.split("/") if segment]
    if segments and segments[0].lower() in SUPPORTED_LANGUAGES:
        segments = segments[1:]
    return "/" + "/".join(segments)


def classify_path(path: str) -> RouteKind:
    """Return the route kind for a path; unknown paths are protected."""
    normalized = normalize_path(path)
    kind = _STATIC_ROUTES.get(normalized)
    if kind is not None:
        return kind
    if _ROOM_PATH.match(normalized):
        return RouteKind.ROOM
    return RouteKind.UNKNOWN


def is_public_path(path: str) -> bool:
    return classify_path(path) in PUBLIC_KINDS


def room_position(path: str) -> int | None:
    """Return the 1-based room number of a room path."""
    match = _ROOM_PATH.match(normalize_path(path))
    return int(match.group(1)) if match else None


def parse_url(url: str) -> tuple[str, UrlParams, list[tuple[str, str]]]:
    """Split a URL into its normalized path, identifiers and other params."""
    parts = urlsplit(url)
    journey_id: str | None = None
    session_id: str | None = None
    extra: list[tuple[str, str]] = []
    for name, value in parse_qsl(parts.query, keep_blank_values=True):
        if name == JOURNEY_PARAM:
            journey_id = value or None
        elif name == SESSION_PARAM:
            session_id = value or None
        else:
            extra.append((name, value))
    path = normalize_path(parts.path or ROOT_PATH)
    return path, UrlParams(journey_id=journey_id, session_id=session_id), extra


def build_url(
    path: str,
    params: UrlParams,
    extra: list[tuple[str, str]] | None = None,
) -> str:
    """Build a URL with the identifiers first and other params preserved."""
    query: list[tuple[str, str]] = []
    if params.journey_id:
        query.append((JOURNEY_PARAM, params.journey_id))
    if params.session_id:
        query.append((SESSION_PARAM, params.session_id))
    query.extend(extra or [])
    if not query:
        return path
    return f"{path}?{urlencode(query)}"

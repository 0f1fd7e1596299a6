"""Local durable stores for sessions and last-known identifiers.

Files are rewritten atomically (temp file + ``os.replace``) so a crash
mid-write leaves the previous version intact.
"""

import json
import logging
import os
import tempfile
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from pathlib import Path

from inspection_journey.domain.sessions import Session
from inspection_journey.errors import MalformedResponseError
from inspection_journey.services.orchestrator import SessionStore
from inspection_journey.services.payloads import parse_session, session_to_payload
from inspection_journey.services.synchronizer import (
    LastKnownIdentifiers,
    LastKnownStore,
)

_logger = logging.getLogger(__name__)

SESSIONS_FILE = "sessions.json"
LAST_KNOWN_FILE = "last_known.json"


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


def _atomic_write_json(path: Path, data: object) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(suffix=".tmp", prefix=path.stem, dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            json.dump(data, handle)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_path, path)
    except BaseException:
        Path(tmp_path).unlink(missing_ok=True)
        raise


def _read_json(path: Path) -> object | None:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return None
    except ValueError:
        # Bad JSON or bad UTF-8.
        corrupt = path.with_name(f"{path.name}.corrupt")
        _logger.exception("Unreadable store file %s; moving it to %s", path, corrupt)
        path.replace(corrupt)
        return None


def _expired(sessions: list[Session], ttl: timedelta, now: datetime) -> list[str]:
    return [s.session_id for s in sessions if now - s.last_touched_at > ttl]


@dataclass
class JsonFileSessionStore(SessionStore):
    """Sessions kept in one JSON document keyed by session id."""

    base_path: Path
    clock: Callable[[], datetime] = _utcnow

    @property
    def sessions_file(self) -> Path:
        return self.base_path / SESSIONS_FILE

    def _load_all(self) -> dict[str, Session]:
        raw = _read_json(self.sessions_file)
        if not isinstance(raw, dict):
            return {}
        sessions: dict[str, Session] = {}
        for session_id, payload in raw.items():
            try:
                sessions[session_id] = parse_session(payload, expected_id=session_id)
            except MalformedResponseError as exc:
                _logger.warning("Skipping stored session %s: %s", session_id, exc)
        return sessions

    def _write_all(self, sessions: dict[str, Session]) -> None:
        _atomic_write_json(
            self.sessions_file,
            {sid: session_to_payload(session) for sid, session in sessions.items()},
        )

    def get(self, session_id: str) -> Session | None:
        return self._load_all().get(session_id)

    def put(self, session: Session) -> None:
        sessions = self._load_all()
        sessions[session.session_id] = session
        self._write_all(sessions)

    def delete(self, session_id: str) -> None:
        sessions = self._load_all()
        if sessions.pop(session_id, None) is not None:
            self._write_all(sessions)

    def list_expired(self, ttl: timedelta) -> list[str]:
        return _expired(list(self._load_all().values()), ttl, self.clock())

    def list_ids(self) -> list[str]:
        return list(self._load_all())


@dataclass
class JsonFileLastKnownStore(LastKnownStore):
    """Last-known identifiers kept in a small JSON file."""

    base_path: Path

    @property
    def record_file(self) -> Path:
        return self.base_path / LAST_KNOWN_FILE

    def get(self) -> LastKnownIdentifiers | None:
        raw = _read_json(self.record_file)
        if not isinstance(raw, dict):
            return None
        try:
            saved_at = datetime.fromisoformat(str(raw["savedAt"]))
        except (KeyError, ValueError):
            _logger.warning("Ignoring last-known record without a valid savedAt")
            return None
        if saved_at.tzinfo is None:
            saved_at = saved_at.replace(tzinfo=UTC)
        return LastKnownIdentifiers(
            last_path=raw.get("lastPath"),
            last_journey_id=raw.get("lastJourneyId"),
            last_session_id=raw.get("lastSessionId"),
            saved_at=saved_at,
        )

    def save(self, record: LastKnownIdentifiers) -> None:
        _atomic_write_json(
            self.record_file,
            {
                "lastPath": record.last_path,
                "lastJourneyId": record.last_journey_id,
                "lastSessionId": record.last_session_id,
                "savedAt": record.saved_at.isoformat(),
            },
        )

    def clear(self) -> None:
        self.record_file.unlink(missing_ok=True)


@dataclass
class InMemorySessionStore(SessionStore):
    """Process-local session store."""

    sessions: dict[str, Session] = field(default_factory=dict)
    clock: Callable[[], datetime] = _utcnow

    def get(self, session_id: str) -> Session | None:
        return self.sessions.get(session_id)

    def put(self, session: Session) -> None:
        self.sessions[session.session_id] = session

    def delete(self, session_id: str) -> None:
        self.sessions.pop(session_id, None)

    def list_expired(self, ttl: timedelta) -> list[str]:
        return _expired(list(self.sessions.values()), ttl, self.clock())

    def list_ids(self) -> list[str]:
        return list(self.sessions)


@dataclass
class InMemoryLastKnownStore(LastKnownStore):
    """Process-local last-known identifiers."""

    record: LastKnownIdentifiers | None = None

    def get(self) -> LastKnownIdentifiers | None:
        return self.record

    def save(self, record: LastKnownIdentifiers) -> None:
        self.record = record

    def clear(self) -> None:
        self.record = None

"""URL/persistence synchronizer.

Reconciles the ``parcours``/``checkid`` query parameters with the active
session id and the last-known identifiers kept in durable storage. Each
navigation event runs one synchronous pass through a small state machine:

    RESOLVE_INTENT -> RESTORE -> ADOPT -> CONSISTENT
                         \\
                          -> ABORTED (second rewrite for the same navigation)

A pass performs at most one URL rewrite, always as a history replace.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime, timedelta
from enum import StrEnum
from typing import Protocol

from inspection_journey.domain.routes import UrlParams, build_url, parse_url
from inspection_journey.errors import RedirectLoopGuardTripped

_logger = logging.getLogger(__name__)

DEFAULT_LAST_KNOWN_MAX_AGE = timedelta(hours=24)


@dataclass(frozen=True)
class LastKnownIdentifiers:
    """Durable record of the last adopted journey and session."""

    last_path: str | None
    last_journey_id: str | None
    last_session_id: str | None
    saved_at: datetime


class LastKnownStore(Protocol):
    """Durable single-record store for the last-known identifiers."""

    def get(self) -> LastKnownIdentifiers | None:
        """Return the saved record, if any."""

    def save(self, record: LastKnownIdentifiers) -> None:
        """Replace the saved record."""

    def clear(self) -> None:
        """Delete the saved record."""


class SyncIntent(StrEnum):
    RESUME = "resume"
    NEW = "new"


class SyncStep(StrEnum):
    RESOLVE_INTENT = "resolve_intent"
    RESTORE = "restore"
    ADOPT = "adopt"
    CONSISTENT = "consistent"
    ABORTED = "aborted"


_TERMINAL_STEPS = frozenset({SyncStep.CONSISTENT, SyncStep.ABORTED})


@dataclass(frozen=True)
class NavigationEvent:
    """A URL the router just landed on."""

    path: str
    params: UrlParams
    extra: tuple[tuple[str, str], ...] = ()

    @classmethod
    def from_url(cls, url: str) -> "NavigationEvent":
        path, params, extra = parse_url(url)
        return cls(path=path, params=params, extra=tuple(extra))

    @property
    def key(self) -> str:
        return build_url(self.path, self.params, list(self.extra))


@dataclass(frozen=True)
class SyncResult:
    """Outcome of one reconcile pass."""

    step: SyncStep
    intent: SyncIntent
    event: NavigationEvent
    params: UrlParams
    active_session_id: str | None
    rewrite_url: str | None = None
    adopted: bool = False
    repeated: bool = False

    @property
    def aborted(self) -> bool:
        return self.step == SyncStep.ABORTED


@dataclass
class _Pass:
    event: NavigationEvent
    params: UrlParams
    intent: SyncIntent = SyncIntent.RESUME
    rewrite_url: str | None = None
    adopted: bool = False


@dataclass
class UrlSynchronizer:
    """Per-mount synchronizer between the URL and persisted identifiers."""

    last_known_store: LastKnownStore
    active_session_id: str | None = None
    last_known_max_age: timedelta = DEFAULT_LAST_KNOWN_MAX_AGE
    clock: Callable[[], datetime] = field(default=lambda: datetime.now(tz=UTC))
    _restore_attempted: set[str] = field(default_factory=set, init=False, repr=False)
    _redirect_pending: bool = field(default=False, init=False, repr=False)
    _last_result: SyncResult | None = field(default=None, init=False, repr=False)

    def reconcile(self, event: NavigationEvent) -> SyncResult:
        """Run one pass for a navigation event and return the resolved state."""
        previous = self._last_result
        if previous is not None and previous.event.key == event.key:
            # Same navigation seen again: no further automatic rewrites.
            return replace(previous, rewrite_url=None, repeated=True)

        if not self._redirect_pending:
            # A navigation that is not the landing of our own redirect starts
            # a new chain; only restores within one chain count as a loop.
            self._restore_attempted.clear()
        self._redirect_pending = False

        current = _Pass(event=event, params=event.params)
        step = SyncStep.RESOLVE_INTENT
        while step not in _TERMINAL_STEPS:
            try:
                step = self._transition(step, current)
            except RedirectLoopGuardTripped as exc:
                _logger.warning("Redirect loop guard tripped: %s", exc)
                current.params = event.params
                current.rewrite_url = None
                step = SyncStep.ABORTED

        result = SyncResult(
            step=step,
            intent=current.intent,
            event=event,
            params=current.params,
            active_session_id=self.active_session_id,
            rewrite_url=current.rewrite_url,
            adopted=current.adopted,
        )
        self._last_result = result
        if result.rewrite_url is not None:
            self._redirect_pending = True
        return result

    def _transition(self, step: SyncStep, current: _Pass) -> SyncStep:
        match step:
            case SyncStep.RESOLVE_INTENT:
                params = current.params
                if params.journey_id and not params.session_id:
                    current.intent = SyncIntent.NEW
                    if self.active_session_id is not None:
                        _logger.info(
                            "New session requested for journey %s; dropping %s",
                            params.journey_id,
                            self.active_session_id,
                        )
                    self.active_session_id = None
                    return SyncStep.CONSISTENT
                return SyncStep.RESTORE
            case SyncStep.RESTORE:
                self._restore(current)
                return SyncStep.ADOPT
            case SyncStep.ADOPT:
                self._adopt(current)
                return SyncStep.CONSISTENT
            case _:
                return step

    def _restore(self, current: _Pass) -> None:
        params = current.params
        if params.is_complete:
            return
        last_known = self.read_last_known()
        if last_known is None:
            return
        journey_id = params.journey_id
        session_id = params.session_id
        if session_id is None:
            session_id = last_known.last_session_id
        if journey_id is None and session_id == last_known.last_session_id:
            journey_id = last_known.last_journey_id
        restored = UrlParams(journey_id=journey_id, session_id=session_id)
        if restored == params:
            return
        key = current.event.key
        if key in self._restore_attempted or current.rewrite_url is not None:
            raise RedirectLoopGuardTripped(key)
        self._restore_attempted.add(key)
        current.params = restored
        current.rewrite_url = build_url(
            current.event.path, restored, list(current.event.extra)
        )
        _logger.info("Restored URL parameters: %s", current.rewrite_url)

    def _adopt(self, current: _Pass) -> None:
        session_id = current.params.session_id
        if session_id is None or session_id == self.active_session_id:
            return
        _logger.info(
            "Adopting session %s (was %s)", session_id, self.active_session_id
        )
        self.active_session_id = session_id
        current.adopted = True
        self.last_known_store.save(
            LastKnownIdentifiers(
                last_path=current.event.path,
                last_journey_id=current.params.journey_id,
                last_session_id=session_id,
                saved_at=self.clock(),
            )
        )

    def note_redirect(self) -> None:
        """Record that the next navigation is the landing of a redirect."""
        self._redirect_pending = True

    def read_last_known(self) -> LastKnownIdentifiers | None:
        """Return the saved identifiers unless they are too old."""
        record = self.last_known_store.get()
        if record is None:
            return None
        if self.clock() - record.saved_at > self.last_known_max_age:
            _logger.info("Last-known identifiers from %s expired", record.saved_at)
            self.last_known_store.clear()
            return None
        return record

    def adopt_session(self, journey_id: str, session_id: str, path: str) -> str:
        """Make a freshly created session active and return its URL."""
        event = NavigationEvent(
            path=path, params=UrlParams(journey_id=journey_id, session_id=session_id)
        )
        current = _Pass(event=event, params=event.params)
        self._adopt(current)
        return event.key

    def forget_session(self, session_id: str) -> None:
        """Drop a session id that no longer has a backing record."""
        if self.active_session_id == session_id:
            self.active_session_id = None
        record = self.last_known_store.get()
        if record is not None and record.last_session_id == session_id:
            self.last_known_store.save(replace(record, last_session_id=None))
        self._last_result = None
        _logger.info("Forgot session %s", session_id)

    def clear(self) -> None:
        """Reset to a blank state, used on logout."""
        self.active_session_id = None
        self.last_known_store.clear()
        self._restore_attempted.clear()
        self._redirect_pending = False
        self._last_result = None

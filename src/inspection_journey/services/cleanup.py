"""Logout cleanup: return the device to a blank journey state."""

import logging
from collections.abc import Iterable
from dataclasses import dataclass

from inspection_journey.services.orchestrator import (
    DataLoadingOrchestrator,
    SessionStore,
)
from inspection_journey.services.synchronizer import LastKnownStore, UrlSynchronizer

_logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CleanupReport:
    """What a logout actually removed."""

    cache_entries: int
    sessions_deleted: int
    synchronizers_reset: int
    failures: tuple[str, ...] = ()


@dataclass
class LogoutCleanupService:
    """Clears cached data and identifiers on explicit logout.

    Each step runs even if an earlier one failed, so a broken store never
    blocks the user from logging out.
    """

    orchestrator: DataLoadingOrchestrator
    last_known_store: LastKnownStore
    session_store: SessionStore

    def logout(
        self,
        synchronizers: Iterable[UrlSynchronizer] = (),
        *,
        delete_sessions: bool = False,
    ) -> CleanupReport:
        failures: list[str] = []
        removed = self.orchestrator.invalidate_all()

        reset = 0
        for synchronizer in synchronizers:
            try:
                synchronizer.clear()
            except OSError as exc:
                _logger.warning("Could not reset a synchronizer: %s", exc)
                failures.append("synchronizer")
                continue
            reset += 1

        try:
            self.last_known_store.clear()
        except OSError as exc:
            _logger.warning("Could not clear last-known identifiers: %s", exc)
            failures.append("last_known")

        deleted = 0
        if delete_sessions:
            try:
                session_ids = self.session_store.list_ids()
            except OSError as exc:
                _logger.warning("Could not list stored sessions: %s", exc)
                failures.append("sessions")
                session_ids = []
            for session_id in session_ids:
                try:
                    self.session_store.delete(session_id)
                    deleted += 1
                except OSError as exc:
                    _logger.warning("Could not delete session %s: %s", session_id, exc)
                    failures.append(f"session:{session_id}")

        _logger.info(
            "Logout cleanup: %s cache entries, %s sessions, %s synchronizers",
            removed,
            deleted,
            reset,
        )
        return CleanupReport(
            cache_entries=removed,
            sessions_deleted=deleted,
            synchronizers_reset=reset,
            failures=tuple(failures),
        )

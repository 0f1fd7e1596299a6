"""Route guard: the composition point run on every route render."""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Protocol

from inspection_journey.domain.routes import RouteRequest, UrlParams, build_url
from inspection_journey.domain.sessions import Session
from inspection_journey.services.cache import ResourceKind
from inspection_journey.services.navigation import get_redirect_target
from inspection_journey.services.orchestrator import (
    DataLoadingOrchestrator,
    LoadState,
    LoadStatus,
    ResourceConsumer,
)
from inspection_journey.services.synchronizer import (
    NavigationEvent,
    SyncResult,
    UrlSynchronizer,
)

_logger = logging.getLogger(__name__)


class Navigator(Protocol):
    """Router collaborator."""

    def replace(self, url: str) -> None:
        """Navigate to ``url`` without adding a history entry."""


@dataclass
class RecordingNavigator(Navigator):
    """Navigator that only records the requested URLs."""

    calls: list[str] = field(default_factory=list)

    def replace(self, url: str) -> None:
        self.calls.append(url)


@dataclass(frozen=True)
class GuardOutcome:
    """Result of evaluating one navigation."""

    url: str
    path: str
    allowed: bool
    params: UrlParams
    sync: SyncResult
    session: Session | None = None
    load: LoadState | None = None
    redirect_target: str | None = None
    navigated_to: str | None = None

    @property
    def request(self) -> RouteRequest:
        """The navigation as it arrived, paired with the resolved session."""
        return RouteRequest(
            path=self.path,
            query_journey_id=self.sync.event.params.journey_id,
            query_session_id=self.sync.event.params.session_id,
            session=self.session,
        )

    @property
    def degraded(self) -> bool:
        return self.load is not None and self.load.status == LoadStatus.DEGRADED

    @property
    def retryable_error(self) -> bool:
        """True when the session could not be loaded and nothing was cached."""
        return self.load is not None and self.load.status == LoadStatus.ERROR

    @property
    def banner(self) -> str | None:
        if self.retryable_error:
            return "Connection problem while loading your inspection. Retry?"
        if self.degraded:
            return "Offline: showing the last saved state of your inspection."
        return None


@dataclass
class RouteGuard:
    """Evaluates a URL against the session and issues at most one replace."""

    synchronizer: UrlSynchronizer
    orchestrator: DataLoadingOrchestrator
    navigator: Navigator
    mounted: bool = True
    _consumer: ResourceConsumer = field(init=False, repr=False)
    _evaluation: int = field(default=0, init=False, repr=False)
    _navigated_for: str | None = field(default=None, init=False, repr=False)
    _last_key: str | None = field(default=None, init=False, repr=False)

    def __post_init__(self) -> None:
        self._consumer = ResourceConsumer(self.orchestrator)

    async def evaluate(self, url: str) -> GuardOutcome | None:
        """Evaluate a navigation; return None when a newer one superseded it."""
        event = NavigationEvent.from_url(url)
        if event.key != self._last_key:
            # Only a repeat of the same URL is held to a single replace.
            self._navigated_for = None
        self._last_key = event.key
        sync = self.synchronizer.reconcile(event)
        self._evaluation += 1
        ticket = self._evaluation

        session: Session | None = None
        load: LoadState | None = None
        params = sync.params
        session_id = sync.active_session_id if not sync.aborted else params.session_id
        if session_id is not None:
            load = await self._consumer.request(ResourceKind.SESSION, session_id)
            if load is None or ticket != self._evaluation or not self.mounted:
                _logger.debug("Discarding superseded evaluation of %s", url)
                return None
            if load.status == LoadStatus.NOT_FOUND:
                # Expected expiry path: silently reset to the entry route.
                self.synchronizer.forget_session(session_id)
                params = UrlParams(journey_id=params.journey_id)
            elif load.status != LoadStatus.ERROR and isinstance(load.value, Session):
                session = load.value
                params = UrlParams(
                    journey_id=session.journey_id, session_id=session.session_id
                )

        if load is not None and load.status == LoadStatus.ERROR:
            # Keep the user where they are until the retry succeeds.
            redirect_target = None
            allowed = False
        else:
            redirect_target = get_redirect_target(event.path, session)
            allowed = redirect_target is None

        navigated_to = self._navigate_once(event, sync, redirect_target, params)
        return GuardOutcome(
            url=url,
            path=event.path,
            allowed=allowed,
            params=params,
            sync=sync,
            session=session,
            load=load,
            redirect_target=redirect_target,
            navigated_to=navigated_to,
        )

    def _navigate_once(
        self,
        event: NavigationEvent,
        sync: SyncResult,
        redirect_target: str | None,
        params: UrlParams,
    ) -> str | None:
        if sync.aborted and redirect_target is None:
            _logger.warning("Leaving %s as-is after an aborted rewrite", event.key)
            return None
        if self._navigated_for == event.key:
            return None
        target = build_url(redirect_target or event.path, params, list(event.extra))
        if target == event.key:
            return None
        if redirect_target is not None:
            _logger.info("Redirecting %s to %s", event.path, target)
        self._navigated_for = event.key
        self.navigator.replace(target)
        self.synchronizer.note_redirect()
        return target

    def unmount(self) -> None:
        self.mounted = False
        self._consumer.unmount()


@dataclass
class GuardRegistry:
    """One synchronizer and guard per mounted tab."""

    orchestrator: DataLoadingOrchestrator
    synchronizer_factory: Callable[[], UrlSynchronizer]
    _guards: dict[str, RouteGuard] = field(default_factory=dict, init=False)

    def mount(self, tab_id: str) -> RouteGuard:
        """Return the tab's guard, creating it on first use."""
        guard = self._guards.get(tab_id)
        if guard is None:
            guard = RouteGuard(
                synchronizer=self.synchronizer_factory(),
                orchestrator=self.orchestrator,
                navigator=RecordingNavigator(),
            )
            self._guards[tab_id] = guard
            _logger.info("Mounted tab %s", tab_id)
        return guard

    def unmount(self, tab_id: str) -> None:
        guard = self._guards.pop(tab_id, None)
        if guard is not None:
            guard.unmount()

    def synchronizers(self) -> list[UrlSynchronizer]:
        return [guard.synchronizer for guard in self._guards.values()]

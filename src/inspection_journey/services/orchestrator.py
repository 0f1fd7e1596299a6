"""Data loading orchestrator: single-flight loads with a freshness policy."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from enum import StrEnum
from typing import Protocol

from inspection_journey.adapters.journey_api_client import JourneyApiClient
from inspection_journey.domain.journeys import JourneyData
from inspection_journey.domain.sessions import FlowKind, Session
from inspection_journey.errors import NotFoundError, TransientError
from inspection_journey.services.cache import (
    DEFAULT_FRESHNESS_WINDOW,
    CachedResource,
    ResourceCache,
    ResourceKey,
    ResourceKind,
    ResourceState,
)
from inspection_journey.services.payloads import parse_journey, parse_session

_logger = logging.getLogger(__name__)


class SessionStore(Protocol):
    """Durable local key-value store of sessions."""

    def get(self, session_id: str) -> Session | None:
        """Return a session by id, if present."""

    def put(self, session: Session) -> None:
        """Write the full session record."""

    def delete(self, session_id: str) -> None:
        """Delete a session record."""

    def list_expired(self, ttl: timedelta) -> list[str]:
        """Return ids of sessions untouched for longer than ``ttl``."""

    def list_ids(self) -> list[str]:
        """Return every stored session id."""


@dataclass(frozen=True)
class LoadOptions:
    """Per-call load options."""

    flow_kind_hint: FlowKind | None = None
    force_refresh: bool = False


class LoadSource(StrEnum):
    CACHE = "cache"
    NETWORK = "network"
    STALE_FALLBACK = "stale_fallback"


@dataclass(frozen=True)
class LoadResult:
    """Settled value of a load, shared by every caller of one flight."""

    key: ResourceKey
    value: object
    source: LoadSource
    degraded: bool = False
    error: TransientError | None = None


@dataclass
class DataLoadingOrchestrator:
    """Owns every load of remote-backed entities for one application root."""

    session_store: SessionStore
    api_client: JourneyApiClient
    cache: ResourceCache
    freshness_window: timedelta = DEFAULT_FRESHNESS_WINDOW
    retry_attempts: int = 1
    retry_delay_seconds: float = 0.3
    clock: Callable[[], datetime] = field(default=lambda: datetime.now(tz=UTC))
    _in_flight: dict[ResourceKey, "asyncio.Task[LoadResult]"] = field(
        default_factory=dict, init=False, repr=False
    )
    _generation: int = field(default=0, init=False, repr=False)

    async def load(
        self,
        kind: ResourceKind | str,
        resource_id: str,
        options: LoadOptions | None = None,
    ) -> LoadResult:
        """Resolve ``(kind, resource_id)`` from cache or network.

        Concurrent calls for the same key share one fetch and receive the
        same ``LoadResult`` object, or the same exception. Cancelling one
        caller never cancels the shared fetch.

        Raises:
            NotFoundError: the id has no backing record.
            TransientError: the fetch failed and nothing is cached.
        """
        options = options or LoadOptions()
        key = _resource_key(ResourceKind(kind), resource_id, options)
        task = self._in_flight.get(key)
        if task is None:
            if not options.force_refresh:
                cached = self._cached_entry(key)
                if cached is not None and self._is_fresh(cached):
                    return LoadResult(
                        key=key, value=cached.value, source=LoadSource.CACHE
                    )
            task = asyncio.get_running_loop().create_task(
                self._resolve(key, options, self._generation),
                name=f"load:{key}",
            )
            self._in_flight[key] = task
            task.add_done_callback(lambda done, key=key: self._release(key, done))
        else:
            _logger.debug("Joining in-flight load for %s", key)
        return await asyncio.shield(task)

    def state(
        self,
        kind: ResourceKind | str,
        resource_id: str,
        options: LoadOptions | None = None,
    ) -> ResourceState:
        """Return the cache state of a key."""
        key = _resource_key(ResourceKind(kind), resource_id, options or LoadOptions())
        if key in self._in_flight:
            return ResourceState.LOADING
        entry = self.cache.get(key)
        if entry is None:
            return ResourceState.ABSENT
        return entry.state_at(self.clock(), self.freshness_window)

    def is_loading(self, kind: ResourceKind | str, resource_id: str) -> bool:
        resource_kind = ResourceKind(kind)
        return any(
            key.kind == resource_kind and key.resource_id == resource_id
            for key in self._in_flight
        )

    def invalidate(self, kind: ResourceKind | str, resource_id: str) -> None:
        """Force the next load of this id to refetch; keep the value as fallback."""
        resource_kind = ResourceKind(kind)
        for key in self._matching_keys(resource_kind, resource_id):
            self.cache.mark_stale(key)
        if resource_kind == ResourceKind.SESSION:
            key = ResourceKey(resource_kind, resource_id)
            if self.cache.get(key) is None:
                stored = self.session_store.get(resource_id)
                if stored is not None:
                    self.cache.put(
                        CachedResource(
                            key=key,
                            value=stored,
                            fetched_at=stored.last_touched_at,
                            invalidated=True,
                        )
                    )
        _logger.info("Invalidated %s %s", resource_kind.value, resource_id)

    def replace_session(self, session: Session) -> None:
        """Write a full session record through to the store and the cache."""
        self.session_store.put(session)
        self.cache.put(
            CachedResource(
                key=ResourceKey(ResourceKind.SESSION, session.session_id),
                value=session,
                fetched_at=self.clock(),
            )
        )

    def discard(self, kind: ResourceKind | str, resource_id: str) -> None:
        """Drop cached entries of one id without keeping a fallback."""
        for key in self._matching_keys(ResourceKind(kind), resource_id):
            self.cache.remove(key)

    def invalidate_all(self, kind: ResourceKind | str | None = None) -> int:
        """Clear cached entries of a kind, or all; pending loads will not cache."""
        resource_kind = ResourceKind(kind) if kind is not None else None
        self._generation += 1
        for key in list(self._in_flight):
            if resource_kind is None or key.kind == resource_kind:
                self._in_flight.pop(key, None)
        removed = self.cache.clear(resource_kind)
        _logger.info(
            "Cleared %s cached entries (kind=%s)",
            removed,
            resource_kind.value if resource_kind else "all",
        )
        return removed

    def preload(
        self,
        kind: ResourceKind | str,
        resource_id: str,
        options: LoadOptions | None = None,
    ) -> "asyncio.Task[LoadResult | None]":
        """Start a load without waiting for it; failures are only logged."""

        async def _run() -> LoadResult | None:
            try:
                return await self.load(kind, resource_id, options)
            except (NotFoundError, TransientError) as exc:
                _logger.warning("Preload of %s %s failed: %s", kind, resource_id, exc)
                return None

        return asyncio.get_running_loop().create_task(_run())

    async def load_session_and_journey(
        self,
        session_id: str,
        journey_id: str,
        flow_kind_hint: FlowKind | None = None,
    ) -> tuple[LoadResult, LoadResult]:
        """Load a session and its journey concurrently."""
        session_result, journey_result = await asyncio.gather(
            self.load(ResourceKind.SESSION, session_id),
            self.load(
                ResourceKind.JOURNEY,
                journey_id,
                LoadOptions(flow_kind_hint=flow_kind_hint),
            ),
        )
        return session_result, journey_result

    def _matching_keys(
        self, kind: ResourceKind, resource_id: str
    ) -> list[ResourceKey]:
        keys = {ResourceKey(kind, resource_id)}
        if kind == ResourceKind.JOURNEY:
            keys.update(
                ResourceKey(kind, resource_id, hint.value) for hint in FlowKind
            )
        return list(keys)

    def _is_fresh(self, entry: CachedResource) -> bool:
        state = entry.state_at(self.clock(), self.freshness_window)
        return state == ResourceState.FRESH

    def _cached_entry(self, key: ResourceKey) -> CachedResource | None:
        entry = self.cache.get(key)
        if entry is not None or key.kind != ResourceKind.SESSION:
            return entry
        stored = self.session_store.get(key.resource_id)
        if stored is None:
            return None
        # The persisted record is the cached copy across reloads.
        entry = CachedResource(key=key, value=stored, fetched_at=stored.last_touched_at)
        self.cache.put(entry)
        return entry

    def _release(self, key: ResourceKey, task: "asyncio.Task[LoadResult]") -> None:
        if self._in_flight.get(key) is task:
            del self._in_flight[key]
        if not task.cancelled() and task.exception() is not None:
            # Retrieved here so unobserved failures are not reported by asyncio.
            _logger.debug("Load %s settled with %r", key, task.exception())

    async def _resolve(
        self, key: ResourceKey, options: LoadOptions, generation: int
    ) -> LoadResult:
        cached = self._cached_entry(key)
        try:
            value = await self._fetch_with_retry(key, options)
        except NotFoundError:
            if generation == self._generation:
                self.cache.remove(key)
                if key.kind == ResourceKind.SESSION:
                    self.session_store.delete(key.resource_id)
            _logger.info("No backing record for %s", key)
            raise
        except TransientError as exc:
            if cached is None:
                _logger.warning("Load %s failed with nothing cached: %s", key, exc)
                raise
            _logger.warning("Serving stale %s after failed refresh: %s", key, exc)
            return LoadResult(
                key=key,
                value=cached.value,
                source=LoadSource.STALE_FALLBACK,
                degraded=True,
                error=exc,
            )
        if generation == self._generation:
            self.cache.put(
                CachedResource(key=key, value=value, fetched_at=self.clock())
            )
            if isinstance(value, Session):
                self.session_store.put(value)
        else:
            _logger.info("Discarding %s fetched before the cache was cleared", key)
        return LoadResult(key=key, value=value, source=LoadSource.NETWORK)

    async def _fetch_with_retry(
        self, key: ResourceKey, options: LoadOptions
    ) -> Session | JourneyData:
        attempt = 0
        while True:
            try:
                return await self._fetch(key, options)
            except NotFoundError:
                raise
            except TransientError as exc:
                attempt += 1
                _logger.warning(
                    "Fetch %s failed (attempt %s/%s): %s",
                    key,
                    attempt,
                    self.retry_attempts + 1,
                    exc,
                )
                if attempt > self.retry_attempts:
                    raise
                await asyncio.sleep(self.retry_delay_seconds)

    async def _fetch(
        self, key: ResourceKey, options: LoadOptions
    ) -> Session | JourneyData:
        if key.kind == ResourceKind.SESSION:
            payload = await self.api_client.fetch_session(key.resource_id)
            return parse_session(payload, expected_id=key.resource_id)
        hint = options.flow_kind_hint
        payload = await self.api_client.fetch_journey(
            key.resource_id, hint.value if hint else None
        )
        return parse_journey(payload, expected_id=key.resource_id, flow_kind_hint=hint)


def _resource_key(
    kind: ResourceKind, resource_id: str, options: LoadOptions
) -> ResourceKey:
    variant = None
    if kind == ResourceKind.JOURNEY and options.flow_kind_hint is not None:
        variant = options.flow_kind_hint.value
    return ResourceKey(kind=kind, resource_id=resource_id, variant=variant)


class LoadStatus(StrEnum):
    READY = "ready"
    DEGRADED = "degraded"
    NOT_FOUND = "not-found"
    ERROR = "error"


@dataclass(frozen=True)
class LoadState:
    """Typed outcome handed to a consumer; data errors never escape as raises."""

    status: LoadStatus
    key: ResourceKey
    value: object | None = None
    error: Exception | None = None

    @property
    def retryable(self) -> bool:
        return self.status in {LoadStatus.ERROR, LoadStatus.DEGRADED}


@dataclass
class ResourceConsumer:
    """One consumer of orchestrator loads, such as a mounted screen.

    Only the latest request of a mounted consumer is delivered. A result
    that arrives after the key changed or after ``unmount`` is dropped.
    """

    orchestrator: DataLoadingOrchestrator
    on_update: Callable[[LoadState], Awaitable[None] | None] | None = None
    state: LoadState | None = None
    mounted: bool = True
    _ticket: int = field(default=0, init=False, repr=False)
    _current_key: ResourceKey | None = field(default=None, init=False, repr=False)

    async def request(
        self,
        kind: ResourceKind | str,
        resource_id: str,
        options: LoadOptions | None = None,
    ) -> LoadState | None:
        """Load a key and deliver it, or return None when superseded."""
        options = options or LoadOptions()
        key = _resource_key(ResourceKind(kind), resource_id, options)
        self._ticket += 1
        ticket = self._ticket
        self._current_key = key
        try:
            result = await self.orchestrator.load(kind, resource_id, options)
        except NotFoundError as exc:
            outcome = LoadState(status=LoadStatus.NOT_FOUND, key=key, error=exc)
        except TransientError as exc:
            outcome = LoadState(status=LoadStatus.ERROR, key=key, error=exc)
        else:
            status = LoadStatus.DEGRADED if result.degraded else LoadStatus.READY
            outcome = LoadState(
                status=status, key=key, value=result.value, error=result.error
            )
        if not self.mounted or ticket != self._ticket:
            _logger.debug("Dropping superseded result for %s", key)
            return None
        self.state = outcome
        if self.on_update is not None:
            maybe_awaitable = self.on_update(outcome)
            if maybe_awaitable is not None:
                await maybe_awaitable
        return outcome

    def unmount(self) -> None:
        self.mounted = False
        self._current_key = None

    @property
    def current_key(self) -> ResourceKey | None:
        return self._current_key

"""Resource cache used by the data loading orchestrator."""

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import StrEnum
from typing import Protocol

DEFAULT_FRESHNESS_WINDOW = timedelta(hours=24)


class ResourceKind(StrEnum):
    """Kinds of remote-backed entities."""

    SESSION = "session"
    JOURNEY = "journey"


class ResourceState(StrEnum):
    """Lifecycle of a cached resource."""

    ABSENT = "absent"
    LOADING = "loading"
    FRESH = "fresh"
    STALE = "stale"


@dataclass(frozen=True)
class ResourceKey:
    """Composite cache key: kind, identifier and an optional variant."""

    kind: ResourceKind
    resource_id: str
    variant: str | None = None

    def __str__(self) -> str:
        suffix = f":{self.variant}" if self.variant else ""
        return f"{self.kind.value}:{self.resource_id}{suffix}"


@dataclass(frozen=True)
class CachedResource:
    """A resolved value and when it was fetched."""

    key: ResourceKey
    value: object
    fetched_at: datetime
    invalidated: bool = False

    def state_at(self, now: datetime, freshness_window: timedelta) -> ResourceState:
        """Return FRESH while younger than the window and not invalidated."""
        if self.invalidated or now - self.fetched_at >= freshness_window:
            return ResourceState.STALE
        return ResourceState.FRESH


class ResourceCache(Protocol):
    """Cache interface for orchestrator entries."""

    def get(self, key: ResourceKey) -> CachedResource | None:
        """Return the entry for a key, fresh or stale."""

    def put(self, entry: CachedResource) -> None:
        """Store or replace an entry."""

    def mark_stale(self, key: ResourceKey) -> None:
        """Force the entry to be treated as stale."""

    def remove(self, key: ResourceKey) -> None:
        """Drop an entry."""

    def clear(self, kind: ResourceKind | None = None) -> int:
        """Drop every entry of a kind (or all) and return how many went."""


@dataclass
class InMemoryResourceCache(ResourceCache):
    """Process-local cache. Entries keep stale values for fallback."""

    _entries: dict[ResourceKey, CachedResource]

    def __init__(self) -> None:
        self._entries = {}

    def get(self, key: ResourceKey) -> CachedResource | None:
        return self._entries.get(key)

    def put(self, entry: CachedResource) -> None:
        self._entries[entry.key] = entry

    def mark_stale(self, key: ResourceKey) -> None:
        entry = self._entries.get(key)
        if entry is not None:
            self._entries[key] = CachedResource(
                key=entry.key,
                value=entry.value,
                fetched_at=entry.fetched_at,
                invalidated=True,
            )

    def remove(self, key: ResourceKey) -> None:
        self._entries.pop(key, None)

    def clear(self, kind: ResourceKind | None = None) -> int:
        doomed = [key for key in self._entries if kind is None or key.kind == kind]
        for key in doomed:
            del self._entries[key]
        return len(doomed)

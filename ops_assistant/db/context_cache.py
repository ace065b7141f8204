"""Thread-safe TTL cache for context entities.

When several per-source summaries run in parallel they resolve overlapping
client names. Each pool keeps recently referenced entities in memory so a
processing burst does not hit the durable store once per mention.

Each pool guards its map with one lock, held only while the map is mutated
or read; store calls never happen under the lock.
"""

import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from itertools import count
from time import monotonic
from typing import Any, Callable, Generic, Iterable, TypeVar

from ops_assistant.core.logging import get_logger
from ops_assistant.core.schemas_context import Client, Entity, Project

logger = get_logger(__name__)

DEFAULT_TTL_SECONDS = 5 * 60
DEFAULT_MAX_ENTRIES = 100

E = TypeVar("E", bound=Entity)

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


@dataclass
class CacheEntry(Generic[E]):
    """A resident entity plus the clock reading at insertion."""

    value: E
    inserted_at: float
    sequence: int
    # Last reference seen by this process; orders eviction, never returned
    last_referenced: datetime | None = None


def _recency_key(entry: CacheEntry) -> tuple[datetime, int]:
    recency = entry.last_referenced or entry.value.recency
    if recency is None:
        recency = _EPOCH
    elif recency.tzinfo is None:
        recency = recency.replace(tzinfo=timezone.utc)
    return recency, entry.sequence


class EntityCache(Generic[E]):
    """One bounded pool of entities keyed by id."""

    def __init__(
        self,
        kind: str,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        clock: Callable[[], float] = monotonic,
    ):
        self.kind = kind
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: dict[str, CacheEntry[E]] = {}
        self._sequence = count()
        self._last_refresh = clock()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _is_fresh(self, entry: CacheEntry[E], now: float) -> bool:
        return now - entry.inserted_at < self.ttl_seconds

    def get(self, key: str) -> E | None:
        """Return the entity for ``key`` if resident and within TTL."""
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or not self._is_fresh(entry, now):
                return None
            return entry.value

    def get_by_name(self, names: Iterable[str]) -> list[E]:
        """Return fresh resident entities whose name is in ``names``."""
        wanted = set(names)
        if not wanted:
            return []
        now = self._clock()
        with self._lock:
            return [
                entry.value
                for entry in self._entries.values()
                if entry.value.name in wanted and self._is_fresh(entry, now)
            ]

    @property
    def is_stale(self) -> bool:
        """True when the last bulk refresh is older than the TTL."""
        with self._lock:
            return self._clock() - self._last_refresh >= self.ttl_seconds

    @property
    def size(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None

    def stats(self) -> dict[str, Any]:
        now = self._clock()
        with self._lock:
            fresh = sum(1 for e in self._entries.values() if self._is_fresh(e, now))
            return {
                "kind": self.kind,
                "resident": len(self._entries),
                "fresh": fresh,
                "max_entries": self.max_entries,
                "ttl_seconds": self.ttl_seconds,
                "stale": now - self._last_refresh >= self.ttl_seconds,
            }

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def put(self, entities: Iterable[E]) -> None:
        """Upsert entities, refreshing their TTL and the pool refresh time."""
        items = [e for e in entities if e is not None and e.id]
        if not items:
            return
        now = self._clock()
        with self._lock:
            for entity in items:
                previous = self._entries.get(entity.id)
                self._entries[entity.id] = CacheEntry(
                    value=entity,
                    inserted_at=now,
                    sequence=next(self._sequence),
                    last_referenced=previous.last_referenced if previous else None,
                )
            self._last_refresh = now
            removed = self._evict_over_capacity_locked()
        if removed:
            logger.debug(f"Evicted {removed} {self.kind} entries over capacity")

    def update(self, key: str, fields: dict[str, Any]) -> E | None:
        """Merge ``fields`` into a resident entity without refreshing its TTL."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            entry.value = entry.value.model_copy(update=fields)
            return entry.value

    def touch_referenced(self, ids: Iterable[str], at: datetime | None = None) -> int:
        """
        Record a reference for eviction ordering.

        The cached entity and its TTL are left untouched, so repeated reads
        return the same contents.
        """
        at = at or datetime.now(timezone.utc)
        if at.tzinfo is None:
            at = at.replace(tzinfo=timezone.utc)
        touched = 0
        with self._lock:
            for key in ids:
                entry = self._entries.get(key)
                if entry is None:
                    continue
                entry.last_referenced = at
                touched += 1
        return touched

    def evict_expired_or_over_capacity(self) -> int:
        """Drop expired entries, then the least recently referenced over capacity."""
        now = self._clock()
        with self._lock:
            expired = [k for k, e in self._entries.items() if not self._is_fresh(e, now)]
            for key in expired:
                del self._entries[key]
            removed = len(expired) + self._evict_over_capacity_locked()
        if removed:
            logger.debug(f"Pruned {removed} entries from {self.kind} cache")
        return removed

    def _evict_over_capacity_locked(self) -> int:
        overflow = len(self._entries) - self.max_entries
        if overflow <= 0:
            return 0
        oldest = sorted(self._entries.values(), key=_recency_key)[:overflow]
        for entry in oldest:
            del self._entries[entry.value.id]
        return overflow

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._last_refresh = self._clock()


class ContextCache:
    """Independent client and project pools."""

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        clock: Callable[[], float] = monotonic,
    ):
        self.clients: EntityCache[Client] = EntityCache("clients", ttl_seconds, max_entries, clock)
        self.projects: EntityCache[Project] = EntityCache(
            "projects", ttl_seconds, max_entries, clock
        )

    def pools(self) -> dict[str, EntityCache]:
        return {"clients": self.clients, "projects": self.projects}

    def clear(self, kind: str | None = None) -> list[str]:
        """Clear one pool (``clients``/``projects``) or all of them."""
        pools = self.pools()
        if kind is not None and kind not in pools:
            raise KeyError(kind)
        cleared = [kind] if kind else list(pools)
        for name in cleared:
            pools[name].clear()
            logger.debug(f"Cleared {name} cache")
        return cleared

    def prune(self) -> dict[str, int]:
        """Evict expired and over-capacity entries from every pool."""
        return {name: pool.evict_expired_or_over_capacity() for name, pool in self.pools().items()}

    def stats(self) -> dict[str, dict[str, Any]]:
        return {name: pool.stats() for name, pool in self.pools().items()}

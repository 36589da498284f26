"""
PersistableCache - TTL cache that survives between enrichment runs.

Lifecycle:
1. load()     - read the snapshot once when the run starts
2. get_or_set - return live values, compute and store missing ones
3. persist()  - write live entries back once when the run ends
4. flush_all  - forget in-memory state between logical runs in one process

Generator failures propagate and are never stored, so a transient API error
cannot poison the cache for a whole TTL.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

from scm_enricher.cache.snapshot_store import SNAPSHOT_VERSION, SnapshotStore

logger = logging.getLogger(__name__)

DAY_IN_SECONDS = 24 * 60 * 60


@dataclass
class CacheEntry:
    value: Any
    expires_at: float


class PersistableCache:
    """
    Key -> value cache with per-entry expiry and snapshot persistence.

    Keys are built by callers; the cache does not interpret them. Values must
    be JSON-serializable to survive persist()/load().

    Concurrent misses on the same key share one generator call. This is
    best-effort coalescing within this instance, not a cross-process lock.
    """

    def __init__(
        self,
        name: str,
        std_ttl: float,
        store: SnapshotStore,
        clock: Callable[[], float] = time.time,
    ):
        """
        Args:
            name: Snapshot name in the store, e.g. "github-api-for-images"
            std_ttl: Default time-to-live in seconds
            store: Where snapshots are read from and written to
            clock: Returns the current time in epoch seconds
        """
        self.name = name
        self.std_ttl = std_ttl
        self._store = store
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._in_flight: Dict[str, asyncio.Task] = {}
        self._loaded = False
        self._generation = 0

    # =========================================================================
    # Lookups
    # =========================================================================

    def _live_entry(self, key: str) -> Optional[CacheEntry]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.expires_at <= self._clock():
            # Lazy expiry
            del self._entries[key]
            return None
        return entry

    def has(self, key: str) -> bool:
        return self._live_entry(key) is not None

    def get(self, key: str, default: Any = None) -> Any:
        entry = self._live_entry(key)
        return entry.value if entry is not None else default

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        ttl = self.std_ttl if ttl is None else ttl
        self._entries[key] = CacheEntry(value=value, expires_at=self._clock() + ttl)

    async def get_or_set(
        self,
        key: str,
        generator: Callable[[], Awaitable[Any]],
        ttl: Optional[float] = None,
    ) -> Any:
        """
        Return the live value for key, or await generator() and store its result.

        Raises:
            Whatever generator raises; nothing is stored in that case.
        """
        entry = self._live_entry(key)
        if entry is not None:
            return entry.value

        task = self._in_flight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._generate(key, generator, ttl, self._generation))
            self._in_flight[key] = task
            task.add_done_callback(lambda t, k=key: self._forget_in_flight(k, t))

        return await task

    async def _generate(
        self,
        key: str,
        generator: Callable[[], Awaitable[Any]],
        ttl: Optional[float],
        generation: int,
    ) -> Any:
        value = await generator()
        # Values computed before a flush belong to the previous run
        if generation == self._generation:
            self.set(key, value, ttl)
        return value

    def _forget_in_flight(self, key: str, task: asyncio.Task) -> None:
        # flush_all may already have replaced the in-flight map
        if self._in_flight.get(key) is task:
            del self._in_flight[key]

    def size(self) -> int:
        """Number of live entries."""
        now = self._clock()
        return sum(1 for entry in self._entries.values() if entry.expires_at > now)

    # =========================================================================
    # Persistence
    # =========================================================================

    def load(self) -> int:
        """
        Read the persisted snapshot into memory, once per lifetime.

        Returns:
            Number of live entries after loading
        """
        if self._loaded:
            return self.size()
        self._loaded = True

        snapshot = self._store.read(self.name)
        if not snapshot:
            logger.debug(f"No persisted snapshot for cache {self.name}")
            return self.size()

        if snapshot.get("version") != SNAPSHOT_VERSION:
            logger.warning(
                f"Discarding cache snapshot {self.name} with unknown version {snapshot.get('version')}"
            )
            return self.size()

        now = self._clock()
        for key, raw in (snapshot.get("entries") or {}).items():
            try:
                expires_at = float(raw["expires_at"])
                value = raw["value"]
            except (KeyError, TypeError, ValueError):
                logger.warning(f"Skipping malformed entry {key!r} in cache snapshot {self.name}")
                continue
            if expires_at > now and key not in self._entries:
                self._entries[key] = CacheEntry(value=value, expires_at=expires_at)

        return self.size()

    def persist(self) -> int:
        """
        Write every live entry to the store, replacing the previous snapshot.

        Returns:
            Number of entries written
        """
        now = self._clock()
        entries = {
            key: {"value": entry.value, "expires_at": entry.expires_at}
            for key, entry in self._entries.items()
            if entry.expires_at > now
        }
        self._store.write(self.name, {"version": SNAPSHOT_VERSION, "entries": entries})
        return len(entries)

    def flush_all(self) -> None:
        """Clear in-memory state; the persisted snapshot is left alone."""
        self._entries.clear()
        self._in_flight = {}
        self._loaded = False
        self._generation += 1

"""Resolution cache for depbump.

Holds one :class:`~depbump.models.version_set.VersionSet` per
``(package name, registry)`` key so that a package declared in several
manifest sections, or seen again in a later run, is fetched once.

Typical usage::

    from depbump.core.cache import CacheKey, ResolutionCache
    from depbump.utils.filesystem import JsonCacheStore

    cache = ResolutionCache(ttl=600, store=JsonCacheStore("~/.depbump-cache.json"))
    cache.load()

    key = CacheKey("express", "https://registry.npmjs.org")
    version_set = await cache.get_or_fetch(key, lambda: registry.fetch_version_set("express"))

    cache.flush()
"""

from __future__ import annotations

import time
import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Mapping, NamedTuple, Optional

from depbump.utils.logger import get_logger
from depbump.models.version_set import VersionSet
from depbump.utils.filesystem import JsonCacheStore
from depbump.constants import CACHE_FORMAT_VERSION, DEFAULT_CACHE_TTL

logger = get_logger("cache")

__all__ = ["CacheKey", "CacheEntry", "ResolutionCache"]

Fetcher = Callable[[], Awaitable[VersionSet]]


class CacheKey(NamedTuple):
    """Identity of one cached package."""

    name: str
    registry: str

    def to_string(self) -> str:
        return f"{self.registry}|{self.name}"

    @classmethod
    def from_string(cls, value: str) -> "CacheKey":
        registry, _, name = value.rpartition("|")
        return cls(name, registry)


@dataclass(frozen=True)
class CacheEntry:
    """A cached VersionSet and the wall-clock time it was fetched."""

    key: CacheKey
    version_set: VersionSet
    fetched_at: float

    def age(self, now: float) -> float:
        return now - self.fetched_at


def _retrieve_failure(task: "asyncio.Task[VersionSet]") -> None:
    # retrieves the failure even when every waiter has already timed out
    if not task.cancelled() and task.exception() is not None:
        logger.debug("Fetch failed: %s", task.exception())


class ResolutionCache:
    """TTL cache of published versions with single-flight fetching.

    Expired entries are treated as misses on read but are kept until they
    are overwritten. Concurrent misses on the same key share one in-flight
    fetch; a failed fetch is not cached, so the next caller retries.

    Args:
        ttl: Entry lifetime in seconds. ``0`` disables reuse entirely.
        clock: Returns the current time in seconds (``time.time``).
        store: Optional persistence backend used by :meth:`load` and
            :meth:`flush`.
    """

    def __init__(
        self,
        ttl: float = DEFAULT_CACHE_TTL,
        clock: Callable[[], float] = time.time,
        store: Optional[JsonCacheStore] = None,
    ) -> None:
        self.ttl = ttl
        self._clock = clock
        self._store = store
        self._entries: Dict[CacheKey, CacheEntry] = {}
        self._inflight: Dict[CacheKey, "asyncio.Task[VersionSet]"] = {}
        self._dirty = False

        self.hits = 0
        self.misses = 0

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def _is_fresh(self, entry: CacheEntry) -> bool:
        return entry.age(self._clock()) < self.ttl

    def get(self, key: CacheKey) -> Optional[VersionSet]:
        """Return the cached VersionSet for *key*, or ``None`` if absent or stale."""
        entry = self._entries.get(key)
        if entry is None or not self._is_fresh(entry):
            return None
        return entry.version_set

    def put(
        self,
        key: CacheKey,
        version_set: VersionSet,
        fetched_at: Optional[float] = None,
    ) -> None:
        """Store *version_set* under *key*, replacing any previous entry."""
        stamp = self._clock() if fetched_at is None else fetched_at
        self._entries[key] = CacheEntry(key, version_set, stamp)
        self._dirty = True

    async def get_or_fetch(self, key: CacheKey, fetch: Fetcher) -> VersionSet:
        """Return the cached VersionSet for *key*, fetching it on a miss.

        The first caller to miss starts *fetch* as a task; callers that
        miss while it is running await the same task instead of issuing
        their own request.

        Raises:
            Whatever *fetch* raises. Nothing is cached in that case.
        """
        cached = self.get(key)
        if cached is not None:
            self.hits += 1
            return cached

        task = self._inflight.get(key)
        if task is None:
            self.misses += 1
            task = asyncio.ensure_future(self._fetch_and_store(key, fetch))
            task.add_done_callback(_retrieve_failure)
            self._inflight[key] = task
        else:
            logger.debug("Joining in-flight fetch for %s", key.name)

        # shield: one waiter timing out must not cancel the shared fetch
        return await asyncio.shield(task)

    async def _fetch_and_store(self, key: CacheKey, fetch: Fetcher) -> VersionSet:
        try:
            version_set = await fetch()
            self.put(key, version_set)
            return version_set
        finally:
            self._inflight.pop(key, None)

    async def cancel_pending(self) -> int:
        """Cancel fetches that are still running and wait for them to end.

        A fetch keeps running after every caller waiting on it has timed
        out; this stops such leftovers before the HTTP client goes away.

        Returns:
            Number of fetches cancelled.
        """
        tasks = list(self._inflight.values())
        for task in tasks:
            task.cancel()
        if tasks:
            logger.debug("Cancelling %d unfinished fetch(es)", len(tasks))
            await asyncio.gather(*tasks, return_exceptions=True)
        return len(tasks)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, CacheKey) and self.get(key) is not None

    def __len__(self) -> int:
        return len(self._entries)

    def clear(self) -> None:
        self._entries.clear()
        self._dirty = True

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        """Serialize every entry, stale ones included."""
        return {
            "version": CACHE_FORMAT_VERSION,
            "entries": {
                key.to_string(): {
                    "fetched_at": entry.fetched_at,
                    "version_set": entry.version_set.to_dict(),
                }
                for key, entry in self._entries.items()
            },
        }

    def from_dict(self, data: Mapping[str, Any]) -> int:
        """Merge entries produced by :meth:`to_dict`.

        Data written by a different format version is ignored, as are
        malformed entries.

        Returns:
            Number of entries restored.
        """
        if data.get("version") != CACHE_FORMAT_VERSION:
            if data:
                logger.debug("Ignoring cache data with format %r", data.get("version"))
            return 0

        restored = 0
        entries = data.get("entries") or {}
        for raw_key, raw_entry in entries.items():
            try:
                key = CacheKey.from_string(raw_key)
                version_set = VersionSet.from_dict(raw_entry["version_set"])
                fetched_at = float(raw_entry["fetched_at"])
            except (KeyError, TypeError, ValueError) as exc:
                logger.debug("Skipping malformed cache entry %r: %s", raw_key, exc)
                continue
            self._entries[key] = CacheEntry(key, version_set, fetched_at)
            restored += 1
        return restored

    def load(self) -> int:
        """Restore entries from the configured store."""
        if self._store is None:
            return 0
        restored = self.from_dict(self._store.load())
        logger.debug("Restored %d cache entries", restored)
        return restored

    def flush(self) -> bool:
        """Write entries to the configured store if anything changed.

        Returns:
            True if the store was written.
        """
        if self._store is None or not self._dirty:
            return False
        self._store.save(self.to_dict())
        self._dirty = False
        logger.debug("Flushed %d cache entries", len(self._entries))
        return True

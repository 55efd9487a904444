"""Unit tests for depbump.core.cache module.

Test Coverage:
- Key serialization
- TTL freshness with an injected clock
- Single-flight fetching under concurrency
- Failed fetches are not cached
- Persistence through JsonCacheStore
"""

from __future__ import annotations

import json
import asyncio
from pathlib import Path
from typing import List

import pytest

from depbump.models.version_set import VersionSet
from depbump.utils.filesystem import JsonCacheStore
from depbump.core.cache import CacheKey, ResolutionCache

REGISTRY = "https://registry.npmjs.org"


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def key() -> CacheKey:
    return CacheKey("express", REGISTRY)


@pytest.fixture
def version_set() -> VersionSet:
    return VersionSet("express", ("4.18.0", "4.19.2"), {"latest": "4.19.2"})


# ============================================================================
# Test: CacheKey
# ============================================================================


@pytest.mark.unit
class TestCacheKey:
    def test_string_form(self) -> None:
        key = CacheKey("@scope/pkg", "https://npm.example.com")

        assert key.to_string() == "https://npm.example.com|@scope/pkg"
        assert CacheKey.from_string(key.to_string()) == key

    def test_registry_is_part_of_identity(self) -> None:
        assert CacheKey("a", "https://one") != CacheKey("a", "https://two")


# ============================================================================
# Test: get/put and TTL
# ============================================================================


@pytest.mark.unit
class TestFreshness:
    """Tests for TTL handling."""

    def test_put_then_get(
        self, clock: FakeClock, key: CacheKey, version_set: VersionSet
    ) -> None:
        cache = ResolutionCache(ttl=60, clock=clock)
        cache.put(key, version_set)

        assert cache.get(key) is version_set
        assert key in cache
        assert len(cache) == 1

    def test_entry_expires(self, clock: FakeClock, key: CacheKey, version_set: VersionSet) -> None:
        cache = ResolutionCache(ttl=60, clock=clock)
        cache.put(key, version_set)

        clock.now += 59
        assert cache.get(key) is version_set

        clock.now += 1
        assert cache.get(key) is None
        assert key not in cache

    def test_zero_ttl_never_reuses(
        self, clock: FakeClock, key: CacheKey, version_set: VersionSet
    ) -> None:
        cache = ResolutionCache(ttl=0, clock=clock)
        cache.put(key, version_set)

        assert cache.get(key) is None

    def test_clear(self, key: CacheKey, version_set: VersionSet) -> None:
        cache = ResolutionCache()
        cache.put(key, version_set)
        cache.clear()

        assert len(cache) == 0


# ============================================================================
# Test: get_or_fetch
# ============================================================================


@pytest.mark.unit
class TestGetOrFetch:
    """Tests for single-flight fetching."""

    @pytest.mark.asyncio
    async def test_concurrent_misses_share_one_fetch(
        self, key: CacheKey, version_set: VersionSet
    ) -> None:
        cache = ResolutionCache()
        release = asyncio.Event()
        calls: List[str] = []

        async def fetch() -> VersionSet:
            calls.append(key.name)
            await release.wait()
            return version_set

        first = asyncio.ensure_future(cache.get_or_fetch(key, fetch))
        second = asyncio.ensure_future(cache.get_or_fetch(key, fetch))
        await asyncio.sleep(0)
        release.set()

        results = await asyncio.gather(first, second)

        assert results == [version_set, version_set]
        assert calls == ["express"]
        assert cache.misses == 1

    @pytest.mark.asyncio
    async def test_hit_skips_fetch(self, key: CacheKey, version_set: VersionSet) -> None:
        cache = ResolutionCache()
        cache.put(key, version_set)

        async def fetch() -> VersionSet:
            raise AssertionError("should not fetch")

        assert await cache.get_or_fetch(key, fetch) is version_set
        assert cache.hits == 1

    @pytest.mark.asyncio
    async def test_failure_is_not_cached(self, key: CacheKey, version_set: VersionSet) -> None:
        cache = ResolutionCache()
        attempts = []

        async def flaky() -> VersionSet:
            attempts.append(1)
            if len(attempts) == 1:
                raise RuntimeError("registry down")
            return version_set

        with pytest.raises(RuntimeError):
            await cache.get_or_fetch(key, flaky)

        assert key not in cache
        assert await cache.get_or_fetch(key, flaky) is version_set
        assert len(attempts) == 2

    @pytest.mark.asyncio
    async def test_waiter_timeout_does_not_cancel_shared_fetch(
        self, key: CacheKey, version_set: VersionSet
    ) -> None:
        cache = ResolutionCache()
        release = asyncio.Event()

        async def fetch() -> VersionSet:
            await release.wait()
            return version_set

        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(cache.get_or_fetch(key, fetch), timeout=0.01)

        waiter = asyncio.ensure_future(cache.get_or_fetch(key, fetch))
        await asyncio.sleep(0)
        release.set()

        assert await waiter is version_set
        assert cache.misses == 1

    @pytest.mark.asyncio
    async def test_cancel_pending_stops_abandoned_fetch(
        self, key: CacheKey, version_set: VersionSet
    ) -> None:
        cache = ResolutionCache()
        started: List[int] = []

        async def fetch() -> VersionSet:
            started.append(1)
            await asyncio.sleep(10)
            return version_set

        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(cache.get_or_fetch(key, fetch), timeout=0.01)

        assert started == [1]
        assert await cache.cancel_pending() == 1
        assert await cache.cancel_pending() == 0
        assert key not in cache

    @pytest.mark.asyncio
    async def test_distinct_keys_fetch_separately(self, version_set: VersionSet) -> None:
        cache = ResolutionCache()
        calls = []

        async def fetch() -> VersionSet:
            calls.append(1)
            return version_set

        await cache.get_or_fetch(CacheKey("a", REGISTRY), fetch)
        await cache.get_or_fetch(CacheKey("a", "https://mirror"), fetch)

        assert len(calls) == 2


# ============================================================================
# Test: persistence
# ============================================================================


@pytest.mark.unit
class TestPersistence:
    """Tests for load/flush through JsonCacheStore."""

    def test_flush_and_load(
        self, tmp_path: Path, clock: FakeClock, key: CacheKey, version_set: VersionSet
    ) -> None:
        store = JsonCacheStore(tmp_path / "cache.json")
        cache = ResolutionCache(ttl=60, clock=clock, store=store)
        cache.put(key, version_set)

        assert cache.flush() is True
        assert cache.flush() is False

        restored = ResolutionCache(ttl=60, clock=clock, store=store)
        assert restored.load() == 1
        assert restored.get(key).to_dict() == version_set.to_dict()

    def test_flush_without_changes_does_not_write(self, tmp_path: Path) -> None:
        store = JsonCacheStore(tmp_path / "cache.json")
        cache = ResolutionCache(store=store)

        assert cache.flush() is False
        assert not (tmp_path / "cache.json").exists()

    def test_loaded_stale_entries_are_misses(
        self, tmp_path: Path, clock: FakeClock, key: CacheKey, version_set: VersionSet
    ) -> None:
        store = JsonCacheStore(tmp_path / "cache.json")
        writer = ResolutionCache(ttl=60, clock=clock, store=store)
        writer.put(key, version_set)
        writer.flush()

        clock.now += 120
        reader = ResolutionCache(ttl=60, clock=clock, store=store)
        reader.load()

        assert reader.get(key) is None

    def test_wrong_format_version_ignored(self, tmp_path: Path) -> None:
        path = tmp_path / "cache.json"
        path.write_text(json.dumps({"version": 99, "entries": {}}), encoding="utf-8")

        assert ResolutionCache(store=JsonCacheStore(path)).load() == 0

    def test_malformed_entries_skipped(self, key: CacheKey, version_set: VersionSet) -> None:
        cache = ResolutionCache()
        data = {
            "version": 1,
            "entries": {
                key.to_string(): {"fetched_at": 1.0, "version_set": version_set.to_dict()},
                "https://x|broken": {"fetched_at": "soon"},
            },
        }

        assert cache.from_dict(data) == 1

    def test_corrupt_file_loads_empty(self, tmp_path: Path) -> None:
        path = tmp_path / "cache.json"
        path.write_text("{not json", encoding="utf-8")

        assert ResolutionCache(store=JsonCacheStore(path)).load() == 0

    def test_no_store(self) -> None:
        cache = ResolutionCache()

        assert cache.load() == 0
        assert cache.flush() is False

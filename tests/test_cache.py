"""Tests for the TTL response cache."""

import asyncio

import pytest

from comx_api.cache import MISSING, FunctionRefreshHandler, ReadWriteLock, ResponseCache
from comx_api.config import CacheConfig


class CountingHandler:
    """Refresh handler returning ``<key>:<n>`` on its n-th call."""

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.calls: list[str] = []

    async def refresh(self, key: str) -> str:
        self.calls.append(key)
        if self.fail:
            raise RuntimeError("node unavailable")
        return f"{key}:{len(self.calls)}"


def make_cache(clock, **config) -> ResponseCache:
    return ResponseCache(CacheConfig(**config), clock=clock)


async def wait_until(predicate, timeout: float = 2.0) -> None:
    async def poll():
        while not await predicate():
            await asyncio.sleep(0.005)

    await asyncio.wait_for(poll(), timeout)


@pytest.mark.asyncio
async def test_get_returns_fresh_value(clock):
    """Test get returns fresh value."""
    cache = make_cache(clock, ttl=10)
    await cache.set("balance", 100)

    assert await cache.get("balance") == 100
    metrics = await cache.metrics()
    assert metrics.hits == 1
    assert metrics.misses == 0
    assert metrics.current_entries == 1


@pytest.mark.asyncio
async def test_missing_key_is_a_miss(clock):
    """Test missing key is a miss."""
    cache = make_cache(clock)

    assert await cache.get("absent") is None
    assert (await cache.metrics()).misses == 1


@pytest.mark.asyncio
async def test_expired_entry_is_a_miss_but_kept(clock):
    """Test expired entry is a miss but kept."""
    cache = make_cache(clock, ttl=1)
    await cache.set("balance", 100)

    clock.advance(2)

    assert await cache.get("balance") is None
    assert await cache.keys() == ["balance"]
    metrics = await cache.metrics()
    assert metrics.misses == 1
    assert metrics.current_entries == 1


@pytest.mark.asyncio
async def test_entry_expires_exactly_at_ttl(clock):
    """Test entry expires exactly at TTL."""
    cache = make_cache(clock, ttl=5)
    await cache.set("k", "v")

    clock.advance(4)
    assert await cache.get("k") == "v"
    clock.advance(1)
    assert await cache.get("k") is None


@pytest.mark.asyncio
async def test_overwrite_resets_expiry(clock):
    """Test overwrite resets expiry."""
    cache = make_cache(clock, ttl=5)
    await cache.set("k", 1)
    clock.advance(4)
    await cache.set("k", 2)
    clock.advance(4)

    assert await cache.get("k") == 2


@pytest.mark.asyncio
async def test_eviction_removes_soonest_expiring(clock):
    """Test eviction removes soonest expiring."""
    cache = make_cache(clock, ttl=10, max_entries=3)
    for index, key in enumerate(["a", "b", "c"]):
        await cache.set(key, index)
        clock.advance(1)

    await cache.set("d", 3)

    assert sorted(await cache.keys()) == ["b", "c", "d"]
    assert (await cache.metrics()).current_entries == 3


@pytest.mark.asyncio
async def test_eviction_with_equal_expiry_drops_oldest(clock):
    """Test eviction with equal expiry drops oldest."""
    cache = make_cache(clock, ttl=10, max_entries=2)
    await cache.set("a", 1)
    await cache.set("b", 2)
    await cache.set("c", 3)

    assert await cache.keys() == ["b", "c"]


@pytest.mark.asyncio
async def test_invalidate_expire_and_clear(clock):
    """Test invalidate expire and clear."""
    cache = make_cache(clock, ttl=10)
    await cache.set("a", 1)
    await cache.set("b", 2)

    assert await cache.invalidate("a")
    assert not await cache.invalidate("a")

    assert await cache.expire("b")
    assert not await cache.expire("missing")
    assert await cache.get("b") is None

    await cache.clear()
    assert await cache.keys() == []
    assert (await cache.metrics()).current_entries == 0


@pytest.mark.asyncio
async def test_refresh_replaces_stale_values(clock):
    """Test refresh replaces stale values."""
    cache = make_cache(clock, ttl=1)
    handler = CountingHandler()
    cache.set_refresh_handler(handler)
    await cache.set("stale", "old")
    clock.advance(2)
    await cache.set("fresh", "new")

    assert await cache.refresh_expired() == 1

    assert handler.calls == ["stale"]
    assert await cache.get("stale") == "stale:1"
    assert await cache.get("fresh") == "new"
    assert (await cache.metrics()).refresh_successes == 1


@pytest.mark.asyncio
async def test_refresh_failure_keeps_stale_value(clock, caplog):
    """Test refresh failure keeps stale value."""
    cache = make_cache(clock, ttl=1)
    cache.set_refresh_handler(CountingHandler(fail=True))
    await cache.set("stale", "old")
    clock.advance(2)

    assert await cache.refresh_expired() == 0

    metrics = await cache.metrics()
    assert metrics.refresh_failures == 1
    assert metrics.refresh_successes == 0
    assert await cache.keys() == ["stale"]
    assert "node unavailable" in caplog.text

    cache.set_refresh_handler(CountingHandler())
    await cache.refresh_expired()
    assert await cache.get("stale") == "stale:1"


@pytest.mark.asyncio
async def test_refresh_without_handler_is_noop(clock):
    """Test refresh without handler is noop."""
    cache = make_cache(clock, ttl=1)
    await cache.set("k", 1)
    clock.advance(2)

    assert await cache.refresh_expired() == 0


@pytest.mark.asyncio
async def test_function_refresh_handler(clock):
    """Test function refresh handler."""
    async def fetch(key):
        return key.upper()

    cache = make_cache(clock, ttl=1)
    cache.set_refresh_handler(FunctionRefreshHandler(fetch))
    await cache.set("k", "old")
    clock.advance(2)

    await cache.refresh_expired()

    assert await cache.get("k") == "K"


@pytest.mark.asyncio
async def test_background_refresh_runs_and_stops(clock):
    """Test background refresh runs and stops."""
    cache = make_cache(clock, ttl=1, refresh_interval=0.01)
    handler = CountingHandler()
    cache.set_refresh_handler(handler)
    await cache.set("k", "old")
    clock.advance(2)

    task = cache.start_background_refresh()
    assert cache.is_refreshing
    assert cache.start_background_refresh() is task

    async def refreshed():
        return (await cache.metrics()).refresh_successes >= 1

    await wait_until(refreshed)
    await cache.stop_background_refresh()

    assert not cache.is_refreshing
    assert task.done()
    assert await cache.get("k") == "k:1"


@pytest.mark.asyncio
async def test_context_manager_starts_and_stops_refresh(clock):
    """Test context manager starts and stops refresh."""
    cache = make_cache(clock, refresh_interval=60)

    async with cache:
        assert cache.is_refreshing

    assert not cache.is_refreshing


@pytest.mark.asyncio
async def test_stop_without_start(clock):
    """Test stop without start."""
    await make_cache(clock).stop_background_refresh()


def test_repr_omits_handler(clock):
    """Test repr omits handler."""
    cache = make_cache(clock, ttl=5)
    cache.set_refresh_handler(CountingHandler())

    text = repr(cache)

    assert text.startswith("ResponseCache(")
    assert "entries_count=0" in text
    assert "CountingHandler" not in text


@pytest.mark.asyncio
async def test_concurrent_access(clock):
    """Test concurrent sets and gets."""
    cache = make_cache(clock, ttl=60, max_entries=1000)

    await asyncio.gather(*(cache.set(f"k{i}", i) for i in range(100)))
    values = await asyncio.gather(*(cache.get(f"k{i}") for i in range(100)))

    assert values == list(range(100))
    metrics = await cache.metrics()
    assert metrics.hits == 100
    assert metrics.current_entries == 100


@pytest.mark.asyncio
async def test_read_write_lock_excludes_writer():
    """Test read write lock excludes writer."""
    lock = ReadWriteLock()
    events: list[str] = []

    async def reader(name):
        async with lock.reading():
            events.append(f"{name}-in")
            await asyncio.sleep(0.01)
            events.append(f"{name}-out")

    async def writer():
        await asyncio.sleep(0.001)
        async with lock.writing():
            events.append("w-in")
            events.append("w-out")

    await asyncio.gather(reader("r1"), reader("r2"), writer())

    assert events.index("w-in") > events.index("r1-out")
    assert events.index("w-in") > events.index("r2-out")
    assert events.index("w-out") == events.index("w-in") + 1


@pytest.mark.asyncio
async def test_handler_swap_applies_to_next_cycle(clock):
    """Test that replacing the handler mid-cycle leaves the running cycle alone."""
    cache = make_cache(clock, ttl=1)
    replacement = CountingHandler()

    class SwappingHandler(CountingHandler):
        async def refresh(self, key):
            cache.set_refresh_handler(replacement)
            return await super().refresh(key)

    original = SwappingHandler()
    cache.set_refresh_handler(original)
    await cache.set("a", "old")
    await cache.set("b", "old")
    clock.advance(2)

    assert await cache.refresh_expired() == 2
    assert original.calls == ["a", "b"]
    assert replacement.calls == []

    clock.advance(2)
    await cache.refresh_expired()
    assert replacement.calls == ["a", "b"]


@pytest.mark.asyncio
async def test_reads_within_ttl_do_not_refresh(clock):
    """Test that consecutive reads inside the TTL agree without calling the handler."""
    cache = make_cache(clock, ttl=10)
    handler = CountingHandler()
    cache.set_refresh_handler(handler)
    await cache.set("k", {"free": 1})

    first = await cache.get("k")
    clock.advance(5)
    second = await cache.get("k")

    assert first == second == {"free": 1}
    assert await cache.refresh_expired() == 0
    assert handler.calls == []


@pytest.mark.asyncio
async def test_get_default_distinguishes_cached_none(clock):
    """Test that a cached None is returned as a hit, not the default."""
    cache = make_cache(clock, ttl=10)
    await cache.set("empty", None)

    assert await cache.get("empty", MISSING) is None
    assert await cache.get("absent", MISSING) is MISSING
    metrics = await cache.metrics()
    assert metrics.hits == 1
    assert metrics.misses == 1


@pytest.mark.asyncio
async def test_refresh_keeps_value_set_during_refresh(clock):
    """Test that a foreground set during refresh wins over the refreshed value."""
    cache = make_cache(clock, ttl=1)

    class OverwritingHandler(CountingHandler):
        async def refresh(self, key):
            await cache.set(key, "newer")
            return await super().refresh(key)

    cache.set_refresh_handler(OverwritingHandler())
    await cache.set("k", "old")
    clock.advance(2)

    assert await cache.refresh_expired() == 0
    assert await cache.get("k") == "newer"
    assert (await cache.metrics()).refresh_successes == 0


@pytest.mark.asyncio
async def test_refresh_skips_key_removed_during_refresh(clock):
    """Test that an invalidated key is not recreated or counted."""
    cache = make_cache(clock, ttl=1)

    class RemovingHandler(CountingHandler):
        async def refresh(self, key):
            await cache.invalidate(key)
            return await super().refresh(key)

    cache.set_refresh_handler(RemovingHandler())
    await cache.set("k", "old")
    clock.advance(2)

    assert await cache.refresh_expired() == 0
    assert await cache.keys() == []
    assert (await cache.metrics()).refresh_successes == 0


@pytest.mark.asyncio
async def test_read_write_lock_readers_overlap():
    """Test that readers hold the lock at the same time."""
    lock = ReadWriteLock()
    events: list[str] = []

    async def reader(name):
        async with lock.reading():
            events.append(f"{name}-in")
            await asyncio.sleep(0.01)
            events.append(f"{name}-out")

    await asyncio.gather(reader("r1"), reader("r2"))

    assert events.index("r2-in") < events.index("r1-out")


@pytest.mark.asyncio
async def test_cancelled_reader_still_releases_lock():
    """Test that a reader cancelled while releasing does not block writers."""
    lock = ReadWriteLock()
    entered = asyncio.Event()

    async def reader():
        async with lock.reading():
            entered.set()
            await asyncio.sleep(10)

    task = asyncio.create_task(reader())
    await entered.wait()

    # Hold the condition so the reader's release has to wait, then cancel it there
    async with lock._cond:
        task.cancel()
        await asyncio.sleep(0)
        task.cancel()
        await asyncio.sleep(0)

    with pytest.raises(asyncio.CancelledError):
        await task

    async with asyncio.timeout(1):
        async with lock.writing():
            pass

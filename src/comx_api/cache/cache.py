"""TTL response cache with capacity eviction and background refresh."""

import asyncio
import logging
import threading
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Protocol

from pydantic import BaseModel

from comx_api.cache.lock import ReadWriteLock
from comx_api.config import CacheConfig

logger = logging.getLogger(__name__)

# Returned by ResponseCache.get when asked to tell a miss apart from a cached None
MISSING: Any = object()


class RefreshHandler(Protocol):
    """Produces a fresh value for a stale cache key."""

    async def refresh(self, key: str) -> Any: ...


class FunctionRefreshHandler:
    """
    Adapts a coroutine function to the RefreshHandler interface.

    Parameters
    ----------
    func : Callable[[str], Awaitable[Any]]
        Coroutine function taking the key and returning the new value

    """

    def __init__(self, func: Callable[[str], Awaitable[Any]]) -> None:
        self._func = func

    async def refresh(self, key: str) -> Any:
        return await self._func(key)

    def __repr__(self) -> str:
        return f"FunctionRefreshHandler({getattr(self._func, '__qualname__', self._func)!r})"


class CacheMetrics(BaseModel):
    """
    Snapshot of cache counters.

    Attributes
    ----------
    hits : int
        Reads served from a live entry
    misses : int
        Reads of absent or stale keys
    refresh_successes : int
        Background refreshes that replaced a stale value
    refresh_failures : int
        Background refreshes whose handler raised
    current_entries : int
        Live size of the entry map

    """

    hits: int = 0
    misses: int = 0
    refresh_successes: int = 0
    refresh_failures: int = 0
    current_entries: int = 0


@dataclass
class _CacheEntry:
    value: Any
    expires_at: float


class _Counters:
    """Metric counters behind their own lock, independent of the entry map lock."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._metrics = CacheMetrics()

    def increment(self, field: str) -> None:
        with self._lock:
            setattr(self._metrics, field, getattr(self._metrics, field) + 1)

    def set_entries(self, count: int) -> None:
        with self._lock:
            self._metrics.current_entries = count

    def snapshot(self) -> CacheMetrics:
        with self._lock:
            return self._metrics.model_copy()


class ResponseCache:
    """
    In-memory key/value cache with TTL, capacity eviction, and refresh.

    Entries past their expiry are stale: reads treat them as misses, but
    they stay in place until refreshed, overwritten, or evicted. When the
    cache is full, inserting evicts the entry that expires soonest.

    Parameters
    ----------
    config : CacheConfig | None
        TTL, refresh interval, and capacity
    clock : Callable[[], float]
        Monotonic clock in seconds

    """

    def __init__(
        self,
        config: CacheConfig | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config or CacheConfig()
        self._clock = clock
        self._entries: dict[str, _CacheEntry] = {}
        self._lock = ReadWriteLock()
        self._counters = _Counters()
        self._refresh_handler: RefreshHandler | None = None
        self._refresh_task: asyncio.Task | None = None
        self._stop_event: asyncio.Event | None = None

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(config={self.config!r}, "
            f"metrics={self._counters.snapshot()!r}, entries_count={len(self._entries)})"
        )

    async def set(self, key: str, value: Any) -> None:
        """
        Insert or overwrite ``key`` with a fresh expiry.

        Parameters
        ----------
        key : str
            Cache key
        value : Any
            Value to cache

        """
        async with self._lock.writing():
            self._entries[key] = _CacheEntry(value, self._clock() + self.config.ttl)
            if len(self._entries) > self.config.max_entries:
                # min() keeps the first of equal expiries, i.e. the oldest insert
                evicted = min(self._entries, key=lambda k: self._entries[k].expires_at)
                del self._entries[evicted]
                logger.debug("Cache full, evicted %s", evicted)
            self._counters.set_entries(len(self._entries))

    async def get(self, key: str, default: Any = None) -> Any:
        """
        Get a live value.

        Parameters
        ----------
        key : str
            Cache key
        default : Any
            Returned on a miss; pass ``MISSING`` when None is a valid
            cached value

        Returns
        -------
        Any
            Cached value if present and not expired, ``default`` otherwise

        """
        async with self._lock.reading():
            entry = self._entries.get(key)
            if entry is not None and self._clock() < entry.expires_at:
                self._counters.increment("hits")
                return entry.value
        self._counters.increment("misses")
        return default

    async def invalidate(self, key: str) -> bool:
        """Remove ``key``; returns True if it was present."""
        async with self._lock.writing():
            removed = self._entries.pop(key, None) is not None
            self._counters.set_entries(len(self._entries))
        return removed

    async def expire(self, key: str) -> bool:
        """Mark ``key`` stale now so the next refresh cycle picks it up."""
        async with self._lock.writing():
            entry = self._entries.get(key)
            if entry is None:
                return False
            entry.expires_at = self._clock()
        return True

    async def clear(self) -> None:
        """Remove all entries."""
        async with self._lock.writing():
            self._entries.clear()
            self._counters.set_entries(0)

    async def keys(self) -> list[str]:
        async with self._lock.reading():
            return list(self._entries)

    async def metrics(self) -> CacheMetrics:
        return self._counters.snapshot()

    def set_refresh_handler(self, handler: RefreshHandler | None) -> None:
        """
        Replace the refresh handler.

        A cycle already in progress keeps the handler it started with.

        """
        self._refresh_handler = handler

    async def refresh_expired(self) -> int:
        """
        Run one refresh cycle over every stale entry.

        Handler failures are counted and logged; the stale value is kept. A
        refreshed value is dropped if the entry was overwritten, expired
        again, or removed while the handler ran.

        Returns
        -------
        int
            Number of entries refreshed successfully

        """
        handler = self._refresh_handler
        if handler is None:
            return 0

        async with self._lock.reading():
            now = self._clock()
            stale = [
                (key, entry, entry.expires_at) for key, entry in self._entries.items() if entry.expires_at <= now
            ]

        refreshed = 0
        for key, scanned, scanned_expiry in stale:
            try:
                value = await handler.refresh(key)
            except Exception as e:
                self._counters.increment("refresh_failures")
                logger.warning("Refresh failed for cache key %s: %s", key, e)
                continue

            async with self._lock.writing():
                current = self._entries.get(key) is scanned and scanned.expires_at == scanned_expiry
                if current:
                    scanned.value = value
                    scanned.expires_at = self._clock() + self.config.ttl
            if not current:
                logger.debug("Cache key %s changed during refresh, keeping current entry", key)
                continue
            self._counters.increment("refresh_successes")
            refreshed += 1
        return refreshed

    async def _refresh_loop(self, stop: asyncio.Event) -> None:
        while True:
            try:
                await asyncio.wait_for(stop.wait(), timeout=self.config.refresh_interval)
                return
            except TimeoutError:
                pass
            await self.refresh_expired()

    @property
    def is_refreshing(self) -> bool:
        return self._refresh_task is not None and not self._refresh_task.done()

    def start_background_refresh(self) -> asyncio.Task:
        """
        Start the periodic refresh task.

        Must be called from a running event loop. Calling it again while the
        task is running returns the existing task.

        Returns
        -------
        asyncio.Task
            The refresh task; stop it with ``stop_background_refresh``

        """
        if self.is_refreshing:
            return self._refresh_task  # type: ignore[return-value]
        self._stop_event = asyncio.Event()
        self._refresh_task = asyncio.create_task(
            self._refresh_loop(self._stop_event),
            name="response-cache-refresh",
        )
        logger.debug("Started cache refresh every %.1fs", self.config.refresh_interval)
        return self._refresh_task

    async def stop_background_refresh(self) -> None:
        """Signal the refresh task to stop and wait for it to finish."""
        task, stop = self._refresh_task, self._stop_event
        self._refresh_task = None
        self._stop_event = None
        if task is None or stop is None:
            return
        stop.set()
        await task

    async def __aenter__(self) -> "ResponseCache":
        self.start_background_refresh()
        return self

    async def __aexit__(self, exc_type: type, exc_val: Exception, exc_tb: object) -> None:
        await self.stop_background_refresh()

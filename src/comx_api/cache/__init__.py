"""Response caching with TTL freshness and background refresh."""

from comx_api.cache.cache import MISSING, CacheMetrics, FunctionRefreshHandler, RefreshHandler, ResponseCache
from comx_api.cache.lock import ReadWriteLock

__all__ = [
    "MISSING",
    "CacheMetrics",
    "FunctionRefreshHandler",
    "ReadWriteLock",
    "RefreshHandler",
    "ResponseCache",
]

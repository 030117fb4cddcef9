"""Resilient JSON-RPC client: signed module calls, retries, batching, and cached queries."""

from comx_api.cache import CacheMetrics, ResponseCache
from comx_api.config import CacheConfig, ModuleClientConfig, QueryMapConfig, RetryPolicy, RpcClientConfig
from comx_api.crypto import KeyPair
from comx_api.modules import AccessLevel, EndpointConfig, EndpointRegistry, ModuleClient
from comx_api.query_map import QueryMap
from comx_api.rpc import BatchOutcome, BatchRequest, RetryExecutor, RpcClient

__all__ = [
    "AccessLevel",
    "BatchOutcome",
    "BatchRequest",
    "CacheConfig",
    "CacheMetrics",
    "EndpointConfig",
    "EndpointRegistry",
    "KeyPair",
    "ModuleClient",
    "ModuleClientConfig",
    "QueryMap",
    "QueryMapConfig",
    "ResponseCache",
    "RetryExecutor",
    "RetryPolicy",
    "RpcClient",
    "RpcClientConfig",
]

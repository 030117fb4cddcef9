"""Cached balance and stake queries on top of the RPC client."""

import json
import logging
from typing import Any

from comx_api.cache import MISSING, CacheMetrics, ResponseCache
from comx_api.config import QueryMapConfig
from comx_api.errors import MalformedResponseError
from comx_api.rpc import BatchRequest, RpcClient
from comx_api.rpc.batch import BATCH_ID_BASE

logger = logging.getLogger(__name__)

BALANCE_METHOD = "query_balance"
STAKE_FROM_METHOD = "query_stake_from"
STAKE_TO_METHOD = "query_stake_to"


class QueryMap:
    """
    Serves read queries from a ResponseCache, falling back to the node.

    The query map is its own refresh handler: stale keys are decoded back
    into the RPC call that produced them and re-issued.

    Parameters
    ----------
    client : RpcClient
        Client used for cache misses and refreshes
    config : QueryMapConfig | None
        Refresh interval and freshness window

    Raises
    ------
    ConfigError
        If the refresh interval is under one second or not shorter than the
        cache duration

    """

    def __init__(self, client: RpcClient, config: QueryMapConfig | None = None) -> None:
        self.client = client
        self.config = config or QueryMapConfig()
        self.cache = ResponseCache(self.config.cache_config())
        self.cache.set_refresh_handler(self)

    @staticmethod
    def _make_key(method: str, params: Any) -> str:
        """
        Build a deterministic cache key that can be decoded back into a call.

        Parameters
        ----------
        method : str
            RPC method name
        params : Any
            Method parameters

        Returns
        -------
        str
            Cache key

        """
        return json.dumps({"method": method, "params": params}, sort_keys=True, separators=(",", ":"))

    async def refresh(self, key: str) -> Any:
        """Re-issue the call encoded in ``key``."""
        try:
            call = json.loads(key)
            method, params = call["method"], call["params"]
        except (json.JSONDecodeError, KeyError, TypeError) as e:
            msg = f"Cannot decode cache key {key!r}"
            raise MalformedResponseError(msg) from e
        return await self.client.request(method, params)

    async def _query(self, method: str, params: Any) -> Any:
        key = self._make_key(method, params)
        cached = await self.cache.get(key, MISSING)
        if cached is not MISSING:
            return cached
        result = await self.client.request(method, params)
        await self.cache.set(key, result)
        return result

    async def get_balance(self, address: str) -> Any:
        """Balance of ``address``, cached."""
        return await self._query(BALANCE_METHOD, {"address": address})

    async def get_stake_from(self, address: str) -> Any:
        """Stakes delegated to ``address``, cached."""
        return await self._query(STAKE_FROM_METHOD, {"address": address})

    async def get_stake_to(self, address: str) -> Any:
        """Stakes delegated by ``address``, cached."""
        return await self._query(STAKE_TO_METHOD, {"address": address})

    async def get_balances(self, addresses: list[str]) -> list[Any]:
        """
        Balances for several addresses, fetching all cache misses in one batch.

        Parameters
        ----------
        addresses : list[str]
            Addresses to query

        Returns
        -------
        list[Any]
            Balances in the same order as ``addresses``

        Raises
        ------
        BatchRpcError
            If the node returned an error for any address; successful items
            are still cached

        """
        results: list[Any] = [None] * len(addresses)
        batch = BatchRequest()
        pending: list[int] = []

        for index, address in enumerate(addresses):
            cached = await self.cache.get(self._make_key(BALANCE_METHOD, {"address": address}), MISSING)
            if cached is not MISSING:
                results[index] = cached
            else:
                batch.add_request(BALANCE_METHOD, {"address": address})
                pending.append(index)

        if not pending:
            return results

        logger.debug("Fetching %d of %d balances from node", len(pending), len(addresses))
        outcome = await self.client.batch_request(batch)

        for request_id, value in zip(outcome.success_ids, outcome.successes, strict=True):
            index = pending[request_id - BATCH_ID_BASE]
            results[index] = value
            await self.cache.set(self._make_key(BALANCE_METHOD, {"address": addresses[index]}), value)

        outcome.raise_for_errors()
        return results

    async def cache_stats(self) -> CacheMetrics:
        return await self.cache.metrics()

    def start(self) -> None:
        """Start background refresh of stale queries."""
        self.cache.start_background_refresh()

    async def stop(self) -> None:
        await self.cache.stop_background_refresh()

    async def __aenter__(self) -> "QueryMap":
        self.start()
        return self

    async def __aexit__(self, exc_type: type, exc_val: Exception, exc_tb: object) -> None:
        await self.stop()

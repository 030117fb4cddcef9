"""Async JSON-RPC client with retry and batch support."""

import asyncio
import json
import logging
from typing import Any

import httpx

from comx_api.config import RpcClientConfig
from comx_api.errors import MalformedResponseError, map_transport_error, raise_for_status
from comx_api.rpc.batch import BatchCorrelator, BatchOutcome, BatchRequest
from comx_api.rpc.envelope import RequestIdCounter, RpcRequest, RpcResponse
from comx_api.rpc.retry import RetryExecutor, SleepFunc

logger = logging.getLogger(__name__)


class RpcClient:
    """
    JSON-RPC client for a remote node.

    Single calls and whole batches are retried on timeouts, connection
    failures, and server errors. Request ids come from a counter owned by
    the client instance.

    Parameters
    ----------
    config : RpcClientConfig | str
        Client configuration, or just the node URL
    http_client : httpx.AsyncClient | None
        Transport to use; created from the config if None
    sleep : SleepFunc | None
        Backoff sleep override, mainly for tests

    """

    def __init__(
        self,
        config: RpcClientConfig | str,
        *,
        http_client: httpx.AsyncClient | None = None,
        sleep: SleepFunc | None = None,
    ) -> None:
        if isinstance(config, str):
            config = RpcClientConfig(url=config)
        self.config = config
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=config.timeout)
        self._ids = RequestIdCounter()
        self._correlator = BatchCorrelator(config.max_batch_size)
        self._executor = RetryExecutor(config.retry, sleep=sleep or asyncio.sleep)

    @property
    def url(self) -> str:
        return self.config.url

    async def _post(self, payload: Any, method: str) -> Any:
        """Send one JSON body and decode the JSON reply."""
        try:
            response = await self._client.post(self.url, json=payload)
        except httpx.HTTPError as e:
            raise map_transport_error(e, self.config.timeout) from e

        raise_for_status(response, method)

        try:
            return response.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            msg = f"Invalid JSON in response to {method}: {e}"
            raise MalformedResponseError(msg) from e

    async def request(self, method: str, params: Any = None) -> Any:
        """
        Make a single RPC call.

        Parameters
        ----------
        method : str
            Remote method name
        params : Any
            Method parameters

        Returns
        -------
        Any
            The ``result`` member of the response

        Raises
        ------
        RpcError
            If the node returned an error object
        MalformedResponseError
            If the response is not a valid envelope for this request
        ComxError
            Transport or HTTP errors once retries are exhausted

        """
        request = RpcRequest(id=self._ids.next(), method=method, params=params)

        async def attempt() -> Any:
            payload = await self._post(request.to_wire(), method)
            response = RpcResponse.from_wire(payload)
            if response.id is not None and response.id != request.id:
                msg = f"Response id {response.id} does not match request id {request.id}"
                raise MalformedResponseError(msg)
            return response.unwrap()

        return await self._executor.execute(attempt, label=f"RPC call {method}")

    async def batch_request(self, batch: BatchRequest) -> BatchOutcome:
        """
        Send all calls in ``batch`` as one JSON array.

        Parameters
        ----------
        batch : BatchRequest
            Calls to send

        Returns
        -------
        BatchOutcome
            Per-call results and errors in original request order

        Raises
        ------
        ValidationError
            If the batch is larger than ``config.max_batch_size``
        MalformedResponseError
            If the response is not an array matching the requests

        """
        self._correlator.validate(batch)
        if not len(batch):
            return BatchOutcome()

        requests = batch.requests
        wire = [request.to_wire() for request in requests]
        logger.debug("Sending batch of %d requests to %s", len(wire), self.url)

        async def attempt() -> Any:
            return await self._post(wire, "batch")

        payload = await self._executor.execute(attempt, label=f"RPC batch of {len(wire)}")
        return self._correlator.correlate(requests, payload)

    async def aclose(self) -> None:
        """Close the underlying transport if this client created it."""
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "RpcClient":
        return self

    async def __aexit__(self, exc_type: type, exc_val: Exception, exc_tb: object) -> None:
        await self.aclose()

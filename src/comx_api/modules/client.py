"""Client for signed calls to module servers."""

import asyncio
import json
import logging
from typing import Any

import httpx

from comx_api.config import ModuleClientConfig
from comx_api.crypto import Signer
from comx_api.errors import (
    INTERNAL_ERROR,
    MalformedResponseError,
    RpcError,
    map_transport_error,
    raise_for_status,
)
from comx_api.modules.endpoint import AccessLevel, EndpointConfig, EndpointRegistry
from comx_api.modules.request import AuthenticatedRequest, RequestBuilder
from comx_api.rpc.retry import RetryExecutor, SleepFunc

logger = logging.getLogger(__name__)


class ModuleClient:
    """
    Client for communicating with module servers.

    Every call is signed once at build time; retries resend the same body,
    signature, and timestamp. Endpoints registered with
    ``allow_retries=False`` are attempted exactly once.

    Parameters
    ----------
    signer : Signer
        Key pair used to sign requests
    config : ModuleClientConfig | None
        Host, port, timeout, and retry settings
    registry : EndpointRegistry | None
        Endpoint registry; a new empty one if None
    http_client : httpx.AsyncClient | None
        Transport to use; created from the config if None
    sleep : SleepFunc
        Backoff sleep override, mainly for tests

    """

    def __init__(
        self,
        signer: Signer,
        config: ModuleClientConfig | None = None,
        *,
        registry: EndpointRegistry | None = None,
        http_client: httpx.AsyncClient | None = None,
        sleep: SleepFunc = asyncio.sleep,
    ) -> None:
        self.config = config or ModuleClientConfig()
        self.signer = signer
        self.endpoint_registry = registry if registry is not None else EndpointRegistry()
        self.builder = RequestBuilder(self.config, signer)
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=self.config.timeout)
        self._executor = RetryExecutor(self.config.retry_policy(), sleep=sleep)

    def register_endpoint(self, config: EndpointConfig) -> EndpointConfig:
        return self.endpoint_registry.register(config)

    def get_endpoint(self, name: str) -> EndpointConfig | None:
        return self.endpoint_registry.get(name)

    def unregister_endpoint(self, name: str) -> EndpointConfig | None:
        return self.endpoint_registry.unregister(name)

    async def call(self, method: str, target_key: str, params: Any = None) -> Any:
        """
        Call a module method.

        Parameters
        ----------
        method : str
            Method name; also the endpoint name looked up in the registry
        target_key : str
            Address of the target module
        params : Any
            JSON-serializable method parameters

        Returns
        -------
        Any
            Decoded response body (its ``data`` member when present)

        Raises
        ------
        SerializationError
            If ``params`` cannot be serialized
        UnauthorizedError, RateLimitExceededError, MethodNotFoundError
            On HTTP 401, 429, and 404
        ServerError
            On other non-2xx statuses, after retries for 5xx
        RequestTimeoutError, RpcConnectionError
            On transport failures, after retries

        """
        endpoint = self.endpoint_registry.get(method)
        if endpoint is not None and endpoint.access_level is not AccessLevel.PUBLIC:
            logger.debug("Calling %s endpoint %s", endpoint.access_level, method)

        path = endpoint.path if endpoint is not None else method
        request = self.builder.build(path, target_key, params)
        timeout = endpoint.timeout if endpoint is not None and endpoint.timeout else self.config.timeout
        allow_retries = endpoint.allow_retries if endpoint is not None else True

        return await self._executor.execute(
            lambda: self._execute_request(method, request, timeout),
            allow_retries=allow_retries,
            label=f"Module call {method}",
        )

    async def _execute_request(self, method: str, request: AuthenticatedRequest, timeout: float) -> Any:
        try:
            response = await self._client.post(
                request.url,
                content=request.body,
                headers=request.headers,
                timeout=timeout,
            )
        except httpx.HTTPError as e:
            raise map_transport_error(e, timeout) from e

        raise_for_status(response, method)

        try:
            body = response.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            msg = f"Invalid JSON in response to {method}: {e}"
            raise MalformedResponseError(msg) from e

        if isinstance(body, dict):
            error = body.get("error")
            if isinstance(error, dict):
                code = error.get("code")
                raise RpcError(
                    code if isinstance(code, int) else INTERNAL_ERROR,
                    str(error.get("message", "Unknown error")),
                )
            if "data" in body:
                return body["data"]
        return body

    async def aclose(self) -> None:
        """Close the underlying transport if this client created it."""
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "ModuleClient":
        return self

    async def __aexit__(self, exc_type: type, exc_val: Exception, exc_tb: object) -> None:
        await self.aclose()

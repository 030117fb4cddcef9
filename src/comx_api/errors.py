"""Exception hierarchy shared by the RPC, module, and cache layers."""

from typing import Any

import httpx

# JSON-RPC 2.0 reserved codes
PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603
SERVER_ERROR_MIN = -32099
SERVER_ERROR_MAX = -32000


class ComxError(Exception):
    """
    Base class for all client errors.

    Attributes
    ----------
    retryable : bool
        Whether the retry executor may attempt the operation again

    """

    retryable = False


class RpcConnectionError(ComxError):
    """Raised when the remote node cannot be reached."""

    retryable = True


class RequestTimeoutError(ComxError):
    """Raised when a request exceeds its deadline."""

    retryable = True

    def __init__(self, timeout: float | None = None, detail: str = "") -> None:
        self.timeout = timeout
        msg = f"Network timeout after {timeout}s" if timeout is not None else "Network timeout"
        if detail:
            msg = f"{msg}: {detail}"
        super().__init__(msg)


class RpcError(ComxError):
    """
    Application-level error returned by the remote node.

    Parameters
    ----------
    code : int
        JSON-RPC error code
    message : str
        Error message from the node

    """

    def __init__(self, code: int, message: str) -> None:
        self.code = code
        self.message = message
        super().__init__(f"RPC error: {code} - {message}")

    @property
    def retryable(self) -> bool:  # type: ignore[override]
        return self.code == INTERNAL_ERROR or SERVER_ERROR_MIN <= self.code <= SERVER_ERROR_MAX


class BatchRpcError(ComxError):
    """Aggregate of every per-item error in a batch."""

    def __init__(self, errors: list[Any]) -> None:
        self.errors = list(errors)
        summary = "; ".join(f"[{e.request_id}] {e.code} - {e.message}" for e in self.errors)
        super().__init__(f"{len(self.errors)} batch item(s) failed: {summary}")


class MalformedResponseError(ComxError):
    """Raised when wire data does not have the expected shape."""


class ValidationError(ComxError):
    """Raised when a local precondition fails before anything is sent."""


class ConfigError(ValidationError):
    """Raised when configuration values are rejected at construction time."""


class RateLimitExceededError(ComxError):
    """Raised on HTTP 429."""

    def __init__(self, detail: str = "Rate limit exceeded") -> None:
        super().__init__(detail)


class UnauthorizedError(ComxError):
    """Raised on HTTP 401."""

    def __init__(self, detail: str = "Unauthorized access") -> None:
        super().__init__(detail)


class MethodNotFoundError(ComxError):
    """Raised on HTTP 404."""

    def __init__(self, method: str) -> None:
        self.method = method
        super().__init__(f"Method not found: {method}")


class ServerError(ComxError):
    """
    Raised for any other non-2xx HTTP status.

    Only 5xx statuses are retryable.

    """

    def __init__(self, status_code: int, detail: str = "") -> None:
        self.status_code = status_code
        msg = f"Server error: {status_code}"
        if detail:
            msg = f"{msg} {detail}"
        super().__init__(msg)

    @property
    def retryable(self) -> bool:  # type: ignore[override]
        return self.status_code >= 500


class SerializationError(ComxError):
    """Raised when a request body cannot be serialized to JSON."""


class InvalidHeaderError(ComxError):
    """Raised when a header value cannot be encoded for the wire."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Invalid header: {name}")


class MaxRetriesExceededError(ComxError):
    """Raised when the retry loop ends without a single attempt having run."""

    def __init__(self) -> None:
        super().__init__("Maximum retries exceeded")


def raise_for_status(response: httpx.Response, method: str) -> None:
    """
    Map a non-2xx HTTP response to the matching client error.

    Parameters
    ----------
    response : httpx.Response
        Response received from the transport
    method : str
        Remote method name, used for 404 messages

    Raises
    ------
    UnauthorizedError
        On 401
    RateLimitExceededError
        On 429
    MethodNotFoundError
        On 404
    ServerError
        On any other non-2xx status

    """
    status = response.status_code
    if 200 <= status < 300:
        return
    if status == 401:
        raise UnauthorizedError()
    if status == 429:
        raise RateLimitExceededError()
    if status == 404:
        raise MethodNotFoundError(method)
    raise ServerError(status, response.reason_phrase)


def map_transport_error(exc: httpx.HTTPError, timeout: float | None = None) -> ComxError:
    """Convert an httpx transport failure into a client error."""
    if isinstance(exc, httpx.TimeoutException):
        return RequestTimeoutError(timeout, str(exc))
    return RpcConnectionError(f"HTTP request failed: {exc}")

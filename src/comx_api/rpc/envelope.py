"""JSON-RPC 2.0 envelopes and request id allocation."""

import itertools
from typing import Any

from pydantic import BaseModel, ConfigDict

from comx_api.errors import INTERNAL_ERROR, MalformedResponseError, RpcError

JSONRPC_VERSION = "2.0"


class RpcRequest(BaseModel):
    """
    A single JSON-RPC call.

    Attributes
    ----------
    id : int
        Request id, unique within one wire exchange
    method : str
        Remote method name
    params : Any
        JSON-serializable parameters

    """

    model_config = ConfigDict(frozen=True)

    id: int
    method: str
    params: Any = None

    def to_wire(self) -> dict[str, Any]:
        return {
            "jsonrpc": JSONRPC_VERSION,
            "method": self.method,
            "params": self.params,
            "id": self.id,
        }


class ErrorObject(BaseModel):
    """Error member of a JSON-RPC response."""

    code: int = INTERNAL_ERROR
    message: str = "Unknown error"


class ErrorDetail(BaseModel):
    """
    A per-item batch failure.

    Attributes
    ----------
    code : int
        JSON-RPC error code
    message : str
        Error message
    request_id : int | None
        Id of the originating request

    """

    model_config = ConfigDict(frozen=True)

    code: int
    message: str
    request_id: int | None = None


class RpcResponse(BaseModel):
    """
    A single JSON-RPC response.

    Exactly one of ``result`` and ``error`` is populated.

    """

    id: int | None = None
    result: Any = None
    error: ErrorObject | None = None

    @classmethod
    def from_wire(cls, payload: Any) -> "RpcResponse":
        """
        Parse and validate a wire response object.

        Parameters
        ----------
        payload : Any
            Decoded JSON value

        Returns
        -------
        RpcResponse
            Validated response

        Raises
        ------
        MalformedResponseError
            If the payload is not an object, or carries both or neither of
            ``result`` and ``error``

        """
        if not isinstance(payload, dict):
            msg = f"Expected JSON-RPC response object, got {type(payload).__name__}"
            raise MalformedResponseError(msg)

        has_result = "result" in payload
        has_error = payload.get("error") is not None
        if has_result == has_error:
            msg = "Response must contain exactly one of 'result' or 'error'"
            raise MalformedResponseError(msg)

        raw_id = payload.get("id")
        if raw_id is not None and (not isinstance(raw_id, int) or isinstance(raw_id, bool)):
            msg = f"Invalid response id: {raw_id!r}"
            raise MalformedResponseError(msg)

        if has_error:
            error = payload["error"]
            if not isinstance(error, dict):
                msg = "Response 'error' must be an object"
                raise MalformedResponseError(msg)
            code = error.get("code")
            message = error.get("message")
            return cls(
                id=raw_id,
                error=ErrorObject(
                    code=code if isinstance(code, int) else INTERNAL_ERROR,
                    message=message if isinstance(message, str) else "Unknown error",
                ),
            )
        return cls(id=raw_id, result=payload["result"])

    def unwrap(self) -> Any:
        """Return the result, or raise RpcError if the node reported an error."""
        if self.error is not None:
            raise RpcError(self.error.code, self.error.message)
        return self.result


class RequestIdCounter:
    """Monotonically increasing request ids owned by one client instance."""

    def __init__(self, start: int = 1) -> None:
        self._counter = itertools.count(start)

    def next(self) -> int:
        return next(self._counter)

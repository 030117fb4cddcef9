"""Construction of signed module requests."""

import json
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict

from comx_api.config import ModuleClientConfig
from comx_api.crypto import Signer
from comx_api.errors import InvalidHeaderError, SerializationError


class ModuleRequest(BaseModel):
    """
    Logical body of a module call.

    Attributes
    ----------
    target_key : str
        Address of the module being called
    params : Any
        Method-specific parameters

    """

    model_config = ConfigDict(frozen=True)

    target_key: str
    params: Any = None

    def to_body(self) -> dict[str, Any]:
        return {"target_key": self.target_key, "params": self.params}


class AuthenticatedRequest(BaseModel):
    """
    Transport-ready signed request.

    ``body`` holds the exact bytes that were signed and are sent on the wire.

    """

    model_config = ConfigDict(frozen=True)

    url: str
    headers: dict[str, str]
    body: bytes
    signature: str
    public_key: str
    timestamp: str


def canonical_json(value: Any) -> bytes:
    """
    Serialize ``value`` to compact, key-sorted JSON bytes.

    Raises
    ------
    SerializationError
        If the value is not JSON-serializable

    """
    try:
        text = json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    except (TypeError, ValueError) as e:
        msg = f"Cannot serialize request body: {e}"
        raise SerializationError(msg) from e
    return text.encode("utf-8")


def rfc3339_now() -> str:
    return datetime.now(UTC).isoformat()


class RequestBuilder:
    """
    Builds signed HTTP requests for module calls.

    Parameters
    ----------
    config : ModuleClientConfig
        Host and port of the module server
    signer : Signer
        Key used to sign request bodies

    """

    def __init__(self, config: ModuleClientConfig, signer: Signer) -> None:
        self.config = config
        self.signer = signer

    def build_url(self, method: str) -> str:
        """
        Build the URL for ``method``.

        A configured port of 0 leaves the port out, for hosts whose base URL
        already carries one.

        """
        host = self.config.host.rstrip("/")
        method = method.lstrip("/")
        if self.config.port == 0:
            return f"{host}/{method}"
        return f"{host}:{self.config.port}/{method}"

    def build_headers(self, signature: str, timestamp: str) -> dict[str, str]:
        """
        Build authentication headers.

        Raises
        ------
        InvalidHeaderError
            If any value cannot be sent as an ASCII header

        """
        headers = {
            "Content-Type": "application/json",
            "X-Signature": signature,
            "X-Key": self.signer.public_key_hex,
            "X-Crypto": self.signer.scheme,
            "X-Timestamp": timestamp,
        }
        for name, value in headers.items():
            if not value.isascii() or "\n" in value or "\r" in value:
                raise InvalidHeaderError(name)
        return headers

    def build(
        self,
        method: str,
        target_key: str,
        params: Any,
        timestamp: str | None = None,
    ) -> AuthenticatedRequest:
        """
        Serialize, sign, and assemble a module request.

        Parameters
        ----------
        method : str
            Method name, appended to the base URL
        target_key : str
            Address of the target module
        params : Any
            Method parameters
        timestamp : str | None
            RFC3339 timestamp; captured now if None

        Returns
        -------
        AuthenticatedRequest
            Request reused unchanged across retries

        """
        timestamp = timestamp or rfc3339_now()
        body = canonical_json(ModuleRequest(target_key=target_key, params=params).to_body())
        signature = self.signer.sign(body).hex()
        return AuthenticatedRequest(
            url=self.build_url(method),
            headers=self.build_headers(signature, timestamp),
            body=body,
            signature=signature,
            public_key=self.signer.public_key_hex,
            timestamp=timestamp,
        )

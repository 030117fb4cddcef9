"""Batching multiple JSON-RPC calls into one wire exchange."""

import logging
from typing import Any

from pydantic import BaseModel, Field

from comx_api.errors import BatchRpcError, MalformedResponseError, ValidationError
from comx_api.rpc.envelope import ErrorDetail, RpcRequest, RpcResponse

logger = logging.getLogger(__name__)

# Batch ids are positional and start here for every batch
BATCH_ID_BASE = 0
DEFAULT_MAX_BATCH_SIZE = 100


class BatchRequest:
    """
    Ordered collection of calls sent together as one JSON array.

    Each added call gets a positional id starting at ``BATCH_ID_BASE``.

    """

    def __init__(self) -> None:
        self._calls: list[tuple[str, Any]] = []

    def add_request(self, method: str, params: Any = None) -> int:
        """
        Add a call to the batch.

        Parameters
        ----------
        method : str
            Remote method name
        params : Any
            Method parameters

        Returns
        -------
        int
            Id assigned to the call

        """
        self._calls.append((method, params))
        return BATCH_ID_BASE + len(self._calls) - 1

    @property
    def requests(self) -> list[RpcRequest]:
        return [
            RpcRequest(id=BATCH_ID_BASE + index, method=method, params=params)
            for index, (method, params) in enumerate(self._calls)
        ]

    def to_wire(self) -> list[dict[str, Any]]:
        return [request.to_wire() for request in self.requests]

    def clear(self) -> None:
        """Clear all pending calls without sending."""
        self._calls = []

    @property
    def call_count(self) -> int:
        return len(self._calls)

    def __len__(self) -> int:
        return len(self._calls)


class BatchOutcome(BaseModel):
    """
    Demultiplexed result of a batch.

    Every request id appears in exactly one of the two sequences, and each
    sequence follows the original request order.

    Attributes
    ----------
    successes : list[Any]
        Results of the calls that succeeded
    success_ids : list[int]
        Request id of each entry in ``successes``
    errors : list[ErrorDetail]
        Failures, each carrying the originating request id

    """

    successes: list[Any] = Field(default_factory=list)
    success_ids: list[int] = Field(default_factory=list)
    errors: list[ErrorDetail] = Field(default_factory=list)

    @property
    def is_success(self) -> bool:
        return not self.errors

    def __len__(self) -> int:
        return len(self.successes) + len(self.errors)

    def raise_for_errors(self) -> None:
        """
        Raise an aggregate error if any item failed.

        Raises
        ------
        BatchRpcError
            Carrying every per-item ErrorDetail

        """
        if self.errors:
            raise BatchRpcError(self.errors)


class BatchCorrelator:
    """
    Validates batches and maps wire responses back to their requests.

    A batch with failed items still produces a BatchOutcome holding the
    partial successes; callers that want all-or-nothing semantics call
    ``BatchOutcome.raise_for_errors``.

    Parameters
    ----------
    max_batch_size : int
        Largest batch accepted before any transport call

    """

    def __init__(self, max_batch_size: int = DEFAULT_MAX_BATCH_SIZE) -> None:
        self.max_batch_size = max_batch_size

    def validate(self, batch: BatchRequest) -> None:
        """
        Reject batches that must not be sent.

        Raises
        ------
        ValidationError
            If the batch exceeds ``max_batch_size``

        """
        if len(batch) > self.max_batch_size:
            msg = f"Batch of {len(batch)} requests exceeds maximum of {self.max_batch_size}"
            raise ValidationError(msg)

    def correlate(self, requests: list[RpcRequest], payload: Any) -> BatchOutcome:
        """
        Match a batch response array to the requests that produced it.

        A server that cannot read one item's id answers it with a null-id
        error. When exactly one request is left without a response and
        exactly one such error arrived, the error is recorded for that
        request with ``request_id=None``.

        Parameters
        ----------
        requests : list[RpcRequest]
            Requests in the order they were sent
        payload : Any
            Decoded JSON response body

        Returns
        -------
        BatchOutcome
            Successes and errors in original request order

        Raises
        ------
        MalformedResponseError
            If the payload is not an array, an element is malformed, or the
            response ids do not cover the request ids exactly once

        """
        if not isinstance(payload, list):
            msg = "Expected array response for batch request"
            raise MalformedResponseError(msg)

        by_id: dict[int, RpcResponse] = {}
        unattributed: list[RpcResponse] = []
        for element in payload:
            response = RpcResponse.from_wire(element)
            if response.id is None:
                if response.error is None:
                    msg = f"Batch response element without id: {element!r}"
                    raise MalformedResponseError(msg)
                unattributed.append(response)
                continue
            if response.id in by_id:
                msg = f"Duplicate response id {response.id} in batch"
                raise MalformedResponseError(msg)
            by_id[response.id] = response

        expected = {request.id for request in requests}
        unknown = set(by_id) - expected
        if unknown:
            msg = f"Batch response contains unknown ids: {sorted(unknown)}"
            raise MalformedResponseError(msg)

        unanswered = [request for request in requests if request.id not in by_id]
        if unattributed:
            if len(unattributed) != 1 or len(unanswered) != 1:
                msg = f"{len(unattributed)} error(s) without id for {len(unanswered)} unanswered request(s)"
                raise MalformedResponseError(msg)
        elif unanswered:
            request = unanswered[0]
            msg = f"Missing response for request id {request.id} ({request.method})"
            raise MalformedResponseError(msg)

        outcome = BatchOutcome()
        for request in requests:
            response = by_id.get(request.id)
            if response is None:
                error = unattributed[0].error
                outcome.errors.append(ErrorDetail(code=error.code, message=error.message, request_id=None))
            elif response.error is not None:
                outcome.errors.append(
                    ErrorDetail(
                        code=response.error.code,
                        message=response.error.message,
                        request_id=request.id,
                    )
                )
            else:
                outcome.successes.append(response.result)
                outcome.success_ids.append(request.id)

        if outcome.errors:
            logger.debug("Batch of %d requests had %d failed item(s)", len(requests), len(outcome.errors))
        return outcome

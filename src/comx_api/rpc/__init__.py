"""JSON-RPC transport with retry, batching, and envelope handling."""

from comx_api.rpc.batch import BatchCorrelator, BatchOutcome, BatchRequest
from comx_api.rpc.client import RpcClient
from comx_api.rpc.envelope import ErrorDetail, RequestIdCounter, RpcRequest, RpcResponse
from comx_api.rpc.retry import RetryExecutor, is_retryable, with_retry

__all__ = [
    "BatchCorrelator",
    "BatchOutcome",
    "BatchRequest",
    "ErrorDetail",
    "RequestIdCounter",
    "RetryExecutor",
    "RpcClient",
    "RpcRequest",
    "RpcResponse",
    "is_retryable",
    "with_retry",
]

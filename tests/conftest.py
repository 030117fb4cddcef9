"""Pytest configuration and shared fixtures for comx-api tests."""

import json
from collections.abc import Callable

import httpx
import pytest

from comx_api.crypto import KeyPair

NODE_URL = "http://node.test/rpc"


class RecordingSleep:
    """Stands in for asyncio.sleep and records requested delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class MockNode:
    """
    Scripted HTTP transport.

    Each queued handler serves one request, in order; the last handler keeps
    serving once the queue is down to one. Every request is recorded.

    """

    def __init__(self, *handlers: Callable[[httpx.Request], httpx.Response]) -> None:
        self.handlers = list(handlers)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        handler = self.handlers.pop(0) if len(self.handlers) > 1 else self.handlers[0]
        return handler(request)

    @property
    def call_count(self) -> int:
        return len(self.requests)

    def bodies(self) -> list:
        return [json.loads(request.content) for request in self.requests]

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self))


def rpc_result(result, status: int = 200) -> Callable[[httpx.Request], httpx.Response]:
    """Handler echoing the request id with ``result``."""

    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        return httpx.Response(status, json={"jsonrpc": "2.0", "id": body["id"], "result": result})

    return handler


def rpc_error(code: int, message: str) -> Callable[[httpx.Request], httpx.Response]:
    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        return httpx.Response(
            200, json={"jsonrpc": "2.0", "id": body["id"], "error": {"code": code, "message": message}}
        )

    return handler


def status(code: int, body=None) -> Callable[[httpx.Request], httpx.Response]:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(code, json=body if body is not None else {})

    return handler


def timeout(request: httpx.Request) -> httpx.Response:
    raise httpx.ReadTimeout("timed out", request=request)


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def keypair() -> KeyPair:
    return KeyPair.from_seed(bytes(range(32)))

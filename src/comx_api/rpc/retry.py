"""Retry logic with exponential backoff for RPC and module calls."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from functools import wraps
from typing import Any, Protocol, TypeVar

from comx_api.config import RetryPolicy
from comx_api.errors import ComxError, MaxRetriesExceededError

T = TypeVar("T")

logger = logging.getLogger(__name__)


class SleepFunc(Protocol):
    """Injectable async sleep, replaced in tests to record backoff delays."""

    async def __call__(self, seconds: float) -> None: ...


def is_retryable(error: BaseException) -> bool:
    """
    Classify an error as retryable or terminal.

    Timeouts, connection failures, 5xx server errors, and JSON-RPC server
    error codes are retryable. Everything else, including errors raised by
    code outside this package, is terminal.

    Parameters
    ----------
    error : BaseException
        Error raised by an attempt

    Returns
    -------
    bool
        True if another attempt may be made

    """
    if isinstance(error, ComxError):
        return bool(error.retryable)
    return False


class RetryExecutor:
    """
    Runs an async operation with bounded retries and exponential backoff.

    The executor holds no per-call state and can be shared between calls.

    Parameters
    ----------
    policy : RetryPolicy | None
        Default retry policy
    sleep : SleepFunc
        Coroutine used to wait between attempts

    """

    def __init__(self, policy: RetryPolicy | None = None, *, sleep: SleepFunc = asyncio.sleep) -> None:
        self.policy = policy or RetryPolicy()
        self._sleep = sleep

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        policy: RetryPolicy | None = None,
        *,
        allow_retries: bool = True,
        label: str = "operation",
    ) -> T:
        """
        Execute ``operation`` until it succeeds or retries are exhausted.

        Parameters
        ----------
        operation : Callable[[], Awaitable[T]]
            Zero-argument callable producing a fresh awaitable per attempt
        policy : RetryPolicy | None
            Policy for this call; defaults to the executor's policy
        allow_retries : bool
            If False, exactly one attempt is made
        label : str
            Name used in log messages

        Returns
        -------
        T
            Result of the first successful attempt

        Raises
        ------
        ComxError
            The last error observed once retries are exhausted, or the first
            terminal error
        MaxRetriesExceededError
            If no attempt ever ran

        """
        policy = policy or self.policy
        max_retries = policy.max_retries if allow_retries else 0
        max_attempts = max_retries + 1
        last_exception: BaseException | None = None

        for attempt in range(max_attempts):
            if attempt > 0:
                delay = policy.get_delay(attempt - 1)
                logger.debug(
                    "%s failed (attempt %d/%d), retrying in %.2fs: %s",
                    label,
                    attempt,
                    max_attempts,
                    delay,
                    last_exception,
                )
                await self._sleep(delay)
            try:
                return await operation()
            except Exception as e:
                last_exception = e
                if not is_retryable(e):
                    raise

        if last_exception is not None:
            logger.debug("%s failed after %d attempts", label, max_attempts)
            raise last_exception
        raise MaxRetriesExceededError()


def with_retry(
    policy: RetryPolicy | None = None,
    *,
    sleep: SleepFunc = asyncio.sleep,
) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]]:
    """
    Decorator adding retry with exponential backoff to an async function.

    Parameters
    ----------
    policy : RetryPolicy | None
        Retry policy. Uses the default policy if None.
    sleep : SleepFunc
        Coroutine used to wait between attempts

    Returns
    -------
    Callable
        Decorated coroutine function with retry logic

    """
    executor = RetryExecutor(policy, sleep=sleep)

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            return await executor.execute(lambda: func(*args, **kwargs), label=func.__name__)

        return wrapper

    return decorator

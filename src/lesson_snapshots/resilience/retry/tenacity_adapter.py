"""Resilience – TenacityRetryPolicy adapter.

The engine re-runs a whole resolve → fold → persist cycle when the store
reports that another writer extended the same snapshot first. This policy
decides how many times and how long to wait in between.
"""
from __future__ import annotations

from typing import Any, Awaitable, Callable, TypeVar

import tenacity as ten

from lesson_snapshots.observability.logging import get_logger

T = TypeVar("T")
logger = get_logger(__name__)


class TenacityRetryPolicy:
    """Retry policy backed by the ``tenacity`` library.

    Parameters
    ----------
    max_attempts:
        Maximum number of call attempts (including the first call).
    retry_on:
        Exception types that trigger another attempt. Anything else
        propagates immediately.
    initial_wait, max_wait:
        Multiplier and cap, in seconds, of the exponential backoff. Up to
        *initial_wait* of random jitter is added to every wait.

    Example
    -------
    ::

        policy = TenacityRetryPolicy(max_attempts=5, retry_on=(WriteConflictError,))
        snapshot = await policy.execute_async(lambda: builder.fold_once(record))
    """

    def __init__(
        self,
        max_attempts: int = 3,
        retry_on: tuple[type[BaseException], ...] = (Exception,),
        initial_wait: float = 0.01,
        max_wait: float = 1.0,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self._retry_on = retry_on
        self._initial_wait = initial_wait
        self._max_wait = max_wait

    def _before_sleep(self, state: ten.RetryCallState) -> None:
        exc = state.outcome.exception() if state.outcome else None
        logger.debug(
            "retry.scheduled",
            attempt=state.attempt_number,
            delay=state.next_action.sleep if state.next_action else None,
            exc=repr(exc),
        )

    def _build_async_retrying(self) -> ten.AsyncRetrying:
        return ten.AsyncRetrying(
            stop=ten.stop_after_attempt(self.max_attempts),
            wait=ten.wait_exponential(multiplier=self._initial_wait, max=self._max_wait)
            + ten.wait_random(0, self._initial_wait),
            retry=ten.retry_if_exception_type(self._retry_on),
            before_sleep=self._before_sleep,
            reraise=True,
        )

    async def execute_async(self, func: Callable[[], Awaitable[T]]) -> T:
        """Execute *func* asynchronously, retrying on ``retry_on`` errors."""
        result: Any = None
        async for attempt in self._build_async_retrying():
            with attempt:
                result = await func()
        return result  # type: ignore[no-any-return]


__all__ = ["TenacityRetryPolicy"]

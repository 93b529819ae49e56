"""Bounded retry loop with linear backoff.

Used by steps whose operation is expected to fail transiently, such as
connecting to an instance before its network is up. The wait after the
Nth failed attempt is ``N * base_delay``; there is no wait after the last
attempt. The sleeper is injectable so tests run without wall-clock delay.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, TypeVar

from ..errors import RetryExhaustedError, TransientConnectError
from ..observability.logging import get_logger
from ..settings import ProvisionerSettings
from .cancellation import CancellationToken

logger = get_logger(__name__)

T = TypeVar('T')

Sleeper = Callable[[float], Awaitable[None]]
RetryHook = Callable[[int, BaseException, float], None]


class RetryPolicy:
    """Retry an async operation a bounded number of times.

    Args:
        max_attempts: Total number of attempts, including the first.
        base_delay: Delay unit in seconds.
        attempt_timeout: Upper bound on one attempt; a timed-out attempt
            counts as a retryable failure.
        sleep: Awaitable sleeper, ``asyncio.sleep`` by default.
        retry_on: Exception types treated as retryable. Anything else
            propagates immediately.
    """

    def __init__(
        self,
        *,
        max_attempts: int = 5,
        base_delay: float = 1.0,
        attempt_timeout: float | None = None,
        sleep: Sleeper = asyncio.sleep,
        retry_on: tuple[type[BaseException], ...] = (TransientConnectError,),
    ) -> None:
        if max_attempts < 1:
            raise ValueError('max_attempts must be >= 1')
        if base_delay < 0:
            raise ValueError('base_delay must be >= 0')
        if attempt_timeout is not None and attempt_timeout <= 0:
            raise ValueError('attempt_timeout must be > 0')
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.attempt_timeout = attempt_timeout
        self.retry_on = retry_on
        self._sleep = sleep

    @classmethod
    def from_settings(
        cls,
        settings: ProvisionerSettings,
        *,
        sleep: Sleeper = asyncio.sleep,
    ) -> RetryPolicy:
        return cls(
            max_attempts=settings.connect_max_attempts,
            base_delay=settings.connect_backoff_seconds,
            attempt_timeout=settings.connect_attempt_timeout_seconds,
            sleep=sleep,
        )

    def delay_for(self, attempt: int) -> float:
        """Wait before the attempt following failed attempt ``attempt`` (1-based)."""
        return attempt * self.base_delay

    async def call(
        self,
        operation: Callable[[int], Awaitable[T]],
        *,
        cancellation: CancellationToken | None = None,
        on_retry: RetryHook | None = None,
    ) -> T:
        """Run ``operation(attempt)`` until it succeeds or attempts run out.

        Raises:
            RetryExhaustedError: every attempt failed; ``cause`` is the
                error of the last attempt.
            RunCancelledError: cancellation was observed between attempts.
        """
        last_error: BaseException | None = None

        for attempt in range(1, self.max_attempts + 1):
            if cancellation is not None:
                cancellation.raise_if_cancelled()

            try:
                if self.attempt_timeout is None:
                    return await operation(attempt)
                return await asyncio.wait_for(operation(attempt), self.attempt_timeout)
            except asyncio.TimeoutError as exc:
                last_error = TransientConnectError(
                    f'attempt {attempt} timed out after {self.attempt_timeout}s',
                    cause=exc,
                )
            except self.retry_on as exc:
                last_error = exc

            if attempt == self.max_attempts:
                break

            delay = self.delay_for(attempt)
            logger.info(
                'retry_scheduled',
                attempt=attempt,
                max_attempts=self.max_attempts,
                delay_seconds=delay,
                error=str(last_error),
            )
            if on_retry is not None:
                on_retry(attempt, last_error, delay)
            await self._sleep(delay)

        raise RetryExhaustedError(
            f'gave up after {self.max_attempts} attempts: {last_error}',
            attempts=self.max_attempts,
            cause=last_error,
        )

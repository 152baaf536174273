"""
Backoff Executor - Bounded Retries with Exponential Delay

Runs one unit of work (a zero-argument coroutine factory) with tenacity's
AsyncRetrying. Each failed attempt waits initial_delay * 2**k before the next
one (k = 0 for the first retry). Once every attempt has failed the last
error is returned as a Failure instead of being raised, so callers can treat
failures as data.

Usage:
    from utils.backoff import BackoffExecutor

    executor = BackoffExecutor(max_attempts=4, initial_delay_ms=1000)
    result = await executor.execute(lambda: client.fetch_page("/contacts", 2), index=0)
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, TypeVar

from tenacity import AsyncRetrying, RetryCallState, stop_after_attempt, wait_exponential

from utils.schemas import ExecutionResult, Failure, Success

logger = logging.getLogger(__name__)

T = TypeVar("T")

WorkUnit = Callable[[], Awaitable[T]]
SleepFn = Callable[[float], Awaitable[Any]]

DEFAULT_MAX_ATTEMPTS = 4
DEFAULT_INITIAL_DELAY_MS = 1000


class BackoffExecutor:
    """Executes work units with bounded retries and exponential backoff."""

    def __init__(
        self,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        initial_delay_ms: int = DEFAULT_INITIAL_DELAY_MS,
        sleep: SleepFn = asyncio.sleep,
        label: str = "work",
    ) -> None:
        """
        Args:
            max_attempts: Total attempts, initial one included
            initial_delay_ms: Delay before the first retry; doubles per retry
            sleep: Awaitable sleep taking seconds, injectable for tests
            label: Prefix used in log lines (usually the sync id)
        """
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {max_attempts}")
        if initial_delay_ms < 0:
            raise ValueError(f"initial_delay_ms must be >= 0, got {initial_delay_ms}")

        self.max_attempts = max_attempts
        self.initial_delay_ms = initial_delay_ms
        self.sleep = sleep
        self.label = label

    def delays(self) -> list[float]:
        """Backoff schedule in seconds, one entry per retry."""
        return [
            self.initial_delay_ms / 1000 * 2 ** attempt
            for attempt in range(self.max_attempts - 1)
        ]

    def _retrying(self, index: int, total: int | None) -> AsyncRetrying:
        position = f"{index + 1}/{total}" if total else str(index + 1)

        def log_retry(retry_state: RetryCallState) -> None:
            error = retry_state.outcome.exception() if retry_state.outcome else None
            delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
            logger.warning(
                "[%s] Call %s: attempt %d failed, retrying in %.0fms - %s",
                self.label,
                position,
                retry_state.attempt_number,
                delay * 1000,
                error,
            )

        return AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.initial_delay_ms / 1000, exp_base=2),
            sleep=self.sleep,
            before_sleep=log_retry,
            reraise=True,
        )

    async def execute(
        self,
        unit: WorkUnit,
        index: int = 0,
        total: int | None = None,
    ) -> ExecutionResult:
        """
        Run a unit until it succeeds or attempts run out.

        Args:
            unit: Zero-argument coroutine factory; called once per attempt
            index: Caller-supplied position of the unit, carried on the result
            total: Total unit count, used only for log lines

        Returns:
            Success wrapping the unit's value, or Failure with the last
            error's message. Never raises for unit errors.
        """
        attempts = 0
        value: Any = None

        try:
            async for attempt in self._retrying(index, total):
                with attempt:
                    attempts = attempt.retry_state.attempt_number
                    value = await unit()
        except Exception as e:
            logger.error(
                "[%s] Call %d: failed after %d attempts - %s",
                self.label, index + 1, attempts, e,
            )
            return Failure(index=index, message=str(e) or type(e).__name__, attempts=max(attempts, 1))

        if attempts > 1:
            logger.info("[%s] Call %d: succeeded on retry %d", self.label, index + 1, attempts - 1)

        return Success(index=index, value=value, attempts=attempts)

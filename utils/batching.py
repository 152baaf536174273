"""
Batch Scheduler - Rate-Limited Group Execution

Splits work units into consecutive groups of at most group_size, runs each
group concurrently (every unit wrapped by the BackoffExecutor) and joins the
group before starting the next one. Groups start no sooner than
min_group_interval_ms after the previous group started, which caps throughput
at group_size calls per interval.

Failures never stop the run: every unit yields a result, placed at the unit's
original index.
"""

import asyncio
import logging
import time
from typing import Any, Callable, Optional, Sequence

from utils.backoff import BackoffExecutor, SleepFn, WorkUnit
from utils.schemas import ExecutionResult, RateLimitConfig

logger = logging.getLogger(__name__)


class BatchScheduler:
    """Runs work units in paced, fixed-size concurrent groups."""

    def __init__(
        self,
        config: Optional[RateLimitConfig] = None,
        executor: Optional[BackoffExecutor] = None,
        sleep: SleepFn = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
        label: str = "unknown",
    ) -> None:
        self.config = config or RateLimitConfig()
        self.sleep = sleep
        self.clock = clock
        self.label = label
        self.executor = executor or BackoffExecutor(
            max_attempts=self.config.max_attempts,
            initial_delay_ms=self.config.initial_retry_delay_ms,
            sleep=sleep,
            label=label,
        )

    def partition(self, count: int) -> list[range]:
        """Index ranges of the groups for count units."""
        size = self.config.group_size
        return [range(start, min(start + size, count)) for start in range(0, count, size)]

    async def run(
        self,
        units: Sequence[WorkUnit],
        operation: str = "API calls",
    ) -> list[ExecutionResult]:
        """
        Execute all units and return one result per unit, in input order.

        Args:
            units: Zero-argument coroutine factories
            operation: Description used in log lines

        Returns:
            List of Success/Failure results aligned with units
        """
        total = len(units)
        groups = self.partition(total)
        results: list[Any] = [None] * total
        interval = self.config.min_group_interval_ms / 1000

        logger.info(
            "[%s] %s: %d calls across %d batches",
            self.label, operation, total, len(groups),
        )

        for group_number, group in enumerate(groups, 1):
            started = self.clock()
            logger.debug(
                "[%s] Batch %d/%d: executing %d calls",
                self.label, group_number, len(groups), len(group),
            )

            group_results = await asyncio.gather(
                *(self.executor.execute(units[i], index=i, total=total) for i in group)
            )
            for i, result in zip(group, group_results):
                results[i] = result

            elapsed = self.clock() - started
            logger.debug(
                "[%s] Batch %d/%d: completed in %.0fms",
                self.label, group_number, len(groups), elapsed * 1000,
            )

            if group_number < len(groups):
                wait = max(0.0, interval - elapsed)
                if wait > 0:
                    await self.sleep(wait)

        failures = sum(1 for result in results if not result.ok)
        if failures:
            logger.warning(
                "[%s] %s: %d/%d calls failed after retries",
                self.label, operation, failures, total,
            )

        return results


"""
Paginated Collector - Fetch Remaining Pages of a Remote Collection

The caller fetches the first page itself (offset=0) to learn the total record
count, then hands the remaining pages to collect_all, which runs them through
the BatchScheduler and concatenates the successful pages in page order.
Failed pages are logged and left out of the result.
"""

import asyncio
import logging
import math
from typing import Any, Awaitable, Callable, Optional, Sequence

from utils.backoff import SleepFn
from utils.batching import BatchScheduler
from utils.schemas import RateLimitConfig

logger = logging.getLogger(__name__)

PageFetcher = Callable[[int], Awaitable[Sequence[Any]]]


def count_pages(total_records: int, page_size: int) -> int:
    """ceil(total / page_size), zero for an empty collection."""
    if page_size < 1:
        raise ValueError(f"page_size must be >= 1, got {page_size}")
    return math.ceil(max(total_records, 0) / page_size)


async def collect_all(
    page_fetcher: PageFetcher,
    total_pages: int,
    config: Optional[RateLimitConfig] = None,
    *,
    start_page: int = 1,
    label: str = "unknown",
    operation: str = "Fetching pages",
    sleep: SleepFn = asyncio.sleep,
    scheduler: Optional[BatchScheduler] = None,
) -> list[Any]:
    """
    Fetch total_pages pages and concatenate their records.

    Args:
        page_fetcher: Coroutine function taking a page number
        total_pages: Number of pages to fetch
        config: Rate limit configuration
        start_page: First page number to request
        label: Sync id used in log lines
        operation: Description used in log lines
        sleep: Awaitable sleep, injectable for tests
        scheduler: Preconfigured scheduler, built from config when omitted

    Returns:
        Records from every successful page, in page order
    """
    if total_pages <= 0:
        return []

    logger.info("[%s] %s: %d pages to fetch", label, operation, total_pages)

    page_numbers = range(start_page, start_page + total_pages)
    units = [_page_unit(page_fetcher, page) for page in page_numbers]

    scheduler = scheduler or BatchScheduler(config, sleep=sleep, label=label)
    results = await scheduler.run(units, operation=operation)

    records: list[Any] = []
    failed_pages: list[int] = []
    for page, result in zip(page_numbers, results):
        if result.ok:
            records.extend(result.value or [])
        else:
            failed_pages.append(page)

    if failed_pages:
        logger.warning(
            "[%s] %s: %d pages failed to fetch",
            label, operation, len(failed_pages),
            extra={"sync_id": label, "failed_pages": failed_pages},
        )

    logger.info("[%s] %s: retrieved %d total records", label, operation, len(records))

    return records


def _page_unit(page_fetcher: PageFetcher, page: int) -> Callable[[], Awaitable[Sequence[Any]]]:
    async def fetch() -> Sequence[Any]:
        return await page_fetcher(page)

    return fetch

import asyncio
import logging

import pytest

from utils.pagination import collect_all, count_pages
from utils.schemas import RateLimitConfig


def make_records(count: int) -> list[dict]:
    return [{"id": str(i), "email": f"user{i}@example.com"} for i in range(1, count + 1)]


class PagedSource:
    def __init__(self, records: list[dict], page_size: int, failing: set[int] | None = None) -> None:
        self.records = records
        self.page_size = page_size
        self.failing = failing or set()
        self.requested: list[int] = []

    async def __call__(self, page: int) -> list[dict]:
        self.requested.append(page)
        if page in self.failing:
            raise ConnectionError(f"page {page} failed")
        start = (page - 1) * self.page_size
        return self.records[start:start + self.page_size]


@pytest.mark.parametrize(
    "total, page_size, expected",
    [(0, 100, 0), (1, 100, 1), (100, 100, 1), (101, 100, 2), (250, 100, 3)],
)
def test_count_pages(total: int, page_size: int, expected: int) -> None:
    assert count_pages(total, page_size) == expected


def test_count_pages_rejects_zero_page_size() -> None:
    with pytest.raises(ValueError):
        count_pages(10, 0)


@pytest.mark.asyncio
async def test_zero_pages_returns_empty_without_fetching(fast_config) -> None:
    source = PagedSource(make_records(10), page_size=100)

    assert await collect_all(source, 0, fast_config) == []
    assert source.requested == []


@pytest.mark.asyncio
async def test_collects_remaining_pages_after_first(sleep_recorder) -> None:
    records = make_records(250)
    source = PagedSource(records, page_size=100)
    config = RateLimitConfig(group_size=10, min_group_interval_ms=1000)

    # the caller already fetched page 1 and learned total=250
    first_page = await source(1)
    total_pages = count_pages(250, 100)
    source.requested.clear()

    remaining = await collect_all(source, total_pages - 1, config, start_page=2, sleep=sleep_recorder)

    assert source.requested == [2, 3]
    # one group of two units, so no pacing pause
    assert sleep_recorder.calls == []
    assert first_page + remaining == records


@pytest.mark.asyncio
async def test_failed_page_is_left_out_and_logged(fast_config, sleep_recorder, caplog) -> None:
    source = PagedSource(make_records(300), page_size=100, failing={2})

    with caplog.at_level(logging.WARNING, logger="utils.pagination"):
        records = await collect_all(source, 3, fast_config, sleep=sleep_recorder)

    assert [record["id"] for record in records] == [str(i) for i in list(range(1, 101)) + list(range(201, 301))]
    assert source.requested.count(2) == fast_config.max_attempts
    assert "1 pages failed to fetch" in caplog.text


@pytest.mark.asyncio
async def test_records_follow_page_order_regardless_of_completion(sleep_recorder) -> None:
    records = make_records(50)

    async def slow_early_pages(page: int) -> list[dict]:
        await asyncio.sleep(0.002 * (6 - page))
        return records[(page - 1) * 10:page * 10]

    config = RateLimitConfig(group_size=3, min_group_interval_ms=0)

    collected = await collect_all(slow_early_pages, 5, config, sleep=sleep_recorder)

    assert collected == records

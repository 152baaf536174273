"""Shared pytest fixtures."""

import pytest

from apps.saver.chunk_store import ChunkStore
from apps.saver.run_log import SyncRunLog
from tests.fakes import SleepRecorder
from utils.schemas import RateLimitConfig


@pytest.fixture
def sleep_recorder() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def fast_config() -> RateLimitConfig:
    return RateLimitConfig(
        group_size=10,
        min_group_interval_ms=0,
        max_attempts=2,
        initial_retry_delay_ms=0,
    )


@pytest.fixture
def db_path(tmp_path) -> str:
    return str(tmp_path / "db" / "acsync.db")


@pytest.fixture
def chunk_store(db_path) -> ChunkStore:
    return ChunkStore(db_path)


@pytest.fixture
def run_log(db_path) -> SyncRunLog:
    return SyncRunLog(db_path)

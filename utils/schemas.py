"""
Pydantic Schemas - Data Validation Models

Defines the Pydantic schemas shared across the sync pipeline:
- Work unit execution results (Success / Failure)
- Rate limit configuration for the batch scheduler
- API page results
- Stored chunks and sync run records
- Redis Pub/Sub messages

Usage:
    from utils.schemas import Failure, RateLimitConfig, Success

    config = RateLimitConfig(group_size=2, min_group_interval_ms=0)
"""

from datetime import datetime, timezone
from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from utils.config import settings

DatasetCategory = Literal["contacts", "deals"]
DATASET_CATEGORIES: tuple[str, ...] = ("contacts", "deals")


class Success(BaseModel):
    """A work unit that produced a value."""

    model_config = ConfigDict(frozen=True)

    index: int = Field(..., description="Caller-supplied unit index")
    value: Any = Field(default=None, description="Value returned by the unit")
    attempts: int = Field(default=1, ge=1, description="Attempts used")

    @property
    def ok(self) -> bool:
        return True


class Failure(BaseModel):
    """A work unit that failed on every attempt."""

    model_config = ConfigDict(frozen=True)

    index: int = Field(..., description="Caller-supplied unit index")
    message: str = Field(..., description="Message of the last error")
    attempts: int = Field(default=1, ge=1, description="Attempts used")

    @property
    def ok(self) -> bool:
        return False


ExecutionResult = Union[Success, Failure]


class RateLimitConfig(BaseModel):
    """Pacing and retry policy for batched API calls.

    At defaults the scheduler issues at most group_size calls per
    min_group_interval_ms, i.e. 10 calls per second.
    """

    model_config = ConfigDict(frozen=True)

    group_size: int = Field(default=10, ge=1)
    min_group_interval_ms: int = Field(default=1000, ge=0)
    max_attempts: int = Field(default=4, ge=1)
    initial_retry_delay_ms: int = Field(default=1000, ge=0)

    @classmethod
    def from_settings(cls) -> "RateLimitConfig":
        return cls(
            group_size=settings.RATE_LIMIT_GROUP_SIZE,
            min_group_interval_ms=settings.RATE_LIMIT_GROUP_INTERVAL_MS,
            max_attempts=settings.RETRY_MAX_ATTEMPTS,
            initial_retry_delay_ms=settings.RETRY_INITIAL_DELAY_MS,
        )

    @property
    def calls_per_second(self) -> float:
        if self.min_group_interval_ms == 0:
            return float("inf")
        return self.group_size / (self.min_group_interval_ms / 1000)


class PageResult(BaseModel):
    """First page of a paginated endpoint plus the advertised total."""

    records: list[dict[str, Any]] = Field(default_factory=list)
    total: int = Field(..., ge=0)
    meta: Optional[dict[str, Any]] = None


class StoredChunk(BaseModel):
    """One compressed slice of a generation as read back from the chunk store."""

    category: str
    generation_id: str
    sequence_index: int = Field(..., ge=0)
    chunk_total: int = Field(..., ge=1)
    payload: bytes
    record_count: int = Field(..., ge=0)
    duration_ms: int = Field(default=0, ge=0)
    created_at: datetime


class DatasetSyncResult(BaseModel):
    """Outcome of a successful dataset sync."""

    category: str
    record_count: int = Field(..., ge=0)
    duration_ms: int = Field(..., ge=0)


class DatasetOutcome(BaseModel):
    """Per-dataset entry of a sync summary."""

    success: bool
    record_count: int = 0
    duration_ms: int = 0
    error: Optional[str] = None


class SyncRun(BaseModel):
    """Run log entry, appended once per sync run."""

    sync_id: str
    started_at: datetime
    finished_at: datetime
    duration_ms: int = Field(..., ge=0)
    contacts_success: bool
    contacts_count: int = 0
    contacts_error: Optional[str] = None
    deals_success: bool
    deals_count: int = 0
    deals_error: Optional[str] = None
    overall_success: bool


class SyncSummary(BaseModel):
    """Result of one sync run across all datasets."""

    sync_id: str
    started_at: datetime
    finished_at: datetime
    duration_ms: int
    datasets: dict[str, DatasetOutcome]

    @property
    def overall_success(self) -> bool:
        return all(outcome.success for outcome in self.datasets.values())

    def to_run(self) -> SyncRun:
        contacts = self.datasets.get("contacts", DatasetOutcome(success=False, error="not run"))
        deals = self.datasets.get("deals", DatasetOutcome(success=False, error="not run"))
        return SyncRun(
            sync_id=self.sync_id,
            started_at=self.started_at,
            finished_at=self.finished_at,
            duration_ms=self.duration_ms,
            contacts_success=contacts.success,
            contacts_count=contacts.record_count,
            contacts_error=contacts.error,
            deals_success=deals.success,
            deals_count=deals.record_count,
            deals_error=deals.error,
            overall_success=self.overall_success,
        )


class SyncEvent(BaseModel):
    """Redis Pub/Sub event published after every sync run.

    {
        "type": "sync_completed",
        "sync_id": "sync-1736910900000",
        "overall_success": true,
        "ts": "2025-01-15T03:15:02Z"
    }
    """

    type: str = Field(default="sync_completed", description="Event type")
    sync_id: str = Field(..., description="Sync identifier")
    overall_success: bool = Field(..., description="All datasets succeeded")
    datasets: dict[str, DatasetOutcome] = Field(default_factory=dict)
    ts: datetime = Field(default_factory=lambda: datetime.now(timezone.utc), description="Timestamp")

from datetime import datetime, timedelta, timezone

import pytest

from utils.schemas import SyncRun

NOW = datetime(2025, 1, 15, 3, 15, tzinfo=timezone.utc)


def make_run(sync_id: str, started_at: datetime, *, ok: bool = True, duration_ms: int = 60_000,
             contacts: int = 100, deals: int = 20) -> SyncRun:
    return SyncRun(
        sync_id=sync_id,
        started_at=started_at,
        finished_at=started_at + timedelta(milliseconds=duration_ms),
        duration_ms=duration_ms,
        contacts_success=True,
        contacts_count=contacts,
        deals_success=ok,
        deals_count=deals if ok else 0,
        deals_error=None if ok else "Deals sync failed: boom",
        overall_success=ok,
    )


def test_history_is_newest_first(run_log) -> None:
    run_log.append(make_run("sync-1", NOW - timedelta(hours=2)))
    run_log.append(make_run("sync-2", NOW - timedelta(hours=1), ok=False))

    history = run_log.history()

    assert [run.sync_id for run in history] == ["sync-2", "sync-1"]
    assert history[0].deals_error == "Deals sync failed: boom"
    assert history[0].overall_success is False
    assert history[1].started_at == NOW - timedelta(hours=2)


def test_history_limit(run_log) -> None:
    for i in range(5):
        run_log.append(make_run(f"sync-{i}", NOW - timedelta(minutes=i)))

    assert [run.sync_id for run in run_log.history(limit=2)] == ["sync-0", "sync-1"]


def test_duplicate_sync_id_is_reported_not_raised(run_log) -> None:
    assert run_log.append(make_run("sync-1", NOW)) is True
    assert run_log.append(make_run("sync-1", NOW)) is False
    assert len(run_log.history()) == 1


def test_stats_cover_last_seven_days(run_log) -> None:
    run_log.append(make_run("old", NOW - timedelta(days=8), duration_ms=999_000))
    run_log.append(make_run("a", NOW - timedelta(days=1), duration_ms=60_000, contacts=100, deals=10))
    run_log.append(make_run("b", NOW - timedelta(hours=1), ok=False, duration_ms=30_000, contacts=200))

    stats = run_log.stats(now=NOW)

    assert stats["totalSyncs"] == 2
    assert stats["successfulSyncs"] == 1
    assert stats["successRate"] == "50.00%"
    assert stats["avgDurationSeconds"] == 45.0
    assert stats["avgContactsCount"] == 150
    assert stats["avgDealsCount"] == 5
    assert stats["lastSyncTime"] == (NOW - timedelta(hours=1)).isoformat()


def test_stats_without_runs(run_log) -> None:
    stats = run_log.stats(now=NOW)

    assert stats["totalSyncs"] == 0
    assert stats["successRate"] == "N/A"
    assert stats["avgDurationSeconds"] is None
    assert stats["lastSyncTime"] is None


def test_last_success_per_category(run_log) -> None:
    run_log.append(make_run("a", NOW - timedelta(hours=2), deals=3))
    run_log.append(make_run("b", NOW - timedelta(hours=1), ok=False))

    assert run_log.last_success("contacts").sync_id == "b"
    assert run_log.last_success("deals").sync_id == "a"


def test_last_success_without_runs(run_log) -> None:
    assert run_log.last_success("deals") is None
    with pytest.raises(ValueError):
        run_log.last_success("accounts")

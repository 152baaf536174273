import pytest

from apps.extractor.sync_job import SyncError, SyncRunner, new_sync_id
from apps.saver.batch_store import CompressedBatchStore
from tests.fakes import FakeClient, FakePublisher


def make_contacts(count: int) -> list[dict]:
    return [
        {"id": str(i), "email": f"user{i}@example.com", "fieldValues": [{"field": "1", "value": f"v{i}"}]}
        for i in range(1, count + 1)
    ]


def make_deals(count: int) -> list[dict]:
    return [
        {
            "id": str(i),
            "title": f"Deal {i}",
            "owner": "7",
            "group": "1",
            "stage": "3",
            "dealCustomFieldData": [{"customFieldId": "11", "fieldValue": str(i * 100)}],
        }
        for i in range(1, count + 1)
    ]


METADATA = {
    "/fields": [{"id": "1", "title": "Tier", "type": "text", "perstag": "TIER"}],
    "/users": [{"id": "7", "username": "ada", "firstName": "Ada", "lastName": "L", "email": "ada@example.com"}],
    "/dealGroups": [{"id": "1", "title": "Sales", "currency": "usd"}],
    "/dealStages": [{"id": "3", "title": "Qualified", "order": "1", "dealOrder": "", "group": "1"}],
    "/dealCustomFieldMeta": [{"id": "11", "fieldLabel": "Budget", "fieldType": "currency"}],
}


@pytest.fixture
def make_runner(chunk_store, run_log, fast_config, sleep_recorder):
    def factory(client: FakeClient, publisher: FakePublisher | None = None) -> SyncRunner:
        return SyncRunner(
            client,
            chunk_store=chunk_store,
            run_log=run_log,
            rate_limit=fast_config,
            page_size=100,
            chunk_size=100,
            publisher=publisher or FakePublisher(),
            sleep=sleep_recorder,
        )

    return factory


def test_new_sync_id_uses_epoch_millis() -> None:
    assert new_sync_id().startswith("sync-")
    assert new_sync_id().removeprefix("sync-").isdigit()


@pytest.mark.asyncio
async def test_contacts_fetch_remaining_pages_once_each(make_runner, chunk_store) -> None:
    client = FakeClient({"/contacts": make_contacts(250)}, METADATA)
    runner = make_runner(client)

    result = await runner.sync_dataset("contacts", "sync-1")

    assert result.record_count == 250
    assert client.first_page_requests == ["/contacts"]
    assert client.page_requests["/contacts"] == [2, 3]

    stored = CompressedBatchStore("contacts", chunk_store).load_latest()
    assert sorted(int(r["id"]) for r in stored) == list(range(1, 251))
    assert stored[0]["customFields"]["TIER"]["fieldTitle"] == "Tier"


@pytest.mark.asyncio
async def test_single_page_dataset_skips_collector(make_runner) -> None:
    client = FakeClient({"/contacts": make_contacts(40)}, METADATA)

    result = await make_runner(client).sync_dataset("contacts", "sync-1")

    assert result.record_count == 40
    assert client.page_requests == {}


@pytest.mark.asyncio
async def test_deals_are_enriched(make_runner, chunk_store) -> None:
    client = FakeClient({"/deals": make_deals(3)}, METADATA)

    await make_runner(client).sync_dataset("deals", "sync-1")

    deal = CompressedBatchStore("deals", chunk_store).load_latest()[0]
    assert deal["ownerData"]["username"] == "ada"
    assert deal["pipelineData"]["title"] == "Sales"
    assert deal["stageData"]["title"] == "Qualified"
    assert deal["customFields"]["Budget"]["value"] == "100"


@pytest.mark.asyncio
async def test_failed_page_is_dropped_not_fatal(make_runner) -> None:
    client = FakeClient({"/contacts": make_contacts(250)}, METADATA, failing_pages={"/contacts": {2}})

    result = await make_runner(client).sync_dataset("contacts", "sync-1")

    assert result.record_count == 150
    assert client.page_requests["/contacts"].count(2) == 2


@pytest.mark.asyncio
async def test_first_page_failure_keeps_previous_generation(make_runner, chunk_store) -> None:
    runner = make_runner(FakeClient({"/contacts": make_contacts(5)}, METADATA))
    await runner.sync_dataset("contacts", "sync-old")

    failing = make_runner(FakeClient({}, METADATA, failing_endpoints={"/contacts"}))
    with pytest.raises(SyncError, match="Contacts sync failed: first page unavailable"):
        await failing.sync_dataset("contacts", "sync-new")

    info = CompressedBatchStore("contacts", chunk_store).latest_info()
    assert info["generationId"] == "sync-old"
    assert info["recordCount"] == 5


@pytest.mark.asyncio
async def test_unknown_category(make_runner) -> None:
    with pytest.raises(ValueError, match="Unknown dataset category"):
        await make_runner(FakeClient({})).sync_dataset("accounts")


@pytest.mark.asyncio
async def test_run_sync_isolates_dataset_failures(make_runner, run_log) -> None:
    client = FakeClient({"/contacts": make_contacts(120)}, METADATA, failing_endpoints={"/dealStages"})
    publisher = FakePublisher()

    summary = await make_runner(client, publisher).run_sync(sync_id="sync-42")

    assert summary.overall_success is False
    assert summary.datasets["contacts"].success is True
    assert summary.datasets["contacts"].record_count == 120
    assert summary.datasets["deals"].success is False
    assert "Deals sync failed" in summary.datasets["deals"].error

    [run] = run_log.history()
    assert run.sync_id == "sync-42"
    assert run.contacts_count == 120
    assert run.deals_success is False

    [(channel, message)] = publisher.messages
    assert channel == "acsync.sync_completed"
    assert message["sync_id"] == "sync-42"
    assert message["overall_success"] is False
    assert not publisher.closed


@pytest.mark.asyncio
async def test_publish_failure_does_not_fail_the_run(make_runner) -> None:
    client = FakeClient({"/contacts": make_contacts(1), "/deals": make_deals(1)}, METADATA)

    summary = await make_runner(client, FakePublisher(fail=True)).run_sync(sync_id="sync-7")

    assert summary.overall_success is True

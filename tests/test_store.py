from __future__ import annotations

import asyncio
import json
from datetime import datetime, timedelta, timezone

import pytest

from adscope.core.store import InMemoryRecordStore, JsonFileRecordStore
from adscope.errors import RecordNotFound
from adscope.models.records import AdQueryOptions, Job, JobStatus


def _job(job_id: str, **kwargs) -> Job:
    return Job(id=job_id, query="nike", pages=["nike"], options=AdQueryOptions(), **kwargs)


def _hours_ago(hours: float) -> str:
    return (datetime.now(timezone.utc) - timedelta(hours=hours)).isoformat()


@pytest.fixture(params=["memory", "json"])
def store(request, tmp_path):
    if request.param == "memory":
        return InMemoryRecordStore(kind="jobs", ttl_hours=24, max_records=0)
    return JsonFileRecordStore(tmp_path / "jobs", Job, kind="jobs", ttl_hours=24, max_records=0)


@pytest.mark.asyncio
async def test_get_returns_independent_snapshots(store):
    await store.create(_job("job_1"))

    first = await store.get("job_1")
    first.results.append({"ad_id": "mutated"})
    second = await store.get("job_1")

    assert second.results == []
    assert json.dumps(second.to_dict()) == json.dumps((await store.get("job_1")).to_dict())


@pytest.mark.asyncio
async def test_get_unknown_id_raises(store):
    with pytest.raises(RecordNotFound):
        await store.get("job_missing")


@pytest.mark.asyncio
async def test_update_applies_mutator_and_returns_snapshot(store):
    await store.create(_job("job_1"))

    def _start(job: Job) -> None:
        job.status = JobStatus.RUNNING

    updated = await store.update("job_1", _start)

    assert updated.status == JobStatus.RUNNING
    assert (await store.get("job_1")).status == JobStatus.RUNNING


@pytest.mark.asyncio
async def test_update_discards_changes_when_mutator_raises(store):
    await store.create(_job("job_1"))

    def _broken(job: Job) -> None:
        job.status = JobStatus.FAILED
        raise RuntimeError("half-way")

    with pytest.raises(RuntimeError):
        await store.update("job_1", _broken)

    assert (await store.get("job_1")).status == JobStatus.QUEUED


@pytest.mark.asyncio
async def test_concurrent_updates_on_same_id_do_not_lose_writes(store):
    await store.create(_job("job_1"))

    async def _append(index: int) -> None:
        def _mutate(job: Job) -> None:
            job.results.append({"index": index})

        await store.update("job_1", _mutate)

    await asyncio.gather(*(_append(index) for index in range(20)))

    job = await store.get("job_1")
    assert sorted(item["index"] for item in job.results) == list(range(20))


@pytest.mark.asyncio
async def test_list_filters_with_predicate(store):
    await store.create(_job("job_1"))
    await store.create(_job("job_2", status=JobStatus.COMPLETED))

    completed = await store.list(lambda job: job.status == JobStatus.COMPLETED)

    assert [job.id for job in completed] == ["job_2"]
    assert len(await store.list()) == 2


@pytest.mark.asyncio
async def test_delete_removes_record(store):
    await store.create(_job("job_1"))

    await store.delete("job_1")

    with pytest.raises(RecordNotFound):
        await store.get("job_1")
    with pytest.raises(RecordNotFound):
        await store.delete("job_1")


@pytest.mark.asyncio
async def test_evict_expired_only_drops_old_terminal_records(store):
    await store.create(_job("job_old_done", status=JobStatus.COMPLETED, completed_at=_hours_ago(48)))
    await store.create(_job("job_old_running", status=JobStatus.RUNNING, created_at=_hours_ago(48)))
    await store.create(_job("job_recent_done", status=JobStatus.FAILED, completed_at=_hours_ago(1)))

    evicted = await store.evict_expired()

    assert evicted == ["job_old_done"]
    assert {job.id for job in await store.list()} == {"job_old_running", "job_recent_done"}


@pytest.mark.asyncio
async def test_capacity_cap_evicts_oldest_terminal_records():
    store = InMemoryRecordStore(kind="jobs", max_records=2)
    await store.create(_job("job_a", status=JobStatus.COMPLETED, created_at=_hours_ago(3)))
    await store.create(_job("job_b", status=JobStatus.RUNNING, created_at=_hours_ago(2)))
    await store.create(_job("job_c", created_at=_hours_ago(1)))

    assert {job.id for job in await store.list()} == {"job_b", "job_c"}


@pytest.mark.asyncio
async def test_json_store_persists_across_instances(tmp_path):
    first = JsonFileRecordStore(tmp_path, Job, kind="jobs")
    await first.create(_job("job_1", status=JobStatus.COMPLETED, results=[{"ad_id": "1"}]))

    second = JsonFileRecordStore(tmp_path, Job, kind="jobs")
    job = await second.get("job_1")

    assert job.status == JobStatus.COMPLETED
    assert job.results == [{"ad_id": "1"}]
    assert not list(tmp_path.glob("*.tmp"))

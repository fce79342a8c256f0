from __future__ import annotations

import asyncio

import pytest

from adscope.core.store import InMemoryRecordStore
from adscope.core.workflows import WorkflowOrchestrator
from adscope.errors import AlreadyFinished, ProviderUnavailable
from adscope.models.records import SLOT_NAMES, PageSlot, SlotStatus, Workflow, WorkflowStatus
from adscope.synthesis.providers import HeuristicProvider
from adscope.synthesis.resolver import SynthesisResolver
from conftest import FakeAdapter, FakeProvider

URLS = (
    "https://www.facebook.com/nike",
    "https://www.facebook.com/adidas",
    "https://www.facebook.com/puma",
)


class SelectiveAdapter:
    """Fails for one query, returns records for the rest."""

    name = "selective"

    def __init__(self, failing_query: str):
        self.failing_query = failing_query

    async def fetch_ads(self, query, options, *, cancel_token=None):
        if query == self.failing_query:
            raise RuntimeError("blocked")
        return [{"ad_id": f"{query}-{index}"} for index in range(3)]


class RecordingStore(InMemoryRecordStore):
    def __init__(self):
        super().__init__(kind="workflows")
        self.snapshots: list[Workflow] = []

    async def update(self, record_id, mutator):
        updated = await super().update(record_id, mutator)
        self.snapshots.append(updated)
        return updated


async def _create(store, urls=URLS, workflow_id="workflow_test") -> str:
    await store.create(
        Workflow(id=workflow_id, pages={slot: PageSlot(url=url) for slot, url in zip(SLOT_NAMES, urls)})
    )
    return workflow_id


@pytest.mark.asyncio
async def test_workflow_end_to_end_with_five_records_per_page():
    store = RecordingStore()
    tier_one = FakeAdapter("tier1", records=[{"ad_id": str(index)} for index in range(5)])
    fallback_tier = FakeAdapter("tier2", records=[{"ad_id": "never"}])
    orchestrator = WorkflowOrchestrator(store, [tier_one, fallback_tier], SynthesisResolver([HeuristicProvider()]))
    workflow_id = await _create(store)

    workflow = await orchestrator.run(workflow_id)

    assert workflow.status == WorkflowStatus.COMPLETED
    for slot in workflow.pages.values():
        assert slot.status == SlotStatus.COMPLETED
        assert slot.data.found_count == 5
        assert slot.data.source_tag == "tier1"
    assert workflow.synthesis.status in (SlotStatus.COMPLETED, SlotStatus.FAILED)
    assert workflow.synthesis.data["provider"] == "heuristic"
    assert workflow.progress.current_step == 4
    assert workflow.progress.percentage == 100
    assert workflow.progress.message == "Competitor analysis completed!"
    assert workflow.credits_used == 1
    assert fallback_tier.calls == []


@pytest.mark.asyncio
async def test_synthesis_never_leaves_pending_while_a_slot_is_pending():
    store = RecordingStore()
    adapter = FakeAdapter("tier1", records=[{"ad_id": "1"}], delay=0.01)
    orchestrator = WorkflowOrchestrator(store, [adapter], SynthesisResolver([HeuristicProvider()]))
    workflow_id = await _create(store)

    await orchestrator.run(workflow_id)

    assert store.snapshots
    for snapshot in store.snapshots:
        if not snapshot.pages_settled:
            assert snapshot.synthesis.status == SlotStatus.PENDING


@pytest.mark.asyncio
async def test_slot_exception_is_recorded_per_slot(monkeypatch):
    from adscope.core import workflows

    original = workflows.resolve_page

    async def _resolve(identifier, chain, options, *, cancel_token=None):
        if "adidas" in identifier:
            raise RuntimeError("resolver crashed")
        return await original(identifier, chain, options, cancel_token=cancel_token)

    captured: dict = {}

    class CapturingResolver(SynthesisResolver):
        async def synthesize(self, pages, *, cancel_token=None):
            captured.update(pages)
            return await super().synthesize(pages, cancel_token=cancel_token)

    monkeypatch.setattr(workflows, "resolve_page", _resolve)
    store = InMemoryRecordStore(kind="workflows")
    orchestrator = WorkflowOrchestrator(
        store,
        [FakeAdapter("tier1", records=[{"ad_id": "1"}])],
        CapturingResolver([HeuristicProvider()]),
    )
    workflow_id = await _create(store)

    workflow = await orchestrator.run(workflow_id)

    assert workflow.status == WorkflowStatus.COMPLETED
    assert workflow.pages["competitor_1"].status == SlotStatus.FAILED
    assert workflow.pages["competitor_1"].error == "resolver crashed"
    assert workflow.pages["your_page"].status == SlotStatus.COMPLETED
    assert workflow.pages["competitor_2"].status == SlotStatus.COMPLETED
    assert workflow.synthesis.status == SlotStatus.COMPLETED
    assert captured["competitor_1"] is None
    assert sum(1 for result in captured.values() if result is not None) == 2


@pytest.mark.asyncio
async def test_page_without_ads_is_a_completed_slot():
    store = InMemoryRecordStore(kind="workflows")
    orchestrator = WorkflowOrchestrator(
        store,
        [SelectiveAdapter("adidas")],
        SynthesisResolver([HeuristicProvider()]),
    )
    workflow_id = await _create(store)

    workflow = await orchestrator.run(workflow_id)

    competitor = workflow.pages["competitor_1"]
    assert competitor.status == SlotStatus.COMPLETED
    assert competitor.data.found_count == 0
    assert competitor.data.error == "All scraping methods failed (selective)"
    summary = workflow.synthesis.data["summary"]
    assert summary["competitors"][0]["total_ads"] == 0
    assert summary["your_page"]["total_ads"] == 3


@pytest.mark.asyncio
async def test_synthesis_failure_still_completes_workflow():
    store = InMemoryRecordStore(kind="workflows")
    orchestrator = WorkflowOrchestrator(
        store,
        [FakeAdapter("tier1", records=[])],
        SynthesisResolver([FakeProvider("never")]),
    )
    workflow_id = await _create(store)

    workflow = await orchestrator.run(workflow_id)

    assert workflow.status == WorkflowStatus.COMPLETED
    assert workflow.synthesis.status == SlotStatus.FAILED
    assert workflow.synthesis.error.startswith("NoDataAvailable")
    assert workflow.credits_used == 0


@pytest.mark.asyncio
async def test_cancel_running_workflow_suppresses_later_writes():
    store = InMemoryRecordStore(kind="workflows")
    provider = FakeProvider("fake", result={"insights": ["late"]})
    orchestrator = WorkflowOrchestrator(
        store,
        [FakeAdapter("slow", records=[{"ad_id": "1"}], delay=0.05)],
        SynthesisResolver([provider]),
    )
    workflow_id = await _create(store)

    task = asyncio.create_task(orchestrator.run(workflow_id))
    await asyncio.sleep(0.01)
    cancelled = await orchestrator.cancel(workflow_id)
    final = await task

    assert cancelled.status == WorkflowStatus.CANCELLED
    assert cancelled.progress.message == "Workflow cancelled by user"
    assert final.status == WorkflowStatus.CANCELLED
    stored = await store.get(workflow_id)
    assert stored.status == WorkflowStatus.CANCELLED
    assert stored.synthesis.status == SlotStatus.PENDING
    assert all(slot.status == SlotStatus.PENDING for slot in stored.pages.values())
    assert provider.prompts == []


@pytest.mark.asyncio
async def test_cancel_queued_workflow_then_run_is_a_no_op():
    store = InMemoryRecordStore(kind="workflows")
    adapter = FakeAdapter("tier1", records=[{"ad_id": "1"}])
    orchestrator = WorkflowOrchestrator(store, [adapter], SynthesisResolver([HeuristicProvider()]))
    workflow_id = await _create(store)

    await orchestrator.cancel(workflow_id)
    workflow = await orchestrator.run(workflow_id)

    assert workflow.status == WorkflowStatus.CANCELLED
    assert workflow.started_at is None
    assert adapter.calls == []


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [WorkflowStatus.COMPLETED, WorkflowStatus.FAILED, WorkflowStatus.CANCELLED])
async def test_cancel_finished_workflow_raises_already_finished(status):
    store = InMemoryRecordStore(kind="workflows")
    orchestrator = WorkflowOrchestrator(store, [], SynthesisResolver([HeuristicProvider()]))
    workflow_id = await _create(store)

    def _finish(workflow: Workflow) -> None:
        workflow.status = status
        workflow.completed_at = "2024-01-01T00:00:00+00:00"

    await store.update(workflow_id, _finish)
    before = (await store.get(workflow_id)).to_dict()

    with pytest.raises(AlreadyFinished):
        await orchestrator.cancel(workflow_id)

    assert (await store.get(workflow_id)).to_dict() == before


@pytest.mark.asyncio
async def test_uncaught_orchestration_error_fails_workflow(monkeypatch):
    from adscope.core import workflows

    store = InMemoryRecordStore(kind="workflows")
    orchestrator = WorkflowOrchestrator(store, [], SynthesisResolver([HeuristicProvider()]))
    workflow_id = await _create(store)

    original = workflows._set_step

    def _broken_step(workflow, step, message):
        if step == 3:
            raise RuntimeError("store write exploded")
        original(workflow, step, message)

    monkeypatch.setattr(workflows, "_set_step", _broken_step)

    workflow = await orchestrator.run(workflow_id)

    assert workflow.status == WorkflowStatus.FAILED
    assert "store write exploded" in workflow.progress.message
    assert workflow.synthesis.status == SlotStatus.PENDING


@pytest.mark.asyncio
async def test_every_provider_failing_still_completes_workflow():
    store = InMemoryRecordStore(kind="workflows")
    providers = [
        FakeProvider("ollama", error=ProviderUnavailable("ollama", "offline")),
        FakeProvider("openai", error=RuntimeError("HTTP 500")),
    ]
    orchestrator = WorkflowOrchestrator(
        store,
        [FakeAdapter("tier1", records=[{"ad_id": "1"}, {"ad_id": "2"}])],
        SynthesisResolver(providers),
    )
    workflow_id = await _create(store)

    workflow = await orchestrator.run(workflow_id)

    assert workflow.status == WorkflowStatus.COMPLETED
    assert all(slot.status == SlotStatus.COMPLETED for slot in workflow.pages.values())
    assert workflow.synthesis.status == SlotStatus.FAILED
    assert workflow.synthesis.error.startswith("AllProvidersUnavailable")
    assert "ollama: offline" in workflow.synthesis.error
    assert workflow.progress.message == "Competitor analysis completed (AI analysis unavailable)"
    assert workflow.progress.percentage == 100
    assert workflow.credits_used == 0
    assert all(len(provider.prompts) == 1 for provider in providers)

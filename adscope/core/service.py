"""Service facade used by the HTTP API and the CLI.

``create_job`` and ``create_workflow`` persist a queued record and schedule its
orchestrator as an ``asyncio.Task``. The task handle is returned to the caller
and also held by a ``TaskSupervisor`` so that crashes are logged instead of
disappearing with a garbage-collected task.
"""

from __future__ import annotations

import asyncio
import math
from collections.abc import Coroutine, Sequence
from dataclasses import dataclass
from typing import Any

from loguru import logger

from adscope.adapters.base import BackendAdapter
from adscope.adapters.registry import build_chain
from adscope.config import settings
from adscope.core.jobs import JobOrchestrator
from adscope.core.store import RecordStore, build_store
from adscope.core.workflows import WorkflowOrchestrator
from adscope.errors import NotReady
from adscope.models.records import (
    SLOT_NAMES,
    AdQueryOptions,
    Job,
    JobStatus,
    PageSlot,
    Workflow,
    WorkflowStatus,
    new_record_id,
)
from adscope.services.logger import log_event
from adscope.synthesis.resolver import SynthesisResolver

MAX_RESULTS_PAGE_SIZE = 500


@dataclass(slots=True)
class JobHandle:
    id: str
    task: asyncio.Task


@dataclass(slots=True)
class WorkflowHandle:
    id: str
    task: asyncio.Task


class TaskSupervisor:
    """Keeps strong references to background tasks and reports their crashes."""

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task] = set()

    @property
    def active(self) -> int:
        return len(self._tasks)

    def spawn(self, coro: Coroutine[Any, Any, Any], *, name: str) -> asyncio.Task:
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.debug(f"Task {task.get_name()} cancelled")
            return
        exc = task.exception()
        if exc is not None:
            logger.opt(exception=exc).error(f"Task {task.get_name()} crashed: {exc}")

    async def shutdown(self) -> None:
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)


class AdScopeService:
    def __init__(
        self,
        *,
        job_store: RecordStore[Job] | None = None,
        workflow_store: RecordStore[Workflow] | None = None,
        chain: Sequence[BackendAdapter] | None = None,
        synthesizer: SynthesisResolver | None = None,
        supervisor: TaskSupervisor | None = None,
    ):
        self.job_store = job_store if job_store is not None else build_store(Job, "jobs")
        self.workflow_store = workflow_store if workflow_store is not None else build_store(Workflow, "workflows")
        self.chain = list(chain) if chain is not None else build_chain()
        self.synthesizer = synthesizer or SynthesisResolver()
        self.supervisor = supervisor or TaskSupervisor()
        self.jobs = JobOrchestrator(self.job_store, self.chain)
        self.workflows = WorkflowOrchestrator(
            self.workflow_store,
            self.chain,
            self.synthesizer,
            options=AdQueryOptions(country=settings.default_country, limit=settings.default_limit),
        )

    # --- Jobs ---

    async def create_job(
        self,
        query: str,
        pages: Sequence[str] | None = None,
        *,
        country: str | None = None,
        limit: int | None = None,
    ) -> JobHandle:
        query = (query or "").strip()
        if not query:
            raise ValueError("query is required")
        options = AdQueryOptions(
            country=(country or settings.default_country).upper(),
            limit=limit or settings.default_limit,
        )
        if options.limit < 1:
            raise ValueError("limit must be positive")

        job = Job(
            id=new_record_id("job"),
            query=query,
            pages=[page for page in (pages or []) if page and page.strip()] or [query],
            options=options,
        )
        await self.job_store.create(job)
        log_event("job_created", "Scrape job queued", job_id=job.id, query=query, pages=len(job.pages))
        task = self.supervisor.spawn(self.jobs.run(job.id), name=job.id)
        return JobHandle(id=job.id, task=task)

    async def get_job(self, job_id: str) -> Job:
        return await self.job_store.get(job_id)

    async def list_jobs(self, status: JobStatus | None = None) -> list[Job]:
        if status is None:
            return await self.job_store.list()
        return await self.job_store.list(lambda job: job.status == status)

    async def get_job_results(self, job_id: str, page: int = 1, limit: int = 50) -> dict[str, Any]:
        job = await self.job_store.get(job_id)
        if job.status != JobStatus.COMPLETED:
            raise NotReady(job_id, job.status.value)

        page = max(1, int(page))
        limit = max(1, min(int(limit), MAX_RESULTS_PAGE_SIZE))
        start = (page - 1) * limit
        total = len(job.results)
        return {
            "job_id": job.id,
            "query": job.query,
            "results": job.results[start : start + limit],
            "pages": [
                {key: value for key, value in item.to_dict().items() if key != "records"}
                for item in job.page_results
            ],
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "total_pages": math.ceil(total / limit) if total else 0,
            },
        }

    # --- Workflows ---

    async def create_workflow(self, your_page: str, competitor_1: str, competitor_2: str) -> WorkflowHandle:
        urls = (your_page, competitor_1, competitor_2)
        if any(not (url or "").strip() for url in urls):
            raise ValueError("All three page identifiers are required")

        workflow = Workflow(
            id=new_record_id("workflow"),
            pages={slot: PageSlot(url=url.strip()) for slot, url in zip(SLOT_NAMES, urls)},
        )
        await self.workflow_store.create(workflow)
        log_event("workflow_created", "Competitor analysis queued", workflow_id=workflow.id)
        task = self.supervisor.spawn(self.workflows.run(workflow.id), name=workflow.id)
        return WorkflowHandle(id=workflow.id, task=task)

    async def get_workflow(self, workflow_id: str) -> Workflow:
        return await self.workflow_store.get(workflow_id)

    async def list_workflows(self, status: WorkflowStatus | None = None) -> list[Workflow]:
        if status is None:
            return await self.workflow_store.list()
        return await self.workflow_store.list(lambda workflow: workflow.status == status)

    async def cancel_workflow(self, workflow_id: str) -> Workflow:
        return await self.workflows.cancel(workflow_id)

    async def get_workflow_results(self, workflow_id: str) -> dict[str, Any]:
        workflow = await self.workflow_store.get(workflow_id)
        if workflow.status != WorkflowStatus.COMPLETED:
            raise NotReady(workflow_id, workflow.status.value)
        return {
            "workflow_id": workflow.id,
            "pages": {slot: page.to_dict() for slot, page in workflow.pages.items()},
            "analysis": workflow.synthesis.data,
            "analysis_error": workflow.synthesis.error,
            "credits_used": workflow.credits_used,
            "completed_at": workflow.completed_at,
        }

    # --- Housekeeping ---

    async def evict_expired(self) -> dict[str, int]:
        jobs = await self.job_store.evict_expired()
        workflows = await self.workflow_store.evict_expired()
        if jobs or workflows:
            log_event("records_evicted", "Expired records evicted", jobs=len(jobs), workflows=len(workflows))
        return {"jobs": len(jobs), "workflows": len(workflows)}

    async def shutdown(self) -> None:
        await self.supervisor.shutdown()


_service: AdScopeService | None = None


def get_service() -> AdScopeService:
    global _service
    if _service is None:
        _service = AdScopeService()
    return _service


def reset_service(service: AdScopeService | None = None) -> None:
    global _service
    _service = service

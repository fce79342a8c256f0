from __future__ import annotations

from collections.abc import Sequence

from loguru import logger

from adscope.adapters.base import BackendAdapter
from adscope.core.cancellation import CancelToken
from adscope.core.fallback import NO_SOURCE
from adscope.core.pages import resolve_page
from adscope.core.store import RecordStore
from adscope.errors import InvalidIdentifier, OrchestrationFault
from adscope.models.records import Job, JobStatus, PageResult, utc_now
from adscope.services.logger import log_job_step


class JobOrchestrator:
    """Runs a scrape job: pages are resolved one at a time, in request order."""

    def __init__(self, store: RecordStore[Job], chain: Sequence[BackendAdapter]):
        self.store = store
        self.chain = list(chain)

    async def run(self, job_id: str, *, cancel_token: CancelToken | None = None) -> Job:
        try:
            return await self._run(job_id, cancel_token)
        except Exception as exc:
            fault = OrchestrationFault(job_id, exc)
            message = str(fault)
            logger.opt(exception=exc).error(f"Job {job_id} failed: {message}")
            log_job_step(job_id, "job", "failed", {"error": message, "code": fault.code})
            return await self.store.update(job_id, lambda job: _fail(job, message))

    async def _run(self, job_id: str, cancel_token: CancelToken | None) -> Job:
        def _start(job: Job) -> None:
            job.status = JobStatus.RUNNING
            job.started_at = utc_now()
            job.progress.total = len(job.pages)
            job.progress.advance_to(0, f"Resolving {len(job.pages)} page(s)...")

        job = await self.store.update(job_id, _start)
        log_job_step(job_id, "job", "running", {"query": job.query, "pages": job.pages})

        invalid: list[InvalidIdentifier] = []
        total = len(job.pages)
        for index, identifier in enumerate(job.pages, start=1):
            try:
                page_result = await resolve_page(identifier, self.chain, job.options, cancel_token=cancel_token)
            except InvalidIdentifier as exc:
                invalid.append(exc)
                page_result = PageResult(
                    page_identifier=identifier,
                    source_url=identifier,
                    found_count=0,
                    records=[],
                    resolved_at=utc_now(),
                    source_tag=NO_SOURCE,
                    error=str(exc),
                )

            def _record_page(job: Job, page_result: PageResult = page_result, index: int = index) -> None:
                job.page_results.append(page_result)
                job.results.extend(page_result.records)
                job.progress.advance_to(
                    index,
                    f"Resolved {page_result.page_identifier} via {page_result.source_tag} ({index}/{total})",
                )

            await self.store.update(job_id, _record_page)
            log_job_step(
                job_id,
                "page",
                "completed" if page_result.error is None else "failed",
                {"page": identifier, "source": page_result.source_tag, "found": page_result.found_count},
            )

        if invalid and len(invalid) == total:
            message = str(invalid[0])
            log_job_step(job_id, "job", "failed", {"error": message})
            return await self.store.update(job_id, lambda job: _fail(job, message))

        def _complete(job: Job) -> None:
            job.status = JobStatus.COMPLETED
            job.completed_at = utc_now()
            job.error = None
            job.progress.advance_to(
                job.progress.total,
                f"Found {len(job.results)} ads across {total} page(s)",
            )

        job = await self.store.update(job_id, _complete)
        log_job_step(job_id, "job", "completed", {"ads": len(job.results)})
        return job


def _fail(job: Job, message: str) -> None:
    job.status = JobStatus.FAILED
    job.error = message
    job.completed_at = utc_now()

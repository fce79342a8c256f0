"""Three-page competitor analysis workflow.

The three page slots are resolved concurrently and settle independently; the
synthesis step starts only after all of them have left ``pending``. Once a
workflow is cancelled every later write from the orchestrator is dropped.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Sequence

from loguru import logger

from adscope.adapters.base import BackendAdapter
from adscope.core.cancellation import CancelToken
from adscope.core.pages import resolve_page
from adscope.core.store import RecordStore
from adscope.errors import AlreadyFinished, OperationCancelled, OrchestrationFault
from adscope.models.records import (
    AdQueryOptions,
    PageResult,
    SlotStatus,
    Workflow,
    WorkflowStatus,
    progress_percentage,
    utc_now,
)
from adscope.services.logger import log_job_step
from adscope.synthesis.resolver import SynthesisResolver

CANCELLED_MESSAGE = "Workflow cancelled by user"


def _guarded(mutator: Callable[[Workflow], None]) -> Callable[[Workflow], None]:
    def _apply(workflow: Workflow) -> None:
        if workflow.status == WorkflowStatus.CANCELLED:
            return
        mutator(workflow)

    return _apply


def _set_step(workflow: Workflow, step: int, message: str) -> None:
    workflow.progress.current_step = step
    workflow.progress.percentage = max(
        workflow.progress.percentage,
        progress_percentage(step, workflow.progress.total_steps),
    )
    workflow.progress.message = message


class WorkflowOrchestrator:
    def __init__(
        self,
        store: RecordStore[Workflow],
        chain: Sequence[BackendAdapter],
        synthesizer: SynthesisResolver,
        *,
        options: AdQueryOptions | None = None,
    ):
        self.store = store
        self.chain = list(chain)
        self.synthesizer = synthesizer
        self.options = options or AdQueryOptions()
        self._tokens: dict[str, CancelToken] = {}

    def token_for(self, workflow_id: str) -> CancelToken:
        token = self._tokens.get(workflow_id)
        if token is None:
            token = CancelToken()
            self._tokens[workflow_id] = token
        return token

    async def _write(self, workflow_id: str, mutator: Callable[[Workflow], None]) -> Workflow:
        return await self.store.update(workflow_id, _guarded(mutator))

    async def run(self, workflow_id: str) -> Workflow:
        token = self.token_for(workflow_id)
        try:
            return await self._run(workflow_id, token)
        except OperationCancelled:
            logger.info(f"Workflow {workflow_id} stopped after cancellation")
            return await self.store.get(workflow_id)
        except Exception as exc:
            fault = OrchestrationFault(workflow_id, exc)
            message = str(fault)
            logger.opt(exception=exc).error(f"Workflow {workflow_id} failed: {message}")
            log_job_step(workflow_id, "workflow", "failed", {"error": message, "code": fault.code})

            def _fail(workflow: Workflow) -> None:
                workflow.status = WorkflowStatus.FAILED
                workflow.completed_at = utc_now()
                workflow.progress.message = f"Workflow failed: {message}"

            return await self._write(workflow_id, _fail)
        finally:
            self._tokens.pop(workflow_id, None)

    async def _run(self, workflow_id: str, token: CancelToken) -> Workflow:
        def _start(workflow: Workflow) -> None:
            workflow.status = WorkflowStatus.RUNNING
            workflow.started_at = utc_now()
            _set_step(workflow, 1, "Analyzing Facebook pages...")

        workflow = await self._write(workflow_id, _start)
        if workflow.status == WorkflowStatus.CANCELLED:
            return workflow
        log_job_step(workflow_id, "workflow", "running", {"pages": {k: v.url for k, v in workflow.pages.items()}})

        slots = list(workflow.pages.items())
        settled = await asyncio.gather(
            *(self._resolve_slot(workflow_id, slot, page.url, token) for slot, page in slots),
            return_exceptions=True,
        )
        for (slot, _), outcome in zip(slots, settled):
            if isinstance(outcome, BaseException) and not isinstance(outcome, OperationCancelled):
                # _resolve_slot records its own failures; this only fires if that write failed.
                logger.error(f"Workflow {workflow_id} slot {slot} did not settle cleanly: {outcome}")
        token.raise_if_cancelled()

        def _begin_synthesis(wf: Workflow) -> None:
            for page in wf.pages.values():
                if page.status == SlotStatus.PENDING:
                    page.status = SlotStatus.FAILED
                    page.error = page.error or "Page resolution did not complete"
            _set_step(wf, 3, "Running AI competitive analysis...")

        workflow = await self._write(workflow_id, _begin_synthesis)
        if workflow.status == WorkflowStatus.CANCELLED:
            return workflow

        successful: dict[str, PageResult | None] = {
            slot: page.data if page.status == SlotStatus.COMPLETED else None
            for slot, page in workflow.pages.items()
        }
        try:
            analysis = await self.synthesizer.synthesize(successful, cancel_token=token)
        except OperationCancelled:
            raise
        except Exception as exc:
            message = str(exc) or exc.__class__.__name__
            logger.warning(f"Workflow {workflow_id} synthesis failed: {message}")
            log_job_step(workflow_id, "synthesis", "failed", {"error": message})

            def _synthesis_failed(wf: Workflow) -> None:
                wf.synthesis.status = SlotStatus.FAILED
                wf.synthesis.error = message
                wf.status = WorkflowStatus.COMPLETED
                wf.completed_at = utc_now()
                _set_step(wf, 4, "Competitor analysis completed (AI analysis unavailable)")

            return await self._write(workflow_id, _synthesis_failed)

        def _complete(wf: Workflow) -> None:
            wf.synthesis.status = SlotStatus.COMPLETED
            wf.synthesis.data = analysis
            wf.synthesis.error = None
            wf.credits_used += 1
            wf.status = WorkflowStatus.COMPLETED
            wf.completed_at = utc_now()
            _set_step(wf, 4, "Competitor analysis completed!")

        workflow = await self._write(workflow_id, _complete)
        log_job_step(workflow_id, "workflow", workflow.status.value, {"provider": analysis.get("provider")})
        return workflow

    async def _resolve_slot(self, workflow_id: str, slot: str, url: str, token: CancelToken) -> None:
        try:
            result = await resolve_page(url, self.chain, self.options, cancel_token=token)
        except OperationCancelled:
            raise
        except Exception as exc:
            message = str(exc) or exc.__class__.__name__
            log_job_step(workflow_id, slot, "failed", {"url": url, "error": message})

            def _slot_failed(wf: Workflow) -> None:
                wf.pages[slot].status = SlotStatus.FAILED
                wf.pages[slot].error = message

            await self._write(workflow_id, _slot_failed)
            return

        log_job_step(workflow_id, slot, "completed", {"found": result.found_count, "source": result.source_tag})

        def _slot_completed(wf: Workflow) -> None:
            wf.pages[slot].status = SlotStatus.COMPLETED
            wf.pages[slot].data = result
            wf.pages[slot].error = None

        await self._write(workflow_id, _slot_completed)

    async def cancel(self, workflow_id: str) -> Workflow:
        """Cancel a queued or running workflow.

        Raises ``AlreadyFinished`` for any terminal workflow and leaves it untouched.
        """

        def _cancel(wf: Workflow) -> None:
            if wf.is_terminal:
                raise AlreadyFinished(workflow_id, wf.status.value)
            wf.status = WorkflowStatus.CANCELLED
            wf.completed_at = utc_now()
            wf.progress.message = CANCELLED_MESSAGE

        workflow = await self.store.update(workflow_id, _cancel)
        self.token_for(workflow_id).cancel(CANCELLED_MESSAGE)
        log_job_step(workflow_id, "workflow", "cancelled")
        return workflow

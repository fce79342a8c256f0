from __future__ import annotations

from fastapi import APIRouter, Depends
from sse_starlette.sse import EventSourceResponse

from adscope.api.deps import failure, service_dependency, success
from adscope.config import settings
from adscope.core.pages import is_valid_page_url
from adscope.core.service import AdScopeService
from adscope.errors import NotReady
from adscope.models.schemas import CompetitorAnalysisRequest
from adscope.services import streaming

router = APIRouter(prefix="/api/workflow", tags=["workflow"])


@router.post("/competitor-analysis")
async def start_competitor_analysis(
    request: CompetitorAnalysisRequest,
    service: AdScopeService = Depends(service_dependency),
):
    for url in request.urls:
        if not is_valid_page_url(url):
            return failure(400, "INVALID_URL", f"Invalid Facebook page URL: {url}", {"url": url})

    handle = await service.create_workflow(*request.urls)
    workflow = await service.get_workflow(handle.id)
    return success(
        {
            "workflow_id": workflow.id,
            "status": workflow.status.value,
            "pages": {slot: page.url for slot, page in workflow.pages.items()},
            "created_at": workflow.created_at,
        }
    )


@router.get("/{workflow_id}/status")
async def get_workflow_status(workflow_id: str, service: AdScopeService = Depends(service_dependency)):
    workflow = await service.get_workflow(workflow_id)
    return success(streaming.workflow_status(workflow).data)


@router.post("/{workflow_id}/cancel")
async def cancel_workflow(workflow_id: str, service: AdScopeService = Depends(service_dependency)):
    workflow = await service.cancel_workflow(workflow_id)
    return success(
        {
            "workflow_id": workflow.id,
            "status": workflow.status.value,
            "message": workflow.progress.message,
            "completed_at": workflow.completed_at,
        }
    )


@router.get("/{workflow_id}/results")
async def get_workflow_results(workflow_id: str, service: AdScopeService = Depends(service_dependency)):
    try:
        results = await service.get_workflow_results(workflow_id)
    except NotReady as exc:
        workflow = await service.get_workflow(workflow_id)
        return success(
            {
                "message": f"Workflow is {exc.status}",
                "status": exc.status,
                "progress": workflow.to_dict()["progress"],
            },
            status_code=202,
        )
    return success(results)


@router.get("/{workflow_id}/stream")
async def stream_workflow(workflow_id: str, service: AdScopeService = Depends(service_dependency)):
    await service.get_workflow(workflow_id)

    async def event_generator():
        async for event in streaming.watch(
            lambda: service.get_workflow(workflow_id),
            streaming.workflow_status,
            interval_seconds=settings.stream_poll_interval_seconds,
        ):
            yield event.as_message()

    return EventSourceResponse(event_generator())

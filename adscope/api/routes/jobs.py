from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sse_starlette.sse import EventSourceResponse

from adscope.api.deps import service_dependency, success
from adscope.config import settings
from adscope.core.service import AdScopeService
from adscope.errors import NotReady
from adscope.models.schemas import ScrapeRequest
from adscope.services import streaming

router = APIRouter(prefix="/api/scrape", tags=["scrape"])


@router.post("")
async def start_scrape(request: ScrapeRequest, service: AdScopeService = Depends(service_dependency)):
    """Queue a scrape job. Poll ``/api/scrape/{id}`` or stream its progress."""
    handle = await service.create_job(
        request.query,
        request.pages,
        country=request.country,
        limit=request.limit,
    )
    job = await service.get_job(handle.id)
    return success(
        {
            "job_id": job.id,
            "status": job.status.value,
            "query": job.query,
            "pages": job.pages,
            "created_at": job.created_at,
        }
    )


@router.get("/{job_id}")
async def get_scrape(job_id: str, service: AdScopeService = Depends(service_dependency)):
    job = await service.get_job(job_id)
    data = job.to_dict()
    data["results_count"] = len(data.pop("results"))
    for item in data["page_results"]:
        item.pop("records", None)
    return success(data)


@router.get("/{job_id}/results")
async def get_scrape_results(
    job_id: str,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=500),
    service: AdScopeService = Depends(service_dependency),
):
    try:
        results = await service.get_job_results(job_id, page=page, limit=limit)
    except NotReady as exc:
        job = await service.get_job(job_id)
        return success(
            {
                "message": f"Job is {exc.status}",
                "status": exc.status,
                "progress": job.to_dict()["progress"],
                "error": job.error,
            },
            status_code=202,
        )
    return success(results)


@router.get("/{job_id}/stream")
async def stream_scrape(job_id: str, service: AdScopeService = Depends(service_dependency)):
    """SSE stream of job progress snapshots, closed once the job finishes."""
    await service.get_job(job_id)

    async def event_generator():
        async for event in streaming.watch(
            lambda: service.get_job(job_id),
            streaming.job_status,
            interval_seconds=settings.stream_poll_interval_seconds,
        ):
            yield event.as_message()

    return EventSourceResponse(event_generator())

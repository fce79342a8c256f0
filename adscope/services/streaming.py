from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any

from adscope.errors import RecordNotFound
from adscope.models.events import EventType, SSEEvent
from adscope.models.records import Job, Workflow


def job_status(job: Job) -> SSEEvent:
    """Progress snapshot of a job, without its result records."""
    return SSEEvent(
        event=EventType.JOB_COMPLETE if job.is_terminal else EventType.JOB_STATUS,
        data={
            "id": job.id,
            "status": job.status.value,
            "progress": {
                "current": job.progress.current,
                "total": job.progress.total,
                "percentage": job.progress.percentage,
                "message": job.progress.message,
            },
            "results_count": len(job.results),
            "error": job.error,
        },
    )


def workflow_status(workflow: Workflow) -> SSEEvent:
    data = workflow.to_dict()
    # Slot payloads carry every ad record; the stream only needs their outcome.
    for slot in data["pages"].values():
        page_data = slot.pop("data", None)
        slot["found_count"] = page_data["found_count"] if page_data else 0
        slot["source_tag"] = page_data["source_tag"] if page_data else None
    return SSEEvent(
        event=EventType.WORKFLOW_COMPLETE if workflow.is_terminal else EventType.WORKFLOW_STATUS,
        data=data,
    )


def error(message: str, **kwargs: Any) -> SSEEvent:
    return SSEEvent(event=EventType.ERROR, data={"message": message, **kwargs})


async def watch(
    fetch: Callable[[], Awaitable[Job | Workflow]],
    to_event: Callable[[Any], SSEEvent],
    *,
    interval_seconds: float,
) -> AsyncIterator[SSEEvent]:
    """Poll a record and yield an event whenever its snapshot changes.

    Stops after the first terminal snapshot.
    """
    last_payload: str | None = None
    while True:
        try:
            record = await fetch()
        except RecordNotFound as exc:
            yield error(str(exc), code=exc.code)
            return

        event = to_event(record)
        payload = json.dumps(event.data, sort_keys=True)
        if payload != last_payload:
            last_payload = payload
            yield event
        if record.is_terminal:
            return
        await asyncio.sleep(interval_seconds)

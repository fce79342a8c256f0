"""Job, workflow and page-result state records.

Records are plain mutable dataclasses. The store hands out deep copies, so a
record obtained from ``get`` is a snapshot and never changes underneath the
caller. ``to_dict`` output is JSON-compatible and is what the HTTP boundary and
the JSON-file store serialize.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

AdRecord = dict[str, Any]

SLOT_NAMES: tuple[str, str, str] = ("your_page", "competitor_1", "competitor_2")
WORKFLOW_TOTAL_STEPS = 4


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def new_record_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex}"


def progress_percentage(current: int, total: int) -> int:
    if total <= 0:
        return 0
    return max(0, min(100, round(100 * current / total)))


class JobStatus(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class WorkflowStatus(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class SlotStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


JOB_TERMINAL = frozenset({JobStatus.COMPLETED, JobStatus.FAILED})
WORKFLOW_TERMINAL = frozenset(
    {WorkflowStatus.COMPLETED, WorkflowStatus.FAILED, WorkflowStatus.CANCELLED}
)


@dataclass(slots=True)
class AdQueryOptions:
    country: str = "US"
    limit: int = 50

    def to_dict(self) -> dict[str, Any]:
        return {"country": self.country, "limit": self.limit}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AdQueryOptions":
        return cls(country=str(data.get("country", "US")), limit=int(data.get("limit", 50)))


@dataclass(slots=True)
class PageResult:
    page_identifier: str
    source_url: str
    found_count: int
    records: list[AdRecord]
    resolved_at: str
    source_tag: str
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "page_identifier": self.page_identifier,
            "source_url": self.source_url,
            "found_count": self.found_count,
            "records": list(self.records),
            "resolved_at": self.resolved_at,
            "source_tag": self.source_tag,
            "error": self.error,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PageResult":
        return cls(
            page_identifier=data["page_identifier"],
            source_url=data["source_url"],
            found_count=int(data.get("found_count", 0)),
            records=list(data.get("records") or []),
            resolved_at=data["resolved_at"],
            source_tag=data.get("source_tag", "none"),
            error=data.get("error"),
        )


@dataclass(slots=True)
class JobProgress:
    current: int = 0
    total: int = 0
    percentage: int = 0
    message: str = ""

    def advance_to(self, current: int, message: str) -> None:
        self.current = current
        self.percentage = max(self.percentage, progress_percentage(current, self.total))
        self.message = message


@dataclass(slots=True)
class Job:
    id: str
    query: str
    pages: list[str]
    options: AdQueryOptions
    status: JobStatus = JobStatus.QUEUED
    created_at: str = field(default_factory=utc_now)
    started_at: str | None = None
    completed_at: str | None = None
    progress: JobProgress = field(default_factory=JobProgress)
    results: list[AdRecord] = field(default_factory=list)
    page_results: list[PageResult] = field(default_factory=list)
    error: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in JOB_TERMINAL

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "query": self.query,
            "pages": list(self.pages),
            "options": self.options.to_dict(),
            "status": self.status.value,
            "created_at": self.created_at,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
            "progress": {
                "current": self.progress.current,
                "total": self.progress.total,
                "percentage": self.progress.percentage,
                "message": self.progress.message,
            },
            "results": list(self.results),
            "page_results": [item.to_dict() for item in self.page_results],
            "error": self.error,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Job":
        progress = data.get("progress") or {}
        return cls(
            id=data["id"],
            query=data["query"],
            pages=list(data.get("pages") or []),
            options=AdQueryOptions.from_dict(data.get("options") or {}),
            status=JobStatus(data.get("status", "queued")),
            created_at=data["created_at"],
            started_at=data.get("started_at"),
            completed_at=data.get("completed_at"),
            progress=JobProgress(
                current=int(progress.get("current", 0)),
                total=int(progress.get("total", 0)),
                percentage=int(progress.get("percentage", 0)),
                message=str(progress.get("message", "")),
            ),
            results=list(data.get("results") or []),
            page_results=[PageResult.from_dict(item) for item in data.get("page_results") or []],
            error=data.get("error"),
        )


@dataclass(slots=True)
class PageSlot:
    url: str
    status: SlotStatus = SlotStatus.PENDING
    data: PageResult | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "url": self.url,
            "status": self.status.value,
            "data": self.data.to_dict() if self.data is not None else None,
            "error": self.error,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PageSlot":
        raw = data.get("data")
        return cls(
            url=data["url"],
            status=SlotStatus(data.get("status", "pending")),
            data=PageResult.from_dict(raw) if isinstance(raw, dict) else None,
            error=data.get("error"),
        )


@dataclass(slots=True)
class SynthesisState:
    status: SlotStatus = SlotStatus.PENDING
    data: dict[str, Any] | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"status": self.status.value, "data": self.data, "error": self.error}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SynthesisState":
        return cls(
            status=SlotStatus(data.get("status", "pending")),
            data=data.get("data"),
            error=data.get("error"),
        )


@dataclass(slots=True)
class WorkflowProgress:
    current_step: int = 0
    total_steps: int = WORKFLOW_TOTAL_STEPS
    percentage: int = 0
    message: str = "Initializing workflow..."


@dataclass(slots=True)
class Workflow:
    id: str
    pages: dict[str, PageSlot]
    status: WorkflowStatus = WorkflowStatus.QUEUED
    synthesis: SynthesisState = field(default_factory=SynthesisState)
    progress: WorkflowProgress = field(default_factory=WorkflowProgress)
    created_at: str = field(default_factory=utc_now)
    started_at: str | None = None
    completed_at: str | None = None
    credits_used: int = 0

    @property
    def is_terminal(self) -> bool:
        return self.status in WORKFLOW_TERMINAL

    @property
    def pages_settled(self) -> bool:
        return all(slot.status != SlotStatus.PENDING for slot in self.pages.values())

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "status": self.status.value,
            "pages": {name: slot.to_dict() for name, slot in self.pages.items()},
            "synthesis": self.synthesis.to_dict(),
            "progress": {
                "current_step": self.progress.current_step,
                "total_steps": self.progress.total_steps,
                "percentage": self.progress.percentage,
                "message": self.progress.message,
            },
            "created_at": self.created_at,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
            "credits_used": self.credits_used,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Workflow":
        progress = data.get("progress") or {}
        return cls(
            id=data["id"],
            pages={name: PageSlot.from_dict(slot) for name, slot in (data.get("pages") or {}).items()},
            status=WorkflowStatus(data.get("status", "queued")),
            synthesis=SynthesisState.from_dict(data.get("synthesis") or {}),
            progress=WorkflowProgress(
                current_step=int(progress.get("current_step", 0)),
                total_steps=int(progress.get("total_steps", WORKFLOW_TOTAL_STEPS)),
                percentage=int(progress.get("percentage", 0)),
                message=str(progress.get("message", "")),
            ),
            created_at=data["created_at"],
            started_at=data.get("started_at"),
            completed_at=data.get("completed_at"),
            credits_used=int(data.get("credits_used", 0)),
        )

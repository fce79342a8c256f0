from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class EventType(str, Enum):
    JOB_STATUS = "job_status"
    JOB_COMPLETE = "job_complete"
    WORKFLOW_STATUS = "workflow_status"
    WORKFLOW_COMPLETE = "workflow_complete"
    ERROR = "error"


@dataclass
class SSEEvent:
    event: EventType
    data: dict[str, Any] = field(default_factory=dict)

    def as_message(self) -> dict[str, str]:
        return {"event": self.event.value, "data": json.dumps(self.data)}

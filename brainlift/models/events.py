from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class EventType(str, Enum):
    JOB_PROGRESS = "job_progress"
    JOB_RESULT = "job_result"
    JOB_ERROR = "job_error"
    RESEARCH_STARTED = "research_started"
    RESEARCH_COMPLETE = "research_complete"
    RESEARCH_CANCELLED = "research_cancelled"


@dataclass
class SSEEvent:
    event: EventType
    data: dict[str, Any] = field(default_factory=dict)

    @property
    def document_id(self) -> str | None:
        return self.data.get("document_id")

    def format_data(self) -> str:
        return json.dumps(self.data, default=str)

    def format(self) -> str:
        return f"event: {self.event.value}\ndata: {self.format_data()}\n\n"

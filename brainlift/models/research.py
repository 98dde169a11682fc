from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any


class WorkflowKind(StrEnum):
    EXPERTS = "experts"
    CONTRARIAN_VIEWS = "contrarian_views"
    KNOWLEDGE_MAP = "knowledge_map"


class JobState(StrEnum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (JobState.COMPLETED, JobState.FAILED)


class DocumentStatus(StrEnum):
    IDLE = "idle"
    RESEARCHING = "researching"
    COMPLETE = "complete"
    PARTIALLY_FAILED = "partially_failed"


class SourceType(StrEnum):
    ACADEMIC = "academic"
    INDUSTRY = "industry"
    NEWS = "news"
    BLOG = "blog"
    OTHER = "other"


@dataclass(frozen=True, slots=True)
class RawSource:
    """One search hit as returned by the search collaborator."""

    url: str
    title: str
    content: str = ""
    score: float = 0.0
    author: str | None = None
    published_date: str | None = None


@dataclass(frozen=True, slots=True)
class Source:
    id: str
    url: str
    title: str
    source_type: SourceType
    credibility_score: int
    relevance_score: int
    key_quotes: tuple[str, ...] = ()
    summary: str = ""
    author: str | None = None
    publish_date: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["source_type"] = self.source_type.value
        data["key_quotes"] = list(self.key_quotes)
        return data


@dataclass(slots=True)
class ResultMetadata:
    search_duration_ms: int = 0
    synthesis_duration_ms: int = 0
    api_call_count: int = 0


@dataclass(slots=True)
class WorkflowResult:
    sources: list[Source]
    generated_content: str
    credibility_score: float
    analysis: str = ""
    metadata: ResultMetadata = field(default_factory=ResultMetadata)

    def to_dict(self) -> dict[str, Any]:
        return {
            "sources": [source.to_dict() for source in self.sources],
            "generated_content": self.generated_content,
            "credibility_score": self.credibility_score,
            "analysis": self.analysis,
            "metadata": asdict(self.metadata),
        }


def new_job_id(document_id: str, kind: WorkflowKind) -> str:
    return f"{kind.value}_{document_id}_{uuid.uuid4().hex[:12]}"


@dataclass(slots=True)
class Job:
    """One workflow kind executing for one document."""

    document_id: str
    kind: WorkflowKind
    purpose: str
    id: str = ""
    state: JobState = JobState.PENDING
    progress: int = 0
    started_at: datetime | None = None
    completed_at: datetime | None = None
    error_message: str | None = None
    retryable: bool | None = None
    cancelled: bool = False
    retry_count: int = 0
    result: WorkflowResult | None = None
    merged: bool = False

    def __post_init__(self) -> None:
        if not self.id:
            self.id = new_job_id(self.document_id, self.kind)

    @property
    def terminal(self) -> bool:
        return self.state.terminal

    def advance(self, progress: int) -> bool:
        """Move progress forward; returns False when it would go backwards."""
        progress = max(0, min(int(progress), 100))
        if progress < self.progress:
            return False
        self.progress = progress
        return True

    def complete(self, result: WorkflowResult) -> None:
        self.state = JobState.COMPLETED
        self.result = result
        self.error_message = None
        self.progress = 100
        self.completed_at = datetime.now()

    def fail(self, message: str, *, retryable: bool = False, cancelled: bool = False) -> None:
        self.state = JobState.FAILED
        self.result = None
        self.error_message = message or "unknown error"
        self.retryable = retryable
        self.cancelled = cancelled
        self.completed_at = datetime.now()

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "document_id": self.document_id,
            "kind": self.kind.value,
            "purpose": self.purpose,
            "state": self.state.value,
            "progress": self.progress,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "error_message": self.error_message,
            "retryable": self.retryable,
            "cancelled": self.cancelled,
            "retry_count": self.retry_count,
        }


@dataclass(slots=True)
class KindProgress:
    progress: int = 0
    state: JobState = JobState.PENDING


@dataclass(slots=True)
class DocumentProgress:
    document_id: str
    per_kind: dict[WorkflowKind, KindProgress]
    overall: int
    status: DocumentStatus = DocumentStatus.IDLE
    eta_seconds: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "document_id": self.document_id,
            "per_kind": {
                kind.value: {"progress": item.progress, "state": item.state.value}
                for kind, item in self.per_kind.items()
            },
            "overall": self.overall,
            "status": self.status.value,
            "eta_seconds": self.eta_seconds,
        }

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Protocol

from brainlift.models.research import DocumentStatus, WorkflowKind, WorkflowResult


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class ResearchDocument:
    """Research-facing slice of a user's document."""

    id: str
    purpose: str = ""
    status: DocumentStatus = DocumentStatus.IDLE
    content: dict[WorkflowKind, WorkflowResult] = field(default_factory=dict)
    errors: dict[WorkflowKind, str] = field(default_factory=dict)
    updated_at: str = field(default_factory=_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "purpose": self.purpose,
            "status": self.status.value,
            "content": {kind.value: result.to_dict() for kind, result in self.content.items()},
            "errors": {kind.value: message for kind, message in self.errors.items()},
            "updated_at": self.updated_at,
        }


class DocumentStore(Protocol):
    def get(self, document_id: str) -> ResearchDocument: ...

    def set_status(self, document_id: str, status: DocumentStatus) -> None: ...

    def set_purpose(self, document_id: str, purpose: str) -> None: ...

    def set_content(self, document_id: str, kind: WorkflowKind, result: WorkflowResult) -> None: ...

    def record_error(self, document_id: str, kind: WorkflowKind, message: str) -> None: ...

    def clear_research(self, document_id: str) -> None: ...


class InMemoryDocumentStore:
    """Process-local document state. Durable persistence lives elsewhere."""

    def __init__(self) -> None:
        self._documents: dict[str, ResearchDocument] = {}

    def get(self, document_id: str) -> ResearchDocument:
        document = self._documents.get(document_id)
        if document is None:
            document = ResearchDocument(id=document_id)
            self._documents[document_id] = document
        return document

    def set_status(self, document_id: str, status: DocumentStatus) -> None:
        document = self.get(document_id)
        document.status = status
        document.updated_at = _now()

    def set_purpose(self, document_id: str, purpose: str) -> None:
        document = self.get(document_id)
        document.purpose = purpose
        document.updated_at = _now()

    def set_content(self, document_id: str, kind: WorkflowKind, result: WorkflowResult) -> None:
        document = self.get(document_id)
        document.content[kind] = result
        document.errors.pop(kind, None)
        document.updated_at = _now()

    def record_error(self, document_id: str, kind: WorkflowKind, message: str) -> None:
        document = self.get(document_id)
        document.errors[kind] = message
        document.updated_at = _now()

    def clear_research(self, document_id: str) -> None:
        document = self.get(document_id)
        document.content.clear()
        document.errors.clear()
        document.updated_at = _now()

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


# --- Requests ---


class ResearchRequest(BaseModel):
    purpose: str = Field(..., description="What the user wants to learn or achieve")


# --- Responses ---


class ActionResponse(BaseModel):
    document_id: str
    accepted: bool
    status: str


class KindProgressResponse(BaseModel):
    progress: int
    state: str


class DocumentProgressResponse(BaseModel):
    document_id: str
    per_kind: dict[str, KindProgressResponse]
    overall: int
    status: str
    eta_seconds: float | None = None


class JobResponse(BaseModel):
    id: str
    kind: str
    state: str
    progress: int
    retry_count: int
    started_at: str | None = None
    completed_at: str | None = None
    error_message: str | None = None
    retryable: bool | None = None
    cancelled: bool = False


class DocumentContentResponse(BaseModel):
    id: str
    purpose: str
    status: str
    content: dict[str, Any]
    errors: dict[str, str]
    updated_at: str

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from sse_starlette.sse import EventSourceResponse

from brainlift.api.deps import get_orchestrator
from brainlift.errors import ValidationError
from brainlift.models.schemas import (
    ActionResponse,
    DocumentContentResponse,
    DocumentProgressResponse,
    JobResponse,
    ResearchRequest,
)
from brainlift.research_core.orchestrator import ResearchOrchestrator
from brainlift.services import logger as log_service

router = APIRouter(prefix="/api/documents", tags=["research"])


def _action(orchestrator: ResearchOrchestrator, document_id: str, accepted: bool) -> ActionResponse:
    return ActionResponse(
        document_id=document_id,
        accepted=accepted,
        status=orchestrator.document_status(document_id).value,
    )


@router.post("/{document_id}/research", response_model=ActionResponse)
async def start_research(
    document_id: str,
    request: ResearchRequest,
    orchestrator: ResearchOrchestrator = Depends(get_orchestrator),
):
    """Start the three research workflows for a document."""
    try:
        accepted = await orchestrator.start_research(document_id, request.purpose)
    except ValidationError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    if not accepted:
        raise HTTPException(status_code=409, detail="Research already in progress for this document")
    log_service.log_event(
        event_type="research_requested",
        message="Research started",
        document_id=document_id,
        purpose=request.purpose[:100],
    )
    return _action(orchestrator, document_id, accepted)


@router.post("/{document_id}/cancel", response_model=ActionResponse)
async def cancel_research(document_id: str, orchestrator: ResearchOrchestrator = Depends(get_orchestrator)):
    accepted = await orchestrator.cancel(document_id)
    return _action(orchestrator, document_id, accepted)


@router.post("/{document_id}/restart", response_model=ActionResponse)
async def restart_research(document_id: str, orchestrator: ResearchOrchestrator = Depends(get_orchestrator)):
    accepted = await orchestrator.restart(document_id)
    if not accepted:
        raise HTTPException(status_code=404, detail="No previous research to restart")
    return _action(orchestrator, document_id, accepted)


@router.post("/{document_id}/retry", response_model=ActionResponse)
async def retry_failed(document_id: str, orchestrator: ResearchOrchestrator = Depends(get_orchestrator)):
    """Re-run only the workflows that did not complete."""
    accepted = await orchestrator.retry_failed(document_id)
    return _action(orchestrator, document_id, accepted)


@router.get("/{document_id}/status", response_model=DocumentProgressResponse)
async def research_status(document_id: str, orchestrator: ResearchOrchestrator = Depends(get_orchestrator)):
    return DocumentProgressResponse(**orchestrator.status(document_id).to_dict())


@router.get("/{document_id}/jobs", response_model=list[JobResponse])
async def research_jobs(document_id: str, orchestrator: ResearchOrchestrator = Depends(get_orchestrator)):
    return [JobResponse(**job.to_dict()) for job in orchestrator.jobs(document_id)]


@router.get("/{document_id}/content", response_model=DocumentContentResponse)
async def research_content(document_id: str, orchestrator: ResearchOrchestrator = Depends(get_orchestrator)):
    return DocumentContentResponse(**orchestrator.document(document_id).to_dict())


@router.get("/{document_id}/events")
async def stream_events(document_id: str, orchestrator: ResearchOrchestrator = Depends(get_orchestrator)):
    """SSE endpoint that streams progress and result events for one document."""
    subscription = orchestrator.subscribe(document_id=document_id)

    async def event_generator():
        try:
            async for event in subscription:
                yield {"event": event.event.value, "data": event.format_data()}
        finally:
            subscription.close()

    return EventSourceResponse(event_generator())

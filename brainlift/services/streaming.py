from __future__ import annotations

from brainlift.models.events import EventType, SSEEvent
from brainlift.models.research import DocumentStatus, Job, WorkflowKind


def research_started(document_id: str, purpose: str, jobs: list[Job]) -> SSEEvent:
    return SSEEvent(
        event=EventType.RESEARCH_STARTED,
        data={
            "document_id": document_id,
            "purpose": purpose,
            "jobs": [{"id": job.id, "kind": job.kind.value} for job in jobs],
        },
    )


def job_progress(job: Job) -> SSEEvent:
    """Emit the current progress checkpoint of one job."""
    return SSEEvent(
        event=EventType.JOB_PROGRESS,
        data={
            "document_id": job.document_id,
            "job_id": job.id,
            "kind": job.kind.value,
            "progress": job.progress,
            "state": job.state.value,
        },
    )


def job_result(job: Job) -> SSEEvent:
    return SSEEvent(
        event=EventType.JOB_RESULT,
        data={
            "document_id": job.document_id,
            "job_id": job.id,
            "kind": job.kind.value,
            "result": job.result.to_dict() if job.result else None,
        },
    )


def job_error(job: Job) -> SSEEvent:
    return SSEEvent(
        event=EventType.JOB_ERROR,
        data={
            "document_id": job.document_id,
            "job_id": job.id,
            "kind": job.kind.value,
            "error": job.error_message,
            "retryable": bool(job.retryable),
            "cancelled": job.cancelled,
        },
    )


def research_complete(
    document_id: str,
    *,
    completed: list[WorkflowKind],
    failed: list[WorkflowKind],
    cancelled: list[WorkflowKind],
    status: DocumentStatus,
) -> SSEEvent:
    return SSEEvent(
        event=EventType.RESEARCH_COMPLETE,
        data={
            "document_id": document_id,
            "completed": len(completed),
            "failed": len(failed),
            "cancelled": len(cancelled),
            "completed_kinds": [kind.value for kind in completed],
            "failed_kinds": [kind.value for kind in failed],
            "status": status.value,
        },
    )


def research_cancelled(document_id: str, cancelled_jobs: list[str]) -> SSEEvent:
    return SSEEvent(
        event=EventType.RESEARCH_CANCELLED,
        data={"document_id": document_id, "cancelled_jobs": cancelled_jobs},
    )

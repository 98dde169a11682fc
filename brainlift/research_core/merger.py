from __future__ import annotations

import asyncio
from dataclasses import dataclass, field

from loguru import logger

from brainlift.models.research import DocumentStatus, Job, JobState, WorkflowKind
from brainlift.services.document_store import DocumentStore


@dataclass(slots=True)
class MergeOutcome:
    merged: bool
    document_complete: bool = False
    completed: list[WorkflowKind] = field(default_factory=list)
    failed: list[WorkflowKind] = field(default_factory=list)
    cancelled: list[WorkflowKind] = field(default_factory=list)

    @property
    def status(self) -> DocumentStatus:
        if self.failed or self.cancelled:
            return DocumentStatus.PARTIALLY_FAILED
        return DocumentStatus.COMPLETE


class ResultMerger:
    """Applies terminal jobs to their document, once each.

    A research round is the set of jobs (one per kind) started together.
    Jobs outside the current round, e.g. from a cancelled round, are never
    merged. The read-decide-write for a document runs under its own lock.
    """

    def __init__(self, store: DocumentStore):
        self.store = store
        self._locks: dict[str, asyncio.Lock] = {}
        self._rounds: dict[str, dict[WorkflowKind, Job]] = {}

    def _lock(self, document_id: str) -> asyncio.Lock:
        lock = self._locks.get(document_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[document_id] = lock
        return lock

    def begin_round(self, document_id: str, jobs: list[Job]) -> None:
        self._rounds[document_id] = {job.kind: job for job in jobs}

    def discard_round(self, document_id: str) -> None:
        self._rounds.pop(document_id, None)

    def in_round(self, job: Job) -> bool:
        return self._rounds.get(job.document_id, {}).get(job.kind) is job

    async def merge(self, document_id: str, job: Job) -> MergeOutcome:
        async with self._lock(document_id):
            if job.merged or not job.terminal or not self.in_round(job):
                return MergeOutcome(merged=False)

            if job.state == JobState.COMPLETED and job.result is not None:
                self.store.set_content(document_id, job.kind, job.result)
                logger.info(f"Merged {job.kind.value} result into document {document_id}")
            elif not job.cancelled:
                # existing content for this kind stays as it was
                self.store.record_error(document_id, job.kind, job.error_message or "unknown error")
                logger.info(f"Recorded {job.kind.value} failure on document {document_id}: {job.error_message}")
            job.merged = True

            return self._evaluate(document_id)

    def _evaluate(self, document_id: str) -> MergeOutcome:
        round_jobs = self._rounds.get(document_id, {})
        outcome = MergeOutcome(merged=True)
        for kind in WorkflowKind:
            job = round_jobs.get(kind)
            if job is None or not job.terminal or not job.merged:
                return outcome
            if job.state == JobState.COMPLETED:
                outcome.completed.append(kind)
            elif job.cancelled:
                outcome.cancelled.append(kind)
            else:
                outcome.failed.append(kind)
        outcome.document_complete = True
        self._rounds.pop(document_id, None)
        return outcome

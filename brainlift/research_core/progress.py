from __future__ import annotations

import time
from typing import Callable, Iterable

from brainlift.models.research import (
    DocumentProgress,
    DocumentStatus,
    Job,
    JobState,
    KindProgress,
    WorkflowKind,
)


class ProgressAggregator:
    """Document-level view over the progress of its three jobs.

    Overall progress is the plain mean of the per-kind figures, recomputed
    on every update, so it follows whatever the jobs report.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._per_kind: dict[str, dict[WorkflowKind, KindProgress]] = {}
        self._started_at: dict[str, float] = {}

    def start(self, document_id: str, kinds: Iterable[WorkflowKind] | None = None) -> None:
        """Reset the given kinds (all by default) to pending at 0%."""
        per_kind = self._per_kind.setdefault(document_id, {})
        for kind in kinds if kinds is not None else WorkflowKind:
            per_kind[kind] = KindProgress()
        self._started_at[document_id] = self._clock()

    def on_job_progress(self, job: Job, progress: int | None = None) -> int:
        per_kind = self._per_kind.setdefault(job.document_id, {})
        entry = per_kind.setdefault(job.kind, KindProgress())
        entry.progress = job.progress if progress is None else max(0, min(int(progress), 100))
        entry.state = job.state
        return self.overall_progress(job.document_id)

    def overall_progress(self, document_id: str) -> int:
        per_kind = self._per_kind.get(document_id, {})
        total = sum(per_kind[kind].progress for kind in WorkflowKind if kind in per_kind)
        return round(total / len(WorkflowKind))

    def eta_seconds(self, document_id: str, now: float | None = None) -> float | None:
        """Remaining time estimate, or None until some running job reports progress."""
        per_kind = self._per_kind.get(document_id, {})
        started = self._started_at.get(document_id)
        if started is None or not any(entry.state == JobState.RUNNING for entry in per_kind.values()):
            return None
        progress = self.overall_progress(document_id)
        if progress <= 0:
            return None
        elapsed = max((now if now is not None else self._clock()) - started, 0.0)
        return elapsed / progress * (100 - progress)

    def document_progress(
        self,
        document_id: str,
        status: DocumentStatus = DocumentStatus.IDLE,
    ) -> DocumentProgress:
        per_kind = self._per_kind.get(document_id, {})
        snapshot = {
            kind: KindProgress(
                progress=per_kind[kind].progress if kind in per_kind else 0,
                state=per_kind[kind].state if kind in per_kind else JobState.PENDING,
            )
            for kind in WorkflowKind
        }
        return DocumentProgress(
            document_id=document_id,
            per_kind=snapshot,
            overall=self.overall_progress(document_id),
            status=status,
            eta_seconds=self.eta_seconds(document_id),
        )

    def forget(self, document_id: str) -> None:
        self._per_kind.pop(document_id, None)
        self._started_at.pop(document_id, None)

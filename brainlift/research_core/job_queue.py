from __future__ import annotations

import asyncio
from collections import deque
from datetime import datetime

from loguru import logger

from brainlift.models.research import Job, JobState


class JobQueue:
    """FIFO admission of pending jobs under a concurrency cap.

    All mutation happens synchronously on the event loop, so admission and
    removal are serialized without a lock. Every change that can free a slot
    or add work sets ``changed`` so the dispatcher loop can re-run admission.
    """

    def __init__(self, max_concurrent: int = 3):
        self.max_concurrent = max(int(max_concurrent), 1)
        self._pending: deque[Job] = deque()
        self._running: dict[str, Job] = {}
        self._changed = asyncio.Event()
        self.peak_running = 0

    def enqueue(self, job: Job) -> None:
        if job.state != JobState.PENDING:
            raise ValueError(f"Only pending jobs can be queued (job {job.id} is {job.state.value})")
        self._pending.append(job)
        self._changed.set()

    def admit_next(self) -> Job | None:
        if self.running_count() >= self.max_concurrent or not self._pending:
            return None
        job = self._pending.popleft()
        job.state = JobState.RUNNING
        job.started_at = datetime.now()
        self._running[job.id] = job
        self.peak_running = max(self.peak_running, len(self._running))
        logger.debug(f"Admitted {job.kind.value} job {job.id} ({self.running_count()}/{self.max_concurrent} running)")
        return job

    def admit_all(self) -> list[Job]:
        admitted: list[Job] = []
        while (job := self.admit_next()) is not None:
            admitted.append(job)
        return admitted

    def release(self, job: Job) -> bool:
        """Free the slot held by a job that reached a terminal state."""
        released = self._running.pop(job.id, None) is not None
        if released:
            self._changed.set()
        return released

    def remove(self, job: Job) -> bool:
        """Drop a job from the queue or running set without running it further."""
        if job in self._pending:
            self._pending.remove(job)
            self._changed.set()
            return True
        return self.release(job)

    def running_count(self) -> int:
        return len(self._running)

    def pending_count(self) -> int:
        return len(self._pending)

    def running_jobs(self) -> list[Job]:
        return list(self._running.values())

    def pending_jobs(self) -> list[Job]:
        return list(self._pending)

    def jobs_for(self, document_id: str) -> list[Job]:
        return [
            job
            for job in (*self._pending, *self._running.values())
            if job.document_id == document_id
        ]

    async def wait_for_change(self) -> None:
        await self._changed.wait()
        self._changed.clear()

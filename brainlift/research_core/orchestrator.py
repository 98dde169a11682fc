from __future__ import annotations

import asyncio
import time
from typing import Callable

from loguru import logger

from brainlift.config import Settings, settings as default_settings
from brainlift.errors import ValidationError, WorkflowError
from brainlift.models.research import (
    DocumentProgress,
    DocumentStatus,
    Job,
    JobState,
    WorkflowKind,
)
from brainlift.research_core.executor import WorkflowExecutor
from brainlift.research_core.job_queue import JobQueue
from brainlift.research_core.merger import ResultMerger
from brainlift.research_core.models.interfaces import SearchCollaborator, SynthesisCollaborator
from brainlift.research_core.progress import ProgressAggregator
from brainlift.services import logger as log_service
from brainlift.services import streaming
from brainlift.services.document_store import DocumentStore, InMemoryDocumentStore, ResearchDocument
from brainlift.services.event_bus import EventBus, Subscription


class ResearchOrchestrator:
    """Runs the three research workflows for each document.

    Flow:
      1. ``start_research`` creates one pending job per workflow kind
      2. The dispatcher admits jobs up to ``max_concurrent``
      3. Each admitted job runs the executor pipeline as its own task
      4. Terminal jobs are merged into the document store
      5. When all three kinds are terminal, ``research_complete`` is published

    Every step is published on the event bus; use ``subscribe`` to follow it.
    """

    def __init__(
        self,
        search: SearchCollaborator,
        synthesis: SynthesisCollaborator,
        *,
        settings: Settings | None = None,
        store: DocumentStore | None = None,
        executor: WorkflowExecutor | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.settings = settings or default_settings
        self.queue = JobQueue(self.settings.max_concurrent)
        self.executor = executor or WorkflowExecutor(search, synthesis, settings=self.settings)
        self.progress = ProgressAggregator(clock)
        self.store: DocumentStore = store or InMemoryDocumentStore()
        self.merger = ResultMerger(self.store)
        self.events = EventBus(self.settings.event_queue_size)
        self._jobs: dict[str, dict[WorkflowKind, Job]] = {}
        self._purposes: dict[str, str] = {}
        self._tokens: dict[str, asyncio.Event] = {}
        self._tasks: dict[str, asyncio.Task] = {}
        self._dispatcher: asyncio.Task | None = None

    # --- public surface ---

    def subscribe(self, *, document_id: str | None = None, maxsize: int | None = None) -> Subscription:
        return self.events.subscribe(document_id=document_id, maxsize=maxsize)

    def document_status(self, document_id: str) -> DocumentStatus:
        return self.store.get(document_id).status

    def status(self, document_id: str) -> DocumentProgress:
        return self.progress.document_progress(document_id, self.document_status(document_id))

    def jobs(self, document_id: str) -> list[Job]:
        return list(self._jobs.get(document_id, {}).values())

    def document(self, document_id: str) -> ResearchDocument:
        return self.store.get(document_id)

    async def start_research(self, document_id: str, purpose: str) -> bool:
        """Queue the three workflows for a document.

        Raises ``ValidationError`` for a blank document id or purpose.
        Returns False without side effects if the document is already
        being researched.
        """
        if not isinstance(document_id, str) or not document_id.strip():
            raise ValidationError("document_id must be a non-empty string")
        if not isinstance(purpose, str) or not purpose.strip():
            raise ValidationError("purpose must be a non-empty string")

        if self.document_status(document_id) == DocumentStatus.RESEARCHING:
            logger.warning(f"Research already running for document {document_id}; ignoring start")
            return False

        purpose = purpose.strip()
        jobs = [Job(document_id=document_id, kind=kind, purpose=purpose) for kind in WorkflowKind]
        self._launch(document_id, purpose, jobs)
        return True

    async def cancel(self, document_id: str) -> bool:
        """Fail every unfinished job of the document as cancelled."""
        active = [job for job in self.jobs(document_id) if not job.terminal]
        if not active and self.document_status(document_id) != DocumentStatus.RESEARCHING:
            return False

        for job in active:
            job.fail("cancelled", retryable=False, cancelled=True)
            self.queue.remove(job)
            token = self._tokens.pop(job.id, None)
            if token is not None:
                token.set()
            self.progress.on_job_progress(job)
            log_service.log_job_transition(job.document_id, job.id, job.kind.value, "cancelled")
            self.events.publish(streaming.job_progress(job))
            self.events.publish(streaming.job_error(job))

        self.merger.discard_round(document_id)
        self.store.set_status(document_id, DocumentStatus.IDLE)
        self.events.publish(streaming.research_cancelled(document_id, [job.id for job in active]))
        logger.info(f"Cancelled {len(active)} research jobs for document {document_id}")
        return True

    async def restart(self, document_id: str) -> bool:
        """Cancel, clear prior research content and start over with the same purpose."""
        purpose = self._purposes.get(document_id) or self.store.get(document_id).purpose
        if not purpose:
            return False
        await self.cancel(document_id)
        self.store.clear_research(document_id)
        self.progress.forget(document_id)
        return await self.start_research(document_id, purpose)

    async def retry_failed(self, document_id: str) -> bool:
        """Re-run only the kinds that did not complete, keeping completed content."""
        if self.document_status(document_id) == DocumentStatus.RESEARCHING:
            return False
        current = self._jobs.get(document_id)
        if not current:
            return False

        carried = [job for job in current.values() if job.state == JobState.COMPLETED]
        to_retry = [job for job in current.values() if job.state != JobState.COMPLETED]
        if not to_retry:
            return False

        purpose = self._purposes[document_id]
        fresh = [Job(document_id=document_id, kind=job.kind, purpose=purpose) for job in to_retry]
        self._launch(document_id, purpose, fresh, carried=carried)
        return True

    async def wait_until_idle(self, document_id: str) -> None:
        """Wait for the in-flight tasks of a document to settle."""
        while True:
            tasks = [
                self._tasks[job.id]
                for job in self.jobs(document_id)
                if job.id in self._tasks
            ]
            if not tasks and self.document_status(document_id) != DocumentStatus.RESEARCHING:
                return
            if tasks:
                await asyncio.gather(*tasks, return_exceptions=True)
            else:
                await asyncio.sleep(0.01)

    async def aclose(self) -> None:
        pending = list(self._tasks.values())
        if self._dispatcher is not None:
            pending.append(self._dispatcher)
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        self._dispatcher = None
        self.events.close()

    # --- internals ---

    def _launch(
        self,
        document_id: str,
        purpose: str,
        jobs: list[Job],
        carried: list[Job] | None = None,
    ) -> None:
        carried = carried or []
        self._purposes[document_id] = purpose
        self._jobs[document_id] = {job.kind: job for job in [*carried, *jobs]}
        self.store.set_purpose(document_id, purpose)
        self.store.set_status(document_id, DocumentStatus.RESEARCHING)

        self.progress.start(document_id, kinds=[job.kind for job in jobs])
        for job in carried:
            self.progress.on_job_progress(job)
        self.merger.begin_round(document_id, [*carried, *jobs])

        self.events.publish(streaming.research_started(document_id, purpose, jobs))
        for job in jobs:
            self._tokens[job.id] = asyncio.Event()
            self.queue.enqueue(job)
            log_service.log_job_transition(document_id, job.id, job.kind.value, job.state.value)
            self.events.publish(streaming.job_progress(job))

        logger.info(f"Queued {len(jobs)} research jobs for document {document_id}")
        self._ensure_dispatcher()

    def _ensure_dispatcher(self) -> None:
        if self._dispatcher is None or self._dispatcher.done():
            self._dispatcher = asyncio.create_task(self._dispatch_loop(), name="research-dispatcher")

    async def _dispatch_loop(self) -> None:
        while True:
            await self.queue.wait_for_change()
            for job in self.queue.admit_all():
                self._on_admitted(job)

    def _on_admitted(self, job: Job) -> None:
        log_service.log_job_transition(job.document_id, job.id, job.kind.value, job.state.value)
        self.progress.on_job_progress(job)
        self.events.publish(streaming.job_progress(job))
        task = asyncio.create_task(self._run_job(job), name=f"research-{job.id}")
        self._tasks[job.id] = task
        task.add_done_callback(lambda _t, job_id=job.id: self._tasks.pop(job_id, None))

    def _on_progress(self, job: Job) -> None:
        if job.state != JobState.RUNNING:
            return
        self.progress.on_job_progress(job)
        self.events.publish(streaming.job_progress(job))

    async def _run_job(self, job: Job) -> None:
        token = self._tokens.get(job.id) or asyncio.Event()
        try:
            try:
                result = await self.executor.execute(job, on_progress=self._on_progress, cancel_token=token)
            except WorkflowError as exc:
                if not job.terminal:
                    job.fail(exc.message, retryable=exc.retryable, cancelled=exc.cancelled)
                    logger.error(f"{job.kind.value} job {job.id} failed in {exc.stage}: {exc.message}")
            except Exception as exc:
                logger.exception(f"{job.kind.value} job {job.id} crashed: {exc}")
                if not job.terminal:
                    job.fail(str(exc) or type(exc).__name__)
            else:
                if not job.terminal:
                    job.complete(result)
        finally:
            self.queue.release(job)
            self._tokens.pop(job.id, None)

        if job.cancelled:
            return
        await self._finish(job)

    async def _finish(self, job: Job) -> None:
        log_service.log_job_transition(
            job.document_id,
            job.id,
            job.kind.value,
            job.state.value,
            {"retry_count": job.retry_count, "error": job.error_message},
        )
        self.progress.on_job_progress(job)
        self.events.publish(streaming.job_progress(job))

        outcome = await self.merger.merge(job.document_id, job)
        if not outcome.merged:
            return
        if job.state == JobState.COMPLETED:
            self.events.publish(streaming.job_result(job))
        else:
            self.events.publish(streaming.job_error(job))

        if outcome.document_complete:
            status = outcome.status
            self.store.set_status(job.document_id, status)
            self.events.publish(
                streaming.research_complete(
                    job.document_id,
                    completed=outcome.completed,
                    failed=outcome.failed,
                    cancelled=outcome.cancelled,
                    status=status,
                )
            )
            log_service.log_event(
                event_type="research_complete",
                message="All research workflows reached a terminal state",
                document_id=job.document_id,
                completed=len(outcome.completed),
                failed=len(outcome.failed),
            )

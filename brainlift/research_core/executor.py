from __future__ import annotations

import asyncio
import re
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from loguru import logger

from brainlift.config import Settings, settings as default_settings
from brainlift.errors import (
    CancellationError,
    JobTimeoutError,
    QuotaError,
    TransientCollaboratorError,
    WorkflowError,
)
from brainlift.models.research import (
    Job,
    RawSource,
    ResultMetadata,
    Source,
    WorkflowKind,
    WorkflowResult,
)
from brainlift.research_core.models.interfaces import SearchCollaborator, SynthesisCollaborator
from brainlift.research_core.scoring.service import (
    STOP_WORDS,
    analysis_summary,
    mean_credibility,
    score_source,
)
from brainlift.services import logger as log_service

QUERY_CHECKPOINT = 10
SEARCH_CHECKPOINT = 20
SCORING_CHECKPOINT = 60
SYNTHESIS_CHECKPOINT = 90
FINAL_CHECKPOINT = 100

MIN_QUERIES = 3
MAX_QUERIES = 5

QUERY_TEMPLATES: dict[WorkflowKind, tuple[str, ...]] = {
    WorkflowKind.EXPERTS: (
        "leading experts {domain}",
        "top researchers {domain}",
        "thought leaders {domain}",
        "{domain} professor university",
        "{domain} director founder CEO",
    ),
    WorkflowKind.CONTRARIAN_VIEWS: (
        "{domain} conventional wisdom wrong",
        "{domain} contrarian view evidence",
        "{domain} debunked myths",
        "{domain} surprising research findings",
        "{domain} counterintuitive studies critique",
    ),
    WorkflowKind.KNOWLEDGE_MAP: (
        "{domain} current state tools systems",
        "{domain} background knowledge",
        "{domain} dependencies related fields",
        "{domain} adjacent areas connections",
        "{domain} existing solutions analysis",
    ),
}

ProgressSink = Callable[[Job], None]
Scorer = Callable[[RawSource, str], Source]


def extract_domain(purpose: str) -> str:
    """Pick up to three distinctive words from the purpose statement."""
    words = re.findall(r"[a-z0-9][a-z0-9'-]*", purpose.lower())
    terms = [word for word in words if len(word) > 4 and word not in STOP_WORDS]
    domain = " ".join(list(dict.fromkeys(terms))[:3])
    return domain or " ".join(purpose.split())[:50]


def build_workflow_queries(purpose: str, kind: WorkflowKind) -> list[str]:
    """Build deterministic, kind-specific search queries for one purpose."""
    cleaned = " ".join(purpose.split()).strip()
    if not cleaned:
        return []
    domain = extract_domain(cleaned)

    queries = [template.format(domain=domain) for template in QUERY_TEMPLATES[kind]]
    if len(queries) < MIN_QUERIES:
        queries.append(cleaned)

    deduped: list[str] = []
    seen: set[str] = set()
    for query in queries:
        q = " ".join(query.split()).strip()
        key = q.lower()
        if not q or key in seen:
            continue
        seen.add(key)
        deduped.append(q)
        if len(deduped) >= MAX_QUERIES:
            break
    return deduped


def select_top_sources(raw_sources: list[RawSource], limit: int) -> list[RawSource]:
    """Keep one hit per url (highest score) and the ``limit`` best overall."""
    by_url: dict[str, RawSource] = {}
    for item in raw_sources:
        if not item.url:
            continue
        prev = by_url.get(item.url)
        if prev is None or item.score > prev.score:
            by_url[item.url] = item
    ranked = sorted(by_url.values(), key=lambda item: item.score, reverse=True)
    return ranked[: max(limit, 0)]


@dataclass(slots=True)
class _PipelineRun:
    stage: str = "query_generation"
    api_calls: int = 0


class WorkflowExecutor:
    """Runs the staged pipeline for one job.

    Stages: query generation (10), source search and scoring (20..60),
    synthesis (90), finalize (100). Only the two collaborator stages retry,
    and they share the job's retry budget. Progress checkpoints are pushed
    to ``on_progress`` and never move backwards, even across retries.
    """

    def __init__(
        self,
        search: SearchCollaborator,
        synthesis: SynthesisCollaborator,
        *,
        settings: Settings | None = None,
        scorer: Scorer | None = None,
    ):
        cfg = settings or default_settings
        self.search = search
        self.synthesis = synthesis
        self.max_retries = max(int(cfg.max_retries), 0)
        self.retry_backoff_ms = max(int(cfg.retry_backoff_ms), 0)
        self.per_job_timeout_ms = max(int(cfg.per_job_timeout_ms), 1)
        self.max_sources_per_job = max(int(cfg.max_sources_per_job), 1)
        self.scorer: Scorer = scorer or score_source

    async def execute(
        self,
        job: Job,
        *,
        on_progress: ProgressSink | None = None,
        cancel_token: asyncio.Event | None = None,
    ) -> WorkflowResult:
        run = _PipelineRun()
        timeout_s = self.per_job_timeout_ms / 1000
        try:
            return await asyncio.wait_for(
                self._run_pipeline(job, run, on_progress, cancel_token),
                timeout=timeout_s,
            )
        except asyncio.TimeoutError:
            logger.warning(f"{job.kind.value} job {job.id} timed out during {run.stage} after {timeout_s:.1f}s")
            raise WorkflowError(
                run.stage,
                JobTimeoutError(f"{run.stage} exceeded job timeout of {self.per_job_timeout_ms}ms"),
                retryable=False,
            ) from None

    async def _run_pipeline(
        self,
        job: Job,
        run: _PipelineRun,
        on_progress: ProgressSink | None,
        cancel_token: asyncio.Event | None,
    ) -> WorkflowResult:
        # Stage 1: local, never retried
        run.stage = "query_generation"
        self._check_cancelled(run.stage, cancel_token)
        queries = build_workflow_queries(job.purpose, job.kind)
        logger.debug(f"{job.kind.value} job {job.id} queries: {queries}")
        self._report(job, QUERY_CHECKPOINT, on_progress)

        # Stage 2: search + scoring
        run.stage = "search"
        self._check_cancelled(run.stage, cancel_token)
        t0 = time.monotonic()
        raw_results = await self._call_with_retry(
            job,
            run,
            "search",
            lambda: self.search.search(queries, job.kind),
            cancel_token,
        )
        self._report(job, SEARCH_CHECKPOINT, on_progress)

        selected = select_top_sources(list(raw_results or []), self.max_sources_per_job)
        sources: list[Source] = []
        for index, raw in enumerate(selected, start=1):
            sources.append(self.scorer(raw, job.purpose))
            span = SCORING_CHECKPOINT - SEARCH_CHECKPOINT
            self._report(job, SEARCH_CHECKPOINT + span * index // len(selected), on_progress)
        search_duration_ms = int((time.monotonic() - t0) * 1000)
        self._report(job, SCORING_CHECKPOINT, on_progress)
        logger.info(f"{job.kind.value} job {job.id} scored {len(sources)} of {len(raw_results or [])} sources")

        # Stage 3: synthesis
        run.stage = "synthesis"
        self._check_cancelled(run.stage, cancel_token)
        t1 = time.monotonic()
        content = await self._call_with_retry(
            job,
            run,
            "synthesis",
            lambda: self.synthesis.generate(job.kind, sources, job.purpose),
            cancel_token,
        )
        synthesis_duration_ms = int((time.monotonic() - t1) * 1000)
        self._report(job, SYNTHESIS_CHECKPOINT, on_progress)

        # Stage 4: finalize
        run.stage = "finalize"
        self._check_cancelled(run.stage, cancel_token)
        result = WorkflowResult(
            sources=sources,
            generated_content=content or "",
            credibility_score=mean_credibility(sources),
            analysis=analysis_summary(sources),
            metadata=ResultMetadata(
                search_duration_ms=search_duration_ms,
                synthesis_duration_ms=synthesis_duration_ms,
                api_call_count=run.api_calls,
            ),
        )
        self._report(job, FINAL_CHECKPOINT, on_progress)
        return result

    async def _call_with_retry(
        self,
        job: Job,
        run: _PipelineRun,
        collaborator: str,
        call: Callable[[], Awaitable[Any]],
        cancel_token: asyncio.Event | None,
    ) -> Any:
        while True:
            self._check_cancelled(run.stage, cancel_token)
            run.api_calls += 1
            attempt = job.retry_count + 1
            t0 = time.monotonic()
            try:
                result = await call()
            except TransientCollaboratorError as exc:
                self._log_call(collaborator, job, attempt, t0, "error", exc)
                if job.retry_count >= self.max_retries:
                    logger.error(
                        f"{job.kind.value} job {job.id} exhausted {self.max_retries} retries in {run.stage}: {exc}"
                    )
                    raise WorkflowError(run.stage, exc, retryable=False) from exc
                job.retry_count += 1
                delay_s = self.retry_backoff_ms * (2 ** (job.retry_count - 1)) / 1000
                logger.warning(
                    f"Retrying {run.stage} for {job.kind.value} job {job.id} "
                    f"(retry {job.retry_count}/{self.max_retries}) in {delay_s:.2f}s: {exc}"
                )
                await self._backoff(delay_s, cancel_token)
                continue
            except QuotaError as exc:
                self._log_call(collaborator, job, attempt, t0, "error", exc)
                raise WorkflowError(run.stage, exc, retryable=False) from exc
            except Exception as exc:
                self._log_call(collaborator, job, attempt, t0, "error", exc)
                raise WorkflowError(run.stage, exc, retryable=False) from exc
            self._log_call(collaborator, job, attempt, t0, "success")
            return result

    @staticmethod
    async def _backoff(delay_s: float, cancel_token: asyncio.Event | None) -> None:
        if delay_s <= 0:
            return
        if cancel_token is None:
            await asyncio.sleep(delay_s)
            return
        try:
            await asyncio.wait_for(cancel_token.wait(), timeout=delay_s)
        except asyncio.TimeoutError:
            pass

    @staticmethod
    def _check_cancelled(stage: str, cancel_token: asyncio.Event | None) -> None:
        if cancel_token is not None and cancel_token.is_set():
            raise WorkflowError(stage, CancellationError(), retryable=False)

    @staticmethod
    def _report(job: Job, progress: int, on_progress: ProgressSink | None) -> None:
        if job.terminal:
            return
        previous = job.progress
        if not job.advance(progress) or job.progress == previous:
            return
        if on_progress is not None:
            on_progress(job)

    @staticmethod
    def _log_call(
        collaborator: str,
        job: Job,
        attempt: int,
        started: float,
        status: str,
        error: BaseException | None = None,
    ) -> None:
        log_service.log_collaborator_call(
            collaborator=collaborator,
            kind=job.kind.value,
            job_id=job.id,
            attempt=attempt,
            duration_ms=int((time.monotonic() - started) * 1000),
            status=status,
            error=str(error) if error is not None else None,
        )

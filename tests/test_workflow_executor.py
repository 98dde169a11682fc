from __future__ import annotations

import asyncio

import pytest

from brainlift.config import Settings
from brainlift.errors import (
    CancellationError,
    JobTimeoutError,
    NetworkError,
    QuotaExceededError,
    RateLimitError,
    WorkflowError,
)
from brainlift.models.research import Job, RawSource, WorkflowKind
from brainlift.research_core import executor as executor_module
from brainlift.research_core.executor import WorkflowExecutor, build_workflow_queries, select_top_sources

from conftest import FakeSearch, FakeSynthesis, scenario_scorer

PURPOSE = "reduce onboarding time for new engineers"


def _job(kind: WorkflowKind = WorkflowKind.EXPERTS) -> Job:
    return Job(document_id="doc1", kind=kind, purpose=PURPOSE)


def _settings(**overrides) -> Settings:
    values = {"max_retries": 3, "retry_backoff_ms": 0, "per_job_timeout_ms": 5000, "max_sources_per_job": 5}
    values.update(overrides)
    return Settings(**values)


class TestQueryBuilding:
    def test_each_kind_gets_three_to_five_distinct_queries(self):
        for kind in WorkflowKind:
            queries = build_workflow_queries(PURPOSE, kind)
            assert 3 <= len(queries) <= 5
            assert len({q.lower() for q in queries}) == len(queries)

    def test_queries_are_deterministic_and_kind_specific(self):
        experts = build_workflow_queries(PURPOSE, WorkflowKind.EXPERTS)
        assert experts == build_workflow_queries(PURPOSE, WorkflowKind.EXPERTS)
        assert experts != build_workflow_queries(PURPOSE, WorkflowKind.CONTRARIAN_VIEWS)
        assert any("onboarding" in q for q in experts)

    def test_blank_purpose_yields_no_queries(self):
        assert build_workflow_queries("   ", WorkflowKind.KNOWLEDGE_MAP) == []


def test_select_top_sources_dedupes_by_url_and_ranks_by_score():
    raw = [
        RawSource(url="https://a.example", title="a", score=0.2),
        RawSource(url="https://b.example", title="b", score=0.9),
        RawSource(url="https://a.example", title="a again", score=0.7),
        RawSource(url="", title="no url", score=1.0),
    ]
    selected = select_top_sources(raw, limit=5)

    assert [item.url for item in selected] == ["https://b.example", "https://a.example"]
    assert selected[1].title == "a again"
    assert select_top_sources(raw, limit=1)[0].url == "https://b.example"


@pytest.mark.asyncio
async def test_execute_reports_monotonic_checkpoints_and_builds_result():
    search = FakeSearch()
    synthesis = FakeSynthesis()
    executor = WorkflowExecutor(search, synthesis, settings=_settings())
    job = _job()
    seen: list[int] = []

    result = await executor.execute(job, on_progress=lambda j: seen.append(j.progress))

    assert seen == sorted(seen)
    assert len(seen) == len(set(seen))
    assert seen[0] == executor_module.QUERY_CHECKPOINT
    assert seen[-1] == executor_module.FINAL_CHECKPOINT
    assert {20, 60, 90} <= set(seen)
    assert len(result.sources) == 5
    assert result.generated_content == f"experts notes for {PURPOSE}"
    assert result.credibility_score == pytest.approx(
        sum(s.credibility_score for s in result.sources) / 5
    )
    assert result.analysis.startswith("Analysis based on 5 sources")
    assert result.metadata.api_call_count == 2
    assert synthesis.calls == [(WorkflowKind.EXPERTS, 5, PURPOSE)]


@pytest.mark.asyncio
async def test_scenario_mean_credibility():
    executor = WorkflowExecutor(FakeSearch(), FakeSynthesis(), settings=_settings(), scorer=scenario_scorer)
    result = await executor.execute(_job())

    assert len(result.sources) == 5
    assert result.credibility_score == pytest.approx(6.6)


@pytest.mark.asyncio
async def test_source_limit_is_applied():
    executor = WorkflowExecutor(FakeSearch(), FakeSynthesis(), settings=_settings(max_sources_per_job=2))
    result = await executor.execute(_job())

    assert len(result.sources) == 2


@pytest.mark.asyncio
async def test_empty_search_still_synthesizes():
    synthesis = FakeSynthesis()
    executor = WorkflowExecutor(FakeSearch(results=[]), synthesis, settings=_settings())
    result = await executor.execute(_job())

    assert result.sources == []
    assert result.credibility_score == 0.0
    assert synthesis.calls == [(WorkflowKind.EXPERTS, 0, PURPOSE)]


class TestRetries:
    @pytest.mark.asyncio
    async def test_transient_failures_are_retried_then_succeed(self):
        search = FakeSearch(failures=[NetworkError("reset"), NetworkError("reset")])
        executor = WorkflowExecutor(search, FakeSynthesis(), settings=_settings(max_retries=3))
        job = _job()

        result = await executor.execute(job)

        assert job.retry_count == 2
        assert len(search.calls) == 3
        assert result.metadata.api_call_count == 4

    @pytest.mark.asyncio
    async def test_single_retry_budget_makes_two_attempts(self):
        search = FakeSearch(fail_kinds={WorkflowKind.EXPERTS: NetworkError("down")})
        executor = WorkflowExecutor(search, FakeSynthesis(), settings=_settings(max_retries=1))
        job = _job()

        with pytest.raises(WorkflowError) as exc_info:
            await executor.execute(job)

        assert len(search.calls) == 2
        assert job.retry_count == 1
        assert exc_info.value.stage == "search"
        assert isinstance(exc_info.value.cause, NetworkError)
        assert exc_info.value.retryable is False

    @pytest.mark.asyncio
    async def test_exhaustion_makes_max_retries_plus_one_attempts(self):
        search = FakeSearch(fail_kinds={WorkflowKind.EXPERTS: RateLimitError("slow down")})
        executor = WorkflowExecutor(search, FakeSynthesis(), settings=_settings(max_retries=3))
        job = _job()

        with pytest.raises(WorkflowError):
            await executor.execute(job)

        assert len(search.calls) == 4
        assert job.retry_count == 3

    @pytest.mark.asyncio
    async def test_retry_budget_is_shared_across_stages(self):
        search = FakeSearch(failures=[NetworkError("reset")])
        synthesis = FakeSynthesis(failures=[NetworkError("reset"), NetworkError("reset")])
        executor = WorkflowExecutor(search, synthesis, settings=_settings(max_retries=2))
        job = _job()

        with pytest.raises(WorkflowError) as exc_info:
            await executor.execute(job)

        assert exc_info.value.stage == "synthesis"
        assert len(search.calls) == 2
        assert len(synthesis.calls) == 2
        assert job.retry_count == 2

    @pytest.mark.asyncio
    async def test_quota_errors_fail_without_retry(self):
        synthesis = FakeSynthesis(failures=[QuotaExceededError("out of credits")])
        executor = WorkflowExecutor(FakeSearch(), synthesis, settings=_settings(max_retries=3))
        job = _job()

        with pytest.raises(WorkflowError) as exc_info:
            await executor.execute(job)

        assert len(synthesis.calls) == 1
        assert job.retry_count == 0
        assert exc_info.value.message == "out of credits"
        assert not exc_info.value.cancelled

    @pytest.mark.asyncio
    async def test_progress_does_not_move_backwards_across_retries(self):
        synthesis = FakeSynthesis(failures=[NetworkError("reset")])
        executor = WorkflowExecutor(FakeSearch(), synthesis, settings=_settings())
        seen: list[int] = []

        await executor.execute(_job(), on_progress=lambda j: seen.append(j.progress))

        assert seen == sorted(seen)


@pytest.mark.asyncio
async def test_timeout_fails_the_job_in_the_running_stage():
    search = FakeSearch(delay=1.0)
    executor = WorkflowExecutor(search, FakeSynthesis(), settings=_settings(per_job_timeout_ms=50))

    with pytest.raises(WorkflowError) as exc_info:
        await executor.execute(_job())

    assert exc_info.value.stage == "search"
    assert isinstance(exc_info.value.cause, JobTimeoutError)


class TestCancellation:
    @pytest.mark.asyncio
    async def test_cancel_before_start_never_calls_collaborators(self):
        search = FakeSearch()
        executor = WorkflowExecutor(search, FakeSynthesis(), settings=_settings())
        token = asyncio.Event()
        token.set()

        with pytest.raises(WorkflowError) as exc_info:
            await executor.execute(_job(), cancel_token=token)

        assert exc_info.value.cancelled
        assert exc_info.value.message == "cancelled"
        assert isinstance(exc_info.value.cause, CancellationError)
        assert search.calls == []

    @pytest.mark.asyncio
    async def test_cancel_interrupts_backoff(self):
        search = FakeSearch(fail_kinds={WorkflowKind.EXPERTS: NetworkError("down")})
        executor = WorkflowExecutor(search, FakeSynthesis(), settings=_settings(retry_backoff_ms=10_000))
        token = asyncio.Event()

        task = asyncio.create_task(executor.execute(_job(), cancel_token=token))
        await asyncio.sleep(0.05)
        token.set()

        with pytest.raises(WorkflowError) as exc_info:
            await asyncio.wait_for(task, timeout=1)

        assert exc_info.value.cancelled
        assert len(search.calls) == 1

    @pytest.mark.asyncio
    async def test_cancel_between_stages_skips_synthesis(self):
        gate = asyncio.Event()
        synthesis = FakeSynthesis()
        executor = WorkflowExecutor(FakeSearch(gate=gate), synthesis, settings=_settings())
        token = asyncio.Event()

        task = asyncio.create_task(executor.execute(_job(), cancel_token=token))
        await asyncio.sleep(0.01)
        token.set()
        gate.set()

        with pytest.raises(WorkflowError) as exc_info:
            await task

        assert exc_info.value.cancelled
        assert exc_info.value.stage == "synthesis"
        assert synthesis.calls == []

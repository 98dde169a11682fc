"""Shared fakes for the search and synthesis collaborators."""
from __future__ import annotations

import asyncio
import dataclasses

import pytest

from brainlift.config import Settings
from brainlift.models.research import RawSource, WorkflowKind
from brainlift.research_core.scoring.service import score_source


def make_raw_sources() -> list[RawSource]:
    """Three academic and two blog hits for the onboarding purpose."""
    return [
        RawSource(
            url="https://hr.stanford.edu/onboarding-study",
            title="Structured onboarding reduces ramp-up time",
            content="Research shows that structured onboarding cuts ramp-up time for new engineers by a third.",
            score=0.9,
            published_date="2024-03-01",
        ),
        RawSource(
            url="https://arxiv.org/abs/2401.00001",
            title="Measuring onboarding outcomes",
            content="The study found that pairing new hires with a mentor improved retention in the first year.",
            score=0.85,
        ),
        RawSource(
            url="https://www.researchgate.net/publication/onboarding",
            title="Onboarding in distributed teams",
            content="According to survey data, remote hires need more explicit documentation during onboarding.",
            score=0.8,
        ),
        RawSource(
            url="https://engineering.blog/onboarding-is-overrated",
            title="Onboarding is overrated",
            content="Most onboarding programs are bloated checklists that nobody reads after the first week anyway.",
            score=0.5,
        ),
        RawSource(
            url="https://medium.com/@dev/how-we-onboard",
            title="How we onboard",
            content="We ship a small change on the first day and that single habit sets the tone for everything else.",
            score=0.4,
        ),
    ]


SCENARIO_CREDIBILITY = {
    "https://hr.stanford.edu/onboarding-study": 8,
    "https://arxiv.org/abs/2401.00001": 9,
    "https://www.researchgate.net/publication/onboarding": 7,
    "https://engineering.blog/onboarding-is-overrated": 4,
    "https://medium.com/@dev/how-we-onboard": 5,
}


def scenario_scorer(raw: RawSource, purpose: str):
    """Real scoring with fixed credibility figures per url."""
    source = score_source(raw, purpose)
    return dataclasses.replace(source, credibility_score=SCENARIO_CREDIBILITY[raw.url])


class FakeSearch:
    """Search collaborator double.

    ``failures`` are raised in order before results are returned;
    ``fail_kinds`` always raise for the given kinds; ``gate`` blocks every
    call until it is set.
    """

    def __init__(
        self,
        results: list[RawSource] | None = None,
        *,
        failures: list[Exception] | None = None,
        fail_kinds: dict[WorkflowKind, Exception] | None = None,
        gate: asyncio.Event | None = None,
        delay: float = 0.0,
    ):
        self.results = make_raw_sources() if results is None else results
        self.failures = list(failures or [])
        self.fail_kinds = dict(fail_kinds or {})
        self.gate = gate
        self.delay = delay
        self.calls: list[tuple[list[str], WorkflowKind]] = []

    async def search(self, queries, kind):
        self.calls.append((list(queries), kind))
        if self.gate is not None:
            await self.gate.wait()
        if self.delay:
            await asyncio.sleep(self.delay)
        if kind in self.fail_kinds:
            raise self.fail_kinds[kind]
        if self.failures:
            raise self.failures.pop(0)
        return list(self.results)


class FakeSynthesis:
    def __init__(
        self,
        *,
        failures: list[Exception] | None = None,
        fail_kinds: dict[WorkflowKind, Exception] | None = None,
    ):
        self.failures = list(failures or [])
        self.fail_kinds = dict(fail_kinds or {})
        self.calls: list[tuple[WorkflowKind, int, str]] = []

    async def generate(self, kind, sources, purpose):
        self.calls.append((kind, len(sources), purpose))
        if kind in self.fail_kinds:
            raise self.fail_kinds[kind]
        if self.failures:
            raise self.failures.pop(0)
        return f"{kind.value} notes for {purpose}"


@pytest.fixture
def fast_settings() -> Settings:
    return Settings(
        max_concurrent=3,
        max_retries=3,
        retry_backoff_ms=0,
        per_job_timeout_ms=5000,
        max_sources_per_job=5,
        event_queue_size=512,
    )

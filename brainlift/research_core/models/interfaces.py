from __future__ import annotations

from typing import Protocol, Sequence

from brainlift.models.research import RawSource, Source, WorkflowKind


class SearchCollaborator(Protocol):
    """Finds candidate sources for a workflow.

    May raise ``NetworkError`` or ``RateLimitError``.
    """

    async def search(self, queries: Sequence[str], kind: WorkflowKind) -> Sequence[RawSource]:
        ...


class SynthesisCollaborator(Protocol):
    """Writes the prose for one workflow from its scored sources.

    May raise ``NetworkError``, ``RateLimitError`` or ``QuotaExceededError``.
    """

    async def generate(self, kind: WorkflowKind, sources: Sequence[Source], purpose: str) -> str:
        ...

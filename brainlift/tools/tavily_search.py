from __future__ import annotations

import asyncio
from typing import Any, Sequence

import httpx
from loguru import logger
from tavily import AsyncTavilyClient, UsageLimitExceededError

from brainlift.config import settings
from brainlift.errors import NetworkError, RateLimitError
from brainlift.models.research import RawSource, WorkflowKind
from brainlift.tools import web_utils

EXPERT_DOMAINS = [
    "edu", "ac.uk", "researchgate.net", "scholar.google.com", "arxiv.org",
    "ieee.org", "acm.org", "springer.com", "nature.com", "sciencedirect.com",
    "jstor.org", "pubmed.ncbi.nlm.nih.gov", "mckinsey.com", "bcg.com",
    "deloitte.com", "pwc.com", "hbr.org",
]

CONTRARIAN_DOMAINS = [
    "marginalrevolution.com", "overcomingbias.com", "lesswrong.com",
    "astralcodexten.substack.com", "econlog.econlib.org", "theatlantic.com",
    "newyorker.com", "medium.com", "substack.com",
]

EXCLUDED_DOMAINS = ["reddit.com", "quora.com"]

MAX_QUERIES_PER_KIND = 5
MAX_PARALLEL_REQUESTS = 2


def include_domains_for(kind: WorkflowKind) -> list[str]:
    if kind == WorkflowKind.EXPERTS:
        return EXPERT_DOMAINS
    if kind == WorkflowKind.CONTRARIAN_VIEWS:
        return CONTRARIAN_DOMAINS
    return []


def map_search_error(exc: Exception) -> Exception:
    if isinstance(exc, UsageLimitExceededError):
        return RateLimitError(str(exc))
    if isinstance(exc, httpx.HTTPStatusError):
        if exc.response.status_code == 429:
            return RateLimitError(str(exc))
        if exc.response.status_code >= 500:
            return NetworkError(str(exc))
    if isinstance(exc, (httpx.TransportError, asyncio.TimeoutError)):
        return NetworkError(str(exc) or type(exc).__name__)
    return exc


def to_raw_source(item: dict[str, Any]) -> RawSource | None:
    url = item.get("url") or ""
    if not web_utils.is_valid_url(url):
        return None
    content = item.get("raw_content") or item.get("content") or ""
    return RawSource(
        url=url,
        title=item.get("title") or url,
        content=web_utils.clean_content(content),
        score=float(item.get("score") or 0.0),
        author=item.get("author"),
        published_date=item.get("published_date"),
    )


class TavilySearchCollaborator:
    """Runs each workflow query through Tavily with kind-specific domain filters.

    Individual query failures are logged and skipped; the call only fails
    when every query failed, with the last error mapped to the collaborator
    taxonomy.
    """

    def __init__(
        self,
        *,
        client: AsyncTavilyClient | None = None,
        max_results: int | None = None,
        search_depth: str | None = None,
    ):
        self.client = client
        self.max_results = max_results or settings.search_max_results_per_query
        self.search_depth = search_depth or settings.search_depth

    def _client(self) -> AsyncTavilyClient:
        if self.client is None:
            self.client = AsyncTavilyClient(api_key=settings.tavily_api_key)
        return self.client

    async def search(self, queries: Sequence[str], kind: WorkflowKind) -> list[RawSource]:
        client = self._client()
        semaphore = asyncio.Semaphore(MAX_PARALLEL_REQUESTS)
        include_domains = include_domains_for(kind)

        async def run_query(query: str) -> dict[str, Any]:
            kwargs: dict[str, Any] = {
                "query": query,
                "search_depth": self.search_depth,
                "max_results": self.max_results,
                "include_raw_content": True,
                "exclude_domains": EXCLUDED_DOMAINS,
            }
            if include_domains:
                kwargs["include_domains"] = include_domains
            async with semaphore:
                return await client.search(**kwargs)

        selected = list(queries)[:MAX_QUERIES_PER_KIND]
        responses = await asyncio.gather(*(run_query(q) for q in selected), return_exceptions=True)

        results: list[RawSource] = []
        errors: list[Exception] = []
        for query, response in zip(selected, responses):
            if isinstance(response, Exception):
                logger.warning(f"Tavily {kind.value} search failed for query '{query}': {response}")
                errors.append(response)
                continue
            for item in response.get("results", []):
                raw = to_raw_source(item)
                if raw is not None:
                    results.append(raw)

        if errors and len(errors) == len(selected):
            mapped = map_search_error(errors[-1])
            if mapped is errors[-1]:
                raise mapped
            raise mapped from errors[-1]
        return results

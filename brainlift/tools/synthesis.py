from __future__ import annotations

import time
from typing import Any, Sequence

import openai
from loguru import logger

from brainlift.config import settings
from brainlift.errors import NetworkError, QuotaExceededError, RateLimitError
from brainlift.llm_client import client as llm_client, get_model, temperature_for_model
from brainlift.models.research import Source, WorkflowKind
from brainlift.services.prompt_store import PromptCatalog, catalog as default_catalog


def format_sources(sources: Sequence[Source], catalog: PromptCatalog) -> str:
    if not sources:
        return "(no sources were found)"
    blocks = [
        catalog.render(
            "synthesis.source_block",
            index=index,
            title=source.title,
            source_type=source.source_type.value,
            credibility=source.credibility_score,
            relevance=source.relevance_score,
            url=source.url,
            summary=source.summary,
            quotes="; ".join(source.key_quotes) or "none",
        )
        for index, source in enumerate(sources, start=1)
    ]
    return "\n\n".join(blocks)


def map_openai_error(exc: Exception) -> Exception:
    """Translate an OpenAI SDK error into the collaborator error taxonomy."""
    if isinstance(exc, openai.RateLimitError):
        if getattr(exc, "code", None) == "insufficient_quota":
            return QuotaExceededError(str(exc))
        return RateLimitError(str(exc))
    if isinstance(exc, openai.APIStatusError) and exc.status_code == 402:
        return QuotaExceededError(str(exc))
    if isinstance(exc, (openai.APIConnectionError, openai.InternalServerError)):
        return NetworkError(str(exc))
    return exc


class LLMSynthesisCollaborator:
    """Generates the prose for one workflow kind through OpenRouter."""

    def __init__(
        self,
        *,
        model: str | None = None,
        client: Any | None = None,
        catalog: PromptCatalog | None = None,
        max_tokens: int | None = None,
    ):
        self.model = model or get_model()
        self.client = client
        self.catalog = catalog or default_catalog
        self.max_tokens = max_tokens or settings.synthesis_max_tokens

    def build_messages(
        self,
        kind: WorkflowKind,
        sources: Sequence[Source],
        purpose: str,
    ) -> list[dict[str, str]]:
        return [
            {"role": "system", "content": self.catalog.render("synthesis.system_prompt")},
            {
                "role": "user",
                "content": self.catalog.render(
                    f"synthesis.{kind.value}",
                    purpose=purpose,
                    sources=format_sources(sources, self.catalog),
                ),
            },
        ]

    async def generate(self, kind: WorkflowKind, sources: Sequence[Source], purpose: str) -> str:
        active_client = self.client or llm_client()
        t0 = time.monotonic()
        try:
            response = await active_client.chat.completions.create(
                model=self.model,
                messages=self.build_messages(kind, sources, purpose),
                max_tokens=self.max_tokens,
                temperature=temperature_for_model(self.model),
            )
        except openai.OpenAIError as exc:
            mapped = map_openai_error(exc)
            if mapped is exc:
                raise
            raise mapped from exc

        elapsed_ms = int((time.monotonic() - t0) * 1000)
        usage = getattr(response, "usage", None)
        logger.debug(
            f"Synthesis for {kind.value} took {elapsed_ms}ms "
            f"(prompt={getattr(usage, 'prompt_tokens', 0)}, completion={getattr(usage, 'completion_tokens', 0)})"
        )
        choices = getattr(response, "choices", None) or []
        if not choices:
            return ""
        return (getattr(choices[0].message, "content", None) or "").strip()

"""OpenRouter LLM client factory (OpenAI-compatible SDK)."""
from __future__ import annotations

from typing import TYPE_CHECKING

from brainlift.config import settings

if TYPE_CHECKING:
    from openai import AsyncOpenAI


def get_client() -> "AsyncOpenAI":
    """Get an OpenRouter client via the OpenAI-compatible SDK."""
    from openai import AsyncOpenAI

    base_url = settings.openrouter_base_url.strip() or "https://openrouter.ai/api/v1"
    return AsyncOpenAI(
        api_key=settings.openrouter_api_key,
        base_url=base_url,
        max_retries=0,  # retries are owned by the workflow executor
    )


def get_model() -> str:
    """Get the active OpenRouter model id."""
    return settings.default_model


def temperature_for_model(model: str) -> float:
    # Some OpenAI GPT-5-compatible gateways reject temperature=0.
    lowered = (model or "").lower()
    if "gpt-5" in lowered:
        return 1
    return 0.3


_client: "AsyncOpenAI | None" = None


def client() -> "AsyncOpenAI":
    """Get or create the LLM client."""
    global _client
    if _client is None:
        _client = get_client()
    return _client

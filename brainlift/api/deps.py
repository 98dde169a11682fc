from __future__ import annotations

from fastapi import Request

from brainlift.research_core.orchestrator import ResearchOrchestrator


def build_orchestrator() -> ResearchOrchestrator:
    """Wire the orchestrator with the Tavily and OpenRouter collaborators."""
    from brainlift.tools.synthesis import LLMSynthesisCollaborator
    from brainlift.tools.tavily_search import TavilySearchCollaborator

    return ResearchOrchestrator(
        search=TavilySearchCollaborator(),
        synthesis=LLMSynthesisCollaborator(),
    )


def get_orchestrator(request: Request) -> ResearchOrchestrator:
    return request.app.state.orchestrator

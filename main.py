"""BrainLift - Research Workflow Orchestrator

Simple CLI for running the three research workflows for one document.
"""

import argparse
import asyncio
import sys

from brainlift.models.events import EventType
from brainlift.research_core.orchestrator import ResearchOrchestrator


async def run_research(document_id: str, purpose: str, model: str | None = None, raw: bool = False) -> int:
    """Run research for one document and print events as they arrive."""
    from brainlift.tools.synthesis import LLMSynthesisCollaborator
    from brainlift.tools.tavily_search import TavilySearchCollaborator

    print(f"Research purpose: {purpose}")
    print("-" * 50)

    orchestrator = ResearchOrchestrator(
        search=TavilySearchCollaborator(),
        synthesis=LLMSynthesisCollaborator(model=model),
    )
    subscription = orchestrator.subscribe(document_id=document_id)
    exit_code = 0

    try:
        await orchestrator.start_research(document_id, purpose)

        async for event in subscription:
            data = event.data

            if raw:
                print(event.format(), end="")

            elif event.event == EventType.RESEARCH_STARTED:
                print(f"\n[*] Queued {len(data.get('jobs', []))} workflows")

            elif event.event == EventType.JOB_PROGRESS:
                overall = orchestrator.status(document_id).overall
                print(f"  [~] {data['kind']:<18} {data['state']:<10} {data['progress']:>3}%  (overall {overall}%)")

            elif event.event == EventType.JOB_RESULT:
                result = data.get("result") or {}
                print(f"\n[+] {data['kind']} complete: {len(result.get('sources', []))} sources, "
                      f"credibility {result.get('credibility_score', 0):.1f}/10")
                print(f"{'='*50}")
                print(result.get("generated_content", ""))
                print(f"{'='*50}")

            elif event.event == EventType.JOB_ERROR:
                print(f"\n[!] {data['kind']} failed: {data.get('error', 'Unknown error')}")

            if event.event == EventType.RESEARCH_COMPLETE:
                print(f"\n[*] Research {data['status']}: {data['completed']} completed, {data['failed']} failed")
                exit_code = 0 if data["failed"] == 0 else 1
                break
    except asyncio.CancelledError:
        # Ctrl+C under asyncio.run cancels this task
        await orchestrator.cancel(document_id)
        raise
    finally:
        subscription.close()
        await orchestrator.aclose()

    return exit_code


def main():
    parser = argparse.ArgumentParser(description="BrainLift research workflows")
    parser.add_argument("--purpose", "-p", required=True, help="Purpose statement to research")
    parser.add_argument("--document", "-d", default="cli", help="Document id (default: cli)")
    parser.add_argument("--model", "-m", help="Model to use (default: from config)")
    parser.add_argument("--sse", action="store_true", help="Print events as raw SSE frames")

    args = parser.parse_args()

    sys.exit(asyncio.run(run_research(args.document, args.purpose, args.model, args.sse)))


if __name__ == "__main__":
    main()

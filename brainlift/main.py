from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from brainlift.api import deps
from brainlift.api.routes import research
from brainlift.config import settings


@asynccontextmanager
async def lifespan(app: FastAPI):
    if getattr(app.state, "orchestrator", None) is None:
        app.state.orchestrator = deps.build_orchestrator()
    yield
    await app.state.orchestrator.aclose()


def create_app(orchestrator=None) -> FastAPI:
    app = FastAPI(
        title="BrainLift Research",
        description="Concurrent research workflows for BrainLift documents",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.orchestrator = orchestrator

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(research.router)

    @app.get("/api/health")
    async def health():
        return {"status": "ok", "service": "brainlift"}

    return app


app = create_app()


def serve() -> None:
    import uvicorn

    uvicorn.run("brainlift.main:app", host="0.0.0.0", port=8000)

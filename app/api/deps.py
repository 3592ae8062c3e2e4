"""Request dependencies: reach the lifespan-owned pipeline through app.state."""

from fastapi import HTTPException, Request

from app.pipeline.orchestrator import Orchestrator


def get_orchestrator(request: Request) -> Orchestrator:
    orchestrator = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        raise HTTPException(status_code=503, detail="Pipeline not initialized")
    return orchestrator

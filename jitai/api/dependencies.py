"""FastAPI dependencies for the JITAI API."""

from __future__ import annotations

from fastapi import HTTPException, Request, status

from jitai.services.engine import JitaiEngine


def get_engine(request: Request) -> JitaiEngine:
    """The engine attached to the application at startup."""
    engine: JitaiEngine | None = getattr(request.app.state, "engine", None)
    if engine is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Engine not initialised",
        )
    return engine

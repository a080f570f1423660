"""
REST API layer for the JITAI engine.

Provides:
- FastAPI application with CORS middleware
- Decision, content selection, outcome and analytics endpoints under /api/v1
- Global exception handlers mapping engine errors to the error envelope
"""

from __future__ import annotations

import logging
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from jitai.api.routes import router
from jitai.api.schemas import error_response
from jitai.config.settings import JitaiSettings, load_settings
from jitai.lib.exceptions import ValidationError
from jitai.services.database import create_session_factory, init_models
from jitai.services.engine import JitaiEngine, build_engine
from jitai.services.outcome_store import SqlOutcomeStore
from jitai.services.preference_store import PreferenceStore
from jitai.services.redis_service import get_redis_service

logger = logging.getLogger(__name__)

_ALLOWED_HEADERS: list[str] = [
    "Authorization",
    "Content-Type",
    "Accept",
    "X-Request-ID",
]


def create_app(engine: JitaiEngine | None = None, settings: JitaiSettings | None = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        engine: Pre-built engine; when None one is built at startup from
            settings (SQL outcome store, Redis-backed key-value store)
        settings: Settings for the startup-built engine (env by default)

    Returns:
        Configured FastAPI application instance.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if engine is not None:
            app.state.engine = engine
            yield
            return

        resolved = settings or load_settings()
        db_engine, session_factory = create_session_factory(resolved.storage.database_url)
        await init_models(db_engine)
        app.state.engine = build_engine(
            SqlOutcomeStore(session_factory, page_size=resolved.storage.page_size),
            PreferenceStore(get_redis_service()),
            settings=resolved,
        )
        try:
            yield
        finally:
            await db_engine.dispose()

    app = FastAPI(
        title="JITAI Engine",
        description="Just-in-time adaptive intervention decision core",
        version="0.1.0",
        lifespan=lifespan,
    )
    if engine is not None:
        app.state.engine = engine

    @app.exception_handler(ValidationError)
    async def validation_exception_handler(request: Request, exc: ValidationError) -> JSONResponse:
        return JSONResponse(status_code=422, content=error_response("validation_error", str(exc)))

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=500,
            content=error_response("internal_server_error", "An unexpected error occurred."),
        )

    # Comma-separated list, e.g. "http://localhost:3000,https://app.example.com"
    cors_origins = [
        origin.strip()
        for origin in os.getenv("JITAI_CORS_ORIGINS", "").split(",")
        if origin.strip()
    ]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=_ALLOWED_HEADERS,
    )

    app.include_router(router)

    @app.get("/health")
    async def root_health_check() -> dict[str, str]:
        """Root health check for load balancers and orchestrators."""
        return {"status": "ok"}

    return app


__all__ = ["create_app", "router"]

"""
Async database wiring for the outcome store.

SQLite (via aiosqlite) by default; any SQLAlchemy async URL works.

Usage:
    engine, session_factory = create_session_factory("sqlite+aiosqlite:///./jitai.db")
    await init_models(engine)
"""

from __future__ import annotations

from typing import Any

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from jitai.models.base import Base

# Registers InterventionResult with Base.metadata
from jitai.models.intervention_result import InterventionResult  # noqa: F401


def _connect_args(database_url: str) -> dict[str, Any]:
    """Get database-specific connection arguments."""
    if database_url.startswith("sqlite"):
        return {"check_same_thread": False}
    return {}


def create_session_factory(
    database_url: str,
    echo: bool = False,
) -> tuple[AsyncEngine, async_sessionmaker[AsyncSession]]:
    """Create the async engine and a session factory bound to it."""
    engine = create_async_engine(
        database_url,
        echo=echo,
        pool_pre_ping=True,
        connect_args=_connect_args(database_url),
    )
    session_factory = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
    return engine, session_factory


async def init_models(engine: AsyncEngine) -> None:
    """Create all tables that do not exist yet."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

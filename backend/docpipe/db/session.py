"""
Database engine and session management.

One AsyncEngine per process, built from settings.database_url. Sessions are
short-lived: the JobStore opens one per operation so a long-running
processor never holds a connection across network calls.
"""

from __future__ import annotations

import logging

from sqlalchemy import text
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from docpipe.core.config import settings
from docpipe.models.jobs import Base

logger = logging.getLogger(__name__)


def build_engine(database_url: str | None = None, echo: bool | None = None) -> AsyncEngine:
    """
    Create the async engine.

    In-memory SQLite needs a single shared connection (StaticPool), otherwise
    every checkout would see an empty database.
    """
    url = database_url or settings.database_url
    kwargs: dict = {"echo": settings.db_echo_sql if echo is None else echo}

    if url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if make_url(url).database in (None, "", ":memory:"):
            kwargs["poolclass"] = StaticPool
    else:
        kwargs["pool_pre_ping"] = True   # detect stale connections before use
        kwargs["pool_recycle"] = 3600

    return create_async_engine(url, **kwargs)


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # expire_on_commit=False keeps ORM objects usable after commit
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def init_models(engine: AsyncEngine) -> None:
    """Create tables that do not exist yet."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database schema ready")


async def check_db_health(engine: AsyncEngine) -> dict:
    """Ping the database; used by /ready."""
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return {"status": "ok"}
    except Exception as exc:
        logger.error("DB health check failed: %s", exc)
        return {"status": "error", "detail": str(exc)}

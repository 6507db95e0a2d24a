"""
Database session management.

Flow:
  1. A route depends on `UserDB` (skyvault.auth.dependencies).
  2. get_db() opens a session and a transaction, yields the session to the
     route handler and commits when the handler returns.
  3. If the handler raises, the transaction is rolled back and the
     connection is returned to the pool.

Ownership is not enforced by the database: every query issued by
FileService carries an explicit `user_id = :sub` filter.
"""

from __future__ import annotations

import logging
import time
from typing import AsyncGenerator

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from skyvault.core.config import settings

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------

POOL_RECYCLE_SECONDS = 3600

engine: AsyncEngine = create_async_engine(
    settings.database_url,
    pool_size=settings.db_pool_size,
    max_overflow=settings.db_max_overflow,
    pool_pre_ping=True,
    pool_recycle=POOL_RECYCLE_SECONDS,
    echo=settings.db_echo_sql,
)

# Rows returned from a route stay readable after the commit in get_db().
AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


# ---------------------------------------------------------------------------
# FastAPI dependency
# ---------------------------------------------------------------------------

async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency that yields a transactional database session.

    Usage in a route:
        @router.get("/files")
        async def list_files(db: UserDB): ...
    """
    async with AsyncSessionLocal() as session:
        async with session.begin():
            yield session
            # Transaction commits on context exit; an exception rolls it back


# ---------------------------------------------------------------------------
# Schema bootstrap + health check
# ---------------------------------------------------------------------------

async def create_tables() -> None:
    """Create missing tables (development convenience; production uses migrations)."""
    from skyvault.models.files import Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database | tables ensured")


async def check_db_health() -> dict:
    """
    Round-trip a trivial query. Never raises: callers (/ready, /diagnostics,
    startup) decide what an error status means for them.
    """
    t0 = time.perf_counter()
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as exc:
        logger.error("Database | health check failed: %s", exc)
        return {"status": "error", "detail": str(exc)}
    return {"status": "ok", "latency_ms": round((time.perf_counter() - t0) * 1000, 1)}

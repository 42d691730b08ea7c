"""
db/session.py
-------------
Async SQLAlchemy engine and session factory.

Design decisions:
  - AsyncEngine with asyncpg driver for non-blocking I/O.
  - Connection pool sized for typical SaaS workloads:
      pool_size=10, max_overflow=20 → max 30 concurrent DB connections.
  - pool_pre_ping=True: validates connections before checkout to handle
    stale connections after DB restarts or idle timeouts.
  - pool_timeout / command_timeout bound how long a request can wait on
    the store; a timeout surfaces as Unavailable (503), never as a
    permission or not-found error.
  - expire_on_commit=False: avoids lazy-load errors after commit in async
    context (attributes are already loaded, no implicit SELECT needed).
  - One session == one transaction == one request. Authorization facts
    are read inside the same transaction as the write they guard.
"""

from typing import AsyncGenerator

from sqlalchemy.exc import OperationalError, TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from app.core.config import settings
from app.core.exceptions import Unavailable
from app.core.logging import get_logger

logger = get_logger(__name__)


def build_engine(url: str) -> AsyncEngine:
    if url.startswith("sqlite"):
        # SQLite (tests / local dev) has no server-side pool to size
        return create_async_engine(url, echo=settings.DEBUG)

    connect_args = {}
    if url.startswith("postgresql+asyncpg"):
        connect_args["command_timeout"] = settings.DB_COMMAND_TIMEOUT_SECONDS

    return create_async_engine(
        url,
        echo=settings.DEBUG,          # Log SQL in development
        pool_size=10,
        max_overflow=20,
        pool_pre_ping=True,
        pool_recycle=3600,             # Recycle connections every hour
        pool_timeout=settings.DB_POOL_TIMEOUT_SECONDS,
        connect_args=connect_args,
    )


# ── Engine ────────────────────────────────────────────────────────────────────
engine = build_engine(settings.DATABASE_URL)

# ── Session Factory ───────────────────────────────────────────────────────────
AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency that yields a database session.
    The session is committed when the request finishes and rolled back on
    exceptions. Store-level timeouts and connection failures are translated
    to Unavailable.

    Usage:
        @router.get("/example")
        async def handler(db: AsyncSession = Depends(get_db)):
            ...
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except (OperationalError, PoolTimeoutError) as exc:
            await session.rollback()
            logger.error("Entity store unavailable", error=str(exc))
            raise Unavailable("Database temporarily unavailable") from exc
        except Exception:
            await session.rollback()
            raise

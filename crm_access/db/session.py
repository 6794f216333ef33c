"""
db/session.py
-------------
Async SQLAlchemy engine and session factory.

Design decisions:
  - AsyncEngine with asyncpg driver for non-blocking I/O.
  - Connection pool sized for a small admin backend:
      pool_size=10, max_overflow=20 → max 30 concurrent DB connections.
    Pool arguments are skipped for SQLite URLs (local runs and tests).
  - pool_pre_ping=True: validates connections before checkout to handle
    stale connections after DB restarts or idle timeouts.
  - expire_on_commit=False: avoids lazy-load errors after commit in async
    context (attributes are already loaded, no implicit SELECT needed).
"""

from typing import Any, Dict

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from crm_access.core.config import settings


def build_engine(url: str, echo: bool = False) -> AsyncEngine:
    kwargs: Dict[str, Any] = {"echo": echo, "pool_pre_ping": True}
    if not url.startswith("sqlite"):
        kwargs.update(pool_size=10, max_overflow=20, pool_recycle=3600)
    return create_async_engine(url, **kwargs)


def build_sessionmaker(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


# ── Engine ────────────────────────────────────────────────────────────────────
engine = build_engine(settings.DATABASE_URL, echo=settings.DEBUG)

# ── Session Factory ───────────────────────────────────────────────────────────
AsyncSessionLocal = build_sessionmaker(engine)


async def get_db() -> AsyncSession:  # type: ignore[return]
    """
    FastAPI dependency that yields a database session.
    The session is committed when the request finishes,
    and rolled back on exceptions.

    Usage:
        @router.get("/example")
        async def handler(db: AsyncSession = Depends(get_db)):
            ...
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

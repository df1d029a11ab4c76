"""PostgreSQL store with async SQLAlchemy for the outcome audit trail.

Handles:
- Engine / session factory lifecycle (init, ping, close)
- Transactional sessions for writing and reading audit rows

The database is optional. A sort run never depends on it: callers check
is_db_ready() and skip persistence when it is not, and get_session()
raises DatabaseUnavailableError instead of a bare RuntimeError.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from catalog_sort.settings import Settings, get_settings


class Base(DeclarativeBase):
    """Base class for SQLAlchemy models."""

    pass


class DatabaseUnavailableError(RuntimeError):
    pass


# Engine and session factory (initialized on startup)
_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


async def init_db(settings: Settings | None = None) -> None:
    """Initialize the connection pool.

    One writer per run (rows are written one product at a time), so the pool
    stays small.
    """
    global _engine, _session_factory

    settings = settings or get_settings()
    _engine = create_async_engine(
        settings.async_database_url,
        echo=settings.debug,
        connect_args=settings.asyncpg_connect_args,
        pool_size=2,
        max_overflow=2,
        pool_pre_ping=True,
    )
    _session_factory = async_sessionmaker(_engine, class_=AsyncSession, expire_on_commit=False)


def _require_engine() -> AsyncEngine:
    if _engine is None:
        raise DatabaseUnavailableError("Database not initialized. Call init_db() first.")
    return _engine


async def ping_db() -> None:
    """Run SELECT 1 (raises if the database is unreachable)."""
    async with _require_engine().connect() as conn:
        await conn.execute(text("SELECT 1"))


async def close_db() -> None:
    """Dispose the pool and forget the session factory."""
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_factory = None


def is_db_ready() -> bool:
    return _session_factory is not None


@asynccontextmanager
async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Session that commits on exit and rolls back on error.

    Usage:
        async with get_session() as session:
            await save_outcome(session, run_id, outcome)
    """
    if _session_factory is None:
        raise DatabaseUnavailableError("Database not initialized. Call init_db() first.")

    async with _session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise

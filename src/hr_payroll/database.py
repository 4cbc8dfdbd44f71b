"""Database connection and session management."""

from __future__ import annotations

from contextlib import contextmanager
from typing import TYPE_CHECKING, Iterator

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from hr_payroll.config import get_settings
from hr_payroll.models import Base

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine


class PersistenceError(Exception):
    """Raised when the storage layer fails during a period-level operation."""

    def __init__(self, operation: str, cause: Exception):
        self.operation = operation
        self.cause = cause
        super().__init__(f"Persistence failure during {operation}: {cause}")


def get_engine(database_url: str | None = None) -> AsyncEngine:
    """Create async database engine."""
    url = database_url or get_settings().database_url
    pool_options: dict[str, int] = {}
    if not url.startswith("sqlite"):
        pool_options = {"pool_size": 10, "max_overflow": 20}
    return create_async_engine(url, echo=False, pool_pre_ping=True, **pool_options)


def make_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Build the session factory used by services and background writers."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


# Global engine and session factory
_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def init_db() -> tuple[AsyncEngine, async_sessionmaker[AsyncSession]]:
    """Initialize database engine and session factory."""
    global _engine, _session_factory
    engine, factory = _engine, _session_factory
    if engine is None or factory is None:
        engine = get_engine()
        factory = make_session_factory(engine)
        _engine, _session_factory = engine, factory
    return engine, factory


async def create_tables(engine: AsyncEngine) -> None:
    """Create all tables that do not exist yet."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def dispose_db() -> None:
    """Dispose the global engine (application shutdown)."""
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_factory = None


@contextmanager
def persistence_errors(operation: str) -> Iterator[None]:
    """Re-raise storage errors as PersistenceError for the named operation."""
    try:
        yield
    except SQLAlchemyError as exc:
        raise PersistenceError(operation, exc) from exc

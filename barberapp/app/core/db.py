"""Async SQLAlchemy engine and sessions.

One engine per process, created lazily from ``DATABASE_URL``. Sessions are
short-lived: every repository call opens its own via ``get_session()``. The
first session checks that the schema exists and creates it when it does not,
so a fresh SQLite file or an empty Postgres database works without alembic.
"""

import logging
import os
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Callable

from sqlalchemy import text
from sqlalchemy.engine import make_url
from sqlalchemy.exc import ArgumentError, SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from ..domain.models import Base

logger = logging.getLogger(__name__)

DATABASE_URL_ENV = "DATABASE_URL"
DEFAULT_URL = "postgresql+asyncpg://barber_user:barber_pass@db:5432/barber_db"

# Any table of the current schema works as the probe
_PROBE_SQL = "SELECT 1 FROM barbers LIMIT 1"

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None
_SCHEMA_READY: bool = False
_SCHEMA_CHECKING: bool = False


def database_url() -> str:
    return os.getenv(DATABASE_URL_ENV, DEFAULT_URL)


def _engine_options(url: str) -> dict[str, Any]:
    backend = make_url(url).get_backend_name()
    if backend == "sqlite":
        # aiosqlite: wait on a locked file instead of failing at once
        return {"connect_args": {"timeout": 5}}
    return {
        "pool_pre_ping": True,
        "pool_size": int(os.getenv("DB_POOL_SIZE", "5")),
        "max_overflow": int(os.getenv("DB_MAX_OVERFLOW", "10")),
    }


def _make_engine(url: str) -> AsyncEngine:
    return create_async_engine(url, echo=False, **_engine_options(url))


def get_engine() -> AsyncEngine:
    global _engine, _session_factory
    if _engine is None:
        url = database_url()
        _engine = _make_engine(url)
        _session_factory = async_sessionmaker(_engine, expire_on_commit=False)
        try:
            shown = make_url(url).render_as_string(hide_password=True)
        except ArgumentError:
            shown = "<unparseable url>"
        logger.info("Database engine created for %s", shown)
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    get_engine()
    assert _session_factory is not None
    return _session_factory


async def _ensure_schema() -> None:
    global _SCHEMA_READY, _SCHEMA_CHECKING
    if _SCHEMA_READY or _SCHEMA_CHECKING:
        return
    _SCHEMA_CHECKING = True
    try:
        async with get_engine().connect() as conn:
            try:
                await conn.execute(text(_PROBE_SQL))
                present = True
            except SQLAlchemyError:
                present = False
        if present:
            _SCHEMA_READY = True
        else:
            logger.info("Schema not found, creating tables")
            await init_db(force=False)
    finally:
        _SCHEMA_CHECKING = False


@asynccontextmanager
async def get_session() -> AsyncIterator[AsyncSession]:
    """Yield a fresh AsyncSession; closed on exit, never committed implicitly."""
    await _ensure_schema()
    session = get_session_factory()()
    try:
        yield session
    finally:
        await session.close()


async def init_db(
    force: bool = False, on_create: Callable[[AsyncEngine], None] | None = None
) -> None:
    """Create all tables; ``force`` drops them first (tests and local resets only)."""
    global _SCHEMA_READY
    engine = get_engine()
    async with engine.begin() as conn:
        if force:
            logger.warning("Dropping all tables before create")
            await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    if on_create:
        on_create(engine)
    _SCHEMA_READY = True


def _reset_engine_for_tests() -> None:
    """Forget the engine without disposing it."""
    global _engine, _session_factory, _SCHEMA_READY, _SCHEMA_CHECKING
    _engine = None
    _session_factory = None
    _SCHEMA_READY = False
    _SCHEMA_CHECKING = False


async def dispose_engine() -> None:
    """Close pooled connections and forget the engine."""
    if _engine is not None:
        await _engine.dispose()
    _reset_engine_for_tests()


__all__ = [
    "database_url",
    "get_engine",
    "get_session",
    "get_session_factory",
    "init_db",
    "dispose_engine",
    "_reset_engine_for_tests",
]

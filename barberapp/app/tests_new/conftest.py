"""Test configuration to ensure project package import resolution.

Adds the repository root to sys.path so `import barberapp` works in CI where
the checkout directory may not be on PYTHONPATH by default. Also provides a
throwaway SQLite database per test for the repository-backed tests.
"""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path

import pytest


ROOT = Path(__file__).resolve().parents[3]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


@pytest.fixture
def sqlite_db(tmp_path, monkeypatch):
    """Point the engine at a fresh SQLite file (NullPool: no connection outlives its loop)."""
    from sqlalchemy.ext.asyncio import create_async_engine
    from sqlalchemy.pool import NullPool

    from barberapp.app.core import db

    url = f"sqlite+aiosqlite:///{tmp_path / 'barberapp-test.db'}"
    monkeypatch.setenv("DATABASE_URL", url)
    monkeypatch.setattr(db, "_make_engine", lambda u: create_async_engine(u, poolclass=NullPool))
    db._reset_engine_for_tests()
    yield url
    db._reset_engine_for_tests()


@pytest.fixture
def run_db(sqlite_db):
    """Run a coroutine function against a freshly created schema."""
    from barberapp.app.core import db

    def _run(coro_fn, *args, **kwargs):
        async def _main():
            await db.init_db(force=True)
            try:
                return await coro_fn(*args, **kwargs)
            finally:
                await db.dispose_engine()

        return asyncio.run(_main())

    return _run


def open_week(start: str = "09:00", end: str = "12:00", days: tuple[str, ...] = ("monday",)) -> dict:
    from barberapp.app.domain.schedule import WEEKDAYS

    return {name: {"is_open": name in days, "start": start, "end": end} for name in WEEKDAYS}


@pytest.fixture
def week_factory():
    return open_week

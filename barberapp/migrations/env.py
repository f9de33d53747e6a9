import asyncio
import os
from logging.config import fileConfig

from alembic import context
from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import async_engine_from_config

# -------------------------
# Alembic Config
# -------------------------
config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

# -------------------------
# Import your models metadata
# -------------------------
from barberapp.app.domain.models import Base  # noqa: E402

target_metadata = Base.metadata


def _database_url() -> str:
    database_url = os.getenv("DATABASE_URL") or config.get_main_option("sqlalchemy.url")
    if not database_url:
        raise RuntimeError(
            "DATABASE_URL is not set. Add a line like\n"
            "DATABASE_URL=postgresql+asyncpg://barber_user:barber_pass@db:5432/barber_db\n"
            "to your .env file."
        )
    return database_url


# -------------------------
# Run migrations in offline mode
# -------------------------
def run_migrations_offline() -> None:
    """Run migrations without DB connection (generate SQL only)."""
    context.configure(
        url=_database_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
        compare_server_default=True,
    )

    with context.begin_transaction():
        context.run_migrations()


def _do_run_migrations(connection: Connection) -> None:
    context.configure(
        connection=connection,
        target_metadata=target_metadata,
        compare_type=True,
        compare_server_default=True,
        render_as_batch=connection.dialect.name == "sqlite",
    )

    with context.begin_transaction():
        context.run_migrations()


async def _run_async_migrations() -> None:
    # The app URL is async (asyncpg / aiosqlite); run the sync migration body through run_sync
    config.set_main_option("sqlalchemy.url", _database_url())
    connectable = async_engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    async with connectable.connect() as connection:
        await connection.run_sync(_do_run_migrations)
    await connectable.dispose()


def run_migrations_online() -> None:
    asyncio.run(_run_async_migrations())


# -------------------------
# Entrypoint
# -------------------------
if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()

"""Runtime entrypoint for the booking API."""
import argparse
import asyncio
import logging
import os
from contextlib import suppress

import uvicorn
from rich.logging import RichHandler

from barberapp.app.core.bootstrap import seed_demo_barber
from barberapp.app.core.db import dispose_engine, init_db
from barberapp.app.core.logger import get_logger
from barberapp.app.workers.subscriptions import start_subscription_monitor


# ==============================================================
# LOGGING CONFIG
# ==============================================================

# Console: INFO / WARNING / ERROR (Rich)
console_handler = RichHandler(
    rich_tracebacks=True,
    markup=True,
    show_time=True,
    show_level=True,
    show_path=False,
    log_time_format="%H:%M:%S",
)

# File: WARNING+ only
file_handler = logging.FileHandler(os.getenv("LOG_FILE", "barberapp.log"), encoding="utf-8")
file_handler.setLevel(logging.WARNING)
file_handler.setFormatter(logging.Formatter(
    "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
))

# Resolve root log level from environment (LOG_LEVEL), default INFO
_env_level = os.getenv("LOG_LEVEL", "INFO").strip().upper()
_level = getattr(logging, _env_level, logging.INFO)

logging.basicConfig(
    level=_level,
    format="%(message)s",
    handlers=[console_handler, file_handler],
)

logger = get_logger()

# Reduce noisy logs but keep warnings
logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
logging.getLogger("asyncpg").setLevel(logging.WARNING)
logging.getLogger("alembic").setLevel(logging.WARNING)
logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


# ==============================================================
# MAIN
# ==============================================================

async def main(host: str, port: int, create_schema: bool) -> None:
    if create_schema:
        await init_db(force=False)
        logger.info("Schema ensured")

    seeded = await seed_demo_barber()
    if seeded is not None:
        logger.info("[bootstrap] demo booking page ready for %s", seeded.barber_id)

    stop_monitor = await start_subscription_monitor()

    config = uvicorn.Config(
        "barberapp.api.app:app",
        host=host,
        port=port,
        log_config=None,
        proxy_headers=True,
    )
    server = uvicorn.Server(config)
    try:
        logger.info("API listening on %s:%s", host, port)
        await server.serve()
    finally:
        with suppress(asyncio.CancelledError):
            await stop_monitor()
        await dispose_engine()
        logger.info("Shutdown complete")


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="BarberApp booking API")
    parser.add_argument("--host", default=os.getenv("API_HOST", "0.0.0.0"))
    parser.add_argument("--port", type=int, default=int(os.getenv("API_PORT", "8000")))
    parser.add_argument(
        "--create-schema",
        action="store_true",
        help="create missing tables on startup instead of relying on alembic",
    )
    return parser.parse_args()


def cli() -> None:
    args = _parse_args()
    try:
        asyncio.run(main(args.host, args.port, args.create_schema))
    except KeyboardInterrupt:
        logger.info("Interrupted")


if __name__ == "__main__":
    cli()

from __future__ import annotations
import logging
import os
from typing import Any, Dict

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

# Load .env before anything reads the environment
load_dotenv()

# Runtime settings (env driven; the API exposes a read-only subset)
SETTINGS: Dict[str, Any] = {
    "database_url": os.getenv(
        "DATABASE_URL",
        "postgresql+asyncpg://barber_user:barber_pass@db:5432/barber_db"
    ),
    # Public origin used to build the shareable booking link
    "public_base_url": os.getenv("PUBLIC_BASE_URL", "http://localhost:5000"),
    # Monthly price shown on renewal notices (display only)
    "subscription_price": os.getenv("SUBSCRIPTION_PRICE", "4.95"),
    "app_title": os.getenv("APP_TITLE", "BarberApp Calendar"),
}


def get_setting(key: str, default: Any = None) -> Any:
    """Return a runtime setting by key with a fallback."""
    value = SETTINGS.get(key, default)
    logger.debug("Setting read: key=%s, value=%s", key, value)
    return value


def build_booking_link(barber_id: str) -> str:
    """Return the public booking URL clients use for a barber."""
    base = str(get_setting("public_base_url", "") or "").rstrip("/")
    return f"{base}/booking/{barber_id}"


def build_renewal_link() -> str:
    base = str(get_setting("public_base_url", "") or "").rstrip("/")
    return f"{base}/subscribe"


__all__ = [
    "SETTINGS",
    "get_setting",
    "build_booking_link",
    "build_renewal_link",
]

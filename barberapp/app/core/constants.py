from __future__ import annotations

import os


def _env_bool(name: str, default: bool = False) -> bool:
    val = os.getenv(name)
    if val is None:
        return default
    return str(val).strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except Exception:
        return default


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, str(default)))
    except Exception:
        return default


def _env_str_list(name: str) -> list[str]:
    raw = os.getenv(name, "")
    vals: list[str] = []
    for token in raw.replace(";", ",").split(","):
        tok = token.strip()
        if tok:
            vals.append(tok)
    return vals


def _normalize_currency(code: str | None) -> str | None:
    if not code:
        return None
    cleaned = str(code).strip().upper()
    if len(cleaned) == 3 and cleaned.isalpha():
        return cleaned
    return None


# Slot grid (minutes). The booking link always offers fixed-width slots.
SLOT_GRANULARITY_MINUTES: int = _env_int("SLOT_GRANULARITY_MINUTES", 30)

# Registration defaults
DEFAULT_DAY_START: str = os.getenv("DEFAULT_DAY_START", "10:00")
DEFAULT_DAY_END: str = os.getenv("DEFAULT_DAY_END", "20:30")
DEFAULT_BREAK_START: str = os.getenv("DEFAULT_BREAK_START", "13:30")
DEFAULT_BREAK_END: str = os.getenv("DEFAULT_BREAK_END", "16:30")
TRIAL_DAYS: int = _env_int("TRIAL_DAYS", 30)
SUBSCRIPTION_PERIOD_MONTHS: int = _env_int("SUBSCRIPTION_PERIOD_MONTHS", 1)

# Subscription gate
RENEWAL_WARNING_DAYS: int = _env_int("RENEWAL_WARNING_DAYS", 3)
NOTIFICATION_THROTTLE_HOURS: int = _env_int("NOTIFICATION_THROTTLE_HOURS", 24)

# Locale / currency
DEFAULT_CURRENCY: str = _normalize_currency(os.getenv("DEFAULT_CURRENCY") or os.getenv("CURRENCY")) or "EUR"

# Feature flags / logging
LOG_LEVEL_NAME: str = os.getenv("LOG_LEVEL", "INFO").strip().upper()
RUN_BOOTSTRAP_ENABLED: bool = _env_bool("RUN_BOOTSTRAP", False)

# Auth (tokens are issued by the external identity provider)
JWT_SECRET: str = os.getenv("JWT_SECRET", "")
JWT_ALGO: str = os.getenv("JWT_ALGO", "HS256")

# Repository / worker / cache intervals
REPOSITORY_TIMEOUT_SECONDS: float = _env_float("REPOSITORY_TIMEOUT_SECONDS", 5.0)
AVAILABILITY_CACHE_TTL_SECONDS: int = _env_int("AVAILABILITY_CACHE_TTL_SECONDS", 300)
SUBSCRIPTION_CHECK_SECONDS_RAW: str = os.getenv("SUBSCRIPTION_CHECK_SECONDS", str(6 * 60 * 60))
try:
    SUBSCRIPTION_CHECK_SECONDS: int = int(SUBSCRIPTION_CHECK_SECONDS_RAW)
    SUBSCRIPTION_CHECK_SECONDS_INVALID: bool = False
except ValueError:
    SUBSCRIPTION_CHECK_SECONDS = 6 * 60 * 60
    SUBSCRIPTION_CHECK_SECONDS_INVALID = True
SUBSCRIPTION_MONITOR_WARMUP_SECONDS: int = _env_int("SUBSCRIPTION_MONITOR_WARMUP_SECONDS", 30)

# CORS
ALLOWED_ORIGINS: list[str] = _env_str_list("ALLOWED_ORIGINS")
ALLOW_ALL_ORIGINS: bool = _env_bool("ALLOW_ALL_ORIGINS", False)

__all__ = [
    "SLOT_GRANULARITY_MINUTES",
    "DEFAULT_DAY_START",
    "DEFAULT_DAY_END",
    "DEFAULT_BREAK_START",
    "DEFAULT_BREAK_END",
    "TRIAL_DAYS",
    "SUBSCRIPTION_PERIOD_MONTHS",
    "RENEWAL_WARNING_DAYS",
    "NOTIFICATION_THROTTLE_HOURS",
    "DEFAULT_CURRENCY",
    "LOG_LEVEL_NAME",
    "RUN_BOOTSTRAP_ENABLED",
    "JWT_SECRET",
    "JWT_ALGO",
    "REPOSITORY_TIMEOUT_SECONDS",
    "AVAILABILITY_CACHE_TTL_SECONDS",
    "SUBSCRIPTION_CHECK_SECONDS_RAW",
    "SUBSCRIPTION_CHECK_SECONDS",
    "SUBSCRIPTION_CHECK_SECONDS_INVALID",
    "SUBSCRIPTION_MONITOR_WARMUP_SECONDS",
    "ALLOWED_ORIGINS",
    "ALLOW_ALL_ORIGINS",
]

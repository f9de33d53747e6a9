import importlib
import logging

import pytest

from barberapp.app.core import constants


@pytest.fixture(autouse=True)
def _restore_constants(monkeypatch):
    yield
    monkeypatch.undo()
    importlib.reload(constants)


def _reload_constants(monkeypatch, **env) -> object:
    """Reload constants with a temporary env state."""
    for key, value in env.items():
        if value is None:
            monkeypatch.delenv(key, raising=False)
        else:
            monkeypatch.setenv(key, value)
    return importlib.reload(constants)


def test_env_helpers_parse_lists_and_bools(monkeypatch):
    module = _reload_constants(
        monkeypatch,
        ALLOWED_ORIGINS="https://a.example, https://b.example;",
        SLOT_GRANULARITY_MINUTES="15",
        RUN_BOOTSTRAP="yes",
        DEFAULT_CURRENCY="usd",
        ALLOW_ALL_ORIGINS="on",
    )
    assert module.ALLOWED_ORIGINS == ["https://a.example", "https://b.example"]
    assert module.SLOT_GRANULARITY_MINUTES == 15
    assert module.RUN_BOOTSTRAP_ENABLED is True
    assert module.ALLOW_ALL_ORIGINS is True
    assert module.DEFAULT_CURRENCY == "USD"


def test_env_helpers_fallbacks(monkeypatch):
    module = _reload_constants(
        monkeypatch,
        SLOT_GRANULARITY_MINUTES="oops",
        REPOSITORY_TIMEOUT_SECONDS="slow",
        ALLOWED_ORIGINS=";",
    )
    assert module.SLOT_GRANULARITY_MINUTES == 30
    assert module.REPOSITORY_TIMEOUT_SECONDS == 5.0
    assert module.ALLOWED_ORIGINS == []

    module = _reload_constants(monkeypatch, SUBSCRIPTION_CHECK_SECONDS="oops")
    assert module.SUBSCRIPTION_CHECK_SECONDS == 6 * 60 * 60
    assert module.SUBSCRIPTION_CHECK_SECONDS_INVALID is True

    module = _reload_constants(monkeypatch, SUBSCRIPTION_CHECK_SECONDS="15")
    assert module.SUBSCRIPTION_CHECK_SECONDS == 15
    assert module.SUBSCRIPTION_CHECK_SECONDS_INVALID is False


def test_registration_defaults(monkeypatch):
    module = _reload_constants(
        monkeypatch,
        DEFAULT_DAY_START=None,
        DEFAULT_DAY_END=None,
        TRIAL_DAYS=None,
        RENEWAL_WARNING_DAYS=None,
    )
    assert (module.DEFAULT_DAY_START, module.DEFAULT_DAY_END) == ("10:00", "20:30")
    assert (module.DEFAULT_BREAK_START, module.DEFAULT_BREAK_END) == ("13:30", "16:30")
    assert module.TRIAL_DAYS == 30
    assert module.RENEWAL_WARNING_DAYS == 3
    assert module.NOTIFICATION_THROTTLE_HOURS == 24


def test_currency_normalization(monkeypatch):
    module = _reload_constants(monkeypatch)
    assert module._normalize_currency("eur") == "EUR"
    assert module._normalize_currency(" usd ") == "USD"
    assert module._normalize_currency("too-long") is None
    assert module._normalize_currency("") is None


def test_get_logger_uses_configured_level():
    from barberapp.app.core import logger as logger_module

    logger = logger_module.get_logger("barberapp-test-logger")
    assert isinstance(logger, logging.Logger)
    assert logger.level == getattr(logging, logger_module.LOG_LEVEL_NAME, logging.INFO)
    assert logger_module.get_logger().name == "barberapp"

"""Logger facade.

Modules use ``logging.getLogger(__name__)`` directly; this helper exists for
callers that want the project logger without knowing its name.
"""


import logging

from barberapp.app.core.constants import LOG_LEVEL_NAME

__all__ = ["get_logger"]


def get_logger(name: str | None = None) -> logging.Logger:
    logger = logging.getLogger(name or "barberapp")
    if logger.level == logging.NOTSET:
        logger.setLevel(getattr(logging, LOG_LEVEL_NAME, logging.INFO))
    return logger

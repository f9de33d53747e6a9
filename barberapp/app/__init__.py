"""Booking calendar application package.

Exposes the database helpers and ORM models; services, workers and the
API entrypoint live in their own subpackages.
"""

from .core import db
from .domain import models

__all__ = ["db", "models"]

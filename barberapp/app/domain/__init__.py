"""Domain package marker for mypy to prevent duplicate module name inference.
Exports models for convenience.
"""

from . import errors, models, schedule  # noqa: F401

__all__ = ["errors", "models", "schedule"]

"""TTL cache for resolved availability.

Sits in front of the resolver only. Writers must call ``invalidate`` after any
change to a barber's appointments or schedule; the booking path never reads
from it.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Generic, TypeVar

from barberapp.app.core.constants import AVAILABILITY_CACHE_TTL_SECONDS

logger = logging.getLogger(__name__)

V = TypeVar("V")


@dataclass
class _Entry(Generic[V]):
    value: V
    expires_at: float


class AvailabilityCache(Generic[V]):
    def __init__(self, ttl_seconds: float | None = None, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl_seconds = float(AVAILABILITY_CACHE_TTL_SECONDS if ttl_seconds is None else ttl_seconds)
        self._clock = clock
        self._entries: dict[tuple[str, str], _Entry[V]] = {}

    def get(self, barber_id: str, date: str) -> V | None:
        key = (str(barber_id), str(date))
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.expires_at <= self._clock():
            self._entries.pop(key, None)
            return None
        return entry.value

    def put(self, barber_id: str, date: str, value: V) -> None:
        if self.ttl_seconds <= 0:
            return
        self._entries[(str(barber_id), str(date))] = _Entry(value, self._clock() + self.ttl_seconds)

    def invalidate(self, barber_id: str, date: str | None = None) -> int:
        """Drop one day, or every cached day of the barber when ``date`` is None."""
        bid = str(barber_id)
        if date is not None:
            removed = 1 if self._entries.pop((bid, str(date)), None) is not None else 0
        else:
            keys = [k for k in self._entries if k[0] == bid]
            for k in keys:
                del self._entries[k]
            removed = len(keys)
        if removed:
            logger.debug("Availability cache invalidated: barber=%s date=%s entries=%s", bid, date, removed)
        return removed

    def clear(self) -> None:
        self._entries.clear()

    def purge_expired(self) -> int:
        now = self._clock()
        stale = [k for k, e in self._entries.items() if e.expires_at <= now]
        for k in stale:
            del self._entries[k]
        return len(stale)

    def __len__(self) -> int:
        return len(self._entries)


__all__ = ["AvailabilityCache"]

"""Background subscription monitor.

Periodically expires overdue trials and subscriptions and logs renewal
notices. start_subscription_monitor returns an async callable that stops the
worker gracefully.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from barberapp.app.core import constants
from barberapp.app.domain.errors import BookingError
from barberapp.app.services.booking_services import STORAGE_ERRORS
from barberapp.app.services.shared_services import utc_now
from barberapp.app.services.subscription_services import ReconciliationResult, reconcile

logger = logging.getLogger(__name__)


async def _check_once() -> ReconciliationResult | None:
    try:
        return await reconcile(utc_now())
    except STORAGE_ERRORS as e:
        logger.error("Subscription check failed: %r", e)
        return None
    except BookingError as e:
        logger.error("Subscription check aborted: %s", e)
        return None


async def _run_loop(stop_event: asyncio.Event, interval_seconds: int, warmup_seconds: float) -> None:
    # let the server finish starting before the first sweep
    try:
        await asyncio.wait_for(stop_event.wait(), timeout=warmup_seconds)
        return
    except asyncio.TimeoutError:
        pass
    while not stop_event.is_set():
        try:
            await _check_once()
        except Exception as e:
            logger.exception("Subscription monitor iteration error: %s", e)
        try:
            await asyncio.wait_for(stop_event.wait(), timeout=interval_seconds)
        except asyncio.TimeoutError:
            continue


async def start_subscription_monitor(
    interval_seconds: int | None = None, warmup_seconds: float | None = None
) -> Callable[[], Awaitable[None]]:
    """Start the monitor and return an async stop() function."""
    interval = interval_seconds or constants.SUBSCRIPTION_CHECK_SECONDS
    if constants.SUBSCRIPTION_CHECK_SECONDS_INVALID:
        logger.warning(
            "Invalid SUBSCRIPTION_CHECK_SECONDS=%r, using %ss",
            constants.SUBSCRIPTION_CHECK_SECONDS_RAW, constants.SUBSCRIPTION_CHECK_SECONDS,
        )
    warmup = constants.SUBSCRIPTION_MONITOR_WARMUP_SECONDS if warmup_seconds is None else warmup_seconds
    stop_event: asyncio.Event = asyncio.Event()
    task = asyncio.create_task(_run_loop(stop_event, interval, warmup), name="subscription-monitor")

    async def _stop() -> None:
        stop_event.set()
        try:
            await asyncio.wait_for(task, timeout=5)
        except asyncio.TimeoutError:
            task.cancel()
        except Exception:
            logger.exception("Subscription monitor exited with an error")
        logger.info("Subscription monitor stopped")

    logger.info("Subscription monitor started (interval=%ss, warmup=%ss)", interval, warmup)
    return _stop


async def stop_subscription_monitor(stop_callable: Optional[Callable[[], Awaitable[None]]] = None) -> None:
    """Call the provided stop callable if any."""
    if stop_callable:
        await stop_callable()


__all__ = ["start_subscription_monitor", "stop_subscription_monitor"]

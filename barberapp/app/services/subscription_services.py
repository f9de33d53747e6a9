"""Subscription gate, status state machine and periodic reconciliation.

Access is granted while the trial is running or while an ``active``
subscription has not passed its expiry. Missing or unreadable timestamps count
as already expired.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from barberapp.app.core.constants import (
    DEFAULT_CURRENCY,
    NOTIFICATION_THROTTLE_HOURS,
    RENEWAL_WARNING_DAYS,
    SUBSCRIPTION_PERIOD_MONTHS,
)
from barberapp.app.domain.errors import BarberNotFound, SubscriptionTransitionError, ValidationError
from barberapp.app.domain.models import SubscriptionStatus, normalize_subscription_status
from barberapp.app.services.barber_services import BarberRepo
from barberapp.app.services.shared_services import BarberRecord, add_months, as_utc, utc_now
from barberapp.config import build_renewal_link, get_setting

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: frozenset[tuple[SubscriptionStatus, SubscriptionStatus]] = frozenset(
    {
        (SubscriptionStatus.TRIAL, SubscriptionStatus.ACTIVE),
        (SubscriptionStatus.TRIAL, SubscriptionStatus.EXPIRED),
        (SubscriptionStatus.ACTIVE, SubscriptionStatus.EXPIRED),
        (SubscriptionStatus.EXPIRED, SubscriptionStatus.ACTIVE),
    }
)

_DAY_SECONDS = 24 * 60 * 60


def _days_left(until: datetime | None, now: datetime) -> int | None:
    if until is None:
        return None
    return math.ceil((until - now).total_seconds() / _DAY_SECONDS)


@dataclass(frozen=True)
class SubscriptionAccess:
    has_access: bool
    is_trial_active: bool
    is_subscription_active: bool
    needs_renewal_soon: bool
    needs_subscription: bool
    days_until_expiry: int | None
    days_until_trial_end: int | None
    subscription_status: str | None
    trial_ends_at: datetime | None
    subscription_expires: datetime | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "has_access": self.has_access,
            "is_trial_active": self.is_trial_active,
            "is_subscription_active": self.is_subscription_active,
            "needs_renewal_soon": self.needs_renewal_soon,
            "needs_subscription": self.needs_subscription,
            "days_until_expiry": self.days_until_expiry,
            "days_until_trial_end": self.days_until_trial_end,
            "subscription_status": self.subscription_status,
            "trial_ends_at": self.trial_ends_at.isoformat() if self.trial_ends_at else None,
            "subscription_expires": self.subscription_expires.isoformat() if self.subscription_expires else None,
        }


def evaluate(barber: BarberRecord, now: datetime | None = None) -> SubscriptionAccess:
    moment = as_utc(now) or utc_now()
    status = normalize_subscription_status(barber.subscription_status)
    trial_end = as_utc(barber.trial_ends_at)
    expires = as_utc(barber.subscription_expires)

    is_trial_active = trial_end is not None and moment <= trial_end
    is_subscription_active = status is SubscriptionStatus.ACTIVE and expires is not None and moment <= expires
    has_access = is_trial_active or is_subscription_active
    needs_renewal_soon = bool(
        is_subscription_active
        and expires is not None
        and (expires - moment) <= timedelta(days=RENEWAL_WARNING_DAYS)
    )
    return SubscriptionAccess(
        has_access=has_access,
        is_trial_active=is_trial_active,
        is_subscription_active=is_subscription_active,
        needs_renewal_soon=needs_renewal_soon,
        needs_subscription=not has_access,
        days_until_expiry=_days_left(expires, moment),
        days_until_trial_end=_days_left(trial_end, moment),
        subscription_status=status.value if status else None,
        trial_ends_at=trial_end,
        subscription_expires=expires,
    )


def check_transition(current: SubscriptionStatus | str | None, target: SubscriptionStatus | str) -> SubscriptionStatus:
    """Return the target status or raise SubscriptionTransitionError."""
    cur = normalize_subscription_status(current)
    tgt = normalize_subscription_status(target)
    if tgt is None:
        raise ValidationError(f"unknown subscription status {target!r}", field="subscription_status")
    if cur is None or (cur, tgt) not in ALLOWED_TRANSITIONS:
        raise SubscriptionTransitionError(getattr(cur, "value", str(current)), tgt.value)
    return tgt


async def _load(barber_id: str) -> BarberRecord:
    barber = await BarberRepo.get_by_barber_id(barber_id)
    if barber is None:
        raise BarberNotFound(barber_id)
    return barber


async def get_subscription_status(barber_id: str, now: datetime | None = None) -> SubscriptionAccess:
    return evaluate(await _load(barber_id), now)


async def activate_subscription(
    barber_id: str,
    payment_subscription_id: str | None = None,
    months: int = SUBSCRIPTION_PERIOD_MONTHS,
    now: datetime | None = None,
) -> BarberRecord:
    """Start (or extend) a paid period of ``months`` calendar months.

    An early renewal of a running subscription extends from the current expiry
    and keeps the ``active`` status.
    """
    if int(months) <= 0:
        raise ValidationError("months must be positive", field="months")
    moment = as_utc(now) or utc_now()
    barber = await _load(barber_id)
    status = normalize_subscription_status(barber.subscription_status)
    expires = as_utc(barber.subscription_expires)
    if status is SubscriptionStatus.ACTIVE and expires is not None and expires > moment:
        base = expires
    else:
        if status is not SubscriptionStatus.ACTIVE:
            check_transition(status, SubscriptionStatus.ACTIVE)
        base = moment
    updated = await BarberRepo.set_subscription_fields(
        barber.barber_id,
        subscription_status=SubscriptionStatus.ACTIVE,
        subscription_expires=add_months(base, int(months)),
        payment_subscription_id=payment_subscription_id or barber.payment_subscription_id,
        last_notification_sent_at=None,
        last_notification_type=None,
    )
    if updated is None:
        raise BarberNotFound(barber_id)
    logger.info(
        "Subscription activated: barber=%s expires=%s payment_id=%s",
        barber_id, updated.subscription_expires, updated.payment_subscription_id,
    )
    return updated


async def expire_subscription(barber_id: str) -> BarberRecord:
    barber = await _load(barber_id)
    status = normalize_subscription_status(barber.subscription_status)
    if status is SubscriptionStatus.EXPIRED:
        return barber
    check_transition(status, SubscriptionStatus.EXPIRED)
    updated = await BarberRepo.set_subscription_fields(barber.barber_id, subscription_status=SubscriptionStatus.EXPIRED)
    if updated is None:
        raise BarberNotFound(barber_id)
    logger.info("Subscription expired: barber=%s (was %s)", barber_id, status.value if status else None)
    return updated


async def list_expiring(days: int = 7, now: datetime | None = None) -> list[BarberRecord]:
    """Active subscriptions whose expiry falls within the next ``days`` days."""
    moment = as_utc(now) or utc_now()
    horizon = moment + timedelta(days=int(days))
    barbers = await BarberRepo.list_by_subscription_status(SubscriptionStatus.ACTIVE)
    out = [
        b for b in barbers
        if b.subscription_expires is not None and moment <= b.subscription_expires <= horizon
    ]
    return sorted(out, key=lambda b: b.subscription_expires)


@dataclass(frozen=True)
class RenewalNotice:
    barber_id: str
    email: str
    days_left: int
    name: str | None = None
    shop_name: str | None = None

    @property
    def message(self) -> str:
        who = self.name or "there"
        shop = self.shop_name or "your shop"
        offer = f"Renewal: {get_setting('subscription_price', '4.95')} {DEFAULT_CURRENCY}/month."
        if self.days_left <= 0:
            return f"Hi {who}, the BarberApp subscription for {shop} has expired. {offer}"
        if self.days_left == 1:
            return f"Hi {who}, the BarberApp subscription for {shop} expires tomorrow. {offer}"
        return f"Hi {who}, the BarberApp subscription for {shop} expires in {self.days_left} days. {offer}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "barber_id": self.barber_id,
            "email": self.email,
            "days_left": self.days_left,
            "message": self.message,
        }


@dataclass
class ReconciliationResult:
    expired: int = 0
    expiring_soon: int = 0
    notifications: list[RenewalNotice] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "expired": self.expired,
            "expiring_soon": self.expiring_soon,
            "notifications": [n.to_dict() for n in self.notifications],
        }


def _throttled(barber: BarberRecord, now: datetime) -> bool:
    last = as_utc(barber.last_notification_sent_at)
    if last is None:
        return False
    return now - last < timedelta(hours=NOTIFICATION_THROTTLE_HOURS)


async def reconcile(now: datetime | None = None) -> ReconciliationResult:
    """Expire overdue trials and subscriptions; collect renewal notices.

    Notices are throttled to one per barber per throttle window and are only
    logged here.
    """
    moment = as_utc(now) or utc_now()
    result = ReconciliationResult()
    barbers = await BarberRepo.list_by_subscription_status(SubscriptionStatus.TRIAL, SubscriptionStatus.ACTIVE)
    for barber in barbers:
        status = barber.subscription_status
        if status is SubscriptionStatus.TRIAL:
            if barber.trial_ends_at is None or barber.trial_ends_at < moment:
                await expire_subscription(barber.barber_id)
                result.expired += 1
            continue

        expires = barber.subscription_expires
        if expires is None or expires < moment:
            await expire_subscription(barber.barber_id)
            result.expired += 1
            continue

        if expires - moment > timedelta(days=RENEWAL_WARNING_DAYS):
            continue
        result.expiring_soon += 1
        if _throttled(barber, moment):
            continue
        days_left = _days_left(expires, moment) or 0
        notice = RenewalNotice(barber.barber_id, barber.email, days_left, barber.name, barber.shop_name)
        await BarberRepo.set_subscription_fields(
            barber.barber_id,
            last_notification_sent_at=moment,
            last_notification_type=f"expiring_{days_left}_days",
        )
        result.notifications.append(notice)
        logger.info("Renewal notice for %s <%s>: %s (%s)", barber.barber_id, barber.email, notice.message, build_renewal_link())

    if result.expired or result.expiring_soon:
        logger.info(
            "Subscription check: expired=%s expiring_soon=%s notices=%s",
            result.expired, result.expiring_soon, len(result.notifications),
        )
    else:
        logger.debug("Subscription check: all subscriptions in good standing")
    return result


__all__ = [
    "ALLOWED_TRANSITIONS",
    "SubscriptionAccess",
    "RenewalNotice",
    "ReconciliationResult",
    "evaluate",
    "check_transition",
    "get_subscription_status",
    "activate_subscription",
    "expire_subscription",
    "list_expiring",
    "reconcile",
]

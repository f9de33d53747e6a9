from __future__ import annotations

import asyncio
import calendar
import logging
import re
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Awaitable, TypeVar

from barberapp.app.core.constants import REPOSITORY_TIMEOUT_SECONDS
from barberapp.app.domain.errors import ScheduleError, ValidationError
from barberapp.app.domain.models import (
    Appointment,
    AppointmentStatus,
    Barber,
    LIVE_STATUSES,
    Service,
    SubscriptionStatus,
    normalize_appointment_status,
    normalize_subscription_status,
)
from barberapp.app.domain.schedule import WorkingSchedule, normalize_hm

logger = logging.getLogger(__name__)

T = TypeVar("T")

_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def utc_now() -> datetime:
    return datetime.now(UTC)


def as_utc(value: Any) -> datetime | None:
    """Coerce a stored timestamp into an aware UTC datetime.

    SQLite hands back naive datetimes, ISO strings show up from JSON payloads.
    Anything unparseable becomes None so callers can fail closed.
    """
    if value is None:
        return None
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return None
    if not isinstance(value, datetime):
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def add_months(value: datetime, months: int) -> datetime:
    """Shift by calendar months, clamping the day (Jan 31 + 1 -> Feb 28/29)."""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


async def with_timeout(awaitable: Awaitable[T], seconds: float | None = None) -> T:
    """Await a repository call with a deadline; raises asyncio.TimeoutError."""
    timeout = REPOSITORY_TIMEOUT_SECONDS if seconds is None else seconds
    return await asyncio.wait_for(awaitable, timeout=timeout)


def parse_date(value: str | date, field_name: str = "date") -> date:
    """Validate a ``YYYY-MM-DD`` string (or date) and return the date."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    token = str(value or "").strip()
    if not _DATE_RE.match(token):
        raise ValidationError(f"{field_name} must be YYYY-MM-DD", field=field_name)
    try:
        return date.fromisoformat(token)
    except ValueError:
        raise ValidationError(f"{field_name} is not a calendar date", field=field_name) from None


def normalize_date(value: str | date, field_name: str = "date") -> str:
    return parse_date(value, field_name).isoformat()


def normalize_time(value: str, field_name: str = "time") -> str:
    try:
        return normalize_hm(value)
    except ScheduleError:
        raise ValidationError(f"{field_name} must be HH:MM", field=field_name) from None


def normalize_price(value: Any, field_name: str = "price") -> str:
    """Return a two-decimal string (``15`` -> ``"15.00"``)."""
    try:
        amount = Decimal(str(value).strip().replace(",", "."))
    except (InvalidOperation, AttributeError):
        raise ValidationError(f"{field_name} must be a decimal amount", field=field_name) from None
    if not amount.is_finite() or amount < 0:
        raise ValidationError(f"{field_name} must be a non-negative amount", field=field_name)
    return str(amount.quantize(Decimal("0.01")))


def require_text(value: Any, field_name: str, max_length: int | None = None) -> str:
    text = str(value or "").strip()
    if not text:
        raise ValidationError(f"{field_name} is required", field=field_name)
    return check_length(text, field_name, max_length)


def check_length(text: str | None, field_name: str, max_length: int | None) -> str | None:
    """Reject values longer than the column that stores them."""
    if text is not None and max_length is not None and len(text) > max_length:
        raise ValidationError(f"{field_name} must be at most {max_length} characters", field=field_name)
    return text


# ---------------------------------------------------------------------------
# Records resolved at the repository boundary
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AppointmentRecord:
    id: int
    barber_id: str
    date: str
    time: str
    client_name: str
    client_phone: str | None = None
    service: str = ""
    price: str | None = None
    status: AppointmentStatus = AppointmentStatus.CONFIRMED
    idempotency_key: str | None = None
    created_at: datetime | None = None

    @property
    def is_live(self) -> bool:
        return self.status in LIVE_STATUSES

    @classmethod
    def from_model(cls, row: Appointment) -> "AppointmentRecord":
        return cls(
            id=row.id,
            barber_id=row.barber_id,
            date=row.date,
            time=row.time,
            client_name=row.client_name,
            client_phone=row.client_phone or None,
            service=row.service or "",
            price=row.price,
            # Unknown labels count as live so they never free a slot by accident
            status=normalize_appointment_status(row.status) or AppointmentStatus.CONFIRMED,
            idempotency_key=row.idempotency_key,
            created_at=as_utc(row.created_at),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "barber_id": self.barber_id,
            "date": self.date,
            "time": self.time,
            "client_name": self.client_name,
            "client_phone": self.client_phone,
            "service": self.service,
            "price": self.price,
            "status": self.status.value,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


@dataclass(frozen=True)
class ServiceRecord:
    id: int
    barber_id: str
    name: str
    price: str
    duration: str = "30"
    description: str | None = None
    order: str = "0"
    is_active: bool = True

    @classmethod
    def from_model(cls, row: Service) -> "ServiceRecord":
        return cls(
            id=row.id,
            barber_id=row.barber_id,
            name=row.name,
            price=row.price,
            duration=row.duration or "30",
            description=row.description,
            order=row.order or "0",
            is_active=bool(row.is_active),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "barber_id": self.barber_id,
            "name": self.name,
            "price": self.price,
            "duration": self.duration,
            "description": self.description,
            "order": self.order,
            "is_active": self.is_active,
        }


@dataclass(frozen=True)
class BarberRecord:
    barber_id: str
    name: str
    shop_name: str
    email: str
    is_active: bool = True
    price_haircut: str = "15.00"
    price_beard: str = "10.00"
    price_complete: str = "20.00"
    price_shave: str = "8.00"
    working_hours: dict[str, Any] = field(default_factory=dict)
    has_break: bool = False
    break_start: str | None = None
    break_end: str | None = None
    # Unknown stored labels resolve to None and are treated as no access
    subscription_status: SubscriptionStatus | None = SubscriptionStatus.TRIAL
    trial_ends_at: datetime | None = None
    subscription_expires: datetime | None = None
    payment_subscription_id: str | None = None
    last_notification_sent_at: datetime | None = None
    last_notification_type: str | None = None
    created_at: datetime | None = None

    def schedule(self) -> WorkingSchedule:
        """Build the working schedule; raises ScheduleError when malformed."""
        return WorkingSchedule.from_mapping(
            self.working_hours,
            has_break=self.has_break,
            break_start=self.break_start,
            break_end=self.break_end,
        )

    def legacy_prices(self) -> dict[str, str]:
        return {
            "haircut": self.price_haircut,
            "beard": self.price_beard,
            "complete": self.price_complete,
            "shave": self.price_shave,
        }

    @classmethod
    def from_model(cls, row: Barber) -> "BarberRecord":
        hours = row.working_hours if isinstance(row.working_hours, dict) else {}
        return cls(
            barber_id=row.barber_id,
            name=row.name,
            shop_name=row.shop_name,
            email=row.email,
            is_active=bool(row.is_active),
            price_haircut=row.price_haircut or "15.00",
            price_beard=row.price_beard or "10.00",
            price_complete=row.price_complete or "20.00",
            price_shave=row.price_shave or "8.00",
            working_hours=dict(hours),
            has_break=bool(row.has_break),
            break_start=row.break_start,
            break_end=row.break_end,
            subscription_status=normalize_subscription_status(row.subscription_status),
            trial_ends_at=as_utc(row.trial_ends_at),
            subscription_expires=as_utc(row.subscription_expires),
            payment_subscription_id=row.payment_subscription_id,
            last_notification_sent_at=as_utc(row.last_notification_sent_at),
            last_notification_type=row.last_notification_type,
            created_at=as_utc(row.created_at),
        )

    def to_public_dict(self) -> dict[str, Any]:
        """Fields safe to show on the public booking page."""
        return {
            "barber_id": self.barber_id,
            "name": self.name,
            "shop_name": self.shop_name,
            "working_hours": self.working_hours,
            "has_break": self.has_break,
            "break_start": self.break_start,
            "break_end": self.break_end,
            "prices": self.legacy_prices(),
        }


__all__ = [
    "utc_now",
    "as_utc",
    "add_months",
    "with_timeout",
    "parse_date",
    "normalize_date",
    "normalize_time",
    "normalize_price",
    "require_text",
    "check_length",
    "AppointmentRecord",
    "ServiceRecord",
    "BarberRecord",
]

from __future__ import annotations

import logging
import secrets
import string
import time as _time
from datetime import datetime, timedelta
from typing import Any, Mapping

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError

from barberapp.app.core.constants import (
    DEFAULT_BREAK_END,
    DEFAULT_BREAK_START,
    DEFAULT_DAY_END,
    DEFAULT_DAY_START,
    TRIAL_DAYS,
)
from barberapp.app.core.db import get_session
from barberapp.app.domain.errors import ScheduleError, ValidationError
from barberapp.app.domain.models import Barber, Service, SubscriptionStatus
from barberapp.app.domain.schedule import WorkingSchedule, normalize_hm
from barberapp.app.services.shared_services import (
    BarberRecord,
    ServiceRecord,
    normalize_price,
    require_text,
    utc_now,
)

logger = logging.getLogger(__name__)

# (name, price, duration minutes, order)
DEFAULT_SERVICES: tuple[tuple[str, str, str, str], ...] = (
    ("Corte de cabello", "15.00", "30", "1"),
    ("Arreglo de barba", "10.00", "20", "2"),
    ("Corte completo", "20.00", "45", "3"),
    ("Afeitado", "8.00", "15", "4"),
)

# Settings a barber may change through a partial update
UPDATABLE_BARBER_FIELDS = frozenset(
    {
        "name",
        "shop_name",
        "email",
        "is_active",
        "price_haircut",
        "price_beard",
        "price_complete",
        "price_shave",
        "working_hours",
        "has_break",
        "break_start",
        "break_end",
    }
)

_PRICE_FIELDS = ("price_haircut", "price_beard", "price_complete", "price_shave")

_ALPHABET = string.ascii_uppercase + string.digits


def _base36(number: int) -> str:
    digits = "0123456789abcdefghijklmnopqrstuvwxyz"
    out = ""
    while number:
        number, rem = divmod(number, 36)
        out = digits[rem] + out
    return out or "0"


def generate_barber_id() -> str:
    """Shareable booking-link id, e.g. ``BB_K3F9QZx1ab``."""
    random_part = "".join(secrets.choice(_ALPHABET) for _ in range(6))
    stamp = _base36(int(_time.time() * 1000))
    return f"BB_{random_part}{stamp[-4:]}"


def _clean_patch(patch: Mapping[str, Any]) -> dict[str, Any]:
    unknown = set(patch) - UPDATABLE_BARBER_FIELDS
    if unknown:
        raise ValidationError(f"unknown barber fields: {', '.join(sorted(unknown))}", field=sorted(unknown)[0])
    cleaned: dict[str, Any] = {}
    for key, value in patch.items():
        if key in _PRICE_FIELDS:
            cleaned[key] = normalize_price(value, key)
        elif key in {"name", "shop_name"}:
            cleaned[key] = require_text(value, key)
        elif key == "email":
            cleaned[key] = require_text(value, key).lower()
        elif key in {"is_active", "has_break"}:
            cleaned[key] = bool(value)
        elif key in {"break_start", "break_end"}:
            if value is None:
                cleaned[key] = None
                continue
            try:
                cleaned[key] = normalize_hm(value)
            except ScheduleError:
                raise ValidationError(f"{key} must be HH:MM", field=key) from None
        elif key == "working_hours":
            if not isinstance(value, Mapping):
                raise ValidationError("working_hours must be an object keyed by weekday", field=key)
            cleaned[key] = dict(value)
    return cleaned


class BarberRepo:
    """Barber store. Lookups go through the public ``barber_id``."""

    @staticmethod
    async def get_by_barber_id(barber_id: str) -> BarberRecord | None:
        async with get_session() as session:
            res = await session.execute(select(Barber).where(Barber.barber_id == str(barber_id)))
            row = res.scalars().first()
            return BarberRecord.from_model(row) if row else None

    @staticmethod
    async def get_by_email(email: str) -> BarberRecord | None:
        async with get_session() as session:
            res = await session.execute(
                select(Barber).where(func.lower(Barber.email) == str(email).strip().lower())
            )
            row = res.scalars().first()
            return BarberRecord.from_model(row) if row else None

    @staticmethod
    async def update_by_barber_id(barber_id: str, patch: Mapping[str, Any]) -> BarberRecord | None:
        """Partial merge: keys absent from ``patch`` keep their stored value.

        A patch touching the schedule is validated against the merged result
        before anything is written.
        """
        cleaned = _clean_patch(patch)
        async with get_session() as session:
            res = await session.execute(select(Barber).where(Barber.barber_id == str(barber_id)))
            barber = res.scalars().first()
            if not barber:
                return None
            for key, value in cleaned.items():
                setattr(barber, key, value)
            if cleaned.keys() & {"working_hours", "has_break", "break_start", "break_end"}:
                try:
                    WorkingSchedule.from_mapping(
                        barber.working_hours,
                        has_break=barber.has_break,
                        break_start=barber.break_start,
                        break_end=barber.break_end,
                    )
                except ScheduleError as exc:
                    await session.rollback()
                    raise ValidationError(str(exc), field="working_hours") from exc
            barber.updated_at = utc_now()
            try:
                await session.commit()
            except IntegrityError as ie:
                await session.rollback()
                logger.info("Barber update rejected for %s: %s", barber_id, ie)
                raise ValidationError("email already registered", field="email") from ie
            logger.info("Barber %s updated: fields=%s", barber_id, sorted(cleaned))
            return BarberRecord.from_model(barber)

    @staticmethod
    async def set_subscription_fields(barber_id: str, **fields: Any) -> BarberRecord | None:
        """Write subscription bookkeeping; the state machine lives in subscription_services."""
        allowed = {
            "subscription_status",
            "trial_ends_at",
            "subscription_expires",
            "payment_subscription_id",
            "last_notification_sent_at",
            "last_notification_type",
        }
        unknown = set(fields) - allowed
        if unknown:
            raise ValueError(f"not subscription fields: {sorted(unknown)}")
        async with get_session() as session:
            res = await session.execute(select(Barber).where(Barber.barber_id == str(barber_id)))
            barber = res.scalars().first()
            if not barber:
                return None
            for key, value in fields.items():
                setattr(barber, key, value)
            barber.updated_at = utc_now()
            await session.commit()
            return BarberRecord.from_model(barber)

    @staticmethod
    async def list_by_subscription_status(*statuses: SubscriptionStatus) -> list[BarberRecord]:
        async with get_session() as session:
            stmt = select(Barber).where(Barber.is_active.is_(True))
            if statuses:
                stmt = stmt.where(Barber.subscription_status.in_(list(statuses)))
            res = await session.execute(stmt.order_by(Barber.id))
            return [BarberRecord.from_model(row) for row in res.scalars().all()]

    @staticmethod
    async def register(
        name: str,
        shop_name: str,
        email: str,
        *,
        barber_id: str | None = None,
        now: datetime | None = None,
    ) -> BarberRecord:
        """Create a barber with the default week, a trial and the starter services."""
        name = require_text(name, "name")
        shop_name = require_text(shop_name, "shop_name")
        email = require_text(email, "email").lower()
        moment = now or utc_now()
        schedule = WorkingSchedule.default(
            start=DEFAULT_DAY_START,
            end=DEFAULT_DAY_END,
            break_start=DEFAULT_BREAK_START,
            break_end=DEFAULT_BREAK_END,
        )
        new_id = barber_id or generate_barber_id()
        async with get_session() as session:
            barber = Barber(
                barber_id=new_id,
                name=name,
                shop_name=shop_name,
                email=email,
                is_active=True,
                working_hours=schedule.to_mapping(),
                has_break=schedule.break_window.enabled,
                break_start=schedule.break_window.start,
                break_end=schedule.break_window.end,
                subscription_status=SubscriptionStatus.TRIAL,
                trial_ends_at=moment + timedelta(days=TRIAL_DAYS),
                created_at=moment,
            )
            session.add(barber)
            for svc_name, price, duration, order in DEFAULT_SERVICES:
                session.add(
                    Service(
                        barber_id=new_id,
                        name=svc_name,
                        price=price,
                        duration=duration,
                        order=order,
                        is_active=True,
                    )
                )
            try:
                await session.commit()
            except IntegrityError as ie:
                await session.rollback()
                logger.info("Barber registration rejected (email=%s): %s", email, ie)
                raise ValidationError("barber already registered", field="email") from ie
            logger.info("Barber registered: barber_id=%s shop=%s trial_ends_at=%s", new_id, shop_name, barber.trial_ends_at)
            return BarberRecord.from_model(barber)


def _service_sort_key(svc: ServiceRecord) -> tuple[int, str]:
    try:
        order = int(svc.order)
    except (TypeError, ValueError):
        order = 0
    return order, svc.name.lower()


class ServiceRepo:
    @staticmethod
    async def list_for_barber(barber_id: str, include_inactive: bool = False) -> list[ServiceRecord]:
        """Active services sorted by their numeric order, then by name."""
        async with get_session() as session:
            stmt = select(Service).where(Service.barber_id == str(barber_id))
            if not include_inactive:
                stmt = stmt.where(Service.is_active.is_(True))
            res = await session.execute(stmt)
            records = [ServiceRecord.from_model(row) for row in res.scalars().all()]
        return sorted(records, key=_service_sort_key)

    @staticmethod
    async def get(service_id: int) -> ServiceRecord | None:
        async with get_session() as session:
            row = await session.get(Service, int(service_id))
            return ServiceRecord.from_model(row) if row else None

    @staticmethod
    async def find_active_by_name(barber_id: str, name: str) -> ServiceRecord | None:
        async with get_session() as session:
            res = await session.execute(
                select(Service)
                .where(
                    Service.barber_id == str(barber_id),
                    Service.is_active.is_(True),
                    func.lower(Service.name) == str(name).strip().lower(),
                )
                .order_by(Service.id)
            )
            row = res.scalars().first()
            return ServiceRecord.from_model(row) if row else None

    @staticmethod
    async def create(
        barber_id: str,
        name: str,
        price: Any,
        *,
        duration: Any = "30",
        description: str | None = None,
        order: Any = "0",
        is_active: bool = True,
    ) -> ServiceRecord:
        svc = Service(
            barber_id=require_text(barber_id, "barber_id"),
            name=require_text(name, "name"),
            price=normalize_price(price),
            duration=_positive_int_text(duration, "duration"),
            description=(description or None),
            order=_int_text(order, "order"),
            is_active=bool(is_active),
        )
        async with get_session() as session:
            session.add(svc)
            await session.commit()
            logger.info("Service created: id=%s barber=%s name=%s", svc.id, svc.barber_id, svc.name)
            return ServiceRecord.from_model(svc)

    @staticmethod
    async def update(service_id: int, patch: Mapping[str, Any]) -> ServiceRecord | None:
        allowed = {"name", "price", "duration", "description", "order", "is_active"}
        unknown = set(patch) - allowed
        if unknown:
            raise ValidationError(f"unknown service fields: {', '.join(sorted(unknown))}", field=sorted(unknown)[0])
        async with get_session() as session:
            svc = await session.get(Service, int(service_id))
            if not svc:
                return None
            if "name" in patch:
                svc.name = require_text(patch["name"], "name")
            if "price" in patch:
                svc.price = normalize_price(patch["price"])
            if "duration" in patch:
                svc.duration = _positive_int_text(patch["duration"], "duration")
            if "description" in patch:
                svc.description = patch["description"] or None
            if "order" in patch:
                svc.order = _int_text(patch["order"], "order")
            if "is_active" in patch:
                svc.is_active = bool(patch["is_active"])
            await session.commit()
            return ServiceRecord.from_model(svc)

    @staticmethod
    async def delete(service_id: int) -> bool:
        async with get_session() as session:
            res = await session.execute(delete(Service).where(Service.id == int(service_id)))
            await session.commit()
            return bool(res.rowcount)


def _int_text(value: Any, field_name: str) -> str:
    try:
        return str(int(str(value).strip()))
    except (TypeError, ValueError):
        raise ValidationError(f"{field_name} must be an integer", field=field_name) from None


def _positive_int_text(value: Any, field_name: str) -> str:
    text = _int_text(value, field_name)
    if int(text) <= 0:
        raise ValidationError(f"{field_name} must be positive", field=field_name)
    return text


async def resolve_service_snapshot(barber: BarberRecord, service: str) -> tuple[str, str]:
    """Return the (name, price) copied onto an appointment.

    A named active service wins; otherwise the legacy type keys
    haircut/beard/complete/shave map to the barber's flat prices.
    """
    wanted = require_text(service, "service")
    named = await ServiceRepo.find_active_by_name(barber.barber_id, wanted)
    if named is not None:
        return named.name, named.price
    legacy = barber.legacy_prices().get(wanted.lower())
    if legacy is not None:
        return wanted, normalize_price(legacy)
    raise ValidationError(f"unknown service {wanted!r}", field="service")


__all__ = [
    "BarberRepo",
    "ServiceRepo",
    "DEFAULT_SERVICES",
    "UPDATABLE_BARBER_FIELDS",
    "generate_barber_id",
    "resolve_service_snapshot",
]

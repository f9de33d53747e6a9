"""Availability and booking core.

Slots are resolved from the barber's schedule plus one query for the day's
appointments. Bookings are written with a conditional insert guarded by the
partial unique index on (barber_id, date, time) over live appointments, so of
two concurrent writers for the same slot exactly one wins.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Mapping

from sqlalchemy import delete as sa_delete, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from barberapp.app.core.db import get_session
from barberapp.app.domain.errors import (
    AvailabilityUnavailable,
    BarberNotFound,
    BookingFailed,
    ScheduleError,
    SlotUnavailable,
    ValidationError,
)
from barberapp.app.domain.models import (
    Appointment,
    AppointmentStatus,
    Barber,
    normalize_appointment_status,
)
from barberapp.app.services.availability_cache import AvailabilityCache
from barberapp.app.services.barber_services import BarberRepo, resolve_service_snapshot
from barberapp.app.services.shared_services import (
    AppointmentRecord,
    BarberRecord,
    as_utc,
    check_length,
    normalize_date,
    normalize_time,
    require_text,
    with_timeout,
)
from barberapp.app.services.slot_services import generate_slots

logger = logging.getLogger(__name__)

# Faults that mean "could not determine", never "nothing there"
STORAGE_ERRORS: tuple[type[BaseException], ...] = (SQLAlchemyError, OSError, asyncio.TimeoutError)

# Column widths; longer input is rejected before any write
MAX_LENGTHS: dict[str, int] = {
    name: Appointment.__table__.c[name].type.length
    for name in ("barber_id", "client_name", "client_phone", "service", "idempotency_key")
}


class SlotStatus(str, Enum):
    AVAILABLE = "available"
    BOOKED = "booked"
    BREAK = "break"


@dataclass(frozen=True)
class SlotAvailability:
    time: str
    status: SlotStatus

    def to_dict(self) -> dict[str, str]:
        return {"time": self.time, "status": self.status.value}


@dataclass(frozen=True)
class CreateResult:
    created: bool
    record: AppointmentRecord | None


@dataclass(frozen=True)
class ClientAppointment:
    appointment: AppointmentRecord
    barber_name: str | None = None
    shop_name: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data = self.appointment.to_dict()
        data["barber_name"] = self.barber_name
        data["shop_name"] = self.shop_name
        return data


def _coerce_id(appointment_id: Any) -> int:
    try:
        return int(appointment_id)
    except (TypeError, ValueError):
        raise ValidationError("appointment id must be an integer", field="appointment_id") from None


def _live_slot_clause(barber_id: str, date: str, time: str):
    return (
        Appointment.barber_id == barber_id,
        Appointment.date == date,
        Appointment.time == time,
        Appointment.status != AppointmentStatus.CANCELLED.value,
    )


class AppointmentRepo:
    """Appointment store. Every method opens its own session."""

    @staticmethod
    async def query(barber_id: str, date: str | None = None) -> list[AppointmentRecord]:
        """All appointments of a barber, optionally for one day. Order is not guaranteed."""
        async with get_session() as session:
            stmt = select(Appointment).where(Appointment.barber_id == str(barber_id))
            if date is not None:
                stmt = stmt.where(Appointment.date == str(date))
            res = await session.execute(stmt)
            return [AppointmentRecord.from_model(row) for row in res.scalars().all()]

    @staticmethod
    async def get(appointment_id: int) -> AppointmentRecord | None:
        async with get_session() as session:
            row = await session.get(Appointment, int(appointment_id))
            return AppointmentRecord.from_model(row) if row else None

    @staticmethod
    async def find_live(barber_id: str, date: str, time: str) -> AppointmentRecord | None:
        async with get_session() as session:
            res = await session.execute(select(Appointment).where(*_live_slot_clause(barber_id, date, time)))
            row = res.scalars().first()
            return AppointmentRecord.from_model(row) if row else None

    @staticmethod
    async def create_if_absent(
        *,
        barber_id: str,
        date: str,
        time: str,
        client_name: str,
        client_phone: str | None,
        service: str,
        price: str | None,
        status: AppointmentStatus = AppointmentStatus.CONFIRMED,
        idempotency_key: str | None = None,
    ) -> CreateResult:
        """Insert unless a live appointment already holds (barber_id, date, time).

        On conflict the holder is returned with ``created=False``.
        """
        async with get_session() as session:
            appt = Appointment(
                barber_id=barber_id,
                date=date,
                time=time,
                client_name=client_name,
                client_phone=client_phone,
                service=service,
                price=price,
                status=status.value,
                idempotency_key=idempotency_key,
            )
            session.add(appt)
            try:
                await session.commit()
            except IntegrityError as ie:
                await session.rollback()
                logger.info("IntegrityError while creating appointment (slot taken): %s/%s %s: %s", barber_id, date, time, ie)
                res = await session.execute(select(Appointment).where(*_live_slot_clause(barber_id, date, time)))
                holder = res.scalars().first()
                return CreateResult(False, AppointmentRecord.from_model(holder) if holder else None)
            return CreateResult(True, AppointmentRecord.from_model(appt))

    @staticmethod
    async def update(appointment_id: int, patch: Mapping[str, Any]) -> bool:
        allowed = {"status", "client_name", "client_phone"}
        unknown = set(patch) - allowed
        if unknown:
            raise ValidationError(f"unknown appointment fields: {', '.join(sorted(unknown))}", field=sorted(unknown)[0])
        async with get_session() as session:
            row = await session.get(Appointment, int(appointment_id))
            if not row:
                return False
            if "status" in patch:
                status = normalize_appointment_status(patch["status"])
                if status is None:
                    raise ValidationError(f"unknown status {patch['status']!r}", field="status")
                row.status = status.value
            if "client_name" in patch:
                row.client_name = require_text(patch["client_name"], "client_name", MAX_LENGTHS["client_name"])
            if "client_phone" in patch:
                phone = (str(patch["client_phone"]).strip() or None) if patch["client_phone"] else None
                row.client_phone = check_length(phone, "client_phone", MAX_LENGTHS["client_phone"])
            await session.commit()
            return True

    @staticmethod
    async def transition(
        appointment_id: int, from_statuses: frozenset[AppointmentStatus] | set[AppointmentStatus], to_status: AppointmentStatus
    ) -> AppointmentRecord | None:
        """Move to ``to_status`` only from one of ``from_statuses``; None when nothing changed."""
        async with get_session() as session:
            row = await session.get(Appointment, int(appointment_id))
            if not row or AppointmentRecord.from_model(row).status not in from_statuses:
                return None
            row.status = to_status.value
            await session.commit()
            return AppointmentRecord.from_model(row)

    @staticmethod
    async def delete(appointment_id: int) -> bool:
        async with get_session() as session:
            res = await session.execute(sa_delete(Appointment).where(Appointment.id == int(appointment_id)))
            await session.commit()
            return bool(res.rowcount)

    @staticmethod
    async def delete_created_before(cutoff: datetime) -> int:
        async with get_session() as session:
            res = await session.execute(sa_delete(Appointment).where(Appointment.created_at < cutoff))
            await session.commit()
            return int(res.rowcount or 0)

    @staticmethod
    async def list_live_by_phone(client_phone: str) -> list[ClientAppointment]:
        async with get_session() as session:
            stmt = (
                select(Appointment, Barber.name, Barber.shop_name)
                .outerjoin(Barber, Barber.barber_id == Appointment.barber_id)
                .where(
                    Appointment.client_phone == str(client_phone),
                    Appointment.status != AppointmentStatus.CANCELLED.value,
                )
                .order_by(Appointment.date, Appointment.time)
            )
            res = await session.execute(stmt)
            return [
                ClientAppointment(AppointmentRecord.from_model(appt), barber_name, shop_name)
                for appt, barber_name, shop_name in res.all()
            ]


class AvailabilityResolver:
    """Classify every slot of a day as available, booked or break.

    The break window wins over an appointment sitting inside it.
    """

    def __init__(self, cache: AvailabilityCache | None = None, timeout: float | None = None) -> None:
        self.cache = cache
        self.timeout = timeout

    async def load_barber(self, barber_id: str) -> BarberRecord:
        try:
            barber = await with_timeout(BarberRepo.get_by_barber_id(barber_id), self.timeout)
        except STORAGE_ERRORS as exc:
            logger.warning("Barber lookup failed for %s: %r", barber_id, exc)
            raise AvailabilityUnavailable(f"could not load barber {barber_id}") from exc
        if barber is None:
            raise BarberNotFound(barber_id)
        return barber

    async def classify(self, barber: BarberRecord, date: str) -> list[SlotAvailability]:
        try:
            schedule = barber.schedule()
            slots = generate_slots(schedule, date)
        except ScheduleError as exc:
            logger.warning("Working hours misconfigured for barber %s: %s", barber.barber_id, exc)
            return []
        if not slots:
            return []
        try:
            appointments = await with_timeout(AppointmentRepo.query(barber.barber_id, date), self.timeout)
        except STORAGE_ERRORS as exc:
            logger.warning("Appointment query failed for %s on %s: %r", barber.barber_id, date, exc)
            raise AvailabilityUnavailable(f"could not load appointments for {barber.barber_id} on {date}") from exc
        booked = {a.time for a in appointments if a.is_live}
        result: list[SlotAvailability] = []
        for slot in slots:
            if schedule.is_break_active_at(slot):
                status = SlotStatus.BREAK
            elif slot in booked:
                status = SlotStatus.BOOKED
            else:
                status = SlotStatus.AVAILABLE
            result.append(SlotAvailability(slot, status))
        return result

    async def resolve(self, barber_id: str, date: str) -> list[SlotAvailability]:
        bid = require_text(barber_id, "barber_id")
        day = normalize_date(date)
        if self.cache is not None:
            cached = self.cache.get(bid, day)
            if cached is not None:
                return list(cached)
        barber = await self.load_barber(bid)
        result = await self.classify(barber, day)
        if self.cache is not None:
            self.cache.put(bid, day, tuple(result))
        return result

    async def resolve_slot(self, barber_id: str, date: str, time: str) -> SlotAvailability | None:
        """Fresh classification of one slot; None when ``time`` is not on the day's grid."""
        bid = require_text(barber_id, "barber_id")
        day = normalize_date(date)
        wanted = normalize_time(time)
        barber = await self.load_barber(bid)
        for slot in await self.classify(barber, day):
            if slot.time == wanted:
                return slot
        return None


class BookingCoordinator:
    def __init__(
        self,
        resolver: AvailabilityResolver | None = None,
        cache: AvailabilityCache | None = None,
        timeout: float | None = None,
    ) -> None:
        self.cache = cache if cache is not None else (resolver.cache if resolver else None)
        self.timeout = timeout
        # The write path always classifies fresh; the cache is only invalidated here
        self.resolver = resolver or AvailabilityResolver(cache=self.cache, timeout=timeout)

    def _invalidate(self, barber_id: str, date: str) -> None:
        if self.cache is not None:
            self.cache.invalidate(barber_id, date)

    async def _replay(self, barber_id: str, date: str, time: str, key: str | None) -> AppointmentRecord | None:
        if not key:
            return None
        try:
            holder = await with_timeout(AppointmentRepo.find_live(barber_id, date, time), self.timeout)
        except STORAGE_ERRORS as exc:
            raise BookingFailed(f"could not check booking {barber_id}/{date} {time}") from exc
        if holder is not None and holder.idempotency_key == key:
            logger.info("Booking replayed by idempotency key: id=%s", holder.id)
            return holder
        return None

    async def book(
        self,
        barber_id: str,
        date: str,
        time: str,
        client_name: str,
        client_phone: str | None = None,
        service: str = "",
        *,
        initiated_by: str = "client",
        idempotency_key: str | None = None,
    ) -> AppointmentRecord:
        bid = require_text(barber_id, "barber_id", MAX_LENGTHS["barber_id"])
        day = normalize_date(date)
        slot_time = normalize_time(time)
        name = require_text(client_name, "client_name", MAX_LENGTHS["client_name"])
        service_name = require_text(service, "service", MAX_LENGTHS["service"])
        phone = (str(client_phone).strip() or None) if client_phone else None
        check_length(phone, "client_phone", MAX_LENGTHS["client_phone"])
        if initiated_by not in ("client", "barber"):
            raise ValidationError("initiated_by must be 'client' or 'barber'", field="initiated_by")
        key = (str(idempotency_key).strip() or None) if idempotency_key else None
        check_length(key, "idempotency_key", MAX_LENGTHS["idempotency_key"])

        try:
            barber = await self.resolver.load_barber(bid)
            snapshot_name, price = await with_timeout(resolve_service_snapshot(barber, service_name), self.timeout)
            slots = await self.resolver.classify(barber, day)
        except AvailabilityUnavailable as exc:
            raise BookingFailed(str(exc)) from exc
        except STORAGE_ERRORS as exc:
            logger.warning("Booking lookup failed for %s: %r", bid, exc)
            raise BookingFailed(f"could not prepare booking for {bid}") from exc

        slot = next((s for s in slots if s.time == slot_time), None)
        if slot is None:
            raise SlotUnavailable(bid, day, slot_time, reason="closed")
        if slot.status is SlotStatus.BREAK:
            raise SlotUnavailable(bid, day, slot_time, reason="break")
        if slot.status is SlotStatus.BOOKED:
            replayed = await self._replay(bid, day, slot_time, key)
            if replayed is not None:
                return replayed
            raise SlotUnavailable(bid, day, slot_time, reason="booked")

        status = AppointmentStatus.CONFIRMED if initiated_by == "client" else AppointmentStatus.SCHEDULED
        try:
            result = await with_timeout(
                AppointmentRepo.create_if_absent(
                    barber_id=bid,
                    date=day,
                    time=slot_time,
                    client_name=name,
                    client_phone=phone,
                    service=snapshot_name,
                    price=price,
                    status=status,
                    idempotency_key=key,
                ),
                self.timeout,
            )
        except STORAGE_ERRORS as exc:
            logger.error("Booking write failed: barber=%s slot=%s %s error=%r", bid, day, slot_time, exc)
            raise BookingFailed(f"could not write booking {bid}/{day} {slot_time}") from exc

        if not result.created:
            holder = result.record
            if key and holder is not None and holder.idempotency_key == key:
                return holder
            raise SlotUnavailable(bid, day, slot_time, reason="booked")

        self._invalidate(bid, day)
        record = result.record
        if record is None:
            raise BookingFailed(f"booking {bid}/{day} {slot_time} was written but could not be read back")
        logger.info(
            "Appointment #%s created: barber=%s slot=%s %s service=%s status=%s",
            record.id, bid, day, slot_time, snapshot_name, record.status.value,
        )
        return record

    async def confirm(self, appointment_id: Any) -> bool:
        """scheduled -> confirmed; False when absent or not scheduled."""
        aid = _coerce_id(appointment_id)
        try:
            record = await with_timeout(
                AppointmentRepo.transition(aid, {AppointmentStatus.SCHEDULED}, AppointmentStatus.CONFIRMED),
                self.timeout,
            )
        except STORAGE_ERRORS as exc:
            raise BookingFailed(f"could not confirm appointment {aid}") from exc
        if record is None:
            return False
        self._invalidate(record.barber_id, record.date)
        return True


class AppointmentLifecycleManager:
    """Cancel (soft) and delete (hard). Both are no-ops on missing records."""

    def __init__(self, cache: AvailabilityCache | None = None, timeout: float | None = None) -> None:
        self.cache = cache
        self.timeout = timeout

    def _invalidate(self, barber_id: str, date: str) -> None:
        if self.cache is not None:
            self.cache.invalidate(barber_id, date)

    async def cancel(self, appointment_id: Any) -> bool:
        aid = _coerce_id(appointment_id)
        try:
            record = await with_timeout(
                AppointmentRepo.transition(
                    aid,
                    {AppointmentStatus.SCHEDULED, AppointmentStatus.CONFIRMED},
                    AppointmentStatus.CANCELLED,
                ),
                self.timeout,
            )
        except STORAGE_ERRORS as exc:
            raise BookingFailed(f"could not cancel appointment {aid}") from exc
        if record is None:
            return False
        self._invalidate(record.barber_id, record.date)
        logger.info("Appointment #%s cancelled (%s %s %s)", aid, record.barber_id, record.date, record.time)
        return True

    async def delete(self, appointment_id: Any) -> bool:
        aid = _coerce_id(appointment_id)
        try:
            record = await with_timeout(AppointmentRepo.get(aid), self.timeout)
            if record is None:
                return False
            removed = await with_timeout(AppointmentRepo.delete(aid), self.timeout)
        except STORAGE_ERRORS as exc:
            raise BookingFailed(f"could not delete appointment {aid}") from exc
        if removed:
            self._invalidate(record.barber_id, record.date)
            logger.info("Appointment #%s deleted (%s %s %s)", aid, record.barber_id, record.date, record.time)
        return removed

    async def purge_older_than(self, cutoff: datetime) -> int:
        """Hard-delete appointments created before ``cutoff``."""
        moment = as_utc(cutoff)
        if moment is None:
            raise ValidationError("cutoff must be a datetime", field="cutoff")
        try:
            count = await with_timeout(AppointmentRepo.delete_created_before(moment), self.timeout)
        except STORAGE_ERRORS as exc:
            raise BookingFailed("could not purge old appointments") from exc
        if count and self.cache is not None:
            self.cache.clear()
        logger.info("Purged %s appointments created before %s", count, moment.isoformat())
        return count

    async def list_client_appointments(self, client_phone: str) -> list[ClientAppointment]:
        phone = require_text(client_phone, "client_phone")
        try:
            return await with_timeout(AppointmentRepo.list_live_by_phone(phone), self.timeout)
        except STORAGE_ERRORS as exc:
            raise AvailabilityUnavailable(f"could not list appointments for {phone}") from exc


__all__ = [
    "AppointmentRepo",
    "AvailabilityResolver",
    "BookingCoordinator",
    "AppointmentLifecycleManager",
    "SlotAvailability",
    "SlotStatus",
    "CreateResult",
    "ClientAppointment",
    "STORAGE_ERRORS",
]

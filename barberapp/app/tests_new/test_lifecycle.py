import asyncio
from datetime import timedelta

import pytest

from barberapp.app.domain.errors import ValidationError
from barberapp.app.domain.models import AppointmentStatus
from barberapp.app.services.availability_cache import AvailabilityCache
from barberapp.app.services.barber_services import BarberRepo
from barberapp.app.services.booking_services import (
    AppointmentLifecycleManager,
    AppointmentRepo,
    AvailabilityResolver,
    BookingCoordinator,
    SlotStatus,
)
from barberapp.app.services.shared_services import utc_now

MONDAY = "2024-01-01"
BARBER = "BB_LIFE0001"


async def _barber(week):
    await BarberRepo.register("Marta", "Salon Marta", "marta@example.com", barber_id=BARBER)
    await BarberRepo.update_by_barber_id(BARBER, {"working_hours": week, "has_break": False})


def test_cancel_frees_the_slot_and_is_idempotent(run_db, week_factory):
    async def scenario():
        await _barber(week_factory("09:00", "12:00"))
        cache = AvailabilityCache(ttl_seconds=300)
        resolver = AvailabilityResolver(cache=cache)
        coordinator = BookingCoordinator(resolver=resolver)
        lifecycle = AppointmentLifecycleManager(cache=cache)

        first = await coordinator.book(BARBER, MONDAY, "09:30", "Ana", "600111222", "haircut")
        await resolver.resolve(BARBER, MONDAY)  # warm the cache
        cancelled = await lifecycle.cancel(first.id)
        cancelled_again = await lifecycle.cancel(first.id)
        slots = {s.time: s.status for s in await resolver.resolve(BARBER, MONDAY)}
        rebooked = await coordinator.book(BARBER, MONDAY, "09:30", "Bea", None, "beard")
        stored_first = await AppointmentRepo.get(first.id)
        return cancelled, cancelled_again, slots, rebooked, stored_first

    cancelled, cancelled_again, slots, rebooked, stored_first = run_db(scenario)
    assert cancelled is True
    assert cancelled_again is False
    assert slots["09:30"] is SlotStatus.AVAILABLE
    assert rebooked.client_name == "Bea"
    assert stored_first.status is AppointmentStatus.CANCELLED


def test_delete_is_idempotent_and_missing_ids_are_no_ops(run_db, week_factory):
    async def scenario():
        await _barber(week_factory("09:00", "12:00"))
        lifecycle = AppointmentLifecycleManager()
        appt = await BookingCoordinator().book(BARBER, MONDAY, "10:00", "Ana", None, "haircut")
        return (
            await lifecycle.delete(appt.id),
            await lifecycle.delete(appt.id),
            await lifecycle.cancel(424242),
            await lifecycle.delete(424242),
            await AppointmentRepo.get(appt.id),
        )

    deleted, deleted_again, cancel_missing, delete_missing, stored = run_db(scenario)
    assert deleted is True
    assert deleted_again is False
    assert cancel_missing is False
    assert delete_missing is False
    assert stored is None


def test_non_numeric_id_is_rejected():
    with pytest.raises(ValidationError) as err:
        asyncio.run(AppointmentLifecycleManager().cancel("abc"))
    assert err.value.field == "appointment_id"


def test_purge_older_than_removes_by_creation_time(run_db, week_factory):
    async def scenario():
        await _barber(week_factory("09:00", "12:00"))
        cache = AvailabilityCache(ttl_seconds=300)
        coordinator = BookingCoordinator(cache=cache)
        lifecycle = AppointmentLifecycleManager(cache=cache)
        await coordinator.book(BARBER, MONDAY, "09:00", "Ana", None, "haircut")
        await coordinator.book(BARBER, MONDAY, "09:30", "Bea", None, "haircut")
        await AvailabilityResolver(cache=cache).resolve(BARBER, MONDAY)
        kept = await lifecycle.purge_older_than(utc_now() - timedelta(days=1))
        cached_before = len(cache)
        purged = await lifecycle.purge_older_than(utc_now() + timedelta(minutes=1))
        remaining = await AppointmentRepo.query(BARBER)
        return kept, cached_before, purged, len(cache), remaining

    kept, cached_before, purged, cached_after, remaining = run_db(scenario)
    assert kept == 0
    assert cached_before == 1
    assert purged == 2
    assert cached_after == 0
    assert remaining == []


def test_client_appointments_are_live_only_and_ordered(run_db, week_factory):
    async def scenario():
        await _barber(week_factory("09:00", "12:00", days=("monday", "tuesday")))
        coordinator = BookingCoordinator()
        lifecycle = AppointmentLifecycleManager()
        late = await coordinator.book(BARBER, "2024-01-02", "09:00", "Ana", "600111222", "haircut")
        early = await coordinator.book(BARBER, MONDAY, "11:00", "Ana", "600111222", "haircut")
        dropped = await coordinator.book(BARBER, MONDAY, "09:00", "Ana", "600111222", "haircut")
        await coordinator.book(BARBER, MONDAY, "10:00", "Eva", "699000000", "haircut")
        await lifecycle.cancel(dropped.id)
        return late, early, await lifecycle.list_client_appointments(" 600111222 ")

    late, early, listed = run_db(scenario)
    assert [c.appointment.id for c in listed] == [early.id, late.id]
    assert all(c.barber_name == "Marta" for c in listed)
    payload = listed[0].to_dict()
    assert payload["shop_name"] == "Salon Marta"
    assert payload["status"] == "confirmed"


def test_repository_update_patches_contact_and_status(run_db, week_factory):
    async def scenario():
        await _barber(week_factory("09:00", "12:00"))
        appt = await BookingCoordinator().book(BARBER, MONDAY, "11:30", "Ana", None, "haircut")
        changed = await AppointmentRepo.update(appt.id, {"client_phone": " 600999888 ", "status": "cancelled"})
        with pytest.raises(ValidationError) as unknown:
            await AppointmentRepo.update(appt.id, {"time": "09:00"})
        with pytest.raises(ValidationError) as bad_status:
            await AppointmentRepo.update(appt.id, {"status": "no-show"})
        missing = await AppointmentRepo.update(424242, {"client_name": "X"})
        return changed, unknown.value, bad_status.value, missing, await AppointmentRepo.get(appt.id)

    changed, unknown, bad_status, missing, stored = run_db(scenario)
    assert changed is True
    assert unknown.field == "time"
    assert bad_status.field == "status"
    assert missing is False
    assert stored.client_phone == "600999888"
    assert stored.status is AppointmentStatus.CANCELLED
    assert not stored.is_live

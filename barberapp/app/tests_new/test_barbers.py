import re
from datetime import UTC, datetime, timedelta

import pytest

from barberapp.app.core import constants
from barberapp.app.core.bootstrap import DEMO_BARBER_ID, seed_demo_barber
from barberapp.app.domain.errors import ValidationError
from barberapp.app.domain.models import SubscriptionStatus
from barberapp.app.services.barber_services import (
    DEFAULT_SERVICES,
    BarberRepo,
    ServiceRepo,
    generate_barber_id,
)

NOW = datetime(2024, 3, 1, 9, 0, tzinfo=UTC)


def test_generated_ids_look_like_booking_ids():
    ids = {generate_barber_id() for _ in range(20)}
    assert len(ids) == 20
    assert all(re.fullmatch(r"BB_[A-Z0-9]{6}[0-9a-z]{4}", i) for i in ids)


def test_registration_defaults(run_db):
    async def scenario():
        barber = await BarberRepo.register(" Luis ", "Barberia Luis", "Luis@Example.com", now=NOW)
        services = await ServiceRepo.list_for_barber(barber.barber_id)
        with pytest.raises(ValidationError) as dup:
            await BarberRepo.register("Other", "Other shop", "luis@example.com")
        by_email = await BarberRepo.get_by_email("LUIS@example.com")
        return barber, services, dup.value, by_email

    barber, services, dup, by_email = run_db(scenario)
    assert barber.name == "Luis"
    assert barber.email == "luis@example.com"
    assert barber.subscription_status is SubscriptionStatus.TRIAL
    assert barber.trial_ends_at == NOW + timedelta(days=30)
    schedule = barber.schedule()
    assert schedule.is_open_on("monday")
    assert not schedule.is_open_on("sunday")
    assert barber.has_break and (barber.break_start, barber.break_end) == ("13:30", "16:30")
    assert [s.name for s in services] == [name for name, *_ in DEFAULT_SERVICES]
    assert dup.field == "email"
    assert by_email.barber_id == barber.barber_id


def test_partial_update_keeps_untouched_fields(run_db, week_factory):
    async def scenario():
        barber = await BarberRepo.register("Luis", "Barberia Luis", "luis@example.com", now=NOW)
        priced = await BarberRepo.update_by_barber_id(barber.barber_id, {"price_haircut": "18"})
        hours = await BarberRepo.update_by_barber_id(
            barber.barber_id, {"working_hours": week_factory("08:00", "14:00", days=("saturday",))}
        )
        missing = await BarberRepo.update_by_barber_id("BB_NOBODY", {"name": "x"})
        return barber, priced, hours, missing

    barber, priced, hours, missing = run_db(scenario)
    assert priced.price_haircut == "18.00"
    assert priced.price_beard == barber.price_beard
    assert priced.working_hours == barber.working_hours
    assert hours.price_haircut == "18.00"
    assert hours.schedule().is_open_on("saturday")
    assert not hours.schedule().is_open_on("monday")
    assert missing is None


@pytest.mark.parametrize(
    "patch, field",
    [
        ({"subscription_status": "active"}, "subscription_status"),
        ({"price_beard": "-3"}, "price_beard"),
        ({"break_start": "13h"}, "break_start"),
        ({"working_hours": ["monday"]}, "working_hours"),
        ({"working_hours": {"monday": {"is_open": True, "start": "18:00", "end": "09:00"}}}, "working_hours"),
        ({"has_break": True, "break_start": "19:00", "break_end": "18:00"}, "working_hours"),
    ],
)
def test_invalid_settings_are_rejected_and_not_written(run_db, patch, field):
    async def scenario():
        barber = await BarberRepo.register("Luis", "Barberia Luis", "luis@example.com")
        with pytest.raises(ValidationError) as err:
            await BarberRepo.update_by_barber_id(barber.barber_id, patch)
        return barber, err.value, await BarberRepo.get_by_barber_id(barber.barber_id)

    before, err, after = run_db(scenario)
    assert err.field == field
    assert after.working_hours == before.working_hours
    assert (after.break_start, after.break_end) == (before.break_start, before.break_end)


def test_email_change_to_taken_address(run_db):
    async def scenario():
        await BarberRepo.register("A", "Shop A", "a@example.com", barber_id="BB_A")
        await BarberRepo.register("B", "Shop B", "b@example.com", barber_id="BB_B")
        with pytest.raises(ValidationError) as err:
            await BarberRepo.update_by_barber_id("BB_B", {"email": "a@example.com"})
        with pytest.raises(ValidationError) as mixed_case:
            await BarberRepo.update_by_barber_id("BB_B", {"email": "A@Example.com"})
        renamed = await BarberRepo.update_by_barber_id("BB_B", {"email": "New.B@Example.com"})
        return err.value, mixed_case.value, renamed

    err, mixed_case, renamed = run_db(scenario)
    assert err.field == "email"
    assert mixed_case.field == "email"
    assert renamed.email == "new.b@example.com"


def test_service_crud(run_db):
    async def scenario():
        barber = await BarberRepo.register("Luis", "Barberia Luis", "luis@example.com")
        bid = barber.barber_id
        created = await ServiceRepo.create(bid, "Tinte", "25", duration=60, order="0", description="Color")
        updated = await ServiceRepo.update(created.id, {"price": "27.5", "is_active": False})
        active = await ServiceRepo.list_for_barber(bid)
        everything = await ServiceRepo.list_for_barber(bid, include_inactive=True)
        with pytest.raises(ValidationError):
            await ServiceRepo.create(bid, "Bad", "10", duration=0)
        with pytest.raises(ValidationError):
            await ServiceRepo.update(created.id, {"barber_id": "BB_OTHER"})
        deleted = await ServiceRepo.delete(created.id)
        deleted_again = await ServiceRepo.delete(created.id)
        return created, updated, active, everything, deleted, deleted_again

    created, updated, active, everything, deleted, deleted_again = run_db(scenario)
    assert (created.price, created.duration) == ("25.00", "60")
    assert updated.price == "27.50"
    assert updated.is_active is False
    assert "Tinte" not in [s.name for s in active]
    # order "0" sorts ahead of the starter services
    assert everything[0].name == "Tinte"
    assert deleted is True
    assert deleted_again is False


def test_seed_demo_barber_is_opt_in_and_idempotent(run_db, monkeypatch):
    monkeypatch.setattr(constants, "RUN_BOOTSTRAP_ENABLED", False)

    async def scenario():
        skipped = await seed_demo_barber()
        first = await seed_demo_barber(force=True)
        second = await seed_demo_barber(force=True)
        return skipped, first, second

    skipped, first, second = run_db(scenario)
    assert skipped is None
    assert first.barber_id == DEMO_BARBER_ID
    assert second.barber_id == DEMO_BARBER_ID
    assert second.created_at == first.created_at

from datetime import UTC, datetime, timedelta

import pytest

from barberapp.app.domain.errors import BarberNotFound, SubscriptionTransitionError, ValidationError
from barberapp.app.domain.models import SubscriptionStatus
from barberapp.app.services import subscription_services as subs
from barberapp.app.services.barber_services import BarberRepo
from barberapp.app.services.shared_services import BarberRecord

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=UTC)


def _barber(**overrides):
    base = dict(barber_id="BB_SUB0001", name="Luis", shop_name="Barberia Luis", email="luis@example.com")
    base.update(overrides)
    return BarberRecord(**base)


def test_expired_trial_blocks_access():
    access = subs.evaluate(
        _barber(subscription_status=SubscriptionStatus.TRIAL, trial_ends_at=NOW - timedelta(days=1)), NOW
    )
    assert access.has_access is False
    assert access.needs_subscription is True
    assert access.is_trial_active is False
    assert access.days_until_trial_end == -1


def test_active_subscription_close_to_expiry_needs_renewal():
    access = subs.evaluate(
        _barber(
            subscription_status=SubscriptionStatus.ACTIVE,
            trial_ends_at=NOW - timedelta(days=40),
            subscription_expires=NOW + timedelta(days=2),
        ),
        NOW,
    )
    assert access.has_access is True
    assert access.is_subscription_active is True
    assert access.needs_renewal_soon is True
    assert access.days_until_expiry == 2
    assert access.to_dict()["subscription_status"] == "active"


def test_running_trial_and_comfortable_subscription():
    trial = subs.evaluate(_barber(trial_ends_at=NOW + timedelta(hours=36)), NOW)
    assert trial.has_access and trial.is_trial_active
    assert trial.days_until_trial_end == 2
    assert trial.needs_renewal_soon is False

    paid = subs.evaluate(
        _barber(subscription_status=SubscriptionStatus.ACTIVE, subscription_expires=NOW + timedelta(days=20)), NOW
    )
    assert paid.has_access and not paid.needs_renewal_soon


@pytest.mark.parametrize(
    "overrides",
    [
        {"subscription_status": SubscriptionStatus.ACTIVE, "subscription_expires": None},
        {"subscription_status": SubscriptionStatus.EXPIRED, "subscription_expires": NOW + timedelta(days=5)},
        {"subscription_status": None, "subscription_expires": NOW + timedelta(days=5)},
        {"subscription_status": SubscriptionStatus.TRIAL, "trial_ends_at": None},
    ],
)
def test_missing_or_unknown_data_fails_closed(overrides):
    access = subs.evaluate(_barber(**overrides), NOW)
    assert access.has_access is False
    assert access.needs_subscription is True


def test_naive_timestamps_are_read_as_utc():
    access = subs.evaluate(_barber(trial_ends_at=datetime(2024, 6, 1, 13, 0)), NOW)
    assert access.is_trial_active is True


@pytest.mark.parametrize(
    "current, target",
    [
        ("trial", "active"),
        ("trial", "expired"),
        ("active", "expired"),
        ("expired", "active"),
    ],
)
def test_allowed_transitions(current, target):
    assert subs.check_transition(current, target).value == target


@pytest.mark.parametrize(
    "current, target",
    [("active", "trial"), ("expired", "trial"), ("expired", "expired"), (None, "active")],
)
def test_forbidden_transitions(current, target):
    with pytest.raises(SubscriptionTransitionError):
        subs.check_transition(current, target)


def test_unknown_target_status():
    with pytest.raises(ValidationError):
        subs.check_transition("trial", "paused")


def test_activation_expiry_and_renewal(run_db):
    async def scenario():
        await BarberRepo.register("Luis", "Barberia Luis", "luis@example.com", barber_id="BB_SUB0001", now=NOW)
        start = await subs.get_subscription_status("BB_SUB0001", NOW)
        active = await subs.activate_subscription("BB_SUB0001", "I-PAYPAL-1", now=NOW)
        # renewing early stacks on the running period
        renewed = await subs.activate_subscription("BB_SUB0001", now=NOW + timedelta(days=10))
        expired = await subs.expire_subscription("BB_SUB0001")
        expired_again = await subs.expire_subscription("BB_SUB0001")
        reactivated = await subs.activate_subscription("BB_SUB0001", now=NOW + timedelta(days=90))
        with pytest.raises(BarberNotFound):
            await subs.get_subscription_status("BB_MISSING")
        return start, active, renewed, expired, expired_again, reactivated

    start, active, renewed, expired, expired_again, reactivated = run_db(scenario)
    assert start.is_trial_active and start.days_until_trial_end == 30
    assert active.subscription_status is SubscriptionStatus.ACTIVE
    assert active.subscription_expires == datetime(2024, 7, 1, 12, 0, tzinfo=UTC)
    assert active.payment_subscription_id == "I-PAYPAL-1"
    assert renewed.subscription_expires == datetime(2024, 8, 1, 12, 0, tzinfo=UTC)
    assert renewed.payment_subscription_id == "I-PAYPAL-1"
    assert expired.subscription_status is SubscriptionStatus.EXPIRED
    assert expired_again.subscription_status is SubscriptionStatus.EXPIRED
    assert reactivated.subscription_status is SubscriptionStatus.ACTIVE
    assert reactivated.subscription_expires == datetime(2024, 9, 30, 12, 0, tzinfo=UTC)


def test_list_expiring_only_returns_active_within_window(run_db):
    async def scenario():
        for idx, days in enumerate((2, 5, 20)):
            bid = f"BB_EXP000{idx}"
            await BarberRepo.register("B", "Shop", f"b{idx}@example.com", barber_id=bid, now=NOW)
            await BarberRepo.set_subscription_fields(
                bid, subscription_status=SubscriptionStatus.ACTIVE, subscription_expires=NOW + timedelta(days=days)
            )
        await BarberRepo.register("T", "Trial shop", "t@example.com", barber_id="BB_TRIAL000", now=NOW)
        return await subs.list_expiring(days=7, now=NOW)

    listed = run_db(scenario)
    assert [b.barber_id for b in listed] == ["BB_EXP0000", "BB_EXP0001"]


def test_reconcile_expires_overdue_and_throttles_notices(run_db):
    async def scenario():
        await BarberRepo.register("Old trial", "A", "a@example.com", barber_id="BB_OLDTRIAL", now=NOW - timedelta(days=31))
        await BarberRepo.register("Fresh trial", "B", "b@example.com", barber_id="BB_NEWTRIAL", now=NOW)
        await BarberRepo.register("Lapsed", "C", "c@example.com", barber_id="BB_LAPSED00", now=NOW)
        await BarberRepo.set_subscription_fields(
            "BB_LAPSED00", subscription_status=SubscriptionStatus.ACTIVE, subscription_expires=NOW - timedelta(hours=1)
        )
        await BarberRepo.register("Soon", "D", "d@example.com", barber_id="BB_SOON0000", now=NOW)
        await BarberRepo.set_subscription_fields(
            "BB_SOON0000", subscription_status=SubscriptionStatus.ACTIVE, subscription_expires=NOW + timedelta(days=2)
        )

        first = await subs.reconcile(NOW)
        second = await subs.reconcile(NOW + timedelta(hours=2))
        third = await subs.reconcile(NOW + timedelta(hours=25))
        old = await BarberRepo.get_by_barber_id("BB_OLDTRIAL")
        fresh = await BarberRepo.get_by_barber_id("BB_NEWTRIAL")
        lapsed = await BarberRepo.get_by_barber_id("BB_LAPSED00")
        soon = await BarberRepo.get_by_barber_id("BB_SOON0000")
        return first, second, third, old, fresh, lapsed, soon

    first, second, third, old, fresh, lapsed, soon = run_db(scenario)
    assert first.expired == 2
    assert first.expiring_soon == 1
    assert [n.barber_id for n in first.notifications] == ["BB_SOON0000"]
    assert first.notifications[0].days_left == 2
    assert "expires in 2 days" in first.notifications[0].message
    assert second.expired == 0
    assert second.expiring_soon == 1
    assert second.notifications == []
    assert len(third.notifications) == 1
    assert old.subscription_status is SubscriptionStatus.EXPIRED
    assert fresh.subscription_status is SubscriptionStatus.TRIAL
    assert lapsed.subscription_status is SubscriptionStatus.EXPIRED
    assert soon.last_notification_type == "expiring_1_days"

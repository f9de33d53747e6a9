from barberapp.app.domain import models


def test_normalize_appointment_status_variants():
    assert models.normalize_appointment_status("CONFIRMED") is models.AppointmentStatus.CONFIRMED
    assert models.normalize_appointment_status(" scheduled ") is models.AppointmentStatus.SCHEDULED
    assert models.normalize_appointment_status(models.AppointmentStatus.CANCELLED) is models.AppointmentStatus.CANCELLED
    assert models.normalize_appointment_status("no-show") is None
    assert models.normalize_appointment_status(None) is None


def test_normalize_subscription_status_variants():
    assert models.normalize_subscription_status("Active") is models.SubscriptionStatus.ACTIVE
    assert models.normalize_subscription_status("paused") is None


def test_status_collections():
    assert models.AppointmentStatus.CANCELLED in models.TERMINAL_STATUSES
    assert models.AppointmentStatus.CANCELLED not in models.LIVE_STATUSES
    assert models.AppointmentStatus.SCHEDULED in models.LIVE_STATUSES
    assert models.AppointmentStatus.CONFIRMED in models.LIVE_STATUSES


def test_live_slot_index_is_partial_and_unique():
    index = next(ix for ix in models.Appointment.__table__.indexes if ix.name == "uq_appointments_live_slot")
    assert index.unique
    assert [c.name for c in index.columns] == ["barber_id", "date", "time"]
    assert "cancelled" in str(index.dialect_options["postgresql"]["where"])
    assert "cancelled" in str(index.dialect_options["sqlite"]["where"])

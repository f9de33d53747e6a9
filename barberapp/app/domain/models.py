from datetime import UTC, datetime
from enum import Enum as _Enum

from sqlalchemy import JSON, Boolean, DateTime, Enum, Index, Integer, String, Text, text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """SQLAlchemy declarative base class (explicit for mypy)."""

    pass


class AppointmentStatus(_Enum):  # Values match stored labels
    SCHEDULED = "scheduled"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


class SubscriptionStatus(_Enum):
    TRIAL = "trial"
    ACTIVE = "active"
    EXPIRED = "expired"


def normalize_appointment_status(value: str | AppointmentStatus | None) -> AppointmentStatus | None:
    """Return an AppointmentStatus enum when possible (accepts strings/enum values)."""
    if isinstance(value, AppointmentStatus):
        return value
    if isinstance(value, str):
        try:
            return AppointmentStatus(value.strip().lower())
        except ValueError:
            return None
    return None


def normalize_subscription_status(value: str | SubscriptionStatus | None) -> SubscriptionStatus | None:
    if isinstance(value, SubscriptionStatus):
        return value
    if isinstance(value, str):
        try:
            return SubscriptionStatus(value.strip().lower())
        except ValueError:
            return None
    return None


# Statuses that occupy a slot
LIVE_STATUSES = frozenset(
    {
        AppointmentStatus.SCHEDULED,
        AppointmentStatus.CONFIRMED,
    }
)

TERMINAL_STATUSES = frozenset({AppointmentStatus.CANCELLED})


class Barber(Base):
    __tablename__ = "barbers"
    # Surrogate key for the ORM only; barber_id is the identity everywhere else
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    barber_id: Mapped[str] = mapped_column(String(64), unique=True, index=True)
    name: Mapped[str] = mapped_column(String(120))
    shop_name: Mapped[str] = mapped_column(String(160))
    email: Mapped[str] = mapped_column(String(254), unique=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Legacy per-type pricing, used when no named service matches a booking
    price_haircut: Mapped[str] = mapped_column(String(16), default="15.00")
    price_beard: Mapped[str] = mapped_column(String(16), default="10.00")
    price_complete: Mapped[str] = mapped_column(String(16), default="20.00")
    price_shave: Mapped[str] = mapped_column(String(16), default="8.00")

    # {"monday": {"is_open": true, "start": "10:00", "end": "20:30"}, ...}
    working_hours: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    has_break: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    break_start: Mapped[str | None] = mapped_column(String(5), nullable=True)
    break_end: Mapped[str | None] = mapped_column(String(5), nullable=True)

    subscription_status: Mapped[SubscriptionStatus] = mapped_column(
        Enum(
            SubscriptionStatus,
            name="subscription_status",
            values_callable=lambda e: [m.value for m in e],
            native_enum=False,
            length=16,
        ),
        default=SubscriptionStatus.TRIAL,
        nullable=False,
    )
    trial_ends_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    subscription_expires: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    payment_subscription_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    last_notification_sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_notification_type: Mapped[str | None] = mapped_column(String(64), nullable=True)

    created_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, default=lambda: datetime.now(UTC)
    )
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class Service(Base):
    __tablename__ = "services"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    barber_id: Mapped[str] = mapped_column(String(64), index=True)
    name: Mapped[str] = mapped_column(String(200))
    price: Mapped[str] = mapped_column(String(16))
    # Minutes, stored as text like the other decimal-ish fields
    duration: Mapped[str] = mapped_column(String(8), default="30")
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    order: Mapped[str] = mapped_column(String(8), default="0")
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, default=lambda: datetime.now(UTC)
    )


class Appointment(Base):
    __tablename__ = "appointments"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    barber_id: Mapped[str] = mapped_column(String(64))
    date: Mapped[str] = mapped_column(String(10))  # YYYY-MM-DD
    time: Mapped[str] = mapped_column(String(5))  # HH:MM, on the slot grid
    client_name: Mapped[str] = mapped_column(String(120))
    client_phone: Mapped[str | None] = mapped_column(String(32), nullable=True)
    # Snapshots taken at booking time; later service edits do not touch them
    service: Mapped[str] = mapped_column(String(200))
    price: Mapped[str | None] = mapped_column(String(16), nullable=True)
    # Plain label; AppointmentRecord maps unknown labels to a live status
    status: Mapped[str] = mapped_column(
        String(16), default=AppointmentStatus.CONFIRMED.value, nullable=False
    )
    idempotency_key: Mapped[str | None] = mapped_column(String(128), nullable=True)
    created_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, default=lambda: datetime.now(UTC)
    )

    __table_args__ = (
        # At most one live appointment per (barber, date, time)
        Index(
            "uq_appointments_live_slot",
            "barber_id",
            "date",
            "time",
            unique=True,
            postgresql_where=text("status <> 'cancelled'"),
            sqlite_where=text("status <> 'cancelled'"),
        ),
        Index("ix_appointments_barber_date", "barber_id", "date"),
        Index("ix_appointments_client_phone", "client_phone"),
    )


__all__ = [
    "Base",
    "Barber",
    "Service",
    "Appointment",
    "AppointmentStatus",
    "SubscriptionStatus",
    "normalize_appointment_status",
    "normalize_subscription_status",
    "LIVE_STATUSES",
    "TERMINAL_STATUSES",
]

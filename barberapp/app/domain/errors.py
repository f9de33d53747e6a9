"""Booking error taxonomy.

Every error carries a short machine ``code`` that the HTTP layer returns as the
error detail, so clients can branch on it without parsing messages.
"""

from __future__ import annotations


class BookingError(Exception):
    code = "booking_error"

    def __init__(self, message: str | None = None, *, code: str | None = None) -> None:
        if code:
            self.code = code
        super().__init__(message or self.code)


class ValidationError(BookingError):
    """Bad input shape or missing required field. Raised before any I/O."""

    code = "invalid_input"

    def __init__(self, message: str | None = None, *, field: str | None = None, code: str | None = None) -> None:
        self.field = field
        super().__init__(message, code=code)


# Name used by the booking contract
InvalidInput = ValidationError


class BarberNotFound(BookingError):
    code = "barber_not_found"

    def __init__(self, barber_id: str) -> None:
        self.barber_id = barber_id
        super().__init__(f"barber {barber_id!r} not found")


class SlotUnavailable(BookingError):
    """The requested slot is taken, inside the break window or outside open hours.

    This is a user-facing conflict: the client should re-fetch availability and
    pick another time.
    """

    code = "slot_unavailable"

    def __init__(self, barber_id: str, date: str, time: str, reason: str = "booked") -> None:
        self.barber_id = barber_id
        self.date = date
        self.time = time
        self.reason = reason
        super().__init__(f"slot {barber_id}/{date} {time} unavailable ({reason})")


class AvailabilityUnavailable(BookingError):
    """Availability could not be determined (storage fault or timeout). Retryable."""

    code = "availability_unavailable"


class BookingFailed(BookingError):
    """The booking write could not be completed (storage fault or timeout). Retryable."""

    code = "booking_failed"


class ScheduleError(BookingError):
    """Working-hours configuration is malformed, missing, or the day is closed."""

    code = "schedule_error"


class SubscriptionTransitionError(BookingError):
    code = "invalid_subscription_transition"

    def __init__(self, current: str, target: str) -> None:
        self.current = current
        self.target = target
        super().__init__(f"subscription cannot move from {current!r} to {target!r}")


__all__ = [
    "BookingError",
    "ValidationError",
    "InvalidInput",
    "BarberNotFound",
    "SlotUnavailable",
    "AvailabilityUnavailable",
    "BookingFailed",
    "ScheduleError",
    "SubscriptionTransitionError",
]

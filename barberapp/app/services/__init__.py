"""Service package exports.

Repositories and the booking core live in their own modules; this package only
re-exports the entry points the HTTP layer and workers use.
"""

from .availability_cache import AvailabilityCache
from .barber_services import BarberRepo, ServiceRepo
from .booking_services import (
    AppointmentLifecycleManager,
    AppointmentRepo,
    AvailabilityResolver,
    BookingCoordinator,
)
from .slot_services import generate_slots

__all__ = [
    "AvailabilityCache",
    "BarberRepo",
    "ServiceRepo",
    "AppointmentRepo",
    "AvailabilityResolver",
    "BookingCoordinator",
    "AppointmentLifecycleManager",
    "generate_slots",
]

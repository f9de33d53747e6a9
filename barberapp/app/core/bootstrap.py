"""
Runtime bootstrap helpers.

Seeds a demo barber (with the default week, trial and starter services) when
RUN_BOOTSTRAP is enabled. Idempotent: an existing demo barber is left alone.
"""

import logging
import os

from barberapp.app.core import constants
from barberapp.app.services.barber_services import BarberRepo
from barberapp.app.services.shared_services import BarberRecord

logger = logging.getLogger(__name__)

__all__ = ["seed_demo_barber", "DEMO_BARBER_ID"]

DEMO_BARBER_ID = os.getenv("DEMO_BARBER_ID", "BB_DEMO0001")
DEMO_BARBER_EMAIL = os.getenv("DEMO_BARBER_EMAIL", "demo@barberapp.local")


async def seed_demo_barber(force: bool = False) -> BarberRecord | None:
    """Insert the demo barber if missing. Returns None when bootstrap is off."""
    if not force and not constants.RUN_BOOTSTRAP_ENABLED:
        return None
    existing = await BarberRepo.get_by_barber_id(DEMO_BARBER_ID)
    if existing is not None:
        logger.info("[bootstrap] demo barber %s already present", DEMO_BARBER_ID)
        return existing
    barber = await BarberRepo.register(
        "Demo Barber",
        "Demo Barbershop",
        DEMO_BARBER_EMAIL,
        barber_id=DEMO_BARBER_ID,
    )
    logger.info("[bootstrap] demo barber %s created", barber.barber_id)
    return barber

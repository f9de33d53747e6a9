"""FastAPI facade for the booking calendar.

Thin HTTP layer over the booking core: the public booking page reads
availability and creates appointments, the barber dashboard (bearer token)
manages settings, services and its appointments.
"""

from __future__ import annotations

import logging
from functools import wraps
from typing import Any, Optional

import jwt
from fastapi import Depends, FastAPI, Header, HTTPException, Query, status
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ConfigDict, Field

from barberapp.app.core.constants import ALLOW_ALL_ORIGINS, ALLOWED_ORIGINS, JWT_ALGO, JWT_SECRET
from barberapp.app.domain.errors import (
    AvailabilityUnavailable,
    BarberNotFound,
    BookingError,
    BookingFailed,
    SlotUnavailable,
    SubscriptionTransitionError,
    ValidationError,
)
from barberapp.app.services import subscription_services
from barberapp.app.services.availability_cache import AvailabilityCache
from barberapp.app.services.barber_services import BarberRepo, ServiceRepo
from barberapp.app.services.booking_services import (
    STORAGE_ERRORS,
    AppointmentLifecycleManager,
    AppointmentRepo,
    AvailabilityResolver,
    BookingCoordinator,
    MAX_LENGTHS,
)
from barberapp.app.services.shared_services import normalize_date, with_timeout
from barberapp.config import build_booking_link, get_setting

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Core components (one cache shared by readers and writers of this process)
# ---------------------------------------------------------------------------

availability_cache: AvailabilityCache = AvailabilityCache()
resolver = AvailabilityResolver(cache=availability_cache)
coordinator = BookingCoordinator(cache=availability_cache)
lifecycle = AppointmentLifecycleManager(cache=availability_cache)


# ---------------------------------------------------------------------------
# Schemas
# ---------------------------------------------------------------------------


class SlotOut(BaseModel):
    time: str
    status: str


class AppointmentCreate(BaseModel):
    barber_id: str = Field(..., min_length=1, max_length=MAX_LENGTHS["barber_id"])
    date: str
    time: str
    client_name: str = Field(..., max_length=MAX_LENGTHS["client_name"])
    client_phone: Optional[str] = Field(default=None, max_length=MAX_LENGTHS["client_phone"])
    service: str = Field(..., max_length=MAX_LENGTHS["service"])


class CancelRequest(BaseModel):
    client_phone: Optional[str] = None


class AppointmentOut(BaseModel):
    id: int
    barber_id: str
    date: str
    time: str
    client_name: str
    client_phone: Optional[str] = None
    service: str
    price: Optional[str] = None
    status: str
    created_at: Optional[str] = None


class ClientAppointmentOut(AppointmentOut):
    barber_name: Optional[str] = None
    shop_name: Optional[str] = None


class OkResponse(BaseModel):
    ok: bool


class BarberRegister(BaseModel):
    name: str
    shop_name: str
    email: str


class DayHoursIn(BaseModel):
    # Older dashboards send "isOpen"
    model_config = ConfigDict(populate_by_name=True)

    is_open: bool = Field(default=False, alias="isOpen")
    start: str = "09:00"
    end: str = "18:00"


class BarberSettingsPatch(BaseModel):
    name: Optional[str] = None
    shop_name: Optional[str] = None
    email: Optional[str] = None
    price_haircut: Optional[str] = None
    price_beard: Optional[str] = None
    price_complete: Optional[str] = None
    price_shave: Optional[str] = None
    working_hours: Optional[dict[str, DayHoursIn]] = None
    has_break: Optional[bool] = None
    break_start: Optional[str] = None
    break_end: Optional[str] = None


class ServiceIn(BaseModel):
    name: str
    price: str
    duration: str = "30"
    description: Optional[str] = None
    order: str = "0"
    is_active: bool = True


class ServicePatch(BaseModel):
    name: Optional[str] = None
    price: Optional[str] = None
    duration: Optional[str] = None
    description: Optional[str] = None
    order: Optional[str] = None
    is_active: Optional[bool] = None


class ActivateRequest(BaseModel):
    payment_subscription_id: Optional[str] = None
    months: int = Field(default=1, ge=1, le=24)


class Principal(BaseModel):
    barber_id: str


# ---------------------------------------------------------------------------
# Error handling helpers
# ---------------------------------------------------------------------------

_STATUS_BY_ERROR: tuple[tuple[type[BookingError], int], ...] = (
    (ValidationError, 422),
    (BarberNotFound, status.HTTP_404_NOT_FOUND),
    (SlotUnavailable, status.HTTP_409_CONFLICT),
    (SubscriptionTransitionError, status.HTTP_409_CONFLICT),
    (AvailabilityUnavailable, status.HTTP_503_SERVICE_UNAVAILABLE),
    (BookingFailed, status.HTTP_503_SERVICE_UNAVAILABLE),
)


def _normalize_error_code(val: str | Exception | None, default: str) -> str:
    """Return a safe error code for the frontend without leaking exception text."""
    if val is None:
        return default
    code = str(getattr(val, "code", val)).strip().lower()
    if not code:
        return default
    if not all(ch.isalnum() or ch in {"_", "-"} for ch in code):
        return default
    return code[:64]


def _error_detail(exc: BookingError) -> dict[str, Any]:
    detail: dict[str, Any] = {"error": _normalize_error_code(exc, "booking_error")}
    if isinstance(exc, SlotUnavailable):
        detail["reason"] = exc.reason
    if isinstance(exc, ValidationError) and exc.field:
        detail["field"] = exc.field
    return detail


def booking_error_handler(default_error: str):
    """Decorator mapping booking errors onto HTTP responses.

    - Passes through FastAPI `HTTPException` untouched.
    - Converts `BookingError` subclasses to their status code with the error code.
    - Storage faults become 503 so clients can retry.
    - Logs unexpected exceptions and returns a unified error code.
    """

    def decorator(func):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            try:
                return await func(*args, **kwargs)
            except HTTPException:
                raise
            except BookingError as exc:
                code = status.HTTP_400_BAD_REQUEST
                for err_type, http_status in _STATUS_BY_ERROR:
                    if isinstance(exc, err_type):
                        code = http_status
                        break
                raise HTTPException(status_code=code, detail=_error_detail(exc)) from exc
            except STORAGE_ERRORS as exc:
                logger.warning("%s storage failure: %r", func.__name__, exc)
                raise HTTPException(
                    status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                    detail={"error": "storage_unavailable"},
                ) from exc
            except Exception as exc:  # noqa: BLE001 - catch-all is intentional for API boundary
                logger.exception("%s failed: %s", func.__name__, exc)
                raise HTTPException(
                    status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                    detail={"error": default_error},
                ) from exc

        return wrapper

    return decorator


# ---------------------------------------------------------------------------
# Security helpers (tokens are issued by the external identity provider)
# ---------------------------------------------------------------------------


def _decode_token(token: str) -> Principal:
    if not JWT_SECRET:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="auth_not_configured")
    try:
        data = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGO])
    except jwt.ExpiredSignatureError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="token_expired") from exc
    except jwt.InvalidTokenError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid_token") from exc
    subject = str(data.get("sub") or "").strip()
    if not subject:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid_token")
    return Principal(barber_id=subject)


def _bearer(authorization: str | None) -> str | None:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid_authorization_header")
    return token


async def get_current_barber(authorization: str | None = Header(default=None)) -> Principal:
    token = _bearer(authorization)
    if token is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="missing_authorization")
    return _decode_token(token)


async def get_optional_barber(authorization: str | None = Header(default=None)) -> Principal | None:
    token = _bearer(authorization)
    return _decode_token(token) if token else None


def _ensure_owner(principal: Principal, barber_id: str) -> None:
    if principal.barber_id != str(barber_id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="forbidden")


async def _owned_appointment(principal: Principal, appointment_id: int):
    record = await with_timeout(AppointmentRepo.get(appointment_id))
    if record is None:
        return None
    _ensure_owner(principal, record.barber_id)
    return record


# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------

app = FastAPI(title=str(get_setting("app_title", "BarberApp Calendar")), version="0.1.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if ALLOW_ALL_ORIGINS else ALLOWED_ORIGINS,
    allow_credentials=not ALLOW_ALL_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health")
@app.get("/api/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}


# --- barbers ---------------------------------------------------------------


@app.post("/api/barbers", status_code=status.HTTP_201_CREATED)
@booking_error_handler("register_failed")
async def register_barber(payload: BarberRegister) -> dict[str, Any]:
    barber = await BarberRepo.register(payload.name, payload.shop_name, payload.email)
    data = barber.to_public_dict()
    data["booking_link"] = build_booking_link(barber.barber_id)
    return data


@app.get("/api/barbers/{barber_id}")
@booking_error_handler("barber_failed")
async def get_barber(barber_id: str) -> dict[str, Any]:
    barber = await with_timeout(BarberRepo.get_by_barber_id(barber_id))
    if barber is None:
        raise BarberNotFound(barber_id)
    services = await with_timeout(ServiceRepo.list_for_barber(barber_id))
    data = barber.to_public_dict()
    data["booking_link"] = build_booking_link(barber.barber_id)
    data["services"] = [s.to_dict() for s in services]
    data["subscription"] = subscription_services.evaluate(barber).to_dict()
    return data


@app.patch("/api/barbers/{barber_id}/settings")
@booking_error_handler("settings_failed")
async def update_barber_settings(
    barber_id: str,
    payload: BarberSettingsPatch,
    principal: Principal = Depends(get_current_barber),
) -> dict[str, Any]:
    _ensure_owner(principal, barber_id)
    patch = payload.model_dump(exclude_unset=True)
    updated = await with_timeout(BarberRepo.update_by_barber_id(barber_id, patch))
    if updated is None:
        raise BarberNotFound(barber_id)
    availability_cache.invalidate(barber_id)
    return updated.to_public_dict()


@app.get("/api/barbers/{barber_id}/availability", response_model=list[SlotOut])
@booking_error_handler("availability_failed")
async def get_availability(barber_id: str, date: str = Query(...)) -> list[SlotOut]:
    slots = await resolver.resolve(barber_id, date)
    return [SlotOut(**s.to_dict()) for s in slots]


# --- appointments ----------------------------------------------------------


@app.post("/api/appointments", response_model=AppointmentOut, status_code=status.HTTP_201_CREATED)
@booking_error_handler("booking_failed")
async def create_appointment(
    payload: AppointmentCreate,
    idempotency_key: str | None = Header(
        default=None, alias="Idempotency-Key", max_length=MAX_LENGTHS["idempotency_key"]
    ),
    principal: Principal | None = Depends(get_optional_barber),
) -> AppointmentOut:
    initiated_by = "barber" if principal is not None and principal.barber_id == payload.barber_id else "client"
    record = await coordinator.book(
        payload.barber_id,
        payload.date,
        payload.time,
        payload.client_name,
        payload.client_phone,
        payload.service,
        initiated_by=initiated_by,
        idempotency_key=idempotency_key,
    )
    return AppointmentOut(**record.to_dict())


@app.get("/api/appointments/{barber_id}", response_model=list[AppointmentOut])
@booking_error_handler("appointments_failed")
async def list_appointments(
    barber_id: str,
    date: str | None = Query(default=None),
    principal: Principal = Depends(get_current_barber),
) -> list[AppointmentOut]:
    _ensure_owner(principal, barber_id)
    day = normalize_date(date) if date else None
    records = await with_timeout(AppointmentRepo.query(barber_id, day))
    records.sort(key=lambda r: (r.date, r.time, r.id))
    return [AppointmentOut(**r.to_dict()) for r in records]


@app.post("/api/appointments/{appointment_id}/cancel", response_model=OkResponse)
@booking_error_handler("cancel_failed")
async def cancel_appointment(
    appointment_id: int,
    payload: CancelRequest | None = None,
    principal: Principal | None = Depends(get_optional_barber),
) -> OkResponse:
    """Cancel as the owning barber (token) or as the client (matching phone)."""
    if principal is not None:
        if await _owned_appointment(principal, appointment_id) is None:
            return OkResponse(ok=False)
        return OkResponse(ok=await lifecycle.cancel(appointment_id))
    phone = (payload.client_phone or "").strip() if payload else ""
    if not phone:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="missing_authorization")
    record = await with_timeout(AppointmentRepo.get(appointment_id))
    if record is None:
        return OkResponse(ok=False)
    if record.client_phone != phone:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="forbidden")
    return OkResponse(ok=await lifecycle.cancel(appointment_id))


@app.post("/api/appointments/{appointment_id}/confirm", response_model=OkResponse)
@booking_error_handler("confirm_failed")
async def confirm_appointment(
    appointment_id: int, principal: Principal = Depends(get_current_barber)
) -> OkResponse:
    if await _owned_appointment(principal, appointment_id) is None:
        return OkResponse(ok=False)
    return OkResponse(ok=await coordinator.confirm(appointment_id))


@app.delete("/api/appointments/{appointment_id}", response_model=OkResponse)
@booking_error_handler("delete_failed")
async def delete_appointment(
    appointment_id: int, principal: Principal = Depends(get_current_barber)
) -> OkResponse:
    if await _owned_appointment(principal, appointment_id) is None:
        return OkResponse(ok=False)
    return OkResponse(ok=await lifecycle.delete(appointment_id))


@app.get("/api/client-appointments/{client_phone}", response_model=list[ClientAppointmentOut])
@booking_error_handler("client_appointments_failed")
async def list_client_appointments(client_phone: str) -> list[ClientAppointmentOut]:
    rows = await lifecycle.list_client_appointments(client_phone)
    return [ClientAppointmentOut(**row.to_dict()) for row in rows]


# --- services --------------------------------------------------------------


@app.get("/api/services/{barber_id}")
@booking_error_handler("services_failed")
async def list_services(barber_id: str) -> list[dict[str, Any]]:
    services = await with_timeout(ServiceRepo.list_for_barber(barber_id))
    return [s.to_dict() for s in services]


@app.post("/api/services", status_code=status.HTTP_201_CREATED)
@booking_error_handler("service_create_failed")
async def create_service(payload: ServiceIn, principal: Principal = Depends(get_current_barber)) -> dict[str, Any]:
    created = await with_timeout(
        ServiceRepo.create(
            principal.barber_id,
            payload.name,
            payload.price,
            duration=payload.duration,
            description=payload.description,
            order=payload.order,
            is_active=payload.is_active,
        )
    )
    return created.to_dict()


@app.put("/api/services/{service_id}")
@booking_error_handler("service_update_failed")
async def update_service(
    service_id: int, payload: ServicePatch, principal: Principal = Depends(get_current_barber)
) -> dict[str, Any]:
    existing = await with_timeout(ServiceRepo.get(service_id))
    if existing is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail={"error": "service_not_found"})
    _ensure_owner(principal, existing.barber_id)
    updated = await with_timeout(ServiceRepo.update(service_id, payload.model_dump(exclude_unset=True)))
    if updated is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail={"error": "service_not_found"})
    return updated.to_dict()


@app.delete("/api/services/{service_id}", response_model=OkResponse)
@booking_error_handler("service_delete_failed")
async def delete_service(service_id: int, principal: Principal = Depends(get_current_barber)) -> OkResponse:
    existing = await with_timeout(ServiceRepo.get(service_id))
    if existing is None:
        return OkResponse(ok=False)
    _ensure_owner(principal, existing.barber_id)
    return OkResponse(ok=await with_timeout(ServiceRepo.delete(service_id)))


# --- subscriptions ---------------------------------------------------------


@app.get("/api/subscriptions/status/{barber_id}")
@booking_error_handler("subscription_status_failed")
async def subscription_status(barber_id: str) -> dict[str, Any]:
    access = await with_timeout(subscription_services.get_subscription_status(barber_id))
    return access.to_dict()


@app.post("/api/subscriptions/activate")
@booking_error_handler("subscription_activate_failed")
async def activate_subscription(
    payload: ActivateRequest, principal: Principal = Depends(get_current_barber)
) -> dict[str, Any]:
    barber = await with_timeout(
        subscription_services.activate_subscription(
            principal.barber_id, payload.payment_subscription_id, months=payload.months
        )
    )
    return subscription_services.evaluate(barber).to_dict()


@app.get("/api/subscriptions/expiring")
@booking_error_handler("subscription_expiring_failed")
async def subscriptions_expiring(days: int = Query(default=7, ge=0, le=90)) -> list[dict[str, Any]]:
    barbers = await with_timeout(subscription_services.list_expiring(days))
    out: list[dict[str, Any]] = []
    for b in barbers:
        access = subscription_services.evaluate(b)
        out.append(
            {
                "barber_id": b.barber_id,
                "shop_name": b.shop_name,
                "subscription_expires": b.subscription_expires.isoformat() if b.subscription_expires else None,
                "days_until_expiry": access.days_until_expiry,
            }
        )
    return out


@app.post("/api/subscriptions/check")
@booking_error_handler("subscription_check_failed")
async def subscriptions_check() -> dict[str, Any]:
    result = await subscription_services.reconcile()
    return result.to_dict()


def get_app() -> FastAPI:
    """Exported factory for uvicorn or tests."""
    return app


__all__ = ["app", "get_app", "availability_cache", "resolver", "coordinator", "lifecycle"]

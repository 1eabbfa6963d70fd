"""Reservation router for clinic appointments and hotel stays."""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import get_db
from ..core.dependencies import Principal, get_current_user, require_admin
from ..core.exceptions import AuthorizationError, InternalServerError, ProblemDetailsException
from ..models.reservation import HospitalReservation
from ..schemas.common import PageMeta
from ..schemas.reservation import (
    AdminReservationListRequest,
    HospitalReservationRequest,
    HotelReservationRequest,
    NoShowCount,
    NoShowCountRequest,
    Reservation,
    ReservationListRequest,
    ReservationPage,
    ReservationRef,
)
from ..services.reservation_service import ReservationService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/reservation", tags=["reservation"])

DB_DEPENDENCY = Depends(get_db)
AUTH_DEPENDENCY = Depends(get_current_user)
ADMIN_DEPENDENCY = Depends(require_admin)


def _convert_reservation_to_schema(reservation_model) -> Reservation:
    """Convert either reservation model to the shared response schema."""
    data = {
        "id": str(reservation_model.id),
        "kind": reservation_model.kind,
        "venue_id": str(reservation_model.venue_id),
        "member_id": reservation_model.member_id,
        "status": reservation_model.status,
        "reserver_name": reservation_model.reserver_name,
        "pet_name": reservation_model.pet_name,
        "created_at": reservation_model.created_at,
    }
    if isinstance(reservation_model, HospitalReservation):
        data["doctor_id"] = str(reservation_model.doctor_id)
        data["appointment_at"] = reservation_model.appointment_at
    else:
        data["check_in"] = reservation_model.check_in
        data["check_out"] = reservation_model.check_out
    return Reservation(**data)


def _respond(reservation_model, status_code: int = 200) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=_convert_reservation_to_schema(reservation_model).model_dump(mode="json"),
    )


def _respond_page(items, total: int, page: int, size: int) -> JSONResponse:
    response_data = {
        "items": [_convert_reservation_to_schema(r).model_dump(mode="json") for r in items],
        "meta": PageMeta(page=page, size=size, total=total).model_dump(mode="json"),
    }
    return JSONResponse(content=response_data)


@router.post("/hospital/reserve", response_model=Reservation, status_code=201)
async def reserve_hospital(
    request: HospitalReservationRequest,
    db: AsyncSession = DB_DEPENDENCY,
    principal: Principal = AUTH_DEPENDENCY,
) -> JSONResponse:
    """
    Book a clinic slot for the caller.

    Fails with 409 SLOT_CONFLICT when the doctor already has an active
    reservation at that time.
    """
    try:
        reservation = await ReservationService(db).reserve_hospital(principal.member_id, request)
        return _respond(reservation, status_code=201)

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in hospital reservation",
            extra={
                "member_id": principal.member_id,
                "doctor_id": request.doctor_id,
                "appointment_at": request.appointment_at.isoformat(),
                "error": str(e),
            },
            exc_info=True
        )
        raise InternalServerError() from e


@router.post("/hotel/reserve", response_model=Reservation, status_code=201)
async def reserve_hotel(
    request: HotelReservationRequest,
    db: AsyncSession = DB_DEPENDENCY,
    principal: Principal = AUTH_DEPENDENCY,
) -> JSONResponse:
    """
    Book a hotel stay for the caller.

    Fails with 409 CAPACITY_EXCEEDED when the venue is full on an
    overlapping day.
    """
    try:
        reservation = await ReservationService(db).reserve_hotel(principal.member_id, request)
        return _respond(reservation, status_code=201)

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in hotel reservation",
            extra={
                "member_id": principal.member_id,
                "venue_id": request.venue_id,
                "check_in": request.check_in.isoformat(),
                "check_out": request.check_out.isoformat(),
                "error": str(e),
            },
            exc_info=True
        )
        raise InternalServerError() from e


@router.post("/get", response_model=Reservation)
async def get_reservation(
    request: ReservationRef,
    db: AsyncSession = DB_DEPENDENCY,
    principal: Principal = AUTH_DEPENDENCY,
) -> JSONResponse:
    reservation = await ReservationService(db).get_visible(
        request.kind, request.reservation_id, principal.member_id, principal.is_admin
    )
    return _respond(reservation)


@router.post("/confirm", response_model=Reservation)
async def confirm_reservation(
    request: ReservationRef,
    db: AsyncSession = DB_DEPENDENCY,
    admin: Principal = ADMIN_DEPENDENCY,
) -> JSONResponse:
    """Confirm a pending reservation. Requires the admin role."""
    reservation = await ReservationService(db).confirm(request.kind, request.reservation_id)
    logger.info(
        "Reservation confirmed",
        extra={"reservation_id": request.reservation_id, "kind": request.kind.value, "admin": admin.member_id}
    )
    return _respond(reservation)


@router.post("/reject", response_model=Reservation)
async def reject_reservation(
    request: ReservationRef,
    db: AsyncSession = DB_DEPENDENCY,
    admin: Principal = ADMIN_DEPENDENCY,
) -> JSONResponse:
    """Decline a pending reservation. Requires the admin role."""
    reservation = await ReservationService(db).reject(request.kind, request.reservation_id)
    return _respond(reservation)


@router.post("/cancel", response_model=Reservation)
async def cancel_reservation(
    request: ReservationRef,
    db: AsyncSession = DB_DEPENDENCY,
    principal: Principal = AUTH_DEPENDENCY,
) -> JSONResponse:
    """Cancel one of the caller's reservations (admins may cancel any)."""
    reservation = await ReservationService(db).cancel(
        request.kind, request.reservation_id, principal.member_id, principal.is_admin
    )
    return _respond(reservation)


@router.post("/no-show", response_model=Reservation)
async def mark_no_show(
    request: ReservationRef,
    db: AsyncSession = DB_DEPENDENCY,
    admin: Principal = ADMIN_DEPENDENCY,
) -> JSONResponse:
    """Record that a confirmed visit did not happen. Requires the admin role."""
    reservation = await ReservationService(db).mark_no_show(request.kind, request.reservation_id)
    return _respond(reservation)


@router.post("/no-show-count", response_model=NoShowCount)
async def no_show_count(
    request: NoShowCountRequest,
    db: AsyncSession = DB_DEPENDENCY,
    principal: Principal = AUTH_DEPENDENCY,
) -> JSONResponse:
    """No-shows across both reservation kinds. Members may only ask about themselves."""
    member_id = request.member_id or principal.member_id
    if member_id != principal.member_id and not principal.is_admin:
        raise AuthorizationError(detail="Only administrators can look up other members")

    count = await ReservationService(db).count_no_shows(member_id)
    return JSONResponse(content=NoShowCount(member_id=member_id, count=count).model_dump(mode="json"))


@router.post("/list", response_model=ReservationPage)
async def list_my_reservations(
    request: ReservationListRequest,
    db: AsyncSession = DB_DEPENDENCY,
    principal: Principal = AUTH_DEPENDENCY,
) -> JSONResponse:
    """The caller's clinic appointments and hotel stays, latest visit first."""
    items, total = await ReservationService(db).list_reservations(
        member_id=principal.member_id,
        kind=request.kind,
        status=request.status,
        page=request.page,
        size=request.size,
    )
    return _respond_page(items, total, request.page, request.size)


@router.post("/admin/list", response_model=ReservationPage)
async def list_venue_reservations(
    request: AdminReservationListRequest,
    db: AsyncSession = DB_DEPENDENCY,
    admin: Principal = ADMIN_DEPENDENCY,
) -> JSONResponse:
    """A venue's reservations of both kinds. Requires the admin role."""
    items, total = await ReservationService(db).list_reservations(
        venue_id=request.venue_id,
        member_id=request.member_id,
        kind=request.kind,
        status=request.status,
        doctor_id=request.doctor_id,
        day=request.day,
        page=request.page,
        size=request.size,
    )
    return _respond_page(items, total, request.page, request.size)

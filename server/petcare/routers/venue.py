"""Venue router for the clinic and hotel catalog."""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import get_db
from ..core.dependencies import Principal, get_current_user, require_admin
from ..core.exceptions import InternalServerError, ProblemDetailsException
from ..schemas.venue import (
    AddDoctorRequest,
    ClosedTimesResponse,
    CreateVenueRequest,
    Doctor,
    GetVenueRequest,
    SetClosedTimesRequest,
    UnavailableTimesRequest,
    UnavailableTimesResponse,
    Venue,
)
from ..services.reservation_service import ReservationService
from ..services.venue_service import VenueService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/venue", tags=["venue"])

DB_DEPENDENCY = Depends(get_db)
AUTH_DEPENDENCY = Depends(get_current_user)
ADMIN_DEPENDENCY = Depends(require_admin)


def _convert_venue_to_schema(venue_model) -> Venue:
    return Venue(
        id=str(venue_model.id),
        name=venue_model.name,
        address=venue_model.address,
        latitude=venue_model.latitude,
        longitude=venue_model.longitude,
        active=venue_model.active,
        hotel_capacity=venue_model.hotel_capacity,
    )


def _convert_doctor_to_schema(doctor_model) -> Doctor:
    return Doctor(
        id=str(doctor_model.id),
        venue_id=str(doctor_model.venue_id),
        name=doctor_model.name,
        active=doctor_model.active,
    )


@router.post("/create", response_model=Venue)
async def create_venue(
    request: CreateVenueRequest,
    db: AsyncSession = DB_DEPENDENCY,
    admin: Principal = ADMIN_DEPENDENCY,
) -> JSONResponse:
    """Register a clinic or hotel venue. Requires the admin role."""
    try:
        venue = await VenueService(db).create_venue(request)
        return JSONResponse(content=_convert_venue_to_schema(venue).model_dump(mode="json"))

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in venue creation",
            extra={"venue_name": request.name, "admin": admin.member_id, "error": str(e)},
            exc_info=True
        )
        raise InternalServerError() from e


@router.post("/doctor/add", response_model=Doctor)
async def add_doctor(
    request: AddDoctorRequest,
    db: AsyncSession = DB_DEPENDENCY,
    admin: Principal = ADMIN_DEPENDENCY,
) -> JSONResponse:
    """Add a doctor to an active venue. Requires the admin role."""
    doctor = await VenueService(db).add_doctor(request)
    return JSONResponse(content=_convert_doctor_to_schema(doctor).model_dump(mode="json"))


@router.post("/get", response_model=Venue)
async def get_venue(
    request: GetVenueRequest,
    db: AsyncSession = DB_DEPENDENCY,
    principal: Principal = AUTH_DEPENDENCY,
) -> JSONResponse:
    venue = await VenueService(db).get_active_venue(request.venue_id)
    return JSONResponse(content=_convert_venue_to_schema(venue).model_dump(mode="json"))


@router.post("/doctors", response_model=list[Doctor])
async def list_doctors(
    request: GetVenueRequest,
    db: AsyncSession = DB_DEPENDENCY,
    principal: Principal = AUTH_DEPENDENCY,
) -> JSONResponse:
    doctors = await VenueService(db).list_doctors(request.venue_id)
    return JSONResponse(
        content=[_convert_doctor_to_schema(d).model_dump(mode="json") for d in doctors]
    )


@router.post("/unavailable-times", response_model=UnavailableTimesResponse)
async def unavailable_times(
    request: UnavailableTimesRequest,
    db: AsyncSession = DB_DEPENDENCY,
    principal: Principal = AUTH_DEPENDENCY,
) -> JSONResponse:
    """Slots of a doctor on a day that are booked or closed."""
    times = await ReservationService(db).list_unavailable_times(request.doctor_id, request.day)
    response_data = UnavailableTimesResponse(doctor_id=request.doctor_id, day=request.day, times=times)
    return JSONResponse(content=response_data.model_dump(mode="json"))


@router.post("/closed-times", response_model=ClosedTimesResponse)
async def set_closed_times(
    request: SetClosedTimesRequest,
    db: AsyncSession = DB_DEPENDENCY,
    admin: Principal = ADMIN_DEPENDENCY,
) -> JSONResponse:
    """Close clinic slots on a day, replacing the day's earlier list. Requires the admin role."""
    rows = await VenueService(db).set_closed_times(request)
    response_data = ClosedTimesResponse(
        venue_id=request.venue_id,
        doctor_id=request.doctor_id,
        day=request.day,
        times=[row.slot_at for row in rows],
    )
    return JSONResponse(content=response_data.model_dump(mode="json"))

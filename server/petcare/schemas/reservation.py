"""Reservation-related Pydantic schemas."""

from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ..models.reservation import ReservationKind, ReservationStatus
from .common import PageMeta


class ReserverDetails(BaseModel):
    """Who is booking, and for which pet."""

    reserver_name: str = Field(..., min_length=1, max_length=50)
    primary_phone: str = Field(..., min_length=1, max_length=20)
    secondary_phone: str | None = Field(None, max_length=20)
    pet_name: str = Field(..., min_length=1, max_length=50)
    pet_birth_year: int | None = Field(None, ge=1900, le=2100)
    pet_species: str | None = Field(None, max_length=30)
    pet_gender: str | None = Field(None, max_length=10)
    memo: str | None = Field(None, max_length=2000)


class HospitalReservationRequest(ReserverDetails):
    """Request schema for booking a clinic slot."""

    venue_id: str = Field(..., description="Clinic venue")
    doctor_id: str = Field(..., description="Doctor to see")
    appointment_at: datetime = Field(..., description="Local start time of the slot")


class HotelReservationRequest(ReserverDetails):
    """Request schema for booking a hotel stay."""

    venue_id: str = Field(..., description="Hotel venue")
    check_in: date = Field(..., description="First night")
    check_out: date = Field(..., description="Departure day")

    @model_validator(mode="after")
    def check_range(self) -> "HotelReservationRequest":
        if self.check_out <= self.check_in:
            raise ValueError("check_out must be after check_in")
        return self


class ReservationRef(BaseModel):
    """Identifies one reservation of either kind."""

    kind: ReservationKind = Field(..., description="HOSPITAL or HOTEL")
    reservation_id: str = Field(..., description="Reservation ID")


class NoShowCountRequest(BaseModel):
    member_id: str | None = Field(None, description="Member to count; defaults to the caller")


class Reservation(BaseModel):
    """Reservation response schema (both kinds)."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    kind: ReservationKind
    venue_id: str
    member_id: str
    status: ReservationStatus
    doctor_id: str | None = None
    appointment_at: datetime | None = None
    check_in: date | None = None
    check_out: date | None = None
    reserver_name: str
    pet_name: str
    created_at: datetime | None = None


class ReservationListRequest(BaseModel):
    """Filters for listing the caller's reservations, latest visit first."""

    kind: ReservationKind | None = Field(None, description="Only this kind; both when omitted")
    status: ReservationStatus | None = Field(None, description="Only this status")
    page: int = Field(0, ge=0, description="Zero-based page index")
    size: int = Field(20, ge=1, le=100, description="Page size")


class AdminReservationListRequest(ReservationListRequest):
    """Filters for listing a venue's reservations."""

    venue_id: str = Field(..., description="Venue to list")
    member_id: str | None = Field(None, description="Only this member")
    doctor_id: str | None = Field(None, description="Only this doctor (clinic reservations)")
    day: date | None = Field(None, description="Appointments on, or stays covering, this day")


class ReservationPage(BaseModel):
    items: list[Reservation]
    meta: PageMeta


class NoShowCount(BaseModel):
    member_id: str
    count: int = Field(..., ge=0)

"""Venue and doctor catalog schemas."""

from datetime import date, datetime, time

from pydantic import BaseModel, ConfigDict, Field


class CreateVenueRequest(BaseModel):
    """Request schema for registering a venue."""

    name: str = Field(..., min_length=1, max_length=255, description="Venue name")
    address: str | None = Field(None, max_length=255, description="Street address")
    latitude: float | None = Field(None, ge=-90, le=90)
    longitude: float | None = Field(None, ge=-180, le=180)
    hotel_capacity: int | None = Field(
        None, ge=0, le=1000, description="Concurrent stays accepted; defaults to the service setting"
    )


class AddDoctorRequest(BaseModel):
    """Request schema for adding a doctor to a venue."""

    venue_id: str = Field(..., description="Venue the doctor works at")
    name: str = Field(..., min_length=1, max_length=100, description="Doctor name")


class GetVenueRequest(BaseModel):
    venue_id: str = Field(..., description="Venue to retrieve")


class UnavailableTimesRequest(BaseModel):
    """Request schema for listing booked slots of a doctor on a day."""

    doctor_id: str = Field(..., description="Doctor to inspect")
    day: date = Field(..., description="Local calendar day")


class Doctor(BaseModel):
    """Doctor response schema."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    venue_id: str
    name: str
    active: bool


class Venue(BaseModel):
    """Venue response schema."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    address: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    active: bool
    hotel_capacity: int


class UnavailableTimesResponse(BaseModel):
    """Slots that can no longer be booked."""

    doctor_id: str
    day: date
    times: list[datetime] = Field(default_factory=list, description="Start of each booked slot")


class SetClosedTimesRequest(BaseModel):
    """
    Request schema for closing clinic slots on a day.

    The submitted times replace whatever was closed before for the same
    venue, doctor and day; an empty list reopens the day. Without
    ``doctor_id`` the slots close for every doctor of the venue.
    """

    venue_id: str = Field(..., description="Clinic venue")
    doctor_id: str | None = Field(None, description="Doctor to close; omit for the whole venue")
    day: date = Field(..., description="Local calendar day")
    times: list[time] = Field(default_factory=list, max_length=48, description="Slot start times")
    reason: str | None = Field(None, max_length=200)


class ClosedTimesResponse(BaseModel):
    """Slots closed by an administrator."""

    venue_id: str
    doctor_id: str | None = None
    day: date
    times: list[datetime] = Field(default_factory=list)

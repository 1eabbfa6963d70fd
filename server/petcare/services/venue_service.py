"""Venue and doctor catalog operations, including closed clinic slots."""

import logging
from datetime import date, datetime, time
from uuid import UUID

from sqlalchemy import delete, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import settings
from ..core.exceptions import NotFoundError, ValidationError
from ..models.venue import Doctor, HospitalClosedTime, Venue
from ..schemas.venue import AddDoctorRequest, CreateVenueRequest, SetClosedTimesRequest

logger = logging.getLogger(__name__)


def parse_uuid(value: str | UUID, field_name: str) -> UUID:
    """Parse an identifier supplied by a client."""
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError as e:
        raise ValidationError(detail=f"{field_name} is not a valid identifier") from e


def align_slot(value: time) -> time:
    """
    Raises:
        ValidationError: If ``value`` does not start a slot
    """
    if value.second or value.microsecond or value.minute % settings.slot_minutes:
        raise ValidationError(
            detail=f"Closed time {value.isoformat()} is not on a {settings.slot_minutes}-minute boundary"
        )
    return value.replace(tzinfo=None)


class VenueService:
    """Service for venue and doctor catalog operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_venue(self, request: CreateVenueRequest) -> Venue:
        venue = Venue(
            name=request.name,
            address=request.address,
            latitude=request.latitude,
            longitude=request.longitude,
            active=True,
            hotel_capacity=(
                request.hotel_capacity if request.hotel_capacity is not None else settings.hotel_capacity
            ),
        )
        self.db.add(venue)
        await self.db.commit()
        await self.db.refresh(venue)

        logger.info(
            "Venue created",
            extra={"venue_id": str(venue.id), "name": venue.name, "hotel_capacity": venue.hotel_capacity}
        )
        return venue

    async def add_doctor(self, request: AddDoctorRequest) -> Doctor:
        """
        Register a doctor at an active venue.

        Raises:
            NotFoundError: If the venue does not exist or is inactive
        """
        venue = await self.get_active_venue(request.venue_id)
        doctor = Doctor(venue_id=venue.id, name=request.name, active=True)
        self.db.add(doctor)
        await self.db.commit()
        await self.db.refresh(doctor)

        logger.info(
            "Doctor added",
            extra={"doctor_id": str(doctor.id), "venue_id": str(venue.id)}
        )
        return doctor

    async def get_venue(self, venue_id: str | UUID) -> Venue | None:
        return await self.db.get(Venue, parse_uuid(venue_id, "venue_id"))

    async def get_active_venue(self, venue_id: str | UUID) -> Venue:
        """
        Raises:
            NotFoundError: If the venue does not exist or is inactive
        """
        venue = await self.get_venue(venue_id)
        if venue is None or not venue.active:
            raise NotFoundError(resource_type="venue", resource_id=str(venue_id))
        return venue

    async def get_active_doctor(self, venue_id: str | UUID, doctor_id: str | UUID) -> Doctor:
        """
        Return an active doctor working at ``venue_id``.

        Raises:
            NotFoundError: If the doctor is unknown, inactive or at another venue
        """
        doctor = await self.db.get(Doctor, parse_uuid(doctor_id, "doctor_id"))
        if doctor is None or not doctor.active or doctor.venue_id != parse_uuid(venue_id, "venue_id"):
            raise NotFoundError(resource_type="doctor", resource_id=str(doctor_id))
        return doctor

    async def get_doctor(self, doctor_id: str | UUID) -> Doctor:
        doctor = await self.db.get(Doctor, parse_uuid(doctor_id, "doctor_id"))
        if doctor is None:
            raise NotFoundError(resource_type="doctor", resource_id=str(doctor_id))
        return doctor

    async def list_doctors(self, venue_id: str | UUID) -> list[Doctor]:
        venue = await self.get_active_venue(venue_id)
        result = await self.db.execute(
            select(Doctor)
            .where(Doctor.venue_id == venue.id, Doctor.active.is_(True))
            .order_by(Doctor.name)
        )
        return list(result.scalars().all())

    async def set_closed_times(self, request: SetClosedTimesRequest) -> list[HospitalClosedTime]:
        """
        Replace the closed slots of a doctor (or of the whole venue) on one day.

        Raises:
            NotFoundError: If the venue or doctor is unknown or inactive
            ValidationError: If a time is not on the slot grid
        """
        venue = await self.get_active_venue(request.venue_id)
        doctor_id = None
        if request.doctor_id:
            doctor_id = (await self.get_active_doctor(venue.id, request.doctor_id)).id

        slots = sorted({datetime.combine(request.day, align_slot(t)) for t in request.times})

        doctor_clause = (
            HospitalClosedTime.doctor_id.is_(None) if doctor_id is None
            else HospitalClosedTime.doctor_id == doctor_id
        )
        await self.db.execute(
            delete(HospitalClosedTime).where(
                HospitalClosedTime.venue_id == venue.id,
                HospitalClosedTime.day == request.day,
                doctor_clause,
            )
        )
        rows = [
            HospitalClosedTime(
                venue_id=venue.id,
                doctor_id=doctor_id,
                day=request.day,
                slot_at=slot_at,
                reason=request.reason,
            )
            for slot_at in slots
        ]
        self.db.add_all(rows)
        await self.db.commit()

        logger.info(
            "Closed times set",
            extra={
                "venue_id": str(venue.id),
                "doctor_id": str(doctor_id) if doctor_id else None,
                "day": request.day.isoformat(),
                "closed": len(rows),
            }
        )
        return rows

    async def closed_slots(self, venue_id: UUID, doctor_id: UUID, day: date) -> list[datetime]:
        """Slots closed for ``doctor_id`` on ``day``, directly or venue-wide."""
        result = await self.db.execute(
            select(HospitalClosedTime.slot_at)
            .where(
                HospitalClosedTime.venue_id == venue_id,
                HospitalClosedTime.day == day,
                or_(HospitalClosedTime.doctor_id.is_(None), HospitalClosedTime.doctor_id == doctor_id),
            )
            .order_by(HospitalClosedTime.slot_at)
        )
        return sorted(set(result.scalars().all()))

    async def is_slot_closed(self, venue_id: UUID, doctor_id: UUID, slot_at: datetime) -> bool:
        return slot_at in await self.closed_slots(venue_id, doctor_id, slot_at.date())

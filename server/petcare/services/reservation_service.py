"""Reservation lifecycle for clinic appointments and hotel stays."""

import logging
from datetime import date, datetime, time, timedelta
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.clock import Clock, local_now, to_local_naive
from ..core.config import settings
from ..core.exceptions import (
    InvalidTransitionError,
    NotFoundError,
    NotFoundOrNotOwnerError,
    SlotClosedError,
    ValidationError,
)
from ..core.observability import metrics_collector
from ..models.notification import TargetType
from ..models.reservation import (
    HospitalReservation,
    HotelReservation,
    ReservationKind,
    ReservationStatus,
    ensure_transition,
)
from ..schemas.reservation import HospitalReservationRequest, HotelReservationRequest, ReserverDetails
from .availability_ledger import AvailabilityLedger
from .live_channels import LiveChannelRegistry
from .member_service import MemberDirectory
from .notification_service import NotificationCommand, NotificationHub
from .reminder_service import ReminderScheduler
from .reservation_notices import NoticeEvent, build_notice, reservation_link
from .venue_service import VenueService, parse_uuid

logger = logging.getLogger(__name__)

Reservation = HospitalReservation | HotelReservation

_MODELS: dict[ReservationKind, type[Reservation]] = {
    ReservationKind.HOSPITAL: HospitalReservation,
    ReservationKind.HOTEL: HotelReservation,
}

_RESERVER_FIELDS = set(ReserverDetails.model_fields)


def validate_appointment_slot(
    appointment_at: datetime,
    now: datetime,
    slot_minutes: int | None = None,
    open_hour: int | None = None,
    close_hour: int | None = None,
    lunch_hour: int | None = None,
) -> None:
    """
    Check that a clinic appointment starts on a bookable slot.

    Raises:
        ValidationError: If the time is in the past, misaligned or outside business hours
    """
    slot_minutes = slot_minutes or settings.slot_minutes
    open_hour = settings.hospital_open_hour if open_hour is None else open_hour
    close_hour = settings.hospital_close_hour if close_hour is None else close_hour
    if lunch_hour is None:
        lunch_hour = settings.hospital_lunch_hour

    if appointment_at <= now:
        raise ValidationError(detail="Appointment time must be in the future")
    if appointment_at.second or appointment_at.microsecond or appointment_at.minute % slot_minutes:
        raise ValidationError(detail=f"Appointments start on {slot_minutes}-minute boundaries")
    if not open_hour <= appointment_at.hour < close_hour:
        raise ValidationError(
            detail=f"Appointments are available between {open_hour:02d}:00 and {close_hour:02d}:00"
        )
    if lunch_hour is not None and appointment_at.hour == lunch_hour:
        raise ValidationError(detail=f"No appointments during the {lunch_hour:02d}:00 break")


def visit_time(reservation: Reservation) -> datetime:
    """When the member is expected to show up."""
    if isinstance(reservation, HospitalReservation):
        return reservation.appointment_at
    return datetime.combine(reservation.check_in, time(hour=settings.hotel_checkin_hour))


class ReservationService:
    """Service that admits reservations and drives their status lifecycle."""

    def __init__(
        self,
        db: AsyncSession,
        clock: Clock = local_now,
        registry: LiveChannelRegistry | None = None,
    ):
        self.db = db
        self.clock = clock
        self.venues = VenueService(db)
        self.members = MemberDirectory(db)
        self.ledger = AvailabilityLedger(db)
        self.hub = NotificationHub(db, registry=registry, clock=clock)
        self.reminders = ReminderScheduler(db, clock=clock, registry=registry)

    async def reserve_hospital(
        self, member_id: str, request: HospitalReservationRequest
    ) -> HospitalReservation:
        """
        Book a doctor's slot.

        On success the reservation is PENDING, its 24h and 3h reminders are
        scheduled and the member is notified.

        Args:
            member_id: Booking member
            request: Venue, doctor, slot and reserver details

        Returns:
            The committed reservation

        Raises:
            NotFoundError: If member, venue or doctor is unknown or inactive
            ValidationError: If the slot is in the past, misaligned or outside hours
            SlotClosedError: If an administrator closed the slot
            SlotConflictError: If the slot is already taken
        """
        await self.members.require(member_id)
        venue = await self.venues.get_active_venue(request.venue_id)
        doctor = await self.venues.get_active_doctor(venue.id, request.doctor_id)

        appointment_at = to_local_naive(request.appointment_at)
        validate_appointment_slot(appointment_at, self.clock())
        if await self.venues.is_slot_closed(venue.id, doctor.id, appointment_at):
            raise SlotClosedError(str(doctor.id), appointment_at)

        reservation = HospitalReservation(
            venue_id=venue.id,
            doctor_id=doctor.id,
            member_id=member_id,
            appointment_at=appointment_at,
            status=ReservationStatus.PENDING.value,
            **request.model_dump(include=_RESERVER_FIELDS),
        )
        reservation = await self.ledger.admit_exclusive_slot(reservation)

        await self._notify(reservation, NoticeEvent.ACCEPTED, venue.name)
        await self._schedule_reminders(reservation, venue.name)
        return reservation

    async def reserve_hotel(self, member_id: str, request: HotelReservationRequest) -> HotelReservation:
        """
        Book a hotel stay against the venue's capacity.

        Raises:
            NotFoundError: If member or venue is unknown or inactive
            ValidationError: If the range is empty or starts in the past
            CapacityExceededError: If the venue is full on any overlapping day
        """
        await self.members.require(member_id)
        venue = await self.venues.get_active_venue(request.venue_id)

        if request.check_out <= request.check_in:
            raise ValidationError(detail="check_out must be after check_in")
        if request.check_in < self.clock().date():
            raise ValidationError(detail="check_in must not be in the past")

        reservation = HotelReservation(
            venue_id=venue.id,
            member_id=member_id,
            check_in=request.check_in,
            check_out=request.check_out,
            status=ReservationStatus.PENDING.value,
            **request.model_dump(include=_RESERVER_FIELDS),
        )
        reservation = await self.ledger.admit_range_capacity(reservation, venue.hotel_capacity)

        await self._notify(reservation, NoticeEvent.ACCEPTED, venue.name)
        return reservation

    async def get(self, kind: ReservationKind | str, reservation_id: str | UUID) -> Reservation:
        """
        Raises:
            NotFoundError: If no reservation of ``kind`` has this id
        """
        model = _MODELS[ReservationKind(kind)]
        reservation = await self.db.get(model, parse_uuid(reservation_id, "reservation_id"))
        if reservation is None:
            raise NotFoundError(resource_type="reservation", resource_id=str(reservation_id))
        return reservation

    async def get_visible(
        self, kind: ReservationKind | str, reservation_id: str | UUID, member_id: str, is_admin: bool = False
    ) -> Reservation:
        """Fetch a reservation the caller owns (or any reservation for admins)."""
        try:
            reservation = await self.get(kind, reservation_id)
        except NotFoundError:
            raise NotFoundOrNotOwnerError("reservation", str(reservation_id)) from None
        if not is_admin and reservation.member_id != member_id:
            raise NotFoundOrNotOwnerError("reservation", str(reservation_id))
        return reservation

    async def confirm(self, kind: ReservationKind | str, reservation_id: str | UUID) -> Reservation:
        """
        PENDING -> CONFIRMED. Notifies the member and makes sure both reminders exist.

        Raises:
            NotFoundError: If the reservation does not exist
            InvalidTransitionError: If the reservation is not PENDING
        """
        reservation = await self.get(kind, reservation_id)
        reservation = await self._transition(reservation, ReservationStatus.CONFIRMED)

        venue_name = await self._venue_name(reservation)
        await self._notify(reservation, NoticeEvent.CONFIRMED, venue_name)
        await self._schedule_reminders(reservation, venue_name)
        return reservation

    async def reject(self, kind: ReservationKind | str, reservation_id: str | UUID) -> Reservation:
        """PENDING -> REJECTED. Pending reminders are cancelled."""
        reservation = await self.get(kind, reservation_id)
        reservation = await self._transition(reservation, ReservationStatus.REJECTED)

        await self.reminders.cancel_all_pending(str(reservation.id))
        await self._notify(reservation, NoticeEvent.REJECTED, await self._venue_name(reservation))
        return reservation

    async def cancel(
        self,
        kind: ReservationKind | str,
        reservation_id: str | UUID,
        member_id: str,
        is_admin: bool = False,
    ) -> Reservation:
        """
        Cancel a PENDING or CONFIRMED reservation.

        Only the owner or an administrator may cancel. Every PENDING reminder
        is flipped to CANCELLED; reminders already sent stay as they are.

        Raises:
            NotFoundOrNotOwnerError: If missing or owned by someone else
            InvalidTransitionError: If the reservation is already terminal
        """
        reservation = await self.get_visible(kind, reservation_id, member_id, is_admin)
        reservation = await self._transition(reservation, ReservationStatus.CANCELED)

        await self.reminders.cancel_all_pending(str(reservation.id))
        await self._notify(reservation, NoticeEvent.CANCELED, await self._venue_name(reservation))
        return reservation

    async def mark_no_show(self, kind: ReservationKind | str, reservation_id: str | UUID) -> Reservation:
        """
        CONFIRMED -> NOSHOW, once the visit time has passed.

        Raises:
            InvalidTransitionError: If the reservation is not CONFIRMED
            ValidationError: If the visit has not started yet
        """
        reservation = await self.get(kind, reservation_id)
        ensure_transition(str(reservation.id), reservation.status, ReservationStatus.NOSHOW)
        if self.clock() < visit_time(reservation):
            raise ValidationError(detail="A reservation can only be marked no-show after its visit time")

        reservation = await self._transition(reservation, ReservationStatus.NOSHOW)

        await self.reminders.cancel_all_pending(str(reservation.id))
        await self._notify(reservation, NoticeEvent.NOSHOW, await self._venue_name(reservation))
        return reservation

    async def count_no_shows(self, member_id: str) -> int:
        """No-shows of a member across clinic and hotel reservations."""
        total = 0
        for model in _MODELS.values():
            total += await self.db.scalar(
                select(func.count())
                .select_from(model)
                .where(model.member_id == member_id, model.status == ReservationStatus.NOSHOW.value)
            ) or 0
        return total

    async def list_unavailable_times(self, doctor_id: str | UUID, day: date) -> list[datetime]:
        """Booked and closed slots of a doctor on ``day``, in order."""
        doctor = await self.venues.get_doctor(doctor_id)
        booked = await self.ledger.booked_slots(doctor.id, day)
        closed = await self.venues.closed_slots(doctor.venue_id, doctor.id, day)
        return sorted(set(booked) | set(closed))

    async def list_reservations(
        self,
        *,
        member_id: str | None = None,
        venue_id: str | UUID | None = None,
        kind: ReservationKind | None = None,
        status: ReservationStatus | None = None,
        doctor_id: str | UUID | None = None,
        day: date | None = None,
        page: int = 0,
        size: int = 20,
    ) -> tuple[list[Reservation], int]:
        """
        Page through reservations of both kinds, latest visit first.

        Each kind is queried for its first ``(page + 1) * size`` rows and the
        two lists are merged. A ``doctor_id`` filter leaves out hotel stays;
        a ``day`` filter keeps appointments on that day and stays covering it.

        Returns:
            Tuple of (page items, total matching count)
        """
        kinds = [ReservationKind(kind)] if kind else list(ReservationKind)
        if doctor_id is not None:
            kinds = [k for k in kinds if k is ReservationKind.HOSPITAL]

        window = (page + 1) * size
        total = 0
        rows: list[Reservation] = []
        for k in kinds:
            model = _MODELS[k]
            conditions = []
            if member_id is not None:
                conditions.append(model.member_id == member_id)
            if venue_id is not None:
                conditions.append(model.venue_id == parse_uuid(venue_id, "venue_id"))
            if status is not None:
                conditions.append(model.status == ReservationStatus(status).value)
            if k is ReservationKind.HOSPITAL:
                order_column = HospitalReservation.appointment_at
                if doctor_id is not None:
                    conditions.append(HospitalReservation.doctor_id == parse_uuid(doctor_id, "doctor_id"))
                if day is not None:
                    start = datetime.combine(day, time.min)
                    conditions.append(HospitalReservation.appointment_at >= start)
                    conditions.append(HospitalReservation.appointment_at < start + timedelta(days=1))
            else:
                order_column = HotelReservation.check_in
                if day is not None:
                    conditions.append(HotelReservation.check_in <= day)
                    conditions.append(HotelReservation.check_out >= day)

            total += await self.db.scalar(
                select(func.count()).select_from(model).where(*conditions)
            ) or 0
            result = await self.db.execute(
                select(model)
                .where(*conditions)
                .order_by(order_column.desc(), model.created_at.desc())
                .limit(window)
            )
            rows.extend(result.scalars().all())

        rows.sort(key=lambda r: (visit_time(r), r.created_at), reverse=True)
        return rows[page * size:window], total

    async def _transition(self, reservation: Reservation, target: ReservationStatus) -> Reservation:
        """Compare-and-set the status so concurrent transitions cannot both win."""
        current = ReservationStatus(reservation.status)
        ensure_transition(str(reservation.id), current, target)

        model = type(reservation)
        result = await self.db.execute(
            update(model)
            .where(model.id == reservation.id, model.status == current.value)
            .values(status=target.value)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        await self.db.refresh(reservation)

        if not result.rowcount:
            raise InvalidTransitionError(str(reservation.id), reservation.status, target.value)

        metrics_collector.record_transition(reservation.kind.value, target.value)
        logger.info(
            "Reservation status changed",
            extra={
                "reservation_id": str(reservation.id),
                "kind": reservation.kind.value,
                "from": current.value,
                "to": target.value,
            }
        )
        return reservation

    async def _venue_name(self, reservation: Reservation) -> str | None:
        venue = await self.venues.get_venue(reservation.venue_id)
        return venue.name if venue else None

    async def _notify(self, reservation: Reservation, event: NoticeEvent, venue_name: str | None) -> None:
        """Notify the reservation's member. Failures are logged, never raised."""
        reservation_id = str(reservation.id)
        notice = build_notice(reservation, event, venue_name)
        try:
            await self.hub.create_and_push(
                NotificationCommand(
                    receiver_id=reservation.member_id,
                    type=notice.type,
                    title=notice.title,
                    message=notice.message,
                    target_type=TargetType.RESERVATION,
                    target_id=reservation_id,
                    link_url=reservation_link(reservation.kind, reservation_id),
                )
            )
        except Exception:
            await self.db.rollback()
            await self.db.refresh(reservation)
            logger.warning(
                "Reservation notice could not be delivered",
                exc_info=True,
                extra={"reservation_id": reservation_id, "event": event.value}
            )

    async def _schedule_reminders(self, reservation: Reservation, venue_name: str | None) -> None:
        """Schedule the visit reminders. Failures are logged, never raised."""
        reservation_id = str(reservation.id)
        try:
            await self.reminders.schedule_for_visit(
                reservation_id=reservation_id,
                member_id=reservation.member_id,
                visit_at=visit_time(reservation),
                service_kind=reservation.kind,
                venue_name=venue_name,
                link_url=reservation_link(reservation.kind, reservation_id),
            )
        except Exception:
            await self.db.rollback()
            await self.db.refresh(reservation)
            logger.warning(
                "Reservation reminders could not be scheduled",
                exc_info=True,
                extra={"reservation_id": reservation_id}
            )

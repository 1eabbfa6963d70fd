"""Texts and types of the notifications a reservation produces."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from ..models.notification import NotificationType
from ..models.reminder import ReminderKind
from ..models.reservation import HospitalReservation, HotelReservation, ReservationKind


class NoticeEvent(str, Enum):
    ACCEPTED = "ACCEPTED"
    CONFIRMED = "CONFIRMED"
    REJECTED = "REJECTED"
    CANCELED = "CANCELED"
    NOSHOW = "NOSHOW"


@dataclass(frozen=True)
class Notice:
    type: NotificationType
    title: str
    message: str


_TYPES = {
    (ReservationKind.HOSPITAL, NoticeEvent.ACCEPTED): NotificationType.RESERVATION_HOSPITAL,
    (ReservationKind.HOSPITAL, NoticeEvent.CONFIRMED): NotificationType.RESERVATION_HOSPITAL_CONFIRM,
    (ReservationKind.HOSPITAL, NoticeEvent.REJECTED): NotificationType.RESERVATION_HOSPITAL_REJECT,
    (ReservationKind.HOSPITAL, NoticeEvent.CANCELED): NotificationType.RESERVATION_HOSPITAL_CANCEL,
    (ReservationKind.HOSPITAL, NoticeEvent.NOSHOW): NotificationType.RESERVATION_HOSPITAL_NOSHOW,
    (ReservationKind.HOTEL, NoticeEvent.ACCEPTED): NotificationType.RESERVATION_HOTEL,
    (ReservationKind.HOTEL, NoticeEvent.CONFIRMED): NotificationType.RESERVATION_HOTEL_CONFIRM,
    (ReservationKind.HOTEL, NoticeEvent.REJECTED): NotificationType.RESERVATION_HOTEL_REJECT,
    (ReservationKind.HOTEL, NoticeEvent.CANCELED): NotificationType.RESERVATION_HOTEL_CANCEL,
    (ReservationKind.HOTEL, NoticeEvent.NOSHOW): NotificationType.RESERVATION_HOTEL_NOSHOW,
}

_HEADLINES = {
    NoticeEvent.ACCEPTED: "request received",
    NoticeEvent.CONFIRMED: "confirmed",
    NoticeEvent.REJECTED: "declined",
    NoticeEvent.CANCELED: "cancelled",
    NoticeEvent.NOSHOW: "marked as no-show",
}

_REMINDER_LEADS = {
    ReminderKind.REMIND_24H: "Tomorrow",
    ReminderKind.REMIND_3H: "In 3 hours",
}

REMINDER_TYPES = {
    ReminderKind.REMIND_24H: NotificationType.RESERVATION_REMINDER_24H,
    ReminderKind.REMIND_3H: NotificationType.RESERVATION_REMINDER_3H,
}


def _label(kind: ReservationKind) -> str:
    return "Clinic appointment" if kind == ReservationKind.HOSPITAL else "Hotel stay"


def describe_visit(reservation: HospitalReservation | HotelReservation) -> str:
    if isinstance(reservation, HospitalReservation):
        return reservation.appointment_at.strftime("%Y-%m-%d %H:%M")
    return f"{reservation.check_in.isoformat()} ~ {reservation.check_out.isoformat()}"


def reservation_link(kind: ReservationKind | str, reservation_id: str) -> str:
    return f"/reservation/{ReservationKind(kind).value.lower()}/{reservation_id}"


def build_notice(
    reservation: HospitalReservation | HotelReservation,
    event: NoticeEvent,
    venue_name: str | None = None,
) -> Notice:
    kind = reservation.kind
    where = f" at {venue_name}" if venue_name else ""
    return Notice(
        type=_TYPES[(kind, event)],
        title=f"{_label(kind)} {_HEADLINES[event]}",
        message=f"{reservation.pet_name}: {describe_visit(reservation)}{where}",
    )


def reminder_title(
    service_kind: ReservationKind | str,
    reminder_kind: ReminderKind | str,
    visit_at: datetime,
    venue_name: str | None = None,
) -> str:
    """Title snapshot stored on a reminder when it is scheduled."""
    lead = _REMINDER_LEADS[ReminderKind(reminder_kind)]
    label = _label(ReservationKind(service_kind)).lower()
    where = f" at {venue_name}" if venue_name else ""
    return f"{lead}: {label}{where} ({visit_at.strftime('%Y-%m-%d %H:%M')})"

"""Models module exporting all database models."""

from .keyword import KeywordSubscription
from .member import Member
from .notification import Notification, NotificationTombstone, NotificationType, TargetType
from .reminder import ReminderKind, ReminderStatus, ReservationReminder
from .reservation import (
    ACTIVE_STATUSES,
    HospitalReservation,
    HotelReservation,
    ReservationKind,
    ReservationStatus,
)
from .venue import Doctor, HospitalClosedTime, Venue

__all__ = [
    # Directory and catalog
    "Member",
    "Venue",
    "Doctor",
    "HospitalClosedTime",

    # Reservations
    "HospitalReservation",
    "HotelReservation",
    "ReservationKind",
    "ReservationStatus",
    "ACTIVE_STATUSES",

    # Reminders
    "ReservationReminder",
    "ReminderKind",
    "ReminderStatus",

    # Notifications
    "Notification",
    "NotificationTombstone",
    "NotificationType",
    "TargetType",
    "KeywordSubscription",
]

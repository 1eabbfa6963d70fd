"""Hospital and hotel reservation models and their status lifecycle."""

from datetime import date, datetime
from enum import Enum
from uuid import UUID, uuid4

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import UUID as PgUUID
from sqlalchemy.orm import Mapped, declared_attr, mapped_column

from ..core.database import Base
from ..core.exceptions import InvalidTransitionError


class ReservationKind(str, Enum):
    """Which service a reservation books."""
    HOSPITAL = "HOSPITAL"
    HOTEL = "HOTEL"


class ReservationStatus(str, Enum):
    """Reservation status enumeration."""
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    REJECTED = "REJECTED"
    CANCELED = "CANCELED"
    NOSHOW = "NOSHOW"


ACTIVE_STATUSES = (ReservationStatus.PENDING, ReservationStatus.CONFIRMED)

ALLOWED_TRANSITIONS: dict[ReservationStatus, frozenset[ReservationStatus]] = {
    ReservationStatus.PENDING: frozenset({
        ReservationStatus.CONFIRMED,
        ReservationStatus.REJECTED,
        ReservationStatus.CANCELED,
    }),
    ReservationStatus.CONFIRMED: frozenset({
        ReservationStatus.CANCELED,
        ReservationStatus.NOSHOW,
    }),
    ReservationStatus.REJECTED: frozenset(),
    ReservationStatus.CANCELED: frozenset(),
    ReservationStatus.NOSHOW: frozenset(),
}

# Used in partial unique indexes; must match ACTIVE_STATUSES.
_ACTIVE_SQL = "status IN ('PENDING', 'CONFIRMED')"


def can_transition(current: ReservationStatus | str, target: ReservationStatus | str) -> bool:
    """Return True if the lifecycle allows ``current`` to move to ``target``."""
    return ReservationStatus(target) in ALLOWED_TRANSITIONS[ReservationStatus(current)]


def ensure_transition(
    reservation_id: str,
    current: ReservationStatus | str,
    target: ReservationStatus | str,
) -> None:
    """
    Check a status change against the lifecycle table.

    Raises:
        InvalidTransitionError: If the change is not allowed
    """
    if not can_transition(current, target):
        raise InvalidTransitionError(
            reservation_id, ReservationStatus(current).value, ReservationStatus(target).value
        )


def is_terminal(status: ReservationStatus | str) -> bool:
    return not ALLOWED_TRANSITIONS[ReservationStatus(status)]


class ReserverDetailsMixin:
    """Columns shared by both reservation kinds."""

    id: Mapped[UUID] = mapped_column(
        PgUUID(as_uuid=True),
        primary_key=True,
        default=uuid4,
    )

    @declared_attr
    def venue_id(cls) -> Mapped[UUID]:
        return mapped_column(
            PgUUID(as_uuid=True),
            ForeignKey("venues.id", ondelete="CASCADE"),
            nullable=False,
            index=True
        )

    @declared_attr
    def member_id(cls) -> Mapped[str]:
        return mapped_column(
            String(64),
            ForeignKey("members.member_id", ondelete="CASCADE"),
            nullable=False,
            index=True
        )

    status: Mapped[ReservationStatus] = mapped_column(
        String(20),
        nullable=False,
        default=ReservationStatus.PENDING,
        index=True
    )

    reserver_name: Mapped[str] = mapped_column(String(50), nullable=False)
    primary_phone: Mapped[str] = mapped_column(String(20), nullable=False)
    secondary_phone: Mapped[str | None] = mapped_column(String(20), nullable=True)
    pet_name: Mapped[str] = mapped_column(String(50), nullable=False)
    pet_birth_year: Mapped[int | None] = mapped_column(Integer, nullable=True)
    pet_species: Mapped[str | None] = mapped_column(String(30), nullable=True)
    pet_gender: Mapped[str | None] = mapped_column(String(10), nullable=True)
    memo: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        nullable=False,
        server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        nullable=False,
        server_default=func.now(),
        onupdate=func.now()
    )


class HospitalReservation(ReserverDetailsMixin, Base):
    """A booking of one doctor for one slot."""

    __tablename__ = "hospital_reservations"

    kind = ReservationKind.HOSPITAL

    doctor_id: Mapped[UUID] = mapped_column(
        PgUUID(as_uuid=True),
        ForeignKey("doctors.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    appointment_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)

    __table_args__ = (
        Index(
            "uq_hospital_reservation_active_slot",
            "doctor_id",
            "appointment_at",
            unique=True,
            postgresql_where=text(_ACTIVE_SQL),
            sqlite_where=text(_ACTIVE_SQL),
        ),
        CheckConstraint("length(reserver_name) > 0", name="ck_hospital_reserver_name_not_empty"),
    )

    def __repr__(self) -> str:
        return (
            f"<HospitalReservation(id={self.id}, doctor_id={self.doctor_id}, "
            f"appointment_at={self.appointment_at}, status={self.status})>"
        )


class HotelReservation(ReserverDetailsMixin, Base):
    """A stay at a hotel venue over a date range."""

    __tablename__ = "hotel_reservations"

    kind = ReservationKind.HOTEL

    check_in: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    check_out: Mapped[date] = mapped_column(Date, nullable=False, index=True)

    __table_args__ = (
        CheckConstraint("check_out > check_in", name="ck_hotel_check_out_after_check_in"),
        CheckConstraint("length(reserver_name) > 0", name="ck_hotel_reserver_name_not_empty"),
        Index("ix_hotel_reservation_venue_range", "venue_id", "check_in", "check_out"),
    )

    def __repr__(self) -> str:
        return (
            f"<HotelReservation(id={self.id}, venue_id={self.venue_id}, "
            f"check_in={self.check_in}, check_out={self.check_out}, status={self.status})>"
        )

"""Reservation reminder job model."""

from datetime import datetime
from enum import Enum

from sqlalchemy import DateTime, Index, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from ..core.database import Base


class ReminderKind(str, Enum):
    """How long before the visit the reminder fires."""
    REMIND_24H = "REMIND_24H"
    REMIND_3H = "REMIND_3H"


class ReminderStatus(str, Enum):
    """Reminder job status enumeration."""
    PENDING = "PENDING"
    CANCELLED = "CANCELLED"
    SENT = "SENT"
    FAILED = "FAILED"


class ReservationReminder(Base):
    """
    A time-triggered notification for one reservation.

    ``reservation_id`` is a weak reference: jobs outlive the reservation row
    so that cancelled and sent jobs remain as an audit trail.
    """

    __tablename__ = "reservation_reminders"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    reservation_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    member_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    service_kind: Mapped[str] = mapped_column(String(20), nullable=False)
    kind: Mapped[ReminderKind] = mapped_column(String(20), nullable=False)
    status: Mapped[ReminderStatus] = mapped_column(
        String(20),
        nullable=False,
        default=ReminderStatus.PENDING
    )
    fire_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    dedupe_key: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    link_url: Mapped[str | None] = mapped_column(String(300), nullable=True)

    # Sweep lease
    lease_owner: Mapped[str | None] = mapped_column(String(100), nullable=True)
    leased_until: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    dispatched_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        nullable=False,
        server_default=func.now()
    )

    __table_args__ = (
        Index("ix_reservation_reminders_status_fire_at", "status", "fire_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<ReservationReminder(id={self.id}, reservation_id='{self.reservation_id}', "
            f"kind={self.kind}, status={self.status}, fire_at={self.fire_at})>"
        )

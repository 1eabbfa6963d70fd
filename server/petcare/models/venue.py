"""Venue, Doctor and closed clinic slot model definitions."""

from datetime import date, datetime
from typing import List
from uuid import UUID, uuid4

from sqlalchemy import Boolean, CheckConstraint, Date, DateTime, Float, ForeignKey, Index, Integer, String, func
from sqlalchemy.dialects.postgresql import UUID as PgUUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.database import Base


class Venue(Base):
    """A clinic or pet hotel; the capacity unit for hotel stays."""

    __tablename__ = "venues"

    id: Mapped[UUID] = mapped_column(
        PgUUID(as_uuid=True),
        primary_key=True,
        default=uuid4,
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    address: Mapped[str | None] = mapped_column(String(255), nullable=True)
    latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    longitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    hotel_capacity: Mapped[int] = mapped_column(Integer, nullable=False, default=15)

    created_at: Mapped[datetime] = mapped_column(
        nullable=False,
        server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint("hotel_capacity >= 0", name="ck_venue_hotel_capacity_non_negative"),
        CheckConstraint("length(name) > 0", name="ck_venue_name_not_empty"),
    )

    doctors: Mapped[List["Doctor"]] = relationship(
        "Doctor",
        back_populates="venue",
        cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<Venue(id={self.id}, name='{self.name}', active={self.active})>"


class Doctor(Base):
    """A doctor at a venue; the unit of exclusive slot booking."""

    __tablename__ = "doctors"

    id: Mapped[UUID] = mapped_column(
        PgUUID(as_uuid=True),
        primary_key=True,
        default=uuid4,
    )

    venue_id: Mapped[UUID] = mapped_column(
        PgUUID(as_uuid=True),
        ForeignKey("venues.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(
        nullable=False,
        server_default=func.now()
    )

    venue: Mapped["Venue"] = relationship("Venue", back_populates="doctors")

    def __repr__(self) -> str:
        return f"<Doctor(id={self.id}, venue_id={self.venue_id}, name='{self.name}')>"


class HospitalClosedTime(Base):
    """A clinic slot an administrator has closed to bookings."""

    __tablename__ = "hospital_closed_times"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    venue_id: Mapped[UUID] = mapped_column(
        PgUUID(as_uuid=True),
        ForeignKey("venues.id", ondelete="CASCADE"),
        nullable=False
    )
    # NULL closes the slot for every doctor of the venue
    doctor_id: Mapped[UUID | None] = mapped_column(
        PgUUID(as_uuid=True),
        ForeignKey("doctors.id", ondelete="CASCADE"),
        nullable=True
    )

    day: Mapped[date] = mapped_column(Date, nullable=False)
    slot_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    reason: Mapped[str | None] = mapped_column(String(200), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        nullable=False,
        server_default=func.now()
    )

    __table_args__ = (
        Index("ix_hospital_closed_times_venue_day", "venue_id", "day"),
    )

    def __repr__(self) -> str:
        return (
            f"<HospitalClosedTime(id={self.id}, venue_id={self.venue_id}, "
            f"doctor_id={self.doctor_id}, slot_at={self.slot_at})>"
        )

"""Admission control for exclusive clinic slots and hotel capacity."""

import asyncio
import logging
import weakref
from contextlib import asynccontextmanager
from datetime import date, datetime, time, timedelta
from typing import AsyncIterator
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import acquire_transaction_lock
from ..core.exceptions import CapacityExceededError, SlotConflictError
from ..core.observability import metrics_collector
from ..models.reservation import (
    ACTIVE_STATUSES,
    HospitalReservation,
    HotelReservation,
    ReservationKind,
)

logger = logging.getLogger(__name__)

_ACTIVE = [s.value for s in ACTIVE_STATUSES]


class KeyedLocks:
    """Process-wide asyncio locks, one per key, released when unused."""

    def __init__(self):
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        async with lock:
            yield


admission_locks = KeyedLocks()


def slot_key(doctor_id: UUID | str, appointment_at: datetime) -> str:
    return f"slot:{doctor_id}:{appointment_at.isoformat()}"


def venue_key(venue_id: UUID | str) -> str:
    return f"venue:{venue_id}"


def ranges_overlap(a_start: date, a_end: date, b_start: date, b_end: date) -> bool:
    """Inclusive overlap test used for hotel stays."""
    return a_start <= b_end and a_end >= b_start


class AvailabilityLedger:
    """
    Decides whether a reservation may be admitted and records it atomically.

    The check and the insert run under one serializing lock per slot or
    venue: an in-process asyncio lock plus, on PostgreSQL, a transaction
    scoped advisory lock so separate processes serialize as well. The lock
    is held until the insert commits.
    """

    def __init__(self, db: AsyncSession, locks: KeyedLocks | None = None):
        self.db = db
        self.locks = locks or admission_locks

    async def is_slot_taken(self, doctor_id: UUID, appointment_at: datetime) -> bool:
        result = await self.db.execute(
            select(HospitalReservation.id)
            .where(
                HospitalReservation.doctor_id == doctor_id,
                HospitalReservation.appointment_at == appointment_at,
                HospitalReservation.status.in_(_ACTIVE),
            )
            .limit(1)
        )
        return result.scalar_one_or_none() is not None

    async def count_overlapping(self, venue_id: UUID, check_in: date, check_out: date) -> int:
        """Active stays at ``venue_id`` overlapping [check_in, check_out]."""
        count = await self.db.scalar(
            select(func.count())
            .select_from(HotelReservation)
            .where(
                HotelReservation.venue_id == venue_id,
                HotelReservation.status.in_(_ACTIVE),
                HotelReservation.check_in <= check_out,
                HotelReservation.check_out >= check_in,
            )
        )
        return count or 0

    async def booked_slots(self, doctor_id: UUID, day: date) -> list[datetime]:
        """Start times of a doctor's active reservations on ``day``, ascending."""
        start = datetime.combine(day, time.min)
        result = await self.db.execute(
            select(HospitalReservation.appointment_at)
            .where(
                HospitalReservation.doctor_id == doctor_id,
                HospitalReservation.status.in_(_ACTIVE),
                HospitalReservation.appointment_at >= start,
                HospitalReservation.appointment_at < start + timedelta(days=1),
            )
            .order_by(HospitalReservation.appointment_at)
        )
        return list(result.scalars().all())

    async def admit_exclusive_slot(self, reservation: HospitalReservation) -> HospitalReservation:
        """
        Insert a hospital reservation if its doctor and slot are free.

        Args:
            reservation: Unsaved reservation with doctor_id and appointment_at set

        Returns:
            The committed reservation

        Raises:
            SlotConflictError: If an active reservation already holds the slot
        """
        key = slot_key(reservation.doctor_id, reservation.appointment_at)

        async with self.locks.hold(key):
            try:
                await acquire_transaction_lock(self.db, key)
                if await self.is_slot_taken(reservation.doctor_id, reservation.appointment_at):
                    raise self._slot_conflict(reservation)
                self.db.add(reservation)
                await self.db.commit()
            except IntegrityError as e:
                await self.db.rollback()
                raise self._slot_conflict(reservation) from e
            except Exception:
                await self.db.rollback()
                raise

        await self.db.refresh(reservation)
        metrics_collector.record_reservation_created(ReservationKind.HOSPITAL.value)
        logger.info(
            "Hospital slot admitted",
            extra={
                "reservation_id": str(reservation.id),
                "doctor_id": str(reservation.doctor_id),
                "appointment_at": reservation.appointment_at.isoformat(),
            }
        )
        return reservation

    async def admit_range_capacity(
        self, reservation: HotelReservation, capacity: int
    ) -> HotelReservation:
        """
        Insert a hotel reservation if the venue has room over its whole range.

        Args:
            reservation: Unsaved reservation with venue_id, check_in and check_out set
            capacity: Maximum concurrent active stays at the venue

        Returns:
            The committed reservation

        Raises:
            CapacityExceededError: If ``capacity`` overlapping stays are already active
        """
        key = venue_key(reservation.venue_id)

        async with self.locks.hold(key):
            try:
                await acquire_transaction_lock(self.db, key)
                active = await self.count_overlapping(
                    reservation.venue_id, reservation.check_in, reservation.check_out
                )
                if active >= capacity:
                    metrics_collector.record_reservation_conflict(
                        ReservationKind.HOTEL.value, "CAPACITY_EXCEEDED"
                    )
                    logger.warning(
                        "Hotel capacity exceeded",
                        extra={
                            "venue_id": str(reservation.venue_id),
                            "check_in": reservation.check_in.isoformat(),
                            "check_out": reservation.check_out.isoformat(),
                            "active": active,
                            "capacity": capacity,
                        }
                    )
                    raise CapacityExceededError(str(reservation.venue_id), active, capacity)
                self.db.add(reservation)
                await self.db.commit()
            except Exception:
                await self.db.rollback()
                raise

        await self.db.refresh(reservation)
        metrics_collector.record_reservation_created(ReservationKind.HOTEL.value)
        logger.info(
            "Hotel stay admitted",
            extra={
                "reservation_id": str(reservation.id),
                "venue_id": str(reservation.venue_id),
                "check_in": reservation.check_in.isoformat(),
                "check_out": reservation.check_out.isoformat(),
            }
        )
        return reservation

    def _slot_conflict(self, reservation: HospitalReservation) -> SlotConflictError:
        metrics_collector.record_reservation_conflict(ReservationKind.HOSPITAL.value, "SLOT_CONFLICT")
        logger.warning(
            "Hospital slot already taken",
            extra={
                "doctor_id": str(reservation.doctor_id),
                "appointment_at": reservation.appointment_at.isoformat(),
            }
        )
        return SlotConflictError(str(reservation.doctor_id), reservation.appointment_at)

"""Reminder scheduling and the lease-guarded dispatch sweep."""

import hashlib
import logging
import os
import socket
from dataclasses import dataclass
from datetime import datetime, timedelta
from uuid import uuid4

from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.clock import Clock, local_now
from ..core.config import settings
from ..core.observability import metrics_collector
from ..models.notification import TargetType
from ..models.reminder import ReminderKind, ReminderStatus, ReservationReminder
from ..models.reservation import ReservationKind
from .live_channels import LiveChannelRegistry
from .notification_service import NotificationCommand, NotificationHub
from .reservation_notices import REMINDER_TYPES, reminder_title

logger = logging.getLogger(__name__)

REMINDER_OFFSETS: dict[ReminderKind, timedelta] = {
    ReminderKind.REMIND_24H: timedelta(hours=24),
    ReminderKind.REMIND_3H: timedelta(hours=3),
}


def make_dedupe_key(reservation_id: str, kind: ReminderKind | str) -> str:
    """Stable key making (reservation, kind) unique."""
    raw = f"{reservation_id}:{ReminderKind(kind).value}"
    return hashlib.sha256(raw.encode()).hexdigest()


def reminder_fire_times(visit_at: datetime) -> dict[ReminderKind, datetime]:
    return {kind: visit_at - offset for kind, offset in REMINDER_OFFSETS.items()}


def default_worker_id() -> str:
    return f"{socket.gethostname()}:{os.getpid()}:{uuid4().hex[:8]}"


@dataclass
class SweepResult:
    """Outcome counts of one sweep."""

    due: int = 0
    sent: int = 0
    failed: int = 0
    skipped: int = 0


class ReminderScheduler:
    """Creates, cancels and dispatches reservation reminders."""

    def __init__(
        self,
        db: AsyncSession,
        clock: Clock = local_now,
        registry: LiveChannelRegistry | None = None,
        worker_id: str | None = None,
        lease_seconds: int | None = None,
    ):
        self.db = db
        self.clock = clock
        self.registry = registry
        self.worker_id = worker_id or default_worker_id()
        self.lease = timedelta(seconds=lease_seconds or settings.reminder_lease_seconds)

    async def get_by_dedupe_key(self, dedupe_key: str) -> ReservationReminder | None:
        result = await self.db.execute(
            select(ReservationReminder).where(ReservationReminder.dedupe_key == dedupe_key)
        )
        return result.scalar_one_or_none()

    async def schedule(
        self,
        reservation_id: str,
        member_id: str,
        kind: ReminderKind,
        fire_at: datetime,
        service_kind: ReservationKind,
        title: str,
        link_url: str | None = None,
    ) -> ReservationReminder:
        """
        Create a PENDING reminder unless one already exists for (reservation, kind).

        Returns:
            The new reminder, or the existing one for the same dedupe key
        """
        dedupe_key = make_dedupe_key(reservation_id, kind)
        existing = await self.get_by_dedupe_key(dedupe_key)
        if existing is not None:
            logger.debug(
                "Reminder already scheduled",
                extra={"reservation_id": reservation_id, "kind": ReminderKind(kind).value}
            )
            return existing

        reminder = ReservationReminder(
            reservation_id=reservation_id,
            member_id=member_id,
            service_kind=ReservationKind(service_kind).value,
            kind=ReminderKind(kind).value,
            status=ReminderStatus.PENDING.value,
            fire_at=fire_at,
            dedupe_key=dedupe_key,
            title=title[:200],
            link_url=link_url,
            created_at=self.clock(),
        )
        self.db.add(reminder)
        try:
            await self.db.commit()
        except IntegrityError:
            # Lost a race on the dedupe key
            await self.db.rollback()
            existing = await self.get_by_dedupe_key(dedupe_key)
            if existing is None:
                raise
            return existing

        await self.db.refresh(reminder)
        logger.info(
            "Reminder scheduled",
            extra={
                "reminder_id": reminder.id,
                "reservation_id": reservation_id,
                "kind": reminder.kind,
                "fire_at": fire_at.isoformat(),
            }
        )
        return reminder

    async def schedule_for_visit(
        self,
        reservation_id: str,
        member_id: str,
        visit_at: datetime,
        service_kind: ReservationKind,
        venue_name: str | None = None,
        link_url: str | None = None,
    ) -> list[ReservationReminder]:
        """
        Schedule the 24h and 3h reminders of a visit.

        Reminders whose fire time has already passed are not created.
        """
        now = self.clock()
        scheduled = []
        for kind, fire_at in reminder_fire_times(visit_at).items():
            if fire_at <= now:
                logger.debug(
                    "Skipping reminder already in the past",
                    extra={
                        "reservation_id": reservation_id,
                        "kind": kind.value,
                        "fire_at": fire_at.isoformat(),
                    }
                )
                continue
            scheduled.append(
                await self.schedule(
                    reservation_id=reservation_id,
                    member_id=member_id,
                    kind=kind,
                    fire_at=fire_at,
                    service_kind=service_kind,
                    title=reminder_title(service_kind, kind, visit_at, venue_name),
                    link_url=link_url,
                )
            )
        return scheduled

    async def cancel_all_pending(self, reservation_id: str) -> int:
        """
        Flip every PENDING, unleased reminder of a reservation to CANCELLED.

        Sent, failed and in-flight reminders are left alone.
        """
        now = self.clock()
        result = await self.db.execute(
            update(ReservationReminder)
            .where(
                ReservationReminder.reservation_id == reservation_id,
                ReservationReminder.status == ReminderStatus.PENDING.value,
                or_(
                    ReservationReminder.leased_until.is_(None),
                    ReservationReminder.leased_until < now,
                ),
            )
            .values(status=ReminderStatus.CANCELLED.value)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()

        cancelled = result.rowcount or 0
        if cancelled:
            logger.info(
                "Pending reminders cancelled",
                extra={"reservation_id": reservation_id, "cancelled": cancelled}
            )
        return cancelled

    async def list_for_reservation(self, reservation_id: str) -> list[ReservationReminder]:
        result = await self.db.execute(
            select(ReservationReminder)
            .where(ReservationReminder.reservation_id == reservation_id)
            .order_by(ReservationReminder.fire_at, ReservationReminder.id)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def _due_ids(self, now: datetime, limit: int) -> list[int]:
        result = await self.db.execute(
            select(ReservationReminder.id)
            .where(
                ReservationReminder.status == ReminderStatus.PENDING.value,
                ReservationReminder.fire_at <= now,
                or_(
                    ReservationReminder.leased_until.is_(None),
                    ReservationReminder.leased_until < now,
                ),
            )
            .order_by(ReservationReminder.fire_at, ReservationReminder.id)
            .limit(limit)
        )
        ids = list(result.scalars().all())
        # End the read before leasing so concurrent sweepers do not deadlock
        await self.db.commit()
        return ids

    async def _lease(self, reminder_id: int, now: datetime) -> bool:
        """Claim a reminder for this worker. Only one concurrent caller can win."""
        result = await self.db.execute(
            update(ReservationReminder)
            .where(
                ReservationReminder.id == reminder_id,
                ReservationReminder.status == ReminderStatus.PENDING.value,
                or_(
                    ReservationReminder.leased_until.is_(None),
                    ReservationReminder.leased_until < now,
                ),
            )
            .values(lease_owner=self.worker_id, leased_until=now + self.lease)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        return bool(result.rowcount)

    async def _finish(self, reminder_id: int, status: ReminderStatus, error: str | None = None) -> None:
        await self.db.execute(
            update(ReservationReminder)
            .where(
                ReservationReminder.id == reminder_id,
                ReservationReminder.status == ReminderStatus.PENDING.value,
                ReservationReminder.lease_owner == self.worker_id,
            )
            .values(
                status=status.value,
                dispatched_at=self.clock(),
                last_error=error[:1000] if error else None,
            )
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()

    async def _dispatch(self, reminder: ReservationReminder) -> None:
        hub = NotificationHub(self.db, registry=self.registry, clock=self.clock)
        await hub.create_and_push(
            NotificationCommand(
                receiver_id=reminder.member_id,
                type=REMINDER_TYPES[ReminderKind(reminder.kind)],
                title=reminder.title,
                message=None,
                target_type=TargetType.RESERVATION,
                target_id=reminder.reservation_id,
                link_url=reminder.link_url,
            )
        )

    async def sweep(self, now: datetime | None = None, limit: int | None = None) -> SweepResult:
        """
        Dispatch every due PENDING reminder once.

        Each reminder is leased with a conditional update before dispatch, so
        concurrent sweepers never send the same reminder twice. A failing
        reminder is marked FAILED and the sweep moves on; failed reminders are
        not retried.

        Args:
            now: Sweep time; defaults to the scheduler clock
            limit: Maximum reminders to process

        Returns:
            SweepResult with outcome counts
        """
        now = now or self.clock()
        outcome = SweepResult()

        for reminder_id in await self._due_ids(now, limit or settings.reminder_batch_size):
            outcome.due += 1
            if not await self._lease(reminder_id, now):
                outcome.skipped += 1
                continue

            reminder = await self.db.get(ReservationReminder, reminder_id, populate_existing=True)
            if reminder is None or reminder.status != ReminderStatus.PENDING.value:
                outcome.skipped += 1
                continue

            reservation_id = reminder.reservation_id
            try:
                await self._dispatch(reminder)
            except Exception as e:
                await self.db.rollback()
                logger.error(
                    "Reminder dispatch failed",
                    exc_info=True,
                    extra={
                        "reminder_id": reminder_id,
                        "reservation_id": reservation_id,
                        "worker": self.worker_id,
                    }
                )
                await self._finish(reminder_id, ReminderStatus.FAILED, error=str(e) or type(e).__name__)
                outcome.failed += 1
            else:
                await self._finish(reminder_id, ReminderStatus.SENT)
                outcome.sent += 1

        metrics_collector.record_reminder("sent", outcome.sent)
        metrics_collector.record_reminder("failed", outcome.failed)
        metrics_collector.record_reminder("skipped", outcome.skipped)
        if outcome.due:
            logger.info(
                "Reminder sweep finished",
                extra={
                    "worker": self.worker_id,
                    "due": outcome.due,
                    "sent": outcome.sent,
                    "failed": outcome.failed,
                    "skipped": outcome.skipped,
                }
            )
        return outcome

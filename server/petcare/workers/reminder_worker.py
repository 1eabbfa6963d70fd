"""Background worker that dispatches due reservation reminders."""

import logging

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..core.config import settings
from ..core.database import async_session_factory
from ..services.live_channels import LiveChannelRegistry
from ..services.reminder_service import ReminderScheduler, SweepResult, default_worker_id
from .base import BaseWorker

logger = logging.getLogger(__name__)


class ReminderSweepWorker(BaseWorker):
    """
    Periodically sweeps due PENDING reminders and sends them.

    Several instances (in one process or many) may run at once; the
    scheduler's lease makes sure each reminder goes out once.
    """

    def __init__(
        self,
        interval_seconds: float | None = None,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        registry: LiveChannelRegistry | None = None,
        worker_id: str | None = None,
    ):
        super().__init__(
            name="ReminderSweep",
            interval_seconds=interval_seconds or settings.reminder_sweep_interval_seconds,
            initial_delay_seconds=min(15, interval_seconds or settings.reminder_sweep_interval_seconds),
        )
        self.session_factory = session_factory or async_session_factory
        self.registry = registry
        self.worker_id = worker_id or default_worker_id()
        self.last_result: SweepResult | None = None

    async def process(self) -> None:
        async with self.session_factory() as db:
            try:
                scheduler = ReminderScheduler(db, registry=self.registry, worker_id=self.worker_id)
                self.last_result = await scheduler.sweep()
            except Exception:
                await db.rollback()
                raise

        if self.last_result.due:
            logger.info(
                f"Swept {self.last_result.due} due reminders",
                extra={
                    "worker": self.name,
                    "worker_id": self.worker_id,
                    "sent": self.last_result.sent,
                    "failed": self.last_result.failed,
                    "skipped": self.last_result.skipped,
                }
            )

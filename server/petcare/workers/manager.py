"""Worker manager for coordinating background tasks."""

import asyncio
import logging
from typing import Dict

from ..core.config import settings
from .base import BaseWorker
from .reminder_worker import ReminderSweepWorker

logger = logging.getLogger(__name__)


class WorkerManager:
    """Starts, stops and reports on the application's background workers."""

    def __init__(self):
        self.workers: Dict[str, BaseWorker] = {}
        self._setup_workers()

    def _setup_workers(self) -> None:
        self.workers["reminder_sweep"] = ReminderSweepWorker(
            interval_seconds=settings.reminder_sweep_interval_seconds
        )
        logger.info(f"Initialized {len(self.workers)} workers")

    async def start_all(self) -> None:
        logger.info("Starting all workers")

        for name, worker in self.workers.items():
            try:
                await worker.start()
            except Exception as e:
                logger.error(f"Failed to start worker {name}: {e!s}", exc_info=True)

        logger.info(f"Started {len(self.workers)} workers")

    async def stop_all(self) -> None:
        """Stop all running workers gracefully."""
        logger.info("Stopping all workers")

        running = {name: w for name, w in self.workers.items() if w.running}
        results = await asyncio.gather(
            *(worker.stop() for worker in running.values()), return_exceptions=True
        )

        for name, result in zip(running, results):
            if isinstance(result, Exception):
                logger.error(f"Error stopping worker {name}: {result!s}")
            else:
                logger.info(f"Stopped worker: {name}")

        logger.info("All workers stopped")

    def get_worker(self, name: str) -> BaseWorker:
        """
        Raises:
            KeyError: If worker not found
        """
        return self.workers[name]

    def get_worker_status(self) -> Dict[str, bool]:
        return {name: worker.running for name, worker in self.workers.items()}


# Global worker manager instance
worker_manager = WorkerManager()

"""Base worker class for background tasks."""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from typing import Optional

logger = logging.getLogger(__name__)


class BaseWorker(ABC):
    """
    Abstract base class for background workers.

    Runs ``process`` on a fixed delay: the next iteration starts
    ``interval_seconds`` after the previous one began, or immediately if it
    overran. An iteration that raises is logged and the loop carries on.
    """

    def __init__(self, name: str, interval_seconds: float = 60, initial_delay_seconds: float = 0):
        """
        Initialize the worker.

        Args:
            name: Worker name for logging
            interval_seconds: How often to run the task
            initial_delay_seconds: Wait before the first iteration
        """
        self.name = name
        self.interval_seconds = interval_seconds
        self.initial_delay_seconds = initial_delay_seconds
        self.iterations = 0
        self._running = False
        self._task: Optional[asyncio.Task] = None

    @abstractmethod
    async def process(self) -> None:
        """Process one iteration of the background task."""

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        if self._running:
            logger.warning(f"{self.name} worker is already running")
            return

        self._running = True
        self._task = asyncio.create_task(self._run(), name=f"worker:{self.name}")
        logger.info(f"{self.name} worker started with {self.interval_seconds}s interval")

    async def stop(self) -> None:
        """Stop the worker gracefully."""
        if not self._running:
            logger.warning(f"{self.name} worker is not running")
            return

        self._running = False

        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        logger.info(f"{self.name} worker stopped")

    async def run_once(self) -> None:
        """Run a single iteration, logging instead of raising on failure."""
        started = time.monotonic()
        try:
            await self.process()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(
                f"{self.name} worker error: {e!s}",
                exc_info=True,
                extra={"worker": self.name}
            )
        finally:
            self.iterations += 1
            logger.debug(
                f"{self.name} worker iteration completed",
                extra={
                    "duration_seconds": round(time.monotonic() - started, 3),
                    "worker": self.name,
                }
            )

    async def _run(self) -> None:
        """Main worker loop."""
        logger.info(f"{self.name} worker loop started")

        try:
            if self.initial_delay_seconds:
                await asyncio.sleep(self.initial_delay_seconds)

            while self._running:
                started = time.monotonic()
                await self.run_once()
                sleep_time = max(0.0, self.interval_seconds - (time.monotonic() - started))
                await asyncio.sleep(sleep_time)
        except asyncio.CancelledError:
            logger.info(f"{self.name} worker loop cancelled")
            raise

"""Base worker class for periodic background tasks."""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from typing import Optional

logger = logging.getLogger(__name__)


class BaseWorker(ABC):
    """
    Runs ``process`` every ``interval_seconds`` until stopped.

    A failing iteration is logged and the loop carries on after the usual
    interval; only cancellation ends it.
    """

    def __init__(self, name: str, interval_seconds: int = 60):
        self.name = name
        self.interval_seconds = interval_seconds
        self._running = False
        self._task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self._running

    @abstractmethod
    async def process(self) -> None:
        """Process one iteration of the background task."""

    async def start(self) -> None:
        if self._running:
            logger.warning(f"{self.name} worker is already running")
            return

        self._running = True
        self._task = asyncio.create_task(self._run(), name=f"worker:{self.name}")
        logger.info(f"{self.name} worker started with {self.interval_seconds}s interval")

    async def stop(self) -> None:
        """Stop the worker and wait for the current iteration to be cancelled."""
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

    async def _run(self) -> None:
        logger.info(f"{self.name} worker loop started")

        while self._running:
            started = time.monotonic()
            try:
                await self.process()
            except asyncio.CancelledError:
                logger.info(f"{self.name} worker loop cancelled")
                raise
            except Exception as e:
                logger.error(
                    f"{self.name} worker error: {str(e)}",
                    exc_info=True,
                    extra={"worker": self.name}
                )
            else:
                logger.debug(
                    f"{self.name} worker iteration completed",
                    extra={
                        "duration_seconds": round(time.monotonic() - started, 3),
                        "worker": self.name,
                    }
                )

            await asyncio.sleep(max(0.0, self.interval_seconds - (time.monotonic() - started)))

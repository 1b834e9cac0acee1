"""Worker manager for coordinating background tasks."""

import asyncio
import logging
from typing import Dict

from .base import BaseWorker
from .reminder_worker import ReminderWorker

logger = logging.getLogger(__name__)


class WorkerManager:
    """Starts, stops and reports on the application's background workers."""

    def __init__(self, workers: Dict[str, BaseWorker] | None = None):
        self.workers: Dict[str, BaseWorker] = workers if workers is not None else self._default_workers()
        logger.info(f"Initialized {len(self.workers)} workers")

    @staticmethod
    def _default_workers() -> Dict[str, BaseWorker]:
        return {"reminder": ReminderWorker.from_settings()}

    async def start_all(self) -> None:
        for name, worker in self.workers.items():
            try:
                await worker.start()
            except Exception as e:
                logger.error(f"Failed to start worker {name}: {str(e)}", exc_info=True)

        logger.info(f"Started {len(self.workers)} workers")

    async def stop_all(self) -> None:
        """Stop all workers, logging (not raising) individual failures."""
        running = {name: worker for name, worker in self.workers.items() if worker.is_running}
        results = await asyncio.gather(
            *(worker.stop() for worker in running.values()),
            return_exceptions=True
        )

        for name, result in zip(running, results):
            if isinstance(result, Exception):
                logger.error(f"Error stopping worker {name}: {str(result)}")
            else:
                logger.info(f"Stopped worker: {name}")

    def get_worker(self, name: str) -> BaseWorker:
        """
        Get a specific worker by name.

        Raises:
            KeyError: If worker not found
        """
        return self.workers[name]

    def get_worker_status(self) -> Dict[str, bool]:
        return {name: worker.is_running for name, worker in self.workers.items()}


# Global worker manager instance
worker_manager = WorkerManager()

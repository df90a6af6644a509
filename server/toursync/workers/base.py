"""Base worker class for periodic background tasks."""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Optional

logger = logging.getLogger(__name__)


class BaseWorker(ABC):
    """
    Abstract base class for background workers.

    Subclasses implement :meth:`process`, which opens its own database
    session and may return a dict of counters for the iteration log.
    """

    def __init__(self, name: str, interval_seconds: int = 60):
        """
        Initialize the worker.

        Args:
            name: Worker name for logging
            interval_seconds: Seconds between the start of two iterations
        """
        self.name = name
        self.interval_seconds = interval_seconds
        self.iterations = 0
        self.last_run_at: Optional[datetime] = None
        self.last_error: Optional[str] = None
        self._running = False
        self._task: Optional[asyncio.Task] = None

    @abstractmethod
    async def process(self) -> Optional[dict[str, Any]]:
        """Process one iteration of the background task."""

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the worker."""
        if self._running:
            logger.warning(f"{self.name} worker is already running")
            return

        self._running = True
        self._task = asyncio.create_task(self._run())
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

        logger.info(f"{self.name} worker stopped")

    async def run_once(self) -> Optional[dict[str, Any]]:
        """Run a single iteration and record its outcome."""
        started = time.monotonic()
        self.last_run_at = datetime.utcnow()
        try:
            result = await self.process()
        except Exception as e:
            self.last_error = str(e)
            raise
        self.iterations += 1
        self.last_error = None

        if result:
            logger.info(
                f"{self.name} worker iteration completed",
                extra={
                    "duration_seconds": round(time.monotonic() - started, 3),
                    "worker": self.name,
                    **result,
                }
            )
        return result

    def status(self) -> dict[str, Any]:
        return {
            "running": self._running,
            "interval_seconds": self.interval_seconds,
            "iterations": self.iterations,
            "last_run_at": self.last_run_at.isoformat() if self.last_run_at else None,
            "last_error": self.last_error,
        }

    async def _run(self) -> None:
        """Main worker loop."""
        logger.info(f"{self.name} worker loop started")

        while self._running:
            started = time.monotonic()
            try:
                await self.run_once()
            except asyncio.CancelledError:
                logger.info(f"{self.name} worker loop cancelled")
                break
            except Exception as e:
                logger.error(
                    f"{self.name} worker error: {str(e)}",
                    exc_info=True,
                    extra={"worker": self.name}
                )

            sleep_time = max(0.0, self.interval_seconds - (time.monotonic() - started))
            try:
                await asyncio.sleep(sleep_time)
            except asyncio.CancelledError:
                logger.info(f"{self.name} worker loop cancelled")
                break

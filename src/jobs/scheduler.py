"""
SceneStack — Cleanup Scheduler

Runs AccountCleanupJob once at startup and then every CLEANUP_INTERVAL_HOURS
until SIGTERM/SIGINT. The lifecycle core never schedules itself; this loop
is the external trigger.
"""

from __future__ import annotations

import asyncio
import signal
from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.config import settings
from src.jobs.account_cleanup import AccountCleanupJob

logger = structlog.get_logger(__name__)


class CleanupScheduler:
    """Periodic driver for the account cleanup job."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        job: AccountCleanupJob | None = None,
        interval_seconds: float | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.job = job or AccountCleanupJob(session_factory)
        self.interval_seconds = (
            interval_seconds
            if interval_seconds is not None
            else settings.CLEANUP_INTERVAL_HOURS * 3600
        )
        self._shutdown_event = asyncio.Event()

    async def shutdown(self) -> None:
        """Signal graceful shutdown to the scheduler loop."""
        logger.info("cleanup_scheduler_shutdown_requested")
        self._shutdown_event.set()

    async def run(self) -> None:
        """Run the job, then sleep until the next window or shutdown."""
        logger.info("cleanup_scheduler_started", interval_seconds=self.interval_seconds)

        try:
            while not self._shutdown_event.is_set():
                try:
                    await self.job.run_once()
                except Exception as e:
                    logger.error(
                        "cleanup_scheduler_job_failed",
                        error=str(e),
                        error_type=type(e).__name__,
                    )

                try:
                    await asyncio.wait_for(
                        self._shutdown_event.wait(),
                        timeout=self.interval_seconds,
                    )
                except asyncio.TimeoutError:
                    # Expected: timeout means no shutdown signal, run again
                    continue
        except asyncio.CancelledError:
            logger.info("cleanup_scheduler_cancelled")
            raise
        finally:
            logger.info("cleanup_scheduler_stopped")


async def run_scheduler(session_factory: async_sessionmaker[AsyncSession]) -> None:
    """
    Run the cleanup scheduler with SIGTERM/SIGINT triggering shutdown.

    Args:
        session_factory: SQLAlchemy async session factory.
    """
    scheduler = CleanupScheduler(session_factory)

    def handle_signal(_signum: int, _frame: Any) -> None:
        """Called by SIGTERM/SIGINT."""
        logger.info("cleanup_scheduler_signal_received")
        asyncio.create_task(scheduler.shutdown())

    loop = asyncio.get_running_loop()

    try:
        loop.add_signal_handler(signal.SIGTERM, handle_signal, signal.SIGTERM, None)
        loop.add_signal_handler(signal.SIGINT, handle_signal, signal.SIGINT, None)
    except NotImplementedError:
        # Windows doesn't support add_signal_handler for all signals
        logger.warning("signal_handlers_not_supported_on_platform")

    await scheduler.run()

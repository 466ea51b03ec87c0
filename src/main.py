"""
SceneStack — Account Cleanup Worker

Finalizes account deletions whose grace period has elapsed. By default runs
forever, one cleanup pass every CLEANUP_INTERVAL_HOURS; --once runs a single
pass and exits (for cron / Kubernetes CronJob deployments).

Run via:
    python -m src.main
    python -m src.main --once
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import Any

import structlog
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from src.config import settings
from src.jobs.account_cleanup import AccountCleanupJob
from src.jobs.scheduler import run_scheduler


# ---------------------------------------------------------------------------
# Structlog Configuration
# ---------------------------------------------------------------------------


def configure_logging(log_level: str = "INFO") -> None:
    """
    Route structlog through stdlib logging and render JSON lines.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR).
    """
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper()),
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


# ---------------------------------------------------------------------------
# Database Setup
# ---------------------------------------------------------------------------


def create_db_engine(database_url: str | None = None) -> tuple[Any, async_sessionmaker[AsyncSession]]:
    """
    Build the async engine and the session factory handed to every service.

    Services commit and close their own sessions, then return model
    instances to callers, so expire_on_commit must stay off.

    Returns:
        (engine, session_factory) tuple.
    """
    engine = create_async_engine(
        database_url or settings.DATABASE_URL,
        echo=False,
        pool_pre_ping=True,
    )
    session_factory = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
    return engine, session_factory


async def check_database(session_factory: async_sessionmaker[AsyncSession]) -> None:
    """Fail fast when the database is unreachable."""
    async with session_factory() as session:
        await session.execute(text("SELECT 1"))


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="SceneStack account cleanup worker.")
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single cleanup pass and exit.",
    )
    return parser.parse_args(argv)


# ---------------------------------------------------------------------------
# Worker Startup
# ---------------------------------------------------------------------------


async def main(argv: list[str] | None = None) -> None:
    """
    Worker entrypoint.

    1. Configure logging
    2. Create the engine and session factory
    3. Health check
    4. Single pass (--once) or the scheduler loop until SIGTERM/SIGINT
    """
    args = parse_args(argv)
    configure_logging(log_level=settings.LOG_LEVEL)
    logger = structlog.get_logger(__name__)

    logger.info(
        "cleanup_worker_starting",
        mode="once" if args.once else "loop",
        grace_period_days=settings.DELETION_GRACE_PERIOD_DAYS,
        cleanup_interval_hours=settings.CLEANUP_INTERVAL_HOURS,
    )

    engine, session_factory = create_db_engine()

    try:
        await check_database(session_factory)
        logger.info("database_health_check_passed")

        if args.once:
            result = await AccountCleanupJob(session_factory).run_once()
            logger.info("cleanup_worker_single_pass_done", **result._asdict())
        else:
            await run_scheduler(session_factory)
    except Exception as e:
        logger.error(
            "cleanup_worker_failed",
            error=str(e),
            error_type=type(e).__name__,
        )
        raise
    finally:
        await engine.dispose()
        logger.info("cleanup_worker_stopped")


# ---------------------------------------------------------------------------
# CLI Entry
# ---------------------------------------------------------------------------


if __name__ == "__main__":
    asyncio.run(main())

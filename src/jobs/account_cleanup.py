"""
SceneStack — Account Cleanup Job

Cron-style driver for the end of the deletion grace period. For each account
in pending_deletion whose countdown anchor is at least
DELETION_GRACE_PERIOD_DAYS old:

1. run the deferred disposition executor (transfer/delete owned groups)
2. finalize the deletion (drop remaining memberships, mark deleted)

Accounts that were only deactivated (no deletion request) are never touched.
A failure on one account is logged and the batch moves on; that account is
picked up again on the next run.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta
from typing import NamedTuple

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.accounts.executor import DeferredDispositionExecutor
from src.accounts.lifecycle import AccountLifecycle
from src.config import AccountStatus, settings
from src.models.user import User
from src.utils.clock import utcnow

logger = structlog.get_logger(__name__)


class CleanupResult(NamedTuple):
    candidates: int
    deleted: int
    failed: int


class AccountCleanupJob:
    """Finalizes deletions whose grace period has elapsed."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        lifecycle: AccountLifecycle | None = None,
        executor: DeferredDispositionExecutor | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.lifecycle = lifecycle or AccountLifecycle(session_factory)
        self.executor = executor or DeferredDispositionExecutor(session_factory)

    async def find_due_accounts(self, reference_time: datetime) -> list[uuid.UUID]:
        cutoff = reference_time - timedelta(days=settings.DELETION_GRACE_PERIOD_DAYS)
        async with self.session_factory() as session:
            result = await session.execute(
                select(User.id).where(
                    User.account_status == AccountStatus.PENDING_DELETION,
                    User.deletion_requested_at.isnot(None),
                    User.deletion_requested_at <= cutoff,
                )
            )
            return list(result.scalars().all())

    async def run_once(self, reference_time: datetime | None = None) -> CleanupResult:
        now = reference_time or utcnow()
        due = await self.find_due_accounts(now)
        logger.info("account_cleanup_started", candidates=len(due), cutoff_days=settings.DELETION_GRACE_PERIOD_DAYS)

        deleted = 0
        failed = 0
        for user_id in due:
            try:
                report = await self.executor.run(user_id)
                if report.already_consumed:
                    logger.info("account_cleanup_batch_consumed_elsewhere", user_id=str(user_id))
                await self.lifecycle.finalize_deletion(user_id, reference_time=now)
                deleted += 1
            except Exception as exc:
                failed += 1
                logger.error(
                    "account_cleanup_user_failed",
                    user_id=str(user_id),
                    error=str(exc),
                    error_type=type(exc).__name__,
                )

        logger.info("account_cleanup_completed", candidates=len(due), deleted=deleted, failed=failed)
        return CleanupResult(candidates=len(due), deleted=deleted, failed=failed)

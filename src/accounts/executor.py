"""
SceneStack — Deferred Disposition Executor

Applies a user's stored group directives some time after they were planned
(triggered externally by the cleanup job, or the owner's next authenticated
action). Membership and account state may have changed since planning, so
every directive is re-validated first:

Delete(g):
    g missing / already deleted / no longer ours → skip
    otherwise                                    → soft-delete g
Transfer(g, t):
    g missing / already deleted / no longer ours → skip
    t no longer a member of g                    → fallback: delete g
    t deleted or deactivated                     → fallback: delete g
    otherwise → t becomes owner (CREATOR role), old owner's membership removed

Each directive is independent; a fallback never stops the rest. The stored
list is cleared in the same transaction, so a batch is consumed exactly once.

Concurrency: users.row_version is the mapper's version column. If another
run consumed the batch first, our UPDATE matches no row, SQLAlchemy raises
StaleDataError and the whole transaction is rolled back. Any other
persistence failure also rolls back: nothing is cleared and the batch stays
pending for a later retry.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum
from typing import NamedTuple

import structlog
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from src.accounts.directives import DeleteDirective, Directive, TransferDirective, load_directives
from src.config import GroupMemberAction, GroupRole
from src.errors import CorruptDirectivesError, NotFoundError
from src.models.group import Group, GroupMember, GroupMemberHistory
from src.models.user import User
from src.utils.clock import utcnow

logger = structlog.get_logger(__name__)


class DispositionOutcome(str, Enum):
    """What actually happened to one directive's group."""
    DELETED = "deleted"
    TRANSFERRED = "transferred"
    SKIPPED_MISSING_GROUP = "skipped_missing_group"
    SKIPPED_NOT_OWNER = "skipped_not_owner"
    FALLBACK_DELETED_NOT_MEMBER = "fallback_deleted_not_member"
    FALLBACK_DELETED_INACTIVE_TARGET = "fallback_deleted_inactive_target"


class DirectiveResult(NamedTuple):
    group_id: uuid.UUID
    outcome: DispositionOutcome
    target_user_id: uuid.UUID | None = None


class DispositionReport(NamedTuple):
    user_id: uuid.UUID
    results: list[DirectiveResult]
    already_consumed: bool = False

    @property
    def is_noop(self) -> bool:
        return not self.results


class DeferredDispositionExecutor:
    """Re-validates and executes a user's pending group directives."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory

    async def run(self, user_id: uuid.UUID) -> DispositionReport:
        """
        Execute and clear the user's pending directives in one transaction.

        Safe to call repeatedly: an empty list is a no-op.

        Raises:
            NotFoundError: user does not exist.
            CorruptDirectivesError: the stored list cannot be parsed; nothing
                is applied and the batch remains pending.
            SQLAlchemyError: persistence failed; the batch remains pending.
        """
        async with self.session_factory() as session:
            user = await session.get(User, user_id)
            if user is None:
                raise NotFoundError("user", user_id)

            try:
                results = await self.apply(session, user)
                if not results:
                    return DispositionReport(user_id=user_id, results=[])
                await session.commit()
            except StaleDataError:
                await session.rollback()
                logger.warning(
                    "disposition_batch_already_consumed",
                    user_id=str(user_id),
                    source="executor",
                )
                return DispositionReport(user_id=user_id, results=[], already_consumed=True)
            except SQLAlchemyError as exc:
                await session.rollback()
                logger.error(
                    "disposition_batch_persist_failed",
                    user_id=str(user_id),
                    error=str(exc),
                    source="executor",
                )
                raise

        logger.info(
            "disposition_batch_executed",
            user_id=str(user_id),
            total=len(results),
            outcomes=[result.outcome.value for result in results],
            source="executor",
        )
        return DispositionReport(user_id=user_id, results=results)

    async def apply(self, session: AsyncSession, user: User) -> list[DirectiveResult]:
        """
        Process every stored directive inside the caller's transaction and
        clear the list. The caller commits.
        """
        try:
            directives = load_directives(user.pending_group_actions)
        except ValidationError as exc:
            logger.error(
                "disposition_batch_unreadable",
                user_id=str(user.id),
                error_count=exc.error_count(),
                source="executor",
            )
            raise CorruptDirectivesError(user.id, exc.error_count()) from exc
        if not directives:
            logger.debug("disposition_batch_empty", user_id=str(user.id), source="executor")
            return []

        now = utcnow()
        results: list[DirectiveResult] = []
        for directive in directives:
            results.append(await self._execute_one(session, user, directive, now))

        user.pending_group_actions = None
        return results

    async def _execute_one(
        self,
        session: AsyncSession,
        user: User,
        directive: Directive,
        now: datetime,
    ) -> DirectiveResult:
        group = await session.get(Group, directive.group_id)
        if group is None or group.is_deleted:
            return self._record(user, directive, DispositionOutcome.SKIPPED_MISSING_GROUP)
        if group.created_by_id != user.id:
            return self._record(user, directive, DispositionOutcome.SKIPPED_NOT_OWNER)

        if isinstance(directive, DeleteDirective):
            self._soft_delete(group, now)
            return self._record(user, directive, DispositionOutcome.DELETED)

        outcome = await self._revalidate_transfer(session, directive)
        if outcome is not None:
            self._soft_delete(group, now)
            return self._record(user, directive, outcome)

        await self._transfer_ownership(session, group, user.id, directive.target_user_id)
        return self._record(user, directive, DispositionOutcome.TRANSFERRED)

    async def _revalidate_transfer(
        self,
        session: AsyncSession,
        directive: TransferDirective,
    ) -> DispositionOutcome | None:
        """Returns the fallback outcome when the transfer can no longer be honored."""
        membership = await session.get(GroupMember, (directive.group_id, directive.target_user_id))
        if membership is None:
            return DispositionOutcome.FALLBACK_DELETED_NOT_MEMBER

        target = await session.get(User, directive.target_user_id)
        if target is None or target.is_deleted or target.is_deactivated:
            return DispositionOutcome.FALLBACK_DELETED_INACTIVE_TARGET

        return None

    @staticmethod
    def _soft_delete(group: Group, now: datetime) -> None:
        group.is_deleted = True
        group.deleted_at = now

    async def _transfer_ownership(
        self,
        session: AsyncSession,
        group: Group,
        old_owner_id: uuid.UUID,
        new_owner_id: uuid.UUID,
    ) -> None:
        new_membership = await session.get(GroupMember, (group.id, new_owner_id))
        previous_role = new_membership.role

        group.created_by_id = new_owner_id
        new_membership.role = GroupRole.CREATOR
        session.add(
            GroupMemberHistory(
                group_id=group.id,
                user_id=new_owner_id,
                action=GroupMemberAction.ROLE_CHANGED,
                actor_id=None,
                previous_role=previous_role,
                new_role=GroupRole.CREATOR,
            )
        )

        old_membership = await session.get(GroupMember, (group.id, old_owner_id))
        if old_membership is not None:
            await session.delete(old_membership)
            session.add(
                GroupMemberHistory(
                    group_id=group.id,
                    user_id=old_owner_id,
                    action=GroupMemberAction.REMOVED,
                    actor_id=None,
                    previous_role=old_membership.role,
                    new_role=None,
                )
            )

    @staticmethod
    def _record(user: User, directive: Directive, outcome: DispositionOutcome) -> DirectiveResult:
        target_id = directive.target_user_id if isinstance(directive, TransferDirective) else None
        log = logger.warning if outcome.value.startswith("fallback") else logger.info
        log(
            "disposition_directive_processed",
            user_id=str(user.id),
            group_id=str(directive.group_id),
            action=directive.action,
            target_user_id=str(target_id) if target_id else None,
            outcome=outcome.value,
            source="executor",
        )
        return DirectiveResult(group_id=directive.group_id, outcome=outcome, target_user_id=target_id)

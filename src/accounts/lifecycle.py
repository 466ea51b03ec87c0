"""
SceneStack — Account Lifecycle

State machine over users.account_status:

    active ──deactivate──▶ deactivated
    active | deactivated ──request_deletion──▶ pending_deletion
    deactivated | pending_deletion ──reactivate──▶ active
    pending_deletion ──finalize_deletion (grace period elapsed)──▶ deleted

deleted is terminal. Reactivation is a full cancellation: timestamps and
pending directives are cleared, groups are left untouched.

request_deletion validates the group disposition plan before anything is
written; a rejected plan leaves the account exactly as it was.
finalize_deletion refuses to run while directives are still pending; the
executor must consume them first.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta
from typing import NamedTuple, Sequence

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from src.accounts.credentials import PasswordVerifier, StoredHashPasswordVerifier
from src.accounts.directives import Directive, dump_directives
from src.accounts.eligibility import list_owned_groups
from src.accounts.planner import GroupDispositionPlanner
from src.config import AccountStatus, GroupMemberAction, GroupRole, settings
from src.errors import AccountDeletedError, InvalidStateError, NotFoundError, ValidationFailedError
from src.models.group import GroupMember, GroupMemberHistory
from src.models.user import User
from src.utils.clock import days_since, ensure_utc, utcnow

logger = structlog.get_logger(__name__)


# operation -> (allowed source states, target state)
_TRANSITIONS: dict[str, tuple[frozenset[AccountStatus], AccountStatus]] = {
    "deactivate": (
        frozenset({AccountStatus.ACTIVE}),
        AccountStatus.DEACTIVATED,
    ),
    "request_deletion": (
        frozenset({AccountStatus.ACTIVE, AccountStatus.DEACTIVATED}),
        AccountStatus.PENDING_DELETION,
    ),
    "reactivate": (
        frozenset({AccountStatus.DEACTIVATED, AccountStatus.PENDING_DELETION}),
        AccountStatus.ACTIVE,
    ),
    "finalize_deletion": (
        frozenset({AccountStatus.PENDING_DELETION}),
        AccountStatus.DELETED,
    ),
}


class LoginStatus(NamedTuple):
    """What the login screen needs to know about a non-deleted account."""
    user_id: uuid.UUID
    account_status: AccountStatus
    is_deactivated: bool
    deactivated_at: datetime | None
    days_until_permanent_deletion: int | None


def days_remaining(
    deletion_requested_at: datetime,
    reference_time: datetime | None = None,
    grace_period_days: int | None = None,
) -> int:
    """max(0, grace period − whole days since the countdown anchor)."""
    grace = grace_period_days if grace_period_days is not None else settings.DELETION_GRACE_PERIOD_DAYS
    return max(0, grace - days_since(deletion_requested_at, reference_time))


def countdown_elapsed(
    deletion_requested_at: datetime,
    reference_time: datetime | None = None,
    grace_period_days: int | None = None,
) -> bool:
    grace = grace_period_days if grace_period_days is not None else settings.DELETION_GRACE_PERIOD_DAYS
    now = ensure_utc(reference_time) if reference_time is not None else utcnow()
    return now >= ensure_utc(deletion_requested_at) + timedelta(days=grace)


def check_transition(user: User, operation: str) -> AccountStatus:
    """
    Guard a transition and return its target state.

    Raises:
        AccountDeletedError: the account is already deleted.
        InvalidStateError: the current state does not allow the operation.
    """
    allowed, target = _TRANSITIONS[operation]
    if user.is_deleted:
        raise AccountDeletedError(operation)
    if user.account_status not in allowed:
        raise InvalidStateError(operation, user.account_status.value)
    return target


class AccountLifecycle:
    """
    Account state transitions. Each operation is one transaction.

    Usage:
        lifecycle = AccountLifecycle(session_factory)
        await lifecycle.request_deletion(user_id, password, directives)
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        password_verifier: PasswordVerifier | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.password_verifier = password_verifier or StoredHashPasswordVerifier(session_factory)

    async def _load_user(self, session: AsyncSession, user_id: uuid.UUID) -> User:
        user = await session.get(User, user_id)
        if user is None:
            logger.warning("account_user_not_found", user_id=str(user_id))
            raise NotFoundError("user", user_id)
        return user

    async def _commit(
        self,
        session: AsyncSession,
        user_id: uuid.UUID,
        operation: str,
        previous: AccountStatus,
    ) -> None:
        """Commit, mapping a lost row_version race to InvalidStateError."""
        try:
            await session.commit()
        except StaleDataError as exc:
            await session.rollback()
            logger.warning(
                "account_transition_conflict",
                user_id=str(user_id),
                operation=operation,
                from_status=previous.value,
            )
            raise InvalidStateError(
                operation,
                previous.value,
                "account was modified concurrently, retry",
            ) from exc

    def _log_transition(self, user: User, operation: str, previous: AccountStatus) -> None:
        logger.info(
            "account_transition",
            user_id=str(user.id),
            operation=operation,
            from_status=previous.value,
            to_status=user.account_status.value,
        )

    async def deactivate_account(
        self,
        user_id: uuid.UUID,
        reference_time: datetime | None = None,
    ) -> User:
        """Soft lockout with no countdown. Reversible at any time."""
        now = reference_time or utcnow()
        async with self.session_factory() as session:
            user = await self._load_user(session, user_id)
            previous = user.account_status
            user.account_status = check_transition(user, "deactivate")
            user.deactivated_at = now
            await self._commit(session, user_id, "deactivate", previous)

        self._log_transition(user, "deactivate", previous)
        return user

    async def request_deletion(
        self,
        user_id: uuid.UUID,
        password: str,
        directives: Sequence[Directive],
        reference_time: datetime | None = None,
    ) -> User:
        """
        Start the deletion countdown after validating the group plan.

        Args:
            user_id: The account to delete.
            password: Re-entered password, checked by the verifier.
            directives: One Delete/Transfer directive per owned group.
            reference_time: Override "now" (tests).

        Raises:
            NotFoundError, InvalidStateError, AccountDeletedError,
            ValidationFailedError (wrong password or rejected plan).
        """
        now = reference_time or utcnow()
        async with self.session_factory() as session:
            user = await self._load_user(session, user_id)
            previous = user.account_status
            target = check_transition(user, "request_deletion")

            if not await self.password_verifier.verify(user_id, password):
                logger.warning("account_deletion_password_rejected", user_id=str(user_id))
                raise ValidationFailedError("password is incorrect")

            planned = await GroupDispositionPlanner(session).plan(user, directives)

            user.account_status = target
            user.deactivated_at = now
            user.deletion_requested_at = now
            user.pending_group_actions = dump_directives(planned)
            await self._commit(session, user_id, "request_deletion", previous)

        self._log_transition(user, "request_deletion", previous)
        logger.info(
            "account_deletion_scheduled",
            user_id=str(user_id),
            directive_count=len(planned),
            grace_period_days=settings.DELETION_GRACE_PERIOD_DAYS,
        )
        return user

    async def reactivate_account(self, user_id: uuid.UUID) -> User:
        """Cancel deactivation or a pending deletion. Groups are untouched."""
        async with self.session_factory() as session:
            user = await self._load_user(session, user_id)
            previous = user.account_status
            user.account_status = check_transition(user, "reactivate")
            user.deactivated_at = None
            user.deletion_requested_at = None
            user.pending_group_actions = None
            await self._commit(session, user_id, "reactivate", previous)

        self._log_transition(user, "reactivate", previous)
        return user

    async def finalize_deletion(
        self,
        user_id: uuid.UUID,
        reference_time: datetime | None = None,
    ) -> User:
        """
        Permanently delete a pending account whose grace period elapsed.

        Removes the user's remaining (non-owner) memberships. Refuses while
        directives are pending or the user still owns a live group.
        """
        now = reference_time or utcnow()
        async with self.session_factory() as session:
            user = await self._load_user(session, user_id)
            previous = user.account_status
            target = check_transition(user, "finalize_deletion")

            if not countdown_elapsed(user.deletion_requested_at, now):
                remaining = days_remaining(user.deletion_requested_at, now)
                raise InvalidStateError(
                    "finalize_deletion",
                    previous.value,
                    f"grace period has {remaining} day(s) remaining",
                )
            if user.pending_group_actions:
                raise InvalidStateError(
                    "finalize_deletion",
                    previous.value,
                    "pending group actions have not been executed",
                )
            if await list_owned_groups(session, user_id):
                raise InvalidStateError(
                    "finalize_deletion",
                    previous.value,
                    "user still owns live groups",
                )

            removed = await self._remove_memberships(session, user_id)

            user.account_status = target
            user.deleted_at = now
            await self._commit(session, user_id, "finalize_deletion", previous)

        self._log_transition(user, "finalize_deletion", previous)
        logger.info("account_deleted", user_id=str(user_id), memberships_removed=removed)
        return user

    async def _remove_memberships(self, session: AsyncSession, user_id: uuid.UUID) -> int:
        result = await session.execute(
            select(GroupMember)
            .where(GroupMember.user_id == user_id, GroupMember.role != GroupRole.CREATOR)
        )
        memberships = list(result.scalars().all())
        for membership in memberships:
            session.add(
                GroupMemberHistory(
                    group_id=membership.group_id,
                    user_id=user_id,
                    action=GroupMemberAction.REMOVED,
                    actor_id=None,
                    previous_role=membership.role,
                    new_role=None,
                )
            )
            await session.delete(membership)
        return len(memberships)

    async def check_login(
        self,
        user_id: uuid.UUID,
        reference_time: datetime | None = None,
    ) -> LoginStatus:
        """
        Report account state at login. Never advances state.

        Raises:
            AccountDeletedError: the account is gone; this is not recoverable.
        """
        async with self.session_factory() as session:
            user = await self._load_user(session, user_id)

        if user.is_deleted:
            logger.warning("account_login_deleted", user_id=str(user_id))
            raise AccountDeletedError("login")

        remaining = None
        if user.account_status == AccountStatus.PENDING_DELETION and user.deletion_requested_at:
            remaining = days_remaining(user.deletion_requested_at, reference_time)

        return LoginStatus(
            user_id=user.id,
            account_status=user.account_status,
            is_deactivated=user.is_deactivated,
            deactivated_at=ensure_utc(user.deactivated_at),
            days_until_permanent_deletion=remaining,
        )

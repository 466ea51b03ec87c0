"""
SceneStack — Group Disposition Planner

Validates the owner's plan for their groups at deletion-request time.

Rules (all must hold, otherwise the whole batch is rejected):
- every live group the user owns appears exactly once
- Delete(g): the user owns g
- Transfer(g, t): the user owns g, t is not the user, t is currently a
  member of g, and t is transfer-eligible (active account, under the group
  creation limit, counting other transfers to t in the same batch)

The planner never writes. The lifecycle persists the returned list.
"""

from __future__ import annotations

import uuid
from collections import Counter
from typing import Sequence

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from src.accounts.directives import Directive, TransferDirective
from src.accounts.eligibility import count_created_groups, is_transfer_eligible, list_owned_groups
from src.errors import ValidationFailedError
from src.models.group import GroupMember
from src.models.user import User

logger = structlog.get_logger(__name__)


class GroupDispositionPlanner:
    """Eager, all-or-nothing validation of a disposition batch."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    def _reject(self, user: User, reason: str, group_id: uuid.UUID | None = None) -> ValidationFailedError:
        logger.warning(
            "disposition_plan_rejected",
            user_id=str(user.id),
            group_id=str(group_id) if group_id else None,
            reason=reason,
            source="planner",
        )
        return ValidationFailedError(reason, group_id=group_id)

    async def plan(self, user: User, directives: Sequence[Directive]) -> list[Directive]:
        """
        Validate directives against the user's currently owned groups.

        Args:
            user: The user requesting deletion.
            directives: One directive per owned group, in the caller's order.

        Returns:
            The directives unchanged, ready to be stored.

        Raises:
            ValidationFailedError: on the first directive that fails, or when
                coverage of owned groups is incomplete.
        """
        owned_ids = {group.id for group in await list_owned_groups(self.session, user.id)}
        seen: set[uuid.UUID] = set()
        planned_receipts: Counter[uuid.UUID] = Counter()

        for directive in directives:
            group_id = directive.group_id
            if group_id in seen:
                raise self._reject(user, "group listed more than once", group_id)
            seen.add(group_id)

            if group_id not in owned_ids:
                raise self._reject(user, "you do not own this group", group_id)

            if isinstance(directive, TransferDirective):
                await self._validate_transfer(user, directive, planned_receipts)
                planned_receipts[directive.target_user_id] += 1

        missing = owned_ids - seen
        if missing:
            raise self._reject(
                user,
                f"no action specified for {len(missing)} owned group(s)",
                sorted(missing, key=str)[0],
            )

        logger.info(
            "disposition_plan_accepted",
            user_id=str(user.id),
            directive_count=len(directives),
            transfers=sum(planned_receipts.values()),
            source="planner",
        )
        return list(directives)

    async def _validate_transfer(
        self,
        user: User,
        directive: TransferDirective,
        planned_receipts: Counter[uuid.UUID],
    ) -> None:
        group_id = directive.group_id
        target_id = directive.target_user_id

        if target_id == user.id:
            raise self._reject(user, "cannot transfer a group to yourself", group_id)

        membership = await self.session.get(GroupMember, (group_id, target_id))
        if membership is None:
            raise self._reject(user, "target user is not a member of this group", group_id)

        target = await self.session.get(User, target_id)
        if target is None:
            raise self._reject(user, "target user is not eligible to receive group ownership", group_id)

        created_count = await count_created_groups(self.session, target_id)
        if not is_transfer_eligible(target, created_count + planned_receipts[target_id]):
            raise self._reject(user, "target user is not eligible to receive group ownership", group_id)

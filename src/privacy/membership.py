"""
SceneStack — Group Membership Oracle

Read-side predicates over group membership:
- is_member(user, group)
- share_group(a, b): do the two users have at least one group in common?

Memberships in soft-deleted groups do not count. Nothing here writes.
"""

from __future__ import annotations

import uuid

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from src.models.group import Group, GroupMember

logger = structlog.get_logger(__name__)


class GroupMembershipOracle:
    """Membership queries bound to the caller's session."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def is_member(self, user_id: uuid.UUID, group_id: uuid.UUID) -> bool:
        result = await self.session.execute(
            select(GroupMember.user_id)
            .join(Group, Group.id == GroupMember.group_id)
            .where(
                GroupMember.group_id == group_id,
                GroupMember.user_id == user_id,
                Group.is_deleted.is_(False),
            )
            .limit(1)
        )
        return result.scalar() is not None

    async def share_group(self, user_a: uuid.UUID, user_b: uuid.UUID) -> bool:
        """True iff the two users' live group sets intersect. Symmetric."""
        gm_a = aliased(GroupMember)
        gm_b = aliased(GroupMember)
        result = await self.session.execute(
            select(gm_a.group_id)
            .join(gm_b, gm_b.group_id == gm_a.group_id)
            .join(Group, Group.id == gm_a.group_id)
            .where(
                gm_a.user_id == user_a,
                gm_b.user_id == user_b,
                Group.is_deleted.is_(False),
            )
            .limit(1)
        )
        shared = result.scalar() is not None

        logger.debug(
            "membership_share_group_checked",
            user_a=str(user_a),
            user_b=str(user_b),
            shared=shared,
            source="membership",
        )
        return shared

    async def groups_for_user(self, user_id: uuid.UUID) -> set[uuid.UUID]:
        """Ids of every live group the user belongs to."""
        result = await self.session.execute(
            select(GroupMember.group_id)
            .join(Group, Group.id == GroupMember.group_id)
            .where(GroupMember.user_id == user_id, Group.is_deleted.is_(False))
        )
        return set(result.scalars().all())

    async def co_member_ids(self, user_id: uuid.UUID) -> set[uuid.UUID]:
        """
        Every user sharing at least one live group with user_id.

        Includes user_id itself when it belongs to any group. Used by batch
        redaction so a feed costs one membership query, not one per watch.
        """
        gm_self = aliased(GroupMember)
        gm_other = aliased(GroupMember)
        result = await self.session.execute(
            select(gm_other.user_id)
            .join(gm_self, gm_self.group_id == gm_other.group_id)
            .join(Group, Group.id == gm_other.group_id)
            .where(gm_self.user_id == user_id, Group.is_deleted.is_(False))
            .distinct()
        )
        return set(result.scalars().all())

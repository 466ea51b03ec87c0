"""
SceneStack — Group Tier Limits & Transfer Eligibility

Free users may own FREE_TIER_MAX_CREATED_GROUPS live group; premium users
are unlimited.

Receiving a transferred group counts as creating one, so a member is
eligible to take over ownership only if:
- their account is neither deleted nor deactivated, and
- they could create a group right now (premium, or under the free limit).

The same rule backs the UI helper below and the planner's transfer check.
"""

from __future__ import annotations

import uuid
from typing import NamedTuple

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.config import GroupRole, settings
from src.errors import NotFoundError
from src.models.group import Group, GroupMember
from src.models.user import User

logger = structlog.get_logger(__name__)


class MemberEligibility(NamedTuple):
    user_id: uuid.UUID
    username: str
    is_premium: bool
    is_admin: bool
    is_eligible: bool


class OwnedGroupEligibility(NamedTuple):
    group_id: uuid.UUID
    group_name: str
    member_count: int
    members: list[MemberEligibility]
    can_transfer: bool


def can_create_group(user: User, created_count: int) -> bool:
    if user.is_premium:
        return True
    return created_count < settings.FREE_TIER_MAX_CREATED_GROUPS


def is_transfer_eligible(user: User, created_count: int) -> bool:
    """Whether user may receive ownership of a group right now."""
    if user.is_deleted or user.is_deactivated:
        return False
    return can_create_group(user, created_count)


async def count_created_groups(session: AsyncSession, user_id: uuid.UUID) -> int:
    """Live groups currently owned by user_id."""
    result = await session.execute(
        select(func.count())
        .select_from(Group)
        .where(Group.created_by_id == user_id, Group.is_deleted.is_(False))
    )
    return result.scalar_one()


async def list_owned_groups(session: AsyncSession, user_id: uuid.UUID) -> list[Group]:
    result = await session.execute(
        select(Group)
        .where(Group.created_by_id == user_id, Group.is_deleted.is_(False))
        .order_by(Group.name)
    )
    return list(result.scalars().all())


async def check_transfer_target(session: AsyncSession, target: User) -> bool:
    created_count = await count_created_groups(session, target.id)
    return is_transfer_eligible(target, created_count)


class TransferEligibilityService:
    """Read-only helper shown to the owner before they submit directives."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory

    async def get_owned_groups_with_eligibility(
        self,
        user_id: uuid.UUID,
    ) -> list[OwnedGroupEligibility]:
        """
        List every live group user_id owns with its candidate new owners.

        Deleted and deactivated members are left out entirely; the owner is
        never listed as a candidate.
        """
        async with self.session_factory() as session:
            owner = await session.get(User, user_id)
            if owner is None or owner.is_deleted:
                raise NotFoundError("user", user_id)

            response: list[OwnedGroupEligibility] = []
            for group in await list_owned_groups(session, user_id):
                result = await session.execute(
                    select(GroupMember, User)
                    .join(User, User.id == GroupMember.user_id)
                    .where(GroupMember.group_id == group.id)
                    .order_by(User.username)
                )
                rows = result.all()

                members: list[MemberEligibility] = []
                for membership, member in rows:
                    if member.id == user_id or member.is_deleted or member.is_deactivated:
                        continue
                    eligible = await check_transfer_target(session, member)
                    members.append(
                        MemberEligibility(
                            user_id=member.id,
                            username=member.username,
                            is_premium=member.is_premium,
                            is_admin=membership.role == GroupRole.ADMIN,
                            is_eligible=eligible,
                        )
                    )

                response.append(
                    OwnedGroupEligibility(
                        group_id=group.id,
                        group_name=group.name,
                        member_count=len(rows),
                        members=members,
                        can_transfer=any(m.is_eligible for m in members),
                    )
                )

        logger.info(
            "owned_groups_eligibility_listed",
            user_id=str(user_id),
            group_count=len(response),
        )
        return response

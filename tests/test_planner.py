"""
SceneStack — Group Disposition Planner Tests

Every live owned group must be covered exactly once, and every transfer must
target a current, eligible member. Any violation rejects the whole batch.
"""

from __future__ import annotations

import uuid

import pytest

from src.accounts.directives import DeleteDirective, TransferDirective
from src.accounts.planner import GroupDispositionPlanner
from src.config import AccountStatus
from src.errors import ValidationFailedError
from src.models.user import User


async def plan(session_factory, user_id, directives):
    async with session_factory() as session:
        user = await session.get(User, user_id)
        return await GroupDispositionPlanner(session).plan(user, directives)


@pytest.mark.asyncio
class TestGroupDispositionPlanner:
    async def test_accepts_full_coverage(self, seed, session_factory) -> None:
        owner = await seed.user("owner", is_premium=True)
        heir = await seed.user("heir")
        g1 = await seed.group(owner, [heir])
        g2 = await seed.group(owner)
        directives = [
            TransferDirective(group_id=g1.id, target_user_id=heir.id),
            DeleteDirective(group_id=g2.id),
        ]

        assert await plan(session_factory, owner.id, directives) == directives

    async def test_no_owned_groups_accepts_empty(self, seed, session_factory) -> None:
        user = await seed.user("member")

        assert await plan(session_factory, user.id, []) == []

    async def test_missing_group_rejected(self, seed, session_factory) -> None:
        owner = await seed.user("owner", is_premium=True)
        g1 = await seed.group(owner)
        await seed.group(owner)

        with pytest.raises(ValidationFailedError, match="no action specified for 1 owned group"):
            await plan(session_factory, owner.id, [DeleteDirective(group_id=g1.id)])

    async def test_duplicate_group_rejected(self, seed, session_factory) -> None:
        owner = await seed.user("owner")
        group = await seed.group(owner)

        with pytest.raises(ValidationFailedError, match="more than once") as exc:
            await plan(
                session_factory,
                owner.id,
                [DeleteDirective(group_id=group.id), DeleteDirective(group_id=group.id)],
            )
        assert exc.value.group_id == group.id

    async def test_group_not_owned_rejected(self, seed, session_factory) -> None:
        owner = await seed.user("owner")
        other = await seed.user("other")
        foreign = await seed.group(other, [owner])

        with pytest.raises(ValidationFailedError, match="do not own"):
            await plan(session_factory, owner.id, [DeleteDirective(group_id=foreign.id)])

    async def test_deleted_group_is_not_owned(self, seed, session_factory) -> None:
        owner = await seed.user("owner")
        dead = await seed.group(owner, is_deleted=True)

        with pytest.raises(ValidationFailedError, match="do not own"):
            await plan(session_factory, owner.id, [DeleteDirective(group_id=dead.id)])

    async def test_transfer_to_self_rejected(self, seed, session_factory) -> None:
        owner = await seed.user("owner")
        group = await seed.group(owner)

        with pytest.raises(ValidationFailedError, match="yourself"):
            await plan(
                session_factory,
                owner.id,
                [TransferDirective(group_id=group.id, target_user_id=owner.id)],
            )

    async def test_transfer_to_non_member_rejected(self, seed, session_factory) -> None:
        owner = await seed.user("owner")
        outsider = await seed.user("outsider")
        group = await seed.group(owner)

        with pytest.raises(ValidationFailedError, match="not a member"):
            await plan(
                session_factory,
                owner.id,
                [TransferDirective(group_id=group.id, target_user_id=outsider.id)],
            )

    async def test_transfer_to_free_owner_rejected(self, seed, session_factory) -> None:
        """A free user who already created a group cannot receive another."""
        owner = await seed.user("owner")
        bob = await seed.user("bob")
        await seed.group(bob)
        group = await seed.group(owner, [bob])

        with pytest.raises(ValidationFailedError, match="not eligible to receive group ownership"):
            await plan(
                session_factory,
                owner.id,
                [TransferDirective(group_id=group.id, target_user_id=bob.id)],
            )

    async def test_transfer_to_deactivated_member_rejected(self, seed, session_factory) -> None:
        owner = await seed.user("owner")
        away = await seed.user("away", account_status=AccountStatus.DEACTIVATED)
        group = await seed.group(owner, [away])

        with pytest.raises(ValidationFailedError, match="not eligible"):
            await plan(
                session_factory,
                owner.id,
                [TransferDirective(group_id=group.id, target_user_id=away.id)],
            )

    async def test_two_transfers_to_same_free_user_rejected(self, seed, session_factory) -> None:
        """Transfers planned earlier in the batch count toward the receiver's limit."""
        owner = await seed.user("owner", is_premium=True)
        heir = await seed.user("heir")
        g1 = await seed.group(owner, [heir], name="a")
        g2 = await seed.group(owner, [heir], name="b")

        with pytest.raises(ValidationFailedError, match="not eligible") as exc:
            await plan(
                session_factory,
                owner.id,
                [
                    TransferDirective(group_id=g1.id, target_user_id=heir.id),
                    TransferDirective(group_id=g2.id, target_user_id=heir.id),
                ],
            )
        assert exc.value.group_id == g2.id

    async def test_two_transfers_to_premium_user_accepted(self, seed, session_factory) -> None:
        owner = await seed.user("owner", is_premium=True)
        heir = await seed.user("heir", is_premium=True)
        g1 = await seed.group(owner, [heir])
        g2 = await seed.group(owner, [heir])
        directives = [
            TransferDirective(group_id=g1.id, target_user_id=heir.id),
            TransferDirective(group_id=g2.id, target_user_id=heir.id),
        ]

        assert await plan(session_factory, owner.id, directives) == directives

    async def test_unknown_target_rejected(self, seed, session_factory) -> None:
        owner = await seed.user("owner")
        group = await seed.group(owner)

        with pytest.raises(ValidationFailedError):
            await plan(
                session_factory,
                owner.id,
                [TransferDirective(group_id=group.id, target_user_id=uuid.uuid4())],
            )

"""
SceneStack — Deferred Disposition Executor Tests

Directives are re-validated at execution time. Stale transfers fall back to
deleting the group; every directive is processed independently; the batch
is cleared in the same transaction and consumed at most once.
"""

from __future__ import annotations

import uuid
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm.exc import StaleDataError

from src.accounts.directives import DeleteDirective, TransferDirective, dump_directives
from src.accounts.executor import DeferredDispositionExecutor, DispositionOutcome
from src.config import AccountStatus, GroupMemberAction, GroupRole
from src.errors import CorruptDirectivesError, NotFoundError
from src.models.base import Base
from src.models.user import User


async def pending_owner(seed, directives_for, **user_kwargs):
    """Create an owner in pending_deletion whose directives are built from their groups."""
    owner = await seed.user(account_status=AccountStatus.PENDING_DELETION, **user_kwargs)
    directives = await directives_for(owner)
    async with seed.session_factory() as session:
        row = await session.get(User, owner.id)
        row.pending_group_actions = dump_directives(directives)
        await session.commit()
    return owner


@pytest.mark.asyncio
class TestExecuteDirectives:
    async def test_transfer_moves_ownership(self, seed, session_factory) -> None:
        heir = await seed.user("heir")
        groups = {}

        async def directives_for(owner):
            groups["g"] = await seed.group(owner, [heir])
            return [TransferDirective(group_id=groups["g"].id, target_user_id=heir.id)]

        owner = await pending_owner(seed, directives_for, username="owner")
        group = groups["g"]

        report = await DeferredDispositionExecutor(session_factory).run(owner.id)

        assert [r.outcome for r in report.results] == [DispositionOutcome.TRANSFERRED]
        stored = await seed.reload_group(group.id)
        assert stored.created_by_id == heir.id
        assert stored.is_deleted is False
        assert (await seed.membership(group.id, heir.id)).role == GroupRole.CREATOR
        assert await seed.membership(group.id, owner.id) is None

        history = {(h.user_id, h.action) for h in await seed.history(group.id)}
        assert history == {
            (heir.id, GroupMemberAction.ROLE_CHANGED),
            (owner.id, GroupMemberAction.REMOVED),
        }
        assert (await seed.reload_user(owner.id)).pending_group_actions is None

    async def test_delete_soft_deletes(self, seed, session_factory) -> None:
        groups = {}

        async def directives_for(owner):
            groups["g"] = await seed.group(owner)
            return [DeleteDirective(group_id=groups["g"].id)]

        owner = await pending_owner(seed, directives_for)

        report = await DeferredDispositionExecutor(session_factory).run(owner.id)

        assert report.results[0].outcome == DispositionOutcome.DELETED
        stored = await seed.reload_group(groups["g"].id)
        assert stored.is_deleted is True
        assert stored.deleted_at is not None

    async def test_target_left_group_falls_back_to_delete(self, seed, session_factory) -> None:
        heir = await seed.user("heir")
        groups = {}

        async def directives_for(owner):
            groups["g"] = await seed.group(owner, [heir])
            return [TransferDirective(group_id=groups["g"].id, target_user_id=heir.id)]

        owner = await pending_owner(seed, directives_for)
        await seed.leave(groups["g"], heir)

        report = await DeferredDispositionExecutor(session_factory).run(owner.id)

        assert report.results[0].outcome == DispositionOutcome.FALLBACK_DELETED_NOT_MEMBER
        stored = await seed.reload_group(groups["g"].id)
        assert stored.is_deleted is True
        assert stored.created_by_id == owner.id

    @pytest.mark.parametrize("status", [AccountStatus.DEACTIVATED, AccountStatus.DELETED])
    async def test_inactive_target_falls_back_to_delete(self, seed, session_factory, status) -> None:
        heir = await seed.user("heir")
        groups = {}

        async def directives_for(owner):
            groups["g"] = await seed.group(owner, [heir])
            return [TransferDirective(group_id=groups["g"].id, target_user_id=heir.id)]

        owner = await pending_owner(seed, directives_for)
        await seed.set_status(heir, status)

        report = await DeferredDispositionExecutor(session_factory).run(owner.id)

        assert report.results[0].outcome == DispositionOutcome.FALLBACK_DELETED_INACTIVE_TARGET
        assert (await seed.reload_group(groups["g"].id)).is_deleted is True

    async def test_directives_are_independent(self, seed, session_factory) -> None:
        """A fallback in the first directive does not stop the second."""
        leaver = await seed.user("leaver")
        stayer = await seed.user("stayer", is_premium=True)
        groups = {}

        async def directives_for(owner):
            groups["a"] = await seed.group(owner, [leaver], name="a")
            groups["b"] = await seed.group(owner, [stayer], name="b")
            return [
                TransferDirective(group_id=groups["a"].id, target_user_id=leaver.id),
                TransferDirective(group_id=groups["b"].id, target_user_id=stayer.id),
            ]

        owner = await pending_owner(seed, directives_for, is_premium=True)
        await seed.leave(groups["a"], leaver)

        report = await DeferredDispositionExecutor(session_factory).run(owner.id)

        assert [r.outcome for r in report.results] == [
            DispositionOutcome.FALLBACK_DELETED_NOT_MEMBER,
            DispositionOutcome.TRANSFERRED,
        ]
        assert (await seed.reload_group(groups["a"].id)).is_deleted is True
        assert (await seed.reload_group(groups["b"].id)).created_by_id == stayer.id

    async def test_already_deleted_group_skipped(self, seed, session_factory) -> None:
        groups = {}

        async def directives_for(owner):
            groups["g"] = await seed.group(owner, is_deleted=True)
            return [DeleteDirective(group_id=groups["g"].id)]

        owner = await pending_owner(seed, directives_for)

        report = await DeferredDispositionExecutor(session_factory).run(owner.id)

        assert report.results[0].outcome == DispositionOutcome.SKIPPED_MISSING_GROUP
        assert (await seed.reload_user(owner.id)).pending_group_actions is None

    async def test_group_owned_by_someone_else_skipped(self, seed, session_factory) -> None:
        other = await seed.user("other")
        foreign = await seed.group(other)

        async def directives_for(owner):
            return [DeleteDirective(group_id=foreign.id)]

        owner = await pending_owner(seed, directives_for)

        report = await DeferredDispositionExecutor(session_factory).run(owner.id)

        assert report.results[0].outcome == DispositionOutcome.SKIPPED_NOT_OWNER
        assert (await seed.reload_group(foreign.id)).is_deleted is False

    async def test_second_run_is_noop(self, seed, session_factory) -> None:
        groups = {}

        async def directives_for(owner):
            groups["g"] = await seed.group(owner)
            return [DeleteDirective(group_id=groups["g"].id)]

        owner = await pending_owner(seed, directives_for)
        executor = DeferredDispositionExecutor(session_factory)

        first = await executor.run(owner.id)
        second = await executor.run(owner.id)

        assert len(first.results) == 1
        assert second.is_noop is True
        assert second.already_consumed is False

    async def test_unknown_user(self, session_factory) -> None:
        with pytest.raises(NotFoundError):
            await DeferredDispositionExecutor(session_factory).run(uuid.uuid4())


@pytest.mark.asyncio
class TestExecutorFailures:
    async def test_stale_commit_reports_already_consumed(self, seed, session_factory) -> None:
        groups = {}

        async def directives_for(owner):
            groups["g"] = await seed.group(owner)
            return [DeleteDirective(group_id=groups["g"].id)]

        owner = await pending_owner(seed, directives_for)

        with patch.object(AsyncSession, "commit", AsyncMock(side_effect=StaleDataError("stale"))):
            report = await DeferredDispositionExecutor(session_factory).run(owner.id)

        assert report.already_consumed is True
        assert report.results == []
        # Rolled back: group untouched
        assert (await seed.reload_group(groups["g"].id)).is_deleted is False

    async def test_persist_failure_keeps_batch_pending(self, seed, session_factory) -> None:
        groups = {}

        async def directives_for(owner):
            groups["g"] = await seed.group(owner)
            return [DeleteDirective(group_id=groups["g"].id)]

        owner = await pending_owner(seed, directives_for)
        failure = OperationalError("UPDATE users", {}, Exception("disk I/O error"))

        with patch.object(AsyncSession, "commit", AsyncMock(side_effect=failure)):
            with pytest.raises(OperationalError):
                await DeferredDispositionExecutor(session_factory).run(owner.id)

        assert (await seed.reload_user(owner.id)).pending_group_actions is not None
        assert (await seed.reload_group(groups["g"].id)).is_deleted is False

    async def test_unreadable_batch_is_left_pending(self, seed, session_factory) -> None:
        stored = [{"action": "archive", "group_id": "x"}]
        owner = await seed.user(
            "corrupt",
            account_status=AccountStatus.PENDING_DELETION,
            pending_group_actions=stored,
        )

        with pytest.raises(CorruptDirectivesError) as exc_info:
            await DeferredDispositionExecutor(session_factory).run(owner.id)

        assert exc_info.value.user_id == owner.id
        assert (await seed.reload_user(owner.id)).pending_group_actions == stored


@pytest.fixture
async def file_session_factory(tmp_path):
    """File-backed SQLite so each session gets its own connection."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'race.db'}", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)
    await engine.dispose()


@pytest.mark.asyncio
class TestConcurrentConsumption:
    """Two executors racing over the same batch; row_version decides the winner."""

    @pytest.fixture
    def session_factory(self, file_session_factory):
        return file_session_factory

    async def test_loser_sees_already_consumed(self, seed, session_factory) -> None:
        heir = await seed.user("heir")
        groups = {}

        async def directives_for(owner):
            groups["g"] = await seed.group(owner, [heir])
            return [TransferDirective(group_id=groups["g"].id, target_user_id=heir.id)]

        owner = await pending_owner(seed, directives_for)

        # The loser reads the user (row_version 2, directives present) first
        stale_session = session_factory()
        await stale_session.get(User, owner.id)

        winner = await DeferredDispositionExecutor(session_factory).run(owner.id)
        loser = await DeferredDispositionExecutor(lambda: stale_session).run(owner.id)

        assert [r.outcome for r in winner.results] == [DispositionOutcome.TRANSFERRED]
        assert loser.already_consumed is True
        stored = await seed.reload_group(groups["g"].id)
        assert stored.created_by_id == heir.id
        assert stored.is_deleted is False

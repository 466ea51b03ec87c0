"""
SceneStack — Shared pytest Fixtures & Configuration

Provides common fixtures for all test modules:
- In-memory aiosqlite database shared by every session of a test
- Session factory with the same options as src.main.create_db_engine
- Seed helper for users, groups, memberships and watches
- Async test support via pytest-asyncio
"""

from __future__ import annotations

import uuid
from datetime import date, datetime, timedelta, timezone
from typing import AsyncGenerator, Iterable

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from src.config import AccountStatus, GroupRole
from src.models.base import Base
from src.models.group import Group, GroupMember, GroupMemberHistory
from src.models.user import User
from src.models.watch import Watch, WatchGroup


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

pytest_plugins = ("pytest_asyncio",)


@pytest.fixture(scope="session")
def anyio_backend() -> str:
    """Use asyncio backend for anyio tests."""
    return "asyncio"


# ---------------------------------------------------------------------------
# Database Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
async def session_factory() -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """
    Session factory over a fresh in-memory SQLite database.

    StaticPool keeps a single connection so every session opened by the
    services under test sees the same database.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    yield factory

    await engine.dispose()


@pytest.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """A single session for tests that drive the oracle/policy directly."""
    async with session_factory() as session:
        yield session


# ---------------------------------------------------------------------------
# Seed Helper
# ---------------------------------------------------------------------------


class Seed:
    """Inserts rows through its own short-lived sessions and commits each call."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory

    async def user(
        self,
        username: str | None = None,
        *,
        is_premium: bool = False,
        share_watches: bool = True,
        share_ratings: bool = True,
        share_notes: bool = False,
        account_status: AccountStatus = AccountStatus.ACTIVE,
        password_hash: str | None = None,
        deletion_requested_at: datetime | None = None,
        pending_group_actions: list[dict] | None = None,
    ) -> User:
        user = User(
            id=uuid.uuid4(),
            username=username or f"user-{uuid.uuid4().hex[:8]}",
            is_premium=is_premium,
            share_watches=share_watches,
            share_ratings=share_ratings,
            share_notes=share_notes,
            account_status=account_status,
            password_hash=password_hash,
            deactivated_at=deletion_requested_at,
            deletion_requested_at=deletion_requested_at,
            pending_group_actions=pending_group_actions,
        )
        async with self.session_factory() as session:
            session.add(user)
            await session.commit()
        return user

    async def group(
        self,
        owner: User,
        members: Iterable[User] = (),
        *,
        name: str | None = None,
        admins: Iterable[User] = (),
        is_deleted: bool = False,
    ) -> Group:
        group = Group(
            id=uuid.uuid4(),
            name=name or f"group-{uuid.uuid4().hex[:8]}",
            created_by_id=owner.id,
            is_deleted=is_deleted,
        )
        async with self.session_factory() as session:
            session.add(group)
            await session.flush()
            session.add(GroupMember(group_id=group.id, user_id=owner.id, role=GroupRole.CREATOR))
            for member in members:
                session.add(GroupMember(group_id=group.id, user_id=member.id, role=GroupRole.MEMBER))
            for admin in admins:
                session.add(GroupMember(group_id=group.id, user_id=admin.id, role=GroupRole.ADMIN))
            await session.commit()
        return group

    async def join(self, group: Group, user: User, role: GroupRole = GroupRole.MEMBER) -> None:
        async with self.session_factory() as session:
            session.add(GroupMember(group_id=group.id, user_id=user.id, role=role))
            await session.commit()

    async def leave(self, group: Group, user: User) -> None:
        async with self.session_factory() as session:
            membership = await session.get(GroupMember, (group.id, user.id))
            await session.delete(membership)
            await session.commit()

    async def watch(
        self,
        owner: User,
        *,
        movie_id: int = 550,
        rating: int | None = None,
        notes: str | None = None,
        is_private: bool = False,
        watched_date: date | None = None,
        groups: Iterable[Group] = (),
    ) -> Watch:
        watch = Watch(
            id=uuid.uuid4(),
            user_id=owner.id,
            movie_id=movie_id,
            watched_date=watched_date or date(2026, 3, 1),
            rating=rating,
            notes=notes,
            is_private=is_private,
        )
        async with self.session_factory() as session:
            session.add(watch)
            await session.flush()
            for group in groups:
                session.add(WatchGroup(watch_id=watch.id, group_id=group.id))
            await session.commit()
        return watch

    async def set_status(self, user: User, status: AccountStatus) -> None:
        async with self.session_factory() as session:
            row = await session.get(User, user.id)
            row.account_status = status
            await session.commit()

    async def reload_user(self, user_id: uuid.UUID) -> User:
        async with self.session_factory() as session:
            return await session.get(User, user_id)

    async def reload_group(self, group_id: uuid.UUID) -> Group:
        async with self.session_factory() as session:
            return await session.get(Group, group_id)

    async def membership(self, group_id: uuid.UUID, user_id: uuid.UUID) -> GroupMember | None:
        async with self.session_factory() as session:
            return await session.get(GroupMember, (group_id, user_id))

    async def history(self, group_id: uuid.UUID) -> list[GroupMemberHistory]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(GroupMemberHistory).where(GroupMemberHistory.group_id == group_id)
            )
            return list(result.scalars().all())


@pytest.fixture
def seed(session_factory) -> Seed:
    return Seed(session_factory)


# ---------------------------------------------------------------------------
# Utility Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def now() -> datetime:
    """Fixed aware UTC timestamp for lifecycle arithmetic."""
    return datetime(2026, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def days_ago(now):
    """Build a timestamp N days before `now`."""

    def _days_ago(days: float) -> datetime:
        return now - timedelta(days=days)

    return _days_ago

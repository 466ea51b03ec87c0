"""
SceneStack — Group, Membership & Membership History Models

A live group has exactly one owner: groups.created_by_id, mirrored by the
single CREATOR row in group_members. Code that moves ownership must update
both in the same transaction.

Groups are soft-deleted (is_deleted + deleted_at); memberships in a deleted
group grant nothing.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import (
    BOOLEAN,
    TIMESTAMP,
    Enum as SAEnum,
    ForeignKey,
    Index,
    String,
    Text,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from src.config import GroupMemberAction, GroupRole
from src.models.base import Base


def _enum_column(enum_cls: type, name: str) -> SAEnum:
    return SAEnum(
        enum_cls,
        name=name,
        native_enum=False,
        length=32,
        values_callable=lambda enum: [member.value for member in enum],
    )


class Group(Base):
    """A shared group of users whose watches are visible to each other."""

    __tablename__ = "groups"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
        comment="Primary key",
    )
    name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        comment="Group display name",
    )
    description: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
        comment="Optional description",
    )
    created_by_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id"),
        nullable=False,
        index=True,
        comment="Current owner, always matches the CREATOR membership",
    )
    is_deleted: Mapped[bool] = mapped_column(
        BOOLEAN,
        default=False,
        server_default="false",
        nullable=False,
        comment="Soft-delete flag",
    )
    deleted_at: Mapped[datetime | None] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=True,
        comment="When the group was soft-deleted",
    )
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        server_default=func.now(),
        comment="Group creation timestamp",
    )

    def __repr__(self) -> str:
        return (
            f"<Group id={self.id!r} name={self.name!r} "
            f"created_by_id={self.created_by_id!r} is_deleted={self.is_deleted!r}>"
        )


class GroupMember(Base):
    """Membership of one user in one group, with their role."""

    __tablename__ = "group_members"

    group_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("groups.id"),
        primary_key=True,
        comment="FK to groups.id",
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id"),
        primary_key=True,
        comment="FK to users.id",
    )
    role: Mapped[GroupRole] = mapped_column(
        _enum_column(GroupRole, "group_role"),
        default=GroupRole.MEMBER,
        server_default=GroupRole.MEMBER.value,
        nullable=False,
        comment="member | admin | creator",
    )
    joined_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        server_default=func.now(),
        comment="When the user joined",
    )

    __table_args__ = (
        Index("ix_group_members_user_id", "user_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<GroupMember group_id={self.group_id!r} user_id={self.user_id!r} "
            f"role={self.role!r}>"
        )


class GroupMemberHistory(Base):
    """
    Append-only membership event log.

    actor_id is None when the system acted (e.g. deferred ownership transfer).
    """

    __tablename__ = "group_member_history"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
        comment="Primary key",
    )
    group_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("groups.id"),
        nullable=False,
        index=True,
        comment="FK to groups.id",
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id"),
        nullable=False,
        comment="User affected by the event",
    )
    action: Mapped[GroupMemberAction] = mapped_column(
        _enum_column(GroupMemberAction, "group_member_action"),
        nullable=False,
        comment="added | removed | role_changed | left",
    )
    actor_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        ForeignKey("users.id"),
        nullable=True,
        comment="User who performed the action (None for system)",
    )
    previous_role: Mapped[GroupRole | None] = mapped_column(
        _enum_column(GroupRole, "group_role"),
        nullable=True,
        comment="Role before a role change",
    )
    new_role: Mapped[GroupRole | None] = mapped_column(
        _enum_column(GroupRole, "group_role"),
        nullable=True,
        comment="Role after an add or role change",
    )
    timestamp: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        server_default=func.now(),
        comment="Event timestamp",
    )

    def __repr__(self) -> str:
        return (
            f"<GroupMemberHistory group_id={self.group_id!r} user_id={self.user_id!r} "
            f"action={self.action!r}>"
        )

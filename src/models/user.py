"""
SceneStack — User Model

Core users table. Carries the three privacy toggles read by the visibility
policy and the lifecycle fields driven by the accounts package.

Account state is a single enum column rather than layered booleans, so
combinations such as "deleted but still active" cannot be stored.
is_deactivated / is_deleted are derived from it.

pending_group_actions is owned by src.accounts; no other package reads or
writes it.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import (
    BOOLEAN,
    JSON,
    TIMESTAMP,
    Enum as SAEnum,
    Integer,
    String,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from src.config import AccountStatus
from src.models.base import Base


class User(Base):
    """
    Domain user record.

    Privacy defaults: watches and ratings shared with groups, notes private.
    row_version is SQLAlchemy's version counter. A concurrent writer that
    read an older version fails its flush with StaleDataError.
    """

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
        comment="Primary key",
    )
    username: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        unique=True,
        comment="Display name",
    )
    email: Mapped[str | None] = mapped_column(
        String(255),
        unique=True,
        nullable=True,
        comment="Email address",
    )
    password_hash: Mapped[str | None] = mapped_column(
        String(128),
        nullable=True,
        comment="bcrypt hash checked before deletion requests",
    )
    is_premium: Mapped[bool] = mapped_column(
        BOOLEAN,
        default=False,
        server_default="false",
        nullable=False,
        comment="Premium users have no group create/join limits",
    )

    # --- Privacy toggles (global defaults for all of this user's watches) ---
    share_watches: Mapped[bool] = mapped_column(
        BOOLEAN,
        default=True,
        server_default="true",
        nullable=False,
        comment="Share watch history with groups",
    )
    share_ratings: Mapped[bool] = mapped_column(
        BOOLEAN,
        default=True,
        server_default="true",
        nullable=False,
        comment="Share ratings with groups",
    )
    share_notes: Mapped[bool] = mapped_column(
        BOOLEAN,
        default=False,
        server_default="false",
        nullable=False,
        comment="Share notes with groups (private by default)",
    )

    # --- Lifecycle ---
    account_status: Mapped[AccountStatus] = mapped_column(
        SAEnum(
            AccountStatus,
            name="account_status",
            native_enum=False,
            length=32,
            values_callable=lambda enum: [member.value for member in enum],
        ),
        default=AccountStatus.ACTIVE,
        server_default=AccountStatus.ACTIVE.value,
        nullable=False,
        index=True,
        comment="active | deactivated | pending_deletion | deleted",
    )
    deactivated_at: Mapped[datetime | None] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=True,
        comment="When the account was last deactivated",
    )
    deletion_requested_at: Mapped[datetime | None] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=True,
        comment="Countdown anchor for the grace period",
    )
    deleted_at: Mapped[datetime | None] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=True,
        comment="When deletion was finalized",
    )
    pending_group_actions: Mapped[list[dict[str, Any]] | None] = mapped_column(
        JSON(none_as_null=True),
        nullable=True,
        comment="Ordered disposition directives awaiting execution",
    )
    row_version: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=1,
        server_default="1",
        comment="Optimistic concurrency counter",
    )

    # --- Timestamps ---
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        server_default=func.now(),
        comment="Account creation timestamp",
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        comment="Last modification timestamp",
    )

    __mapper_args__ = {"version_id_col": row_version}

    @property
    def is_deactivated(self) -> bool:
        return self.account_status in (
            AccountStatus.DEACTIVATED,
            AccountStatus.PENDING_DELETION,
        )

    @property
    def is_deleted(self) -> bool:
        return self.account_status == AccountStatus.DELETED

    @property
    def is_active(self) -> bool:
        return self.account_status == AccountStatus.ACTIVE

    def __repr__(self) -> str:
        return (
            f"<User id={self.id!r} username={self.username!r} "
            f"account_status={self.account_status!r}>"
        )

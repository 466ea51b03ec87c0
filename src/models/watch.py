"""
SceneStack — Watch & WatchGroup Models

A watch has three independently redactable facets: existence, rating, notes.
is_private is the per-record override. It hides the watch from everyone but
its owner regardless of the owner's toggles.

watch_groups records which groups a watch was shared into; group feeds are
built from it.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime

from sqlalchemy import (
    BOOLEAN,
    DATE,
    INTEGER,
    TIMESTAMP,
    CheckConstraint,
    ForeignKey,
    Index,
    Text,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from src.models.base import Base


class Watch(Base):
    """One logged viewing of a movie by a user."""

    __tablename__ = "watches"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
        comment="Primary key",
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id"),
        nullable=False,
        comment="Owner, FK to users.id",
    )
    movie_id: Mapped[int] = mapped_column(
        INTEGER,
        nullable=False,
        comment="Movie identifier (metadata lives outside this core)",
    )
    watched_date: Mapped[date] = mapped_column(
        DATE,
        nullable=False,
        comment="Date the movie was watched",
    )
    rating: Mapped[int | None] = mapped_column(
        INTEGER,
        nullable=True,
        comment="Optional 1-10 rating",
    )
    notes: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
        comment="Optional free-text notes",
    )
    is_private: Mapped[bool] = mapped_column(
        BOOLEAN,
        default=False,
        server_default="false",
        nullable=False,
        comment="Owner-only override; beats every group/global toggle",
    )
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        server_default=func.now(),
        comment="Row creation timestamp",
    )

    __table_args__ = (
        CheckConstraint("rating IS NULL OR (rating BETWEEN 1 AND 10)", name="ck_watches_rating_range"),
        Index("ix_watches_user_id_watched_date", "user_id", "watched_date"),
    )

    def __repr__(self) -> str:
        return (
            f"<Watch id={self.id!r} user_id={self.user_id!r} "
            f"movie_id={self.movie_id!r} is_private={self.is_private!r}>"
        )


class WatchGroup(Base):
    """A watch shared into a group's feed."""

    __tablename__ = "watch_groups"

    watch_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("watches.id"),
        primary_key=True,
        comment="FK to watches.id",
    )
    group_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("groups.id"),
        primary_key=True,
        comment="FK to groups.id",
    )

    __table_args__ = (
        Index("ix_watch_groups_group_id", "group_id"),
    )

    def __repr__(self) -> str:
        return f"<WatchGroup watch_id={self.watch_id!r} group_id={self.group_id!r}>"

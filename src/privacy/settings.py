"""
SceneStack — Privacy Settings

Owner-side controls read by the visibility policy:
- the three global toggles (share_watches / share_ratings / share_notes)
- the per-watch is_private override

Changes are committed immediately and take effect on the next visibility
evaluation; nothing is cached.
"""

from __future__ import annotations

import uuid
from typing import NamedTuple

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from src.errors import InvalidStateError, NotFoundError
from src.models.user import User
from src.models.watch import Watch

logger = structlog.get_logger(__name__)


class PrivacySettings(NamedTuple):
    share_watches: bool
    share_ratings: bool
    share_notes: bool


def _snapshot(user: User) -> PrivacySettings:
    return PrivacySettings(
        share_watches=user.share_watches,
        share_ratings=user.share_ratings,
        share_notes=user.share_notes,
    )


class PrivacySettingsService:
    """Read and update a user's privacy controls."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory

    async def get_privacy_settings(self, user_id: uuid.UUID) -> PrivacySettings:
        async with self.session_factory() as session:
            user = await session.get(User, user_id)
            if user is None or user.is_deleted:
                raise NotFoundError("user", user_id)
            return _snapshot(user)

    async def update_privacy_settings(
        self,
        user_id: uuid.UUID,
        share_watches: bool | None = None,
        share_ratings: bool | None = None,
        share_notes: bool | None = None,
    ) -> PrivacySettings:
        """
        Partially update the toggles. None leaves a toggle unchanged.

        Returns:
            The settings as stored after the update.
        """
        async with self.session_factory() as session:
            user = await session.get(User, user_id)
            if user is None or user.is_deleted:
                logger.warning("privacy_settings_user_not_found", user_id=str(user_id))
                raise NotFoundError("user", user_id)

            if share_watches is not None:
                user.share_watches = share_watches
            if share_ratings is not None:
                user.share_ratings = share_ratings
            if share_notes is not None:
                user.share_notes = share_notes

            updated = _snapshot(user)
            current_state = user.account_status.value
            try:
                await session.commit()
            except StaleDataError as exc:
                await session.rollback()
                logger.warning("privacy_settings_conflict", user_id=str(user_id))
                raise InvalidStateError(
                    "update_privacy_settings",
                    current_state,
                    "account was modified concurrently, retry",
                ) from exc

        logger.info(
            "privacy_settings_updated",
            user_id=str(user_id),
            share_watches=updated.share_watches,
            share_ratings=updated.share_ratings,
            share_notes=updated.share_notes,
        )
        return updated

    async def set_watch_private(
        self,
        watch_id: uuid.UUID,
        owner_id: uuid.UUID,
        is_private: bool,
    ) -> bool:
        """
        Flip a watch's is_private flag. Only the owner may do this.

        A watch owned by someone else is reported as not found rather than
        forbidden, so its existence is not leaked.
        """
        async with self.session_factory() as session:
            watch = await session.get(Watch, watch_id)
            if watch is None or watch.user_id != owner_id:
                raise NotFoundError("watch", watch_id)

            watch.is_private = is_private
            await session.commit()

        logger.info(
            "watch_privacy_updated",
            watch_id=str(watch_id),
            owner_id=str(owner_id),
            is_private=is_private,
        )
        return is_private

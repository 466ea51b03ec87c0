"""
SceneStack — Group Feed & Stats

Builds what a group member sees about the rest of the group, always through
VisibilityPolicy for per-record values.

Two data sets, deliberately kept apart:
- group-level aggregates (total watches, unique movies, active members,
  average rating) are computed over every non-private watch shared with the
  group whose owner is not deleted, before any per-viewer redaction;
- individual feed items and top-movie stats are computed after per-viewer
  redaction, so rating/notes follow each owner's toggles.

AGGREGATE_RATINGS_RESPECT_SHARE_RATINGS decides whether the average rating
may include ratings the viewer cannot see on the underlying record.
"""

from __future__ import annotations

import uuid
from collections import defaultdict
from datetime import date
from typing import NamedTuple, Sequence

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.config import settings
from src.errors import NotAGroupMemberError, NotFoundError
from src.models.group import Group
from src.models.user import User
from src.models.watch import Watch, WatchGroup
from src.privacy.policy import VisibilityPolicy, WatchVisibility

logger = structlog.get_logger(__name__)


class FeedItem(NamedTuple):
    """One watch as shown to one viewer, already redacted."""
    watch_id: uuid.UUID
    user_id: uuid.UUID
    username: str
    owner_is_deactivated: bool
    movie_id: int
    watched_date: date
    rating: int | None
    notes: str | None


class MovieWatchStats(NamedTuple):
    movie_id: int
    watch_count: int
    average_rating: float | None
    watched_by: list[str]


class GroupFeedStats(NamedTuple):
    group_id: uuid.UUID
    group_name: str
    total_watches: int
    unique_movies: int
    active_members: int
    average_rating: float | None
    top_movies: list[MovieWatchStats]
    watches: list[FeedItem]


def _average(ratings: Sequence[int]) -> float | None:
    if not ratings:
        return None
    return round(sum(ratings) / len(ratings), 1)


def _to_feed_item(watch: Watch, owner: User, decision: WatchVisibility) -> FeedItem:
    return FeedItem(
        watch_id=watch.id,
        user_id=watch.user_id,
        username=owner.username,
        owner_is_deactivated=owner.is_deactivated,
        movie_id=watch.movie_id,
        watched_date=watch.watched_date,
        rating=decision.rating,
        notes=decision.notes,
    )


def summarize_group_watches(
    rows: Sequence[tuple[Watch, User]],
    respect_share_ratings: bool | None = None,
) -> tuple[int, int, int, float | None]:
    """
    Group-level aggregates over the pre-redaction set.

    Returns:
        (total_watches, unique_movies, active_members, average_rating)
    """
    respect = (
        respect_share_ratings
        if respect_share_ratings is not None
        else settings.AGGREGATE_RATINGS_RESPECT_SHARE_RATINGS
    )
    ratings = [
        watch.rating
        for watch, owner in rows
        if watch.rating is not None and (owner.share_ratings or not respect)
    ]
    return (
        len(rows),
        len({watch.movie_id for watch, _ in rows}),
        len({watch.user_id for watch, _ in rows}),
        _average(ratings),
    )


def top_movies(items: Sequence[FeedItem], limit: int | None = None) -> list[MovieWatchStats]:
    """Most-watched movies among the viewer's redacted items."""
    by_movie: dict[int, list[FeedItem]] = defaultdict(list)
    for item in items:
        by_movie[item.movie_id].append(item)

    stats = [
        MovieWatchStats(
            movie_id=movie_id,
            watch_count=len(movie_items),
            average_rating=_average([i.rating for i in movie_items if i.rating is not None]),
            watched_by=sorted({i.username for i in movie_items}),
        )
        for movie_id, movie_items in by_movie.items()
    ]
    stats.sort(key=lambda s: (-s.watch_count, s.movie_id))
    return stats[: limit if limit is not None else settings.TOP_MOVIES_LIMIT]


class GroupFeedService:
    """Group, combined and stats feeds for a viewer."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory

    async def _require_membership(
        self,
        policy: VisibilityPolicy,
        group_id: uuid.UUID,
        viewer_id: uuid.UUID,
    ) -> Group:
        group = await policy.session.get(Group, group_id)
        if group is None or group.is_deleted:
            raise NotFoundError("group", group_id)
        if not await policy.oracle.is_member(viewer_id, group_id):
            logger.warning(
                "group_feed_access_denied",
                user_id=str(viewer_id),
                group_id=str(group_id),
            )
            raise NotAGroupMemberError(viewer_id, group_id)
        return group

    @staticmethod
    async def _redact(
        policy: VisibilityPolicy,
        rows: Sequence[tuple[Watch, User]],
        viewer_id: uuid.UUID,
    ) -> list[FeedItem]:
        watches = [watch for watch, _ in rows]
        owners = {watch.id: owner for watch, owner in rows}
        visible = await policy.filter_visible(watches, viewer_id)
        return [_to_feed_item(watch, owners[watch.id], decision) for watch, decision in visible]

    @staticmethod
    def _group_watches_query(group_id: uuid.UUID):
        return (
            select(Watch, User)
            .join(WatchGroup, WatchGroup.watch_id == Watch.id)
            .join(User, User.id == Watch.user_id)
            .where(WatchGroup.group_id == group_id, Watch.is_private.is_(False))
            .order_by(Watch.watched_date.desc(), Watch.id)
        )

    async def get_group_feed(
        self,
        group_id: uuid.UUID,
        viewer_id: uuid.UUID,
        skip: int = 0,
        take: int | None = None,
    ) -> list[FeedItem]:
        """
        One page of a group's feed, newest first, redacted for viewer_id.

        Pagination is applied before redaction, so a page may hold fewer than
        `take` items.

        Raises:
            NotFoundError: group missing or deleted.
            NotAGroupMemberError: viewer is not in the group.
        """
        take = take if take is not None else settings.FEED_PAGE_SIZE
        async with self.session_factory() as session:
            policy = VisibilityPolicy(session)
            await self._require_membership(policy, group_id, viewer_id)

            result = await session.execute(
                self._group_watches_query(group_id).offset(skip).limit(take)
            )
            items = await self._redact(policy, result.tuples().all(), viewer_id)

        logger.debug(
            "group_feed_built",
            group_id=str(group_id),
            viewer_id=str(viewer_id),
            items=len(items),
        )
        return items

    async def get_combined_feed(
        self,
        viewer_id: uuid.UUID,
        skip: int = 0,
        take: int | None = None,
    ) -> list[FeedItem]:
        """Watches from every group the viewer is in, de-duplicated, redacted."""
        take = take if take is not None else settings.FEED_PAGE_SIZE
        async with self.session_factory() as session:
            policy = VisibilityPolicy(session)
            group_ids = await policy.oracle.groups_for_user(viewer_id)
            if not group_ids:
                logger.info("combined_feed_no_groups", user_id=str(viewer_id))
                return []

            shared_watch_ids = select(WatchGroup.watch_id).where(WatchGroup.group_id.in_(group_ids))
            result = await session.execute(
                select(Watch, User)
                .join(User, User.id == Watch.user_id)
                .where(Watch.id.in_(shared_watch_ids), Watch.is_private.is_(False))
                .order_by(Watch.watched_date.desc(), Watch.id)
                .offset(skip)
                .limit(take)
            )
            return await self._redact(policy, result.tuples().all(), viewer_id)

    async def get_feed_with_stats(
        self,
        group_id: uuid.UUID,
        viewer_id: uuid.UUID,
        skip: int = 0,
        take: int | None = None,
    ) -> GroupFeedStats:
        """
        Group aggregates plus the viewer's redacted page and top movies.

        Raises:
            NotFoundError: group missing or deleted.
            NotAGroupMemberError: viewer is not in the group.
        """
        take = take if take is not None else settings.FEED_PAGE_SIZE
        async with self.session_factory() as session:
            policy = VisibilityPolicy(session)
            group = await self._require_membership(policy, group_id, viewer_id)

            result = await session.execute(self._group_watches_query(group_id))
            rows = [(watch, owner) for watch, owner in result.tuples().all() if not owner.is_deleted]

            total, unique_movies, active_members, average_rating = summarize_group_watches(rows)
            redacted = await self._redact(policy, rows, viewer_id)

        stats = GroupFeedStats(
            group_id=group.id,
            group_name=group.name,
            total_watches=total,
            unique_movies=unique_movies,
            active_members=active_members,
            average_rating=average_rating,
            top_movies=top_movies(redacted),
            watches=redacted[skip: skip + take],
        )

        logger.info(
            "group_feed_stats_built",
            group_id=str(group_id),
            viewer_id=str(viewer_id),
            total_watches=total,
            visible_to_viewer=len(redacted),
        )
        return stats

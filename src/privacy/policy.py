"""
SceneStack — Visibility Policy

Decides, for one (watch, viewer) pair, which facets the viewer may see:
existence, rating, notes.

Evaluation order (first match wins):
1. viewer is the owner          → everything visible
2. owner deleted or unknown     → hidden
3. watch.is_private             → hidden
4. owner.share_watches is off   → hidden
5. no shared group              → hidden (there is no "share with everyone")
6. visible; rating iff share_ratings, notes iff share_notes (independent)

evaluate_visibility() is the only implementation of the rule. The async
VisibilityPolicy wraps it with single and batch entry points that load the
owner and membership state it needs. Missing data never raises; privacy
fails closed.
"""

from __future__ import annotations

import uuid
from typing import NamedTuple, Sequence

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.models.user import User
from src.models.watch import Watch
from src.privacy.membership import GroupMembershipOracle

logger = structlog.get_logger(__name__)


class WatchVisibility(NamedTuple):
    """Redacted projection of a watch for one viewer."""
    watch_id: uuid.UUID
    visible: bool
    rating: int | None = None
    notes: str | None = None
    reason: str = ""


def _hidden(watch: Watch, reason: str) -> WatchVisibility:
    return WatchVisibility(watch_id=watch.id, visible=False, reason=reason)


def _decide_without_membership(
    watch: Watch,
    owner: User | None,
    viewer_id: uuid.UUID,
) -> WatchVisibility | None:
    """Steps 1-4. Returns None when the shared-group check is still needed."""
    if watch.user_id == viewer_id:
        return WatchVisibility(
            watch_id=watch.id,
            visible=True,
            rating=watch.rating,
            notes=watch.notes,
            reason="owner",
        )
    if owner is None or owner.is_deleted:
        return _hidden(watch, "owner_unavailable")
    if watch.is_private:
        return _hidden(watch, "watch_private")
    if not owner.share_watches:
        return _hidden(watch, "owner_not_sharing_watches")
    return None


def evaluate_visibility(
    watch: Watch,
    owner: User | None,
    viewer_id: uuid.UUID,
    shares_group: bool,
) -> WatchVisibility:
    """
    Apply the six-step visibility rule.

    Args:
        watch: The watch being viewed.
        owner: The watch's owner as currently stored (None if missing).
        viewer_id: The requesting user.
        shares_group: Whether owner and viewer share at least one live group.

    Returns:
        WatchVisibility with rating/notes populated only where visible.
    """
    decided = _decide_without_membership(watch, owner, viewer_id)
    if decided is not None:
        return decided

    if not shares_group:
        return _hidden(watch, "no_shared_group")

    return WatchVisibility(
        watch_id=watch.id,
        visible=True,
        rating=watch.rating if owner.share_ratings else None,
        notes=watch.notes if owner.share_notes else None,
        reason="shared_group",
    )


class VisibilityPolicy:
    """
    Redacts watches for a viewer against the latest committed state.

    No caching: toggles and is_private changes apply on the next call.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        self.oracle = GroupMembershipOracle(session)

    async def compute_visibility(
        self,
        watch: Watch,
        viewer_id: uuid.UUID,
    ) -> WatchVisibility:
        """Redact a single watch."""
        owner = await self.session.get(User, watch.user_id)

        decided = _decide_without_membership(watch, owner, viewer_id)
        if decided is not None:
            return decided

        shares_group = await self.oracle.share_group(watch.user_id, viewer_id)
        return evaluate_visibility(watch, owner, viewer_id, shares_group)

    async def compute_visibility_batch(
        self,
        watches: Sequence[Watch],
        viewer_id: uuid.UUID,
    ) -> list[WatchVisibility]:
        """
        Redact a collection, one decision per record, input order preserved.

        Owners and the viewer's co-members are loaded once for the batch.
        """
        if not watches:
            return []

        owner_ids = {watch.user_id for watch in watches}
        result = await self.session.execute(select(User).where(User.id.in_(owner_ids)))
        owners = {user.id: user for user in result.scalars().all()}
        co_members = await self.oracle.co_member_ids(viewer_id)

        decisions = [
            evaluate_visibility(
                watch,
                owners.get(watch.user_id),
                viewer_id,
                shares_group=watch.user_id in co_members,
            )
            for watch in watches
        ]

        logger.debug(
            "visibility_batch_evaluated",
            viewer_id=str(viewer_id),
            total=len(decisions),
            visible=sum(1 for decision in decisions if decision.visible),
            source="visibility",
        )
        return decisions

    async def filter_visible(
        self,
        watches: Sequence[Watch],
        viewer_id: uuid.UUID,
    ) -> list[tuple[Watch, WatchVisibility]]:
        """Batch redaction keeping only records whose existence is visible."""
        decisions = await self.compute_visibility_batch(watches, viewer_id)
        return [
            (watch, decision)
            for watch, decision in zip(watches, decisions)
            if decision.visible
        ]

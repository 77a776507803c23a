"""Community registry and the aggregate counters maintained by ingestion.

Counters are never set by clients. They change through:

- ``record_content``: first ingestion of a content id bumps ``message_count``
  and folds the oracle sentiment into the running mean ``sentiment_score``.
- ``record_member_join`` / ``record_member_activity``: member bookkeeping
  behind ``member_count`` and ``active_member_count``.
- ``set_engagement_rate``: value reported by the platform integration.
"""

from __future__ import annotations

import math
from typing import List, Tuple

from commguard.database.db_connection import ConnectionManager
from commguard.datatypes.community_datatypes import Community
from commguard.datatypes.content_datatypes import ContentItem
from commguard.errors import NotFound
from commguard.repositories.community_repo import CommunityRepo
from commguard.util.logger import get_logger
from commguard.util.record_utils import new_id, utcnow_iso

logger = get_logger("community_tracker")


class CommunityTracker:
    def __init__(self, db: ConnectionManager) -> None:
        self._db = db

    async def create_community(
        self,
        organization_id: str,
        name: str,
        platform: str = "",
        platform_community_id: str = "",
        *,
        community_id: str | None = None,
    ) -> Community:
        if not name or not name.strip():
            raise ValueError("Community name must not be empty")
        community = Community(
            id=community_id or new_id(),
            organization_id=organization_id,
            name=name.strip(),
            platform=platform,
            platform_community_id=platform_community_id,
        )
        async with self._db.transaction() as conn:
            await CommunityRepo.insert(conn, community)
        logger.info("[COMMUNITY] Registered community %s (%s) for organization %s", community.id, community.name, organization_id)
        return community

    async def get_community(self, community_id: str) -> Community:
        async with self._db.read() as conn:
            community = await CommunityRepo.get(conn, community_id)
        if community is None:
            raise NotFound("community", community_id)
        return community

    async def list_communities(self, organization_id: str | None = None) -> List[Community]:
        async with self._db.read() as conn:
            return await CommunityRepo.list_active(conn, organization_id)

    async def record_content(self, item: ContentItem, sentiment: float | None = None) -> bool:
        """Update counters for an ingested item.

        Returns False, and changes nothing, if the content id was seen before.
        """
        now = utcnow_iso()
        if sentiment is not None:
            sentiment = max(-1.0, min(1.0, sentiment))

        async with self._db.transaction() as conn:
            first_time = await CommunityRepo.mark_ingested(
                conn, item.id, item.community_id, item.author_id, item.type.value, sentiment, now
            )
            if not first_time:
                return False
            await CommunityRepo.touch_member(conn, item.community_id, item.author_id, now)
            if item.type.counts_as_message:
                await CommunityRepo.record_message(conn, item.community_id, sentiment, now)
        return True

    async def pending_triggers(self, content_id: str) -> Tuple[bool, float | None]:
        """Whether the content's automation triggers still await dispatch, and its stored sentiment."""
        async with self._db.read() as conn:
            state = await CommunityRepo.pending_trigger_state(conn, content_id)
        if state is None:
            return False, None
        return state

    async def mark_triggers_dispatched(self, content_id: str) -> None:
        async with self._db.transaction() as conn:
            await CommunityRepo.clear_triggers_pending(conn, content_id)

    async def record_member_join(self, community_id: str, member_id: str) -> bool:
        """Register a member. Returns False if they were already a member."""
        now = utcnow_iso()
        async with self._db.transaction() as conn:
            if await CommunityRepo.get(conn, community_id) is None:
                raise NotFound("community", community_id)
            joined = await CommunityRepo.add_member(conn, community_id, member_id, now)
        if joined:
            logger.debug("[COMMUNITY] Member %s joined community %s", member_id, community_id)
        return joined

    async def record_member_activity(self, community_id: str, member_id: str) -> None:
        now = utcnow_iso()
        async with self._db.transaction() as conn:
            if await CommunityRepo.get(conn, community_id) is None:
                raise NotFound("community", community_id)
            await CommunityRepo.touch_member(conn, community_id, member_id, now)

    async def set_engagement_rate(self, community_id: str, rate: float) -> None:
        if math.isnan(rate) or rate < 0:
            raise ValueError(f"engagement rate must be a non-negative number, got {rate!r}")
        async with self._db.transaction() as conn:
            if not await CommunityRepo.set_engagement_rate(conn, community_id, float(rate), utcnow_iso()):
                raise NotFound("community", community_id)

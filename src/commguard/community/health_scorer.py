"""Community Health Scorer.

The health score is a weighted blend of four sub-scores, each in 0..100::

    activity   = min(active_member_count / max(member_count, 1) * 100, 100)   w 0.40
    volume     = min(message_count / 100 * 100, 100)                          w 0.30
    sentiment  = (sentiment_score + 1) * 50                                   w 0.20
    engagement = min(engagement_rate * 10, 100)                               w 0.10

The sentiment sub-score only counts once the community has recorded a
message; before that it is 0 rather than the neutral 50. Messages ingested
without an oracle reading leave ``sentiment_score`` at its neutral 0, so a
community with messages but no readings scores the neutral 50. The weighted
sum is rounded half-up and clamped to 0..100.
"""

from __future__ import annotations

import math
from datetime import timedelta
from typing import Dict

from commguard.database.db_connection import ConnectionManager
from commguard.datatypes.community_datatypes import CommunityCounters
from commguard.errors import CommguardError, NotFound
from commguard.repositories.community_repo import CommunityRepo
from commguard.util.logger import get_logger
from commguard.util.record_utils import to_iso, utcnow, utcnow_iso

logger = get_logger("health_scorer")

ACTIVITY_WEIGHT = 0.40
VOLUME_WEIGHT = 0.30
SENTIMENT_WEIGHT = 0.20
ENGAGEMENT_WEIGHT = 0.10


def _bounded(value: float, low: float = 0.0, high: float = 100.0) -> float:
    if math.isnan(value):
        return low
    return max(low, min(value, high))


def compute_health_score(counters: CommunityCounters) -> int:
    """Health score of a counter snapshot; always an int in 0..100."""
    activity = _bounded(counters.active_member_count / max(counters.member_count, 1) * 100)
    # 100 messages is full volume: message_count / 100 * 100
    volume = _bounded(float(counters.message_count))
    if counters.message_count > 0:
        sentiment = _bounded((_bounded(counters.sentiment_score, -1.0, 1.0) + 1) * 50)
    else:
        sentiment = 0.0
    engagement = _bounded(counters.engagement_rate * 10)

    weighted = (
        ACTIVITY_WEIGHT * activity
        + VOLUME_WEIGHT * volume
        + SENTIMENT_WEIGHT * sentiment
        + ENGAGEMENT_WEIGHT * engagement
    )
    return int(_bounded(math.floor(weighted + 0.5)))


class HealthScorer:
    """Reads and recomputes stored community health scores."""

    def __init__(self, db: ConnectionManager, active_window_days: int = 7) -> None:
        self._db = db
        self._active_window = timedelta(days=active_window_days)

    async def get_health_score(self, community_id: str) -> int:
        """The last computed score of a community.

        Raises:
            NotFound: If the community does not exist.
        """
        async with self._db.read() as conn:
            community = await CommunityRepo.get(conn, community_id)
        if community is None:
            raise NotFound("community", community_id)
        return community.health_score

    async def recompute(self, community_id: str) -> int:
        """Refresh the active member count, recompute and store the score.

        Runs in a single transaction so the score is computed from one
        consistent counter snapshot.
        """
        now = utcnow_iso()
        active_since = to_iso(utcnow() - self._active_window)

        async with self._db.transaction() as conn:
            await CommunityRepo.refresh_active_members(conn, community_id, active_since, now)
            community = await CommunityRepo.get(conn, community_id)
            if community is None:
                raise NotFound("community", community_id)
            score = compute_health_score(community.counters)
            await CommunityRepo.set_health_score(conn, community_id, score, now)

        logger.debug("[HEALTH SCORER] Community %s health %d -> %d", community_id, community.health_score, score)
        return score

    async def recompute_all(self, organization_id: str | None = None) -> Dict[str, int]:
        """Recompute every active community; failures are logged and skipped."""
        async with self._db.read() as conn:
            communities = await CommunityRepo.list_active(conn, organization_id)

        scores: Dict[str, int] = {}
        for community in communities:
            try:
                scores[community.id] = await self.recompute(community.id)
            except CommguardError as exc:
                logger.error("[HEALTH SCORER] Failed to recompute community %s: %s", community.id, exc)

        logger.info("[HEALTH SCORER] Recomputed health for %d/%d communities", len(scores), len(communities))
        return scores

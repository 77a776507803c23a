"""
Communities and the aggregate counters the health score is computed from.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from commguard.util.record_utils import utcnow_iso


@dataclass(frozen=True, slots=True)
class CommunityCounters:
    """Consistent snapshot of a community's aggregate counters."""

    member_count: int = 0
    active_member_count: int = 0
    message_count: int = 0
    engagement_rate: float = 0.0
    sentiment_score: float = 0.0


@dataclass(slots=True)
class Community:
    """A moderated community. Counters are maintained by ingestion, never set by clients."""

    id: str
    organization_id: str
    name: str
    platform: str = ""
    platform_community_id: str = ""
    member_count: int = 0
    active_member_count: int = 0
    message_count: int = 0
    engagement_rate: float = 0.0
    sentiment_score: float = 0.0
    health_score: int = 0
    is_active: bool = True
    last_activity_at: str | None = None
    created_at: str = field(default_factory=utcnow_iso)
    updated_at: str = field(default_factory=utcnow_iso)

    @property
    def counters(self) -> CommunityCounters:
        return CommunityCounters(
            member_count=self.member_count,
            active_member_count=self.active_member_count,
            message_count=self.message_count,
            engagement_rate=self.engagement_rate,
            sentiment_score=self.sentiment_score,
        )

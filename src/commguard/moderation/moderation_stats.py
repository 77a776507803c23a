"""Moderation statistics over a trailing window of days."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, List, Tuple

from commguard.database.db_connection import ConnectionManager
from commguard.datatypes.queue_datatypes import SYSTEM_ACTOR, ModerationAction, ModerationQueueItem, QueueStatus
from commguard.repositories.action_repo import ModerationActionRepo
from commguard.repositories.queue_repo import ModerationQueueRepo
from commguard.util.record_utils import parse_iso, to_iso, utcnow

TOP_REASONS_LIMIT = 5


@dataclass(frozen=True, slots=True)
class ModerationStats:
    total_flagged: int
    by_status: Dict[str, int]
    auto_actions: int
    manual_actions: int
    top_reasons: List[Tuple[str, int]] = field(default_factory=list)
    daily_flags: List[Tuple[str, int]] = field(default_factory=list)


def build_stats(
    queue_items: List[ModerationQueueItem],
    actions: List[ModerationAction],
    days: int,
    now: datetime | None = None,
) -> ModerationStats:
    """Aggregate already-filtered queue items and audit records.

    ``daily_flags`` has one entry per day of the window (oldest first),
    including days without flags.
    """
    today = (now or utcnow()).date()
    by_status = {status.value: 0 for status in QueueStatus}
    for item in queue_items:
        by_status[item.status.value] += 1

    auto_actions = sum(1 for action in actions if action.performed_by == SYSTEM_ACTOR)

    reasons = Counter(item.reason for item in queue_items)
    # most_common keeps first-seen order among equal counts
    top_reasons = reasons.most_common(TOP_REASONS_LIMIT)

    daily = {(today - timedelta(days=offset)).isoformat(): 0 for offset in range(days)}
    for item in queue_items:
        created = parse_iso(item.created_at)
        if created is None:
            continue
        key = created.date().isoformat()
        if key in daily:
            daily[key] += 1

    return ModerationStats(
        total_flagged=len(queue_items),
        by_status=by_status,
        auto_actions=auto_actions,
        manual_actions=len(actions) - auto_actions,
        top_reasons=top_reasons,
        daily_flags=sorted(daily.items()),
    )


async def get_moderation_stats(db: ConnectionManager, organization_id: str, days: int = 30) -> ModerationStats:
    if days < 1:
        raise ValueError("days must be at least 1")
    now = utcnow()
    since = to_iso(now - timedelta(days=days))
    async with db.read() as conn:
        queue_items = await ModerationQueueRepo.list_since(conn, organization_id, since)
        actions = await ModerationActionRepo.list_since(conn, organization_id, since)
    return build_stats(queue_items, actions, days, now=now)

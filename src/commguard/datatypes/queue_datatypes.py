"""
Moderation queue items, dispositions, violations and the audit trail.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, List

from commguard.datatypes.content_datatypes import ContentTarget
from commguard.datatypes.rule_datatypes import AutoAction, RuleType
from commguard.errors import ConfigurationError
from commguard.util.record_utils import utcnow_iso

SYSTEM_ACTOR = "system"


class QueueStatus(Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    ESCALATED = "escalated"

    def __str__(self) -> str:
        return self.value

    @property
    def is_terminal(self) -> bool:
        return self in (QueueStatus.APPROVED, QueueStatus.REJECTED)


class DisposeAction(Enum):
    """Moderator decisions on a queue item."""

    APPROVE = "approve"
    REJECT = "reject"
    ESCALATE = "escalate"

    def __str__(self) -> str:
        return self.value

    @property
    def target_status(self) -> QueueStatus:
        return _ACTION_STATUS[self]


_ACTION_STATUS: Dict[DisposeAction, QueueStatus] = {
    DisposeAction.APPROVE: QueueStatus.APPROVED,
    DisposeAction.REJECT: QueueStatus.REJECTED,
    DisposeAction.ESCALATE: QueueStatus.ESCALATED,
}

# pending -> {approved, rejected, escalated}; escalated -> {approved, rejected}
ALLOWED_TRANSITIONS: Dict[QueueStatus, FrozenSet[QueueStatus]] = {
    QueueStatus.PENDING: frozenset({QueueStatus.APPROVED, QueueStatus.REJECTED, QueueStatus.ESCALATED}),
    QueueStatus.ESCALATED: frozenset({QueueStatus.APPROVED, QueueStatus.REJECTED}),
    QueueStatus.APPROVED: frozenset(),
    QueueStatus.REJECTED: frozenset(),
}


def can_transition(current: QueueStatus, target: QueueStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


def parse_queue_status(value: QueueStatus | str) -> QueueStatus:
    if isinstance(value, QueueStatus):
        return value
    try:
        return QueueStatus(str(value))
    except ValueError as exc:
        raise ConfigurationError(f"Unknown queue status '{value}'") from exc


def parse_dispose_action(value: DisposeAction | str) -> DisposeAction:
    if isinstance(value, DisposeAction):
        return value
    try:
        return DisposeAction(str(value))
    except ValueError as exc:
        raise ConfigurationError(f"Unknown moderation action '{value}'") from exc


@dataclass(frozen=True, slots=True)
class Violation:
    """A single rule that matched a content item.

    Attributes:
        rule_id: Matched rule.
        rule_name: Name of the matched rule, used to build the queue reason.
        rule_type: Type of the matched rule.
        reason: What matched (keyword, pattern or score against threshold).
        confidence: 1.0 for keyword/regex, the oracle score for AI rules.
        priority: Queue priority derived from the rule.
        auto_action: Automatic action configured on the rule.
        notify_moderators: Whether the rule asks for a moderator notification.
    """

    rule_id: str
    rule_name: str
    rule_type: RuleType
    reason: str
    confidence: float
    priority: int
    auto_action: AutoAction = AutoAction.NONE
    notify_moderators: bool = False


@dataclass(slots=True)
class ModerationQueueItem:
    """Flagged content awaiting (or having received) a disposition. Never deleted."""

    id: str
    organization_id: str
    content_type: str
    content_id: str
    reason: str
    priority: int = 1
    status: QueueStatus = QueueStatus.PENDING
    community_id: str | None = None
    content_text: str | None = None
    author_id: str | None = None
    author_name: str | None = None
    ai_confidence: float | None = None
    auto_action: AutoAction = AutoAction.NONE
    rule_ids: List[str] = field(default_factory=list)
    moderated_by: str | None = None
    moderated_at: str | None = None
    moderator_notes: str | None = None
    created_at: str = field(default_factory=utcnow_iso)
    updated_at: str = field(default_factory=utcnow_iso)

    @property
    def target(self) -> ContentTarget:
        return ContentTarget(target_type=self.content_type, target_id=self.content_id)


def queue_sort_key(item: ModerationQueueItem) -> tuple:
    """Moderator workload order: open items first, then priority, then oldest."""
    return (item.status is not QueueStatus.PENDING, -item.priority, item.created_at)


@dataclass(frozen=True, slots=True)
class ModerationAction:
    """Append-only audit record of one disposition or executed action."""

    id: str
    organization_id: str
    action_type: str
    target_type: str
    target_id: str
    community_id: str | None = None
    queue_item_id: str | None = None
    rule_id: str | None = None
    performed_by: str | None = None
    reason: str | None = None
    created_at: str = field(default_factory=utcnow_iso)


@dataclass(frozen=True, slots=True)
class ActionResult:
    """Outcome of executing an automatic action against a content target.

    ``applied`` is False when the content store already carried the effect
    (or for ``none``); the audit record exists either way.
    """

    action: AutoAction
    target: ContentTarget
    applied: bool
    audit: ModerationAction

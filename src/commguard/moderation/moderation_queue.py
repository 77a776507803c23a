"""Moderation Queue: priority-ordered, status-tracked flagged content.

State machine::

    pending   -> approved | rejected | escalated
    escalated -> approved | rejected

approved and rejected are terminal. Items are never deleted.

Enqueueing is idempotent per ``(content_id, rule_id)``: a claim row is
written for every violation in the same transaction as the queue item, and
violations whose pair is already claimed are dropped. Disposition is a
compare-and-set on ``status`` committed together with its audit record, so
of two concurrent moderators only one can win.
"""

from __future__ import annotations

from typing import List

from commguard.database.db_connection import ConnectionManager
from commguard.datatypes.content_datatypes import ContentItem
from commguard.datatypes.queue_datatypes import (
    DisposeAction,
    ModerationAction,
    ModerationQueueItem,
    QueueStatus,
    Violation,
    can_transition,
    parse_dispose_action,
    parse_queue_status,
)
from commguard.datatypes.rule_datatypes import AutoAction, parse_auto_action
from commguard.errors import InvalidTransition, NotFound
from commguard.moderation.rule_evaluator import summarize_violations
from commguard.repositories.action_repo import ModerationActionRepo
from commguard.repositories.queue_repo import ModerationQueueRepo
from commguard.util.logger import get_logger
from commguard.util.record_utils import new_id, utcnow_iso

logger = get_logger("moderation_queue")


class ModerationQueue:
    """Queue of flagged content awaiting a moderator (or automatic) decision."""

    def __init__(self, db: ConnectionManager, default_page_size: int = 50, max_page_size: int = 200) -> None:
        self._db = db
        self._default_page_size = default_page_size
        self._max_page_size = max_page_size

    # ------------------------------------------------------------------
    # Enqueue
    # ------------------------------------------------------------------

    async def enqueue(self, violations: List[Violation], item: ContentItem) -> ModerationQueueItem | None:
        """Create one pending queue item for the violations not queued before.

        Returns None when there is nothing new to queue, either because
        ``violations`` is empty or because every ``(content_id, rule_id)``
        pair was already claimed by an earlier ingestion.
        """
        if not violations:
            return None

        queue_item_id = new_id()
        now = utcnow_iso()

        async with self._db.transaction() as conn:
            fresh: List[Violation] = []
            for violation in violations:
                if await ModerationQueueRepo.claim_rule(conn, item.id, violation.rule_id, queue_item_id, now):
                    fresh.append(violation)

            if not fresh:
                logger.debug("[QUEUE] Content %s already queued for all matched rules", item.id)
                return None

            summary = summarize_violations(fresh)
            queue_item = ModerationQueueItem(
                id=queue_item_id,
                organization_id=item.organization_id,
                community_id=item.community_id,
                content_type=item.type.value,
                content_id=item.id,
                content_text=item.text,
                author_id=item.author_id,
                author_name=item.author_name,
                reason=summary.reason,
                ai_confidence=summary.ai_confidence,
                priority=summary.priority,
                status=QueueStatus.PENDING,
                auto_action=summary.auto_action,
                rule_ids=summary.rule_ids,
                created_at=now,
                updated_at=now,
            )
            await ModerationQueueRepo.insert(conn, queue_item, followup_pending=True)

        logger.info(
            "[QUEUE] Queued content %s as %s (priority %d, auto_action %s): %s",
            item.id,
            queue_item.id,
            queue_item.priority,
            queue_item.auto_action,
            queue_item.reason,
        )
        return queue_item

    async def add_manual(
        self,
        organization_id: str,
        content_type: str,
        content_id: str,
        reason: str,
        priority: int = 1,
        *,
        community_id: str | None = None,
        content_text: str | None = None,
        author_id: str | None = None,
        author_name: str | None = None,
        auto_action: AutoAction | str = AutoAction.NONE,
    ) -> ModerationQueueItem:
        """Queue content reported by a person or an external system."""
        if isinstance(priority, bool) or not isinstance(priority, int) or not 1 <= priority <= 5:
            raise ValueError(f"priority must be an integer between 1 and 5, got {priority!r}")
        if not reason:
            raise ValueError("reason must not be empty")

        now = utcnow_iso()
        queue_item = ModerationQueueItem(
            id=new_id(),
            organization_id=organization_id,
            community_id=community_id,
            content_type=content_type,
            content_id=content_id,
            content_text=content_text,
            author_id=author_id,
            author_name=author_name,
            reason=reason,
            priority=priority,
            auto_action=parse_auto_action(auto_action),
            created_at=now,
            updated_at=now,
        )
        async with self._db.transaction() as conn:
            await ModerationQueueRepo.insert(conn, queue_item)

        logger.info("[QUEUE] Manually queued %s:%s as %s", content_type, content_id, queue_item.id)
        return queue_item

    # ------------------------------------------------------------------
    # Disposition
    # ------------------------------------------------------------------

    async def dispose(
        self,
        item_id: str,
        action: DisposeAction | str,
        moderator_id: str,
        notes: str | None = None,
    ) -> ModerationAction:
        """Approve, reject or escalate a queue item.

        Raises:
            NotFound: If the item does not exist.
            InvalidTransition: If the item's status does not allow ``action``,
                including when a concurrent disposition got there first.
            ConfigurationError: If ``action`` is not a known disposition.
        """
        dispose_action = parse_dispose_action(action)
        target_status = dispose_action.target_status
        now = utcnow_iso()

        async with self._db.transaction() as conn:
            item = await ModerationQueueRepo.get(conn, item_id)
            if item is None:
                raise NotFound("queue item", item_id)
            if not can_transition(item.status, target_status):
                raise InvalidTransition(item_id, item.status.value, dispose_action.value)

            swapped = await ModerationQueueRepo.compare_and_set_status(
                conn, item_id, item.status, target_status, moderator_id, now, notes
            )
            if not swapped:
                current = await ModerationQueueRepo.get(conn, item_id)
                current_status = current.status.value if current else "missing"
                raise InvalidTransition(item_id, current_status, dispose_action.value)

            audit = ModerationAction(
                id=new_id(),
                organization_id=item.organization_id,
                community_id=item.community_id,
                queue_item_id=item.id,
                rule_id=item.rule_ids[0] if item.rule_ids else None,
                action_type=dispose_action.value,
                target_type=item.content_type,
                target_id=item.content_id,
                performed_by=moderator_id,
                reason=notes or item.reason,
                created_at=now,
            )
            await ModerationActionRepo.append(conn, audit)

        logger.info("[QUEUE] %s %s queue item %s (%s -> %s)", moderator_id, dispose_action, item_id, item.status, target_status)
        return audit

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _page_size(self, limit: int | None) -> int:
        if limit is None:
            return self._default_page_size
        return max(1, min(int(limit), self._max_page_size))

    async def list_queue(
        self,
        organization_id: str,
        status: QueueStatus | str | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> List[ModerationQueueItem]:
        """Queue items, pending first, then by priority (highest first), then oldest first."""
        if status is not None:
            status = parse_queue_status(status)
        async with self._db.read() as conn:
            return await ModerationQueueRepo.list_for_organization(
                conn, organization_id, status, self._page_size(limit), max(0, int(offset))
            )

    async def get_item(self, item_id: str) -> ModerationQueueItem:
        async with self._db.read() as conn:
            item = await ModerationQueueRepo.get(conn, item_id)
        if item is None:
            raise NotFound("queue item", item_id)
        return item

    async def items_for_content(self, content_id: str) -> List[ModerationQueueItem]:
        async with self._db.read() as conn:
            return await ModerationQueueRepo.list_for_content(conn, content_id)

    async def actions_for_item(self, item_id: str) -> List[ModerationAction]:
        async with self._db.read() as conn:
            return await ModerationActionRepo.list_for_queue_item(conn, item_id)

    # ------------------------------------------------------------------
    # Enqueue follow-ups
    # ------------------------------------------------------------------

    async def pending_followups(self, content_id: str) -> List[ModerationQueueItem]:
        """Items of ``content_id`` whose auto-action and notification have not completed.

        An item keeps this mark from the moment it is enqueued until
        :meth:`complete_followup` runs, so an ingestion interrupted after the
        enqueue finds its unfinished work again on retry.
        """
        async with self._db.read() as conn:
            return await ModerationQueueRepo.list_pending_followups(conn, content_id)

    async def complete_followup(self, item_id: str) -> None:
        async with self._db.transaction() as conn:
            await ModerationQueueRepo.clear_followup(conn, item_id)

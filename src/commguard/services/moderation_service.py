"""
Moderation Service.

The single entry point the outer application talks to. It wires ingestion
through the rule evaluator into the queue, runs automatic actions, keeps the
community counters up to date and fans events out to automation rules.

Internal failures (a malformed rule, an unavailable oracle) never fail an
ingestion; they are logged by the component that hit them. Storage failures
surface as :class:`~commguard.errors.PersistenceError`, and re-ingesting the
same item afterwards is safe: enqueueing is idempotent and unfinished
follow-up work is picked up again.
"""

from __future__ import annotations

from typing import Any, Dict, List

from commguard.automation.automation_runner import AutomationRunner
from commguard.community.community_tracker import CommunityTracker
from commguard.community.health_scorer import HealthScorer
from commguard.configuration.app_configuration import AppConfig
from commguard.database.db_cache import DatabaseQueryCache
from commguard.database.db_connection import ConnectionManager
from commguard.datatypes.automation_datatypes import AutomationExecution, AutomationRule, TriggerType
from commguard.datatypes.community_datatypes import Community
from commguard.datatypes.content_datatypes import ContentItem, ContentTarget, ContentType
from commguard.datatypes.queue_datatypes import (
    SYSTEM_ACTOR,
    ActionResult,
    DisposeAction,
    ModerationAction,
    ModerationQueueItem,
    QueueStatus,
    Violation,
    parse_dispose_action,
)
from commguard.datatypes.rule_datatypes import AutoAction, ModerationRule, RuleType
from commguard.errors import CommguardError, InvalidTransition, PersistenceError
from commguard.moderation.action_executor import ActionExecutor
from commguard.moderation.content_store import ContentStore, SQLiteContentStore
from commguard.moderation.moderation_queue import ModerationQueue
from commguard.moderation.moderation_stats import ModerationStats, get_moderation_stats
from commguard.moderation.notifier import LoggingNotifier, ModeratorNotifier
from commguard.moderation.rule_evaluator import RuleEvaluator
from commguard.moderation.rule_store import RuleStore
from commguard.moderation.rule_templates import RuleTemplate, get_template, list_templates
from commguard.oracle.scoring_oracle import ScoringOracleAdapter, build_oracle_adapter
from commguard.util.logger import get_logger

logger = get_logger("moderation_service")


class ModerationService:
    """Facade over the moderation core."""

    def __init__(
        self,
        db: ConnectionManager,
        rule_store: RuleStore,
        evaluator: RuleEvaluator,
        queue: ModerationQueue,
        executor: ActionExecutor,
        health_scorer: HealthScorer,
        communities: CommunityTracker,
        automation: AutomationRunner,
        notifier: ModeratorNotifier,
    ) -> None:
        self._db = db
        self.rule_store = rule_store
        self.evaluator = evaluator
        self.queue = queue
        self.executor = executor
        self.health_scorer = health_scorer
        self.communities = communities
        self.automation = automation
        self._notifier = notifier

    # ------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------

    async def ingest_content(self, item: ContentItem) -> List[ModerationQueueItem]:
        """Evaluate an ingested item and queue it if it violates any rule.

        Returns the queue item created by this call. If every matched rule
        had already queued this content before, the existing queue items for
        the content are returned instead; an item without violations yields
        an empty list.

        The follow-up work (auto-action, moderator notification, automation
        triggers) is tracked in storage and only marked done once it
        succeeded, so calling this again after a
        :class:`~commguard.errors.PersistenceError` finishes whatever the
        failed call left undone.
        """
        rules = await self.rule_store.rules_for_item(item)
        report = await self.evaluator.evaluate_with_report(item, rules)
        for warning in report.warnings:
            logger.debug("[INGEST] Content %s: %s", item.id, warning)

        sentiment = report.scores.sentiment if report.scores is not None else None
        await self.communities.record_content(item, sentiment)

        queued = await self.queue.enqueue(report.violations, item)
        for pending in await self.queue.pending_followups(item.id):
            await self._complete_followup(pending, report.violations)

        await self._dispatch_pending_triggers(item)

        if queued is not None:
            return [queued]
        if report.violations:
            return await self.queue.items_for_content(item.id)
        return []

    async def _complete_followup(self, queued: ModerationQueueItem, violations: List[Violation]) -> None:
        if queued.auto_action is not AutoAction.NONE and not await self._auto_action_applied(queued):
            await self.executor.execute(
                queued.auto_action,
                queued.target,
                organization_id=queued.organization_id,
                community_id=queued.community_id,
                queue_item_id=queued.id,
                rule_id=queued.rule_ids[0] if queued.rule_ids else None,
                performed_by=SYSTEM_ACTOR,
                reason=queued.reason,
            )

        if any(v.notify_moderators for v in violations if v.rule_id in queued.rule_ids):
            await self._notifier.notify(
                queued.organization_id,
                "Content flagged for review",
                {
                    "queue_item_id": queued.id,
                    "content_id": queued.content_id,
                    "priority": queued.priority,
                    "reason": queued.reason,
                },
            )

        await self.queue.complete_followup(queued.id)

    async def _auto_action_applied(self, queued: ModerationQueueItem) -> bool:
        for action in await self.queue.actions_for_item(queued.id):
            if action.performed_by == SYSTEM_ACTOR and action.action_type == queued.auto_action.value:
                return True
        return False

    async def _dispatch_pending_triggers(self, item: ContentItem) -> None:
        pending, sentiment = await self.communities.pending_triggers(item.id)
        if not pending:
            return

        trigger_data: Dict[str, Any] = {
            "content_id": item.id,
            "content_type": item.type.value,
            "community_id": item.community_id,
            "author_id": item.author_id,
            "text": item.text,
        }
        triggers = [TriggerType.NEW_MESSAGE, TriggerType.KEYWORD_MATCH]
        if sentiment is not None:
            trigger_data["sentiment"] = sentiment
            triggers.append(TriggerType.SENTIMENT_CHANGE)

        for trigger in triggers:
            try:
                await self.automation.dispatch_trigger(item.organization_id, trigger, trigger_data)
            except PersistenceError:
                raise
            except CommguardError as exc:
                logger.error("[INGEST] %s automations failed for content %s: %s", trigger, item.id, exc)

        await self.communities.mark_triggers_dispatched(item.id)

    # ------------------------------------------------------
    # Queue
    # ------------------------------------------------------

    async def list_queue(
        self,
        organization_id: str,
        status: QueueStatus | str | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> List[ModerationQueueItem]:
        return await self.queue.list_queue(organization_id, status, limit, offset)

    async def get_queue_item(self, item_id: str) -> ModerationQueueItem:
        return await self.queue.get_item(item_id)

    async def add_to_queue(
        self,
        organization_id: str,
        content_type: str,
        content_id: str,
        reason: str,
        priority: int = 1,
        **details: Any,
    ) -> ModerationQueueItem:
        return await self.queue.add_manual(organization_id, content_type, content_id, reason, priority, **details)

    async def dispose(
        self,
        item_id: str,
        action: DisposeAction | str,
        moderator_id: str,
        notes: str | None = None,
    ) -> ModerationAction:
        """Approve, reject or escalate a queue item.

        Rejecting a message also deletes it through the action executor. If
        that delete failed after the rejection was committed, rejecting the
        item again completes the delete instead of raising
        :class:`~commguard.errors.InvalidTransition`.
        """
        dispose_action = parse_dispose_action(action)
        try:
            audit = await self.queue.dispose(item_id, dispose_action, moderator_id, notes)
        except InvalidTransition:
            audit = await self._unfinished_rejection(item_id) if dispose_action is DisposeAction.REJECT else None
            if audit is None:
                raise
            logger.warning("[QUEUE] Completing the delete of rejected queue item %s", item_id)
            await self._delete_rejected(audit)
            return audit

        if dispose_action is DisposeAction.REJECT and audit.target_type == ContentType.MESSAGE.value:
            await self._delete_rejected(audit)
        return audit

    async def _unfinished_rejection(self, item_id: str) -> ModerationAction | None:
        """The reject audit of a rejected message whose delete never got recorded."""
        item = await self.queue.get_item(item_id)
        if item.status is not QueueStatus.REJECTED or item.content_type != ContentType.MESSAGE.value:
            return None

        rejection = None
        for recorded in await self.queue.actions_for_item(item_id):
            if recorded.action_type == AutoAction.DELETE.value:
                return None
            if recorded.action_type == DisposeAction.REJECT.value:
                rejection = recorded
        return rejection

    async def _delete_rejected(self, audit: ModerationAction) -> None:
        await self.executor.execute(
            AutoAction.DELETE,
            ContentTarget(audit.target_type, audit.target_id),
            organization_id=audit.organization_id,
            community_id=audit.community_id,
            queue_item_id=audit.queue_item_id,
            rule_id=audit.rule_id,
            performed_by=audit.performed_by,
            reason=audit.reason,
        )

    async def execute_action(
        self,
        auto_action: AutoAction | str,
        target: ContentTarget,
        organization_id: str,
        performed_by: str,
        reason: str | None = None,
        community_id: str | None = None,
    ) -> ActionResult:
        return await self.executor.execute(
            auto_action,
            target,
            organization_id=organization_id,
            community_id=community_id,
            performed_by=performed_by,
            reason=reason,
        )

    async def get_moderation_stats(self, organization_id: str, days: int = 30) -> ModerationStats:
        return await get_moderation_stats(self._db, organization_id, days)

    # ------------------------------------------------------
    # Rules
    # ------------------------------------------------------

    async def create_rule(
        self,
        organization_id: str,
        name: str,
        rule_type: RuleType | str,
        conditions: Dict[str, Any],
        actions: Dict[str, Any] | None = None,
        severity: int = 1,
        **details: Any,
    ) -> ModerationRule:
        return await self.rule_store.create_rule(
            organization_id, name, rule_type, conditions, actions, severity, **details
        )

    async def list_rules(
        self,
        organization_id: str,
        community_id: str | None = None,
        *,
        active_only: bool = False,
    ) -> List[ModerationRule]:
        return await self.rule_store.list_rules(organization_id, community_id, active_only=active_only)

    async def set_rule_active(self, rule_id: str, is_active: bool) -> ModerationRule:
        return await self.rule_store.set_rule_active(rule_id, is_active)

    def list_rule_templates(self) -> List[RuleTemplate]:
        return list_templates()

    async def apply_rule_template(
        self,
        template_id: str,
        organization_id: str,
        *,
        community_id: str | None = None,
        name_override: str | None = None,
        created_by: str | None = None,
    ) -> ModerationRule:
        template = get_template(template_id)
        return await self.rule_store.create_rule(
            organization_id,
            name_override or template.name,
            template.rule_type,
            template.conditions,
            template.actions,
            template.severity,
            community_id=community_id,
            description=template.description,
            created_by=created_by,
        )

    # ------------------------------------------------------
    # Automation
    # ------------------------------------------------------

    async def create_automation_rule(
        self,
        organization_id: str,
        name: str,
        trigger_type: TriggerType | str,
        actions: Dict[str, Any],
        trigger_conditions: Dict[str, Any] | None = None,
        **details: Any,
    ) -> AutomationRule:
        return await self.automation.create_rule(
            organization_id, name, trigger_type, actions, trigger_conditions, **details
        )

    async def execute_automation_rule(
        self,
        rule_id: str,
        trigger_data: Dict[str, Any] | None = None,
    ) -> AutomationExecution:
        return await self.automation.execute(rule_id, trigger_data)

    async def dispatch_trigger(
        self,
        organization_id: str,
        trigger_type: TriggerType | str,
        trigger_data: Dict[str, Any],
    ) -> List[AutomationExecution]:
        return await self.automation.dispatch_trigger(organization_id, trigger_type, trigger_data)

    # ------------------------------------------------------
    # Communities and health
    # ------------------------------------------------------

    async def create_community(self, organization_id: str, name: str, **details: Any) -> Community:
        return await self.communities.create_community(organization_id, name, **details)

    async def list_communities(self, organization_id: str | None = None) -> List[Community]:
        return await self.communities.list_communities(organization_id)

    async def record_member_join(self, community_id: str, member_id: str) -> bool:
        joined = await self.communities.record_member_join(community_id, member_id)
        if joined:
            community = await self.communities.get_community(community_id)
            await self.automation.dispatch_trigger(
                community.organization_id,
                TriggerType.NEW_MEMBER,
                {"community_id": community_id, "member_id": member_id},
            )
        return joined

    async def record_member_activity(self, community_id: str, member_id: str) -> None:
        await self.communities.record_member_activity(community_id, member_id)

    async def set_engagement_rate(self, community_id: str, rate: float) -> None:
        await self.communities.set_engagement_rate(community_id, rate)

    async def get_health_score(self, community_id: str) -> int:
        return await self.health_scorer.get_health_score(community_id)

    async def recompute_health_score(self, community_id: str) -> int:
        return await self.health_scorer.recompute(community_id)

    async def recompute_all_health_scores(self, organization_id: str | None = None) -> Dict[str, int]:
        return await self.health_scorer.recompute_all(organization_id)


def build_service(
    db: ConnectionManager,
    config: AppConfig,
    *,
    content_store: ContentStore | None = None,
    notifier: ModeratorNotifier | None = None,
    oracle: ScoringOracleAdapter | None = None,
) -> ModerationService:
    """Wire the moderation core from configuration.

    Collaborators not supplied fall back to the bundled defaults: the SQLite
    content store, the logging notifier and the configured scoring oracle.
    """
    content_store = content_store or SQLiteContentStore(db)
    notifier = notifier or LoggingNotifier()
    oracle = oracle or build_oracle_adapter(config.oracle_settings)

    queue = ModerationQueue(db, config.default_page_size, config.max_page_size)
    executor = ActionExecutor(db, content_store)
    return ModerationService(
        db=db,
        rule_store=RuleStore(db, DatabaseQueryCache(ttl_seconds=config.rules_cache_ttl)),
        evaluator=RuleEvaluator(oracle),
        queue=queue,
        executor=executor,
        health_scorer=HealthScorer(db, config.active_window_days),
        communities=CommunityTracker(db),
        automation=AutomationRunner(db, executor, queue, notifier),
        notifier=notifier,
    )

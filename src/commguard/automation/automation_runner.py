"""Automation Rule Runner: trigger -> action execution for non-content events.

An automation rule's ``actions`` maps handler names to handler configs::

    {
        "send_notification": {"message": "New member joined"},
        "flag_content": {"priority": 3, "reason": "Needs a look"},
        "auto_moderate": {"action": "hide"},
    }

Each handler runs independently. Unknown handler names are recorded as
``{"status": "skipped"}``; a handler that raises is recorded as
``{"status": "failed", "error": ...}`` and the remaining handlers still run.
Every call to :meth:`AutomationRunner.execute` persists an
:class:`AutomationExecution`, including when the rule is missing or inactive.
"""

from __future__ import annotations

import time
from typing import Any, Awaitable, Callable, Dict, List

import jsonschema
from jsonschema import ValidationError

from commguard.database.db_connection import ConnectionManager
from commguard.datatypes.automation_datatypes import AutomationExecution, AutomationRule, TriggerType
from commguard.datatypes.content_datatypes import ContentTarget
from commguard.datatypes.queue_datatypes import SYSTEM_ACTOR
from commguard.datatypes.rule_datatypes import AutoAction, Comparator, parse_auto_action
from commguard.errors import ConfigurationError, NotFound
from commguard.moderation.action_executor import ActionExecutor
from commguard.moderation.moderation_queue import ModerationQueue
from commguard.moderation.notifier import ModeratorNotifier
from commguard.repositories.automation_repo import AutomationExecutionRepo, AutomationRuleRepo
from commguard.util.logger import get_logger
from commguard.util.record_utils import new_id, utcnow_iso

logger = get_logger("automation_runner")

Handler = Callable[[AutomationRule, Dict[str, Any], Dict[str, Any]], Awaitable[Dict[str, Any]]]

AUTOMATION_RULE_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "trigger_conditions": {
            "type": "object",
            "properties": {
                "keywords": {"type": "array", "items": {"type": "string", "minLength": 1}},
                "threshold": {"type": "number"},
                "comparator": {"type": "string", "enum": ["gte", "lte"]},
            },
        },
        "actions": {
            "type": "object",
            "minProperties": 1,
            "additionalProperties": {"type": "object"},
        },
    },
    "required": ["actions"],
}

DEFAULT_SENTIMENT_THRESHOLD = -0.5


def parse_trigger_type(value: TriggerType | str) -> TriggerType:
    if isinstance(value, TriggerType):
        return value
    try:
        return TriggerType(str(value))
    except ValueError as exc:
        raise ConfigurationError(f"Unknown trigger type '{value}'") from exc


def trigger_matches(rule: AutomationRule, trigger_type: TriggerType, trigger_data: Dict[str, Any]) -> bool:
    """Whether an active rule should fire for this trigger event."""
    if not rule.is_active or rule.trigger_type is not trigger_type:
        return False
    if rule.community_id is not None and rule.community_id != trigger_data.get("community_id"):
        return False

    conditions = rule.trigger_conditions or {}

    if trigger_type is TriggerType.KEYWORD_MATCH:
        text = str(trigger_data.get("text") or "").lower()
        keywords = [str(k).lower() for k in conditions.get("keywords") or []]
        return any(keyword in text for keyword in keywords if keyword)

    if trigger_type is TriggerType.SENTIMENT_CHANGE:
        sentiment = trigger_data.get("sentiment")
        if sentiment is None:
            return False
        threshold = float(conditions.get("threshold", DEFAULT_SENTIMENT_THRESHOLD))
        comparator = Comparator(conditions.get("comparator", Comparator.LTE.value))
        return comparator.compare(float(sentiment), threshold)

    return True


def _content_target(trigger_data: Dict[str, Any]) -> ContentTarget:
    """The content (or member) a trigger event is about."""
    if trigger_data.get("content_id"):
        return ContentTarget(str(trigger_data.get("content_type") or "message"), str(trigger_data["content_id"]))
    if trigger_data.get("member_id"):
        return ContentTarget("user", str(trigger_data["member_id"]))
    raise ValueError("trigger data names neither content_id nor member_id")


class AutomationRunner:
    """Creates, matches and executes automation rules."""

    def __init__(
        self,
        db: ConnectionManager,
        executor: ActionExecutor,
        queue: ModerationQueue,
        notifier: ModeratorNotifier,
    ) -> None:
        self._db = db
        self._executor = executor
        self._queue = queue
        self._notifier = notifier
        self._handlers: Dict[str, Handler] = {
            "send_notification": self._send_notification,
            "flag_content": self._flag_content,
            "auto_moderate": self._auto_moderate,
        }

    # ------------------------------------------------------------------
    # Rule management
    # ------------------------------------------------------------------

    async def create_rule(
        self,
        organization_id: str,
        name: str,
        trigger_type: TriggerType | str,
        actions: Dict[str, Any],
        trigger_conditions: Dict[str, Any] | None = None,
        *,
        community_id: str | None = None,
        description: str | None = None,
        created_by: str | None = None,
        is_active: bool = True,
    ) -> AutomationRule:
        """Validate and persist an automation rule.

        Raises:
            ConfigurationError: If the trigger type, conditions or actions are malformed.
        """
        if not name or not name.strip():
            raise ConfigurationError("Automation rule name must not be empty")
        parsed_trigger = parse_trigger_type(trigger_type)
        trigger_conditions = trigger_conditions or {}
        try:
            jsonschema.validate(
                instance={"trigger_conditions": trigger_conditions, "actions": actions},
                schema=AUTOMATION_RULE_SCHEMA,
            )
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid automation rule: {exc.message}") from exc

        rule = AutomationRule(
            id=new_id(),
            organization_id=organization_id,
            community_id=community_id,
            name=name.strip(),
            description=description,
            trigger_type=parsed_trigger,
            trigger_conditions=dict(trigger_conditions),
            actions=dict(actions),
            is_active=is_active,
            created_by=created_by,
        )
        async with self._db.transaction() as conn:
            await AutomationRuleRepo.insert(conn, rule)

        logger.info("[AUTOMATION] Created %s rule '%s' (%s)", rule.trigger_type, rule.name, rule.id)
        return rule

    async def get_rule(self, rule_id: str) -> AutomationRule:
        async with self._db.read() as conn:
            rule = await AutomationRuleRepo.get(conn, rule_id)
        if rule is None:
            raise NotFound("automation rule", rule_id)
        return rule

    async def list_executions(self, rule_id: str) -> List[AutomationExecution]:
        async with self._db.read() as conn:
            return await AutomationExecutionRepo.list_for_rule(conn, rule_id)

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def execute(self, rule_id: str, trigger_data: Dict[str, Any] | None = None) -> AutomationExecution:
        """Run every action of a rule and persist the execution record."""
        trigger_data = dict(trigger_data or {})
        started = time.perf_counter()

        async with self._db.read() as conn:
            rule = await AutomationRuleRepo.get(conn, rule_id)

        if rule is None or not rule.is_active:
            error = f"Automation rule {rule_id} not found" if rule is None else f"Automation rule {rule_id} is inactive"
            logger.warning("[AUTOMATION] %s", error)
            execution = AutomationExecution(
                id=new_id(),
                rule_id=rule_id,
                trigger_data=trigger_data,
                actions_executed={},
                success=False,
                error_message=error,
                execution_time_ms=0,
            )
            async with self._db.transaction() as conn:
                await AutomationExecutionRepo.append(conn, execution)
            return execution

        results: Dict[str, Any] = {}
        for action_name, config in rule.actions.items():
            handler = self._handlers.get(action_name)
            if handler is None:
                results[action_name] = {"status": "skipped", "reason": "Unknown action type"}
                continue
            try:
                results[action_name] = await handler(rule, config if isinstance(config, dict) else {}, trigger_data)
            except Exception as exc:
                logger.warning("[AUTOMATION] Action %s of rule %s failed: %s", action_name, rule.id, exc)
                results[action_name] = {"status": "failed", "error": str(exc)}

        execution = AutomationExecution(
            id=new_id(),
            rule_id=rule.id,
            trigger_data=trigger_data,
            actions_executed=results,
            success=True,
            execution_time_ms=int((time.perf_counter() - started) * 1000),
        )
        async with self._db.transaction() as conn:
            await AutomationExecutionRepo.append(conn, execution)
            await AutomationRuleRepo.record_success(conn, rule.id, execution.created_at)

        logger.info("[AUTOMATION] Executed rule '%s' (%s): %s", rule.name, rule.id, results)
        return execution

    async def dispatch_trigger(
        self,
        organization_id: str,
        trigger_type: TriggerType | str,
        trigger_data: Dict[str, Any],
    ) -> List[AutomationExecution]:
        """Execute every active rule of the organization that matches the event."""
        parsed_trigger = parse_trigger_type(trigger_type)
        async with self._db.read() as conn:
            rules = await AutomationRuleRepo.list_active_for_trigger(conn, organization_id, parsed_trigger)

        executions: List[AutomationExecution] = []
        for rule in rules:
            if trigger_matches(rule, parsed_trigger, trigger_data):
                executions.append(await self.execute(rule.id, trigger_data))
        return executions

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    async def _send_notification(
        self, rule: AutomationRule, config: Dict[str, Any], trigger_data: Dict[str, Any]
    ) -> Dict[str, Any]:
        subject = str(config.get("message") or f"Automation '{rule.name}' triggered")
        await self._notifier.notify(rule.organization_id, subject, {"rule_id": rule.id, **trigger_data})
        return {"status": "sent", "recipients": config.get("recipients", "moderators")}

    async def _flag_content(
        self, rule: AutomationRule, config: Dict[str, Any], trigger_data: Dict[str, Any]
    ) -> Dict[str, Any]:
        target = _content_target(trigger_data)
        item = await self._queue.add_manual(
            rule.organization_id,
            target.target_type,
            target.target_id,
            reason=str(config.get("reason") or f"Automation: {rule.name}"),
            priority=int(config.get("priority", 1)),
            community_id=trigger_data.get("community_id"),
            content_text=trigger_data.get("text"),
            author_id=trigger_data.get("author_id"),
        )
        return {"status": "flagged", "queue_item_id": item.id}

    async def _auto_moderate(
        self, rule: AutomationRule, config: Dict[str, Any], trigger_data: Dict[str, Any]
    ) -> Dict[str, Any]:
        action = parse_auto_action(config.get("action", AutoAction.HIDE.value))
        result = await self._executor.execute(
            action,
            _content_target(trigger_data),
            organization_id=rule.organization_id,
            community_id=trigger_data.get("community_id"),
            performed_by=SYSTEM_ACTOR,
            reason=f"Automation rule '{rule.name}'",
        )
        return {"status": "executed", "action": action.value, "applied": result.applied, "audit_id": result.audit.id}

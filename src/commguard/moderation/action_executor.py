"""Action Executor: apply an automatic action to a content target and audit it.

Each auto action maps to exactly one content store side effect (``none`` has
none). The store is idempotent, so re-running an action on an already
actioned target mutates nothing, but every call still appends a
:class:`ModerationAction` to the audit trail.
"""

from __future__ import annotations

from typing import Awaitable, Callable, Dict

from commguard.database.db_connection import ConnectionManager
from commguard.datatypes.content_datatypes import ContentTarget
from commguard.datatypes.queue_datatypes import SYSTEM_ACTOR, ActionResult, ModerationAction
from commguard.datatypes.rule_datatypes import AutoAction, parse_auto_action
from commguard.moderation.content_store import ContentStore
from commguard.repositories.action_repo import ModerationActionRepo
from commguard.util.logger import get_logger
from commguard.util.record_utils import new_id, utcnow_iso

logger = get_logger("action_executor")


class ActionExecutor:
    """Applies delete/hide/warn/none and writes the audit record."""

    def __init__(self, db: ConnectionManager, content_store: ContentStore) -> None:
        self._db = db
        self._store = content_store
        self._handlers: Dict[AutoAction, Callable[[ContentTarget], Awaitable[bool]]] = {
            AutoAction.DELETE: content_store.delete,
            AutoAction.HIDE: content_store.hide,
            AutoAction.WARN: content_store.warn,
        }

    async def execute(
        self,
        auto_action: AutoAction | str,
        target: ContentTarget,
        *,
        organization_id: str,
        community_id: str | None = None,
        queue_item_id: str | None = None,
        rule_id: str | None = None,
        performed_by: str = SYSTEM_ACTOR,
        reason: str | None = None,
    ) -> ActionResult:
        """Run ``auto_action`` against ``target``.

        Raises:
            ConfigurationError: If ``auto_action`` is not a known action.
            PersistenceError: If the audit record cannot be written.
        """
        action = parse_auto_action(auto_action)

        handler = self._handlers.get(action)
        applied = await handler(target) if handler is not None else False

        audit = ModerationAction(
            id=new_id(),
            organization_id=organization_id,
            community_id=community_id,
            queue_item_id=queue_item_id,
            rule_id=rule_id,
            action_type=action.value,
            target_type=target.target_type,
            target_id=target.target_id,
            performed_by=performed_by,
            reason=reason,
            created_at=utcnow_iso(),
        )
        async with self._db.transaction() as conn:
            await ModerationActionRepo.append(conn, audit)

        logger.info(
            "[ACTION EXECUTOR] %s on %s by %s (%s)",
            action,
            target,
            performed_by,
            "applied" if applied else "no change",
        )
        return ActionResult(action=action, target=target, applied=applied, audit=audit)

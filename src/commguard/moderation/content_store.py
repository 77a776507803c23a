"""Content store: where delete/hide/warn side effects land.

The real store belongs to the platform integration. Implementations must be
idempotent by ``(target_type, target_id)``: repeating an action on a target
that already carries it changes nothing and returns False.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List

from commguard.database.db_connection import ConnectionManager
from commguard.datatypes.content_datatypes import ContentTarget
from commguard.repositories.content_action_repo import ContentActionRepo
from commguard.util.logger import get_logger
from commguard.util.record_utils import utcnow_iso

logger = get_logger("content_store")


class ContentStore(ABC):
    """Side-effect interface of the external content store."""

    @abstractmethod
    async def delete(self, target: ContentTarget) -> bool:
        """Delete the target. Returns True if this call changed anything."""

    @abstractmethod
    async def hide(self, target: ContentTarget) -> bool:
        """Hide the target from other members."""

    @abstractmethod
    async def warn(self, target: ContentTarget) -> bool:
        """Warn the author of the target."""


class SQLiteContentStore(ContentStore):
    """Records side effects in the ``content_actions`` table.

    Used when no platform integration is wired in, and by the tests.
    """

    def __init__(self, db: ConnectionManager) -> None:
        self._db = db

    async def _apply(self, target: ContentTarget, action: str) -> bool:
        async with self._db.transaction() as conn:
            applied = await ContentActionRepo.apply(conn, target.target_type, target.target_id, action, utcnow_iso())
        if applied:
            logger.info("[CONTENT STORE] %s applied to %s", action, target)
        else:
            logger.debug("[CONTENT STORE] %s already applied to %s", action, target)
        return applied

    async def delete(self, target: ContentTarget) -> bool:
        return await self._apply(target, "delete")

    async def hide(self, target: ContentTarget) -> bool:
        return await self._apply(target, "hide")

    async def warn(self, target: ContentTarget) -> bool:
        return await self._apply(target, "warn")

    async def applied_actions(self, target: ContentTarget) -> List[str]:
        async with self._db.read() as conn:
            return await ContentActionRepo.applied_actions(conn, target.target_type, target.target_id)

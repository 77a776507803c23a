"""Moderator notifications.

Delivery (email, WebSocket fan-out) lives outside the core; the default
notifier only writes to the log.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict

from commguard.util.logger import get_logger

logger = get_logger("moderator_notifier")


class ModeratorNotifier(ABC):
    @abstractmethod
    async def notify(self, organization_id: str, subject: str, details: Dict[str, Any]) -> None:
        """Tell the organization's moderators about ``subject``."""


class LoggingNotifier(ModeratorNotifier):
    async def notify(self, organization_id: str, subject: str, details: Dict[str, Any]) -> None:
        logger.info("[NOTIFY] org=%s %s %s", organization_id, subject, details)

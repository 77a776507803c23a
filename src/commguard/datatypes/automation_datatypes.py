"""
Automation rules: generalized trigger -> action pairs outside the content path.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict

from commguard.util.record_utils import utcnow_iso


class TriggerType(Enum):
    NEW_MESSAGE = "new_message"
    NEW_MEMBER = "new_member"
    KEYWORD_MATCH = "keyword_match"
    SENTIMENT_CHANGE = "sentiment_change"

    def __str__(self) -> str:
        return self.value


@dataclass(slots=True)
class AutomationRule:
    """
    An operator-defined automation.

    ``actions`` maps a handler name (``send_notification``, ``flag_content``,
    ``auto_moderate``) to that handler's configuration mapping.
    """

    id: str
    organization_id: str
    name: str
    trigger_type: TriggerType
    trigger_conditions: Dict[str, Any] = field(default_factory=dict)
    actions: Dict[str, Any] = field(default_factory=dict)
    is_active: bool = True
    community_id: str | None = None
    description: str | None = None
    execution_count: int = 0
    last_executed_at: str | None = None
    created_by: str | None = None
    created_at: str = field(default_factory=utcnow_iso)
    updated_at: str = field(default_factory=utcnow_iso)


@dataclass(frozen=True, slots=True)
class AutomationExecution:
    """Append-only record of one automation run, persisted for failures too."""

    id: str
    rule_id: str
    trigger_data: Dict[str, Any]
    actions_executed: Dict[str, Any]
    success: bool
    error_message: str | None = None
    execution_time_ms: int = 0
    created_at: str = field(default_factory=utcnow_iso)

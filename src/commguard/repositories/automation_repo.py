"""
Persistent storage for automation rules and their execution history.
"""

from __future__ import annotations

from typing import List

import aiosqlite

from commguard.datatypes.automation_datatypes import AutomationExecution, AutomationRule, TriggerType
from commguard.util.record_utils import dump_json, load_json

_RULE_COLUMNS = (
    "id, organization_id, community_id, name, description, trigger_type, trigger_conditions, "
    "actions, is_active, execution_count, last_executed_at, created_by, created_at, updated_at"
)

_EXECUTION_COLUMNS = (
    "id, rule_id, trigger_data, actions_executed, success, error_message, execution_time_ms, created_at"
)


def _row_to_rule(row: aiosqlite.Row) -> AutomationRule:
    return AutomationRule(
        id=row["id"],
        organization_id=row["organization_id"],
        community_id=row["community_id"],
        name=row["name"],
        description=row["description"],
        trigger_type=TriggerType(row["trigger_type"]),
        trigger_conditions=load_json(row["trigger_conditions"]),
        actions=load_json(row["actions"]),
        is_active=bool(row["is_active"]),
        execution_count=int(row["execution_count"]),
        last_executed_at=row["last_executed_at"],
        created_by=row["created_by"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _row_to_execution(row: aiosqlite.Row) -> AutomationExecution:
    return AutomationExecution(
        id=row["id"],
        rule_id=row["rule_id"],
        trigger_data=load_json(row["trigger_data"]),
        actions_executed=load_json(row["actions_executed"]),
        success=bool(row["success"]),
        error_message=row["error_message"],
        execution_time_ms=int(row["execution_time_ms"]),
        created_at=row["created_at"],
    )


class AutomationRuleRepo:
    """CRUD for ``automation_rules``."""

    @staticmethod
    async def insert(conn: aiosqlite.Connection, rule: AutomationRule) -> None:
        await conn.execute(
            f"INSERT INTO automation_rules ({_RULE_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                rule.id,
                rule.organization_id,
                rule.community_id,
                rule.name,
                rule.description,
                rule.trigger_type.value,
                dump_json(rule.trigger_conditions),
                dump_json(rule.actions),
                int(rule.is_active),
                rule.execution_count,
                rule.last_executed_at,
                rule.created_by,
                rule.created_at,
                rule.updated_at,
            ),
        )

    @staticmethod
    async def get(conn: aiosqlite.Connection, rule_id: str) -> AutomationRule | None:
        cursor = await conn.execute(f"SELECT {_RULE_COLUMNS} FROM automation_rules WHERE id = ?", (rule_id,))
        row = await cursor.fetchone()
        return _row_to_rule(row) if row else None

    @staticmethod
    async def list_active_for_trigger(
        conn: aiosqlite.Connection,
        organization_id: str,
        trigger_type: TriggerType,
    ) -> List[AutomationRule]:
        cursor = await conn.execute(
            f"SELECT {_RULE_COLUMNS} FROM automation_rules "
            "WHERE organization_id = ? AND trigger_type = ? AND is_active = 1 "
            "ORDER BY created_at ASC, rowid ASC",
            (organization_id, trigger_type.value),
        )
        return [_row_to_rule(row) for row in await cursor.fetchall()]

    @staticmethod
    async def record_success(conn: aiosqlite.Connection, rule_id: str, executed_at: str) -> None:
        """Bump ``execution_count`` atomically and stamp ``last_executed_at``."""
        await conn.execute(
            """
            UPDATE automation_rules
            SET execution_count = execution_count + 1, last_executed_at = ?, updated_at = ?
            WHERE id = ?
            """,
            (executed_at, executed_at, rule_id),
        )


class AutomationExecutionRepo:
    """Append-only access to ``automation_executions``."""

    @staticmethod
    async def append(conn: aiosqlite.Connection, execution: AutomationExecution) -> None:
        await conn.execute(
            f"INSERT INTO automation_executions ({_EXECUTION_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            (
                execution.id,
                execution.rule_id,
                dump_json(execution.trigger_data),
                dump_json(execution.actions_executed),
                int(execution.success),
                execution.error_message,
                execution.execution_time_ms,
                execution.created_at,
            ),
        )

    @staticmethod
    async def list_for_rule(conn: aiosqlite.Connection, rule_id: str) -> List[AutomationExecution]:
        cursor = await conn.execute(
            f"SELECT {_EXECUTION_COLUMNS} FROM automation_executions WHERE rule_id = ? "
            "ORDER BY created_at ASC, rowid ASC",
            (rule_id,),
        )
        return [_row_to_execution(row) for row in await cursor.fetchall()]

"""
Persistent storage for moderation rules.

``conditions`` and ``actions`` are stored as JSON produced by the typed
variants' ``to_dict()``; rows are rebuilt without re-validation.
"""

from __future__ import annotations

from typing import List

import aiosqlite

from commguard.datatypes.rule_datatypes import (
    ModerationRule,
    RuleType,
    parse_actions,
    parse_conditions,
)
from commguard.util.record_utils import dump_json, load_json, utcnow_iso

_COLUMNS = (
    "id, organization_id, community_id, name, description, rule_type, conditions, "
    "actions, severity, is_active, created_by, created_at, updated_at"
)


def _row_to_rule(row: aiosqlite.Row) -> ModerationRule:
    rule_type = RuleType(row["rule_type"])
    return ModerationRule(
        id=row["id"],
        organization_id=row["organization_id"],
        community_id=row["community_id"],
        name=row["name"],
        description=row["description"],
        rule_type=rule_type,
        conditions=parse_conditions(rule_type, load_json(row["conditions"]), strict=False),
        actions=parse_actions(load_json(row["actions"]), strict=False),
        severity=int(row["severity"]),
        is_active=bool(row["is_active"]),
        created_by=row["created_by"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class ModerationRuleRepo:
    """Low-level CRUD for the ``moderation_rules`` table."""

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    @staticmethod
    async def insert(conn: aiosqlite.Connection, rule: ModerationRule) -> None:
        await conn.execute(
            f"INSERT INTO moderation_rules ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                rule.id,
                rule.organization_id,
                rule.community_id,
                rule.name,
                rule.description,
                rule.rule_type.value,
                dump_json(rule.conditions.to_dict()),
                dump_json(rule.actions.to_dict()),
                rule.severity,
                int(rule.is_active),
                rule.created_by,
                rule.created_at,
                rule.updated_at,
            ),
        )

    @staticmethod
    async def set_active(conn: aiosqlite.Connection, rule_id: str, is_active: bool) -> bool:
        """Toggle a rule; returns False if no such rule exists."""
        cursor = await conn.execute(
            "UPDATE moderation_rules SET is_active = ?, updated_at = ? WHERE id = ?",
            (int(is_active), utcnow_iso(), rule_id),
        )
        return cursor.rowcount > 0

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @staticmethod
    async def get(conn: aiosqlite.Connection, rule_id: str) -> ModerationRule | None:
        cursor = await conn.execute(f"SELECT {_COLUMNS} FROM moderation_rules WHERE id = ?", (rule_id,))
        row = await cursor.fetchone()
        return _row_to_rule(row) if row else None

    @staticmethod
    async def list_for_organization(
        conn: aiosqlite.Connection,
        organization_id: str,
        community_id: str | None = None,
        *,
        active_only: bool = True,
    ) -> List[ModerationRule]:
        """Rules of an organization, most severe first.

        With ``community_id`` only that community's rules are returned.
        """
        query = f"SELECT {_COLUMNS} FROM moderation_rules WHERE organization_id = ?"
        params: list = [organization_id]
        if active_only:
            query += " AND is_active = 1"
        if community_id is not None:
            query += " AND community_id = ?"
            params.append(community_id)
        query += " ORDER BY severity DESC, created_at ASC, rowid ASC"

        cursor = await conn.execute(query, params)
        return [_row_to_rule(row) for row in await cursor.fetchall()]

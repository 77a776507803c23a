"""
Append-only storage for the moderation audit trail.

There is deliberately no update or delete here.
"""

from __future__ import annotations

from typing import List

import aiosqlite

from commguard.datatypes.queue_datatypes import ModerationAction

_COLUMNS = (
    "id, organization_id, community_id, queue_item_id, rule_id, action_type, "
    "target_type, target_id, performed_by, reason, created_at"
)


def _row_to_action(row: aiosqlite.Row) -> ModerationAction:
    return ModerationAction(
        id=row["id"],
        organization_id=row["organization_id"],
        community_id=row["community_id"],
        queue_item_id=row["queue_item_id"],
        rule_id=row["rule_id"],
        action_type=row["action_type"],
        target_type=row["target_type"],
        target_id=row["target_id"],
        performed_by=row["performed_by"],
        reason=row["reason"],
        created_at=row["created_at"],
    )


class ModerationActionRepo:
    """Append and query ``moderation_actions``."""

    @staticmethod
    async def append(conn: aiosqlite.Connection, action: ModerationAction) -> None:
        await conn.execute(
            f"INSERT INTO moderation_actions ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                action.id,
                action.organization_id,
                action.community_id,
                action.queue_item_id,
                action.rule_id,
                action.action_type,
                action.target_type,
                action.target_id,
                action.performed_by,
                action.reason,
                action.created_at,
            ),
        )

    @staticmethod
    async def list_for_queue_item(conn: aiosqlite.Connection, queue_item_id: str) -> List[ModerationAction]:
        cursor = await conn.execute(
            f"SELECT {_COLUMNS} FROM moderation_actions WHERE queue_item_id = ? ORDER BY created_at ASC, rowid ASC",
            (queue_item_id,),
        )
        return [_row_to_action(row) for row in await cursor.fetchall()]

    @staticmethod
    async def list_for_target(
        conn: aiosqlite.Connection,
        target_type: str,
        target_id: str,
    ) -> List[ModerationAction]:
        cursor = await conn.execute(
            f"SELECT {_COLUMNS} FROM moderation_actions WHERE target_type = ? AND target_id = ? "
            "ORDER BY created_at ASC, rowid ASC",
            (target_type, target_id),
        )
        return [_row_to_action(row) for row in await cursor.fetchall()]

    @staticmethod
    async def list_since(conn: aiosqlite.Connection, organization_id: str, since: str) -> List[ModerationAction]:
        cursor = await conn.execute(
            f"SELECT {_COLUMNS} FROM moderation_actions WHERE organization_id = ? AND created_at >= ? "
            "ORDER BY created_at ASC, rowid ASC",
            (organization_id, since),
        )
        return [_row_to_action(row) for row in await cursor.fetchall()]

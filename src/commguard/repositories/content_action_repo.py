"""
Side effects applied to content targets by the SQLite content store.

Timestamps are ISO-8601 UTC strings. The primary key makes every
``(target_type, target_id, action)`` triple at-most-once.
"""

from __future__ import annotations

from typing import List

import aiosqlite


class ContentActionRepo:
    """Low-level access to the ``content_actions`` table."""

    @staticmethod
    async def apply(
        conn: aiosqlite.Connection,
        target_type: str,
        target_id: str,
        action: str,
        applied_at: str,
    ) -> bool:
        """Record ``action`` on the target. Returns False if it was already applied."""
        cursor = await conn.execute(
            "INSERT OR IGNORE INTO content_actions (target_type, target_id, action, applied_at) VALUES (?, ?, ?, ?)",
            (target_type, target_id, action, applied_at),
        )
        return cursor.rowcount > 0

    @staticmethod
    async def applied_actions(conn: aiosqlite.Connection, target_type: str, target_id: str) -> List[str]:
        cursor = await conn.execute(
            "SELECT action FROM content_actions WHERE target_type = ? AND target_id = ? ORDER BY applied_at ASC",
            (target_type, target_id),
        )
        return [row[0] for row in await cursor.fetchall()]

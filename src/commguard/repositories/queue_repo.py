"""
Persistent storage for the moderation queue and its idempotency claims.

Listing order is part of the contract: open (pending) items first, then
higher priority, then oldest; insertion order breaks remaining ties.
"""

from __future__ import annotations

from typing import List

import aiosqlite

from commguard.datatypes.queue_datatypes import ModerationQueueItem, QueueStatus
from commguard.datatypes.rule_datatypes import AutoAction
from commguard.util.record_utils import dump_json, load_json

_COLUMNS = (
    "id, organization_id, community_id, content_type, content_id, content_text, author_id, "
    "author_name, reason, ai_confidence, priority, status, moderated_by, moderated_at, "
    "moderator_notes, auto_action, rule_ids, created_at, updated_at"
)

_LISTING_ORDER = "ORDER BY (status = 'pending') DESC, priority DESC, created_at ASC, rowid ASC"


def _row_to_item(row: aiosqlite.Row) -> ModerationQueueItem:
    return ModerationQueueItem(
        id=row["id"],
        organization_id=row["organization_id"],
        community_id=row["community_id"],
        content_type=row["content_type"],
        content_id=row["content_id"],
        content_text=row["content_text"],
        author_id=row["author_id"],
        author_name=row["author_name"],
        reason=row["reason"],
        ai_confidence=row["ai_confidence"],
        priority=int(row["priority"]),
        status=QueueStatus(row["status"]),
        moderated_by=row["moderated_by"],
        moderated_at=row["moderated_at"],
        moderator_notes=row["moderator_notes"],
        auto_action=AutoAction(row["auto_action"]),
        rule_ids=list(load_json(row["rule_ids"], default=[])),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class ModerationQueueRepo:
    """Low-level CRUD for ``moderation_queue`` and ``queue_rule_claims``."""

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    @staticmethod
    async def insert(
        conn: aiosqlite.Connection,
        item: ModerationQueueItem,
        *,
        followup_pending: bool = False,
    ) -> None:
        """Insert a queue item.

        ``followup_pending`` marks an item whose automatic action and moderator
        notification have not run yet; see :meth:`list_pending_followups`.
        """
        await conn.execute(
            f"INSERT INTO moderation_queue ({_COLUMNS}, followup_pending) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                item.id,
                item.organization_id,
                item.community_id,
                item.content_type,
                item.content_id,
                item.content_text,
                item.author_id,
                item.author_name,
                item.reason,
                item.ai_confidence,
                item.priority,
                item.status.value,
                item.moderated_by,
                item.moderated_at,
                item.moderator_notes,
                item.auto_action.value,
                dump_json(item.rule_ids),
                item.created_at,
                item.updated_at,
                int(followup_pending),
            ),
        )

    @staticmethod
    async def claim_rule(
        conn: aiosqlite.Connection,
        content_id: str,
        rule_id: str,
        queue_item_id: str,
        created_at: str,
    ) -> bool:
        """Record that ``rule_id`` has been queued for ``content_id``.

        Returns True if the pair is new, False if it was already claimed.
        """
        cursor = await conn.execute(
            "INSERT OR IGNORE INTO queue_rule_claims (content_id, rule_id, queue_item_id, created_at) "
            "VALUES (?, ?, ?, ?)",
            (content_id, rule_id, queue_item_id, created_at),
        )
        return cursor.rowcount > 0

    @staticmethod
    async def compare_and_set_status(
        conn: aiosqlite.Connection,
        item_id: str,
        expected: QueueStatus,
        new_status: QueueStatus,
        moderated_by: str,
        moderated_at: str,
        notes: str | None,
    ) -> bool:
        """Move an item to ``new_status`` only if it is still in ``expected``.

        Returns False when another writer changed the status first.
        """
        cursor = await conn.execute(
            """
            UPDATE moderation_queue
            SET status = ?, moderated_by = ?, moderated_at = ?, moderator_notes = ?, updated_at = ?
            WHERE id = ? AND status = ?
            """,
            (new_status.value, moderated_by, moderated_at, notes, moderated_at, item_id, expected.value),
        )
        return cursor.rowcount == 1

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @staticmethod
    async def get(conn: aiosqlite.Connection, item_id: str) -> ModerationQueueItem | None:
        cursor = await conn.execute(f"SELECT {_COLUMNS} FROM moderation_queue WHERE id = ?", (item_id,))
        row = await cursor.fetchone()
        return _row_to_item(row) if row else None

    @staticmethod
    async def list_for_organization(
        conn: aiosqlite.Connection,
        organization_id: str,
        status: QueueStatus | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[ModerationQueueItem]:
        query = f"SELECT {_COLUMNS} FROM moderation_queue WHERE organization_id = ?"
        params: list = [organization_id]
        if status is not None:
            query += " AND status = ?"
            params.append(status.value)
        query += f" {_LISTING_ORDER} LIMIT ? OFFSET ?"
        params.extend([limit, offset])

        cursor = await conn.execute(query, params)
        return [_row_to_item(row) for row in await cursor.fetchall()]

    @staticmethod
    async def list_for_content(conn: aiosqlite.Connection, content_id: str) -> List[ModerationQueueItem]:
        cursor = await conn.execute(
            f"SELECT {_COLUMNS} FROM moderation_queue WHERE content_id = ? ORDER BY created_at ASC, rowid ASC",
            (content_id,),
        )
        return [_row_to_item(row) for row in await cursor.fetchall()]

    @staticmethod
    async def list_pending_followups(conn: aiosqlite.Connection, content_id: str) -> List[ModerationQueueItem]:
        """Items of ``content_id`` whose ingestion follow-ups have not completed."""
        cursor = await conn.execute(
            f"SELECT {_COLUMNS} FROM moderation_queue WHERE content_id = ? AND followup_pending = 1 "
            "ORDER BY created_at ASC, rowid ASC",
            (content_id,),
        )
        return [_row_to_item(row) for row in await cursor.fetchall()]

    @staticmethod
    async def clear_followup(conn: aiosqlite.Connection, item_id: str) -> None:
        await conn.execute("UPDATE moderation_queue SET followup_pending = 0 WHERE id = ?", (item_id,))

    @staticmethod
    async def list_since(
        conn: aiosqlite.Connection,
        organization_id: str,
        since: str,
    ) -> List[ModerationQueueItem]:
        cursor = await conn.execute(
            f"SELECT {_COLUMNS} FROM moderation_queue WHERE organization_id = ? AND created_at >= ? "
            "ORDER BY created_at ASC, rowid ASC",
            (organization_id, since),
        )
        return [_row_to_item(row) for row in await cursor.fetchall()]

"""
Persistent storage for communities, their members and the aggregate counters.

Every counter mutation is a single UPDATE statement so that concurrent
ingestions, serialised by the connection's write gate, never lose an
increment.
"""

from __future__ import annotations

from typing import List, Tuple

import aiosqlite

from commguard.datatypes.community_datatypes import Community

_COLUMNS = (
    "id, organization_id, name, platform, platform_community_id, member_count, "
    "active_member_count, message_count, engagement_rate, sentiment_score, health_score, "
    "is_active, last_activity_at, created_at, updated_at"
)


def _row_to_community(row: aiosqlite.Row) -> Community:
    return Community(
        id=row["id"],
        organization_id=row["organization_id"],
        name=row["name"],
        platform=row["platform"],
        platform_community_id=row["platform_community_id"],
        member_count=int(row["member_count"]),
        active_member_count=int(row["active_member_count"]),
        message_count=int(row["message_count"]),
        engagement_rate=float(row["engagement_rate"]),
        sentiment_score=float(row["sentiment_score"]),
        health_score=int(row["health_score"]),
        is_active=bool(row["is_active"]),
        last_activity_at=row["last_activity_at"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class CommunityRepo:
    """Access to ``communities``, ``community_members`` and ``ingested_content``."""

    # ------------------------------------------------------------------
    # Communities
    # ------------------------------------------------------------------

    @staticmethod
    async def insert(conn: aiosqlite.Connection, community: Community) -> None:
        await conn.execute(
            f"INSERT INTO communities ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                community.id,
                community.organization_id,
                community.name,
                community.platform,
                community.platform_community_id,
                community.member_count,
                community.active_member_count,
                community.message_count,
                community.engagement_rate,
                community.sentiment_score,
                community.health_score,
                int(community.is_active),
                community.last_activity_at,
                community.created_at,
                community.updated_at,
            ),
        )

    @staticmethod
    async def get(conn: aiosqlite.Connection, community_id: str) -> Community | None:
        cursor = await conn.execute(f"SELECT {_COLUMNS} FROM communities WHERE id = ?", (community_id,))
        row = await cursor.fetchone()
        return _row_to_community(row) if row else None

    @staticmethod
    async def list_active(conn: aiosqlite.Connection, organization_id: str | None = None) -> List[Community]:
        query = f"SELECT {_COLUMNS} FROM communities WHERE is_active = 1"
        params: list = []
        if organization_id is not None:
            query += " AND organization_id = ?"
            params.append(organization_id)
        query += " ORDER BY created_at ASC, rowid ASC"
        cursor = await conn.execute(query, params)
        return [_row_to_community(row) for row in await cursor.fetchall()]

    @staticmethod
    async def set_engagement_rate(conn: aiosqlite.Connection, community_id: str, rate: float, at: str) -> bool:
        cursor = await conn.execute(
            "UPDATE communities SET engagement_rate = ?, updated_at = ? WHERE id = ?",
            (rate, at, community_id),
        )
        return cursor.rowcount > 0

    @staticmethod
    async def set_health_score(conn: aiosqlite.Connection, community_id: str, score: int, at: str) -> bool:
        cursor = await conn.execute(
            "UPDATE communities SET health_score = ?, updated_at = ? WHERE id = ?",
            (score, at, community_id),
        )
        return cursor.rowcount > 0

    # ------------------------------------------------------------------
    # Ingestion counters
    # ------------------------------------------------------------------

    @staticmethod
    async def mark_ingested(
        conn: aiosqlite.Connection,
        content_id: str,
        community_id: str,
        author_id: str,
        content_type: str,
        sentiment: float | None,
        ingested_at: str,
    ) -> bool:
        """Remember a content id. Returns False if it had been ingested before."""
        cursor = await conn.execute(
            "INSERT OR IGNORE INTO ingested_content "
            "(content_id, community_id, author_id, content_type, sentiment, ingested_at) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            (content_id, community_id, author_id, content_type, sentiment, ingested_at),
        )
        return cursor.rowcount > 0

    @staticmethod
    async def pending_trigger_state(conn: aiosqlite.Connection, content_id: str) -> Tuple[bool, float | None] | None:
        """``(triggers_pending, sentiment)`` recorded for a content id, or None if never ingested."""
        cursor = await conn.execute(
            "SELECT triggers_pending, sentiment FROM ingested_content WHERE content_id = ?",
            (content_id,),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return bool(row["triggers_pending"]), row["sentiment"]

    @staticmethod
    async def clear_triggers_pending(conn: aiosqlite.Connection, content_id: str) -> None:
        await conn.execute(
            "UPDATE ingested_content SET triggers_pending = 0 WHERE content_id = ?",
            (content_id,),
        )

    @staticmethod
    async def record_message(
        conn: aiosqlite.Connection,
        community_id: str,
        sentiment: float | None,
        at: str,
    ) -> None:
        """Count one message and fold ``sentiment`` into the running mean."""
        if sentiment is None:
            await conn.execute(
                """
                UPDATE communities
                SET message_count = message_count + 1, last_activity_at = ?, updated_at = ?
                WHERE id = ?
                """,
                (at, at, community_id),
            )
            return

        await conn.execute(
            """
            UPDATE communities
            SET message_count = message_count + 1,
                sentiment_score = (sentiment_score * sentiment_samples + ?) / (sentiment_samples + 1),
                sentiment_samples = sentiment_samples + 1,
                last_activity_at = ?,
                updated_at = ?
            WHERE id = ?
            """,
            (sentiment, at, at, community_id),
        )

    # ------------------------------------------------------------------
    # Members
    # ------------------------------------------------------------------

    @staticmethod
    async def add_member(conn: aiosqlite.Connection, community_id: str, member_id: str, at: str) -> bool:
        """Register a member; ``member_count`` only grows for first joins."""
        cursor = await conn.execute(
            "INSERT OR IGNORE INTO community_members (community_id, member_id, joined_at, last_active_at) "
            "VALUES (?, ?, ?, ?)",
            (community_id, member_id, at, at),
        )
        if cursor.rowcount == 0:
            return False
        await conn.execute(
            "UPDATE communities SET member_count = member_count + 1, updated_at = ? WHERE id = ?",
            (at, community_id),
        )
        return True

    @staticmethod
    async def touch_member(conn: aiosqlite.Connection, community_id: str, member_id: str, at: str) -> None:
        """Stamp a member's last activity. Unknown members are registered as they are seen."""
        if await CommunityRepo.add_member(conn, community_id, member_id, at):
            return
        await conn.execute(
            "UPDATE community_members SET last_active_at = ? WHERE community_id = ? AND member_id = ?",
            (at, community_id, member_id),
        )

    @staticmethod
    async def refresh_active_members(conn: aiosqlite.Connection, community_id: str, active_since: str, at: str) -> None:
        """Recount members active since ``active_since`` in one statement."""
        await conn.execute(
            """
            UPDATE communities
            SET active_member_count = (
                    SELECT COUNT(*) FROM community_members
                    WHERE community_id = ? AND last_active_at >= ?
                ),
                updated_at = ?
            WHERE id = ?
            """,
            (community_id, active_since, at, community_id),
        )

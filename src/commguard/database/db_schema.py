"""
Database schema initialization.

Handles creation of tables, indexes and schema version tracking.
"""

import aiosqlite
from commguard.util.logger import get_logger

logger = get_logger("database_schema")

SCHEMA_VERSION = 1


class SchemaManager:
    """Creates the moderation core's tables and indexes."""

    @staticmethod
    async def initialize_schema(db: aiosqlite.Connection) -> None:
        """
        Create all database tables and indexes if they do not exist.

        Args:
            db: Open database connection
        """
        await SchemaManager._create_tables(db)
        await SchemaManager._create_indexes(db)
        await SchemaManager._update_schema_version(db)
        await db.commit()
        logger.info("[SCHEMA] Database schema initialized")

    @staticmethod
    async def _create_tables(db: aiosqlite.Connection) -> None:
        """Create all required database tables."""
        await db.execute("""
            CREATE TABLE IF NOT EXISTS communities (
                id TEXT PRIMARY KEY,
                organization_id TEXT NOT NULL,
                name TEXT NOT NULL,
                platform TEXT NOT NULL DEFAULT '',
                platform_community_id TEXT NOT NULL DEFAULT '',
                member_count INTEGER NOT NULL DEFAULT 0,
                active_member_count INTEGER NOT NULL DEFAULT 0,
                message_count INTEGER NOT NULL DEFAULT 0,
                engagement_rate REAL NOT NULL DEFAULT 0,
                sentiment_score REAL NOT NULL DEFAULT 0,
                sentiment_samples INTEGER NOT NULL DEFAULT 0,
                health_score INTEGER NOT NULL DEFAULT 0,
                is_active INTEGER NOT NULL DEFAULT 1,
                last_activity_at TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)

        await db.execute("""
            CREATE TABLE IF NOT EXISTS community_members (
                community_id TEXT NOT NULL,
                member_id TEXT NOT NULL,
                joined_at TEXT NOT NULL,
                last_active_at TEXT,
                PRIMARY KEY (community_id, member_id)
            )
        """)

        # One row per ingested content id; guards counters against re-ingestion and
        # remembers whether its automation triggers still have to be dispatched
        await db.execute("""
            CREATE TABLE IF NOT EXISTS ingested_content (
                content_id TEXT PRIMARY KEY,
                community_id TEXT NOT NULL,
                author_id TEXT NOT NULL,
                content_type TEXT NOT NULL,
                sentiment REAL,
                triggers_pending INTEGER NOT NULL DEFAULT 1,
                ingested_at TEXT NOT NULL
            )
        """)

        await db.execute("""
            CREATE TABLE IF NOT EXISTS moderation_rules (
                id TEXT PRIMARY KEY,
                organization_id TEXT NOT NULL,
                community_id TEXT,
                name TEXT NOT NULL,
                description TEXT,
                rule_type TEXT NOT NULL,
                conditions TEXT NOT NULL,
                actions TEXT NOT NULL,
                severity INTEGER NOT NULL DEFAULT 1 CHECK (severity BETWEEN 1 AND 5),
                is_active INTEGER NOT NULL DEFAULT 1,
                created_by TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)

        await db.execute("""
            CREATE TABLE IF NOT EXISTS moderation_queue (
                id TEXT PRIMARY KEY,
                organization_id TEXT NOT NULL,
                community_id TEXT,
                content_type TEXT NOT NULL,
                content_id TEXT NOT NULL,
                content_text TEXT,
                author_id TEXT,
                author_name TEXT,
                reason TEXT NOT NULL,
                ai_confidence REAL,
                priority INTEGER NOT NULL DEFAULT 1 CHECK (priority BETWEEN 1 AND 5),
                status TEXT NOT NULL DEFAULT 'pending',
                moderated_by TEXT,
                moderated_at TEXT,
                moderator_notes TEXT,
                auto_action TEXT NOT NULL DEFAULT 'none',
                rule_ids TEXT NOT NULL DEFAULT '[]',
                followup_pending INTEGER NOT NULL DEFAULT 0,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)

        # Idempotency of enqueue: one claim per (content_id, rule_id)
        await db.execute("""
            CREATE TABLE IF NOT EXISTS queue_rule_claims (
                content_id TEXT NOT NULL,
                rule_id TEXT NOT NULL,
                queue_item_id TEXT NOT NULL,
                created_at TEXT NOT NULL,
                PRIMARY KEY (content_id, rule_id)
            )
        """)

        await db.execute("""
            CREATE TABLE IF NOT EXISTS moderation_actions (
                id TEXT PRIMARY KEY,
                organization_id TEXT NOT NULL,
                community_id TEXT,
                queue_item_id TEXT,
                rule_id TEXT,
                action_type TEXT NOT NULL,
                target_type TEXT NOT NULL,
                target_id TEXT NOT NULL,
                performed_by TEXT,
                reason TEXT,
                created_at TEXT NOT NULL
            )
        """)

        # Side effects recorded by the SQLite content store
        await db.execute("""
            CREATE TABLE IF NOT EXISTS content_actions (
                target_type TEXT NOT NULL,
                target_id TEXT NOT NULL,
                action TEXT NOT NULL,
                applied_at TEXT NOT NULL,
                PRIMARY KEY (target_type, target_id, action)
            )
        """)

        await db.execute("""
            CREATE TABLE IF NOT EXISTS automation_rules (
                id TEXT PRIMARY KEY,
                organization_id TEXT NOT NULL,
                community_id TEXT,
                name TEXT NOT NULL,
                description TEXT,
                trigger_type TEXT NOT NULL,
                trigger_conditions TEXT NOT NULL DEFAULT '{}',
                actions TEXT NOT NULL DEFAULT '{}',
                is_active INTEGER NOT NULL DEFAULT 1,
                execution_count INTEGER NOT NULL DEFAULT 0,
                last_executed_at TEXT,
                created_by TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)

        await db.execute("""
            CREATE TABLE IF NOT EXISTS automation_executions (
                id TEXT PRIMARY KEY,
                rule_id TEXT NOT NULL,
                trigger_data TEXT NOT NULL DEFAULT '{}',
                actions_executed TEXT NOT NULL DEFAULT '{}',
                success INTEGER NOT NULL,
                error_message TEXT,
                execution_time_ms INTEGER NOT NULL DEFAULT 0,
                created_at TEXT NOT NULL
            )
        """)

        await db.execute("""
            CREATE TABLE IF NOT EXISTS schema_version (
                version INTEGER PRIMARY KEY,
                applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

    @staticmethod
    async def _create_indexes(db: aiosqlite.Connection) -> None:
        """Create indexes for the hot query paths."""
        await db.execute("CREATE INDEX IF NOT EXISTS idx_rules_org ON moderation_rules(organization_id, is_active, severity DESC)")
        await db.execute("CREATE INDEX IF NOT EXISTS idx_queue_listing ON moderation_queue(organization_id, status, priority DESC, created_at)")
        await db.execute("CREATE INDEX IF NOT EXISTS idx_queue_content ON moderation_queue(content_id)")
        await db.execute("CREATE INDEX IF NOT EXISTS idx_actions_org_time ON moderation_actions(organization_id, created_at)")
        await db.execute("CREATE INDEX IF NOT EXISTS idx_actions_target ON moderation_actions(target_type, target_id)")
        await db.execute("CREATE INDEX IF NOT EXISTS idx_members_activity ON community_members(community_id, last_active_at)")
        await db.execute("CREATE INDEX IF NOT EXISTS idx_automation_rules_org ON automation_rules(organization_id, trigger_type, is_active)")
        await db.execute("CREATE INDEX IF NOT EXISTS idx_automation_exec_rule ON automation_executions(rule_id, created_at)")

    @staticmethod
    async def _update_schema_version(db: aiosqlite.Connection) -> None:
        await db.execute("INSERT OR IGNORE INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,))

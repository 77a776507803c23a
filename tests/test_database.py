"""Tests for the database layer and the rule store built on it."""

import pytest

from conftest import COMMUNITY_ID, ORG_ID, make_item
from commguard.database.db_cache import DatabaseQueryCache
from commguard.database.db_connection import ConnectionManager
from commguard.database.db_schema import SCHEMA_VERSION, SchemaManager
from commguard.datatypes.rule_datatypes import RuleType
from commguard.errors import ConfigurationError, NotFound, PersistenceError
from commguard.moderation.rule_store import RuleStore


@pytest.mark.asyncio
async def test_schema_initialization_is_repeatable(db) -> None:
    await SchemaManager.initialize_schema(db.connection)

    async with db.read() as conn:
        cursor = await conn.execute("SELECT version FROM schema_version")
        versions = [row["version"] for row in await cursor.fetchall()]
    assert versions == [SCHEMA_VERSION]


@pytest.mark.asyncio
async def test_failed_transaction_rolls_back_and_raises_persistence_error(db) -> None:
    with pytest.raises(PersistenceError):
        async with db.transaction() as conn:
            await conn.execute(
                "INSERT INTO communities (id, organization_id, name, created_at, updated_at) "
                "VALUES ('c', 'o', 'n', 'x', 'x')"
            )
            await conn.execute("INSERT INTO no_such_table VALUES (1)")

    async with db.read() as conn:
        cursor = await conn.execute("SELECT COUNT(*) FROM communities")
        assert (await cursor.fetchone())[0] == 0


@pytest.mark.asyncio
async def test_connection_must_be_opened_first(tmp_path) -> None:
    manager = ConnectionManager()
    assert manager.is_open is False
    with pytest.raises(RuntimeError):
        manager.connection

    await manager.open(tmp_path / "nested" / "db.sqlite")
    assert manager.is_open is True
    await manager.close()
    assert manager.is_open is False


def test_query_cache_ttl_and_invalidation() -> None:
    cache = DatabaseQueryCache(ttl_seconds=60)
    cache.set("rules:a", [1])
    cache.set("rules:b", [2])

    assert cache.get("rules:a") == [1]
    assert cache.invalidate("rules:a") == 1
    assert cache.get("rules:a") is None
    assert cache.get_db_cache_stats() == {"size": 1, "ttl_seconds": 60}
    assert cache.invalidate() == 1

    disabled = DatabaseQueryCache(ttl_seconds=0)
    disabled.set("k", "v")
    assert disabled.get("k") is None


@pytest.mark.asyncio
async def test_rule_store_create_and_list(db) -> None:
    store = RuleStore(db)

    low = await store.create_rule(ORG_ID, "Low", "keyword", {"keywords": ["a"]}, severity=1)
    high = await store.create_rule(ORG_ID, " High ", RuleType.AI_TOXICITY, {}, severity=4)

    assert high.name == "High"
    assert high.conditions.threshold == pytest.approx(0.7)
    assert [r.id for r in await store.list_rules(ORG_ID)] == [high.id, low.id]
    assert await store.get_rule(low.id) == low


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "rule_type,conditions,severity",
    [
        ("keyword", {"keywords": []}, 1),
        ("regex", {"pattern": "(unclosed"}, 1),
        ("telepathy", {}, 1),
        ("keyword", {"keywords": ["x"]}, 0),
        ("keyword", {"keywords": ["x"]}, 6),
    ],
)
async def test_rule_store_rejects_invalid_rules(db, rule_type, conditions, severity) -> None:
    store = RuleStore(db)

    with pytest.raises(ConfigurationError):
        await store.create_rule(ORG_ID, "Bad", rule_type, conditions, severity=severity)

    assert await store.list_rules(ORG_ID) == []


@pytest.mark.asyncio
async def test_rule_store_cache_is_invalidated_on_change(db) -> None:
    store = RuleStore(db, DatabaseQueryCache(ttl_seconds=300))
    rule = await store.create_rule(ORG_ID, "Words", "keyword", {"keywords": ["x"]})
    assert [r.id for r in await store.active_rules(ORG_ID)] == [rule.id]

    await store.set_rule_active(rule.id, False)

    assert await store.active_rules(ORG_ID) == []
    assert [r.is_active for r in await store.list_rules(ORG_ID)] == [False]
    with pytest.raises(NotFound):
        await store.set_rule_active("missing", True)


@pytest.mark.asyncio
async def test_rules_for_item_respects_community_scope(db) -> None:
    store = RuleStore(db)
    everywhere = await store.create_rule(ORG_ID, "All", "keyword", {"keywords": ["x"]})
    scoped = await store.create_rule(ORG_ID, "Here", "keyword", {"keywords": ["x"]}, community_id=COMMUNITY_ID)
    await store.create_rule(ORG_ID, "Elsewhere", "keyword", {"keywords": ["x"]}, community_id="other")

    rules = await store.rules_for_item(make_item())

    assert {r.id for r in rules} == {everywhere.id, scoped.id}

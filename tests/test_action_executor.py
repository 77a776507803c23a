from unittest.mock import AsyncMock, MagicMock

import pytest

from conftest import ORG_ID
from commguard.datatypes.content_datatypes import ContentTarget
from commguard.datatypes.rule_datatypes import AutoAction
from commguard.errors import ConfigurationError
from commguard.moderation.action_executor import ActionExecutor
from commguard.repositories.action_repo import ModerationActionRepo

TARGET = ContentTarget("message", "msg-42")


async def _audit_for(db, target: ContentTarget):
    async with db.read() as conn:
        return await ModerationActionRepo.list_for_target(conn, target.target_type, target.target_id)


@pytest.mark.asyncio
async def test_delete_twice_is_idempotent_but_audited_twice(db, content_store) -> None:
    executor = ActionExecutor(db, content_store)

    first = await executor.execute("delete", TARGET, organization_id=ORG_ID)
    second = await executor.execute(AutoAction.DELETE, TARGET, organization_id=ORG_ID)

    assert first.applied is True
    assert second.applied is False
    assert await content_store.applied_actions(TARGET) == ["delete"]
    audit = await _audit_for(db, TARGET)
    assert [a.action_type for a in audit] == ["delete", "delete"]
    assert {a.id for a in audit} == {first.audit.id, second.audit.id}


@pytest.mark.asyncio
async def test_each_action_maps_to_one_side_effect(db) -> None:
    store = MagicMock()
    store.delete = AsyncMock(return_value=True)
    store.hide = AsyncMock(return_value=True)
    store.warn = AsyncMock(return_value=True)
    executor = ActionExecutor(db, store)

    await executor.execute("hide", TARGET, organization_id=ORG_ID)
    await executor.execute("warn", TARGET, organization_id=ORG_ID)

    store.hide.assert_awaited_once_with(TARGET)
    store.warn.assert_awaited_once_with(TARGET)
    store.delete.assert_not_awaited()


@pytest.mark.asyncio
async def test_none_has_no_side_effect_but_is_audited(db) -> None:
    store = MagicMock()
    store.delete = AsyncMock()
    store.hide = AsyncMock()
    store.warn = AsyncMock()
    executor = ActionExecutor(db, store)

    result = await executor.execute("none", TARGET, organization_id=ORG_ID, performed_by="mod-9", reason="checked")

    assert result.applied is False
    store.delete.assert_not_awaited()
    store.hide.assert_not_awaited()
    store.warn.assert_not_awaited()
    audit = await _audit_for(db, TARGET)
    assert len(audit) == 1
    assert audit[0].performed_by == "mod-9"
    assert audit[0].reason == "checked"


@pytest.mark.asyncio
async def test_default_actor_is_system(db, content_store) -> None:
    result = await ActionExecutor(db, content_store).execute("warn", TARGET, organization_id=ORG_ID)

    assert result.audit.performed_by == "system"


@pytest.mark.asyncio
async def test_unknown_action_is_rejected_before_any_write(db, content_store) -> None:
    with pytest.raises(ConfigurationError):
        await ActionExecutor(db, content_store).execute("ban", TARGET, organization_id=ORG_ID)

    assert await _audit_for(db, TARGET) == []

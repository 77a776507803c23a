from unittest.mock import AsyncMock

import pytest

from conftest import COMMUNITY_ID, ORG_ID
from commguard.automation.automation_runner import AutomationRunner, trigger_matches
from commguard.datatypes.automation_datatypes import AutomationRule, TriggerType
from commguard.errors import ConfigurationError, NotFound
from commguard.moderation.action_executor import ActionExecutor
from commguard.moderation.moderation_queue import ModerationQueue


@pytest.fixture()
def notifier():
    notifier = AsyncMock()
    notifier.notify = AsyncMock()
    return notifier


@pytest.fixture()
def runner(db, content_store, notifier) -> AutomationRunner:
    return AutomationRunner(db, ActionExecutor(db, content_store), ModerationQueue(db), notifier)


@pytest.mark.asyncio
async def test_execute_dispatches_known_handlers_and_bumps_count(runner, notifier, content_store) -> None:
    rule = await runner.create_rule(
        ORG_ID,
        "Welcome",
        "new_message",
        {"send_notification": {"message": "heads up"}, "auto_moderate": {"action": "hide"}},
    )

    execution = await runner.execute(rule.id, {"content_id": "msg-1", "community_id": COMMUNITY_ID})

    assert execution.success is True
    assert execution.error_message is None
    assert execution.actions_executed["send_notification"]["status"] == "sent"
    assert execution.actions_executed["auto_moderate"]["status"] == "executed"
    notifier.notify.assert_awaited_once()
    assert notifier.notify.call_args.args[1] == "heads up"

    stored = await runner.get_rule(rule.id)
    assert stored.execution_count == 1
    assert stored.last_executed_at is not None
    assert await runner.list_executions(rule.id) == [execution]


@pytest.mark.asyncio
async def test_unknown_action_is_skipped(runner) -> None:
    rule = await runner.create_rule(ORG_ID, "Odd", "new_member", {"post_to_slack": {}})

    execution = await runner.execute(rule.id, {"member_id": "u1"})

    assert execution.success is True
    assert execution.actions_executed == {"post_to_slack": {"status": "skipped", "reason": "Unknown action type"}}


@pytest.mark.asyncio
async def test_failing_action_is_recorded_and_others_still_run(runner, notifier) -> None:
    rule = await runner.create_rule(
        ORG_ID,
        "Flag",
        "new_message",
        {"flag_content": {"priority": 2}, "send_notification": {}},
    )

    # no content_id or member_id: flag_content cannot build a target
    execution = await runner.execute(rule.id, {"community_id": COMMUNITY_ID})

    assert execution.success is True
    assert execution.actions_executed["flag_content"]["status"] == "failed"
    assert execution.actions_executed["flag_content"]["error"]
    assert execution.actions_executed["send_notification"]["status"] == "sent"


@pytest.mark.asyncio
async def test_flag_content_queues_the_target(runner) -> None:
    rule = await runner.create_rule(ORG_ID, "Flag", "keyword_match", {"flag_content": {"priority": 3}})

    execution = await runner.execute(rule.id, {"content_id": "msg-7", "text": "hmm"})

    queue_item_id = execution.actions_executed["flag_content"]["queue_item_id"]
    item = await ModerationQueue(runner._db).get_item(queue_item_id)
    assert item.priority == 3
    assert item.content_id == "msg-7"


@pytest.mark.asyncio
async def test_missing_rule_still_persists_failed_execution(runner) -> None:
    execution = await runner.execute("missing-rule", {"x": 1})

    assert execution.success is False
    assert "not found" in execution.error_message
    assert await runner.list_executions("missing-rule") == [execution]


@pytest.mark.asyncio
async def test_inactive_rule_persists_failed_execution(runner) -> None:
    rule = await runner.create_rule(ORG_ID, "Off", "new_member", {"send_notification": {}}, is_active=False)

    execution = await runner.execute(rule.id, {})

    assert execution.success is False
    assert "inactive" in execution.error_message
    assert (await runner.get_rule(rule.id)).execution_count == 0


@pytest.mark.asyncio
async def test_create_rule_validation(runner) -> None:
    with pytest.raises(ConfigurationError):
        await runner.create_rule(ORG_ID, "Bad trigger", "on_full_moon", {"send_notification": {}})
    with pytest.raises(ConfigurationError):
        await runner.create_rule(ORG_ID, "No actions", "new_member", {})
    with pytest.raises(ConfigurationError):
        await runner.create_rule(ORG_ID, "Bad config", "new_member", {"send_notification": "now"})
    with pytest.raises(NotFound):
        await runner.get_rule("nope")


def _automation(trigger_type, conditions=None, community_id=None) -> AutomationRule:
    return AutomationRule(
        id="a1",
        organization_id=ORG_ID,
        name="auto",
        trigger_type=trigger_type,
        trigger_conditions=conditions or {},
        actions={"send_notification": {}},
        community_id=community_id,
    )


def test_trigger_matching_rules() -> None:
    keyword = _automation(TriggerType.KEYWORD_MATCH, {"keywords": ["Refund"]})
    sentiment = _automation(TriggerType.SENTIMENT_CHANGE, {"threshold": -0.3})
    scoped = _automation(TriggerType.NEW_MEMBER, community_id="c1")

    assert trigger_matches(keyword, TriggerType.KEYWORD_MATCH, {"text": "I want a REFUND"})
    assert not trigger_matches(keyword, TriggerType.KEYWORD_MATCH, {"text": "thanks"})
    assert not trigger_matches(keyword, TriggerType.NEW_MESSAGE, {"text": "refund"})
    assert trigger_matches(sentiment, TriggerType.SENTIMENT_CHANGE, {"sentiment": -0.6})
    assert not trigger_matches(sentiment, TriggerType.SENTIMENT_CHANGE, {"sentiment": 0.2})
    assert not trigger_matches(sentiment, TriggerType.SENTIMENT_CHANGE, {})
    assert trigger_matches(scoped, TriggerType.NEW_MEMBER, {"community_id": "c1"})
    assert not trigger_matches(scoped, TriggerType.NEW_MEMBER, {"community_id": "c2"})


@pytest.mark.asyncio
async def test_dispatch_runs_only_matching_rules(runner) -> None:
    match = await runner.create_rule(
        ORG_ID, "Refunds", "keyword_match", {"send_notification": {}}, {"keywords": ["refund"]}
    )
    await runner.create_rule(ORG_ID, "Other", "keyword_match", {"send_notification": {}}, {"keywords": ["ban"]})
    await runner.create_rule("other-org", "Foreign", "keyword_match", {"send_notification": {}}, {"keywords": ["refund"]})

    executions = await runner.dispatch_trigger(ORG_ID, "keyword_match", {"text": "refund please"})

    assert [e.rule_id for e in executions] == [match.id]

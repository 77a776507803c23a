import asyncio
import itertools

import pytest

from conftest import ORG_ID, make_item
from commguard.datatypes.queue_datatypes import ModerationQueueItem, QueueStatus, Violation
from commguard.datatypes.rule_datatypes import AutoAction, RuleType
from commguard.errors import ConfigurationError, InvalidTransition, NotFound
from commguard.moderation.moderation_queue import ModerationQueue
from commguard.repositories.queue_repo import ModerationQueueRepo


def _violation(rule_id: str, priority: int, auto_action: AutoAction = AutoAction.NONE) -> Violation:
    return Violation(
        rule_id=rule_id,
        rule_name=f"Rule {rule_id}",
        rule_type=RuleType.KEYWORD,
        reason="matched",
        confidence=1.0,
        priority=priority,
        auto_action=auto_action,
    )


@pytest.fixture()
def queue(db) -> ModerationQueue:
    return ModerationQueue(db, default_page_size=50, max_page_size=100)


@pytest.mark.asyncio
async def test_enqueue_creates_pending_item_with_aggregates(queue) -> None:
    item = make_item(text="bad words")

    queued = await queue.enqueue([_violation("a", 2, AutoAction.WARN), _violation("b", 5, AutoAction.HIDE)], item)

    assert queued is not None
    assert queued.status is QueueStatus.PENDING
    assert queued.priority == 5
    assert queued.auto_action is AutoAction.HIDE
    assert queued.content_id == item.id
    assert queued.content_text == "bad words"
    assert sorted(queued.rule_ids) == ["a", "b"]
    assert await queue.get_item(queued.id) == queued


@pytest.mark.asyncio
async def test_enqueue_without_violations_does_nothing(queue) -> None:
    assert await queue.enqueue([], make_item()) is None
    assert await queue.list_queue(ORG_ID) == []


@pytest.mark.asyncio
async def test_enqueue_is_idempotent_per_content_and_rule(queue) -> None:
    item = make_item()

    first = await queue.enqueue([_violation("a", 3)], item)
    again = await queue.enqueue([_violation("a", 3)], item)
    widened = await queue.enqueue([_violation("a", 3), _violation("b", 1)], item)

    assert first is not None
    assert again is None
    assert widened is not None
    assert widened.rule_ids == ["b"]
    items = await queue.items_for_content(item.id)
    assert [i.id for i in items] == [first.id, widened.id]


async def _insert(db, item_id: str, status: QueueStatus, priority: int, created_at: str) -> None:
    async with db.transaction() as conn:
        await ModerationQueueRepo.insert(
            conn,
            ModerationQueueItem(
                id=item_id,
                organization_id=ORG_ID,
                content_type="message",
                content_id=f"content-{item_id}",
                reason="r",
                priority=priority,
                status=status,
                created_at=created_at,
                updated_at=created_at,
            ),
        )


FIXED_ITEMS = [
    ("p5-old", QueueStatus.PENDING, 5, "2024-01-01T00:00:00.000000+00:00"),
    ("p5-new", QueueStatus.PENDING, 5, "2024-01-02T00:00:00.000000+00:00"),
    ("p1", QueueStatus.PENDING, 1, "2023-12-01T00:00:00.000000+00:00"),
    ("esc5", QueueStatus.ESCALATED, 5, "2023-01-01T00:00:00.000000+00:00"),
    ("app3", QueueStatus.APPROVED, 3, "2023-06-01T00:00:00.000000+00:00"),
]
EXPECTED_ORDER = ["p5-old", "p5-new", "p1", "esc5", "app3"]


@pytest.mark.asyncio
@pytest.mark.parametrize("permutation", list(itertools.permutations(range(len(FIXED_ITEMS))))[::17])
async def test_listing_order_is_independent_of_insertion_order(db, queue, permutation) -> None:
    for index in permutation:
        await _insert(db, *FIXED_ITEMS[index])

    listed = await queue.list_queue(ORG_ID)

    assert [i.id for i in listed] == EXPECTED_ORDER


@pytest.mark.asyncio
async def test_listing_ties_keep_insertion_order(db, queue) -> None:
    stamp = "2024-01-01T00:00:00.000000+00:00"
    for item_id in ["first", "second", "third"]:
        await _insert(db, item_id, QueueStatus.PENDING, 2, stamp)

    assert [i.id for i in await queue.list_queue(ORG_ID)] == ["first", "second", "third"]
    assert [i.id for i in await queue.list_queue(ORG_ID)] == ["first", "second", "third"]


@pytest.mark.asyncio
async def test_listing_filters_and_pages(db, queue) -> None:
    for args in FIXED_ITEMS:
        await _insert(db, *args)

    pending = await queue.list_queue(ORG_ID, status="pending")
    page = await queue.list_queue(ORG_ID, limit=2, offset=1)

    assert [i.id for i in pending] == ["p5-old", "p5-new", "p1"]
    assert [i.id for i in page] == ["p5-new", "p1"]
    assert await queue.list_queue("other-org") == []


@pytest.mark.asyncio
async def test_dispose_records_moderator_and_audit(queue) -> None:
    queued = await queue.enqueue([_violation("a", 3)], make_item())

    audit = await queue.dispose(queued.id, "approve", "mod-1", "looks fine")

    item = await queue.get_item(queued.id)
    assert item.status is QueueStatus.APPROVED
    assert item.moderated_by == "mod-1"
    assert item.moderated_at is not None
    assert item.moderator_notes == "looks fine"
    assert audit.action_type == "approve"
    assert audit.queue_item_id == queued.id
    assert audit.performed_by == "mod-1"
    assert await queue.actions_for_item(queued.id) == [audit]


@pytest.mark.asyncio
async def test_escalated_item_can_be_redisposed(queue) -> None:
    queued = await queue.enqueue([_violation("a", 3)], make_item())

    await queue.dispose(queued.id, "escalate", "mod-1")
    await queue.dispose(queued.id, "reject", "mod-2")

    item = await queue.get_item(queued.id)
    assert item.status is QueueStatus.REJECTED
    assert item.moderated_by == "mod-2"
    assert len(await queue.actions_for_item(queued.id)) == 2


@pytest.mark.asyncio
@pytest.mark.parametrize("terminal", ["approve", "reject"])
@pytest.mark.parametrize("second", ["approve", "reject", "escalate"])
async def test_dispose_on_terminal_item_fails_without_side_effects(queue, terminal, second) -> None:
    queued = await queue.enqueue([_violation("a", 3)], make_item())
    await queue.dispose(queued.id, terminal, "mod-1")
    before = await queue.get_item(queued.id)

    with pytest.raises(InvalidTransition):
        await queue.dispose(queued.id, second, "mod-2")

    assert await queue.get_item(queued.id) == before
    assert len(await queue.actions_for_item(queued.id)) == 1


@pytest.mark.asyncio
async def test_concurrent_dispositions_have_a_single_winner(queue) -> None:
    queued = await queue.enqueue([_violation("a", 3)], make_item())

    results = await asyncio.gather(
        queue.dispose(queued.id, "approve", "mod-1"),
        queue.dispose(queued.id, "reject", "mod-2"),
        return_exceptions=True,
    )

    failures = [r for r in results if isinstance(r, InvalidTransition)]
    assert len(failures) == 1
    assert len(await queue.actions_for_item(queued.id)) == 1


@pytest.mark.asyncio
async def test_dispose_unknown_item_or_action(queue) -> None:
    with pytest.raises(NotFound):
        await queue.dispose("missing", "approve", "mod-1")

    queued = await queue.enqueue([_violation("a", 3)], make_item())
    with pytest.raises(ConfigurationError):
        await queue.dispose(queued.id, "ban", "mod-1")


@pytest.mark.asyncio
async def test_listing_with_unknown_status_is_a_configuration_error(queue) -> None:
    await queue.enqueue([_violation("a", 3)], make_item())

    with pytest.raises(ConfigurationError):
        await queue.list_queue(ORG_ID, status="bogus")
    assert len(await queue.list_queue(ORG_ID, status="pending")) == 1


@pytest.mark.asyncio
async def test_enqueued_items_keep_a_followup_mark_until_completed(queue) -> None:
    queued = await queue.enqueue([_violation("a", 3)], make_item())
    await queue.add_manual(ORG_ID, "message", "msg-1", "Reported by a member")

    assert [item.id for item in await queue.pending_followups("msg-1")] == [queued.id]

    await queue.complete_followup(queued.id)

    assert await queue.pending_followups("msg-1") == []


@pytest.mark.asyncio
async def test_add_manual_validates_priority(queue) -> None:
    item = await queue.add_manual(ORG_ID, "post", "post-1", "Reported by a member", 4, auto_action="warn")

    assert item.priority == 4
    assert item.auto_action is AutoAction.WARN
    with pytest.raises(ValueError):
        await queue.add_manual(ORG_ID, "post", "post-2", "reason", 9)

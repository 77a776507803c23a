import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from commguard.scheduler.health_scheduler import HealthScoreScheduler


@pytest.mark.asyncio
async def test_scheduler_recomputes_until_shutdown() -> None:
    scorer = MagicMock()
    scorer.recompute_all = AsyncMock(return_value={})
    scheduler = HealthScoreScheduler(scorer, lambda: 0.01)

    scheduler.start()
    assert scheduler.is_running
    await asyncio.sleep(0.05)
    await scheduler.shutdown()

    assert not scheduler.is_running
    assert scorer.recompute_all.await_count >= 2


@pytest.mark.asyncio
async def test_scheduler_survives_failing_iterations() -> None:
    scorer = MagicMock()
    scorer.recompute_all = AsyncMock(side_effect=[RuntimeError("db locked"), {}, {}, {}, {}, {}, {}, {}])
    scheduler = HealthScoreScheduler(scorer, lambda: 0.01)

    scheduler.start()
    await asyncio.sleep(0.05)
    await scheduler.shutdown()

    assert scorer.recompute_all.await_count >= 2


@pytest.mark.asyncio
async def test_start_twice_keeps_a_single_task() -> None:
    scorer = MagicMock()
    scorer.recompute_all = AsyncMock(return_value={})
    scheduler = HealthScoreScheduler(scorer, lambda: 10)

    scheduler.start()
    first_task = scheduler._task
    scheduler.start()

    assert scheduler._task is first_task
    await scheduler.shutdown()

"""Periodic health score recomputation.

Runs :meth:`HealthScorer.recompute_all` on a fixed interval as a background
asyncio task. Errors of one iteration are logged and the loop carries on.
"""

from __future__ import annotations

import asyncio
from typing import Callable

from commguard.community.health_scorer import HealthScorer
from commguard.util.logger import get_logger

logger = get_logger("health_scheduler")


class HealthScoreScheduler:
    """
    Background task recomputing every active community's health score.

    Args:
        scorer: Health scorer to drive.
        get_interval: Callable returning the interval in seconds (called at start).
    """

    def __init__(self, scorer: HealthScorer, get_interval: Callable[[], float]) -> None:
        self._scorer = scorer
        self._get_interval = get_interval
        self._task: asyncio.Task | None = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def _run_loop(self, interval: float) -> None:
        """Infinite loop: recompute all communities, sleep, repeat."""
        logger.info("[HEALTH SCHEDULER] Starting periodic recompute (interval=%.1fs)", interval)
        try:
            while True:
                try:
                    await self._scorer.recompute_all()
                except asyncio.CancelledError:
                    raise
                except Exception as exc:
                    logger.error("[HEALTH SCHEDULER] Unexpected error during recompute: %s", exc)
                await asyncio.sleep(interval)
        except asyncio.CancelledError:
            logger.info("[HEALTH SCHEDULER] Periodic recompute cancelled")
            raise

    def start(self) -> None:
        """Start the background task if not already running."""
        if self.is_running:
            logger.warning("[HEALTH SCHEDULER] Task already running")
            return
        interval = self._get_interval()
        self._task = asyncio.create_task(self._run_loop(interval), name="health-score-scheduler")

    async def shutdown(self) -> None:
        """Cancel the task and wait for it to finish."""
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
        logger.info("[HEALTH SCHEDULER] Scheduler shutdown complete")

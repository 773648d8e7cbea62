"""
Detached background jobs.

Jobs are asyncio tasks owned by the runner rather than by the request that
scheduled them, so a client disconnect cannot cancel them. Each job gets its
own deadline. Failures are logged and never propagated.

# ── Lanes ──
Every job runs in a named lane with its own concurrency limit. Query
persistence and resource discovery use separate lanes, so a short save is
never queued behind long-running scrapes. On shutdown the persistence lane
is drained first; whatever is still running afterwards is cancelled.
"""

import asyncio
from typing import Awaitable, Callable

from mathprereq.core.config import get_settings
from mathprereq.core.logging import get_logger

logger = get_logger(__name__)

PERSISTENCE_LANE = "persistence"
DISCOVERY_LANE = "discovery"


class BackgroundJobRunner:
    def __init__(self, max_concurrent: int = 4, lane_limits: dict[str, int] | None = None):
        self._default_limit = max(1, max_concurrent)
        self._lane_limits = dict(lane_limits or {})
        self._semaphores: dict[str, asyncio.Semaphore] = {}
        self._tasks: dict[asyncio.Task, str] = {}

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def pending_in(self, lane: str) -> int:
        return sum(1 for task_lane in self._tasks.values() if task_lane == lane)

    def submit(
        self,
        name: str,
        factory: Callable[[], Awaitable],
        timeout: float,
        lane: str = DISCOVERY_LANE,
    ) -> asyncio.Task:
        """Schedule ``factory()`` as a detached job in ``lane``, bounded by ``timeout`` seconds."""
        task = asyncio.get_running_loop().create_task(
            self._run(name, lane, factory, timeout), name=name
        )
        self._tasks[task] = lane
        task.add_done_callback(self._forget)
        return task

    def _forget(self, task: asyncio.Task) -> None:
        self._tasks.pop(task, None)

    def _semaphore(self, lane: str) -> asyncio.Semaphore:
        semaphore = self._semaphores.get(lane)
        if semaphore is None:
            limit = self._lane_limits.get(lane, self._default_limit)
            semaphore = self._semaphores[lane] = asyncio.Semaphore(max(1, limit))
        return semaphore

    async def _run(self, name: str, lane: str, factory: Callable[[], Awaitable], timeout: float):
        async with self._semaphore(lane):
            loop = asyncio.get_running_loop()
            started = loop.time()
            try:
                await asyncio.wait_for(factory(), timeout=timeout)
            except asyncio.TimeoutError:
                logger.warning("background_job_timeout", job=name, lane=lane, timeout=timeout)
            except asyncio.CancelledError:
                logger.warning("background_job_cancelled", job=name, lane=lane)
                raise
            except Exception as e:
                logger.error("background_job_failed", job=name, lane=lane, error=str(e), exc_info=True)
            else:
                logger.info(
                    "background_job_completed",
                    job=name,
                    lane=lane,
                    duration_ms=int((loop.time() - started) * 1000),
                )

    def _tasks_in(self, lane: str | None) -> list[asyncio.Task]:
        return [t for t, task_lane in self._tasks.items() if lane is None or task_lane == lane]

    async def drain(self, lane: str | None = None) -> None:
        """Wait until every job submitted so far (and any they submit) has finished.

        With ``lane`` set, only jobs in that lane are awaited.
        """
        while True:
            tasks = self._tasks_in(lane)
            if not tasks:
                return
            await asyncio.gather(*tasks, return_exceptions=True)

    async def shutdown(self, timeout: float = 10.0) -> None:
        if not self._tasks:
            return
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        logger.info(
            "background_jobs_draining",
            pending=len(self._tasks),
            persistence=self.pending_in(PERSISTENCE_LANE),
        )
        try:
            await asyncio.wait_for(self.drain(PERSISTENCE_LANE), timeout=max(0.0, deadline - loop.time()))
            await asyncio.wait_for(self.drain(), timeout=max(0.0, deadline - loop.time()))
        except asyncio.TimeoutError:
            stragglers = list(self._tasks)
            for task in stragglers:
                task.cancel()
            await asyncio.gather(*stragglers, return_exceptions=True)
            logger.warning("background_jobs_cancelled_on_shutdown", cancelled=len(stragglers))


# ── Singleton ─────────────────────────────────────────────────────────────────

_runner: BackgroundJobRunner | None = None


def get_background_runner() -> BackgroundJobRunner:
    global _runner
    if _runner is None:
        settings = get_settings()
        _runner = BackgroundJobRunner(
            settings.max_background_jobs,
            lane_limits={PERSISTENCE_LANE: settings.max_save_jobs},
        )
    return _runner

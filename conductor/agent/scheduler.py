"""Decides when agent tasks become runnable and hands them to the executor."""

import asyncio
import contextlib
import logging
from datetime import datetime
from typing import Optional

from conductor.agent.executor import AgentExecutor
from conductor.core.timeutil import Clock
from conductor.storage.agent_tasks import AgentTaskStore
from conductor.storage.models import AgentTask

logger = logging.getLogger(__name__)


class AgentTaskScheduler:
    """Polls for due tasks on a timer; also takes check-in and manual triggers.

    Holds no execution state of its own. ``start``/``stop`` are idempotent.
    """

    def __init__(
        self,
        store: AgentTaskStore,
        executor: AgentExecutor,
        poll_interval: float = 60.0,
        initial_delay: float = 10.0,
        clock: Clock = datetime.now,
    ):
        self.store = store
        self.executor = executor
        self.poll_interval = poll_interval
        self.initial_delay = initial_delay
        self.clock = clock
        self._loop_task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    def start(self) -> None:
        if self.is_running:
            return
        self._loop_task = asyncio.get_running_loop().create_task(self._run(), name="agent-scheduler")
        logger.info("Agent scheduler started (every %.0fs)", self.poll_interval)

    async def stop(self) -> None:
        if self._loop_task is None:
            return
        self._loop_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._loop_task
        self._loop_task = None
        logger.info("Agent scheduler stopped")

    async def _run(self) -> None:
        await asyncio.sleep(self.initial_delay)
        while True:
            try:
                await self.poll_due_tasks()
            except Exception as e:
                logger.error("Agent task poll failed: %s", e, exc_info=True)
            await asyncio.sleep(self.poll_interval)

    def _dispatch(self, tasks: list[AgentTask]) -> int:
        return self.executor.enqueue_batch(tasks)

    async def poll_due_tasks(self) -> int:
        """Enqueue every active task whose next run has passed.

        Tasks already queued or running are skipped; their ``next_run`` only
        moves once the run finishes, so they still look due.
        """
        due = await self.store.get_due_tasks(self.clock())
        fresh = [t for t in due if not self.executor.is_pending(t.id)]
        if fresh:
            logger.info("Found %d due agent task(s)", len(fresh))
        return self._dispatch(fresh)

    async def run_checkin_tasks(self, phase: str) -> int:
        """Enqueue active check-in tasks bound to ``phase``, regardless of next run."""
        tasks = await self.store.get_checkin_tasks(phase)
        if tasks:
            logger.info("Running %d agent task(s) for check-in phase '%s'", len(tasks), phase)
        return self._dispatch(tasks)

    async def trigger_task(self, task_id: str) -> bool:
        """Enqueue one task now. Only active tasks can be triggered."""
        task = await self.store.get(task_id)
        if task is None:
            logger.warning("Cannot trigger agent task %s: not found", task_id)
            return False
        if task.status != "active":
            logger.warning("Cannot trigger agent task '%s': status is %s", task.name, task.status)
            return False
        self._dispatch([task])
        return True

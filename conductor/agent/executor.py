"""Serial executor for agent tasks.

A single worker coroutine drains a FIFO queue, so at most one model call is
in flight at any time no matter how many callers enqueue. ``enqueue`` never
blocks: it appends to the queue and makes sure the worker is running.
"""

import asyncio
import contextlib
import logging
import time
import uuid
from collections import Counter
from datetime import datetime
from typing import Iterable, Optional

from conductor.agent.action_executor import SAFE_ACTION_TYPES, ActionExecutor, is_safe_action
from conductor.agent.actions import ActionRequest, ExecutedAction, parse_actions
from conductor.agent.context import ContextAssembler, compose_prompt
from conductor.agent.cost import CostLedger
from conductor.agent.model import ModelClient
from conductor.agent.scheduling import TriggerConfig, compute_next_run
from conductor.core.timeutil import Clock
from conductor.storage.agent_tasks import AgentTaskStore
from conductor.storage.models import AgentTask, AgentTaskResult, PendingAction

logger = logging.getLogger(__name__)


class AgentExecutor:
    def __init__(
        self,
        store: AgentTaskStore,
        context: ContextAssembler,
        model_client: ModelClient,
        actions: ActionExecutor,
        cost: CostLedger,
        model: str,
        safe_types: frozenset = SAFE_ACTION_TYPES,
        daily_budget: Optional[float] = None,
        clock: Clock = datetime.now,
    ):
        self.store = store
        self.context = context
        self.model_client = model_client
        self.actions = actions
        self.cost = cost
        self.model = model
        self.safe_types = safe_types
        self.daily_budget = daily_budget
        self.clock = clock

        self._queue: asyncio.Queue[AgentTask] = asyncio.Queue()
        self._queued_ids: Counter = Counter()
        self._worker: Optional[asyncio.Task] = None
        self.current_task_id: Optional[str] = None

    # --- Queue surface ---

    @property
    def queue_count(self) -> int:
        return self._queue.qsize()

    @property
    def is_running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    def is_pending(self, task_id: str) -> bool:
        """True while a task is queued or executing."""
        return self._queued_ids[task_id] > 0

    def enqueue(self, task: AgentTask) -> None:
        self._queue.put_nowait(task)
        self._queued_ids[task.id] += 1
        logger.debug("Queued agent task '%s' (%d waiting)", task.name, self._queue.qsize())
        self.start()

    def enqueue_batch(self, tasks: Iterable[AgentTask]) -> int:
        count = 0
        for task in tasks:
            self.enqueue(task)
            count += 1
        return count

    def start(self) -> None:
        """Start the worker if it is not already running. Needs a running event loop."""
        if not self.is_running:
            self._worker = asyncio.get_running_loop().create_task(self._run(), name="agent-executor")

    async def stop(self) -> None:
        """Stop the worker. An in-flight run is cancelled; queued tasks stay queued."""
        if self._worker is None:
            return
        self._worker.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._worker
        self._worker = None

    async def wait_idle(self) -> None:
        """Wait until every queued task has been processed."""
        await self._queue.join()

    async def _run(self) -> None:
        while True:
            task = await self._queue.get()
            self.current_task_id = task.id
            try:
                await self.process(task)
            except Exception as e:
                logger.error("Agent task '%s' crashed the executor step: %s", task.name, e, exc_info=True)
            finally:
                self.current_task_id = None
                self._queued_ids[task.id] -= 1
                if self._queued_ids[task.id] <= 0:
                    del self._queued_ids[task.id]
                self._queue.task_done()

    # --- Processing ---

    async def process(self, task: AgentTask) -> Optional[AgentTaskResult]:
        """Run one task to completion.

        Returns None when the run was skipped for budget; the task is left
        untouched and stays due. A failure before the result is written
        produces a ``failed`` result and also leaves the schedule unchanged.
        """
        if await self.cost.is_daily_budget_exceeded(self.daily_budget):
            logger.warning("Daily budget exceeded; skipping agent task '%s'", task.name)
            return None

        logger.info("Agent task '%s' started", task.name)
        started = time.monotonic()
        cost_usd: Optional[float] = None
        try:
            context = await self.context.build(list(task.context_needs or []))
            response = await self.model_client.run(compose_prompt(task.prompt, context), self.model)
            cost_usd = response.cost_usd or None

            parsed = parse_actions(response.text)
            executed: list[ExecutedAction] = []
            deferred: list[ActionRequest] = []
            for action in parsed.actions:
                if is_safe_action(action, list(task.allowed_actions or []), self.safe_types):
                    success = await self.actions.execute(action)
                    executed.append(
                        ExecutedAction(
                            action_id=action.id,
                            type=action.type,
                            title=action.title,
                            approved=success,
                            executed_at=self.clock(),
                        )
                    )
                else:
                    deferred.append(action)

            now = self.clock()
            result = AgentTaskResult(
                id=str(uuid.uuid4()),
                task_id=task.id,
                timestamp=now,
                output=parsed.clean_text,
                actions_proposed=[a.to_record() for a in parsed.actions],
                actions_executed=[e.to_record() for e in executed],
                cost_usd=cost_usd,
                status="pending_approval" if deferred else "success",
                duration_ms=int((time.monotonic() - started) * 1000),
            )
            pending = [
                PendingAction(task_id=task.id, result_id=result.id, action=a.to_record(), created_at=now)
                for a in deferred
            ]
            await self.store.save_result(result, pending)
        except Exception as e:
            logger.error("Agent task '%s' failed: %s", task.name, e, exc_info=True)
            result = AgentTaskResult(
                task_id=task.id,
                timestamp=self.clock(),
                output=f"Error: {e}",
                cost_usd=cost_usd,
                status="failed",
                duration_ms=int((time.monotonic() - started) * 1000),
            )
            try:
                await self.store.save_result(result)
            except Exception as save_error:
                logger.error("Could not save failed result for '%s': %s", task.name, save_error)
            await self._log_cost(cost_usd)
            return result

        await self._reschedule(task)
        await self._log_cost(cost_usd)
        logger.info(
            "Agent task '%s' finished: %s (%d auto-executed, %d pending)",
            task.name,
            result.status,
            len(executed),
            len(deferred),
        )
        return result

    async def _reschedule(self, task: AgentTask) -> None:
        now = self.clock()
        next_run = compute_next_run(task.trigger_type, TriggerConfig.from_record(task.trigger_config), now)
        try:
            await self.store.record_run(task.id, ran_at=now, next_run=next_run, complete=task.is_one_shot)
        except Exception as e:
            logger.error("Could not reschedule agent task '%s': %s", task.name, e, exc_info=True)

    async def _log_cost(self, cost_usd: Optional[float]) -> None:
        if not cost_usd:
            return
        try:
            await self.cost.log_cost(cost_usd, session_id=None)
        except Exception as e:
            logger.error("Could not log agent cost $%.4f: %s", cost_usd, e)

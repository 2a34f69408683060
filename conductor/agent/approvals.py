"""User approval of actions that agent runs deferred."""

import logging
from datetime import datetime
from typing import Optional

from conductor.agent.action_executor import ActionExecutor
from conductor.agent.actions import ActionRequest, ExecutedAction
from conductor.core.errors import NotFoundError, ValidationError
from conductor.core.timeutil import Clock
from conductor.storage.agent_tasks import AgentTaskStore
from conductor.storage.models import PendingAction

logger = logging.getLogger(__name__)


class ApprovalQueue:
    def __init__(self, store: AgentTaskStore, actions: ActionExecutor, clock: Clock = datetime.now):
        self.store = store
        self.actions = actions
        self.clock = clock

    async def list_pending(self, task_id: Optional[str] = None) -> list[PendingAction]:
        return await self.store.list_pending_actions(task_id)

    async def _open(self, pending_id: str) -> PendingAction:
        pending = await self.store.get_pending_action(pending_id)
        if pending is None:
            raise NotFoundError(f"No pending action with id: {pending_id}")
        if pending.status != "pending":
            raise ValidationError(f"Action {pending_id} was already {pending.status}.")
        return pending

    async def approve(self, pending_id: str) -> ExecutedAction:
        """Run a deferred action. ``approved`` on the record is the handler's result."""
        pending = await self._open(pending_id)
        action = ActionRequest.model_validate(pending.action)
        success = await self.actions.execute(action)
        executed = ExecutedAction(
            action_id=action.id,
            type=action.type,
            title=action.title,
            approved=success,
            executed_at=self.clock(),
        )
        await self.store.resolve_pending_action(
            pending_id, "approved", resolved_at=executed.executed_at, executed=executed.to_record()
        )
        logger.info("Approved action '%s' (%s): %s", action.title, action.type.value, "ok" if success else "failed")
        return executed

    async def reject(self, pending_id: str) -> None:
        await self._open(pending_id)
        await self.store.resolve_pending_action(pending_id, "rejected", resolved_at=self.clock())
        logger.info("Rejected pending action %s", pending_id)

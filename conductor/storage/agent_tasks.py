"""Queries over agent tasks, their results and pending approvals."""

from datetime import datetime
from typing import Optional

from sqlalchemy import select

from conductor.storage.db import Database
from conductor.storage.models import AgentTask, AgentTaskResult, PendingAction


class AgentTaskStore:
    def __init__(self, db: Database):
        self.db = db

    async def create(self, task: AgentTask) -> AgentTask:
        async with self.db.session() as session:
            session.add(task)
        return task

    async def get(self, task_id: str) -> Optional[AgentTask]:
        async with self.db.session() as session:
            return await session.get(AgentTask, task_id)

    async def list_tasks(self, status: Optional[str] = "active") -> list[AgentTask]:
        """``status=None`` (or "all") lists every task, newest first."""
        query = select(AgentTask)
        if status and status != "all":
            query = query.where(AgentTask.status == status).order_by(
                AgentTask.next_run.is_(None), AgentTask.next_run, AgentTask.created_at
            )
        else:
            query = query.order_by(AgentTask.created_at.desc())
        async with self.db.session() as session:
            result = await session.execute(query)
            return list(result.scalars().all())

    async def get_due_tasks(self, now: datetime) -> list[AgentTask]:
        query = (
            select(AgentTask)
            .where(AgentTask.status == "active", AgentTask.next_run.is_not(None), AgentTask.next_run <= now)
            .order_by(AgentTask.next_run)
        )
        async with self.db.session() as session:
            result = await session.execute(query)
            return list(result.scalars().all())

    async def get_checkin_tasks(self, phase: str) -> list[AgentTask]:
        query = (
            select(AgentTask)
            .where(AgentTask.status == "active", AgentTask.trigger_type == "checkin")
            .order_by(AgentTask.created_at)
        )
        async with self.db.session() as session:
            tasks = (await session.execute(query)).scalars().all()
        return [t for t in tasks if (t.trigger_config or {}).get("checkin_phase") == phase]

    async def set_status(self, task_id: str, status: str) -> Optional[AgentTask]:
        async with self.db.session() as session:
            task = await session.get(AgentTask, task_id)
            if task is None:
                return None
            task.status = status
            return task

    async def record_run(
        self,
        task_id: str,
        ran_at: datetime,
        next_run: Optional[datetime],
        complete: bool,
    ) -> Optional[AgentTask]:
        """Advance a task after a finished run."""
        async with self.db.session() as session:
            task = await session.get(AgentTask, task_id)
            if task is None:
                return None
            task.last_run = ran_at
            task.run_count = (task.run_count or 0) + 1
            task.next_run = next_run
            if complete or (task.max_runs is not None and task.run_count >= task.max_runs):
                task.status = "completed"
                task.next_run = None
            return task

    # --- Results ---

    async def save_result(
        self, result: AgentTaskResult, pending: Optional[list[PendingAction]] = None
    ) -> AgentTaskResult:
        """Write a run result and any actions it deferred in one transaction."""
        async with self.db.session() as session:
            session.add(result)
            session.add_all(pending or [])
        return result

    async def get_results_for_task(self, task_id: str, limit: int = 20) -> list[AgentTaskResult]:
        query = (
            select(AgentTaskResult)
            .where(AgentTaskResult.task_id == task_id)
            .order_by(AgentTaskResult.timestamp.desc())
            .limit(limit)
        )
        async with self.db.session() as session:
            result = await session.execute(query)
            return list(result.scalars().all())

    async def get_recent_results(self, limit: int = 20) -> list[AgentTaskResult]:
        query = select(AgentTaskResult).order_by(AgentTaskResult.timestamp.desc()).limit(limit)
        async with self.db.session() as session:
            result = await session.execute(query)
            return list(result.scalars().all())

    async def get_pending_approval_results(self, limit: int = 20) -> list[AgentTaskResult]:
        query = (
            select(AgentTaskResult)
            .where(AgentTaskResult.status == "pending_approval")
            .order_by(AgentTaskResult.timestamp.desc())
            .limit(limit)
        )
        async with self.db.session() as session:
            result = await session.execute(query)
            return list(result.scalars().all())

    # --- Pending actions ---

    async def list_pending_actions(self, task_id: Optional[str] = None) -> list[PendingAction]:
        query = select(PendingAction).where(PendingAction.status == "pending")
        if task_id:
            query = query.where(PendingAction.task_id == task_id)
        query = query.order_by(PendingAction.created_at)
        async with self.db.session() as session:
            result = await session.execute(query)
            return list(result.scalars().all())

    async def resolve_pending_action(
        self, pending_id: str, status: str, resolved_at: datetime, executed: Optional[dict] = None
    ) -> Optional[PendingAction]:
        async with self.db.session() as session:
            pending = await session.get(PendingAction, pending_id)
            if pending is None:
                return None
            pending.status = status
            pending.resolved_at = resolved_at
            pending.executed = executed
            return pending

    async def get_pending_action(self, pending_id: str) -> Optional[PendingAction]:
        async with self.db.session() as session:
            return await session.get(PendingAction, pending_id)

"""CRUD for to-do tasks, daily goals and notes."""

from datetime import date, datetime, timedelta
from typing import Optional

from sqlalchemy import select

from conductor.core.timeutil import Clock
from conductor.storage.db import Database
from conductor.storage.models import DailyGoal, Note, TodoTask


def clamp_priority(value) -> int:
    try:
        return max(0, min(3, int(value)))
    except (TypeError, ValueError):
        return 0


class RecordStore:
    def __init__(self, db: Database, clock: Clock = datetime.now):
        self.db = db
        self.clock = clock

    # --- To-do tasks ---

    async def create_task(
        self,
        title: str,
        notes: Optional[str] = None,
        priority: int = 0,
        due_date: Optional[date] = None,
    ) -> TodoTask:
        task = TodoTask(title=title, notes=notes, priority=clamp_priority(priority), due_date=due_date)
        async with self.db.session() as session:
            session.add(task)
        return task

    async def get_task(self, task_id: str) -> Optional[TodoTask]:
        async with self.db.session() as session:
            return await session.get(TodoTask, task_id)

    async def update_task(
        self,
        task_id: str,
        title: Optional[str] = None,
        notes: Optional[str] = None,
        priority: Optional[int] = None,
        due_date: Optional[date] = None,
        is_completed: Optional[bool] = None,
    ) -> Optional[TodoTask]:
        async with self.db.session() as session:
            task = await session.get(TodoTask, task_id)
            if task is None:
                return None
            if title is not None:
                task.title = title
            if notes is not None:
                task.notes = notes
            if priority is not None:
                task.priority = clamp_priority(priority)
            if due_date is not None:
                task.due_date = due_date
            if is_completed is not None and is_completed != task.is_completed:
                task.is_completed = is_completed
                task.completed_at = self.clock() if is_completed else None
            return task

    async def delete_task(self, task_id: str) -> bool:
        async with self.db.session() as session:
            task = await session.get(TodoTask, task_id)
            if task is None:
                return False
            await session.delete(task)
            return True

    async def open_tasks(self, limit: Optional[int] = None) -> list[TodoTask]:
        query = (
            select(TodoTask)
            .where(TodoTask.is_completed.is_(False))
            .order_by(TodoTask.priority.desc(), TodoTask.due_date.is_(None), TodoTask.due_date)
        )
        if limit:
            query = query.limit(limit)
        async with self.db.session() as session:
            result = await session.execute(query)
            return list(result.scalars().all())

    # --- Daily goals ---

    async def create_goal(self, text: str, priority: int = 0, day: Optional[date] = None) -> DailyGoal:
        goal = DailyGoal(
            goal_text=text,
            priority=clamp_priority(priority),
            goal_date=(day or self.clock().date()).isoformat(),
        )
        async with self.db.session() as session:
            session.add(goal)
        return goal

    async def complete_goal(self, goal_id: str) -> bool:
        async with self.db.session() as session:
            goal = await session.get(DailyGoal, goal_id)
            if goal is None:
                return False
            goal.completed_at = self.clock()
            return True

    async def update_goal(self, goal_id: str, text: Optional[str] = None, priority: Optional[int] = None) -> bool:
        async with self.db.session() as session:
            goal = await session.get(DailyGoal, goal_id)
            if goal is None:
                return False
            if text:
                goal.goal_text = text
            if priority is not None:
                goal.priority = clamp_priority(priority)
            return True

    async def goals_for(self, day: date) -> list[DailyGoal]:
        query = (
            select(DailyGoal)
            .where(DailyGoal.goal_date == day.isoformat())
            .order_by(DailyGoal.priority.desc(), DailyGoal.created_at)
        )
        async with self.db.session() as session:
            result = await session.execute(query)
            return list(result.scalars().all())

    async def overdue_goals(self, day: date) -> list[DailyGoal]:
        query = (
            select(DailyGoal)
            .where(DailyGoal.goal_date < day.isoformat(), DailyGoal.completed_at.is_(None))
            .order_by(DailyGoal.goal_date)
        )
        async with self.db.session() as session:
            result = await session.execute(query)
            return list(result.scalars().all())

    async def goal_completion_rate(self, day: date, days: int = 7) -> float:
        """Share of goals completed over the ``days`` ending on ``day``."""
        since = (day - timedelta(days=days - 1)).isoformat()
        query = select(DailyGoal).where(DailyGoal.goal_date >= since, DailyGoal.goal_date <= day.isoformat())
        async with self.db.session() as session:
            goals = list((await session.execute(query)).scalars().all())
        if not goals:
            return 0.0
        return sum(1 for g in goals if g.is_completed) / len(goals)

    # --- Notes ---

    async def create_note(self, title: str, content: str = "") -> Note:
        note = Note(title=title, content=content)
        async with self.db.session() as session:
            session.add(note)
        return note

    async def recent_notes(self, limit: int = 5) -> list[Note]:
        query = select(Note).order_by(Note.updated_at.desc()).limit(limit)
        async with self.db.session() as session:
            result = await session.execute(query)
            return list(result.scalars().all())

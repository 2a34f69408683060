"""Themes: user-defined work categories that tasks and time blocks hang off.

Every task belongs to exactly one theme. Tasks without an explicit theme sit
in the built-in "Loose" bucket, which always exists and cannot be removed.
"""

import logging
from datetime import date, datetime
from typing import Optional

from sqlalchemy import delete, func, select

from conductor.core.errors import NotFoundError, ValidationError
from conductor.storage.db import Database
from conductor.storage.models import Theme, ThemeBlock, ThemeItem, ThemeKeyword, TodoTask

logger = logging.getLogger(__name__)

LOOSE_THEME_NAME = "Loose"
VALID_COLORS = ("red", "orange", "yellow", "green", "blue", "purple", "pink", "gray", "indigo", "teal")
DEFAULT_COLOR = "blue"


def normalize_color(color: Optional[str]) -> str:
    if color and color.lower() in VALID_COLORS:
        return color.lower()
    return DEFAULT_COLOR


def is_loose_name(name: Optional[str]) -> bool:
    return name is None or name.strip() == "" or name.strip().lower() == LOOSE_THEME_NAME.lower()


class ThemeService:
    def __init__(self, db: Database):
        self.db = db

    async def ensure_loose_theme(self) -> Theme:
        async with self.db.session() as session:
            result = await session.execute(select(Theme).where(Theme.is_loose.is_(True)))
            theme = result.scalars().first()
            if theme is None:
                theme = Theme(name=LOOSE_THEME_NAME, color="gray", is_loose=True, sort_order=-1)
                session.add(theme)
                logger.info("Created Loose theme")
            return theme

    async def get_theme(self, theme_id: str) -> Optional[Theme]:
        async with self.db.session() as session:
            return await session.get(Theme, theme_id)

    async def find_by_name(self, name: str, include_archived: bool = False) -> Optional[Theme]:
        query = select(Theme).where(func.lower(Theme.name) == name.strip().lower())
        if not include_archived:
            query = query.where(Theme.is_archived.is_(False))
        async with self.db.session() as session:
            result = await session.execute(query)
            return result.scalars().first()

    async def list_themes(self, include_archived: bool = False, include_loose: bool = True) -> list[Theme]:
        query = select(Theme).order_by(Theme.sort_order, Theme.name)
        if not include_archived:
            query = query.where(Theme.is_archived.is_(False))
        if not include_loose:
            query = query.where(Theme.is_loose.is_(False))
        async with self.db.session() as session:
            result = await session.execute(query)
            return list(result.scalars().all())

    async def create_theme(
        self,
        name: str,
        color: Optional[str] = None,
        objective: Optional[str] = None,
        keywords: Optional[list[str]] = None,
        default_start_time: Optional[str] = None,
        default_duration_minutes: int = 60,
    ) -> Theme:
        if not name or not name.strip():
            raise ValidationError("Theme name is required.")
        if is_loose_name(name):
            raise ValidationError("The Loose theme is built in and cannot be created.")
        theme = Theme(
            name=name.strip(),
            color=normalize_color(color),
            objective=objective,
            default_start_time=default_start_time,
            default_duration_minutes=default_duration_minutes,
        )
        async with self.db.session() as session:
            session.add(theme)
            await session.flush()
            for keyword in sorted({k.strip().lower() for k in keywords or [] if k and k.strip()}):
                session.add(ThemeKeyword(theme_id=theme.id, keyword=keyword))
        return theme

    async def keywords_for(self, theme_id: str) -> list[str]:
        query = select(ThemeKeyword.keyword).where(ThemeKeyword.theme_id == theme_id).order_by(ThemeKeyword.keyword)
        async with self.db.session() as session:
            result = await session.execute(query)
            return list(result.scalars().all())

    async def resolve_theme_target(
        self,
        theme_id: Optional[str] = None,
        theme_name: Optional[str] = None,
        create_if_missing: bool = False,
        color: Optional[str] = None,
    ) -> tuple[Theme, bool]:
        """Find the theme a task should land in.

        Returns ``(theme, created)``. An explicit id must exist. A name is
        matched case-insensitively; "loose" or an empty name maps to the Loose
        bucket. With neither, the task goes to Loose.
        """
        if theme_id:
            theme = await self.get_theme(theme_id)
            if theme is None:
                raise NotFoundError(f"Theme not found for id: {theme_id}")
            return theme, False

        if theme_name is None or is_loose_name(theme_name):
            return await self.ensure_loose_theme(), False

        theme = await self.find_by_name(theme_name)
        if theme is not None:
            return theme, False
        if not create_if_missing:
            raise NotFoundError(f"Theme '{theme_name}' not found and create_if_missing=false.")
        theme = await self.create_theme(
            theme_name,
            color=color,
            objective=f"High-level objective for {theme_name.strip()}",
        )
        return theme, True

    async def assign_task(self, task_id: str, theme_id: Optional[str]) -> Theme:
        """Move a task into a theme (None = Loose), replacing any previous link."""
        if theme_id is None:
            theme = await self.ensure_loose_theme()
        else:
            theme = await self.get_theme(theme_id)
            if theme is None:
                raise NotFoundError(f"Theme not found for id: {theme_id}")
        async with self.db.session() as session:
            if await session.get(TodoTask, task_id) is None:
                raise NotFoundError(f"Task not found for id: {task_id}")
            await session.execute(delete(ThemeItem).where(ThemeItem.task_id == task_id))
            session.add(ThemeItem(theme_id=theme.id, task_id=task_id))
        return theme

    async def theme_for_task(self, task_id: str) -> Optional[Theme]:
        query = select(Theme).join(ThemeItem, ThemeItem.theme_id == Theme.id).where(ThemeItem.task_id == task_id)
        async with self.db.session() as session:
            result = await session.execute(query)
            return result.scalars().first()

    async def tasks_for_theme(self, theme_id: str, include_completed: bool = False) -> list[TodoTask]:
        """Tasks in a theme, highest priority first, then earliest due date."""
        query = select(TodoTask).join(ThemeItem, ThemeItem.task_id == TodoTask.id).where(ThemeItem.theme_id == theme_id)
        if not include_completed:
            query = query.where(TodoTask.is_completed.is_(False))
        query = query.order_by(TodoTask.priority.desc(), TodoTask.due_date.is_(None), TodoTask.due_date, TodoTask.title)
        async with self.db.session() as session:
            result = await session.execute(query)
            return list(result.scalars().all())

    async def due_tasks_for_theme(self, theme_id: str, day: date) -> list[TodoTask]:
        """Open tasks due on or before ``day``."""
        return [t for t in await self.tasks_for_theme(theme_id) if t.due_date is not None and t.due_date <= day]

    async def loose_tasks(self) -> list[TodoTask]:
        """Open tasks in the Loose bucket or not linked to any theme."""
        loose = await self.ensure_loose_theme()
        linked_elsewhere = select(ThemeItem.task_id).where(ThemeItem.theme_id != loose.id)
        query = (
            select(TodoTask)
            .where(TodoTask.is_completed.is_(False), TodoTask.id.not_in(linked_elsewhere))
            .order_by(TodoTask.priority.desc(), TodoTask.due_date.is_(None), TodoTask.due_date)
        )
        async with self.db.session() as session:
            result = await session.execute(query)
            return list(result.scalars().all())

    async def task_counts(self) -> dict[str, int]:
        query = (
            select(ThemeItem.theme_id, func.count(TodoTask.id))
            .join(TodoTask, TodoTask.id == ThemeItem.task_id)
            .where(TodoTask.is_completed.is_(False))
            .group_by(ThemeItem.theme_id)
        )
        async with self.db.session() as session:
            result = await session.execute(query)
            return {theme_id: count for theme_id, count in result.all()}

    async def archive_theme(self, theme_id: str) -> Theme:
        async with self.db.session() as session:
            theme = await session.get(Theme, theme_id)
            if theme is None:
                raise NotFoundError(f"Theme not found for id: {theme_id}")
            if theme.is_loose:
                raise ValidationError("The Loose theme cannot be removed.")
            theme.is_archived = True
            return theme

    async def delete_theme(self, theme_id: str, force: bool = False) -> int:
        """Delete a theme. Linked tasks fall back to Loose. Returns how many moved."""
        async with self.db.session() as session:
            theme = await session.get(Theme, theme_id)
            if theme is None:
                raise NotFoundError(f"Theme not found for id: {theme_id}")
            if theme.is_loose:
                raise ValidationError("The Loose theme cannot be removed.")
            linked = (
                await session.execute(select(ThemeItem.task_id).where(ThemeItem.theme_id == theme_id))
            ).scalars().all()
            if linked and not force:
                raise ValidationError(
                    f"Theme '{theme.name}' has {len(linked)} linked task(s). Pass force=true to delete anyway."
                )
            await session.execute(delete(ThemeItem).where(ThemeItem.theme_id == theme_id))
            await session.execute(delete(ThemeKeyword).where(ThemeKeyword.theme_id == theme_id))
            await session.execute(delete(ThemeBlock).where(ThemeBlock.theme_id == theme_id))
            await session.delete(theme)
        return len(linked)

    async def active_theme(self, at: datetime) -> Optional[Theme]:
        """Theme of the block covering ``at``, if any."""
        query = (
            select(Theme)
            .join(ThemeBlock, ThemeBlock.theme_id == Theme.id)
            .where(ThemeBlock.start_time <= at, ThemeBlock.end_time > at)
            .order_by(ThemeBlock.start_time.desc())
        )
        async with self.db.session() as session:
            result = await session.execute(query)
            return result.scalars().first()

"""Snapshot of one day: calendar, active theme, due work per theme, email needing action."""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Optional

from conductor.core.themes import ThemeService
from conductor.core.timeutil import Clock, day_bounds
from conductor.providers import CalendarEvent, CalendarProvider, EmailSummary, MailProvider
from conductor.storage.models import Theme, TodoTask

logger = logging.getLogger(__name__)

MAX_ACTION_EMAILS = 10


@dataclass
class ThemeBucket:
    theme: Theme
    tasks: list[TodoTask]


@dataclass
class ThemeWeekSummary:
    theme_id: str
    theme_name: str
    open_count: int
    high_priority_count: int


@dataclass
class DayReviewSnapshot:
    day: date
    events: list[CalendarEvent] = field(default_factory=list)
    active_theme: Optional[Theme] = None
    buckets: list[ThemeBucket] = field(default_factory=list)
    loose_tasks: list[TodoTask] = field(default_factory=list)
    week_summaries: list[ThemeWeekSummary] = field(default_factory=list)
    action_emails: list[EmailSummary] = field(default_factory=list)


class DayReviewService:
    def __init__(
        self,
        themes: ThemeService,
        calendar: CalendarProvider,
        mail: Optional[MailProvider] = None,
        clock: Clock = datetime.now,
    ):
        self.themes = themes
        self.calendar = calendar
        self.mail = mail
        self.clock = clock

    async def build_snapshot(self, day: Optional[date] = None) -> DayReviewSnapshot:
        now = self.clock()
        day = day or now.date()
        snapshot = DayReviewSnapshot(day=day)

        start, end = day_bounds(day)
        snapshot.events = await self.calendar.get_events(start, end)
        if day == now.date():
            snapshot.active_theme = await self.themes.active_theme(now)

        week_end = day + timedelta(days=7)
        for theme in await self.themes.list_themes(include_loose=False):
            tasks = await self.themes.tasks_for_theme(theme.id)
            due = [t for t in tasks if t.due_date is not None and t.due_date <= day]
            if due:
                snapshot.buckets.append(ThemeBucket(theme=theme, tasks=due))
            upcoming = [t for t in tasks if t.due_date is None or t.due_date < week_end]
            if upcoming:
                snapshot.week_summaries.append(
                    ThemeWeekSummary(
                        theme_id=theme.id,
                        theme_name=theme.name,
                        open_count=len(upcoming),
                        high_priority_count=sum(1 for t in upcoming if t.priority >= 3),
                    )
                )
        snapshot.week_summaries.sort(key=lambda s: (-s.high_priority_count, -s.open_count, s.theme_name))
        snapshot.loose_tasks = await self.themes.loose_tasks()

        if self.mail is not None:
            try:
                context = await self.mail.build_email_context()
                snapshot.action_emails = [e for e in context.important_emails if e.needs_action][:MAX_ACTION_EMAILS]
            except Exception as e:
                logger.warning("Email unavailable for day review: %s", e)
        return snapshot

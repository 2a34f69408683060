"""Assemble the context block handed to the model for a background run."""

import logging
from datetime import datetime
from typing import Awaitable, Callable, Optional

from conductor.config import AgentSettings
from conductor.core.timeutil import Clock, day_bounds, format_short_date
from conductor.providers import CalendarProvider, MailProvider, RemindersProvider
from conductor.storage.records import RecordStore

logger = logging.getLogger(__name__)

NO_CONTEXT = "No context available."
NOTE_PREVIEW_CHARS = 100


def compose_prompt(prompt: str, context: str) -> str:
    return f"{prompt}\n\n---\nContext:\n{context}"


class ContextAssembler:
    def __init__(
        self,
        records: RecordStore,
        calendar: CalendarProvider,
        reminders: RemindersProvider,
        mail: MailProvider,
        settings: Optional[AgentSettings] = None,
        clock: Clock = datetime.now,
    ):
        self.records = records
        self.calendar = calendar
        self.reminders = reminders
        self.mail = mail
        self.settings = settings or AgentSettings()
        self.clock = clock
        self._sections: dict[str, Callable[[], Awaitable[Optional[str]]]] = {
            "calendar": self._calendar,
            "reminders": self._reminders,
            "goals": self._goals,
            "email": self._email,
            "notes": self._notes,
            "tasks": self._tasks,
        }

    async def build(self, context_needs: list[str]) -> str:
        """Render each requested, non-empty section in the order requested."""
        sections = []
        for need in context_needs:
            builder = self._sections.get(need)
            if builder is None:
                logger.debug("Unknown context need: %s", need)
                continue
            try:
                section = await builder()
            except Exception as e:
                logger.warning("Context section '%s' unavailable: %s", need, e)
                continue
            if section:
                sections.append(section)
        return "\n\n".join(sections) if sections else NO_CONTEXT

    async def _calendar(self) -> Optional[str]:
        start, end = day_bounds(self.clock().date())
        events = await self.calendar.get_events(start, end)
        if not events:
            return None
        lines = [f"- {e.time_label}: {e.title} ({e.duration_label})" for e in events]
        return "## Today's Calendar:\n" + "\n".join(lines)

    async def _reminders(self) -> Optional[str]:
        reminders = await self.reminders.get_upcoming(limit=self.settings.reminders_limit)
        if not reminders:
            return None
        lines = []
        for r in reminders[: self.settings.reminders_limit]:
            due = f" (due: {format_short_date(r.due.date())})" if r.due else ""
            lines.append(f"- {r.title}{due}")
        return "## Reminders:\n" + "\n".join(lines)

    async def _goals(self) -> Optional[str]:
        goals = await self.records.goals_for(self.clock().date())
        if not goals:
            return None
        lines = [f"- [{'x' if g.is_completed else ' '}] {g.goal_text}" for g in goals]
        return "## Today's Goals:\n" + "\n".join(lines)

    async def _email(self) -> Optional[str]:
        context = await self.mail.build_email_context()
        emails = context.important_emails[: self.settings.emails_limit]
        if not emails:
            return None
        lines = [f"- From {e.sender}: {e.subject}{' (unread)' if e.is_unread else ''}" for e in emails]
        return f"## Important Emails ({context.unread_count} unread):\n" + "\n".join(lines)

    async def _notes(self) -> Optional[str]:
        notes = await self.records.recent_notes(limit=self.settings.notes_limit)
        if not notes:
            return None
        lines = [f"- {n.title}: {(n.content or '')[:NOTE_PREVIEW_CHARS]}" for n in notes]
        return "## Recent Notes:\n" + "\n".join(lines)

    async def _tasks(self) -> Optional[str]:
        tasks = await self.records.open_tasks()
        if not tasks:
            return None
        lines = []
        for t in tasks:
            due = f" (due: {format_short_date(t.due_date)})" if t.due_date else ""
            lines.append(f"- {t.title}{due}")
        return "## TODO Tasks:\n" + "\n".join(lines)

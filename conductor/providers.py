"""External calendar, reminders and mail providers.

The agent and the tool server only talk to these through the protocols
below. The ``Local*`` classes keep everything in memory so the daemon runs
without OS integrations and tests can inspect what was written.
"""

import logging
import uuid
from datetime import datetime
from typing import Optional, Protocol

from pydantic import BaseModel, Field

from conductor.core.timeutil import format_duration, format_time

logger = logging.getLogger(__name__)


class CalendarEvent(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    title: str
    start: datetime
    end: datetime
    location: Optional[str] = None
    notes: Optional[str] = None

    @property
    def time_label(self) -> str:
        return format_time(self.start)

    @property
    def duration_label(self) -> str:
        return format_duration(self.end - self.start)

    def overlaps(self, start: datetime, end: datetime) -> bool:
        return self.start < end and start < self.end


class Reminder(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    title: str
    due: Optional[datetime] = None
    is_completed: bool = False


class EmailSummary(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    sender: str
    subject: str
    is_unread: bool = True
    received_at: Optional[datetime] = None
    needs_action: bool = False


class EmailContext(BaseModel):
    important_emails: list[EmailSummary] = Field(default_factory=list)
    unread_count: int = 0


class CalendarProvider(Protocol):
    async def get_events(self, start: datetime, end: datetime) -> list[CalendarEvent]: ...

    async def create_event(
        self, title: str, start: datetime, end: datetime, notes: Optional[str] = None
    ) -> str: ...


class RemindersProvider(Protocol):
    async def get_upcoming(self, limit: int = 20) -> list[Reminder]: ...

    async def create_reminder(self, title: str, due: Optional[datetime] = None) -> str: ...

    async def complete_reminder(self, reminder_id: str) -> bool: ...


class MailProvider(Protocol):
    async def build_email_context(self) -> EmailContext: ...

    async def send_email(self, to: list[str], subject: str, body: str, cc: Optional[list[str]] = None) -> bool: ...


class LocalCalendar:
    def __init__(self, events: Optional[list[CalendarEvent]] = None):
        self.events: list[CalendarEvent] = list(events or [])

    async def get_events(self, start: datetime, end: datetime) -> list[CalendarEvent]:
        return sorted((e for e in self.events if e.overlaps(start, end)), key=lambda e: e.start)

    async def create_event(self, title: str, start: datetime, end: datetime, notes: Optional[str] = None) -> str:
        event = CalendarEvent(title=title, start=start, end=end, notes=notes)
        self.events.append(event)
        logger.debug("Calendar event created: %s (%s)", title, event.id)
        return event.id


class LocalReminders:
    def __init__(self, reminders: Optional[list[Reminder]] = None):
        self.reminders: list[Reminder] = list(reminders or [])

    async def get_upcoming(self, limit: int = 20) -> list[Reminder]:
        open_items = [r for r in self.reminders if not r.is_completed]
        open_items.sort(key=lambda r: (r.due is None, r.due or datetime.max))
        return open_items[:limit]

    async def create_reminder(self, title: str, due: Optional[datetime] = None) -> str:
        reminder = Reminder(title=title, due=due)
        self.reminders.append(reminder)
        return reminder.id

    async def complete_reminder(self, reminder_id: str) -> bool:
        for reminder in self.reminders:
            if reminder.id == reminder_id:
                reminder.is_completed = True
                return True
        return False


class LocalMail:
    def __init__(self, emails: Optional[list[EmailSummary]] = None):
        self.emails: list[EmailSummary] = list(emails or [])
        self.outbox: list[dict] = []

    async def build_email_context(self) -> EmailContext:
        return EmailContext(
            important_emails=[e for e in self.emails if e.needs_action or e.is_unread],
            unread_count=sum(1 for e in self.emails if e.is_unread),
        )

    async def send_email(self, to: list[str], subject: str, body: str, cc: Optional[list[str]] = None) -> bool:
        self.outbox.append({"to": to, "subject": subject, "body": body, "cc": cc or []})
        return True

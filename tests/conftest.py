"""Shared test fixtures."""

import asyncio
import uuid
from datetime import datetime, timedelta

import pytest
import pytest_asyncio

from conductor.agent.model import ModelResponse
from conductor.config import Settings
from conductor.daemon import build_services
from conductor.providers import EmailSummary, LocalCalendar, LocalMail, LocalReminders
from conductor.storage.db import Database
from conductor.storage.models import AgentTask

# Wednesday morning, before the working day starts
NOW = datetime(2026, 3, 4, 8, 0, 0)


class FakeClock:
    """Callable clock that tests move by hand."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class FakeModelClient:
    """Scripted model: returns queued replies in order and tracks concurrency."""

    def __init__(self, replies=None, cost_usd: float = 0.0, delay: float = 0.0):
        self.replies = list(replies or [])
        self.cost_usd = cost_usd
        self.delay = delay
        self.prompts: list[str] = []
        self.models: list[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def run(self, prompt: str, model: str) -> ModelResponse:
        self.prompts.append(prompt)
        self.models.append(model)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            reply = self.replies.pop(0) if self.replies else "Done."
            if isinstance(reply, Exception):
                raise reply
            return ModelResponse(text=reply, cost_usd=self.cost_usd)
        finally:
            self.in_flight -= 1


class FailingCalendar(LocalCalendar):
    """Calendar whose create_event fails for titles in ``fail_titles`` or after ``fail_after`` calls."""

    def __init__(self, fail_after=None, fail_titles=()):
        super().__init__()
        self.fail_after = fail_after
        self.fail_titles = set(fail_titles)
        self.calls = 0

    async def create_event(self, title, start, end, notes=None):
        self.calls += 1
        if title in self.fail_titles or (self.fail_after is not None and self.calls > self.fail_after):
            raise RuntimeError("calendar unavailable")
        return await super().create_event(title, start, end, notes)


def make_agent_task(**overrides) -> AgentTask:
    """Create an unsaved AgentTask with sensible defaults."""
    defaults = {
        "id": str(uuid.uuid4()),
        "name": "Morning summary",
        "prompt": "Summarize my day.",
        "trigger_type": "manual",
        "trigger_config": {},
        "context_needs": [],
        "allowed_actions": [],
        "status": "active",
        "created_by": "chat",
        "next_run": None,
        "run_count": 0,
        "max_runs": None,
        "created_at": NOW,
    }
    defaults.update(overrides)
    return AgentTask(**defaults)


def make_action(**overrides) -> dict:
    """Create an action dict in the wire format the model emits."""
    defaults = {
        "id": str(uuid.uuid4()),
        "type": "createTodoTask",
        "title": "Buy milk",
        "requiresUserApproval": False,
        "payload": {"title": "Buy milk"},
    }
    defaults.update(overrides)
    return defaults


def make_email_summary(**overrides) -> EmailSummary:
    """Create an EmailSummary with sensible defaults."""
    defaults = {
        "id": str(uuid.uuid4()),
        "sender": "alice@example.com",
        "subject": "Quarterly report",
        "is_unread": True,
        "received_at": NOW - timedelta(hours=1),
        "needs_action": False,
    }
    defaults.update(overrides)
    return EmailSummary(**defaults)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def settings(tmp_path):
    settings = Settings()
    settings.general.db_url = f"sqlite+aiosqlite:///{tmp_path / 'conductor.db'}"
    settings.mcp.config_path = tmp_path / "mcp-config.json"
    return settings


@pytest_asyncio.fixture
async def db(settings):
    database = Database(settings.general.db_url)
    await database.create_all()
    yield database
    await database.close()


@pytest.fixture
def model_client():
    return FakeModelClient()


@pytest.fixture
def calendar():
    return LocalCalendar()


@pytest.fixture
def reminders():
    return LocalReminders()


@pytest.fixture
def mail():
    return LocalMail()


@pytest_asyncio.fixture
async def services(settings, db, model_client, calendar, reminders, mail, clock):
    built = build_services(
        settings,
        db=db,
        model_client=model_client,
        calendar=calendar,
        reminders=reminders,
        mail=mail,
        clock=clock,
    )
    await built.themes.ensure_loose_theme()
    yield built
    await built.scheduler.stop()
    await built.executor.stop()

"""Tests for the agent, approvals and ops CLI commands."""

import asyncio

import pytest
from typer.testing import CliRunner

from conductor.cli.main import app
from conductor.core.operation_log import OperationLog
from conductor.storage.agent_tasks import AgentTaskStore
from conductor.storage.db import Database
from conductor.storage.models import AgentTaskResult
from tests.conftest import NOW, make_agent_task

runner = CliRunner()


@pytest.fixture
def cli_settings(settings, monkeypatch):
    monkeypatch.setattr("conductor.cli.common.get_settings", lambda: settings)
    return settings


def seed(settings, *tasks):
    async def _seed():
        db = Database(settings.general.db_url)
        try:
            await db.create_all()
            store = AgentTaskStore(db)
            for task in tasks:
                await store.create(task)
        finally:
            await db.close()

    asyncio.run(_seed())


def read(settings, fn):
    async def _read():
        db = Database(settings.general.db_url)
        try:
            return await fn(db)
        finally:
            await db.close()

    return asyncio.run(_read())


class TestAgentCommands:
    def test_list_empty(self, cli_settings):
        result = runner.invoke(app, ["agent", "list"])
        assert result.exit_code == 0
        assert "No active agent tasks." in result.output

    def test_list_shows_tasks(self, cli_settings):
        seed(cli_settings, make_agent_task(name="Sweep"))
        result = runner.invoke(app, ["agent", "list"])
        assert result.exit_code == 0
        assert "Sweep" in result.output

    def test_pause_and_resume(self, cli_settings):
        task = make_agent_task(name="Sweep")
        seed(cli_settings, task)

        paused = runner.invoke(app, ["agent", "pause", task.id])
        assert paused.exit_code == 0
        assert "Paused: Sweep" in paused.output
        stored = read(cli_settings, lambda db: AgentTaskStore(db).get(task.id))
        assert stored.status == "paused"

        resumed = runner.invoke(app, ["agent", "resume", task.id])
        assert resumed.exit_code == 0
        stored = read(cli_settings, lambda db: AgentTaskStore(db).get(task.id))
        assert stored.status == "active"

    def test_cancel_is_logged(self, cli_settings):
        task = make_agent_task(name="Sweep")
        seed(cli_settings, task)

        result = runner.invoke(app, ["agent", "cancel", task.id])
        assert result.exit_code == 0
        events = read(cli_settings, lambda db: OperationLog(db).recent())
        assert [(e.operation, e.source) for e in events] == [("deleted", "cli:agent")]

    def test_pause_missing(self, cli_settings):
        result = runner.invoke(app, ["agent", "pause", "nope"])
        assert result.exit_code == 1
        assert "not found" in result.output

    def test_results_empty(self, cli_settings):
        result = runner.invoke(app, ["agent", "results"])
        assert result.exit_code == 0
        assert "No results yet." in result.output

    def test_results_pending_only(self, cli_settings):
        task = make_agent_task(name="Sweep")
        seed(cli_settings, task)

        async def _save(db):
            store = AgentTaskStore(db)
            await store.save_result(
                AgentTaskResult(task_id=task.id, timestamp=NOW, output="all good", status="success")
            )

        read(cli_settings, _save)
        result = runner.invoke(app, ["agent", "results", "--pending"])
        assert result.exit_code == 0
        assert "No results yet." in result.output
        assert "No results yet." not in runner.invoke(app, ["agent", "results"]).output


class TestApprovalCommands:
    def test_list_empty(self, cli_settings):
        result = runner.invoke(app, ["approvals", "list"])
        assert result.exit_code == 0
        assert "Nothing waiting for approval." in result.output

    def test_reject_unknown(self, cli_settings):
        result = runner.invoke(app, ["approvals", "reject", "nope"])
        assert result.exit_code == 1


class TestOpsCommands:
    def test_list_empty(self, cli_settings):
        result = runner.invoke(app, ["ops", "list"])
        assert result.exit_code == 0
        assert "No operation events." in result.output

    def test_limit_out_of_range(self, cli_settings):
        result = runner.invoke(app, ["ops", "list", "--limit", "500"])
        assert result.exit_code != 0

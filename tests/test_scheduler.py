"""Tests for the agent task scheduler (conductor/agent/scheduler.py)."""

import asyncio
from datetime import timedelta

import pytest

from tests.conftest import NOW, make_agent_task


async def saved_task(services, **overrides):
    return await services.agent_tasks.create(make_agent_task(**overrides))


class TestPollDueTasks:
    @pytest.mark.asyncio
    async def test_only_due_active_tasks_are_enqueued(self, services, model_client):
        due = await saved_task(services, name="due", trigger_type="recurring", next_run=NOW - timedelta(minutes=1))
        await saved_task(services, name="later", trigger_type="recurring", next_run=NOW + timedelta(hours=1))
        await saved_task(services, name="paused", trigger_type="recurring", status="paused", next_run=NOW)
        await saved_task(services, name="manual", trigger_type="manual", next_run=None)

        count = await services.scheduler.poll_due_tasks()
        assert count == 1
        await services.executor.wait_idle()
        assert len(model_client.prompts) == 1
        assert len(await services.agent_tasks.get_results_for_task(due.id)) == 1

    @pytest.mark.asyncio
    async def test_pending_task_is_not_enqueued_twice(self, services, model_client):
        """A task still waiting in the queue looks due but must not be queued again."""
        model_client.delay = 0.05
        await saved_task(services, trigger_type="recurring", trigger_config={"interval_minutes": 30}, next_run=NOW)

        assert await services.scheduler.poll_due_tasks() == 1
        assert await services.scheduler.poll_due_tasks() == 0
        await services.executor.wait_idle()
        assert len(model_client.prompts) == 1

    @pytest.mark.asyncio
    async def test_rescheduled_task_is_not_due_again(self, services, model_client):
        await saved_task(services, trigger_type="recurring", trigger_config={"interval_minutes": 30}, next_run=NOW)

        await services.scheduler.poll_due_tasks()
        await services.executor.wait_idle()
        assert await services.scheduler.poll_due_tasks() == 0


class TestTriggers:
    @pytest.mark.asyncio
    async def test_checkin_phase_selects_matching_tasks(self, services, model_client):
        await saved_task(services, name="am", trigger_type="checkin", trigger_config={"checkin_phase": "morning"})
        await saved_task(services, name="pm", trigger_type="checkin", trigger_config={"checkin_phase": "evening"})

        assert await services.scheduler.run_checkin_tasks("morning") == 1
        await services.executor.wait_idle()
        assert len(model_client.prompts) == 1

    @pytest.mark.asyncio
    async def test_trigger_active_task(self, services, model_client):
        task = await saved_task(services)
        assert await services.scheduler.trigger_task(task.id) is True
        await services.executor.wait_idle()

        stored = await services.agent_tasks.get(task.id)
        assert stored.status == "completed"
        assert stored.run_count == 1

    @pytest.mark.asyncio
    async def test_trigger_missing_task(self, services):
        assert await services.scheduler.trigger_task("nope") is False

    @pytest.mark.asyncio
    async def test_trigger_paused_task(self, services, model_client):
        task = await saved_task(services, status="paused")
        assert await services.scheduler.trigger_task(task.id) is False
        assert services.executor.queue_count == 0


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_start_stop_idempotent(self, services):
        scheduler = services.scheduler
        scheduler.initial_delay = 10
        scheduler.start()
        first = scheduler._loop_task
        scheduler.start()
        assert scheduler._loop_task is first
        assert scheduler.is_running

        await scheduler.stop()
        await scheduler.stop()
        assert not scheduler.is_running

    @pytest.mark.asyncio
    async def test_loop_polls_after_initial_delay(self, services, model_client):
        await saved_task(services, trigger_type="recurring", trigger_config={"interval_minutes": 30}, next_run=NOW)
        services.scheduler.initial_delay = 0
        services.scheduler.poll_interval = 60
        services.scheduler.start()

        for _ in range(100):
            if model_client.prompts:
                break
            await asyncio.sleep(0.01)
        await services.executor.wait_idle()
        await services.scheduler.stop()
        assert len(model_client.prompts) == 1

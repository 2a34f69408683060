"""Tests for the serial agent executor (conductor/agent/executor.py)."""

import json
from datetime import datetime, timedelta

import pytest

from tests.conftest import NOW, make_action, make_agent_task


def reply_with(*actions, text="Here you go.") -> str:
    return f"{text}\n<actions>{json.dumps(list(actions))}</actions>"


async def saved_task(services, **overrides):
    return await services.agent_tasks.create(make_agent_task(**overrides))


class TestQueue:
    @pytest.mark.asyncio
    async def test_single_flight_and_fifo(self, services, model_client):
        """Many enqueued tasks run one at a time, in the order they were queued."""
        model_client.delay = 0.01
        tasks = [await saved_task(services, name=f"task {i}", prompt=f"prompt {i}") for i in range(4)]

        for task in tasks:
            services.executor.enqueue(task)
        assert services.executor.is_running
        await services.executor.wait_idle()

        assert model_client.max_in_flight == 1
        assert [p.split("\n")[0] for p in model_client.prompts] == [f"prompt {i}" for i in range(4)]
        assert services.executor.queue_count == 0

    @pytest.mark.asyncio
    async def test_enqueue_does_not_block(self, services, model_client):
        model_client.delay = 0.05
        task = await saved_task(services)
        services.executor.enqueue(task)
        services.executor.enqueue(task)
        # Both calls returned before the worker got a turn
        assert model_client.prompts == []
        assert services.executor.is_pending(task.id)
        await services.executor.wait_idle()
        assert not services.executor.is_pending(task.id)
        assert len(model_client.prompts) == 2

    @pytest.mark.asyncio
    async def test_enqueue_batch_counts(self, services):
        tasks = [await saved_task(services, name=f"t{i}") for i in range(3)]
        assert services.executor.enqueue_batch(tasks) == 3
        await services.executor.wait_idle()

    @pytest.mark.asyncio
    async def test_crash_in_one_task_does_not_stop_the_worker(self, services, model_client, monkeypatch):
        tasks = [await saved_task(services, name=f"t{i}") for i in range(2)]
        calls = []
        original = services.executor.process

        async def flaky(task):
            calls.append(task.name)
            if task.name == "t0":
                raise RuntimeError("boom")
            return await original(task)

        monkeypatch.setattr(services.executor, "process", flaky)
        services.executor.enqueue_batch(tasks)
        await services.executor.wait_idle()
        assert calls == ["t0", "t1"]
        assert len(await services.agent_tasks.get_results_for_task(tasks[1].id)) == 1


class TestProcess:
    @pytest.mark.asyncio
    async def test_plain_reply_succeeds_without_actions(self, services, model_client):
        task = await saved_task(services)
        result = await services.executor.process(task)

        assert result.status == "success"
        assert result.output == "Done."
        assert result.actions_proposed == []
        assert result.actions_executed == []
        assert await services.agent_tasks.list_pending_actions() == []

    @pytest.mark.asyncio
    async def test_uses_agent_model_and_context(self, services, model_client, settings):
        await services.records.create_task("Pay rent")
        task = await saved_task(services, prompt="What is open?", context_needs=["tasks"])
        await services.executor.process(task)

        assert model_client.models == [settings.anthropic.agent_model]
        assert model_client.prompts[0].startswith("What is open?\n\n---\nContext:\n")
        assert "## TODO Tasks:\n- Pay rent" in model_client.prompts[0]

    @pytest.mark.asyncio
    async def test_safe_action_is_auto_executed(self, services, model_client):
        model_client.replies = [reply_with(make_action(title="Buy milk"))]
        task = await saved_task(services, allowed_actions=["createTodoTask"])
        result = await services.executor.process(task)

        assert result.status == "success"
        assert result.output == "Here you go."
        assert len(result.actions_proposed) == 1
        assert len(result.actions_executed) == 1
        assert result.actions_executed[0]["approved"] is True
        assert [t.title for t in await services.records.open_tasks()] == ["Buy milk"]
        assert await services.agent_tasks.list_pending_actions() == []

    @pytest.mark.asyncio
    async def test_action_flagged_for_approval_is_deferred(self, services, model_client):
        model_client.replies = [reply_with(make_action(requiresUserApproval=True))]
        task = await saved_task(services, allowed_actions=["createTodoTask"])
        result = await services.executor.process(task)

        assert result.status == "pending_approval"
        assert result.actions_executed == []
        assert await services.records.open_tasks() == []
        pending = await services.agent_tasks.list_pending_actions(task.id)
        assert len(pending) == 1
        assert pending[0].result_id == result.id
        assert pending[0].action["type"] == "createTodoTask"

    @pytest.mark.asyncio
    async def test_action_not_allowed_for_task_is_deferred(self, services, model_client):
        model_client.replies = [reply_with(make_action())]
        task = await saved_task(services, allowed_actions=["createGoal"])
        result = await services.executor.process(task)

        assert result.status == "pending_approval"
        assert await services.records.open_tasks() == []

    @pytest.mark.asyncio
    async def test_unsafe_type_is_deferred_even_when_allowed(self, services, model_client, mail):
        email = make_action(type="sendEmail", payload={"to": "a@x.com", "subject": "s", "body": "b"})
        model_client.replies = [reply_with(email)]
        task = await saved_task(services, allowed_actions=["sendEmail"])
        result = await services.executor.process(task)

        assert result.status == "pending_approval"
        assert mail.outbox == []

    @pytest.mark.asyncio
    async def test_mixed_actions(self, services, model_client):
        model_client.replies = [
            reply_with(
                make_action(type="createGoal", title="Focus", payload={"text": "Focus"}),
                make_action(type="createReminder", title="Call"),
            )
        ]
        task = await saved_task(services, allowed_actions=["createGoal", "createReminder"])
        result = await services.executor.process(task)

        assert result.status == "pending_approval"
        assert [a["type"] for a in result.actions_executed] == ["createGoal"]
        assert len(await services.agent_tasks.list_pending_actions()) == 1

    @pytest.mark.asyncio
    async def test_undecodable_nested_block_is_a_plain_success(self, services, model_client):
        depth = 100_000
        model_client.replies = ["Checked. <actions>" + "[" * depth + "]" * depth + "</actions>"]
        task = await saved_task(services)
        result = await services.executor.process(task)

        assert result.status == "success"
        assert result.output == "Checked."
        assert result.actions_proposed == []

    @pytest.mark.asyncio
    async def test_failed_handler_is_recorded_not_approved(self, services, model_client):
        model_client.replies = [reply_with(make_action(type="completeGoal", payload={"id": "missing"}))]
        task = await saved_task(services, allowed_actions=["completeGoal"])
        result = await services.executor.process(task)

        assert result.status == "success"
        assert result.actions_executed[0]["approved"] is False


class TestSchedulingAfterRun:
    @pytest.mark.asyncio
    async def test_recurring_task_is_rescheduled(self, services):
        task = await saved_task(
            services, trigger_type="recurring", trigger_config={"interval_minutes": 30}, next_run=NOW
        )
        await services.executor.process(task)

        stored = await services.agent_tasks.get(task.id)
        assert stored.status == "active"
        assert stored.run_count == 1
        assert stored.last_run == NOW
        assert stored.next_run == NOW + timedelta(minutes=30)

    @pytest.mark.asyncio
    async def test_one_shot_task_completes(self, services):
        task = await saved_task(
            services, trigger_type="time", trigger_config={"fire_at": NOW.isoformat()}, next_run=NOW
        )
        await services.executor.process(task)

        stored = await services.agent_tasks.get(task.id)
        assert stored.status == "completed"
        assert stored.next_run is None

    @pytest.mark.asyncio
    async def test_max_runs_completes_recurring_task(self, services):
        task = await saved_task(
            services,
            trigger_type="recurring",
            trigger_config={"cron_hour": 9},
            next_run=NOW,
            run_count=1,
            max_runs=2,
        )
        await services.executor.process(task)

        stored = await services.agent_tasks.get(task.id)
        assert stored.run_count == 2
        assert stored.status == "completed"
        assert stored.next_run is None

    @pytest.mark.asyncio
    async def test_failure_records_result_and_keeps_schedule(self, services, model_client):
        model_client.replies = [RuntimeError("model unavailable")]
        task = await saved_task(
            services, trigger_type="recurring", trigger_config={"interval_minutes": 30}, next_run=NOW
        )
        result = await services.executor.process(task)

        assert result.status == "failed"
        assert result.output == "Error: model unavailable"
        stored = await services.agent_tasks.get(task.id)
        assert stored.run_count == 0
        assert stored.next_run == NOW
        assert stored.status == "active"
        saved = await services.agent_tasks.get_results_for_task(task.id)
        assert [r.status for r in saved] == ["failed"]


class TestBudget:
    @pytest.mark.asyncio
    async def test_cost_is_logged(self, services, model_client):
        model_client.cost_usd = 0.25
        task = await saved_task(services)
        result = await services.executor.process(task)

        assert result.cost_usd == 0.25
        assert await services.cost.daily_cost() == pytest.approx(0.25)

    @pytest.mark.asyncio
    async def test_run_skipped_when_budget_exceeded(self, services, model_client):
        services.executor.daily_budget = 1.0
        await services.cost.log_cost(1.0)
        task = await saved_task(services, trigger_type="recurring", trigger_config={"interval_minutes": 5}, next_run=NOW)

        assert await services.executor.process(task) is None
        assert model_client.prompts == []
        assert await services.agent_tasks.get_results_for_task(task.id) == []
        stored = await services.agent_tasks.get(task.id)
        assert stored.next_run == NOW
        assert stored.run_count == 0

    @pytest.mark.asyncio
    async def test_runs_when_under_budget(self, services, model_client):
        services.executor.daily_budget = 1.0
        await services.cost.log_cost(0.5)
        task = await saved_task(services)

        result = await services.executor.process(task)
        assert result is not None
        assert result.status == "success"

    @pytest.mark.asyncio
    async def test_yesterdays_spend_does_not_count(self, services, clock, model_client):
        services.executor.daily_budget = 1.0
        clock.now = datetime(2026, 3, 3, 20, 0)
        await services.cost.log_cost(5.0)
        clock.now = NOW
        task = await saved_task(services)

        assert await services.executor.process(task) is not None

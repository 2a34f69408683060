"""Tests for the storage layer: agent task queries and records."""

from datetime import date, timedelta

import pytest

from conductor.storage.agent_tasks import AgentTaskStore
from conductor.storage.models import AgentTaskResult
from conductor.storage.records import RecordStore, clamp_priority
from tests.conftest import NOW, make_agent_task


@pytest.fixture
def store(db):
    return AgentTaskStore(db)


@pytest.fixture
def records(db, clock):
    return RecordStore(db, clock=clock)


class TestAgentTaskStore:
    @pytest.mark.asyncio
    async def test_due_tasks_ordered_by_next_run(self, store):
        later = await store.create(make_agent_task(name="later", trigger_type="recurring", next_run=NOW))
        sooner = await store.create(
            make_agent_task(name="sooner", trigger_type="recurring", next_run=NOW - timedelta(hours=1))
        )
        await store.create(make_agent_task(name="future", trigger_type="recurring", next_run=NOW + timedelta(minutes=1)))

        due = await store.get_due_tasks(NOW)
        assert [t.id for t in due] == [sooner.id, later.id]

    @pytest.mark.asyncio
    async def test_list_by_status(self, store):
        await store.create(make_agent_task(name="a"))
        await store.create(make_agent_task(name="p", status="paused"))

        assert [t.name for t in await store.list_tasks()] == ["a"]
        assert [t.name for t in await store.list_tasks("paused")] == ["p"]
        assert sorted(t.name for t in await store.list_tasks("all")) == ["a", "p"]

    @pytest.mark.asyncio
    async def test_set_status_missing(self, store):
        assert await store.set_status("nope", "paused") is None

    @pytest.mark.asyncio
    async def test_record_run_increments(self, store):
        task = await store.create(make_agent_task(trigger_type="recurring"))
        updated = await store.record_run(task.id, ran_at=NOW, next_run=NOW + timedelta(hours=1), complete=False)
        assert updated.run_count == 1
        assert updated.status == "active"
        assert updated.next_run == NOW + timedelta(hours=1)

    @pytest.mark.asyncio
    async def test_checkin_tasks_filter_phase(self, store):
        await store.create(
            make_agent_task(name="am", trigger_type="checkin", trigger_config={"checkin_phase": "morning"})
        )
        await store.create(
            make_agent_task(
                name="am paused", trigger_type="checkin", status="paused", trigger_config={"checkin_phase": "morning"}
            )
        )
        assert [t.name for t in await store.get_checkin_tasks("morning")] == ["am"]
        assert await store.get_checkin_tasks("evening") == []

    @pytest.mark.asyncio
    async def test_pending_approval_results_newest_first(self, store):
        task = await store.create(make_agent_task())
        for minutes, status in ((0, "pending_approval"), (5, "success"), (10, "pending_approval")):
            await store.save_result(
                AgentTaskResult(task_id=task.id, timestamp=NOW + timedelta(minutes=minutes), status=status)
            )

        pending = await store.get_pending_approval_results()
        assert [r.timestamp for r in pending] == [NOW + timedelta(minutes=10), NOW]
        assert len(await store.get_pending_approval_results(limit=1)) == 1


class TestRecordStore:
    def test_clamp_priority(self):
        assert clamp_priority(7) == 3
        assert clamp_priority(-1) == 0
        assert clamp_priority("2") == 2
        assert clamp_priority("high") == 0

    @pytest.mark.asyncio
    async def test_open_tasks_skip_completed(self, db, records):
        from conductor.storage.models import TodoTask

        done = await records.create_task("Done")
        await records.create_task("Open")
        async with db.session() as session:
            (await session.get(TodoTask, done.id)).is_completed = True
        assert [t.title for t in await records.open_tasks()] == ["Open"]

    @pytest.mark.asyncio
    async def test_overdue_goals_and_rate(self, records, clock):
        today = clock().date()
        old_open = await records.create_goal("Old open", day=today - timedelta(days=2))
        old_done = await records.create_goal("Old done", day=today - timedelta(days=1))
        await records.complete_goal(old_done.id)
        await records.create_goal("Today", day=today)
        await records.create_goal("Ancient", day=date(2025, 1, 1))

        overdue = await records.overdue_goals(today)
        assert [g.goal_text for g in overdue] == ["Ancient", "Old open"]
        assert old_open.id in [g.id for g in overdue]
        # Three goals fall within the last seven days, one of them done
        assert await records.goal_completion_rate(today) == pytest.approx(1 / 3)

    @pytest.mark.asyncio
    async def test_update_goal_missing(self, records):
        assert await records.update_goal("nope", text="x") is False

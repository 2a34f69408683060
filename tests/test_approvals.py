"""Tests for the approval queue (conductor/agent/approvals.py)."""

import json

import pytest

from conductor.core.errors import NotFoundError, ValidationError
from tests.conftest import make_action, make_agent_task


async def deferred_action(services, model_client, **action_overrides):
    """Run a task whose only action needs approval; return the pending row."""
    action = make_action(requiresUserApproval=True, **action_overrides)
    model_client.replies = [f"Proposed.\n<actions>{json.dumps([action])}</actions>"]
    task = await services.agent_tasks.create(make_agent_task())
    await services.executor.process(task)
    pending = await services.approvals.list_pending(task.id)
    assert len(pending) == 1
    return pending[0]


class TestApprovalQueue:
    @pytest.mark.asyncio
    async def test_approve_executes_action(self, services, model_client):
        pending = await deferred_action(services, model_client, title="Buy milk")

        executed = await services.approvals.approve(pending.id)
        assert executed.approved is True
        assert executed.title == "Buy milk"
        assert [t.title for t in await services.records.open_tasks()] == ["Buy milk"]

        stored = await services.agent_tasks.get_pending_action(pending.id)
        assert stored.status == "approved"
        assert stored.executed["actionId"] == pending.action["id"]
        assert stored.resolved_at is not None
        assert await services.approvals.list_pending() == []

    @pytest.mark.asyncio
    async def test_approve_runs_types_never_auto_executed(self, services, model_client, mail):
        pending = await deferred_action(
            services, model_client, type="sendEmail", payload={"to": "a@x.com", "subject": "Hi", "body": "Yo"}
        )
        executed = await services.approvals.approve(pending.id)
        assert executed.approved is True
        assert len(mail.outbox) == 1

    @pytest.mark.asyncio
    async def test_failed_execution_is_still_resolved(self, services, model_client):
        pending = await deferred_action(services, model_client, type="webTask", payload={})
        executed = await services.approvals.approve(pending.id)
        assert executed.approved is False
        stored = await services.agent_tasks.get_pending_action(pending.id)
        assert stored.status == "approved"
        assert stored.executed["approved"] is False

    @pytest.mark.asyncio
    async def test_reject(self, services, model_client):
        pending = await deferred_action(services, model_client)
        await services.approvals.reject(pending.id)

        stored = await services.agent_tasks.get_pending_action(pending.id)
        assert stored.status == "rejected"
        assert stored.executed is None
        assert await services.records.open_tasks() == []

    @pytest.mark.asyncio
    async def test_cannot_resolve_twice(self, services, model_client):
        pending = await deferred_action(services, model_client)
        await services.approvals.reject(pending.id)
        with pytest.raises(ValidationError, match="already rejected"):
            await services.approvals.approve(pending.id)

    @pytest.mark.asyncio
    async def test_unknown_id(self, services):
        with pytest.raises(NotFoundError):
            await services.approvals.reject("nope")

"""To-do and agent-task tools."""

import logging
from typing import Any, Optional

import pydantic

from conductor.agent.scheduling import TriggerConfig
from conductor.agent.tasks import create_agent_task_record
from conductor.core.errors import ConductorError, NotFoundError
from conductor.core.operation_log import OperationReceipt
from conductor.core.timeutil import parse_date, parse_datetime
from conductor.mcp.base import ToolBase
from conductor.mcp.results import (
    MAX_ITEMS_PER_CALL,
    arg_bool,
    arg_int,
    arg_list,
    arg_str,
    clamp,
    correlation_id_from,
    mcp_error,
    mcp_success,
    with_receipt,
)
from conductor.storage.models import AgentTask, Theme, TodoTask

logger = logging.getLogger(__name__)

AGENT_TASK_STATUSES = ("active", "paused", "completed", "expired", "all")
CANCEL_ACTIONS = {
    "cancel": ("completed", "deleted"),
    "pause": ("paused", "updated"),
    "resume": ("active", "updated"),
}


def agent_task_dict(task: AgentTask) -> dict[str, Any]:
    return {
        "id": task.id,
        "name": task.name,
        "trigger_type": task.trigger_type,
        "trigger_config": task.trigger_config or {},
        "status": task.status,
        "next_run": task.next_run.isoformat() if task.next_run else None,
        "last_run": task.last_run.isoformat() if task.last_run else None,
        "run_count": task.run_count,
        "max_runs": task.max_runs,
        "linked_todo_task_id": task.linked_todo_task_id,
    }


class TaskToolsMixin(ToolBase):
    async def create_canonical_todo_task(
        self,
        args: dict[str, Any],
        source: str,
        correlation_id: str,
        title_key: str = "title",
        prefix: str = "",
    ) -> tuple[TodoTask, Theme, OperationReceipt]:
        """Create a to-do, resolve its theme and log every step under one correlation id.

        ``prefix`` selects prefixed argument names (``todo_title`` etc.) when
        the to-do is created on behalf of another tool.
        """
        title = arg_str(args, title_key)
        if not title:
            raise await self._fail("title is required.", "todo_task", source, correlation_id)

        due_raw = arg_str(args, f"{prefix}due_date")
        due_date = parse_date(due_raw)
        if due_raw and due_date is None:
            raise await self._fail("Invalid due_date. Use YYYY-MM-DD.", "todo_task", source, correlation_id)

        try:
            theme, created = await self.themes.resolve_theme_target(
                theme_id=arg_str(args, "theme_id"),
                theme_name=args.get("theme_name"),
                create_if_missing=arg_bool(args, "create_if_missing"),
                color=arg_str(args, "color"),
            )
        except ConductorError as e:
            raise await self._fail(str(e), "theme", source, correlation_id)

        if created:
            await self.op_log.record(
                "created", "theme", source=source,
                message=f"Created theme '{theme.name}'", entity_id=theme.id,
                correlation_id=correlation_id,
            )

        task = await self.records.create_task(
            title=title,
            notes=arg_str(args, f"{prefix}notes"),
            priority=arg_int(args, f"{prefix}priority", 0),
            due_date=due_date,
        )
        await self.themes.assign_task(task.id, theme.id)
        await self.op_log.record(
            "assigned", "todo_task", source=source,
            message=f"Assigned '{title}' to theme '{theme.name}'", entity_id=task.id,
            payload={"theme_id": theme.id}, correlation_id=correlation_id,
        )
        receipt = await self.op_log.record(
            "created", "todo_task", source=source,
            message=f"Created task '{title}'", entity_id=task.id,
            payload={"theme_id": theme.id, "theme_created": created},
            correlation_id=correlation_id,
        )
        return task, theme, receipt

    async def _tool_create_todo_task(self, args: dict[str, Any]) -> dict[str, Any]:
        correlation_id = correlation_id_from(args)
        task, theme, receipt = await self.create_canonical_todo_task(args, "mcp:create_todo_task", correlation_id)
        return mcp_success(
            f"Created task '{task.title}' in theme '{theme.name}'.",
            with_receipt(receipt, {"task_id": task.id, "theme_id": theme.id, "theme_name": theme.name}),
        )

    async def _tool_get_todos(self, args: dict[str, Any]) -> dict[str, Any]:
        limit = clamp(arg_int(args, "limit", 20), 1, MAX_ITEMS_PER_CALL)
        tasks = await self.records.open_tasks(limit=limit)
        if not tasks:
            return mcp_success("No open to-dos.", {"todos": []})
        lines = ["Open to-dos:"]
        todos = []
        for t in tasks:
            theme = await self.themes.theme_for_task(t.id)
            due = f" (due: {t.due_date.isoformat()})" if t.due_date else ""
            lines.append(f"- [{t.priority}] {t.title}{due} (id: {t.id})")
            todos.append({
                "id": t.id,
                "title": t.title,
                "notes": t.notes,
                "priority": t.priority,
                "due_date": t.due_date.isoformat() if t.due_date else None,
                "theme_id": theme.id if theme else None,
                "theme_name": theme.name if theme else None,
            })
        return mcp_success("\n".join(lines), {"todos": todos})

    async def _tool_update_todo(self, args: dict[str, Any]) -> dict[str, Any]:
        source = "mcp:update_todo"
        correlation_id = correlation_id_from(args)
        task_id = arg_str(args, "task_id")
        if not task_id:
            raise await self._fail("task_id is required.", "todo_task", source, correlation_id)

        due_raw = arg_str(args, "due_date")
        due_date = parse_date(due_raw)
        if due_raw and due_date is None:
            raise await self._fail(
                "Invalid due_date. Use YYYY-MM-DD.", "todo_task", source, correlation_id, entity_id=task_id
            )
        changes = {
            "title": arg_str(args, "title"),
            "notes": arg_str(args, "notes"),
            "priority": arg_int(args, "priority"),
            "due_date": due_date,
            "is_completed": arg_bool(args, "is_completed") if "is_completed" in args else None,
        }
        changes = {k: v for k, v in changes.items() if v is not None}
        if not changes:
            raise await self._fail("Nothing to update.", "todo_task", source, correlation_id, entity_id=task_id)

        task = await self.records.update_task(task_id, **changes)
        if task is None:
            raise await self._fail(
                f"Task not found for id: {task_id}", "todo_task", source, correlation_id, entity_id=task_id
            )
        receipt = await self.op_log.record(
            "updated", "todo_task", source=source,
            message=f"Updated task '{task.title}'", entity_id=task.id,
            payload={"fields": sorted(changes)}, correlation_id=correlation_id,
        )
        return mcp_success(
            receipt.message + ".",
            with_receipt(receipt, {"task_id": task.id, "is_completed": task.is_completed}),
        )

    async def _tool_create_agent_task(self, args: dict[str, Any]) -> dict[str, Any]:
        source = "mcp:create_agent_task"
        correlation_id = correlation_id_from(args)
        name = arg_str(args, "name")
        prompt = arg_str(args, "prompt")
        trigger_type = arg_str(args, "trigger_type")

        fire_at_raw = arg_str(args, "fire_at")
        fire_at = parse_datetime(fire_at_raw)
        if fire_at_raw and fire_at is None:
            raise await self._fail("Invalid fire_at. Use an ISO 8601 datetime.", "agent_task", source, correlation_id)
        try:
            config = TriggerConfig(
                fire_at=fire_at,
                interval_minutes=arg_int(args, "interval_minutes"),
                cron_hour=arg_int(args, "cron_hour"),
                cron_minute=arg_int(args, "cron_minute"),
                checkin_phase=arg_str(args, "checkin_phase"),
                event_type=arg_str(args, "event_type"),
            )
        except pydantic.ValidationError as e:
            message = "Invalid trigger configuration: " + "; ".join(err["msg"] for err in e.errors())
            raise await self._fail(message, "agent_task", source, correlation_id)

        try:
            agent_task = create_agent_task_record(
                name=name or "",
                prompt=prompt or "",
                trigger_type=trigger_type or "",
                config=config,
                now=self.now(),
                context_needs=arg_list(args, "context_needs"),
                allowed_actions=arg_list(args, "allowed_actions"),
                max_runs=arg_int(args, "max_runs"),
            )
        except ConductorError as e:
            raise await self._fail(str(e), "agent_task", source, correlation_id)

        todo_args = {**args, "todo_title": arg_str(args, "todo_title") or name}
        todo, _, _ = await self.create_canonical_todo_task(
            todo_args, source, correlation_id, title_key="todo_title", prefix="todo_"
        )
        agent_task.linked_todo_task_id = todo.id

        try:
            await self.agent_tasks.create(agent_task)
        except Exception as e:
            logger.error("Saving agent task '%s' failed after creating its to-do: %s", name, e, exc_info=True)
            receipt = await self.op_log.record(
                "created", "agent_task", source=source, status="partial_success",
                message=f"Created linked to-do but failed to save agent task '{name}': {e}",
                payload={"todo_task_id": todo.id}, correlation_id=correlation_id,
            )
            return mcp_error(
                receipt.message,
                with_receipt(receipt, {"partial_success": True, "todo_task_id": todo.id, "linked_todo_task_id": todo.id}),
            )

        await self.op_log.record(
            "linked", "agent_task", source=source,
            message=f"Linked agent task '{name}' to to-do '{todo.title}'", entity_id=agent_task.id,
            payload={"todo_task_id": todo.id}, correlation_id=correlation_id,
        )
        receipt = await self.op_log.record(
            "created", "agent_task", source=source,
            message=f"Created agent task '{name}'", entity_id=agent_task.id,
            payload={"trigger_type": trigger_type}, correlation_id=correlation_id,
        )
        next_run = agent_task.next_run.isoformat() if agent_task.next_run else None
        return mcp_success(
            f"Created agent task '{name}' ({trigger_type}). Next run: {next_run or 'when triggered'}.",
            with_receipt(receipt, {
                "agent_task_id": agent_task.id,
                "linked_todo_task_id": todo.id,
                "todo_task_id": todo.id,
                "next_run": next_run,
            }),
        )

    async def _tool_list_agent_tasks(self, args: dict[str, Any]) -> dict[str, Any]:
        status = (arg_str(args, "status") or "active").lower()
        if status not in AGENT_TASK_STATUSES:
            return mcp_error(f"Invalid status '{status}'. Use one of: {', '.join(AGENT_TASK_STATUSES)}.")
        tasks = await self.agent_tasks.list_tasks(status)
        if not tasks:
            return mcp_success(f"No {status} agent tasks." if status != "all" else "No agent tasks.", {"tasks": []})
        lines = [f"Agent tasks ({status}):"]
        for t in tasks:
            when = t.next_run.strftime("%Y-%m-%d %H:%M") if t.next_run else "on trigger"
            lines.append(f"- {t.name} [{t.trigger_type}, {t.status}] next: {when} (id: {t.id})")
        return mcp_success("\n".join(lines), {"tasks": [agent_task_dict(t) for t in tasks]})

    async def _tool_cancel_agent_task(self, args: dict[str, Any]) -> dict[str, Any]:
        source = "mcp:cancel_agent_task"
        correlation_id = correlation_id_from(args)
        task_id = arg_str(args, "task_id")
        action = (arg_str(args, "action") or "cancel").lower()
        if not task_id:
            raise await self._fail("task_id is required.", "agent_task", source, correlation_id)
        if action not in CANCEL_ACTIONS:
            raise await self._fail(
                f"Invalid action '{action}'. Use cancel, pause or resume.",
                "agent_task", source, correlation_id, entity_id=task_id,
            )
        new_status, operation = CANCEL_ACTIONS[action]
        task = await self.agent_tasks.set_status(task_id, new_status)
        if task is None:
            raise await self._fail(
                f"Agent task not found for id: {task_id}", "agent_task", source, correlation_id, entity_id=task_id
            )
        receipt = await self.op_log.record(
            operation, "agent_task", source=source,
            message=f"Agent task '{task.name}' is now {new_status}", entity_id=task.id,
            payload={"action": action}, correlation_id=correlation_id,
        )
        return mcp_success(receipt.message + ".", with_receipt(receipt, {"agent_task_id": task.id, "task_status": new_status}))

    async def _tool_assign_task_theme(self, args: dict[str, Any]) -> dict[str, Any]:
        source = "mcp:assign_task_theme"
        correlation_id = correlation_id_from(args)
        task_id: Optional[str] = arg_str(args, "task_id")
        agent_task_id = arg_str(args, "agent_task_id")
        if not task_id and agent_task_id:
            agent_task = await self.agent_tasks.get(agent_task_id)
            if agent_task is None:
                raise await self._fail(
                    f"Agent task not found for id: {agent_task_id}", "agent_task", source, correlation_id,
                    entity_id=agent_task_id,
                )
            if not agent_task.linked_todo_task_id:
                raise await self._fail(
                    "Agent task has no linked to-do task.", "agent_task", source, correlation_id,
                    entity_id=agent_task_id,
                )
            task_id = agent_task.linked_todo_task_id
        if not task_id:
            raise await self._fail("task_id or agent_task_id is required.", "todo_task", source, correlation_id)

        try:
            theme, created = await self.themes.resolve_theme_target(
                theme_id=arg_str(args, "theme_id"),
                theme_name=args.get("theme_name"),
                create_if_missing=arg_bool(args, "create_if_missing"),
                color=arg_str(args, "color"),
            )
            if created:
                await self.op_log.record(
                    "created", "theme", source=source,
                    message=f"Created theme '{theme.name}'", entity_id=theme.id,
                    correlation_id=correlation_id,
                )
            await self.themes.assign_task(task_id, theme.id)
        except NotFoundError as e:
            raise await self._fail(str(e), "todo_task", source, correlation_id, entity_id=task_id)

        receipt = await self.op_log.record(
            "assigned", "todo_task", source=source,
            message=f"Assigned task to theme '{theme.name}'", entity_id=task_id,
            payload={"theme_id": theme.id}, correlation_id=correlation_id,
        )
        return mcp_success(receipt.message + ".", with_receipt(receipt, {"task_id": task_id, "theme_id": theme.id}))

"""Tool dispatch and the read-only tools."""

import logging
from datetime import datetime, timedelta
from typing import Any, Optional

from conductor.config import MCPSettings
from conductor.core.day_review import DayReviewService
from conductor.core.errors import ConductorError, ReceiptBackedError
from conductor.core.operation_log import OperationLog, event_to_dict
from conductor.core.planning import PlanningDraftService
from conductor.core.themes import ThemeService
from conductor.core.timeutil import Clock, format_short_date, parse_date, start_of_day
from conductor.mcp.planning_tools import PlanningToolsMixin
from conductor.mcp.results import (
    MAX_DATE_RANGE_DAYS,
    MAX_ITEMS_PER_CALL,
    arg_int,
    arg_str,
    clamp,
    correlation_id_from,
    mcp_error,
    mcp_success,
    with_receipt,
)
from conductor.mcp.task_tools import TaskToolsMixin
from conductor.mcp.theme_tools import ThemeToolsMixin
from conductor.mcp.tools import TOOL_NAMES
from conductor.providers import CalendarProvider, MailProvider, RemindersProvider
from conductor.storage.agent_tasks import AgentTaskStore
from conductor.storage.records import RecordStore

logger = logging.getLogger(__name__)

DEFAULT_OPERATION_EVENTS = 25
MAX_OPERATION_EVENTS = 100


def _task_line(task) -> str:
    due = f" (due: {format_short_date(task.due_date)})" if task.due_date else ""
    return f"- {task.title}{due}"


class ToolHandlers(TaskToolsMixin, ThemeToolsMixin, PlanningToolsMixin):
    """Every tool the server exposes, dispatched by name.

    ``handle_tool_call`` never raises: failures come back as ``isError``
    results, carrying a receipt whenever one was written.
    """

    def __init__(
        self,
        records: RecordStore,
        themes: ThemeService,
        agent_tasks: AgentTaskStore,
        planning: PlanningDraftService,
        day_review: DayReviewService,
        op_log: OperationLog,
        calendar: CalendarProvider,
        reminders: RemindersProvider,
        mail: MailProvider,
        settings: Optional[MCPSettings] = None,
        clock: Clock = datetime.now,
    ):
        self.records = records
        self.themes = themes
        self.agent_tasks = agent_tasks
        self.planning = planning
        self.day_review = day_review
        self.op_log = op_log
        self.calendar = calendar
        self.reminders = reminders
        self.mail = mail
        self.settings = settings or MCPSettings()
        self.clock = clock

    async def handle_tool_call(self, name: str, arguments: Optional[dict[str, Any]] = None) -> dict[str, Any]:
        args = arguments if isinstance(arguments, dict) else {}
        if name not in TOOL_NAMES:
            return mcp_error(f"Unknown tool: {name}")
        handler = getattr(self, f"_tool_{name}")
        try:
            return await handler(args)
        except ReceiptBackedError as e:
            return mcp_error(str(e), with_receipt(e.receipt))
        except ConductorError as e:
            return mcp_error(str(e))
        except Exception as e:
            logger.error("Tool %s failed: %s", name, e, exc_info=True)
            receipt = await self.op_log.record(
                "failed", "tool_call", source=f"mcp:{name}", status="failed",
                message=f"{name} failed: {e}", correlation_id=correlation_id_from(args),
            )
            return mcp_error(f"{name} failed: {e}", with_receipt(receipt))

    # --- Read-only tools ---

    async def _tool_get_calendar(self, args: dict[str, Any]) -> dict[str, Any]:
        if not self.settings.calendar_read_enabled:
            return mcp_error("Calendar access is disabled in settings.")
        start_raw = arg_str(args, "start_date")
        end_raw = arg_str(args, "end_date")
        start = parse_date(start_raw) if start_raw else self.now().date()
        end = parse_date(end_raw) if end_raw else start
        if start is None or end is None:
            return mcp_error("Invalid date. Use YYYY-MM-DD.")
        if end < start:
            return mcp_error("end_date must not be before start_date.")
        if (end - start).days + 1 > MAX_DATE_RANGE_DAYS:
            return mcp_error(f"Date range too large. Maximum is {MAX_DATE_RANGE_DAYS} days.")

        events = await self.calendar.get_events(start_of_day(start), start_of_day(end) + timedelta(days=1))
        events = events[:MAX_ITEMS_PER_CALL]
        if not events:
            return mcp_success("No events.", {"events": []})
        lines = [f"- {e.start:%Y-%m-%d} {e.time_label}: {e.title} ({e.duration_label})" for e in events]
        return mcp_success(
            "Calendar:\n" + "\n".join(lines),
            {"events": [e.model_dump(mode="json") for e in events]},
        )

    async def _tool_get_reminders(self, args: dict[str, Any]) -> dict[str, Any]:
        if not self.settings.reminders_read_enabled:
            return mcp_error("Reminders access is disabled in settings.")
        limit = clamp(arg_int(args, "limit", 20), 1, MAX_ITEMS_PER_CALL)
        reminders = await self.reminders.get_upcoming(limit=limit)
        if not reminders:
            return mcp_success("No upcoming reminders.", {"reminders": []})
        lines = []
        for r in reminders[:limit]:
            due = f" (due: {format_short_date(r.due.date())})" if r.due else ""
            lines.append(f"- {r.title}{due}")
        return mcp_success(
            "Reminders:\n" + "\n".join(lines),
            {"reminders": [r.model_dump(mode="json") for r in reminders[:limit]]},
        )

    async def _tool_get_goals(self, args: dict[str, Any]) -> dict[str, Any]:
        today = self.now().date()
        goals = await self.records.goals_for(today)
        overdue = await self.records.overdue_goals(today)
        rate = await self.records.goal_completion_rate(today)
        lines = ["Today's goals:"]
        lines.extend(f"- [{'x' if g.is_completed else ' '}] {g.goal_text}" for g in goals)
        if not goals:
            lines.append("- (none)")
        if overdue:
            lines.append("Overdue:")
            lines.extend(f"- {g.goal_text} ({g.goal_date})" for g in overdue)
        lines.append(f"7-day completion rate: {rate:.0%}")

        def goal_dict(g):
            return {"id": g.id, "text": g.goal_text, "date": g.goal_date, "priority": g.priority, "completed": g.is_completed}

        return mcp_success(
            "\n".join(lines),
            {
                "goals": [goal_dict(g) for g in goals],
                "overdue": [goal_dict(g) for g in overdue],
                "completion_rate_7d": rate,
            },
        )

    async def _tool_get_notes(self, args: dict[str, Any]) -> dict[str, Any]:
        limit = clamp(arg_int(args, "limit", 5), 1, MAX_ITEMS_PER_CALL)
        notes = await self.records.recent_notes(limit=limit)
        if not notes:
            return mcp_success("No notes.", {"notes": []})
        lines = [f"- {n.title}: {(n.content or '')[:100]}" for n in notes]
        return mcp_success(
            "Recent notes:\n" + "\n".join(lines),
            {"notes": [{"id": n.id, "title": n.title, "content": n.content} for n in notes]},
        )

    async def _tool_get_emails(self, args: dict[str, Any]) -> dict[str, Any]:
        if not self.settings.email_integration_enabled:
            return mcp_error("Email integration is disabled in settings.")
        context = await self.mail.build_email_context()
        emails = context.important_emails
        needle = (arg_str(args, "filter") or "").lower()
        if needle:
            emails = [e for e in emails if needle in e.sender.lower() or needle in e.subject.lower()]
        emails = emails[:MAX_ITEMS_PER_CALL]
        header = f"Important emails ({context.unread_count} unread):"
        if not emails:
            return mcp_success(header + "\n- (none)", {"emails": [], "unread_count": context.unread_count})
        lines = [f"- From {e.sender}: {e.subject}{' (unread)' if e.is_unread else ''}" for e in emails]
        return mcp_success(
            header + "\n" + "\n".join(lines),
            {"emails": [e.model_dump(mode="json") for e in emails], "unread_count": context.unread_count},
        )

    async def _tool_get_day_review(self, args: dict[str, Any]) -> dict[str, Any]:
        raw = arg_str(args, "date")
        day = parse_date(raw) if raw else None
        if raw and day is None:
            return mcp_error("Invalid date. Use YYYY-MM-DD.")
        snapshot = await self.day_review.build_snapshot(day)

        lines = [f"Day review for {snapshot.day.isoformat()}"]
        if snapshot.active_theme is not None:
            lines.append(f"Active theme: {snapshot.active_theme.name}")
        lines.append("Events:")
        lines.extend(f"- {e.time_label}: {e.title} ({e.duration_label})" for e in snapshot.events)
        if not snapshot.events:
            lines.append("- (none)")
        for bucket in snapshot.buckets:
            lines.append(f"{bucket.theme.name}:")
            lines.extend(_task_line(t) for t in bucket.tasks)
        if snapshot.loose_tasks:
            lines.append("Loose:")
            lines.extend(_task_line(t) for t in snapshot.loose_tasks)
        if snapshot.action_emails:
            lines.append("Emails needing action:")
            lines.extend(f"- From {e.sender}: {e.subject}" for e in snapshot.action_emails)

        return mcp_success(
            "\n".join(lines),
            {
                "date": snapshot.day.isoformat(),
                "active_theme": snapshot.active_theme.name if snapshot.active_theme else None,
                "events": [e.model_dump(mode="json") for e in snapshot.events],
                "themes": [
                    {"theme_id": b.theme.id, "theme_name": b.theme.name, "task_ids": [t.id for t in b.tasks]}
                    for b in snapshot.buckets
                ],
                "loose_task_ids": [t.id for t in snapshot.loose_tasks],
                "week": [
                    {
                        "theme_id": s.theme_id,
                        "theme_name": s.theme_name,
                        "open_count": s.open_count,
                        "high_priority_count": s.high_priority_count,
                    }
                    for s in snapshot.week_summaries
                ],
                "action_emails": [e.model_dump(mode="json") for e in snapshot.action_emails],
            },
        )

    async def _tool_get_operation_events(self, args: dict[str, Any]) -> dict[str, Any]:
        limit = clamp(arg_int(args, "limit", DEFAULT_OPERATION_EVENTS), 1, MAX_OPERATION_EVENTS)
        events = await self.op_log.recent(
            limit=limit,
            status=arg_str(args, "status"),
            correlation_id=arg_str(args, "correlation_id"),
        )
        if not events:
            return mcp_success("No operation events.", {"events": []})
        lines = [
            f"- {e.created_at:%Y-%m-%d %H:%M} {e.status} {e.operation} {e.entity_type} via {e.source}: {e.message}"
            for e in events
        ]
        return mcp_success("Operation events:\n" + "\n".join(lines), {"events": [event_to_dict(e) for e in events]})

"""Static catalog of tools advertised through ``tools/list``."""

from conductor.agent.scheduling import CONTEXT_NEEDS, TRIGGER_TYPES
from conductor.core.themes import VALID_COLORS


def _schema(properties: dict, required: tuple = ()) -> dict:
    schema = {"type": "object", "properties": properties}
    if required:
        schema["required"] = list(required)
    return schema


_STR = {"type": "string"}
_INT = {"type": "integer"}
_BOOL = {"type": "boolean"}


def _str(description: str) -> dict:
    return {**_STR, "description": description}


TOOL_DEFINITIONS: list[dict] = [
    {
        "name": "get_calendar",
        "description": "Calendar events between two dates (at most 30 days).",
        "inputSchema": _schema({
            "start_date": _str("YYYY-MM-DD, defaults to today"),
            "end_date": _str("YYYY-MM-DD (inclusive), defaults to start_date"),
        }),
    },
    {
        "name": "get_reminders",
        "description": "Upcoming incomplete reminders.",
        "inputSchema": _schema({"limit": {**_INT, "description": "Max items (default 20, max 50)"}}),
    },
    {
        "name": "get_goals",
        "description": "Today's goals, overdue goals and the 7-day completion rate.",
        "inputSchema": _schema({}),
    },
    {
        "name": "get_notes",
        "description": "Most recently updated notes.",
        "inputSchema": _schema({"limit": {**_INT, "description": "Max items (default 5)"}}),
    },
    {
        "name": "get_emails",
        "description": "Important and unread emails.",
        "inputSchema": _schema({"filter": _str("Match on sender or subject")}),
    },
    {
        "name": "create_todo_task",
        "description": "Create a to-do task, optionally in a theme (auto-created if allowed).",
        "inputSchema": _schema(
            {
                "title": _STR,
                "notes": _STR,
                "due_date": _str("YYYY-MM-DD"),
                "priority": {**_INT, "description": "0 none, 1 low, 2 medium, 3 high"},
                "theme_id": _STR,
                "theme_name": _STR,
                "create_if_missing": _BOOL,
                "color": {"type": "string", "enum": list(VALID_COLORS)},
                "correlation_id": _STR,
            },
            required=("title",),
        ),
    },
    {
        "name": "get_todos",
        "description": "Open to-do tasks with their themes, highest priority first.",
        "inputSchema": _schema({"limit": _INT}),
    },
    {
        "name": "update_todo",
        "description": "Change a to-do's title, notes, priority or due date, or mark it done.",
        "inputSchema": _schema(
            {
                "task_id": _STR,
                "title": _STR,
                "notes": _STR,
                "priority": {**_INT, "description": "0 none, 1 low, 2 medium, 3 high"},
                "due_date": _str("YYYY-MM-DD"),
                "is_completed": _BOOL,
                "correlation_id": _STR,
            },
            required=("task_id",),
        ),
    },
    {
        "name": "create_agent_task",
        "description": "Schedule a background agent task, linked to a new to-do.",
        "inputSchema": _schema(
            {
                "name": _STR,
                "prompt": _STR,
                "trigger_type": {"type": "string", "enum": list(TRIGGER_TYPES)},
                "fire_at": _str("ISO 8601 datetime for trigger_type=time"),
                "interval_minutes": _INT,
                "cron_hour": _INT,
                "cron_minute": _INT,
                "checkin_phase": _STR,
                "event_type": _STR,
                "context_needs": {"type": "array", "items": {"type": "string", "enum": list(CONTEXT_NEEDS)}},
                "allowed_actions": {"type": "array", "items": _STR},
                "max_runs": _INT,
                "todo_title": _STR,
                "todo_notes": _STR,
                "todo_due_date": _STR,
                "todo_priority": _INT,
                "theme_id": _STR,
                "theme_name": _STR,
                "create_if_missing": _BOOL,
                "correlation_id": _STR,
            },
            required=("name", "prompt", "trigger_type"),
        ),
    },
    {
        "name": "list_agent_tasks",
        "description": "List agent tasks.",
        "inputSchema": _schema({"status": _str("active (default), paused, completed, expired or all")}),
    },
    {
        "name": "cancel_agent_task",
        "description": "Cancel, pause or resume an agent task.",
        "inputSchema": _schema(
            {"task_id": _STR, "action": {"type": "string", "enum": ["cancel", "pause", "resume"]}},
            required=("task_id",),
        ),
    },
    {
        "name": "assign_task_theme",
        "description": "Move a to-do (or an agent task's linked to-do) into a theme.",
        "inputSchema": _schema({
            "task_id": _STR,
            "agent_task_id": _STR,
            "theme_id": _STR,
            "theme_name": _STR,
            "create_if_missing": _BOOL,
            "correlation_id": _STR,
        }),
    },
    {
        "name": "get_themes",
        "description": "Themes with open task counts and keywords.",
        "inputSchema": _schema({"include_archived": _BOOL}),
    },
    {
        "name": "create_theme",
        "description": "Create a theme.",
        "inputSchema": _schema(
            {
                "name": _STR,
                "color": {"type": "string", "enum": list(VALID_COLORS)},
                "description": _STR,
                "keywords": {"type": "array", "items": _STR},
                "default_start_time": _str("HH:MM"),
                "default_duration_minutes": _INT,
            },
            required=("name",),
        ),
    },
    {
        "name": "delete_theme",
        "description": "Archive (default) or delete a theme.",
        "inputSchema": _schema({
            "theme_id": _STR,
            "theme_name": _STR,
            "mode": {"type": "string", "enum": ["archive", "delete"]},
            "force": _BOOL,
        }),
    },
    {
        "name": "get_day_review",
        "description": "Events, active theme, due tasks per theme and email needing action.",
        "inputSchema": _schema({"date": _str("YYYY-MM-DD, defaults to today")}),
    },
    {
        "name": "get_operation_events",
        "description": "Recent audit events.",
        "inputSchema": _schema({
            "limit": {**_INT, "description": "1-100, default 25"},
            "status": {"type": "string", "enum": ["success", "failed", "partial_success"]},
            "correlation_id": _STR,
        }),
    },
    {
        "name": "plan_day",
        "description": "Draft theme blocks for one day.",
        "inputSchema": _schema({"date": _str("YYYY-MM-DD, defaults to today")}),
    },
    {
        "name": "plan_week",
        "description": "Draft theme blocks for seven days.",
        "inputSchema": _schema({"start_date": _str("YYYY-MM-DD, defaults to today")}),
    },
    {
        "name": "apply_plan_blocks",
        "description": "Turn a draft into theme blocks, optionally overriding one block's time and publishing.",
        "inputSchema": _schema(
            {
                "draft_id": _STR,
                "status": {"type": "string", "enum": ["draft", "planned"]},
                "theme_name": _STR,
                "start_time": _STR,
                "end_time": _STR,
                "publish": _BOOL,
            },
            required=("draft_id",),
        ),
    },
    {
        "name": "publish_plan_blocks",
        "description": "Publish blocks to the calendar (defaults to today's planned blocks).",
        "inputSchema": _schema({"block_ids": {"type": "array", "items": _STR}}),
    },
    {
        "name": "create_theme_block",
        "description": "Create one theme block, optionally publishing it.",
        "inputSchema": _schema(
            {"theme_id": _STR, "start_time": _STR, "end_time": _STR, "publish": _BOOL},
            required=("theme_id", "start_time", "end_time"),
        ),
    },
]

TOOL_NAMES = frozenset(tool["name"] for tool in TOOL_DEFINITIONS)

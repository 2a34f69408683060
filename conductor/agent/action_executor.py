"""Dispatch approved actions to their downstream effects.

``ActionExecutor.execute`` returns True/False and never raises, so one bad
action cannot abort a batch.
"""

import logging
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from conductor.agent.actions import ActionRequest, ActionType
from conductor.core.operation_log import OperationLog
from conductor.core.themes import ThemeService
from conductor.core.timeutil import Clock, parse_date, parse_datetime
from conductor.providers import CalendarProvider, MailProvider, RemindersProvider
from conductor.storage.records import RecordStore

logger = logging.getLogger(__name__)

SAFE_ACTION_TYPES = frozenset({ActionType.CREATE_TODO_TASK, ActionType.CREATE_GOAL, ActionType.COMPLETE_GOAL})


class _Params(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class CreateTodoParams(_Params):
    title: Optional[str] = None
    notes: Optional[str] = None
    priority: int = 0
    due_date: Optional[str] = None
    correlation_id: Optional[str] = None
    theme_id: Optional[str] = None
    theme_name: Optional[str] = None
    create_theme_if_missing: bool = False
    theme_color: Optional[str] = None


class UpdateTodoParams(_Params):
    id: str
    title: Optional[str] = None
    notes: Optional[str] = None
    priority: Optional[int] = None
    due_date: Optional[str] = None


class IdParams(_Params):
    id: str


class CreateGoalParams(_Params):
    text: Optional[str] = None
    priority: int = 0
    date: Optional[str] = None


class UpdateGoalParams(_Params):
    id: str
    text: Optional[str] = None
    priority: Optional[int] = None


class CreateEventParams(_Params):
    title: Optional[str] = None
    start: str = Field(validation_alias="start_date")
    end: Optional[str] = Field(default=None, validation_alias="end_date")
    location: Optional[str] = None
    notes: Optional[str] = None


class CreateReminderParams(_Params):
    title: Optional[str] = None
    due_date: Optional[str] = None


class SendEmailParams(_Params):
    to: str
    subject: str
    body: str
    cc: Optional[str] = None


def _addresses(value: Optional[str]) -> list[str]:
    return [a.strip() for a in (value or "").split(",") if a.strip()]


class ActionExecutor:
    def __init__(
        self,
        records: RecordStore,
        themes: ThemeService,
        op_log: OperationLog,
        calendar: CalendarProvider,
        reminders: RemindersProvider,
        mail: MailProvider,
        clock: Clock = datetime.now,
    ):
        self.records = records
        self.themes = themes
        self.op_log = op_log
        self.calendar = calendar
        self.reminders = reminders
        self.mail = mail
        self.clock = clock
        self._handlers: dict[ActionType, Callable[[ActionRequest], Awaitable[bool]]] = {
            ActionType.CREATE_TODO_TASK: self._create_todo_task,
            ActionType.UPDATE_TODO_TASK: self._update_todo_task,
            ActionType.DELETE_TODO_TASK: self._delete_todo_task,
            ActionType.CREATE_GOAL: self._create_goal,
            ActionType.COMPLETE_GOAL: self._complete_goal,
            ActionType.UPDATE_GOAL: self._update_goal,
            ActionType.CREATE_CALENDAR_EVENT: self._create_calendar_event,
            ActionType.CREATE_REMINDER: self._create_reminder,
            ActionType.COMPLETE_REMINDER: self._complete_reminder,
            ActionType.SEND_EMAIL: self._send_email,
        }

    async def execute(self, action: ActionRequest) -> bool:
        handler = self._handlers.get(action.type)
        if handler is None:
            logger.warning("Unsupported action type: %s", action.type.value)
            return False
        try:
            return await handler(action)
        except ValidationError as e:
            logger.warning("Action %s (%s) has invalid payload: %s", action.id, action.type.value, e)
            return False
        except Exception as e:
            logger.error("Action %s (%s) failed: %s", action.id, action.type.value, e, exc_info=True)
            return False

    # --- Handlers ---

    async def _create_todo_task(self, action: ActionRequest) -> bool:
        params = CreateTodoParams.model_validate(action.payload)
        title = params.title or action.title or "Untitled Task"
        source = "action:createTodoTask"
        try:
            theme, created_theme = await self.themes.resolve_theme_target(
                theme_id=params.theme_id,
                theme_name=params.theme_name,
                create_if_missing=params.create_theme_if_missing,
                color=params.theme_color,
            )
            task = await self.records.create_task(
                title=title,
                notes=params.notes,
                priority=params.priority,
                due_date=parse_date(params.due_date),
            )
            await self.themes.assign_task(task.id, theme.id)
        except Exception as e:
            await self.op_log.record(
                "failed", "todo_task", source=source, status="failed",
                message=f"Failed to create task '{title}': {e}",
                correlation_id=params.correlation_id,
            )
            logger.warning("createTodoTask failed for '%s': %s", title, e)
            return False

        receipt = await self.op_log.record(
            "created", "todo_task", source=source,
            message=f"Created task '{title}' in theme '{theme.name}'",
            entity_id=task.id,
            payload={"theme_id": theme.id, "theme_created": created_theme},
            correlation_id=params.correlation_id,
        )
        logger.info("Agent created task '%s' (%s)", title, receipt.correlation_id)
        return True

    async def _update_todo_task(self, action: ActionRequest) -> bool:
        params = UpdateTodoParams.model_validate(action.payload)
        task = await self.records.update_task(
            params.id,
            title=params.title,
            notes=params.notes,
            priority=params.priority,
            due_date=parse_date(params.due_date),
        )
        if task is None:
            logger.warning("updateTodoTask: no task %s", params.id)
            return False
        return True

    async def _delete_todo_task(self, action: ActionRequest) -> bool:
        params = IdParams.model_validate(action.payload)
        return await self.records.delete_task(params.id)

    async def _create_goal(self, action: ActionRequest) -> bool:
        params = CreateGoalParams.model_validate(action.payload)
        text = params.text or action.title or "Untitled Goal"
        day = parse_date(params.date) or self.clock().date()
        await self.records.create_goal(text, priority=params.priority, day=day)
        return True

    async def _complete_goal(self, action: ActionRequest) -> bool:
        params = IdParams.model_validate(action.payload)
        return await self.records.complete_goal(params.id)

    async def _update_goal(self, action: ActionRequest) -> bool:
        params = UpdateGoalParams.model_validate(action.payload)
        return await self.records.update_goal(params.id, text=params.text, priority=params.priority)

    async def _create_calendar_event(self, action: ActionRequest) -> bool:
        payload = dict(action.payload)
        # Accept both start/end and start_date/end_date
        for short, long in (("start", "start_date"), ("end", "end_date")):
            if short in payload and long not in payload:
                payload[long] = payload.pop(short)
        params = CreateEventParams.model_validate(payload)
        title = params.title or action.title or "Untitled Event"
        start = parse_datetime(params.start)
        if start is None:
            await self.op_log.record(
                "failed", "calendar_event", source="action:createCalendarEvent", status="failed",
                message=f"Invalid start for event '{title}': {params.start}",
            )
            return False
        end = parse_datetime(params.end) or start + timedelta(hours=1)
        notes = params.notes
        if params.location:
            location_line = f"Location: {params.location}"
            notes = f"{notes}\n{location_line}" if notes else location_line
        event_id = await self.calendar.create_event(title, start, end, notes)
        await self.op_log.record(
            "created", "calendar_event", source="action:createCalendarEvent",
            message=f"Created event '{title}'", entity_id=event_id,
        )
        return True

    async def _create_reminder(self, action: ActionRequest) -> bool:
        params = CreateReminderParams.model_validate(action.payload)
        title = params.title or action.title or "Untitled Reminder"
        await self.reminders.create_reminder(title, parse_datetime(params.due_date))
        return True

    async def _complete_reminder(self, action: ActionRequest) -> bool:
        params = IdParams.model_validate(action.payload)
        return await self.reminders.complete_reminder(params.id)

    async def _send_email(self, action: ActionRequest) -> bool:
        params = SendEmailParams.model_validate(action.payload)
        recipients = _addresses(params.to)
        if not recipients:
            logger.warning("sendEmail: no recipients")
            return False
        return await self.mail.send_email(recipients, params.subject, params.body, _addresses(params.cc) or None)


def is_safe_action(action: ActionRequest, allowed_actions: list[str], safe_types=SAFE_ACTION_TYPES) -> bool:
    """Auto-execute only when globally safe, allowed for the task, and not flagged for approval."""
    return (
        action.type in safe_types
        and action.type.value in allowed_actions
        and not action.requires_user_approval
    )


def safe_types_from_names(names) -> frozenset:
    """Map configured action-type names to ``ActionType``; unknown names are dropped."""
    known = {t.value: t for t in ActionType}
    unknown = [n for n in names if n not in known]
    if unknown:
        logger.warning("Ignoring unknown safe action types: %s", ", ".join(unknown))
    return frozenset(known[n] for n in names if n in known)

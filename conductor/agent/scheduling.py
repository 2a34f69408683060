"""Trigger configuration and next-run computation for agent tasks."""

from datetime import datetime, timedelta
from typing import Optional

from pydantic import BaseModel, Field

TRIGGER_TYPES = ("time", "recurring", "event", "checkin", "manual")
CONTEXT_NEEDS = ("calendar", "reminders", "goals", "email", "notes", "tasks")


class TriggerConfig(BaseModel):
    fire_at: Optional[datetime] = None
    cron_hour: Optional[int] = Field(default=None, ge=0, le=23)
    cron_minute: Optional[int] = Field(default=None, ge=0, le=59)
    interval_minutes: Optional[int] = Field(default=None, gt=0)
    checkin_phase: Optional[str] = None
    event_type: Optional[str] = None

    @classmethod
    def from_record(cls, data: Optional[dict]) -> "TriggerConfig":
        return cls.model_validate(data or {})

    def to_record(self) -> dict:
        return self.model_dump(mode="json", exclude_none=True)


def compute_next_run(trigger_type: str, config: TriggerConfig, now: datetime) -> Optional[datetime]:
    """When a task should run next after running at ``now``.

    One-shot (time, manual) and externally fired (event, checkin) triggers
    never get a polled next run.
    """
    if trigger_type != "recurring":
        return None

    if config.interval_minutes:
        return now + timedelta(minutes=config.interval_minutes)

    if config.cron_hour is not None:
        today = now.replace(hour=config.cron_hour, minute=config.cron_minute or 0, second=0, microsecond=0)
        if today > now:
            return today
        return today + timedelta(days=1)

    return now + timedelta(hours=1)


def initial_next_run(trigger_type: str, config: TriggerConfig, now: datetime) -> Optional[datetime]:
    """First run for a newly created task."""
    if trigger_type == "time":
        return config.fire_at
    return compute_next_run(trigger_type, config, now)

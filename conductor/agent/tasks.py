"""Construction of new agent tasks."""

from datetime import datetime
from typing import Optional

from conductor.agent.actions import ActionType
from conductor.agent.scheduling import CONTEXT_NEEDS, TRIGGER_TYPES, TriggerConfig, initial_next_run
from conductor.core.errors import ValidationError
from conductor.storage.models import AgentTask


def create_agent_task_record(
    name: str,
    prompt: str,
    trigger_type: str,
    config: TriggerConfig,
    now: datetime,
    context_needs: Optional[list[str]] = None,
    allowed_actions: Optional[list[str]] = None,
    max_runs: Optional[int] = None,
    created_by: str = "chat",
    linked_todo_task_id: Optional[str] = None,
) -> AgentTask:
    """Build an unsaved ``AgentTask`` with its first ``next_run`` filled in.

    Unknown context needs and action types are dropped rather than rejected.
    """
    if not name or not prompt or trigger_type not in TRIGGER_TYPES:
        raise ValidationError("Missing required fields: name, prompt, trigger_type")
    if trigger_type == "time" and config.fire_at is None:
        raise ValidationError("fire_at is required for trigger_type=time")
    if trigger_type == "checkin" and not config.checkin_phase:
        raise ValidationError("checkin_phase is required for trigger_type=checkin")
    if max_runs is not None and max_runs < 1:
        raise ValidationError("max_runs must be at least 1")

    valid_actions = {t.value for t in ActionType}
    return AgentTask(
        name=name,
        prompt=prompt,
        trigger_type=trigger_type,
        trigger_config=config.to_record(),
        context_needs=[n for n in context_needs or [] if n in CONTEXT_NEEDS],
        allowed_actions=[a for a in allowed_actions or [] if a in valid_actions],
        status="active",
        created_by=created_by,
        next_run=initial_next_run(trigger_type, config, now),
        run_count=0,
        max_runs=max_runs,
        linked_todo_task_id=linked_todo_task_id,
    )

"""SQLAlchemy ORM models for Conductor."""

import uuid
from datetime import date, datetime
from typing import Optional

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _new_id() -> str:
    return str(uuid.uuid4())


class Base(DeclarativeBase):
    pass


ONE_SHOT_TRIGGERS = ("time", "manual")


class AgentTask(Base):
    __tablename__ = "agent_tasks"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    prompt: Mapped[str] = mapped_column(Text, nullable=False)
    trigger_type: Mapped[str] = mapped_column(
        String,
        CheckConstraint("trigger_type IN ('time','recurring','event','checkin','manual')"),
        nullable=False,
    )
    # fire_at, cron_hour, cron_minute, interval_minutes, checkin_phase, event_type
    trigger_config: Mapped[dict] = mapped_column(JSON, default=dict)
    context_needs: Mapped[list] = mapped_column(JSON, default=list)
    allowed_actions: Mapped[list] = mapped_column(JSON, default=list)
    status: Mapped[str] = mapped_column(
        String,
        CheckConstraint("status IN ('active','paused','completed','expired')"),
        default="active",
    )
    created_by: Mapped[str] = mapped_column(
        String,
        CheckConstraint("created_by IN ('chat','system','agent')"),
        default="chat",
    )
    last_run: Mapped[Optional[datetime]] = mapped_column(DateTime)
    next_run: Mapped[Optional[datetime]] = mapped_column(DateTime)
    run_count: Mapped[int] = mapped_column(Integer, default=0)
    max_runs: Mapped[Optional[int]] = mapped_column(Integer)
    linked_todo_task_id: Mapped[Optional[str]] = mapped_column(String(36))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now)

    __table_args__ = (
        Index("idx_agent_tasks_due", "status", "next_run"),
    )

    @property
    def is_one_shot(self) -> bool:
        return self.trigger_type in ONE_SHOT_TRIGGERS


class AgentTaskResult(Base):
    __tablename__ = "agent_task_results"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    task_id: Mapped[str] = mapped_column(String(36), ForeignKey("agent_tasks.id", ondelete="CASCADE"), nullable=False)
    timestamp: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    output: Mapped[str] = mapped_column(Text, default="")
    actions_proposed: Mapped[list] = mapped_column(JSON, default=list)
    actions_executed: Mapped[list] = mapped_column(JSON, default=list)
    cost_usd: Mapped[Optional[float]] = mapped_column(Float)
    status: Mapped[str] = mapped_column(
        String,
        CheckConstraint("status IN ('success','failed','pending_approval')"),
        nullable=False,
    )
    duration_ms: Mapped[int] = mapped_column(Integer, default=0)

    __table_args__ = (
        Index("idx_agent_results_task", "task_id", "timestamp"),
    )


class PendingAction(Base):
    """An action proposed by an agent run that is waiting for the user."""

    __tablename__ = "pending_actions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    task_id: Mapped[str] = mapped_column(String(36), ForeignKey("agent_tasks.id", ondelete="CASCADE"), nullable=False)
    result_id: Mapped[Optional[str]] = mapped_column(String(36))
    action: Mapped[dict] = mapped_column(JSON, nullable=False)
    status: Mapped[str] = mapped_column(
        String,
        CheckConstraint("status IN ('pending','approved','rejected')"),
        default="pending",
    )
    executed: Mapped[Optional[dict]] = mapped_column(JSON)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime)


class TodoTask(Base):
    __tablename__ = "todo_tasks"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text)
    priority: Mapped[int] = mapped_column(
        Integer, CheckConstraint("priority BETWEEN 0 AND 3"), default=0
    )  # 0 none, 1 low, 2 medium, 3 high
    due_date: Mapped[Optional[date]] = mapped_column(Date)
    is_completed: Mapped[bool] = mapped_column(Boolean, default=False)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now)


class Theme(Base):
    __tablename__ = "themes"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    color: Mapped[str] = mapped_column(String, default="blue")
    objective: Mapped[Optional[str]] = mapped_column(Text)
    is_loose: Mapped[bool] = mapped_column(Boolean, default=False)
    is_archived: Mapped[bool] = mapped_column(Boolean, default=False)
    default_start_time: Mapped[Optional[str]] = mapped_column(String(5))  # "HH:MM"
    default_duration_minutes: Mapped[int] = mapped_column(Integer, default=60)
    sort_order: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now)


class ThemeKeyword(Base):
    __tablename__ = "theme_keywords"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    theme_id: Mapped[str] = mapped_column(String(36), ForeignKey("themes.id", ondelete="CASCADE"), nullable=False)
    keyword: Mapped[str] = mapped_column(Text, nullable=False)

    __table_args__ = (
        UniqueConstraint("theme_id", "keyword"),
    )


class ThemeItem(Base):
    """Links a to-do task to exactly one theme."""

    __tablename__ = "theme_items"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    theme_id: Mapped[str] = mapped_column(String(36), ForeignKey("themes.id", ondelete="CASCADE"), nullable=False)
    task_id: Mapped[str] = mapped_column(String(36), ForeignKey("todo_tasks.id", ondelete="CASCADE"), nullable=False)

    __table_args__ = (
        UniqueConstraint("task_id"),
    )


class ThemeBlock(Base):
    __tablename__ = "theme_blocks"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    theme_id: Mapped[str] = mapped_column(String(36), ForeignKey("themes.id", ondelete="CASCADE"), nullable=False)
    start_time: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    end_time: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    status: Mapped[str] = mapped_column(
        String,
        CheckConstraint("status IN ('draft','planned','published')"),
        default="planned",
    )
    calendar_event_id: Mapped[Optional[str]] = mapped_column(Text)
    is_recurring: Mapped[bool] = mapped_column(Boolean, default=False)
    recurrence_rule: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now)

    __table_args__ = (
        Index("idx_theme_blocks_start", "start_time"),
    )


class DailyGoal(Base):
    __tablename__ = "daily_goals"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    goal_date: Mapped[str] = mapped_column("date", String(10), nullable=False)  # YYYY-MM-DD
    goal_text: Mapped[str] = mapped_column(Text, nullable=False)
    priority: Mapped[int] = mapped_column(Integer, default=0)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now)

    @property
    def is_completed(self) -> bool:
        return self.completed_at is not None


class Note(Base):
    __tablename__ = "notes"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    content: Mapped[str] = mapped_column(Text, default="")
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, onupdate=datetime.now)


class OperationEvent(Base):
    """Append-only audit record of one mutating operation."""

    __tablename__ = "operation_events"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    correlation_id: Mapped[str] = mapped_column(String(36), nullable=False)
    operation: Mapped[str] = mapped_column(
        String,
        CheckConstraint("operation IN ('created','updated','deleted','assigned','linked','published','failed')"),
        nullable=False,
    )
    entity_type: Mapped[str] = mapped_column(String, nullable=False)
    entity_id: Mapped[Optional[str]] = mapped_column(String(36))
    source: Mapped[str] = mapped_column(String, nullable=False)
    status: Mapped[str] = mapped_column(
        String,
        CheckConstraint("status IN ('success','failed','partial_success')"),
        nullable=False,
    )
    message: Mapped[str] = mapped_column(Text, default="")
    payload: Mapped[dict] = mapped_column(JSON, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    __table_args__ = (
        Index("idx_operation_events_correlation", "correlation_id"),
        Index("idx_operation_events_created", "created_at"),
    )


class CostEntry(Base):
    __tablename__ = "cost_log"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    amount: Mapped[float] = mapped_column(Float, nullable=False)
    session_id: Mapped[Optional[str]] = mapped_column(Text)
    timestamp: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    __table_args__ = (
        Index("idx_cost_log_timestamp", "timestamp"),
    )

"""Shared state and failure helper for the tool handler mixins."""

from datetime import datetime
from typing import Any, Optional

from conductor.config import MCPSettings
from conductor.core.day_review import DayReviewService
from conductor.core.errors import ReceiptBackedError
from conductor.core.operation_log import OperationLog
from conductor.core.planning import PlanningDraftService
from conductor.core.themes import ThemeService
from conductor.core.timeutil import Clock
from conductor.providers import CalendarProvider, MailProvider, RemindersProvider
from conductor.storage.agent_tasks import AgentTaskStore
from conductor.storage.records import RecordStore


class ToolBase:
    records: RecordStore
    themes: ThemeService
    agent_tasks: AgentTaskStore
    planning: PlanningDraftService
    day_review: DayReviewService
    op_log: OperationLog
    calendar: CalendarProvider
    reminders: RemindersProvider
    mail: MailProvider
    settings: MCPSettings
    clock: Clock

    def now(self) -> datetime:
        return self.clock()

    async def _fail(
        self,
        message: str,
        entity_type: str,
        source: str,
        correlation_id: str,
        entity_id: Optional[str] = None,
        payload: Optional[dict[str, Any]] = None,
    ) -> ReceiptBackedError:
        """Record a failed operation and return the error to raise."""
        receipt = await self.op_log.record(
            "failed",
            entity_type,
            source=source,
            status="failed",
            message=message,
            entity_id=entity_id,
            payload=payload,
            correlation_id=correlation_id,
        )
        return ReceiptBackedError(message, receipt)

"""Append-only operation log.

Every mutating operation (from a tool call, an agent action, or the planning
workflow) writes one ``OperationEvent``. Related events share a correlation id
so a caller can trace e.g. a theme auto-created while creating a task.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import select

from conductor.core.timeutil import Clock
from conductor.storage.db import Database
from conductor.storage.models import OperationEvent

logger = logging.getLogger(__name__)

OPERATIONS = ("created", "updated", "deleted", "assigned", "linked", "published", "failed")
STATUSES = ("success", "failed", "partial_success")


def new_correlation_id() -> str:
    return str(uuid.uuid4())


@dataclass
class OperationReceipt:
    correlation_id: str
    operation: str
    status: str
    message: str
    entity_type: str
    entity_id: Optional[str] = None
    event_id: Optional[str] = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "correlation_id": self.correlation_id,
            "operation": self.operation,
            "status": self.status,
            "message": self.message,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
        }


def event_to_dict(event: OperationEvent) -> dict[str, Any]:
    return {
        "id": event.id,
        "correlation_id": event.correlation_id,
        "operation": event.operation,
        "entity_type": event.entity_type,
        "entity_id": event.entity_id,
        "source": event.source,
        "status": event.status,
        "message": event.message,
        "payload": event.payload or {},
        "created_at": event.created_at.isoformat(),
    }


class OperationLog:
    def __init__(self, db: Database, clock: Clock = datetime.now):
        self.db = db
        self.clock = clock

    async def record(
        self,
        operation: str,
        entity_type: str,
        source: str,
        status: str = "success",
        message: str = "",
        entity_id: Optional[str] = None,
        payload: Optional[dict[str, Any]] = None,
        correlation_id: Optional[str] = None,
    ) -> OperationReceipt:
        """Append one event and return its receipt.

        The write is best effort: if the store rejects it the failure is
        logged and the receipt is still returned to the caller.
        """
        if operation not in OPERATIONS:
            raise ValueError(f"Unknown operation: {operation}")
        if status not in STATUSES:
            raise ValueError(f"Unknown operation status: {status}")

        receipt = OperationReceipt(
            correlation_id=correlation_id or new_correlation_id(),
            operation=operation,
            status=status,
            message=message,
            entity_type=entity_type,
            entity_id=entity_id,
        )
        event = OperationEvent(
            correlation_id=receipt.correlation_id,
            operation=operation,
            entity_type=entity_type,
            entity_id=entity_id,
            source=source,
            status=status,
            message=message,
            payload={k: str(v) for k, v in (payload or {}).items()},
            created_at=self.clock(),
        )
        try:
            async with self.db.session() as session:
                session.add(event)
            receipt.event_id = event.id
        except Exception as e:
            logger.error("Failed to write operation event (%s %s): %s", operation, entity_type, e)

        if status != "success":
            logger.info("%s %s %s via %s: %s", status, operation, entity_type, source, message)
        return receipt

    async def recent(
        self,
        limit: int = 25,
        status: Optional[str] = None,
        correlation_id: Optional[str] = None,
    ) -> list[OperationEvent]:
        """Most recent events first."""
        query = select(OperationEvent)
        if status:
            query = query.where(OperationEvent.status == status)
        if correlation_id:
            query = query.where(OperationEvent.correlation_id == correlation_id)
        query = query.order_by(OperationEvent.created_at.desc()).limit(limit)
        async with self.db.session() as session:
            result = await session.execute(query)
            return list(result.scalars().all())

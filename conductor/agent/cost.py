"""Model spend ledger and the daily budget check."""

import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import func, select

from conductor.core.timeutil import Clock, start_of_day
from conductor.storage.db import Database
from conductor.storage.models import CostEntry

logger = logging.getLogger(__name__)


class CostLedger:
    def __init__(self, db: Database, clock: Clock = datetime.now):
        self.db = db
        self.clock = clock

    async def log_cost(self, amount: float, session_id: Optional[str] = None) -> None:
        async with self.db.session() as session:
            session.add(CostEntry(amount=amount, session_id=session_id, timestamp=self.clock()))
        logger.debug("Logged cost $%.4f (session: %s)", amount, session_id or "-")

    async def total_since(self, since: datetime) -> float:
        query = select(func.coalesce(func.sum(CostEntry.amount), 0.0)).where(CostEntry.timestamp >= since)
        async with self.db.session() as session:
            return float((await session.execute(query)).scalar_one())

    async def daily_cost(self) -> float:
        return await self.total_since(start_of_day(self.clock().date()))

    async def weekly_cost(self) -> float:
        today = self.clock().date()
        return await self.total_since(start_of_day(today - timedelta(days=today.weekday())))

    async def monthly_cost(self) -> float:
        return await self.total_since(start_of_day(self.clock().date().replace(day=1)))

    async def is_daily_budget_exceeded(self, budget: Optional[float]) -> bool:
        """No budget means unlimited."""
        if budget is None:
            return False
        return await self.daily_cost() >= budget

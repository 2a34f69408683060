"""Tests for the cost ledger."""

from datetime import datetime

import pytest

from conductor.agent.cost import CostLedger


class TestCostLedger:
    @pytest.mark.asyncio
    async def test_empty_ledger(self, db, clock):
        ledger = CostLedger(db, clock=clock)
        assert await ledger.daily_cost() == 0.0
        assert await ledger.is_daily_budget_exceeded(1.0) is False

    @pytest.mark.asyncio
    async def test_periods(self, db, clock):
        ledger = CostLedger(db, clock=clock)
        # Wednesday 2026-03-04; the week starts Monday 03-02
        for when, amount in [
            (datetime(2026, 2, 27, 12, 0), 4.0),  # last month
            (datetime(2026, 3, 1, 12, 0), 2.0),  # this month, last week
            (datetime(2026, 3, 2, 9, 0), 1.0),  # this week
            (datetime(2026, 3, 4, 7, 0), 0.5),  # today
        ]:
            clock.now = when
            await ledger.log_cost(amount, session_id="s1")
        clock.now = datetime(2026, 3, 4, 8, 0)

        assert await ledger.daily_cost() == pytest.approx(0.5)
        assert await ledger.weekly_cost() == pytest.approx(1.5)
        assert await ledger.monthly_cost() == pytest.approx(3.5)

    @pytest.mark.asyncio
    async def test_budget_threshold_is_inclusive(self, db, clock):
        ledger = CostLedger(db, clock=clock)
        await ledger.log_cost(2.0)
        assert await ledger.is_daily_budget_exceeded(2.0) is True
        assert await ledger.is_daily_budget_exceeded(2.01) is False

    @pytest.mark.asyncio
    async def test_no_budget_is_unlimited(self, db, clock):
        ledger = CostLedger(db, clock=clock)
        await ledger.log_cost(1000.0)
        assert await ledger.is_daily_budget_exceeded(None) is False

"""Tests for planning drafts, block validation and publishing (conductor/core/planning.py)."""

from datetime import date, datetime, timedelta

import pytest

from conductor.core.errors import NotFoundError, ValidationError
from conductor.core.planning import BlockWindowError, PlanningDraftService, PublishPlanResult
from conductor.core.themes import ThemeService
from conductor.providers import CalendarEvent, LocalCalendar
from conductor.storage.records import RecordStore
from tests.conftest import NOW, FailingCalendar

TODAY = NOW.date()


def planner(db, clock, calendar=None) -> PlanningDraftService:
    return PlanningDraftService(db, ThemeService(db), calendar or LocalCalendar(), clock=clock)


async def theme_with_due_task(db, clock, name, due=TODAY, **theme_kwargs):
    themes = ThemeService(db)
    theme = await themes.create_theme(name, **theme_kwargs)
    task = await RecordStore(db, clock=clock).create_task(f"{name} task", due_date=due)
    await themes.assign_task(task.id, theme.id)
    return theme


class TestPlanDay:
    @pytest.mark.asyncio
    async def test_blocks_for_themes_with_due_tasks(self, db, clock):
        await theme_with_due_task(db, clock, "Admin")
        await theme_with_due_task(db, clock, "Writing")
        await theme_with_due_task(db, clock, "Later", due=TODAY + timedelta(days=3))
        await ThemeService(db).create_theme("Empty")

        draft = await planner(db, clock).plan_day(TODAY)
        assert [p.theme_name for p in draft.proposals] == ["Admin", "Writing"]
        assert draft.proposals[0].start_time == datetime(2026, 3, 4, 9, 0)
        assert draft.proposals[0].end_time == datetime(2026, 3, 4, 10, 0)
        assert draft.proposals[1].start_time == datetime(2026, 3, 4, 10, 15)
        assert len(draft.proposals[0].task_ids) == 1

    @pytest.mark.asyncio
    async def test_moves_past_calendar_conflicts(self, db, clock):
        await theme_with_due_task(db, clock, "Admin")
        calendar = LocalCalendar([
            CalendarEvent(title="Standup", start=datetime(2026, 3, 4, 9, 0), end=datetime(2026, 3, 4, 9, 30))
        ])
        draft = await planner(db, clock, calendar).plan_day(TODAY)
        assert draft.proposals[0].start_time == datetime(2026, 3, 4, 9, 40)

    @pytest.mark.asyncio
    async def test_theme_default_start_time(self, db, clock):
        await theme_with_due_task(db, clock, "Gym", default_start_time="17:30", default_duration_minutes=45)
        draft = await planner(db, clock).plan_day(TODAY)
        assert draft.proposals[0].start_time == datetime(2026, 3, 4, 17, 30)
        assert draft.proposals[0].end_time == datetime(2026, 3, 4, 18, 15)

    @pytest.mark.asyncio
    async def test_same_day_respects_lead_time(self, db, clock):
        clock.now = datetime(2026, 3, 4, 10, 2)
        await theme_with_due_task(db, clock, "Admin")
        draft = await planner(db, clock).plan_day(TODAY)
        assert draft.proposals[0].start_time == datetime(2026, 3, 4, 10, 20)

    @pytest.mark.asyncio
    async def test_future_day_starts_at_day_start(self, db, clock):
        clock.now = datetime(2026, 3, 4, 15, 0)
        await theme_with_due_task(db, clock, "Admin", due=TODAY)
        draft = await planner(db, clock).plan_day(TODAY + timedelta(days=1))
        assert draft.proposals[0].start_time == datetime(2026, 3, 5, 9, 0)

    @pytest.mark.asyncio
    async def test_empty_draft_is_cached(self, db, clock):
        service = planner(db, clock)
        draft = await service.plan_day(TODAY)
        assert draft.proposals == []
        assert service.get_draft(draft.id) is draft

    @pytest.mark.asyncio
    async def test_plan_week(self, db, clock):
        drafts = await planner(db, clock).plan_week(TODAY)
        assert [d.day for d in drafts] == [TODAY + timedelta(days=i) for i in range(7)]
        assert len({d.id for d in drafts}) == 7


class TestBlockWindow:
    def test_inverted(self, db, clock):
        with pytest.raises(BlockWindowError, match="end_time after start_time"):
            planner(db, clock).validate_block_window(datetime(2026, 3, 5, 10), datetime(2026, 3, 5, 9))

    def test_past(self, db, clock):
        with pytest.raises(BlockWindowError, match="Cannot create block in the past"):
            planner(db, clock).validate_block_window(datetime(2026, 3, 4, 7), datetime(2026, 3, 4, 8))

    def test_too_soon(self, db, clock):
        with pytest.raises(BlockWindowError, match="at least 15 minutes"):
            planner(db, clock).validate_block_window(datetime(2026, 3, 4, 8, 10), datetime(2026, 3, 4, 9))

    def test_earliest_allowed(self, db, clock):
        planner(db, clock).validate_block_window(datetime(2026, 3, 4, 8, 15), datetime(2026, 3, 4, 9))

    def test_parse_missing(self, db, clock):
        with pytest.raises(BlockWindowError, match="required"):
            planner(db, clock).parse_block_window("2026-03-05T09:00:00", None)

    def test_parse_garbage(self, db, clock):
        with pytest.raises(BlockWindowError, match="Invalid start_time/end_time"):
            planner(db, clock).parse_block_window("nine", "ten")

    def test_custom_verb(self, db, clock):
        with pytest.raises(BlockWindowError, match="Cannot apply override in the past"):
            planner(db, clock).parse_block_window("2026-03-03T09:00", "2026-03-03T10:00", verb="apply override")


class TestApplyDraft:
    @pytest.mark.asyncio
    async def test_apply_creates_blocks(self, db, clock):
        await theme_with_due_task(db, clock, "Admin")
        service = planner(db, clock)
        draft = await service.plan_day(TODAY)

        blocks = await service.apply_draft(draft.id)
        assert [b.status for b in blocks] == ["planned"]
        stored = await service.blocks_for_day(TODAY)
        assert [b.id for b in stored] == [blocks[0].id]

    @pytest.mark.asyncio
    async def test_apply_twice_creates_two_sets(self, db, clock):
        await theme_with_due_task(db, clock, "Admin")
        service = planner(db, clock)
        draft = await service.plan_day(TODAY)

        await service.apply_draft(draft.id)
        await service.apply_draft(draft.id, status="draft")
        assert len(await service.blocks_for_day(TODAY)) == 2
        assert len(await service.blocks_for_day(TODAY, status="draft")) == 1

    @pytest.mark.asyncio
    async def test_apply_with_override(self, db, clock):
        await theme_with_due_task(db, clock, "Admin")
        service = planner(db, clock)
        draft = await service.plan_day(TODAY)
        window = (datetime(2026, 3, 4, 13, 0), datetime(2026, 3, 4, 14, 0))

        blocks = await service.apply_draft(draft.id, overrides={0: window})
        assert (blocks[0].start_time, blocks[0].end_time) == window

    @pytest.mark.asyncio
    async def test_unknown_and_empty_drafts(self, db, clock):
        service = planner(db, clock)
        assert await service.apply_draft("nope") is None
        empty = await service.plan_day(TODAY)
        assert await service.apply_draft(empty.id) == []

    @pytest.mark.asyncio
    async def test_bad_status(self, db, clock):
        service = planner(db, clock)
        with pytest.raises(ValidationError):
            await service.apply_draft("any", status="published")


class TestPublish:
    @pytest.mark.asyncio
    async def test_publish_all(self, db, clock):
        calendar = LocalCalendar()
        theme = await ThemeService(db).create_theme("Deep work", objective="Ship the parser")
        service = planner(db, clock, calendar)
        block = await service.create_block(theme.id, datetime(2026, 3, 4, 9), datetime(2026, 3, 4, 10))

        result = await service.publish_theme_blocks([block.id])
        assert result.published_block_ids == [block.id]
        assert result.status == "success"
        assert calendar.events[0].title == "Focus: Deep work"
        assert calendar.events[0].notes == "Ship the parser"

        stored = (await service.blocks_for_day(TODAY))[0]
        assert stored.status == "published"
        assert stored.calendar_event_id == calendar.events[0].id

    @pytest.mark.asyncio
    async def test_partial_failure_keeps_failed_block_planned(self, db, clock):
        calendar = FailingCalendar(fail_after=2)
        theme = await ThemeService(db).create_theme("Deep work")
        service = planner(db, clock, calendar)
        blocks = [
            await service.create_block(theme.id, datetime(2026, 3, 4, h), datetime(2026, 3, 4, h, 45))
            for h in (9, 11, 13)
        ]

        result = await service.publish_theme_blocks([b.id for b in blocks])
        assert result.published_block_ids == [blocks[0].id, blocks[1].id]
        assert result.failed_block_ids == [blocks[2].id]
        assert result.status == "partial_success"

        by_id = {b.id: b for b in await service.blocks_for_day(TODAY)}
        assert by_id[blocks[0].id].status == "published"
        assert by_id[blocks[0].id].calendar_event_id
        assert by_id[blocks[1].id].status == "published"
        assert by_id[blocks[2].id].status == "planned"
        assert by_id[blocks[2].id].calendar_event_id is None

    @pytest.mark.asyncio
    async def test_republish_is_idempotent(self, db, clock):
        """A failing retry neither unpublishes the block nor duplicates its event."""
        calendar = FailingCalendar(fail_after=1)
        theme = await ThemeService(db).create_theme("Deep work")
        service = planner(db, clock, calendar)
        block = await service.create_block(theme.id, datetime(2026, 3, 4, 9), datetime(2026, 3, 4, 10))

        first = await service.publish_theme_blocks([block.id])
        assert first.published_block_ids == [block.id]
        event_id = calendar.events[0].id

        again = await service.publish_theme_blocks([block.id])
        assert again.published_block_ids == [block.id]
        assert calendar.calls == 1

        stored = (await service.blocks_for_day(TODAY))[0]
        assert stored.status == "published"
        assert stored.calendar_event_id == event_id

        await service.publish_theme_blocks()
        assert len(calendar.events) == 1

    @pytest.mark.asyncio
    async def test_failure_leaves_draft_block_as_draft(self, db, clock):
        calendar = FailingCalendar(fail_after=0)
        theme = await ThemeService(db).create_theme("Deep work")
        service = planner(db, clock, calendar)
        block = await service.create_block(
            theme.id, datetime(2026, 3, 4, 9), datetime(2026, 3, 4, 10), status="draft"
        )

        result = await service.publish_theme_blocks([block.id])
        assert result.failed_block_ids == [block.id]
        assert (await service.blocks_for_day(TODAY))[0].status == "draft"

    @pytest.mark.asyncio
    async def test_missing_block_counts_as_failed(self, db, clock):
        result = await planner(db, clock).publish_theme_blocks(["nope"])
        assert result.failed_block_ids == ["nope"]
        assert result.status == "failed"

    @pytest.mark.asyncio
    async def test_default_publishes_todays_planned_blocks(self, db, clock):
        theme = await ThemeService(db).create_theme("Deep work")
        service = planner(db, clock)
        today = await service.create_block(theme.id, datetime(2026, 3, 4, 9), datetime(2026, 3, 4, 10))
        await service.create_block(theme.id, datetime(2026, 3, 5, 9), datetime(2026, 3, 5, 10))
        await service.create_block(theme.id, datetime(2026, 3, 4, 12), datetime(2026, 3, 4, 13), status="draft")

        result = await service.publish_theme_blocks()
        assert result.published_block_ids == [today.id]

    def test_result_status(self):
        assert PublishPlanResult().status == "success"
        assert PublishPlanResult(failed_block_ids=["a"]).status == "failed"


class TestCreateBlock:
    @pytest.mark.asyncio
    async def test_cannot_create_published(self, db, clock):
        theme = await ThemeService(db).create_theme("Deep work")
        with pytest.raises(ValidationError):
            await planner(db, clock).create_block(theme.id, datetime(2026, 3, 5, 9), datetime(2026, 3, 5, 10), "published")

    @pytest.mark.asyncio
    async def test_unknown_theme(self, db, clock):
        with pytest.raises(NotFoundError):
            await planner(db, clock).create_block("nope", datetime(2026, 3, 5, 9), datetime(2026, 3, 5, 10))

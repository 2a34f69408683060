"""Planning drafts: propose theme blocks for a day or week, then apply and publish them.

A draft lives only in memory until applied. Applying turns each proposal
into a durable ``ThemeBlock``; publishing puts a block on the calendar.
Block status moves draft -> planned -> published, and a failed publish
leaves (or puts) the block back at planned.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Optional

from sqlalchemy import select

from conductor.config import PlanningSettings
from conductor.core.errors import NotFoundError, ValidationError
from conductor.core.themes import ThemeService
from conductor.core.timeutil import Clock, day_bounds, parse_datetime, rounded_minimum_start
from conductor.providers import CalendarProvider
from conductor.storage.db import Database
from conductor.storage.models import Theme, ThemeBlock

logger = logging.getLogger(__name__)

BLOCK_STATUSES = ("draft", "planned", "published")
PLAN_RATIONALE = "Scheduled from theme defaults and due tasks"


class BlockWindowError(ValidationError):
    """A requested block interval failed validation."""


@dataclass
class ThemeBlockProposal:
    theme_id: str
    theme_name: str
    start_time: datetime
    end_time: datetime
    task_ids: list[str] = field(default_factory=list)
    rationale: str = PLAN_RATIONALE

    def as_dict(self) -> dict:
        return {
            "theme_id": self.theme_id,
            "theme_name": self.theme_name,
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat(),
            "task_ids": list(self.task_ids),
            "rationale": self.rationale,
        }


@dataclass
class PlanningDraft:
    day: date
    proposals: list[ThemeBlockProposal]
    created_at: datetime
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def as_dict(self) -> dict:
        return {
            "draft_id": self.id,
            "date": self.day.isoformat(),
            "proposals": [p.as_dict() for p in self.proposals],
        }


@dataclass
class PublishPlanResult:
    published_block_ids: list[str] = field(default_factory=list)
    failed_block_ids: list[str] = field(default_factory=list)

    @property
    def status(self) -> str:
        if not self.failed_block_ids:
            return "success"
        return "partial_success" if self.published_block_ids else "failed"


def _overlaps(start: datetime, end: datetime, other_start: datetime, other_end: datetime) -> bool:
    return start < other_end and other_start < end


def _parse_clock(value: Optional[str]) -> Optional[time]:
    if not value:
        return None
    try:
        return time.fromisoformat(value)
    except ValueError:
        logger.debug("Ignoring malformed theme start time: %s", value)
        return None


class PlanningDraftService:
    def __init__(
        self,
        db: Database,
        themes: ThemeService,
        calendar: CalendarProvider,
        settings: Optional[PlanningSettings] = None,
        clock: Clock = datetime.now,
    ):
        self.db = db
        self.themes = themes
        self.calendar = calendar
        self.settings = settings or PlanningSettings()
        self.clock = clock
        # No expiry: drafts live for the life of the process
        self._drafts: dict[str, PlanningDraft] = {}

    # --- Drafts ---

    def get_draft(self, draft_id: str) -> Optional[PlanningDraft]:
        return self._drafts.get(draft_id)

    def minimum_start(self, day: date) -> datetime:
        day_start = datetime.combine(day, time(self.settings.day_start_hour))
        now = self.clock()
        if day != now.date():
            return day_start
        earliest = rounded_minimum_start(now, self.settings.min_lead_minutes, self.settings.rounding_minutes)
        return max(day_start, earliest)

    def _find_available_start(
        self, start: datetime, duration: timedelta, busy: list[tuple[datetime, datetime]]
    ) -> datetime:
        gap = timedelta(minutes=self.settings.conflict_gap_minutes)
        moved = True
        while moved:
            moved = False
            for busy_start, busy_end in busy:
                if _overlaps(start, start + duration, busy_start, busy_end):
                    start = busy_end + gap
                    moved = True
        return start

    async def plan_day(self, day: date) -> PlanningDraft:
        """Propose one block per theme that has tasks due on or before ``day``."""
        day_start, day_end = day_bounds(day)
        events = await self.calendar.get_events(day_start, day_end)
        busy = [(e.start, e.end) for e in events]
        busy.extend((b.start_time, b.end_time) for b in await self.blocks_for_day(day))

        minimum = self.minimum_start(day)
        slot = minimum
        proposals: list[ThemeBlockProposal] = []
        for theme in await self.themes.list_themes(include_loose=False):
            tasks = await self.themes.due_tasks_for_theme(theme.id, day)
            if not tasks:
                continue
            minutes = max(
                self.settings.min_block_minutes,
                min(self.settings.max_block_minutes, theme.default_duration_minutes or 60),
            )
            duration = timedelta(minutes=minutes)
            preferred = slot
            default_start = _parse_clock(theme.default_start_time)
            if default_start is not None:
                preferred = max(datetime.combine(day, default_start), minimum)
            start = self._find_available_start(preferred, duration, busy)
            end = start + duration
            if end > day_end:
                logger.info("No room left on %s for theme '%s'", day.isoformat(), theme.name)
                continue
            proposals.append(
                ThemeBlockProposal(
                    theme_id=theme.id,
                    theme_name=theme.name,
                    start_time=start,
                    end_time=end,
                    task_ids=[t.id for t in tasks[: self.settings.max_tasks_per_block]],
                )
            )
            busy.append((start, end))
            slot = end + timedelta(minutes=self.settings.block_gap_minutes)

        draft = PlanningDraft(day=day, proposals=proposals, created_at=self.clock())
        self._drafts[draft.id] = draft
        logger.info("Planned %s: %d block(s) in draft %s", day.isoformat(), len(proposals), draft.id)
        return draft

    async def plan_week(self, start: date) -> list[PlanningDraft]:
        return [await self.plan_day(start + timedelta(days=offset)) for offset in range(7)]

    # --- Validation ---

    def validate_block_window(self, start: datetime, end: datetime, verb: str = "create block") -> None:
        """Reject intervals that are inverted, in the past, or too soon today."""
        if end <= start:
            raise BlockWindowError("Invalid start_time/end_time. Use ISO 8601 datetimes with end_time after start_time.")
        now = self.clock()
        if start < now:
            raise BlockWindowError(f"Cannot {verb} in the past. Choose a future start_time.")
        earliest = rounded_minimum_start(now, self.settings.min_lead_minutes, self.settings.rounding_minutes)
        if start.date() == now.date() and start < earliest:
            raise BlockWindowError(
                "start_time is too soon for same-day scheduling. "
                f"Choose a time at least {self.settings.min_lead_minutes} minutes from now."
            )

    def parse_block_window(
        self,
        start_time: Optional[str],
        end_time: Optional[str],
        verb: str = "create block",
        missing_message: str = "Both start_time and end_time are required.",
    ) -> tuple[datetime, datetime]:
        """Parse and validate a start/end pair supplied as strings."""
        if not start_time or not end_time:
            raise BlockWindowError(missing_message)
        start = parse_datetime(start_time)
        end = parse_datetime(end_time)
        if start is None or end is None:
            raise BlockWindowError("Invalid start_time/end_time. Use ISO 8601 datetimes with end_time after start_time.")
        self.validate_block_window(start, end, verb)
        return start, end

    # --- Blocks ---

    async def blocks_for_day(self, day: date, status: Optional[str] = None) -> list[ThemeBlock]:
        day_start, day_end = day_bounds(day)
        query = select(ThemeBlock).where(ThemeBlock.start_time >= day_start, ThemeBlock.start_time < day_end)
        if status:
            query = query.where(ThemeBlock.status == status)
        query = query.order_by(ThemeBlock.start_time)
        async with self.db.session() as session:
            result = await session.execute(query)
            return list(result.scalars().all())

    async def create_block(
        self, theme_id: str, start: datetime, end: datetime, status: str = "planned"
    ) -> ThemeBlock:
        if status not in BLOCK_STATUSES or status == "published":
            raise ValidationError(f"Blocks are created as draft or planned, not {status}.")
        if await self.themes.get_theme(theme_id) is None:
            raise NotFoundError(f"Theme not found for id: {theme_id}")
        block = ThemeBlock(theme_id=theme_id, start_time=start, end_time=end, status=status)
        async with self.db.session() as session:
            session.add(block)
        return block

    async def apply_draft(
        self,
        draft_id: str,
        status: str = "planned",
        overrides: Optional[dict[int, tuple[datetime, datetime]]] = None,
    ) -> Optional[list[ThemeBlock]]:
        """Create one block per proposal, using ``overrides[index]`` where given.

        Returns None when the draft does not exist, and an empty list when it
        has no proposals. Applying the same draft twice creates two sets of
        blocks.
        """
        if status not in ("draft", "planned"):
            raise ValidationError(f"Invalid status '{status}'. Use draft or planned.")
        draft = self.get_draft(draft_id)
        if draft is None:
            return None
        overrides = overrides or {}
        blocks = []
        for index, proposal in enumerate(draft.proposals):
            start, end = overrides.get(index, (proposal.start_time, proposal.end_time))
            blocks.append(ThemeBlock(theme_id=proposal.theme_id, start_time=start, end_time=end, status=status))
        async with self.db.session() as session:
            session.add_all(blocks)
        logger.info("Applied draft %s: %d block(s) as %s", draft_id, len(blocks), status)
        return blocks

    async def publish_theme_blocks(self, block_ids: Optional[list[str]] = None) -> PublishPlanResult:
        """Put blocks on the calendar. Defaults to today's planned blocks.

        Blocks already published with an event are reported as published
        without touching the calendar again. Partial failure is a normal
        outcome: a failed block keeps its status and is reported in
        ``failed_block_ids``.
        """
        if block_ids is None:
            block_ids = [b.id for b in await self.blocks_for_day(self.clock().date(), status="planned")]

        result = PublishPlanResult()
        for block_id in block_ids:
            if await self._publish_one(block_id):
                result.published_block_ids.append(block_id)
            else:
                result.failed_block_ids.append(block_id)
        logger.info(
            "Published %d block(s), %d failed", len(result.published_block_ids), len(result.failed_block_ids)
        )
        return result

    async def _publish_one(self, block_id: str) -> bool:
        async with self.db.session() as session:
            block = await session.get(ThemeBlock, block_id)
            theme = await session.get(Theme, block.theme_id) if block is not None else None
        if block is None or theme is None:
            logger.warning("Cannot publish block %s: block or theme missing", block_id)
            return False
        if block.status == "published" and block.calendar_event_id:
            logger.debug("Block %s already on the calendar as %s", block_id, block.calendar_event_id)
            return True

        try:
            event_id = await self.calendar.create_event(
                f"Focus: {theme.name}", block.start_time, block.end_time, theme.objective
            )
        except Exception as e:
            logger.warning("Calendar publish failed for block %s: %s", block_id, e)
            event_id = None

        async with self.db.session() as session:
            block = await session.get(ThemeBlock, block_id)
            if block is None:
                return False
            if not event_id:
                # published requires an event id
                if block.status == "published" and not block.calendar_event_id:
                    block.status = "planned"
                return False
            block.calendar_event_id = event_id
            block.status = "published"
        return True

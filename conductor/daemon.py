"""Conductor daemon: agent scheduler, executor and tool-call server in one process."""

import asyncio
import logging
import signal
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from rich.console import Console

from conductor.agent.action_executor import ActionExecutor, safe_types_from_names
from conductor.agent.approvals import ApprovalQueue
from conductor.agent.context import ContextAssembler
from conductor.agent.cost import CostLedger
from conductor.agent.executor import AgentExecutor
from conductor.agent.model import AnthropicModelClient, ModelClient
from conductor.agent.scheduler import AgentTaskScheduler
from conductor.config import Settings
from conductor.core.day_review import DayReviewService
from conductor.core.operation_log import OperationLog
from conductor.core.planning import PlanningDraftService
from conductor.core.themes import ThemeService
from conductor.core.timeutil import Clock
from conductor.mcp.handlers import ToolHandlers
from conductor.mcp.server import MCPServer
from conductor.providers import (
    CalendarProvider,
    LocalCalendar,
    LocalMail,
    LocalReminders,
    MailProvider,
    RemindersProvider,
)
from conductor.storage.agent_tasks import AgentTaskStore
from conductor.storage.db import Database
from conductor.storage.records import RecordStore

logger = logging.getLogger(__name__)
console = Console()


@dataclass
class Services:
    """Everything the daemon runs, constructed once and passed around explicitly."""

    settings: Settings
    db: Database
    records: RecordStore
    themes: ThemeService
    op_log: OperationLog
    agent_tasks: AgentTaskStore
    cost: CostLedger
    actions: ActionExecutor
    approvals: ApprovalQueue
    executor: AgentExecutor
    scheduler: AgentTaskScheduler
    planning: PlanningDraftService
    day_review: DayReviewService
    tools: ToolHandlers


def build_services(
    settings: Settings,
    db: Optional[Database] = None,
    model_client: Optional[ModelClient] = None,
    calendar: Optional[CalendarProvider] = None,
    reminders: Optional[RemindersProvider] = None,
    mail: Optional[MailProvider] = None,
    clock: Clock = datetime.now,
) -> Services:
    db = db or Database(settings.general.db_url)
    calendar = calendar or LocalCalendar()
    reminders = reminders or LocalReminders()
    mail = mail or LocalMail()
    model_client = model_client or AnthropicModelClient(settings.anthropic)

    records = RecordStore(db, clock=clock)
    themes = ThemeService(db)
    op_log = OperationLog(db, clock=clock)
    agent_tasks = AgentTaskStore(db)
    cost = CostLedger(db, clock=clock)
    actions = ActionExecutor(records, themes, op_log, calendar, reminders, mail, clock=clock)
    context = ContextAssembler(records, calendar, reminders, mail, settings=settings.agent, clock=clock)
    executor = AgentExecutor(
        agent_tasks,
        context,
        model_client,
        actions,
        cost,
        model=settings.anthropic.agent_model,
        safe_types=safe_types_from_names(settings.agent.safe_action_types),
        daily_budget=settings.agent.daily_budget_usd,
        clock=clock,
    )
    scheduler = AgentTaskScheduler(
        agent_tasks,
        executor,
        poll_interval=settings.agent.poll_interval_seconds,
        initial_delay=settings.agent.initial_delay_seconds,
        clock=clock,
    )
    planning = PlanningDraftService(db, themes, calendar, settings=settings.planning, clock=clock)
    day_review = DayReviewService(themes, calendar, mail, clock=clock)
    tools = ToolHandlers(
        records, themes, agent_tasks, planning, day_review, op_log,
        calendar, reminders, mail, settings=settings.mcp, clock=clock,
    )
    return Services(
        settings=settings,
        db=db,
        records=records,
        themes=themes,
        op_log=op_log,
        agent_tasks=agent_tasks,
        cost=cost,
        actions=actions,
        approvals=ApprovalQueue(agent_tasks, actions, clock=clock),
        executor=executor,
        scheduler=scheduler,
        planning=planning,
        day_review=day_review,
        tools=tools,
    )


async def run_daemon(settings: Settings) -> None:
    """Run until SIGINT/SIGTERM."""
    services = build_services(settings)
    await services.db.create_all()
    await services.themes.ensure_loose_theme()

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()

    def _handle_shutdown(signum, frame):
        logger.info("Shutdown signal received, finishing current step...")
        loop.call_soon_threadsafe(stop.set)

    signal.signal(signal.SIGINT, _handle_shutdown)
    signal.signal(signal.SIGTERM, _handle_shutdown)

    server = MCPServer(services.tools, settings.mcp)
    await server.start()
    services.executor.start()
    services.scheduler.start()

    console.print(f"[bold]Conductor daemon started[/bold] (poll: {settings.agent.poll_interval_seconds:.0f}s)")
    console.print(f"Tool-call server: {server.url}")
    console.print(f"Client config: {settings.mcp.config_path}")
    console.print("Press Ctrl+C to stop.\n")

    try:
        await stop.wait()
    finally:
        await services.scheduler.stop()
        await services.executor.stop()
        await server.stop()
        await services.db.close()
        console.print("\n[bold]Conductor daemon stopped.[/bold]")

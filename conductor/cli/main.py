"""Conductor CLI: main entry point using Typer."""

import asyncio
import logging

import typer
from rich.console import Console
from rich.logging import RichHandler

from conductor.cli.agent_cmd import app as agent_app
from conductor.cli.agent_cmd import approvals_app
from conductor.cli.ops_cmd import app as ops_app

app = typer.Typer(
    name="conductor",
    help="Background agent tasks and a local tool server for your assistant.",
    no_args_is_help=True,
)
console = Console()

# Register subcommands
app.add_typer(agent_app, name="agent", help="Manage agent tasks")
app.add_typer(approvals_app, name="approvals", help="Review actions waiting for approval")
app.add_typer(ops_app, name="ops", help="Inspect the operation log")


def _setup_logging(verbose: bool = False):
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True, show_time=False)],
    )


DEFAULT_CONFIG = """[general]
log_level = "INFO"

[anthropic]
# api_key = ""  # Or set ANTHROPIC_API_KEY env var

[agent]
poll_interval_seconds = 60
# daily_budget_usd = 5.0
safe_action_types = ["createTodoTask", "createGoal", "completeGoal"]

[mcp]
host = "127.0.0.1"
port = 0
calendar_read_enabled = true
reminders_read_enabled = true
planning_enabled = true
email_integration_enabled = false

[planning]
min_lead_minutes = 15
day_start_hour = 9
"""


@app.command()
def init(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """Initialize Conductor: data directory, config file and database."""
    _setup_logging(verbose)

    async def _init():
        from conductor.config import DEFAULT_CONFIG_PATH, get_settings
        from conductor.core.themes import ThemeService
        from conductor.storage.db import Database

        settings = get_settings()
        console.print("[bold]Setting up Conductor[/bold]", style="green")

        data_dir = settings.general.data_dir.expanduser()
        data_dir.mkdir(parents=True, exist_ok=True)
        console.print(f"  Data directory: {data_dir}")

        if not DEFAULT_CONFIG_PATH.exists():
            DEFAULT_CONFIG_PATH.parent.mkdir(parents=True, exist_ok=True)
            DEFAULT_CONFIG_PATH.write_text(DEFAULT_CONFIG)
            console.print(f"  Config written: {DEFAULT_CONFIG_PATH}")

        console.print("  Initializing database...")
        db = Database(settings.general.db_url)
        try:
            await db.create_all()
            await ThemeService(db).ensure_loose_theme()
        finally:
            await db.close()
        console.print("  Database ready.")

        console.print("\n[bold green]Conductor initialized![/bold green]")
        console.print("Start the daemon with [cyan]conductor daemon[/cyan]")

    asyncio.run(_init())


@app.command()
def daemon(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """Run the agent scheduler and the tool-call server until stopped."""
    _setup_logging(verbose)

    from conductor.config import get_settings
    from conductor.daemon import run_daemon

    asyncio.run(run_daemon(get_settings()))


@app.command()
def status(
    verbose: bool = typer.Option(False, "--verbose", "-v"),
):
    """Show agent task counts, pending approvals and spend."""
    _setup_logging(verbose)

    async def _status():
        from rich.table import Table

        from conductor.cli.common import open_services

        async with open_services() as services:
            tasks = await services.agent_tasks.list_tasks("all")
            pending = await services.approvals.list_pending()
            daily = await services.cost.daily_cost()
            weekly = await services.cost.weekly_cost()
            monthly = await services.cost.monthly_cost()

        console.print("\n[bold]Conductor Status[/bold]\n")
        table = Table(title="Agent Tasks")
        table.add_column("Status", style="cyan")
        table.add_column("Count", justify="right")
        for state in ("active", "paused", "completed", "expired"):
            table.add_row(state, str(sum(1 for t in tasks if t.status == state)))
        console.print(table)

        console.print(f"\nPending approvals: {len(pending)}")
        budget = services.settings.agent.daily_budget_usd
        budget_text = f" / ${budget:.2f}" if budget is not None else ""
        console.print(f"Spend today: ${daily:.4f}{budget_text}  week: ${weekly:.4f}  month: ${monthly:.4f}")

    asyncio.run(_status())


if __name__ == "__main__":
    app()

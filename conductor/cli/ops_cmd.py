"""CLI commands for the operation log."""

import asyncio
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

app = typer.Typer(no_args_is_help=True)
console = Console()

STATUS_STYLES = {"success": "green", "failed": "red", "partial_success": "yellow"}


@app.command("list")
def list_events(
    limit: int = typer.Option(25, "--limit", "-n", min=1, max=100),
    status: Optional[str] = typer.Option(None, "--status", "-s", help="success, failed or partial_success"),
    correlation_id: Optional[str] = typer.Option(None, "--correlation-id", "-c"),
):
    """Show recent operation events, newest first."""

    async def _list():
        from conductor.cli.common import open_services

        async with open_services() as services:
            events = await services.op_log.recent(limit=limit, status=status, correlation_id=correlation_id)

        if not events:
            console.print("[dim]No operation events.[/dim]")
            return

        table = Table(title="Operation Events")
        table.add_column("When")
        table.add_column("Status")
        table.add_column("Operation", style="cyan")
        table.add_column("Entity")
        table.add_column("Source", style="dim")
        table.add_column("Message")
        table.add_column("Correlation", style="dim", max_width=8)
        for e in events:
            style = STATUS_STYLES.get(e.status, "white")
            table.add_row(
                e.created_at.strftime("%Y-%m-%d %H:%M:%S"),
                f"[{style}]{e.status}[/{style}]",
                e.operation,
                e.entity_type,
                e.source,
                e.message,
                e.correlation_id[:8],
            )
        console.print(table)

    asyncio.run(_list())

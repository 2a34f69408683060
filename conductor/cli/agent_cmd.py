"""CLI commands for agent tasks and their pending approvals."""

import asyncio
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

app = typer.Typer(no_args_is_help=True)
approvals_app = typer.Typer(no_args_is_help=True)
console = Console()

STATUS_COLORS = {"success": "green", "failed": "red", "pending_approval": "yellow"}


@app.command("list")
def list_tasks(
    status: str = typer.Option("active", "--status", "-s", help="active, paused, completed, expired or all"),
):
    """List agent tasks."""

    async def _list():
        from conductor.cli.common import open_services

        async with open_services() as services:
            tasks = await services.agent_tasks.list_tasks(status)

        if not tasks:
            console.print(f"[dim]No {status} agent tasks.[/dim]")
            return

        table = Table(title=f"Agent Tasks ({status})")
        table.add_column("ID", style="dim", max_width=8)
        table.add_column("Name", style="cyan")
        table.add_column("Trigger")
        table.add_column("Status")
        table.add_column("Next run")
        table.add_column("Runs", justify="right")
        for t in tasks:
            runs = f"{t.run_count}/{t.max_runs}" if t.max_runs else str(t.run_count)
            table.add_row(
                t.id[:8],
                t.name,
                t.trigger_type,
                t.status,
                t.next_run.strftime("%Y-%m-%d %H:%M") if t.next_run else "-",
                runs,
            )
        console.print(table)

    asyncio.run(_list())


@app.command("trigger")
def trigger(
    task_id: str = typer.Argument(help="Agent task ID"),
):
    """Run an active agent task now and wait for it to finish."""

    async def _trigger():
        from conductor.cli.common import open_services

        async with open_services() as services:
            if not await services.scheduler.trigger_task(task_id):
                console.print(f"[red]Agent task {task_id} not found or not active[/red]")
                raise typer.Exit(1)
            await services.executor.wait_idle()
            await services.executor.stop()
            results = await services.agent_tasks.get_results_for_task(task_id, limit=1)

        if not results:
            console.print("[yellow]Run skipped (daily budget exceeded)[/yellow]")
            return
        result = results[0]
        color = STATUS_COLORS.get(result.status, "white")
        console.print(f"[{color}]{result.status}[/{color}] in {result.duration_ms}ms")
        console.print(result.output)

    asyncio.run(_trigger())


@app.command("results")
def results(
    task_id: Optional[str] = typer.Argument(None, help="Agent task ID (omit for all tasks)"),
    limit: int = typer.Option(10, "--limit", "-n"),
    pending: bool = typer.Option(False, "--pending", help="Only runs with actions awaiting approval"),
):
    """Show recent run results."""

    async def _results():
        from conductor.cli.common import open_services

        async with open_services() as services:
            if pending:
                rows = await services.agent_tasks.get_pending_approval_results(limit=limit)
            elif task_id:
                rows = await services.agent_tasks.get_results_for_task(task_id, limit=limit)
            else:
                rows = await services.agent_tasks.get_recent_results(limit=limit)

        if not rows:
            console.print("[dim]No results yet.[/dim]")
            return

        table = Table(title="Agent Results")
        table.add_column("When")
        table.add_column("Task", style="dim", max_width=8)
        table.add_column("Status")
        table.add_column("Actions", justify="right")
        table.add_column("Cost", justify="right")
        table.add_column("Output", max_width=60)
        for r in rows:
            color = STATUS_COLORS.get(r.status, "white")
            table.add_row(
                r.timestamp.strftime("%Y-%m-%d %H:%M"),
                r.task_id[:8],
                f"[{color}]{r.status}[/{color}]",
                f"{len(r.actions_executed or [])}/{len(r.actions_proposed or [])}",
                f"${r.cost_usd:.4f}" if r.cost_usd else "-",
                (r.output or "")[:60],
            )
        console.print(table)

    asyncio.run(_results())


def _set_status(task_id: str, new_status: str, verb: str):
    async def _update():
        from conductor.cli.common import open_services

        async with open_services() as services:
            task = await services.agent_tasks.set_status(task_id, new_status)
            if task is None:
                console.print(f"[red]Agent task {task_id} not found[/red]")
                raise typer.Exit(1)
            await services.op_log.record(
                "deleted" if new_status == "completed" else "updated",
                "agent_task",
                source="cli:agent",
                message=f"Agent task '{task.name}' is now {new_status}",
                entity_id=task.id,
            )
        console.print(f"{verb}: [cyan]{task.name}[/cyan]")

    asyncio.run(_update())


@app.command("pause")
def pause(task_id: str = typer.Argument(help="Agent task ID")):
    """Stop scheduling a task until resumed."""
    _set_status(task_id, "paused", "Paused")


@app.command("resume")
def resume(task_id: str = typer.Argument(help="Agent task ID")):
    """Resume a paused task."""
    _set_status(task_id, "active", "Resumed")


@app.command("cancel")
def cancel(task_id: str = typer.Argument(help="Agent task ID")):
    """Mark a task completed so it never runs again."""
    _set_status(task_id, "completed", "Cancelled")


@approvals_app.command("list")
def list_pending(
    task_id: Optional[str] = typer.Option(None, "--task", "-t", help="Only this agent task"),
):
    """List actions waiting for approval."""

    async def _list():
        from conductor.cli.common import open_services

        async with open_services() as services:
            pending = await services.approvals.list_pending(task_id)

        if not pending:
            console.print("[dim]Nothing waiting for approval.[/dim]")
            return

        table = Table(title="Pending Actions")
        table.add_column("ID", style="dim")
        table.add_column("Type", style="cyan")
        table.add_column("Title")
        table.add_column("Proposed")
        for p in pending:
            table.add_row(
                p.id,
                p.action.get("type", "?"),
                p.action.get("title", ""),
                p.created_at.strftime("%Y-%m-%d %H:%M"),
            )
        console.print(table)

    asyncio.run(_list())


@approvals_app.command("approve")
def approve(pending_id: str = typer.Argument(help="Pending action ID")):
    """Execute a pending action."""

    async def _approve():
        from conductor.cli.common import open_services
        from conductor.core.errors import ConductorError

        async with open_services() as services:
            try:
                executed = await services.approvals.approve(pending_id)
            except ConductorError as e:
                console.print(f"[red]{e}[/red]")
                raise typer.Exit(1)

        if executed.approved:
            console.print(f"[green]Executed[/green] {executed.type.value}: {executed.title}")
        else:
            console.print(f"[red]Action failed[/red] {executed.type.value}: {executed.title}")

    asyncio.run(_approve())


@approvals_app.command("reject")
def reject(pending_id: str = typer.Argument(help="Pending action ID")):
    """Discard a pending action."""

    async def _reject():
        from conductor.cli.common import open_services
        from conductor.core.errors import ConductorError

        async with open_services() as services:
            try:
                await services.approvals.reject(pending_id)
            except ConductorError as e:
                console.print(f"[red]{e}[/red]")
                raise typer.Exit(1)
        console.print(f"Rejected {pending_id}")

    asyncio.run(_reject())

"""Export CLI commands: run, inspect, cancel and reconcile export jobs."""

import asyncio
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, TypeVar

import typer

if TYPE_CHECKING:
    from tool_export.models.export_job import ExportJob
    from tool_export.services.export_orchestrator import ExportOrchestrator

export_app = typer.Typer()

T = TypeVar("T")


async def _with_orchestrator(action: Callable[["ExportOrchestrator"], Awaitable[T]]) -> T:
    """Initialize the engine, run ``action`` with an orchestrator, then dispose."""
    from tool_export.core.background import InProcessTaskRunner
    from tool_export.core.config import get_settings
    from tool_export.core.database import dispose_engine, get_session_factory, init_engine
    from tool_export.services.export_orchestrator import ExportOrchestrator

    settings = get_settings()
    init_engine(settings.database_url, schema=settings.database_schema)
    runner = InProcessTaskRunner()
    try:
        orchestrator = ExportOrchestrator.from_settings(settings, get_session_factory(), runner=runner)
        result = await action(orchestrator)
        await runner.drain()
        return result
    finally:
        await dispose_engine()


def _print_job(job: "ExportJob") -> None:
    typer.echo(f"Export job {job.id}")
    typer.echo(f"  Tool:       {job.tool_id}")
    typer.echo(f"  Status:     {job.status}")
    typer.echo(f"  Progress:   {job.progress_percentage}% ({job.steps_completed}/{job.steps_total} steps)")
    typer.echo(f"  Step:       {job.current_step or 'N/A'}")
    if job.error_message:
        typer.echo(f"  Error:      {job.error_message}")
    if job.package_path:
        typer.echo(f"  Package:    {job.package_path} ({job.package_size_bytes or 0} bytes)")
        typer.echo(f"  Checksum:   {job.package_algorithm}:{job.package_checksum or 'N/A'}")


@export_app.command("run")
def export_run(
    tool_id: str = typer.Argument(..., help="Registered tool id"),
    user: str = typer.Option(..., "--user", help="User id requesting the export"),
) -> None:
    """Export a tool and wait for the job to finish."""
    from tool_export.lib.exporter import ExportValidationError
    from tool_export.services.errors import ExportServiceError

    async def _run(orchestrator: "ExportOrchestrator") -> "ExportJob":
        job = await orchestrator.start_export(tool_id, user)
        typer.echo(f"Export job created: {job.id}")
        typer.echo("Processing...")
        return job

    try:
        job = asyncio.run(_with_orchestrator(_run))
        final = asyncio.run(_with_orchestrator(lambda o: o.get_export_status(job.id)))
    except (ExportValidationError, ExportServiceError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1) from e
    _print_job(final)


@export_app.command("status")
def export_status(
    job_id: str = typer.Argument(..., help="Export job id"),
) -> None:
    """Show the status and progress of an export job."""
    from tool_export.services.errors import ExportServiceError

    try:
        job = asyncio.run(_with_orchestrator(lambda o: o.get_export_status(job_id)))
    except ExportServiceError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1) from e
    _print_job(job)


@export_app.command("list")
def export_list(
    user: str = typer.Option(..., "--user", help="Owner of the jobs"),
    status_filter: str | None = typer.Option(None, "--status", help="Filter by job status"),
    page: int = typer.Option(1, "--page", min=1),
    page_size: int = typer.Option(20, "--page-size", min=1, max=100),
) -> None:
    """List a user's export jobs, newest first."""
    jobs, total = asyncio.run(
        _with_orchestrator(
            lambda o: o.list_exports(user, status_filter=status_filter, page=page, page_size=page_size)
        )
    )
    typer.echo(f"{total} export job(s)")
    for job in jobs:
        typer.echo(f"  {job.id}  {job.tool_id:<24} {job.status:<12} {job.progress_percentage:>3}%")


@export_app.command("cancel")
def export_cancel(
    job_id: str = typer.Argument(..., help="Export job id"),
    user: str = typer.Option(..., "--user", help="User id that owns the job"),
) -> None:
    """Request cancellation of a pending or in-progress export."""
    from tool_export.services.errors import ExportServiceError

    try:
        asyncio.run(_with_orchestrator(lambda o: o.cancel_export(job_id, user)))
    except ExportServiceError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1) from e
    typer.echo(f"Cancellation requested for export job {job_id}")


@export_app.command("reconcile")
def export_reconcile() -> None:
    """Close out export jobs whose worker stopped heartbeating."""
    count = asyncio.run(_with_orchestrator(lambda o: o.reconcile_orphaned_jobs()))
    typer.echo(f"Reconciled {count} orphaned export job(s)")

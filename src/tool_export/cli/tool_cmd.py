"""Tool registry CLI commands."""

import asyncio
import json
from pathlib import Path

import typer

tool_app = typer.Typer()


@tool_app.command("register")
def register_tool(
    manifest_file: Path = typer.Argument(..., help="JSON manifest with id, name and config", exists=True),
    status: str = typer.Option("active", "--status", help="Registry status"),
) -> None:
    """Register (or replace) a tool from a JSON manifest file."""
    manifest = json.loads(manifest_file.read_text(encoding="utf-8"))
    for key in ("id", "name"):
        if not manifest.get(key):
            typer.echo(f"Error: manifest is missing '{key}'", err=True)
            raise typer.Exit(code=1)
    asyncio.run(_register_tool(manifest, status))


async def _register_tool(manifest: dict, status: str) -> None:
    from tool_export.core.config import get_settings
    from tool_export.core.database import dispose_engine, get_session_factory, init_engine
    from tool_export.services.tool_registry_repository import ToolRegistryRepository

    settings = get_settings()
    init_engine(settings.database_url, schema=settings.database_schema)
    try:
        repo = ToolRegistryRepository(get_session_factory())
        tool = await repo.register(tool_id=manifest["id"], name=manifest["name"], manifest=manifest, status=status)
        typer.echo(f"Registered tool {tool.tool_id}: {tool.name} ({tool.status})")
    finally:
        await dispose_engine()


@tool_app.command("validate")
def validate_tool(
    tool_id: str = typer.Argument(..., help="Registered tool id"),
) -> None:
    """Run pre-flight export validation for a tool."""
    ok = asyncio.run(_validate_tool(tool_id))
    if not ok:
        raise typer.Exit(code=1)


async def _validate_tool(tool_id: str) -> bool:
    from tool_export.core.config import get_settings
    from tool_export.core.database import dispose_engine, get_session_factory, init_engine
    from tool_export.services.export_orchestrator import ExportOrchestrator

    settings = get_settings()
    init_engine(settings.database_url, schema=settings.database_schema)
    try:
        orchestrator = ExportOrchestrator.from_settings(settings, get_session_factory())
        result = await orchestrator.preflight.validate(tool_id)
    finally:
        await dispose_engine()

    for line in result.info:
        typer.echo(f"  ok       {line}")
    for issue in result.warnings:
        typer.echo(f"  warning  {issue.message}")
    for issue in result.errors:
        typer.echo(f"  error    {issue.message}")
    typer.echo("Pre-flight passed" if result.success else "Pre-flight failed")
    return result.success

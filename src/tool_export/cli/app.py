"""Typer CLI root application with serve command."""

import typer

from tool_export.core.config import get_settings
from tool_export.core.logging import setup_logging

app = typer.Typer(name="tool-export", help="Tool export orchestration CLI")


@app.callback()
def _main_callback() -> None:
    """Initialize logging for all CLI commands."""
    settings = get_settings()
    setup_logging(settings.log_level, log_dir=settings.log_dir)


@app.command()
def serve(
    reload: bool = typer.Option(False, "--reload", help="Enable auto-reload for development"),
    host: str = typer.Option("0.0.0.0", "--host", help="Bind host"),  # noqa: S104
    port: int = typer.Option(8000, "--port", help="Bind port"),
) -> None:
    """Start the API server."""
    import uvicorn

    uvicorn.run(
        "tool_export.main:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
    )


def _register_subcommands() -> None:
    """Register all CLI subcommand groups."""
    from tool_export.cli.db_cmd import db_app
    from tool_export.cli.export_cmd import export_app
    from tool_export.cli.tool_cmd import tool_app

    app.add_typer(db_app, name="db", help="Database migration commands")
    app.add_typer(tool_app, name="tool", help="Tool registry commands")
    app.add_typer(export_app, name="export", help="Tool export commands")


_register_subcommands()

"""Bundled export strategies, one per tool family."""

from tool_export.lib.exporter.strategies.forms import FormsExportStrategy
from tool_export.lib.exporter.strategies.themes import ThemesExportStrategy
from tool_export.lib.exporter.strategies.workflows import WorkflowsExportStrategy

__all__ = [
    "FormsExportStrategy",
    "ThemesExportStrategy",
    "WorkflowsExportStrategy",
]

"""Exporter library: turns a registered tool into a deployable package.

Public API:
    - ExportStep / ExportStrategy: contracts implemented per tool family
    - ExportContext / ToolSnapshot: per-execution state handed to steps
    - ToolType: tool family discriminator
    - resolve_tool_type: pick the family for a tool snapshot
    - StrategyRegistry / default_registry: tool type to strategy lookup
    - StepExecutor: per-step timeout and retry with exponential backoff
    - rollback_steps: best-effort reverse-order undo of completed steps
    - file_checksum: SHA-256 of a finished package
"""

from tool_export.lib.exporter.base import ExportContext, ExportStep, ExportStrategy, ToolSnapshot, ToolType
from tool_export.lib.exporter.checksum import CHECKSUM_ALGORITHM, checksums_match, file_checksum
from tool_export.lib.exporter.errors import (
    ExportError,
    ExportValidationError,
    StepExecutionError,
    StepTimeoutError,
    ToolDataValidationError,
    UnsupportedToolTypeError,
)
from tool_export.lib.exporter.registry import StrategyRegistry, default_registry, resolve_tool_type
from tool_export.lib.exporter.runner import StepExecutor, remove_working_dir, rollback_steps

__all__ = [
    "CHECKSUM_ALGORITHM",
    "ExportContext",
    "ExportError",
    "ExportStep",
    "ExportStrategy",
    "ExportValidationError",
    "StepExecutionError",
    "StepExecutor",
    "StepTimeoutError",
    "StrategyRegistry",
    "ToolDataValidationError",
    "ToolSnapshot",
    "ToolType",
    "UnsupportedToolTypeError",
    "checksums_match",
    "default_registry",
    "file_checksum",
    "remove_working_dir",
    "resolve_tool_type",
    "rollback_steps",
]

"""Pre-flight validation run once before an export job is created.

Checks run in a fixed order. Tool existence and tool type are critical and
halt the pipeline; every other check keeps going so the caller sees all
problems at once. Errors block the export, warnings are only reported.
"""

import shutil
import tempfile
from dataclasses import dataclass, field
from pathlib import Path

from loguru import logger

from tool_export.lib.exporter import (
    StrategyRegistry,
    ToolDataValidationError,
    ToolSnapshot,
    UnsupportedToolTypeError,
    resolve_tool_type,
)
from tool_export.services.tool_registry_repository import ToolRegistryRepository

TOOL_EXISTENCE = "tool_existence"
TOOL_TYPE = "tool_type"


@dataclass
class ValidationIssue:
    """One finding of the pre-flight pipeline."""

    message: str
    field: str | None = None


@dataclass
class ValidationResult:
    """Outcome of pre-flight validation."""

    errors: list[ValidationIssue] = field(default_factory=list)
    warnings: list[ValidationIssue] = field(default_factory=list)
    info: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.errors

    @property
    def tool_missing(self) -> bool:
        """Whether validation stopped because the tool is not registered."""
        return any(e.field == TOOL_EXISTENCE for e in self.errors)

    def add_error(self, message: str, field_name: str | None = None) -> None:
        self.errors.append(ValidationIssue(message, field_name))

    def add_warning(self, message: str, field_name: str | None = None) -> None:
        self.warnings.append(ValidationIssue(message, field_name))

    def error_messages(self) -> list[str]:
        return [e.message for e in self.errors]


class PreFlightValidator:
    """Checks that a tool and the host are ready for an export."""

    def __init__(
        self,
        tool_repo: ToolRegistryRepository,
        registry: StrategyRegistry,
        *,
        export_temp_dir: Path,
        min_disk_space_mb: int = 500,
    ) -> None:
        self._tool_repo = tool_repo
        self._registry = registry
        self._export_temp_dir = export_temp_dir
        self._min_disk_space_mb = min_disk_space_mb

    async def validate(self, tool_id: str) -> ValidationResult:
        """Run the validation pipeline for ``tool_id``.

        Never raises; unexpected failures are reported as a ``system`` error.
        """
        report = ValidationResult()
        try:
            logger.info(f"Starting pre-flight validation for tool {tool_id}")
            tool = await self._check_tool_exists(tool_id, report)
            if tool is None:
                return report

            self._check_tool_data(tool, report)
            self._check_system_resources(report)
            self._check_dependencies(report)
        except Exception as e:
            logger.exception(f"Pre-flight validation pipeline failed for tool {tool_id}")
            report.add_error(f"Validation failed: {e}", "system")

        logger.info(
            f"Pre-flight validation for tool {tool_id} finished: success={report.success}, "
            f"errors={len(report.errors)}, warnings={len(report.warnings)}"
        )
        return report

    async def _check_tool_exists(self, tool_id: str, report: ValidationResult) -> ToolSnapshot | None:
        record = await self._tool_repo.find_by_id(tool_id)
        if record is None:
            report.add_error(f"Tool {tool_id} not found in registry", TOOL_EXISTENCE)
            return None

        tool = ToolSnapshot.from_record(record)
        if tool.status != "active":
            report.add_warning(f"Tool status is '{tool.status}'. Only active tools should be exported.", "tool_status")

        try:
            tool_type = resolve_tool_type(tool)
        except UnsupportedToolTypeError as e:
            report.add_error(e.message, TOOL_TYPE)
            return None
        if tool_type not in self._registry:
            report.add_error(f"Tool type '{tool_type}' is not supported for export", TOOL_TYPE)
            return None

        report.info.append(f"Tool '{tool.name}' ({tool_type}) found")
        return tool

    def _check_tool_data(self, tool: ToolSnapshot, report: ValidationResult) -> None:
        if not tool.name or not tool.name.strip():
            report.add_error("Tool name is missing or empty", "tool_name")

        strategy = self._registry.for_tool(tool)
        try:
            strategy.validate_tool_data(tool)
        except ToolDataValidationError as e:
            for message in e.errors or [e.message]:
                report.add_error(message, "tool_metadata")
        else:
            report.info.append("Tool data completeness validation passed")

    def _check_system_resources(self, report: ValidationResult) -> None:
        temp_dir = self._export_temp_dir
        try:
            temp_dir.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(dir=temp_dir, prefix=".preflight-"):
                pass
            report.info.append("Export temp directory is writable")
        except OSError as e:
            report.add_error(f"Export temp directory {temp_dir} is not writable: {e}", "temp_directory")
            return

        available_mb = shutil.disk_usage(temp_dir).free / (1024 * 1024)
        if available_mb < self._min_disk_space_mb:
            report.add_error(
                f"Insufficient disk space: {available_mb:.0f}MB available, {self._min_disk_space_mb}MB required",
                "disk_space",
            )
        else:
            report.info.append(f"Disk space: {available_mb:.0f}MB available")

    def _check_dependencies(self, report: ValidationResult) -> None:
        # Packages are built with tarfile; the tar binary is only needed to inspect them by hand
        if shutil.which("tar") is None:
            report.add_warning("tar command not available on this host", "dependencies")
        else:
            report.info.append("tar command available")

"""Contracts shared by export strategies, their steps, and the executor."""

import copy
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path
from types import MappingProxyType
from typing import Any

from tool_export.lib.exporter.errors import ToolDataValidationError


class ToolType(StrEnum):
    """Tool families that can be exported."""

    FORMS = "forms"
    WORKFLOWS = "workflows"
    THEMES = "themes"


@dataclass(frozen=True)
class ToolSnapshot:
    """Immutable copy of a tool registry record, taken once per execution."""

    tool_id: str
    name: str
    status: str = "active"
    manifest: MappingProxyType = field(default_factory=lambda: MappingProxyType({}))

    @classmethod
    def from_record(cls, record: Any) -> "ToolSnapshot":
        """Snapshot any object exposing tool_id, name, status and manifest."""
        return cls(
            tool_id=record.tool_id,
            name=record.name,
            status=record.status or "active",
            manifest=MappingProxyType(copy.deepcopy(dict(record.manifest or {}))),
        )

    @property
    def config(self) -> dict[str, Any]:
        """A copy of the manifest's ``config`` section, or an empty dict.

        Copied on every access, so a step editing it never changes the snapshot.
        """
        config = self.manifest.get("config")
        return copy.deepcopy(config) if isinstance(config, dict) else {}


@dataclass
class ExportContext:
    """Per-execution state handed to every step of one job.

    ``metadata`` carries values forward between steps (the package step
    stores ``package_path`` and ``package_size`` here). Steps of one job run
    sequentially, so it is never accessed concurrently.
    """

    job_id: str
    tool_id: str
    user_id: str
    working_dir: Path
    tool_data: ToolSnapshot
    metadata: dict[str, Any] = field(default_factory=dict)


class ExportStep(ABC):
    """One unit of export work with an undo action."""

    name: str = ""
    description: str = ""
    retryable: bool = False

    @abstractmethod
    async def execute(self, ctx: ExportContext) -> None:
        """Perform the step's work.

        Raises:
            Exception: Any error marks this attempt as failed.
        """

    async def rollback(self, ctx: ExportContext) -> None:  # noqa: B027
        """Undo the step's work. Steps without side effects keep the default no-op."""

    def __repr__(self) -> str:
        return f"<{type(self).__name__} name={self.name!r} retryable={self.retryable}>"


class ExportStrategy(ABC):
    """Produces the ordered steps that export one family of tools."""

    tool_type: ToolType

    @abstractmethod
    def validate_tool_data(self, tool: ToolSnapshot) -> None:
        """Check the tool's configuration in memory, without I/O.

        Raises:
            ToolDataValidationError: If the configuration cannot be exported.
        """

    @abstractmethod
    def get_steps(self, tool: ToolSnapshot) -> list[ExportStep]:
        """Return fresh step instances, in execution order, for this tool."""

    def validate_required_metadata(self, tool: ToolSnapshot, keys: list[str]) -> None:
        """Require non-empty values for ``keys`` in the manifest config.

        Raises:
            ToolDataValidationError: Listing every missing key.
        """
        config = tool.config
        missing = [key for key in keys if not config.get(key)]
        if missing:
            errors = [f"Missing required metadata field: {key}" for key in missing]
            msg = f"Tool {tool.tool_id} is missing required metadata: {', '.join(missing)}"
            raise ToolDataValidationError(msg, errors)

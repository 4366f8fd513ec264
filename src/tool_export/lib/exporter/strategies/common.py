"""Steps shared by the bundled export strategies."""

import asyncio
import json
import tarfile
from pathlib import Path
from typing import Any

from tool_export.lib.exporter.base import ExportContext, ExportStep
from tool_export.lib.exporter.errors import StepExecutionError

PACKAGE_VERSION = "1.0.0"


def _write_json(path: Path, payload: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, indent=2, sort_keys=True, default=str) + "\n", encoding="utf-8")


def package_path_for(ctx: ExportContext) -> Path:
    """Archive location: beside the working directory, never inside it."""
    return ctx.working_dir.parent / f"export-{ctx.tool_id}-{ctx.job_id}.tar.gz"


class WriteServiceManifestStep(ExportStep):
    """Writes ``manifest.json`` describing the standalone service."""

    name = "write-service-manifest"
    description = "Generate service manifest"
    retryable = True

    def __init__(self, tool_type: str, extra: dict[str, Any] | None = None) -> None:
        self.tool_type = tool_type
        self.extra = extra or {}

    def _target(self, ctx: ExportContext) -> Path:
        return ctx.working_dir / "manifest.json"

    async def execute(self, ctx: ExportContext) -> None:
        tool = ctx.tool_data
        manifest = {
            "name": f"{self.tool_type}-service-{tool.tool_id}",
            "version": PACKAGE_VERSION,
            "description": f"Standalone {self.tool_type} service exported from {tool.name}",
            "tool_id": tool.tool_id,
            "tool_type": self.tool_type,
            "export_job_id": ctx.job_id,
            **self.extra,
        }
        _write_json(self._target(ctx), manifest)
        ctx.metadata["manifest_path"] = str(self._target(ctx))

    async def rollback(self, ctx: ExportContext) -> None:
        self._target(ctx).unlink(missing_ok=True)
        ctx.metadata.pop("manifest_path", None)


class CopyConfigSectionStep(ExportStep):
    """Copies one section of the tool configuration into the package as JSON.

    The section is read from ``ctx.metadata`` when an earlier step staged
    it there, otherwise from the tool manifest config.
    """

    retryable = True

    def __init__(self, *, name: str, description: str, config_key: str, relative_path: str) -> None:
        self.name = name
        self.description = description
        self.config_key = config_key
        self.relative_path = relative_path

    def _target(self, ctx: ExportContext) -> Path:
        return ctx.working_dir / self.relative_path

    async def execute(self, ctx: ExportContext) -> None:
        section = ctx.metadata.get(self.config_key, ctx.tool_data.config.get(self.config_key))
        if section is None:
            raise StepExecutionError(self.name, f"No '{self.config_key}' section to export")
        _write_json(self._target(ctx), section)

    async def rollback(self, ctx: ExportContext) -> None:
        self._target(ctx).unlink(missing_ok=True)


class WriteReadmeStep(ExportStep):
    """Writes a README with deployment instructions."""

    name = "write-readme"
    description = "Generate README documentation"
    retryable = True

    def __init__(self, tool_type: str) -> None:
        self.tool_type = tool_type

    async def execute(self, ctx: ExportContext) -> None:
        tool = ctx.tool_data
        lines = [
            f"# {tool.name}",
            "",
            f"Standalone {self.tool_type} service exported from tool `{tool.tool_id}`.",
            "",
            "## Contents",
            "",
            "- `manifest.json`: service metadata",
            "- `config/`: exported tool configuration",
            "",
            "## Running",
            "",
            "Unpack the archive and point your deployment at `manifest.json`.",
            "",
        ]
        (ctx.working_dir / "README.md").write_text("\n".join(lines), encoding="utf-8")

    async def rollback(self, ctx: ExportContext) -> None:
        (ctx.working_dir / "README.md").unlink(missing_ok=True)


class PackageArchiveStep(ExportStep):
    """Archives the working directory into a gzip tarball.

    Stores ``package_path`` and ``package_size`` in the context metadata for
    the orchestrator to record on completion.
    """

    name = "package-archive"
    description = "Create deployable package archive"
    retryable = True

    async def execute(self, ctx: ExportContext) -> None:
        archive = package_path_for(ctx)
        await asyncio.to_thread(self._build_archive, ctx.working_dir, archive)
        ctx.metadata["package_path"] = str(archive)
        ctx.metadata["package_size"] = archive.stat().st_size

    @staticmethod
    def _build_archive(source: Path, archive: Path) -> None:
        archive.parent.mkdir(parents=True, exist_ok=True)
        with tarfile.open(archive, "w:gz") as tar:
            tar.add(source, arcname=archive.name.removesuffix(".tar.gz"))

    async def rollback(self, ctx: ExportContext) -> None:
        package_path_for(ctx).unlink(missing_ok=True)
        ctx.metadata.pop("package_path", None)
        ctx.metadata.pop("package_size", None)

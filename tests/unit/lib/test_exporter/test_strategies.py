"""Tests for the bundled forms, workflows and themes export strategies."""

import json
import tarfile
from pathlib import Path
from types import MappingProxyType

import pytest

from tool_export.lib.exporter import ExportContext, ToolDataValidationError, ToolSnapshot
from tool_export.lib.exporter.errors import StepExecutionError
from tool_export.lib.exporter.strategies import (
    FormsExportStrategy,
    ThemesExportStrategy,
    WorkflowsExportStrategy,
)
from tool_export.lib.exporter.strategies.common import CopyConfigSectionStep, package_path_for


def _tool(tool_id: str, config: dict, name: str = "Sample Tool") -> ToolSnapshot:
    return ToolSnapshot(tool_id=tool_id, name=name, manifest=MappingProxyType({"config": config}))


def _ctx(tmp_path: Path, tool: ToolSnapshot) -> ExportContext:
    working_dir = tmp_path / "exports" / "job-42"
    working_dir.mkdir(parents=True)
    return ExportContext(
        job_id="job-42",
        tool_id=tool.tool_id,
        user_id="user-1",
        working_dir=working_dir,
        tool_data=tool,
    )


async def _run_all(steps, ctx: ExportContext) -> None:
    for step in steps:
        await step.execute(ctx)


async def _rollback_all(steps, ctx: ExportContext) -> None:
    for step in reversed(steps):
        await step.rollback(ctx)


FORM_CONFIG = {
    "formSchemaId": "schema-1",
    "formSchema": {"title": "Signup", "fields": [{"name": "email"}, {"name": "age"}]},
}
WORKFLOW_CONFIG = {"workflowId": "wf-1", "workflow": {"states": ["draft", "approved"]}}
THEME_CONFIG = {"themeId": "theme-1", "theme": {"primary": "#123456"}}


class TestFormsExportStrategy:
    """Tests for FormsExportStrategy."""

    def test_validate_requires_form_schema_id(self) -> None:
        with pytest.raises(ToolDataValidationError) as exc_info:
            FormsExportStrategy().validate_tool_data(_tool("signup-form", {}))
        assert exc_info.value.errors == ["Missing required metadata field: formSchemaId"]

    def test_validate_rejects_non_object_schema(self) -> None:
        with pytest.raises(ToolDataValidationError, match="must be an object"):
            FormsExportStrategy().validate_tool_data(_tool("signup-form", {"formSchemaId": "s", "formSchema": []}))

    def test_steps_are_deterministic(self) -> None:
        tool = _tool("signup-form", FORM_CONFIG)
        first = [s.name for s in FormsExportStrategy().get_steps(tool)]
        second = [s.name for s in FormsExportStrategy().get_steps(tool)]
        assert first == second == [
            "validate-form-data",
            "write-service-manifest",
            "copy-form-schema",
            "write-readme",
            "package-archive",
        ]

    @pytest.mark.asyncio
    async def test_full_run_produces_package(self, tmp_path: Path) -> None:
        tool = _tool("signup-form", FORM_CONFIG)
        ctx = _ctx(tmp_path, tool)
        await _run_all(FormsExportStrategy().get_steps(tool), ctx)

        assert ctx.metadata["field_count"] == 2
        manifest = json.loads((ctx.working_dir / "manifest.json").read_text())
        assert manifest["tool_type"] == "forms"
        assert manifest["form_schema_id"] == "schema-1"
        schema = json.loads((ctx.working_dir / "config" / "form-schema.json").read_text())
        assert schema["id"] == "schema-1"

        package = Path(ctx.metadata["package_path"])
        assert package == package_path_for(ctx)
        assert package.parent == ctx.working_dir.parent
        assert ctx.metadata["package_size"] == package.stat().st_size
        with tarfile.open(package) as tar:
            names = tar.getnames()
        assert any(n.endswith("README.md") for n in names)

    @pytest.mark.asyncio
    async def test_rollback_removes_outputs(self, tmp_path: Path) -> None:
        tool = _tool("signup-form", FORM_CONFIG)
        ctx = _ctx(tmp_path, tool)
        steps = FormsExportStrategy().get_steps(tool)
        await _run_all(steps, ctx)
        await _rollback_all(steps, ctx)

        assert not (ctx.working_dir / "manifest.json").exists()
        assert not (ctx.working_dir / "README.md").exists()
        assert not package_path_for(ctx).exists()
        assert "package_path" not in ctx.metadata
        assert "formSchema" not in ctx.metadata


class TestWorkflowsExportStrategy:
    """Tests for WorkflowsExportStrategy."""

    def test_validate_requires_workflow(self) -> None:
        with pytest.raises(ToolDataValidationError) as exc_info:
            WorkflowsExportStrategy().validate_tool_data(_tool("approval-workflow", {"workflowId": "wf-1"}))
        assert exc_info.value.errors == ["Missing required metadata field: workflow"]

    def test_validate_requires_states_list(self) -> None:
        with pytest.raises(ToolDataValidationError, match="'states' list"):
            WorkflowsExportStrategy().validate_tool_data(
                _tool("approval-workflow", {"workflowId": "wf-1", "workflow": {"states": "draft"}})
            )

    @pytest.mark.asyncio
    async def test_full_run_copies_definition(self, tmp_path: Path) -> None:
        tool = _tool("approval-workflow", WORKFLOW_CONFIG)
        strategy = WorkflowsExportStrategy()
        strategy.validate_tool_data(tool)
        ctx = _ctx(tmp_path, tool)
        await _run_all(strategy.get_steps(tool), ctx)

        definition = json.loads((ctx.working_dir / "config" / "workflow.json").read_text())
        assert definition == {"states": ["draft", "approved"]}
        assert Path(ctx.metadata["package_path"]).exists()


class TestThemesExportStrategy:
    """Tests for ThemesExportStrategy."""

    def test_validate_lists_every_missing_field(self) -> None:
        with pytest.raises(ToolDataValidationError) as exc_info:
            ThemesExportStrategy().validate_tool_data(_tool("dark-theme", {}))
        assert exc_info.value.errors == [
            "Missing required metadata field: themeId",
            "Missing required metadata field: theme",
        ]

    def test_has_three_steps(self) -> None:
        steps = ThemesExportStrategy().get_steps(_tool("dark-theme", THEME_CONFIG))
        assert [s.name for s in steps] == ["write-service-manifest", "copy-theme-config", "package-archive"]
        assert all(s.retryable for s in steps)


class TestCopyConfigSectionStep:
    """Tests for CopyConfigSectionStep."""

    @pytest.mark.asyncio
    async def test_missing_section_raises(self, tmp_path: Path) -> None:
        tool = _tool("dark-theme", {})
        step = CopyConfigSectionStep(
            name="copy-theme-config",
            description="Copy theme configuration",
            config_key="theme",
            relative_path="config/theme.json",
        )
        with pytest.raises(StepExecutionError, match="No 'theme' section"):
            await step.execute(_ctx(tmp_path, tool))


class TestToolSnapshot:
    """Tests for ToolSnapshot isolation from the steps that read it."""

    def test_config_edits_do_not_leak_into_snapshot(self) -> None:
        tool = _tool("contact-form", {"formSchemaId": "s-1", "formSchema": {"fields": [{"name": "email"}]}})

        config = tool.config
        config["formSchemaId"] = "changed"
        config["formSchema"]["fields"].append({"name": "phone"})

        assert tool.config["formSchemaId"] == "s-1"
        assert tool.config["formSchema"]["fields"] == [{"name": "email"}]

    def test_from_record_copies_the_manifest(self) -> None:
        class Record:
            tool_id = "contact-form"
            name = "Contact Form"
            status = "active"
            manifest = {"config": {"formSchemaId": "s-1"}}

        tool = ToolSnapshot.from_record(Record)
        Record.manifest["config"]["formSchemaId"] = "changed"

        assert tool.config["formSchemaId"] == "s-1"

"""Tests for the pre-flight validation pipeline."""

from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest

from tool_export.lib.exporter import StrategyRegistry, ToolType, default_registry
from tool_export.lib.exporter.strategies import FormsExportStrategy
from tool_export.services.preflight_service import PreFlightValidator
from tool_export.services.tool_registry_repository import ToolRegistryRepository


def _validator(tool_repo, tmp_path: Path, **kwargs) -> PreFlightValidator:
    kwargs.setdefault("export_temp_dir", tmp_path / "exports")
    kwargs.setdefault("min_disk_space_mb", 0)
    registry = kwargs.pop("registry", None) or default_registry()
    return PreFlightValidator(tool_repo, registry, **kwargs)


class TestPreFlightValidator:
    """Tests for PreFlightValidator.validate."""

    @pytest.mark.asyncio
    async def test_valid_tool_passes(self, tool_repo: ToolRegistryRepository, form_tool, tmp_path: Path) -> None:
        result = await _validator(tool_repo, tmp_path).validate(form_tool.tool_id)
        assert result.success is True
        assert result.errors == []
        assert "Tool 'Contact Form' (forms) found" in result.info
        assert "Export temp directory is writable" in result.info

    @pytest.mark.asyncio
    async def test_missing_tool_halts(self, tool_repo: ToolRegistryRepository, tmp_path: Path) -> None:
        result = await _validator(tool_repo, tmp_path).validate("ghost-form")
        assert result.success is False
        assert result.tool_missing is True
        assert [e.field for e in result.errors] == ["tool_existence"]
        assert result.info == []

    @pytest.mark.asyncio
    async def test_inactive_tool_is_a_warning(self, tool_repo: ToolRegistryRepository, tmp_path: Path) -> None:
        await tool_repo.register(
            tool_id="old-theme",
            name="Old Theme",
            manifest={"config": {"themeId": "t", "theme": {"bg": "#000"}}},
            status="archived",
        )
        result = await _validator(tool_repo, tmp_path).validate("old-theme")
        assert result.success is True
        assert [w.field for w in result.warnings] == ["tool_status"]

    @pytest.mark.asyncio
    async def test_unresolvable_type_halts(self, tool_repo: ToolRegistryRepository, tmp_path: Path) -> None:
        await tool_repo.register(tool_id="analytics-dashboard", name="Dashboard", manifest={})
        result = await _validator(tool_repo, tmp_path).validate("analytics-dashboard")
        assert result.success is False
        assert result.tool_missing is False
        assert [e.field for e in result.errors] == ["tool_type"]

    @pytest.mark.asyncio
    async def test_unregistered_strategy_halts(self, tool_repo: ToolRegistryRepository, tmp_path: Path) -> None:
        await tool_repo.register(tool_id="dark-theme", name="Dark", manifest={"config": {"themeId": "t", "theme": {}}})
        registry = StrategyRegistry()
        registry.register(ToolType.FORMS, FormsExportStrategy)
        result = await _validator(tool_repo, tmp_path, registry=registry).validate("dark-theme")
        assert result.error_messages() == ["Tool type 'themes' is not supported for export"]

    @pytest.mark.asyncio
    async def test_collects_all_data_errors(self, tool_repo: ToolRegistryRepository, tmp_path: Path) -> None:
        await tool_repo.register(tool_id="blank-theme", name="   ", manifest={"config": {}})
        result = await _validator(tool_repo, tmp_path).validate("blank-theme")
        assert [e.field for e in result.errors] == ["tool_name", "tool_metadata", "tool_metadata"]

    @pytest.mark.asyncio
    async def test_unwritable_temp_dir(self, tool_repo: ToolRegistryRepository, form_tool, tmp_path: Path) -> None:
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("file in the way")
        result = await _validator(tool_repo, tmp_path, export_temp_dir=blocker).validate(form_tool.tool_id)
        assert [e.field for e in result.errors] == ["temp_directory"]

    @pytest.mark.asyncio
    async def test_insufficient_disk_space(self, tool_repo: ToolRegistryRepository, form_tool, tmp_path: Path) -> None:
        validator = _validator(tool_repo, tmp_path, min_disk_space_mb=10**12)
        result = await validator.validate(form_tool.tool_id)
        assert [e.field for e in result.errors] == ["disk_space"]

    @pytest.mark.asyncio
    async def test_missing_tar_is_a_warning(self, tool_repo: ToolRegistryRepository, form_tool, tmp_path: Path) -> None:
        with patch("tool_export.services.preflight_service.shutil.which", return_value=None):
            result = await _validator(tool_repo, tmp_path).validate(form_tool.tool_id)
        assert result.success is True
        assert [w.field for w in result.warnings] == ["dependencies"]

    @pytest.mark.asyncio
    async def test_unexpected_error_reported_as_system(self, tmp_path: Path) -> None:
        tool_repo = AsyncMock()
        tool_repo.find_by_id.side_effect = RuntimeError("database unavailable")
        result = await _validator(tool_repo, tmp_path).validate("contact-form-builder")
        assert result.success is False
        assert result.errors[0].field == "system"
        assert "database unavailable" in result.errors[0].message

"""Export strategy for theme designer tools."""

from tool_export.lib.exporter.base import ExportStep, ExportStrategy, ToolSnapshot, ToolType
from tool_export.lib.exporter.strategies.common import (
    CopyConfigSectionStep,
    PackageArchiveStep,
    WriteServiceManifestStep,
)


class ThemesExportStrategy(ExportStrategy):
    """Exports a theme as a static bundle of its configuration."""

    tool_type = ToolType.THEMES

    def validate_tool_data(self, tool: ToolSnapshot) -> None:
        self.validate_required_metadata(tool, ["themeId", "theme"])

    def get_steps(self, tool: ToolSnapshot) -> list[ExportStep]:
        return [
            WriteServiceManifestStep(self.tool_type.value, {"theme_id": tool.config.get("themeId")}),
            CopyConfigSectionStep(
                name="copy-theme-config",
                description="Copy theme configuration",
                config_key="theme",
                relative_path="config/theme.json",
            ),
            PackageArchiveStep(),
        ]

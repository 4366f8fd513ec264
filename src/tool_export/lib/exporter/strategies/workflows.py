"""Export strategy for workflow engine tools."""

from tool_export.lib.exporter.base import ExportStep, ExportStrategy, ToolSnapshot, ToolType
from tool_export.lib.exporter.errors import ToolDataValidationError
from tool_export.lib.exporter.strategies.common import (
    CopyConfigSectionStep,
    PackageArchiveStep,
    WriteReadmeStep,
    WriteServiceManifestStep,
)


class WorkflowsExportStrategy(ExportStrategy):
    """Exports a workflow tool with its workflow definition."""

    tool_type = ToolType.WORKFLOWS

    def validate_tool_data(self, tool: ToolSnapshot) -> None:
        self.validate_required_metadata(tool, ["workflowId", "workflow"])
        workflow = tool.config["workflow"]
        if not isinstance(workflow, dict) or not isinstance(workflow.get("states", []), list):
            msg = f"workflow of tool {tool.tool_id} must be an object with a 'states' list"
            raise ToolDataValidationError(msg, [msg])

    def get_steps(self, tool: ToolSnapshot) -> list[ExportStep]:
        return [
            WriteServiceManifestStep(self.tool_type.value, {"workflow_id": tool.config.get("workflowId")}),
            CopyConfigSectionStep(
                name="copy-workflow-definition",
                description="Copy workflow definition",
                config_key="workflow",
                relative_path="config/workflow.json",
            ),
            WriteReadmeStep(self.tool_type.value),
            PackageArchiveStep(),
        ]

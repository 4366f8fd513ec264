"""Export strategy for form builder tools."""

from tool_export.lib.exporter.base import ExportContext, ExportStep, ExportStrategy, ToolSnapshot, ToolType
from tool_export.lib.exporter.errors import StepExecutionError, ToolDataValidationError
from tool_export.lib.exporter.strategies.common import (
    CopyConfigSectionStep,
    PackageArchiveStep,
    WriteReadmeStep,
    WriteServiceManifestStep,
)


class ValidateFormDataStep(ExportStep):
    """Stages the form schema referenced by the tool for later steps."""

    name = "validate-form-data"
    description = "Validate form schema and fields"
    retryable = True

    async def execute(self, ctx: ExportContext) -> None:
        config = ctx.tool_data.config
        form_schema_id = config.get("formSchemaId")
        if not form_schema_id:
            raise StepExecutionError(self.name, "Form schema ID not found in tool metadata")

        schema = config.get("formSchema") or {}
        fields = schema.get("fields", [])
        if not isinstance(fields, list):
            raise StepExecutionError(self.name, "Form schema 'fields' must be a list")

        ctx.metadata["formSchema"] = {"id": form_schema_id, **schema, "fields": fields}
        ctx.metadata["field_count"] = len(fields)

    async def rollback(self, ctx: ExportContext) -> None:
        ctx.metadata.pop("formSchema", None)
        ctx.metadata.pop("field_count", None)


class FormsExportStrategy(ExportStrategy):
    """Exports a form builder tool as a standalone form service."""

    tool_type = ToolType.FORMS

    def validate_tool_data(self, tool: ToolSnapshot) -> None:
        self.validate_required_metadata(tool, ["formSchemaId"])
        schema = tool.config.get("formSchema")
        if schema is not None and not isinstance(schema, dict):
            msg = f"formSchema of tool {tool.tool_id} must be an object"
            raise ToolDataValidationError(msg, [msg])

    def get_steps(self, tool: ToolSnapshot) -> list[ExportStep]:
        return [
            ValidateFormDataStep(),
            WriteServiceManifestStep(self.tool_type.value, {"form_schema_id": tool.config.get("formSchemaId")}),
            CopyConfigSectionStep(
                name="copy-form-schema",
                description="Copy form schema",
                config_key="formSchema",
                relative_path="config/form-schema.json",
            ),
            WriteReadmeStep(self.tool_type.value),
            PackageArchiveStep(),
        ]

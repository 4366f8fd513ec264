"""ORM model registry: import all models so Alembic autogenerate discovers them."""

from tool_export.models.export_job import ExportJob, ExportJobStatus
from tool_export.models.tool_record import ToolRecord

__all__ = [
    "ExportJob",
    "ExportJobStatus",
    "ToolRecord",
]

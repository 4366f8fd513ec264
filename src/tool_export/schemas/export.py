"""Export Pydantic v2 request/response schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from tool_export.schemas.common import PaginationMeta


class ExportJobResponse(BaseModel):
    """Status and progress of an export job."""

    id: UUID
    tool_id: str
    user_id: str
    status: str
    steps_total: int
    steps_completed: int
    progress_percentage: int = Field(ge=0, le=100)
    current_step: str | None = None
    error_message: str | None = None
    package_size_bytes: int | None = None
    package_checksum: str | None = None
    package_algorithm: str | None = None
    package_expires_at: datetime | None = None
    download_count: int = 0
    created_at: datetime
    started_at: datetime | None = None
    completed_at: datetime | None = None
    download_url: str | None = None

    model_config = {"from_attributes": True}


class PaginatedExportJobResponse(BaseModel):
    """Paginated list of export jobs."""

    items: list[ExportJobResponse]
    pagination: PaginationMeta


class ValidationIssueResponse(BaseModel):
    """One pre-flight finding."""

    message: str
    field: str | None = None

    model_config = {"from_attributes": True}


class PreFlightResponse(BaseModel):
    """Result of pre-flight validation for a tool."""

    tool_id: str
    success: bool
    errors: list[ValidationIssueResponse]
    warnings: list[ValidationIssueResponse]
    info: list[str]

"""Export API endpoints: start, poll, cancel and download tool exports."""

import uuid
from pathlib import Path

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import FileResponse
from loguru import logger

from tool_export.core.config import Settings, get_settings
from tool_export.core.dependencies import get_current_user_id, get_orchestrator
from tool_export.models.export_job import ExportJob, ExportJobStatus
from tool_export.schemas.common import PaginationMeta
from tool_export.schemas.export import (
    ExportJobResponse,
    PaginatedExportJobResponse,
    PreFlightResponse,
    ValidationIssueResponse,
)
from tool_export.services.errors import ExportPermissionError
from tool_export.services.export_orchestrator import ExportOrchestrator, is_package_expired

exports_router = APIRouter(tags=["exports"])


def _build_download_url(job_id: uuid.UUID, settings: Settings) -> str:
    """Build the download URL for a completed export."""
    return f"{settings.api_v1_prefix}/exports/{job_id}/download"


def _job_to_response(job: ExportJob, settings: Settings) -> ExportJobResponse:
    """Convert an ExportJob to response with download URL."""
    response = ExportJobResponse.model_validate(job)
    if response.status == ExportJobStatus.COMPLETED:
        response.download_url = _build_download_url(response.id, settings)
    return response


@exports_router.post(
    "/tools/{tool_id}/export",
    response_model=ExportJobResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def start_export(
    tool_id: str,
    user_id: str = Depends(get_current_user_id),
    orchestrator: ExportOrchestrator = Depends(get_orchestrator),
    settings: Settings = Depends(get_settings),
) -> ExportJobResponse:
    """Start exporting a tool; poll the returned job for progress."""
    job = await orchestrator.start_export(tool_id, user_id)
    return _job_to_response(job, settings)


@exports_router.get(
    "/tools/{tool_id}/export/validate",
    response_model=PreFlightResponse,
)
async def validate_export(
    tool_id: str,
    _user_id: str = Depends(get_current_user_id),
    orchestrator: ExportOrchestrator = Depends(get_orchestrator),
) -> PreFlightResponse:
    """Run pre-flight validation without starting an export."""
    result = await orchestrator.preflight.validate(tool_id)
    return PreFlightResponse(
        tool_id=tool_id,
        success=result.success,
        errors=[ValidationIssueResponse.model_validate(e) for e in result.errors],
        warnings=[ValidationIssueResponse.model_validate(w) for w in result.warnings],
        info=result.info,
    )


@exports_router.get(
    "/exports",
    response_model=PaginatedExportJobResponse,
)
async def list_exports(
    status_filter: str | None = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    user_id: str = Depends(get_current_user_id),
    orchestrator: ExportOrchestrator = Depends(get_orchestrator),
    settings: Settings = Depends(get_settings),
) -> PaginatedExportJobResponse:
    """List the caller's export jobs."""
    jobs, total = await orchestrator.list_exports(
        user_id,
        status_filter=status_filter,
        page=page,
        page_size=page_size,
    )
    return PaginatedExportJobResponse(
        items=[_job_to_response(j, settings) for j in jobs],
        pagination=PaginationMeta(
            total=total,
            page=page,
            page_size=page_size,
            total_pages=(total + page_size - 1) // page_size,
        ),
    )


@exports_router.get(
    "/exports/{job_id}",
    response_model=ExportJobResponse,
)
async def get_export_status(
    job_id: uuid.UUID,
    _user_id: str = Depends(get_current_user_id),
    orchestrator: ExportOrchestrator = Depends(get_orchestrator),
    settings: Settings = Depends(get_settings),
) -> ExportJobResponse:
    """Get export job status and progress."""
    job = await orchestrator.get_export_status(job_id)
    return _job_to_response(job, settings)


@exports_router.post(
    "/exports/{job_id}/cancel",
    status_code=status.HTTP_202_ACCEPTED,
    response_model=ExportJobResponse,
)
async def cancel_export(
    job_id: uuid.UUID,
    user_id: str = Depends(get_current_user_id),
    orchestrator: ExportOrchestrator = Depends(get_orchestrator),
    settings: Settings = Depends(get_settings),
) -> ExportJobResponse:
    """Request cancellation; rollback happens asynchronously."""
    await orchestrator.cancel_export(job_id, user_id)
    job = await orchestrator.get_export_status(job_id)
    return _job_to_response(job, settings)


@exports_router.get(
    "/exports/{job_id}/download",
)
async def download_export(
    job_id: uuid.UUID,
    user_id: str = Depends(get_current_user_id),
    orchestrator: ExportOrchestrator = Depends(get_orchestrator),
) -> FileResponse:
    """Download a completed export package."""
    job = await orchestrator.get_export_status(job_id)

    if job.status != ExportJobStatus.COMPLETED:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Export not yet completed",
        )

    if is_package_expired(job):
        raise HTTPException(
            status_code=status.HTTP_410_GONE,
            detail="Export package has expired",
        )

    if job.user_id != user_id:
        logger.warning(f"Unauthorized download attempt for export job {job.id} by user {user_id}")
        msg = "Only the job creator can download this package"
        raise ExportPermissionError(msg)

    if not job.package_path or not Path(job.package_path).exists():
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Export package not found on disk",
        )

    if job.package_checksum and not await orchestrator.verify_package_integrity(job.id, user_id):
        raise HTTPException(
            status_code=status.HTTP_410_GONE,
            detail="Export package failed integrity verification",
        )

    await orchestrator.record_download(job.id)
    file_path = Path(job.package_path)
    return FileResponse(
        path=file_path,
        media_type="application/gzip",
        filename=file_path.name,
    )

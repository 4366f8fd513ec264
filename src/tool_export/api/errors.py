"""Map export errors to HTTP responses."""

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from tool_export.lib.exporter import ExportValidationError
from tool_export.schemas.common import ErrorResponse
from tool_export.services.errors import (
    ExportJobNotFoundError,
    ExportJobStateError,
    ExportPermissionError,
    ToolNotFoundError,
)

_STATUS_BY_ERROR: list[tuple[type[Exception], int]] = [
    (ToolNotFoundError, status.HTTP_404_NOT_FOUND),
    (ExportJobNotFoundError, status.HTTP_404_NOT_FOUND),
    (ExportPermissionError, status.HTTP_403_FORBIDDEN),
    (ExportJobStateError, status.HTTP_409_CONFLICT),
]


def register_exception_handlers(app: FastAPI) -> None:
    """Install handlers translating service errors into JSON error bodies."""

    async def validation_error_handler(request: Request, exc: Exception) -> JSONResponse:
        errors = exc.errors if isinstance(exc, ExportValidationError) else None
        body = ErrorResponse(detail=str(exc), errors=errors or None)
        return JSONResponse(status_code=422, content=body.model_dump())

    async def service_error_handler(request: Request, exc: Exception) -> JSONResponse:
        code = next((c for error_type, c in _STATUS_BY_ERROR if isinstance(exc, error_type)), 400)
        return JSONResponse(status_code=code, content=ErrorResponse(detail=str(exc)).model_dump())

    app.add_exception_handler(ExportValidationError, validation_error_handler)
    for error_type, _code in _STATUS_BY_ERROR:
        app.add_exception_handler(error_type, service_error_handler)

"""Errors raised by the export services to their callers (API and CLI)."""


class ExportServiceError(Exception):
    """Base class for service-level export errors."""


class ToolNotFoundError(ExportServiceError, LookupError):
    """Raised when the requested tool is not in the registry."""


class ExportJobNotFoundError(ExportServiceError, LookupError):
    """Raised when an export job id does not exist."""


class ExportPermissionError(ExportServiceError, PermissionError):
    """Raised when a user may not export a tool or act on another user's job."""


class ExportJobStateError(ExportServiceError):
    """Raised when an operation is not allowed in the job's current status."""

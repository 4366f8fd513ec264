"""Exception hierarchy for tool export execution."""


class ExportError(Exception):
    """Base class for export failures.

    Args:
        message: Human-readable error description.
        retryable: Whether retrying the failing operation could succeed.
    """

    def __init__(self, message: str, *, retryable: bool = False) -> None:
        self.message = message
        self.retryable = retryable
        super().__init__(message)


class ExportValidationError(ExportError):
    """Raised when an export is rejected before any step has run.

    Args:
        message: Summary of the failed checks.
        errors: Individual error messages, in detection order.
    """

    def __init__(self, message: str, errors: list[str] | None = None) -> None:
        self.errors = errors or []
        super().__init__(message)


class UnsupportedToolTypeError(ExportValidationError):
    """Raised when no strategy can be selected for a tool."""


class ToolDataValidationError(ExportValidationError):
    """Raised by a strategy when a tool's stored configuration is structurally invalid."""


class StepExecutionError(ExportError):
    """Raised by a step whose own work failed.

    Args:
        step_name: Name of the failing step.
        message: Human-readable error description.
        retryable: Whether the failure is transient.
    """

    def __init__(self, step_name: str, message: str, *, retryable: bool = False) -> None:
        self.step_name = step_name
        super().__init__(f"{step_name}: {message}", retryable=retryable)


class StepTimeoutError(ExportError):
    """Raised when one attempt of a step exceeds its deadline."""

    def __init__(self, step_name: str, timeout_seconds: float) -> None:
        self.step_name = step_name
        self.timeout_seconds = timeout_seconds
        super().__init__(f"Step {step_name} timed out after {timeout_seconds:g}s", retryable=True)

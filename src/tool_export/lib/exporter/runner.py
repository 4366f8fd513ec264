"""Step execution with timeout and retry, and best-effort LIFO rollback."""

import asyncio
import shutil
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field

from loguru import logger

from tool_export.lib.exporter.base import ExportContext, ExportStep
from tool_export.lib.exporter.errors import StepTimeoutError

DEFAULT_STEP_TIMEOUT_SECONDS = 300.0
DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BACKOFF_BASE = 2.0


@dataclass
class StepExecutor:
    """Runs a single export step under a per-attempt deadline.

    Non-retryable steps get one attempt. Retryable steps get
    ``max_attempts``; after failed attempt ``n`` the executor waits
    ``backoff_base ** n`` seconds (2s, 4s, ... with the defaults).
    """

    timeout_seconds: float = DEFAULT_STEP_TIMEOUT_SECONDS
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    backoff_base: float = DEFAULT_BACKOFF_BASE
    sleep: Callable[[float], Awaitable[None]] = field(default=asyncio.sleep, repr=False)

    def attempts_for(self, step: ExportStep) -> int:
        """Number of attempts granted to ``step``."""
        return max(1, self.max_attempts) if step.retryable else 1

    def backoff_delay(self, attempt: int) -> float:
        """Seconds to wait after failed attempt ``attempt`` (1-based)."""
        return self.backoff_base**attempt

    async def run(self, step: ExportStep, ctx: ExportContext) -> int:
        """Execute ``step`` until it succeeds or its attempts are exhausted.

        Args:
            step: The step to run.
            ctx: The job's export context.

        Returns:
            The attempt number that succeeded.

        Raises:
            StepTimeoutError: If the final attempt timed out.
            Exception: The final attempt's own error.
        """
        max_attempts = self.attempts_for(step)
        for attempt in range(1, max_attempts + 1):
            try:
                await self._run_with_timeout(step, ctx)
                return attempt
            except Exception as e:
                logger.warning(f"Step {step.name} failed on attempt {attempt}/{max_attempts}: {e}")
                if attempt == max_attempts:
                    raise
                delay = self.backoff_delay(attempt)
                logger.info(f"Retrying step {step.name} in {delay:g}s")
                await self.sleep(delay)

        # range() is never empty, every path above returns or raises
        msg = f"Step {step.name} was not attempted"
        raise RuntimeError(msg)

    async def _run_with_timeout(self, step: ExportStep, ctx: ExportContext) -> None:
        deadline = asyncio.timeout(self.timeout_seconds)
        try:
            async with deadline:
                await step.execute(ctx)
        except TimeoutError as e:
            # A TimeoutError raised by the step itself is its own failure
            if deadline.expired():
                raise StepTimeoutError(step.name, self.timeout_seconds) from e
            raise


async def rollback_steps(completed: Sequence[ExportStep], ctx: ExportContext) -> list[str]:
    """Undo completed steps, last-completed first, then drop the working directory.

    A failing rollback is logged and does not stop the remaining ones.

    Args:
        completed: Steps in the order they completed.
        ctx: The job's export context.

    Returns:
        Names of the steps whose rollback raised.
    """
    failed: list[str] = []
    for step in reversed(completed):
        try:
            logger.info(f"Rolling back step {step.name} for job {ctx.job_id}")
            await step.rollback(ctx)
        except Exception as e:
            logger.error(f"Rollback of step {step.name} failed for job {ctx.job_id}: {e}")
            failed.append(step.name)

    remove_working_dir(ctx)
    return failed


def remove_working_dir(ctx: ExportContext) -> None:
    """Recursively delete the job's working directory; failures are logged."""
    try:
        if ctx.working_dir.exists():
            logger.info(f"Cleaning up working directory {ctx.working_dir}")
            shutil.rmtree(ctx.working_dir)
    except OSError as e:
        logger.error(f"Failed to clean up working directory {ctx.working_dir}: {e}")

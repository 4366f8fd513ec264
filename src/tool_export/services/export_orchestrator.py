"""Export orchestrator: owns the lifecycle of tool export jobs.

``start_export`` validates, creates the job row and hands execution to the
background task runner; callers then poll ``get_export_status``. The
execution routine is the only writer of progress and terminal status.
``cancel_export`` merely requests cancellation, which the execution notices
between steps.
"""

import asyncio
import contextlib
import inspect
import os
import socket
import uuid
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tool_export.core.background import BackgroundTaskRunner, task_runner
from tool_export.core.config import Settings
from tool_export.lib.exporter import (
    CHECKSUM_ALGORITHM,
    ExportContext,
    ExportStep,
    ExportValidationError,
    StepExecutor,
    StrategyRegistry,
    ToolSnapshot,
    checksums_match,
    default_registry,
    file_checksum,
    remove_working_dir,
    rollback_steps,
)
from tool_export.models.export_job import (
    CANCEL_REQUESTED_STATUSES,
    CANCELLABLE_STATUSES,
    ExportJob,
    ExportJobStatus,
    compute_progress,
)
from tool_export.services.errors import (
    ExportJobNotFoundError,
    ExportJobStateError,
    ExportPermissionError,
    ToolNotFoundError,
)
from tool_export.services.export_job_repository import ExportJobRepository
from tool_export.services.permission_service import PermissionHook, can_export
from tool_export.services.preflight_service import PreFlightValidator
from tool_export.services.tool_registry_repository import ToolRegistryRepository

INTERRUPTED_MESSAGE = "Export interrupted by service restart"
ACTIVE_STATUSES = (ExportJobStatus.PENDING, ExportJobStatus.IN_PROGRESS, ExportJobStatus.CANCELLING)


def utc_now() -> datetime:
    return datetime.now(UTC)


def default_worker_id() -> str:
    """Identify this process in job rows: host, pid and a random suffix."""
    return f"{socket.gethostname()}:{os.getpid()}:{uuid.uuid4().hex[:8]}"


def job_event(job_id: uuid.UUID | str, event: str, message: str, *, level: str = "INFO", **extra: Any) -> None:
    """Log a job lifecycle event as a structured record on the JSON sink."""
    logger.bind(json_output=True, job_id=str(job_id), event=event, **extra).opt(depth=1).log(level, message)


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive timestamps (SQLite drops tzinfo on read)."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=UTC)


def is_package_expired(job: ExportJob, now: datetime | None = None) -> bool:
    """Whether a completed job's package passed its retention deadline."""
    expires_at = as_utc(job.package_expires_at)
    return expires_at is not None and expires_at <= (now or utc_now())


class ExportOrchestrator:
    """Coordinates pre-flight, job creation, step execution and rollback."""

    def __init__(
        self,
        *,
        tool_repo: ToolRegistryRepository,
        job_repo: ExportJobRepository,
        preflight: PreFlightValidator,
        registry: StrategyRegistry | None = None,
        executor: StepExecutor | None = None,
        runner: BackgroundTaskRunner | None = None,
        permission_hook: PermissionHook = can_export,
        export_temp_dir: Path = Path("/tmp/exports"),  # noqa: S108
        package_retention_days: int = 30,
        worker_id: str | None = None,
        heartbeat_interval: float = 30.0,
        stale_after: float = 120.0,
    ) -> None:
        self._tool_repo = tool_repo
        self._job_repo = job_repo
        self._preflight = preflight
        self._registry = registry or default_registry()
        self._executor = executor or StepExecutor()
        self._runner = runner or task_runner
        self._permission_hook = permission_hook
        self._export_temp_dir = export_temp_dir
        self._package_retention_days = package_retention_days
        self._worker_id = worker_id or default_worker_id()
        self._heartbeat_interval = heartbeat_interval
        self._stale_after = stale_after

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        session_factory: async_sessionmaker[AsyncSession],
        **overrides: Any,
    ) -> "ExportOrchestrator":
        """Wire the orchestrator and its collaborators from application settings."""
        registry = overrides.pop("registry", None) or default_registry()
        export_temp_dir = Path(settings.export_temp_dir)
        tool_repo = ToolRegistryRepository(session_factory)
        kwargs: dict[str, Any] = {
            "tool_repo": tool_repo,
            "job_repo": ExportJobRepository(session_factory),
            "preflight": PreFlightValidator(
                tool_repo,
                registry,
                export_temp_dir=export_temp_dir,
                min_disk_space_mb=settings.export_min_disk_space_mb,
            ),
            "registry": registry,
            "executor": StepExecutor(
                timeout_seconds=settings.export_step_timeout_seconds,
                max_attempts=settings.export_max_attempts,
                backoff_base=settings.export_retry_backoff_base,
            ),
            "export_temp_dir": export_temp_dir,
            "package_retention_days": settings.export_package_retention_days,
            "heartbeat_interval": settings.export_heartbeat_interval_seconds,
            "stale_after": settings.export_stale_after_seconds,
        }
        kwargs.update(overrides)
        return cls(**kwargs)

    @property
    def preflight(self) -> PreFlightValidator:
        return self._preflight

    @property
    def worker_id(self) -> str:
        return self._worker_id

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def start_export(self, tool_id: str, user_id: str) -> ExportJob:
        """Validate and enqueue an export of ``tool_id``.

        Returns the PENDING job as soon as it exists; execution continues in
        the background.

        Raises:
            ToolNotFoundError: If the tool is not registered.
            ExportValidationError: If pre-flight validation reports errors.
            ExportPermissionError: If the permission hook denies the export.
        """
        logger.info(f"Running pre-flight validation for tool {tool_id} (user {user_id})")
        validation = await self._preflight.validate(tool_id)
        if validation.tool_missing:
            msg = f"Tool {tool_id} not found"
            raise ToolNotFoundError(msg)
        if not validation.success:
            messages = validation.error_messages()
            logger.error(f"Pre-flight validation failed for tool {tool_id}: {messages}")
            msg = f"Export validation failed: {'; '.join(messages)}"
            raise ExportValidationError(msg, messages)
        if validation.warnings:
            logger.warning(f"Pre-flight warnings for tool {tool_id}: {[w.message for w in validation.warnings]}")

        record = await self._tool_repo.find_by_id(tool_id)
        if record is None:
            msg = f"Tool {tool_id} not found"
            raise ToolNotFoundError(msg)

        await self._check_permission(user_id, tool_id)

        job = await self._job_repo.create(
            tool_id=tool_id,
            user_id=user_id,
            status=ExportJobStatus.PENDING,
            steps_total=0,
            current_step="Initializing export...",
        )
        snapshot = ToolSnapshot.from_record(record)
        self._runner.submit_task(self.execute_export(job.id, snapshot, user_id), name=f"export-{job.id}")
        job_event(
            job.id, "queued", f"Export job {job.id} queued for tool {tool_id}", tool_id=tool_id, user_id=user_id
        )
        return job

    async def get_export_status(self, job_id: uuid.UUID | str) -> ExportJob:
        """Return the current job record.

        Raises:
            ExportJobNotFoundError: If the job does not exist.
        """
        job = await self._job_repo.find_by_id(job_id)
        if job is None:
            msg = f"Export job {job_id} not found"
            raise ExportJobNotFoundError(msg)
        return job

    async def cancel_export(self, job_id: uuid.UUID | str, user_id: str) -> None:
        """Request cancellation of a pending or in-progress job.

        Only moves the job to CANCELLING. The execution routine observes the
        request before its next step, rolls back, and records the terminal
        status; this call does not wait for that.

        Raises:
            ExportJobNotFoundError: If the job does not exist.
            ExportPermissionError: If ``user_id`` does not own the job.
            ExportJobStateError: If the job is not pending or in progress.
        """
        job = await self.get_export_status(job_id)
        if job.user_id != user_id:
            msg = "Unauthorized to cancel this export job"
            raise ExportPermissionError(msg)
        if job.status not in CANCELLABLE_STATUSES:
            msg = f"Cannot cancel job with status: {job.status}. Only pending or in-progress jobs can be cancelled."
            raise ExportJobStateError(msg)

        requested = await self._job_repo.transition(
            job.id,
            CANCELLABLE_STATUSES,
            status=ExportJobStatus.CANCELLING,
            current_step="Cancelling export...",
        )
        if not requested:
            # Status moved between the read and the conditional write
            current = await self.get_export_status(job.id)
            msg = f"Cannot cancel job with status: {current.status}. Only pending or in-progress jobs can be cancelled."
            raise ExportJobStateError(msg)
        logger.info(f"Cancellation requested for export job {job.id} by user {user_id}")

    async def list_exports(
        self,
        user_id: str,
        *,
        status_filter: str | None = None,
        page: int = 1,
        page_size: int = 20,
    ) -> tuple[list[ExportJob], int]:
        """List the caller's export jobs, newest first."""
        return await self._job_repo.list_for_user(user_id, status_filter=status_filter, page=page, page_size=page_size)

    async def verify_package_integrity(self, job_id: uuid.UUID | str, user_id: str) -> bool:
        """Recompute a completed package's checksum and compare it to the stored one.

        Returns:
            True if the checksum matches (and ``checksum_verified_at`` was set).

        Raises:
            ExportJobNotFoundError: If the job does not exist.
            ExportJobStateError: If the job has no package or no recorded checksum.
            FileNotFoundError: If the package file is gone.
        """
        job = await self.get_export_status(job_id)
        if not job.package_path or not job.package_checksum:
            msg = f"Export job {job.id} has no checksummed package"
            raise ExportJobStateError(msg)

        actual = await asyncio.to_thread(file_checksum, Path(job.package_path))
        if checksums_match(job.package_checksum, actual):
            await self._job_repo.update(job.id, checksum_verified_at=utc_now())
            logger.info(f"Package integrity verified for export job {job.id}")
            return True

        logger.warning(
            f"SECURITY: package checksum mismatch for export job {job.id} "
            f"(user={user_id}, path={job.package_path}, expected={job.package_checksum}, actual={actual})"
        )
        return False

    async def record_download(self, job_id: uuid.UUID | str) -> ExportJob:
        """Count one download of a job's package."""
        job = await self._job_repo.increment_download_count(job_id)
        logger.info(f"Download recorded for export job {job.id} (count={job.download_count})")
        return job

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def execute_export(self, job_id: uuid.UUID, tool: ToolSnapshot, user_id: str) -> None:
        """Run one job's steps to completion, failure, or cancellation.

        Runs once per job, in the background. Never raises for export
        failures: they are recorded on the job row. While it runs, the job's
        ``heartbeat_at`` is refreshed so other processes can tell it is alive.
        """
        completed: list[ExportStep] = []
        ctx: ExportContext | None = None
        heartbeat: asyncio.Task[None] | None = None

        try:
            started = await self._job_repo.transition(
                job_id,
                [ExportJobStatus.PENDING],
                status=ExportJobStatus.IN_PROGRESS,
                started_at=utc_now(),
                worker_id=self._worker_id,
                heartbeat_at=utc_now(),
                current_step="Selecting export strategy...",
            )
            if not started:
                job = await self._job_repo.find_by_id(job_id)
                if job is not None and job.status in CANCEL_REQUESTED_STATUSES:
                    await self._finish_cancelled(job_id, None)
                else:
                    status = job.status if job is not None else "missing"
                    logger.warning(f"Export job {job_id} is not pending (status={status}); execution skipped")
                return

            heartbeat = asyncio.create_task(self._heartbeat(job_id), name=f"export-heartbeat-{job_id}")
            job_event(
                job_id, "started", f"Export job {job_id} started", tool_id=tool.tool_id, worker_id=self._worker_id
            )
            strategy = self._registry.for_tool(tool)

            await self._job_repo.update(job_id, current_step="Validating tool data...")
            strategy.validate_tool_data(tool)

            steps = strategy.get_steps(tool)
            total = len(steps)
            await self._job_repo.update(
                job_id,
                steps_total=total,
                steps_completed=0,
                progress_percentage=0,
                current_step=f"Preparing {total} export steps...",
            )

            working_dir = self._export_temp_dir / str(job_id)
            working_dir.mkdir(parents=True, exist_ok=True)
            ctx = ExportContext(
                job_id=str(job_id),
                tool_id=tool.tool_id,
                user_id=user_id,
                working_dir=working_dir,
                tool_data=tool,
            )

            for index, step in enumerate(steps):
                if await self._cancel_requested(job_id):
                    logger.info(f"Export job {job_id} cancelled before step {step.name}")
                    await self._finish_cancelled(job_id, ctx, completed)
                    return

                await self._job_repo.update(
                    job_id,
                    current_step=step.description,
                    progress_percentage=compute_progress(index, total),
                    heartbeat_at=utc_now(),
                )

                try:
                    logger.info(f"Export job {job_id}: executing step {index + 1}/{total}: {step.name}")
                    await self._executor.run(step, ctx)
                except Exception as e:
                    job_event(job_id, "failed", f"Export job {job_id}: step {step.name} failed: {e}", level="ERROR")
                    await self._job_repo.update(
                        job_id,
                        status=ExportJobStatus.FAILED,
                        error_message=f"Step {step.name} failed: {e}",
                        current_step=f"Failed at: {step.description}",
                        completed_at=utc_now(),
                    )
                    await self._rollback(job_id, completed, ctx)
                    return

                completed.append(step)
                await self._job_repo.update(
                    job_id,
                    steps_completed=len(completed),
                    progress_percentage=compute_progress(len(completed), total),
                    completed_step_names=[s.name for s in completed],
                    heartbeat_at=utc_now(),
                )

            await self._finish_completed(job_id, ctx, total)
        except Exception as e:
            logger.exception(f"Export job {job_id} failed unexpectedly")
            await self._job_repo.update(
                job_id,
                status=ExportJobStatus.FAILED,
                error_message=str(e),
                current_step="Export failed unexpectedly",
                completed_at=utc_now(),
            )
            job_event(job_id, "failed", f"Export job {job_id} failed: {e}", level="ERROR")
            if ctx is not None:
                await self._rollback(job_id, completed, ctx)
        finally:
            if heartbeat is not None:
                heartbeat.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await heartbeat

    async def _heartbeat(self, job_id: uuid.UUID) -> None:
        """Refresh ``heartbeat_at`` until cancelled or the job leaves an active status."""
        while True:
            await asyncio.sleep(self._heartbeat_interval)
            try:
                alive = await self._job_repo.transition(job_id, ACTIVE_STATUSES, heartbeat_at=utc_now())
            except Exception as e:
                logger.warning(f"Heartbeat write failed for export job {job_id}: {e}")
                continue
            if not alive:
                return

    async def _cancel_requested(self, job_id: uuid.UUID) -> bool:
        job = await self._job_repo.find_by_id(job_id)
        return job is not None and job.status in CANCEL_REQUESTED_STATUSES

    async def _finish_cancelled(
        self,
        job_id: uuid.UUID,
        ctx: ExportContext | None,
        completed: list[ExportStep] | None = None,
    ) -> None:
        if completed and ctx is not None:
            await self._rollback(job_id, completed, ctx)
            return
        if ctx is not None:
            remove_working_dir(ctx)
        await self._job_repo.update(
            job_id,
            status=ExportJobStatus.CANCELLED,
            current_step="Export cancelled by user",
            completed_at=utc_now(),
        )
        job_event(job_id, "cancelled", f"Export job {job_id} cancelled")

    async def _finish_completed(self, job_id: uuid.UUID, ctx: ExportContext, total: int) -> None:
        completed_at = utc_now()
        package_path = ctx.metadata.get("package_path")
        package_checksum: str | None = None

        if package_path:
            await self._job_repo.update(job_id, current_step="Generating package checksum...")
            try:
                package_checksum = await asyncio.to_thread(file_checksum, Path(package_path))
                logger.info(f"Package checksum for export job {job_id}: {package_checksum}")
            except OSError as e:
                logger.error(f"Failed to generate package checksum for export job {job_id}: {e}")

        await self._job_repo.update(
            job_id,
            status=ExportJobStatus.COMPLETED,
            current_step="Export completed successfully",
            steps_completed=total,
            progress_percentage=100,
            package_path=package_path,
            package_size_bytes=ctx.metadata.get("package_size"),
            package_checksum=package_checksum,
            package_algorithm=CHECKSUM_ALGORITHM if package_checksum else None,
            package_expires_at=completed_at + timedelta(days=self._package_retention_days),
            completed_at=completed_at,
        )
        job_event(job_id, "completed", f"Export job {job_id} completed successfully", package_path=package_path)

    async def _rollback(self, job_id: uuid.UUID, completed: list[ExportStep], ctx: ExportContext) -> None:
        """Undo completed steps; with none completed the job keeps its status."""
        if not completed:
            logger.info(f"Export job {job_id}: no steps to roll back")
            remove_working_dir(ctx)
            return

        logger.info(f"Export job {job_id}: rolling back {len(completed)} completed steps")
        await self._job_repo.update(
            job_id,
            status=ExportJobStatus.ROLLED_BACK,
            current_step=f"Rolling back {len(completed)} steps...",
        )
        failed = await rollback_steps(completed, ctx)
        if failed:
            logger.warning(f"Export job {job_id}: rollback failed for steps {failed}")
        await self._job_repo.update(
            job_id,
            status=ExportJobStatus.ROLLED_BACK,
            current_step="Export rolled back successfully",
            completed_at=utc_now(),
        )
        job_event(job_id, "rolled_back", f"Rollback complete for export job {job_id}", failed_rollbacks=failed)

    async def _check_permission(self, user_id: str, tool_id: str) -> None:
        allowed = self._permission_hook(user_id, tool_id)
        if inspect.isawaitable(allowed):
            allowed = await allowed
        if not allowed:
            msg = f"User {user_id or '<anonymous>'} does not have permission to export tool {tool_id}"
            raise ExportPermissionError(msg)
        logger.debug(f"Permission validated for user {user_id} to export tool {tool_id}")

    # ------------------------------------------------------------------
    # Crash recovery
    # ------------------------------------------------------------------

    async def reconcile_orphaned_jobs(self) -> int:
        """Close out jobs abandoned by a process that died mid-export.

        A pending, in-progress or cancelling job counts as orphaned only when
        its heartbeat (or, before the first heartbeat, its creation time) is
        older than ``stale_after`` seconds; jobs still being driven by a live
        worker keep refreshing ``heartbeat_at`` and are left alone. Each
        orphan is claimed with a conditional update, so concurrent
        reconcilers never process the same job twice. The durable step
        ledger (``completed_step_names``) is then replayed in reverse against
        the strategy's step list, which is deterministic for a tool snapshot.

        Returns:
            Number of jobs reconciled by this call.
        """
        stale_before = utc_now() - timedelta(seconds=self._stale_after)
        candidates = await self._job_repo.find_stale(ACTIVE_STATUSES, stale_before)
        reconciled = 0
        for job in candidates:
            if await self._reconcile(job, stale_before):
                reconciled += 1
        if reconciled:
            logger.warning(f"Reconciled {reconciled} orphaned export jobs")
        return reconciled

    async def _reconcile(self, job: ExportJob, stale_before: datetime) -> bool:
        if job.status == ExportJobStatus.CANCELLING:
            fields: dict[str, Any] = {"status": ExportJobStatus.CANCELLED, "current_step": "Export cancelled by user"}
        else:
            fields = {
                "status": ExportJobStatus.FAILED,
                "error_message": INTERRUPTED_MESSAGE,
                "current_step": "Export interrupted",
            }
        claimed = await self._job_repo.claim_stale(
            job.id,
            [job.status],
            stale_before,
            worker_id=self._worker_id,
            completed_at=utc_now(),
            **fields,
        )
        if not claimed:
            logger.info(f"Export job {job.id} changed since it was found stale; leaving it to its worker")
            return False
        job_event(
            job.id,
            "reconciled",
            f"Export job {job.id} orphaned by worker {job.worker_id or '<none>'} marked {fields['status']}",
            level="WARNING",
            previous_worker_id=job.worker_id,
        )

        ledger = list(job.completed_step_names or [])
        record = await self._tool_repo.find_by_id(job.tool_id)
        snapshot = ToolSnapshot.from_record(record) if record is not None else ToolSnapshot(job.tool_id, job.tool_id)
        ctx = ExportContext(
            job_id=str(job.id),
            tool_id=job.tool_id,
            user_id=job.user_id,
            working_dir=self._export_temp_dir / str(job.id),
            tool_data=snapshot,
        )

        completed: list[ExportStep] = []
        if ledger and record is not None:
            try:
                by_name = {step.name: step for step in self._registry.for_tool(snapshot).get_steps(snapshot)}
                completed = [by_name[name] for name in ledger if name in by_name]
            except ExportValidationError as e:
                logger.error(f"Cannot rebuild steps for orphaned export job {job.id}: {e}")

        await self._rollback(job.id, completed, ctx)
        return True

"""Export job persistence.

Every call opens its own short-lived session, so the API request, the
background execution and the cancel endpoint never share ORM state: the
database row is the only thing they have in common.
"""

import uuid
from collections.abc import Iterable
from datetime import UTC, datetime
from typing import Any

from loguru import logger
from sqlalchemy import ColumnElement, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tool_export.models.export_job import ExportJob
from tool_export.services.errors import ExportJobNotFoundError


def _as_uuid(job_id: uuid.UUID | str) -> uuid.UUID | None:
    if isinstance(job_id, uuid.UUID):
        return job_id
    try:
        return uuid.UUID(str(job_id))
    except ValueError:
        return None


def _last_seen() -> ColumnElement[datetime]:
    return func.coalesce(ExportJob.heartbeat_at, ExportJob.created_at)


class ExportJobRepository:
    """Create, read and partially update export job rows."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def create(self, **fields: Any) -> ExportJob:
        """Insert a new job row.

        Args:
            **fields: Column values; ``id`` is generated when omitted.

        Returns:
            The persisted ExportJob.
        """
        job = ExportJob(**fields)
        if job.id is None:
            job.id = uuid.uuid4()
        if job.completed_step_names is None:
            job.completed_step_names = []
        async with self._session_factory() as session:
            session.add(job)
            await session.commit()
            await session.refresh(job)
        logger.debug(f"Created export job {job.id} for tool {job.tool_id}")
        return job

    async def find_by_id(self, job_id: uuid.UUID | str) -> ExportJob | None:
        """Fetch a job by id; malformed ids are treated as missing."""
        key = _as_uuid(job_id)
        if key is None:
            return None
        async with self._session_factory() as session:
            result = await session.execute(select(ExportJob).where(ExportJob.id == key))
            return result.scalar_one_or_none()

    async def update(self, job_id: uuid.UUID | str, **fields: Any) -> None:
        """Write only the given columns of a job.

        Raises:
            ExportJobNotFoundError: If no row matched.
        """
        key = _as_uuid(job_id)
        if key is None or not await self._execute_update(key, None, fields):
            msg = f"Export job {job_id} not found"
            raise ExportJobNotFoundError(msg)

    async def transition(
        self,
        job_id: uuid.UUID | str,
        from_statuses: Iterable[str],
        **fields: Any,
    ) -> bool:
        """Update a job only while its status is one of ``from_statuses``.

        The status check and the write happen in one UPDATE statement, so
        concurrent writers cannot interleave between them.

        Returns:
            True if the row was updated.
        """
        key = _as_uuid(job_id)
        if key is None:
            return False
        return await self._execute_update(key, [str(s) for s in from_statuses], fields)

    async def claim_stale(
        self,
        job_id: uuid.UUID | str,
        from_statuses: Iterable[str],
        stale_before: datetime,
        **fields: Any,
    ) -> bool:
        """Like ``transition``, but only while the job's heartbeat is older than ``stale_before``.

        A worker that heartbeats between the read and this write keeps its job.
        """
        key = _as_uuid(job_id)
        if key is None:
            return False
        return await self._execute_update(key, [str(s) for s in from_statuses], fields, _last_seen() < stale_before)

    async def _execute_update(
        self,
        key: uuid.UUID,
        from_statuses: list[str] | None,
        fields: dict[str, Any],
        *conditions: ColumnElement[bool],
    ) -> bool:
        stmt = update(ExportJob).where(ExportJob.id == key, *conditions)
        if from_statuses is not None:
            stmt = stmt.where(ExportJob.status.in_(from_statuses))
        stmt = stmt.values(**fields).execution_options(synchronize_session=False)
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            await session.commit()
        return result.rowcount > 0

    async def increment_download_count(self, job_id: uuid.UUID | str) -> ExportJob:
        """Atomically bump the download counter and stamp the download time.

        Raises:
            ExportJobNotFoundError: If the job does not exist.
        """
        key = _as_uuid(job_id)
        updated = key is not None and await self._execute_update(
            key,
            None,
            {
                "download_count": func.coalesce(ExportJob.download_count, 0) + 1,
                "last_downloaded_at": datetime.now(UTC),
            },
        )
        job = await self.find_by_id(job_id) if updated else None
        if job is None:
            msg = f"Export job {job_id} not found"
            raise ExportJobNotFoundError(msg)
        return job

    async def find_stale(self, statuses: Iterable[str], stale_before: datetime) -> list[ExportJob]:
        """Return jobs in ``statuses`` not heard from since ``stale_before``, oldest first.

        A job that never heartbeated is judged by its creation time.
        """
        query = (
            select(ExportJob)
            .where(ExportJob.status.in_([str(s) for s in statuses]), _last_seen() < stale_before)
            .order_by(ExportJob.created_at)
        )
        async with self._session_factory() as session:
            result = await session.execute(query)
            return list(result.scalars().all())

    async def list_for_user(
        self,
        user_id: str,
        *,
        status_filter: str | None = None,
        page: int = 1,
        page_size: int = 20,
    ) -> tuple[list[ExportJob], int]:
        """List a user's jobs, newest first.

        Returns:
            Tuple of (jobs, total count).
        """
        query = select(ExportJob).where(ExportJob.user_id == user_id)
        count_query = select(func.count(ExportJob.id)).where(ExportJob.user_id == user_id)
        if status_filter:
            query = query.where(ExportJob.status == status_filter)
            count_query = count_query.where(ExportJob.status == status_filter)

        offset = (page - 1) * page_size
        query = query.order_by(ExportJob.created_at.desc()).offset(offset).limit(page_size)
        async with self._session_factory() as session:
            total = (await session.execute(count_query)).scalar_one()
            result = await session.execute(query)
            jobs = list(result.scalars().all())
        return jobs, total

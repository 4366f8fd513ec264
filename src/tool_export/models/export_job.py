"""ExportJob model: the durable record of one tool export attempt."""

import enum
from datetime import UTC, datetime

from sqlalchemy import BigInteger, DateTime, Index, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from tool_export.models.base import Base, JSONType, UUIDMixin


class ExportJobStatus(enum.StrEnum):
    """Lifecycle states of an export job."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    CANCELLING = "cancelling"
    CANCELLED = "cancelled"
    COMPLETED = "completed"
    FAILED = "failed"
    ROLLED_BACK = "rolled_back"


TERMINAL_STATUSES = frozenset(
    {
        ExportJobStatus.COMPLETED,
        ExportJobStatus.FAILED,
        ExportJobStatus.CANCELLED,
        ExportJobStatus.ROLLED_BACK,
    }
)
CANCELLABLE_STATUSES = frozenset({ExportJobStatus.PENDING, ExportJobStatus.IN_PROGRESS})
CANCEL_REQUESTED_STATUSES = frozenset({ExportJobStatus.CANCELLING, ExportJobStatus.CANCELLED})


def compute_progress(steps_completed: int, steps_total: int) -> int:
    """Return floor(100 * completed / total), or 0 before steps are enumerated."""
    if steps_total <= 0:
        return 0
    return (100 * steps_completed) // steps_total


class ExportJob(Base, UUIDMixin):
    """Tracks one export of a registered tool into a standalone package.

    Written only by the orchestrator's execution routine once created; the
    cancel endpoint may only request cancellation. Rows are never deleted here.
    """

    __tablename__ = "export_jobs"

    tool_id: Mapped[str] = mapped_column(String(255), nullable=False)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=ExportJobStatus.PENDING,
        server_default=ExportJobStatus.PENDING.value,
    )

    # Progress
    steps_total: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    steps_completed: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    progress_percentage: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    current_step: Mapped[str | None] = mapped_column(String(500), nullable=True)
    completed_step_names: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Package
    package_path: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    package_size_bytes: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    package_checksum: Mapped[str | None] = mapped_column(String(64), nullable=True)
    package_algorithm: Mapped[str | None] = mapped_column(String(20), nullable=True)
    package_expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    checksum_verified_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    download_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    last_downloaded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
        server_default=func.now(),
    )
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Execution ownership; reconcile only reclaims jobs whose heartbeat went stale
    worker_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    heartbeat_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("ix_export_jobs_status", "status"),
        Index("ix_export_jobs_user_id", "user_id"),
        Index("ix_export_jobs_tool_id", "tool_id"),
    )

    @property
    def is_terminal(self) -> bool:
        """Whether the job reached a state no execution will leave."""
        return self.status in TERMINAL_STATUSES

    def __repr__(self) -> str:
        return (
            f"<ExportJob(id={self.id}, tool_id={self.tool_id}, status={self.status}, "
            f"progress={self.progress_percentage}%)>"
        )

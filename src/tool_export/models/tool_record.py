"""ToolRecord model: read side of the tool registry."""

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from tool_export.models.base import Base, JSONType, TimestampMixin, UUIDMixin


class ToolRecord(Base, UUIDMixin, TimestampMixin):
    """A registered tool that can be exported.

    The manifest holds a ``config`` object with the optional ``toolType``
    discriminator and the family-specific references (form schema, workflow
    or theme id) that export strategies validate.
    """

    __tablename__ = "tool_registry"

    tool_id: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active", server_default="active")
    manifest: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)

    @property
    def config(self) -> dict:
        """The manifest's ``config`` section, or an empty dict."""
        config = (self.manifest or {}).get("config")
        return config if isinstance(config, dict) else {}

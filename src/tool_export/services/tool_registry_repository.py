"""Read access to the tool registry."""

from loguru import logger
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tool_export.models.tool_record import ToolRecord


class ToolRegistryRepository:
    """Looks up registered tools by their public tool id."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def find_by_id(self, tool_id: str) -> ToolRecord | None:
        """Return the tool registered under ``tool_id``, or None."""
        async with self._session_factory() as session:
            result = await session.execute(select(ToolRecord).where(ToolRecord.tool_id == tool_id))
            return result.scalar_one_or_none()

    async def register(self, *, tool_id: str, name: str, manifest: dict, status: str = "active") -> ToolRecord:
        """Insert or replace a registry entry (used by the CLI and fixtures)."""
        async with self._session_factory() as session:
            result = await session.execute(select(ToolRecord).where(ToolRecord.tool_id == tool_id))
            tool = result.scalar_one_or_none()
            if tool is None:
                tool = ToolRecord(tool_id=tool_id, name=name, manifest=manifest, status=status)
                session.add(tool)
            else:
                tool.name = name
                tool.manifest = manifest
                tool.status = status
            await session.commit()
            await session.refresh(tool)
        logger.info(f"Registered tool {tool_id} ({name})")
        return tool

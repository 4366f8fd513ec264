"""Shared test fixtures for the async database, repositories, registered tools and auth tokens."""

from collections.abc import AsyncGenerator
from pathlib import Path

import pytest
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from tool_export.core.config import Settings
from tool_export.core.security import create_access_token
from tool_export.models.base import Base
from tool_export.services.export_job_repository import ExportJobRepository
from tool_export.services.tool_registry_repository import ToolRegistryRepository

FORM_MANIFEST = {
    "id": "contact-form-builder",
    "name": "Contact Form",
    "config": {
        "toolType": "forms",
        "formSchemaId": "schema-123",
        "formSchema": {
            "title": "Contact us",
            "fields": [
                {"name": "email", "type": "email", "required": True},
                {"name": "message", "type": "textarea"},
            ],
        },
    },
}


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Test application settings."""
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        jwt_secret_key="test-secret-key-not-for-production",
        jwt_algorithm="HS256",
        jwt_access_token_expire_minutes=30,
        export_temp_dir=str(tmp_path / "exports"),
        export_min_disk_space_mb=0,
        _env_file=None,
    )


@pytest.fixture
async def async_engine(settings: Settings) -> AsyncGenerator[AsyncEngine]:
    """Create a file-backed async SQLite engine; each session gets its own connection."""
    engine = create_async_engine(settings.database_url, echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(async_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(async_engine, expire_on_commit=False)


@pytest.fixture
def tool_repo(session_factory: async_sessionmaker[AsyncSession]) -> ToolRegistryRepository:
    return ToolRegistryRepository(session_factory)


@pytest.fixture
def job_repo(session_factory: async_sessionmaker[AsyncSession]) -> ExportJobRepository:
    return ExportJobRepository(session_factory)


@pytest.fixture
async def form_tool(tool_repo: ToolRegistryRepository):
    """A registered, exportable form tool."""
    return await tool_repo.register(
        tool_id=FORM_MANIFEST["id"],
        name=FORM_MANIFEST["name"],
        manifest=FORM_MANIFEST,
    )


@pytest.fixture
def user_token(settings: Settings) -> str:
    """Generate a JWT access token for user-1."""
    return create_access_token(
        subject="user-1",
        secret_key=settings.jwt_secret_key,
        algorithm=settings.jwt_algorithm,
    )

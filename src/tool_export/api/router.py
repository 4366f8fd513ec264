"""Root API router with the versioned prefix."""

from fastapi import APIRouter

from tool_export.core.config import Settings


def create_router(settings: Settings) -> APIRouter:
    """Create the root API router with all sub-routers included.

    Args:
        settings: Application settings.

    Returns:
        Configured API router.
    """
    from tool_export.api.v1.exports import exports_router
    from tool_export.api.v1.health import health_router

    root_router = APIRouter(prefix=settings.api_v1_prefix)
    root_router.include_router(health_router)
    root_router.include_router(exports_router)

    return root_router

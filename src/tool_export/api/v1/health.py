"""Liveness endpoint."""

from fastapi import APIRouter, Request

health_router = APIRouter(tags=["health"])


@health_router.get("/health", status_code=200)
async def health_check(request: Request) -> dict:
    """Report service health and the number of exports currently running."""
    runner = getattr(request.app.state, "task_runner", None)
    active = runner.active_count if runner is not None else 0
    return {"status": "healthy", "active_exports": active}

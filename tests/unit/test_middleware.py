"""Tests for CORS and request logging middleware."""

from fastapi import FastAPI
from fastapi.testclient import TestClient
from loguru import logger

from tool_export.api.middleware import setup_middleware
from tool_export.core.config import Settings


def _create_app(settings: Settings) -> FastAPI:
    app = FastAPI()

    @app.get("/test")
    async def test_endpoint() -> dict:
        return {"ok": True}

    setup_middleware(app, settings)
    return app


class TestRequestLoggingMiddleware:
    """Tests for RequestLoggingMiddleware."""

    def test_logs_method_path_and_status(self, settings: Settings) -> None:
        messages: list[str] = []
        sink_id = logger.add(lambda message: messages.append(str(message)), level="INFO")
        try:
            response = TestClient(_create_app(settings)).get("/test")
        finally:
            logger.remove(sink_id)

        assert response.status_code == 200
        assert any("GET /test -> 200" in m for m in messages)


class TestCors:
    """Tests for setup_cors."""

    def test_allows_configured_origin(self, settings: Settings) -> None:
        settings.cors_origins = "http://localhost:3000"
        client = TestClient(_create_app(settings))
        response = client.get("/test", headers={"Origin": "http://localhost:3000"})
        assert response.headers["access-control-allow-origin"] == "http://localhost:3000"

    def test_no_origins_by_default(self, settings: Settings) -> None:
        client = TestClient(_create_app(settings))
        response = client.get("/test", headers={"Origin": "http://evil.example"})
        assert "access-control-allow-origin" not in response.headers

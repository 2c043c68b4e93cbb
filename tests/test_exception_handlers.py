"""Tests for global exception handlers.

Validates that all exception types are handled consistently with
proper HTTP status codes, error format, and no information leakage.
"""

import asyncio
import json
from unittest.mock import AsyncMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from nucleus_cache.core.errors import (
    AppError,
    CacheAppError,
    StoreUnavailableAppError,
)
from nucleus_cache.core.exception_handlers import setup_exception_handlers, status_code_for


@pytest.fixture
def app_with_handlers() -> FastAPI:
    """Create FastAPI app with exception handlers registered."""
    app = FastAPI()
    setup_exception_handlers(app)
    return app


@pytest.fixture
def client(app_with_handlers: FastAPI) -> TestClient:
    """Create test client with handlers enabled."""
    return TestClient(app_with_handlers, raise_server_exceptions=False)


class TestAppErrorHandler:
    """Test handler for AppError and subclasses."""

    def test_store_unavailable_returns_503(self, client: TestClient, app_with_handlers: FastAPI):
        """Verify StoreUnavailableAppError returns HTTP 503."""
        @app_with_handlers.get("/test-store")
        async def test_endpoint():
            raise StoreUnavailableAppError(
                code="store_not_ready",
                message="Key-value store is unavailable",
                details={"endpoint": "redis://cache:6379/0"},
            )

        response = client.get("/test-store")

        assert response.status_code == 503
        data = response.json()
        assert data["error"]["code"] == "store_not_ready"
        assert data["error"]["details"]["endpoint"] == "redis://cache:6379/0"
        assert "request_id" in data["error"]
        assert "Retry-After" not in response.headers

    def test_retry_after_detail_becomes_header(self, client: TestClient, app_with_handlers: FastAPI):
        """Verify a cool-down hint is surfaced as a Retry-After header."""
        @app_with_handlers.get("/test-cooldown")
        async def test_endpoint():
            raise StoreUnavailableAppError(
                code="store_reconnect_cooldown",
                message="Key-value store is unavailable; reconnect deferred",
                details={"retry_after": 2.4},
            )

        response = client.get("/test-cooldown")

        assert response.status_code == 503
        assert response.headers["Retry-After"] == "3"

    def test_cache_error_returns_500(self, client: TestClient, app_with_handlers: FastAPI):
        """Verify CacheAppError returns HTTP 500."""
        @app_with_handlers.get("/test-cache")
        async def test_endpoint():
            raise CacheAppError(
                code="cache_clear_failed",
                message="Failed to clear the cache",
            )

        response = client.get("/test-cache")

        assert response.status_code == 500
        data = response.json()
        assert data["error"]["code"] == "cache_clear_failed"
        assert "details" not in data["error"]

    def test_base_app_error_returns_400(self, client: TestClient, app_with_handlers: FastAPI):
        """Verify a plain AppError is treated as a client error."""
        @app_with_handlers.get("/test-format")
        async def test_endpoint():
            raise AppError(code="test", message="test")

        response = client.get("/test-format")
        data = response.json()

        assert response.status_code == 400
        # Required fields always present
        assert "error" in data
        assert "code" in data["error"]
        assert "message" in data["error"]
        assert "request_id" in data["error"]

    @pytest.mark.parametrize(
        ("error", "expected"),
        [
            (StoreUnavailableAppError(code="c", message="m"), 503),
            (CacheAppError(code="c", message="m"), 500),
            (AppError(code="c", message="m"), 400),
        ],
    )
    def test_status_code_mapping(self, error: AppError, expected: int):
        assert status_code_for(error) == expected


class TestGeneralExceptionHandler:
    """Test fallback handler for unexpected exceptions."""

    def test_unexpected_exception_returns_500(self, client: TestClient, app_with_handlers: FastAPI):
        @app_with_handlers.get("/test-crash")
        async def test_endpoint():
            raise RuntimeError("redis://:s3cret@cache:6379 exploded")

        response = client.get("/test-crash")

        assert response.status_code == 500
        assert response.json()["error"]["code"] == "internal_server_error"
        assert "s3cret" not in response.text

    def test_general_exception_handler_never_leaks_stack_trace(self):
        """Verify stack traces are never included in response."""
        from nucleus_cache.core.exception_handlers import general_exception_handler

        request = AsyncMock()
        request.url.path = "/test"
        request.method = "GET"

        exc = ValueError("Test error with details")
        response = asyncio.run(general_exception_handler(request, exc))

        response_body = response.body if isinstance(response.body, bytes) else bytes(response.body)
        data = json.loads(response_body.decode())
        response_text = response_body.decode()
        assert response.status_code == 500
        assert "Test error with details" not in data["error"]["message"]
        # No traceback indicators
        assert "Traceback" not in response_text
        assert "File \"" not in response_text
        assert "ValueError" not in response_text


class TestErrorHandlerIntegration:
    """Integration tests for exception handler setup."""

    def test_setup_exception_handlers_registers_handlers(self, app_with_handlers: FastAPI):
        """Verify setup_exception_handlers properly registers handlers."""
        assert AppError in app_with_handlers.exception_handlers
        assert Exception in app_with_handlers.exception_handlers

    def test_app_error_str_is_message(self):
        error = StoreUnavailableAppError(code="store_not_ready", message="store down")

        assert str(error) == "store down"
        assert isinstance(error, AppError)

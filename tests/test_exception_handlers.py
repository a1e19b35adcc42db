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

from gatehouse.core.errors import (
    AppError,
    AuthenticationAppError,
    ConflictAppError,
    LimitExceededAppError,
    PayloadTooLargeAppError,
    PowMalformedAppError,
    PowSignatureAppError,
    StorageAppError,
    ValidationAppError,
)
from gatehouse.core.exception_handlers import general_exception_handler, setup_exception_handlers


@pytest.fixture
def app_with_handlers() -> FastAPI:
    """Create FastAPI app with exception handlers registered."""
    app = FastAPI()
    setup_exception_handlers(app)
    return app


@pytest.fixture
def client(app_with_handlers: FastAPI) -> TestClient:
    """Create test client with handlers enabled."""
    return TestClient(app_with_handlers)


class TestAppErrorHandler:
    """Test handler for AppError and subclasses."""

    @pytest.mark.parametrize(
        ("error_cls", "status_code"),
        [
            (ValidationAppError, 400),
            (PowMalformedAppError, 400),
            (AuthenticationAppError, 401),
            (PowSignatureAppError, 401),
            (ConflictAppError, 409),
            (PayloadTooLargeAppError, 413),
            (LimitExceededAppError, 429),
            (StorageAppError, 500),
        ],
    )
    def test_status_code_follows_error_class(
        self, client: TestClient, app_with_handlers: FastAPI, error_cls, status_code: int
    ):
        @app_with_handlers.get("/raise")
        async def raise_endpoint():
            raise error_cls(code="test_code", message="Test message")

        response = client.get("/raise")

        assert response.status_code == status_code
        data = response.json()
        assert data["status"] == "error"
        assert data["code"] == "test_code"
        assert data["message"] == "Test message"
        assert "request_id" in data

    def test_error_includes_details_when_provided(self, client: TestClient, app_with_handlers: FastAPI):
        @app_with_handlers.get("/details")
        async def details_endpoint():
            raise PayloadTooLargeAppError(
                code="payload_too_large",
                message="request body too large",
                details={"max_bytes": 4096},
            )

        response = client.get("/details")

        assert response.json()["details"] == {"max_bytes": 4096}

    def test_quota_limit_error_carries_limit_without_retry_after(
        self, client: TestClient, app_with_handlers: FastAPI
    ):
        @app_with_handlers.get("/limited")
        async def limited_endpoint():
            raise LimitExceededAppError(
                code="account_limit_reached",
                message="account limit reached for this address",
                details={"limit": 3},
            )

        response = client.get("/limited")

        assert response.status_code == 429
        assert response.json()["details"] == {"limit": 3}
        assert "Retry-After" not in response.headers

    def test_framework_http_errors_use_common_shape(self, client: TestClient):
        response = client.get("/does-not-exist")

        assert response.status_code == 404
        data = response.json()
        assert data["status"] == "error"
        assert data["code"] == "http_404"


class TestGeneralExceptionHandler:
    """Test fallback handler for unexpected exceptions."""

    def test_unexpected_exception_handler_registered(self, app_with_handlers: FastAPI):
        """Verify fallback exception handler is registered."""
        assert Exception in app_with_handlers.exception_handlers

    def test_general_exception_handler_logic(self):
        """Verify general_exception_handler returns correct structure."""
        request = AsyncMock()
        request.url.path = "/test"
        request.method = "GET"

        exc = RuntimeError("Unexpected error: database connection failed")
        response = asyncio.run(general_exception_handler(request, exc))

        data = json.loads(bytes(response.body).decode())
        assert response.status_code == 500
        assert data["code"] == "internal_server_error"
        # Original error message should NOT be in response
        assert "database connection" not in data["message"]
        assert "request_id" in data

    def test_general_exception_handler_never_leaks_stack_trace(self):
        """Verify stack traces are never included in response."""
        request = AsyncMock()
        request.url.path = "/test"
        request.method = "GET"

        exc = ValueError("Test error with details")
        response = asyncio.run(general_exception_handler(request, exc))

        response_text = bytes(response.body).decode()
        assert "Traceback" not in response_text
        assert "File \"" not in response_text
        assert "ValueError" not in response_text


class TestErrorHandlerIntegration:
    """Integration tests for exception handler setup."""

    def test_setup_exception_handlers_registers_handlers(self, app_with_handlers: FastAPI):
        assert AppError in app_with_handlers.exception_handlers
        assert Exception in app_with_handlers.exception_handlers

    def test_multiple_handler_setups_does_not_fail(self):
        app = FastAPI()

        setup_exception_handlers(app)
        setup_exception_handlers(app)

        assert AppError in app.exception_handlers

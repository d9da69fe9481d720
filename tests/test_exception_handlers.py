"""Tests for global exception handlers.

Validates that application errors map to consistent JSON bodies and status
codes, and that unexpected errors never leak details.
"""

import asyncio
import json
from unittest.mock import AsyncMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from sliding_limiter.core.errors import AppError, ConfigurationAppError, StoreUnavailableAppError
from sliding_limiter.core.exception_handlers import general_exception_handler, setup_exception_handlers


@pytest.fixture
def app_with_handlers() -> FastAPI:
    """Create FastAPI app with exception handlers registered."""
    app = FastAPI()
    setup_exception_handlers(app)
    return app


@pytest.fixture
def client(app_with_handlers: FastAPI) -> TestClient:
    return TestClient(app_with_handlers, raise_server_exceptions=False)


def _decode(response) -> dict:
    body = response.body if isinstance(response.body, bytes) else bytes(response.body)
    return json.loads(body.decode())


class TestAppErrorHandler:
    def test_store_unavailable_returns_503(self, client: TestClient, app_with_handlers: FastAPI):
        @app_with_handlers.get("/store-down")
        async def endpoint():
            raise StoreUnavailableAppError(
                code="store_unavailable",
                message="Rate limit store is unavailable",
                details={"backend": "redis", "operation": "count"},
            )

        response = client.get("/store-down")

        assert response.status_code == 503
        assert response.headers["Retry-After"] == "1"
        data = response.json()
        assert data["error"]["code"] == "store_unavailable"
        assert data["error"]["details"] == {"backend": "redis", "operation": "count"}
        assert "request_id" in data["error"]

    def test_configuration_error_returns_500(self, client: TestClient, app_with_handlers: FastAPI):
        @app_with_handlers.get("/misconfigured")
        async def endpoint():
            raise ConfigurationAppError(code="invalid_max_requests", message="max_requests must be > 0")

        response = client.get("/misconfigured")

        assert response.status_code == 500
        assert response.json()["error"]["code"] == "invalid_max_requests"

    def test_generic_app_error_returns_400_without_details(self, client: TestClient, app_with_handlers: FastAPI):
        @app_with_handlers.get("/bad")
        async def endpoint():
            raise AppError(code="bad_request", message="Bad request")

        response = client.get("/bad")

        assert response.status_code == 400
        assert "details" not in response.json()["error"]

    def test_str_of_error_is_its_message(self) -> None:
        assert str(StoreUnavailableAppError(code="c", message="store down")) == "store down"


class TestGeneralExceptionHandler:
    def test_never_leaks_exception_details(self):
        request = AsyncMock()
        request.url.path = "/v1/ping"
        request.method = "GET"

        exc = RuntimeError("connection to 10.0.0.3:6379 refused")
        response = asyncio.run(general_exception_handler(request, exc))

        data = _decode(response)
        assert response.status_code == 500
        assert data["error"]["code"] == "internal_server_error"
        assert "10.0.0.3" not in json.dumps(data)
        assert "RuntimeError" not in json.dumps(data)

    def test_unexpected_route_error_returns_500(self, client: TestClient, app_with_handlers: FastAPI):
        @app_with_handlers.get("/boom")
        async def endpoint():
            raise ValueError("boom")

        response = client.get("/boom")

        assert response.status_code == 500
        assert response.json()["error"]["code"] == "internal_server_error"

    def test_handlers_registered(self, app_with_handlers: FastAPI):
        assert AppError in app_with_handlers.exception_handlers
        assert Exception in app_with_handlers.exception_handlers

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

from ratelimiter.core.errors import AppError, ConfigurationAppError, CounterStoreError
from ratelimiter.core.exception_handlers import general_exception_handler, setup_exception_handlers


@pytest.fixture
def app_with_handlers() -> FastAPI:
    app = FastAPI()
    setup_exception_handlers(app)
    return app


@pytest.fixture
def client(app_with_handlers: FastAPI) -> TestClient:
    return TestClient(app_with_handlers)


class TestAppErrorHandler:
    def test_store_error_returns_503(self, client: TestClient, app_with_handlers: FastAPI):
        @app_with_handlers.get("/test-store")
        async def test_endpoint():
            raise CounterStoreError(code="store_unavailable", message="Redis counter store increment failed")

        response = client.get("/test-store")

        assert response.status_code == 503
        data = response.json()
        assert data["error"]["code"] == "store_unavailable"
        assert "request_id" in data["error"]

    def test_configuration_error_returns_500(self, client: TestClient, app_with_handlers: FastAPI):
        @app_with_handlers.get("/test-config")
        async def test_endpoint():
            raise ConfigurationAppError(
                code="invalid_points",
                message="points must be an integer >= 1",
                details={"field": "points", "actual_value": 0},
            )

        response = client.get("/test-config")

        assert response.status_code == 500
        data = response.json()
        assert data["error"]["details"]["field"] == "points"

    def test_generic_app_error_returns_400(self, client: TestClient, app_with_handlers: FastAPI):
        @app_with_handlers.get("/test-generic")
        async def test_endpoint():
            raise AppError(code="bad_input", message="bad input")

        response = client.get("/test-generic")

        assert response.status_code == 400
        assert "details" not in response.json()["error"]


class TestGeneralExceptionHandler:
    def test_general_exception_handler_never_leaks_details(self):
        request = AsyncMock()
        request.url.path = "/test"
        request.method = "GET"

        exc = RuntimeError("Unexpected error: redis password rejected")
        response = asyncio.run(general_exception_handler(request, exc))

        data = json.loads(bytes(response.body).decode())
        assert response.status_code == 500
        assert data["error"]["code"] == "internal_server_error"
        assert "redis" not in data["error"]["message"]
        assert "RuntimeError" not in bytes(response.body).decode()


def test_setup_exception_handlers_registers_handlers(app_with_handlers: FastAPI):
    assert AppError in app_with_handlers.exception_handlers
    assert Exception in app_with_handlers.exception_handlers

"""Tests for global exception handlers.

Validates that errors raised by routes behind the limiter are rendered
consistently and never leak internals.
"""

import asyncio
import json
from unittest.mock import AsyncMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from ratewall.core.errors import AppError, ConfigurationError, StoreError
from ratewall.core.exception_handlers import general_exception_handler, setup_exception_handlers


@pytest.fixture
def app_with_handlers() -> FastAPI:
    app = FastAPI()
    setup_exception_handlers(app)
    return app


@pytest.fixture
def client(app_with_handlers: FastAPI) -> TestClient:
    return TestClient(app_with_handlers, raise_server_exceptions=False)


class TestAppErrorHandler:
    def test_store_error_returns_503(self, client: TestClient, app_with_handlers: FastAPI):
        @app_with_handlers.get("/store")
        async def endpoint():
            raise StoreError.wrap("count_from", "IP_1.2.3.4", ConnectionError("refused"))

        response = client.get("/store")

        assert response.status_code == 503
        data = response.json()
        assert data["error"]["code"] == "store_unavailable"
        assert "IP_1.2.3.4" not in response.text
        assert "request_id" in data["error"]

    def test_other_app_errors_return_500_with_details(self, client: TestClient, app_with_handlers: FastAPI):
        @app_with_handlers.get("/config")
        async def endpoint():
            raise ConfigurationError(
                code="missing_rate_limit_setting",
                message="MAX_REQUESTS_IP or MAX_REQUESTS must be set and must be an integer",
                details={"variable": "MAX_REQUESTS_IP"},
            )

        response = client.get("/config")

        assert response.status_code == 500
        data = response.json()
        assert data["error"]["code"] == "missing_rate_limit_setting"
        assert data["error"]["details"] == {"variable": "MAX_REQUESTS_IP"}


class TestGeneralExceptionHandler:
    def test_unexpected_exception_returns_generic_500(self, client: TestClient, app_with_handlers: FastAPI):
        @app_with_handlers.get("/boom")
        async def endpoint():
            raise RuntimeError("database connection failed")

        response = client.get("/boom")

        assert response.status_code == 500
        assert response.json()["error"]["code"] == "internal_server_error"
        assert "database connection" not in response.text

    def test_general_exception_handler_never_leaks_stack_trace(self):
        request = AsyncMock()
        request.url.path = "/test"
        request.method = "GET"

        response = asyncio.run(general_exception_handler(request, ValueError("Test error with details")))

        response_text = bytes(response.body).decode()
        data = json.loads(response_text)
        assert response.status_code == 500
        assert "Traceback" not in response_text
        assert "ValueError" not in response_text
        assert "request_id" in data["error"]


def test_setup_is_idempotent():
    app = FastAPI()

    setup_exception_handlers(app)
    setup_exception_handlers(app)

    assert AppError in app.exception_handlers
    assert Exception in app.exception_handlers


def test_store_error_keeps_operation_and_cause():
    cause = TimeoutError("slow")
    error = StoreError.wrap("add", "TOKEN_abc", cause)

    assert error.operation == "add"
    assert error.key == "TOKEN_abc"
    assert "slow" in str(error)
    assert "TOKEN_abc" not in str(error)

"""Tests for global exception handlers.

Validates that route faults share the pipeline's error format and that
stack traces only appear with verbose diagnostics.
"""

import pytest
from fastapi import FastAPI, HTTPException
from fastapi.testclient import TestClient

from crudgate.core.errors import (
    AdmissionRejectedError,
    AppError,
    NotFoundAppError,
    UnauthenticatedError,
    ValidationAppError,
    status_for,
)
from crudgate.core.exception_handlers import build_error_body, setup_exception_handlers


def _app(verbose: bool = False) -> FastAPI:
    app = FastAPI()
    setup_exception_handlers(app, verbose=verbose)

    @app.get("/not-found")
    async def not_found():
        raise NotFoundAppError(code="post_not_found", message="Post not found")

    @app.get("/invalid")
    async def invalid():
        raise ValidationAppError(
            code="validation_failed",
            message="Validation failed",
            details={"errors": {"title": "title is required"}},
        )

    @app.get("/http")
    async def http_error():
        raise HTTPException(status_code=418, detail="I'm a teapot")

    @app.get("/typed")
    async def typed(count: int):
        return {"count": count}

    @app.get("/boom")
    async def boom():
        raise RuntimeError("database connection failed")

    return app


@pytest.fixture
def client() -> TestClient:
    return TestClient(_app(), raise_server_exceptions=False)


class TestAppErrorHandler:
    def test_not_found_maps_to_404(self, client: TestClient) -> None:
        response = client.get("/not-found")

        assert response.status_code == 404
        assert response.json() == {"error": {"message": "Post not found", "status": 404}}

    def test_field_errors_render_as_error_map(self, client: TestClient) -> None:
        response = client.get("/invalid")

        assert response.status_code == 400
        assert response.json() == {"errors": {"title": "title is required"}}


class TestFrameworkErrors:
    def test_http_exception_uses_error_format(self, client: TestClient) -> None:
        response = client.get("/http")

        assert response.status_code == 418
        assert response.json() == {"error": {"message": "I'm a teapot", "status": 418}}

    def test_unknown_route_is_404(self, client: TestClient) -> None:
        response = client.get("/missing")

        assert response.status_code == 404
        assert response.json()["error"]["status"] == 404

    def test_request_validation_maps_to_400(self, client: TestClient) -> None:
        response = client.get("/typed", params={"count": "many"})

        assert response.status_code == 400
        assert "count" in response.json()["errors"]


class TestGeneralExceptionHandler:
    def test_unexpected_exception_returns_500_without_stack(self, client: TestClient) -> None:
        response = client.get("/boom")

        assert response.status_code == 500
        error = response.json()["error"]
        assert error["status"] == 500
        assert "stack" not in error
        assert "Traceback" not in response.text

    def test_verbose_mode_includes_stack(self) -> None:
        client = TestClient(_app(verbose=True), raise_server_exceptions=False)

        response = client.get("/boom")

        assert response.status_code == 500
        assert "RuntimeError" in response.json()["error"]["stack"]

    def test_handlers_are_registered(self) -> None:
        app = _app()

        assert AppError in app.exception_handlers
        assert Exception in app.exception_handlers


class TestBuildErrorBody:
    def test_empty_message_falls_back_to_generic(self) -> None:
        body = build_error_body(RuntimeError(), 500)

        assert body == {"error": {"message": "Internal server error", "status": 500}}

    def test_verbose_includes_details(self) -> None:
        exc = UnauthenticatedError(code="x", message="nope", details={"hint": "set a key"})

        body = build_error_body(exc, 401, verbose=True)

        assert body["error"]["details"] == {"hint": "set a key"}
        assert "stack" in body["error"]


class TestStatusFor:
    def test_reads_status_attribute(self) -> None:
        assert status_for(NotFoundAppError(code="x", message="y")) == 404

    def test_admission_rejection_is_429(self) -> None:
        assert status_for(AdmissionRejectedError(code="rate_limited", message="Too many requests")) == 429

    def test_reads_status_code_attribute(self) -> None:
        assert status_for(HTTPException(status_code=409)) == 409

    @pytest.mark.parametrize("value", [200, 99, 600, True, "404", None])
    def test_ignores_invalid_status(self, value) -> None:
        exc = RuntimeError("x")
        exc.status = value

        assert status_for(exc) == 500

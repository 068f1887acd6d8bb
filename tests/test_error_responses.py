"""Tests for structured error responses with request_id."""
from __future__ import annotations

import pytest
from fastapi import FastAPI, HTTPException
from fastapi.testclient import TestClient

from app.errors import register_error_handlers
from app.observability import ObservabilityMiddleware
from app.services.billing.errors import (
    IdentityUnresolved,
    NotAuthenticated,
    StorageWriteFailed,
)


@pytest.fixture
def app_with_errors() -> FastAPI:
    app = FastAPI()
    app.add_middleware(ObservabilityMiddleware)
    register_error_handlers(app)

    @app.get("/ok")
    def ok():
        return {"ok": True}

    @app.get("/http-error")
    def http_error():
        raise HTTPException(status_code=403, detail="Forbidden")

    @app.get("/unresolved")
    def unresolved():
        raise IdentityUnresolved("No user", details={"customer_id": "cus_9"})

    @app.get("/unauthenticated")
    def unauthenticated():
        raise NotAuthenticated("Missing bearer token")

    @app.get("/storage")
    def storage():
        raise StorageWriteFailed("Entitlement write failed")

    @app.get("/crash")
    def crash():
        raise RuntimeError("boom")

    return app


@pytest.fixture
def client(app_with_errors: FastAPI) -> TestClient:
    return TestClient(app_with_errors, raise_server_exceptions=False)


class TestErrorResponses:
    def test_http_error_includes_request_id(self, client: TestClient) -> None:
        resp = client.get("/http-error")
        assert resp.status_code == 403
        body = resp.json()
        assert "request_id" in body
        assert body["code"] == "http_403"
        assert body["message"] == "Forbidden"

    def test_billing_client_error_maps_to_400(self, client: TestClient) -> None:
        resp = client.get("/unresolved")
        assert resp.status_code == 400
        body = resp.json()
        assert body["code"] == "identity_unresolved"
        assert body["details"] == {"customer_id": "cus_9"}

    def test_not_authenticated_maps_to_401(self, client: TestClient) -> None:
        resp = client.get("/unauthenticated")
        assert resp.status_code == 401
        assert resp.json()["code"] == "not_authenticated"

    def test_storage_failure_maps_to_500(self, client: TestClient) -> None:
        resp = client.get("/storage")
        assert resp.status_code == 500
        assert resp.json()["code"] == "storage_write_failed"

    def test_unhandled_exception_includes_request_id(self, client: TestClient) -> None:
        resp = client.get("/crash")
        assert resp.status_code == 500
        body = resp.json()
        assert body["code"] == "internal_error"
        assert "request_id" in body
        assert body["details"] is None

    def test_request_id_propagated_from_header(self, client: TestClient) -> None:
        custom_id = "test-request-id-12345"
        resp = client.get("/unresolved", headers={"X-Request-Id": custom_id})
        assert resp.json()["request_id"] == custom_id

    def test_success_response_has_request_id_header(self, client: TestClient) -> None:
        resp = client.get("/ok")
        assert resp.status_code == 200
        assert "x-request-id" in resp.headers

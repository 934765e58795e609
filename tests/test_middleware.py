"""Tests for HTTP middleware and error mapping."""

import pytest
from fastapi import FastAPI, Request
from fastapi.testclient import TestClient

from swcache.domain.exceptions import (
    ControllerStateError,
    NetworkError,
    NetworkTimeoutError,
    StoreWriteError,
)
from swcache.domain.models import ErrorType
from swcache.interfaces.http.errors import get_error_details_from_exc
from swcache.interfaces.http.middleware import logging_middleware
from swcache.interfaces.http.routes.proxy import request_mode
from swcache.enums import RequestMode


@pytest.fixture
def app() -> FastAPI:
    app = FastAPI()
    app.middleware("http")(logging_middleware)

    @app.get("/test")
    async def endpoint(request: Request):
        return {"request_id": request.state.request_id}

    return app


class TestLoggingMiddleware:
    def test_generates_request_id(self, app):
        response = TestClient(app).get("/test")

        assert response.status_code == 200
        assert response.headers["X-Request-ID"] == response.json()["request_id"]
        assert float(response.headers["X-Response-Time-ms"]) >= 0

    def test_reuses_client_request_id(self, app):
        response = TestClient(app).get("/test", headers={"X-Request-ID": "abc-123"})
        assert response.headers["X-Request-ID"] == "abc-123"


class TestErrorMapping:
    @pytest.mark.parametrize(
        "exc,status,error_type",
        [
            (NetworkTimeoutError("slow"), 504, ErrorType.GATEWAY_TIMEOUT),
            (NetworkError("offline"), 502, ErrorType.NETWORK),
            (ControllerStateError("starting"), 503, ErrorType.NOT_READY),
            (StoreWriteError("disk full"), 500, ErrorType.API_ERROR),
            (RuntimeError("boom"), 500, ErrorType.API_ERROR),
        ],
    )
    def test_status_codes(self, exc, status, error_type):
        err_type, message, err_status = get_error_details_from_exc(exc)
        assert err_status == status
        assert err_type == error_type
        assert message

    def test_internal_details_are_not_exposed(self):
        _, message, _ = get_error_details_from_exc(RuntimeError("secret path"))
        assert "secret" not in message


class TestRequestMode:
    def _mode(self, method="GET", headers=None) -> RequestMode:
        app = FastAPI()
        captured = {}

        @app.api_route("/x", methods=["GET", "POST"])
        async def endpoint(request: Request):
            captured["mode"] = request_mode(request)
            return {}

        TestClient(app).request(method, "/x", headers=headers or {})
        return captured["mode"]

    def test_sec_fetch_mode_header(self):
        assert self._mode(headers={"Sec-Fetch-Mode": "no-cors"}) == RequestMode.NoCors

    def test_html_accept_is_navigation(self):
        assert self._mode(headers={"Accept": "text/html"}) == RequestMode.Navigate

    def test_post_with_html_accept_is_not_navigation(self):
        assert self._mode("POST", headers={"Accept": "text/html"}) == RequestMode.Cors

    def test_default_is_cors(self):
        assert self._mode() == RequestMode.Cors

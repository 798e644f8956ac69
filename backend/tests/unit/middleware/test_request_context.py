"""
Request Context Middleware Tests.

WHAT: Unit tests for the RequestContextMiddleware.

WHY: Log lines from pricing, numbering and finder-fee code are correlated
through the request ID. These tests ensure:
- A caller-supplied X-Request-ID is kept, otherwise one is generated
- The ID is echoed in the response
- The context is available during the request and cleared afterwards
- The log filter stamps records inside and outside requests

HOW: A small FastAPI app with the middleware and TestClient.
"""

import logging
import uuid

import pytest
from fastapi import FastAPI, Request
from fastapi.testclient import TestClient

from app.middleware.request_context import (
    REQUEST_ID_HEADER,
    RequestContext,
    RequestContextMiddleware,
    RequestIdLogFilter,
    _request_context,
    get_request_context,
)


@pytest.fixture
def client():
    app = FastAPI()
    app.add_middleware(RequestContextMiddleware)

    @app.get("/context")
    async def context(request: Request):
        ctx = get_request_context()
        return {
            "request_id": ctx.request_id,
            "path": ctx.path,
            "method": ctx.method,
            "same_as_state": request.state.context is ctx,
        }

    return TestClient(app)


class TestRequestContextMiddleware:
    def test_generates_request_id(self, client):
        response = client.get("/context")

        request_id = response.headers[REQUEST_ID_HEADER]
        assert uuid.UUID(request_id).version == 4
        assert response.json()["request_id"] == request_id

    def test_keeps_caller_request_id(self, client):
        response = client.get("/context", headers={REQUEST_ID_HEADER: "abc-123"})

        assert response.headers[REQUEST_ID_HEADER] == "abc-123"
        assert response.json()["request_id"] == "abc-123"

    def test_context_fields(self, client):
        data = client.get("/context").json()

        assert data["path"] == "/context"
        assert data["method"] == "GET"
        assert data["same_as_state"] is True

    def test_context_cleared_after_request(self, client):
        client.get("/context")
        assert get_request_context() is None

    def test_unknown_route_still_gets_header(self, client):
        response = client.get("/missing")

        assert response.status_code == 404
        assert REQUEST_ID_HEADER in response.headers


class TestRequestIdLogFilter:
    def _record(self) -> logging.LogRecord:
        return logging.LogRecord("test", logging.INFO, __file__, 1, "message", None, None)

    def test_outside_request(self):
        record = self._record()
        assert RequestIdLogFilter().filter(record) is True
        assert record.request_id == "-"

    def test_inside_request(self):
        token = _request_context.set(
            RequestContext(request_id="req-1", path="/api/proposals", method="POST")
        )
        try:
            record = self._record()
            RequestIdLogFilter().filter(record)
        finally:
            _request_context.reset(token)

        assert record.request_id == "req-1"

from __future__ import annotations

import json

import pytest
from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.testclient import TestClient
from pydantic import BaseModel

from pattern_signals.utils.errors import (
    ApiError,
    BadRequest,
    NotFound,
    Unauthorized,
    UnprocessableEntity,
    UpstreamError,
    api_error_handler,
    http_exception_handler,
    request_validation_exception_handler,
    unexpected_exception_handler,
)


@pytest.mark.parametrize(
    ("error_cls", "status", "code"),
    [
        (BadRequest, 400, "bad_request"),
        (Unauthorized, 401, "unauthorized"),
        (NotFound, 404, "not_found"),
        (UnprocessableEntity, 422, "unprocessable_entity"),
        (UpstreamError, 502, "upstream_error"),
    ],
)
def test_error_classes_carry_status_and_code(error_cls, status, code):
    error = error_cls("boom", details={"field": "x"})
    payload = error.to_payload()
    assert error.status_code == status
    assert payload["error"] == {"code": code, "message": "boom"}
    assert payload["details"] == {"field": "x"}
    assert "trace_id" in payload


def test_code_override_and_default_details():
    error = ApiError("nope", code="custom")
    assert error.code == "custom"
    assert error.details == {}


class _Body(BaseModel):
    value: int


def _app() -> FastAPI:
    app = FastAPI()
    app.add_exception_handler(Exception, unexpected_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(ApiError, api_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_exception_handler)

    @app.get("/bad")
    def bad() -> None:
        raise BadRequest("invalid input", details={"field": "symbol"})

    @app.get("/http")
    def http() -> None:
        raise HTTPException(status_code=404, detail="missing")

    @app.get("/crash")
    def crash() -> None:
        raise RuntimeError("kaboom")

    @app.post("/body")
    def body(payload: _Body) -> dict:
        return {"value": payload.value}

    return app


def test_handlers_render_uniform_payloads():
    client = TestClient(_app(), raise_server_exceptions=False)

    response = client.get("/bad")
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "bad_request"
    assert response.json()["details"] == {"field": "symbol"}

    response = client.get("/http")
    assert response.status_code == 404
    assert response.json()["error"] == {"code": "http_error", "message": "missing"}

    response = client.get("/crash")
    assert response.status_code == 500
    assert response.json()["error"]["code"] == "internal_error"

    response = client.post("/body", json={"value": "not-a-number"})
    assert response.status_code == 422
    body = response.json()
    assert body["error"]["code"] == "validation_error"
    assert isinstance(body["details"], list) and body["details"]
    json.dumps(body)

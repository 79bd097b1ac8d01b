"""Tests for error mapping and formatting."""

from __future__ import annotations

import json
from datetime import datetime

import pytest

from swagger_adapter.errors import (
    ErrorCode,
    ToolMetadataInvalid,
    ToolNotFound,
    UpstreamHttpError,
    UpstreamNetworkError,
    ValidationFailed,
    error_envelope,
    format_api_error,
    format_error,
    format_validation_errors,
    generate_request_id,
    http_error_body,
    map_http_to_code,
    rpc_error,
)


class TestMapHttpToCode:
    @pytest.mark.parametrize(
        ("status", "code"),
        [
            (400, ErrorCode.INVALID_PARAMS),
            (401, ErrorCode.INVALID_REQUEST),
            (403, ErrorCode.INVALID_REQUEST),
            (404, ErrorCode.INVALID_REQUEST),
            (408, ErrorCode.REQUEST_TIMEOUT),
            (429, ErrorCode.INVALID_REQUEST),
            (500, ErrorCode.INTERNAL_ERROR),
            (502, ErrorCode.INTERNAL_ERROR),
            (503, ErrorCode.INTERNAL_ERROR),
            (504, ErrorCode.REQUEST_TIMEOUT),
            (418, ErrorCode.INTERNAL_ERROR),
        ],
    )
    def test_mapping(self, status, code):
        assert map_http_to_code(status) is code


class TestErrorKinds:
    def test_upstream_http_error_carries_status(self):
        exc = UpstreamHttpError(404, "Not Found")
        assert exc.status == 404
        assert exc.code is ErrorCode.INVALID_REQUEST
        assert str(exc) == "API responded with 404: Not Found"

    def test_lookup_errors_are_distinguishable(self):
        assert "not found" in ToolNotFound("x").message
        assert "Invalid tool metadata" in ToolMetadataInvalid("x").message
        assert ToolNotFound("x").code != ToolMetadataInvalid("x").code

class TestFormatting:
    def test_request_id_is_opaque_hex(self):
        first, second = generate_request_id(), generate_request_id()
        assert first != second
        assert len(first) == 16
        int(first, 16)

    def test_format_api_error_uses_upstream_message(self):
        exc = UpstreamHttpError(400, "Bad Request", data={"message": "page must be positive"})
        formatted = format_api_error(exc)
        assert formatted["code"] == ErrorCode.INVALID_PARAMS
        assert formatted["message"] == "page must be positive"
        assert formatted["details"] == {"message": "page must be positive"}
        datetime.fromisoformat(formatted["timestamp"])

    def test_format_validation_errors(self):
        formatted = format_validation_errors(
            [{"path": "/id", "message": "bad", "keyword": "type", "params": {"expected": "string"}}]
        )
        assert formatted["code"] == ErrorCode.INVALID_PARAMS
        assert formatted["message"] == "Validation failed"
        assert formatted["details"]["errors"] == [
            {"path": "/id", "message": "bad", "keyword": "type", "params": {"expected": "string"}}
        ]
        assert formatted["requestId"]

    def test_format_error_for_validation_failure(self):
        exc = ValidationFailed("Validation failed", [{"path": "/a", "message": "m", "keyword": "k"}])
        formatted = format_error(exc)
        assert formatted["details"]["errors"][0]["params"] == {}

    def test_format_error_for_unexpected_exception(self):
        formatted = format_error(RuntimeError("kaput"))
        assert formatted["code"] == ErrorCode.INTERNAL_ERROR
        assert formatted["message"] == "kaput"

    def test_error_envelope(self):
        envelope = error_envelope(ToolNotFound("missing"))
        assert envelope["isError"] is True
        payload = json.loads(envelope["content"][0]["text"])
        assert payload["code"] == ErrorCode.METHOD_NOT_FOUND
        assert payload["message"] == "Tool not found: missing"

    def test_rpc_error_keeps_id(self):
        assert rpc_error(ErrorCode.INVALID_REQUEST, "Invalid Request", 7) == {
            "jsonrpc": "2.0",
            "error": {"code": -32600, "message": "Invalid Request"},
            "id": 7,
        }
        assert rpc_error(-32600, "Invalid Request")["id"] is None


class TestHttpErrorBody:
    def test_status_preserved(self):
        status, body = http_error_body(UpstreamHttpError(404, "Not Found"))
        assert status == 404
        assert body["status"] == 404
        assert body["message"] == "API responded with 404: Not Found"
        assert body["requestId"] and body["timestamp"]

    def test_defaults_to_500(self):
        status, body = http_error_body(UpstreamNetworkError("connection refused"))
        assert status == 500
        assert body["message"] == "connection refused"

    def test_unexpected_exception(self):
        status, body = http_error_body(TypeError("unsupported operand"))
        assert status == 500
        assert body["message"] == "unsupported operand"
        assert body["requestId"] and body["timestamp"]

"""Error kinds and their normalised response shapes."""

from __future__ import annotations

import json
import logging
import secrets
from datetime import datetime, timezone
from enum import IntEnum
from typing import Any, Dict, Iterable, List, Optional, Tuple


logger = logging.getLogger(__name__)


class ErrorCode(IntEnum):
    PARSE_ERROR = -32700
    INVALID_REQUEST = -32600
    METHOD_NOT_FOUND = -32601
    INVALID_PARAMS = -32602
    INTERNAL_ERROR = -32603
    SERVER_ERROR = -32000
    REQUEST_TIMEOUT = -32001


_HTTP_TO_CODE: Dict[int, ErrorCode] = {
    400: ErrorCode.INVALID_PARAMS,
    401: ErrorCode.INVALID_REQUEST,
    403: ErrorCode.INVALID_REQUEST,
    404: ErrorCode.INVALID_REQUEST,
    408: ErrorCode.REQUEST_TIMEOUT,
    429: ErrorCode.INVALID_REQUEST,
    500: ErrorCode.INTERNAL_ERROR,
    502: ErrorCode.INTERNAL_ERROR,
    503: ErrorCode.INTERNAL_ERROR,
    504: ErrorCode.REQUEST_TIMEOUT,
}


def map_http_to_code(status: int) -> ErrorCode:
    # 401, 403 and 429 all map to INVALID_REQUEST
    return _HTTP_TO_CODE.get(status, ErrorCode.INTERNAL_ERROR)


class AdapterError(Exception):
    code: ErrorCode = ErrorCode.INTERNAL_ERROR
    status: Optional[int] = None

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class SpecificationInvalid(AdapterError):
    pass


class ToolNotFound(AdapterError):
    code = ErrorCode.METHOD_NOT_FOUND

    def __init__(self, name: str) -> None:
        super().__init__(f"Tool not found: {name}")
        self.name = name


class ToolMetadataInvalid(AdapterError):
    code = ErrorCode.SERVER_ERROR

    def __init__(self, name: str) -> None:
        super().__init__(f"Invalid tool metadata for: {name}")
        self.name = name


class ValidationFailed(AdapterError):
    code = ErrorCode.INVALID_PARAMS

    def __init__(self, message: str, errors: Optional[List[Dict[str, Any]]] = None) -> None:
        super().__init__(message, {"errors": errors} if errors else None)
        self.errors = errors or []


class UpstreamHttpError(AdapterError):
    def __init__(self, status: int, reason: str = "", data: Any = None) -> None:
        message = f"API responded with {status}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.status = status
        self.reason = reason
        self.data = data
        self.code = map_http_to_code(status)


class UpstreamNetworkError(AdapterError):
    code = ErrorCode.INTERNAL_ERROR


class UpstreamResponseInvalid(AdapterError):
    code = ErrorCode.INTERNAL_ERROR
    status = 502


def generate_request_id() -> str:
    return secrets.token_hex(8)


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def _stamped(payload: Dict[str, Any]) -> Dict[str, Any]:
    payload["requestId"] = generate_request_id()
    payload["timestamp"] = utc_timestamp()
    return payload


def format_api_error(exc: UpstreamHttpError) -> Dict[str, Any]:
    details: Dict[str, Any] = {}
    message = exc.message
    if isinstance(exc.data, dict):
        details = exc.data
        message = exc.data.get("message") or message
    return _stamped(
        {
            "code": int(map_http_to_code(exc.status or 500)),
            "message": message,
            "details": details,
        }
    )


def format_validation_errors(errors: Iterable[Dict[str, Any]]) -> Dict[str, Any]:
    normalized = [
        {
            "path": err.get("path", ""),
            "message": err.get("message", ""),
            "keyword": err.get("keyword"),
            "params": err.get("params", {}),
        }
        for err in errors
    ]
    return _stamped(
        {
            "code": int(ErrorCode.INVALID_PARAMS),
            "message": "Validation failed",
            "details": {"errors": normalized},
        }
    )


def format_error(exc: BaseException) -> Dict[str, Any]:
    if isinstance(exc, UpstreamHttpError):
        return format_api_error(exc)
    if isinstance(exc, ValidationFailed) and exc.errors:
        formatted = format_validation_errors(exc.errors)
        formatted["message"] = exc.message
        return formatted
    if isinstance(exc, AdapterError):
        payload: Dict[str, Any] = {"code": int(exc.code), "message": exc.message}
        if exc.details:
            payload["details"] = exc.details
        return _stamped(payload)
    return _stamped(
        {
            "code": int(ErrorCode.INTERNAL_ERROR),
            "message": str(exc) or "Internal server error",
        }
    )


def error_envelope(exc: BaseException) -> Dict[str, Any]:
    return {
        "content": [{"type": "text", "text": json.dumps(format_error(exc), indent=2)}],
        "isError": True,
    }


def rpc_error(code: int, message: str, request_id: Any = None) -> Dict[str, Any]:
    return {
        "jsonrpc": "2.0",
        "error": {"code": int(code), "message": message},
        "id": request_id,
    }


def http_error_body(exc: BaseException) -> Tuple[int, Dict[str, Any]]:
    status = getattr(exc, "status", None) or 500
    message = getattr(exc, "message", None) or str(exc) or "Internal server error"
    body = _stamped({"status": status, "message": message})
    logger.error("[%s] %s", body["requestId"], message)
    return status, body

"""Logging helpers with redaction."""

from __future__ import annotations

import logging
import re
import secrets
import time
from typing import Any

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response


_SENSITIVE_KEYS = re.compile(r"(token|secret|api[_-]?key|password|authorization|secretkey)", re.IGNORECASE)

REDACTED = "***REDACTED***"

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


def redact_payload(payload: Any) -> Any:
    if isinstance(payload, list):
        return [redact_payload(item) for item in payload]
    if not isinstance(payload, dict):
        return payload

    redacted: dict[str, Any] = {}
    for key, value in payload.items():
        # a bare "key" field is an identifier, not a credential
        if str(key).lower() != "key" and _SENSITIVE_KEYS.search(str(key)):
            redacted[key] = REDACTED
        elif isinstance(value, (dict, list)):
            redacted[key] = redact_payload(value)
        else:
            redacted[key] = value
    return redacted


def create_correlation_id() -> str:
    """Short, roughly time-ordered id used to tie log lines to one request."""
    return f"{int(time.time() * 1000):x}{secrets.token_hex(4)}"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        correlation_id = create_correlation_id()
        request.state.correlation_id = correlation_id
        start = time.perf_counter()

        logger.info(
            "HTTP %s %s [%s]", request.method, request.url.path, correlation_id
        )
        response = await call_next(request)
        duration_ms = (time.perf_counter() - start) * 1000

        level = logging.WARNING if response.status_code >= 400 else logging.INFO
        logger.log(
            level,
            "HTTP %s %s %s %.1fms [%s]",
            request.method,
            request.url.path,
            response.status_code,
            duration_ms,
            correlation_id,
        )
        return response

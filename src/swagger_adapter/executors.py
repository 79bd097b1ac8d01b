"""Execution layer: turn a tool call back into an upstream HTTP request."""

from __future__ import annotations

import asyncio
import json
import logging
import time
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import quote

import httpx

from .errors import (
    UpstreamHttpError,
    UpstreamNetworkError,
    UpstreamResponseInvalid,
    generate_request_id,
)
from .logging import redact_payload
from .models import SchemaType

logger = logging.getLogger(__name__)

ARRAY_ENCODINGS = ("repeat", "comma")


class ToolInvoker:
    def __init__(
        self,
        base_url: str,
        timeout: float = 30,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        array_encoding: str = "repeat",
        max_retries: int = 0,
    ) -> None:
        if array_encoding not in ARRAY_ENCODINGS:
            raise ValueError(f"Unknown query array encoding: {array_encoding}")
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport
        self.array_encoding = array_encoding
        self.max_retries = max_retries

    async def invoke(
        self,
        path: str,
        method: str,
        args: Optional[Dict[str, Any]] = None,
        request_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Execute one tool call. Failures come back as an ``isError`` envelope."""
        request_id = request_id or generate_request_id()
        try:
            data = await self.request(path, method, args or {}, request_id)
        except Exception as exc:
            logger.error("Error executing API call [%s]: %s", request_id, exc)
            return self._format_error(str(exc) or exc.__class__.__name__)
        return self._format_result(data)

    async def request(
        self, path: str, method: str, args: Dict[str, Any], request_id: str
    ) -> Any:
        method = method.upper()
        url, used_keys = self._build_url(path, args)
        headers: Dict[str, str] = {"Accept": "application/json"}
        query: List[Tuple[str, str]] = []
        body: Optional[str] = None

        if method == "GET":
            query = self._extract_query_params(args, used_keys)
        else:
            body_params = self._extract_body_params(args, used_keys)
            if body_params:
                headers["Content-Type"] = "application/json"
                body = json.dumps(body_params)
                logger.debug("Request body [%s]: %s", request_id, redact_payload(body_params))

        logger.info("API call: %s %s [%s]", method, url, request_id)

        attempt = 0
        while True:
            attempt += 1
            start = time.perf_counter()
            try:
                async with httpx.AsyncClient(
                    timeout=self.timeout, transport=self.transport
                ) as client:
                    response = await client.request(
                        method, url, headers=headers, params=query, content=body
                    )
                break
            except httpx.TimeoutException as exc:
                error: Exception = UpstreamNetworkError(
                    f"Upstream request timed out after {self.timeout}s"
                )
                cause: Exception = exc
            except httpx.HTTPError as exc:
                error = UpstreamNetworkError(f"Upstream request failed: {exc}")
                cause = exc

            if attempt > self.max_retries:
                raise error from cause
            backoff = min(2 ** attempt, 6)
            logger.warning(
                "API call failed (attempt %s/%s). Retrying in %ss. [%s]",
                attempt,
                self.max_retries,
                backoff,
                request_id,
            )
            await asyncio.sleep(backoff)

        duration_ms = (time.perf_counter() - start) * 1000
        logger.info(
            "API response: %s %.0fms [%s]", response.status_code, duration_ms, request_id
        )

        if not response.is_success:
            raise UpstreamHttpError(response.status_code, response.reason_phrase)
        if not response.content:
            return {"status": "ok"}
        try:
            return response.json()
        except ValueError as exc:
            raise UpstreamResponseInvalid(f"Upstream returned invalid JSON: {exc}") from exc

    def _build_url(self, path: str, args: Dict[str, Any]) -> Tuple[str, set[str]]:
        url = self.base_url + path
        used_keys: set[str] = set()
        for key, value in args.items():
            token = f"{{{key}}}"
            if token in path:
                url = url.replace(token, quote(SchemaType.to_query(value), safe=""))
                used_keys.add(key)
        return url, used_keys

    def _extract_query_params(
        self, args: Dict[str, Any], used_keys: set[str]
    ) -> List[Tuple[str, str]]:
        query: List[Tuple[str, str]] = []
        for key, value in args.items():
            if key in used_keys:
                continue
            if isinstance(value, (list, tuple)):
                items = [self._scalar(item) for item in value]
                if self.array_encoding == "comma":
                    query.append((key, ",".join(items)))
                else:
                    query.extend((key, item) for item in items)
            else:
                query.append((key, self._scalar(value)))
        return query

    def _extract_body_params(self, args: Dict[str, Any], used_keys: set[str]) -> Dict[str, Any]:
        return {key: value for key, value in args.items() if key not in used_keys}

    def _scalar(self, value: Any) -> str:
        if isinstance(value, dict):
            return json.dumps(value, separators=(",", ":"))
        return SchemaType.to_query(value)

    def _format_result(self, result: Any) -> Dict[str, Any]:
        text = json.dumps(result, indent=2, ensure_ascii=False)
        return {"content": [{"type": "text", "text": text}]}

    def _format_error(self, message: str) -> Dict[str, Any]:
        return {
            "content": [{"type": "text", "text": f"Error executing API call: {message}"}],
            "isError": True,
        }

"""Core adapter service: startup, tool dispatch, sessions and the pinned proxy."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol

import httpx

from .cache import CacheSet
from .config import Settings
from .errors import (
    AdapterError,
    ErrorCode,
    ToolMetadataInvalid,
    ToolNotFound,
    ValidationFailed,
    error_envelope,
    format_error,
    generate_request_id,
    rpc_error,
)
from .executors import ToolInvoker
from .logging import redact_payload
from .openapi import OpenAPILoader, ToolBuilder
from .pagination import format_paginated_response
from .tool_registry import ToolRegistry
from .validator import validate_all

logger = logging.getLogger(__name__)

REPORT_PATH = "/api/LpcReport/{lpcId}"


class SessionSink(Protocol):
    async def close(self) -> None: ...


@dataclass(frozen=True)
class ServerState:
    spec: Dict[str, Any]
    registry: ToolRegistry
    caches: CacheSet

    @property
    def paths(self) -> Dict[str, Any]:
        return self.spec.get("paths") or {}

    @property
    def schemas(self) -> Dict[str, Any]:
        return (self.spec.get("components") or {}).get("schemas") or {}

    @property
    def title(self) -> str:
        return (self.spec.get("info") or {}).get("title") or "API"


async def initialize(
    settings: Settings,
    caches: CacheSet,
    loader: Optional[OpenAPILoader] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> ServerState:
    """Fetch the spec and build the tool registry. Raises ``SpecificationInvalid``."""
    loader = loader or OpenAPILoader(
        caches.default,
        cache_seconds=settings.spec_cache_seconds,
        timeout_seconds=settings.upstream_timeout_seconds,
        transport=transport,
    )
    spec = await loader.load_spec(settings.swagger_url)

    schemas = (spec.get("components") or {}).get("schemas") or {}
    builder = ToolBuilder(schemas, strict_names=settings.strict_tool_names)
    registry = ToolRegistry(builder.build(spec["paths"]))

    logger.info("Successfully loaded specification with %s paths", len(spec["paths"]))
    return ServerState(spec=spec, registry=registry, caches=caches)


class AdapterService:
    def __init__(
        self,
        settings: Settings,
        state: ServerState,
        invoker: Optional[ToolInvoker] = None,
    ) -> None:
        self.settings = settings
        self.state = state
        self.invoker = invoker or ToolInvoker(
            settings.api_base_url,
            timeout=settings.upstream_timeout_seconds,
            array_encoding=settings.query_array_encoding,
        )
        self.semaphore = asyncio.Semaphore(settings.adapter_max_concurrency)
        self._sessions: Dict[str, SessionSink] = {}

    @property
    def registry(self) -> ToolRegistry:
        return self.state.registry

    def list_tools(self) -> Dict[str, Any]:
        return {"tools": self.registry.to_list()}

    async def execute(
        self, name: str, arguments: Optional[Dict[str, Any]], request_id: str
    ) -> Dict[str, Any]:
        """Look up, validate and invoke a tool. Lookup and validation errors propagate."""
        tool = self.registry.resolve(name)
        arguments = dict(arguments or {})
        if self.settings.validate_arguments:
            validate_all(tool, arguments)

        async with self.semaphore:
            logger.info(
                "Executing tool=%s payload=%s [%s]", name, redact_payload(arguments), request_id
            )
            return await self.invoker.invoke(
                tool.metadata.path,  # type: ignore[arg-type]
                tool.metadata.method,  # type: ignore[arg-type]
                arguments,
                request_id=request_id,
            )

    async def call_tool(
        self,
        name: str,
        arguments: Optional[Dict[str, Any]] = None,
        request_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        request_id = request_id or generate_request_id()
        try:
            return await self.execute(name, arguments, request_id)
        except AdapterError as exc:
            logger.warning("Tool call rejected [%s]: %s", request_id, exc.message)
            return error_envelope(exc)

    async def handle_rpc(self, message: Any) -> Dict[str, Any]:
        rpc_id = message.get("id") if isinstance(message, dict) else None
        if (
            not isinstance(message, dict)
            or message.get("jsonrpc") != "2.0"
            or not message.get("method")
        ):
            return rpc_error(ErrorCode.INVALID_REQUEST, "Invalid Request", rpc_id)

        method = message["method"]
        params = message.get("params") or {}
        request_id = generate_request_id()
        logger.info(
            "MCP request: %s params=%s [%s]",
            method,
            redact_payload(params) if isinstance(params, dict) else params,
            request_id,
        )

        try:
            if method == "mcp.listTools":
                return {"jsonrpc": "2.0", "result": self.list_tools(), "id": rpc_id}
            if method == "mcp.callTool":
                return await self._rpc_call_tool(params, rpc_id, request_id)
            return rpc_error(ErrorCode.METHOD_NOT_FOUND, f"Method not found: {method}", rpc_id)
        except Exception as exc:
            logger.exception("MCP request error [%s]", request_id)
            return rpc_error(ErrorCode.SERVER_ERROR, str(exc) or "Internal error", rpc_id)

    async def _rpc_call_tool(self, params: Any, rpc_id: Any, request_id: str) -> Dict[str, Any]:
        if not isinstance(params, dict) or not params.get("name"):
            return rpc_error(ErrorCode.INVALID_PARAMS, "Invalid params: missing tool name", rpc_id)

        arguments = params.get("arguments") or {}
        if not isinstance(arguments, dict):
            return rpc_error(
                ErrorCode.INVALID_PARAMS, "Invalid params: arguments must be an object", rpc_id
            )

        try:
            result = await self.execute(params["name"], arguments, request_id)
        except (ToolNotFound, ToolMetadataInvalid) as exc:
            return rpc_error(exc.code, exc.message, rpc_id)
        except ValidationFailed as exc:
            response = rpc_error(exc.code, exc.message, rpc_id)
            response["error"]["data"] = format_error(exc)
            return response
        return {"jsonrpc": "2.0", "result": result, "id": rpc_id}

    # Sessions

    def register_session(self, session_id: str, sink: SessionSink) -> None:
        self._sessions[session_id] = sink
        logger.info("Registered session: %s", session_id)

    def unregister_session(self, session_id: str) -> None:
        if self._sessions.pop(session_id, None) is not None:
            logger.info("Session closed: %s", session_id)

    def has_session(self, session_id: Optional[str]) -> bool:
        return session_id is not None and session_id in self._sessions

    async def close_sessions(self) -> None:
        sessions, self._sessions = self._sessions, {}
        for session_id, sink in sessions.items():
            await sink.close()
            logger.info("Session closed: %s", session_id)

    # Proxy

    async def fetch_report(self, report_id: str) -> Dict[str, Any]:
        """Pinned proxy for a single report, cached in the report tier."""

        async def fetch() -> Any:
            return await self.invoker.request(
                REPORT_PATH, "get", {"lpcId": report_id}, generate_request_id()
            )

        data = await self.state.caches.report.get_or_fetch(f"report_{report_id}", fetch)
        return format_paginated_response(data)

    async def shutdown(self) -> None:
        await self.close_sessions()
        self.state.caches.dispose()
        logger.info("Adapter service shut down")


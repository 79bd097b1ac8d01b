"""HTTP and MCP server setup for the Swagger adapter."""

import asyncio
import logging
import re
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Optional
from urllib.parse import parse_qs

from fastmcp import FastMCP
from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, PlainTextResponse, Response
from starlette.routing import Mount, Route
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from .config import Settings
from .errors import AdapterError, ErrorCode, http_error_body, rpc_error
from .logging import RequestLoggingMiddleware
from .models import Tool
from .openapi import ToolBuilder, build_input_model
from .service import AdapterService

logger = logging.getLogger(__name__)

_CLIENT_ERROR_CODES = {int(ErrorCode.INVALID_REQUEST), int(ErrorCode.INVALID_PARAMS)}
_SESSION_ID = re.compile(rb"session_id=([0-9a-f]+)")

SSE_PATH = "/sse"
MESSAGE_PATH = "/messages/"


class StreamSink:
    """Session handle for one SSE stream; ``close`` ends the stream as a client disconnect would."""

    def __init__(self, receive: Receive) -> None:
        self._receive = receive
        self._closed = asyncio.Event()

    async def receive(self) -> Message:
        if self._closed.is_set():
            return {"type": "http.disconnect"}
        incoming = asyncio.ensure_future(self._receive())
        closed = asyncio.ensure_future(self._closed.wait())
        done, pending = await asyncio.wait({incoming, closed}, return_when=asyncio.FIRST_COMPLETED)
        for task in pending:
            task.cancel()
        if incoming in done:
            return incoming.result()
        return {"type": "http.disconnect"}

    async def close(self) -> None:
        self._closed.set()


class SessionTrackingApp:
    """Wrap the MCP SSE app so its sessions are registered with the adapter service."""

    def __init__(
        self,
        app: ASGIApp,
        service: AdapterService,
        sse_path: str = SSE_PATH,
        message_path: str = MESSAGE_PATH,
    ) -> None:
        self.app = app
        self.service = service
        self.sse_path = sse_path
        self.message_prefix = message_path.rstrip("/")

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        path = scope["path"]
        if path == self.sse_path and scope["method"] == "GET":
            await self._stream(scope, receive, send)
            return

        if path == self.message_prefix or path.startswith(self.message_prefix + "/"):
            session_id = _query_param(scope, "session_id")
            logger.info("Received message for session: %s", session_id)
            if not self.service.has_session(session_id):
                logger.error("No transport found for sessionId: %s", session_id)
                response = JSONResponse(
                    rpc_error(ErrorCode.SERVER_ERROR, "Invalid or missing session ID"),
                    status_code=400,
                )
                await response(scope, receive, send)
                return

        await self.app(scope, receive, send)

    async def _stream(self, scope: Scope, receive: Receive, send: Send) -> None:
        sink = StreamSink(receive)
        session_id: Optional[str] = None

        async def tracking_send(message: Message) -> None:
            nonlocal session_id
            if session_id is None and message["type"] == "http.response.body":
                # the endpoint event carries the id the client will post back with
                match = _SESSION_ID.search(message.get("body", b""))
                if match:
                    session_id = match.group(1).decode()
                    self.service.register_session(session_id, sink)
            await send(message)

        try:
            await self.app(scope, sink.receive, tracking_send)
        finally:
            if session_id is not None:
                self.service.unregister_session(session_id)


def _query_param(scope: Scope, name: str) -> Optional[str]:
    values = parse_qs(scope.get("query_string", b"").decode("latin-1")).get(name)
    return values[0] if values else None


def create_app(service: AdapterService, settings: Settings) -> Starlette:
    builder = ToolBuilder(service.state.schemas)
    mcp = build_mcp(service, settings)
    mcp_app = mcp.http_app(path=SSE_PATH, transport="sse")

    async def mcp_endpoint(request: Request) -> Response:
        try:
            message = await request.json()
        except ValueError:
            return JSONResponse(rpc_error(ErrorCode.PARSE_ERROR, "Parse error"), status_code=400)

        response = await service.handle_rpc(message)
        status = 400 if response.get("error", {}).get("code") in _CLIENT_ERROR_CODES else 200
        return JSONResponse(response, status_code=status)

    async def health(_request: Request) -> Response:
        return JSONResponse({"status": "OK", "tools": len(service.registry)})

    async def list_tools(_request: Request) -> Response:
        return JSONResponse(service.list_tools())

    async def docs(_request: Request) -> Response:
        text = builder.describe_endpoints(service.state.paths, service.state.title)
        return PlainTextResponse(text, media_type="text/markdown")

    async def path_docs(request: Request) -> Response:
        text = builder.describe_path(service.state.paths, request.path_params["path"])
        return PlainTextResponse(text, media_type="text/markdown")

    async def report_proxy(request: Request) -> Response:
        lpc_id = request.path_params["lpc_id"]
        return JSONResponse(await service.fetch_report(lpc_id))

    async def unproxied(_request: Request) -> Response:
        return JSONResponse(
            {
                "error": "Endpoint not configured in proxy",
                "message": "This endpoint hasn't been explicitly configured in the adapter proxy",
            },
            status_code=404,
        )

    async def adapter_error(_request: Request, exc: Exception) -> Response:
        status, body = http_error_body(exc)
        return JSONResponse(body, status_code=status)

    @asynccontextmanager
    async def lifespan(app: Starlette) -> AsyncIterator[None]:
        async with mcp_app.lifespan(app):
            service.state.caches.start()
            try:
                yield
            finally:
                await service.shutdown()

    proxy_methods = ["GET", "POST", "PUT", "PATCH", "DELETE"]
    routes = [
        Route("/mcp", mcp_endpoint, methods=["POST"]),
        Route("/health", health, methods=["GET"]),
        Route("/tools", list_tools, methods=["GET"]),
        Route("/docs", docs, methods=["GET"]),
        Route("/docs/{path:path}", path_docs, methods=["GET"]),
        Route("/api/LpcReport/{lpc_id}", report_proxy, methods=["GET"]),
        Route("/api", unproxied, methods=proxy_methods),
        Route("/api/{path:path}", unproxied, methods=proxy_methods),
        Mount("/", app=SessionTrackingApp(mcp_app, service)),
    ]
    middleware = [
        Middleware(
            CORSMiddleware,
            allow_origins=settings.cors_origin_list(),
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        ),
        Middleware(RequestLoggingMiddleware),
    ]

    app = Starlette(
        routes=routes,
        middleware=middleware,
        exception_handlers={AdapterError: adapter_error, Exception: adapter_error},
        lifespan=lifespan,
    )
    app.state.mcp = mcp
    return app


def build_mcp(service: AdapterService, settings: Settings) -> FastMCP:
    mcp = FastMCP(settings.service_name, instructions=_instructions(service))
    builder = ToolBuilder(service.state.schemas)

    for tool in service.registry:
        mcp.tool(name=tool.name, description=tool.description)(_tool_handler(service, tool))
        logger.debug("Registered tool: %s", tool.name)

    @mcp.resource("swagger://docs", name="swagger-documentation")
    def documentation() -> str:
        return builder.describe_endpoints(service.state.paths, service.state.title)

    @mcp.resource("swagger://{path}", name="endpoint-info")
    def endpoint_info(path: str) -> str:
        return builder.describe_path(service.state.paths, path)

    logger.info("Registered %s tools with MCP server", len(service.registry))
    return mcp


def _tool_handler(
    service: AdapterService, tool: Tool
) -> Callable[[Any], Awaitable[Dict[str, Any]]]:
    input_model = build_input_model(tool)

    async def handler(payload: input_model) -> Dict[str, Any]:  # type: ignore[valid-type]
        arguments = payload.model_dump(by_alias=True, exclude_none=True)
        return await service.call_tool(tool.name, arguments)

    handler.__name__ = tool.name
    return handler


def _instructions(service: AdapterService) -> str:
    return (
        f"Swagger adapter for {service.state.title}. "
        "Every tool is one operation of the upstream API; results are the upstream JSON."
    )

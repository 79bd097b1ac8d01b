"""CLI entry point for the Swagger adapter."""

from __future__ import annotations

import asyncio
import logging

import uvicorn

from .cache import CacheSet
from .config import get_settings
from .errors import SpecificationInvalid
from .logging import configure_logging
from .server import build_mcp, create_app
from .service import AdapterService, initialize

logger = logging.getLogger(__name__)


async def _run() -> None:
    settings = get_settings()
    configure_logging(settings.adapter_log_level)

    caches = CacheSet.from_settings(settings)
    try:
        state = await initialize(settings, caches)
    except SpecificationInvalid as exc:
        logger.error("Error initializing: %s", exc)
        caches.dispose()
        raise SystemExit(1) from exc

    service = AdapterService(settings, state)
    transport = settings.adapter_transport.lower()

    if transport == "stdio":
        mcp = build_mcp(service, settings)
        caches.start()
        try:
            await mcp.run_stdio_async()
        finally:
            await service.shutdown()
        return

    if transport != "http":
        raise RuntimeError(f"Unsupported transport: {settings.adapter_transport}")

    app = create_app(service, settings)
    logger.info("API Server listening on port %s", settings.adapter_port)
    config = uvicorn.Config(app, host=settings.adapter_host, port=settings.adapter_port)
    server = uvicorn.Server(config)
    await server.serve()


def main() -> None:
    asyncio.run(_run())


if __name__ == "__main__":
    main()

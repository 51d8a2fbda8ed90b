"""uvicorn runner for the relay app."""

from __future__ import annotations

import uvicorn

from .config.settings import RelaySettings, get_settings
from .http_app import create_app
from .observability.logger import get_logger

logger = get_logger(__name__)


def build_server_config(settings: RelaySettings) -> uvicorn.Config:
    return uvicorn.Config(
        app=create_app(settings),
        host=settings.http_host,
        port=settings.http_port,
        log_level="warning",  # structlog is the primary logger
        access_log=False,
        loop="asyncio",
        # SSE responses stay open; give in-flight relays time to finish on shutdown.
        timeout_graceful_shutdown=int(settings.upstream_idle_timeout_seconds),
    )


async def run_http_server() -> None:
    settings = get_settings()
    server = uvicorn.Server(build_server_config(settings))

    logger.info(
        "http_server_started",
        address=f"http://{settings.http_host}:{settings.http_port}",
        upstream_configured=settings.upstream_configured,
    )
    await server.serve()

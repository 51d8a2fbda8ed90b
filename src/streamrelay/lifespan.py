"""Application lifespan management (startup and shutdown hooks)."""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI

from .config.settings import get_settings
from .observability.logger import configure_logging, get_logger

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifespan (startup and shutdown)."""
    settings = get_settings()

    configure_logging()
    logger.info("starting_application", service_name=settings.service_name)

    if settings.upstream_configured:
        logger.info(
            "upstream_configured",
            base_url=settings.upstream_base_url,
            model=settings.upstream_model,
            idle_timeout_seconds=settings.upstream_idle_timeout_seconds,
        )
    else:
        # Not fatal: relay requests fail individually with a configuration error.
        logger.warning("upstream_api_key_missing")

    logger.info("application_started")
    try:
        yield
    finally:
        logger.info("application_shutdown_complete")

"""FastAPI app.

Relay endpoints stream ``text/event-stream`` responses. Failures detected
before the stream starts are plain JSON ``{"error": ...}`` responses; later
failures arrive in-band as a terminal ``error`` event.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import AsyncIterator, Optional

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse

from .config.settings import RelaySettings, get_settings
from .domain.errors import RelayDomainError, ValidationError
from .domain.models import GenerationRequest
from .lifespan import lifespan
from .llm.transport import ChatStreamTransport
from .models.requests import DirectStreamRequest, StreamRequest
from .observability.logger import get_logger
from .services.relay_service import RelayConfig, StreamRelay
from .streaming.sse import serialize_event

logger = get_logger(__name__)

STREAM_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def get_transport() -> Optional[ChatStreamTransport]:
    """Upstream transport override; None builds the aiohttp transport per relay."""
    return None


def _error_status(exc: RelayDomainError) -> int:
    # Configuration and upstream-connect failures are server-side.
    return 400 if isinstance(exc, ValidationError) else 500


async def relay_error_handler(request: Request, exc: RelayDomainError) -> JSONResponse:
    status = _error_status(exc)
    logger.warning(
        "relay_rejected",
        path=request.url.path,
        status=status,
        code=getattr(getattr(exc, "info", None), "code", None),
        error=str(exc),
        upstream_status=getattr(exc, "status_code", None),
    )
    return JSONResponse(status_code=status, content={"error": str(exc)})


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    if errors:
        first = errors[0]
        location = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
        message = f"{location}: {first.get('msg')}" if location else str(first.get("msg"))
    else:
        message = "Invalid request body"
    return JSONResponse(status_code=400, content={"error": message})


async def _stream_response(relay: StreamRelay, req: GenerationRequest) -> StreamingResponse:
    # Raises before any byte is sent; the exception handlers turn it into JSON.
    stream = await relay.open(req)

    async def event_stream() -> AsyncIterator[bytes]:
        try:
            async for event in stream.events():
                yield serialize_event(event)
        finally:
            await stream.aclose()

    return StreamingResponse(
        event_stream(),
        media_type="text/event-stream",
        headers=STREAM_HEADERS,
    )


def create_app(settings: RelaySettings | None = None) -> FastAPI:
    settings = settings or get_settings()

    app = FastAPI(title="Stream Relay", version=settings.service_version, lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(RelayDomainError, relay_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)

    @app.get("/healthz")
    async def healthz():
        return {"status": "ok"}

    @app.get("/api/health")
    async def health(settings: RelaySettings = Depends(get_settings)):
        return {
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "version": settings.service_version,
            "upstreamConfigured": settings.upstream_configured,
        }

    @app.post("/api/stream-blueprint")
    async def stream_blueprint(
        payload: StreamRequest,
        settings: RelaySettings = Depends(get_settings),
        transport: Optional[ChatStreamTransport] = Depends(get_transport),
    ) -> StreamingResponse:
        config = RelayConfig.from_settings(settings)
        return await _stream_response(StreamRelay(config, transport=transport), payload.to_generation_request())

    @app.post("/api/deepseek/reason")
    async def stream_reasoning(
        payload: StreamRequest,
        settings: RelaySettings = Depends(get_settings),
        transport: Optional[ChatStreamTransport] = Depends(get_transport),
    ) -> StreamingResponse:
        config = RelayConfig.from_settings(settings).with_system_prompt(settings.reasoning_system_prompt)
        return await _stream_response(StreamRelay(config, transport=transport), payload.to_generation_request())

    @app.post("/api/direct-stream")
    async def direct_stream(
        payload: DirectStreamRequest,
        settings: RelaySettings = Depends(get_settings),
        transport: Optional[ChatStreamTransport] = Depends(get_transport),
    ) -> StreamingResponse:
        if not payload.messages:
            raise ValidationError("messages are required")
        config = RelayConfig.from_settings(settings)
        return await _stream_response(StreamRelay(config, transport=transport), payload.to_generation_request())

    return app


app = create_app()

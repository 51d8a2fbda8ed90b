"""Streaming relay between a caller and the upstream chat-completion API.

Responsibilities:
- Validate a generation request and check the upstream credential
- Open exactly one streaming upstream call (pre-stream failures raise)
- Re-frame upstream SSE records into relay events, in upstream order
- End every stream with exactly one ``complete`` or ``error`` event
"""

from __future__ import annotations

import asyncio
import json
from contextlib import AsyncExitStack
from dataclasses import dataclass, field, replace
from typing import Any, AsyncIterator, Mapping, Optional

import aiohttp

from ..config.settings import RelaySettings
from ..domain.errors import (
    ConfigurationError,
    MalformedFramePayload,
    UpstreamStreamError,
    ValidationError,
)
from ..domain.models import (
    CHAT_ROLES,
    CompleteEvent,
    ErrorEvent,
    GenerationRequest,
    RelayEvent,
    RelayState,
    TokenEvent,
)
from ..llm.transport import AiohttpChatTransport, ChatStreamTransport
from ..observability.logger import get_logger
from ..streaming.sse import SSEFrameDecoder
from ..utils.time import elapsed_ms, monotonic_ms

logger = get_logger(__name__)


@dataclass(frozen=True)
class RelayConfig:
    api_key: Optional[str]
    base_url: str = "https://api.deepseek.com/v1"
    chat_path: str = "/chat/completions"
    model: str = "deepseek-chat"
    default_system_prompt: str = "You are a helpful assistant."
    default_temperature: float = 0.7
    default_max_tokens: Optional[int] = 8192
    connect_timeout_seconds: float = 10.0
    idle_timeout_seconds: float = 30.0
    max_record_chars: int = 1_048_576
    extra_headers: Mapping[str, str] = field(default_factory=dict)

    @classmethod
    def from_settings(cls, settings: RelaySettings) -> "RelayConfig":
        """Blueprint profile; other routes swap the prompt with with_system_prompt()."""
        return cls(
            api_key=settings.upstream_api_key,
            base_url=settings.upstream_base_url,
            chat_path=settings.upstream_chat_path,
            model=settings.upstream_model,
            default_system_prompt=settings.blueprint_system_prompt,
            default_temperature=settings.default_temperature,
            default_max_tokens=settings.default_max_tokens,
            connect_timeout_seconds=settings.upstream_connect_timeout_seconds,
            idle_timeout_seconds=settings.upstream_idle_timeout_seconds,
            max_record_chars=settings.upstream_max_record_chars,
        )

    def with_system_prompt(self, prompt: str) -> "RelayConfig":
        return replace(self, default_system_prompt=prompt)


def validate_request(req: GenerationRequest) -> None:
    if req.temperature is not None and not 0.0 <= float(req.temperature) <= 2.0:
        raise ValidationError("temperature must be between 0 and 2")
    if req.max_tokens is not None and int(req.max_tokens) <= 0:
        raise ValidationError("maxTokens must be greater than 0")

    if req.messages:
        for msg in req.messages:
            if msg.role not in CHAT_ROLES:
                raise ValidationError(f"Unsupported message role: {msg.role}")
            if not isinstance(msg.content, str):
                raise ValidationError("Message content must be a string")
        if not any(m.role == "user" and m.content.strip() for m in req.messages):
            raise ValidationError("At least one user message is required")
        return

    if not isinstance(req.prompt, str) or not req.prompt.strip():
        raise ValidationError("Prompt is required")


def build_chat_payload(req: GenerationRequest, config: RelayConfig) -> dict[str, Any]:
    if req.messages:
        messages = [m.to_payload() for m in req.messages]
        if req.system_prompt and not any(m.role == "system" for m in req.messages):
            messages.insert(0, {"role": "system", "content": req.system_prompt})
    else:
        messages = [
            {"role": "system", "content": req.system_prompt or config.default_system_prompt},
            {"role": "user", "content": req.prompt},
        ]

    payload: dict[str, Any] = {
        "model": config.model,
        "messages": messages,
        "temperature": float(req.temperature if req.temperature is not None else config.default_temperature),
        "stream": True,
    }
    max_tokens = req.max_tokens if req.max_tokens is not None else config.default_max_tokens
    if max_tokens is not None:
        payload["max_tokens"] = int(max_tokens)
    return payload


def extract_delta(data: str) -> str:
    """Return the content fragment of one upstream payload ('' when absent)."""
    try:
        parsed = json.loads(data)
    except ValueError as e:
        raise MalformedFramePayload("upstream_payload_not_json", detail=data[:200]) from e

    if not isinstance(parsed, dict):
        return ""
    choices = parsed.get("choices")
    if not isinstance(choices, list) or not choices:
        return ""
    first = choices[0]
    if not isinstance(first, dict):
        return ""
    delta = first.get("delta")
    if not isinstance(delta, dict):
        return ""
    content = delta.get("content")
    return content if isinstance(content, str) else ""


class RelayStream:
    """One connected relay. Owns its decoder, counters and upstream response."""

    def __init__(
        self,
        *,
        chunks: AsyncIterator[bytes],
        exit_stack: AsyncExitStack,
        started_ms: int,
        max_record_chars: int = 1_048_576,
    ):
        self._chunks = chunks
        self._exit_stack = exit_stack
        self._started_ms = started_ms
        self._decoder = SSEFrameDecoder(max_pending_chars=max_record_chars)
        self._state = RelayState.IDLE
        self._consumed = False
        self._closed = False
        self.total_tokens = 0
        self.total_characters = 0

    @property
    def state(self) -> RelayState:
        return self._state

    @property
    def closed(self) -> bool:
        return self._closed

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._exit_stack.aclose()

    async def events(self) -> AsyncIterator[RelayEvent]:
        if self._consumed:
            raise RuntimeError("relay stream can only be consumed once")
        self._consumed = True

        self._state = RelayState.STREAMING
        try:
            try:
                async for chunk in self._chunks:
                    for record in self._decoder.feed(chunk):
                        event = self._handle_record(record.data, record.is_done)
                        if event is None:
                            continue
                        yield event
                        if event.is_terminal:
                            return
                for record in self._decoder.flush():
                    event = self._handle_record(record.data, record.is_done)
                    if event is None:
                        continue
                    yield event
                    if event.is_terminal:
                        return
            except (asyncio.TimeoutError, aiohttp.ClientError, UnicodeDecodeError) as e:
                yield self._fail(_describe_stream_error(e))
                return
            except UpstreamStreamError as e:
                yield self._fail(e)
                return
            except Exception as e:
                logger.exception("relay_unexpected_error")
                yield self._fail(UpstreamStreamError(str(e) or "Streaming failed"))
                return

            yield self._complete()
        except (asyncio.CancelledError, GeneratorExit):
            if self._state is RelayState.STREAMING:
                logger.info(
                    "client_disconnected",
                    total_tokens=self.total_tokens,
                    total_characters=self.total_characters,
                )
            raise
        finally:
            await self.aclose()

    def _handle_record(self, data: str, is_done: bool) -> RelayEvent | None:
        if is_done:
            return self._complete()
        try:
            content = extract_delta(data)
        except MalformedFramePayload as e:
            logger.debug("malformed_frame_skipped", detail=e.info.detail)
            return None
        if not content:
            return None
        self.total_tokens += 1
        self.total_characters += len(content)
        return TokenEvent(
            content=content,
            total_tokens=self.total_tokens,
            total_characters=self.total_characters,
        )

    def _complete(self) -> CompleteEvent:
        self._state = RelayState.COMPLETED
        event = CompleteEvent(
            total_tokens=self.total_tokens,
            total_characters=self.total_characters,
            duration_ms=elapsed_ms(self._started_ms),
        )
        logger.info(
            "relay_completed",
            total_tokens=event.total_tokens,
            total_characters=event.total_characters,
            duration_ms=event.duration_ms,
        )
        return event

    def _fail(self, error: UpstreamStreamError) -> ErrorEvent:
        self._state = RelayState.FAILED
        logger.warning(
            "relay_failed",
            error=str(error),
            detail=error.info.detail,
            total_tokens=self.total_tokens,
        )
        return ErrorEvent(message=str(error))


def _describe_stream_error(e: BaseException) -> UpstreamStreamError:
    if isinstance(e, asyncio.TimeoutError):
        return UpstreamStreamError("Upstream stream stalled (idle timeout)", detail=str(e))
    if isinstance(e, UnicodeDecodeError):
        return UpstreamStreamError("Upstream sent invalid UTF-8", detail=str(e))
    return UpstreamStreamError("Upstream connection lost", detail=str(e) or type(e).__name__)


class StreamRelay:
    def __init__(self, config: RelayConfig, *, transport: ChatStreamTransport | None = None):
        self._config = config
        self._transport = transport

    @property
    def config(self) -> RelayConfig:
        return self._config

    def _get_transport(self) -> ChatStreamTransport:
        if self._transport is None:
            self._transport = AiohttpChatTransport(
                api_key=self._config.api_key or "",
                base_url=self._config.base_url,
                chat_path=self._config.chat_path,
                connect_timeout_seconds=self._config.connect_timeout_seconds,
                idle_timeout_seconds=self._config.idle_timeout_seconds,
                extra_headers=self._config.extra_headers,
            )
        return self._transport

    async def open(self, req: GenerationRequest) -> RelayStream:
        """Validate, check config and connect upstream.

        Raises ValidationError, ConfigurationError or UpstreamConnectError;
        nothing has been streamed when any of them is raised.
        """
        started_ms = monotonic_ms()
        validate_request(req)
        if not self._config.api_key:
            raise ConfigurationError("Upstream API key not configured on server")

        payload = build_chat_payload(req, self._config)
        logger.info(
            "relay_started",
            model=payload["model"],
            prompt_length=len(req.prompt),
            message_count=len(payload["messages"]),
            has_system_prompt=bool(req.system_prompt),
        )

        exit_stack = AsyncExitStack()
        try:
            chunks = await exit_stack.enter_async_context(self._get_transport().stream(payload))
        except BaseException:
            await exit_stack.aclose()
            raise
        return RelayStream(
            chunks=chunks,
            exit_stack=exit_stack,
            started_ms=started_ms,
            max_record_chars=self._config.max_record_chars,
        )

    async def relay(self, req: GenerationRequest) -> AsyncIterator[RelayEvent]:
        stream = await self.open(req)
        try:
            async for event in stream.events():
                yield event
        finally:
            await stream.aclose()

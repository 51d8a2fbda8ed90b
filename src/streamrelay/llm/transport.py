"""Upstream chat-completion transport.

The relay talks to the provider through ``ChatStreamTransport`` so the HTTP
client can be swapped (tests use an in-memory transport).
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import Any, AsyncContextManager, AsyncIterator, Mapping

import aiohttp

from ..domain.errors import UpstreamConnectError
from ..observability.logger import get_logger

logger = get_logger(__name__)


class ChatStreamTransport:
    def stream(self, payload: dict[str, Any]) -> AsyncContextManager[AsyncIterator[bytes]]:  # pragma: no cover - interface
        """Open one streaming call; the context yields raw body chunks.

        Must raise UpstreamConnectError before yielding when the upstream call
        cannot be established or answers with a non-success status.
        """
        raise NotImplementedError


class AiohttpChatTransport(ChatStreamTransport):
    def __init__(
        self,
        *,
        api_key: str,
        base_url: str,
        chat_path: str = "/chat/completions",
        connect_timeout_seconds: float = 10.0,
        idle_timeout_seconds: float = 30.0,
        extra_headers: Mapping[str, str] | None = None,
    ):
        self._api_key = api_key
        self._url = f"{base_url.rstrip('/')}/{chat_path.lstrip('/')}"
        # No total deadline: generations can legitimately run for minutes.
        self._timeout = aiohttp.ClientTimeout(
            total=None,
            sock_connect=connect_timeout_seconds,
            sock_read=idle_timeout_seconds,
        )
        self._extra_headers = dict(extra_headers or {})

    @property
    def url(self) -> str:
        return self._url

    def _headers(self) -> dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
            "Accept": "text/event-stream",
        }
        headers.update(self._extra_headers)
        return headers

    @asynccontextmanager
    async def stream(self, payload: dict[str, Any]) -> AsyncIterator[AsyncIterator[bytes]]:
        async with aiohttp.ClientSession(timeout=self._timeout) as session:
            try:
                response = await session.post(self._url, json=payload, headers=self._headers())
            except (asyncio.TimeoutError, aiohttp.ClientError) as e:
                logger.warning("upstream_unreachable", url=self._url, error=str(e))
                raise UpstreamConnectError("Upstream API unreachable", detail=str(e)) from e

            async with response:
                if response.status >= 400:
                    try:
                        body = await response.text(errors="replace")
                    except (asyncio.TimeoutError, aiohttp.ClientError) as e:
                        # Status is still known; a broken error body must not hide it.
                        logger.warning("upstream_error_body_unreadable", url=self._url, error=str(e))
                        body = ""
                    logger.warning(
                        "upstream_connect_failed",
                        url=self._url,
                        status=response.status,
                        body=body[:500],
                    )
                    raise UpstreamConnectError(
                        f"Upstream API error: {response.status}",
                        status_code=response.status,
                        detail=body[:500],
                    )
                yield response.content.iter_any()

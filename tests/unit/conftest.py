from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Iterable, Optional

import pytest

from streamrelay.llm.transport import ChatStreamTransport


class FakeTransport(ChatStreamTransport):
    """In-memory upstream: replays body chunks, optionally failing."""

    def __init__(
        self,
        chunks: Iterable[bytes] = (),
        *,
        connect_error: Optional[BaseException] = None,
        stream_error: Optional[BaseException] = None,
    ):
        self.chunks = list(chunks)
        self.connect_error = connect_error
        self.stream_error = stream_error
        self.calls: list[dict[str, Any]] = []
        self.reads = 0
        self.closed = False

    async def _body(self) -> AsyncIterator[bytes]:
        for chunk in self.chunks:
            self.reads += 1
            yield chunk
        if self.stream_error is not None:
            raise self.stream_error

    @asynccontextmanager
    async def stream(self, payload: dict[str, Any]):
        self.calls.append(payload)
        if self.connect_error is not None:
            raise self.connect_error
        try:
            yield self._body()
        finally:
            self.closed = True


@pytest.fixture
def make_transport():
    return FakeTransport


def sse(*payloads: str) -> bytes:
    return "".join(f"data: {p}\n\n" for p in payloads).encode("utf-8")


@pytest.fixture
def sse_body():
    return sse

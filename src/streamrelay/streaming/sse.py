"""Server-Sent-Events framing.

Inbound: ``SSEFrameDecoder`` turns raw upstream body chunks into record
payloads. Outbound: ``serialize_event`` frames one relay event for the caller.
"""

from __future__ import annotations

import codecs
import json
from dataclasses import dataclass
from typing import Any, Iterable, Optional

from ..domain.errors import UpstreamStreamError
from ..domain.models import RelayEvent

DONE_MARKER = "[DONE]"

_RECORD_SEPARATOR = "\n\n"
_DATA_FIELD = "data:"


@dataclass(frozen=True)
class SSERecord:
    data: str

    @property
    def is_done(self) -> bool:
        return self.data.strip() == DONE_MARKER


def parse_record(raw: str) -> Optional[SSERecord]:
    """Extract the data payload from one record, or None if it carries no data.

    ``data:`` and ``data: `` are both accepted. Comment lines (``:``) and
    other fields are ignored.
    """
    data_lines: list[str] = []
    for line in raw.split("\n"):
        if not line.startswith(_DATA_FIELD):
            continue
        value = line[len(_DATA_FIELD):]
        if value.startswith(" "):
            value = value[1:]
        data_lines.append(value)
    if not data_lines:
        return None
    return SSERecord(data="\n".join(data_lines))


class SSEFrameDecoder:
    """Incremental UTF-8 decoder + record splitter.

    Multi-byte characters split across chunks are held by the codec; text that
    does not yet form a complete record is carried over to the next ``feed``.
    Only newly decoded text is scanned for separators, so a record arriving in
    many small chunks costs linear time. The carry-over is capped at
    ``max_pending_chars``.
    """

    def __init__(self, encoding: str = "utf-8", *, max_pending_chars: int = 1_048_576):
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="strict")
        self._max_pending_chars = max_pending_chars
        self._pieces: list[str] = []
        self._pending_chars = 0
        # A "\r" at the end of a chunk may be the first half of "\r\n".
        self._held_cr = False

    def _normalize(self, text: str, *, final: bool = False) -> str:
        if self._held_cr:
            text = "\r" + text
            self._held_cr = False
        if text.endswith("\r") and not final:
            text = text[:-1]
            self._held_cr = True
        return text.replace("\r\n", "\n")

    def _take_pending(self, tail: str) -> str:
        raw = "".join(self._pieces) + tail
        self._pieces = []
        self._pending_chars = 0
        return raw

    def feed(self, chunk: bytes) -> list[SSERecord]:
        """Decode one chunk and return every record it completes, in order.

        Raises UnicodeDecodeError on invalid UTF-8 and UpstreamStreamError when
        an unterminated record outgrows the carry-over limit.
        """
        text = self._normalize(self._decoder.decode(chunk))
        if not text:
            return []

        raw_records: list[str] = []
        start = 0
        # Separator straddling the previous chunk and this one.
        if self._pieces and self._pieces[-1].endswith("\n") and text.startswith("\n"):
            raw_records.append(self._take_pending("")[:-1])
            start = 1
        idx = text.find(_RECORD_SEPARATOR, start)
        while idx != -1:
            raw_records.append(self._take_pending(text[start:idx]))
            start = idx + len(_RECORD_SEPARATOR)
            idx = text.find(_RECORD_SEPARATOR, start)

        rest = text[start:]
        if rest:
            self._pieces.append(rest)
            self._pending_chars += len(rest)
            if self._pending_chars > self._max_pending_chars:
                raise UpstreamStreamError(
                    "Upstream record exceeds size limit",
                    detail=f"{self._pending_chars} chars without a record separator",
                )
        return _parse_all(raw_records)

    def flush(self) -> list[SSERecord]:
        """Finish decoding at end of body; a trailing record without a blank line is kept."""
        tail = self._normalize(self._decoder.decode(b"", final=True), final=True)
        remainder = self._take_pending(tail)
        return _parse_all(remainder.split(_RECORD_SEPARATOR))


def _parse_all(raw_records: Iterable[str]) -> list[SSERecord]:
    records = []
    for raw in raw_records:
        if not raw.strip():
            continue
        record = parse_record(raw)
        if record is not None:
            records.append(record)
    return records


def serialize_payload(payload: dict[str, Any]) -> bytes:
    return f"data: {json.dumps(payload, ensure_ascii=False)}\n\n".encode("utf-8")


def serialize_event(event: RelayEvent) -> bytes:
    return serialize_payload(event.to_payload())

"""Framework-agnostic domain models."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Union


class RelayState(str, Enum):
    IDLE = "IDLE"
    STREAMING = "STREAMING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class RelayEventType(str, Enum):
    TOKEN = "token"
    COMPLETE = "complete"
    ERROR = "error"


CHAT_ROLES = ("system", "user", "assistant")


@dataclass(frozen=True)
class ChatMessage:
    role: str
    content: str

    def to_payload(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass(frozen=True)
class GenerationRequest:
    """One relay request. Lives for a single upstream call only.

    ``messages`` replaces the ``system_prompt``/``prompt`` pair when given.
    """

    prompt: str = ""
    system_prompt: Optional[str] = None
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    messages: tuple[ChatMessage, ...] = ()


@dataclass(frozen=True)
class TokenEvent:
    content: str
    total_tokens: int
    total_characters: int

    type = RelayEventType.TOKEN
    is_terminal = False

    def to_payload(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "content": self.content,
            "totalTokens": self.total_tokens,
            "totalCharacters": self.total_characters,
        }


@dataclass(frozen=True)
class CompleteEvent:
    total_tokens: int
    total_characters: int
    duration_ms: int

    type = RelayEventType.COMPLETE
    is_terminal = True

    def to_payload(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "totalTokens": self.total_tokens,
            "totalCharacters": self.total_characters,
            "duration": self.duration_ms,
        }


@dataclass(frozen=True)
class ErrorEvent:
    message: str

    type = RelayEventType.ERROR
    is_terminal = True

    def to_payload(self) -> dict[str, Any]:
        return {"type": self.type.value, "error": self.message}


RelayEvent = Union[TokenEvent, CompleteEvent, ErrorEvent]

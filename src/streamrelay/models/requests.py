"""HTTP request bodies for the relay endpoints."""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field

from ..domain.models import ChatMessage, GenerationRequest


class StreamRequest(BaseModel):
    # Emptiness is checked by the relay so the error body stays {"error": ...}.
    prompt: Optional[str] = None
    systemPrompt: Optional[str] = None
    temperature: Optional[float] = None
    maxTokens: Optional[int] = None

    def to_generation_request(self) -> GenerationRequest:
        return GenerationRequest(
            prompt=self.prompt or "",
            system_prompt=self.systemPrompt or None,
            temperature=self.temperature,
            max_tokens=self.maxTokens,
        )


class ChatMessageBody(BaseModel):
    role: str
    content: str


class DirectStreamRequest(BaseModel):
    messages: List[ChatMessageBody] = Field(default_factory=list)
    systemPrompt: Optional[str] = None
    temperature: Optional[float] = None
    maxTokens: Optional[int] = None

    def to_generation_request(self) -> GenerationRequest:
        return GenerationRequest(
            system_prompt=self.systemPrompt or None,
            temperature=self.temperature,
            max_tokens=self.maxTokens,
            messages=tuple(ChatMessage(role=m.role, content=m.content) for m in self.messages),
        )

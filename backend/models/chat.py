"""Chat relay data models"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field, field_validator

MAX_CONTENT_LENGTH = 4000
MAX_MESSAGES = 100


class Role(str, Enum):
    """Conversation participant"""

    USER = "user"
    ASSISTANT = "assistant"


class Message(BaseModel):
    """A single transcript entry"""

    role: Role
    content: str


class InboundMessage(Message):
    """Message as received by the relay, validated and trimmed"""

    @field_validator("content")
    @classmethod
    def _check_content(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Message cannot be empty")
        if len(value) > MAX_CONTENT_LENGTH:
            raise ValueError("Message too long")
        return value


class ChatRelayRequest(BaseModel):
    """Request body for the streaming relay"""

    messages: list[InboundMessage] = Field(min_length=1, max_length=MAX_MESSAGES)


class ErrorBody(BaseModel):
    """JSON error response"""

    error: str
    details: list[dict] | None = None

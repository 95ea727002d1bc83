"""Pydantic models for API requests and responses."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from physiofit.protocols import ChatMessage, ChatTurn

# =============================================================================
# Chat Models
# =============================================================================


class TranscriptMessage(BaseModel):
    """One turn of the client-held transcript."""
    role: Literal["user", "assistant"]
    content: str = Field(..., max_length=8000)

    def to_chat_message(self) -> ChatMessage:
        return ChatMessage(role=self.role, content=self.content)


class ChatRequest(BaseModel):
    """A chat turn: the transcript so far, ending with the new user message.

    The caller's identity is never part of the body; it comes from the
    verified access token. An empty list is rejected by the relay as
    invalid input (400), not by schema validation.
    """
    messages: list[TranscriptMessage] = Field(..., max_length=200)


class ChatResponse(BaseModel):
    """Generated reply."""
    reply: str


class ErrorResponse(BaseModel):
    """Error envelope returned for every failed request."""
    error: str


# =============================================================================
# History Models
# =============================================================================


class HistoryMessage(BaseModel):
    """A persisted chat turn."""
    id: str
    role: Literal["user", "assistant"]
    content: str
    created_at: datetime

    @classmethod
    def from_turn(cls, turn: ChatTurn) -> "HistoryMessage":
        return cls(
            id=turn.id,
            role=turn.role.value,
            content=turn.content,
            created_at=turn.created_at,
        )


class HistoryResponse(BaseModel):
    """Caller's recent turns, oldest first."""
    messages: list[HistoryMessage]

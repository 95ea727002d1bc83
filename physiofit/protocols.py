"""
physiofit Protocol Definitions
==============================

Interface contracts for the chat-turn relay pipeline.

Components and their roles:
- IdentityResolver:   Turns a credential into a principal. Never issues credentials.
- ConversationStore:  Append-only chat turns, keyed by principal.
- ObservationStore:   Read-only access to a principal's pain observations.
- GenerationClient:   Blocking request/response adapter to a text-generation backend.

ChatRelay (physiofit.relay) composes these into one turn-processing protocol.

Error handling philosophy:
- Fatal errors (UnauthenticatedError, InvalidInputError,
  GenerationUnavailableError) are raised and abort the turn
- PersistenceError is raised by stores; the relay records it in the
  RelayOutcome and keeps going
- An empty generation payload is not an error
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, Protocol, Sequence, runtime_checkable

# =============================================================================
# ERRORS
# =============================================================================


class PhysioFitError(Exception):
    """Base for all physiofit errors."""

    pass


class UnauthenticatedError(PhysioFitError):
    """Raised when no trusted principal can be resolved for a request."""

    pass


class InvalidInputError(PhysioFitError):
    """Raised when the inbound turn is malformed (e.g. blank message)."""

    pass


class PersistenceError(PhysioFitError):
    """Raised by stores on backend unavailability or write rejection."""

    pass


class GenerationUnavailableError(PhysioFitError):
    """Raised when the generation backend fails, times out or is unreachable."""

    def __init__(self, error_class: str, message: str) -> None:
        super().__init__(message)
        self.error_class = error_class


# =============================================================================
# DATA MODEL
# =============================================================================


class Role(str, Enum):
    """Who authored a turn."""

    USER = "user"
    ASSISTANT = "assistant"


SYSTEM_ROLE = "system"


@dataclass(frozen=True)
class ChatMessage:
    """A {role, content} pair as exchanged with the generation backend."""

    role: str  # "system", "user", "assistant"
    content: str

    def to_dict(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass(frozen=True)
class ChatTurn:
    """A persisted chat turn. Immutable once written."""

    id: str
    principal: str
    role: Role
    content: str
    created_at: datetime


@dataclass(frozen=True)
class Observation:
    """A self-reported pain observation, produced outside the relay."""

    principal: str
    level: int  # 0..10
    location: str
    created_at: datetime


@dataclass(frozen=True)
class WriteOutcome:
    """Result of a best-effort side-effect write."""

    ok: bool
    turn: Optional[ChatTurn] = None
    error: Optional[str] = None

    @classmethod
    def saved(cls, turn: ChatTurn) -> "WriteOutcome":
        return cls(ok=True, turn=turn)

    @classmethod
    def failed(cls, error: str) -> "WriteOutcome":
        return cls(ok=False, error=error)


@dataclass(frozen=True)
class RelayOutcome:
    """Primary outcome (the reply) plus the side-effect outcomes of a turn."""

    principal: str
    reply: str
    user_turn: WriteOutcome
    assistant_turn: WriteOutcome
    observations: tuple[Observation, ...] = field(default_factory=tuple)
    observations_loaded: bool = True

    @property
    def fully_persisted(self) -> bool:
        return self.user_turn.ok and self.assistant_turn.ok


# =============================================================================
# COLLABORATOR PROTOCOLS
# =============================================================================


@runtime_checkable
class IdentityResolver(Protocol):
    """Resolves a server-verified credential to a principal."""

    def resolve(self, credential: Optional[str]) -> str:
        """Return the principal or raise UnauthenticatedError."""
        ...


@runtime_checkable
class ConversationStore(Protocol):
    """Append-only persistence of chat turns, scoped per principal."""

    def append(self, principal: str, role: Role, content: str) -> ChatTurn:
        """Persist a turn with a server-assigned timestamp.

        Raises PersistenceError on failure.
        """
        ...

    def recent(self, principal: str, limit: int) -> list[ChatTurn]:
        """Return up to ``limit`` latest turns, ascending by created_at.

        Raises PersistenceError on failure.
        """
        ...


@runtime_checkable
class ObservationStore(Protocol):
    """Read access to a principal's pain observations."""

    def recent(self, principal: str, limit: int) -> list[Observation]:
        """Return up to ``limit`` observations, newest first.

        Raises PersistenceError on failure.
        """
        ...


@runtime_checkable
class GenerationClient(Protocol):
    """Synchronous adapter to a text-generation backend."""

    @property
    def model_id(self) -> str: ...

    def generate(self, conversation: Sequence[ChatMessage]) -> str:
        """Return the generated reply text.

        Raises GenerationUnavailableError on transport failure, timeout,
        or a non-success backend status.
        """
        ...

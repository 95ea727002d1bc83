"""
PhysioFit - an AI physiotherapy coach aware of your pain diary.

The chat-turn relay: identity, turn persistence, observation context,
generation, reply.
"""

from .context import ContextAssembler, ContextTemplate
from .protocols import (
    ChatMessage,
    ChatTurn,
    GenerationUnavailableError,
    InvalidInputError,
    Observation,
    PersistenceError,
    PhysioFitError,
    RelayOutcome,
    Role,
    UnauthenticatedError,
    WriteOutcome,
)
from .relay import ChatRelay, RelayPolicy

try:
    from importlib.metadata import version

    __version__ = version("physiofit")
except Exception:
    __version__ = "0.0.0"

__all__ = [
    "ChatMessage",
    "ChatRelay",
    "ChatTurn",
    "ContextAssembler",
    "ContextTemplate",
    "GenerationUnavailableError",
    "InvalidInputError",
    "Observation",
    "PersistenceError",
    "PhysioFitError",
    "RelayOutcome",
    "RelayPolicy",
    "Role",
    "UnauthenticatedError",
    "WriteOutcome",
]

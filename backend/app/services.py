"""Construction of the chat relay and its collaborators.

Nothing here runs at import time: each collaborator is built from
Settings by a factory and injected through FastAPI dependencies, so tests
can swap any of them with ``app.dependency_overrides``.
"""

from typing import Annotated

from fastapi import Depends, Request

from physiofit.context import ContextAssembler, ContextTemplate
from physiofit.models.ollama import OllamaGenerationClient
from physiofit.relay import ChatRelay, RelayPolicy

from .auth import SupabaseIdentityResolver, get_identity_resolver
from .config import Settings, get_settings
from .database import (
    SupabaseConversationStore,
    SupabaseObservationStore,
    get_conversation_store,
    get_observation_store,
)


def build_generation_client(settings: Settings) -> OllamaGenerationClient:
    return OllamaGenerationClient(
        model_id=settings.ollama_model,
        base_url=settings.ollama_base_url,
        timeout=settings.generation_timeout_seconds,
    )


def build_context_assembler(settings: Settings) -> ContextAssembler:
    template = ContextTemplate().with_overrides(
        persona=settings.coach_persona,
        safety_directive=settings.coach_safety_directive,
        formatting_directive=settings.coach_formatting_directive,
    )
    return ContextAssembler(template)


def build_relay_policy(settings: Settings) -> RelayPolicy:
    return RelayPolicy(
        observation_limit=settings.observation_limit,
        trust_client_transcript=settings.trust_client_transcript,
        history_limit=settings.history_limit,
    )


def get_generation_client(
    request: Request,
    settings: Annotated[Settings, Depends(get_settings)],
) -> OllamaGenerationClient:
    """FastAPI dependency for the generation client (one per app)."""
    client = getattr(request.app.state, "generator", None)
    if client is None:
        client = build_generation_client(settings)
        request.app.state.generator = client
    return client


def get_chat_relay(
    settings: Annotated[Settings, Depends(get_settings)],
    identity: Annotated[SupabaseIdentityResolver, Depends(get_identity_resolver)],
    conversations: Annotated[SupabaseConversationStore, Depends(get_conversation_store)],
    observations: Annotated[SupabaseObservationStore, Depends(get_observation_store)],
    generator: Annotated[OllamaGenerationClient, Depends(get_generation_client)],
) -> ChatRelay:
    """FastAPI dependency wiring a ChatRelay for one request."""
    return ChatRelay(
        identity=identity,
        conversations=conversations,
        observations=observations,
        generator=generator,
        assembler=build_context_assembler(settings),
        policy=build_relay_policy(settings),
    )


# Type alias for dependency injection
Relay = Annotated[ChatRelay, Depends(get_chat_relay)]

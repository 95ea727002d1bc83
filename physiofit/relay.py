"""Chat-turn relay: the end-to-end pipeline for one inbound chat turn.

Steps run strictly in order:

1. Resolve the principal (fatal on failure)
2. Persist the user turn (best effort)
3. Load the newest observations (best effort, empty on failure)
4. Build the system instruction
5. Assemble system instruction + transcript
6. Generate the reply (fatal on failure, nothing persisted)
7. Persist the assistant turn (best effort)
8. Return the reply with the side-effect outcomes

Turns are not deduplicated: a retried request persists its turns again.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

from physiofit.context import ContextAssembler
from physiofit.protocols import (
    SYSTEM_ROLE,
    ChatMessage,
    ConversationStore,
    GenerationClient,
    IdentityResolver,
    InvalidInputError,
    Observation,
    ObservationStore,
    PersistenceError,
    RelayOutcome,
    Role,
    WriteOutcome,
)

logger = logging.getLogger(__name__)

DEFAULT_OBSERVATION_LIMIT = 5
DEFAULT_HISTORY_LIMIT = 50

_TRANSCRIPT_ROLES = frozenset(r.value for r in Role)


@dataclass(frozen=True)
class RelayPolicy:
    """Overridable policy knobs for the relay."""

    observation_limit: int = DEFAULT_OBSERVATION_LIMIT
    # True: generate from the client-supplied transcript.
    # False: reload the transcript from the ConversationStore.
    trust_client_transcript: bool = True
    history_limit: int = DEFAULT_HISTORY_LIMIT

    def __post_init__(self) -> None:
        if self.observation_limit < 0:
            raise ValueError("observation_limit must be >= 0")
        if self.history_limit < 1:
            raise ValueError("history_limit must be >= 1")


class ChatRelay:
    """Orchestrates identity, stores, context and generation for a turn."""

    def __init__(
        self,
        identity: IdentityResolver,
        conversations: ConversationStore,
        observations: ObservationStore,
        generator: GenerationClient,
        assembler: Optional[ContextAssembler] = None,
        policy: Optional[RelayPolicy] = None,
    ) -> None:
        self.identity = identity
        self.conversations = conversations
        self.observations = observations
        self.generator = generator
        self.assembler = assembler or ContextAssembler()
        self.policy = policy or RelayPolicy()

    def handle_turn(
        self, credential: Optional[str], transcript: Sequence[ChatMessage]
    ) -> RelayOutcome:
        """Process one chat turn.

        Args:
            credential: Server-verified credential (e.g. a bearer token).
            transcript: Prior turns in order; the last element is the new
                user message.

        Raises:
            UnauthenticatedError: No principal could be resolved.
            InvalidInputError: The transcript is empty, malformed, or the
                new message is blank.
            GenerationUnavailableError: The generation backend failed.
        """
        principal = self.identity.resolve(credential)
        message = validate_transcript(transcript)

        user_turn = self._append(principal, Role.USER, message)
        observations, loaded = self._load_observations(principal)

        instruction = self.assembler.build(observations)
        conversation = self._augment(principal, instruction, transcript, message, user_turn)

        reply = self.generator.generate(conversation)

        assistant_turn = self._append(principal, Role.ASSISTANT, reply)
        return RelayOutcome(
            principal=principal,
            reply=reply,
            user_turn=user_turn,
            assistant_turn=assistant_turn,
            observations=tuple(observations),
            observations_loaded=loaded,
        )

    # ---- Internal helpers ----

    def _append(self, principal: str, role: Role, content: str) -> WriteOutcome:
        try:
            turn = self.conversations.append(principal, role, content)
        except PersistenceError as e:
            logger.error(f"Failed to persist {role.value} turn for {principal}: {e}")
            return WriteOutcome.failed(str(e))
        return WriteOutcome.saved(turn)

    def _load_observations(self, principal: str) -> tuple[list[Observation], bool]:
        if self.policy.observation_limit == 0:
            return [], True
        try:
            found = self.observations.recent(principal, self.policy.observation_limit)
        except PersistenceError as e:
            logger.warning(f"Failed to load observations for {principal}: {e}")
            return [], False
        return list(found)[: self.policy.observation_limit], True

    def _augment(
        self,
        principal: str,
        instruction: str,
        transcript: Sequence[ChatMessage],
        message: str,
        user_turn: WriteOutcome,
    ) -> list[ChatMessage]:
        system = ChatMessage(role=SYSTEM_ROLE, content=instruction)
        if self.policy.trust_client_transcript:
            return [system, *transcript]
        return [system, *self._server_transcript(principal, message, user_turn)]

    def _server_transcript(
        self, principal: str, message: str, user_turn: WriteOutcome
    ) -> list[ChatMessage]:
        newest = ChatMessage(role=Role.USER.value, content=message)
        try:
            turns = self.conversations.recent(principal, self.policy.history_limit)
        except PersistenceError as e:
            logger.warning(f"Failed to reload history for {principal}: {e}")
            return [newest]
        history = [ChatMessage(role=t.role.value, content=t.content) for t in turns]
        saved_id = user_turn.turn.id if user_turn.turn else None
        if saved_id is None or not turns or turns[-1].id != saved_id:
            history.append(newest)
        return history


def validate_transcript(transcript: Sequence[ChatMessage]) -> str:
    """Check an inbound transcript and return the new user message.

    Raises InvalidInputError when the transcript is empty, contains a
    role other than user/assistant, or ends in a blank or non-user turn.
    """
    if not transcript:
        raise InvalidInputError("Transcript must contain at least one message")
    for msg in transcript:
        if msg.role not in _TRANSCRIPT_ROLES:
            raise InvalidInputError(f"Unsupported role in transcript: {msg.role!r}")
    last = transcript[-1]
    if last.role != Role.USER.value:
        raise InvalidInputError("The last message must come from the user")
    if not last.content or not last.content.strip():
        raise InvalidInputError("Message must not be empty")
    return last.content

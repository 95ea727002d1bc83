"""Chat routes: relay a chat turn to the coach and read back history."""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from physiofit.protocols import PersistenceError

from ..auth import Credential, CurrentPrincipal
from ..config import Settings, get_settings
from ..database import SupabaseConversationStore, get_conversation_store
from ..logging_config import get_logger, log_turn_outcome
from ..models import (
    ChatRequest,
    ChatResponse,
    ErrorResponse,
    HistoryMessage,
    HistoryResponse,
)
from ..rate_limit import chat_rate_limit, limiter
from ..services import Relay

logger = get_logger("physiofit.chat")
router = APIRouter(prefix="/chat", tags=["chat"])

_ERRORS = {
    400: {"model": ErrorResponse, "description": "Empty or malformed message"},
    401: {"model": ErrorResponse, "description": "Not authenticated"},
    429: {"model": ErrorResponse, "description": "Rate limit exceeded"},
    502: {"model": ErrorResponse, "description": "Generation backend failed"},
    503: {"model": ErrorResponse, "description": "Generation backend timed out"},
}


@router.post("", response_model=ChatResponse, responses=_ERRORS)
@limiter.limit(chat_rate_limit)
def send_message(
    request: Request,
    body: ChatRequest,
    credential: Credential,
    relay: Relay,
):
    """
    Relay one chat turn to the coach.

    The last message in ``messages`` is the new user message; earlier
    messages are the transcript the client is holding. The reply is
    generated with the caller's recent pain observations as context.

    Failing to save either turn does not fail the request.
    """
    transcript = [m.to_chat_message() for m in body.messages]
    outcome = relay.handle_turn(credential, transcript)
    log_turn_outcome(outcome)
    return ChatResponse(reply=outcome.reply)


@router.get(
    "/history",
    response_model=HistoryResponse,
    responses={401: _ERRORS[401], 503: {"model": ErrorResponse}},
)
def get_history(
    principal: CurrentPrincipal,
    conversations: Annotated[SupabaseConversationStore, Depends(get_conversation_store)],
    settings: Annotated[Settings, Depends(get_settings)],
    limit: int | None = Query(default=None, ge=1, le=200),
):
    """Return the caller's most recent chat turns, oldest first."""
    try:
        turns = conversations.recent(principal, limit or settings.history_limit)
    except PersistenceError as e:
        logger.error(f"HISTORY | {principal} | {e}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Chat history is temporarily unavailable",
        )
    return HistoryResponse(messages=[HistoryMessage.from_turn(t) for t in turns])

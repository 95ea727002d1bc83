"""Database utilities for Supabase integration.

Supabase-backed ConversationStore and ObservationStore. Every query is
scoped to one principal via the ``user_id`` column, so the service key
never reads or writes another user's rows.
"""

from typing import Annotated

from dateutil.parser import isoparse
from fastapi import Depends, Request

from physiofit.protocols import ChatTurn, Observation, PersistenceError, Role
from supabase import Client, create_client

from .config import Settings, get_settings

# =============================================================================
# Client
# =============================================================================


def build_supabase_client(settings: Settings) -> Client:
    """Create a Supabase client from settings."""
    # Prefer new secret key, fall back to legacy service_role_key
    api_key = settings.supabase_secret_key or settings.supabase_service_role_key
    if not api_key:
        raise ValueError("Either SUPABASE_SECRET_KEY or SUPABASE_SERVICE_ROLE_KEY must be set")
    return create_client(settings.supabase_url, api_key)


def get_db(
    request: Request,
    settings: Annotated[Settings, Depends(get_settings)],
) -> Client:
    """FastAPI dependency for the Supabase client.

    Built on first use and kept on ``app.state`` for the app's lifetime.
    """
    client = getattr(request.app.state, "supabase", None)
    if client is None:
        client = build_supabase_client(settings)
        request.app.state.supabase = client
    return client


# Type alias for dependency injection
Database = Annotated[Client, Depends(get_db)]


# =============================================================================
# Row mapping
# =============================================================================

# Stored sender values differ from the relay's role names
_SENDER_FOR_ROLE = {Role.USER: "user", Role.ASSISTANT: "bot"}
_ROLE_FOR_SENDER = {"user": Role.USER, "bot": Role.ASSISTANT, "assistant": Role.ASSISTANT}


def _row_to_turn(row: dict) -> ChatTurn:
    sender = row.get("sender")
    if sender not in _ROLE_FOR_SENDER:
        raise PersistenceError(f"Unknown sender in chat row: {sender!r}")
    try:
        return ChatTurn(
            id=str(row["id"]),
            principal=row["user_id"],
            role=_ROLE_FOR_SENDER[sender],
            content=row.get("content") or "",
            created_at=isoparse(row["created_at"]),
        )
    except (KeyError, TypeError, ValueError) as e:
        raise PersistenceError(f"Malformed chat row: {e}") from e


def _row_to_observation(row: dict) -> Observation:
    try:
        return Observation(
            principal=row["user_id"],
            level=int(row["pain_level"]),
            location=row.get("location") or "",
            created_at=isoparse(row["created_at"]),
        )
    except (KeyError, TypeError, ValueError) as e:
        raise PersistenceError(f"Malformed observation row: {e}") from e


# =============================================================================
# Stores
# =============================================================================


class SupabaseConversationStore:
    """ConversationStore over the chat turns table."""

    def __init__(
        self, db: Client, table: str = "chat_messages", sequence_column: str | None = None
    ):
        self.db = db
        self.table = table
        self.sequence_column = sequence_column

    def append(self, principal: str, role: Role, content: str) -> ChatTurn:
        data = {
            "user_id": principal,
            "sender": _SENDER_FOR_ROLE[Role(role)],
            "content": content,
        }
        try:
            result = self.db.table(self.table).insert(data).execute()
        except Exception as e:
            raise PersistenceError(f"Could not save chat turn: {e}") from e
        if not result.data:
            raise PersistenceError("Chat turn insert returned no row")
        return _row_to_turn(result.data[0])

    def recent(self, principal: str, limit: int) -> list[ChatTurn]:
        """Latest ``limit`` turns, oldest first.

        Turns sharing a ``created_at`` are ordered by ``sequence_column``
        when the table has one (e.g. a bigserial); without it their
        relative order is whatever Postgres returns.
        """
        if limit < 1:
            return []
        try:
            query = (
                self.db.table(self.table)
                .select("id, user_id, sender, content, created_at")
                .eq("user_id", principal)
                .order("created_at", desc=True)
            )
            if self.sequence_column:
                query = query.order(self.sequence_column, desc=True)
            result = query.limit(limit).execute()
        except Exception as e:
            raise PersistenceError(f"Could not load chat history: {e}") from e
        turns = [_row_to_turn(row) for row in (result.data or [])]
        turns.reverse()
        return turns


class SupabaseObservationStore:
    """ObservationStore over the pain log table (read-only)."""

    def __init__(self, db: Client, table: str = "pain_logs"):
        self.db = db
        self.table = table

    def recent(self, principal: str, limit: int) -> list[Observation]:
        if limit < 1:
            return []
        try:
            result = (
                self.db.table(self.table)
                .select("user_id, pain_level, location, created_at")
                .eq("user_id", principal)
                .order("created_at", desc=True)
                .limit(limit)
                .execute()
            )
        except Exception as e:
            raise PersistenceError(f"Could not load observations: {e}") from e
        return [_row_to_observation(row) for row in (result.data or [])]


def get_conversation_store(
    db: Database,
    settings: Annotated[Settings, Depends(get_settings)],
) -> SupabaseConversationStore:
    """FastAPI dependency for the conversation store."""
    return SupabaseConversationStore(
        db,
        table=settings.chat_turns_table,
        sequence_column=settings.chat_turns_sequence_column,
    )


def get_observation_store(
    db: Database,
    settings: Annotated[Settings, Depends(get_settings)],
) -> SupabaseObservationStore:
    """FastAPI dependency for the observation store."""
    return SupabaseObservationStore(db, table=settings.observations_table)

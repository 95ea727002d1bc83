"""SQLite-backed conversation and observation stores.

Local-first storage for development and tests. Both stores share one
database file; every query is scoped by principal.
"""

from __future__ import annotations

import contextlib
import logging
import sqlite3
import threading
import uuid
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Iterator, Optional, Union

from physiofit.protocols import ChatTurn, Observation, PersistenceError, Role

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS chat_turns (
    seq INTEGER PRIMARY KEY AUTOINCREMENT,
    id TEXT NOT NULL UNIQUE,
    principal TEXT NOT NULL,
    role TEXT NOT NULL CHECK (role IN ('user', 'assistant')),
    content TEXT NOT NULL,
    created_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_chat_turns_principal ON chat_turns(principal, created_at, seq);

CREATE TABLE IF NOT EXISTS observations (
    seq INTEGER PRIMARY KEY AUTOINCREMENT,
    principal TEXT NOT NULL,
    level INTEGER NOT NULL CHECK (level BETWEEN 0 AND 10),
    location TEXT NOT NULL,
    created_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_observations_principal ON observations(principal, created_at, seq);
"""


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _format_dt(dt: datetime) -> str:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _parse_dt(s: str) -> datetime:
    return datetime.fromisoformat(s)


class SQLiteDatabase:
    """Owns the database file and hands out transactional connections."""

    def __init__(self, db_path: Union[str, Path]) -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        # Serializes appends so timestamps stay monotonic per database
        self.write_lock = threading.Lock()
        with self.connect() as conn:
            conn.executescript(SCHEMA)

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA busy_timeout=5000")
        return conn

    @contextlib.contextmanager
    def connect(self) -> Iterator[sqlite3.Connection]:
        """Yield a connection; commit on success, roll back on error, always close."""
        conn = self._get_conn()
        try:
            yield conn
            conn.commit()
        except Exception as e:
            logger.debug(f"Transaction failed, rolling back: {e}")
            conn.rollback()
            raise
        finally:
            conn.close()


class SQLiteConversationStore:
    """ConversationStore on SQLite. Turns are never updated or deleted."""

    def __init__(self, db: SQLiteDatabase) -> None:
        self.db = db

    def append(self, principal: str, role: Role, content: str) -> ChatTurn:
        role = Role(role)
        turn_id = str(uuid.uuid4())
        try:
            with self.db.write_lock, self.db.connect() as conn:
                created_at = self._next_timestamp(conn, principal)
                conn.execute(
                    "INSERT INTO chat_turns (id, principal, role, content, created_at) "
                    "VALUES (?, ?, ?, ?, ?)",
                    (turn_id, principal, role.value, content, _format_dt(created_at)),
                )
        except sqlite3.Error as e:
            raise PersistenceError(f"Could not save chat turn: {e}") from e
        return ChatTurn(
            id=turn_id,
            principal=principal,
            role=role,
            content=content,
            created_at=created_at,
        )

    def recent(self, principal: str, limit: int) -> list[ChatTurn]:
        if limit < 1:
            return []
        try:
            with self.db.connect() as conn:
                rows = conn.execute(
                    "SELECT id, principal, role, content, created_at FROM chat_turns "
                    "WHERE principal = ? ORDER BY created_at DESC, seq DESC LIMIT ?",
                    (principal, limit),
                ).fetchall()
        except sqlite3.Error as e:
            raise PersistenceError(f"Could not load chat history: {e}") from e
        return [
            ChatTurn(
                id=row["id"],
                principal=row["principal"],
                role=Role(row["role"]),
                content=row["content"],
                created_at=_parse_dt(row["created_at"]),
            )
            for row in reversed(rows)
        ]

    @staticmethod
    def _next_timestamp(conn: sqlite3.Connection, principal: str) -> datetime:
        """Current time, bumped past the principal's latest turn if needed."""
        now = _utc_now()
        row = conn.execute(
            "SELECT MAX(created_at) AS latest FROM chat_turns WHERE principal = ?",
            (principal,),
        ).fetchone()
        if row and row["latest"]:
            latest = _parse_dt(row["latest"])
            if now <= latest:
                now = latest + timedelta(microseconds=1)
        return now


class SQLiteObservationStore:
    """ObservationStore on SQLite.

    ``record`` exists for seeding; capturing observations is not part of
    the relay.
    """

    def __init__(self, db: SQLiteDatabase) -> None:
        self.db = db

    def record(
        self,
        principal: str,
        level: int,
        location: str,
        created_at: Optional[datetime] = None,
    ) -> Observation:
        if isinstance(level, bool) or not isinstance(level, int) or not 0 <= level <= 10:
            raise ValueError("level must be an integer between 0 and 10")
        if not location or not location.strip():
            raise ValueError("location must not be empty")
        created_at = created_at or _utc_now()
        if created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=timezone.utc)
        try:
            with self.db.connect() as conn:
                conn.execute(
                    "INSERT INTO observations (principal, level, location, created_at) "
                    "VALUES (?, ?, ?, ?)",
                    (principal, level, location.strip(), _format_dt(created_at)),
                )
        except sqlite3.Error as e:
            raise PersistenceError(f"Could not save observation: {e}") from e
        return Observation(
            principal=principal,
            level=level,
            location=location.strip(),
            created_at=created_at,
        )

    def recent(self, principal: str, limit: int) -> list[Observation]:
        if limit < 1:
            return []
        try:
            with self.db.connect() as conn:
                rows = conn.execute(
                    "SELECT principal, level, location, created_at FROM observations "
                    "WHERE principal = ? ORDER BY created_at DESC, seq DESC LIMIT ?",
                    (principal, limit),
                ).fetchall()
        except sqlite3.Error as e:
            raise PersistenceError(f"Could not load observations: {e}") from e
        return [
            Observation(
                principal=row["principal"],
                level=row["level"],
                location=row["location"],
                created_at=_parse_dt(row["created_at"]),
            )
            for row in rows
        ]

"""Test the Supabase-backed stores against the in-memory client."""

import pytest
from app.config import get_settings
from app.database import (
    SupabaseConversationStore,
    SupabaseObservationStore,
    get_conversation_store,
)
from fakes import TEST_USER, MockExecuteResult, MockSupabase

from physiofit.protocols import PersistenceError, Role

SAME_INSTANT = "2025-03-01T08:00:00+00:00"


def _tied_rows():
    """Three turns written in one instant; seq records insertion order."""
    return [
        {"id": "a", "seq": 1, "user_id": TEST_USER, "sender": "user",
         "content": "first", "created_at": SAME_INSTANT},
        {"id": "b", "seq": 2, "user_id": TEST_USER, "sender": "bot",
         "content": "second", "created_at": SAME_INSTANT},
        {"id": "c", "seq": 3, "user_id": TEST_USER, "sender": "user",
         "content": "third", "created_at": SAME_INSTANT},
    ]


@pytest.fixture
def db():
    return MockSupabase()


class TestConversationStore:
    def test_append_maps_role_to_sender(self, db):
        turn = SupabaseConversationStore(db).append(TEST_USER, Role.ASSISTANT, "Rest today.")

        assert db.rows("chat_messages")[0]["sender"] == "bot"
        assert turn.role is Role.ASSISTANT
        assert turn.principal == TEST_USER

    def test_ties_broken_by_sequence_column(self, db):
        rows = _tied_rows()
        db.tables["chat_messages"] = [rows[2], rows[0], rows[1]]
        store = SupabaseConversationStore(db, sequence_column="seq")

        assert [t.content for t in store.recent(TEST_USER, 10)] == ["first", "second", "third"]
        assert [t.content for t in store.recent(TEST_USER, 2)] == ["second", "third"]

    def test_sequence_column_from_settings(self, db):
        settings = get_settings().model_copy(update={"chat_turns_sequence_column": "seq"})

        assert get_conversation_store(db, settings).sequence_column == "seq"
        assert get_conversation_store(db, get_settings()).sequence_column is None

    def test_unknown_sender_is_persistence_error(self, db):
        db.tables["chat_messages"] = [dict(_tied_rows()[0], sender="system")]

        with pytest.raises(PersistenceError, match="Unknown sender"):
            SupabaseConversationStore(db).recent(TEST_USER, 5)

    def test_empty_insert_result(self, db, monkeypatch):
        store = SupabaseConversationStore(db)
        monkeypatch.setattr(db, "table", lambda name: _EmptyInsert())

        with pytest.raises(PersistenceError, match="returned no row"):
            store.append(TEST_USER, Role.USER, "Hi")


class TestObservationStore:
    def test_malformed_row(self, db):
        db.tables["pain_logs"] = [
            {"user_id": TEST_USER, "pain_level": "high", "location": "knee",
             "created_at": SAME_INSTANT}
        ]

        with pytest.raises(PersistenceError, match="Malformed observation row"):
            SupabaseObservationStore(db).recent(TEST_USER, 5)


class _EmptyInsert:
    def insert(self, data):
        return self

    def execute(self):
        return MockExecuteResult([])

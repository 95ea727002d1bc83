"""Tests for the SQLite conversation and observation stores."""

import sqlite3
from datetime import datetime

import pytest
from doubles import PRINCIPAL, utc

from physiofit.protocols import ConversationStore, ObservationStore, PersistenceError, Role
from physiofit.storage import SQLiteConversationStore, SQLiteDatabase, SQLiteObservationStore


def _drop(db, table):
    conn = sqlite3.connect(db.db_path)
    conn.execute(f"DROP TABLE {table}")
    conn.commit()
    conn.close()


class TestSQLiteDatabase:
    def test_creates_parent_dirs(self, tmp_path):
        db = SQLiteDatabase(tmp_path / "nested" / "dir" / "physiofit.db")
        assert db.db_path.exists()

    def test_reopen_keeps_data(self, tmp_path):
        path = tmp_path / "physiofit.db"
        SQLiteConversationStore(SQLiteDatabase(path)).append(PRINCIPAL, Role.USER, "Hi")

        reopened = SQLiteConversationStore(SQLiteDatabase(path))

        assert [t.content for t in reopened.recent(PRINCIPAL, 10)] == ["Hi"]

    def test_rolls_back_on_error(self, db):
        with pytest.raises(sqlite3.IntegrityError):
            with db.connect() as conn:
                conn.execute(
                    "INSERT INTO observations (principal, level, location, created_at) "
                    "VALUES ('p', 1, 'neck', '2025-01-01T00:00:00+00:00')"
                )
                conn.execute(
                    "INSERT INTO observations (principal, level, location, created_at) "
                    "VALUES ('p', 11, 'neck', '2025-01-01T00:00:00+00:00')"
                )

        with db.connect() as conn:
            assert conn.execute("SELECT COUNT(*) FROM observations").fetchone()[0] == 0


class TestConversationStore:
    def test_satisfies_protocol(self, conversations):
        assert isinstance(conversations, ConversationStore)

    def test_append_returns_turn(self, conversations):
        turn = conversations.append(PRINCIPAL, Role.USER, "My back hurts")

        assert turn.id
        assert turn.principal == PRINCIPAL
        assert turn.role is Role.USER
        assert turn.content == "My back hurts"
        assert turn.created_at.tzinfo is not None

    def test_accepts_role_string(self, conversations):
        assert conversations.append(PRINCIPAL, "assistant", "Rest").role is Role.ASSISTANT

    def test_recent_ascending_with_increasing_timestamps(self, conversations):
        for i in range(5):
            conversations.append(PRINCIPAL, Role.USER if i % 2 == 0 else Role.ASSISTANT, f"m{i}")

        turns = conversations.recent(PRINCIPAL, 10)

        assert [t.content for t in turns] == ["m0", "m1", "m2", "m3", "m4"]
        stamps = [t.created_at for t in turns]
        assert stamps == sorted(stamps)
        assert len(set(stamps)) == len(stamps)

    def test_recent_limit_keeps_latest(self, conversations):
        for i in range(5):
            conversations.append(PRINCIPAL, Role.USER, f"m{i}")

        assert [t.content for t in conversations.recent(PRINCIPAL, 2)] == ["m3", "m4"]
        assert conversations.recent(PRINCIPAL, 0) == []

    def test_scoped_by_principal(self, conversations):
        conversations.append(PRINCIPAL, Role.USER, "mine")
        conversations.append("other-user", Role.USER, "theirs")

        assert [t.content for t in conversations.recent(PRINCIPAL, 10)] == ["mine"]

    def test_round_trips_stored_values(self, conversations):
        saved = conversations.append(PRINCIPAL, Role.ASSISTANT, "Stretch gently.")

        (loaded,) = conversations.recent(PRINCIPAL, 1)

        assert loaded == saved

    def test_append_failure_raises_persistence_error(self, db, conversations):
        _drop(db, "chat_turns")
        with pytest.raises(PersistenceError, match="Could not save chat turn"):
            conversations.append(PRINCIPAL, Role.USER, "Hello")

    def test_recent_failure_raises_persistence_error(self, db, conversations):
        _drop(db, "chat_turns")
        with pytest.raises(PersistenceError):
            conversations.recent(PRINCIPAL, 5)


class TestObservationStore:
    def test_satisfies_protocol(self, observations):
        assert isinstance(observations, ObservationStore)

    def test_newest_first(self, observations):
        observations.record(PRINCIPAL, 3, "knee", created_at=utc(2025, 1, 1))
        observations.record(PRINCIPAL, 8, "back", created_at=utc(2025, 1, 3))
        observations.record(PRINCIPAL, 5, "neck", created_at=utc(2025, 1, 2))

        found = observations.recent(PRINCIPAL, 5)

        assert [o.location for o in found] == ["back", "neck", "knee"]
        assert found[0].level == 8
        assert found[0].created_at == utc(2025, 1, 3)

    def test_limit(self, observations):
        for day in range(1, 8):
            observations.record(PRINCIPAL, 1, f"spot-{day}", created_at=utc(2025, 1, day))

        assert len(observations.recent(PRINCIPAL, 5)) == 5
        assert observations.recent(PRINCIPAL, 0) == []

    def test_scoped_by_principal(self, observations):
        observations.record("other-user", 9, "elbow")
        assert observations.recent(PRINCIPAL, 5) == []

    def test_naive_datetime_treated_as_utc(self, observations):
        saved = observations.record(PRINCIPAL, 2, "hip", created_at=datetime(2025, 2, 1, 10))
        assert saved.created_at == utc(2025, 2, 1, 10)

    def test_location_stripped(self, observations):
        assert observations.record(PRINCIPAL, 2, "  shoulder ").location == "shoulder"

    @pytest.mark.parametrize("level", [-1, 11, 2.5, True, "7"])
    def test_rejects_invalid_level(self, observations, level):
        with pytest.raises(ValueError):
            observations.record(PRINCIPAL, level, "knee")

    @pytest.mark.parametrize("location", ["", "   "])
    def test_rejects_blank_location(self, observations, location):
        with pytest.raises(ValueError):
            observations.record(PRINCIPAL, 4, location)

    def test_failure_raises_persistence_error(self, db, observations):
        _drop(db, "observations")
        with pytest.raises(PersistenceError):
            observations.recent(PRINCIPAL, 5)

"""Shared fixtures for physiofit library tests."""

import pytest
from doubles import RecordingGenerator, StaticIdentity

from physiofit.relay import ChatRelay, RelayPolicy
from physiofit.storage import SQLiteConversationStore, SQLiteDatabase, SQLiteObservationStore


@pytest.fixture
def db(tmp_path):
    return SQLiteDatabase(tmp_path / "physiofit.db")


@pytest.fixture
def conversations(db):
    return SQLiteConversationStore(db)


@pytest.fixture
def observations(db):
    return SQLiteObservationStore(db)


@pytest.fixture
def identity():
    return StaticIdentity()


@pytest.fixture
def generator():
    return RecordingGenerator()


@pytest.fixture
def make_relay(identity, conversations, observations, generator):
    """Build a relay over the SQLite stores; any collaborator can be swapped."""

    def _make(**overrides) -> ChatRelay:
        parts = {
            "identity": identity,
            "conversations": conversations,
            "observations": observations,
            "generator": generator,
            "policy": RelayPolicy(),
        }
        parts.update(overrides)
        return ChatRelay(**parts)

    return _make

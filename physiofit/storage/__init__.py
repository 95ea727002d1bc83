"""Storage backends for chat turns and pain observations."""

from physiofit.storage.sqlite import (
    SQLiteConversationStore,
    SQLiteDatabase,
    SQLiteObservationStore,
)

__all__ = [
    "SQLiteConversationStore",
    "SQLiteDatabase",
    "SQLiteObservationStore",
]

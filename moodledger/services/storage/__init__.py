"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage:
local key-value mirrors and remote ledger stores (Google Sheets, in-memory).
"""

from moodledger.services.storage.interface import (
    ConnectionError,
    KeyValueStore,
    NotFoundError,
    RemoteLedgerStore,
    RemoteResource,
    Row,
    StorageError,
    StorageKeys,
)
from moodledger.services.storage.local import (
    InMemoryKeyValueStore,
    JsonFileKeyValueStore,
)
from moodledger.services.storage.memory import InMemoryRemoteStore
from moodledger.services.storage.google_sheets import (
    GoogleSheetsClient,
    GoogleSheetsRemoteStore,
)

__all__ = [
    # Interfaces
    "KeyValueStore",
    "RemoteLedgerStore",
    "RemoteResource",
    "Row",
    "StorageKeys",
    # Exceptions
    "ConnectionError",
    "NotFoundError",
    "StorageError",
    # Local stores
    "InMemoryKeyValueStore",
    "JsonFileKeyValueStore",
    # Remote stores
    "GoogleSheetsClient",
    "GoogleSheetsRemoteStore",
    "InMemoryRemoteStore",
]

"""Services package."""

from moodledger.services.storage import (
    ConnectionError,
    GoogleSheetsClient,
    GoogleSheetsRemoteStore,
    InMemoryKeyValueStore,
    InMemoryRemoteStore,
    JsonFileKeyValueStore,
    KeyValueStore,
    NotFoundError,
    RemoteLedgerStore,
    RemoteResource,
    StorageError,
    StorageKeys,
)

__all__ = [
    "ConnectionError",
    "GoogleSheetsClient",
    "GoogleSheetsRemoteStore",
    "InMemoryKeyValueStore",
    "InMemoryRemoteStore",
    "JsonFileKeyValueStore",
    "KeyValueStore",
    "NotFoundError",
    "RemoteLedgerStore",
    "RemoteResource",
    "StorageError",
    "StorageKeys",
]

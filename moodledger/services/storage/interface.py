"""
Abstract Storage Interfaces

DESIGN DECISION: We define abstract interfaces for both storage
collaborators the ledger talks to:

1. KeyValueStore - the local, on-device mirror (string keys, JSON blobs)
2. RemoteLedgerStore - the authoritative cross-device store

This allows us to:
1. Swap Google Sheets for a real database later
2. Use in-memory storage for testing
3. Keep ledger logic decoupled from storage implementation

The interfaces are intentionally narrow - just the operations the
ledger core needs, nothing more.
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Iterable, Optional


class StorageKeys:
    """Keys used in the local key-value store."""
    TRANSACTIONS = "@expense_tracker_transactions"
    ACCOUNTS = "@expense_tracker_accounts"
    EXPENSE_CATEGORIES = "@expense_tracker_expense_categories"
    INCOME_CATEGORIES = "@expense_tracker_income_categories"
    CURRENCY = "@expense_tracker_currency"

    ALL = (
        TRANSACTIONS,
        ACCOUNTS,
        EXPENSE_CATEGORIES,
        INCOME_CATEGORIES,
        CURRENCY,
    )


class RemoteResource(str, Enum):
    """User-scoped record sets held by the remote store."""
    TRANSACTIONS = "transactions"
    ACCOUNTS = "accounts"


Row = dict[str, Any]


class KeyValueStore(ABC):
    """
    Local persistent key-value store.

    At-least-once durable, no transactions across keys.
    """

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        """
        Read a value.

        Returns:
            The stored string, or None if the key is absent
        """
        pass

    @abstractmethod
    async def set(self, key: str, value: str) -> None:
        """
        Write a value, replacing any previous one.

        Raises:
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def remove_many(self, keys: Iterable[str]) -> None:
        """Remove several keys. Missing keys are ignored."""
        pass


class RemoteLedgerStore(ABC):
    """
    Abstract interface for the remote, authoritative ledger store.

    Rows are plain dicts mirroring the Transaction/Account fields plus
    a `user_id`. Server-assigned ids are canonical UUID text.
    """

    @abstractmethod
    async def upsert_by_id_or_insert(
        self,
        resource: RemoteResource,
        user_id: str,
        rows: list[Row],
    ) -> list[Row]:
        """
        Write rows for a user.

        Rows carrying an `id` replace the user's stored row with that id
        (or are created with it). Rows without an `id`, or whose `id`
        belongs to another user, are inserted and receive a
        server-assigned one. Other users' rows are never modified.

        Returns:
            The stored rows, in the same order as the input

        Raises:
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def delete_by_ids(
        self,
        resource: RemoteResource,
        user_id: str,
        ids: list[str],
    ) -> list[Row]:
        """
        Delete the user's rows with these ids.

        Returns:
            The rows that were deleted
        """
        pass

    @abstractmethod
    async def fetch_all(
        self,
        resource: RemoteResource,
        user_id: str,
    ) -> list[Row]:
        """
        Fetch every row the user owns for a resource.

        Transactions come back newest first.
        """
        pass

    @abstractmethod
    async def get_settings(self, user_id: str) -> Optional[Row]:
        """Get the user's settings row, or None if never written."""
        pass

    @abstractmethod
    async def upsert_settings(self, user_id: str, patch: Row) -> Row:
        """Merge a patch into the user's settings row and return it."""
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass

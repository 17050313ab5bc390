"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Run the ledger against PostgreSQL in production
2. Use in-memory storage for testing
3. Keep ledger rules decoupled from storage implementation

Every ledger operation runs inside storage.transaction(*lock_keys). The
transaction holds an exclusive lock on each key ("budget:<id>",
"goal:<id>", ...) until it ends, so a balance check and the write that
depends on it can never interleave with another writer on the same scope.
A transaction either commits all of its writes or none of them.

The interface is intentionally small - generic get/find/insert/update/delete
over the row models plus an append-only history log. We're not building a
full ORM.
"""

from abc import ABC, abstractmethod
from contextlib import AbstractAsyncContextManager
from typing import Any, Optional, TypeVar
from uuid import UUID

from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from household_ledger.models.history import HistoryEntry
from household_ledger.models.ledger import LedgerRow

RowT = TypeVar("RowT", bound=LedgerRow)
HistoryT = TypeVar("HistoryT", bound=HistoryEntry)


def lock_key(scope: str, entity_id: Any) -> str:
    """Name of the lock guarding one entity, e.g. lock_key("goal", id)."""
    return f"{scope}:{entity_id}"


class LedgerSession(ABC):
    """
    Reads and writes inside one storage transaction.

    Rows are filtered by user_id on every read: a row owned by someone else
    is indistinguishable from a missing row.
    """

    @abstractmethod
    async def get(
        self,
        kind: type[RowT],
        row_id: UUID,
        user_id: UUID,
    ) -> Optional[RowT]:
        """
        Retrieve one row by ID.

        Returns:
            The row if found and owned by user_id, None otherwise
        """
        pass

    @abstractmethod
    async def find(
        self,
        kind: type[RowT],
        user_id: UUID,
        **filters: Any,
    ) -> list[RowT]:
        """
        List rows whose fields equal every given filter value.

        Args:
            kind: Row model class
            user_id: Owner
            **filters: field_name=value equality filters (None matches null)

        Returns:
            Matching rows ordered by created_at
        """
        pass

    @abstractmethod
    async def insert(self, row: RowT) -> RowT:
        """
        Insert a new row.

        Raises:
            DuplicateError: If a row with the same ID exists
        """
        pass

    @abstractmethod
    async def update(self, row: RowT) -> RowT:
        """
        Replace a stored row with this version.

        Raises:
            NotFoundError: If the row doesn't exist
        """
        pass

    @abstractmethod
    async def delete(self, kind: type[LedgerRow], row_id: UUID, user_id: UUID) -> bool:
        """
        Delete a row by ID.

        Returns:
            True if a row was deleted
        """
        pass

    @abstractmethod
    async def append_history(self, entry: HistoryEntry) -> None:
        """
        Append a history entry. History is never updated or deleted.
        """
        pass

    @abstractmethod
    async def list_history(
        self,
        kind: type[HistoryT],
        user_id: UUID,
        **filters: Any,
    ) -> list[HistoryT]:
        """
        List history entries matching the filters, newest first.
        """
        pass


class LedgerStorageInterface(ABC):
    """
    Abstract interface for ledger storage.

    Any storage implementation (PostgreSQL, in-memory, etc.)
    must implement these methods.
    """

    @abstractmethod
    def transaction(self, *lock_keys: str) -> AbstractAsyncContextManager[LedgerSession]:
        """
        Open a transaction holding exclusive locks on lock_keys.

        Usage:
            async with storage.transaction(lock_key("goal", goal_id)) as session:
                ...

        Leaving the block normally commits. An exception rolls back every
        write made through the session and propagates unchanged.

        Raises:
            ConcurrencyError: If the backend aborted the transaction because
                of a concurrent writer. The whole operation may be retried.
        """
        pass

    async def close(self) -> None:
        """Release backend resources."""
        return None


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class StorageConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass


class ConcurrencyError(StorageError):
    """A concurrent writer forced this transaction to abort; safe to retry."""
    pass


def retry_on_conflict(attempts: int = 5):
    """
    Re-run a whole ledger operation when its transaction lost a race.

    The decorated coroutine must open its own transaction so the retry
    re-reads and re-validates everything.
    """
    return retry(
        retry=retry_if_exception_type(ConcurrencyError),
        stop=stop_after_attempt(attempts),
        wait=wait_exponential(multiplier=0.05, min=0.05, max=1),
        reraise=True,
    )

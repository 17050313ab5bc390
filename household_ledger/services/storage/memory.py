"""
In-Memory Storage Implementation

Used by the test suite and for running the ledger without a database.

Transactions are real: each lock key maps to an asyncio.Lock, and every
write made through a session is recorded in an undo log that is replayed
in reverse if the transaction body raises. Locks are taken in sorted order
so two transactions asking for overlapping keys cannot deadlock.

Rows are copied on the way in and on the way out, so callers can never
mutate stored state without going through the session.
"""

import asyncio
from collections import defaultdict
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Callable, Optional
from uuid import UUID

from household_ledger.models.history import HistoryEntry
from household_ledger.models.ledger import LedgerRow
from household_ledger.services.storage.interface import (
    DuplicateError,
    HistoryT,
    LedgerSession,
    LedgerStorageInterface,
    RowT,
)
from household_ledger.validation.errors import NotFoundError


def _matches(item: Any, filters: dict[str, Any]) -> bool:
    for field, expected in filters.items():
        actual = getattr(item, field)
        if hasattr(actual, "value") and not hasattr(expected, "value"):
            actual = actual.value
        if actual != expected:
            return False
    return True


class InMemoryLedgerSession(LedgerSession):
    """Session over InMemoryLedgerStorage's tables with an undo log."""

    def __init__(self, storage: "InMemoryLedgerStorage"):
        self._storage = storage
        self._undo: list[Callable[[], None]] = []

    def _table(self, kind: type) -> dict[UUID, LedgerRow]:
        return self._storage._tables[kind.__name__]

    async def get(self, kind: type[RowT], row_id: UUID, user_id: UUID) -> Optional[RowT]:
        row = self._table(kind).get(row_id)
        if row is None or row.user_id != user_id:
            return None
        return row.model_copy(deep=True)

    async def find(self, kind: type[RowT], user_id: UUID, **filters: Any) -> list[RowT]:
        rows = [
            row for row in self._table(kind).values()
            if row.user_id == user_id and _matches(row, filters)
        ]
        rows.sort(key=lambda r: r.created_at)
        return [row.model_copy(deep=True) for row in rows]

    async def insert(self, row: RowT) -> RowT:
        table = self._table(type(row))
        if row.id in table:
            raise DuplicateError(f"{type(row).__name__} {row.id} already exists")
        table[row.id] = row.model_copy(deep=True)
        self._undo.append(lambda: table.pop(row.id, None))
        return row.model_copy(deep=True)

    async def update(self, row: RowT) -> RowT:
        table = self._table(type(row))
        previous = table.get(row.id)
        if previous is None or previous.user_id != row.user_id:
            raise NotFoundError(type(row).__name__, row.id)
        table[row.id] = row.model_copy(deep=True)
        self._undo.append(lambda: table.__setitem__(row.id, previous))
        return row.model_copy(deep=True)

    async def delete(self, kind: type[LedgerRow], row_id: UUID, user_id: UUID) -> bool:
        table = self._table(kind)
        previous = table.get(row_id)
        if previous is None or previous.user_id != user_id:
            return False
        del table[row_id]
        self._undo.append(lambda: table.__setitem__(row_id, previous))
        return True

    async def append_history(self, entry: HistoryEntry) -> None:
        log = self._storage._history[type(entry).__name__]
        log.append(entry.model_copy(deep=True))
        self._undo.append(lambda: log.remove(entry))

    async def list_history(self, kind: type[HistoryT], user_id: UUID, **filters: Any) -> list[HistoryT]:
        entries = [
            entry for entry in self._storage._history[kind.__name__]
            if entry.user_id == user_id and _matches(entry, filters)
        ]
        entries.sort(key=lambda e: e.changed_at, reverse=True)
        return [entry.model_copy(deep=True) for entry in entries]

    def rollback(self) -> None:
        while self._undo:
            self._undo.pop()()


class InMemoryLedgerStorage(LedgerStorageInterface):
    """
    Dictionary-backed implementation of ledger storage.

    Tables are keyed by row model class name.
    """

    def __init__(self):
        self._tables: dict[str, dict[UUID, LedgerRow]] = defaultdict(dict)
        self._history: dict[str, list[HistoryEntry]] = defaultdict(list)
        self._locks: dict[str, asyncio.Lock] = {}

    def _lock(self, key: str) -> asyncio.Lock:
        if key not in self._locks:
            self._locks[key] = asyncio.Lock()
        return self._locks[key]

    @asynccontextmanager
    async def transaction(self, *lock_keys: str) -> AsyncIterator[InMemoryLedgerSession]:
        acquired: list[asyncio.Lock] = []
        try:
            for key in sorted(set(lock_keys)):
                lock = self._lock(key)
                await lock.acquire()
                acquired.append(lock)

            session = InMemoryLedgerSession(self)
            try:
                yield session
            except BaseException:
                session.rollback()
                raise
        finally:
            for lock in reversed(acquired):
                lock.release()

    def row_count(self, kind: type[LedgerRow]) -> int:
        """Number of stored rows of a kind, across all users."""
        return len(self._tables[kind.__name__])

    def history_count(self, kind: type[HistoryEntry]) -> int:
        return len(self._history[kind.__name__])

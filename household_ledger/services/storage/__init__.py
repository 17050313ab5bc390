"""
Storage Services Package

Provides the abstract storage interface and its backends.
"""

from household_ledger.services.storage.interface import (
    ConcurrencyError,
    DuplicateError,
    LedgerSession,
    LedgerStorageInterface,
    StorageConnectionError,
    StorageError,
    lock_key,
    retry_on_conflict,
)
from household_ledger.services.storage.memory import InMemoryLedgerStorage

__all__ = [
    "ConcurrencyError",
    "DuplicateError",
    "InMemoryLedgerStorage",
    "LedgerSession",
    "LedgerStorageInterface",
    "StorageConnectionError",
    "StorageError",
    "lock_key",
    "retry_on_conflict",
]

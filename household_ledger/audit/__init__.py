"""History and event logging package."""

from household_ledger.audit.logger import HistoryLogger

__all__ = ["HistoryLogger"]

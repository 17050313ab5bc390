"""
History Logger

DESIGN DECISION: Every change to a budget definition is recorded.
This provides:
1. Complete traceability of budget edits
2. Debugging capability
3. The data behind "how did this category change over time"

The history logger:
- Appends history rows through the caller's storage session, so the entry
  commits or rolls back together with the change it describes
- Mirrors every entry and ledger event to the structured local log
- Never swallows storage failures: a change without its history entry
  must not commit
"""

from typing import Any

import structlog

from household_ledger.models.history import HistoryEntry
from household_ledger.services.storage.interface import LedgerSession


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class HistoryLogger:
    """
    Central history and event logging service.

    Logs entries both to:
    1. Structured local log (for debugging)
    2. The append-only history tables (for persistence and user visibility)
    """

    def __init__(self, debug: bool = False):
        self._logger = structlog.get_logger("household_ledger")
        self._debug = debug

    async def record(self, session: LedgerSession, entry: HistoryEntry) -> None:
        """
        Append a history entry inside the caller's transaction.

        Raises whatever the session raises; the surrounding transaction
        then rolls back the change as well.
        """
        await session.append_history(entry)
        details = entry.to_log_dict()
        if self._debug:
            details.update(old_data=entry.old_data, new_data=entry.new_data)
        self._logger.info("history_recorded", entry_type=type(entry).__name__, **details)

    def event(self, name: str, /, **details: Any) -> None:
        """Log a committed ledger change (contribution, transfer, ...)."""
        self._logger.info(name, **{k: _loggable(v) for k, v in details.items()})

    def rejected(self, operation: str, error: Exception, /, **details: Any) -> None:
        """Log an operation refused by a ledger rule."""
        self._logger.warning(
            "ledger_operation_rejected",
            operation=operation,
            error_type=type(error).__name__,
            error=str(error),
            **{k: _loggable(v) for k, v in details.items()},
        )


def _loggable(value: Any) -> Any:
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    return str(value)

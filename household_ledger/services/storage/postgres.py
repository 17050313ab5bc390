"""
PostgreSQL Storage Implementation

DESIGN DECISION: Every row model lives in one JSONB table keyed by
(kind, id). The ledger's queries are all "rows of a kind owned by a user
whose fields equal X", which JSONB containment (data @> filter) answers
directly, so we don't need one table per model.

History lives in a separate append-only table; a trigger rejects UPDATE
and DELETE on it.

Transactions run at SERIALIZABLE isolation and take a transaction-scoped
advisory lock per lock key, so two writers on the same budget or goal
queue up instead of racing. If PostgreSQL still aborts a transaction with
a serialization failure, the session raises ConcurrencyError and the ledger
operation is retried as a whole (see retry_on_conflict).
"""

import json
from contextlib import asynccontextmanager
from enum import Enum
from typing import Any, AsyncIterator, Optional
from uuid import UUID

import asyncpg
import structlog
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from household_ledger.config import PostgresSettings, get_settings
from household_ledger.models.history import HistoryEntry
from household_ledger.models.ledger import LedgerRow
from household_ledger.services.storage.interface import (
    ConcurrencyError,
    DuplicateError,
    HistoryT,
    LedgerSession,
    LedgerStorageInterface,
    RowT,
    StorageConnectionError,
    StorageError,
)
from household_ledger.validation.errors import NotFoundError

logger = structlog.get_logger()


SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS ledger_rows (
    kind        TEXT        NOT NULL,
    id          UUID        NOT NULL,
    user_id     UUID        NOT NULL,
    data        JSONB       NOT NULL,
    created_at  TIMESTAMPTZ NOT NULL,
    updated_at  TIMESTAMPTZ NOT NULL,
    PRIMARY KEY (kind, id)
);

CREATE INDEX IF NOT EXISTS idx_ledger_rows_owner
    ON ledger_rows (user_id, kind, created_at);

CREATE INDEX IF NOT EXISTS idx_ledger_rows_data
    ON ledger_rows USING GIN (data jsonb_path_ops);

CREATE TABLE IF NOT EXISTS ledger_history (
    id          UUID        PRIMARY KEY,
    kind        TEXT        NOT NULL,
    user_id     UUID        NOT NULL,
    data        JSONB       NOT NULL,
    changed_at  TIMESTAMPTZ NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_ledger_history_owner
    ON ledger_history (user_id, kind, changed_at DESC);

CREATE OR REPLACE FUNCTION ledger_history_append_only() RETURNS trigger
LANGUAGE plpgsql AS $$
BEGIN
    RAISE EXCEPTION 'ledger_history is append-only';
END;
$$;

DROP TRIGGER IF EXISTS ledger_history_no_rewrite ON ledger_history;
CREATE TRIGGER ledger_history_no_rewrite
    BEFORE UPDATE OR DELETE ON ledger_history
    FOR EACH ROW EXECUTE FUNCTION ledger_history_append_only();
"""

# Errors PostgreSQL raises when a concurrent writer wins
_RETRYABLE = (asyncpg.exceptions.SerializationError, asyncpg.exceptions.DeadlockDetectedError)


def _json_value(value: Any) -> Any:
    """Coerce a filter value to what model_dump(mode="json") would store."""
    if isinstance(value, Enum):
        return value.value
    if value is None or isinstance(value, (bool, int, str)):
        return value
    return str(value)


def _parse_jsonb(value: Any) -> dict[str, Any]:
    """Parse a JSONB value (may be a string or already a dict)."""
    if isinstance(value, str):
        return json.loads(value)
    return dict(value)


class PostgresLedgerSession(LedgerSession):
    """Session bound to one connection inside an open transaction."""

    def __init__(self, conn: asyncpg.Connection):
        self._conn = conn

    async def get(self, kind: type[RowT], row_id: UUID, user_id: UUID) -> Optional[RowT]:
        record = await self._conn.fetchrow(
            "SELECT data FROM ledger_rows WHERE kind = $1 AND id = $2 AND user_id = $3",
            kind.__name__, row_id, user_id,
        )
        if record is None:
            return None
        return kind.model_validate(_parse_jsonb(record["data"]))

    async def find(self, kind: type[RowT], user_id: UUID, **filters: Any) -> list[RowT]:
        containment = json.dumps({field: _json_value(v) for field, v in filters.items()})
        records = await self._conn.fetch(
            """
            SELECT data FROM ledger_rows
            WHERE kind = $1 AND user_id = $2 AND data @> $3::jsonb
            ORDER BY created_at, id
            """,
            kind.__name__, user_id, containment,
        )
        return [kind.model_validate(_parse_jsonb(r["data"])) for r in records]

    async def insert(self, row: RowT) -> RowT:
        try:
            await self._conn.execute(
                """
                INSERT INTO ledger_rows (kind, id, user_id, data, created_at, updated_at)
                VALUES ($1, $2, $3, $4::jsonb, $5, $6)
                """,
                type(row).__name__, row.id, row.user_id,
                json.dumps(row.model_dump(mode="json")),
                row.created_at, row.updated_at,
            )
        except asyncpg.exceptions.UniqueViolationError:
            raise DuplicateError(f"{type(row).__name__} {row.id} already exists")
        return row

    async def update(self, row: RowT) -> RowT:
        status = await self._conn.execute(
            """
            UPDATE ledger_rows SET data = $4::jsonb, updated_at = $5
            WHERE kind = $1 AND id = $2 AND user_id = $3
            """,
            type(row).__name__, row.id, row.user_id,
            json.dumps(row.model_dump(mode="json")), row.updated_at,
        )
        if status == "UPDATE 0":
            raise NotFoundError(type(row).__name__, row.id)
        return row

    async def delete(self, kind: type[LedgerRow], row_id: UUID, user_id: UUID) -> bool:
        status = await self._conn.execute(
            "DELETE FROM ledger_rows WHERE kind = $1 AND id = $2 AND user_id = $3",
            kind.__name__, row_id, user_id,
        )
        return status != "DELETE 0"

    async def append_history(self, entry: HistoryEntry) -> None:
        await self._conn.execute(
            """
            INSERT INTO ledger_history (id, kind, user_id, data, changed_at)
            VALUES ($1, $2, $3, $4::jsonb, $5)
            """,
            entry.id, type(entry).__name__, entry.user_id,
            json.dumps(entry.model_dump(mode="json")), entry.changed_at,
        )

    async def list_history(self, kind: type[HistoryT], user_id: UUID, **filters: Any) -> list[HistoryT]:
        containment = json.dumps({field: _json_value(v) for field, v in filters.items()})
        records = await self._conn.fetch(
            """
            SELECT data FROM ledger_history
            WHERE kind = $1 AND user_id = $2 AND data @> $3::jsonb
            ORDER BY changed_at DESC, id
            """,
            kind.__name__, user_id, containment,
        )
        return [kind.model_validate(_parse_jsonb(r["data"])) for r in records]


class PostgresLedgerStorage(LedgerStorageInterface):
    """
    asyncpg implementation of ledger storage.

    Usage:
        storage = PostgresLedgerStorage()
        await storage.ensure_schema()
        async with storage.transaction("budget:...") as session:
            ...
        await storage.close()
    """

    def __init__(
        self,
        pool: Optional[asyncpg.Pool] = None,
        settings: Optional[PostgresSettings] = None,
    ):
        self._pool = pool
        self._settings = settings

    @property
    def settings(self) -> PostgresSettings:
        if self._settings is None:
            self._settings = get_settings().postgres
        return self._settings

    @retry(
        retry=retry_if_exception_type(StorageConnectionError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def connect(self) -> asyncpg.Pool:
        """Create the connection pool on first use."""
        if self._pool is None:
            try:
                self._pool = await asyncpg.create_pool(
                    dsn=self.settings.dsn,
                    min_size=self.settings.min_pool_size,
                    max_size=self.settings.max_pool_size,
                )
            except (OSError, asyncpg.exceptions.PostgresError) as e:
                raise StorageConnectionError(f"Failed to connect to PostgreSQL: {e}")
            logger.info("ledger_pool_created", min_size=self.settings.min_pool_size)
        return self._pool

    async def ensure_schema(self) -> None:
        """Create tables, indexes and the append-only trigger if missing."""
        pool = await self.connect()
        async with pool.acquire() as conn:
            await conn.execute(SCHEMA_SQL)

    @asynccontextmanager
    async def transaction(self, *lock_keys: str) -> AsyncIterator[PostgresLedgerSession]:
        pool = await self.connect()
        async with pool.acquire() as conn:
            try:
                async with conn.transaction(isolation="serializable"):
                    for key in sorted(set(lock_keys)):
                        await conn.execute("SELECT pg_advisory_xact_lock(hashtext($1))", key)
                    yield PostgresLedgerSession(conn)
            except _RETRYABLE as e:
                logger.warning("ledger_transaction_conflict", lock_keys=sorted(lock_keys), error=str(e))
                raise ConcurrencyError(str(e))
            except asyncpg.exceptions.InterfaceError as e:
                raise StorageError(f"PostgreSQL connection failed: {e}")

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None

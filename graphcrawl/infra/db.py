"""
SQLite access for the frontier and the record store.

One aiosqlite connection, opened on first use. Components register their
DDL up front and it runs before the next statement, so a component created
after the connection is open still gets its tables.
"""

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Dict, Iterable, List, Optional, Tuple

import aiosqlite


logger = logging.getLogger(__name__)


class Database:
    def __init__(self, db_path: str = "graphcrawl.db"):
        self.db_path = Path(db_path)
        self._connection: Optional[aiosqlite.Connection] = None
        self._pending_schema: List[str] = []

    async def connect(self) -> None:
        """Connect to the database and create registered tables."""
        if self._connection:
            return

        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._connection = await aiosqlite.connect(self.db_path, timeout=30)
        self._connection.row_factory = aiosqlite.Row
        await self._connection.execute("PRAGMA journal_mode=WAL;")
        await self._connection.execute("PRAGMA busy_timeout=30000;")
        await self._apply_schema()
        logger.debug("Connected to %s", self.db_path)

    async def close(self) -> None:
        """Close the database connection."""
        if self._connection:
            await self._connection.close()
            self._connection = None

    async def __aenter__(self) -> "Database":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    def register_schema(self, *statements: str) -> None:
        """Register DDL to run before the next statement."""
        self._pending_schema.extend(statements)

    async def _ensure_ready(self) -> None:
        if not self._connection:
            await self.connect()
        elif self._pending_schema:
            await self._apply_schema()

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        """Run the body in one write transaction; roll back on error."""
        await self._ensure_ready()

        try:
            await self._connection.execute("BEGIN IMMEDIATE")
            yield self._connection
            await self._connection.commit()
        except Exception:
            await self._connection.rollback()
            raise

    async def execute(self, sql: str, params: Tuple[Any, ...] = ()) -> aiosqlite.Cursor:
        """Execute a SQL statement."""
        await self._ensure_ready()
        return await self._connection.execute(sql, params)

    async def execute_commit(self, sql: str, params: Tuple[Any, ...] = ()) -> int:
        """Execute a write statement, commit it and return the affected row count."""
        cursor = await self.execute(sql, params)
        await self._connection.commit()
        return cursor.rowcount

    async def fetch_one(self, sql: str, params: Tuple[Any, ...] = ()) -> Optional[aiosqlite.Row]:
        """Fetch one row."""
        cursor = await self.execute(sql, params)
        return await cursor.fetchone()

    async def fetch_all(self, sql: str, params: Tuple[Any, ...] = ()) -> List[aiosqlite.Row]:
        """Fetch all rows."""
        cursor = await self.execute(sql, params)
        return await cursor.fetchall()

    async def fetch_value(self, sql: str, params: Tuple[Any, ...] = (), default: Any = None) -> Any:
        """Fetch the first column of the first row."""
        row = await self.fetch_one(sql, params)
        if row is None or row[0] is None:
            return default
        return row[0]

    async def upsert(
        self,
        table: str,
        data: Dict[str, Any],
        pk_columns: List[str],
    ) -> None:
        """Upsert data into a table.

        Only the columns present in ``data`` are written, so passing a subset
        patches an existing row without touching the other columns.
        """
        columns = list(data.keys())
        values = list(data.values())

        update_columns = [col for col in columns if col not in pk_columns]
        if update_columns:
            update_clause = ", ".join(f"{col} = excluded.{col}" for col in update_columns)
            conflict_clause = f"ON CONFLICT({', '.join(pk_columns)}) DO UPDATE SET {update_clause}"
        else:
            conflict_clause = f"ON CONFLICT({', '.join(pk_columns)}) DO NOTHING"

        sql = f"""
            INSERT INTO {table} ({', '.join(columns)})
            VALUES ({self.placeholders(columns)})
            {conflict_clause}
        """

        await self.execute_commit(sql, tuple(values))

    @staticmethod
    def placeholders(values: Iterable[Any]) -> str:
        return ", ".join("?" for _ in values)

    async def _apply_schema(self) -> None:
        pending, self._pending_schema = self._pending_schema, []
        for ddl in pending:
            await self._connection.execute(ddl)
        await self._connection.commit()

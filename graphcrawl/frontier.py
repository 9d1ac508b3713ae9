"""
Durable crawl frontier.

A deduplicated, priority-ordered queue of item ids stored in SQLite, so an
interrupted crawl resumes exactly where it stopped.

Ordering is LIFO by discovery time: ``pop_batch`` returns the highest
priority first, and priorities grow with every push. That keeps the crawl on
the local cluster of freshly discovered items instead of fanning out
breadth-first. The autoincrement row id breaks any remaining ties.
"""

from __future__ import annotations

import logging
import time
from typing import Iterable, List, Optional

from .infra.db import Database
from .models import FrontierItem

logger = logging.getLogger(__name__)


_DDL = (
    """
    CREATE TABLE IF NOT EXISTS waiting_list (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        item_id TEXT NOT NULL UNIQUE,
        priority INTEGER NOT NULL,
        attempts INTEGER NOT NULL DEFAULT 0
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_waiting_list_priority ON waiting_list (priority)",
)


class Frontier:
    """Persistent work queue of item ids awaiting extraction.

    Single-writer: the one controller owning the crawl is the only caller.
    """

    def __init__(self, db: Database, *, max_attempts: int = 3):
        self.db = db
        self.max_attempts = max_attempts
        self._last_priority: Optional[int] = None
        db.register_schema(*_DDL)

    async def _next_priority(self) -> int:
        if self._last_priority is None:
            self._last_priority = await self.db.fetch_value(
                "SELECT MAX(priority) FROM waiting_list", default=0
            )
        # Wall-clock milliseconds, bumped so that pushes within the same
        # millisecond (or after a clock step back) stay strictly increasing.
        self._last_priority = max(int(time.time() * 1000), self._last_priority + 1)
        return self._last_priority

    async def push(self, item_id: str, priority: Optional[int] = None) -> bool:
        """Queue ``item_id`` unless it is already queued.

        Returns True if a new entry was inserted. Duplicates are expected and
        silently ignored.
        """
        if priority is None:
            priority = await self._next_priority()
        elif self._last_priority is not None and priority > self._last_priority:
            self._last_priority = priority
        inserted = await self.db.execute_commit(
            """
            INSERT INTO waiting_list (item_id, priority)
            VALUES (?, ?)
            ON CONFLICT(item_id) DO NOTHING
            """,
            (item_id, priority),
        )
        if inserted:
            logger.debug("Queued %s (priority=%d)", item_id, priority)
        return bool(inserted)

    async def push_many(self, item_ids: Iterable[str]) -> int:
        added = 0
        for item_id in item_ids:
            if await self.push(item_id):
                added += 1
        return added

    async def pop_batch(self, n: int) -> List[FrontierItem]:
        """Remove and return up to ``n`` items, most recently queued first."""
        if n <= 0:
            return []

        async with self.db.transaction() as conn:
            cursor = await conn.execute(
                """
                SELECT id, item_id, priority, attempts FROM waiting_list
                ORDER BY priority DESC, id DESC
                LIMIT ?
                """,
                (n,),
            )
            rows = await cursor.fetchall()
            if rows:
                row_ids = [row["id"] for row in rows]
                await conn.execute(
                    f"DELETE FROM waiting_list WHERE id IN ({Database.placeholders(row_ids)})",
                    tuple(row_ids),
                )

        return [
            FrontierItem(item_id=row["item_id"], priority=row["priority"], attempts=row["attempts"])
            for row in rows
        ]

    async def requeue(self, item: FrontierItem) -> bool:
        """Put a failed item back at the bottom of the queue.

        Returns False once the item has used up its attempts (or is already
        queued again through discovery).
        """
        attempts = item.attempts + 1
        if attempts >= self.max_attempts:
            logger.warning(
                "Giving up on %s after %d failed attempt(s)", item.item_id, attempts
            )
            return False

        lowest = await self.db.fetch_value("SELECT MIN(priority) FROM waiting_list")
        priority = (lowest - 1) if lowest is not None else 0
        inserted = await self.db.execute_commit(
            """
            INSERT INTO waiting_list (item_id, priority, attempts)
            VALUES (?, ?, ?)
            ON CONFLICT(item_id) DO NOTHING
            """,
            (item.item_id, priority, attempts),
        )
        return bool(inserted)

    async def contains(self, item_id: str) -> bool:
        row = await self.db.fetch_one(
            "SELECT 1 FROM waiting_list WHERE item_id = ?", (item_id,)
        )
        return row is not None

    async def size(self) -> int:
        return await self.db.fetch_value("SELECT COUNT(*) FROM waiting_list", default=0)

    async def clear(self) -> int:
        """Empty the frontier. Returns the number of entries removed."""
        removed = await self.db.execute_commit("DELETE FROM waiting_list")
        self._last_priority = None
        logger.info("Frontier cleared (%d entries removed)", removed)
        return removed

"""
Record store: items and relations persisted through :class:`Database`.

Multi-value item fields are stored delimiter-joined: tags with commas;
secondary tags, contributors and participants with pipes (their values may
contain commas, as in "Sammy Davis, Jr.").
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional, Set

from ..models import ItemRecord, RelationRecord
from .db import Database

logger = logging.getLogger(__name__)

# SQLite caps the number of bound parameters per statement
_CHUNK = 500

_LIST_DELIMITERS = {
    "tags": ",",
    "secondary_tags": "|",
    "contributors": "|",
    "participants": "|",
}

_ITEMS_DDL = """
    CREATE TABLE IF NOT EXISTS items (
        item_id TEXT PRIMARY KEY,
        title TEXT NOT NULL DEFAULT '',
        year INTEGER NOT NULL DEFAULT 0,
        popularity INTEGER NOT NULL DEFAULT 0,
        score REAL NOT NULL DEFAULT 0,
        synopsis TEXT NOT NULL DEFAULT '',
        tags TEXT NOT NULL DEFAULT '',
        secondary_tags TEXT NOT NULL DEFAULT '',
        contributors TEXT NOT NULL DEFAULT '',
        participants TEXT NOT NULL DEFAULT '',
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
"""

_RELATIONS_DDL = (
    """
    CREATE TABLE IF NOT EXISTS relations (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        actor_id TEXT NOT NULL,
        item_id TEXT NOT NULL,
        rating INTEGER,
        review_text TEXT NOT NULL DEFAULT '',
        fingerprint TEXT NOT NULL UNIQUE,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_relations_item ON relations (item_id)",
    "CREATE INDEX IF NOT EXISTS idx_relations_actor ON relations (actor_id)",
)

_INCOMPLETE_WHERE = " OR ".join(
    f"{col} = ''" if col not in ("year", "popularity", "score") else f"{col} = 0"
    for col in ItemRecord.CONTENT_FIELDS
)


def _chunks(values: List[str], size: int = _CHUNK) -> Iterable[List[str]]:
    for i in range(0, len(values), size):
        yield values[i:i + size]


def encode_field(name: str, value: Any) -> Any:
    delimiter = _LIST_DELIMITERS.get(name)
    if delimiter is None:
        return value
    return delimiter.join(v.strip() for v in value if v and v.strip())


def decode_field(name: str, value: Any) -> Any:
    delimiter = _LIST_DELIMITERS.get(name)
    if delimiter is None:
        return value
    if not value:
        return []
    return [v.strip() for v in value.split(delimiter) if v.strip()]


class ItemRepository:
    """Items table: one row per item id."""

    table = "items"

    def __init__(self, db: Database):
        self.db = db
        db.register_schema(_ITEMS_DDL)

    def _row_to_record(self, row) -> ItemRecord:
        data = {name: decode_field(name, row[name]) for name in ItemRecord.CONTENT_FIELDS}
        return ItemRecord(id=row["item_id"], **data)

    async def upsert(self, record: ItemRecord) -> None:
        data: Dict[str, Any] = {"item_id": record.id}
        for name in ItemRecord.CONTENT_FIELDS:
            data[name] = encode_field(name, getattr(record, name))
        await self.db.upsert(self.table, data, ["item_id"])

    async def patch(self, item_id: str, fields: Dict[str, Any]) -> None:
        """Overwrite only the given fields of an existing item."""
        if not fields:
            return
        unknown = set(fields) - set(ItemRecord.CONTENT_FIELDS)
        if unknown:
            raise ValueError(f"Unknown item fields: {sorted(unknown)}")
        sets = ", ".join(f"{name} = ?" for name in fields)
        values = tuple(encode_field(name, value) for name, value in fields.items())
        await self.db.execute_commit(
            f"UPDATE {self.table} SET {sets}, updated_at = CURRENT_TIMESTAMP WHERE item_id = ?",
            values + (item_id,),
        )

    async def exists(self, item_id: str) -> bool:
        row = await self.db.fetch_one(
            f"SELECT 1 FROM {self.table} WHERE item_id = ?", (item_id,)
        )
        return row is not None

    async def existing_ids(self, item_ids: Iterable[str]) -> Set[str]:
        """Bulk existence check: the subset of ``item_ids`` already stored."""
        wanted = list(dict.fromkeys(item_ids))
        found: Set[str] = set()
        for chunk in _chunks(wanted):
            rows = await self.db.fetch_all(
                f"SELECT item_id FROM {self.table} WHERE item_id IN ({Database.placeholders(chunk)})",
                tuple(chunk),
            )
            found.update(row["item_id"] for row in rows)
        return found

    async def get(self, item_id: str) -> Optional[ItemRecord]:
        row = await self.db.fetch_one(
            f"SELECT * FROM {self.table} WHERE item_id = ?", (item_id,)
        )
        return self._row_to_record(row) if row else None

    async def count(self) -> int:
        return await self.db.fetch_value(f"SELECT COUNT(*) FROM {self.table}", default=0)

    async def count_incomplete(self) -> int:
        return await self.db.fetch_value(
            f"SELECT COUNT(*) FROM {self.table} WHERE {_INCOMPLETE_WHERE}", default=0
        )

    async def find_incomplete(self, limit: Optional[int] = None) -> List[str]:
        sql = f"SELECT item_id FROM {self.table} WHERE {_INCOMPLETE_WHERE} ORDER BY created_at, item_id"
        params: tuple = ()
        if limit is not None:
            sql += " LIMIT ?"
            params = (limit,)
        rows = await self.db.fetch_all(sql, params)
        return [row["item_id"] for row in rows]


class RelationRepository:
    """Relations table, deduplicated by content fingerprint."""

    table = "relations"

    def __init__(self, db: Database):
        self.db = db
        db.register_schema(*_RELATIONS_DDL)

    async def exists_by_fingerprint(self, fingerprint: str) -> bool:
        row = await self.db.fetch_one(
            f"SELECT 1 FROM {self.table} WHERE fingerprint = ?", (fingerprint,)
        )
        return row is not None

    async def insert(self, relation: RelationRecord) -> bool:
        """Insert a relation. Returns False if its fingerprint is already stored."""
        if not relation.fingerprint:
            raise ValueError("Relation has no fingerprint")
        inserted = await self.db.execute_commit(
            f"""
            INSERT INTO {self.table} (actor_id, item_id, rating, review_text, fingerprint)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(fingerprint) DO NOTHING
            """,
            (relation.actor_id, relation.item_id, relation.rating, relation.text, relation.fingerprint),
        )
        return bool(inserted)

    async def for_item(self, item_id: str) -> List[RelationRecord]:
        rows = await self.db.fetch_all(
            f"SELECT * FROM {self.table} WHERE item_id = ? ORDER BY id", (item_id,)
        )
        return [
            RelationRecord(
                actor_id=row["actor_id"],
                item_id=row["item_id"],
                rating=row["rating"],
                text=row["review_text"],
                fingerprint=row["fingerprint"],
            )
            for row in rows
        ]

    async def count(self) -> int:
        return await self.db.fetch_value(f"SELECT COUNT(*) FROM {self.table}", default=0)


class RecordStore:
    """Items and relations sharing one database connection."""

    def __init__(self, db: Database):
        self.db = db
        self.items = ItemRepository(db)
        self.relations = RelationRepository(db)

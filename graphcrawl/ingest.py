"""
Relation ingestion with content-fingerprint deduplication.

The fingerprint, not a primary key, is what keeps a relation from being
stored twice: the same actor surfaces again whenever another item's
expansion reaches them, and re-running their history must be a no-op.
"""

from __future__ import annotations

import hashlib
import json
import logging
import re
import unicodedata
from typing import Any, Optional

from .infra.store import RecordStore
from .models import RelationRecord

logger = logging.getLogger(__name__)

_WS = re.compile(r"\s+")


def canonical_json(obj: Any) -> str:
    return json.dumps(obj, ensure_ascii=False, sort_keys=True, separators=(",", ":"))


def sha256_hexdigest(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def normalize_text(text: Optional[str]) -> str:
    """NFC-normalise and collapse whitespace."""
    if not text:
        return ""
    return _WS.sub(" ", unicodedata.normalize("NFC", text)).strip()


def content_fingerprint(
    actor_id: str, item_id: str, rating: Optional[int], text: Optional[str]
) -> str:
    return sha256_hexdigest(
        canonical_json([actor_id, item_id, rating, normalize_text(text)])
    )


def fingerprint_relation(relation: RelationRecord) -> RelationRecord:
    """Return a copy of ``relation`` with its fingerprint filled in."""
    fp = content_fingerprint(relation.actor_id, relation.item_id, relation.rating, relation.text)
    return relation.model_copy(update={"fingerprint": fp})


async def ingest_relation(store: RecordStore, relation: RelationRecord) -> bool:
    """Store ``relation`` unless an identical one already exists.

    Returns True if a new row was written.
    """
    relation = fingerprint_relation(relation)
    if await store.relations.exists_by_fingerprint(relation.fingerprint):
        return False
    inserted = await store.relations.insert(relation)
    if not inserted:
        logger.debug("Relation %s inserted concurrently, ignoring", relation.fingerprint[:12])
    return inserted

"""
Core data models for the crawler.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import ClassVar, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field


class PageKind(str, Enum):
    """The kinds of page a site profile knows how to read."""
    ITEM = "item"
    LISTING = "listing"
    RELATIONS = "relations"
    ACTOR_HISTORY = "actor_history"


class CrawlState(str, Enum):
    IDLE = "idle"
    SEEDING = "seeding"
    DRAINING = "draining"
    EXPANDING = "expanding"
    TERMINATED = "terminated"


class FrontierItem(BaseModel):
    """An item id waiting in the frontier."""
    item_id: str
    priority: int
    attempts: int = 0


class ItemRecord(BaseModel):
    """A fully or partially extracted item page."""
    id: str
    title: str = ""
    year: int = 0
    popularity: int = 0
    score: float = 0.0
    synopsis: str = ""
    tags: List[str] = Field(default_factory=list)
    secondary_tags: List[str] = Field(default_factory=list)
    contributors: List[str] = Field(default_factory=list)
    participants: List[str] = Field(default_factory=list)

    # Every field except the id takes part in completeness checks
    CONTENT_FIELDS: ClassVar[Tuple[str, ...]] = (
        "title",
        "year",
        "popularity",
        "score",
        "synopsis",
        "tags",
        "secondary_tags",
        "contributors",
        "participants",
    )

    def missing_fields(self) -> List[str]:
        return [name for name in self.CONTENT_FIELDS if not getattr(self, name)]

    @property
    def is_complete(self) -> bool:
        return not self.missing_fields()


class RelationRecord(BaseModel):
    """A relation (review) an actor left on an item."""
    actor_id: str
    item_id: str
    rating: Optional[int] = None
    text: str = ""
    fingerprint: str = ""


class CrawlProgress(BaseModel):
    """Ephemeral counters for a single run."""
    processed: int = 0
    failed: int = 0
    skipped: int = 0
    requeued: int = 0
    relations_stored: int = 0
    ids_discovered: int = 0
    listing_page: int = 1
    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class CrawlStatus(BaseModel):
    """Snapshot returned by the control surface."""
    frontier_size: int
    state: CrawlState = CrawlState.IDLE
    running: bool = False
    job: Optional[str] = None
    progress: Optional[CrawlProgress] = None
    field_misses: Dict[str, int] = Field(default_factory=dict)
    last_error: Optional[str] = None


class RepairReport(BaseModel):
    examined: int = 0
    patched: int = 0
    unchanged: int = 0
    failed: int = 0
    patched_fields: Dict[str, int] = Field(default_factory=dict)

    def as_log_line(self) -> str:
        return (
            f"examined={self.examined} patched={self.patched} "
            f"unchanged={self.unchanged} failed={self.failed}"
        )

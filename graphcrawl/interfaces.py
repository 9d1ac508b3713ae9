"""
Core interfaces for the crawler.

The crawl loop only ever talks to these abstractions: a fetcher that turns a
URL into a queryable :class:`Document`, and a :class:`SiteProfile` that knows
the URLs and field locators of one particular site.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, List, Optional, Sequence

from .models import PageKind

if TYPE_CHECKING:
    from .extractor import FieldSpec


class Element(ABC):
    """A single node inside a loaded document."""

    @abstractmethod
    async def text(self) -> str:
        """Visible text content, stripped."""
        ...

    @abstractmethod
    async def attr(self, name: str) -> Optional[str]:
        """Attribute value, or None when the attribute is absent."""
        ...

    @abstractmethod
    async def click(self) -> None:
        """Click the element (used to reveal collapsed content)."""
        ...

    @abstractmethod
    async def find(self, selector: str) -> Optional["Element"]:
        """First descendant matching ``selector``."""
        ...

    @abstractmethod
    async def find_all(self, selector: str) -> List["Element"]:
        """All descendants matching ``selector``."""
        ...


class Document(ABC):
    """A loaded, queryable page."""

    url: str

    @abstractmethod
    async def find(self, selector: str) -> Optional[Element]:
        ...

    @abstractmethod
    async def find_all(self, selector: str) -> List[Element]:
        ...

    @abstractmethod
    async def wait_for(self, selector: str, timeout_ms: int) -> bool:
        """Wait until ``selector`` is present. Returns False on timeout."""
        ...

    async def close(self) -> None:
        """Release any resources held by the document."""
        pass

    async def __aenter__(self) -> "Document":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()


class DocumentFetcher(ABC):
    """Abstract base class for document fetchers.

    ``load`` raises :class:`~graphcrawl.errors.PageLoadError` when the page
    itself cannot be loaded. Everything after that is the extractor's problem.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable name for this fetcher."""
        pass

    @abstractmethod
    async def load(self, url: str) -> Document:
        pass

    async def close(self) -> None:
        pass

    async def __aenter__(self) -> "DocumentFetcher":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()


# Field names the crawl loop reads from each page kind
LISTING_IDS = "item_ids"  # listing: ids of candidate items
RELATION_ACTORS = "actor_ids"  # relations: ids of actors on an item
HISTORY_ITEM = "item_id"  # actor history rows: related item id
HISTORY_RATING = "rating"  # actor history rows: optional rating
HISTORY_TEXT = "text"  # actor history rows: relation text


class SiteProfile(ABC):
    """URLs and field locators for one site.

    Plugins subclass this; :mod:`graphcrawl.plugin_loader` discovers them.
    Item page fields are named after :class:`~graphcrawl.models.ItemRecord`
    attributes; the other page kinds use the field names defined above.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        pass

    @abstractmethod
    def listing_url(self, page: int) -> str:
        """URL of the ``page``-th seed listing (1-based)."""
        pass

    @abstractmethod
    def item_url(self, item_id: str) -> str:
        pass

    @abstractmethod
    def relations_url(self, item_id: str) -> str:
        """URL listing the actors who left relations on an item."""
        pass

    @abstractmethod
    def actor_url(self, actor_id: str) -> str:
        """URL of an actor's relation history."""
        pass

    @abstractmethod
    def fields(self, kind: PageKind) -> Sequence["FieldSpec"]:
        """Field specs for a page kind (for row kinds: the per-row fields)."""
        pass

    def row_selector(self, kind: PageKind) -> Optional[str]:
        """Selector for repeated rows, or None for single-record pages."""
        return None

    def ready_selector(self, kind: PageKind) -> Optional[str]:
        """Selector to wait for before extracting, if any."""
        return None

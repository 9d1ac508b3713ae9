"""
A tiny fake site for the test suite: a SiteProfile with plain selectors,
HTML builders for each page kind and a fetcher that serves canned pages
through the real BeautifulSoup document adapter.
"""

from html import escape
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import aiohttp

from graphcrawl.extractor import FieldKind, FieldSpec, Locator
from graphcrawl.infra.soup import HttpFetcher
from graphcrawl.interfaces import (
    HISTORY_ITEM,
    HISTORY_RATING,
    HISTORY_TEXT,
    LISTING_IDS,
    RELATION_ACTORS,
    SiteProfile,
)
from graphcrawl.models import PageKind

BASE = "https://toy.test"


class ToySite(SiteProfile):
    name = "toy"

    def listing_url(self, page: int) -> str:
        return f"{BASE}/list/{page}"

    def item_url(self, item_id: str) -> str:
        return f"{BASE}/item/{item_id}"

    def relations_url(self, item_id: str) -> str:
        return f"{BASE}/item/{item_id}/actors"

    def actor_url(self, actor_id: str) -> str:
        return f"{BASE}/actor/{actor_id}"

    def fields(self, kind: PageKind) -> Sequence[FieldSpec]:
        return FIELDS[kind]

    def row_selector(self, kind: PageKind) -> Optional[str]:
        return "div.row" if kind is PageKind.ACTOR_HISTORY else None


FIELDS = {
    PageKind.ITEM: (
        FieldSpec("title", [Locator("h1.title"), Locator("meta[name='title']", attr="content")]),
        FieldSpec("year", [Locator("span.year")], kind=FieldKind.INT),
        FieldSpec("popularity", [Locator("span.pop")], kind=FieldKind.INT),
        FieldSpec("score", [Locator("span.score")], kind=FieldKind.FLOAT),
        FieldSpec("synopsis", [Locator("p.synopsis")]),
        FieldSpec("tags", [Locator("ul.tags li")], kind=FieldKind.LIST),
        FieldSpec("secondary_tags", [Locator("ul.themes li")], kind=FieldKind.LIST),
        FieldSpec("contributors", [Locator("ul.crew li")], kind=FieldKind.LIST),
        FieldSpec("participants", [Locator("ul.cast li")], kind=FieldKind.LIST, limit=3),
    ),
    PageKind.LISTING: (
        FieldSpec(LISTING_IDS, [Locator("a.item", attr="data-id")], kind=FieldKind.LIST),
    ),
    PageKind.RELATIONS: (
        FieldSpec(RELATION_ACTORS, [Locator("a.actor", attr="data-id")], kind=FieldKind.LIST),
    ),
    PageKind.ACTOR_HISTORY: (
        FieldSpec(HISTORY_ITEM, [Locator("a.item", attr="data-id")]),
        FieldSpec(HISTORY_RATING, [Locator("span.rating")], kind=FieldKind.INT),
        FieldSpec(HISTORY_TEXT, [Locator("p.text")]),
    ),
}


def _ul(css: str, values: Optional[Iterable[str]]) -> str:
    if values is None:
        return ""
    items = "".join(f"<li>{escape(v)}</li>" for v in values)
    return f'<ul class="{css}">{items}</ul>'


def item_page(
    title: Optional[str] = "A Film",
    year: Optional[str] = "2001",
    popularity: Optional[str] = "1,234",
    score: Optional[str] = "3.5",
    synopsis: Optional[str] = "Something happens.",
    tags: Optional[Sequence[str]] = ("Drama",),
    themes: Optional[Sequence[str]] = ("Love, loss and grief",),
    crew: Optional[Sequence[str]] = ("Some Director",),
    cast: Optional[Sequence[str]] = ("Lead", "Support"),
) -> str:
    """An item page; pass None to leave a field out of the markup."""
    parts = [
        f'<h1 class="title">{escape(title)}</h1>' if title is not None else "",
        f'<span class="year">{year}</span>' if year is not None else "",
        f'<span class="pop">{popularity}</span>' if popularity is not None else "",
        f'<span class="score">{score}</span>' if score is not None else "",
        f'<p class="synopsis">{escape(synopsis)}</p>' if synopsis is not None else "",
        _ul("tags", tags),
        _ul("themes", themes),
        _ul("crew", crew),
        _ul("cast", cast),
    ]
    return f"<html><body>{''.join(parts)}</body></html>"


def listing_page(item_ids: Iterable[str]) -> str:
    links = "".join(f'<a class="item" data-id="{i}" href="/item/{i}">{i}</a>' for i in item_ids)
    return f"<html><body>{links}</body></html>"


def relations_page(actor_ids: Iterable[str]) -> str:
    links = "".join(f'<a class="actor" data-id="{a}" href="/actor/{a}">{a}</a>' for a in actor_ids)
    return f"<html><body>{links}</body></html>"


def history_page(rows: Iterable[Tuple[str, Optional[int], str]]) -> str:
    """Rows of (item_id, rating, text)."""
    parts: List[str] = []
    for item_id, rating, text in rows:
        rating_html = f'<span class="rating">{rating}</span>' if rating is not None else ""
        parts.append(
            f'<div class="row"><a class="item" data-id="{item_id}"></a>'
            f'{rating_html}<p class="text">{escape(text)}</p></div>'
        )
    return f"<html><body>{''.join(parts)}</body></html>"


class FakeFetcher(HttpFetcher):
    """Serves ``pages`` by URL; unknown URLs fail like a dropped connection."""

    def __init__(self, pages: Optional[Dict[str, str]] = None):
        super().__init__()
        self.pages: Dict[str, str] = dict(pages or {})
        self.requests: List[str] = []

    async def _get_html(self, url: str) -> str:
        self.requests.append(url)
        if url not in self.pages:
            raise aiohttp.ClientConnectionError(f"Cannot connect to {url}")
        return self.pages[url]

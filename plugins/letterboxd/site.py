"""
Letterboxd site profile.

Pages used:

* ``/films/popular/page/N/``     listing of popular films (seed)
* ``/film/<slug>/``              film page (item)
* ``/film/<slug>/reviews/``      members who reviewed a film (relations)
* ``/<member>/films/reviews/``   a member's reviews of other films (actor history)

Letterboxd has shipped two generations of poster markup (``data-film-slug``
on ``div.film-poster`` and ``data-item-slug`` on the newer React components),
so every slug lookup tries both before falling back to the link itself.
"""

import re
from typing import Dict, List, Optional, Sequence

from graphcrawl.extractor import FieldKind, FieldSpec, Locator, parse_count, parse_float, parse_year
from graphcrawl.interfaces import (
    HISTORY_ITEM,
    HISTORY_RATING,
    HISTORY_TEXT,
    LISTING_IDS,
    RELATION_ACTORS,
    SiteProfile,
)
from graphcrawl.models import PageKind

BASE_URL = "https://letterboxd.com"

CAST_LIMIT = 10

_RATED_RE = re.compile(r"\brated-(\d{1,2})\b")


def film_slug(value: str) -> str:
    """Slug from a bare slug, a film link or a member's film link.

    ``"parasite-2019"``, ``"/film/parasite-2019/"`` and
    ``"/alice/film/parasite-2019/"`` all give ``"parasite-2019"``.
    """
    value = (value or "").strip()
    if "/" not in value:
        return value
    segments = [s for s in value.split("?")[0].split("/") if s]
    if "film" in segments:
        position = segments.index("film")
        if position + 1 < len(segments):
            return segments[position + 1]
    return ""


def member_id(value: str) -> str:
    """Member name from ``"/alice/"`` or a link below it."""
    segments = [s for s in (value or "").split("/") if s and ":" not in s]
    if segments and segments[0] == "letterboxd.com":
        segments = segments[1:]
    return segments[0] if segments else ""


def parse_rating(value: str) -> int:
    """Rating in half stars (1-10) from a ``rated-N`` class or star glyphs.

    ``"rating -green rated-7"`` -> 7, ``"★★★½"`` -> 7, no rating -> 0.
    """
    if not value:
        return 0
    m = _RATED_RE.search(value)
    if m:
        return int(m.group(1))
    halves = value.count("★") * 2 + value.count("½")
    return min(halves, 10)


def _poster_slug_locators() -> List[Locator]:
    return [
        Locator("div.film-poster", attr="data-film-slug"),
        Locator("[data-item-slug]", attr="data-item-slug"),
        Locator("a[href*='/film/']", attr="href"),
    ]


_ITEM_FIELDS: Sequence[FieldSpec] = (
    FieldSpec(
        "title",
        [
            Locator("h1.filmtitle span.name"),
            Locator("h1.filmtitle"),
            Locator("meta[property='og:title']", attr="content"),
        ],
        parse=lambda raw: re.sub(r"\s*\(\d{4}\)\s*$", "", raw.strip()),
    ),
    FieldSpec(
        "year",
        [
            Locator("div.releaseyear a"),
            Locator("span.releasedate a"),
            Locator("small.number a"),
            Locator("meta[property='og:title']", attr="content"),
        ],
        kind=FieldKind.INT,
        parse=parse_year,
    ),
    FieldSpec(
        "popularity",
        [
            Locator("li.filmstat-watches a", attr="data-original-title"),
            Locator("a.icon-watched", attr="title"),
            Locator("a.icon-watched"),
        ],
        kind=FieldKind.INT,
        parse=parse_count,
    ),
    FieldSpec(
        "score",
        [
            Locator("meta[name='twitter:data2']", attr="content"),
            Locator("span.average-rating a"),
        ],
        kind=FieldKind.FLOAT,
        parse=parse_float,
    ),
    FieldSpec(
        "synopsis",
        [
            Locator("div.review div.truncate p"),
            Locator("div.truncate p"),
            Locator("meta[name='description']", attr="content"),
        ],
    ),
    FieldSpec(
        "tags",
        [
            Locator("#tab-genres a[href*='/films/genre/']"),
            Locator("a[href*='/films/genre/']"),
        ],
        kind=FieldKind.LIST,
    ),
    FieldSpec(
        "secondary_tags",
        [
            Locator("#tab-genres a[href*='/films/theme/'], #tab-genres a[href*='/films/mini-theme/']"),
            Locator("a[href*='/films/theme/'], a[href*='/films/mini-theme/']"),
        ],
        kind=FieldKind.LIST,
    ),
    FieldSpec(
        "contributors",
        [
            Locator("#tab-crew a[href*='/director/']"),
            Locator("p.credits a[href*='/director/']"),
            Locator("meta[name='twitter:data1']", attr="content"),
        ],
        kind=FieldKind.LIST,
    ),
    FieldSpec(
        "participants",
        [
            Locator("#tab-cast .cast-list a.text-slug", reveal="#show-cast-overflow"),
            Locator("a[href*='/actor/']"),
        ],
        kind=FieldKind.LIST,
        limit=CAST_LIMIT,
    ),
)

_LISTING_FIELDS: Sequence[FieldSpec] = (
    FieldSpec(LISTING_IDS, _poster_slug_locators(), kind=FieldKind.LIST, parse=film_slug),
)

_RELATIONS_FIELDS: Sequence[FieldSpec] = (
    FieldSpec(
        RELATION_ACTORS,
        [
            Locator("li.film-detail a.avatar", attr="href"),
            Locator("a.avatar[href]", attr="href"),
            Locator("[data-owner]", attr="data-owner"),
        ],
        kind=FieldKind.LIST,
        parse=member_id,
    ),
)

_HISTORY_ROW_FIELDS: Sequence[FieldSpec] = (
    FieldSpec(HISTORY_ITEM, _poster_slug_locators(), parse=film_slug),
    FieldSpec(
        HISTORY_RATING,
        [
            Locator("span.rating", attr="class"),
            Locator("span.rating"),
        ],
        kind=FieldKind.INT,
        parse=parse_rating,
    ),
    FieldSpec(
        HISTORY_TEXT,
        [
            Locator("div.js-review-body"),
            Locator("div.body-text"),
        ],
    ),
)

_FIELDS: Dict[PageKind, Sequence[FieldSpec]] = {
    PageKind.ITEM: _ITEM_FIELDS,
    PageKind.LISTING: _LISTING_FIELDS,
    PageKind.RELATIONS: _RELATIONS_FIELDS,
    PageKind.ACTOR_HISTORY: _HISTORY_ROW_FIELDS,
}

_READY: Dict[PageKind, str] = {
    PageKind.ITEM: "h1.filmtitle, meta[property='og:title']",
    PageKind.LISTING: "div.film-poster, [data-item-slug]",
    PageKind.RELATIONS: "li.film-detail, a.avatar",
    PageKind.ACTOR_HISTORY: "li.film-detail, article.production-viewing",
}


class LetterboxdSite(SiteProfile):
    """Films, members and reviews on letterboxd.com."""

    def __init__(self, base_url: str = BASE_URL):
        self.base_url = base_url.rstrip("/")

    @property
    def name(self) -> str:
        return "letterboxd"

    def listing_url(self, page: int) -> str:
        return f"{self.base_url}/films/popular/page/{page}/"

    def item_url(self, item_id: str) -> str:
        return f"{self.base_url}/film/{item_id}/"

    def relations_url(self, item_id: str) -> str:
        return f"{self.base_url}/film/{item_id}/reviews/"

    def actor_url(self, actor_id: str) -> str:
        return f"{self.base_url}/{actor_id}/films/reviews/"

    def fields(self, kind: PageKind) -> Sequence[FieldSpec]:
        return _FIELDS[kind]

    def row_selector(self, kind: PageKind) -> Optional[str]:
        if kind is PageKind.ACTOR_HISTORY:
            return "li.film-detail, article.production-viewing"
        return None

    def ready_selector(self, kind: PageKind) -> Optional[str]:
        return _READY.get(kind)

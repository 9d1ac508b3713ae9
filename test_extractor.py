"""
Extractor: parsing helpers, per-field fallbacks, zero defaults and rows.
"""

from typing import List, Optional

import pytest

from fakesite import ToySite, history_page, item_page
from graphcrawl.extractor import (
    Extractor,
    FieldKind,
    FieldSpec,
    Locator,
    clean_text,
    parse_count,
    parse_float,
    parse_year,
    path_segment,
    to_item_record,
)
from graphcrawl.infra.soup import SoupDocument
from graphcrawl.interfaces import Document, Element
from graphcrawl.models import PageKind


@pytest.mark.parametrize(
    "text, expected",
    [
        ("1,234,567", 1_234_567),
        ("Watched by 12 members", 12),
        ("1.2M", 1_200_000),
        ("3.4k", 3_400),
        ("1\u00a0234", 1_234),
        ("n/a", 0),
        ("", 0),
        (None, 0),
    ],
)
def test_parse_count(text, expected):
    assert parse_count(text) == expected


def test_parse_helpers():
    assert parse_float("3.95 out of 5") == 3.95
    assert parse_float("none") == 0.0
    assert parse_year("Parasite (2019)") == 2019
    assert parse_year("soon") == 0
    assert clean_text("  a \n b ") == "a b"
    assert path_segment(1)("/film/parasite-2019/") == "parasite-2019"
    assert path_segment(3)("/film/parasite-2019/") == ""


def _doc(html: str) -> SoupDocument:
    return SoupDocument("https://toy.test/page", html)


async def test_complete_item_page():
    extractor = Extractor(ToySite())
    result = await extractor.extract(_doc(item_page()), PageKind.ITEM)

    assert result.complete
    record = to_item_record("a", result)
    assert record.title == "A Film"
    assert record.year == 2001
    assert record.popularity == 1234
    assert record.score == 3.5
    assert record.secondary_tags == ["Love, loss and grief"]
    assert record.is_complete


async def test_missing_fields_default_without_failing_the_page():
    extractor = Extractor(ToySite())
    html = item_page(synopsis=None, cast=None, popularity="unknown")

    result = await extractor.extract(_doc(html), PageKind.ITEM)

    assert sorted(result.missing) == ["participants", "popularity", "synopsis"]
    assert result.values["synopsis"] == ""
    assert result.values["participants"] == []
    assert result.values["popularity"] == 0
    # the other fields are unaffected
    assert result.values["title"] == "A Film"
    assert result.values["tags"] == ["Drama"]
    assert extractor.field_misses["item.synopsis"] == 1
    assert extractor.field_misses["item.title"] == 0


async def test_fallback_locator_is_used_when_primary_misses():
    extractor = Extractor(ToySite())
    html = item_page(title=None).replace("<body>", '<body><meta name="title" content="Backup Title">')

    result = await extractor.extract(_doc(html), PageKind.ITEM)

    assert result.values["title"] == "Backup Title"
    assert "title" not in result.missing


async def test_empty_primary_falls_through_to_fallback():
    spec = FieldSpec("title", [Locator("h1"), Locator("h2")])
    result = await Extractor(ToySite()).extract_fields(_doc("<h1>  </h1><h2>Second</h2>"), [spec])

    assert result.values == {"title": "Second"}


async def test_parse_error_moves_on_to_next_locator():
    def strict(raw: str) -> int:
        return int(raw)

    spec = FieldSpec("year", [Locator("span.a"), Locator("span.b")], kind=FieldKind.INT, parse=strict)
    result = await Extractor(ToySite()).extract_fields(
        _doc('<span class="a">soon</span><span class="b">1999</span>'), [spec]
    )

    assert result.values["year"] == 1999


async def test_list_fields_are_deduplicated_and_capped():
    extractor = Extractor(ToySite())
    html = item_page(cast=["A", "B", "A", "C", "D", "E"])

    result = await extractor.extract(_doc(html), PageKind.ITEM)

    assert result.values["participants"] == ["A", "B", "C"]


async def test_explicit_default_is_used():
    spec = FieldSpec("rating", [Locator("span.rating")], kind=FieldKind.INT, default=None)
    result = await Extractor(ToySite()).extract_fields(_doc("<p></p>"), [spec])

    assert result.values["rating"] is None
    assert result.missing == ["rating"]


async def test_rows_are_extracted_independently():
    extractor = Extractor(ToySite())
    html = history_page([("a", 8, "Great"), ("b", None, "No stars"), ("c", 3, "")])

    result = await extractor.extract(_doc(html), PageKind.ACTOR_HISTORY)

    assert result.rows == [
        {"item_id": "a", "rating": 8, "text": "Great"},
        {"item_id": "b", "rating": 0, "text": "No stars"},
        {"item_id": "c", "rating": 3, "text": ""},
    ]
    assert result.complete


async def test_page_without_rows_reports_them_missing():
    extractor = Extractor(ToySite())
    result = await extractor.extract(_doc("<html></html>"), PageKind.ACTOR_HISTORY)

    assert result.rows == []
    assert result.missing == ["rows"]
    assert extractor.field_misses["actor_history.rows"] == 1


class _Node(Element):
    """Element for a document whose cast list only appears after a click."""

    def __init__(self, doc: "_RevealDocument", value: str = ""):
        self.doc = doc
        self.value = value

    async def text(self) -> str:
        return self.value

    async def attr(self, name: str) -> Optional[str]:
        return None

    async def click(self) -> None:
        self.doc.revealed = True

    async def find(self, selector: str) -> Optional[Element]:
        return None

    async def find_all(self, selector: str) -> List[Element]:
        return []


class _RevealDocument(Document):
    url = "https://toy.test/reveal"

    def __init__(self):
        self.revealed = False

    async def find(self, selector: str) -> Optional[Element]:
        return _Node(self) if selector == "button.more" else None

    async def find_all(self, selector: str) -> List[Element]:
        if selector == "li.cast" and self.revealed:
            return [_Node(self, "Hidden Star")]
        return []

    async def wait_for(self, selector: str, timeout_ms: int) -> bool:
        return True


async def test_reveal_is_clicked_before_reading():
    spec = FieldSpec("participants", [Locator("li.cast", reveal="button.more")], kind=FieldKind.LIST)
    document = _RevealDocument()

    result = await Extractor(ToySite()).extract_fields(document, [spec])

    assert document.revealed
    assert result.values["participants"] == ["Hidden Star"]


class _BrokenElement(_Node):
    async def text(self) -> str:
        raise RuntimeError("element detached")


class _BrokenDocument(_RevealDocument):
    async def find(self, selector: str) -> Optional[Element]:
        if selector == "h1":
            return _BrokenElement(self)
        if selector == "h2":
            return _Node(self, "Recovered")
        return None


async def test_element_errors_are_isolated_to_the_field():
    spec = FieldSpec("title", [Locator("h1"), Locator("h2")])
    result = await Extractor(ToySite()).extract_fields(_BrokenDocument(), [spec])

    assert result.values["title"] == "Recovered"

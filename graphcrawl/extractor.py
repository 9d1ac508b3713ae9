"""
extractor.py - field-by-field page extraction with ordered fallbacks.

Every target field is described by a :class:`FieldSpec`: a primary
:class:`Locator` followed by any number of fallbacks. Fields are evaluated
independently:

* the first locator that finds an element *and* yields a non-empty value wins
* a miss, an empty value, a parse failure or an element error moves on to the
  next locator
* when every locator fails the field takes its zero value and is reported in
  :attr:`Extraction.missing`

A field failure never fails the page. The only page-level failure is the
fetcher not being able to load the page at all, which happens before the
extractor is involved.

Numbers are parsed leniently: thousands separators are stripped, ``K``/``M``
suffixes are understood, anything non-numeric falls back to the default.
"""

from __future__ import annotations

import logging
import re
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union
from urllib.parse import urlparse

from .interfaces import Document, DocumentFetcher, Element, SiteProfile
from .models import ItemRecord, PageKind

logger = logging.getLogger(__name__)

Scope = Union[Document, Element]

_MISSING = object()

_COUNT_RE = re.compile(r"(\d[\d,\u00a0\u202f]*(?:\.\d+)?)\s*([kKmM])?(?![a-zA-Z])")
_FLOAT_RE = re.compile(r"\d+(?:\.\d+)?")
_YEAR_RE = re.compile(r"\b(1[89]\d\d|20\d\d)\b")
_WS_RE = re.compile(r"\s+")
_SUFFIX = {"k": 1_000, "m": 1_000_000}


# --------------------------------------------------------------------------- #
# Parsing helpers
# --------------------------------------------------------------------------- #


def clean_text(text: Optional[str]) -> str:
    if not text:
        return ""
    return _WS_RE.sub(" ", text).strip()


def parse_count(text: Optional[str], default: int = 0) -> int:
    """Parse counts such as ``"1,234,567"``, ``"Watched by 12 members"`` or ``"1.2M"``."""
    if not text:
        return default
    m = _COUNT_RE.search(text)
    if not m:
        return default
    digits = re.sub(r"[,\u00a0\u202f]", "", m.group(1))
    try:
        value = float(digits)
    except ValueError:
        return default
    if m.group(2):
        value *= _SUFFIX[m.group(2).lower()]
    return int(round(value))


def parse_float(text: Optional[str], default: float = 0.0) -> float:
    """First decimal number in ``text`` (e.g. ``"3.95 out of 5"`` -> 3.95)."""
    if not text:
        return default
    m = _FLOAT_RE.search(text.replace(",", ""))
    return float(m.group(0)) if m else default


def parse_year(text: Optional[str], default: int = 0) -> int:
    """A four-digit year anywhere in ``text`` (``"Parasite (2019)"`` -> 2019)."""
    if not text:
        return default
    m = _YEAR_RE.search(text)
    return int(m.group(1)) if m else default


def path_segment(index: int) -> Callable[[str], str]:
    """Build a parser returning the ``index``-th path segment of a link.

    ``path_segment(1)("/film/parasite-2019/")`` -> ``"parasite-2019"``
    """

    def _parse(href: str) -> str:
        segments = [s for s in urlparse(href or "").path.split("/") if s]
        try:
            return segments[index]
        except IndexError:
            return ""

    return _parse


# --------------------------------------------------------------------------- #
# Field specs
# --------------------------------------------------------------------------- #


class FieldKind(str, Enum):
    TEXT = "text"
    INT = "int"
    FLOAT = "float"
    LIST = "list"


_ZERO = {
    FieldKind.TEXT: "",
    FieldKind.INT: 0,
    FieldKind.FLOAT: 0.0,
}


@dataclass(frozen=True)
class Locator:
    """Where to read a value from.

    ``attr`` reads an attribute instead of the element text. ``reveal`` is a
    selector clicked first, for content hidden behind a "show more" toggle.
    """
    selector: str
    attr: Optional[str] = None
    reveal: Optional[str] = None


@dataclass(frozen=True)
class FieldSpec:
    name: str
    locators: Sequence[Locator]
    kind: FieldKind = FieldKind.TEXT
    limit: Optional[int] = None
    parse: Optional[Callable[[str], Any]] = None
    default: Any = _MISSING

    def zero(self) -> Any:
        if self.default is not _MISSING:
            return self.default
        if self.kind is FieldKind.LIST:
            return []
        return _ZERO[self.kind]


@dataclass
class Extraction:
    """Result of extracting a page: every field has a value, some may be defaults."""
    values: Dict[str, Any] = field(default_factory=dict)
    missing: List[str] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        return not self.missing

    @property
    def rows(self) -> List[Dict[str, Any]]:
        return self.values.get("rows", [])


def _is_empty(value: Any) -> bool:
    return value is None or value == "" or value == 0 or value == []


def _coerce(kind: FieldKind, raw: str) -> Any:
    if kind is FieldKind.INT:
        return parse_count(raw)
    if kind is FieldKind.FLOAT:
        return parse_float(raw)
    return clean_text(raw)


def to_item_record(item_id: str, extraction: Extraction) -> ItemRecord:
    data = {k: v for k, v in extraction.values.items() if k in ItemRecord.CONTENT_FIELDS}
    return ItemRecord(id=item_id, **data)


# --------------------------------------------------------------------------- #
# Extractor
# --------------------------------------------------------------------------- #


class Extractor:
    """Turns loaded documents into field values using a site's specs."""

    def __init__(self, site: SiteProfile):
        self.site = site
        self.field_misses: Counter = Counter()

    async def extract(self, document: Document, kind: PageKind) -> Extraction:
        specs = self.site.fields(kind)
        row_selector = self.site.row_selector(kind)

        if row_selector is None:
            result = await self.extract_fields(document, specs)
            for name in result.missing:
                self.field_misses[f"{kind.value}.{name}"] += 1
            return result

        rows = await self.extract_rows(document, row_selector, specs)
        result = Extraction(values={"rows": rows})
        if not rows:
            result.missing.append("rows")
            self.field_misses[f"{kind.value}.rows"] += 1
        return result

    async def fetch(
        self,
        fetcher: DocumentFetcher,
        url: str,
        kind: PageKind,
        ready_timeout_ms: int = 10_000,
    ) -> Extraction:
        """Load ``url``, wait for the page to settle, extract it and release it.

        Raises :class:`~graphcrawl.errors.PageLoadError` if the page itself
        cannot be loaded. A ready selector that never shows up is not an
        error: extraction goes ahead and the fields fall back as usual.
        """
        document = await fetcher.load(url)
        async with document:
            ready = self.site.ready_selector(kind)
            if ready and not await document.wait_for(ready, ready_timeout_ms):
                logger.debug("Ready selector %r not found on %s", ready, url)
            return await self.extract(document, kind)

    async def extract_rows(
        self, scope: Scope, row_selector: str, specs: Sequence[FieldSpec]
    ) -> List[Dict[str, Any]]:
        try:
            elements = await scope.find_all(row_selector)
        except Exception as exc:  # noqa: BLE001
            logger.debug("Row lookup %r failed: %s", row_selector, exc)
            return []

        rows: List[Dict[str, Any]] = []
        for element in elements:
            extracted = await self.extract_fields(element, specs)
            rows.append(extracted.values)
        return rows

    async def extract_fields(self, scope: Scope, specs: Sequence[FieldSpec]) -> Extraction:
        result = Extraction()
        for spec in specs:
            value, found = await self._extract_field(scope, spec)
            result.values[spec.name] = value
            if not found:
                result.missing.append(spec.name)
        return result

    async def _extract_field(self, scope: Scope, spec: FieldSpec) -> Tuple[Any, bool]:
        for position, locator in enumerate(spec.locators):
            try:
                value = await self._read(scope, locator, spec)
            except Exception as exc:  # noqa: BLE001
                logger.debug("Field %s: locator %r raised %s", spec.name, locator.selector, exc)
                continue
            if not _is_empty(value):
                if position:
                    logger.debug("Field %s: fallback #%d matched", spec.name, position)
                return value, True
        return spec.zero(), False

    async def _read(self, scope: Scope, locator: Locator, spec: FieldSpec) -> Any:
        if locator.reveal:
            toggle = await scope.find(locator.reveal)
            if toggle is not None:
                await toggle.click()

        if spec.kind is FieldKind.LIST:
            values: List[str] = []
            for element in await scope.find_all(locator.selector):
                raw = await self._raw(element, locator)
                value = spec.parse(raw) if spec.parse else clean_text(raw)
                if value:
                    values.append(value)
            values = list(dict.fromkeys(values))
            if spec.limit is not None:
                values = values[: spec.limit]
            return values

        element = await scope.find(locator.selector)
        if element is None:
            return None
        raw = await self._raw(element, locator)
        if raw is None:
            return None
        return spec.parse(raw) if spec.parse else _coerce(spec.kind, raw)

    @staticmethod
    async def _raw(element: Element, locator: Locator) -> Optional[str]:
        if locator.attr:
            return await element.attr(locator.attr)
        return await element.text()

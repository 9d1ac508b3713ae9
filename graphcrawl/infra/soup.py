"""
Static documents: server-rendered HTML parsed with BeautifulSoup.

Cheaper than a browser for pages that need no JavaScript. ``click`` is a
no-op because everything a toggle would reveal is already in the markup.
"""

from __future__ import annotations

import asyncio
import logging
from typing import List, Optional

import aiohttp
from bs4 import BeautifulSoup, Tag

from ..errors import PageLoadError
from ..interfaces import Document, DocumentFetcher, Element
from .http import HttpClient

logger = logging.getLogger(__name__)


class SoupElement(Element):
    def __init__(self, tag: Tag):
        self._tag = tag

    async def text(self) -> str:
        return self._tag.get_text(" ", strip=True)

    async def attr(self, name: str) -> Optional[str]:
        value = self._tag.get(name)
        if isinstance(value, list):  # multi-valued attributes such as class
            return " ".join(value)
        return value

    async def click(self) -> None:
        pass

    async def find(self, selector: str) -> Optional[Element]:
        tag = self._tag.select_one(selector)
        return SoupElement(tag) if tag is not None else None

    async def find_all(self, selector: str) -> List[Element]:
        return [SoupElement(tag) for tag in self._tag.select(selector)]


class SoupDocument(Document):
    def __init__(self, url: str, html: str):
        self.url = url
        self._soup = BeautifulSoup(html, "html.parser")

    async def find(self, selector: str) -> Optional[Element]:
        tag = self._soup.select_one(selector)
        return SoupElement(tag) if tag is not None else None

    async def find_all(self, selector: str) -> List[Element]:
        return [SoupElement(tag) for tag in self._soup.select(selector)]

    async def wait_for(self, selector: str, timeout_ms: int) -> bool:
        return self._soup.select_one(selector) is not None


class HttpFetcher(DocumentFetcher):
    """Loads pages over plain HTTP and parses them with BeautifulSoup."""

    name = "HttpFetcher"

    def __init__(self, http: Optional[HttpClient] = None, *, timeout_ms: int = 30_000):
        self._http = http or HttpClient(timeout=timeout_ms / 1000)

    async def _get_html(self, url: str) -> str:
        return await self._http.get_text(url)

    async def load(self, url: str) -> Document:
        try:
            html = await self._get_html(url)
        except (aiohttp.ClientError, asyncio.TimeoutError, UnicodeDecodeError) as exc:
            raise PageLoadError(url, str(exc) or type(exc).__name__) from exc
        logger.debug("Loaded %s (%d bytes)", url, len(html))
        return SoupDocument(url, html)

    async def close(self) -> None:
        await self._http.close()

"""
sel.py - Async Playwright rendering layer for the crawler.

Key pieces
----------
* `PlaywrightClient` - owns the one browser session (launch, context, stealth patches)
* `PlaywrightFetcher` - `DocumentFetcher` that opens each URL in a fresh page
* `PlaywrightDocument` / `PlaywrightElement` - the queryable document API on top of
  Playwright pages and element handles
* Async context-manager support:
    async with PlaywrightFetcher(PlaywrightClient(stealth=True)) as fetcher:
        doc = await fetcher.load("https://example.com")
"""

from __future__ import annotations

import logging
import random
from types import TracebackType
from typing import Any, Dict, List, Optional, Sequence, Type

from playwright.async_api import (
    async_playwright,
    Browser,
    BrowserContext,
    BrowserType,
    ElementHandle,
    Error as PlaywrightError,
    Page,
    TimeoutError as PlaywrightTimeout,
)

from ..errors import PageLoadError
from ..interfaces import Document, DocumentFetcher, Element

logger = logging.getLogger(__name__)
DEFAULT_STEALTH_UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/122.0.%d.%d Safari/537.36"
    % (random.randint(0, 9999), random.randint(0, 199))
)

_STEALTH_JS = """
// Remove webdriver property
Object.defineProperty(navigator, 'webdriver', {
  get: () => undefined
});
Object.defineProperty(navigator, 'languages', {
  get: () => ['en-US', 'en'],
});
"""


class PlaywrightClient:
    """
    One browser + one context, shared by every page the crawl opens.

    The crawl is single-worker, so a single session is all it ever needs.
    """

    def __init__(
        self,
        *,
        headless: bool = True,
        browser_type: str = "chromium",
        timeout: float = 30_000,
        stealth: bool = False,
        user_agent: Optional[str] = None,
        block_resources: Sequence[str] = ("image", "media", "font"),
        extra_launch_kwargs: Optional[Dict[str, Any]] = None,
        extra_context_kwargs: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.headless = headless
        self.browser_type = browser_type.lower()
        self.timeout = timeout
        self.stealth = stealth
        self.user_agent = user_agent
        self.block_resources = tuple(block_resources)
        self._launch_kwargs = extra_launch_kwargs or {}
        self._context_kwargs = extra_context_kwargs or {}

        # Internal Playwright handles
        self._playwright = None
        self._browser: Optional[Browser] = None
        self._context: Optional[BrowserContext] = None

    # --------------------------------------------------------------------- #
    # Async context-manager sugar
    async def __aenter__(self) -> "PlaywrightClient":  # noqa: D401
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> None:
        await self.stop()

    # --------------------------------------------------------------------- #
    # Lifecycle helpers
    async def start(self) -> None:
        """Launch browser & default context if not already started."""
        if self._browser:
            return

        self._playwright = await async_playwright().start()
        browser_launcher: BrowserType

        if self.browser_type == "chromium":
            browser_launcher = self._playwright.chromium
        elif self.browser_type == "firefox":
            browser_launcher = self._playwright.firefox
        elif self.browser_type == "webkit":
            browser_launcher = self._playwright.webkit
        else:  # pragma: no cover
            raise ValueError(f"Unsupported browser type: {self.browser_type}")

        self._browser = await browser_launcher.launch(
            headless=self.headless, **self._launch_kwargs
        )

        context_kwargs: Dict[str, Any] = {
            "ignore_https_errors": True,
            **self._context_kwargs,
        }
        if self.stealth:
            context_kwargs.setdefault("user_agent", self.user_agent or DEFAULT_STEALTH_UA)

        self._context = await self._browser.new_context(**context_kwargs)

        if self.stealth:
            await self._context.add_init_script(_STEALTH_JS)

        if self.block_resources:
            blocked = set(self.block_resources)

            async def _route(route):
                if route.request.resource_type in blocked:
                    await route.abort()
                else:
                    await route.continue_()

            await self._context.route("**/*", _route)

        logger.info(
            "Playwright started: %s (headless=%s, stealth=%s)",
            self.browser_type,
            self.headless,
            self.stealth,
        )

    async def stop(self) -> None:
        """Gracefully close context, browser & Playwright."""
        if self._context:
            await self._context.close()
            self._context = None
        if self._browser:
            await self._browser.close()
            self._browser = None
        if self._playwright:
            await self._playwright.stop()
            self._playwright = None
        logger.info("Playwright stopped")

    async def new_page(self) -> Page:
        """Return a fresh Page with the client's default timeout."""
        if not self._context:
            await self.start()
        page = await self._context.new_page()
        page.set_default_timeout(self.timeout)
        return page

    @staticmethod
    async def dismiss_cookies(
        page: Page,
        selectors: Sequence[str],
        timeout: int = 3_000,
    ) -> bool:
        """
        Try each selector; click the first one that appears.

        Returns
        -------
        bool
            True if something was clicked, False otherwise.
        """
        for sel in selectors:
            try:
                btn = await page.wait_for_selector(sel, timeout=timeout)
                await btn.click()
                logger.debug("Cookie banner dismissed with selector: %s", sel)
                return True
            except PlaywrightTimeout:
                continue
            except PlaywrightError as e:
                logger.debug("Dismiss cookie failed for %s: %s", sel, e)
        return False


# ------------------------------------------------------------------------- #
# Document API
# ------------------------------------------------------------------------- #


class PlaywrightElement(Element):
    def __init__(self, handle: ElementHandle):
        self._handle = handle

    async def text(self) -> str:
        return (await self._handle.inner_text()).strip()

    async def attr(self, name: str) -> Optional[str]:
        return await self._handle.get_attribute(name)

    async def click(self) -> None:
        await self._handle.click(timeout=5_000)

    async def find(self, selector: str) -> Optional[Element]:
        handle = await self._handle.query_selector(selector)
        return PlaywrightElement(handle) if handle else None

    async def find_all(self, selector: str) -> List[Element]:
        return [PlaywrightElement(h) for h in await self._handle.query_selector_all(selector)]


class PlaywrightDocument(Document):
    def __init__(self, url: str, page: Page):
        self.url = url
        self._page = page

    async def find(self, selector: str) -> Optional[Element]:
        handle = await self._page.query_selector(selector)
        return PlaywrightElement(handle) if handle else None

    async def find_all(self, selector: str) -> List[Element]:
        return [PlaywrightElement(h) for h in await self._page.query_selector_all(selector)]

    async def wait_for(self, selector: str, timeout_ms: int) -> bool:
        try:
            await self._page.wait_for_selector(selector, timeout=timeout_ms, state="attached")
            return True
        except PlaywrightTimeout:
            return False

    async def close(self) -> None:
        try:
            await self._page.close()
        except PlaywrightError as e:
            logger.debug("Closing page for %s failed: %s", self.url, e)


class PlaywrightFetcher(DocumentFetcher):
    """Renders each URL in a fresh page of the shared browser session."""

    name = "PlaywrightFetcher"

    def __init__(
        self,
        client: Optional[PlaywrightClient] = None,
        *,
        cookie_selectors: Sequence[str] = (),
    ) -> None:
        self._client = client or PlaywrightClient()
        self._cookie_selectors = tuple(cookie_selectors)
        self._cookies_handled = False

    async def load(self, url: str) -> Document:
        page = None
        try:
            page = await self._client.new_page()
            response = await page.goto(url, wait_until="domcontentloaded")
            if response is not None and response.status >= 400:
                raise PageLoadError(url, f"HTTP {response.status}")
        except (PlaywrightTimeout, PlaywrightError) as exc:
            await self._discard(page)
            reason = str(exc).splitlines()[0] if str(exc) else type(exc).__name__
            raise PageLoadError(url, reason) from exc
        except PageLoadError:
            await self._discard(page)
            raise

        # one attempt per session; the consent cookie covers later pages
        if self._cookie_selectors and not self._cookies_handled:
            self._cookies_handled = True
            await self._client.dismiss_cookies(page, self._cookie_selectors)

        return PlaywrightDocument(url, page)

    @staticmethod
    async def _discard(page) -> None:
        if page is None:
            return
        try:
            await page.close()
        except PlaywrightError as e:
            logger.debug("Closing failed page: %s", e)

    async def close(self) -> None:
        await self._client.stop()

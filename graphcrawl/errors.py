"""
Exceptions raised by the crawler.
"""

from typing import Optional


class CrawlError(Exception):
    """Base class for crawler errors."""


class PageLoadError(CrawlError):
    """A page could not be loaded (navigation error, timeout, HTTP failure)."""

    def __init__(self, url: str, reason: Optional[str] = None):
        self.url = url
        self.reason = reason
        message = f"Failed to load {url}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class SeedPageError(PageLoadError):
    """A listing page failed to load; fatal to the current run."""


class CrawlerBusy(CrawlError):
    """Another crawl, drain or repair job is already running."""


class PluginNotFound(KeyError):
    """No site profile is registered under the requested name."""

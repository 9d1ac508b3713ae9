"""
Control surface for the command layers (CLI, Discord bot, scheduler).

``start``, ``drain`` and ``repair`` are fire-and-forget: they schedule the
job on the running loop and return its task at once. Only one job runs at a
time; asking for a second raises :class:`CrawlerBusy`.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Coroutine, Optional

from . import plugin_loader
from .config import FetcherSettings, Settings
from .controller import CrawlController
from .errors import CrawlerBusy
from .extractor import Extractor
from .frontier import Frontier
from .infra.db import Database
from .infra.store import RecordStore
from .interfaces import DocumentFetcher, SiteProfile
from .models import CrawlStatus, RepairReport
from .repair import RepairPass

logger = logging.getLogger(__name__)


def build_fetcher(settings: FetcherSettings) -> DocumentFetcher:
    """Create the document fetcher named in the configuration."""
    if settings.kind == "http":
        from .infra.soup import HttpFetcher

        return HttpFetcher(timeout_ms=settings.timeout_ms)

    from .infra.sel import PlaywrightClient, PlaywrightFetcher

    client = PlaywrightClient(
        headless=settings.headless,
        browser_type=settings.browser_type,
        timeout=settings.timeout_ms,
        stealth=settings.stealth,
    )
    return PlaywrightFetcher(client, cookie_selectors=settings.cookie_selectors)


class CrawlService:
    def __init__(
        self,
        site: SiteProfile,
        fetcher: DocumentFetcher,
        db: Database,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or Settings()
        self.site = site
        self.fetcher = fetcher
        self.db = db

        crawl = self.settings.crawl
        self.frontier = Frontier(db, max_attempts=crawl.max_attempts)
        self.store = RecordStore(db)
        self.extractor = Extractor(site)
        self.controller = CrawlController(
            site, fetcher, self.frontier, self.store, self.extractor, crawl
        )
        self.repairer = RepairPass(
            site,
            fetcher,
            self.store,
            self.extractor,
            delay_seconds=crawl.delay_seconds,
            ready_timeout_ms=crawl.ready_timeout_ms,
        )

        self._task: Optional[asyncio.Task] = None
        self._job: Optional[str] = None
        self.last_error: Optional[str] = None
        self.last_report: Optional[RepairReport] = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "CrawlService":
        site = plugin_loader.get(settings.site)()
        return cls(site, build_fetcher(settings.fetcher), Database(settings.database.path), settings)

    # ------------------------------------------------------------------ #
    # Job bookkeeping
    # ------------------------------------------------------------------ #

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def job(self) -> Optional[str]:
        return self._job if self.running else None

    def _launch(self, job: str, coro: Coroutine[Any, Any, Any]) -> asyncio.Task:
        if self.running:
            coro.close()
            raise CrawlerBusy(f"'{self._job}' is already running")

        self.last_error = None
        self._job = job
        self._task = asyncio.create_task(coro, name=f"graphcrawl-{job}")
        self._task.add_done_callback(self._on_done)
        logger.info("Job '%s' started", job)
        return self._task

    def _on_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            logger.warning("Job '%s' was cancelled", self._job)
            return
        exc = task.exception()
        if exc is not None:
            self.last_error = str(exc)
            logger.error("Job '%s' failed: %s", self._job, exc, exc_info=exc)
            return
        if isinstance(task.result(), RepairReport):
            self.last_report = task.result()
        logger.info("Job '%s' finished", self._job)

    # ------------------------------------------------------------------ #
    # Operations
    # ------------------------------------------------------------------ #

    def start(
        self,
        target: Optional[int] = None,
        batch_size: Optional[int] = None,
        max_frontier_size: Optional[int] = None,
    ) -> asyncio.Task:
        """Begin a seed / drain / expand run in the background."""
        return self._launch(
            "crawl", self.controller.run(target, batch_size, max_frontier_size)
        )

    def drain(self, batch_size: Optional[int] = None) -> asyncio.Task:
        """Process only what is already queued, then stop."""
        return self._launch("drain", self.controller.run_drain(batch_size))

    def repair(self, batch_size: Optional[int] = None, max_items: Optional[int] = None) -> asyncio.Task:
        cfg = self.settings.repair
        return self._launch(
            "repair",
            self.repairer.run(batch_size or cfg.batch_size, max_items or cfg.max_items),
        )

    def stop(self) -> bool:
        """Ask the running job to stop after its current record."""
        if not self.running:
            return False
        if self._job == "repair":
            self.repairer.request_stop()
        else:
            self.controller.request_stop()
        logger.info("Stop requested for job '%s'", self._job)
        return True

    async def wait(self) -> Any:
        """Wait for the current (or last) job; re-raises its exception."""
        if self._task is None:
            return None
        return await self._task

    async def status(self) -> CrawlStatus:
        return CrawlStatus(
            frontier_size=await self.frontier.size(),
            state=self.controller.state,
            running=self.running,
            job=self.job,
            progress=self.controller.progress,
            field_misses=dict(self.extractor.field_misses),
            last_error=self.last_error,
        )

    async def clear_frontier(self) -> int:
        return await self.frontier.clear()

    async def close(self) -> None:
        if self.running:
            self.stop()
            # failures are reported by the done-callback
            await asyncio.wait({self._task})
        await self.fetcher.close()
        await self.db.close()

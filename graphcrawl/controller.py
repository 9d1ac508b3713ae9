"""
Crawl controller: the seed / drain / expand loop.

States::

    SEEDING -> DRAINING -> EXPANDING -> (DRAINING | TERMINATED)

* SEEDING runs whenever the frontier is empty and the target is unmet. It
  reads the next listing page and queues every candidate not yet stored. A
  listing page that fails to load ends the run with :class:`SeedPageError`.
* DRAINING pops a batch and processes each id: skip it if already stored,
  otherwise load, extract and persist it. A failed item is logged and
  requeued at the bottom of the frontier until it runs out of attempts.
* EXPANDING follows each stored item to the actors who left relations on it
  and from their histories to further items. Backpressure is re-checked
  before every actor and every push, so the frontier never grows past
  ``max_frontier_size`` through expansion.
* TERMINATED once the target is met, the listings run dry, a stop is
  requested, or (drain-only runs) the frontier is empty.

Everything runs on one task with one page load in flight.
"""

from __future__ import annotations

import asyncio
import logging
from typing import List, Optional

from .config import CrawlSettings
from .errors import PageLoadError, SeedPageError
from .extractor import Extractor, to_item_record
from .frontier import Frontier
from .infra.store import RecordStore
from .ingest import ingest_relation
from .interfaces import (
    HISTORY_ITEM,
    HISTORY_RATING,
    HISTORY_TEXT,
    LISTING_IDS,
    RELATION_ACTORS,
    DocumentFetcher,
    SiteProfile,
)
from .models import CrawlProgress, CrawlState, FrontierItem, PageKind, RelationRecord

logger = logging.getLogger(__name__)


class CrawlController:
    """Single-worker crawl loop over one site."""

    def __init__(
        self,
        site: SiteProfile,
        fetcher: DocumentFetcher,
        frontier: Frontier,
        store: RecordStore,
        extractor: Optional[Extractor] = None,
        settings: Optional[CrawlSettings] = None,
    ):
        self.site = site
        self.fetcher = fetcher
        self.frontier = frontier
        self.store = store
        self.extractor = extractor or Extractor(site)
        self.settings = settings or CrawlSettings()

        self.state = CrawlState.IDLE
        self.progress = CrawlProgress()
        self._stop_requested = False

    # ------------------------------------------------------------------ #
    # Control
    # ------------------------------------------------------------------ #

    def request_stop(self) -> None:
        """Ask the loop to finish after the current record."""
        self._stop_requested = True

    @property
    def stop_requested(self) -> bool:
        return self._stop_requested

    def _begin(self) -> None:
        self.progress = CrawlProgress()

    def _finish(self) -> None:
        # a stop requested before the run began must still end it
        self._stop_requested = False
        self.state = CrawlState.TERMINATED

    # ------------------------------------------------------------------ #
    # Runs
    # ------------------------------------------------------------------ #

    async def run(
        self,
        target: Optional[int] = None,
        batch_size: Optional[int] = None,
        max_frontier_size: Optional[int] = None,
    ) -> CrawlProgress:
        """Crawl until ``target`` new items are stored or the listings run out."""
        target = self.settings.target if target is None else target
        batch_size = batch_size or self.settings.batch_size
        if max_frontier_size is None:
            max_frontier_size = self.settings.max_frontier_size

        self._begin()
        logger.info(
            "Crawl started on %s: target=%d batch=%d max_frontier=%d",
            self.site.name,
            target,
            batch_size,
            max_frontier_size,
        )

        try:
            while not self._stop_requested and self.progress.processed < target:
                if await self.frontier.size() == 0:
                    self.state = CrawlState.SEEDING
                    if not await self._seed():
                        logger.info("No more listing pages to seed from")
                        break
                    continue

                self.state = CrawlState.DRAINING
                batch = await self.frontier.pop_batch(batch_size)
                handled = 0
                try:
                    for item in batch:
                        if self._stop_requested or self.progress.processed >= target:
                            break
                        stored = await self._process(item)
                        handled += 1
                        if stored and self.progress.processed < target:
                            await self._expand(item.item_id, max_frontier_size)
                finally:
                    await self._restore(batch[handled:])
        finally:
            self._finish()

        logger.info("Crawl finished: %s", self._summary())
        return self.progress

    async def run_drain(self, batch_size: Optional[int] = None) -> CrawlProgress:
        """Process the existing frontier only: no seeding, no expansion."""
        batch_size = batch_size or self.settings.batch_size
        self._begin()
        logger.info("Draining frontier (%d queued)", await self.frontier.size())

        try:
            self.state = CrawlState.DRAINING
            while not self._stop_requested:
                batch = await self.frontier.pop_batch(batch_size)
                if not batch:
                    break
                handled = 0
                try:
                    for item in batch:
                        if self._stop_requested:
                            break
                        await self._process(item)
                        handled += 1
                finally:
                    await self._restore(batch[handled:])
        finally:
            self._finish()

        logger.info("Drain finished: %s", self._summary())
        return self.progress

    # ------------------------------------------------------------------ #
    # SEEDING
    # ------------------------------------------------------------------ #

    async def _seed(self) -> int:
        """Queue unseen candidates from the next listing page(s).

        Pages whose candidates are all stored already are skipped. Returns
        the number of ids queued; zero means the listings are exhausted.
        """
        max_pages = self.settings.max_listing_pages
        while not self._stop_requested:
            page = self.progress.listing_page
            if max_pages is not None and page > max_pages:
                return 0

            url = self.site.listing_url(page)
            try:
                extraction = await self.extractor.fetch(
                    self.fetcher, url, PageKind.LISTING, self.settings.ready_timeout_ms
                )
            except PageLoadError as exc:
                raise SeedPageError(url, exc.reason) from exc
            self.progress.listing_page += 1

            candidates: List[str] = extraction.values.get(LISTING_IDS, [])
            if not candidates:
                logger.info("Listing page %d has no candidates", page)
                return 0

            known = await self.store.items.existing_ids(candidates)
            added = await self.frontier.push_many(c for c in candidates if c not in known)
            self.progress.ids_discovered += added
            logger.info(
                "Seeded %d of %d candidate(s) from listing page %d",
                added,
                len(candidates),
                page,
            )
            await self._pause()
            if added:
                return added
        return 0

    # ------------------------------------------------------------------ #
    # DRAINING
    # ------------------------------------------------------------------ #

    async def _process(self, item: FrontierItem) -> bool:
        """Extract and store one item. Returns True if a record was written."""
        if await self.store.items.exists(item.item_id):
            self.progress.skipped += 1
            logger.debug("Skipping %s: already stored", item.item_id)
            return False

        try:
            extraction = await self.extractor.fetch(
                self.fetcher,
                self.site.item_url(item.item_id),
                PageKind.ITEM,
                self.settings.ready_timeout_ms,
            )
            await self.store.items.upsert(to_item_record(item.item_id, extraction))
        except PageLoadError as exc:
            logger.warning("Item %s failed: %s", item.item_id, exc)
            await self._record_failure(item)
            return False
        except Exception:
            logger.exception("Item %s failed unexpectedly", item.item_id)
            await self._record_failure(item)
            return False

        self.progress.processed += 1
        if extraction.missing:
            logger.info(
                "Stored %s (%d) partial, missing: %s",
                item.item_id,
                self.progress.processed,
                ", ".join(extraction.missing),
            )
        else:
            logger.info("Stored %s (%d)", item.item_id, self.progress.processed)
        await self._pause()
        return True

    async def _record_failure(self, item: FrontierItem) -> None:
        self.progress.failed += 1
        if self.settings.requeue_failed and await self.frontier.requeue(item):
            self.progress.requeued += 1
            logger.info("Requeued %s (attempt %d)", item.item_id, item.attempts + 1)
        await self._pause()

    async def _restore(self, items: List[FrontierItem]) -> None:
        """Put popped but unprocessed items back with their old priority."""
        for item in items:
            await self.frontier.push(item.item_id, priority=item.priority)
        if items:
            logger.debug("Returned %d unprocessed item(s) to the frontier", len(items))

    # ------------------------------------------------------------------ #
    # EXPANDING
    # ------------------------------------------------------------------ #

    async def _frontier_full(self, max_frontier_size: int) -> bool:
        return await self.frontier.size() >= max_frontier_size

    async def _expand(self, item_id: str, max_frontier_size: int) -> None:
        self.state = CrawlState.EXPANDING
        if await self._frontier_full(max_frontier_size):
            logger.debug("Frontier full, not expanding %s", item_id)
            return

        try:
            extraction = await self.extractor.fetch(
                self.fetcher,
                self.site.relations_url(item_id),
                PageKind.RELATIONS,
                self.settings.ready_timeout_ms,
            )
        except PageLoadError as exc:
            logger.warning("Relations of %s failed: %s", item_id, exc)
            return
        except Exception:
            logger.exception("Relations of %s failed unexpectedly", item_id)
            return
        await self._pause()

        actors: List[str] = extraction.values.get(RELATION_ACTORS, [])
        if self.settings.max_actors_per_item is not None:
            actors = actors[: self.settings.max_actors_per_item]

        for actor_id in actors:
            if self._stop_requested:
                break
            if await self._frontier_full(max_frontier_size):
                logger.info(
                    "Frontier reached %d, stopping expansion of %s", max_frontier_size, item_id
                )
                break
            await self._expand_actor(actor_id, max_frontier_size)

    async def _expand_actor(self, actor_id: str, max_frontier_size: int) -> None:
        try:
            extraction = await self.extractor.fetch(
                self.fetcher,
                self.site.actor_url(actor_id),
                PageKind.ACTOR_HISTORY,
                self.settings.ready_timeout_ms,
            )
        except PageLoadError as exc:
            logger.warning("History of %s failed: %s", actor_id, exc)
            return
        except Exception:
            logger.exception("History of %s failed unexpectedly", actor_id)
            return

        related: List[str] = []
        for row in extraction.rows:
            item_id = row.get(HISTORY_ITEM)
            if not item_id:
                continue
            relation = RelationRecord(
                actor_id=actor_id,
                item_id=item_id,
                rating=row.get(HISTORY_RATING) or None,
                text=row.get(HISTORY_TEXT) or "",
            )
            if await ingest_relation(self.store, relation):
                self.progress.relations_stored += 1
            related.append(item_id)

        related = list(dict.fromkeys(related))
        known = await self.store.items.existing_ids(related)
        pushed = 0
        for item_id in related:
            if item_id in known:
                continue
            if await self._frontier_full(max_frontier_size):
                break
            if await self.frontier.push(item_id):
                pushed += 1
        self.progress.ids_discovered += pushed
        logger.debug("Actor %s: %d row(s), %d new id(s) queued", actor_id, len(extraction.rows), pushed)
        await self._pause()

    # ------------------------------------------------------------------ #

    async def _pause(self) -> None:
        if self.settings.delay_seconds > 0:
            await asyncio.sleep(self.settings.delay_seconds)

    def _summary(self) -> str:
        p = self.progress
        return (
            f"processed={p.processed} skipped={p.skipped} failed={p.failed} "
            f"requeued={p.requeued} relations={p.relations_stored} discovered={p.ids_discovered}"
        )

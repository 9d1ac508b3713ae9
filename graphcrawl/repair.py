"""
Repair pass: re-fetch incomplete items and fill in only what is missing.

A stored value is never overwritten. A field is patched only when it is
empty in the store and the fresh extraction has a value for it, so a
transient extraction regression cannot clobber good data. Running the pass
twice is harmless.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional

from .errors import PageLoadError
from .extractor import Extractor, to_item_record
from .infra.store import RecordStore
from .interfaces import DocumentFetcher, SiteProfile
from .models import ItemRecord, PageKind, RepairReport

logger = logging.getLogger(__name__)


def merge_missing(stored: ItemRecord, fresh: ItemRecord) -> Dict[str, Any]:
    """Fields to patch: empty in ``stored`` and populated in ``fresh``."""
    patch: Dict[str, Any] = {}
    for name in ItemRecord.CONTENT_FIELDS:
        if not getattr(stored, name) and getattr(fresh, name):
            patch[name] = getattr(fresh, name)
    return patch


class RepairPass:
    def __init__(
        self,
        site: SiteProfile,
        fetcher: DocumentFetcher,
        store: RecordStore,
        extractor: Optional[Extractor] = None,
        *,
        delay_seconds: float = 0.0,
        ready_timeout_ms: int = 10_000,
    ):
        self.site = site
        self.fetcher = fetcher
        self.store = store
        self.extractor = extractor or Extractor(site)
        self.delay_seconds = delay_seconds
        self.ready_timeout_ms = ready_timeout_ms
        self._stop_requested = False

    def request_stop(self) -> None:
        self._stop_requested = True

    async def run(self, batch_size: int = 10, max_items: int = 100) -> RepairReport:
        report = RepairReport()

        item_ids = await self.store.items.find_incomplete(limit=max_items)
        logger.info(
            "Repair started: %d incomplete item(s) selected (%d in store)",
            len(item_ids),
            await self.store.items.count_incomplete(),
        )

        try:
            for start in range(0, len(item_ids), batch_size):
                if self._stop_requested:
                    break
                for item_id in item_ids[start:start + batch_size]:
                    if self._stop_requested:
                        break
                    await self._repair_one(item_id, report)
                logger.info("Repair progress: %s", report.as_log_line())
        finally:
            self._stop_requested = False

        logger.info("Repair finished: %s", report.as_log_line())
        return report

    async def _repair_one(self, item_id: str, report: RepairReport) -> None:
        stored = await self.store.items.get(item_id)
        if stored is None:
            return
        report.examined += 1

        try:
            extraction = await self.extractor.fetch(
                self.fetcher, self.site.item_url(item_id), PageKind.ITEM, self.ready_timeout_ms
            )
        except PageLoadError as exc:
            report.failed += 1
            logger.warning("Repair of %s failed: %s", item_id, exc)
            return
        except Exception:
            report.failed += 1
            logger.exception("Repair of %s failed unexpectedly", item_id)
            return
        finally:
            if self.delay_seconds > 0:
                await asyncio.sleep(self.delay_seconds)

        patch = merge_missing(stored, to_item_record(item_id, extraction))
        if not patch:
            report.unchanged += 1
            logger.debug("Repair of %s found nothing new", item_id)
            return

        await self.store.items.patch(item_id, patch)
        report.patched += 1
        for name in patch:
            report.patched_fields[name] = report.patched_fields.get(name, 0) + 1
        logger.info("Repaired %s: %s", item_id, ", ".join(patch))

import pytest

from fakesite import FakeFetcher, ToySite
from graphcrawl.config import CrawlSettings
from graphcrawl.controller import CrawlController
from graphcrawl.extractor import Extractor
from graphcrawl.frontier import Frontier
from graphcrawl.infra.db import Database
from graphcrawl.infra.store import RecordStore


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "crawl.db")


@pytest.fixture
async def db(db_path):
    database = Database(db_path)
    yield database
    await database.close()


@pytest.fixture
def frontier(db):
    return Frontier(db, max_attempts=3)


@pytest.fixture
def store(db):
    return RecordStore(db)


@pytest.fixture
def site():
    return ToySite()


@pytest.fixture
def fetcher():
    return FakeFetcher()


@pytest.fixture
def settings():
    return CrawlSettings(
        delay_seconds=0,
        ready_timeout_ms=0,
        max_listing_pages=1,
        max_actors_per_item=None,
        max_attempts=3,
    )


@pytest.fixture
def controller(site, fetcher, frontier, store, settings):
    return CrawlController(site, fetcher, frontier, store, Extractor(site), settings)

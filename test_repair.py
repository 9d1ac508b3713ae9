"""
Repair pass: only empty stored fields are ever filled in.
"""

from fakesite import FakeFetcher, item_page
from graphcrawl.models import ItemRecord
from graphcrawl.repair import RepairPass, merge_missing


def _stored(item_id="a", **overrides):
    data = dict(
        id=item_id,
        title="Stored Title",
        year=1999,
        popularity=10,
        score=2.0,
        synopsis="Stored synopsis.",
        tags=["Stored"],
        secondary_tags=["Stored theme"],
        contributors=["Stored Director"],
        participants=["Stored Star"],
    )
    data.update(overrides)
    return ItemRecord(**data)


def test_merge_missing_never_overwrites():
    stored = _stored(synopsis="", participants=[])
    fresh = ItemRecord(id="a", title="Other", synopsis="New synopsis.", participants=[])

    assert merge_missing(stored, fresh) == {"synopsis": "New synopsis."}


async def test_repair_fills_only_the_empty_field(site, fetcher, store):
    await store.items.upsert(_stored(synopsis=""))
    fetcher.pages[site.item_url("a")] = item_page(title="Changed", synopsis="Fresh synopsis.")

    report = await RepairPass(site, fetcher, store).run()

    assert report.examined == 1
    assert report.patched == 1
    assert report.patched_fields == {"synopsis": 1}
    repaired = await store.items.get("a")
    assert repaired.synopsis == "Fresh synopsis."
    assert repaired.title == "Stored Title"
    assert repaired.year == 1999
    assert await store.items.count_incomplete() == 0


async def test_repair_without_improvement_is_unchanged(site, fetcher, store):
    await store.items.upsert(_stored(participants=[]))
    fetcher.pages[site.item_url("a")] = item_page(cast=None)

    report = await RepairPass(site, fetcher, store).run()

    assert report.unchanged == 1
    assert report.patched == 0
    assert (await store.items.get("a")).participants == []


async def test_repair_load_failure_is_counted(site, fetcher, store):
    await store.items.upsert(_stored(year=0))

    report = await RepairPass(site, fetcher, store).run()

    assert report.failed == 1
    assert report.examined == 1
    assert (await store.items.get("a")).year == 0


async def test_repair_respects_max_items_and_skips_complete_items(site, fetcher, store):
    await store.items.upsert(_stored("complete"))
    for item_id in ["x", "y", "z"]:
        await store.items.upsert(_stored(item_id, score=0.0))
        fetcher.pages[site.item_url(item_id)] = item_page()

    report = await RepairPass(site, fetcher, store).run(batch_size=2, max_items=2)

    assert report.examined == 2
    assert report.patched == 2
    assert site.item_url("complete") not in fetcher.requests
    assert await store.items.count_incomplete() == 1


async def test_stop_request_ends_the_pass_and_resets(site, fetcher, store):
    await store.items.upsert(_stored(score=0.0))
    fetcher.pages[site.item_url("a")] = item_page()
    repairer = RepairPass(site, fetcher, store)
    repairer.request_stop()

    report = await repairer.run()

    assert report.examined == 0
    assert (await repairer.run()).patched == 1


async def test_unexpected_error_on_one_item_does_not_end_the_pass(site, store):
    class CrashingFetcher(FakeFetcher):
        async def load(self, url):
            if url == site.item_url("bad"):
                raise RuntimeError("Target page, context or browser has been closed")
            return await super().load(url)

    fetcher = CrashingFetcher()
    await store.items.upsert(_stored("bad", synopsis=""))
    await store.items.upsert(_stored("good", synopsis=""))
    fetcher.pages[site.item_url("good")] = item_page(synopsis="Fresh synopsis.")

    report = await RepairPass(site, fetcher, store).run()

    assert report.examined == 2
    assert report.failed == 1
    assert report.patched == 1
    assert (await store.items.get("good")).synopsis == "Fresh synopsis."
    assert (await store.items.get("bad")).synopsis == ""

"""
Operational surfaces: the cron scheduler and the Discord status message.
"""

from datetime import datetime, timezone

import pytest

from graphcrawl.infra.discord_bot import format_status
from graphcrawl.infra.scheduler import Scheduler
from graphcrawl.models import CrawlProgress, CrawlState, CrawlStatus


def test_cron_expressions_are_validated():
    assert Scheduler.validate_cron_expression("0 4 * * *") is True
    assert Scheduler.validate_cron_expression("not a cron") is False


async def test_cron_job_is_registered():
    scheduler = Scheduler("UTC")

    async def repair():
        pass

    await scheduler.start()
    try:
        scheduler.add_cron_job(repair, "30 3 * * 1", job_id="repair")
        jobs = scheduler.list_jobs()
        assert list(jobs) == ["repair"]
        assert jobs["repair"]["next_run"] is not None
        with pytest.raises(ValueError):
            scheduler.add_cron_job(repair, "61 * * * *", job_id="broken")
    finally:
        await scheduler.stop()
    assert scheduler.running is False


def test_format_status_while_running():
    status = CrawlStatus(
        frontier_size=42,
        state=CrawlState.DRAINING,
        running=True,
        job="crawl",
        progress=CrawlProgress(processed=7, failed=1, requeued=1, relations_stored=30),
        field_misses={"item.synopsis": 3, "item.participants": 5},
    )
    jobs = {"repair": {"next_run": datetime(2026, 1, 5, 4, 0, tzinfo=timezone.utc)}}

    message = format_status(status, jobs)

    assert "`draining`" in message
    assert "job: **crawl**" in message
    assert "`42` queued" in message
    assert "Processed `7`" in message
    assert message.index("item.participants") < message.index("item.synopsis")
    assert "2026-01-05 04:00" in message


def test_format_status_reports_last_error():
    status = CrawlStatus(frontier_size=0, last_error="Failed to load https://letterboxd.com/films/popular/page/1/")

    message = format_status(status)

    assert "job:" not in message
    assert "Last error" in message
    assert len(message) < 2000


def test_progress_start_time_is_timezone_aware():
    started = CrawlProgress().started_at

    assert started.tzinfo is not None
    assert started.utcoffset().total_seconds() == 0

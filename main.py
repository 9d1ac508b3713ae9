"""
Main entry point for the crawler: scheduled repair pass plus optional Discord bot.
"""

import asyncio
import logging
import os
import signal
import sys

# Add project root to PYTHONPATH so imports work when running this script directly
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from graphcrawl.config import load_settings
from graphcrawl.errors import CrawlerBusy
from graphcrawl.infra.discord_bot import CrawlerBot, create_bot_commands
from graphcrawl.infra.scheduler import Scheduler
from graphcrawl.service import CrawlService


async def main():
    """Main entry point with scheduler and optional Discord bot support."""
    settings = load_settings()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s | %(name)s | %(levelname)s | %(message)s"
    )
    logger = logging.getLogger(__name__)

    logger.info("Starting crawler for site %s (db=%s)", settings.site, settings.database.path)
    logger.info("Discord token: %s", "set" if settings.discord.token else "not set")

    service = CrawlService.from_settings(settings)
    scheduler = Scheduler(timezone=settings.timezone)

    # Setup graceful shutdown
    stop_event = asyncio.Event()
    bot_task = None

    def signal_handler():
        logger.info("Received shutdown signal")
        stop_event.set()

    for sig in (signal.SIGTERM, signal.SIGINT):
        asyncio.get_running_loop().add_signal_handler(sig, signal_handler)

    async def scheduled_repair():
        try:
            service.repair()
        except CrawlerBusy as exc:
            logger.info("Skipping scheduled repair: %s", exc)

    try:
        await scheduler.start()

        if settings.repair.schedule:
            scheduler.add_cron_job(
                scheduled_repair,
                cron_expression=settings.repair.schedule,
                job_id="repair",
                name="repair",
            )

        if settings.discord.token:
            logger.info("Starting Discord bot...")
            bot = CrawlerBot(
                service,
                scheduler,
                admin_user_id=settings.discord.admin_user_id,
                admin_guild_id=settings.discord.admin_guild_id,
            )
            create_bot_commands(bot)
            bot_task = asyncio.create_task(bot.start(settings.discord.token))

        # Wait for shutdown signal
        await stop_event.wait()

    finally:
        logger.info("Shutting down...")

        if bot_task and not bot_task.done():
            logger.info("Stopping Discord bot...")
            bot_task.cancel()
            try:
                await bot_task
            except asyncio.CancelledError:
                pass

        await scheduler.stop()
        await service.close()

        logger.info("Shutdown complete")


if __name__ == "__main__":
    asyncio.run(main())

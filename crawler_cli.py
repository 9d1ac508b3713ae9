#!/usr/bin/env python3
"""
Crawler management CLI - run and inspect crawl jobs from the terminal.

Usage: python crawler_cli.py <command> [options]

Commands:
    start [target] [batch] [max_queue]  - Seed, drain and expand until target items are stored
    drain                               - Process the queued items only, then exit
    repair [batch] [max_items]          - Fill in missing fields of incomplete items
    status                              - Show queue size and store counts
    clear                               - Empty the crawl queue

Jobs run in the foreground; Ctrl+C stops after the current record.
"""

import asyncio
import logging
import os
import signal
import sys

# Add project root to PYTHONPATH
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from graphcrawl.config import load_settings
from graphcrawl.errors import CrawlError
from graphcrawl.models import CrawlProgress, RepairReport
from graphcrawl.service import CrawlService


class Colors:
    """ANSI color codes for terminal output."""
    GREEN = "\033[92m"
    YELLOW = "\033[93m"
    RED = "\033[91m"
    BLUE = "\033[94m"
    BOLD = "\033[1m"
    END = "\033[0m"


def _int_arg(position: int):
    return int(sys.argv[position]) if len(sys.argv) > position else None


def print_progress(progress: CrawlProgress) -> None:
    print(f"{Colors.GREEN}✅ Processed {progress.processed} item(s){Colors.END}")
    print(f"   skipped {progress.skipped}, failed {progress.failed} (requeued {progress.requeued})")
    print(f"   relations stored {progress.relations_stored}, new ids queued {progress.ids_discovered}")


def print_report(report: RepairReport) -> None:
    print(f"{Colors.GREEN}✅ Repair done: {report.as_log_line()}{Colors.END}")
    for name, count in sorted(report.patched_fields.items()):
        print(f"   {name}: {count}")


async def show_status(service: CrawlService) -> None:
    store = service.store
    print(f"{Colors.BOLD}Crawler status{Colors.END} ({service.site.name})")
    print(f"  Queue:      {await service.frontier.size()}")
    print(f"  Items:      {await store.items.count()} ({await store.items.count_incomplete()} incomplete)")
    print(f"  Relations:  {await store.relations.count()}")


async def run_job(service: CrawlService, launch) -> None:
    """Launch a job and wait for it; SIGINT asks it to stop cleanly."""
    loop = asyncio.get_running_loop()
    loop.add_signal_handler(signal.SIGINT, service.stop)
    try:
        launch()
        result = await service.wait()
    finally:
        loop.remove_signal_handler(signal.SIGINT)

    if isinstance(result, RepairReport):
        print_report(result)
    elif isinstance(result, CrawlProgress):
        print_progress(result)


async def main() -> int:
    """Main CLI entry point."""
    if len(sys.argv) < 2:
        print(__doc__)
        return 1

    command = sys.argv[1].lower()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s | %(name)s | %(levelname)s | %(message)s"
    )

    settings = load_settings()
    service = CrawlService.from_settings(settings)
    try:
        if command == "start":
            target, batch, max_queue = _int_arg(2), _int_arg(3), _int_arg(4)
            print(f"{Colors.BLUE}🚀 Crawling {settings.site}...{Colors.END}")
            await run_job(service, lambda: service.start(target, batch, max_queue))
        elif command == "drain":
            size = await service.frontier.size()
            if size == 0:
                print(f"{Colors.YELLOW}📭 Queue is empty. Nothing to process.{Colors.END}")
                return 0
            print(f"{Colors.BLUE}🚀 Draining {size} queued item(s)...{Colors.END}")
            await run_job(service, service.drain)
        elif command == "repair":
            batch, max_items = _int_arg(2), _int_arg(3)
            await run_job(service, lambda: service.repair(batch, max_items))
        elif command == "status":
            await show_status(service)
        elif command == "clear":
            removed = await service.clear_frontier()
            print(f"{Colors.GREEN}🗑️  Queue cleared ({removed} removed){Colors.END}")
        else:
            print(f"{Colors.RED}Unknown command: {command}{Colors.END}")
            print(__doc__)
            return 1
    except CrawlError as e:
        print(f"{Colors.RED}Error: {e}{Colors.END}")
        return 1
    except ValueError as e:
        print(f"{Colors.RED}Invalid argument: {e}{Colors.END}")
        return 1
    finally:
        await service.close()

    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))

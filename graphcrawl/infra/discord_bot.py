"""
Discord bot for controlling the crawler.
Admin commands are visible **only** to server administrators.

Visibility is handled via
    @app_commands.default_permissions(administrator=True)
Runtime execution is then further locked down to the configured
ADMIN_USER_ID (or any user with the Administrator permission).
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import discord
from discord import app_commands
from discord.ext import commands

from ..errors import CrawlerBusy
from ..models import CrawlStatus
from ..service import CrawlService
from .scheduler import Scheduler

logger = logging.getLogger(__name__)

# ──────────────────────────────────────────────────────────────────────────
# Helpers
# ──────────────────────────────────────────────────────────────────────────

async def is_bot_admin(interaction: discord.Interaction) -> bool:
    """Return *True* if the caller is the configured admin or has Administrator."""

    # Missing admin id on client ➔ refuse early (safety‑first)
    if not hasattr(interaction.client, "admin_user_id"):
        logger.warning("Admin check failed: admin_user_id not configured on bot client.")
        return False

    user = interaction.user
    is_admin_id = user.id == interaction.client.admin_user_id
    is_admin_perm = getattr(getattr(user, "guild_permissions", None), "administrator", False)

    if is_admin_id or is_admin_perm:
        return True

    await interaction.response.send_message(
        "❌ You are not authorized to use this command.", ephemeral=True
    )
    return False


def format_status(status: CrawlStatus, jobs: Optional[Dict[str, Any]] = None) -> str:
    """Render a status snapshot as a Discord message."""
    lines: List[str] = [
        f"📊 **Crawler status:** `{status.state.value}`"
        + (f" (job: **{status.job}**)" if status.running else ""),
        f"  └─ Frontier: `{status.frontier_size}` queued",
    ]

    if status.progress is not None:
        p = status.progress
        lines.append(
            f"  └─ Processed `{p.processed}`, skipped `{p.skipped}`, failed `{p.failed}` "
            f"(requeued `{p.requeued}`)"
        )
        lines.append(
            f"  └─ Relations stored `{p.relations_stored}`, ids discovered `{p.ids_discovered}`, "
            f"next listing page `{p.listing_page}`"
        )

    if status.field_misses:
        worst = sorted(status.field_misses.items(), key=lambda kv: kv[1], reverse=True)[:5]
        lines.append("  └─ Field misses: " + ", ".join(f"`{k}`×{v}" for k, v in worst))

    if status.last_error:
        lines.append(f"⚠️ Last error: {status.last_error[:300]}")

    for job_id, meta in (jobs or {}).items():
        next_run = meta.get("next_run")
        next_run_str = next_run.strftime("%Y-%m-%d %H:%M %Z") if next_run else "N/A"
        lines.append(f"🕒 **{job_id}** next run: `{next_run_str}`")

    return "\n".join(lines)[:1997]


# ──────────────────────────────────────────────────────────────────────────
# Bot implementation
# ──────────────────────────────────────────────────────────────────────────

class CrawlerBot(commands.Bot):
    """Discord bot exposing the crawl service's control surface."""

    def __init__(
        self,
        service: CrawlService,
        scheduler: Optional[Scheduler] = None,
        *,
        admin_user_id: Optional[int] = None,
        admin_guild_id: Optional[int] = None,
        **kwargs,
    ):  # noqa: D401
        intents = discord.Intents.default()  # Slash‑command‑only bot

        super().__init__(command_prefix="!", intents=intents, **kwargs)

        self.service = service
        self.scheduler = scheduler
        self.admin_user_id = admin_user_id
        self.admin_guild_id = admin_guild_id

    # ────────────────────────────────────────
    # Discord lifecycle hooks
    # ────────────────────────────────────────

    async def setup_hook(self):
        """Runs at startup before connecting to the gateway."""
        registered = [c.name for c in self.tree.get_commands()]
        logger.info("Commands registered in tree before sync: %s", registered)

        try:
            # Admin commands are scoped to the admin guild so they appear instantly
            if self.admin_guild_id:
                synced_admin = await self.tree.sync(guild=discord.Object(id=self.admin_guild_id))
                logger.info(
                    "Synced %d admin command(s) to guild %s",
                    len(synced_admin),
                    self.admin_guild_id,
                )

            synced_global = await self.tree.sync()
            logger.info("Synced %d global command(s)", len(synced_global))

        except discord.DiscordException as exc:  # pragma: no cover
            logger.exception("Failed to sync commands: %s", exc)

    async def on_error(self, event_method: str, *args: Any, **kwargs: Any) -> None:
        logger.exception("Unhandled exception in %s", event_method)


# ──────────────────────────────────────────────────────────────────────────
# Command registration helper
# ──────────────────────────────────────────────────────────────────────────

def create_bot_commands(bot: CrawlerBot) -> CrawlerBot:
    """Create and register Discord application (slash) commands."""

    # Register admin commands to a specific guild if supplied
    admin_guild_obj = discord.Object(id=bot.admin_guild_id) if bot.admin_guild_id else None

    async def _launch(interaction: discord.Interaction, job: str, launch) -> None:
        try:
            launch()
        except CrawlerBusy as exc:
            await interaction.response.send_message(f"⏳ Busy: {exc}", ephemeral=True)
            return
        await interaction.response.send_message(f"🚀 Started **{job}**")

    # ——————————————————————————————————————————————
    # ADMIN‑ONLY COMMANDS
    # Visible: Administrators only (via @default_permissions)
    # Executable: Only ADMIN_USER_ID or anyone with Administrator
    # ——————————————————————————————————————————————

    # /crawl
    @bot.tree.command(
        name="crawl",
        description="Start crawling: seed, drain and expand until the target is met",
        guild=admin_guild_obj,
    )
    @app_commands.default_permissions(administrator=True)
    @app_commands.check(is_bot_admin)
    async def _crawl(
        interaction: discord.Interaction,
        target: Optional[int] = None,
        batch_size: Optional[int] = None,
        max_queue: Optional[int] = None,
    ):
        await _launch(
            interaction,
            f"crawl (target={target or bot.service.settings.crawl.target})",
            lambda: bot.service.start(target, batch_size, max_queue),
        )

    # /drain
    @bot.tree.command(
        name="drain",
        description="Process the queued items only, without seeding or expansion",
        guild=admin_guild_obj,
    )
    @app_commands.default_permissions(administrator=True)
    @app_commands.check(is_bot_admin)
    async def _drain(interaction: discord.Interaction):
        size = await bot.service.frontier.size()
        if size == 0:
            await interaction.response.send_message("📭 Queue is empty. Nothing to process.")
            return
        await _launch(interaction, f"drain ({size} queued)", bot.service.drain)

    # /repair
    @bot.tree.command(
        name="repair",
        description="Re-fetch incomplete items and fill in their missing fields",
        guild=admin_guild_obj,
    )
    @app_commands.default_permissions(administrator=True)
    @app_commands.check(is_bot_admin)
    async def _repair(
        interaction: discord.Interaction,
        batch_size: Optional[int] = None,
        max_items: Optional[int] = None,
    ):
        await _launch(interaction, "repair", lambda: bot.service.repair(batch_size, max_items))

    # /clear
    @bot.tree.command(
        name="clear",
        description="Empty the crawl queue",
        guild=admin_guild_obj,
    )
    @app_commands.default_permissions(administrator=True)
    @app_commands.check(is_bot_admin)
    async def _clear(interaction: discord.Interaction):
        removed = await bot.service.clear_frontier()
        await interaction.response.send_message(f"🗑️ Queue cleared ({removed} removed)")

    # /stop
    @bot.tree.command(
        name="stop",
        description="Stop the running job after its current record",
        guild=admin_guild_obj,
    )
    @app_commands.default_permissions(administrator=True)
    @app_commands.check(is_bot_admin)
    async def _stop(interaction: discord.Interaction):
        if bot.service.stop():
            await interaction.response.send_message("🛑 Stop requested")
        else:
            await interaction.response.send_message("💤 Nothing is running", ephemeral=True)

    # ——————————————————————————————————————————————
    # PUBLIC COMMANDS (visible to everyone)
    # ——————————————————————————————————————————————

    @bot.tree.command(name="status", description="Show crawler and queue status")
    async def _status(interaction: discord.Interaction):
        await interaction.response.defer(thinking=True)
        status = await bot.service.status()
        jobs = bot.scheduler.list_jobs() if bot.scheduler else None
        await interaction.followup.send(format_status(status, jobs))

    return bot

"""
Configuration loading: a YAML file plus environment overrides.

The YAML file is optional; every setting has a default. Environment
variables (including those from a ``.env`` file) win over the file.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "crawler.yml"


class DatabaseSettings(BaseModel):
    path: str = "graphcrawl.db"


class FetcherSettings(BaseModel):
    kind: Literal["playwright", "http"] = "playwright"
    headless: bool = True
    browser_type: str = "chromium"
    timeout_ms: int = Field(30_000, gt=0)
    stealth: bool = True
    cookie_selectors: List[str] = Field(default_factory=list)


class CrawlSettings(BaseModel):
    """Knobs for the crawl loop. ``target``, ``batch_size`` and
    ``max_frontier_size`` are the defaults for ``start`` when the caller
    passes nothing."""

    target: int = Field(100, ge=0)
    batch_size: int = Field(10, ge=1)
    max_frontier_size: int = Field(500, ge=0)
    delay_seconds: float = Field(1.5, ge=0)
    ready_timeout_ms: int = Field(10_000, ge=0)
    max_listing_pages: Optional[int] = Field(50, ge=1)
    max_actors_per_item: Optional[int] = Field(12, ge=0)
    requeue_failed: bool = True
    max_attempts: int = Field(3, ge=1)


class RepairSettings(BaseModel):
    batch_size: int = Field(10, ge=1)
    max_items: int = Field(100, ge=1)
    schedule: Optional[str] = "0 4 * * *"


class DiscordSettings(BaseModel):
    token: Optional[str] = None
    admin_user_id: Optional[int] = None
    admin_guild_id: Optional[int] = None


class Settings(BaseModel):
    site: str = "letterboxd.LetterboxdSite"
    timezone: str = "UTC"
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    fetcher: FetcherSettings = Field(default_factory=FetcherSettings)
    crawl: CrawlSettings = Field(default_factory=CrawlSettings)
    repair: RepairSettings = Field(default_factory=RepairSettings)
    discord: DiscordSettings = Field(default_factory=DiscordSettings)


# env var -> (section, key); section None means top level
_ENV_OVERRIDES = {
    "GRAPHCRAWL_DB_PATH": ("database", "path"),
    "GRAPHCRAWL_FETCHER": ("fetcher", "kind"),
    "GRAPHCRAWL_HEADLESS": ("fetcher", "headless"),
    "DISCORD_TOKEN": ("discord", "token"),
    "ADMIN_USER_ID": ("discord", "admin_user_id"),
    "ADMIN_GUILD_ID": ("discord", "admin_guild_id"),
    "SCHEDULER_TIMEZONE": (None, "timezone"),
}


def _apply_env(data: Dict[str, Any]) -> Dict[str, Any]:
    for env_name, (section, key) in _ENV_OVERRIDES.items():
        value = os.getenv(env_name)
        if not value:
            continue
        if section is None:
            data[key] = value
        else:
            target = data.get(section) or {}
            target[key] = value
            data[section] = target
    return data


def load_config(path: str) -> Dict[str, Any]:
    """Load configuration from YAML file."""
    with open(path) as f:
        return yaml.safe_load(f) or {}


def load_settings(path: Optional[str] = None) -> Settings:
    """Build :class:`Settings` from ``path`` (or ``$GRAPHCRAWL_CONFIG``) and the environment."""
    load_dotenv()

    path = path or os.getenv("GRAPHCRAWL_CONFIG", DEFAULT_CONFIG_PATH)
    if Path(path).exists():
        data = load_config(path)
        logger.debug("Loaded configuration from %s", path)
    else:
        logger.info("Config file %s not found, using defaults", path)
        data = {}

    return Settings.model_validate(_apply_env(data))

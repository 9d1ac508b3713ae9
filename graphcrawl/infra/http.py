"""
http.py – Async HTTP client built on *aiohttp* with retries and
          transparent 429 / 5xx back-off, used by the static page fetcher.
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from email.utils import parsedate_to_datetime
from typing import Dict, Mapping, Optional

import aiohttp

logger = logging.getLogger(__name__)

DEFAULT_HEADERS = {
    "accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "accept-language": "en-US,en;q=0.9",
    "user-agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/123.0.0.0 Safari/537.36"
    ),
}

RETRY_STATUS = (429, 500, 502, 503, 504)


class HttpClient:
    """
    Thin wrapper over *aiohttp.ClientSession* adding:

    * per-instance default headers (keeps the user-agent in one place)
    * exponential back-off **with jitter** for 429 / 5xx / connection errors
    * *Retry-After* support
    """

    def __init__(
        self,
        *,
        timeout: float = 30.0,
        max_retries: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 30.0,
        default_headers: Optional[Mapping[str, str]] = None,
    ) -> None:
        self._timeout = timeout
        self._max_retries = max_retries
        self._base_delay = base_delay
        self._max_delay = max_delay
        self._session: Optional[aiohttp.ClientSession] = None
        self._default_headers: Dict[str, str] = dict(default_headers or DEFAULT_HEADERS)

    async def __aenter__(self) -> "HttpClient":  # noqa: D401
        await self._ensure_session()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:  # noqa: D401
        await self.close()

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self._timeout)
            self._session = aiohttp.ClientSession(timeout=timeout, headers=self._default_headers)
        return self._session

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None

    @staticmethod
    def _parse_retry_after(header_val: Optional[str]) -> Optional[float]:
        """Return seconds given a Retry-After header value."""
        if not header_val:
            return None
        header_val = header_val.strip()
        if header_val.isdigit():
            return float(header_val)
        try:
            retry_at = parsedate_to_datetime(header_val).timestamp()
        except (TypeError, ValueError):
            return None
        return max(0.0, retry_at - time.time())

    def _backoff(self, attempt: int, retry_after: Optional[float]) -> float:
        if retry_after is not None:
            return min(retry_after, self._max_delay)
        exponential = min(self._base_delay * 2 ** (attempt - 1), self._max_delay)
        return exponential + random.uniform(0, self._base_delay)

    async def get_text(self, url: str, **kwargs) -> str:
        """GET ``url`` and return the body, retrying transient failures."""
        session = await self._ensure_session()

        for attempt in range(1, self._max_retries + 1):
            retry_after: Optional[float] = None
            try:
                async with session.get(url, **kwargs) as resp:
                    if resp.status not in RETRY_STATUS:
                        resp.raise_for_status()
                        return await resp.text()
                    retry_after = self._parse_retry_after(resp.headers.get("Retry-After"))
                    error: Exception = aiohttp.ClientResponseError(
                        resp.request_info,
                        resp.history,
                        status=resp.status,
                        message=f"retryable status {resp.status}",
                        headers=resp.headers,
                    )
            except aiohttp.ClientResponseError:
                # non-retryable status from raise_for_status()
                raise
            except (aiohttp.ClientConnectionError, asyncio.TimeoutError) as e:
                error = e

            if attempt == self._max_retries:
                logger.error("GET %s failed after %d attempts: %s", url, attempt, error)
                raise error

            sleep_seconds = self._backoff(attempt, retry_after)
            logger.warning(
                "GET %s failed (attempt %d/%d – will retry in %.1fs): %s",
                url,
                attempt,
                self._max_retries,
                sleep_seconds,
                str(error).splitlines()[0] if str(error) else type(error).__name__,
            )
            await asyncio.sleep(sleep_seconds)

        raise RuntimeError("Unreachable retry loop")

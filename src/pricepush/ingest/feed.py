from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Optional

import aiohttp
import structlog

from pricepush.ingest.parser import parse_quotes
from pricepush.utils.errors import FeedError
from pricepush.utils.types import QuoteBook

log = structlog.get_logger("feed")


@dataclass(slots=True)
class FeedConfig:
    url: str = "https://bx.in.th/api/"
    timeout_s: float = 10.0


class QuoteFeed:
    """
    Read-only client for the quote feed. One GET per fetch(); the caller
    reuses the returned QuoteBook for the whole tick.

    Usage:
        feed = QuoteFeed(FeedConfig(url=...))
        await feed.start()
        book = await feed.fetch()
        await feed.stop()
    """
    def __init__(self, cfg: FeedConfig, session: Optional[aiohttp.ClientSession] = None):
        self.cfg = cfg
        self._session = session
        self._owns_session = session is None

    async def start(self) -> None:
        if self._session is None:
            timeout = aiohttp.ClientTimeout(total=self.cfg.timeout_s)
            self._session = aiohttp.ClientSession(timeout=timeout)
            self._owns_session = True

    async def stop(self) -> None:
        if self._session is not None and self._owns_session:
            await self._session.close()
            self._session = None

    async def fetch(self) -> QuoteBook:
        if self._session is None:
            raise FeedError("feed not started")
        try:
            async with self._session.get(self.cfg.url) as resp:
                if resp.status != 200:
                    raise FeedError(f"feed returned HTTP {resp.status}")
                payload = await resp.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise FeedError(f"feed request failed: {e!r}") from e
        except ValueError as e:
            # json decode errors subclass ValueError
            raise FeedError(f"feed body is not JSON: {e}") from e

        book = QuoteBook(parse_quotes(payload))
        log.debug("feed_fetched", assets=len(book))
        return book

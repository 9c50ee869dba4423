# src/pricepush/poller.py
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime
from typing import Literal, Optional, Protocol

import structlog

from pricepush.alerts.rules import Rule
from pricepush.config import PollerConfig
from pricepush.storage.subscriptions import SubscriptionStore
from pricepush.utils.errors import FeedError, StoreError
from pricepush.utils.time import Clock, monotonic_s, utc_now
from pricepush.utils.types import QuoteBook, RuleKind

log = structlog.get_logger("poller")

PollState = Literal["idle", "polling"]


class Feed(Protocol):
    async def fetch(self) -> QuoteBook: ...


class Notifier(Protocol):
    async def push(self, user_id: str, text: str) -> bool: ...


@dataclass(slots=True)
class TickStats:
    assets: int = 0
    evaluated: int = 0
    fired: int = 0
    delivered: int = 0
    failed: int = 0
    skipped: int = 0


class Poller:
    """
    Fixed-period tick loop: fetch quotes once, then for every asset and rule
    kind enumerate subscriptions, decide, push, and persist last_fired_at.

    Per-item policy:
      - feed failure      → abandon the tick, no subscription touched
      - enumerate failure → skip that asset/kind
      - get/decode failure→ skip that key
      - push failure      → leave the record as is; next tick retries
      - persist failure after a successful push → logged; the next tick may
        send a duplicate
      - record removed or rewritten between load and persist → left as is

    Ticks never overlap. The next tick starts `period_s` after the previous
    one started, or right after it finishes when it overran.
    """

    def __init__(
        self,
        *,
        feed: Feed,
        store: SubscriptionStore,
        notifier: Notifier,
        rules: dict[RuleKind, Rule],
        cfg: Optional[PollerConfig] = None,
        clock: Clock = utc_now,
    ):
        self.feed = feed
        self.store = store
        self.notifier = notifier
        self.rules = rules
        self.cfg = cfg or PollerConfig()
        self.clock = clock
        self.state: PollState = "idle"
        self.last_stats: Optional[TickStats] = None

        self._stop = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

    async def start(self) -> None:
        self._stop.clear()
        self._task = asyncio.create_task(self._loop(), name="poller")

    async def stop(self) -> None:
        self._stop.set()
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        self.state = "idle"

    async def _loop(self) -> None:
        if not self.cfg.run_on_start and await self._wait(self.cfg.period_s):
            return
        while not self._stop.is_set():
            started = monotonic_s()
            try:
                await self.run_tick()
            except Exception as e:
                log.exception("tick_crashed", err=str(e))
            elapsed = monotonic_s() - started
            if await self._wait(max(0.0, self.cfg.period_s - elapsed)):
                return

    async def _wait(self, delay: float) -> bool:
        """Sleep up to `delay`; True if stop() was requested meanwhile."""
        try:
            await asyncio.wait_for(self._stop.wait(), timeout=delay)
            return True
        except asyncio.TimeoutError:
            return False

    # ---------- one tick ----------

    async def run_tick(self, now: Optional[datetime] = None) -> TickStats:
        stats = TickStats()
        self.state = "polling"
        try:
            now = now or self.clock()
            try:
                book = await self.feed.fetch()
            except FeedError as e:
                log.warning("tick_feed_failed", err=str(e))
                return stats

            for asset in book.assets():
                stats.assets += 1
                quote = book.get(asset)
                for kind, rule in self.rules.items():
                    await self._process(asset, kind, rule, quote, now, stats)

            log.info(
                "tick_done",
                assets=stats.assets,
                evaluated=stats.evaluated,
                fired=stats.fired,
                delivered=stats.delivered,
                failed=stats.failed,
                skipped=stats.skipped,
            )
            return stats
        finally:
            self.last_stats = stats
            self.state = "idle"

    async def _process(self, asset, kind, rule, quote, now, stats: TickStats) -> None:
        try:
            members = await self.store.enumerate(asset, kind)
        except StoreError as e:
            log.warning("enumerate_failed", asset=asset, kind=kind, err=str(e))
            return

        for key in members:
            try:
                sub = await self.store.get(key)
            except StoreError as e:
                log.warning("subscription_load_failed", key=key, err=str(e))
                stats.skipped += 1
                continue

            stats.evaluated += 1
            fire, message = rule.decide(quote, sub, now)
            if not fire:
                continue

            stats.fired += 1
            if not await self.notifier.push(sub.user_id, message):
                stats.failed += 1
                continue
            stats.delivered += 1

            try:
                if not await self.store.mark_fired(sub, now):
                    log.info("subscription_changed_during_tick", key=key)
            except StoreError as e:
                log.error("persist_failed_after_push", key=key, err=str(e))

# src/pricepush/manager.py
from __future__ import annotations

import math
from typing import Optional

import structlog

from pricepush.alerts.formatting import describe_subscription, format_price
from pricepush.config import AppConfig, RulesConfig
from pricepush.ingest.feed import QuoteFeed
from pricepush.storage.subscriptions import SubscriptionStore
from pricepush.utils.errors import StoreError, ValidationError
from pricepush.utils.time import Clock, utc_now
from pricepush.utils.types import RULE_KINDS, AlertParams, IntervalParams, RuleKind, Subscription

log = structlog.get_logger("manager")


class RuleManager:
    """
    Rule-management surface used by the command handlers.

    Every parameter is validated before the store is touched. New rules start
    with last_fired_at = now, so an interval reminder first fires one full
    period after it was set.
    """

    def __init__(
        self,
        store: SubscriptionStore,
        *,
        feed: Optional[QuoteFeed] = None,
        cfg: Optional[RulesConfig] = None,
        clock: Clock = utc_now,
        display_tz: str = "Asia/Bangkok",
    ):
        self.store = store
        self.feed = feed
        self.cfg = cfg or RulesConfig()
        self.clock = clock
        self.display_tz = display_tz

    # ---------- interval ----------

    async def set_interval(self, user_id: str, asset: str, minutes) -> Subscription:
        user_id, asset = _ids(user_id, asset)
        every = self._validate_minutes(minutes)
        sub = Subscription(
            user_id=user_id,
            asset=asset,
            kind="interval",
            params=IntervalParams(every_minutes=every),
            last_fired_at=self.clock(),
        )
        key = await self.store.put(sub)
        log.info("interval_set", key=key, every_minutes=every)
        return sub

    async def remove_interval(self, user_id: str, asset: str) -> None:
        user_id, asset = _ids(user_id, asset)
        await self.store.remove(user_id, asset, "interval")

    # ---------- alert ----------

    async def set_alert(self, user_id: str, asset: str, center, band) -> Subscription:
        user_id, asset = _ids(user_id, asset)
        c = _finite(center, "center")
        b = _finite(band, "band")
        if b <= 0:
            raise ValidationError("band must be positive")
        sub = Subscription(
            user_id=user_id,
            asset=asset,
            kind="alert",
            params=AlertParams(center=c, band=b),
            last_fired_at=self.clock(),
        )
        key = await self.store.put(sub)
        log.info("alert_set", key=key, center=c, band=b)
        return sub

    async def remove_alert(self, user_id: str, asset: str) -> None:
        user_id, asset = _ids(user_id, asset)
        await self.store.remove(user_id, asset, "alert")

    # ---------- views ----------

    async def list_rules(self, user_id: str, kind: RuleKind) -> list[Subscription]:
        if kind not in RULE_KINDS:
            raise ValidationError(f"unknown rule kind: {kind!r}")
        if not user_id:
            raise ValidationError("user id is required")
        out: list[Subscription] = []
        for key in await self.store.enumerate_by_user(user_id, kind):
            try:
                out.append(await self.store.get(key))
            except StoreError as e:
                log.warning("list_rules_skip", key=key, err=str(e))
        return out

    async def rules_text(self, user_id: str, kind: RuleKind) -> str:
        """Render a user's rules of one kind, one line each, times in display_tz."""
        if kind not in RULE_KINDS:
            raise ValidationError(f"unknown rule kind: {kind!r}")
        if not user_id:
            raise ValidationError("user id is required")
        keys = await self.store.enumerate_by_user(user_id, kind)
        if not keys:
            return f"No {kind} rules."
        lines = [f"Your {kind} rules:"]
        for key in keys:
            try:
                sub = await self.store.get(key)
            except StoreError as e:
                log.warning("rules_text_skip", key=key, err=str(e))
                lines.append(f"{key}: could not load")
                continue
            lines.append(describe_subscription(sub, self.display_tz))
        return "\n".join(lines)

    async def current_price_text(self, asset: str) -> str:
        """Fetch the feed once and format the current price of `asset`."""
        if self.feed is None:
            raise RuntimeError("RuleManager was built without a feed")
        asset = asset.strip().lower()
        if not asset:
            raise ValidationError("asset is required")
        quote = (await self.feed.fetch()).get(asset)
        return f"{asset.upper()} price: {format_price(quote.last_price)}"

    # ---------- validation ----------

    def _validate_minutes(self, minutes) -> int:
        if isinstance(minutes, bool):
            raise ValidationError("minutes must be a whole number")
        if isinstance(minutes, str):
            minutes = minutes.strip()
        try:
            every = int(minutes)
        except (TypeError, ValueError):
            raise ValidationError("minutes must be a whole number") from None
        if isinstance(minutes, float) and minutes != every:
            raise ValidationError("minutes must be a whole number")
        if every < self.cfg.min_interval_minutes:
            raise ValidationError(f"minimum interval is {self.cfg.min_interval_minutes} minutes")
        if every % self.cfg.interval_step_minutes != 0:
            raise ValidationError(f"interval must be a multiple of {self.cfg.interval_step_minutes} minutes")
        return every


def manager_from_config(cfg: AppConfig, store: SubscriptionStore, feed: Optional[QuoteFeed] = None) -> RuleManager:
    return RuleManager(store, feed=feed, cfg=cfg.rules, display_tz=cfg.display_tz)


def _ids(user_id: str, asset: str) -> tuple[str, str]:
    user_id = (user_id or "").strip()
    asset = (asset or "").strip().lower()
    if not user_id:
        raise ValidationError("user id is required")
    if ":" in user_id:
        raise ValidationError("user id must not contain ':'")
    if not asset:
        raise ValidationError("asset is required")
    if ":" in asset:
        raise ValidationError("asset must not contain ':'")
    return user_id, asset


def _finite(v, name: str) -> float:
    if isinstance(v, bool):
        raise ValidationError(f"{name} must be a number")
    try:
        f = float(v)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be a number") from None
    if not math.isfinite(f):
        raise ValidationError(f"{name} must be finite")
    return f

# src/pricepush/alerts/rules.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Union

from pricepush.alerts.formatting import format_alert_message, format_interval_message
from pricepush.storage.keys import index_key
from pricepush.utils.types import AlertParams, IntervalParams, Quote, RuleKind, Subscription

Decision = tuple[bool, str]
NO_FIRE: Decision = (False, "")


@dataclass(slots=True)
class IntervalRule:
    """
    Fire every `every_minutes`, regardless of price.
    - never fired          → fire
    - now - last_fired_at >= every_minutes - grace → fire
    The grace window absorbs scheduler drift so a subscription due exactly on
    a tick boundary is not pushed back a full period.
    """
    grace_seconds: int = 10
    kind: RuleKind = "interval"

    def key(self, asset: str) -> str:
        return index_key(self.kind, asset)

    def decide(self, quote: Quote, sub: Subscription, now: datetime) -> Decision:
        if not isinstance(sub.params, IntervalParams):
            return NO_FIRE
        if sub.last_fired_at is not None:
            due_after = timedelta(minutes=sub.params.every_minutes) - timedelta(seconds=self.grace_seconds)
            if now - sub.last_fired_at < due_after:
                return NO_FIRE
        return True, format_interval_message(quote)


@dataclass(slots=True)
class AlertRule:
    """
    Fire while the price sits strictly inside (center - band, center + band).
    Both bounds are exclusive; at or outside the band nothing is sent.
    Fires on every tick the price stays inside.
    """
    kind: RuleKind = "alert"

    def key(self, asset: str) -> str:
        return index_key(self.kind, asset)

    def decide(self, quote: Quote, sub: Subscription, now: datetime) -> Decision:
        p = sub.params
        if not isinstance(p, AlertParams):
            return NO_FIRE
        if not (p.low < quote.last_price < p.high):
            return NO_FIRE
        return True, format_alert_message(quote, p)


Rule = Union[IntervalRule, AlertRule]


def build_rules(grace_seconds: int = 10) -> dict[RuleKind, Rule]:
    """Closed set of rule kinds, in evaluation order."""
    return {
        "interval": IntervalRule(grace_seconds=grace_seconds),
        "alert": AlertRule(),
    }

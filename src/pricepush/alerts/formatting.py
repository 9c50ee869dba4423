from __future__ import annotations

from pricepush.utils.time import in_zone
from pricepush.utils.types import AlertParams, IntervalParams, Quote, Subscription


def format_price(v: float) -> str:
    """Two decimals with thousands separator, e.g. 1234567.891 -> '1,234,567.89'."""
    return f"{v:,.2f}"


def format_interval_message(quote: Quote) -> str:
    return f"{quote.secondary.upper()} price: {format_price(quote.last_price)}"


def format_alert_message(quote: Quote, params: AlertParams) -> str:
    return (
        f"{quote.secondary.upper()} is at {format_price(quote.last_price)}, "
        f"inside your alert {format_price(params.center)} "
        f"({format_price(params.low)} - {format_price(params.high)})"
    )


def describe_subscription(sub: Subscription, tz_name: str = "Asia/Bangkok") -> str:
    """One line per rule for the 'view my rules' listing."""
    asset = sub.asset.upper()
    p = sub.params
    if isinstance(p, IntervalParams):
        last = "never"
        if sub.last_fired_at is not None:
            last = in_zone(sub.last_fired_at, tz_name).strftime("%Y-%m-%d %H:%M %Z")
        return f"{asset} every {p.every_minutes} min, last push: {last}"
    return f"{asset} alert {format_price(p.center)} ({format_price(p.low)} - {format_price(p.high)})"

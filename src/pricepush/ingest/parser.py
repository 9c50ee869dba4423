from __future__ import annotations

from typing import Any

from pricepush.utils.errors import FeedError
from pricepush.utils.types import Quote


def _num(entry: dict, name: str) -> float:
    v = entry.get(name)
    if isinstance(v, bool) or v is None:
        raise FeedError(f"missing or invalid {name!r}")
    try:
        return float(v)  # numbers sometimes arrive as strings
    except (TypeError, ValueError) as e:
        raise FeedError(f"non-numeric {name!r}: {v!r}") from e


def parse_quote(entry: Any) -> Quote:
    """
    Parse one feed entry:
      {"primary_currency": "THB", "secondary_currency": "BTC",
       "change": 1.2, "last_price": 123456.0, "volume_24hours": 10.5, ...}
    Symbols are folded to lower case. Raises FeedError on malformed entries.
    """
    if not isinstance(entry, dict):
        raise FeedError(f"quote entry is not an object: {type(entry).__name__}")

    primary = entry.get("primary_currency")
    secondary = entry.get("secondary_currency")
    if not isinstance(primary, str) or not isinstance(secondary, str) or not secondary:
        raise FeedError("quote entry missing currency symbols")

    return Quote(
        primary=primary.lower(),
        secondary=secondary.lower(),
        change=_num(entry, "change"),
        last_price=_num(entry, "last_price"),
        volume_24h=_num(entry, "volume_24hours"),
    )


def parse_quotes(payload: Any) -> list[Quote]:
    """Feed payload is an object keyed by opaque pairing ids."""
    if not isinstance(payload, dict):
        raise FeedError(f"feed payload is not an object: {type(payload).__name__}")
    return [parse_quote(entry) for entry in payload.values()]

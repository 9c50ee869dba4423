from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterator, Literal, Optional, Union

# ---- feed-level primitives ----

@dataclass(slots=True, frozen=True)
class Quote:
    primary: str
    secondary: str      # lookup key (asset)
    change: float
    last_price: float
    volume_24h: float


def zero_quote(symbol: str) -> Quote:
    return Quote(primary="", secondary=symbol.lower(), change=0.0, last_price=0.0, volume_24h=0.0)


@dataclass(slots=True)
class QuoteBook:
    """
    All quotes from one feed fetch. Lookup is by secondary symbol, case-insensitive.
    Unknown symbols resolve to a zero-value quote (price 0.0).
    """
    quotes: list[Quote] = field(default_factory=list)
    _by_symbol: dict[str, Quote] = field(default_factory=dict, repr=False)

    def __post_init__(self) -> None:
        for q in self.quotes:
            # first pair wins when several share a secondary symbol
            self._by_symbol.setdefault(q.secondary, q)

    def get(self, symbol: str) -> Quote:
        return self._by_symbol.get(symbol.lower()) or zero_quote(symbol)

    def assets(self) -> Iterator[str]:
        yield from self._by_symbol.keys()

    def __len__(self) -> int:
        return len(self._by_symbol)


# ---- subscription domain ----

RuleKind = Literal["interval", "alert"]
RULE_KINDS: tuple[RuleKind, ...] = ("interval", "alert")


@dataclass(slots=True, frozen=True)
class IntervalParams:
    every_minutes: int


@dataclass(slots=True, frozen=True)
class AlertParams:
    center: float
    band: float     # half-width

    @property
    def low(self) -> float:
        return self.center - self.band

    @property
    def high(self) -> float:
        return self.center + self.band


RuleParams = Union[IntervalParams, AlertParams]


@dataclass(slots=True)
class Subscription:
    user_id: str
    asset: str
    kind: RuleKind
    params: RuleParams
    last_fired_at: Optional[datetime] = None  # advanced only after a successful push

from __future__ import annotations

import os
from dataclasses import dataclass, field

from pricepush.ingest.feed import FeedConfig


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


@dataclass(slots=True)
class PollerConfig:
    period_s: float = 300.0         # 5 minutes between tick starts
    run_on_start: bool = True


@dataclass(slots=True)
class RulesConfig:
    grace_seconds: int = 10
    min_interval_minutes: int = 5
    interval_step_minutes: int = 5


@dataclass(slots=True)
class AppConfig:
    redis_url: str = "redis://localhost:6379/0"
    redis_timeout_s: float = 5.0
    display_tz: str = "Asia/Bangkok"
    feed: FeedConfig = field(default_factory=FeedConfig)
    poller: PollerConfig = field(default_factory=PollerConfig)
    rules: RulesConfig = field(default_factory=RulesConfig)


def config_from_env() -> AppConfig:
    """Build AppConfig from the environment (call load_dotenv() first)."""
    cfg = AppConfig(
        redis_url=os.getenv("REDIS_URL", "redis://localhost:6379/0"),
        redis_timeout_s=float(os.getenv("REDIS_TIMEOUT_S", "5")),
        display_tz=os.getenv("DISPLAY_TZ", "Asia/Bangkok"),
        feed=FeedConfig(
            url=os.getenv("FEED_URL", "https://bx.in.th/api/"),
            timeout_s=float(os.getenv("FEED_TIMEOUT_S", "10")),
        ),
        poller=PollerConfig(
            period_s=float(os.getenv("POLL_INTERVAL_S", "300")),
            run_on_start=_env_bool("POLL_RUN_ON_START", "1"),
        ),
        rules=RulesConfig(
            grace_seconds=int(os.getenv("INTERVAL_GRACE_S", "10")),
            min_interval_minutes=int(os.getenv("INTERVAL_MIN_MINUTES", "5")),
            interval_step_minutes=int(os.getenv("INTERVAL_STEP_MINUTES", "5")),
        ),
    )
    if cfg.poller.period_s <= 0:
        raise ValueError("POLL_INTERVAL_S must be positive")
    if cfg.rules.interval_step_minutes <= 0:
        raise ValueError("INTERVAL_STEP_MINUTES must be positive")
    return cfg

# src/pricepush/main.py
import asyncio

import structlog
from dotenv import load_dotenv
from redis.asyncio import Redis

from pricepush.alerts.rules import build_rules
from pricepush.config import config_from_env
from pricepush.ingest.feed import QuoteFeed
from pricepush.notify.console import ConsoleNotifier
from pricepush.notify.line import LineNotifier, line_config_from_env
from pricepush.poller import Poller
from pricepush.storage.subscriptions import SubscriptionStore

load_dotenv()
log = structlog.get_logger()


async def main():
    cfg = config_from_env()

    # Clients are built once here and passed down explicitly
    redis_client = Redis.from_url(
        cfg.redis_url,
        decode_responses=True,
        socket_timeout=cfg.redis_timeout_s,
        socket_connect_timeout=cfg.redis_timeout_s,
    )
    store = SubscriptionStore(redis_client)
    feed = QuoteFeed(cfg.feed)

    # LINE if configured, console otherwise
    try:
        notifier = LineNotifier(line_config_from_env())
        log.info("line_enabled")
    except RuntimeError:
        notifier = ConsoleNotifier()
        log.info("line_disabled_missing_env")

    poller = Poller(
        feed=feed,
        store=store,
        notifier=notifier,
        rules=build_rules(grace_seconds=cfg.rules.grace_seconds),
        cfg=cfg.poller,
    )

    await feed.start()
    await notifier.start()
    await poller.start()
    log.info("poller_started", period_s=cfg.poller.period_s, feed=cfg.feed.url)

    try:
        await asyncio.Event().wait()  # run for process lifetime
    finally:
        await poller.stop()
        await notifier.stop()
        await feed.stop()
        await redis_client.aclose()


def run():
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run()

from __future__ import annotations

import asyncio
import os
import time
from dataclasses import dataclass
from typing import Optional

import aiohttp
import structlog

from pricepush.utils.errors import DeliveryError

log = structlog.get_logger("line")

PUSH_URL = "https://api.line.me/v2/bot/message/push"

# --------- small rate limiter (token bucket) ----------

class RateLimiter:
    def __init__(self, rate_per_sec: float, burst: int = 1):
        self.rate = float(rate_per_sec)
        self.capacity = int(burst)
        self.tokens = float(burst)
        self.updated = time.monotonic()
        self._lock = asyncio.Lock()

    async def acquire(self):
        async with self._lock:
            now = time.monotonic()
            # refill
            self.tokens = min(self.capacity, self.tokens + (now - self.updated) * self.rate)
            self.updated = now
            if self.tokens < 1.0:
                needed = 1.0 - self.tokens
                await asyncio.sleep(needed / self.rate)
                self.updated = time.monotonic()
                self.tokens = 1.0
            self.tokens -= 1.0

# --------- config & client ----------

@dataclass(slots=True)
class LineConfig:
    channel_token: str
    push_url: str = PUSH_URL
    timeout_s: float = 8.0
    rate_per_sec: float = 20.0
    burst: int = 20


def line_config_from_env() -> LineConfig:
    token = os.getenv("LINE_CHANNEL_TOKEN")
    if not token:
        raise RuntimeError("LINE_CHANNEL_TOKEN is not set")
    return LineConfig(
        channel_token=token,
        push_url=os.getenv("LINE_PUSH_URL", PUSH_URL),
        timeout_s=float(os.getenv("LINE_TIMEOUT_S", "8")),
    )


class LineNotifier:
    """
    Push text messages to LINE users.

    push() makes exactly one delivery attempt and never raises: failures are
    logged and reported as False so the caller leaves the subscription
    untouched and the next tick retries.
    """
    def __init__(self, cfg: LineConfig, session: Optional[aiohttp.ClientSession] = None):
        self.cfg = cfg
        self._session = session
        self._owns_session = session is None
        self._rl = RateLimiter(rate_per_sec=cfg.rate_per_sec, burst=cfg.burst)

    async def start(self):
        if self._session is None:
            timeout = aiohttp.ClientTimeout(total=self.cfg.timeout_s)
            self._session = aiohttp.ClientSession(timeout=timeout)
            self._owns_session = True

    async def stop(self):
        if self._session is not None and self._owns_session:
            await self._session.close()
            self._session = None

    async def push(self, user_id: str, text: str) -> bool:
        try:
            await self._rl.acquire()
            await self._send(user_id, text)
        except DeliveryError as e:
            log.warning("line_push_failed", user_id=user_id, status=e.status, err=str(e))
            return False
        return True

    async def _send(self, user_id: str, text: str) -> None:
        if self._session is None:
            raise DeliveryError("notifier not started")
        headers = {"Authorization": f"Bearer {self.cfg.channel_token}"}
        payload = {"to": user_id, "messages": [{"type": "text", "text": text}]}
        try:
            async with self._session.post(self.cfg.push_url, json=payload, headers=headers) as resp:
                if resp.status == 200:
                    return
                detail = await _maybe_text(resp)
                raise DeliveryError(f"LINE push rejected: {detail}", status=resp.status)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            log.warning("line_network_error", user_id=user_id, err=repr(e))
            raise DeliveryError(f"network error: {e!r}") from e
        except RuntimeError as e:
            # aiohttp raises this for a closed session
            log.warning("line_session_error", user_id=user_id, err=str(e))
            raise DeliveryError(f"session unusable: {e}") from e


async def _maybe_text(resp: aiohttp.ClientResponse) -> str:
    try:
        return await resp.text()
    except Exception:
        return "<no body>"

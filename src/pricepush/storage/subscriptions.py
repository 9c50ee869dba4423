# src/pricepush/storage/subscriptions.py
from __future__ import annotations

from dataclasses import replace
from datetime import datetime

import structlog
from redis.asyncio import Redis
from redis.exceptions import RedisError, WatchError

from pricepush.storage import codec
from pricepush.storage.keys import index_key, kind_from_record_key, record_key, user_scan_pattern
from pricepush.utils.errors import StoreError, SubscriptionNotFound
from pricepush.utils.types import RuleKind, Subscription

log = structlog.get_logger("store")


class SubscriptionStore:
    """
    Redis-backed subscription records plus a per-(kind, asset) index set.

    Layout:
      {user}:{asset}:{kind}  -> JSON record (see storage/codec.py)
      {kind}:{asset}         -> SET of record keys

    A record and its index membership are always written together inside one
    MULTI/EXEC transaction, so a concurrent reader never sees one without the other.
    """

    def __init__(self, redis: Redis, scan_count: int = 100, max_watch_retries: int = 3):
        self.redis = redis
        self.scan_count = scan_count
        self.max_watch_retries = max_watch_retries

    async def put(self, sub: Subscription) -> str:
        rkey = record_key(sub.user_id, sub.asset, sub.kind)
        skey = index_key(sub.kind, sub.asset)
        data = codec.encode(sub)

        p = self.redis.pipeline(transaction=True)
        p.set(rkey, data)
        p.sadd(skey, rkey)
        try:
            await p.execute()
        except RedisError as e:
            raise StoreError(f"put failed: {e}", key=rkey) from e
        return rkey

    async def mark_fired(self, sub: Subscription, at: datetime) -> bool:
        """
        Persist last_fired_at for the record `sub` was loaded from (WATCH/MULTI).
        The stored record is re-read under WATCH and must still equal `sub`;
        if it was removed or rewritten since, nothing is written and False is
        returned, so a rule changed or deleted mid-tick is left as the user set it.
        """
        rkey = record_key(sub.user_id, sub.asset, sub.kind)
        skey = index_key(sub.kind, sub.asset)

        try:
            async with self.redis.pipeline(transaction=True) as p:
                for _ in range(self.max_watch_retries):
                    try:
                        await p.watch(rkey)
                        current = await p.get(rkey)
                        if current is None or codec.decode(current, sub.kind, key=rkey) != sub:
                            await p.unwatch()
                            return False
                        p.multi()
                        p.set(rkey, codec.encode(replace(sub, last_fired_at=at)))
                        p.sadd(skey, rkey)
                        await p.execute()
                        return True
                    except WatchError:
                        # re-read on the next pass
                        log.debug("mark_fired_retry", key=rkey)
                        continue
        except RedisError as e:
            raise StoreError(f"mark_fired failed: {e}", key=rkey) from e
        raise StoreError("record kept changing under WATCH", key=rkey)

    async def remove(self, user_id: str, asset: str, kind: RuleKind) -> None:
        """Delete record + index membership. Absent keys are a no-op."""
        rkey = record_key(user_id, asset, kind)
        skey = index_key(kind, asset)

        p = self.redis.pipeline(transaction=True)
        p.delete(rkey)
        p.srem(skey, rkey)
        try:
            await p.execute()
        except RedisError as e:
            raise StoreError(f"remove failed: {e}", key=rkey) from e
        log.info("subscription_removed", key=rkey, index=skey)

    async def enumerate(self, asset: str, kind: RuleKind) -> list[str]:
        skey = index_key(kind, asset)
        try:
            members = await self.redis.smembers(skey)
        except RedisError as e:
            raise StoreError(f"smembers failed: {e}", key=skey) from e
        return sorted(_s(m) for m in members)

    async def enumerate_by_user(self, user_id: str, kind: RuleKind) -> list[str]:
        """
        Prefix scan over {user}:*:{kind}. Cursor-based: loops until the cursor
        comes back to 0. Not atomic against concurrent writes.
        """
        pattern = user_scan_pattern(user_id, kind)
        keys: set[str] = set()  # SCAN may return a key more than once
        cursor = 0
        try:
            while True:
                cursor, page = await self.redis.scan(cursor=cursor, match=pattern, count=self.scan_count)
                keys.update(_s(k) for k in page)
                if int(cursor) == 0:
                    break
        except RedisError as e:
            raise StoreError(f"scan failed: {e}", key=pattern) from e
        return sorted(keys)

    async def get(self, key: str) -> Subscription:
        try:
            kind = kind_from_record_key(key)
        except ValueError as e:
            raise SubscriptionNotFound(str(e), key=key) from e
        try:
            data = await self.redis.get(key)
        except RedisError as e:
            raise StoreError(f"get failed: {e}", key=key) from e
        if data is None:
            raise SubscriptionNotFound("no such subscription", key=key)
        return codec.decode(data, kind, key=key)


def _s(v) -> str:
    return v.decode("utf-8") if isinstance(v, (bytes, bytearray)) else str(v)

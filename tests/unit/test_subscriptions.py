from datetime import datetime, timedelta, timezone

import pytest

from pricepush.storage import codec
from pricepush.storage.subscriptions import SubscriptionStore
from pricepush.utils.errors import RecordDecodeError, StoreError, SubscriptionNotFound
from pricepush.utils.types import AlertParams, IntervalParams, Subscription
from tests.helpers.fake_redis import FakeRedis

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)

def interval_sub(user="U1", asset="usd", minutes=10, at=T0):
    return Subscription(user, asset, "interval", IntervalParams(minutes), at)

@pytest.fixture
def r():
    return FakeRedis()

@pytest.fixture
def store(r):
    return SubscriptionStore(r)

@pytest.mark.asyncio
async def test_put_get_round_trip(store):
    sub = Subscription("U1", "btc", "alert", AlertParams(100.0, 5.0), T0 + timedelta(microseconds=7))
    key = await store.put(sub)
    assert key == "U1:btc:alert"
    assert await store.get(key) == sub

@pytest.mark.asyncio
async def test_put_writes_record_and_index_in_one_transaction(store, r):
    await store.put(interval_sub())
    assert r.executed == [[
        ("SET", "U1:usd:interval", r.strings["U1:usd:interval"]),
        ("SADD", "interval:usd", "U1:usd:interval"),
    ]]

@pytest.mark.asyncio
async def test_failed_transaction_leaves_nothing_behind(store, r):
    r.fail.add("EXEC")
    with pytest.raises(StoreError):
        await store.put(interval_sub())
    assert r.strings == {}
    assert r.sets == {}

@pytest.mark.asyncio
async def test_put_overwrites_same_identity(store):
    await store.put(interval_sub(minutes=10))
    await store.put(interval_sub(minutes=30))
    assert await store.enumerate("usd", "interval") == ["U1:usd:interval"]
    assert (await store.get("U1:usd:interval")).params == IntervalParams(30)

@pytest.mark.asyncio
async def test_enumerate_reflects_put_and_remove(store):
    await store.put(interval_sub("U1"))
    await store.put(interval_sub("U2"))
    assert await store.enumerate("USD", "interval") == ["U1:usd:interval", "U2:usd:interval"]
    assert await store.enumerate("usd", "alert") == []

    await store.remove("U1", "usd", "interval")
    assert await store.enumerate("usd", "interval") == ["U2:usd:interval"]
    with pytest.raises(SubscriptionNotFound):
        await store.get("U1:usd:interval")

@pytest.mark.asyncio
async def test_remove_absent_key_is_noop(store, r):
    await store.remove("nobody", "usd", "alert")
    assert r.strings == {} and r.sets == {}

@pytest.mark.asyncio
async def test_enumerate_by_user_follows_cursor_until_zero(r):
    store = SubscriptionStore(r)
    for asset in ("btc", "eth", "usd", "xrp", "omg"):
        await store.put(interval_sub("U1", asset))
    await store.put(Subscription("U1", "btc", "alert", AlertParams(1.0, 1.0), T0))
    await store.put(interval_sub("U2", "btc"))

    keys = await store.enumerate_by_user("U1", "interval")

    assert keys == sorted(f"U1:{a}:interval" for a in ("btc", "eth", "usd", "xrp", "omg"))
    assert r.scan_calls > 1  # more than one page

@pytest.mark.asyncio
async def test_get_undecodable_record(store, r):
    r.set_raw("U1:usd:interval", "{broken")
    with pytest.raises(RecordDecodeError):
        await store.get("U1:usd:interval")

@pytest.mark.asyncio
@pytest.mark.parametrize("cmd, call", [
    ("GET", lambda s: s.get("U1:usd:interval")),
    ("SMEMBERS", lambda s: s.enumerate("usd", "interval")),
    ("SCAN", lambda s: s.enumerate_by_user("U1", "interval")),
    ("EXEC", lambda s: s.remove("U1", "usd", "interval")),
])
async def test_redis_errors_become_store_errors(store, r, cmd, call):
    r.fail.add(cmd)
    with pytest.raises(StoreError):
        await call(store)

@pytest.mark.asyncio
async def test_mark_fired_updates_existing_record(store):
    sub = interval_sub()
    await store.put(sub)
    later = T0 + timedelta(minutes=11)

    assert await store.mark_fired(sub, later) is True
    assert (await store.get("U1:usd:interval")).last_fired_at == later

@pytest.mark.asyncio
async def test_mark_fired_does_not_resurrect_removed_record(store, r):
    sub = interval_sub()
    await store.put(sub)
    await store.remove("U1", "usd", "interval")

    assert await store.mark_fired(sub, T0 + timedelta(minutes=11)) is False
    assert r.strings == {}
    assert await store.enumerate("usd", "interval") == []

@pytest.mark.asyncio
async def test_mark_fired_retries_on_concurrent_change(store, r):
    sub = interval_sub()
    await store.put(sub)
    calls = {"n": 0}

    def _touch_once(fake):
        calls["n"] += 1
        if calls["n"] == 1:
            fake._bump("U1:usd:interval")  # someone wrote between WATCH and EXEC

    r.before_exec = _touch_once
    assert await store.mark_fired(sub, T0 + timedelta(minutes=11)) is True
    assert calls["n"] == 2

@pytest.mark.asyncio
async def test_mark_fired_keeps_record_rewritten_after_load(store):
    loaded = interval_sub(minutes=10)
    await store.put(loaded)
    await store.put(interval_sub(minutes=30, at=T0 + timedelta(minutes=5)))

    assert await store.mark_fired(loaded, T0 + timedelta(minutes=11)) is False
    current = await store.get("U1:usd:interval")
    assert current.params == IntervalParams(30)
    assert current.last_fired_at == T0 + timedelta(minutes=5)

@pytest.mark.asyncio
async def test_mark_fired_rereads_after_watch_conflict(store, r):
    loaded = interval_sub(minutes=10)
    await store.put(loaded)
    newer = codec.encode(interval_sub(minutes=30))

    def _rewrite_once(fake):
        if fake.strings["U1:usd:interval"] != newer:
            fake.set_raw("U1:usd:interval", newer)  # user edit lands between WATCH and EXEC

    r.before_exec = _rewrite_once
    assert await store.mark_fired(loaded, T0 + timedelta(minutes=11)) is False
    assert (await store.get("U1:usd:interval")).params == IntervalParams(30)

import json
from datetime import datetime, timezone

import pytest

from pricepush.storage import codec
from pricepush.storage.keys import index_key, kind_from_record_key, record_key, user_scan_pattern
from pricepush.utils.errors import RecordDecodeError, StoreError
from pricepush.utils.types import AlertParams, IntervalParams, Subscription

T0 = datetime(2024, 1, 1, 12, 0, 0, 123456, tzinfo=timezone.utc)

def test_key_naming():
    assert record_key("U1", "USD", "interval") == "U1:usd:interval"
    assert index_key("alert", "BTC") == "alert:btc"
    assert user_scan_pattern("U1", "alert") == "U1:*:alert"
    assert user_scan_pattern("a*b", "alert") == "a\\*b:*:alert"
    assert kind_from_record_key("U1:usd:interval") == "interval"
    with pytest.raises(ValueError):
        kind_from_record_key("interval:usd:weekly")

def test_encode_uses_stable_field_names():
    sub = Subscription("U1", "usd", "alert", AlertParams(100.0, 5.0), T0)
    doc = json.loads(codec.encode(sub))
    assert doc == {
        "user_id": "U1",
        "currency": "usd",
        "interval": 0,
        "check_alert": 100.0,
        "check_range": 5.0,
        "pushed_at": "2024-01-01T12:00:00.123456Z",
    }

def test_decode_legacy_record_with_nanoseconds_and_extra_fields():
    raw = json.dumps({
        "user_id": "U1",
        "currency": "USD",
        "interval": 10,
        "check_alert": 0,
        "check_range": 0,
        "pushed_at": "2018-01-20T10:15:30.123456789+07:00",
        "added_later": {"x": 1},
    })
    sub = codec.decode(raw, "interval")
    assert sub.asset == "usd"
    assert sub.params == IntervalParams(10)
    assert sub.last_fired_at == datetime(2018, 1, 20, 3, 15, 30, 123456, tzinfo=timezone.utc)

def test_decode_missing_optional_fields_defaults():
    sub = codec.decode(b'{"user_id":"U1","currency":"btc"}', "alert")
    assert sub.params == AlertParams(0.0, 0.0)
    assert sub.last_fired_at is None

@pytest.mark.parametrize("raw", [
    "not json",
    "[1, 2]",
    '{"currency": "usd"}',
    '{"user_id": "U1", "currency": "usd", "interval": "ten"}',
    '{"user_id": "U1", "currency": "usd", "pushed_at": "yesterday"}',
])
def test_decode_errors_are_store_errors(raw):
    with pytest.raises(RecordDecodeError) as ei:
        codec.decode(raw, "interval", key="U1:usd:interval")
    assert isinstance(ei.value, StoreError)
    assert ei.value.key == "U1:usd:interval"

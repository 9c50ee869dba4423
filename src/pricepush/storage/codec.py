from __future__ import annotations

import json
from typing import Any

from pricepush.utils.errors import RecordDecodeError
from pricepush.utils.time import parse_rfc3339, to_rfc3339
from pricepush.utils.types import AlertParams, IntervalParams, RuleKind, Subscription

# Stored field names are part of the on-disk format; never rename them.
F_USER = "user_id"
F_ASSET = "currency"
F_INTERVAL = "interval"
F_CENTER = "check_alert"
F_BAND = "check_range"
F_PUSHED_AT = "pushed_at"


def encode(sub: Subscription) -> str:
    interval = 0
    center = 0.0
    band = 0.0
    if isinstance(sub.params, IntervalParams):
        interval = sub.params.every_minutes
    else:
        center, band = sub.params.center, sub.params.band

    doc = {
        F_USER: sub.user_id,
        F_ASSET: sub.asset,
        F_INTERVAL: interval,
        F_CENTER: center,
        F_BAND: band,
        F_PUSHED_AT: to_rfc3339(sub.last_fired_at) if sub.last_fired_at else None,
    }
    return json.dumps(doc, ensure_ascii=False, separators=(",", ":"))


def _opt_num(doc: dict, name: str, cast, key: str):
    v = doc.get(name)
    if v is None:
        return cast(0)
    if isinstance(v, bool):
        raise RecordDecodeError(f"field {name!r} is not numeric", key=key)
    try:
        return cast(v)
    except (TypeError, ValueError) as e:
        raise RecordDecodeError(f"field {name!r} is not numeric: {v!r}", key=key) from e


def decode(data: Any, kind: RuleKind, key: str = "") -> Subscription:
    """
    Decode a stored record. Unknown fields are ignored and missing optional
    fields default, so records from older and newer writers both load.
    """
    if isinstance(data, (bytes, bytearray)):
        data = data.decode("utf-8")
    try:
        doc = json.loads(data)
    except (TypeError, ValueError) as e:
        raise RecordDecodeError(f"record is not JSON: {e}", key=key) from e
    if not isinstance(doc, dict):
        raise RecordDecodeError("record is not an object", key=key)

    user_id = doc.get(F_USER)
    asset = doc.get(F_ASSET)
    if not isinstance(user_id, str) or not isinstance(asset, str):
        raise RecordDecodeError("record missing user_id/currency", key=key)

    if kind == "interval":
        params = IntervalParams(every_minutes=_opt_num(doc, F_INTERVAL, int, key))
    else:
        params = AlertParams(
            center=_opt_num(doc, F_CENTER, float, key),
            band=_opt_num(doc, F_BAND, float, key),
        )

    pushed_at = doc.get(F_PUSHED_AT)
    last_fired_at = None
    if pushed_at is not None:
        try:
            last_fired_at = parse_rfc3339(str(pushed_at))
        except ValueError as e:
            raise RecordDecodeError(str(e), key=key) from e

    return Subscription(
        user_id=user_id,
        asset=asset.lower(),
        kind=kind,
        params=params,
        last_fired_at=last_fired_at,
    )

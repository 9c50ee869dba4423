# src/pricepush/storage/keys.py
from __future__ import annotations

import re

from pricepush.utils.types import RuleKind

_GLOB_SPECIAL = re.compile(r"([*?\[\]\\])")


def record_key(user_id: str, asset: str, kind: RuleKind) -> str:
    # {USER}:{ASSET}:{KIND}
    return f"{user_id}:{asset.lower()}:{kind}"


def index_key(kind: RuleKind, asset: str) -> str:
    # {KIND}:{ASSET} -> set of record keys
    return f"{kind}:{asset.lower()}"


def user_scan_pattern(user_id: str, kind: RuleKind) -> str:
    # SCAN MATCH is glob-style; user ids are matched literally
    escaped = _GLOB_SPECIAL.sub(r"\\\1", user_id)
    return f"{escaped}:*:{kind}"


def kind_from_record_key(key: str) -> RuleKind:
    kind = key.rsplit(":", 1)[-1]
    if kind not in ("interval", "alert"):
        raise ValueError(f"record key has no rule kind suffix: {key!r}")
    return kind  # type: ignore[return-value]

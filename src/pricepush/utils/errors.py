from __future__ import annotations


class PricePushError(Exception):
    """Base for every error raised by pricepush."""


class FeedError(PricePushError):
    """Quote feed unreachable or unparsable. Aborts the current tick only."""


class StoreError(PricePushError):
    """Key-value store failure for a single key."""

    def __init__(self, message: str, key: str | None = None):
        super().__init__(message)
        self.key = key


class SubscriptionNotFound(StoreError):
    pass


class RecordDecodeError(StoreError):
    pass


class DeliveryError(PricePushError):
    """One push attempt failed; the record stays untouched so the next tick retries."""

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status


class ValidationError(PricePushError):
    """Bad rule parameters, rejected before any store mutation."""

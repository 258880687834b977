# backend/wallet_history/utils/time_utils.py
"""
Time helpers shared by the ledger, pricing and replay layers.

All instants inside the service are timezone-aware UTC datetimes. Ledger
records carry epoch milliseconds; price caches bucket instants by UTC
calendar day.

Usage:
    from wallet_history.utils.time_utils import day_bucket, from_epoch_ms

    ts = from_epoch_ms(1_700_000_000_000)
    bucket = day_bucket(ts)  # date(2023, 11, 14)
"""

from datetime import date, datetime, timezone


def utc_now() -> datetime:
    """Current instant as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """
    Normalize a datetime to aware UTC.

    Naive datetimes are interpreted as already being in UTC.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def from_epoch_ms(value: int | str | None) -> datetime | None:
    """
    Convert epoch milliseconds to an aware UTC datetime.

    Returns None for missing, zero, negative or unparseable values so the
    caller can discard records without a resolvable timestamp.
    """
    if value is None:
        return None
    try:
        millis = int(value)
    except (TypeError, ValueError):
        return None
    if millis <= 0:
        return None
    return datetime.fromtimestamp(millis / 1000, tz=timezone.utc)


def to_epoch_ms(value: datetime) -> int:
    """Convert a datetime to epoch milliseconds (naive = UTC)."""
    return int(ensure_utc(value).timestamp() * 1000)


def to_epoch_seconds(value: datetime) -> int:
    """Convert a datetime to whole epoch seconds (naive = UTC)."""
    return int(ensure_utc(value).timestamp())


def day_bucket(value: datetime) -> date:
    """Truncate an instant to its UTC calendar day."""
    return ensure_utc(value).date()

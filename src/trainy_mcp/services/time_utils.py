"""Datetime helpers shared by the adapters, matcher and merge engine."""

import math
from datetime import UTC, datetime, timedelta


def as_utc(value: datetime) -> datetime:
    """Convert to an aware UTC datetime (naive values are taken as UTC)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def parse_datetime(value: str | None) -> datetime | None:
    """Parse an ISO 8601 timestamp from a provider payload.

    Accepts a trailing "Z" and the "+0100" offset form used by some APIs.
    Returns None for empty or unparseable input.
    """
    if not value:
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    # "2026-01-17T10:02:00+0100" -> "2026-01-17T10:02:00+01:00"
    if len(text) > 5 and text[-5] in "+-" and text[-4:].isdigit():
        text = f"{text[:-2]}:{text[-2:]}"
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


def round_half_up(value: float) -> int:
    """Round to the nearest integer with halves going up.

    Example: 0.5 -> 1, 2.5 -> 3, -0.5 -> 0
    """
    return math.floor(value + 0.5)


def delay_minutes(scheduled: datetime | None, actual: datetime | None) -> int | None:
    """Compute the delay in whole minutes between scheduled and actual times.

    Early or on-time running is not a delay and returns None.

    Example: scheduled 10:00, actual 10:04:40 -> 5
    Example: scheduled 10:00, actual 09:58 -> None
    """
    if scheduled is None or actual is None:
        return None
    minutes = round_half_up((as_utc(actual) - as_utc(scheduled)).total_seconds() / 60)
    return minutes if minutes > 0 else None


def positive_minutes(minutes: float | None) -> int | None:
    """Round a provider-supplied delay and drop non-positive values."""
    if minutes is None:
        return None
    rounded = round_half_up(minutes)
    return rounded if rounded > 0 else None


def round_to_bucket(value: datetime, bucket_minutes: int = 5) -> datetime:
    """Round a datetime to the nearest bucket, in UTC, dropping seconds.

    Example: 10:02 -> 10:00, 10:03 -> 10:05, 23:58 -> 00:00 next day
    """
    utc = as_utc(value).replace(second=0, microsecond=0)
    floored = utc - timedelta(minutes=utc.minute % bucket_minutes)
    remainder = utc.minute % bucket_minutes
    if remainder * 2 >= bucket_minutes:
        return floored + timedelta(minutes=bucket_minutes)
    return floored


def minutes_apart(a: datetime, b: datetime) -> float:
    """Absolute distance between two datetimes in minutes."""
    return abs((as_utc(a) - as_utc(b)).total_seconds()) / 60

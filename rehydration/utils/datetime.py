"""Datetime helpers.

Timestamps are naive UTC datetimes throughout the service. The marshalled
form is ISO-8601 with a ``Z`` suffix.
"""

from __future__ import annotations

import re
from datetime import UTC, datetime, timedelta

_TIMESTAMP_RE = re.compile(
    r"^(?P<base>\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2})"
    r"(?:\.(?P<frac>\d{1,9}))?"
    r"(?P<tz>Z|[+-]\d{2}:\d{2})?$"
)


def utcnow() -> datetime:
    """Return current UTC time as a naive datetime."""
    return datetime.now(UTC).replace(tzinfo=None)


def expiration_from(now: datetime, ttl_days: int) -> datetime:
    """Expiration date for a rehydration completed at ``now``."""
    return now + timedelta(days=ttl_days)


def format_timestamp(value: datetime) -> str:
    """Format a naive UTC (or aware) datetime as ``YYYY-MM-DDTHH:MM:SS.ffffffZ``."""
    if value.tzinfo is not None:
        value = value.astimezone(UTC).replace(tzinfo=None)
    return value.strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 timestamp into a naive UTC datetime.

    Fractions longer than microseconds (up to nanoseconds) are truncated.

    Raises:
        ValueError: If the value is not an ISO-8601 timestamp.
    """
    match = _TIMESTAMP_RE.match(value.strip())
    if match is None:
        raise ValueError(f"invalid timestamp: {value!r}")

    frac = (match.group("frac") or "").ljust(6, "0")[:6]
    tz = match.group("tz") or "Z"
    if tz == "Z":
        tz = "+00:00"

    parsed = datetime.fromisoformat(f"{match.group('base')}.{frac}{tz}")
    return parsed.astimezone(UTC).replace(tzinfo=None)

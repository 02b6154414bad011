"""Timestamp parsing utilities for exchange payloads.

Venues return timestamps in several formats:
- ISO8601 strings: "2021-12-01T00:00:00Z", "2021-12-01T00:00:00.123456Z",
  or with nanosecond fractions such as "2023-05-01T10:00:00.123456789Z"
- Unix seconds: 1696669429 (Gemini ``timestamp``)
- Unix milliseconds: 1696669429000 (Gemini ``timestampms``)
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any

_FRACTION = re.compile(r"\.(\d+)")
_MS_THRESHOLD = 10**11


def parse_timestamp(value: Any) -> datetime | None:
    """Parse a venue timestamp into an aware UTC datetime.

    Returns None for empty values and values that cannot be parsed.
    """
    if value is None or value == "":
        return None

    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)

    if isinstance(value, (int, float)):
        return _from_epoch(float(value))

    if isinstance(value, str):
        text = value.strip()
        try:
            return _from_epoch(float(text))
        except ValueError:
            pass
        # fromisoformat accepts at most microseconds
        text = _FRACTION.sub(lambda match: "." + match.group(1)[:6].ljust(6, "0"), text)
        text = text.replace("Z", "+00:00")
        if " " in text and "T" not in text:
            text = text.replace(" ", "T", 1)
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed.astimezone(timezone.utc)

    return None


def _from_epoch(value: float) -> datetime:
    if value > _MS_THRESHOLD:
        value = value / 1000.0
    return datetime.fromtimestamp(value, tz=timezone.utc)


def format_timestamp_iso(dt: datetime) -> str:
    """Format datetime as an RFC3339 string (e.g. "2021-12-01T00:00:00.000Z")."""
    return dt.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"


def timestamp_to_unix(dt: datetime) -> int:
    """Convert datetime to Unix seconds."""
    return int(dt.timestamp())

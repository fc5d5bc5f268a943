"""Published-at watermark tracking.

The watermark is the latest ``published_at`` seen across a collection.
It bounds the next incremental fetch (``published_at_gt``) and is
persisted as an ISO 8601 string in the collection's metadata.

Timestamps are always handled as timezone-aware UTC datetimes; naive
values are assumed to be UTC.
"""

from __future__ import annotations

from datetime import datetime, timezone
from functools import reduce
from typing import Any, Iterable

PUBLISHED_FIELD = "published_at"


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an API timestamp into an aware UTC datetime.

    Accepts ``datetime`` instances and ISO 8601 strings (including the
    ``Z`` suffix the API uses).  Anything else, including unparsable
    strings, yields ``None``.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def format_timestamp(value: datetime) -> str:
    """Render *value* the way the API does: ``2024-01-10T10:00:00.000Z``."""
    utc = value.astimezone(timezone.utc)
    return utc.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def advance(
    current: datetime | None, candidate: datetime | None
) -> datetime | None:
    """Return the later of *current* and *candidate*.

    ``None`` counts as earlier than any timestamp, so the result is only
    ``None`` when both inputs are.
    """
    if candidate is None:
        return current
    if current is None or candidate > current:
        return candidate
    return current


def record_published_at(record: dict) -> datetime | None:
    """Published timestamp of *record*, or ``None`` if absent/unparsable."""
    return parse_timestamp(record.get(PUBLISHED_FIELD))


def fold(
    records: Iterable[dict], start: datetime | None = None
) -> datetime | None:
    """Advance *start* through every record's published timestamp."""
    return reduce(
        lambda acc, record: advance(acc, record_published_at(record)),
        records,
        start,
    )

"""UTC timestamp helpers.

Timestamps are timezone-aware UTC everywhere and rendered with a ``Z``
suffix at the edges.
"""

from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def isoformat(value: datetime | None) -> str | None:
    """Render a datetime as ISO-8601 UTC with a ``Z`` suffix."""
    if value is None:
        return None
    if value.tzinfo is None:
        # SQLite hands stored values back without an offset; they were written as UTC
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value.isoformat(timespec="milliseconds") + "Z"

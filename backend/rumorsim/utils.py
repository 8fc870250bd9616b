"""Small shared utility helpers used across backend modules."""

from datetime import datetime, timezone


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def utc_iso_now() -> str:
    """Return current UTC timestamp as ISO-8601 string."""

    return utc_now().isoformat()


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes read back from SQLite."""

    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value

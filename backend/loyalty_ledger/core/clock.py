"""UTC time helpers shared by models and services."""

import datetime


def utcnow() -> datetime.datetime:
    """Timezone-aware current time in UTC."""
    return datetime.datetime.now(datetime.timezone.utc)


def as_utc(value: datetime.datetime) -> datetime.datetime:
    """
    Attach UTC to a naive timestamp read back from the store.

    SQLite drops tzinfo on round-trip; every timestamp we write is UTC.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=datetime.timezone.utc)
    return value

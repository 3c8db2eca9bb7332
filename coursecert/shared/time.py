from datetime import datetime, timezone


def now_utc() -> datetime:
    """Return the current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def epoch_millis(value: datetime | None = None) -> int:
    value = value or now_utc()
    return int(value.timestamp() * 1000)

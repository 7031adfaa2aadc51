from datetime import UTC, date, datetime, time


def to_iso_instant(value: date | datetime) -> str:
    """
    Render a date/datetime as a UTC instant with millisecond precision, e.g.
    ``2024-01-15T00:00:00.000Z``. Naive values are taken to be UTC already.
    """
    if not isinstance(value, datetime):
        value = datetime.combine(value, time.min)
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    value = value.astimezone(UTC)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def utc_now() -> datetime:
    return datetime.now(UTC)

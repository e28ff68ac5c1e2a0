from datetime import UTC, date, datetime, time, tzinfo

# Last representable millisecond of a day, queries are inclusive of the whole end day
END_OF_DAY = time(23, 59, 59, 999000)


def to_utc(day: date, tz: tzinfo = UTC) -> datetime:
    """
    Convert a local calendar day to the UTC instant of its midnight.

    This is the instant a writer located in `tz` would have stored for that local midnight, so it can be compared with the stored anchors.
    """
    return _localize(datetime.combine(day, time.min), tz).astimezone(UTC)


def end_of_day_utc(day: date, tz: tzinfo = UTC) -> datetime:
    """
    Convert a local calendar day to the UTC instant of its last millisecond.
    """
    return _localize(datetime.combine(day, END_OF_DAY), tz).astimezone(UTC)


def ensure_utc(value: datetime) -> datetime:
    """
    Return the datetime as UTC, naive values are considered already in UTC.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def to_iso(value: datetime) -> str:
    """
    Serialize a datetime as a fixed width UTC ISO 8601 string.

    Width never varies (microseconds are always written), so stores comparing strings order them like instants.

    Example: `2024-01-10T09:30:00.000000Z`.
    """
    return ensure_utc(value).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def _localize(value: datetime, tz: tzinfo) -> datetime:
    # pytz zones need localize() to pick the right offset, attaching them with replace() would use LMT
    localize = getattr(tz, "localize", None)
    if localize:
        return localize(value)
    return value.replace(tzinfo=tz)

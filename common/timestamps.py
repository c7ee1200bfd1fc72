"""
Timestamp helpers shared by the backend and the client

Wire format: ISO-8601 UTC with millisecond precision and a 'Z' suffix.
"""

from datetime import datetime, timezone


def utc_now():
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def iso_timestamp(moment=None):
    """
    Format a datetime as ISO-8601 with millisecond precision and 'Z' suffix.

    Args:
        moment (datetime): Time to format. Defaults to now (UTC).

    Returns:
        str: e.g. '2025-01-25T14:03:07.123Z'

    Examples:
        >>> iso_timestamp(datetime(2025, 1, 25, 14, 3, 7, tzinfo=timezone.utc))
        '2025-01-25T14:03:07.000Z'
    """
    moment = moment or utc_now()
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    moment = moment.astimezone(timezone.utc)
    return moment.strftime('%Y-%m-%dT%H:%M:%S.') + f"{moment.microsecond // 1000:03d}Z"


def parse_timestamp(value):
    """
    Parse an ISO-8601 string (with 'Z' or offset) into an aware datetime.

    Datetimes pass through (naive ones are assumed UTC).

    Args:
        value (str | datetime): Timestamp to parse

    Returns:
        datetime: Timezone-aware datetime

    Raises:
        ValueError: If the string is not ISO-8601
    """
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if not isinstance(value, str):
        raise ValueError(f"Not a timestamp: {value!r}")
    text = value.strip()
    if text.endswith('Z'):
        text = text[:-1] + '+00:00'
    parsed = datetime.fromisoformat(text)
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)

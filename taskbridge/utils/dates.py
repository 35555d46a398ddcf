"""Date and timestamp helpers."""

from datetime import date, datetime, timezone


def utc_now_iso() -> str:
    """Current time as an ISO-8601 UTC string."""
    return datetime.now(timezone.utc).isoformat()


def parse_timestamp(value: str | None) -> datetime | None:
    """
    Parse an ISO-8601 timestamp into an aware UTC datetime.

    Accepts a trailing ``Z`` and Graph's seven digit fractional seconds.
    Naive values are treated as UTC.

    Returns:
        The parsed datetime, or None if the value is empty or unparseable
    """
    if not value:
        return None
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    # Graph returns 100ns precision ("2024-01-15T10:00:00.0000000")
    if "." in text:
        head, _, tail = text.partition(".")
        digits = ""
        rest = ""
        for index, char in enumerate(tail):
            if char.isdigit():
                digits += char
            else:
                rest = tail[index:]
                break
        text = f"{head}.{digits[:6].ljust(6, '0')}{rest}"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def from_epoch_millis(value: int | float | str | None) -> str | None:
    """Convert epoch milliseconds (as Alexa reports them) to an ISO string."""
    if value in (None, ""):
        return None
    try:
        millis = float(value)
    except (TypeError, ValueError):
        parsed = parse_timestamp(str(value))
        return parsed.isoformat() if parsed else None
    return datetime.fromtimestamp(millis / 1000, tz=timezone.utc).isoformat()


def extract_date_only(value: str | None) -> str | None:
    """Return the ``YYYY-MM-DD`` part of a date or datetime string."""
    if not value:
        return None
    text = str(value).strip()
    if len(text) >= 10:
        candidate = text[:10]
        try:
            date.fromisoformat(candidate)
            return candidate
        except ValueError:
            pass
    parsed = parse_timestamp(text)
    return parsed.date().isoformat() if parsed else None


def format_due_string(value: str | None) -> str | None:
    """Format a timestamp as ``YYYY-MM-DD HH:MM`` for Todoist's due string."""
    parsed = parse_timestamp(value)
    if parsed is None:
        return None
    return parsed.strftime("%Y-%m-%d %H:%M")


def date_to_utc_datetime(value: str) -> str:
    """Turn a ``YYYY-MM-DD`` date into a midnight UTC ISO datetime."""
    day = date.fromisoformat(value[:10])
    return datetime(day.year, day.month, day.day, tzinfo=timezone.utc).isoformat()

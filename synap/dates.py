"""Date expressions, durations and timestamp serialisation."""

import re
from datetime import date, datetime, time, timedelta, timezone

import structlog

logger = structlog.get_logger()

WEEKDAYS = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]

DURATION_UNITS: dict[str, timedelta] = {
    "h": timedelta(hours=1),
    "d": timedelta(days=1),
    "w": timedelta(weeks=1),
    "m": timedelta(days=30),
}

_DURATION_RE = re.compile(r"^(\d+)([hdwm])$")
_IN_RE = re.compile(r"^in\s+(\d+)\s+(hour|hours|day|days|week|weeks|month|months)$")
_NEXT_RE = re.compile(r"^next\s+(\w+)$")
_ISO_DATE_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")

_END_OF_DAY = time(23, 59, 59, 999000)


def local_now(now: datetime | None = None) -> datetime:
    """Return ``now`` as an aware local datetime (naive values are taken as local)."""
    if now is None:
        return datetime.now().astimezone()
    return now.astimezone()


def end_of_day(day: date) -> datetime:
    """23:59:59.999 local time on ``day``."""
    return datetime.combine(day, _END_OF_DAY).astimezone()


def start_of_day(day: date) -> datetime:
    """Local midnight at the start of ``day``."""
    return datetime.combine(day, time()).astimezone()


def parse_duration(token: str | None) -> timedelta | None:
    """Parse ``7d``, ``24h``, ``2w`` or ``1m`` (30 days) into a timedelta."""
    if not token:
        return None
    match = _DURATION_RE.match(token.strip())
    if not match:
        return None
    return int(match.group(1)) * DURATION_UNITS[match.group(2)]


def parse_iso_date(text: str) -> date | None:
    """Parse a ``YYYY-MM-DD`` calendar date, rejecting impossible dates."""
    match = _ISO_DATE_RE.match(text.strip())
    if not match:
        return None
    try:
        return date(int(match.group(1)), int(match.group(2)), int(match.group(3)))
    except ValueError:
        return None


def _next_weekday(today: date, name: str) -> date | None:
    if name not in WEEKDAYS:
        return None
    days_ahead = (WEEKDAYS.index(name) - today.weekday()) % 7 or 7
    return today + timedelta(days=days_ahead)


def parse_date(text: str | None, now: datetime | None = None) -> datetime | None:
    """Resolve a free-form date expression to an absolute local timestamp.

    Recognised forms, in order of precedence:

    - ``today``, ``tomorrow``, ``yesterday``: end of that day
    - ``next <weekday>`` and a bare weekday name: end of the next occurrence
      strictly after today
    - ``in N hours|days|weeks|months``: now plus the offset
    - ``Nh``, ``Nd``, ``Nw``, ``Nm``: now plus the duration
    - ``YYYY-MM-DD``: 23:59:59 local on that date

    Args:
        text: Date expression
        now: Reference time (defaults to the current local time)

    Returns:
        Aware datetime, or None when the expression is not understood
    """
    if not text or not isinstance(text, str):
        return None

    current = local_now(now)
    today = current.date()
    value = text.strip().lower()

    keywords = {"today": 0, "tomorrow": 1, "yesterday": -1}
    if value in keywords:
        return end_of_day(today + timedelta(days=keywords[value]))

    match = _NEXT_RE.match(value)
    if match:
        day = _next_weekday(today, match.group(1))
        if day is not None:
            return end_of_day(day)

    day = _next_weekday(today, value)
    if day is not None:
        return end_of_day(day)

    match = _IN_RE.match(value)
    if match:
        unit = match.group(2)[0]
        return current + int(match.group(1)) * DURATION_UNITS[unit]

    duration = parse_duration(value)
    if duration is not None:
        return current + duration

    iso = parse_iso_date(value)
    if iso is not None:
        return datetime.combine(iso, time(23, 59, 59)).astimezone()

    logger.debug("Unparsable date expression", text=text)
    return None


def truncate_to_millis(value: datetime) -> datetime:
    """Drop sub-millisecond precision so values survive a round trip through :func:`format_timestamp`."""
    return value.replace(microsecond=value.microsecond // 1000 * 1000)


def format_timestamp(value: datetime) -> str:
    """Serialise as ISO 8601 UTC with millisecond precision, e.g. ``2025-01-06T10:00:00.000Z``."""
    if value.tzinfo is None:
        value = value.astimezone()
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_timestamp(value: str | datetime | None) -> datetime | None:
    """Inverse of :func:`format_timestamp`; naive values are taken as UTC."""
    if value is None or isinstance(value, datetime):
        return value
    if not isinstance(value, str):
        logger.warning("Invalid timestamp in stored entry", value=value)
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        logger.warning("Invalid timestamp in stored entry", value=value)
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed

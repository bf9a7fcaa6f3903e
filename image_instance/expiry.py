"""
Expiry expressions for the Expire tag.

Accepts the same kind of input as ``date --date``: absolute dates
("2026-12-31", "Dec 31 2026 18:00") and relative offsets ("+1 week",
"3 days", "-2 hours", "1 month ago", "tomorrow").
"""

import re
from datetime import datetime, timezone

from dateutil import parser as date_parser
from dateutil.relativedelta import relativedelta

_RELATIVE = re.compile(
    r"^(?P<sign>[+-])?\s*(?P<count>\d+)\s*(?P<unit>[a-z]+?)s?(?P<ago>\s+ago)?$"
)

_UNITS = {
    "sec": "seconds",
    "second": "seconds",
    "min": "minutes",
    "minute": "minutes",
    "hour": "hours",
    "day": "days",
    "week": "weeks",
    "fortnight": "fortnights",
    "month": "months",
    "year": "years",
}

_KEYWORDS = {
    "now": relativedelta(),
    "today": relativedelta(),
    "tomorrow": relativedelta(days=1),
    "yesterday": relativedelta(days=-1),
}


def _relative_offset(expr: str):
    match = _RELATIVE.match(expr)
    if not match:
        return None

    unit = _UNITS.get(match.group("unit"))
    if unit is None:
        return None

    count = int(match.group("count"))
    if match.group("sign") == "-":
        count = -count
    if match.group("ago"):
        count = -count

    if unit == "fortnights":
        return relativedelta(weeks=2 * count)
    return relativedelta(**{unit: count})


def parse_expiry(expr: str, now: datetime) -> datetime:
    """
    Parse an expiry expression into an aware UTC datetime.

    Args:
        expr: Absolute date or relative offset
        now: Base for relative offsets

    Returns:
        Expiry time in UTC

    Raises:
        ValueError: If the expression cannot be understood
    """
    text = " ".join(expr.strip().lower().split())
    if not text:
        raise ValueError("Empty expiry expression")

    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)

    offset = _KEYWORDS.get(text)
    if offset is None:
        offset = _relative_offset(text)
    if offset is not None:
        return (now + offset).astimezone(timezone.utc)

    # missing fields come from the base day, not the wall clock
    default = now.astimezone(timezone.utc).replace(tzinfo=None, hour=0, minute=0, second=0, microsecond=0)
    try:
        parsed = date_parser.parse(expr.strip(), default=default)
    except (ValueError, OverflowError) as e:
        raise ValueError(f"Invalid expiry expression: {expr!r}") from e

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def format_timestamp(moment: datetime) -> str:
    """Render a datetime as UTC ISO-8601 with a trailing Z."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).replace(tzinfo=None, microsecond=0).isoformat() + "Z"

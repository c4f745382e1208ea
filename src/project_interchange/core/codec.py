"""Duration, work, date and lag encoding shared by the exporter and importer.

MSPDI expresses spans as ``PT<hours>H<minutes>M<seconds>S`` tokens and link
lag in tenths of a minute. Both sides assume a fixed working day of 8 hours
(480 minutes), so one day of duration is ``PT8H0M0S`` and one day of lag is
``4800``.
"""

import math
import re
from datetime import date, datetime, time, timedelta, timezone

from dateutil import parser

HOURS_PER_DAY = 8
MINUTES_PER_DAY = HOURS_PER_DAY * 60
LAG_UNITS_PER_DAY = MINUTES_PER_DAY * 10

ZERO_SPAN = "PT0H0M0S"
WIRE_DATETIME_FORMAT = "%Y-%m-%dT%H:%M:%S"
NOON = time(12, 0, 0)

_SPAN_RE = re.compile(
    r"^PT(?:(?P<h>\d+(?:\.\d+)?)H)?(?:(?P<m>\d+(?:\.\d+)?)M)?(?:(?P<s>\d+(?:\.\d+)?)S)?$"
)


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def to_number(value) -> float | None:
    """Coerce a loosely typed number; None for anything unusable."""
    if value is None or isinstance(value, bool):
        return None
    try:
        num = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(num) or math.isinf(num):
        return None
    return num


# ── Spans ─────────────────────────────────────────────────────────────────────


def format_duration(days) -> str:
    """Encode a day count as an hour based span token."""
    num = to_number(days)
    if num is None or num <= 0:
        return ZERO_SPAN
    return f"PT{round_half_up(num * HOURS_PER_DAY)}H0M0S"


def format_work(hours) -> str:
    """Encode an hour count as a work span token."""
    num = to_number(hours)
    if num is None or num <= 0:
        return ZERO_SPAN
    return f"PT{round_half_up(num)}H0M0S"


def parse_span_hours(token: str | None) -> float | None:
    if not token:
        return None
    match = _SPAN_RE.match(token.strip())
    if not match or not any(match.groupdict().values()):
        return None
    hours = float(match["h"] or 0)
    minutes = float(match["m"] or 0)
    seconds = float(match["s"] or 0)
    return hours + minutes / 60 + seconds / 3600


def parse_duration(token: str | None) -> float | None:
    """Decode a span token to days."""
    hours = parse_span_hours(token)
    if hours is None:
        return None
    return hours / HOURS_PER_DAY


def parse_work(token: str | None) -> float | None:
    """Decode a span token to hours."""
    return parse_span_hours(token)


# ── Lag ───────────────────────────────────────────────────────────────────────


def format_lag(days) -> int | None:
    """Encode lag days as ``LinkLag`` units. Zero lag has no wire form."""
    num = to_number(days)
    if not num:
        return None
    return round_half_up(num * LAG_UNITS_PER_DAY)


def parse_lag(units) -> float | None:
    """Decode ``LinkLag`` units to days. Zero is reported as no lag."""
    num = to_number(units)
    if not num:
        return None
    return num / LAG_UNITS_PER_DAY


# ── Dates ─────────────────────────────────────────────────────────────────────


def to_datetime(value) -> datetime | None:
    """Parse a date or timestamp without ever raising.

    Date-only values are anchored at noon so a later timezone conversion
    cannot move them to another day. Aware timestamps are converted to UTC
    and made naive.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        result = value
    elif isinstance(value, date):
        return datetime.combine(value, NOON)
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            result = parser.isoparse(text)
        except (ValueError, OverflowError):
            return None
        if "T" not in text and " " not in text:
            return datetime.combine(result.date(), NOON)
    else:
        return None
    if result.tzinfo is not None:
        try:
            result = result.astimezone(timezone.utc).replace(tzinfo=None)
        except (OverflowError, ValueError):
            return None
    return result


def to_date(value) -> date | None:
    parsed = to_datetime(value)
    return parsed.date() if parsed else None


def format_date(value) -> str:
    """Encode a date as an MSPDI timestamp; empty string when unusable."""
    parsed = to_datetime(value)
    if parsed is None:
        return ""
    return parsed.strftime(WIRE_DATETIME_FORMAT)


def parse_date(text: str | None) -> date | None:
    """Decode an MSPDI timestamp to its calendar date."""
    return to_date(text)


def shift_days(value, days: int) -> date | None:
    parsed = to_date(value)
    if parsed is None:
        return None
    try:
        return parsed + timedelta(days=days)
    except OverflowError:
        return None


def inclusive_finish(end_date) -> date | None:
    """Exclusive end (day after the last day) to inclusive finish."""
    return shift_days(end_date, -1)


def exclusive_end(finish) -> date | None:
    """Inclusive finish to exclusive end (day after the last day)."""
    return shift_days(finish, 1)


def inclusive_day_count(start, finish) -> int | None:
    start_date = to_date(start)
    finish_date = to_date(finish)
    if start_date is None or finish_date is None:
        return None
    return max((finish_date - start_date).days, 0) + 1


# ── Numbers ───────────────────────────────────────────────────────────────────


def format_number(value, default: str = "0") -> str:
    """Plain decimal text for a number: ``1``, ``0.5``."""
    num = to_number(value)
    if num is None:
        return default
    if num == int(num):
        return str(int(num))
    return f"{num:.6f}".rstrip("0").rstrip(".")


def clamp_percent(value) -> float:
    num = to_number(value)
    if num is None:
        return 0.0
    return min(max(num, 0.0), 100.0)

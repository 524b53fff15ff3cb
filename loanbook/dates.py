"""Date and period helpers.

Dates travel through the ledger as ISO ``yyyy-MM-dd`` strings. These helpers
parse them without raising, compare them at day granularity and step them
forward by a payment period.
"""
from datetime import date, datetime, timedelta

from dateutil.relativedelta import relativedelta

from loanbook.config import DATE_FORMAT_DISPLAY, DATE_FORMAT_STORAGE
from loanbook.result import ErrorType, Result

# Steps for each payment frequency. Anything not listed here (including
# "custom") advances by one month.
PERIOD_STEPS = {
    "weekly": timedelta(days=7),
    "biweekly": timedelta(days=14),
    "monthly": relativedelta(months=1),
    "quarterly": relativedelta(months=3),
    "yearly": relativedelta(months=12),
}

DEFAULT_PERIOD_STEP = relativedelta(months=1)


def normalize_to_day(value: datetime) -> datetime:
    """Truncate time-of-day to midnight."""
    return datetime(value.year, value.month, value.day)


def add_period(value: datetime, frequency) -> datetime:
    """Return ``value`` advanced by one period of ``frequency``."""
    key = getattr(frequency, "value", frequency)
    return value + PERIOD_STEPS.get(key, DEFAULT_PERIOD_STEP)


def parse_flexible_date(value) -> Result[datetime]:
    """Parse an ISO (yyyy-MM-dd) or DD/MM/YYYY date.

    ISO is tried first; a time component after the date (``2024-01-31T10:00``
    or ``2024-01-31 10:00:00``) is ignored. ``datetime`` and ``date`` objects
    pass through, dates promoted to midnight.

    Returns:
        Result.ok(datetime) or Result.fail with ErrorType.PARSE. Never raises.
    """
    if isinstance(value, datetime):
        return Result.ok(value)
    if isinstance(value, date):
        return Result.ok(datetime(value.year, value.month, value.day))
    if not isinstance(value, str) or not value.strip():
        return Result.fail(f"Not a date: {value!r}", ErrorType.PARSE)

    text = value.strip()
    if len(text) <= 10 or text[10] in "T ":
        try:
            return Result.ok(datetime.strptime(text[:10], DATE_FORMAT_STORAGE))
        except ValueError:
            pass

    if "/" in text:
        try:
            return Result.ok(datetime.strptime(text, DATE_FORMAT_DISPLAY))
        except ValueError:
            pass

    return Result.fail(f"Unrecognized date format: {value!r}", ErrorType.PARSE)


def parse_date_or_none(value):
    """Parse a date, returning None when it cannot be parsed."""
    return parse_flexible_date(value).unwrap_or(None)


def days_between(a: datetime, b: datetime) -> int:
    """Signed whole days from ``b`` to ``a`` (a - b), truncated toward zero."""
    delta = a - b
    seconds = delta.total_seconds()
    return int(seconds / 86400)


def same_month(a: datetime, b: datetime) -> bool:
    """True when both dates fall in the same calendar month and year."""
    return a.year == b.year and a.month == b.month


def format_iso(value: datetime) -> str:
    """Format a date in the storage format (yyyy-MM-dd)."""
    return value.strftime(DATE_FORMAT_STORAGE)

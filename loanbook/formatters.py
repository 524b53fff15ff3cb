"""Display formatting for amounts, dates and statuses."""
import math

from loanbook.config import DATE_FORMAT_DISPLAY, DEFAULT_CURRENCY
from loanbook.data_structures import LoanStatus
from loanbook.dates import parse_flexible_date

STATUS_NAMES = {
    LoanStatus.ACTIVE: "Active",
    LoanStatus.PAID: "Paid",
    LoanStatus.OVERDUE: "Overdue",
    LoanStatus.DEFAULTED: "Defaulted",
}


def _pt_br_number(value: float, decimals: int) -> str:
    # 1,234.56 -> 1.234,56
    text = f"{value:,.{decimals}f}"
    return text.replace(",", "_").replace(".", ",").replace("_", ".")


def format_currency(value, symbol: str = DEFAULT_CURRENCY) -> str:
    """Format an amount as Brazilian currency, e.g. ``R$ 1.234,56``."""
    try:
        value = float(value)
    except (TypeError, ValueError):
        value = 0.0
    if not math.isfinite(value):
        value = 0.0
    sign = "-" if value < 0 else ""
    return f"{sign}{symbol} {_pt_br_number(abs(value), 2)}"


def format_percentage(value) -> str:
    """Format a percent value with one decimal, e.g. ``5,0%``."""
    try:
        value = float(value)
    except (TypeError, ValueError):
        value = 0.0
    if not math.isfinite(value):
        value = 0.0
    return f"{_pt_br_number(value, 1)}%"


def format_date(value) -> str:
    """Format a stored date as dd/MM/yyyy.

    Values that do not parse are returned unchanged.
    """
    parsed = parse_flexible_date(value)
    if not parsed:
        return value
    return parsed.value.strftime(DATE_FORMAT_DISPLAY)


def status_name(status) -> str:
    return STATUS_NAMES[LoanStatus.coerce(status)]

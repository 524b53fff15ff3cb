"""Balance calculations for LoanBook.

Pure functions over a loan and its payments:
- Total amount due under simple interest
- Remaining balance
- Principal/interest split of a payment
- Overdue checks against the due date or the schedule's next payment date
- Installment amounts for new schedules

Nothing here reads or writes the ledger. ``today`` is always a parameter and
defaults to the current time.
"""
import logging
import math
from datetime import datetime
from typing import Iterable, Optional

from loanbook.config import FREQUENCY_RATE_FACTORS
from loanbook.data_structures import Loan, Payment, PaymentSplit, to_amount
from loanbook.dates import add_period, days_between, format_iso, parse_flexible_date
from loanbook.result import Result

logger = logging.getLogger(__name__)


def _finite(value: float) -> float:
    return value if math.isfinite(value) else 0.0


def planned_installments(loan: Loan) -> int:
    """Installment count from the schedule, or 1 without a usable schedule."""
    schedule = loan.payment_schedule
    if schedule is not None and schedule.installments and schedule.installments > 0:
        return schedule.installments
    return 1


def total_interest(loan: Loan) -> float:
    """Simple interest over the full term: principal x rate x installments."""
    interest = loan.principal * (loan.interest_rate / 100) * planned_installments(loan)
    if not math.isfinite(interest):
        logger.warning("Loan %s: interest overflows, counted as 0", loan.id)
        return 0.0
    return interest


def total_due(loan: Loan) -> float:
    """Calculate the total amount due for a loan (principal + interest)."""
    return _finite(loan.principal + total_interest(loan))


def total_paid(payments: Iterable[Payment]) -> float:
    return _finite(sum(p.amount for p in payments))


def remaining_balance(loan: Loan, payments: Iterable[Payment]) -> float:
    """Total due minus everything paid, floored at zero.

    Overpayments are accepted; they just leave the balance at 0.
    """
    return max(0.0, _finite(total_due(loan) - total_paid(payments)))


def payment_distribution(loan: Loan, payment_amount: float) -> PaymentSplit:
    """Split a payment between principal and interest.

    The ratios come from the loan's original terms (principal / total and
    interest / total), so every payment, first or last, is split the same way.
    A loan with nothing due (zero principal and zero interest) yields 0/0.

    Args:
        loan: The loan being paid.
        payment_amount: Amount received.

    Returns:
        PaymentSplit with the principal and interest portions.
    """
    interest = total_interest(loan)
    total = loan.principal + interest
    if total == 0 or not math.isfinite(total):
        return PaymentSplit(principal=0.0, interest=0.0)

    principal_ratio = loan.principal / total
    interest_ratio = interest / total
    return PaymentSplit(
        principal=_finite(payment_amount * principal_ratio),
        interest=_finite(payment_amount * interest_ratio),
    )


def reference_date(loan: Loan) -> Result[datetime]:
    """Date the loan is measured against: next scheduled payment, else due date."""
    if loan.payment_schedule is None:
        return parse_flexible_date(loan.due_date)
    return parse_flexible_date(loan.payment_schedule.next_payment_date)


def is_overdue(loan: Loan, today: Optional[datetime] = None) -> bool:
    """Check if a loan is past its reference date.

    The comparison keeps ``today``'s time of day: a loan due today is
    already overdue once midnight has passed. Day normalization happens in
    the status engine, not here.
    """
    if today is None:
        today = datetime.now()

    ref = reference_date(loan)
    if not ref:
        logger.warning("Loan %s has no usable reference date: %s", loan.id, ref.error)
        return False
    return today > ref.value


def days_overdue(loan: Loan, today: Optional[datetime] = None) -> int:
    """Number of whole days a loan is overdue, 0 when it is not."""
    if today is None:
        today = datetime.now()

    if not is_overdue(loan, today):
        return 0
    return days_between(today, reference_date(loan).value)


def installment_amount(principal, interest_rate, installments, frequency=None) -> float:
    """Installment amount for a new schedule.

    The monthly rate is converted to the rate per period of ``frequency``
    (custom and unknown frequencies keep the monthly rate), then:
    (principal + principal x rate x installments) / installments.

    Returns:
        The installment amount, or 0.0 when any input is missing,
        non-positive or not a number.
    """
    principal = to_amount(principal, math.nan)
    interest_rate = to_amount(interest_rate, math.nan)
    installments = to_amount(installments, math.nan)
    if not (principal > 0 and interest_rate > 0 and installments > 0):
        return 0.0

    key = getattr(frequency, "value", frequency)
    rate_per_period = (interest_rate / 100) * FREQUENCY_RATE_FACTORS.get(key, 1)
    interest = principal * rate_per_period * installments
    return _finite((principal + interest) / installments)


def monthly_payment(principal, interest_rate, months) -> float:
    """Calculate the monthly payment amount for a loan using simple interest."""
    return installment_amount(principal, interest_rate, months, "monthly")


def next_payment_date(current: datetime, frequency) -> str:
    """ISO date one period after ``current``."""
    return format_iso(add_period(current, frequency))

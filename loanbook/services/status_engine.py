"""Loan status derivation for LoanBook.

A loan's status is never stored state in its own right: it is recomputed from
the loan terms, its full payment history and the current date on every call.
Callers compare the result with the stored status and persist changes.
"""
import logging
from dataclasses import replace
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from loanbook.config import DEFAULT_THRESHOLD_DAYS
from loanbook.data_structures import Loan, LoanStatus, Payment
from loanbook.dates import normalize_to_day, parse_flexible_date, same_month
from loanbook.services.balance_calculator import days_overdue, remaining_balance

logger = logging.getLogger(__name__)


def paid_this_month(payments: Iterable[Payment], today: datetime) -> bool:
    """True when any payment was made in today's calendar month.

    Such a loan is reported as PAID even if a balance remains: the borrower
    is current for the period. Payments with unparseable dates are ignored.
    """
    for payment in payments:
        parsed = parse_flexible_date(payment.date)
        if not parsed:
            logger.warning("Ignoring payment %s with bad date %r", payment.id, payment.date)
            continue
        if same_month(parsed.value, today):
            return True
    return False


def _status_for_days(days: int, threshold: int) -> LoanStatus:
    if days > threshold:
        return LoanStatus.DEFAULTED
    return LoanStatus.OVERDUE


def derive_status(loan: Loan, payments: List[Payment], today: Optional[datetime] = None,
                  threshold_days: int = DEFAULT_THRESHOLD_DAYS) -> LoanStatus:
    """Determine the status of a loan based on payments and dates.

    Rules, first match wins:
    1. Nothing left to pay -> PAID.
    2. A payment landed in the current month -> PAID.
    3. Past the reference date (schedule's next payment date, else the due
       date) -> OVERDUE, or DEFAULTED beyond ``threshold_days``.
    4. Otherwise ACTIVE.

    Args:
        loan: Loan snapshot.
        payments: All payments recorded for this loan.
        today: Evaluation time (default: now).
        threshold_days: Days overdue after which the loan is defaulted.

    Returns:
        The derived LoanStatus.
    """
    if today is None:
        today = datetime.now()

    if remaining_balance(loan, payments) <= 0:
        return LoanStatus.PAID

    if paid_this_month(payments, today):
        return LoanStatus.PAID

    schedule = loan.payment_schedule
    if schedule is not None and schedule.next_payment_date:
        next_payment = parse_flexible_date(schedule.next_payment_date)
        if not next_payment:
            logger.warning("Loan %s: %s", loan.id, next_payment.error)
            return LoanStatus.ACTIVE

        next_day = normalize_to_day(next_payment.value)
        current_day = normalize_to_day(today)
        if next_day < current_day:
            return _status_for_days((current_day - next_day).days, threshold_days)
    else:
        days = days_overdue(loan, today)
        if days > 0:
            return _status_for_days(days, threshold_days)

    return LoanStatus.ACTIVE


def refresh_status(loan: Loan, payments: List[Payment], today: Optional[datetime] = None) -> Loan:
    """Copy of ``loan`` carrying its derived status. The input is not modified."""
    return replace(loan, status=derive_status(loan, payments, today))


def status_changes(loans: Iterable[Loan], payments: Iterable[Payment],
                   today: Optional[datetime] = None) -> Dict[str, LoanStatus]:
    """Derive every loan's status and return only the ones that changed.

    Returns:
        Mapping of loan id to its new status.
    """
    if today is None:
        today = datetime.now()

    by_loan: Dict[str, List[Payment]] = {}
    for payment in payments:
        by_loan.setdefault(payment.loan_id, []).append(payment)

    changes = {}
    for loan in loans:
        new_status = derive_status(loan, by_loan.get(loan.id, []), today)
        if new_status != loan.status:
            changes[loan.id] = new_status
    return changes

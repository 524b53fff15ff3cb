"""Dashboard aggregation for LoanBook.

Folds loan and payment snapshots into the summary figures and loan lists shown
on the dashboard. Sorting helpers at the bottom pick what the dashboard widgets
display; the selection functions themselves keep input order.
"""
import logging
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional

import pandas as pd

from loanbook.config import DASHBOARD_LIST_LIMIT
from loanbook.data_structures import DashboardMetrics, Loan, LoanMetrics, LoanStatus, Payment
from loanbook.dates import normalize_to_day, parse_date_or_none, parse_flexible_date, same_month
from loanbook.services.balance_calculator import remaining_balance

logger = logging.getLogger(__name__)

PAYMENT_COLUMNS = ['id', 'loan_id', 'date', 'amount', 'principal', 'interest']

OVERDUE_STATUSES = (LoanStatus.OVERDUE, LoanStatus.DEFAULTED)


def payments_frame(payments: Iterable[Payment]) -> pd.DataFrame:
    """Build a DataFrame of payments with a parsed ``date_obj`` column.

    ``date_obj`` is None for dates that do not parse.
    """
    rows = [
        {
            'id': p.id,
            'loan_id': p.loan_id,
            'date': p.date,
            'amount': p.amount,
            'principal': p.principal,
            'interest': p.interest,
        }
        for p in payments
    ]
    df = pd.DataFrame(rows, columns=PAYMENT_COLUMNS)
    df['date_obj'] = pd.Series([parse_date_or_none(d) for d in df['date']], index=df.index, dtype=object)
    return df


def group_payments(payments: Iterable[Payment]) -> Dict[str, List[Payment]]:
    """Index payments by loan id."""
    grouped: Dict[str, List[Payment]] = {}
    for payment in payments:
        grouped.setdefault(payment.loan_id, []).append(payment)
    return grouped


def loan_metrics(loan: Loan, payments: List[Payment]) -> LoanMetrics:
    """Summary figures for a single loan.

    ``total_interest`` is the sum of the interest portions actually recorded
    on payments, not the interest the loan will eventually earn.
    """
    schedule = loan.payment_schedule
    return LoanMetrics(
        total_principal=loan.principal,
        total_interest=sum(p.interest for p in payments),
        total_paid=sum(p.amount for p in payments),
        remaining_balance=remaining_balance(loan, payments),
        next_payment_date=schedule.next_payment_date if schedule else None,
        next_payment_amount=schedule.installment_amount if schedule else None,
    )


def received_in_month(df: pd.DataFrame, today: datetime) -> float:
    """Sum of payment amounts dated in ``today``'s calendar month."""
    if df.empty:
        return 0.0
    mask = df['date_obj'].map(lambda d: d is not None and same_month(d, today)).astype(bool)
    return float(df.loc[mask, 'amount'].sum())


def dashboard_metrics(loans: List[Loan], payments: List[Payment], borrower_count: int,
                      today: Optional[datetime] = None) -> DashboardMetrics:
    """Portfolio-wide metrics.

    Counts use each loan's stored status, so callers should refresh statuses
    first. Payments with unparseable dates still count towards the interest
    total but not towards this month's receipts.
    """
    if today is None:
        today = datetime.now()

    df = payments_frame(payments)
    by_loan = group_payments(payments)

    status_counts = pd.Series([LoanStatus.coerce(loan.status).value for loan in loans], dtype=object).value_counts()

    total_overdue = sum(
        remaining_balance(loan, by_loan.get(loan.id, []))
        for loan in loans
        if loan.status in OVERDUE_STATUSES
    )

    return DashboardMetrics(
        total_loaned=float(sum(loan.principal for loan in loans)),
        total_interest_accrued=float(df['interest'].sum()) if not df.empty else 0.0,
        total_overdue=float(total_overdue),
        total_borrowers=borrower_count,
        active_loan_count=int(status_counts.get(LoanStatus.ACTIVE.value, 0)),
        paid_loan_count=int(status_counts.get(LoanStatus.PAID.value, 0)),
        overdue_loan_count=int(status_counts.get(LoanStatus.OVERDUE.value, 0)),
        defaulted_loan_count=int(status_counts.get(LoanStatus.DEFAULTED.value, 0)),
        total_received_this_month=received_in_month(df, today),
    )


def overdue_loans(loans: Iterable[Loan]) -> List[Loan]:
    """Loans whose status is overdue or defaulted."""
    return [loan for loan in loans if loan.status in OVERDUE_STATUSES]


def upcoming_due_loans(loans: Iterable[Loan], days: int,
                       today: Optional[datetime] = None) -> List[Loan]:
    """Loans with a scheduled payment due now, soon, or already missed.

    A loan is included when its next payment date (compared by day) is today,
    falls within the next ``days`` days, is already past while the loan is
    not paid, or when the loan is marked overdue. Loans without a schedule or
    with an unparseable next payment date are skipped. Each loan appears once.
    """
    if today is None:
        today = datetime.now()

    today_day = normalize_to_day(today)
    horizon = today_day + timedelta(days=days)

    seen = set()
    upcoming = []
    for loan in loans:
        if loan.id in seen:
            continue
        schedule = loan.payment_schedule
        if schedule is None or not schedule.next_payment_date:
            continue

        parsed = parse_flexible_date(schedule.next_payment_date)
        if not parsed:
            logger.warning("Skipping loan %s in upcoming payments: %s", loan.id, parsed.error)
            continue

        due_day = normalize_to_day(parsed.value)
        is_today = due_day == today_day
        is_upcoming = today_day < due_day <= horizon
        is_due = due_day <= today_day and loan.status != LoanStatus.PAID

        if is_today or is_upcoming or is_due or loan.status == LoanStatus.OVERDUE:
            seen.add(loan.id)
            upcoming.append(loan)
    return upcoming


# -----------------------------------------------------------------------------
# Dashboard widget helpers
# -----------------------------------------------------------------------------

def _ascending(value):
    parsed = parse_date_or_none(value)
    return (parsed is None, parsed or datetime.min)


def recent_loans(loans: Iterable[Loan], limit: int = DASHBOARD_LIST_LIMIT) -> List[Loan]:
    """Most recently issued loans first."""
    ordered = sorted(loans, key=lambda l: parse_date_or_none(l.issue_date) or datetime.min, reverse=True)
    return ordered[:limit]


def oldest_overdue(loans: Iterable[Loan], limit: int = DASHBOARD_LIST_LIMIT) -> List[Loan]:
    """Overdue and defaulted loans, oldest due date first."""
    ordered = sorted(overdue_loans(loans), key=lambda l: _ascending(l.due_date))
    return ordered[:limit]


def next_upcoming(loans: Iterable[Loan], days: int, today: Optional[datetime] = None,
                  limit: int = DASHBOARD_LIST_LIMIT) -> List[Loan]:
    """Upcoming loans ordered by nearest next payment date."""
    ordered = sorted(upcoming_due_loans(loans, days, today),
                     key=lambda l: _ascending(l.payment_schedule.next_payment_date))
    return ordered[:limit]

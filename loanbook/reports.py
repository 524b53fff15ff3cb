"""
Report generation module for LoanBook.
Handles payment history grouping, status breakdowns and the loan summary table.
"""
import logging
from datetime import datetime

import pandas as pd
from dateutil.relativedelta import relativedelta

from loanbook.config import MONTH_KEY_FORMAT
from loanbook.data_structures import DashboardMetrics, LoanStatus
from loanbook.dates import parse_date_or_none
from loanbook.formatters import status_name
from loanbook.services.balance_calculator import remaining_balance
from loanbook.services.dashboard_service import group_payments, payments_frame

logger = logging.getLogger(__name__)

# How far back each report range reaches
RANGE_WINDOWS = {
    "month": relativedelta(months=1),
    "quarter": relativedelta(months=3),
    "year": relativedelta(years=1),
}

PERIOD_LABELS = {
    "month": "Last month",
    "quarter": "Last 3 months",
    "year": "Last year",
    "all": "All time",
}

MONTH_COLUMNS = ['month', 'total', 'principal', 'interest']

SUMMARY_COLUMNS = ['Loan', 'Borrower', 'Issued', 'Principal', 'Rate (%)', 'Paid', 'Balance', 'Status']


class ReportGenerator:
    def __init__(self, today_provider=None):
        self._today = today_provider or datetime.now

    def _range_start(self, date_range, today):
        if date_range == "all":
            return None
        window = RANGE_WINDOWS.get(date_range)
        if window is None:
            raise ValueError(f"Unknown report range: {date_range!r}")
        return today - window

    def filter_payments(self, payments, date_range="month", today=None):
        """Payments dated inside the report range, up to and including today.

        Args:
            payments: Payment records.
            date_range: One of "month", "quarter", "year" or "all".
            today: Reference time (default: now).

        Returns:
            List of payments in range. Payments with unparseable dates are
            left out.
        """
        if today is None:
            today = self._today()
        start = self._range_start(date_range, today)

        selected = []
        for payment in payments:
            paid_on = parse_date_or_none(payment.date)
            if paid_on is None:
                logger.warning("Payment %s left out of report: bad date %r", payment.id, payment.date)
                continue
            if paid_on > today or (start is not None and paid_on < start):
                continue
            selected.append(payment)
        return selected

    def payments_by_month(self, payments, date_range="month", today=None):
        """Total, principal and interest received per calendar month.

        Returns:
            DataFrame with columns month (yyyy-MM), total, principal and
            interest, sorted by month.
        """
        selected = self.filter_payments(payments, date_range, today)
        df = payments_frame(selected)
        if df.empty:
            return pd.DataFrame(columns=MONTH_COLUMNS)

        df['month'] = df['date_obj'].map(lambda d: d.strftime(MONTH_KEY_FORMAT))
        grouped = (
            df.groupby('month', sort=True)[['amount', 'principal', 'interest']]
            .sum()
            .reset_index()
            .rename(columns={'amount': 'total'})
        )
        return grouped[MONTH_COLUMNS]

    def status_distribution(self, metrics: DashboardMetrics):
        """Loan counts per status, in chart order."""
        return {
            status_name(LoanStatus.ACTIVE): metrics.active_loan_count,
            status_name(LoanStatus.OVERDUE): metrics.overdue_loan_count,
            status_name(LoanStatus.DEFAULTED): metrics.defaulted_loan_count,
            status_name(LoanStatus.PAID): metrics.paid_loan_count,
        }

    def period_label(self, date_range):
        return PERIOD_LABELS.get(date_range, "Custom period")

    def borrower_name(self, borrowers, borrower_id):
        for borrower in borrowers:
            if borrower.id == borrower_id:
                return borrower.name
        return "Unknown"

    def loan_summary(self, loans, payments, borrowers):
        """One row per loan with amounts paid and outstanding, plus a totals row."""
        by_loan = group_payments(payments)
        rows = []
        for loan in loans:
            loan_payments = by_loan.get(loan.id, [])
            rows.append({
                'Loan': loan.id,
                'Borrower': self.borrower_name(borrowers, loan.borrower_id),
                'Issued': loan.issue_date,
                'Principal': loan.principal,
                'Rate (%)': loan.interest_rate,
                'Paid': sum(p.amount for p in loan_payments),
                'Balance': remaining_balance(loan, loan_payments),
                'Status': status_name(loan.status),
            })

        df = pd.DataFrame(rows, columns=SUMMARY_COLUMNS)
        if not df.empty:
            totals = {col: '' for col in SUMMARY_COLUMNS}
            totals['Loan'] = 'TOTAL'
            for col in ('Principal', 'Paid', 'Balance'):
                totals[col] = df[col].sum()
            df = pd.concat([df, pd.DataFrame([totals])], ignore_index=True)
        return df

    def export_to_csv(self, df, output_path):
        """Export DataFrame to CSV."""
        try:
            df.to_csv(output_path, index=False)
            return True, "Report generated successfully (CSV)."
        except OSError as e:
            logger.error("CSV export to %s failed: %s", output_path, e)
            return False, f"CSV Export Failed: {e}"

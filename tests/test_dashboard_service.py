import os
import sys
import unittest
from datetime import datetime

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from loanbook.data_structures import Loan, LoanStatus, Payment, PaymentFrequency, PaymentSchedule
from loanbook.services.dashboard_service import (
    dashboard_metrics,
    loan_metrics,
    next_upcoming,
    oldest_overdue,
    overdue_loans,
    payments_frame,
    recent_loans,
    upcoming_due_loans,
)

TODAY = datetime(2024, 6, 30, 10, 0)


def make_loan(loan_id, status=LoanStatus.ACTIVE, next_date=None, issue_date="2024-01-01",
              due_date="2025-01-01", principal=1000.0):
    schedule = None
    if next_date is not None:
        schedule = PaymentSchedule(PaymentFrequency.MONTHLY, next_date, 10, 150.0)
    return Loan(
        id=loan_id,
        borrower_id="B-001",
        borrower_name="Maria Silva",
        principal=principal,
        interest_rate=5.0,
        issue_date=issue_date,
        due_date=due_date,
        status=status,
        payment_schedule=schedule,
    )


class TestLoanMetrics(unittest.TestCase):

    def test_metrics_for_loan(self):
        loan = make_loan("L-001", next_date="2024-07-15")
        payments = [
            Payment("P-001", "L-001", "2024-02-01", 300.0, 200.0, 100.0),
            Payment("P-002", "L-001", "2024-03-01", 150.0, 100.0, 50.0),
        ]
        metrics = loan_metrics(loan, payments)
        self.assertEqual(metrics.total_principal, 1000.0)
        self.assertAlmostEqual(metrics.total_interest, 150.0)
        self.assertAlmostEqual(metrics.total_paid, 450.0)
        self.assertAlmostEqual(metrics.remaining_balance, 1050.0)
        self.assertEqual(metrics.next_payment_date, "2024-07-15")
        self.assertEqual(metrics.next_payment_amount, 150.0)

    def test_metrics_without_schedule(self):
        metrics = loan_metrics(make_loan("L-001"), [])
        self.assertIsNone(metrics.next_payment_date)
        self.assertIsNone(metrics.next_payment_amount)
        self.assertAlmostEqual(metrics.remaining_balance, 1050.0)


class TestDashboardMetrics(unittest.TestCase):

    def setUp(self):
        self.loans = [
            make_loan("L-001", LoanStatus.ACTIVE, principal=1000.0),
            make_loan("L-002", LoanStatus.OVERDUE, principal=2000.0),
            make_loan("L-003", LoanStatus.DEFAULTED, principal=500.0),
            make_loan("L-004", LoanStatus.PAID, principal=400.0),
        ]
        self.payments = [
            Payment("P-001", "L-001", "2024-06-05", 100.0, 80.0, 20.0),
            Payment("P-002", "L-002", "2024-05-05", 200.0, 150.0, 50.0),
            Payment("P-003", "L-004", "garbage", 420.0, 400.0, 20.0),
        ]

    def test_counts_and_totals(self):
        m = dashboard_metrics(self.loans, self.payments, borrower_count=3, today=TODAY)
        self.assertEqual(m.total_loaned, 3900.0)
        self.assertAlmostEqual(m.total_interest_accrued, 90.0)
        self.assertEqual(m.total_borrowers, 3)
        self.assertEqual(m.active_loan_count, 1)
        self.assertEqual(m.overdue_loan_count, 1)
        self.assertEqual(m.defaulted_loan_count, 1)
        self.assertEqual(m.paid_loan_count, 1)

    def test_total_overdue_sums_remaining_balances(self):
        m = dashboard_metrics(self.loans, self.payments, borrower_count=3, today=TODAY)
        # L-002: 2100 - 200; L-003: 525
        self.assertAlmostEqual(m.total_overdue, 1900.0 + 525.0)

    def test_received_this_month_skips_bad_dates(self):
        m = dashboard_metrics(self.loans, self.payments, borrower_count=3, today=TODAY)
        self.assertAlmostEqual(m.total_received_this_month, 100.0)

    def test_empty_portfolio(self):
        m = dashboard_metrics([], [], borrower_count=0, today=TODAY)
        self.assertEqual(m.total_loaned, 0.0)
        self.assertEqual(m.total_received_this_month, 0.0)
        self.assertEqual(m.active_loan_count, 0)

    def test_payments_frame_marks_bad_dates(self):
        df = payments_frame(self.payments)
        self.assertEqual(len(df), 3)
        self.assertIsNone(df.loc[2, 'date_obj'])
        self.assertEqual(df.loc[0, 'date_obj'], datetime(2024, 6, 5))


class TestLoanLists(unittest.TestCase):

    def test_overdue_loans(self):
        loans = [make_loan("A"), make_loan("B", LoanStatus.OVERDUE), make_loan("C", LoanStatus.DEFAULTED)]
        self.assertEqual([l.id for l in overdue_loans(loans)], ["B", "C"])

    def test_payment_due_today_is_upcoming(self):
        loans = [make_loan("L-001", next_date="2024-06-30")]
        self.assertEqual([l.id for l in upcoming_due_loans(loans, 30, TODAY)], ["L-001"])

    def test_upcoming_window(self):
        loans = [
            make_loan("soon", next_date="2024-07-20"),
            make_loan("edge", next_date="2024-07-30"),
            make_loan("far", next_date="2024-08-15"),
            make_loan("missed", next_date="2024-06-01"),
            make_loan("missed-paid", LoanStatus.PAID, next_date="2024-06-01"),
            make_loan("no-schedule"),
        ]
        ids = [l.id for l in upcoming_due_loans(loans, 30, TODAY)]
        self.assertEqual(ids, ["soon", "edge", "missed"])

    def test_overdue_status_included_regardless_of_date(self):
        loans = [make_loan("L-001", LoanStatus.OVERDUE, next_date="2024-12-01")]
        self.assertEqual(len(upcoming_due_loans(loans, 30, TODAY)), 1)

    def test_duplicates_and_bad_dates(self):
        loan = make_loan("L-001", next_date="2024-07-01")
        bad = make_loan("L-002", next_date="n/a")
        with self.assertLogs('loanbook.services.dashboard_service', level='WARNING'):
            result = upcoming_due_loans([loan, loan, bad], 30, TODAY)
        self.assertEqual([l.id for l in result], ["L-001"])


class TestWidgets(unittest.TestCase):

    def test_recent_loans_newest_first(self):
        loans = [make_loan(str(i), issue_date=f"2024-0{i}-01") for i in range(1, 8)]
        self.assertEqual([l.id for l in recent_loans(loans)], ["7", "6", "5", "4", "3"])

    def test_oldest_overdue_first(self):
        loans = [
            make_loan("new", LoanStatus.OVERDUE, due_date="2024-06-01"),
            make_loan("old", LoanStatus.DEFAULTED, due_date="2024-01-01"),
            make_loan("fine", due_date="2023-01-01"),
        ]
        self.assertEqual([l.id for l in oldest_overdue(loans)], ["old", "new"])

    def test_next_upcoming_nearest_first(self):
        loans = [
            make_loan("b", next_date="2024-07-10"),
            make_loan("a", next_date="2024-07-02"),
        ]
        self.assertEqual([l.id for l in next_upcoming(loans, 30, TODAY)], ["a", "b"])


if __name__ == '__main__':
    unittest.main()

import os
import sys
import tempfile
import unittest
from datetime import datetime

import pandas as pd

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from loanbook.data_structures import Borrower, DashboardMetrics, Loan, LoanStatus, Payment
from loanbook.reports import ReportGenerator

TODAY = datetime(2024, 6, 30, 10, 0)


class TestReportGenerator(unittest.TestCase):

    def setUp(self):
        self.gen = ReportGenerator(lambda: TODAY)
        self.payments = [
            Payment("P-001", "L-001", "2024-06-20", 100.0, 80.0, 20.0),
            Payment("P-002", "L-001", "2024-06-05", 50.0, 40.0, 10.0),
            Payment("P-003", "L-001", "2024-05-10", 200.0, 160.0, 40.0),
            Payment("P-004", "L-002", "2024-02-01", 300.0, 240.0, 60.0),
            Payment("P-005", "L-002", "2023-01-01", 400.0, 320.0, 80.0),
            Payment("P-006", "L-002", "2024-07-15", 999.0, 999.0, 0.0),
            Payment("P-007", "L-002", "broken", 1.0, 1.0, 0.0),
        ]

    def ids(self, payments):
        return [p.id for p in payments]

    def test_filter_ranges(self):
        self.assertEqual(self.ids(self.gen.filter_payments(self.payments, "month", TODAY)),
                         ["P-001", "P-002"])
        self.assertEqual(self.ids(self.gen.filter_payments(self.payments, "quarter", TODAY)),
                         ["P-001", "P-002", "P-003"])
        self.assertEqual(self.ids(self.gen.filter_payments(self.payments, "year", TODAY)),
                         ["P-001", "P-002", "P-003", "P-004"])
        self.assertEqual(self.ids(self.gen.filter_payments(self.payments, "all", TODAY)),
                         ["P-001", "P-002", "P-003", "P-004", "P-005"])

    def test_filter_uses_clock_by_default(self):
        self.assertEqual(len(self.gen.filter_payments(self.payments, "month")), 2)

    def test_unknown_range(self):
        with self.assertRaises(ValueError):
            self.gen.filter_payments(self.payments, "decade", TODAY)

    def test_payments_by_month(self):
        df = self.gen.payments_by_month(self.payments, "year", TODAY)
        self.assertEqual(list(df.columns), ['month', 'total', 'principal', 'interest'])
        self.assertEqual(list(df['month']), ["2024-02", "2024-05", "2024-06"])
        june = df[df['month'] == "2024-06"].iloc[0]
        self.assertAlmostEqual(june['total'], 150.0)
        self.assertAlmostEqual(june['principal'], 120.0)
        self.assertAlmostEqual(june['interest'], 30.0)

    def test_payments_by_month_empty(self):
        df = self.gen.payments_by_month([], "all", TODAY)
        self.assertTrue(df.empty)
        self.assertEqual(list(df.columns), ['month', 'total', 'principal', 'interest'])

    def test_status_distribution(self):
        metrics = DashboardMetrics(active_loan_count=3, paid_loan_count=1,
                                   overdue_loan_count=2, defaulted_loan_count=0)
        self.assertEqual(self.gen.status_distribution(metrics),
                         {"Active": 3, "Overdue": 2, "Defaulted": 0, "Paid": 1})

    def test_period_label(self):
        self.assertEqual(self.gen.period_label("quarter"), "Last 3 months")
        self.assertEqual(self.gen.period_label("other"), "Custom period")

    def test_borrower_name(self):
        borrowers = [Borrower("B-001", "Maria Silva")]
        self.assertEqual(self.gen.borrower_name(borrowers, "B-001"), "Maria Silva")
        self.assertEqual(self.gen.borrower_name(borrowers, "B-404"), "Unknown")

    def test_loan_summary_with_totals(self):
        borrowers = [Borrower("B-001", "Maria Silva")]
        loans = [
            Loan("L-001", "B-001", "Maria Silva", 1000.0, 5.0, "2024-01-01", "2025-01-01"),
            Loan("L-002", "B-404", "Ghost", 500.0, 5.0, "2024-01-01", "2025-01-01", LoanStatus.PAID),
        ]
        df = self.gen.loan_summary(loans, self.payments, borrowers)
        self.assertEqual(len(df), 3)
        self.assertEqual(df.iloc[1]['Borrower'], "Unknown")
        self.assertEqual(df.iloc[1]['Status'], "Paid")
        total = df.iloc[-1]
        self.assertEqual(total['Loan'], "TOTAL")
        self.assertAlmostEqual(total['Principal'], 1500.0)
        self.assertAlmostEqual(total['Paid'], 350.0 + 1700.0)

    def test_export_to_csv(self):
        df = pd.DataFrame({'a': [1, 2]})
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "report.csv")
            ok, _ = self.gen.export_to_csv(df, path)
            self.assertTrue(ok)
            self.assertTrue(os.path.exists(path))
            ok, message = self.gen.export_to_csv(df, os.path.join(tmp, "missing", "report.csv"))
            self.assertFalse(ok)
            self.assertIn("CSV Export Failed", message)


if __name__ == '__main__':
    unittest.main()

import os
import sys
import unittest
from datetime import date, datetime

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from loanbook.dates import (
    add_period,
    days_between,
    format_iso,
    normalize_to_day,
    parse_date_or_none,
    parse_flexible_date,
    same_month,
)
from loanbook.data_structures import PaymentFrequency
from loanbook.result import ErrorType


class TestParseFlexibleDate(unittest.TestCase):

    def test_iso_date(self):
        result = parse_flexible_date("2024-03-15")
        self.assertTrue(result.success)
        self.assertEqual(result.value, datetime(2024, 3, 15))

    def test_iso_with_time_component(self):
        self.assertEqual(parse_flexible_date("2024-03-15T10:30:00Z").value, datetime(2024, 3, 15))
        self.assertEqual(parse_flexible_date("2024-03-15 10:30:00").value, datetime(2024, 3, 15))

    def test_brazilian_format(self):
        self.assertEqual(parse_flexible_date("31/12/2024").value, datetime(2024, 12, 31))

    def test_datetime_and_date_pass_through(self):
        now = datetime(2024, 5, 1, 13, 45)
        self.assertEqual(parse_flexible_date(now).value, now)
        self.assertEqual(parse_flexible_date(date(2024, 5, 1)).value, datetime(2024, 5, 1))

    def test_garbage_fails_without_raising(self):
        for bad in ("", "   ", "not a date", "2024-13-45", "45/13/2024", None, 12345):
            result = parse_flexible_date(bad)
            self.assertFalse(result, bad)
            self.assertEqual(result.error_type, ErrorType.PARSE)

    def test_parse_date_or_none(self):
        self.assertIsNone(parse_date_or_none("nope"))
        self.assertEqual(parse_date_or_none("2024-01-02"), datetime(2024, 1, 2))


class TestPeriods(unittest.TestCase):

    def test_weekly_and_biweekly(self):
        start = datetime(2024, 1, 1)
        self.assertEqual(add_period(start, "weekly"), datetime(2024, 1, 8))
        self.assertEqual(add_period(start, PaymentFrequency.BIWEEKLY), datetime(2024, 1, 15))

    def test_month_based_periods_clamp_to_month_end(self):
        start = datetime(2024, 1, 31)
        self.assertEqual(add_period(start, "monthly"), datetime(2024, 2, 29))
        self.assertEqual(add_period(start, "quarterly"), datetime(2024, 4, 30))
        self.assertEqual(add_period(start, "yearly"), datetime(2025, 1, 31))

    def test_custom_and_unknown_advance_one_month(self):
        start = datetime(2024, 6, 10)
        self.assertEqual(add_period(start, PaymentFrequency.CUSTOM), datetime(2024, 7, 10))
        self.assertEqual(add_period(start, "fortnightly"), datetime(2024, 7, 10))


class TestDayHelpers(unittest.TestCase):

    def test_normalize_to_day(self):
        self.assertEqual(normalize_to_day(datetime(2024, 2, 3, 23, 59, 59)), datetime(2024, 2, 3))

    def test_days_between_truncates(self):
        self.assertEqual(days_between(datetime(2024, 1, 11, 12), datetime(2024, 1, 1)), 10)
        self.assertEqual(days_between(datetime(2024, 1, 1), datetime(2024, 1, 11)), -10)

    def test_same_month(self):
        self.assertTrue(same_month(datetime(2024, 3, 1), datetime(2024, 3, 31)))
        self.assertFalse(same_month(datetime(2024, 3, 1), datetime(2023, 3, 1)))

    def test_format_iso(self):
        self.assertEqual(format_iso(datetime(2024, 7, 4, 8)), "2024-07-04")


if __name__ == '__main__':
    unittest.main()

"""Business logic engine for LoanBook.

This module provides the LoanEngine class which acts as a facade over the
ledger service, the dashboard functions and the report generator.

Service Classes:
    - LoanService: Borrower, loan and payment ledger
    - ReportGenerator: Payment history and summary reports
"""
import logging
from dataclasses import fields, replace
from datetime import datetime

from loanbook.backup import (
    Interchange,
    create_backup,
    export_csv,
    export_json,
    load_interchange,
    records_from_backup,
    validate_backup,
)
from loanbook.config import RESET_KEYWORD, UPCOMING_WINDOW_DAYS
from loanbook.data_structures import AppSettings, LoanMetrics, PaymentFrequency
from loanbook.exceptions import ImportFormatError, ValidationError
from loanbook.reports import ReportGenerator
from loanbook.services import LoanService
from loanbook.services import dashboard_service

logger = logging.getLogger(__name__)

SETTINGS_FIELDS = {f.name for f in fields(AppSettings)}


class LoanEngine:
    """Entry point for applications built on LoanBook.

    Attributes:
        settings: Current AppSettings.
        loan_service: LoanService instance (lazy-loaded).
        report_generator: ReportGenerator instance (lazy-loaded).
    """

    def __init__(self, today_provider=None, settings: AppSettings = None):
        self._today = today_provider or datetime.now
        self.settings = settings or AppSettings()
        self._loan_service = None
        self._report_generator = None

    @property
    def loan_service(self):
        """Lazy-load LoanService instance."""
        if self._loan_service is None:
            self._loan_service = LoanService(self._today)
        return self._loan_service

    @property
    def report_generator(self):
        """Lazy-load ReportGenerator instance."""
        if self._report_generator is None:
            self._report_generator = ReportGenerator(self._today)
        return self._report_generator

    def today(self):
        return self._today()

    # ------------------------------------------------------------------
    # Ledger
    # ------------------------------------------------------------------

    def add_borrower(self, name, email=None, phone=None):
        return self.loan_service.add_borrower(name, email, phone)

    def update_borrower(self, borrower_id, **changes):
        return self.loan_service.update_borrower(borrower_id, **changes)

    def delete_borrower(self, borrower_id):
        self.loan_service.delete_borrower(borrower_id)

    def add_loan(self, borrower_id, principal, issue_date, due_date, interest_rate=None,
                 frequency=None, installments=None, notes=None, with_schedule=True):
        """Issue a loan, filling missing terms from the settings.

        With ``with_schedule`` (the default) the loan gets a payment schedule
        using the settings' frequency and installment count where none is
        given.
        """
        if interest_rate is None:
            interest_rate = self.settings.default_interest_rate
        if with_schedule:
            if frequency is None:
                frequency = self.settings.default_payment_frequency
            if installments is None:
                installments = self.settings.default_installments
        return self.loan_service.add_loan(
            borrower_id, principal, interest_rate, issue_date, due_date,
            frequency=frequency, installments=installments, notes=notes,
        )

    def update_loan(self, loan_id, **changes):
        return self.loan_service.update_loan(loan_id, **changes)

    def delete_loan(self, loan_id):
        return self.loan_service.delete_loan(loan_id)

    def add_payment(self, loan_id, amount, date=None, notes=None, advance_schedule=False):
        """Record a payment. The next payment date only moves with ``advance_schedule``."""
        return self.loan_service.add_payment(loan_id, amount, date, notes, advance_schedule)

    def update_payment(self, payment_id, **changes):
        return self.loan_service.update_payment(payment_id, **changes)

    def delete_payment(self, payment_id):
        self.loan_service.delete_payment(payment_id)

    def refresh_statuses(self):
        return self.loan_service.refresh_statuses()

    # ------------------------------------------------------------------
    # Dashboard
    # ------------------------------------------------------------------

    def loan_metrics(self, loan_id) -> LoanMetrics:
        """Metrics for one loan; all zeros when the loan does not exist."""
        loan = self.loan_service.loans.get(loan_id)
        if loan is None:
            return LoanMetrics(total_principal=0.0, total_interest=0.0, total_paid=0.0,
                               remaining_balance=0.0)
        return dashboard_service.loan_metrics(loan, self.loan_service.payments_for_loan(loan_id))

    def dashboard_metrics(self):
        """Portfolio metrics, computed after refreshing every loan's status."""
        service = self.loan_service
        service.refresh_statuses()
        return dashboard_service.dashboard_metrics(
            service.list_loans(), service.list_payments(), len(service.borrowers), self.today())

    def overdue_loans(self):
        return dashboard_service.overdue_loans(self.loan_service.list_loans())

    def upcoming_due_loans(self, days=UPCOMING_WINDOW_DAYS):
        return dashboard_service.upcoming_due_loans(self.loan_service.list_loans(), days, self.today())

    def recent_loans(self):
        return dashboard_service.recent_loans(self.loan_service.list_loans())

    def oldest_overdue(self):
        return dashboard_service.oldest_overdue(self.loan_service.list_loans())

    def next_upcoming(self, days=UPCOMING_WINDOW_DAYS):
        return dashboard_service.next_upcoming(self.loan_service.list_loans(), days, self.today())

    # ------------------------------------------------------------------
    # Reports
    # ------------------------------------------------------------------

    def payments_by_month(self, date_range="month"):
        return self.report_generator.payments_by_month(
            self.loan_service.list_payments(), date_range, self.today())

    def status_distribution(self):
        return self.report_generator.status_distribution(self.dashboard_metrics())

    def loan_summary(self):
        service = self.loan_service
        return self.report_generator.loan_summary(
            service.list_loans(), service.list_payments(), service.list_borrowers())

    # ------------------------------------------------------------------
    # Import / export
    # ------------------------------------------------------------------

    def import_data(self, text) -> Interchange:
        """Replace the ledger with the content of a JSON backup or CSV export.

        The keyword ``RESET`` clears the ledger and restores default settings.
        Records breaking referential integrity are imported anyway; the
        violations are logged and returned on the Interchange.
        """
        if text.strip() == RESET_KEYWORD:
            self.loan_service.clear()
            self.settings = AppSettings()
            logger.info("Ledger reset to defaults")
            return Interchange()

        interchange = load_interchange(text)
        self._apply(interchange)
        return interchange

    def _apply(self, interchange: Interchange):
        self.loan_service.replace_all(interchange.borrowers, interchange.loans, interchange.payments)
        if interchange.settings is not None:
            self.settings = interchange.settings
        self.loan_service.refresh_statuses()
        logger.info("Imported %s", self.loan_service.summary())

    def export_data(self) -> str:
        """Export the ledger as sectioned CSV."""
        service = self.loan_service
        return export_csv(service.list_borrowers(), service.list_loans(), service.list_payments())

    def export_json(self, description=None) -> str:
        service = self.loan_service
        return export_json(service.list_borrowers(), service.list_loans(), service.list_payments(),
                           self.settings, description)

    def backup(self, description=None):
        service = self.loan_service
        return create_backup(service.list_borrowers(), service.list_loans(),
                             service.list_payments(), self.settings, description)

    def restore(self, backup):
        """Restore a backup document created by ``backup``.

        Raises:
            ImportFormatError: If the backup fails validation. Nothing is
                changed in that case.
        """
        report = validate_backup(backup)
        if not report.valid:
            raise ImportFormatError("Invalid backup", {'errors': report.errors})
        interchange = records_from_backup(backup)
        self._apply(interchange)
        return interchange

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    def update_settings(self, **changes) -> AppSettings:
        unknown = set(changes) - SETTINGS_FIELDS
        if unknown:
            raise ValidationError(', '.join(sorted(unknown)), "not a setting")
        if 'default_payment_frequency' in changes:
            changes['default_payment_frequency'] = PaymentFrequency.coerce(
                changes['default_payment_frequency'])
        self.settings = replace(self.settings, **changes)
        return self.settings

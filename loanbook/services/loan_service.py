"""Loan ledger service for LoanBook.

This service owns the borrower, loan and payment collections and handles:
- Borrower registration, edits and guarded deletion
- Loan issuance with an optional payment schedule
- Payment recording with the principal/interest split
- Cascading deletes
- Status recomputation after every write that affects a loan

Stored records are never modified in place: every write stores a new record
(``dataclasses.replace``), so snapshots handed out earlier stay unchanged.
"""
import logging
import math
from dataclasses import replace
from datetime import datetime
from typing import Callable, Dict, Iterable, List

from loanbook.config import (
    DEFAULT_INSTALLMENTS,
    DEFAULT_PAYMENT_FREQUENCY,
    MIN_BORROWER_NAME_LENGTH,
)
from loanbook.data_structures import (
    Borrower,
    Loan,
    LoanStatus,
    Payment,
    PaymentFrequency,
    PaymentSchedule,
    to_amount,
)
from loanbook.dates import add_period, format_iso, normalize_to_day, parse_flexible_date
from loanbook.exceptions import (
    BorrowerHasLoansError,
    BorrowerNotFoundError,
    LoanNotFoundError,
    PaymentNotFoundError,
    ValidationError,
)
from loanbook.services.balance_calculator import (
    installment_amount,
    next_payment_date,
    payment_distribution,
)
from loanbook.services.status_engine import derive_status, status_changes

logger = logging.getLogger(__name__)

BORROWER_FIELDS = {'name', 'email', 'phone'}
LOAN_FIELDS = {'borrower_id', 'principal', 'interest_rate', 'issue_date', 'due_date',
               'notes', 'frequency', 'installments', 'payment_schedule'}
SCHEDULE_FIELDS = {'issue_date', 'frequency', 'installments'}
PAYMENT_FIELDS = {'date', 'amount', 'notes'}


def _next_id(prefix: str, existing: Iterable[str]) -> str:
    """Next sequential id of the form PREFIX-001."""
    max_num = 0
    for ref in existing:
        try:
            head, num = ref.split('-', 1)
            if head == prefix:
                max_num = max(max_num, int(num))
        except ValueError:
            pass
    return f"{prefix}-{max_num + 1:03d}"


class LoanService:
    """In-memory ledger of borrowers, loans and payments.

    Attributes:
        borrowers: Borrowers keyed by id.
        loans: Loans keyed by id.
        payments: Payments keyed by id.
    """

    def __init__(self, today_provider: Callable[[], datetime] = None):
        """Initialize LoanService.

        Args:
            today_provider: Callable returning the current time. Defaults to
                datetime.now; tests pass a fixed clock.
        """
        self.borrowers: Dict[str, Borrower] = {}
        self.loans: Dict[str, Loan] = {}
        self.payments: Dict[str, Payment] = {}
        self._today = today_provider or datetime.now

    def today(self) -> datetime:
        return self._today()

    # ------------------------------------------------------------------
    # Borrowers
    # ------------------------------------------------------------------

    def _validate_name(self, name) -> str:
        name = (name or "").strip()
        if len(name) < MIN_BORROWER_NAME_LENGTH:
            raise ValidationError('name', f"must have at least {MIN_BORROWER_NAME_LENGTH} characters")
        return name

    def add_borrower(self, name: str, email: str = None, phone: str = None,
                     borrower_id: str = None) -> Borrower:
        """Register a borrower.

        Args:
            name: Display name (at least two characters).
            email: Optional e-mail address.
            phone: Optional phone number.
            borrower_id: Optional id; generated when omitted.

        Returns:
            The stored Borrower.
        """
        name = self._validate_name(name)
        borrower_id = borrower_id or _next_id('B', self.borrowers)
        if borrower_id in self.borrowers:
            raise ValidationError('id', f"borrower '{borrower_id}' already exists")

        borrower = Borrower(id=borrower_id, name=name, email=email or None, phone=phone or None)
        self.borrowers[borrower_id] = borrower
        logger.info("Borrower %s added (%s)", borrower_id, name)
        return borrower

    def get_borrower(self, borrower_id: str) -> Borrower:
        borrower = self.borrowers.get(borrower_id)
        if borrower is None:
            raise BorrowerNotFoundError(borrower_id)
        return borrower

    def list_borrowers(self) -> List[Borrower]:
        return list(self.borrowers.values())

    def update_borrower(self, borrower_id: str, **changes) -> Borrower:
        """Edit a borrower's name, email or phone.

        A new name is copied to every loan of the borrower.
        """
        borrower = self.get_borrower(borrower_id)
        unknown = set(changes) - BORROWER_FIELDS
        if unknown:
            raise ValidationError(', '.join(sorted(unknown)), "not an editable borrower field")
        if 'name' in changes:
            changes['name'] = self._validate_name(changes['name'])

        updated = replace(borrower, **changes)
        self.borrowers[borrower_id] = updated

        if updated.name != borrower.name:
            for loan in self.loans_for_borrower(borrower_id):
                self.loans[loan.id] = replace(loan, borrower_name=updated.name)
        return updated

    def delete_borrower(self, borrower_id: str) -> None:
        """Delete a borrower that has no loans.

        Raises:
            BorrowerNotFoundError: If the borrower does not exist.
            BorrowerHasLoansError: If any loan references the borrower.
        """
        self.get_borrower(borrower_id)
        loan_count = len(self.loans_for_borrower(borrower_id))
        if loan_count:
            raise BorrowerHasLoansError(borrower_id, loan_count)
        del self.borrowers[borrower_id]
        logger.info("Borrower %s deleted", borrower_id)

    # ------------------------------------------------------------------
    # Loans
    # ------------------------------------------------------------------

    def _validate_date(self, field: str, value) -> datetime:
        parsed = parse_flexible_date(value)
        if not parsed:
            raise ValidationError(field, parsed.error)
        return parsed.value

    def _build_schedule(self, principal: float, interest_rate: float, issue_date: datetime,
                        frequency, installments) -> PaymentSchedule:
        frequency = PaymentFrequency.coerce(getattr(frequency, 'value', frequency) or DEFAULT_PAYMENT_FREQUENCY)
        count = to_amount(installments if installments is not None else DEFAULT_INSTALLMENTS, math.nan)
        if not count > 0 or count != int(count):
            raise ValidationError('installments', "must be a positive whole number")
        count = int(count)
        return PaymentSchedule(
            frequency=frequency,
            next_payment_date=format_iso(add_period(issue_date, frequency)),
            installments=count,
            installment_amount=installment_amount(principal, interest_rate, count, frequency),
        )

    def _coerce_schedule(self, value):
        if value is None or isinstance(value, PaymentSchedule):
            return value
        if isinstance(value, dict):
            return PaymentSchedule.from_dict(value)
        raise ValidationError('payment_schedule', "must be a PaymentSchedule, a dict or None")

    def _validate_terms(self, principal, interest_rate):
        principal = to_amount(principal, math.nan)
        if not principal > 0:
            raise ValidationError('principal', "must be a positive amount")
        interest_rate = to_amount(interest_rate, math.nan)
        if not interest_rate >= 0:
            raise ValidationError('interest_rate', "must be zero or positive")
        return principal, interest_rate

    def add_loan(self, borrower_id: str, principal: float, interest_rate: float,
                 issue_date, due_date, frequency=None, installments: int = None,
                 notes: str = None, loan_id: str = None) -> Loan:
        """Issue a new loan.

        A payment schedule is created when ``frequency`` or ``installments``
        is given; its first payment falls one period after the issue date.

        Args:
            borrower_id: Id of an existing borrower.
            principal: Amount lent.
            interest_rate: Percent per month.
            issue_date: Issue date (ISO or DD/MM/YYYY string, or datetime).
            due_date: Final due date.
            frequency: Payment frequency for the schedule.
            installments: Planned number of installments.
            notes: Free text.
            loan_id: Optional id; generated when omitted.

        Returns:
            The stored Loan, with its status already derived.
        """
        borrower = self.get_borrower(borrower_id)
        principal, interest_rate = self._validate_terms(principal, interest_rate)
        issued = self._validate_date('issue_date', issue_date)
        due = self._validate_date('due_date', due_date)

        loan_id = loan_id or _next_id('L', self.loans)
        if loan_id in self.loans:
            raise ValidationError('id', f"loan '{loan_id}' already exists")

        schedule = None
        if frequency is not None or installments is not None:
            schedule = self._build_schedule(principal, interest_rate, issued, frequency, installments)

        loan = Loan(
            id=loan_id,
            borrower_id=borrower_id,
            borrower_name=borrower.name,
            principal=principal,
            interest_rate=interest_rate,
            issue_date=format_iso(issued),
            due_date=format_iso(due),
            status=LoanStatus.ACTIVE,
            payment_schedule=schedule,
            notes=notes or None,
        )
        self.loans[loan_id] = loan
        logger.info("Loan %s issued to %s: principal %.2f at %.2f%%", loan_id, borrower_id,
                    principal, interest_rate)
        return self._refresh(loan_id)

    def get_loan(self, loan_id: str) -> Loan:
        loan = self.loans.get(loan_id)
        if loan is None:
            raise LoanNotFoundError(loan_id)
        return loan

    def list_loans(self) -> List[Loan]:
        return list(self.loans.values())

    def loans_for_borrower(self, borrower_id: str) -> List[Loan]:
        return [loan for loan in self.loans.values() if loan.borrower_id == borrower_id]

    def update_loan(self, loan_id: str, **changes) -> Loan:
        """Apply a partial update to a loan and recompute its status.

        Changing ``borrower_id`` refreshes ``borrower_name``. Changing the
        issue date, frequency or installment count rebuilds the schedule from
        the issue date; changing only principal or rate recomputes the
        installment amount. ``payment_schedule`` (a PaymentSchedule, its camelCase
        dict form or None) replaces the schedule as is.
        The status itself cannot be set.
        """
        loan = self.get_loan(loan_id)
        unknown = set(changes) - LOAN_FIELDS
        if unknown:
            raise ValidationError(', '.join(sorted(unknown)), "not an editable loan field")

        fields = {}
        if 'borrower_id' in changes:
            borrower = self.get_borrower(changes['borrower_id'])
            fields['borrower_id'] = borrower.id
            fields['borrower_name'] = borrower.name

        principal, interest_rate = self._validate_terms(
            changes.get('principal', loan.principal),
            changes.get('interest_rate', loan.interest_rate),
        )
        fields['principal'] = principal
        fields['interest_rate'] = interest_rate

        issued = self._validate_date('issue_date', changes.get('issue_date', loan.issue_date))
        fields['issue_date'] = format_iso(issued)
        if 'due_date' in changes:
            fields['due_date'] = format_iso(self._validate_date('due_date', changes['due_date']))
        if 'notes' in changes:
            fields['notes'] = changes['notes'] or None

        schedule = loan.payment_schedule
        if 'payment_schedule' in changes:
            schedule = self._coerce_schedule(changes['payment_schedule'])
        elif SCHEDULE_FIELDS & set(changes) and (schedule is not None or 'frequency' in changes
                                                 or 'installments' in changes):
            schedule = self._build_schedule(
                principal, interest_rate, issued,
                changes.get('frequency', schedule.frequency if schedule else None),
                changes.get('installments', schedule.installments if schedule else None),
            )
        elif schedule is not None:
            schedule = replace(schedule, installment_amount=installment_amount(
                principal, interest_rate, schedule.installments, schedule.frequency))
        fields['payment_schedule'] = schedule

        self.loans[loan_id] = replace(loan, **fields)
        logger.info("Loan %s updated: %s", loan_id, ', '.join(sorted(changes)))
        return self._refresh(loan_id)

    def delete_loan(self, loan_id: str) -> int:
        """Delete a loan and all of its payments.

        Returns:
            Number of payments removed with the loan.
        """
        self.get_loan(loan_id)
        payment_ids = [p.id for p in self.payments_for_loan(loan_id)]
        for payment_id in payment_ids:
            del self.payments[payment_id]
        del self.loans[loan_id]
        logger.info("Loan %s deleted with %d payment(s)", loan_id, len(payment_ids))
        return len(payment_ids)

    # ------------------------------------------------------------------
    # Payments
    # ------------------------------------------------------------------

    def _validate_payment_date(self, value) -> datetime:
        paid_on = self._validate_date('date', value)
        if normalize_to_day(paid_on) > normalize_to_day(self.today()):
            raise ValidationError('date', "payment date cannot be in the future")
        return paid_on

    def _validate_amount(self, amount) -> float:
        amount = to_amount(amount, math.nan)
        if not amount > 0:
            raise ValidationError('amount', "must be a positive amount")
        return amount

    def add_payment(self, loan_id: str, amount: float, date=None, notes: str = None,
                    advance_schedule: bool = False, payment_id: str = None) -> Payment:
        """Record a payment against a loan.

        The amount is split into principal and interest using the loan's
        original terms. With ``advance_schedule`` the schedule's next payment
        date moves one period forward from today. It is off by default, so
        back-dated or imported payments leave the schedule where it is;
        interactive payment entry passes ``advance_schedule=True``.

        Args:
            loan_id: Id of an existing loan.
            amount: Amount received (positive).
            date: Payment date, not in the future. Defaults to today.
            notes: Free text.
            advance_schedule: Roll the next payment date forward.
            payment_id: Optional id; generated when omitted.

        Returns:
            The stored Payment.
        """
        loan = self.get_loan(loan_id)
        amount = self._validate_amount(amount)
        paid_on = self._validate_payment_date(date if date is not None else self.today())

        payment_id = payment_id or _next_id('P', self.payments)
        if payment_id in self.payments:
            raise ValidationError('id', f"payment '{payment_id}' already exists")

        split = payment_distribution(loan, amount)
        payment = Payment(
            id=payment_id,
            loan_id=loan_id,
            date=format_iso(paid_on),
            amount=amount,
            principal=split.principal,
            interest=split.interest,
            notes=notes or None,
        )
        self.payments[payment_id] = payment
        logger.info("Payment %s of %.2f recorded for loan %s", payment_id, amount, loan_id)

        if advance_schedule and loan.payment_schedule is not None:
            schedule = replace(
                loan.payment_schedule,
                next_payment_date=next_payment_date(self.today(), loan.payment_schedule.frequency),
            )
            self.loans[loan_id] = replace(loan, payment_schedule=schedule)

        self._refresh(loan_id)
        return payment

    def get_payment(self, payment_id: str) -> Payment:
        payment = self.payments.get(payment_id)
        if payment is None:
            raise PaymentNotFoundError(payment_id)
        return payment

    def payments_for_loan(self, loan_id: str) -> List[Payment]:
        return [p for p in self.payments.values() if p.loan_id == loan_id]

    def list_payments(self) -> List[Payment]:
        return list(self.payments.values())

    def update_payment(self, payment_id: str, **changes) -> Payment:
        """Edit a payment's date, amount or notes and recompute the loan status.

        A new amount is split again with the loan's terms.
        """
        payment = self.get_payment(payment_id)
        unknown = set(changes) - PAYMENT_FIELDS
        if unknown:
            raise ValidationError(', '.join(sorted(unknown)), "not an editable payment field")

        fields = {}
        if 'date' in changes:
            fields['date'] = format_iso(self._validate_payment_date(changes['date']))
        if 'amount' in changes:
            amount = self._validate_amount(changes['amount'])
            split = payment_distribution(self.get_loan(payment.loan_id), amount)
            fields.update(amount=amount, principal=split.principal, interest=split.interest)
        if 'notes' in changes:
            fields['notes'] = changes['notes'] or None

        updated = replace(payment, **fields)
        self.payments[payment_id] = updated
        self._refresh(payment.loan_id)
        return updated

    def delete_payment(self, payment_id: str) -> None:
        payment = self.get_payment(payment_id)
        del self.payments[payment_id]
        logger.info("Payment %s deleted from loan %s", payment_id, payment.loan_id)
        if payment.loan_id in self.loans:
            self._refresh(payment.loan_id)

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def _refresh(self, loan_id: str) -> Loan:
        loan = self.loans[loan_id]
        new_status = derive_status(loan, self.payments_for_loan(loan_id), self.today())
        if new_status != loan.status:
            logger.info("Loan %s status %s -> %s", loan_id, LoanStatus.coerce(loan.status).value,
                        new_status.value)
            loan = replace(loan, status=new_status)
            self.loans[loan_id] = loan
        return loan

    def refresh_statuses(self) -> Dict[str, LoanStatus]:
        """Recompute every loan's status and store the ones that changed.

        Returns:
            Mapping of loan id to new status for the changed loans.
        """
        changes = status_changes(self.loans.values(), self.payments.values(), self.today())
        for loan_id, status in changes.items():
            self.loans[loan_id] = replace(self.loans[loan_id], status=status)
        if changes:
            logger.info("Refreshed status of %d loan(s)", len(changes))
        return changes

    # ------------------------------------------------------------------
    # Bulk
    # ------------------------------------------------------------------

    def replace_all(self, borrowers: Iterable[Borrower], loans: Iterable[Loan],
                    payments: Iterable[Payment]) -> None:
        """Swap the whole ledger content, e.g. after an import or restore.

        Records are stored as given; referential integrity is reported by the
        interchange layer, not enforced here.
        """
        self.borrowers = {b.id: b for b in borrowers}
        self.loans = {l.id: l for l in loans}
        self.payments = {p.id: p for p in payments}

    def clear(self) -> None:
        self.replace_all([], [], [])

    def summary(self) -> Dict[str, int]:
        """Return counts of all records."""
        return {
            "borrowers": len(self.borrowers),
            "loans": len(self.loans),
            "payments": len(self.payments),
        }

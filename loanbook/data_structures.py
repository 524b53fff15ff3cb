"""Record types for LoanBook.

Every record round-trips through the camelCase JSON layout used by backups
and the CSV interchange via ``to_dict`` / ``from_dict``.
"""
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from loanbook.config import (
    DEFAULT_CURRENCY,
    DEFAULT_INSTALLMENTS,
    DEFAULT_INTEREST_RATE,
    DEFAULT_PAYMENT_FREQUENCY,
)


class LoanStatus(str, Enum):
    ACTIVE = "active"
    PAID = "paid"
    OVERDUE = "overdue"
    DEFAULTED = "defaulted"

    @classmethod
    def coerce(cls, value) -> 'LoanStatus':
        """Map a stored value to a status, falling back to ACTIVE."""
        try:
            return cls(value)
        except ValueError:
            return cls.ACTIVE


class PaymentFrequency(str, Enum):
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"
    CUSTOM = "custom"

    @classmethod
    def coerce(cls, value) -> 'PaymentFrequency':
        try:
            return cls(value)
        except ValueError:
            return cls.CUSTOM


def to_amount(value, default: float = 0.0) -> float:
    """Convert a stored number to a finite float."""
    try:
        amount = float(value)
    except (TypeError, ValueError):
        return default
    return amount if math.isfinite(amount) else default


def _optional_str(value) -> Optional[str]:
    if value is None:
        return None
    text = str(value)
    return text if text else None


@dataclass
class Borrower:
    id: str
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {'id': self.id, 'name': self.name}
        if self.email:
            data['email'] = self.email
        if self.phone:
            data['phone'] = self.phone
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Borrower':
        return cls(
            id=str(data.get('id') or ''),
            name=str(data.get('name') or ''),
            email=_optional_str(data.get('email')),
            phone=_optional_str(data.get('phone')),
        )


@dataclass
class PaymentSchedule:
    frequency: PaymentFrequency
    next_payment_date: str
    installments: int
    installment_amount: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            'frequency': self.frequency.value,
            'nextPaymentDate': self.next_payment_date,
            'installments': self.installments,
            'installmentAmount': self.installment_amount,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PaymentSchedule':
        return cls(
            frequency=PaymentFrequency.coerce(data.get('frequency')),
            next_payment_date=str(data.get('nextPaymentDate') or ''),
            installments=int(to_amount(data.get('installments'), 1)),
            installment_amount=to_amount(data.get('installmentAmount')),
        )


@dataclass
class Loan:
    id: str
    borrower_id: str
    borrower_name: str
    principal: float
    interest_rate: float  # Percent per month
    issue_date: str
    due_date: str
    status: LoanStatus = LoanStatus.ACTIVE
    payment_schedule: Optional[PaymentSchedule] = None
    notes: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'id': self.id,
            'borrowerId': self.borrower_id,
            'borrowerName': self.borrower_name,
            'principal': self.principal,
            'interestRate': self.interest_rate,
            'issueDate': self.issue_date,
            'dueDate': self.due_date,
            'status': self.status.value,
        }
        if self.notes:
            data['notes'] = self.notes
        if self.payment_schedule:
            data['paymentSchedule'] = self.payment_schedule.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Loan':
        schedule = data.get('paymentSchedule')
        return cls(
            id=str(data.get('id') or ''),
            borrower_id=str(data.get('borrowerId') or ''),
            borrower_name=str(data.get('borrowerName') or ''),
            principal=to_amount(data.get('principal')),
            interest_rate=to_amount(data.get('interestRate')),
            issue_date=str(data.get('issueDate') or ''),
            due_date=str(data.get('dueDate') or ''),
            status=LoanStatus.coerce(data.get('status')),
            payment_schedule=PaymentSchedule.from_dict(schedule) if isinstance(schedule, dict) else None,
            notes=_optional_str(data.get('notes')),
        )


@dataclass
class Payment:
    id: str
    loan_id: str
    date: str
    amount: float
    principal: float = 0.0
    interest: float = 0.0
    notes: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'id': self.id,
            'loanId': self.loan_id,
            'date': self.date,
            'amount': self.amount,
            'principal': self.principal,
            'interest': self.interest,
        }
        if self.notes:
            data['notes'] = self.notes
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Payment':
        return cls(
            id=str(data.get('id') or ''),
            loan_id=str(data.get('loanId') or ''),
            date=str(data.get('date') or ''),
            amount=to_amount(data.get('amount')),
            principal=to_amount(data.get('principal')),
            interest=to_amount(data.get('interest')),
            notes=_optional_str(data.get('notes')),
        )


@dataclass
class PaymentSplit:
    """Principal and interest portions of a single payment."""
    principal: float
    interest: float


@dataclass
class LoanMetrics:
    total_principal: float
    total_interest: float
    total_paid: float
    remaining_balance: float
    next_payment_date: Optional[str] = None
    next_payment_amount: Optional[float] = None


@dataclass
class DashboardMetrics:
    total_loaned: float = 0.0
    total_interest_accrued: float = 0.0
    total_overdue: float = 0.0
    total_borrowers: int = 0
    active_loan_count: int = 0
    paid_loan_count: int = 0
    overdue_loan_count: int = 0
    defaulted_loan_count: int = 0
    total_received_this_month: float = 0.0


@dataclass
class AppSettings:
    default_interest_rate: float = DEFAULT_INTEREST_RATE
    default_payment_frequency: PaymentFrequency = PaymentFrequency(DEFAULT_PAYMENT_FREQUENCY)
    default_installments: int = DEFAULT_INSTALLMENTS
    currency: str = DEFAULT_CURRENCY

    def to_dict(self) -> Dict[str, Any]:
        return {
            'defaultInterestRate': self.default_interest_rate,
            'defaultPaymentFrequency': self.default_payment_frequency.value,
            'defaultInstallments': self.default_installments,
            'currency': self.currency,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AppSettings':
        defaults = cls()
        return cls(
            default_interest_rate=to_amount(data.get('defaultInterestRate'), defaults.default_interest_rate),
            default_payment_frequency=PaymentFrequency.coerce(
                data.get('defaultPaymentFrequency', defaults.default_payment_frequency.value)),
            default_installments=int(to_amount(data.get('defaultInstallments'), defaults.default_installments)),
            currency=str(data.get('currency') or defaults.currency),
        )


@dataclass
class IntegrityReport:
    """Violations collected while validating interchange data."""
    errors: List[str] = field(default_factory=list)
    invalid_loans: List[Dict[str, str]] = field(default_factory=list)
    invalid_payments: List[Dict[str, str]] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors

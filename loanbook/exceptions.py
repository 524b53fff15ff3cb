"""Custom exceptions for LoanBook."""


class LoanBookError(Exception):
    """Base exception for all LoanBook errors."""

    def __init__(self, message: str, details: dict = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self):
        if self.details:
            return f"{self.message} - {self.details}"
        return self.message


class ValidationError(LoanBookError):
    """Raised when input to a ledger operation is invalid."""

    def __init__(self, field: str, reason: str):
        super().__init__(f"Invalid {field}: {reason}", {'field': field})
        self.field = field


class BorrowerNotFoundError(LoanBookError):
    """Raised when a borrower cannot be found."""

    def __init__(self, borrower_id: str = None):
        details = {}
        message = "Borrower not found"
        if borrower_id:
            details['borrower_id'] = borrower_id
            message = f"Borrower '{borrower_id}' not found"
        super().__init__(message, details)


class LoanNotFoundError(LoanBookError):
    """Raised when a loan cannot be found."""

    def __init__(self, loan_id: str = None):
        details = {}
        message = "Loan not found"
        if loan_id:
            details['loan_id'] = loan_id
            message = f"Loan '{loan_id}' not found"
        super().__init__(message, details)


class PaymentNotFoundError(LoanBookError):
    """Raised when a payment cannot be found."""

    def __init__(self, payment_id: str = None):
        details = {}
        message = "Payment not found"
        if payment_id:
            details['payment_id'] = payment_id
            message = f"Payment '{payment_id}' not found"
        super().__init__(message, details)


class BorrowerHasLoansError(LoanBookError):
    """Raised when deleting a borrower that still has loans."""

    def __init__(self, borrower_id: str, loan_count: int):
        details = {
            'borrower_id': borrower_id,
            'loan_count': loan_count
        }
        message = f"Borrower '{borrower_id}' has {loan_count} loan(s) and cannot be deleted"
        super().__init__(message, details)


class ImportFormatError(LoanBookError):
    """Raised when interchange data cannot be read at all."""
    pass

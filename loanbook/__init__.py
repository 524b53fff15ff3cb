"""LoanBook: personal loan ledger with derived loan status and dashboard metrics."""

__version__ = "1.0.0"

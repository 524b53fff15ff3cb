"""Services package for LoanBook business logic.

This package contains the ledger service and the pure calculation modules
it relies on: balances, status derivation and dashboard aggregation.
"""

from .loan_service import LoanService
from . import balance_calculator, dashboard_service, status_engine

__all__ = ['LoanService', 'balance_calculator', 'dashboard_service', 'status_engine']

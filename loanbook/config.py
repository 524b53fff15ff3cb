"""Centralized configuration for LoanBook.

This module contains the default loan terms, business rule thresholds and
format strings used throughout the package.
"""
import os

# =============================================================================
# LOAN DEFAULTS
# =============================================================================

# Default interest rate, percent per month
DEFAULT_INTEREST_RATE = 5

# Default number of installments for a new schedule
DEFAULT_INSTALLMENTS = 12

# Default payment frequency for a new schedule
DEFAULT_PAYMENT_FREQUENCY = "monthly"

# Display currency symbol
DEFAULT_CURRENCY = "R$"

# =============================================================================
# BUSINESS RULES
# =============================================================================

# A loan overdue by more than this many days is defaulted
DEFAULT_THRESHOLD_DAYS = 90

# Look-ahead window used by the dashboard for upcoming payments
UPCOMING_WINDOW_DAYS = 30

# Number of rows shown by dashboard lists (recent, overdue, upcoming)
DASHBOARD_LIST_LIMIT = 5

# Minimum borrower name length accepted by the ledger
MIN_BORROWER_NAME_LENGTH = 2

# The interest rate is entered per month; these factors convert it to the
# rate per installment period when computing the installment amount.
FREQUENCY_RATE_FACTORS = {
    "weekly": 1 / 4.33,
    "biweekly": 1 / 2.17,
    "monthly": 1,
    "quarterly": 3,
    "yearly": 12,
}

# =============================================================================
# DISPLAY FORMATS
# =============================================================================

# Date format for storage (ISO 8601)
DATE_FORMAT_STORAGE = "%Y-%m-%d"

# Alternate date format accepted on input and used for display
DATE_FORMAT_DISPLAY = "%d/%m/%Y"

# Month key used when grouping payments
MONTH_KEY_FORMAT = "%Y-%m"

# =============================================================================
# INTERCHANGE
# =============================================================================

BACKUP_VERSION = "1.0"

CSV_SECTIONS = ("[BORROWERS]", "[LOANS]", "[PAYMENTS]")

# Keyword accepted by LoanEngine.import_data to wipe the ledger
RESET_KEYWORD = "RESET"

# =============================================================================
# LOGGING
# =============================================================================

LOG_LEVEL = os.getenv("LOANBOOK_LOG_LEVEL", "INFO")

LOG_FORMAT = os.getenv("LOANBOOK_LOG_FORMAT", "standard")

"""Backup and bulk interchange for LoanBook.

Two formats are supported:
- JSON backups: version, timestamp, description, the three record arrays and
  the application settings.
- Sectioned CSV: ``[BORROWERS]``, ``[LOANS]`` and ``[PAYMENTS]`` blocks, each
  with its own header row. A loan's payment schedule travels as a JSON cell.

Reading never enforces referential integrity; violations are collected in an
IntegrityReport so the caller decides what to do with them.
"""
import io
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

import pandas as pd

from loanbook.config import BACKUP_VERSION, CSV_SECTIONS
from loanbook.data_structures import AppSettings, Borrower, IntegrityReport, Loan, Payment
from loanbook.exceptions import ImportFormatError

logger = logging.getLogger(__name__)

BORROWER_COLUMNS = ['id', 'name', 'email', 'phone']
LOAN_COLUMNS = ['id', 'borrowerId', 'borrowerName', 'principal', 'interestRate', 'issueDate',
                'dueDate', 'status', 'notes', 'paymentSchedule']
PAYMENT_COLUMNS = ['id', 'loanId', 'date', 'amount', 'principal', 'interest', 'notes']


@dataclass
class Interchange:
    """Records read from a backup or CSV export."""
    borrowers: List[Borrower] = field(default_factory=list)
    loans: List[Loan] = field(default_factory=list)
    payments: List[Payment] = field(default_factory=list)
    settings: Optional[AppSettings] = None
    format: str = "csv"
    integrity: IntegrityReport = field(default_factory=IntegrityReport)


def _as_dict(record) -> Dict[str, Any]:
    return record.to_dict() if hasattr(record, 'to_dict') else dict(record)


# =============================================================================
# INTEGRITY
# =============================================================================

def check_integrity(borrowers: Iterable, loans: Iterable, payments: Iterable) -> IntegrityReport:
    """Check that loans reference known borrowers and payments known loans.

    Accepts records as dataclasses or camelCase dicts.
    """
    borrowers = [_as_dict(b) for b in borrowers]
    loans = [_as_dict(l) for l in loans]
    payments = [_as_dict(p) for p in payments]

    report = IntegrityReport()
    borrower_ids = {b.get('id') for b in borrowers}
    loan_ids = {l.get('id') for l in loans}

    for loan in loans:
        borrower_id = loan.get('borrowerId')
        if not borrower_id:
            report.errors.append(f"Loan {loan.get('id')} has no borrower")
        elif borrower_id not in borrower_ids:
            report.errors.append(f"Loan {loan.get('id')} references unknown borrower ({borrower_id})")
        else:
            continue
        report.invalid_loans.append({'id': loan.get('id'), 'borrowerId': borrower_id})

    for payment in payments:
        loan_id = payment.get('loanId')
        if not loan_id:
            report.errors.append(f"Payment {payment.get('id')} has no loan")
        elif loan_id not in loan_ids:
            report.errors.append(f"Payment {payment.get('id')} references unknown loan ({loan_id})")
        else:
            continue
        report.invalid_payments.append({'id': payment.get('id'), 'loanId': loan_id})

    return report


def validate_backup(data) -> IntegrityReport:
    """Validate a backup document before restoring it.

    Every problem is collected; this never raises.
    """
    report = IntegrityReport()
    if not isinstance(data, dict):
        report.errors.append("Backup is not a JSON object")
        return report

    if not data.get('version'):
        report.errors.append("Backup has no version")
    for key in ('borrowers', 'loans', 'payments'):
        if not isinstance(data.get(key), list):
            report.errors.append(f"Backup has no valid {key} list")
    if not isinstance(data.get('settings'), dict):
        report.errors.append("Backup has no valid settings")

    if all(isinstance(data.get(key), list) for key in ('borrowers', 'loans', 'payments')):
        records = [
            [r for r in data[key] if isinstance(r, dict)]
            for key in ('borrowers', 'loans', 'payments')
        ]
        refs = check_integrity(*records)
        report.errors.extend(refs.errors)
        report.invalid_loans.extend(refs.invalid_loans)
        report.invalid_payments.extend(refs.invalid_payments)

    return report


# =============================================================================
# JSON BACKUPS
# =============================================================================

def create_backup(borrowers, loans, payments, settings: AppSettings,
                  description: str = None, now: datetime = None) -> Dict[str, Any]:
    """Build a backup document of the whole ledger.

    Args:
        borrowers: Borrower records.
        loans: Loan records.
        payments: Payment records.
        settings: Current application settings.
        description: Free text; defaults to a "Manual backup" label.
        now: Backup time (default: current UTC time).

    Returns:
        JSON-serializable dict.
    """
    if now is None:
        now = datetime.now(timezone.utc)
    return {
        'version': BACKUP_VERSION,
        'timestamp': now.isoformat(),
        'description': description or f"Manual backup - {now:%d/%m/%Y %H:%M:%S}",
        'borrowers': [_as_dict(b) for b in borrowers],
        'loans': [_as_dict(l) for l in loans],
        'payments': [_as_dict(p) for p in payments],
        'settings': _as_dict(settings),
    }


def export_json(borrowers, loans, payments, settings: AppSettings = None,
                description: str = None, now: datetime = None) -> str:
    """Serialize the ledger as an indented JSON backup."""
    backup = create_backup(borrowers, loans, payments, settings or AppSettings(), description, now)
    return json.dumps(backup, indent=2, ensure_ascii=False)


def _decode_schedule(record: Dict[str, Any]) -> Dict[str, Any]:
    schedule = record.get('paymentSchedule')
    if isinstance(schedule, str):
        record = dict(record)
        try:
            record['paymentSchedule'] = json.loads(schedule) if schedule.strip() else None
        except ValueError:
            logger.warning("Loan %s: unreadable payment schedule dropped", record.get('id'))
            record['paymentSchedule'] = None
    return record


def records_from_backup(data: Dict[str, Any]) -> Interchange:
    """Turn a backup document into typed records.

    Stringified payment schedules are decoded. Call ``validate_backup`` first
    when the document's shape is not already known.
    """
    settings = data.get('settings')
    interchange = Interchange(
        borrowers=[Borrower.from_dict(b) for b in data.get('borrowers', []) if isinstance(b, dict)],
        loans=[Loan.from_dict(_decode_schedule(l)) for l in data.get('loans', []) if isinstance(l, dict)],
        payments=[Payment.from_dict(p) for p in data.get('payments', []) if isinstance(p, dict)],
        settings=AppSettings.from_dict(settings) if isinstance(settings, dict) else None,
        format="json",
    )
    interchange.integrity = check_integrity(interchange.borrowers, interchange.loans,
                                            interchange.payments)
    return interchange


# =============================================================================
# SECTIONED CSV
# =============================================================================

def _section_csv(df: pd.DataFrame) -> str:
    return df.to_csv(index=False, lineterminator='\n')


def export_csv(borrowers, loans, payments) -> str:
    """Serialize the ledger as a sectioned CSV document."""
    borrower_rows = [_as_dict(b) for b in borrowers]
    loan_rows = []
    for loan in loans:
        row = _as_dict(loan)
        schedule = row.get('paymentSchedule')
        row['paymentSchedule'] = json.dumps(schedule) if schedule else ''
        loan_rows.append(row)
    payment_rows = [_as_dict(p) for p in payments]

    frames = [
        pd.DataFrame(borrower_rows, columns=BORROWER_COLUMNS),
        pd.DataFrame(loan_rows, columns=LOAN_COLUMNS),
        pd.DataFrame(payment_rows, columns=PAYMENT_COLUMNS),
    ]
    blocks = [f"{header}\n{_section_csv(df)}" for header, df in zip(CSV_SECTIONS, frames)]
    return '\n'.join(blocks)


def _split_sections(text: str) -> Dict[str, str]:
    sections: Dict[str, List[str]] = {}
    current = None
    in_quotes = False
    for line in text.splitlines():
        marker = line.strip()
        if not in_quotes and marker in CSV_SECTIONS:
            current = marker
            sections[current] = []
        elif current is not None:
            sections[current].append(line)
        # a quoted field may span lines; "" escapes keep the count even
        if line.count('"') % 2:
            in_quotes = not in_quotes

    missing = [name for name in CSV_SECTIONS if name not in sections]
    if missing:
        raise ImportFormatError(
            f"CSV is missing section(s): {', '.join(missing)}",
            {'missing': missing},
        )
    return {name: '\n'.join(lines) for name, lines in sections.items()}


def _read_section(body: str) -> List[Dict[str, str]]:
    if not body.strip():
        return []
    df = pd.read_csv(io.StringIO(body), dtype=str, keep_default_na=False, skip_blank_lines=True)
    df.columns = [str(c).strip() for c in df.columns]
    return [{k: v.strip() if isinstance(v, str) else v for k, v in row.items()}
            for row in df.to_dict(orient='records')]


def _keep(rows: List[Dict[str, str]], kind: str, *required: str) -> List[Dict[str, str]]:
    kept = []
    for row in rows:
        if all(row.get(key) for key in required):
            kept.append(row)
        else:
            logger.warning("Dropping %s row without %s: %s", kind, '/'.join(required), row)
    return kept


def import_csv(text: str) -> Interchange:
    """Read a sectioned CSV document.

    Rows missing their id or parent reference are dropped, unknown statuses
    become ``active`` and unreadable schedules are dropped.

    Raises:
        ImportFormatError: If a section header is missing or a section
            cannot be parsed as CSV.
    """
    sections = _split_sections(text)
    try:
        borrower_rows = _read_section(sections['[BORROWERS]'])
        loan_rows = _read_section(sections['[LOANS]'])
        payment_rows = _read_section(sections['[PAYMENTS]'])
    except (pd.errors.ParserError, pd.errors.EmptyDataError) as e:
        raise ImportFormatError(f"Malformed CSV section: {e}") from e

    interchange = Interchange(
        borrowers=[Borrower.from_dict(r) for r in _keep(borrower_rows, 'borrower', 'id', 'name')],
        loans=[Loan.from_dict(_decode_schedule(r)) for r in _keep(loan_rows, 'loan', 'id', 'borrowerId')],
        payments=[Payment.from_dict(r) for r in _keep(payment_rows, 'payment', 'id', 'loanId')],
        format="csv",
    )
    interchange.integrity = check_integrity(interchange.borrowers, interchange.loans,
                                            interchange.payments)
    return interchange


def load_interchange(text: str) -> Interchange:
    """Read either a JSON backup or a sectioned CSV export.

    JSON is tried first; a document that is not JSON or lacks the three
    record arrays is read as CSV.
    """
    try:
        data = json.loads(text)
    except ValueError:
        data = None

    if isinstance(data, dict) and all(isinstance(data.get(k), list)
                                      for k in ('borrowers', 'loans', 'payments')):
        interchange = records_from_backup(data)
    else:
        logger.info("Input is not a JSON backup, reading as CSV")
        interchange = import_csv(text)

    logger.info("Read %s: %d borrowers, %d loans, %d payments", interchange.format.upper(),
                len(interchange.borrowers), len(interchange.loans), len(interchange.payments))
    for error in interchange.integrity.errors:
        logger.warning("Integrity: %s", error)
    return interchange

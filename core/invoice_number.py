"""
Invoice number periods, reset rules and formatting.

Format: PREFIX-FY-MM-NNNNN, e.g. INV-2024-25-03-00007

- FY is the Indian financial year (April to March) the issue date falls in,
  labelled "YYYY-YY": April 2024 through March 2025 is "2024-25".
- MM is the calendar month of issue.
- NNNNN is the zero-padded sequence.

Reset cadence compares the last issuance against the current date:
- MONTHLY: calendar month changed
- QUARTERLY: calendar quarter changed (Jan-Mar, Apr-Jun, Jul-Sep, Oct-Dec).
  These are calendar quarters, not financial-year quarters, unlike YEARLY.
- YEARLY: financial year changed

All dates here are business-timezone calendar dates; converting instants
is the caller's job.
"""

import re
from dataclasses import dataclass
from datetime import date

from core.models import InvoiceNumberParts, ResetFrequency

CREDIT_NOTE_PREFIX = "CN"

_INVOICE_NUMBER_RE = re.compile(
    r"^(?P<prefix>[^-]+)-(?P<financial_year>\d{4}-\d{2})-(?P<month>\d{2})-(?P<sequence>\d+)$"
)


@dataclass(frozen=True)
class Period:
    """The period segments of an invoice number."""

    financial_year: str
    month: str


def financial_year_start(d: date) -> int:
    """Calendar year in which d's financial year began."""
    return d.year if d.month >= 4 else d.year - 1


def financial_year(d: date) -> str:
    start = financial_year_start(d)
    return f"{start}-{(start + 1) % 100:02d}"


def current_period(d: date) -> Period:
    return Period(financial_year=financial_year(d), month=f"{d.month:02d}")


def calendar_quarter(d: date) -> int:
    return (d.month - 1) // 3


def should_reset(frequency: ResetFrequency, last_issued: date | None, current: date) -> bool:
    """Whether the sequence restarts for an issue on `current`."""
    if last_issued is None or frequency == ResetFrequency.NEVER:
        return False

    if frequency == ResetFrequency.MONTHLY:
        return (last_issued.year, last_issued.month) != (current.year, current.month)

    if frequency == ResetFrequency.QUARTERLY:
        # Calendar quarters, not financial-year quarters
        return (last_issued.year, calendar_quarter(last_issued)) != (
            current.year,
            calendar_quarter(current),
        )

    if frequency == ResetFrequency.YEARLY:
        return financial_year_start(last_issued) != financial_year_start(current)

    return False


def next_sequence(
    current_sequence: int,
    starting_number: int,
    frequency: ResetFrequency,
    last_issued: date | None,
    current: date,
) -> int:
    """
    The sequence value the next issuance takes.

    A counter that has never issued starts at starting_number; after a
    reset boundary it starts again at 1.
    """
    if last_issued is None:
        return max(current_sequence + 1, starting_number)
    if should_reset(frequency, last_issued, current):
        return 1
    return current_sequence + 1


def format_invoice_number(prefix: str, period: Period, sequence: int, padding: int = 5) -> str:
    return f"{prefix}-{period.financial_year}-{period.month}-{sequence:0{padding}d}"


def parse_invoice_number(invoice_number: str) -> InvoiceNumberParts | None:
    """
    Split an issued number into its four segments.

    The financial-year segment carries its own hyphen ("2024-25"), so the
    segments are matched by shape rather than by splitting. Returns None
    for anything that is not PREFIX-YYYY-YY-MM-NNNN.
    """
    match = _INVOICE_NUMBER_RE.match(invoice_number)
    if match is None:
        return None

    return InvoiceNumberParts(
        prefix=match["prefix"],
        financial_year=match["financial_year"],
        month=match["month"],
        sequence=int(match["sequence"]),
    )


def credit_note_number(invoice_number: str) -> str:
    """
    Derive a credit note number from the invoice it reverses.

    The prefix segment becomes CN; financial year, month and sequence are
    kept as issued (padding included). Numbers that do not parse get
    "CN-" prepended instead.
    """
    # Any 4+ segment string that is not PREFIX-YYYY-YY-MM-SEQ (e.g. A-B-C-D)
    # takes the fallback rather than having its first segment swapped
    match = _INVOICE_NUMBER_RE.match(invoice_number)
    if match is None:
        return f"{CREDIT_NOTE_PREFIX}-{invoice_number}"
    return (
        f"{CREDIT_NOTE_PREFIX}-{match['financial_year']}"
        f"-{match['month']}-{match['sequence']}"
    )

"""
Invoice number issuance.

The per-shop counter lives on the invoice_settings row. Issuance is one
atomic read-modify-write:

    SELECT ... FOR UPDATE   -- serializes concurrent issuers for the shop
    compute next sequence   -- reset rules in core.invoice_number
    UPDATE ... SET current_sequence, sequence_updated_at

Callers that store something alongside the number (the invoice itself)
pass their own transaction cursor to issue(), so the number is only
consumed if the whole unit commits.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, TypeVar
from uuid import UUID

from psycopg2 import errors as pg_errors

from clients.postgres_client import PostgresClient
from core.audit import AuditAction, AuditLogger
from core.config import GSTConfig
from core.exceptions import ConfigurationError, DuplicateInvoiceError, SequenceConflictError
from core.invoice_number import (
    credit_note_number,
    current_period,
    format_invoice_number,
    next_sequence,
)
from core.models import InvoiceSettings
from utils.merchant_context import get_current_shop
from utils.timezone import business_date, now_utc

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Transient failures: another issuer holds or just changed the counter
RETRYABLE_ERRORS = (
    pg_errors.UniqueViolation,
    pg_errors.LockNotAvailable,
    pg_errors.SerializationFailure,
    pg_errors.DeadlockDetected,
)

INVOICE_NUMBER_CONSTRAINT = "idx_invoices_shop_number"
ORDER_INVOICE_CONSTRAINT = "idx_invoices_shop_order"

SETTINGS_MISSING_MESSAGE = "Invoice settings not configured. Please complete setup first."


@dataclass(frozen=True)
class IssuedNumber:
    invoice_number: str
    sequence: int
    settings_id: UUID


class SequenceService:
    """Issues, previews and derives invoice numbers for the current shop."""

    def __init__(
        self,
        postgres: PostgresClient,
        audit: AuditLogger,
        config: GSTConfig | None = None,
    ):
        self.postgres = postgres
        self.audit = audit
        self.config = config or GSTConfig()

    def _load_settings(self, cur, lock: bool) -> InvoiceSettings:
        query = "SELECT * FROM invoice_settings WHERE shop = %s"
        if lock:
            query += " FOR UPDATE"
        cur.execute(query, self.postgres.convert_params((get_current_shop(),)))
        row = cur.fetchone()
        if row is None:
            raise ConfigurationError(SETTINGS_MISSING_MESSAGE)
        return InvoiceSettings.model_validate(dict(row))

    def _compute(self, settings: InvoiceSettings, at: datetime) -> IssuedNumber:
        tz = self.config.business_timezone
        today = business_date(at, tz)
        last_issued = (
            business_date(settings.sequence_updated_at, tz)
            if settings.sequence_updated_at is not None
            else None
        )

        sequence = next_sequence(
            settings.current_sequence,
            settings.starting_number,
            settings.reset_frequency,
            last_issued,
            today,
        )
        invoice_number = format_invoice_number(
            settings.prefix,
            current_period(today),
            sequence,
            self.config.sequence_padding,
        )
        return IssuedNumber(
            invoice_number=invoice_number, sequence=sequence, settings_id=settings.id
        )

    def issue(self, cur, at: datetime | None = None) -> IssuedNumber:
        """
        Consume the next number inside the caller's transaction.

        Args:
            cur: Cursor of an open transaction (PostgresClient.transaction())
            at: Issue instant (defaults to now)

        Returns:
            The issued number and its sequence value

        Raises:
            ConfigurationError: If the shop has no invoice settings
        """
        at = at or now_utc()
        settings = self._load_settings(cur, lock=True)
        issued = self._compute(settings, at)

        cur.execute(
            """
            UPDATE invoice_settings
            SET current_sequence = %s, sequence_updated_at = %s
            WHERE id = %s
            """,
            self.postgres.convert_params((issued.sequence, at, settings.id)),
        )

        logger.info(
            "Issued invoice number %s (sequence %d)", issued.invoice_number, issued.sequence
        )
        return issued

    def run_with_retry(self, work: Callable[[object], T]) -> T:
        """
        Run work(cur) in a fresh transaction, retrying on counter contention.

        Each attempt re-reads the counter under lock; nothing from a failed
        attempt is reused. Duplicate-order violations are not contention and
        propagate as DuplicateInvoiceError without retrying.

        Raises:
            SequenceConflictError: If every attempt hit contention
        """
        attempts = self.config.sequence_retry_attempts
        last_error: Exception | None = None

        for attempt in range(1, attempts + 1):
            try:
                with self.postgres.transaction() as cur:
                    return work(cur)
            except pg_errors.UniqueViolation as e:
                if _constraint_name(e) == ORDER_INVOICE_CONSTRAINT:
                    raise DuplicateInvoiceError(_order_from_error(e)) from e
                last_error = e
            except RETRYABLE_ERRORS as e:
                last_error = e

            logger.warning(
                "Sequence conflict on attempt %d/%d: %s", attempt, attempts, last_error
            )

        raise SequenceConflictError(
            f"Could not issue an invoice number after {attempts} attempts"
        ) from last_error

    def generate_invoice_number(self, at: datetime | None = None) -> str:
        """Issue a number in its own transaction."""
        issued = self.run_with_retry(lambda cur: self.issue(cur, at))
        self.audit.log_change(
            entity_type="invoice_settings",
            entity_id=issued.settings_id,
            action=AuditAction.ISSUE,
            changes={"invoice_number": issued.invoice_number, "sequence": issued.sequence},
        )
        return issued.invoice_number

    def get_settings(self) -> InvoiceSettings:
        """
        Read the shop's invoice settings without locking.

        Raises:
            ConfigurationError: If the shop has no invoice settings
        """
        row = self.postgres.execute_single(
            "SELECT * FROM invoice_settings WHERE shop = %s",
            (get_current_shop(),)
        )
        if row is None:
            raise ConfigurationError(SETTINGS_MISSING_MESSAGE)
        return InvoiceSettings.model_validate(row)

    def preview_next_number(self, at: datetime | None = None) -> str:
        """The number the next issuance would take. Does not consume it."""
        settings = self.get_settings()
        return self._compute(settings, at or now_utc()).invoice_number

    def credit_note_number(self, invoice_number: str) -> str:
        return credit_note_number(invoice_number)


def _constraint_name(error: Exception) -> str | None:
    diag = getattr(error, "diag", None)
    return getattr(diag, "constraint_name", None)


def _order_from_error(error: Exception) -> str:
    """Best-effort order id from a unique-violation detail line."""
    diag = getattr(error, "diag", None)
    detail = getattr(diag, "message_detail", None) or ""
    # Key (shop, order_id)=(acme.myshopify.com, 1001) already exists.
    if ")=(" in detail:
        values = detail.split(")=(", 1)[1].split(")", 1)[0]
        return values.split(", ")[-1]
    return "unknown"

"""
Invoice service: assembles, numbers and stores GST invoices.

An invoice is built from a storefront order plus the shop's settings:

    HSN resolution (per line) -> line GST -> shipping GST -> totals
    -> number issuance -> stored invoice -> InvoiceGenerated

The duplicate-order check, the number issuance and the invoice insert run
in one transaction; unique indexes on (shop, order_id) and
(shop, invoice_number) back it up at the storage layer.
"""

import logging
import math
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Iterable
from uuid import UUID, uuid4

from psycopg2 import errors as pg_errors
from psycopg2.extras import Json

from clients.postgres_client import PostgresClient
from core.audit import AuditLogger, AuditAction
from core.config import GSTConfig
from core.event_bus import EventBus
from core.events import CreditNoteIssued, InvoiceGenerated
from core.exceptions import ConfigurationError, DuplicateInvoiceError, GSTInvoiceError
from core.formatting import amount_in_words, format_currency, format_invoice_date
from core.gst_calculator import (
    calculate_invoice_totals,
    calculate_line_item_gst,
    calculate_shipping_gst,
    generate_tax_summary,
    validate_calculations,
)
from core.hsn_resolver import HSNResolver
from core.jurisdiction import determine_transaction_type, get_state_code
from core.models import (
    BatchItemResult,
    BatchResult,
    BatchSummary,
    BusinessSettings,
    BuyerDetails,
    Invoice,
    InvoiceData,
    InvoiceDocument,
    InvoiceLineItem,
    InvoicePage,
    InvoiceSettings,
    InvoiceStats,
    InvoiceStatus,
    Order,
    SellerDetails,
    Warehouse,
)
from core.money import ZERO
from core.services.hsn_mapping_service import HSNMappingService
from core.services.sequence_service import SETTINGS_MISSING_MESSAGE, SequenceService
from core.services.settings_service import SettingsService
from utils.merchant_context import get_current_shop
from utils.timezone import business_date, now_utc

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 25
MAX_PAGE_SIZE = 100

# Statuses still awaiting payment
PENDING_STATUSES = (InvoiceStatus.DRAFT.value, InvoiceStatus.SENT.value)


class InvoiceService:
    """Service for invoice generation and queries."""

    def __init__(
        self,
        postgres: PostgresClient,
        audit: AuditLogger,
        event_bus: EventBus,
        settings_service: SettingsService,
        hsn_service: HSNMappingService,
        sequence_service: SequenceService,
        config: GSTConfig | None = None,
    ):
        self.postgres = postgres
        self.audit = audit
        self.event_bus = event_bus
        self.settings_service = settings_service
        self.hsn_service = hsn_service
        self.sequence_service = sequence_service
        self.config = config or sequence_service.config

    # =========================================================================
    # ASSEMBLY
    # =========================================================================

    def build_invoice_data(
        self,
        order: Order,
        invoice_number: str,
        issued_at: datetime,
        business: BusinessSettings,
        invoice_settings: InvoiceSettings,
        warehouse: Warehouse | None,
        resolver: HSNResolver,
    ) -> InvoiceData:
        """
        Compute a complete invoice for an order. No I/O.

        The seller's state (warehouse if one is in effect, else the
        registered address) against the buyer's place of supply decides
        CGST/SGST versus IGST for every line and for shipping.

        Raises:
            UnknownStateError: If seller or buyer state is blank
        """
        seller = _seller_details(business, warehouse)
        buyer_state = order.buyer_state or ""
        transaction_type = determine_transaction_type(seller.state, buyer_state)
        include_tax = self.config.prices_include_tax

        line_items = []
        for line in order.line_items:
            resolution = resolver.resolve(line.product_id, line.collection_ids)
            line_items.append(calculate_line_item_gst(
                line,
                resolution.gst_rate,
                resolution.hsn_code,
                transaction_type,
                include_tax,
            ))

        shipping_charge = order.shipping_charge
        shipping = calculate_shipping_gst(
            shipping_charge,
            transaction_type,
            include_tax,
            gst_rate=self.config.shipping_gst_rate,
            hsn_code=self.config.shipping_hsn_code,
        )
        totals = calculate_invoice_totals(
            line_items, shipping, shipping_charge, order.discount_amount
        )

        invoice_date = business_date(issued_at, self.config.business_timezone)

        return InvoiceData(
            invoice_number=invoice_number,
            invoice_date=invoice_date,
            due_date=invoice_date + timedelta(days=invoice_settings.due_days),
            order=order,
            seller=seller,
            buyer=_buyer_details(order),
            line_items=line_items,
            shipping=shipping,
            totals=totals,
            tax_summary=generate_tax_summary(line_items),
            transaction_type=transaction_type,
            place_of_supply_code=get_state_code(buyer_state),
            warehouse_id=warehouse.id if warehouse else None,
        )

    def build_document(self, data: InvoiceData, settings: InvoiceSettings) -> InvoiceDocument:
        """Display payload for the renderer."""
        return InvoiceDocument(
            invoice=data,
            template_type=settings.template_type,
            formatted_invoice_date=format_invoice_date(data.invoice_date),
            formatted_due_date=format_invoice_date(data.due_date),
            formatted_grand_total=format_currency(data.totals.grand_total, data.order.currency),
            total_in_words=amount_in_words(data.totals.grand_total),
            show_bank_details=settings.show_bank_details,
            show_signature=settings.show_signature,
            show_logo=settings.show_logo,
            show_hsn=settings.show_hsn,
            show_customer_gst=settings.show_customer_gst,
            terms_and_conditions=settings.terms_and_conditions,
            notes=settings.notes,
            payment_instructions=settings.payment_instructions,
        )

    def _resolve_warehouse(self, warehouse_id: UUID | None) -> Warehouse | None:
        if warehouse_id is None:
            return self.settings_service.get_default_warehouse()
        warehouse = self.settings_service.get_warehouse(warehouse_id)
        if warehouse is None:
            raise ValueError(f"Warehouse {warehouse_id} not found")
        return warehouse

    # =========================================================================
    # GENERATION
    # =========================================================================

    def generate_invoice(self, order: Order, warehouse_id: UUID | None = None) -> Invoice:
        """
        Generate, number and store the invoice for an order.

        Args:
            order: Normalized storefront order
            warehouse_id: Dispatch warehouse (defaults to the shop default)

        Returns:
            Stored invoice with line items

        Raises:
            ConfigurationError: If business or invoice settings are missing
            DuplicateInvoiceError: If the order already has an invoice
            SequenceConflictError: If numbering stayed contended after retries
            UnknownStateError: If seller or buyer state is blank
        """
        business = self.settings_service.require_business_settings()
        invoice_settings = self.settings_service.get_invoice_settings()
        if invoice_settings is None:
            raise ConfigurationError(SETTINGS_MISSING_MESSAGE)

        warehouse = self._resolve_warehouse(warehouse_id)
        resolver = self.hsn_service.build_resolver(
            business.default_hsn_code or self.config.default_hsn_code,
            business.default_gst_rate
            if business.default_gst_rate is not None
            else self.config.default_gst_rate,
        )
        issued_at = now_utc()

        def work(cur):
            self._ensure_not_invoiced(cur, order)
            issued = self.sequence_service.issue(cur, issued_at)
            data = self.build_invoice_data(
                order, issued.invoice_number, issued_at,
                business, invoice_settings, warehouse, resolver,
            )
            invoice = self._insert_invoice(cur, data)
            return invoice, data, issued

        invoice, data, issued = self.sequence_service.run_with_retry(work)

        report = validate_calculations(data.line_items, data.totals)
        if not report.is_valid:
            logger.warning(
                "Invoice %s has calculation anomalies: %s",
                invoice.invoice_number,
                "; ".join(report.errors),
            )

        logger.info(
            "Generated invoice %s for order %s (total %s)",
            invoice.invoice_number, order.name, invoice.total_amount,
        )

        self.audit.log_change(
            entity_type="invoice_settings",
            entity_id=issued.settings_id,
            action=AuditAction.ISSUE,
            changes={"invoice_number": issued.invoice_number, "sequence": issued.sequence}
        )
        self.audit.log_change(
            entity_type="invoice",
            entity_id=invoice.id,
            action=AuditAction.CREATE,
            changes={
                "created": {
                    "invoice_number": invoice.invoice_number,
                    "order_id": order.id,
                    "total_amount": str(invoice.total_amount),
                    "warnings": report.errors,
                }
            }
        )

        self.event_bus.publish(InvoiceGenerated.create(
            shop=invoice.shop,
            invoice=invoice,
            document=self.build_document(data, invoice_settings),
        ))

        return invoice

    def _ensure_not_invoiced(self, cur, order: Order) -> None:
        cur.execute(
            """
            SELECT id FROM invoices
            WHERE shop = %s AND order_id = %s AND NOT is_credit_note
            """,
            (get_current_shop(), order.id)
        )
        if cur.fetchone() is not None:
            raise DuplicateInvoiceError(order.id, order.name)

    def _insert_invoice(self, cur, data: InvoiceData) -> Invoice:
        now = now_utc()
        totals = data.totals
        buyer = data.buyer

        cur.execute(
            """
            INSERT INTO invoices (
                id, shop, invoice_number, order_id, order_number,
                invoice_date, due_date,
                customer_name, customer_email, customer_phone, customer_gstin,
                billing_address, shipping_address, warehouse_id, transaction_type,
                subtotal, cgst_amount, sgst_amount, igst_amount,
                shipping_charge, shipping_tax, discount_amount, round_off, total_amount,
                status, is_credit_note, original_invoice_id,
                created_at, updated_at
            ) VALUES (
                %s, %s, %s, %s, %s,
                %s, %s,
                %s, %s, %s, %s,
                %s, %s, %s, %s,
                %s, %s, %s, %s,
                %s, %s, %s, %s, %s,
                %s, %s, %s,
                %s, %s
            )
            RETURNING *
            """,
            self.postgres.convert_params((
                uuid4(), get_current_shop(), data.invoice_number, data.order.id, data.order.name,
                data.invoice_date, data.due_date,
                buyer.name, buyer.email, buyer.phone, buyer.gstin,
                Json(buyer.billing_address.model_dump(mode="json")),
                Json(buyer.shipping_address.model_dump(mode="json")),
                data.warehouse_id, data.transaction_type.value,
                totals.subtotal, totals.total_cgst, totals.total_sgst, totals.total_igst,
                totals.shipping_charge, totals.shipping_tax, totals.discount_amount,
                totals.round_off, totals.grand_total,
                InvoiceStatus.SENT.value, False, None,
                now, now
            ))
        )
        row = dict(cur.fetchone())

        line_rows = []
        for item in data.line_items:
            cur.execute(
                """
                INSERT INTO invoice_line_items (
                    id, invoice_id, product_id, variant_id, title, sku,
                    quantity, unit_price, discount, hsn_code, gst_rate,
                    taxable_value, cgst_amount, sgst_amount, igst_amount, total_amount
                ) VALUES (
                    %s, %s, %s, %s, %s, %s,
                    %s, %s, %s, %s, %s,
                    %s, %s, %s, %s, %s
                )
                RETURNING *
                """,
                self.postgres.convert_params((
                    uuid4(), row["id"], item.product_id, item.variant_id, item.title, item.sku,
                    item.quantity, item.unit_price, item.discount, item.hsn_code, item.gst_rate,
                    item.taxable_value, item.cgst_amount, item.sgst_amount, item.igst_amount,
                    item.total_amount
                ))
            )
            line_rows.append(dict(cur.fetchone()))

        row["line_items"] = line_rows
        return Invoice.model_validate(row)

    def generate_batch(
        self,
        orders: Iterable[Order],
        warehouse_id: UUID | None = None
    ) -> BatchResult:
        """
        Generate invoices for several orders.

        Each order is its own unit: a failure is recorded and the batch
        moves on. Configuration errors are recorded per order as well,
        since they surface on the first order anyway.
        """
        results: list[BatchItemResult] = []
        errors: list[BatchItemResult] = []

        for order in orders:
            try:
                invoice = self.generate_invoice(order, warehouse_id)
            except (GSTInvoiceError, ValueError) as e:
                logger.warning("Batch invoice failed for order %s: %s", order.id, e)
                errors.append(BatchItemResult(order_id=order.id, success=False, error=str(e)))
                continue

            results.append(BatchItemResult(
                order_id=order.id,
                success=True,
                invoice_id=invoice.id,
                invoice_number=invoice.invoice_number,
            ))

        return BatchResult(
            results=results,
            errors=errors,
            summary=BatchSummary(
                total=len(results) + len(errors),
                successful=len(results),
                failed=len(errors),
            ),
        )

    # =========================================================================
    # CREDIT NOTES
    # =========================================================================

    def create_credit_note(self, invoice_id: UUID) -> Invoice:
        """
        Issue a credit note mirroring an invoice.

        The number is derived from the original (CN-FY-MM-SEQ). Amounts are
        copied as stored; the total is negated.

        Raises:
            ValueError: If the invoice is not found, is itself a credit
                note, or already has one
        """
        original = self.get_by_id(invoice_id)
        if original is None:
            raise ValueError(f"Invoice {invoice_id} not found")
        if original.is_credit_note:
            raise ValueError(f"Invoice {original.invoice_number} is a credit note")

        number = self.sequence_service.credit_note_number(original.invoice_number)
        now = now_utc()

        try:
            row = self.postgres.execute_returning(
                """
                INSERT INTO invoices (
                    id, shop, invoice_number, order_id, order_number,
                    invoice_date, due_date,
                    customer_name, customer_email, customer_phone, customer_gstin,
                    billing_address, shipping_address, warehouse_id, transaction_type,
                    subtotal, cgst_amount, sgst_amount, igst_amount,
                    shipping_charge, shipping_tax, discount_amount, round_off, total_amount,
                    status, is_credit_note, original_invoice_id,
                    created_at, updated_at
                ) VALUES (
                    %s, %s, %s, %s, %s,
                    %s, %s,
                    %s, %s, %s, %s,
                    %s, %s, %s, %s,
                    %s, %s, %s, %s,
                    %s, %s, %s, %s, %s,
                    %s, %s, %s,
                    %s, %s
                )
                RETURNING *
                """,
                (
                    uuid4(), original.shop, number, original.order_id, original.order_number,
                    business_date(now, self.config.business_timezone), original.due_date,
                    original.customer_name, original.customer_email,
                    original.customer_phone, original.customer_gstin,
                    Json(original.billing_address), Json(original.shipping_address),
                    original.warehouse_id, original.transaction_type.value,
                    original.subtotal, original.cgst_amount, original.sgst_amount,
                    original.igst_amount, original.shipping_charge, original.shipping_tax,
                    original.discount_amount, original.round_off, -original.total_amount,
                    InvoiceStatus.SENT.value, True, original.id,
                    now, now
                )
            )[0]
        except pg_errors.UniqueViolation as e:
            raise ValueError(
                f"Credit note already exists for invoice {original.invoice_number}"
            ) from e

        credit_note = Invoice.model_validate(row)

        logger.info(
            "Issued credit note %s against %s", credit_note.invoice_number, original.invoice_number
        )
        self.audit.log_change(
            entity_type="credit_note",
            entity_id=credit_note.id,
            action=AuditAction.CREATE,
            changes={
                "created": {
                    "invoice_number": credit_note.invoice_number,
                    "original_invoice_id": str(original.id),
                    "total_amount": str(credit_note.total_amount),
                }
            }
        )
        self.event_bus.publish(CreditNoteIssued.create(shop=credit_note.shop, credit_note=credit_note))

        return credit_note

    # =========================================================================
    # QUERIES
    # =========================================================================

    def get_by_id(self, invoice_id: UUID) -> Invoice | None:
        """
        Get invoice by ID, with line items.

        Returns:
            Invoice if found, None otherwise. RLS filters to the current shop.
        """
        row = self.postgres.execute_single(
            "SELECT * FROM invoices WHERE id = %s",
            (invoice_id,)
        )
        if row is None:
            return None

        row["line_items"] = self.postgres.execute(
            "SELECT * FROM invoice_line_items WHERE invoice_id = %s ORDER BY id",
            (invoice_id,)
        )
        return Invoice.model_validate(row)

    def get_for_order(self, order_id: str) -> Invoice | None:
        """The (non credit-note) invoice for an order, if any."""
        row = self.postgres.execute_single(
            """
            SELECT * FROM invoices
            WHERE shop = %s AND order_id = %s AND NOT is_credit_note
            """,
            (get_current_shop(), order_id)
        )
        if row is None:
            return None
        return Invoice.model_validate(row)

    def list_invoices(
        self,
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE,
        status: InvoiceStatus | None = None,
        date_from: date | None = None,
        date_to: date | None = None,
        search: str | None = None
    ) -> InvoicePage:
        """
        List invoices newest first.

        Args:
            page: 1-based page number
            limit: Page size (capped)
            status: Only this status
            date_from: Invoice date lower bound (inclusive)
            date_to: Invoice date upper bound (inclusive)
            search: Substring of invoice number, order number, customer
                name or email (case-insensitive)
        """
        page = max(page, 1)
        limit = min(max(limit, 1), MAX_PAGE_SIZE)

        conditions = ["shop = %s"]
        params: list = [get_current_shop()]

        if status is not None:
            conditions.append("status = %s")
            params.append(InvoiceStatus(status).value)
        if date_from is not None:
            conditions.append("invoice_date >= %s")
            params.append(date_from)
        if date_to is not None:
            conditions.append("invoice_date <= %s")
            params.append(date_to)
        if search:
            pattern = f"%{search}%"
            conditions.append(
                "(invoice_number ILIKE %s OR order_number ILIKE %s"
                " OR customer_name ILIKE %s OR customer_email ILIKE %s)"
            )
            params.extend([pattern] * 4)

        where = " AND ".join(conditions)

        total = self.postgres.execute_scalar(
            f"SELECT COUNT(*) FROM invoices WHERE {where}",
            tuple(params)
        ) or 0

        rows = self.postgres.execute(
            f"""
            SELECT * FROM invoices
            WHERE {where}
            ORDER BY created_at DESC
            LIMIT %s OFFSET %s
            """,
            tuple(params + [limit, (page - 1) * limit])
        )

        return InvoicePage(
            invoices=[Invoice.model_validate(row) for row in rows],
            total=total,
            page=page,
            total_pages=math.ceil(total / limit),
        )

    def get_stats(self) -> InvoiceStats:
        """
        Dashboard figures. Credit notes are excluded from every count and sum.

        "This month" is the current calendar month in the business timezone.
        """
        today = business_date(now_utc(), self.config.business_timezone)
        month_start = today.replace(day=1)

        row = self.postgres.execute_single(
            """
            SELECT
                COUNT(*) AS total_invoices,
                COUNT(*) FILTER (WHERE invoice_date >= %s) AS this_month_invoices,
                COUNT(*) FILTER (WHERE status IN %s) AS pending_invoices,
                COALESCE(SUM(total_amount), 0) AS total_revenue,
                COALESCE(SUM(cgst_amount + sgst_amount + igst_amount), 0) AS total_gst_collected
            FROM invoices
            WHERE shop = %s AND NOT is_credit_note
            """,
            (month_start, PENDING_STATUSES, get_current_shop())
        ) or {}

        settings = self.sequence_service.get_settings()

        return InvoiceStats(
            total_invoices=row.get("total_invoices", 0),
            this_month_invoices=row.get("this_month_invoices", 0),
            pending_invoices=row.get("pending_invoices", 0),
            total_revenue=Decimal(row.get("total_revenue", ZERO)),
            total_gst_collected=Decimal(row.get("total_gst_collected", ZERO)),
            current_sequence=settings.current_sequence,
            next_invoice_number=self.sequence_service.preview_next_number(),
        )


def _seller_details(business: BusinessSettings, warehouse: Warehouse | None) -> SellerDetails:
    """Registration from business settings; address from the warehouse when dispatching from one."""
    origin = warehouse or business
    return SellerDetails(
        legal_name=business.legal_name,
        trading_name=business.trading_name,
        gstin=business.gstin,
        state_code=get_state_code(warehouse.state) if warehouse else business.state_code,
        address_line_1=origin.address_line_1,
        address_line_2=origin.address_line_2,
        city=origin.city,
        state=origin.state,
        pin_code=origin.pin_code,
        country=business.country,
        phone=(warehouse.phone if warehouse and warehouse.phone else business.phone),
        email=(warehouse.email if warehouse and warehouse.email else business.email),
        website=business.website,
        bank_details=business.bank_details,
        logo_url=business.logo_url,
        signature_url=business.signature_url,
        signatory_name=business.signatory_name,
        signatory_designation=business.signatory_designation,
    )


def _buyer_details(order: Order) -> BuyerDetails:
    customer = order.customer
    name = f"{customer.first_name or ''} {customer.last_name or ''}".strip()
    return BuyerDetails(
        name=name or order.billing_address.name or "",
        email=customer.email or order.email,
        phone=customer.phone,
        billing_address=order.billing_address,
        shipping_address=order.shipping_address,
        gstin=order.customer_gstin,
    )

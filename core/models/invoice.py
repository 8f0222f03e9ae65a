"""Invoice domain models.

All amounts are Decimal rupees rounded to 2 places, except grand_total
which is whole rupees.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field

from core.models.merchant import BankDetails
from core.models.order import Order, OrderAddress
from core.models.sequence import TemplateType
from core.models.tax import (
    GSTCalculation, InvoiceTotals, LineItemTaxResult, TaxSummaryRow, TransactionType,
)


class InvoiceStatus(str, Enum):
    """Invoice lifecycle status."""

    DRAFT = "DRAFT"
    SENT = "SENT"
    PAID = "PAID"
    CANCELLED = "CANCELLED"


class SellerDetails(BaseModel):
    """Seller block: registration from business settings, address from the dispatch point."""

    legal_name: str
    trading_name: str | None = None
    gstin: str
    state_code: str
    address_line_1: str
    address_line_2: str | None = None
    city: str
    state: str
    pin_code: str
    country: str
    phone: str | None = None
    email: str | None = None
    website: str | None = None
    bank_details: BankDetails | None = None
    logo_url: str | None = None
    signature_url: str | None = None
    signatory_name: str | None = None
    signatory_designation: str | None = None


class BuyerDetails(BaseModel):
    name: str
    email: str | None = None
    phone: str | None = None
    billing_address: OrderAddress
    shipping_address: OrderAddress
    gstin: str | None = None


class InvoiceData(BaseModel):
    """A fully computed invoice, before persistence."""

    invoice_number: str
    invoice_date: date
    due_date: date
    order: Order
    seller: SellerDetails
    buyer: BuyerDetails
    line_items: list[LineItemTaxResult]
    shipping: GSTCalculation
    totals: InvoiceTotals
    tax_summary: list[TaxSummaryRow]
    transaction_type: TransactionType
    place_of_supply_code: str
    warehouse_id: UUID | None = None


class InvoiceLineItem(BaseModel):
    """Invoice line as stored."""

    id: UUID
    invoice_id: UUID
    product_id: str
    variant_id: str | None
    title: str
    sku: str | None
    quantity: int
    unit_price: Decimal
    discount: Decimal
    hsn_code: str
    gst_rate: Decimal
    taxable_value: Decimal
    cgst_amount: Decimal
    sgst_amount: Decimal
    igst_amount: Decimal
    total_amount: Decimal

    model_config = {"from_attributes": True}


class Invoice(BaseModel):
    """Full invoice (or credit note) entity as stored."""

    id: UUID
    shop: str
    invoice_number: str
    order_id: str
    order_number: str
    invoice_date: date
    due_date: date
    customer_name: str
    customer_email: str | None
    customer_phone: str | None
    customer_gstin: str | None
    billing_address: dict
    shipping_address: dict
    warehouse_id: UUID | None
    transaction_type: TransactionType
    subtotal: Decimal
    cgst_amount: Decimal
    sgst_amount: Decimal
    igst_amount: Decimal
    shipping_charge: Decimal
    shipping_tax: Decimal
    discount_amount: Decimal
    round_off: Decimal
    total_amount: Decimal
    status: InvoiceStatus
    is_credit_note: bool = False
    original_invoice_id: UUID | None = None
    created_at: datetime
    updated_at: datetime
    line_items: list[InvoiceLineItem] = Field(default_factory=list)

    model_config = {"from_attributes": True}

    @property
    def total_gst(self) -> Decimal:
        return self.cgst_amount + self.sgst_amount + self.igst_amount


class InvoiceDocument(BaseModel):
    """Display-ready payload for the external renderer."""

    invoice: InvoiceData
    template_type: TemplateType
    formatted_invoice_date: str
    formatted_due_date: str
    formatted_grand_total: str
    total_in_words: str
    show_bank_details: bool = True
    show_signature: bool = True
    show_logo: bool = True
    show_hsn: bool = True
    show_customer_gst: bool = True
    terms_and_conditions: str | None = None
    notes: str | None = None
    payment_instructions: str | None = None


class InvoicePage(BaseModel):
    invoices: list[Invoice]
    total: int
    page: int
    total_pages: int


class InvoiceStats(BaseModel):
    total_invoices: int
    this_month_invoices: int
    pending_invoices: int
    total_revenue: Decimal
    total_gst_collected: Decimal
    current_sequence: int
    next_invoice_number: str


class BatchItemResult(BaseModel):
    order_id: str
    success: bool
    invoice_id: UUID | None = None
    invoice_number: str | None = None
    error: str | None = None


class BatchSummary(BaseModel):
    total: int
    successful: int
    failed: int


class BatchResult(BaseModel):
    results: list[BatchItemResult]
    errors: list[BatchItemResult]
    summary: BatchSummary

    @property
    def success(self) -> bool:
        return self.summary.successful > 0

"""Tax computation records.

Every monetary field is a Decimal already rounded to 2 places.
Rates are percentages (18 = 18%).
"""

from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, Field


class TransactionType(str, Enum):
    """Which GST heads apply to a supply."""

    INTRA_STATE = "INTRA_STATE"  # CGST + SGST
    INTER_STATE = "INTER_STATE"  # IGST


class GSTCalculation(BaseModel):
    """Tax split for one taxable amount (a line or the shipping charge)."""

    taxable_value: Decimal
    cgst_amount: Decimal
    sgst_amount: Decimal
    igst_amount: Decimal
    total_tax: Decimal
    gst_rate: Decimal
    hsn_code: str


class LineItemTaxResult(GSTCalculation):
    """Tax split for one order line, with the line's identity and pricing."""

    product_id: str
    variant_id: str | None = None
    title: str
    sku: str | None = None
    quantity: int
    unit_price: Decimal
    discount: Decimal
    total_amount: Decimal


class InvoiceTotals(BaseModel):
    """
    Invoice-level aggregates.

    subtotal + total_tax + shipping_charge - discount_amount + round_off
    equals grand_total exactly; grand_total is whole rupees.
    """

    subtotal: Decimal
    total_cgst: Decimal
    total_sgst: Decimal
    total_igst: Decimal
    total_tax: Decimal
    shipping_charge: Decimal
    shipping_tax: Decimal
    discount_amount: Decimal
    round_off: Decimal
    grand_total: Decimal


class TaxSummaryRow(BaseModel):
    """Rate-wise tax summary row."""

    gst_rate: Decimal
    taxable_value: Decimal
    cgst_amount: Decimal
    sgst_amount: Decimal
    igst_amount: Decimal
    total_tax: Decimal


class ValidationReport(BaseModel):
    """Advisory anomalies found in a computed invoice. Never blocks on its own."""

    is_valid: bool
    errors: list[str] = Field(default_factory=list)

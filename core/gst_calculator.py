"""
GST computation for order lines, shipping and invoice totals.

Pure functions over Decimal. Each monetary output is rounded to paise
independently; the residue is absorbed by the invoice-level round_off.

Tax split:
- INTRA_STATE: CGST and SGST at half the rate each
- INTER_STATE: IGST at the full rate

Tax-inclusive prices are reverse-calculated:
    taxable_value = price / (1 + rate / 100)
"""

from collections import defaultdict
from decimal import Decimal
from typing import Iterable, Sequence

from core.models import (
    GSTCalculation,
    InvoiceTotals,
    LineItemTaxResult,
    OrderLineItem,
    TaxSummaryRow,
    TransactionType,
    ValidationReport,
)
from core.money import HUNDRED, ZERO, round_money, round_rupee, to_decimal

VALID_GST_RATES = frozenset(Decimal(rate) for rate in (0, 5, 12, 18, 28))

SHIPPING_GST_RATE = Decimal("18")
SHIPPING_HSN_CODE = "996511"  # freight transport services

# Largest round-off a rupee-rounded total can legitimately need
MAX_ROUND_OFF = Decimal("1")


def _split_tax(
    amount: Decimal,
    gst_rate: Decimal,
    transaction_type: TransactionType,
    price_includes_tax: bool,
) -> tuple[Decimal, Decimal, Decimal, Decimal]:
    """Unrounded (taxable_value, cgst, sgst, igst) for one amount."""
    if price_includes_tax:
        taxable_value = amount / (1 + gst_rate / HUNDRED)
    else:
        taxable_value = amount

    if transaction_type == TransactionType.INTRA_STATE:
        half_rate = gst_rate / 2
        cgst = taxable_value * half_rate / HUNDRED
        sgst = taxable_value * half_rate / HUNDRED
        igst = ZERO
    else:
        cgst = ZERO
        sgst = ZERO
        igst = taxable_value * gst_rate / HUNDRED

    return taxable_value, cgst, sgst, igst


def calculate_line_item_gst(
    line_item: OrderLineItem,
    gst_rate: Decimal,
    hsn_code: str,
    transaction_type: TransactionType,
    price_includes_tax: bool = True,
) -> LineItemTaxResult:
    """
    Compute taxable value and tax split for one order line.

    The line discount is taken off before tax is extracted. Negative results
    are returned as computed; validate_calculations() reports them.
    """
    gst_rate = to_decimal(gst_rate)
    quantity = line_item.quantity
    unit_price = to_decimal(line_item.price)
    discount = to_decimal(line_item.total_discount)

    line_price = unit_price * quantity - discount

    taxable_value, cgst, sgst, igst = _split_tax(
        line_price, gst_rate, transaction_type, price_includes_tax
    )
    total_tax = cgst + sgst + igst
    total_amount = taxable_value + total_tax

    return LineItemTaxResult(
        product_id=line_item.product_id,
        variant_id=line_item.variant_id,
        title=line_item.title,
        sku=line_item.sku,
        quantity=quantity,
        unit_price=unit_price,
        discount=discount,
        hsn_code=hsn_code,
        gst_rate=gst_rate,
        taxable_value=round_money(taxable_value),
        cgst_amount=round_money(cgst),
        sgst_amount=round_money(sgst),
        igst_amount=round_money(igst),
        total_tax=round_money(total_tax),
        total_amount=round_money(total_amount),
    )


def calculate_shipping_gst(
    shipping_charge: Decimal,
    transaction_type: TransactionType,
    price_includes_tax: bool = True,
    gst_rate: Decimal = SHIPPING_GST_RATE,
    hsn_code: str = SHIPPING_HSN_CODE,
) -> GSTCalculation:
    """
    Compute tax on the shipping charge at the freight rate.

    No charge means no shipping tax line: the result is all zeros with
    gst_rate 0, not a zero-value line at 18%.
    """
    shipping_charge = to_decimal(shipping_charge)

    if shipping_charge <= 0:
        return GSTCalculation(
            taxable_value=ZERO,
            cgst_amount=ZERO,
            sgst_amount=ZERO,
            igst_amount=ZERO,
            total_tax=ZERO,
            gst_rate=ZERO,
            hsn_code=hsn_code,
        )

    gst_rate = to_decimal(gst_rate)
    taxable_value, cgst, sgst, igst = _split_tax(
        shipping_charge, gst_rate, transaction_type, price_includes_tax
    )

    return GSTCalculation(
        taxable_value=round_money(taxable_value),
        cgst_amount=round_money(cgst),
        sgst_amount=round_money(sgst),
        igst_amount=round_money(igst),
        total_tax=round_money(cgst + sgst + igst),
        gst_rate=gst_rate,
        hsn_code=hsn_code,
    )


def calculate_invoice_totals(
    line_items: Sequence[LineItemTaxResult],
    shipping: GSTCalculation,
    shipping_charge: Decimal,
    discount_amount: Decimal = ZERO,
) -> InvoiceTotals:
    """
    Aggregate line and shipping results into invoice totals.

    Sums are taken over the already-rounded line values, so
    subtotal + total_tax + shipping_charge - discount_amount + round_off
    reproduces grand_total exactly.
    """
    shipping_charge = round_money(to_decimal(shipping_charge))
    discount_amount = round_money(to_decimal(discount_amount))

    subtotal = sum((item.taxable_value for item in line_items), ZERO)
    total_cgst = sum((item.cgst_amount for item in line_items), ZERO) + shipping.cgst_amount
    total_sgst = sum((item.sgst_amount for item in line_items), ZERO) + shipping.sgst_amount
    total_igst = sum((item.igst_amount for item in line_items), ZERO) + shipping.igst_amount
    total_tax = total_cgst + total_sgst + total_igst

    total_before_rounding = subtotal + total_tax + shipping_charge - discount_amount
    grand_total = round_rupee(total_before_rounding)
    round_off = grand_total - total_before_rounding

    return InvoiceTotals(
        subtotal=round_money(subtotal),
        total_cgst=round_money(total_cgst),
        total_sgst=round_money(total_sgst),
        total_igst=round_money(total_igst),
        total_tax=round_money(total_tax),
        shipping_charge=shipping_charge,
        shipping_tax=shipping.total_tax,
        discount_amount=discount_amount,
        round_off=round_money(round_off),
        grand_total=grand_total,
    )


def generate_tax_summary(line_items: Iterable[LineItemTaxResult]) -> list[TaxSummaryRow]:
    """Group line results by exact GST rate, ascending."""
    grouped: dict[Decimal, dict[str, Decimal]] = defaultdict(
        lambda: {
            "taxable_value": ZERO,
            "cgst_amount": ZERO,
            "sgst_amount": ZERO,
            "igst_amount": ZERO,
            "total_tax": ZERO,
        }
    )

    for item in line_items:
        sums = grouped[item.gst_rate]
        sums["taxable_value"] += item.taxable_value
        sums["cgst_amount"] += item.cgst_amount
        sums["sgst_amount"] += item.sgst_amount
        sums["igst_amount"] += item.igst_amount
        sums["total_tax"] += item.total_tax

    return [
        TaxSummaryRow(
            gst_rate=rate,
            **{field: round_money(value) for field, value in sums.items()},
        )
        for rate, sums in sorted(grouped.items(), key=lambda pair: pair[0])
    ]


def validate_calculations(
    line_items: Sequence[LineItemTaxResult],
    totals: InvoiceTotals,
) -> ValidationReport:
    """
    Cross-check a computed invoice.

    Advisory only: returns every anomaly found, in a stable order, and
    leaves the decision to block finalization to the caller.
    """
    errors: list[str] = []

    has_cgst_sgst = totals.total_cgst > 0 or totals.total_sgst > 0
    has_igst = totals.total_igst > 0
    if has_cgst_sgst and has_igst:
        errors.append("Invoice cannot have both CGST/SGST and IGST")

    if abs(totals.round_off) > MAX_ROUND_OFF:
        errors.append("Round off amount exceeds acceptable range (±1 rupee)")

    for index, item in enumerate(line_items, start=1):
        if item.taxable_value < 0:
            errors.append(f"Line item {index} has negative taxable value")
        if item.total_tax < 0:
            errors.append(f"Line item {index} has negative tax amount")

    for index, item in enumerate(line_items, start=1):
        if item.gst_rate not in VALID_GST_RATES:
            errors.append(f"Line item {index} has invalid GST rate: {item.gst_rate}%")

    return ValidationReport(is_valid=not errors, errors=errors)

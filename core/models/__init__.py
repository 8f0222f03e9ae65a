"""Core domain models."""

from core.models.tax import (
    TransactionType, GSTCalculation, LineItemTaxResult,
    InvoiceTotals, TaxSummaryRow, ValidationReport,
)
from core.models.hsn import HSNMapping, HSNMappingCreate, HSNResolution
from core.models.merchant import (
    AccountType, BankDetails, BusinessSettings, BusinessSettingsUpdate,
    Warehouse, WarehouseCreate,
)
from core.models.sequence import (
    ResetFrequency, TemplateType, InvoiceSettings, InvoiceSettingsUpdate, InvoiceNumberParts,
)
from core.models.order import (
    Order, OrderAddress, OrderCustomer, OrderLineItem, ShippingLine, DiscountCode,
)
from core.models.invoice import (
    InvoiceStatus, SellerDetails, BuyerDetails, InvoiceData,
    Invoice, InvoiceLineItem, InvoiceDocument, InvoicePage, InvoiceStats,
    BatchItemResult, BatchSummary, BatchResult,
)

__all__ = [
    # Tax
    "TransactionType", "GSTCalculation", "LineItemTaxResult",
    "InvoiceTotals", "TaxSummaryRow", "ValidationReport",
    # HSN
    "HSNMapping", "HSNMappingCreate", "HSNResolution",
    # Merchant
    "AccountType", "BankDetails", "BusinessSettings", "BusinessSettingsUpdate",
    "Warehouse", "WarehouseCreate",
    # Numbering
    "ResetFrequency", "TemplateType", "InvoiceSettings", "InvoiceSettingsUpdate",
    "InvoiceNumberParts",
    # Order
    "Order", "OrderAddress", "OrderCustomer", "OrderLineItem", "ShippingLine", "DiscountCode",
    # Invoice
    "InvoiceStatus", "SellerDetails", "BuyerDetails", "InvoiceData",
    "Invoice", "InvoiceLineItem", "InvoiceDocument", "InvoicePage", "InvoiceStats",
    "BatchItemResult", "BatchSummary", "BatchResult",
]

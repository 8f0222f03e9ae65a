"""Normalized order records handed in by the storefront integration.

The engine never fetches orders; callers map the platform payload onto
these models. Prices arrive as decimal strings and are parsed exactly.
"""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field, model_validator


class OrderAddress(BaseModel):
    name: str | None = None
    address1: str | None = None
    address2: str | None = None
    city: str | None = None
    province: str | None = None  # state name, free text
    country: str | None = None
    zip: str | None = None
    phone: str | None = None


class OrderCustomer(BaseModel):
    id: str | None = None
    email: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    phone: str | None = None


class OrderLineItem(BaseModel):
    """One order line."""

    id: str | None = None
    product_id: str
    variant_id: str | None = None
    title: str
    sku: str | None = None
    quantity: int = Field(..., ge=1)
    price: Decimal = Field(..., ge=0)  # unit price
    total_discount: Decimal = Field(Decimal("0"), ge=0)
    collection_ids: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def discount_within_line(self) -> "OrderLineItem":
        """Discount cannot exceed the gross line price."""
        if self.total_discount > self.price * self.quantity:
            raise ValueError("total_discount exceeds quantity * price")
        return self


class ShippingLine(BaseModel):
    title: str | None = None
    code: str | None = None
    price: Decimal = Field(Decimal("0"))


class DiscountCode(BaseModel):
    code: str
    amount: Decimal = Field(Decimal("0"), ge=0)
    type: str | None = None


class Order(BaseModel):
    """A storefront order, normalized."""

    id: str
    name: str  # display number, e.g. "#1001"
    email: str | None = None
    created_at: datetime | None = None
    currency: str = "INR"
    customer: OrderCustomer = Field(default_factory=OrderCustomer)
    billing_address: OrderAddress = Field(default_factory=OrderAddress)
    shipping_address: OrderAddress = Field(default_factory=OrderAddress)
    line_items: list[OrderLineItem] = Field(..., min_length=1)
    shipping_lines: list[ShippingLine] = Field(default_factory=list)
    discount_codes: list[DiscountCode] = Field(default_factory=list)
    customer_gstin: str | None = None
    tags: str | None = None

    @property
    def shipping_charge(self) -> Decimal:
        """Price of the first shipping line, zero without one."""
        if not self.shipping_lines:
            return Decimal("0")
        return self.shipping_lines[0].price

    @property
    def discount_amount(self) -> Decimal:
        """Sum of discount-code amounts."""
        return sum((d.amount for d in self.discount_codes), Decimal("0"))

    @property
    def buyer_state(self) -> str | None:
        """Place of supply: shipping province, falling back to billing."""
        return self.shipping_address.province or self.billing_address.province

"""Merchant profile models: business (tax) settings and warehouses."""

import re
from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field, field_validator

GSTIN_PATTERN = r"^[0-9]{2}[A-Z]{5}[0-9]{4}[A-Z][1-9A-Z]Z[0-9A-Z]$"
PIN_CODE_PATTERN = r"^[1-9][0-9]{5}$"
IFSC_PATTERN = r"^[A-Z]{4}0[A-Z0-9]{6}$"


class AccountType(str, Enum):
    """Bank account type printed on invoices."""

    SAVINGS = "SAVINGS"
    CURRENT = "CURRENT"


class BusinessSettingsUpdate(BaseModel):
    """Business registration and address details, as submitted by the merchant."""

    legal_name: str = Field(..., min_length=1, max_length=255)
    trading_name: str | None = Field(None, max_length=255)
    gstin: str = Field(..., pattern=GSTIN_PATTERN)
    state_code: str = Field(..., min_length=2, max_length=2)
    address_line_1: str = Field(..., min_length=1, max_length=255)
    address_line_2: str | None = Field(None, max_length=255)
    city: str = Field(..., min_length=1, max_length=100)
    state: str = Field(..., min_length=1, max_length=100)
    pin_code: str = Field(..., pattern=PIN_CODE_PATTERN)
    country: str = Field("India", max_length=100)
    phone: str = Field(..., min_length=10, max_length=20)
    email: EmailStr
    website: str | None = Field(None, max_length=255)

    # Catalog defaults when no HSN mapping matches
    default_hsn_code: str | None = Field(None, pattern=r"^[0-9]{4,8}$")
    default_gst_rate: Decimal | None = Field(None, ge=0, le=100)

    bank_name: str | None = None
    account_holder_name: str | None = None
    account_number: str | None = None
    ifsc_code: str | None = None
    branch_name: str | None = None
    account_type: AccountType | None = None

    logo_url: str | None = None
    signature_url: str | None = None
    signatory_name: str | None = None
    signatory_designation: str | None = None

    @field_validator("gstin", "ifsc_code", mode="before")
    @classmethod
    def uppercase_codes(cls, value):
        """Registration codes are case-insensitive on entry, stored uppercase."""
        if isinstance(value, str):
            return value.strip().upper()
        return value

    @field_validator("ifsc_code")
    @classmethod
    def validate_ifsc(cls, value: str | None) -> str | None:
        """Blank IFSC means no bank details; anything else must be well-formed."""
        if value is None or value == "":
            return None
        if not re.match(IFSC_PATTERN, value):
            raise ValueError("Invalid IFSC code format")
        return value

    @field_validator("website", "logo_url", "signature_url", mode="before")
    @classmethod
    def blank_to_none(cls, value):
        if value == "":
            return None
        return value


class BankDetails(BaseModel):
    """Bank details shown on the invoice when configured."""

    bank_name: str
    account_holder_name: str | None = None
    account_number: str | None = None
    ifsc_code: str | None = None
    branch_name: str | None = None
    account_type: AccountType | None = None


class BusinessSettings(BusinessSettingsUpdate):
    """
    The merchant's tax profile as stored.

    One row per shop. Never deleted, only updated.
    """

    id: UUID
    shop: str
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}

    @property
    def bank_details(self) -> BankDetails | None:
        if not self.bank_name:
            return None
        return BankDetails(
            bank_name=self.bank_name,
            account_holder_name=self.account_holder_name,
            account_number=self.account_number,
            ifsc_code=self.ifsc_code,
            branch_name=self.branch_name,
            account_type=self.account_type,
        )


class WarehouseCreate(BaseModel):
    """A shipping origin that may sit in a different state than the registration."""

    name: str = Field(..., min_length=1, max_length=255)
    address_line_1: str = Field(..., min_length=1, max_length=255)
    address_line_2: str | None = Field(None, max_length=255)
    city: str = Field(..., min_length=1, max_length=100)
    state: str = Field(..., min_length=1, max_length=100)
    pin_code: str = Field(..., pattern=PIN_CODE_PATTERN)
    phone: str | None = Field(None, max_length=20)
    email: EmailStr | None = None
    is_default: bool = False


class Warehouse(WarehouseCreate):
    """Warehouse as stored. At most one per shop has is_default set."""

    id: UUID
    shop: str
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}

"""Invoice numbering and presentation settings."""

from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field


class ResetFrequency(str, Enum):
    """When the invoice sequence restarts at 1."""

    NEVER = "NEVER"
    MONTHLY = "MONTHLY"
    QUARTERLY = "QUARTERLY"  # calendar quarters (Jan-Mar, Apr-Jun, ...)
    YEARLY = "YEARLY"  # Indian financial year (April-March)


class TemplateType(str, Enum):
    """Invoice layout handed to the renderer."""

    CLASSIC = "CLASSIC"
    MODERN = "MODERN"
    MINIMAL = "MINIMAL"
    DETAILED = "DETAILED"


class InvoiceSettingsUpdate(BaseModel):
    """Data that can be updated on invoice settings. All fields optional."""

    prefix: str | None = Field(None, min_length=1, max_length=10, pattern=r"^[A-Za-z0-9]+$")
    starting_number: int | None = Field(None, ge=1)
    reset_frequency: ResetFrequency | None = None
    template_type: TemplateType | None = None
    due_days: int | None = Field(None, ge=0, le=365)
    show_bank_details: bool | None = None
    show_signature: bool | None = None
    show_logo: bool | None = None
    show_hsn: bool | None = None
    show_customer_gst: bool | None = None
    terms_and_conditions: str | None = Field(None, max_length=5000)
    notes: str | None = Field(None, max_length=2000)
    payment_instructions: str | None = Field(None, max_length=2000)
    auto_generate: bool | None = None
    auto_email: bool | None = None


class InvoiceSettings(BaseModel):
    """
    Per-shop invoice settings, including the sequence counter.

    current_sequence and sequence_updated_at are the counter state. They are
    only written by the sequence service, inside the issuing transaction.
    Prefix has no hyphen so issued numbers always split into 4 segments.
    """

    id: UUID
    shop: str
    prefix: str = "INV"
    starting_number: int = 1
    current_sequence: int = 0
    reset_frequency: ResetFrequency = ResetFrequency.YEARLY
    sequence_updated_at: datetime | None = None
    template_type: TemplateType = TemplateType.CLASSIC
    due_days: int = 30
    show_bank_details: bool = True
    show_signature: bool = True
    show_logo: bool = True
    show_hsn: bool = True
    show_customer_gst: bool = True
    terms_and_conditions: str | None = None
    notes: str | None = None
    payment_instructions: str | None = None
    auto_generate: bool = False
    auto_email: bool = False
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class InvoiceNumberParts(BaseModel):
    """A parsed PREFIX-FY-MONTH-SEQUENCE invoice number."""

    prefix: str
    financial_year: str
    month: str
    sequence: int

"""GST engine configuration."""

from decimal import Decimal

from pydantic import BaseModel, Field

from utils.timezone import BUSINESS_TIMEZONE


class GSTConfig(BaseModel):
    """
    Tunables for tax computation and invoice numbering.

    Statutory values (shipping rate, freight HSN) are configuration rather
    than constants so a rate notification does not require a code change.
    """

    # HSN fallbacks when neither product nor collection is mapped
    default_hsn_code: str = Field(
        default="99999",
        description="HSN code used when no mapping matches",
        min_length=1,
    )
    default_gst_rate: Decimal = Field(
        default=Decimal("18"),
        description="GST rate (percent) used when no mapping matches",
        ge=0,
        le=100,
    )

    # Shipping is taxed as a freight service
    shipping_gst_rate: Decimal = Field(
        default=Decimal("18"),
        description="Statutory GST rate for shipping charges",
        ge=0,
        le=100,
    )
    shipping_hsn_code: str = Field(
        default="996511",
        description="SAC/HSN code for freight services",
    )

    prices_include_tax: bool = Field(
        default=True,
        description="Whether storefront prices already include GST",
    )

    # Numbering
    business_timezone: str = Field(
        default=BUSINESS_TIMEZONE,
        description="Timezone for financial year/month and invoice dates",
    )
    sequence_padding: int = Field(
        default=5,
        description="Zero-padded width of the sequence segment",
        ge=1,
        le=10,
    )
    sequence_retry_attempts: int = Field(
        default=3,
        description="Attempts before a sequence conflict is surfaced",
        ge=1,
        le=10,
    )

"""HSN mapping domain models."""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, Field, model_validator


class HSNMappingCreate(BaseModel):
    """Map a product OR a collection to an HSN code and GST rate."""

    product_id: str | None = Field(None, min_length=1, max_length=255)
    collection_id: str | None = Field(None, min_length=1, max_length=255)
    hsn_code: str = Field(..., pattern=r"^[0-9]{4,8}$")
    gst_rate: Decimal = Field(..., ge=0, le=100)
    description: str | None = Field(None, max_length=500)

    @model_validator(mode="after")
    def exactly_one_key(self) -> "HSNMappingCreate":
        """A mapping is keyed by product or by collection, never both."""
        if (self.product_id is None) == (self.collection_id is None):
            raise ValueError("Exactly one of product_id or collection_id is required")
        return self


class HSNMapping(BaseModel):
    """Full HSN mapping as stored."""

    id: UUID
    shop: str
    product_id: str | None
    collection_id: str | None
    hsn_code: str
    gst_rate: Decimal
    description: str | None = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class HSNResolution(BaseModel):
    """Outcome of resolving one product to an HSN code and rate."""

    hsn_code: str
    gst_rate: Decimal
    source: str  # "product", "collection" or "default"

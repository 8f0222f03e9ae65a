"""
Domain events for invoicing.

Immutable event objects that represent state changes in the invoicing
domain. A service publishes what happened; handlers react without the
publisher knowing who's listening.

Event Categories:
- InvoiceEvent: Invoice lifecycle (generated, credit note issued)
- OrderEvent: Storefront order lifecycle (fulfilled)

Events carry the full domain object so handlers don't need to re-fetch state.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from uuid import uuid4

from utils.timezone import now_utc


@dataclass(frozen=True, kw_only=True)
class InvoicingEvent:
    """Base class for all invoicing domain events."""
    event_id: str = field(default_factory=lambda: str(uuid4()))
    occurred_at: datetime = field(default_factory=now_utc)
    shop: str = ""


# =============================================================================
# INVOICE EVENTS
# =============================================================================


@dataclass(frozen=True)
class InvoiceEvent(InvoicingEvent):
    """Events related to invoice lifecycle."""
    pass


@dataclass(frozen=True)
class InvoiceGenerated(InvoiceEvent):
    """An invoice was numbered and stored. Carries the renderer payload."""
    invoice: Any = None  # Invoice
    document: Any = None  # InvoiceDocument

    @classmethod
    def create(cls, shop: str, invoice: Any, document: Any) -> "InvoiceGenerated":
        return cls(shop=shop, invoice=invoice, document=document)


@dataclass(frozen=True)
class CreditNoteIssued(InvoiceEvent):
    """A credit note was stored against an existing invoice."""
    credit_note: Any = None  # Invoice with is_credit_note set

    @classmethod
    def create(cls, shop: str, credit_note: Any) -> "CreditNoteIssued":
        return cls(shop=shop, credit_note=credit_note)


# =============================================================================
# ORDER EVENTS
# =============================================================================


@dataclass(frozen=True)
class OrderEvent(InvoicingEvent):
    """Events related to storefront orders."""
    pass


@dataclass(frozen=True)
class OrderFulfilled(OrderEvent):
    """The storefront reported an order as fulfilled."""
    order: Any = None  # Order

    @classmethod
    def create(cls, shop: str, order: Any) -> "OrderFulfilled":
        return cls(shop=shop, order=order)

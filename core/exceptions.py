"""Typed exceptions for invoicing failures."""


class GSTInvoiceError(Exception):
    """Base class for invoicing errors."""


class ConfigurationError(GSTInvoiceError):
    """
    Merchant setup is incomplete (business or invoice settings missing).

    Fatal to the requesting operation. Never retried.
    """


class DuplicateInvoiceError(GSTInvoiceError):
    """An invoice already exists for the order."""

    def __init__(self, order_id: str, order_name: str | None = None):
        self.order_id = order_id
        self.order_name = order_name
        super().__init__(f"Invoice already exists for order {order_name or order_id}")


class SequenceConflictError(GSTInvoiceError):
    """
    The sequence counter could not be advanced safely.

    Raised on lock contention, serialization failure or an invoice-number
    uniqueness violation. Transient: the caller may retry with fresh state.
    """


class UnknownStateError(GSTInvoiceError, ValueError):
    """A blank state name was given where a jurisdiction must be resolved."""

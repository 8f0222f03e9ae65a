"""Propagate the acting merchant (shop) through the call stack using contextvars."""

from contextlib import contextmanager
from contextvars import ContextVar

_current_shop: ContextVar[str | None] = ContextVar("current_shop", default=None)


def get_current_shop() -> str:
    """
    Get current shop domain from context.

    Raises RuntimeError if no merchant context is set.
    Every invoice, counter and mapping belongs to exactly one shop, so
    reaching shop-scoped code without one is a bug.
    """
    shop = _current_shop.get()
    if shop is None:
        raise RuntimeError(
            "No merchant context set. This usually means you're calling "
            "shop-scoped code outside of a merchant request."
        )
    return shop


def set_current_shop(shop: str) -> None:
    """
    Set current shop in context.

    Called by the merchant middleware once the shop header is read.
    """
    _current_shop.set(shop)


def clear_current_shop() -> None:
    """
    Clear merchant context.

    Must be called in a finally block to prevent context leakage.
    """
    _current_shop.set(None)


@contextmanager
def merchant_context(shop: str):
    """
    Context manager for temporarily setting the merchant.

    Useful for:
    - Tests
    - Webhook/background handlers that act on behalf of a shop

    Example:
        with merchant_context("acme.myshopify.com"):
            invoice = invoice_service.generate_invoice(order)
    """
    previous = _current_shop.get()
    set_current_shop(shop)
    try:
        yield
    finally:
        if previous is None:
            clear_current_shop()
        else:
            set_current_shop(previous)

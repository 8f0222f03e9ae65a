"""
Handler for OrderFulfilled events.

When auto-generation is on, a fulfilled order gets its invoice without
merchant action. Every reason to skip is logged; none is raised, since
the storefront only needs to know the event was received.
"""

import logging
from typing import Callable

from core.events import OrderFulfilled
from core.exceptions import DuplicateInvoiceError
from utils.merchant_context import merchant_context

logger = logging.getLogger(__name__)


def handle_order_fulfilled(settings_service, invoice_service) -> Callable:
    """
    Factory that returns an OrderFulfilled handler.

    Args:
        settings_service: SettingsService instance
        invoice_service: InvoiceService instance

    Returns:
        Handler callable that auto-generates the order's invoice
    """

    def handler(event: OrderFulfilled):
        order = event.order

        with merchant_context(event.shop):
            invoice_settings = settings_service.get_invoice_settings()
            if invoice_settings is None or not invoice_settings.auto_generate:
                logger.info("Auto-generation disabled for %s", event.shop)
                return

            business = settings_service.get_business_settings()
            if business is None or not business.gstin:
                logger.warning("Business settings not configured for %s", event.shop)
                return

            if invoice_service.get_for_order(order.id) is not None:
                logger.info("Invoice already exists for order %s", order.id)
                return

            try:
                invoice = invoice_service.generate_invoice(order)
            except DuplicateInvoiceError:
                # Another request invoiced it between the check and the insert
                logger.info("Invoice already exists for order %s", order.id)
                return

            logger.info(
                "Auto-generated invoice %s for order %s", invoice.invoice_number, order.name
            )

    return handler

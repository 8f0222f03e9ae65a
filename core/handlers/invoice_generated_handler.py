"""
Handler for InvoiceGenerated events.

Hands the display payload to the document renderer. Rendering (template
selection, HTML/PDF) lives outside this service; the renderer is any
callable taking an InvoiceDocument.
"""

import logging
from typing import Callable

from core.events import InvoiceGenerated

logger = logging.getLogger(__name__)


def handle_invoice_generated(renderer: Callable) -> Callable:
    """
    Factory that returns an InvoiceGenerated handler.

    Args:
        renderer: Callable receiving the InvoiceDocument

    Returns:
        Handler callable that forwards the document to the renderer
    """

    def handler(event: InvoiceGenerated):
        document = event.document
        logger.info(
            "Rendering invoice %s with %s template",
            document.invoice.invoice_number,
            document.template_type.value,
        )
        renderer(document)

    return handler

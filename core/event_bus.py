"""
Synchronous in-process pub/sub for invoicing events.

Handlers run on the publisher's thread, in subscription order, after the
publishing operation has already committed. A failing handler is logged and
skipped; it cannot undo an issued invoice or block the next handler.
"""

import logging
from collections import defaultdict
from typing import Callable, Dict, List

from core.events import InvoicingEvent

logger = logging.getLogger(__name__)

Handler = Callable[[InvoicingEvent], None]


class EventBus:
    """Routes events to handlers keyed by exact event class name."""

    def __init__(self):
        self._subscribers: Dict[str, List[Handler]] = defaultdict(list)

    def subscribe(self, event_type: str, callback: Handler):
        """Register callback for events whose class is named event_type (no subclass matching)."""
        self._subscribers[event_type].append(callback)

    def publish(self, event: InvoicingEvent):
        event_type = type(event).__name__

        for callback in self._subscribers.get(event_type, ()):
            try:
                callback(event)
            except Exception:
                logger.exception(
                    "Handler %s failed for %s (event_id=%s)",
                    getattr(callback, "__name__", repr(callback)),
                    event_type,
                    event.event_id,
                )

"""Storefront webhooks."""

from fastapi import APIRouter, Request

from api.base import success_response
from api.middleware import request_id_of
from core.event_bus import EventBus
from core.events import OrderFulfilled
from core.models import Order


def create_webhooks_router(event_bus: EventBus) -> APIRouter:
    router = APIRouter()

    @router.post("/webhooks/orders/fulfilled")
    def order_fulfilled(request: Request, order: Order):
        """
        Acknowledge a fulfilment and let subscribers react.

        Always 200 once the payload validates: auto-generation skips and
        handler failures are logged, never reported back to the storefront.
        """
        event_bus.publish(OrderFulfilled.create(shop=request.state.shop, order=order))
        return success_response(
            {"received": True}, request_id_of(request)
        ).model_dump(mode="json")

    return router

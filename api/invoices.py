"""Invoice endpoints: batch generation, queries, statistics, credit notes."""

from datetime import date
from uuid import UUID

from fastapi import APIRouter, Query, Request
from pydantic import BaseModel, Field

from api.base import success_response
from api.middleware import request_id_of
from core.models import InvoiceStatus, Order


class GenerateInvoicesRequest(BaseModel):
    """Orders to invoice, already normalized by the storefront integration."""

    orders: list[Order] = Field(..., min_length=1)
    warehouse_id: UUID | None = None


def create_invoices_router(services: dict) -> APIRouter:
    router = APIRouter()

    invoice_svc = services["invoice"]
    sequence_svc = services["sequence"]

    @router.post("/invoices")
    def generate_invoices(request: Request, body: GenerateInvoicesRequest):
        """Generate invoices for each order. Per-order failures are reported, not raised."""
        result = invoice_svc.generate_batch(body.orders, body.warehouse_id)
        data = result.model_dump(mode="json")
        data["success"] = result.success
        return success_response(data, request_id_of(request)).model_dump(mode="json")

    @router.get("/invoices")
    def list_invoices(
        request: Request,
        page: int = Query(1, ge=1),
        limit: int = Query(25, ge=1, le=100),
        status: InvoiceStatus | None = Query(None),
        date_from: date | None = Query(None),
        date_to: date | None = Query(None),
        search: str | None = Query(None, max_length=100),
    ):
        result = invoice_svc.list_invoices(
            page=page,
            limit=limit,
            status=status,
            date_from=date_from,
            date_to=date_to,
            search=search,
        )
        return success_response(result.model_dump(mode="json"), request_id_of(request)).model_dump(
            mode="json"
        )

    # Fixed paths must be registered before /invoices/{invoice_id}

    @router.get("/invoices/stats")
    def invoice_stats(request: Request):
        stats = invoice_svc.get_stats()
        return success_response(stats.model_dump(mode="json"), request_id_of(request)).model_dump(
            mode="json"
        )

    @router.get("/invoices/next-number")
    def next_invoice_number(request: Request):
        """Preview only; the number is not reserved."""
        number = sequence_svc.preview_next_number()
        return success_response({"invoice_number": number}, request_id_of(request)).model_dump(
            mode="json"
        )

    @router.get("/invoices/{invoice_id}")
    def get_invoice(request: Request, invoice_id: UUID):
        invoice = invoice_svc.get_by_id(invoice_id)
        if invoice is None:
            raise ValueError(f"Invoice {invoice_id} not found")
        return success_response(invoice.model_dump(mode="json"), request_id_of(request)).model_dump(
            mode="json"
        )

    @router.post("/invoices/{invoice_id}/credit-note")
    def create_credit_note(request: Request, invoice_id: UUID):
        credit_note = invoice_svc.create_credit_note(invoice_id)
        return success_response(
            credit_note.model_dump(mode="json"), request_id_of(request)
        ).model_dump(mode="json")

    return router

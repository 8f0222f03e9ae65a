"""Merchant settings endpoints: business profile, invoice settings, warehouses, HSN mappings."""

from uuid import UUID

from fastapi import APIRouter, Request

from api.base import success_response
from api.middleware import request_id_of
from core.models import BusinessSettingsUpdate, HSNMappingCreate, InvoiceSettingsUpdate, WarehouseCreate


def create_settings_router(services: dict) -> APIRouter:
    router = APIRouter()

    settings_svc = services["settings"]
    hsn_svc = services["hsn"]

    # -------------------------------------------------------------------------
    # Business and invoice settings
    # -------------------------------------------------------------------------

    @router.get("/settings/business")
    def get_business_settings(request: Request):
        settings = settings_svc.get_business_settings()
        invoice_settings = settings_svc.get_invoice_settings()
        data = {
            "settings": settings.model_dump(mode="json") if settings else None,
            "invoice_settings": invoice_settings.model_dump(mode="json") if invoice_settings else None,
            "is_configured": settings is not None,
        }
        return success_response(data, request_id_of(request)).model_dump(mode="json")

    @router.put("/settings/business")
    def save_business_settings(request: Request, body: BusinessSettingsUpdate):
        settings = settings_svc.save_business_settings(body)
        return success_response(settings.model_dump(mode="json"), request_id_of(request)).model_dump(
            mode="json"
        )

    @router.put("/settings/invoice")
    def update_invoice_settings(request: Request, body: InvoiceSettingsUpdate):
        settings = settings_svc.update_invoice_settings(body)
        return success_response(settings.model_dump(mode="json"), request_id_of(request)).model_dump(
            mode="json"
        )

    # -------------------------------------------------------------------------
    # Warehouses
    # -------------------------------------------------------------------------

    @router.get("/settings/warehouses")
    def list_warehouses(request: Request):
        warehouses = settings_svc.list_warehouses()
        return success_response(
            [w.model_dump(mode="json") for w in warehouses], request_id_of(request)
        ).model_dump(mode="json")

    @router.post("/settings/warehouses")
    def create_warehouse(request: Request, body: WarehouseCreate):
        warehouse = settings_svc.create_warehouse(body)
        return success_response(warehouse.model_dump(mode="json"), request_id_of(request)).model_dump(
            mode="json"
        )

    # -------------------------------------------------------------------------
    # HSN mappings
    # -------------------------------------------------------------------------

    @router.get("/settings/hsn-mappings")
    def list_hsn_mappings(request: Request):
        mappings = hsn_svc.list_mappings()
        return success_response(
            [m.model_dump(mode="json") for m in mappings], request_id_of(request)
        ).model_dump(mode="json")

    @router.post("/settings/hsn-mappings")
    def create_hsn_mapping(request: Request, body: HSNMappingCreate):
        mapping = hsn_svc.create(body)
        return success_response(mapping.model_dump(mode="json"), request_id_of(request)).model_dump(
            mode="json"
        )

    @router.delete("/settings/hsn-mappings/{mapping_id}")
    def delete_hsn_mapping(request: Request, mapping_id: UUID):
        if not hsn_svc.delete(mapping_id):
            raise ValueError(f"HSN mapping {mapping_id} not found")
        return success_response({"deleted": str(mapping_id)}, request_id_of(request)).model_dump(
            mode="json"
        )

    return router

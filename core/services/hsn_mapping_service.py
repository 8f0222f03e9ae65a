"""
HSN mapping service.

Mappings key an HSN code and GST rate to a product or a collection. A
product (or collection) is mapped at most once per shop; the storage
layer enforces that with partial unique indexes.
"""

import logging
from uuid import UUID, uuid4

from psycopg2 import errors as pg_errors

from clients.postgres_client import PostgresClient
from core.audit import AuditLogger, AuditAction
from core.hsn_resolver import HSNResolver
from core.models import HSNMapping, HSNMappingCreate
from utils.merchant_context import get_current_shop
from utils.timezone import now_utc

logger = logging.getLogger(__name__)


class HSNMappingService:
    """Service for HSN mapping operations."""

    def __init__(self, postgres: PostgresClient, audit: AuditLogger):
        self.postgres = postgres
        self.audit = audit

    def create(self, data: HSNMappingCreate) -> HSNMapping:
        """
        Map a product or collection.

        Raises:
            ValueError: If the product or collection is already mapped
        """
        now = now_utc()

        try:
            row = self.postgres.execute_returning(
                """
                INSERT INTO hsn_mappings (
                    id, shop, product_id, collection_id,
                    hsn_code, gst_rate, description,
                    created_at, updated_at
                ) VALUES (
                    %s, %s, %s, %s,
                    %s, %s, %s,
                    %s, %s
                )
                RETURNING *
                """,
                (
                    uuid4(), get_current_shop(), data.product_id, data.collection_id,
                    data.hsn_code, data.gst_rate, data.description,
                    now, now
                )
            )[0]
        except pg_errors.UniqueViolation as e:
            key = data.product_id or data.collection_id
            raise ValueError(f"HSN mapping already exists for {key}") from e

        mapping = HSNMapping.model_validate(row)

        self.audit.log_change(
            entity_type="hsn_mapping",
            entity_id=mapping.id,
            action=AuditAction.CREATE,
            changes={"created": data.model_dump(mode="json", exclude_none=True)}
        )

        return mapping

    def list_mappings(self) -> list[HSNMapping]:
        """All mappings for the shop, oldest first."""
        rows = self.postgres.execute(
            "SELECT * FROM hsn_mappings WHERE shop = %s ORDER BY created_at, id",
            (get_current_shop(),)
        )
        return [HSNMapping.model_validate(row) for row in rows]

    def delete(self, mapping_id: UUID) -> bool:
        """
        Remove a mapping.

        Returns:
            True if deleted, False if not found
        """
        rows = self.postgres.execute_returning(
            "DELETE FROM hsn_mappings WHERE id = %s RETURNING *",
            (mapping_id,)
        )
        if not rows:
            return False

        self.audit.log_change(
            entity_type="hsn_mapping",
            entity_id=mapping_id,
            action=AuditAction.DELETE,
            changes={"deleted": HSNMapping.model_validate(rows[0]).model_dump(mode="json")}
        )
        return True

    def build_resolver(self, default_hsn_code: str, default_gst_rate) -> HSNResolver:
        """Snapshot the shop's mappings into a resolver for one invoice run."""
        return HSNResolver.from_mappings(self.list_mappings(), default_hsn_code, default_gst_rate)

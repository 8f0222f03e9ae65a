"""
Append-only audit log for invoicing.

Issued numbers, stored invoices, credit notes and settings changes each get
one row, attributed to the shop in context. Rows are written after the
change commits, so a rolled-back issue never shows up here.
"""

from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from psycopg2.extras import Json

from clients.postgres_client import PostgresClient
from utils.merchant_context import get_current_shop
from utils.timezone import now_utc


class AuditAction(Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    ISSUE = "issue"  # an invoice number was consumed


def compute_changes(
    old: dict[str, Any],
    new: dict[str, Any],
    exclude_fields: set[str] | None = None
) -> dict[str, dict[str, Any]]:
    """
    Field-level diff of two JSON-ready dicts.

    Returns {field: {"old": ..., "new": ...}} for every differing field,
    in field-name order. `updated_at` is skipped unless exclude_fields says
    otherwise. An empty dict means nothing worth auditing changed.
    """
    skipped = exclude_fields or {"updated_at"}
    return {
        key: {"old": old.get(key), "new": new.get(key)}
        for key in sorted(set(old) | set(new))
        if key not in skipped and old.get(key) != new.get(key)
    }


class AuditLogger:
    """
    Writes and reads audit_log rows.

    `changes` must be JSON-ready: dump pydantic models with
    model_dump(mode="json") so Decimals and UUIDs arrive as strings.
    Shapes used by the services:

    - CREATE: {"created": {...}}
    - UPDATE: output of compute_changes()
    - DELETE: {"deleted": {...}}
    - ISSUE:  {"invoice_number": ..., "sequence": ...}
    """

    def __init__(self, postgres: PostgresClient):
        self.postgres = postgres

    def log_change(
        self,
        entity_type: str,
        entity_id: UUID,
        action: AuditAction,
        changes: dict[str, Any],
        shop: str | None = None
    ) -> None:
        """Append one entry; shop defaults to the merchant in context."""
        self.postgres.execute(
            """
            INSERT INTO audit_log (id, shop, entity_type, entity_id, action, changes, created_at)
            VALUES (%s, %s, %s, %s, %s, %s, %s)
            """,
            (
                uuid4(),
                shop or get_current_shop(),
                entity_type,
                entity_id,
                action.value,
                Json(changes),
                now_utc()
            )
        )

    def get_entity_history(self, entity_type: str, entity_id: UUID) -> list[dict[str, Any]]:
        """Every entry for one entity, newest first."""
        return self.postgres.execute(
            """
            SELECT id, shop, entity_type, entity_id, action, changes, created_at
            FROM audit_log
            WHERE entity_type = %s AND entity_id = %s
            ORDER BY created_at DESC
            """,
            (entity_type, entity_id)
        )

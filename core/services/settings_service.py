"""
Merchant settings: business (tax) profile, invoice settings and warehouses.

Business settings are one row per shop, never deleted. The first save also
creates the shop's invoice settings and a default warehouse so numbering
and dispatch work as soon as setup is complete. All operations are scoped
to the current shop via RLS.
"""

import logging
from uuid import UUID, uuid4

from clients.postgres_client import PostgresClient
from core.audit import AuditLogger, AuditAction, compute_changes
from core.exceptions import ConfigurationError
from core.models import (
    BusinessSettings,
    BusinessSettingsUpdate,
    InvoiceSettings,
    InvoiceSettingsUpdate,
    Warehouse,
    WarehouseCreate,
)
from core.services.sequence_service import SETTINGS_MISSING_MESSAGE
from utils.merchant_context import get_current_shop
from utils.timezone import now_utc

logger = logging.getLogger(__name__)

BUSINESS_MISSING_MESSAGE = "Business settings not configured. Please complete setup first."

DEFAULT_WAREHOUSE_NAME = "Main Warehouse"

_BUSINESS_COLUMNS = tuple(BusinessSettingsUpdate.model_fields)

# Counter state is owned by the sequence service, never updated here
_INVOICE_SETTINGS_COLUMNS = tuple(InvoiceSettingsUpdate.model_fields)

_WAREHOUSE_COLUMNS = tuple(WarehouseCreate.model_fields)


class SettingsService:
    """Service for merchant configuration."""

    def __init__(self, postgres: PostgresClient, audit: AuditLogger):
        self.postgres = postgres
        self.audit = audit

    # =========================================================================
    # BUSINESS SETTINGS
    # =========================================================================

    def get_business_settings(self) -> BusinessSettings | None:
        row = self.postgres.execute_single(
            "SELECT * FROM business_settings WHERE shop = %s",
            (get_current_shop(),)
        )
        if row is None:
            return None
        return BusinessSettings.model_validate(row)

    def require_business_settings(self) -> BusinessSettings:
        """
        Business settings, or ConfigurationError if setup is incomplete.
        """
        settings = self.get_business_settings()
        if settings is None:
            raise ConfigurationError(BUSINESS_MISSING_MESSAGE)
        return settings

    def save_business_settings(self, data: BusinessSettingsUpdate) -> BusinessSettings:
        """
        Create or replace the shop's business settings.

        On first save, invoice settings are initialised with defaults and the
        registered address becomes the default warehouse, in the same
        transaction. Existing invoice settings and warehouses are untouched.

        Args:
            data: Validated business settings

        Returns:
            Stored business settings
        """
        shop = get_current_shop()
        current = self.get_business_settings()
        now = now_utc()
        values = data.model_dump(mode="json")

        columns = ", ".join(_BUSINESS_COLUMNS)
        placeholders = ", ".join(["%s"] * len(_BUSINESS_COLUMNS))
        assignments = ", ".join(f"{col} = EXCLUDED.{col}" for col in _BUSINESS_COLUMNS)

        with self.postgres.transaction() as cur:
            cur.execute(
                f"""
                INSERT INTO business_settings (id, shop, {columns}, created_at, updated_at)
                VALUES (%s, %s, {placeholders}, %s, %s)
                ON CONFLICT (shop) DO UPDATE
                SET {assignments}, updated_at = EXCLUDED.updated_at
                RETURNING *
                """,
                self.postgres.convert_params((
                    uuid4(), shop,
                    *(values[col] for col in _BUSINESS_COLUMNS),
                    now, now
                ))
            )
            row = dict(cur.fetchone())

            cur.execute(
                """
                INSERT INTO invoice_settings (id, shop, created_at, updated_at)
                VALUES (%s, %s, %s, %s)
                ON CONFLICT (shop) DO NOTHING
                """,
                self.postgres.convert_params((uuid4(), shop, now, now))
            )

            # First save: the registered address becomes the default warehouse
            cur.execute(
                """
                INSERT INTO warehouses (
                    id, shop, name, address_line_1, address_line_2, city, state,
                    pin_code, phone, email, is_default, created_at, updated_at
                )
                SELECT %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, true, %s, %s
                WHERE NOT EXISTS (SELECT 1 FROM warehouses WHERE shop = %s)
                """,
                self.postgres.convert_params((
                    uuid4(), shop, DEFAULT_WAREHOUSE_NAME,
                    data.address_line_1, data.address_line_2, data.city, data.state,
                    data.pin_code, data.phone, str(data.email), now, now,
                    shop
                ))
            )

        settings = BusinessSettings.model_validate(row)

        if current is None:
            logger.info("Business settings created for %s", shop)
            self.audit.log_change(
                entity_type="business_settings",
                entity_id=settings.id,
                action=AuditAction.CREATE,
                changes={"created": values}
            )
        else:
            changes = compute_changes(
                current.model_dump(mode="json"),
                settings.model_dump(mode="json")
            )
            if changes:
                self.audit.log_change(
                    entity_type="business_settings",
                    entity_id=settings.id,
                    action=AuditAction.UPDATE,
                    changes=changes
                )

        return settings

    # =========================================================================
    # INVOICE SETTINGS
    # =========================================================================

    def get_invoice_settings(self) -> InvoiceSettings | None:
        row = self.postgres.execute_single(
            "SELECT * FROM invoice_settings WHERE shop = %s",
            (get_current_shop(),)
        )
        if row is None:
            return None
        return InvoiceSettings.model_validate(row)

    def update_invoice_settings(self, data: InvoiceSettingsUpdate) -> InvoiceSettings:
        """
        Update numbering and presentation settings.

        Only fields that are set are changed. The sequence counter is not
        touched: a prefix or cadence change takes effect on the next issuance.

        Raises:
            ConfigurationError: If invoice settings were never initialised
        """
        current = self.get_invoice_settings()
        if current is None:
            raise ConfigurationError(SETTINGS_MISSING_MESSAGE)

        updates = data.model_dump(mode="json", exclude_none=True)
        updates = {k: v for k, v in updates.items() if k in _INVOICE_SETTINGS_COLUMNS}
        if not updates:
            return current

        set_parts = [f"{field} = %s" for field in updates]
        params = list(updates.values())

        set_parts.append("updated_at = %s")
        params.append(now_utc())
        params.append(current.id)

        row = self.postgres.execute_returning(
            f"""
            UPDATE invoice_settings
            SET {', '.join(set_parts)}
            WHERE id = %s
            RETURNING *
            """,
            tuple(params)
        )[0]

        updated = InvoiceSettings.model_validate(row)

        changes = compute_changes(
            current.model_dump(mode="json"),
            updated.model_dump(mode="json")
        )
        if changes:
            self.audit.log_change(
                entity_type="invoice_settings",
                entity_id=updated.id,
                action=AuditAction.UPDATE,
                changes=changes
            )

        return updated

    # =========================================================================
    # WAREHOUSES
    # =========================================================================

    def create_warehouse(self, data: WarehouseCreate) -> Warehouse:
        """
        Add a shipping origin.

        A new default warehouse clears the previous default in the same
        transaction, so a shop never has two.
        """
        shop = get_current_shop()
        now = now_utc()
        values = data.model_dump(mode="json")

        columns = ", ".join(_WAREHOUSE_COLUMNS)
        placeholders = ", ".join(["%s"] * len(_WAREHOUSE_COLUMNS))

        with self.postgres.transaction() as cur:
            if data.is_default:
                cur.execute(
                    """
                    UPDATE warehouses SET is_default = false, updated_at = %s
                    WHERE shop = %s AND is_default
                    """,
                    (now, shop)
                )

            cur.execute(
                f"""
                INSERT INTO warehouses (id, shop, {columns}, created_at, updated_at)
                VALUES (%s, %s, {placeholders}, %s, %s)
                RETURNING *
                """,
                self.postgres.convert_params((
                    uuid4(), shop,
                    *(values[col] for col in _WAREHOUSE_COLUMNS),
                    now, now
                ))
            )
            row = dict(cur.fetchone())

        warehouse = Warehouse.model_validate(row)

        self.audit.log_change(
            entity_type="warehouse",
            entity_id=warehouse.id,
            action=AuditAction.CREATE,
            changes={"created": values}
        )

        return warehouse

    def list_warehouses(self) -> list[Warehouse]:
        """Default warehouse first, then by name."""
        rows = self.postgres.execute(
            "SELECT * FROM warehouses WHERE shop = %s ORDER BY is_default DESC, name",
            (get_current_shop(),)
        )
        return [Warehouse.model_validate(row) for row in rows]

    def get_warehouse(self, warehouse_id: UUID) -> Warehouse | None:
        row = self.postgres.execute_single(
            "SELECT * FROM warehouses WHERE id = %s",
            (warehouse_id,)
        )
        if row is None:
            return None
        return Warehouse.model_validate(row)

    def get_default_warehouse(self) -> Warehouse | None:
        row = self.postgres.execute_single(
            "SELECT * FROM warehouses WHERE shop = %s AND is_default",
            (get_current_shop(),)
        )
        if row is None:
            return None
        return Warehouse.model_validate(row)

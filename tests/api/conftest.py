"""API test fixtures: the full app over mocked services."""

from datetime import date, datetime, timezone
from decimal import Decimal
from unittest.mock import Mock
from uuid import uuid4

import pytest
from starlette.testclient import TestClient

from api.app import create_app
from core.event_bus import EventBus
from core.models import Invoice
from core.services.hsn_mapping_service import HSNMappingService
from core.services.invoice_service import InvoiceService
from core.services.sequence_service import SequenceService
from core.services.settings_service import SettingsService


# =============================================================================
# SERVICE FIXTURES
# =============================================================================


@pytest.fixture
def invoice_service():
    return Mock(spec=InvoiceService)


@pytest.fixture
def sequence_service():
    return Mock(spec=SequenceService)


@pytest.fixture
def settings_service():
    return Mock(spec=SettingsService)


@pytest.fixture
def hsn_service():
    return Mock(spec=HSNMappingService)


@pytest.fixture
def event_bus():
    return Mock(spec=EventBus)


@pytest.fixture
def services(invoice_service, sequence_service, settings_service, hsn_service):
    return {
        "invoice": invoice_service,
        "sequence": sequence_service,
        "settings": settings_service,
        "hsn": hsn_service,
    }


# =============================================================================
# APP & CLIENT FIXTURES
# =============================================================================


@pytest.fixture
def app(services, event_bus):
    return create_app(services, event_bus)


@pytest.fixture
def client(app, test_shop):
    """Client acting as the primary test shop."""
    c = TestClient(app, raise_server_exceptions=False)
    c.headers["X-Shop-Domain"] = test_shop
    return c


@pytest.fixture
def anonymous_client(app):
    """Client without a shop header."""
    return TestClient(app, raise_server_exceptions=False)


# =============================================================================
# RECORDS
# =============================================================================


@pytest.fixture
def stored_invoice(test_shop):
    """An issued intra-state invoice as the service returns it."""
    now = datetime(2024, 3, 15, 6, 30, tzinfo=timezone.utc)
    return Invoice(
        id=uuid4(), shop=test_shop, invoice_number="INV-2023-24-03-00007",
        order_id="5001", order_number="#1001",
        invoice_date=date(2024, 3, 15), due_date=date(2024, 4, 14),
        customer_name="Priya Sharma", customer_email="priya@example.com",
        customer_phone=None, customer_gstin=None,
        billing_address={"province": "Maharashtra"},
        shipping_address={"province": "Maharashtra"},
        warehouse_id=None, transaction_type="INTRA_STATE",
        subtotal=Decimal("200.00"), cgst_amount=Decimal("18.00"),
        sgst_amount=Decimal("18.00"), igst_amount=Decimal("0.00"),
        shipping_charge=Decimal("0.00"), shipping_tax=Decimal("0.00"),
        discount_amount=Decimal("0.00"), round_off=Decimal("0.00"),
        total_amount=Decimal("236"), status="SENT",
        created_at=now, updated_at=now,
    )

"""Shared test fixtures for the GST invoicing test suite."""

from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import MagicMock, Mock
from uuid import uuid4

import pytest
from dotenv import load_dotenv

# Load .env file BEFORE any other imports that might use env vars
# override=True ensures .env takes precedence over shell env vars
load_dotenv(Path(__file__).parent.parent / ".env", override=True)

# Reset vault client singleton to pick up env vars
import clients.vault_client as vault_module
vault_module._vault_client_instance = None
vault_module._secret_cache.clear()

from clients.postgres_client import PostgresClient
from core.audit import AuditLogger
from core.models import (
    BusinessSettings,
    InvoiceSettings,
    Order,
    ResetFrequency,
    Warehouse,
)
from utils.merchant_context import merchant_context, clear_current_shop


# =============================================================================
# TEST SHOP CONSTANTS
# =============================================================================

# Primary test shop - use for single-merchant tests
TEST_SHOP = "acme-store.myshopify.com"

# Secondary test shop - use for RLS isolation tests
TEST_SHOP_B = "other-store.myshopify.com"

FIXED_NOW = datetime(2024, 3, 15, 6, 30, tzinfo=timezone.utc)  # 12:00 IST


# =============================================================================
# MERCHANT CONTEXT FIXTURES
# =============================================================================


@pytest.fixture(autouse=True)
def reset_merchant_context():
    """Ensure clean merchant context before and after each test."""
    clear_current_shop()
    yield
    clear_current_shop()


@pytest.fixture
def test_shop():
    return TEST_SHOP


@pytest.fixture
def test_shop_b():
    return TEST_SHOP_B


@pytest.fixture
def as_test_shop():
    """Run the test as the primary test shop."""
    with merchant_context(TEST_SHOP):
        yield TEST_SHOP


# =============================================================================
# DOMAIN RECORDS
# =============================================================================


@pytest.fixture
def business_settings() -> BusinessSettings:
    """A fully configured Maharashtra-registered merchant."""
    now = FIXED_NOW
    return BusinessSettings(
        id=uuid4(),
        shop=TEST_SHOP,
        legal_name="Acme Retail Private Limited",
        trading_name="Acme",
        gstin="27AAPFU0939F1ZV",
        state_code="27",
        address_line_1="12 Marine Drive",
        city="Mumbai",
        state="Maharashtra",
        pin_code="400001",
        phone="9820012345",
        email="accounts@acme.co.in",
        bank_name="State Bank of India",
        account_number="00000012345678",
        ifsc_code="SBIN0000300",
        created_at=now,
        updated_at=now,
    )


@pytest.fixture
def invoice_settings() -> InvoiceSettings:
    now = FIXED_NOW
    return InvoiceSettings(
        id=uuid4(),
        shop=TEST_SHOP,
        prefix="INV",
        current_sequence=6,
        reset_frequency=ResetFrequency.YEARLY,
        sequence_updated_at=datetime(2024, 3, 10, 5, 0, tzinfo=timezone.utc),
        created_at=now,
        updated_at=now,
    )


@pytest.fixture
def karnataka_warehouse() -> Warehouse:
    now = FIXED_NOW
    return Warehouse(
        id=uuid4(),
        shop=TEST_SHOP,
        name="Bengaluru DC",
        address_line_1="Plot 4, Peenya Industrial Area",
        city="Bengaluru",
        state="Karnataka",
        pin_code="560058",
        is_default=True,
        created_at=now,
        updated_at=now,
    )


def _make_order(**overrides) -> Order:
    data = {
        "id": "5001",
        "name": "#1001",
        "email": "priya@example.com",
        "customer": {"first_name": "Priya", "last_name": "Sharma", "email": "priya@example.com"},
        "billing_address": {"name": "Priya Sharma", "city": "Pune", "province": "Maharashtra"},
        "shipping_address": {"name": "Priya Sharma", "city": "Pune", "province": "Maharashtra"},
        "line_items": [
            {
                "product_id": "prod-1",
                "title": "Cotton Kurta",
                "quantity": 2,
                "price": "118.00",
            }
        ],
    }
    data.update(overrides)
    return Order.model_validate(data)


@pytest.fixture
def make_order():
    """
    Factory for orders shipping within Maharashtra.

    Defaults to one line of 2 x 118.00 (tax inclusive), no shipping, no
    discount codes. Keyword arguments replace top-level order fields.
    """
    return _make_order


@pytest.fixture
def order() -> Order:
    return _make_order()


# =============================================================================
# POSTGRES STAND-INS
# =============================================================================


@pytest.fixture
def cursor():
    """Cursor handed out by the mocked transaction()."""
    return MagicMock()


@pytest.fixture
def mock_postgres(cursor):
    """
    PostgresClient stand-in.

    transaction() yields the shared `cursor` fixture; convert_params passes
    values through unchanged.
    """
    postgres = Mock(spec=PostgresClient)

    @contextmanager
    def transaction():
        yield cursor

    postgres.transaction.side_effect = transaction
    postgres.convert_params.side_effect = lambda params: params
    return postgres


@pytest.fixture
def mock_audit():
    return Mock(spec=AuditLogger)


# =============================================================================
# DATABASE FIXTURES
# =============================================================================


@pytest.fixture(scope="session")
def db():
    """
    Session-scoped PostgresClient against a real database.

    Skips when no database is configured (DATABASE_URL or Vault) or
    reachable. Applies schema.sql once.
    """
    import psycopg2

    from clients.vault_client import get_database_url

    try:
        url = get_database_url()
    except (ValueError, PermissionError, KeyError) as e:
        pytest.skip(f"No database configured: {e}")

    try:
        client = PostgresClient(url)
    except psycopg2.OperationalError as e:
        pytest.skip(f"Database unreachable: {e}")

    client.execute((Path(__file__).parent.parent / "schema.sql").read_text())

    yield client
    client.close()


@pytest.fixture
def db_shop(db):
    """A fresh shop per test, so database tests never share rows."""
    shop = f"test-{uuid4().hex[:12]}.myshopify.com"
    with merchant_context(shop):
        yield shop


@pytest.fixture
def db_audit(db):
    return AuditLogger(db)


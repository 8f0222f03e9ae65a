"""Tests for invoice assembly, generation, credit notes and queries."""

import logging
from datetime import date, datetime, timezone
from decimal import Decimal
from unittest.mock import Mock
from uuid import uuid4

import pytest
from psycopg2 import errors as pg_errors

import core.services.invoice_service as invoice_module
from core.audit import AuditAction, AuditLogger
from core.config import GSTConfig
from core.event_bus import EventBus
from core.events import CreditNoteIssued, InvoiceGenerated
from core.exceptions import (
    ConfigurationError,
    DuplicateInvoiceError,
    SequenceConflictError,
    UnknownStateError,
)
from core.hsn_resolver import HSNResolver
from core.models import (
    BusinessSettingsUpdate,
    HSNMappingCreate,
    InvoiceStatus,
    TemplateType,
    TransactionType,
    WarehouseCreate,
)
from core.services.hsn_mapping_service import HSNMappingService
from core.services.invoice_service import InvoiceService
from core.services.sequence_service import IssuedNumber, SequenceService
from core.services.settings_service import SettingsService
from utils.merchant_context import merchant_context

ISSUED_AT = datetime(2024, 3, 15, 6, 30, tzinfo=timezone.utc)
NUMBER = "INV-2023-24-03-00007"


def _default_resolver(rate="18"):
    return HSNResolver.from_mappings([], "99999", Decimal(rate))


def _invoice_row(shop, **overrides):
    row = dict(
        id=uuid4(), shop=shop, invoice_number=NUMBER,
        order_id="5001", order_number="#1001",
        invoice_date=date(2024, 3, 15), due_date=date(2024, 4, 14),
        customer_name="Priya Sharma", customer_email="priya@example.com",
        customer_phone=None, customer_gstin=None,
        billing_address={"province": "Maharashtra"},
        shipping_address={"province": "Maharashtra"},
        warehouse_id=None, transaction_type="INTRA_STATE",
        subtotal=Decimal("200.00"), cgst_amount=Decimal("18.00"),
        sgst_amount=Decimal("18.00"), igst_amount=Decimal("0.00"),
        shipping_charge=Decimal("0.00"), shipping_tax=Decimal("0"),
        discount_amount=Decimal("0.00"), round_off=Decimal("0.00"),
        total_amount=Decimal("236"), status="SENT",
        is_credit_note=False, original_invoice_id=None,
        created_at=ISSUED_AT, updated_at=ISSUED_AT,
    )
    row.update(overrides)
    return row


def _line_row(invoice_id):
    return dict(
        id=uuid4(), invoice_id=invoice_id, product_id="prod-1", variant_id=None,
        title="Cotton Kurta", sku=None, quantity=2, unit_price=Decimal("118.00"),
        discount=Decimal("0"), hsn_code="99999", gst_rate=Decimal("18"),
        taxable_value=Decimal("200.00"), cgst_amount=Decimal("18.00"),
        sgst_amount=Decimal("18.00"), igst_amount=Decimal("0.00"),
        total_amount=Decimal("236.00"),
    )


@pytest.fixture
def settings_service(business_settings, invoice_settings):
    service = Mock(spec=SettingsService)
    service.require_business_settings.return_value = business_settings
    service.get_invoice_settings.return_value = invoice_settings
    service.get_default_warehouse.return_value = None
    return service


@pytest.fixture
def hsn_service():
    service = Mock(spec=HSNMappingService)
    service.build_resolver.return_value = _default_resolver()
    return service


@pytest.fixture
def sequence_service(cursor, invoice_settings):
    service = Mock(spec=SequenceService)
    service.run_with_retry.side_effect = lambda work: work(cursor)
    service.issue.return_value = IssuedNumber(
        invoice_number=NUMBER, sequence=7, settings_id=invoice_settings.id
    )
    service.credit_note_number.side_effect = lambda number: "CN-" + number.split("-", 1)[1]
    return service


@pytest.fixture
def event_bus():
    return Mock(spec=EventBus)


@pytest.fixture
def service(mock_postgres, mock_audit, event_bus, settings_service, hsn_service, sequence_service):
    return InvoiceService(
        mock_postgres, mock_audit, event_bus,
        settings_service, hsn_service, sequence_service,
        config=GSTConfig(),
    )


@pytest.fixture
def frozen_now(monkeypatch):
    monkeypatch.setattr(invoice_module, "now_utc", lambda: ISSUED_AT)
    return ISSUED_AT


# =============================================================================
# ASSEMBLY
# =============================================================================


class TestBuildInvoiceData:
    """build_invoice_data() is pure: order + settings in, computed invoice out."""

    def test_intra_state_from_registered_address(
        self, service, order, business_settings, invoice_settings
    ):
        data = service.build_invoice_data(
            order, NUMBER, ISSUED_AT, business_settings, invoice_settings, None, _default_resolver()
        )

        assert data.transaction_type == TransactionType.INTRA_STATE
        assert data.totals.subtotal == Decimal("200.00")
        assert data.totals.total_cgst == Decimal("18.00")
        assert data.totals.total_sgst == Decimal("18.00")
        assert data.totals.grand_total == Decimal("236")
        assert data.place_of_supply_code == "27"
        assert data.seller.state_code == "27"
        assert data.warehouse_id is None

    def test_warehouse_in_other_state_makes_supply_inter_state(
        self, service, order, business_settings, invoice_settings, karnataka_warehouse
    ):
        data = service.build_invoice_data(
            order, NUMBER, ISSUED_AT, business_settings, invoice_settings,
            karnataka_warehouse, _default_resolver(),
        )

        assert data.transaction_type == TransactionType.INTER_STATE
        assert data.totals.total_igst == Decimal("36.00")
        assert data.totals.total_cgst == Decimal("0.00")
        assert data.seller.city == "Bengaluru"
        assert data.seller.state_code == "29"
        assert data.seller.gstin == business_settings.gstin
        assert data.seller.phone == business_settings.phone
        assert data.warehouse_id == karnataka_warehouse.id

    def test_dates_in_business_timezone(self, service, order, business_settings, invoice_settings):
        """20:00 UTC on 31 March is already 1 April in India."""
        issued_at = datetime(2024, 3, 31, 20, 0, tzinfo=timezone.utc)
        data = service.build_invoice_data(
            order, NUMBER, issued_at, business_settings, invoice_settings, None, _default_resolver()
        )

        assert data.invoice_date == date(2024, 4, 1)
        assert data.due_date == date(2024, 5, 1)

    def test_shipping_and_discount_codes(
        self, service, make_order, business_settings, invoice_settings
    ):
        order = make_order(
            shipping_lines=[{"title": "Standard", "price": "59.00"}],
            discount_codes=[{"code": "WELCOME10", "amount": "10.00"}],
        )
        data = service.build_invoice_data(
            order, NUMBER, ISSUED_AT, business_settings, invoice_settings, None, _default_resolver()
        )

        assert data.shipping.taxable_value == Decimal("50.00")
        assert data.totals.shipping_tax == Decimal("9.00")
        assert data.totals.discount_amount == Decimal("10.00")
        assert data.totals.grand_total == Decimal("294")

    def test_lines_resolved_through_mappings(
        self, service, make_order, business_settings, invoice_settings
    ):
        order = make_order(line_items=[
            {"product_id": "prod-1", "title": "Kurta", "quantity": 1, "price": "105.00"},
            {"product_id": "prod-2", "title": "Shoes", "quantity": 1, "price": "118.00",
             "collection_ids": ["footwear"]},
        ])
        resolver = Mock(spec=HSNResolver)
        resolver.resolve.side_effect = lambda product_id, collection_ids: (
            Mock(hsn_code="6109", gst_rate=Decimal("5")) if product_id == "prod-1"
            else Mock(hsn_code="6403", gst_rate=Decimal("18"))
        )

        data = service.build_invoice_data(
            order, NUMBER, ISSUED_AT, business_settings, invoice_settings, None, resolver
        )

        assert [line.hsn_code for line in data.line_items] == ["6109", "6403"]
        assert [row.gst_rate for row in data.tax_summary] == [Decimal("5"), Decimal("18")]
        resolver.resolve.assert_any_call("prod-2", ["footwear"])

    def test_buyer_details(self, service, make_order, business_settings, invoice_settings):
        order = make_order(customer={}, customer_gstin="29AAACB1234C1Z5")
        data = service.build_invoice_data(
            order, NUMBER, ISSUED_AT, business_settings, invoice_settings, None, _default_resolver()
        )

        assert data.buyer.name == "Priya Sharma"  # billing name fallback
        assert data.buyer.email == "priya@example.com"
        assert data.buyer.gstin == "29AAACB1234C1Z5"

    def test_blank_buyer_state_rejected(self, service, make_order, business_settings, invoice_settings):
        order = make_order(shipping_address={}, billing_address={})

        with pytest.raises(UnknownStateError):
            service.build_invoice_data(
                order, NUMBER, ISSUED_AT, business_settings, invoice_settings,
                None, _default_resolver(),
            )


class TestBuildDocument:

    def test_display_fields(self, service, order, business_settings, invoice_settings):
        invoice_settings = invoice_settings.model_copy(update={
            "template_type": TemplateType.MODERN,
            "show_bank_details": False,
            "notes": "Thank you",
        })
        data = service.build_invoice_data(
            order, NUMBER, ISSUED_AT, business_settings, invoice_settings, None, _default_resolver()
        )

        document = service.build_document(data, invoice_settings)

        assert document.formatted_invoice_date == "15/03/2024"
        assert document.formatted_due_date == "14/04/2024"
        assert document.formatted_grand_total == "₹236.00"
        assert document.total_in_words == "TWO HUNDRED AND THIRTY-SIX RUPEES ONLY"
        assert document.template_type == TemplateType.MODERN
        assert document.show_bank_details is False
        assert document.notes == "Thank you"


# =============================================================================
# GENERATION
# =============================================================================


class TestGenerateInvoice:

    def test_stores_audits_and_publishes(
        self, service, cursor, mock_audit, event_bus, sequence_service,
        order, invoice_settings, as_test_shop, frozen_now
    ):
        invoice_row = _invoice_row(as_test_shop)
        cursor.fetchone.side_effect = [None, invoice_row, _line_row(invoice_row["id"])]

        invoice = service.generate_invoice(order)

        assert invoice.invoice_number == NUMBER
        assert len(invoice.line_items) == 1
        sequence_service.issue.assert_called_once_with(cursor, ISSUED_AT)

        insert_params = cursor.execute.call_args_list[1].args[1]
        assert NUMBER in insert_params
        assert "SENT" in insert_params
        assert Decimal("236") in insert_params

        actions = [(c.kwargs["entity_type"], c.kwargs["action"]) for c in mock_audit.log_change.call_args_list]
        assert actions == [
            ("invoice_settings", AuditAction.ISSUE),
            ("invoice", AuditAction.CREATE),
        ]

        event = event_bus.publish.call_args.args[0]
        assert isinstance(event, InvoiceGenerated)
        assert event.invoice is invoice
        assert event.document.invoice.invoice_number == NUMBER
        assert event.shop == as_test_shop

    def test_already_invoiced(
        self, service, cursor, mock_audit, event_bus, sequence_service, order, as_test_shop
    ):
        cursor.fetchone.return_value = {"id": uuid4()}

        with pytest.raises(DuplicateInvoiceError, match="#1001"):
            service.generate_invoice(order)

        sequence_service.issue.assert_not_called()
        mock_audit.log_change.assert_not_called()
        event_bus.publish.assert_not_called()

    def test_missing_business_settings(self, service, settings_service, sequence_service, order, as_test_shop):
        settings_service.require_business_settings.side_effect = ConfigurationError("setup")

        with pytest.raises(ConfigurationError):
            service.generate_invoice(order)

        sequence_service.run_with_retry.assert_not_called()

    def test_missing_invoice_settings(self, service, settings_service, order, as_test_shop):
        settings_service.get_invoice_settings.return_value = None

        with pytest.raises(ConfigurationError, match="Invoice settings not configured"):
            service.generate_invoice(order)

    def test_unknown_warehouse(self, service, settings_service, order, as_test_shop):
        settings_service.get_warehouse.return_value = None

        with pytest.raises(ValueError, match="not found"):
            service.generate_invoice(order, warehouse_id=uuid4())

    def test_uses_default_warehouse(
        self, service, settings_service, cursor, karnataka_warehouse, order, as_test_shop, frozen_now
    ):
        settings_service.get_default_warehouse.return_value = karnataka_warehouse
        invoice_row = _invoice_row(
            as_test_shop, transaction_type="INTER_STATE", warehouse_id=karnataka_warehouse.id
        )
        cursor.fetchone.side_effect = [None, invoice_row, _line_row(invoice_row["id"])]

        service.generate_invoice(order)

        insert_params = cursor.execute.call_args_list[1].args[1]
        assert karnataka_warehouse.id in insert_params
        assert "INTER_STATE" in insert_params

    def test_merchant_defaults_feed_the_resolver(
        self, service, settings_service, hsn_service, business_settings, cursor, order, as_test_shop
    ):
        settings_service.require_business_settings.return_value = business_settings.model_copy(
            update={"default_hsn_code": "6109", "default_gst_rate": Decimal("5")}
        )
        cursor.fetchone.return_value = {"id": uuid4()}

        with pytest.raises(DuplicateInvoiceError):
            service.generate_invoice(order)

        hsn_service.build_resolver.assert_called_once_with("6109", Decimal("5"))

    def test_engine_defaults_when_merchant_has_none(
        self, service, hsn_service, cursor, order, as_test_shop
    ):
        cursor.fetchone.return_value = {"id": uuid4()}

        with pytest.raises(DuplicateInvoiceError):
            service.generate_invoice(order)

        hsn_service.build_resolver.assert_called_once_with("99999", Decimal("18"))

    def test_anomalies_logged_not_blocking(
        self, service, hsn_service, cursor, order, as_test_shop, frozen_now, caplog
    ):
        hsn_service.build_resolver.return_value = _default_resolver("7")
        invoice_row = _invoice_row(as_test_shop)
        cursor.fetchone.side_effect = [None, invoice_row, _line_row(invoice_row["id"])]

        with caplog.at_level(logging.WARNING, logger="core.services.invoice_service"):
            invoice = service.generate_invoice(order)

        assert invoice.invoice_number == NUMBER
        assert "invalid GST rate: 7%" in caplog.text


class TestGenerateBatch:

    def test_failures_do_not_stop_the_batch(self, service, make_order, monkeypatch):
        good = make_order(id="1")
        duplicate = make_order(id="2")
        stateless = make_order(id="3")
        stored = Mock(id=uuid4(), invoice_number=NUMBER)

        def generate(order, warehouse_id=None):
            if order.id == "2":
                raise DuplicateInvoiceError("2", "#2")
            if order.id == "3":
                raise UnknownStateError("Buyer state is required to determine GST type")
            return stored

        monkeypatch.setattr(service, "generate_invoice", generate)

        result = service.generate_batch([good, duplicate, stateless])

        assert result.summary.total == 3
        assert result.summary.successful == 1
        assert result.summary.failed == 2
        assert result.success is True
        assert result.results[0].invoice_number == NUMBER
        assert [e.order_id for e in result.errors] == ["2", "3"]
        assert "already exists" in result.errors[0].error

    def test_all_failed(self, service, make_order, monkeypatch):
        def generate(order, warehouse_id=None):
            raise SequenceConflictError("busy")

        monkeypatch.setattr(service, "generate_invoice", generate)

        result = service.generate_batch([make_order()])

        assert result.success is False
        assert result.errors[0].error == "busy"

    def test_unexpected_errors_propagate(self, service, make_order, monkeypatch):
        def generate(order, warehouse_id=None):
            raise RuntimeError("database gone")

        monkeypatch.setattr(service, "generate_invoice", generate)

        with pytest.raises(RuntimeError):
            service.generate_batch([make_order()])


# =============================================================================
# CREDIT NOTES
# =============================================================================


class TestCreateCreditNote:

    def test_mirrors_original(self, service, mock_postgres, mock_audit, event_bus, as_test_shop):
        original = _invoice_row(as_test_shop)
        mock_postgres.execute_single.return_value = dict(original)
        mock_postgres.execute.return_value = []
        mock_postgres.execute_returning.return_value = [_invoice_row(
            as_test_shop, invoice_number="CN-2023-24-03-00007", total_amount=Decimal("-236"),
            is_credit_note=True, original_invoice_id=original["id"],
        )]

        credit_note = service.create_credit_note(original["id"])

        assert credit_note.is_credit_note is True
        params = mock_postgres.execute_returning.call_args.args[1]
        assert params[2] == "CN-2023-24-03-00007"
        assert Decimal("-236") in params
        assert params[-4:-2] == (True, original["id"])

        assert mock_audit.log_change.call_args.kwargs["entity_type"] == "credit_note"
        assert isinstance(event_bus.publish.call_args.args[0], CreditNoteIssued)

    def test_not_found(self, service, mock_postgres, as_test_shop):
        mock_postgres.execute_single.return_value = None

        with pytest.raises(ValueError, match="not found"):
            service.create_credit_note(uuid4())

    def test_credit_note_of_credit_note_rejected(self, service, mock_postgres, as_test_shop):
        mock_postgres.execute_single.return_value = _invoice_row(as_test_shop, is_credit_note=True)
        mock_postgres.execute.return_value = []

        with pytest.raises(ValueError, match="is a credit note"):
            service.create_credit_note(uuid4())

    def test_second_credit_note_rejected(self, service, mock_postgres, event_bus, as_test_shop):
        mock_postgres.execute_single.return_value = _invoice_row(as_test_shop)
        mock_postgres.execute.return_value = []
        mock_postgres.execute_returning.side_effect = pg_errors.UniqueViolation()

        with pytest.raises(ValueError, match="Credit note already exists"):
            service.create_credit_note(uuid4())

        event_bus.publish.assert_not_called()


# =============================================================================
# QUERIES
# =============================================================================


class TestListInvoices:

    def test_filters_and_pagination(self, service, mock_postgres, as_test_shop):
        mock_postgres.execute_scalar.return_value = 51
        mock_postgres.execute.return_value = [_invoice_row(as_test_shop)]

        page = service.list_invoices(
            page=2, limit=25, status=InvoiceStatus.SENT,
            date_from=date(2024, 3, 1), date_to=date(2024, 3, 31), search="priya",
        )

        assert page.total == 51
        assert page.total_pages == 3
        assert page.page == 2

        sql, params = mock_postgres.execute.call_args.args
        assert "ILIKE" in sql
        assert "ORDER BY created_at DESC" in sql
        assert params[0] == as_test_shop
        assert params[1] == "SENT"
        assert params[4:8] == ("%priya%",) * 4
        assert params[-2:] == (25, 25)

    def test_limit_capped(self, service, mock_postgres, as_test_shop):
        mock_postgres.execute_scalar.return_value = 0
        mock_postgres.execute.return_value = []

        page = service.list_invoices(page=0, limit=500)

        assert page.page == 1
        assert page.total_pages == 0
        assert mock_postgres.execute.call_args.args[1][-2:] == (100, 0)


class TestGetStats:

    def test_combines_counts_and_counter(
        self, service, mock_postgres, sequence_service, invoice_settings, as_test_shop
    ):
        mock_postgres.execute_single.return_value = {
            "total_invoices": 10,
            "this_month_invoices": 4,
            "pending_invoices": 7,
            "total_revenue": Decimal("12345.00"),
            "total_gst_collected": Decimal("1883.00"),
        }
        sequence_service.get_settings.return_value = invoice_settings
        sequence_service.preview_next_number.return_value = NUMBER

        stats = service.get_stats()

        assert stats.total_invoices == 10
        assert stats.pending_invoices == 7
        assert stats.total_revenue == Decimal("12345.00")
        assert stats.current_sequence == 6
        assert stats.next_invoice_number == NUMBER

        sql, params = mock_postgres.execute_single.call_args.args
        assert "NOT is_credit_note" in sql
        assert params[1] == ("DRAFT", "SENT")


def test_get_for_order_missing(service, mock_postgres, as_test_shop):
    mock_postgres.execute_single.return_value = None
    assert service.get_for_order("5001") is None


# =============================================================================
# DATABASE
# =============================================================================


@pytest.fixture
def db_services(db, db_shop, business_settings):
    audit = AuditLogger(db)
    settings = SettingsService(db, audit)
    hsn = HSNMappingService(db, audit)
    sequence = SequenceService(db, audit)
    invoices = InvoiceService(db, audit, EventBus(), settings, hsn, sequence)

    settings.save_business_settings(BusinessSettingsUpdate.model_validate(
        business_settings.model_dump(include=set(BusinessSettingsUpdate.model_fields))
    ))
    return {"settings": settings, "hsn": hsn, "sequence": sequence, "invoice": invoices}


class TestInvoiceDatabase:
    """Generation end to end against a real database."""

    def test_generate_then_duplicate(self, db_services, order):
        invoices = db_services["invoice"]

        invoice = invoices.generate_invoice(order)

        assert invoice.invoice_number.endswith("-00001")
        assert invoice.total_amount == Decimal("236")
        assert invoices.get_by_id(invoice.id).line_items[0].taxable_value == Decimal("200.00")

        with pytest.raises(DuplicateInvoiceError):
            invoices.generate_invoice(order)

        # The rejected attempt consumed no number
        assert db_services["sequence"].get_settings().current_sequence == 1

    def test_mapping_and_warehouse_applied(self, db_services, make_order):
        db_services["hsn"].create(HSNMappingCreate(product_id="prod-1", hsn_code="6109", gst_rate="5"))
        warehouse = db_services["settings"].create_warehouse(WarehouseCreate(
            name="Bengaluru DC", address_line_1="Plot 4", city="Bengaluru",
            state="Karnataka", pin_code="560058",
        ))

        invoice = db_services["invoice"].generate_invoice(make_order(), warehouse_id=warehouse.id)
        stored = db_services["invoice"].get_by_id(invoice.id)

        assert stored.transaction_type == TransactionType.INTER_STATE
        assert stored.line_items[0].hsn_code == "6109"
        assert stored.line_items[0].gst_rate == Decimal("5")

    def test_credit_note_once(self, db_services, order):
        invoices = db_services["invoice"]
        invoice = invoices.generate_invoice(order)

        credit_note = invoices.create_credit_note(invoice.id)

        assert credit_note.invoice_number == "CN-" + invoice.invoice_number.split("-", 1)[1]
        assert credit_note.total_amount == -invoice.total_amount
        with pytest.raises(ValueError, match="already exists"):
            invoices.create_credit_note(invoice.id)

        stats = invoices.get_stats()
        assert stats.total_invoices == 1
        assert stats.total_revenue == invoice.total_amount

    def test_other_shops_see_nothing(self, db_services, order):
        invoice = db_services["invoice"].generate_invoice(order)

        with merchant_context(f"intruder-{uuid4().hex[:8]}.myshopify.com"):
            assert db_services["invoice"].get_by_id(invoice.id) is None
            assert db_services["invoice"].list_invoices().total == 0

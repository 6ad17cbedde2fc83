"""
Order creation and lookup.

Covers totals, validation, document numbering, request-key replay and
header compensation when the line write fails.
"""

from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from transfer_kernel.exceptions import (
    IdempotencyConflictError,
    OrderNotFoundError,
    PersistenceError,
    ValidationError,
)
from transfer_modules.sto.models import LineRequest, RecipientStatus, SenderStatus
from transfer_modules.sto.numbering import DocumentNumberAllocator
from transfer_modules.sto.orm import TransferLineModel, TransferOrderModel
from transfer_modules.sto.store import OrderStore

ORIGIN = "OUTLET-A"
DESTINATION = "OUTLET-B"


def _order_count(session) -> int:
    return session.execute(
        select(func.count()).select_from(TransferOrderModel)
    ).scalar_one()


class TestCreateOrder:
    """Totals, statuses and numbering."""

    def test_grand_total(self, create_order):
        order = create_order()
        assert order.items_subtotal == Decimal("2000")
        assert order.freight_cost == Decimal("50")
        assert order.grand_total == Decimal("2050")

    def test_initial_statuses(self, create_order):
        order = create_order()
        assert order.sender_status is SenderStatus.DRAFT
        assert order.recipient_status is RecipientStatus.PENDING
        assert order.revision == 0

    def test_lines_persisted_in_order(self, service, create_order):
        order = service.get_order(create_order().id)
        assert [line.line_number for line in order.lines] == [1, 2]
        assert [line.item_id for line in order.lines] == ["SKU-1", "SKU-2"]
        assert order.lines[0].amount == Decimal("1000")
        assert order.shipments == ()
        assert order.receipts == ()

    def test_dict_lines_accepted(self, create_order):
        order = create_order(lines=[
            {"item_id": "SKU-9", "quantity": "3", "unit_price": "12.50"},
        ])
        assert order.items_subtotal == Decimal("37.50")

    def test_zero_freight(self, create_order):
        order = create_order(freight_cost=Decimal("0"))
        assert order.grand_total == order.items_subtotal

    def test_document_numbers_monotonic(self, create_order):
        first = create_order()
        second = create_order()
        assert first.document_number == "STO-2401-0001"
        assert second.document_number == "STO-2401-0002"

    def test_document_counter_restarts_each_month(self, create_order, clock):
        create_order()
        clock.set_time(datetime(2024, 2, 3, 9, tzinfo=timezone.utc))
        assert create_order().document_number == "STO-2402-0001"

    def test_created_log(self, create_order, captured_logs):
        order = create_order()
        created = [r for r in captured_logs() if r["message"] == "sto_order_created"]
        assert created[0]["document_number"] == order.document_number
        assert created[0]["grand_total"] == "2050"
        assert any(r["message"] == "create_order_committed" for r in captured_logs())


class TestCreateOrderValidation:

    def test_same_origin_and_destination(self, create_order):
        with pytest.raises(ValidationError) as exc_info:
            create_order(destination=ORIGIN)
        assert exc_info.value.field == "destination_outlet_id"

    def test_no_lines(self, create_order):
        with pytest.raises(ValidationError) as exc_info:
            create_order(lines=[])
        assert exc_info.value.field == "lines"

    @pytest.mark.parametrize("qty", ["0", "-1"])
    def test_non_positive_quantity(self, create_order, qty):
        with pytest.raises(ValidationError):
            create_order(lines=[LineRequest("SKU-1", Decimal(qty), Decimal("1"))])

    def test_negative_price(self, create_order):
        with pytest.raises(ValidationError):
            create_order(lines=[LineRequest("SKU-1", Decimal("1"), Decimal("-1"))])

    def test_negative_freight(self, create_order):
        with pytest.raises(ValidationError):
            create_order(freight_cost=Decimal("-0.01"))

    @pytest.mark.parametrize("qty", ["abc", "NaN", True])
    def test_non_numeric_quantity(self, create_order, qty):
        with pytest.raises(ValidationError):
            create_order(lines=[{"item_id": "SKU-1", "quantity": qty, "unit_price": "1"}])

    def test_blank_outlet(self, create_order):
        with pytest.raises(ValidationError):
            create_order(origin="  ")

    def test_nothing_written_on_rejection(self, session, create_order):
        with pytest.raises(ValidationError):
            create_order(lines=[])
        assert _order_count(session) == 0


class TestRequestKey:

    def test_replay_returns_same_order(self, create_order):
        first = create_order(request_key="req-1")
        second = create_order(request_key="req-1")
        assert second.id == first.id
        assert second.document_number == first.document_number

    def test_replay_does_not_create_second_order(self, session, create_order):
        create_order(request_key="req-1")
        create_order(request_key="req-1")
        assert _order_count(session) == 1

    def test_equal_decimals_hash_equal(self, create_order):
        first = create_order(freight_cost=Decimal("50"), request_key="req-2")
        second = create_order(freight_cost=Decimal("50.00"), request_key="req-2")
        assert first.id == second.id

    def test_conflicting_payload(self, create_order):
        create_order(request_key="req-3")
        with pytest.raises(IdempotencyConflictError) as exc_info:
            create_order(freight_cost=Decimal("75"), request_key="req-3")
        assert exc_info.value.request_key == "req-3"


class TestGetOrder:

    def test_unknown_order(self, service):
        with pytest.raises(OrderNotFoundError):
            service.get_order(uuid4())

    def test_malformed_id(self, service):
        with pytest.raises(ValidationError):
            service.get_order("not-a-uuid")

    def test_by_document_number(self, service, create_order):
        order = create_order()
        found = service.selector.get_order_by_number("STO-2401-0001")
        assert found.id == order.id
        assert service.selector.get_order_by_number("STO-2401-0099") is None


class TestLineWriteCompensation:
    """The header never survives a failed line write."""

    @pytest.fixture
    def broken_line_write(self, monkeypatch):
        def _fail(self, header, requested, created_by):
            raise OperationalError(
                "INSERT INTO sto_order_lines", {}, Exception("disk I/O error"),
            )

        monkeypatch.setattr(OrderStore, "_write_lines", _fail)

    def test_service_raises_persistence_error(self, session, create_order, broken_line_write):
        with pytest.raises(PersistenceError) as exc_info:
            create_order()
        assert exc_info.value.operation == "create_order"
        assert _order_count(session) == 0

    def test_header_removed_before_error_surfaces(
        self, session, clock, config, test_actor_id, broken_line_write, captured_logs,
    ):
        store = OrderStore(
            session, DocumentNumberAllocator(session, config.numbering, clock), clock,
        )
        with pytest.raises(PersistenceError):
            store.create_order(
                ORIGIN, DESTINATION, Decimal("50"),
                [LineRequest("SKU-1", Decimal("10"), Decimal("100"))],
                test_actor_id,
            )

        # same, uncommitted transaction: the compensation itself removed the row
        assert _order_count(session) == 0
        assert session.execute(
            select(func.count()).select_from(TransferLineModel)
        ).scalar_one() == 0
        assert any(r["message"] == "sto_order_header_compensated" for r in captured_logs())
        session.rollback()

    def test_store_usable_after_failure(self, create_order, monkeypatch, broken_line_write):
        with pytest.raises(PersistenceError):
            create_order()
        monkeypatch.undo()
        order = create_order()
        assert order.document_number == "STO-2401-0001"

"""
Shipment batches: cumulative limits, inventory debits, first-shipment
status move and request-key replay.
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from transfer_kernel.exceptions import (
    BatchNotFoundError,
    IdempotencyConflictError,
    OverShipmentError,
    PreconditionError,
    ValidationError,
)
from transfer_modules.sto.models import LineQuantity, MovementDirection, SenderStatus

ORIGIN = "OUTLET-A"


@pytest.fixture
def issued_order(service, create_order, test_actor_id):
    order = create_order()
    service.issue_order(order.id, test_actor_id)
    return service.get_order(order.id)


class TestPartialShipments:
    """Line 1 shipped as 6 then 4; a further unit is refused."""

    def test_two_batches_fill_the_line(self, service, issued_order, test_actor_id):
        line_1 = issued_order.lines[0].id
        first = service.record_shipment(issued_order.id, test_actor_id, [(line_1, Decimal("6"))])
        second = service.record_shipment(issued_order.id, test_actor_id, [(line_1, Decimal("4"))])

        order = service.get_order(issued_order.id)
        assert order.shipped_quantity(line_1) == Decimal("10")
        assert order.sender_status is SenderStatus.SHIPPED
        assert [b.document_number for b in order.shipments] == [
            first.document_number, second.document_number,
        ]
        assert first.document_number == "SHP-2401-0001"
        assert second.document_number == "SHP-2401-0002"

    def test_further_unit_is_over_shipment(self, service, issued_order, test_actor_id):
        line_1 = issued_order.lines[0].id
        service.record_shipment(issued_order.id, test_actor_id, [(line_1, Decimal("6"))])
        service.record_shipment(issued_order.id, test_actor_id, [(line_1, Decimal("4"))])

        with pytest.raises(OverShipmentError) as exc_info:
            service.record_shipment(issued_order.id, test_actor_id, [(line_1, Decimal("1"))])
        assert exc_info.value.line_id == str(line_1)
        assert exc_info.value.attempted == Decimal("1")
        assert exc_info.value.already == Decimal("10")
        assert exc_info.value.limit == Decimal("10")

    def test_over_shipment_in_first_batch(self, service, issued_order, test_actor_id):
        line_2 = issued_order.lines[1].id
        with pytest.raises(OverShipmentError):
            service.record_shipment(issued_order.id, test_actor_id, [(line_2, Decimal("5.5"))])
        assert service.get_order(issued_order.id).sender_status is SenderStatus.ISSUED

    def test_rejected_batch_writes_nothing(self, service, issued_order, test_actor_id):
        line_1, line_2 = (line.id for line in issued_order.lines)
        with pytest.raises(OverShipmentError):
            service.record_shipment(
                issued_order.id, test_actor_id,
                [(line_1, Decimal("3")), (line_2, Decimal("6"))],
            )
        order = service.get_order(issued_order.id)
        assert order.shipments == ()
        assert order.revision == issued_order.revision
        assert service.selector.inventory_movements(order.id) == []

    def test_batch_snapshot(self, service, issued_order, test_actor_id):
        line_1 = issued_order.lines[0].id
        batch = service.record_shipment(
            issued_order.id, test_actor_id, [LineQuantity(line_1, Decimal("2"))],
        )
        assert batch.order_id == issued_order.id
        assert batch.shipped_by == test_actor_id
        assert len(batch.lines) == 1
        assert batch.lines[0].item_id == "SKU-1"
        assert batch.lines[0].quantity == Decimal("2")

    def test_revision_advances_per_batch(self, service, issued_order, test_actor_id):
        line_1 = issued_order.lines[0].id
        service.record_shipment(issued_order.id, test_actor_id, [(line_1, Decimal("1"))])
        service.record_shipment(issued_order.id, test_actor_id, [(line_1, Decimal("1"))])
        assert service.get_order(issued_order.id).revision == issued_order.revision + 2


class TestInventoryDebits:

    def test_origin_debited_per_batch_line(self, service, issued_order, test_actor_id):
        line_1, line_2 = (line.id for line in issued_order.lines)
        service.record_shipment(
            issued_order.id, test_actor_id,
            [(line_1, Decimal("6")), (line_2, Decimal("5"))],
        )
        service.record_shipment(issued_order.id, test_actor_id, [(line_1, Decimal("4"))])

        assert service.selector.inventory_balance(ORIGIN, "SKU-1") == Decimal("-10")
        assert service.selector.inventory_balance(ORIGIN, "SKU-2") == Decimal("-5")
        movements = service.selector.inventory_movements(issued_order.id)
        assert len(movements) == 3
        assert all(m.direction is MovementDirection.DEBIT for m in movements)
        assert all(m.outlet_id == ORIGIN for m in movements)
        assert all(m.idempotency_key.startswith("sto:shipment.debit:") for m in movements)


class TestShipmentPreconditions:

    def test_draft_order(self, service, create_order, test_actor_id):
        order = create_order()
        with pytest.raises(PreconditionError):
            service.record_shipment(order.id, test_actor_id, [(order.lines[0].id, Decimal("1"))])

    def test_cancelled_order(self, service, issued_order, test_actor_id):
        service.cancel_order(issued_order.id, test_actor_id)
        with pytest.raises(PreconditionError):
            service.record_shipment(
                issued_order.id, test_actor_id, [(issued_order.lines[0].id, Decimal("1"))],
            )

    def test_rejected_recipient(self, service, issued_order, test_actor_id):
        line_1 = issued_order.lines[0].id
        service.record_shipment(issued_order.id, test_actor_id, [(line_1, Decimal("1"))])
        service.reject_order(issued_order.id, test_actor_id)
        with pytest.raises(PreconditionError):
            service.record_shipment(issued_order.id, test_actor_id, [(line_1, Decimal("1"))])

    def test_accepted_recipient_still_allows_shipment(self, service, issued_order, test_actor_id):
        line_1, line_2 = (line.id for line in issued_order.lines)
        service.record_shipment(issued_order.id, test_actor_id, [(line_1, Decimal("10"))])
        service.accept_order(issued_order.id, test_actor_id)
        batch = service.record_shipment(issued_order.id, test_actor_id, [(line_2, Decimal("5"))])
        assert batch.lines[0].quantity == Decimal("5")


class TestShipmentValidation:

    def test_empty_request(self, service, issued_order, test_actor_id):
        with pytest.raises(ValidationError):
            service.record_shipment(issued_order.id, test_actor_id, [])

    @pytest.mark.parametrize("qty", ["0", "-2"])
    def test_non_positive_quantity(self, service, issued_order, test_actor_id, qty):
        with pytest.raises(ValidationError):
            service.record_shipment(
                issued_order.id, test_actor_id, [(issued_order.lines[0].id, Decimal(qty))],
            )

    def test_unknown_line(self, service, issued_order, test_actor_id):
        with pytest.raises(ValidationError):
            service.record_shipment(issued_order.id, test_actor_id, [(uuid4(), Decimal("1"))])

    def test_line_of_another_order(self, service, issued_order, create_order, test_actor_id):
        other = create_order()
        with pytest.raises(ValidationError):
            service.record_shipment(
                issued_order.id, test_actor_id, [(other.lines[0].id, Decimal("1"))],
            )

    def test_duplicate_line(self, service, issued_order, test_actor_id):
        line_1 = issued_order.lines[0].id
        with pytest.raises(ValidationError):
            service.record_shipment(
                issued_order.id, test_actor_id,
                [(line_1, Decimal("1")), (line_1, Decimal("2"))],
            )


class TestShipmentRequestKey:

    def test_replay_returns_first_batch(self, service, issued_order, test_actor_id):
        line_1 = issued_order.lines[0].id
        first = service.record_shipment(
            issued_order.id, test_actor_id, [(line_1, Decimal("6"))], request_key="ship-1",
        )
        again = service.record_shipment(
            issued_order.id, test_actor_id, [(line_1, Decimal("6"))], request_key="ship-1",
        )
        assert again.id == first.id
        order = service.get_order(issued_order.id)
        assert order.shipped_quantity(line_1) == Decimal("6")
        assert service.selector.inventory_balance(ORIGIN, "SKU-1") == Decimal("-6")

    def test_conflicting_replay(self, service, issued_order, test_actor_id):
        line_1 = issued_order.lines[0].id
        service.record_shipment(
            issued_order.id, test_actor_id, [(line_1, Decimal("6"))], request_key="ship-1",
        )
        with pytest.raises(IdempotencyConflictError):
            service.record_shipment(
                issued_order.id, test_actor_id, [(line_1, Decimal("4"))], request_key="ship-1",
            )


class TestGetShipment:

    def test_by_id(self, service, issued_order, test_actor_id):
        line = issued_order.lines[1]
        recorded = service.record_shipment(issued_order.id, test_actor_id, [(line.id, Decimal("2"))])

        batch = service.get_shipment(recorded.id)
        assert batch.id == recorded.id
        assert batch.document_number == recorded.document_number
        assert batch.order_id == issued_order.id
        assert batch.shipped_by == test_actor_id
        assert [(sl.line_id, sl.quantity) for sl in batch.lines] == [(line.id, Decimal("2"))]

    def test_unknown_batch(self, service):
        missing = uuid4()
        with pytest.raises(BatchNotFoundError) as exc_info:
            service.get_shipment(missing)
        assert exc_info.value.code == "BATCH_NOT_FOUND"
        assert exc_info.value.batch_id == str(missing)

    def test_receipt_id_is_not_a_shipment(self, service, completed_order):
        with pytest.raises(BatchNotFoundError):
            service.get_shipment(completed_order.receipts[0].id)

    def test_malformed_id(self, service):
        with pytest.raises(ValidationError):
            service.get_shipment("SHP-2401-0001")

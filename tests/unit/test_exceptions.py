"""Error taxonomy: stable codes and structured attributes."""

from decimal import Decimal

import pytest

from transfer_kernel.exceptions import (
    AlreadySettledError,
    BatchNotFoundError,
    ConcurrencyConflictError,
    DocumentNumberCollisionError,
    IdempotencyConflictError,
    InvalidTransitionError,
    InventoryLedgerError,
    InvoiceNotFoundError,
    NotFoundError,
    OrderNotFoundError,
    OverPaymentError,
    OverReceiptError,
    OverShipmentError,
    PartialSettlementError,
    PersistenceError,
    PreconditionError,
    TransferEngineError,
    ValidationError,
    error_code,
)


class TestErrorCodes:
    """Every engine error exposes a class-level code."""

    @pytest.mark.parametrize(
        "exc,code",
        [
            (ValidationError("bad"), "VALIDATION_ERROR"),
            (IdempotencyConflictError("k", "a", "b"), "IDEMPOTENCY_CONFLICT"),
            (PreconditionError("o", "accept", "sender not shipped"), "PRECONDITION_FAILED"),
            (InvalidTransitionError("sto_sender", "DRAFT", "cancel"), "INVALID_TRANSITION"),
            (
                OverShipmentError("o", "l", Decimal("1"), Decimal("10"), Decimal("10")),
                "OVER_SHIPMENT",
            ),
            (
                OverReceiptError("o", "l", Decimal("1"), Decimal("5"), Decimal("5")),
                "OVER_RECEIPT",
            ),
            (OverPaymentError("i", Decimal("1"), Decimal("5"), Decimal("5")), "OVER_PAYMENT"),
            (NotFoundError("Thing", "x"), "NOT_FOUND"),
            (OrderNotFoundError("o"), "ORDER_NOT_FOUND"),
            (InvoiceNotFoundError("i"), "INVOICE_NOT_FOUND"),
            (BatchNotFoundError("ShipmentBatch", "b"), "BATCH_NOT_FOUND"),
            (AlreadySettledError("o"), "ALREADY_SETTLED"),
            (PartialSettlementError("o", "i", "ledger down"), "PARTIAL_SETTLEMENT"),
            (PersistenceError("create_order", "disk full"), "PERSISTENCE_ERROR"),
            (DocumentNumberCollisionError("STO-2401-0001"), "DOCUMENT_NUMBER_COLLISION"),
            (InventoryLedgerError("record_shipment", "o", "timeout"), "INVENTORY_LEDGER_ERROR"),
            (ConcurrencyConflictError("o", 3), "CONCURRENCY_CONFLICT"),
        ],
    )
    def test_code(self, exc, code):
        assert exc.code == code
        assert error_code(exc) == code
        assert isinstance(exc, TransferEngineError)

    def test_error_code_of_foreign_exception_is_none(self):
        assert error_code(ValueError("x")) is None


class TestHierarchy:
    """Callers catch families, not only leaves."""

    def test_idempotency_conflict_is_validation_error(self):
        exc = IdempotencyConflictError("req-1", "aaa", "bbb")
        assert isinstance(exc, ValidationError)
        assert exc.field == "request_key"
        assert exc.expected_hash == "aaa"
        assert exc.received_hash == "bbb"

    def test_collision_is_persistence_error(self):
        exc = DocumentNumberCollisionError("STO-2401-0001")
        assert isinstance(exc, PersistenceError)
        assert exc.document_number == "STO-2401-0001"

    def test_specific_not_found_errors(self):
        assert isinstance(OrderNotFoundError("o"), NotFoundError)
        assert InvoiceNotFoundError("i").entity_type == "SettlementInvoice"
        assert BatchNotFoundError("ReceiptBatch", "b").entity_type == "ReceiptBatch"

    def test_inventory_failure_is_persistence_error(self):
        exc = InventoryLedgerError("record_receipt", "o-1", "timeout")
        assert isinstance(exc, PersistenceError)
        assert exc.operation == "record_receipt"
        assert exc.order_id == "o-1"
        assert "timeout" in exc.reason


class TestStructuredAttributes:
    """Attributes are available without parsing messages."""

    def test_over_shipment_remaining(self):
        exc = OverShipmentError("o", "l", Decimal("4"), Decimal("8"), Decimal("10"))
        assert exc.remaining == Decimal("2")
        assert "requested 10" in str(exc)

    def test_over_payment_carries_invoice(self):
        exc = OverPaymentError("inv-1", Decimal("100"), Decimal("2000"), Decimal("2050"))
        assert exc.invoice_id == "inv-1"
        assert exc.remaining == Decimal("50")

    def test_partial_settlement_names_invoice(self):
        exc = PartialSettlementError("o-1", "i-1", "timeout")
        assert exc.invoice_id == "i-1"
        assert "i-1" in str(exc)

    def test_invalid_transition_fields(self):
        exc = InvalidTransitionError("sto_sender", "SHIPPED", "cancel", order_id="o-1")
        assert (exc.workflow, exc.from_state, exc.action, exc.order_id) == (
            "sto_sender", "SHIPPED", "cancel", "o-1",
        )

"""
Typed exception hierarchy for the stock transfer engine.

===============================================================================
CONTRACT
===============================================================================

Every failure the engine reports is a typed exception that:
  1. Derives from TransferEngineError (catch by type, never by message)
  2. Carries a class-level CODE string (machine-readable, stable)
  3. Exposes structured attributes (order_id, line_id, quantities, ...)

Callers MUST branch on the type or on ``exc.code``:

    try:
        service.record_shipment(order_id, actor_id, lines)
    except OverShipmentError as e:
        respond(code=e.code, line=e.line_id, remaining=e.remaining)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    TransferEngineError (base)
    |
    +-- ValidationError
    |   +-- IdempotencyConflictError
    |
    +-- PreconditionError
    +-- InvalidTransitionError
    |
    +-- QuantityInvariantError
    |   +-- OverShipmentError
    |   +-- OverReceiptError
    |   +-- OverPaymentError
    |
    +-- NotFoundError
    |   +-- OrderNotFoundError
    |   +-- InvoiceNotFoundError
    |   +-- BatchNotFoundError
    |
    +-- SettlementError
    |   +-- AlreadySettledError
    |   +-- PartialSettlementError
    |
    +-- PersistenceError
    |   +-- DocumentNumberCollisionError
    |   +-- InventoryLedgerError
    |
    +-- ConcurrencyConflictError

===============================================================================
ERROR CODES
===============================================================================

    | Code                       | Exception                     |
    |----------------------------|-------------------------------|
    | VALIDATION_ERROR           | ValidationError               |
    | IDEMPOTENCY_CONFLICT       | IdempotencyConflictError      |
    | PRECONDITION_FAILED        | PreconditionError             |
    | INVALID_TRANSITION         | InvalidTransitionError        |
    | OVER_SHIPMENT              | OverShipmentError             |
    | OVER_RECEIPT               | OverReceiptError              |
    | OVER_PAYMENT               | OverPaymentError              |
    | NOT_FOUND                  | NotFoundError                 |
    | ORDER_NOT_FOUND            | OrderNotFoundError            |
    | INVOICE_NOT_FOUND          | InvoiceNotFoundError          |
    | BATCH_NOT_FOUND            | BatchNotFoundError            |
    | ALREADY_SETTLED            | AlreadySettledError           |
    | PARTIAL_SETTLEMENT         | PartialSettlementError        |
    | PERSISTENCE_ERROR          | PersistenceError              |
    | DOCUMENT_NUMBER_COLLISION  | DocumentNumberCollisionError  |
    | INVENTORY_LEDGER_ERROR     | InventoryLedgerError          |
    | CONCURRENCY_CONFLICT       | ConcurrencyConflictError      |

===============================================================================
HANDLING PATTERNS
===============================================================================

Retryable (after re-reading state):
    - ConcurrencyConflictError: another writer won the compare-and-swap.
    - PersistenceError: transient storage failure, nothing was committed.

Needs reconciliation:
    - PartialSettlementError: the invoice exists but its payables entry
      does not.  Call ``retry_ledger_posting`` with the same order.

Never retryable without changing input:
    - ValidationError, OverShipmentError, OverReceiptError, OverPaymentError
    - InvalidTransitionError, AlreadySettledError
"""

from decimal import Decimal


class TransferEngineError(Exception):
    """Base exception for all transfer engine errors."""

    code: str = "TRANSFER_ENGINE_ERROR"


def error_code(exc: BaseException) -> str | None:
    """Return the stable error code of an engine exception, else None."""
    if isinstance(exc, TransferEngineError):
        return exc.code
    return None


# Validation


class ValidationError(TransferEngineError):
    """Malformed input: bad quantity, bad outlet pair, empty lines."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


class IdempotencyConflictError(ValidationError):
    """A request key was reused with a different payload."""

    code: str = "IDEMPOTENCY_CONFLICT"

    def __init__(self, request_key: str, expected_hash: str, received_hash: str):
        self.request_key = request_key
        self.expected_hash = expected_hash
        self.received_hash = received_hash
        super().__init__(
            f"Request key {request_key} was already used with a different payload",
            field="request_key",
        )


# State machine


class PreconditionError(TransferEngineError):
    """The counterpart state does not permit the operation."""

    code: str = "PRECONDITION_FAILED"

    def __init__(
        self,
        order_id: str,
        operation: str,
        reason: str,
    ):
        self.order_id = order_id
        self.operation = operation
        self.reason = reason
        super().__init__(
            f"Cannot {operation} order {order_id}: {reason}"
        )


class InvalidTransitionError(TransferEngineError):
    """No edge exists in the state machine for the requested action."""

    code: str = "INVALID_TRANSITION"

    def __init__(
        self,
        workflow: str,
        from_state: str,
        action: str,
        order_id: str | None = None,
    ):
        self.workflow = workflow
        self.from_state = from_state
        self.action = action
        self.order_id = order_id
        super().__init__(
            f"Action '{action}' is not allowed from state {from_state} "
            f"in workflow {workflow}"
        )


# Quantity invariants


class QuantityInvariantError(TransferEngineError):
    """Base for cumulative-quantity violations on a transfer line."""

    code: str = "QUANTITY_INVARIANT"

    def __init__(
        self,
        order_id: str,
        line_id: str,
        attempted: Decimal,
        already: Decimal,
        limit: Decimal,
    ):
        self.order_id = order_id
        self.line_id = line_id
        self.attempted = attempted
        self.already = already
        self.limit = limit
        super().__init__(self._describe())

    @property
    def remaining(self) -> Decimal:
        return self.limit - self.already

    def _describe(self) -> str:
        return (
            f"Line {self.line_id}: {self.attempted} + {self.already} "
            f"exceeds limit {self.limit}"
        )


class OverShipmentError(QuantityInvariantError):
    """Cumulative shipped quantity would exceed the requested quantity."""

    code: str = "OVER_SHIPMENT"

    def _describe(self) -> str:
        return (
            f"Line {self.line_id}: shipping {self.attempted} on top of "
            f"{self.already} exceeds requested {self.limit}"
        )


class OverReceiptError(QuantityInvariantError):
    """Cumulative received quantity would exceed the shipped quantity."""

    code: str = "OVER_RECEIPT"

    def _describe(self) -> str:
        return (
            f"Line {self.line_id}: receiving {self.attempted} on top of "
            f"{self.already} exceeds shipped {self.limit}"
        )


class OverPaymentError(QuantityInvariantError):
    """A payment would exceed the remaining balance of a payable."""

    code: str = "OVER_PAYMENT"

    def __init__(
        self,
        invoice_id: str,
        attempted: Decimal,
        already: Decimal,
        limit: Decimal,
    ):
        self.invoice_id = invoice_id
        super().__init__(
            order_id="",
            line_id=invoice_id,
            attempted=attempted,
            already=already,
            limit=limit,
        )

    def _describe(self) -> str:
        return (
            f"Invoice {self.invoice_id}: paying {self.attempted} on top of "
            f"{self.already} exceeds amount {self.limit}"
        )


# Lookup


class NotFoundError(TransferEngineError):
    """Unknown identifier."""

    code: str = "NOT_FOUND"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} not found: {entity_id}")


class OrderNotFoundError(NotFoundError):
    code: str = "ORDER_NOT_FOUND"

    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__("TransferOrder", order_id)


class InvoiceNotFoundError(NotFoundError):
    code: str = "INVOICE_NOT_FOUND"

    def __init__(self, invoice_id: str):
        self.invoice_id = invoice_id
        super().__init__("SettlementInvoice", invoice_id)


class BatchNotFoundError(NotFoundError):
    code: str = "BATCH_NOT_FOUND"

    def __init__(self, batch_type: str, batch_id: str):
        self.batch_id = batch_id
        super().__init__(batch_type, batch_id)


# Settlement


class SettlementError(TransferEngineError):
    """Base for settlement failures."""

    code: str = "SETTLEMENT_ERROR"


class AlreadySettledError(SettlementError):
    """An invoice already exists for this order."""

    code: str = "ALREADY_SETTLED"

    def __init__(self, order_id: str, invoice_id: str | None = None):
        self.order_id = order_id
        self.invoice_id = invoice_id
        super().__init__(
            f"Order {order_id} is already settled"
            + (f" by invoice {invoice_id}" if invoice_id else "")
        )


class PartialSettlementError(SettlementError):
    """Invoice persisted but the payables ledger entry could not be written.

    The invoice is left in place with ledger status FAILED so it can be
    reconciled; it is never deleted.
    """

    code: str = "PARTIAL_SETTLEMENT"

    def __init__(self, order_id: str, invoice_id: str, reason: str):
        self.order_id = order_id
        self.invoice_id = invoice_id
        self.reason = reason
        super().__init__(
            f"Invoice {invoice_id} for order {order_id} was created but the "
            f"ledger entry failed: {reason}"
        )


# Storage


class PersistenceError(TransferEngineError):
    """Storage failure; the operation's transaction was rolled back."""

    code: str = "PERSISTENCE_ERROR"

    def __init__(self, operation: str, reason: str):
        self.operation = operation
        self.reason = reason
        super().__init__(f"{operation} failed: {reason}")


class DocumentNumberCollisionError(PersistenceError):
    code: str = "DOCUMENT_NUMBER_COLLISION"

    def __init__(self, document_number: str):
        self.document_number = document_number
        super().__init__(
            "allocate_document_number",
            f"document number {document_number} already exists",
        )


class InventoryLedgerError(PersistenceError):
    """The inventory collaborator failed; the batch was rolled back."""

    code: str = "INVENTORY_LEDGER_ERROR"

    def __init__(self, operation: str, order_id: str, reason: str):
        self.order_id = order_id
        super().__init__(operation, f"inventory ledger failed: {reason}")


class ConcurrencyConflictError(TransferEngineError):
    """A concurrent writer changed the order between read and write."""

    code: str = "CONCURRENCY_CONFLICT"

    def __init__(self, order_id: str, expected_revision: int):
        self.order_id = order_id
        self.expected_revision = expected_revision
        super().__init__(
            f"Order {order_id} was modified concurrently "
            f"(expected revision {expected_revision})"
        )

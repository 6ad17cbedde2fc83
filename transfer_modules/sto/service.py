"""
Stock Transfer Module Service (``transfer_modules.sto.service``).

Responsibility
--------------
The single entry point for the stock transfer lifecycle.  Composes the
order store, the two status tracks, the shipment and receipt recorders
and the settlement engine over one session.  This is a **thin glue
layer**: every rule lives in the component it delegates to.

Architecture
------------
Layer: **Modules** -- stateful orchestration wrapper.

1. ``OrderStore`` for creation, locking and the revision compare-and-swap.
2. ``StatusService`` + ``WorkflowExecutor`` for sender/recipient edges.
3. ``ShipmentRecorder`` / ``ReceiptRecorder`` for quantity batches and
   inventory movements.
4. ``SettlementEngine`` for the invoice, payables entry and payments.
5. ``TransferSelector`` for every read.

Invariants
----------
- Each public mutating method owns its transaction boundary through
  ``unit_of_work``: commit on success, rollback on any failure.
- Components never commit.
- Every public method returns frozen DTOs, never ORM instances.

Failure Modes
-------------
- Engine errors propagate unchanged after rollback.
- ``SQLAlchemyError`` surfaces as ``PersistenceError`` after rollback.
- A payables ledger that fails after the invoice committed surfaces as
  ``PartialSettlementError``; the invoice stays, flagged FAILED.

Usage::

    service = TransferService(session, clock=clock)
    order = service.create_order(
        "OUTLET-A", "OUTLET-B", Decimal("50"),
        [LineRequest("SKU-1", Decimal("10"), Decimal("100"))],
        created_by=actor_id,
    )
    service.issue_order(order.id, actor_id)
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from transfer_config import TransferConfig, get_active_config
from transfer_kernel.domain.clock import Clock, SystemClock
from transfer_kernel.exceptions import PartialSettlementError
from transfer_kernel.logging_config import LogContext, get_logger
from transfer_modules._unit_of_work import unit_of_work
from transfer_modules.sto import validation
from transfer_modules.sto.ledgers import (
    InventoryLedger,
    PayablesLedger,
    SqlInventoryLedger,
    SqlPayablesLedger,
)
from transfer_modules.sto.models import (
    LedgerEntry,
    LineQuantity,
    LineRequest,
    OrderPage,
    OrderRole,
    ReceiptBatch,
    RecipientStatus,
    SenderStatus,
    SettlementInvoice,
    ShipmentBatch,
    TransferOrder,
)
from transfer_modules.sto.numbering import DocumentNumberAllocator
from transfer_modules.sto.orm import SettlementInvoiceModel
from transfer_modules.sto.receipt import ReceiptRecorder
from transfer_modules.sto.selectors import TransferSelector
from transfer_modules.sto.settlement import SettlementEngine
from transfer_modules.sto.shipment import ShipmentRecorder
from transfer_modules.sto.store import OrderStore
from transfer_modules.sto.transitions import StatusService
from transfer_services.workflow_executor import WorkflowExecutor

logger = get_logger("modules.sto.service")


class TransferService:
    """
    Orchestrates stock transfer orders from creation to settlement.

    Contract
    --------
    Every mutating method locks the order, runs its checks against that
    locked snapshot, writes, and commits.  Concurrent callers on the same
    order are serialized; a caller that loses a revision race gets
    ``ConcurrencyConflictError`` and nothing is written.

    Non-goals
    ---------
    - No authorization: actor ids are recorded, not checked.
    - No discrepancy handling for short receipts.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        config: TransferConfig | None = None,
        inventory: InventoryLedger | None = None,
        payables: PayablesLedger | None = None,
        workflow_executor: WorkflowExecutor | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._config = config or get_active_config()

        self._inventory = inventory or SqlInventoryLedger(session)
        self._payables = payables or SqlPayablesLedger(session)

        numbers = DocumentNumberAllocator(session, self._config.numbering, self._clock)
        self._store = OrderStore(session, numbers, self._clock)
        self._status = StatusService(
            session, self._store, workflow_executor or WorkflowExecutor(), self._clock,
        )
        self._shipments = ShipmentRecorder(
            session, self._store, self._status, numbers, self._inventory, self._clock,
        )
        self._receipts = ReceiptRecorder(
            session, self._store, self._status, numbers, self._inventory, self._clock,
        )
        self._settlement = SettlementEngine(
            session, self._store, numbers, self._payables, self._clock,
            self._config.settlement_term_days,
        )
        self._selector = TransferSelector(session, self._config.max_page_size)

    @contextmanager
    def _transaction(
        self,
        operation: str,
        order_id: UUID | None = None,
        actor_id: UUID | None = None,
    ) -> Iterator[Session]:
        with LogContext.bind(order_id=order_id, actor_id=actor_id):
            logger.info(f"{operation}_started", extra={"operation": operation})
            with unit_of_work(self._session, operation) as session:
                yield session
            logger.info(f"{operation}_committed", extra={"operation": operation})

    # =========================================================================
    # Orders
    # =========================================================================

    def create_order(
        self,
        origin_outlet_id: str,
        destination_outlet_id: str,
        freight_cost: Decimal,
        lines: Iterable[LineRequest | dict],
        created_by: UUID,
        request_key: str | None = None,
    ) -> TransferOrder:
        """
        Create an order in DRAFT / PENDING.

        Raises:
            ValidationError: malformed input.
            IdempotencyConflictError: ``request_key`` reused with a
                different payload.
            PersistenceError: the line write failed; nothing is stored.
        """
        created_by = validation.to_uuid(created_by, "created_by")
        with self._transaction("create_order", actor_id=created_by):
            order = self._store.create_order(
                origin_outlet_id, destination_outlet_id, freight_cost,
                lines, created_by, request_key=request_key,
            )
            snapshot = order.to_dto()
        return snapshot

    def get_order(self, order_id: UUID) -> TransferOrder:
        return self._selector.get_order(validation.to_uuid(order_id, "order_id"))

    def list_orders(
        self,
        outlet_id: str | None = None,
        role: OrderRole | str | None = None,
        sender_status: SenderStatus | str | None = None,
        recipient_status: RecipientStatus | str | None = None,
        page: int = 1,
        page_size: int | None = None,
    ) -> OrderPage:
        return self._selector.list_orders(
            outlet_id=outlet_id,
            role=role,
            sender_status=sender_status,
            recipient_status=recipient_status,
            page=page,
            page_size=(
                page_size if page_size is not None else self._config.default_page_size
            ),
        )

    # =========================================================================
    # Status transitions
    # =========================================================================

    def issue_order(self, order_id: UUID, actor_id: UUID) -> TransferOrder:
        """DRAFT -> ISSUED."""
        order_id, actor_id = _ids(order_id, actor_id, "actor_id")
        with self._transaction("issue_order", order_id, actor_id):
            order = self._status.issue(order_id, actor_id)
            snapshot = order.to_dto()
        return snapshot

    def cancel_order(self, order_id: UUID, actor_id: UUID) -> TransferOrder:
        """ISSUED -> CANCELLED.  Not possible once anything has shipped."""
        order_id, actor_id = _ids(order_id, actor_id, "actor_id")
        with self._transaction("cancel_order", order_id, actor_id):
            order = self._status.cancel(order_id, actor_id)
            snapshot = order.to_dto()
        return snapshot

    def accept_order(self, order_id: UUID, actor_id: UUID) -> TransferOrder:
        """PENDING -> ACCEPTED.  Requires the sender to be SHIPPED."""
        order_id, actor_id = _ids(order_id, actor_id, "actor_id")
        with self._transaction("accept_order", order_id, actor_id):
            order = self._status.accept(order_id, actor_id)
            snapshot = order.to_dto()
        return snapshot

    def reject_order(self, order_id: UUID, actor_id: UUID) -> TransferOrder:
        """PENDING -> REJECTED.  Requires the sender to be SHIPPED."""
        order_id, actor_id = _ids(order_id, actor_id, "actor_id")
        with self._transaction("reject_order", order_id, actor_id):
            order = self._status.reject(order_id, actor_id)
            snapshot = order.to_dto()
        return snapshot

    # =========================================================================
    # Batches
    # =========================================================================

    def record_shipment(
        self,
        order_id: UUID,
        shipped_by: UUID,
        line_quantities: Iterable[LineQuantity | tuple],
        request_key: str | None = None,
    ) -> ShipmentBatch:
        """
        Record a shipment batch and debit origin inventory.

        Postconditions:
            - Batch, inventory debits and the sender status change are
              committed together.
        """
        order_id, shipped_by = _ids(order_id, shipped_by, "shipped_by")
        with self._transaction("record_shipment", order_id, shipped_by):
            batch = self._shipments.record_shipment(
                order_id, shipped_by, line_quantities, request_key=request_key,
            )
            snapshot = batch.to_dto()
        return snapshot

    def record_receipt(
        self,
        order_id: UUID,
        received_by: UUID,
        line_quantities: Iterable[LineQuantity | tuple],
        request_key: str | None = None,
    ) -> ReceiptBatch:
        """
        Record a receipt batch; completes the order when fully reconciled.

        Postconditions:
            - If the batch completed the order, destination credits and the
              COMPLETED status are committed with it.
        """
        order_id, received_by = _ids(order_id, received_by, "received_by")
        with self._transaction("record_receipt", order_id, received_by):
            batch = self._receipts.record_receipt(
                order_id, received_by, line_quantities, request_key=request_key,
            )
            snapshot = batch.to_dto()
        return snapshot

    def get_shipment(self, batch_id: UUID) -> ShipmentBatch:
        return self._selector.get_shipment(validation.to_uuid(batch_id, "batch_id"))

    def get_receipt(self, batch_id: UUID) -> ReceiptBatch:
        return self._selector.get_receipt(validation.to_uuid(batch_id, "batch_id"))

    # =========================================================================
    # Settlement
    # =========================================================================

    def settle(self, order_id: UUID, requested_by: UUID) -> SettlementInvoice:
        """
        Create the settlement invoice and its payables entry.

        With a transactional payables ledger both commit together.  With an
        external ledger the invoice commits first; if the ledger then
        fails, the invoice is flagged FAILED and ``PartialSettlementError``
        is raised.  ``retry_ledger_posting`` finishes the job.

        Raises:
            PreconditionError: the recipient is not COMPLETED.
            AlreadySettledError: the order already has an invoice.
            PartialSettlementError: invoice durable, ledger entry missing.
        """
        order_id, requested_by = _ids(order_id, requested_by, "requested_by")
        if self._settlement.payables_transactional:
            with self._transaction("settle", order_id, requested_by):
                invoice = self._settlement.prepare_invoice(order_id, requested_by)
                self._settlement.post_to_ledger(invoice, requested_by)
                snapshot = invoice.to_dto()
            return snapshot

        with self._transaction("settle", order_id, requested_by):
            invoice = self._settlement.prepare_invoice(order_id, requested_by)
        return self._post_external(invoice, requested_by)

    def retry_ledger_posting(self, order_id: UUID, requested_by: UUID) -> SettlementInvoice:
        """
        Re-post the payables entry of an invoice whose ledger write failed.

        Raises:
            NotFoundError: the order has no invoice.
            AlreadySettledError: the entry is already posted.
        """
        order_id, requested_by = _ids(order_id, requested_by, "requested_by")
        if self._settlement.payables_transactional:
            with self._transaction("retry_ledger_posting", order_id, requested_by):
                invoice = self._settlement.invoice_for_retry(order_id)
                self._settlement.post_to_ledger(invoice, requested_by)
                snapshot = invoice.to_dto()
            return snapshot

        with self._transaction("retry_ledger_posting", order_id, requested_by):
            invoice = self._settlement.invoice_for_retry(order_id)
        return self._post_external(invoice, requested_by)

    def _post_external(
        self, invoice: SettlementInvoiceModel, requested_by: UUID,
    ) -> SettlementInvoice:
        invoice_id = invoice.id
        order_id = invoice.order_id
        try:
            with self._transaction("post_ledger", order_id, requested_by):
                self._settlement.post_to_ledger(invoice, requested_by)
                snapshot = invoice.to_dto()
            return snapshot
        except Exception as exc:
            reason = str(exc) or type(exc).__name__
            with self._transaction("flag_ledger_failure", order_id, requested_by):
                self._settlement.mark_ledger_failed(invoice_id, reason)
            raise PartialSettlementError(str(order_id), str(invoice_id), reason) from exc

    def record_payment(
        self,
        invoice_id: UUID,
        amount: Decimal,
        paid_by: UUID,
    ) -> LedgerEntry:
        """
        Apply a payment against an invoice's payables entry.

        Returns:
            The entry after the payment.

        Raises:
            InvoiceNotFoundError: unknown invoice.
            PreconditionError: the entry was never posted.
            ValidationError: amount is not positive.
            OverPaymentError: amount exceeds the remaining balance.
        """
        invoice_id = validation.to_uuid(invoice_id, "invoice_id")
        paid_by = validation.to_uuid(paid_by, "paid_by")
        amount = validation.to_decimal(amount, "amount")
        with self._transaction("record_payment", actor_id=paid_by):
            invoice, entry, payment = self._settlement.record_payment(
                invoice_id, amount, paid_by,
            )
            logger.info(
                "sto_invoice_payment_recorded",
                extra={
                    "invoice_id": str(invoice.id),
                    "payment_id": str(payment.id),
                    "amount": str(amount),
                    "remaining_balance": str(entry.remaining_balance),
                    "invoice_status": invoice.status,
                },
            )
        return entry

    def get_invoice(self, order_id: UUID) -> SettlementInvoice | None:
        return self._selector.get_invoice_for_order(validation.to_uuid(order_id, "order_id"))

    def outstanding_payables(
        self,
        debtor_outlet_id: str,
        creditor_outlet_id: str | None = None,
    ) -> list[LedgerEntry]:
        return self._selector.outstanding_payables(debtor_outlet_id, creditor_outlet_id)

    @property
    def selector(self) -> TransferSelector:
        return self._selector


def _ids(order_id, actor_id, actor_field: str) -> tuple[UUID, UUID]:
    return (
        validation.to_uuid(order_id, "order_id"),
        validation.to_uuid(actor_id, actor_field),
    )

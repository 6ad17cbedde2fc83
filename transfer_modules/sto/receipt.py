"""
Receipt Recorder (``transfer_modules.sto.receipt``).

Responsibility
--------------
Records one receipt batch against an accepted order, enforces that
cumulative received quantity per line never exceeds cumulative shipped
quantity, and, once every line is fully reconciled, credits destination
inventory and drives the recipient track ACCEPTED -> COMPLETED.

Architecture position
---------------------
**Modules layer** -- write-side component.  Flush-only.

Invariants enforced
-------------------
* Sum of received quantity per line <= sum of shipped quantity.
* COMPLETED if and only if received == shipped on every line.  Short
  receipts are persisted and leave the order ACCEPTED; discrepancies are
  resolved by an external adjustment process, never by this recorder.
* Destination inventory is credited once, at completion, with the
  reconciled quantity of each line.

Failure modes
-------------
* ``PreconditionError`` -- recipient not ACCEPTED.
* ``ValidationError`` -- empty request, unknown or repeated line, qty <= 0.
* ``OverReceiptError`` -- a line would exceed its shipped quantity.
* ``InventoryLedgerError`` -- the destination credit failed at completion.
"""

from __future__ import annotations

from collections.abc import Iterable
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from transfer_kernel.domain.clock import Clock
from transfer_kernel.exceptions import (
    IdempotencyConflictError,
    OverReceiptError,
    PreconditionError,
)
from transfer_kernel.logging_config import get_logger
from transfer_kernel.services.base import BaseService
from transfer_kernel.utils.hashing import hash_payload
from transfer_kernel.utils.idempotency import generate_idempotency_key
from transfer_modules.sto import validation
from transfer_modules.sto.ledgers import InventoryLedger, inventory_call
from transfer_modules.sto.models import LineQuantity
from transfer_modules.sto.numbering import DocumentNumberAllocator
from transfer_modules.sto.orm import (
    ReceiptBatchModel,
    ReceiptLineModel,
    TransferOrderModel,
)
from transfer_modules.sto.shipment import shipped_totals
from transfer_modules.sto.store import OrderStore
from transfer_modules.sto.transitions import StatusService
from transfer_modules.sto.workflows import RECIPIENT_WORKFLOW

logger = get_logger("modules.sto.receipt")


def received_totals(order: TransferOrderModel) -> dict[UUID, Decimal]:
    """Cumulative received quantity per line id."""
    totals = {line.id: Decimal("0") for line in order.lines}
    for batch in order.receipts:
        for line in batch.lines:
            totals[line.line_id] = totals.get(line.line_id, Decimal("0")) + line.quantity
    return totals


class ReceiptRecorder(BaseService[ReceiptBatchModel]):
    """Records receipt batches and completes fully reconciled orders."""

    def __init__(
        self,
        session: Session,
        store: OrderStore,
        status: StatusService,
        numbers: DocumentNumberAllocator,
        inventory: InventoryLedger,
        clock: Clock,
    ):
        super().__init__(session)
        self._store = store
        self._status = status
        self._numbers = numbers
        self._inventory = inventory
        self._clock = clock

    def record_receipt(
        self,
        order_id: UUID,
        received_by: UUID,
        line_quantities: Iterable[LineQuantity | tuple],
        request_key: str | None = None,
    ) -> ReceiptBatchModel:
        """
        Record one receipt batch.

        Postconditions:
            - Every line's cumulative received quantity <= shipped.
            - If every line now has received == shipped, destination
              inventory is credited and the recipient is COMPLETED.
        """
        order = self._store.lock(order_id)
        lines = {line.id: line for line in order.lines}
        quantities = validation.line_quantities(line_quantities, set(lines))

        request_hash = None
        if request_key is not None:
            request_hash = hash_payload(validation.quantities_fingerprint("receipt", quantities))
            replay = self._find_replay(order.id, request_key, request_hash)
            if replay is not None:
                return replay

        if order.recipient_status != "ACCEPTED":
            raise PreconditionError(
                str(order.id), "record_receipt",
                f"recipient status is {order.recipient_status}, expected ACCEPTED",
            )

        shipped = shipped_totals(order)
        received = received_totals(order)

        # INVARIANT: cumulative received <= cumulative shipped, per line
        for q in quantities:
            if received[q.line_id] + q.quantity > shipped[q.line_id]:
                logger.warning(
                    "sto_over_receipt_rejected",
                    extra={
                        "order_id": str(order.id),
                        "line_id": str(q.line_id),
                        "attempted": str(q.quantity),
                        "already_received": str(received[q.line_id]),
                        "shipped": str(shipped[q.line_id]),
                    },
                )
                raise OverReceiptError(
                    order_id=str(order.id),
                    line_id=str(q.line_id),
                    attempted=q.quantity,
                    already=received[q.line_id],
                    limit=shipped[q.line_id],
                )

        for q in quantities:
            received[q.line_id] += q.quantity
        reconciled = all(received[line_id] == shipped[line_id] for line_id in lines)

        batch = ReceiptBatchModel(
            document_number=self._numbers.next_receipt_number(),
            received_at=self._clock.now_utc(),
            completed_order=reconciled,
            request_key=request_key,
            request_hash=request_hash,
            created_by_id=received_by,
        )
        for q in quantities:
            batch.lines.append(
                ReceiptLineModel(
                    line_id=q.line_id,
                    item_id=lines[q.line_id].item_id,
                    quantity=q.quantity,
                    created_by_id=received_by,
                )
            )

        if reconciled:
            self._complete(order, received_by, shipped, received)
        else:
            self._store.claim(order, received_by)

        order.receipts.append(batch)
        self.session.flush()

        logger.info(
            "sto_receipt_recorded",
            extra={
                "order_id": str(order.id),
                "document_number": batch.document_number,
                "line_count": len(quantities),
                "completed_order": reconciled,
                "outstanding_lines": sum(
                    1 for line_id in lines if received[line_id] != shipped[line_id]
                ),
            },
        )
        return batch

    def _complete(
        self,
        order: TransferOrderModel,
        actor_id: UUID,
        shipped: dict[UUID, Decimal],
        received: dict[UUID, Decimal],
    ) -> None:
        with inventory_call("record_receipt", order.id):
            for line in order.lines:
                quantity = received[line.id]
                if quantity <= 0:
                    continue
                self._inventory.credit(
                    outlet_id=order.destination_outlet_id,
                    item_id=line.item_id,
                    quantity=quantity,
                    idempotency_key=generate_idempotency_key(
                        "sto", "receipt.credit", f"{order.id}/{line.id}",
                    ),
                    actor_id=actor_id,
                    order_id=order.id,
                )

        self._status.advance(
            order,
            RECIPIENT_WORKFLOW,
            "complete",
            actor_id,
            context={
                "line_quantities": [
                    (shipped[line.id], received[line.id]) for line in order.lines
                ],
            },
        )

    def _find_replay(
        self, order_id: UUID, request_key: str, request_hash: str,
    ) -> ReceiptBatchModel | None:
        existing = self.session.execute(
            select(ReceiptBatchModel).where(
                ReceiptBatchModel.order_id == order_id,
                ReceiptBatchModel.request_key == request_key,
            )
        ).scalar_one_or_none()
        if existing is None:
            return None
        if existing.request_hash != request_hash:
            raise IdempotencyConflictError(
                request_key, existing.request_hash or "", request_hash,
            )
        logger.info(
            "sto_receipt_replayed",
            extra={"order_id": str(order_id), "document_number": existing.document_number},
        )
        return existing

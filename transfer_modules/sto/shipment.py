"""
Shipment Recorder (``transfer_modules.sto.shipment``).

Responsibility
--------------
Records one shipment batch against an order, enforces that cumulative
shipped quantity per line never exceeds the requested quantity, debits
origin-outlet inventory and, on the first batch, drives the sender track
ISSUED -> SHIPPED.

Architecture position
---------------------
**Modules layer** -- write-side component.  Flush-only.  All checks run
against the order row locked by ``OrderStore.lock``.

Invariants enforced
-------------------
* Sum of shipped quantity per line <= requested quantity.
* The batch, the inventory debits and the status change are written in
  one transaction; none is visible without the others.
* A batch replayed with the same ``request_key`` is returned, not
  re-recorded.

Failure modes
-------------
* ``ValidationError`` -- empty request, unknown or repeated line, qty <= 0.
* ``OverShipmentError`` -- a line would exceed its requested quantity.
* ``PreconditionError`` -- sender not ISSUED/SHIPPED, or recipient
  already REJECTED/COMPLETED.
* ``InventoryLedgerError`` -- the origin debit failed; nothing is kept.
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
    OverShipmentError,
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
    ShipmentBatchModel,
    ShipmentLineModel,
    TransferOrderModel,
)
from transfer_modules.sto.store import OrderStore
from transfer_modules.sto.transitions import StatusService
from transfer_modules.sto.workflows import SENDER_WORKFLOW

logger = get_logger("modules.sto.shipment")

_SHIPPABLE_SENDER = ("ISSUED", "SHIPPED")
_CLOSED_RECIPIENT = ("REJECTED", "COMPLETED")


def shipped_totals(order: TransferOrderModel) -> dict[UUID, Decimal]:
    """Cumulative shipped quantity per line id."""
    totals = {line.id: Decimal("0") for line in order.lines}
    for batch in order.shipments:
        for line in batch.lines:
            totals[line.line_id] = totals.get(line.line_id, Decimal("0")) + line.quantity
    return totals


class ShipmentRecorder(BaseService[ShipmentBatchModel]):
    """Records shipment batches and the matching origin debits."""

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

    def record_shipment(
        self,
        order_id: UUID,
        shipped_by: UUID,
        line_quantities: Iterable[LineQuantity | tuple],
        request_key: str | None = None,
    ) -> ShipmentBatchModel:
        """
        Record one shipment batch.

        Postconditions:
            - Every line's cumulative shipped quantity <= requested.
            - Origin inventory is debited once per batch line.
            - The sender is SHIPPED.
        """
        order = self._store.lock(order_id)
        requested = {line.id: line for line in order.lines}
        quantities = validation.line_quantities(line_quantities, set(requested))

        request_hash = None
        if request_key is not None:
            request_hash = hash_payload(validation.quantities_fingerprint("shipment", quantities))
            replay = self._find_replay(order.id, request_key, request_hash)
            if replay is not None:
                return replay

        if order.sender_status not in _SHIPPABLE_SENDER:
            raise PreconditionError(
                str(order.id), "record_shipment",
                f"sender status is {order.sender_status}, expected ISSUED or SHIPPED",
            )
        if order.recipient_status in _CLOSED_RECIPIENT:
            raise PreconditionError(
                str(order.id), "record_shipment",
                f"recipient status is {order.recipient_status}",
            )

        # INVARIANT: cumulative shipped <= requested, per line
        totals = shipped_totals(order)
        for q in quantities:
            line = requested[q.line_id]
            if totals[q.line_id] + q.quantity > line.quantity_requested:
                logger.warning(
                    "sto_over_shipment_rejected",
                    extra={
                        "order_id": str(order.id),
                        "line_id": str(q.line_id),
                        "attempted": str(q.quantity),
                        "already_shipped": str(totals[q.line_id]),
                        "requested": str(line.quantity_requested),
                    },
                )
                raise OverShipmentError(
                    order_id=str(order.id),
                    line_id=str(q.line_id),
                    attempted=q.quantity,
                    already=totals[q.line_id],
                    limit=line.quantity_requested,
                )

        first_shipment = order.sender_status == "ISSUED"
        if first_shipment:
            self._status.advance(order, SENDER_WORKFLOW, "ship", shipped_by)
        else:
            self._store.claim(order, shipped_by)

        batch = ShipmentBatchModel(
            document_number=self._numbers.next_shipment_number(),
            shipped_at=self._clock.now_utc(),
            request_key=request_key,
            request_hash=request_hash,
            created_by_id=shipped_by,
        )
        for q in quantities:
            batch.lines.append(
                ShipmentLineModel(
                    line_id=q.line_id,
                    item_id=requested[q.line_id].item_id,
                    quantity=q.quantity,
                    created_by_id=shipped_by,
                )
            )
        order.shipments.append(batch)
        self.session.flush()

        with inventory_call("record_shipment", order.id):
            for q in quantities:
                self._inventory.debit(
                    outlet_id=order.origin_outlet_id,
                    item_id=requested[q.line_id].item_id,
                    quantity=q.quantity,
                    idempotency_key=generate_idempotency_key(
                        "sto", "shipment.debit", f"{batch.id}/{q.line_id}",
                    ),
                    actor_id=shipped_by,
                    order_id=order.id,
                )

        logger.info(
            "sto_shipment_recorded",
            extra={
                "order_id": str(order.id),
                "document_number": batch.document_number,
                "line_count": len(quantities),
                "first_shipment": first_shipment,
                "total_quantity": str(sum((q.quantity for q in quantities), Decimal("0"))),
            },
        )
        return batch

    def _find_replay(
        self, order_id: UUID, request_key: str, request_hash: str,
    ) -> ShipmentBatchModel | None:
        existing = self.session.execute(
            select(ShipmentBatchModel).where(
                ShipmentBatchModel.order_id == order_id,
                ShipmentBatchModel.request_key == request_key,
            )
        ).scalar_one_or_none()
        if existing is None:
            return None
        if existing.request_hash != request_hash:
            raise IdempotencyConflictError(
                request_key, existing.request_hash or "", request_hash,
            )
        logger.info(
            "sto_shipment_replayed",
            extra={"order_id": str(order_id), "document_number": existing.document_number},
        )
        return existing

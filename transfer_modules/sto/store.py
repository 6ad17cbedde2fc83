"""
Order Store (``transfer_modules.sto.store``).

Responsibility
--------------
Creates transfer orders with their lines and provides the per-order
serialization primitives every mutating component uses: ``lock`` (row
lock + fresh read) and ``claim`` (compare-and-swap on the order revision).

Architecture position
---------------------
**Modules layer** -- write-side component.  Flush-only; the module
service owns commit/rollback.

Invariants enforced
-------------------
* origin != destination, at least one line, every quantity > 0.
* items_subtotal and grand_total are computed here, never supplied.
* Header and lines are written as one unit.  If the line write fails,
  the header is removed before the error surfaces.
* Document numbers come from locked counter rows; a collision fails the
  creation.

Failure modes
-------------
* ``ValidationError`` -- malformed input.
* ``IdempotencyConflictError`` -- request key reused with another payload.
* ``PersistenceError`` -- the line write failed (header compensated).
* ``DocumentNumberCollisionError`` -- document number already taken.
* ``OrderNotFoundError`` -- unknown order id.
* ``ConcurrencyConflictError`` -- revision moved between read and write.
"""

from __future__ import annotations

from collections.abc import Iterable
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import set_committed_value

from transfer_kernel.domain.clock import Clock
from transfer_kernel.exceptions import (
    ConcurrencyConflictError,
    DocumentNumberCollisionError,
    IdempotencyConflictError,
    OrderNotFoundError,
    PersistenceError,
    ValidationError,
)
from transfer_kernel.logging_config import get_logger
from transfer_kernel.services.base import BaseService
from transfer_kernel.utils.hashing import hash_payload
from transfer_modules.sto import validation
from transfer_modules.sto.models import LineRequest
from transfer_modules.sto.numbering import DocumentNumberAllocator
from transfer_modules.sto.orm import TransferLineModel, TransferOrderModel

logger = get_logger("modules.sto.store")


class OrderStore(BaseService[TransferOrderModel]):
    """Persistence of transfer orders and their lines."""

    def __init__(
        self,
        session: Session,
        numbers: DocumentNumberAllocator,
        clock: Clock,
    ):
        super().__init__(session)
        self._numbers = numbers
        self._clock = clock

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def create_order(
        self,
        origin_outlet_id: str,
        destination_outlet_id: str,
        freight_cost: Decimal,
        lines: Iterable[LineRequest | dict],
        created_by: UUID,
        request_key: str | None = None,
    ) -> TransferOrderModel:
        """
        Validate and persist a new order in DRAFT / PENDING.

        Postconditions:
            - Header and all lines are flushed, or nothing is.
            - A replayed ``request_key`` with the same payload returns the
              order created by the first call.
        """
        origin = validation.outlet_id(origin_outlet_id, "origin_outlet_id")
        destination = validation.outlet_id(destination_outlet_id, "destination_outlet_id")
        if origin == destination:
            raise ValidationError(
                "Origin and destination outlet must differ",
                field="destination_outlet_id",
            )
        freight = validation.to_decimal(freight_cost, "freight_cost")
        if freight < 0:
            raise ValidationError("freight_cost cannot be negative", field="freight_cost")
        requested = validation.line_requests(lines)

        request_hash = None
        if request_key is not None:
            request_hash = hash_payload({
                "origin": origin,
                "destination": destination,
                "freight_cost": freight,
                "lines": [[r.item_id, r.quantity, r.unit_price] for r in requested],
            })
            existing = self._find_by_request_key(request_key)
            if existing is not None:
                return self._replay(existing, request_key, request_hash)

        subtotal = sum((r.quantity * r.unit_price for r in requested), Decimal("0"))
        document_number = self._numbers.next_order_number()

        header = TransferOrderModel(
            document_number=document_number,
            origin_outlet_id=origin,
            destination_outlet_id=destination,
            freight_cost=freight,
            items_subtotal=subtotal,
            grand_total=subtotal + freight,
            sender_status="DRAFT",
            recipient_status="PENDING",
            revision=0,
            request_key=request_key,
            request_hash=request_hash,
            created_at=self._clock.now_utc(),
            created_by_id=created_by,
        )

        savepoint = self.session.begin_nested()
        try:
            self.session.add(header)
            self.session.flush()
            savepoint.commit()
        except IntegrityError:
            savepoint.rollback()
            if request_key is not None:
                existing = self._find_by_request_key(request_key)
                if existing is not None:
                    return self._replay(existing, request_key, request_hash)
            logger.error(
                "sto_document_number_collision",
                extra={"document_number": document_number},
            )
            raise DocumentNumberCollisionError(document_number)

        savepoint = self.session.begin_nested()
        try:
            self._write_lines(header, requested, created_by)
            savepoint.commit()
        except SQLAlchemyError as exc:
            savepoint.rollback()
            self._discard_header(header)
            logger.error(
                "sto_order_lines_write_failed",
                extra={
                    "order_id": str(header.id),
                    "document_number": document_number,
                    "error": str(exc).splitlines()[0] if str(exc) else type(exc).__name__,
                },
            )
            raise PersistenceError(
                "create_order", "line write failed; order header removed",
            ) from exc

        logger.info(
            "sto_order_created",
            extra={
                "order_id": str(header.id),
                "document_number": document_number,
                "origin_outlet_id": origin,
                "destination_outlet_id": destination,
                "line_count": len(requested),
                "items_subtotal": str(subtotal),
                "grand_total": str(header.grand_total),
            },
        )
        return header

    def _write_lines(
        self,
        header: TransferOrderModel,
        requested: list[LineRequest],
        created_by: UUID,
    ) -> None:
        for number, request in enumerate(requested, start=1):
            header.lines.append(
                TransferLineModel(
                    line_number=number,
                    item_id=request.item_id,
                    quantity_requested=request.quantity,
                    unit_price=request.unit_price,
                    created_by_id=created_by,
                )
            )
        self.session.flush()

    def _discard_header(self, header: TransferOrderModel) -> None:
        """Compensation for a failed line write."""
        order_id = header.id
        document_number = header.document_number
        for line in list(header.lines):
            if line in self.session:
                self.session.expunge(line)
        set_committed_value(header, "lines", [])
        self.session.delete(header)
        self.session.flush()
        logger.warning(
            "sto_order_header_compensated",
            extra={"order_id": str(order_id), "document_number": document_number},
        )

    def _find_by_request_key(self, request_key: str) -> TransferOrderModel | None:
        return self.session.execute(
            select(TransferOrderModel).where(TransferOrderModel.request_key == request_key)
        ).scalar_one_or_none()

    def _replay(
        self,
        existing: TransferOrderModel,
        request_key: str,
        request_hash: str,
    ) -> TransferOrderModel:
        if existing.request_hash != request_hash:
            raise IdempotencyConflictError(
                request_key, existing.request_hash or "", request_hash,
            )
        logger.info(
            "sto_order_create_replayed",
            extra={"order_id": str(existing.id), "request_key": request_key},
        )
        return existing

    # ------------------------------------------------------------------
    # Locking
    # ------------------------------------------------------------------

    def lock(self, order_id: UUID) -> TransferOrderModel:
        """
        Lock the order row for the rest of the transaction and re-read it.

        Every status-read-then-write starts here so concurrent callers for
        the same order are serialized.
        """
        self.session.expire_all()
        order = self.session.execute(
            select(TransferOrderModel)
            .where(TransferOrderModel.id == order_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if order is None:
            raise OrderNotFoundError(str(order_id))
        return order

    def claim(self, order: TransferOrderModel, actor_id: UUID) -> int:
        """
        Advance the order revision if nobody else has since it was read.

        Returns:
            The new revision.

        Raises:
            ConcurrencyConflictError: the stored revision no longer matches.
        """
        expected = order.revision
        result = self.session.execute(
            update(TransferOrderModel)
            .where(
                TransferOrderModel.id == order.id,
                TransferOrderModel.revision == expected,
            )
            .values(revision=expected + 1, updated_by_id=actor_id)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            logger.warning(
                "sto_order_revision_conflict",
                extra={"order_id": str(order.id), "expected_revision": expected},
            )
            raise ConcurrencyConflictError(str(order.id), expected)
        set_committed_value(order, "revision", expected + 1)
        set_committed_value(order, "updated_by_id", actor_id)
        return expected + 1

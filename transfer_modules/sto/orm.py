"""
Stock Transfer ORM Models (``transfer_modules.sto.orm``).

Responsibility
--------------
SQLAlchemy persistence models for the STO module.  Maps the frozen domain
dataclasses from ``models.py`` to database tables.

Architecture position
---------------------
**Modules layer** -- persistence.  Imports from ``transfer_kernel.db.base``
and sibling ``models.py``.  MUST NOT be imported by ``transfer_kernel``.

Invariants enforced
-------------------
* origin_outlet_id != destination_outlet_id (ck_sto_orders_distinct_outlets).
* Requested, shipped and received quantities are strictly positive.
* At most one settlement invoice per order (uq_sto_invoices_order_id).
* At most one payables entry per invoice (uq_sto_ap_ledger_invoice_id).
* Inventory movements are unique per idempotency key.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    ForeignKey,
    Index,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from transfer_kernel.db.base import TrackedBase


# ---------------------------------------------------------------------------
# 1. TransferOrderModel
# ---------------------------------------------------------------------------


class TransferOrderModel(TrackedBase):
    """
    ORM model for transfer order headers.

    Guarantees:
        - document_number is unique (uq_sto_orders_document_number).
        - revision is advanced by every state change (compare-and-swap).
        - request_key, when present, is unique.
    """

    __tablename__ = "sto_orders"

    __table_args__ = (
        UniqueConstraint("document_number", name="uq_sto_orders_document_number"),
        UniqueConstraint("request_key", name="uq_sto_orders_request_key"),
        CheckConstraint(
            "origin_outlet_id <> destination_outlet_id",
            name="ck_sto_orders_distinct_outlets",
        ),
        CheckConstraint("freight_cost >= 0", name="ck_sto_orders_freight"),
        Index("idx_sto_orders_origin", "origin_outlet_id"),
        Index("idx_sto_orders_destination", "destination_outlet_id"),
        Index("idx_sto_orders_created_at", "created_at"),
    )

    document_number: Mapped[str] = mapped_column(String(50), nullable=False)
    origin_outlet_id: Mapped[str] = mapped_column(String(64), nullable=False)
    destination_outlet_id: Mapped[str] = mapped_column(String(64), nullable=False)
    freight_cost: Mapped[Decimal] = mapped_column(nullable=False)
    items_subtotal: Mapped[Decimal] = mapped_column(nullable=False)
    grand_total: Mapped[Decimal] = mapped_column(nullable=False)
    sender_status: Mapped[str] = mapped_column(String(20), default="DRAFT")
    recipient_status: Mapped[str] = mapped_column(String(20), default="PENDING")
    revision: Mapped[int] = mapped_column(nullable=False, default=0)
    request_key: Mapped[str | None] = mapped_column(String(128), nullable=True)
    request_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    issued_at: Mapped[datetime | None] = mapped_column(nullable=True)
    shipped_at: Mapped[datetime | None] = mapped_column(nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(nullable=True)
    accepted_at: Mapped[datetime | None] = mapped_column(nullable=True)
    rejected_at: Mapped[datetime | None] = mapped_column(nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    lines: Mapped[list["TransferLineModel"]] = relationship(
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="TransferLineModel.line_number",
        lazy="selectin",
    )
    shipments: Mapped[list["ShipmentBatchModel"]] = relationship(
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="ShipmentBatchModel.document_number",
        lazy="selectin",
    )
    receipts: Mapped[list["ReceiptBatchModel"]] = relationship(
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="ReceiptBatchModel.document_number",
        lazy="selectin",
    )

    def to_dto(self):
        """Convert ORM model to frozen dataclass."""
        from transfer_modules.sto.models import (
            RecipientStatus,
            SenderStatus,
            TransferOrder,
        )

        return TransferOrder(
            id=self.id,
            document_number=self.document_number,
            origin_outlet_id=self.origin_outlet_id,
            destination_outlet_id=self.destination_outlet_id,
            freight_cost=self.freight_cost,
            items_subtotal=self.items_subtotal,
            grand_total=self.grand_total,
            sender_status=SenderStatus(self.sender_status),
            recipient_status=RecipientStatus(self.recipient_status),
            created_by=self.created_by_id,
            created_at=self.created_at,
            revision=self.revision,
            lines=tuple(line.to_dto() for line in self.lines),
            shipments=tuple(batch.to_dto() for batch in self.shipments),
            receipts=tuple(batch.to_dto() for batch in self.receipts),
            issued_at=self.issued_at,
            shipped_at=self.shipped_at,
            cancelled_at=self.cancelled_at,
            accepted_at=self.accepted_at,
            rejected_at=self.rejected_at,
            completed_at=self.completed_at,
        )

    def __repr__(self) -> str:
        return (
            f"<TransferOrderModel {self.document_number} "
            f"sender={self.sender_status} recipient={self.recipient_status}>"
        )


# ---------------------------------------------------------------------------
# 2. TransferLineModel
# ---------------------------------------------------------------------------


class TransferLineModel(TrackedBase):
    """ORM model for requested lines.  Written once at order creation."""

    __tablename__ = "sto_order_lines"

    __table_args__ = (
        UniqueConstraint("order_id", "line_number", name="uq_sto_order_lines_number"),
        CheckConstraint("quantity_requested > 0", name="ck_sto_order_lines_qty"),
        CheckConstraint("unit_price >= 0", name="ck_sto_order_lines_price"),
        Index("idx_sto_order_lines_order_id", "order_id"),
    )

    order_id: Mapped[UUID] = mapped_column(ForeignKey("sto_orders.id"), nullable=False)
    line_number: Mapped[int] = mapped_column(nullable=False)
    item_id: Mapped[str] = mapped_column(String(64), nullable=False)
    quantity_requested: Mapped[Decimal] = mapped_column(nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(nullable=False)

    order: Mapped["TransferOrderModel"] = relationship(back_populates="lines")

    def to_dto(self):
        from transfer_modules.sto.models import TransferLine

        return TransferLine(
            id=self.id,
            order_id=self.order_id,
            line_number=self.line_number,
            item_id=self.item_id,
            quantity_requested=self.quantity_requested,
            unit_price=self.unit_price,
        )

    def __repr__(self) -> str:
        return (
            f"<TransferLineModel line={self.line_number} item={self.item_id} "
            f"qty={self.quantity_requested}>"
        )


# ---------------------------------------------------------------------------
# 3. Shipment batches
# ---------------------------------------------------------------------------


class ShipmentBatchModel(TrackedBase):
    """
    ORM model for shipment batches.

    Guarantees:
        - document_number is unique.
        - (order_id, request_key) is unique when request_key is set.
    """

    __tablename__ = "sto_shipments"

    __table_args__ = (
        UniqueConstraint("document_number", name="uq_sto_shipments_document_number"),
        UniqueConstraint("order_id", "request_key", name="uq_sto_shipments_request_key"),
        Index("idx_sto_shipments_order_id", "order_id"),
    )

    order_id: Mapped[UUID] = mapped_column(ForeignKey("sto_orders.id"), nullable=False)
    document_number: Mapped[str] = mapped_column(String(50), nullable=False)
    shipped_at: Mapped[datetime] = mapped_column(nullable=False)
    request_key: Mapped[str | None] = mapped_column(String(128), nullable=True)
    request_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)

    order: Mapped["TransferOrderModel"] = relationship(back_populates="shipments")
    lines: Mapped[list["ShipmentLineModel"]] = relationship(
        back_populates="batch",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def to_dto(self):
        from transfer_modules.sto.models import ShipmentBatch

        return ShipmentBatch(
            id=self.id,
            order_id=self.order_id,
            document_number=self.document_number,
            shipped_by=self.created_by_id,
            shipped_at=self.shipped_at,
            lines=tuple(line.to_dto() for line in self.lines),
        )

    def __repr__(self) -> str:
        return f"<ShipmentBatchModel {self.document_number} lines={len(self.lines)}>"


class ShipmentLineModel(TrackedBase):
    __tablename__ = "sto_shipment_lines"

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_sto_shipment_lines_qty"),
        Index("idx_sto_shipment_lines_batch_id", "batch_id"),
        Index("idx_sto_shipment_lines_line_id", "line_id"),
    )

    batch_id: Mapped[UUID] = mapped_column(ForeignKey("sto_shipments.id"), nullable=False)
    line_id: Mapped[UUID] = mapped_column(ForeignKey("sto_order_lines.id"), nullable=False)
    item_id: Mapped[str] = mapped_column(String(64), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(nullable=False)

    batch: Mapped["ShipmentBatchModel"] = relationship(back_populates="lines")

    def to_dto(self):
        from transfer_modules.sto.models import ShipmentLine

        return ShipmentLine(
            id=self.id,
            batch_id=self.batch_id,
            line_id=self.line_id,
            item_id=self.item_id,
            quantity=self.quantity,
        )


# ---------------------------------------------------------------------------
# 4. Receipt batches
# ---------------------------------------------------------------------------


class ReceiptBatchModel(TrackedBase):
    """
    ORM model for receipt batches.

    ``completed_order`` records whether this batch triggered completion.
    """

    __tablename__ = "sto_receipts"

    __table_args__ = (
        UniqueConstraint("document_number", name="uq_sto_receipts_document_number"),
        UniqueConstraint("order_id", "request_key", name="uq_sto_receipts_request_key"),
        Index("idx_sto_receipts_order_id", "order_id"),
    )

    order_id: Mapped[UUID] = mapped_column(ForeignKey("sto_orders.id"), nullable=False)
    document_number: Mapped[str] = mapped_column(String(50), nullable=False)
    received_at: Mapped[datetime] = mapped_column(nullable=False)
    completed_order: Mapped[bool] = mapped_column(Boolean, default=False)
    request_key: Mapped[str | None] = mapped_column(String(128), nullable=True)
    request_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)

    order: Mapped["TransferOrderModel"] = relationship(back_populates="receipts")
    lines: Mapped[list["ReceiptLineModel"]] = relationship(
        back_populates="batch",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def to_dto(self):
        from transfer_modules.sto.models import ReceiptBatch

        return ReceiptBatch(
            id=self.id,
            order_id=self.order_id,
            document_number=self.document_number,
            received_by=self.created_by_id,
            received_at=self.received_at,
            lines=tuple(line.to_dto() for line in self.lines),
            completed_order=self.completed_order,
        )

    def __repr__(self) -> str:
        return f"<ReceiptBatchModel {self.document_number} lines={len(self.lines)}>"


class ReceiptLineModel(TrackedBase):
    __tablename__ = "sto_receipt_lines"

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_sto_receipt_lines_qty"),
        Index("idx_sto_receipt_lines_batch_id", "batch_id"),
        Index("idx_sto_receipt_lines_line_id", "line_id"),
    )

    batch_id: Mapped[UUID] = mapped_column(ForeignKey("sto_receipts.id"), nullable=False)
    line_id: Mapped[UUID] = mapped_column(ForeignKey("sto_order_lines.id"), nullable=False)
    item_id: Mapped[str] = mapped_column(String(64), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(nullable=False)

    batch: Mapped["ReceiptBatchModel"] = relationship(back_populates="lines")

    def to_dto(self):
        from transfer_modules.sto.models import ReceiptLine

        return ReceiptLine(
            id=self.id,
            batch_id=self.batch_id,
            line_id=self.line_id,
            item_id=self.item_id,
            quantity=self.quantity,
        )


# ---------------------------------------------------------------------------
# 5. SettlementInvoiceModel
# ---------------------------------------------------------------------------


class SettlementInvoiceModel(TrackedBase):
    """
    ORM model for settlement invoices.

    Guarantees:
        - One invoice per order (uq_sto_invoices_order_id).  This constraint
          is the last line of defence against a double settlement.
        - ledger_status is FAILED while the payables entry is missing.
    """

    __tablename__ = "sto_invoices"

    __table_args__ = (
        UniqueConstraint("order_id", name="uq_sto_invoices_order_id"),
        UniqueConstraint("document_number", name="uq_sto_invoices_document_number"),
        CheckConstraint("amount >= 0", name="ck_sto_invoices_amount"),
        Index("idx_sto_invoices_debtor", "debtor_outlet_id"),
        Index("idx_sto_invoices_ledger_status", "ledger_status"),
    )

    order_id: Mapped[UUID] = mapped_column(ForeignKey("sto_orders.id"), nullable=False)
    document_number: Mapped[str] = mapped_column(String(64), nullable=False)
    debtor_outlet_id: Mapped[str] = mapped_column(String(64), nullable=False)
    creditor_outlet_id: Mapped[str] = mapped_column(String(64), nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    issue_date: Mapped[date] = mapped_column(Date, nullable=False)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="UNPAID")
    ledger_status: Mapped[str] = mapped_column(String(20), default="PENDING")
    ledger_error: Mapped[str | None] = mapped_column(String(500), nullable=True)

    def to_dto(self):
        from transfer_modules.sto.models import (
            InvoiceStatus,
            LedgerPostingStatus,
            SettlementInvoice,
        )

        return SettlementInvoice(
            id=self.id,
            order_id=self.order_id,
            document_number=self.document_number,
            debtor_outlet_id=self.debtor_outlet_id,
            creditor_outlet_id=self.creditor_outlet_id,
            amount=self.amount,
            issue_date=self.issue_date,
            due_date=self.due_date,
            status=InvoiceStatus(self.status),
            ledger_status=LedgerPostingStatus(self.ledger_status),
        )

    def __repr__(self) -> str:
        return (
            f"<SettlementInvoiceModel {self.document_number} "
            f"amount={self.amount} ledger={self.ledger_status}>"
        )


# ---------------------------------------------------------------------------
# 6. Payables ledger
# ---------------------------------------------------------------------------


class PayableLedgerEntryModel(TrackedBase):
    """ORM model for accounts-payable entries.  One per invoice."""

    __tablename__ = "sto_ap_ledger"

    __table_args__ = (
        UniqueConstraint("invoice_id", name="uq_sto_ap_ledger_invoice_id"),
        CheckConstraint("paid_amount >= 0", name="ck_sto_ap_ledger_paid"),
        CheckConstraint(
            "paid_amount <= original_amount", name="ck_sto_ap_ledger_not_overpaid",
        ),
        Index("idx_sto_ap_ledger_debtor", "debtor_outlet_id"),
        Index("idx_sto_ap_ledger_due_date", "due_date"),
    )

    invoice_id: Mapped[UUID] = mapped_column(ForeignKey("sto_invoices.id"), nullable=False)
    debtor_outlet_id: Mapped[str] = mapped_column(String(64), nullable=False)
    creditor_outlet_id: Mapped[str] = mapped_column(String(64), nullable=False)
    original_amount: Mapped[Decimal] = mapped_column(nullable=False)
    paid_amount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    is_paid: Mapped[bool] = mapped_column(Boolean, default=False)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)

    @property
    def remaining_balance(self) -> Decimal:
        return self.original_amount - self.paid_amount

    def to_dto(self):
        from transfer_modules.sto.models import LedgerEntry

        return LedgerEntry(
            id=self.id,
            invoice_id=self.invoice_id,
            debtor_outlet_id=self.debtor_outlet_id,
            creditor_outlet_id=self.creditor_outlet_id,
            original_amount=self.original_amount,
            paid_amount=self.paid_amount,
            is_paid=self.is_paid,
            due_date=self.due_date,
        )

    def __repr__(self) -> str:
        return (
            f"<PayableLedgerEntryModel invoice={self.invoice_id} "
            f"paid={self.paid_amount}/{self.original_amount}>"
        )


class PayablePaymentModel(TrackedBase):
    __tablename__ = "sto_ap_payments"

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_sto_ap_payments_amount"),
        Index("idx_sto_ap_payments_entry_id", "ledger_entry_id"),
    )

    ledger_entry_id: Mapped[UUID] = mapped_column(
        ForeignKey("sto_ap_ledger.id"), nullable=False
    )
    invoice_id: Mapped[UUID] = mapped_column(nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    paid_at: Mapped[datetime] = mapped_column(nullable=False)

    def to_dto(self):
        from transfer_modules.sto.models import PayablePayment

        return PayablePayment(
            id=self.id,
            ledger_entry_id=self.ledger_entry_id,
            invoice_id=self.invoice_id,
            amount=self.amount,
            paid_by=self.created_by_id,
            paid_at=self.paid_at,
        )


# ---------------------------------------------------------------------------
# 7. InventoryMovementModel
# ---------------------------------------------------------------------------


class InventoryMovementModel(TrackedBase):
    """
    ORM model for stock movements written by ``SqlInventoryLedger``.

    Guarantees:
        - idempotency_key is unique; a replayed movement is a no-op.
    """

    __tablename__ = "sto_inventory_movements"

    __table_args__ = (
        UniqueConstraint("idempotency_key", name="uq_sto_inventory_movements_key"),
        CheckConstraint("quantity > 0", name="ck_sto_inventory_movements_qty"),
        Index("idx_sto_inventory_movements_outlet_item", "outlet_id", "item_id"),
    )

    outlet_id: Mapped[str] = mapped_column(String(64), nullable=False)
    item_id: Mapped[str] = mapped_column(String(64), nullable=False)
    direction: Mapped[str] = mapped_column(String(10), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(nullable=False)
    idempotency_key: Mapped[str] = mapped_column(String(200), nullable=False)
    order_id: Mapped[UUID | None] = mapped_column(nullable=True)

    def to_dto(self):
        from transfer_modules.sto.models import InventoryMovement, MovementDirection

        return InventoryMovement(
            id=self.id,
            outlet_id=self.outlet_id,
            item_id=self.item_id,
            direction=MovementDirection(self.direction),
            quantity=self.quantity,
            idempotency_key=self.idempotency_key,
            order_id=self.order_id,
        )

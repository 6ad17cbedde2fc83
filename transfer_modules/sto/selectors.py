"""
Module: transfer_modules.sto.selectors
Responsibility: Read-only queries over transfer orders, settlement
    invoices, payables entries and inventory movements.
Architecture position: Modules > Selectors.  Built on
    ``transfer_kernel.selectors.base``.

Invariants enforced:
    - Read-only: no add, flush or commit.
    - DTO convention: every public method returns frozen dataclasses from
      ``transfer_modules.sto.models``, never ORM instances.
    - Listings are ordered newest first (created_at, then document number)
      so pagination is stable.

Failure modes:
    - ``OrderNotFoundError`` from ``get_order`` and ``BatchNotFoundError``
      from ``get_shipment`` / ``get_receipt``; list queries return empty
      results on absence of data.
    - ``ValidationError`` for out-of-range pagination or unknown filters.
      A ``role`` without ``outlet_id`` is rejected the same way.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from transfer_kernel.exceptions import (
    BatchNotFoundError,
    OrderNotFoundError,
    ValidationError,
)
from transfer_kernel.selectors.base import BaseSelector
from transfer_modules.sto.ledgers import SqlInventoryLedger
from transfer_modules.sto.models import (
    InventoryMovement,
    LedgerEntry,
    OrderPage,
    OrderRole,
    PayablePayment,
    ReceiptBatch,
    RecipientStatus,
    SenderStatus,
    SettlementInvoice,
    ShipmentBatch,
    TransferOrder,
)
from transfer_modules.sto.orm import (
    PayableLedgerEntryModel,
    PayablePaymentModel,
    ReceiptBatchModel,
    SettlementInvoiceModel,
    ShipmentBatchModel,
    TransferOrderModel,
)


class TransferSelector(BaseSelector[TransferOrderModel]):
    """
    Selector for stock transfer queries.

    Contract:
        Results reflect committed state plus anything flushed in the
        caller's transaction.  Every order DTO carries its lines and
        batches.
    """

    def __init__(self, session: Session, max_page_size: int = 200):
        super().__init__(session)
        self._max_page_size = max_page_size

    # ------------------------------------------------------------------
    # Orders
    # ------------------------------------------------------------------

    def get_order(self, order_id: UUID) -> TransferOrder:
        order = self.session.execute(
            select(TransferOrderModel)
            .where(TransferOrderModel.id == order_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if order is None:
            raise OrderNotFoundError(str(order_id))
        return order.to_dto()

    def get_order_by_number(self, document_number: str) -> TransferOrder | None:
        order = self.session.execute(
            select(TransferOrderModel)
            .where(TransferOrderModel.document_number == document_number)
        ).scalar_one_or_none()
        return order.to_dto() if order is not None else None

    def list_orders(
        self,
        outlet_id: str | None = None,
        role: OrderRole | str | None = None,
        sender_status: SenderStatus | str | None = None,
        recipient_status: RecipientStatus | str | None = None,
        page: int = 1,
        page_size: int = 20,
    ) -> OrderPage:
        """
        List orders, newest first.

        ``role`` narrows ``outlet_id`` to the origin (SENDER) or the
        destination (RECIPIENT) side; without it both sides match.
        """
        if page < 1:
            raise ValidationError("page must be 1 or greater", field="page")
        if not 1 <= page_size <= self._max_page_size:
            raise ValidationError(
                f"page_size must be between 1 and {self._max_page_size}",
                field="page_size",
            )
        if role is not None and outlet_id is None:
            raise ValidationError("role requires outlet_id", field="role")

        stmt = select(TransferOrderModel)
        if outlet_id is not None:
            side = _coerce(OrderRole, role, "role") if role is not None else None
            if side is OrderRole.SENDER:
                stmt = stmt.where(TransferOrderModel.origin_outlet_id == outlet_id)
            elif side is OrderRole.RECIPIENT:
                stmt = stmt.where(TransferOrderModel.destination_outlet_id == outlet_id)
            else:
                stmt = stmt.where(
                    or_(
                        TransferOrderModel.origin_outlet_id == outlet_id,
                        TransferOrderModel.destination_outlet_id == outlet_id,
                    )
                )
        if sender_status is not None:
            status = _coerce(SenderStatus, sender_status, "sender_status")
            stmt = stmt.where(TransferOrderModel.sender_status == status.value)
        if recipient_status is not None:
            status = _coerce(RecipientStatus, recipient_status, "recipient_status")
            stmt = stmt.where(TransferOrderModel.recipient_status == status.value)

        total = self.session.execute(
            select(func.count()).select_from(stmt.subquery())
        ).scalar_one()

        orders = self.session.execute(
            stmt.order_by(
                TransferOrderModel.created_at.desc(),
                TransferOrderModel.document_number.desc(),
            )
            .offset((page - 1) * page_size)
            .limit(page_size)
        ).scalars().all()

        return OrderPage(
            orders=tuple(o.to_dto() for o in orders),
            total=total,
            page=page,
            page_size=page_size,
        )

    # ------------------------------------------------------------------
    # Batches
    # ------------------------------------------------------------------

    def get_shipment(self, batch_id: UUID) -> ShipmentBatch:
        batch = self.session.get(ShipmentBatchModel, batch_id)
        if batch is None:
            raise BatchNotFoundError("ShipmentBatch", str(batch_id))
        return batch.to_dto()

    def get_receipt(self, batch_id: UUID) -> ReceiptBatch:
        batch = self.session.get(ReceiptBatchModel, batch_id)
        if batch is None:
            raise BatchNotFoundError("ReceiptBatch", str(batch_id))
        return batch.to_dto()

    # ------------------------------------------------------------------
    # Settlement
    # ------------------------------------------------------------------

    def get_invoice(self, invoice_id: UUID) -> SettlementInvoice | None:
        invoice = self.session.get(SettlementInvoiceModel, invoice_id)
        return invoice.to_dto() if invoice is not None else None

    def get_invoice_for_order(self, order_id: UUID) -> SettlementInvoice | None:
        invoice = self.session.execute(
            select(SettlementInvoiceModel)
            .where(SettlementInvoiceModel.order_id == order_id)
        ).scalar_one_or_none()
        return invoice.to_dto() if invoice is not None else None

    def invoices_pending_ledger(self) -> list[SettlementInvoice]:
        """Invoices whose payables entry has not been written."""
        invoices = self.session.execute(
            select(SettlementInvoiceModel)
            .where(SettlementInvoiceModel.ledger_status != "POSTED")
            .order_by(SettlementInvoiceModel.document_number)
        ).scalars().all()
        return [i.to_dto() for i in invoices]

    def ledger_entry(self, invoice_id: UUID) -> LedgerEntry | None:
        entry = self.session.execute(
            select(PayableLedgerEntryModel)
            .where(PayableLedgerEntryModel.invoice_id == invoice_id)
        ).scalar_one_or_none()
        return entry.to_dto() if entry is not None else None

    def payments(self, invoice_id: UUID) -> list[PayablePayment]:
        rows = self.session.execute(
            select(PayablePaymentModel)
            .where(PayablePaymentModel.invoice_id == invoice_id)
            .order_by(PayablePaymentModel.paid_at, PayablePaymentModel.id)
        ).scalars().all()
        return [p.to_dto() for p in rows]

    def outstanding_payables(
        self,
        debtor_outlet_id: str,
        creditor_outlet_id: str | None = None,
    ) -> list[LedgerEntry]:
        """Unpaid payables entries owed by ``debtor_outlet_id``, soonest due first."""
        stmt = select(PayableLedgerEntryModel).where(
            PayableLedgerEntryModel.debtor_outlet_id == debtor_outlet_id,
            PayableLedgerEntryModel.is_paid.is_(False),
        )
        if creditor_outlet_id is not None:
            stmt = stmt.where(
                PayableLedgerEntryModel.creditor_outlet_id == creditor_outlet_id
            )
        entries = self.session.execute(
            stmt.order_by(
                PayableLedgerEntryModel.due_date,
                PayableLedgerEntryModel.created_at,
            )
        ).scalars().all()
        return [e.to_dto() for e in entries]

    # ------------------------------------------------------------------
    # Inventory
    # ------------------------------------------------------------------

    def inventory_balance(self, outlet_id: str, item_id: str) -> Decimal:
        return SqlInventoryLedger(self.session).balance(outlet_id, item_id)

    def inventory_movements(self, order_id: UUID) -> list[InventoryMovement]:
        return SqlInventoryLedger(self.session).movements(order_id)


def _coerce(enum_type, value, field: str):
    if isinstance(value, enum_type):
        return value
    try:
        return enum_type(str(value).upper())
    except ValueError:
        raise ValidationError(f"Unknown {field}: {value!r}", field=field)

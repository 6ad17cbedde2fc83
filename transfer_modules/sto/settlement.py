"""
Settlement Engine (``transfer_modules.sto.settlement``).

Responsibility
--------------
Converts a completed transfer into a financial obligation: exactly one
settlement invoice (destination owes origin the order grand total) and
exactly one accounts-payable entry mirroring it.  Also applies payments
against that entry.

Architecture position
---------------------
**Modules layer** -- write-side component.  Flush-only.  The module
service decides where the transaction boundaries fall: one transaction
for a transactional payables ledger, invoice-then-ledger for an
external one.

Invariants enforced
-------------------
* At most one invoice per order: checked under the order row lock and
  backed by ``uq_sto_invoices_order_id``.
* Invoice amount == order grand total == ledger original amount.
* An invoice whose ledger entry failed is flagged FAILED, never deleted.

Failure modes
-------------
* ``PreconditionError`` -- recipient not COMPLETED, or paying an invoice
  whose entry was never posted.
* ``AlreadySettledError`` -- an invoice already exists (or its entry is
  already posted, on retry).
* ``OverPaymentError`` / ``ValidationError`` -- bad payment amount.

Audit relevance
---------------
Invoice creation, ledger posting, ledger failure and payments are each
logged with invoice id, order id and amount.
"""

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from transfer_kernel.domain.clock import Clock
from transfer_kernel.exceptions import (
    AlreadySettledError,
    InvoiceNotFoundError,
    NotFoundError,
    PreconditionError,
)
from transfer_kernel.logging_config import get_logger
from transfer_kernel.services.base import BaseService
from transfer_modules.sto.ledgers import PayablesLedger, SqlPayablesLedger
from transfer_modules.sto.models import LedgerEntry, PayablePayment
from transfer_modules.sto.numbering import DocumentNumberAllocator
from transfer_modules.sto.orm import SettlementInvoiceModel
from transfer_modules.sto.store import OrderStore

logger = get_logger("modules.sto.settlement")


class SettlementEngine(BaseService[SettlementInvoiceModel]):
    """Creates settlement invoices and their payables entries."""

    def __init__(
        self,
        session: Session,
        store: OrderStore,
        numbers: DocumentNumberAllocator,
        payables: PayablesLedger,
        clock: Clock,
        term_days: int,
    ):
        super().__init__(session)
        self._store = store
        self._numbers = numbers
        self._payables = payables
        self._clock = clock
        self._term_days = term_days
        self._book = SqlPayablesLedger(session)

    @property
    def payables_transactional(self) -> bool:
        return bool(getattr(self._payables, "transactional", False))

    def prepare_invoice(self, order_id: UUID, requested_by: UUID) -> SettlementInvoiceModel:
        """
        Create the invoice for a completed order, ledger status PENDING.

        Raises:
            AlreadySettledError: an invoice exists for the order.
            PreconditionError: the recipient is not COMPLETED.
        """
        order = self._store.lock(order_id)

        existing = self._invoice_for_order(order.id)
        if existing is not None:
            logger.warning(
                "sto_settlement_duplicate_rejected",
                extra={"order_id": str(order.id), "invoice_id": str(existing.id)},
            )
            raise AlreadySettledError(str(order.id), str(existing.id))

        if order.recipient_status != "COMPLETED":
            raise PreconditionError(
                str(order.id), "settle",
                f"recipient status is {order.recipient_status}, expected COMPLETED",
            )

        self._store.claim(order, requested_by)

        issue_date = self._clock.now_utc().date()
        invoice = SettlementInvoiceModel(
            order_id=order.id,
            document_number=self._numbers.invoice_number(order.document_number),
            debtor_outlet_id=order.destination_outlet_id,
            creditor_outlet_id=order.origin_outlet_id,
            amount=order.grand_total,
            issue_date=issue_date,
            due_date=issue_date + timedelta(days=self._term_days),
            status="UNPAID",
            ledger_status="PENDING",
            created_by_id=requested_by,
        )

        savepoint = self.session.begin_nested()
        try:
            self.session.add(invoice)
            self.session.flush()
            savepoint.commit()
        except IntegrityError:
            savepoint.rollback()
            raise AlreadySettledError(str(order.id))

        logger.info(
            "sto_invoice_created",
            extra={
                "order_id": str(order.id),
                "invoice_id": str(invoice.id),
                "document_number": invoice.document_number,
                "debtor_outlet_id": invoice.debtor_outlet_id,
                "creditor_outlet_id": invoice.creditor_outlet_id,
                "amount": str(invoice.amount),
                "due_date": invoice.due_date.isoformat(),
            },
        )
        return invoice

    def post_to_ledger(
        self, invoice: SettlementInvoiceModel, requested_by: UUID,
    ) -> LedgerEntry:
        """Write the payables entry for ``invoice`` and mark it POSTED."""
        entry = self._payables.post_entry(invoice.to_dto(), requested_by)
        invoice.ledger_status = "POSTED"
        invoice.ledger_error = None
        invoice.updated_by_id = requested_by
        self.session.flush()
        logger.info(
            "sto_invoice_ledger_posted",
            extra={
                "invoice_id": str(invoice.id),
                "order_id": str(invoice.order_id),
                "ledger_entry_id": str(entry.id),
            },
        )
        return entry

    def mark_ledger_failed(self, invoice_id: UUID, reason: str) -> SettlementInvoiceModel:
        """Flag an invoice whose payables entry could not be written."""
        invoice = self._lock_invoice(invoice_id)
        invoice.ledger_status = "FAILED"
        invoice.ledger_error = reason[:500]
        self.session.flush()
        logger.error(
            "sto_invoice_ledger_failed",
            extra={
                "invoice_id": str(invoice.id),
                "order_id": str(invoice.order_id),
                "reason": reason,
            },
        )
        return invoice

    def invoice_for_retry(self, order_id: UUID) -> SettlementInvoiceModel:
        """
        Load the orphaned invoice of an order for a ledger re-post.

        Raises:
            NotFoundError: the order has no invoice.
            AlreadySettledError: the invoice's entry is already posted.
        """
        order = self._store.lock(order_id)
        invoice = self._invoice_for_order(order.id)
        if invoice is None:
            raise NotFoundError("SettlementInvoice", f"order {order.id}")
        if invoice.ledger_status == "POSTED":
            raise AlreadySettledError(str(order.id), str(invoice.id))
        return invoice

    def record_payment(
        self,
        invoice_id: UUID,
        amount: Decimal,
        paid_by: UUID,
    ) -> tuple[SettlementInvoiceModel, LedgerEntry, PayablePayment]:
        """
        Apply a payment to an invoice's payables entry.

        The invoice becomes PAID once the entry's paid amount reaches its
        original amount.
        """
        invoice = self._lock_invoice(invoice_id)
        applied = self._book.apply_payment(
            invoice.id, amount, paid_by, self._clock.now_utc(),
        )
        if applied is None:
            raise PreconditionError(
                str(invoice.order_id), "record_payment",
                f"invoice {invoice.id} has no posted ledger entry "
                f"(ledger status {invoice.ledger_status})",
            )
        entry, payment = applied
        if entry.is_paid:
            invoice.status = "PAID"
        invoice.updated_by_id = paid_by
        self.session.flush()
        return invoice, entry, payment

    def _invoice_for_order(self, order_id: UUID) -> SettlementInvoiceModel | None:
        return self.session.execute(
            select(SettlementInvoiceModel)
            .where(SettlementInvoiceModel.order_id == order_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _lock_invoice(self, invoice_id: UUID) -> SettlementInvoiceModel:
        invoice = self.session.execute(
            select(SettlementInvoiceModel)
            .where(SettlementInvoiceModel.id == invoice_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if invoice is None:
            raise InvoiceNotFoundError(str(invoice_id))
        return invoice

"""
Ledger ports and SQL adapters (``transfer_modules.sto.ledgers``).

Responsibility
--------------
Declares the two external collaborators the transfer engine writes to:

* ``InventoryLedger`` -- stock debits at the origin outlet and credits at
  the destination outlet.
* ``PayablesLedger`` -- one accounts-payable entry per settlement invoice.

Ships SQL adapters for both that write into the engine's own session, so
movements and postings commit atomically with the state change that
caused them.

Architecture position
---------------------
**Modules layer** -- ports and adapters.  Adapters are flush-only; the
module service owns commit/rollback.

Invariants enforced
-------------------
* Inventory movements are idempotent by key: a replayed key is a no-op.
* Payables entries are idempotent by invoice id: re-posting returns the
  existing entry and never creates a second one.
* ``paid_amount`` never exceeds ``original_amount``.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal
from typing import Protocol, runtime_checkable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from transfer_kernel.exceptions import (
    InventoryLedgerError,
    OverPaymentError,
    TransferEngineError,
    ValidationError,
)
from transfer_kernel.logging_config import get_logger
from transfer_kernel.services.base import BaseService
from transfer_modules.sto.models import (
    InventoryMovement,
    LedgerEntry,
    MovementDirection,
    PayablePayment,
    SettlementInvoice,
)
from transfer_modules.sto.orm import (
    InventoryMovementModel,
    PayableLedgerEntryModel,
    PayablePaymentModel,
)

logger = get_logger("modules.sto.ledgers")


# ---------------------------------------------------------------------------
# Ports
# ---------------------------------------------------------------------------


@runtime_checkable
class InventoryLedger(Protocol):
    """Stock balances per outlet and item, owned outside the engine."""

    def debit(
        self,
        outlet_id: str,
        item_id: str,
        quantity: Decimal,
        idempotency_key: str,
        actor_id: UUID,
        order_id: UUID | None = None,
    ) -> None: ...

    def credit(
        self,
        outlet_id: str,
        item_id: str,
        quantity: Decimal,
        idempotency_key: str,
        actor_id: UUID,
        order_id: UUID | None = None,
    ) -> None: ...


@runtime_checkable
class PayablesLedger(Protocol):
    """Accounts-payable subsystem.

    ``transactional`` is True when ``post_entry`` writes through the
    engine's own session.  A non-transactional ledger is called only after
    the invoice has committed.
    """

    transactional: bool

    def post_entry(self, invoice: SettlementInvoice, actor_id: UUID) -> LedgerEntry: ...


@contextmanager
def inventory_call(operation: str, order_id: UUID) -> Iterator[None]:
    """Surface any inventory collaborator failure as ``InventoryLedgerError``."""
    try:
        yield
    except TransferEngineError:
        raise
    except Exception as exc:
        reason = (str(exc).splitlines() or [type(exc).__name__])[0]
        logger.error(
            "sto_inventory_ledger_failed",
            extra={
                "order_id": str(order_id),
                "operation": operation,
                "error_type": type(exc).__name__,
                "error": reason,
            },
        )
        raise InventoryLedgerError(operation, str(order_id), reason) from exc


# ---------------------------------------------------------------------------
# SQL adapters
# ---------------------------------------------------------------------------


class SqlInventoryLedger(BaseService[InventoryMovementModel]):
    """Inventory ledger backed by ``sto_inventory_movements``."""

    def __init__(self, session: Session):
        super().__init__(session)

    def debit(
        self,
        outlet_id: str,
        item_id: str,
        quantity: Decimal,
        idempotency_key: str,
        actor_id: UUID,
        order_id: UUID | None = None,
    ) -> None:
        self._record(
            MovementDirection.DEBIT, outlet_id, item_id, quantity,
            idempotency_key, actor_id, order_id,
        )

    def credit(
        self,
        outlet_id: str,
        item_id: str,
        quantity: Decimal,
        idempotency_key: str,
        actor_id: UUID,
        order_id: UUID | None = None,
    ) -> None:
        self._record(
            MovementDirection.CREDIT, outlet_id, item_id, quantity,
            idempotency_key, actor_id, order_id,
        )

    def _record(
        self,
        direction: MovementDirection,
        outlet_id: str,
        item_id: str,
        quantity: Decimal,
        idempotency_key: str,
        actor_id: UUID,
        order_id: UUID | None,
    ) -> None:
        if quantity <= 0:
            raise ValidationError(
                f"Inventory {direction.value.lower()} quantity must be positive",
                field="quantity",
            )

        existing = self.session.execute(
            select(InventoryMovementModel)
            .where(InventoryMovementModel.idempotency_key == idempotency_key)
        ).scalar_one_or_none()
        if existing is not None:
            logger.debug(
                "inventory_movement_replayed",
                extra={"idempotency_key": idempotency_key},
            )
            return

        self.session.add(
            InventoryMovementModel(
                outlet_id=outlet_id,
                item_id=item_id,
                direction=direction.value,
                quantity=quantity,
                idempotency_key=idempotency_key,
                order_id=order_id,
                created_by_id=actor_id,
            )
        )
        self.session.flush()
        logger.debug(
            "inventory_movement_recorded",
            extra={
                "outlet_id": outlet_id,
                "item_id": item_id,
                "direction": direction.value,
                "quantity": str(quantity),
                "idempotency_key": idempotency_key,
            },
        )

    def balance(self, outlet_id: str, item_id: str) -> Decimal:
        """Net movement (credits minus debits) for an outlet and item."""
        rows = self.session.execute(
            select(InventoryMovementModel.direction, InventoryMovementModel.quantity)
            .where(
                InventoryMovementModel.outlet_id == outlet_id,
                InventoryMovementModel.item_id == item_id,
            )
        ).all()
        total = Decimal("0")
        for direction, quantity in rows:
            if direction == MovementDirection.CREDIT.value:
                total += quantity
            else:
                total -= quantity
        return total

    def movements(self, order_id: UUID) -> list[InventoryMovement]:
        models = self.session.execute(
            select(InventoryMovementModel)
            .where(InventoryMovementModel.order_id == order_id)
            .order_by(InventoryMovementModel.idempotency_key)
        ).scalars().all()
        return [m.to_dto() for m in models]


class SqlPayablesLedger(BaseService[PayableLedgerEntryModel]):
    """Payables ledger backed by ``sto_ap_ledger``.

    Writes through the caller's session, so it is transactional.
    """

    transactional = True

    def __init__(self, session: Session):
        super().__init__(session)

    def post_entry(self, invoice: SettlementInvoice, actor_id: UUID) -> LedgerEntry:
        """Insert the payables entry for ``invoice``; idempotent by invoice id."""
        existing = self._entry_for(invoice.id)
        if existing is not None:
            logger.info(
                "payables_entry_already_posted",
                extra={"invoice_id": str(invoice.id)},
            )
            return existing.to_dto()

        entry = PayableLedgerEntryModel(
            invoice_id=invoice.id,
            debtor_outlet_id=invoice.debtor_outlet_id,
            creditor_outlet_id=invoice.creditor_outlet_id,
            original_amount=invoice.amount,
            paid_amount=Decimal("0"),
            is_paid=False,
            due_date=invoice.due_date,
            created_by_id=actor_id,
        )
        self.session.add(entry)
        self.session.flush()
        logger.info(
            "payables_entry_posted",
            extra={
                "invoice_id": str(invoice.id),
                "debtor_outlet_id": invoice.debtor_outlet_id,
                "creditor_outlet_id": invoice.creditor_outlet_id,
                "amount": str(invoice.amount),
                "due_date": invoice.due_date.isoformat(),
            },
        )
        return entry.to_dto()

    def apply_payment(
        self,
        invoice_id: UUID,
        amount: Decimal,
        actor_id: UUID,
        paid_at: datetime,
    ) -> tuple[LedgerEntry, PayablePayment] | None:
        """Apply a payment to the entry of ``invoice_id`` under a row lock.

        Returns None when no entry has been posted for the invoice.

        Raises:
            ValidationError: amount is not positive.
            OverPaymentError: amount exceeds the remaining balance.
        """
        if amount <= 0:
            raise ValidationError("Payment amount must be positive", field="amount")

        entry = self._entry_for(invoice_id, lock=True)
        if entry is None:
            return None

        if entry.paid_amount + amount > entry.original_amount:
            raise OverPaymentError(
                invoice_id=str(invoice_id),
                attempted=amount,
                already=entry.paid_amount,
                limit=entry.original_amount,
            )

        entry.paid_amount = entry.paid_amount + amount
        entry.is_paid = entry.paid_amount == entry.original_amount
        entry.updated_by_id = actor_id
        payment = PayablePaymentModel(
            ledger_entry_id=entry.id,
            invoice_id=invoice_id,
            amount=amount,
            paid_at=paid_at,
            created_by_id=actor_id,
        )
        self.session.add(payment)
        self.session.flush()
        logger.info(
            "payables_payment_applied",
            extra={
                "invoice_id": str(invoice_id),
                "amount": str(amount),
                "paid_amount": str(entry.paid_amount),
                "is_paid": entry.is_paid,
            },
        )
        return entry.to_dto(), payment.to_dto()

    def _entry_for(
        self, invoice_id: UUID, lock: bool = False,
    ) -> PayableLedgerEntryModel | None:
        stmt = select(PayableLedgerEntryModel).where(
            PayableLedgerEntryModel.invoice_id == invoice_id
        )
        if lock:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return self.session.execute(stmt).scalar_one_or_none()

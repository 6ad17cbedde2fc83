"""
Stock Transfer Module (``transfer_modules.sto``).

Responsibility
--------------
Moves stock between two outlets of one business through a dual-status
lifecycle (sender: DRAFT -> ISSUED -> SHIPPED / CANCELLED; recipient:
PENDING -> ACCEPTED -> COMPLETED / REJECTED), records partial shipment
and receipt batches, and settles a completed transfer as an inter-outlet
invoice plus an accounts-payable entry.

Architecture
------------
Layer: **Modules** -- declarative workflows, ORM models, flush-only
components and one orchestration service (``TransferService``) that owns
every transaction boundary.

Failure Modes
-------------
All failures are typed ``TransferEngineError`` subclasses from
``transfer_kernel.exceptions``; any failure rolls the whole operation
back.
"""

from transfer_modules.sto.ledgers import (
    InventoryLedger,
    PayablesLedger,
    SqlInventoryLedger,
    SqlPayablesLedger,
)
from transfer_modules.sto.models import (
    InventoryMovement,
    InvoiceStatus,
    LedgerEntry,
    LedgerPostingStatus,
    LineQuantity,
    LineRequest,
    OrderPage,
    OrderRole,
    PayablePayment,
    ReceiptBatch,
    RecipientStatus,
    SenderStatus,
    SettlementInvoice,
    ShipmentBatch,
    TransferLine,
    TransferOrder,
)
from transfer_modules.sto.service import TransferService
from transfer_modules.sto.workflows import RECIPIENT_WORKFLOW, SENDER_WORKFLOW

__all__ = [
    "InventoryLedger",
    "PayablesLedger",
    "SqlInventoryLedger",
    "SqlPayablesLedger",
    "InventoryMovement",
    "InvoiceStatus",
    "LedgerEntry",
    "LedgerPostingStatus",
    "LineQuantity",
    "LineRequest",
    "OrderPage",
    "OrderRole",
    "PayablePayment",
    "ReceiptBatch",
    "RecipientStatus",
    "SenderStatus",
    "SettlementInvoice",
    "ShipmentBatch",
    "TransferLine",
    "TransferOrder",
    "TransferService",
    "RECIPIENT_WORKFLOW",
    "SENDER_WORKFLOW",
]

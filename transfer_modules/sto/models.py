"""
Stock Transfer Domain Models (``transfer_modules.sto.models``).

Responsibility
--------------
Frozen value objects representing the nouns of a stock transfer: the
order and its lines, shipment and receipt batches, the settlement invoice
and its payables ledger entry.  Also the request objects callers pass in.

Architecture position
---------------------
**Modules layer** -- pure data definitions.  No I/O, no database.  These
objects flow *into* and *out of* ``TransferService`` as immutable
snapshots.

Invariants enforced
-------------------
* All quantities and amounts use ``Decimal`` (never ``float``).
* All dataclasses are ``frozen=True``.
* ``TransferOrder.__post_init__`` enforces ``grand_total == items_subtotal +
  freight_cost``.

Failure modes
-------------
* ``ValueError`` raised in ``__post_init__`` when an identity is violated.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from transfer_kernel.logging_config import get_logger

logger = get_logger("modules.sto.models")


class SenderStatus(Enum):
    """Sender track.  Must align with ``workflows.SENDER_WORKFLOW.states``."""
    DRAFT = "DRAFT"
    ISSUED = "ISSUED"
    SHIPPED = "SHIPPED"
    CANCELLED = "CANCELLED"


class RecipientStatus(Enum):
    """Recipient track.  Must align with ``workflows.RECIPIENT_WORKFLOW.states``."""
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"
    COMPLETED = "COMPLETED"


class InvoiceStatus(Enum):
    UNPAID = "UNPAID"
    PAID = "PAID"


class LedgerPostingStatus(Enum):
    """Whether the payables entry for an invoice has been written."""
    PENDING = "PENDING"
    POSTED = "POSTED"
    FAILED = "FAILED"


class OrderRole(Enum):
    """Which side of a transfer an outlet is queried as."""
    SENDER = "SENDER"
    RECIPIENT = "RECIPIENT"


class MovementDirection(Enum):
    DEBIT = "DEBIT"
    CREDIT = "CREDIT"


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LineRequest:
    """One requested line at order creation."""
    item_id: str
    quantity: Decimal
    unit_price: Decimal


@dataclass(frozen=True)
class LineQuantity:
    """A quantity against an existing transfer line (shipment or receipt)."""
    line_id: UUID
    quantity: Decimal


# ---------------------------------------------------------------------------
# Snapshots
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TransferLine:
    """A requested item on an order.  Immutable once created."""
    id: UUID
    order_id: UUID
    line_number: int
    item_id: str
    quantity_requested: Decimal
    unit_price: Decimal

    @property
    def amount(self) -> Decimal:
        return self.quantity_requested * self.unit_price


@dataclass(frozen=True)
class ShipmentLine:
    id: UUID
    batch_id: UUID
    line_id: UUID
    item_id: str
    quantity: Decimal


@dataclass(frozen=True)
class ShipmentBatch:
    """One physical dispatch event against an order."""
    id: UUID
    order_id: UUID
    document_number: str
    shipped_by: UUID
    shipped_at: datetime
    lines: tuple[ShipmentLine, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class ReceiptLine:
    id: UUID
    batch_id: UUID
    line_id: UUID
    item_id: str
    quantity: Decimal


@dataclass(frozen=True)
class ReceiptBatch:
    """One physical intake event against an order.

    ``completed_order`` is True when this batch brought every line to
    received == shipped and moved the recipient to COMPLETED.
    """
    id: UUID
    order_id: UUID
    document_number: str
    received_by: UUID
    received_at: datetime
    lines: tuple[ReceiptLine, ...] = field(default_factory=tuple)
    completed_order: bool = False


@dataclass(frozen=True)
class TransferOrder:
    """A request to move stock from an origin outlet to a destination outlet.

    Contract: frozen; ``grand_total == items_subtotal + freight_cost``.
    Batches are ordered by document number.
    """
    id: UUID
    document_number: str
    origin_outlet_id: str
    destination_outlet_id: str
    freight_cost: Decimal
    items_subtotal: Decimal
    grand_total: Decimal
    sender_status: SenderStatus
    recipient_status: RecipientStatus
    created_by: UUID
    created_at: datetime
    revision: int = 0
    lines: tuple[TransferLine, ...] = field(default_factory=tuple)
    shipments: tuple[ShipmentBatch, ...] = field(default_factory=tuple)
    receipts: tuple[ReceiptBatch, ...] = field(default_factory=tuple)
    issued_at: datetime | None = None
    shipped_at: datetime | None = None
    cancelled_at: datetime | None = None
    accepted_at: datetime | None = None
    rejected_at: datetime | None = None
    completed_at: datetime | None = None

    def __post_init__(self):
        # INVARIANT: grand total is derived, never supplied
        expected = self.items_subtotal + self.freight_cost
        if self.grand_total != expected:
            logger.warning(
                "order_total_mismatch",
                extra={
                    "order_id": str(self.id),
                    "grand_total": str(self.grand_total),
                    "expected_total": str(expected),
                },
            )
            raise ValueError(
                f"grand_total ({self.grand_total}) must equal "
                f"items_subtotal + freight_cost ({expected})"
            )

    def shipped_quantity(self, line_id: UUID) -> Decimal:
        """Cumulative shipped quantity for a line across all batches."""
        return sum(
            (sl.quantity for b in self.shipments for sl in b.lines if sl.line_id == line_id),
            Decimal("0"),
        )

    def received_quantity(self, line_id: UUID) -> Decimal:
        """Cumulative received quantity for a line across all batches."""
        return sum(
            (rl.quantity for b in self.receipts for rl in b.lines if rl.line_id == line_id),
            Decimal("0"),
        )

    @property
    def is_fully_reconciled(self) -> bool:
        return bool(self.receipts) and all(
            self.shipped_quantity(line.id) == self.received_quantity(line.id)
            for line in self.lines
        )


@dataclass(frozen=True)
class OrderPage:
    """One page of an order listing, newest first."""
    orders: tuple[TransferOrder, ...]
    total: int
    page: int
    page_size: int

    @property
    def has_next(self) -> bool:
        return self.page * self.page_size < self.total


@dataclass(frozen=True)
class SettlementInvoice:
    """The payable raised by the destination outlet to the origin outlet."""
    id: UUID
    order_id: UUID
    document_number: str
    debtor_outlet_id: str
    creditor_outlet_id: str
    amount: Decimal
    issue_date: date
    due_date: date
    status: InvoiceStatus = InvoiceStatus.UNPAID
    ledger_status: LedgerPostingStatus = LedgerPostingStatus.PENDING


@dataclass(frozen=True)
class LedgerEntry:
    """Accounts-payable entry mirroring one settlement invoice."""
    id: UUID
    invoice_id: UUID
    debtor_outlet_id: str
    creditor_outlet_id: str
    original_amount: Decimal
    paid_amount: Decimal
    is_paid: bool
    due_date: date

    @property
    def remaining_balance(self) -> Decimal:
        return self.original_amount - self.paid_amount


@dataclass(frozen=True)
class PayablePayment:
    """A payment applied against a ledger entry."""
    id: UUID
    ledger_entry_id: UUID
    invoice_id: UUID
    amount: Decimal
    paid_by: UUID
    paid_at: datetime


@dataclass(frozen=True)
class InventoryMovement:
    """A stock debit (origin) or credit (destination) emitted by the engine."""
    id: UUID
    outlet_id: str
    item_id: str
    direction: MovementDirection
    quantity: Decimal
    idempotency_key: str
    order_id: UUID | None = None

"""
Document number allocation (``transfer_modules.sto.numbering``).

Order, shipment and receipt numbers are ``PREFIX-YYMM-NNNN`` where the
counter restarts every month and is drawn from the kernel's locked
counter rows.  Invoice numbers reuse the order number:
``INV-STO-2401-0001``.
"""

from sqlalchemy.orm import Session

from transfer_config.schema import DocumentNumbering
from transfer_kernel.domain.clock import Clock
from transfer_kernel.services.sequence_service import SequenceService


class DocumentNumberAllocator:
    """Allocates unique, monotonic document numbers per prefix and month."""

    def __init__(self, session: Session, numbering: DocumentNumbering, clock: Clock):
        self._sequences = SequenceService(session)
        self._numbering = numbering
        self._clock = clock

    def _next(self, prefix: str) -> str:
        period = self._clock.now_utc().strftime("%y%m")
        value = self._sequences.next_value(f"{prefix}:{period}")
        return f"{prefix}-{period}-{value:0{self._numbering.sequence_width}d}"

    def next_order_number(self) -> str:
        return self._next(self._numbering.order_prefix)

    def next_shipment_number(self) -> str:
        return self._next(self._numbering.shipment_prefix)

    def next_receipt_number(self) -> str:
        return self._next(self._numbering.receipt_prefix)

    def invoice_number(self, order_document_number: str) -> str:
        return f"{self._numbering.invoice_prefix}-{order_document_number}"

"""
Configuration schema (``transfer_config.schema``).

Responsibility
--------------
Frozen dataclasses describing the runtime settings of the transfer
engine: settlement term, document-number prefixes and listing limits.

Invariants enforced
-------------------
* ``__post_init__`` rejects non-positive terms, empty or duplicate
  prefixes and inconsistent page sizes with ``ValueError``.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from transfer_kernel.logging_config import get_logger

logger = get_logger("config.schema")


@dataclass(frozen=True)
class DocumentNumbering:
    """Prefixes and counter width for document numbers.

    Order, shipment and receipt numbers are ``PREFIX-YYMM-NNNN``; invoice
    numbers are ``INVOICE_PREFIX-<order document number>``.
    """
    order_prefix: str = "STO"
    shipment_prefix: str = "SHP"
    receipt_prefix: str = "REC"
    invoice_prefix: str = "INV"
    sequence_width: int = 4

    def __post_init__(self):
        prefixes = (
            self.order_prefix,
            self.shipment_prefix,
            self.receipt_prefix,
            self.invoice_prefix,
        )
        if any(not p or "-" in p or ":" in p for p in prefixes):
            raise ValueError(f"Invalid document prefix in {prefixes}")
        if len(set(prefixes)) != len(prefixes):
            raise ValueError(f"Document prefixes must be distinct: {prefixes}")
        if not 1 <= self.sequence_width <= 12:
            raise ValueError("sequence_width must be between 1 and 12")


@dataclass(frozen=True)
class TransferConfig:
    """Complete runtime configuration for the transfer engine."""
    config_id: str = "sto-default"
    version: int = 1
    settlement_term_days: int = 30
    numbering: DocumentNumbering = field(default_factory=DocumentNumbering)
    default_page_size: int = 20
    max_page_size: int = 200
    checksum: str = ""

    def __post_init__(self):
        if self.settlement_term_days <= 0:
            raise ValueError("settlement_term_days must be positive")
        if self.default_page_size <= 0:
            raise ValueError("default_page_size must be positive")
        if self.max_page_size < self.default_page_size:
            raise ValueError("max_page_size cannot be less than default_page_size")
        logger.debug(
            "transfer_config_initialized",
            extra={
                "config_id": self.config_id,
                "settlement_term_days": self.settlement_term_days,
                "order_prefix": self.numbering.order_prefix,
            },
        )

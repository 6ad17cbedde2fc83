"""
Configuration Loader (``transfer_config.loader``).

Responsibility
--------------
Loads a YAML file and parses it into a frozen ``TransferConfig``.  The
single public entry point for runtime config is
``transfer_config.get_active_config()``.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Out-of-range values  -> ``ValueError`` from the schema.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from transfer_config.schema import DocumentNumbering, TransferConfig


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Returns an empty dict for an empty file.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_numbering(data: dict[str, Any]) -> DocumentNumbering:
    defaults = DocumentNumbering()
    return DocumentNumbering(
        order_prefix=data.get("order_prefix", defaults.order_prefix),
        shipment_prefix=data.get("shipment_prefix", defaults.shipment_prefix),
        receipt_prefix=data.get("receipt_prefix", defaults.receipt_prefix),
        invoice_prefix=data.get("invoice_prefix", defaults.invoice_prefix),
        sequence_width=int(data.get("sequence_width", defaults.sequence_width)),
    )


def parse_config(data: dict[str, Any]) -> TransferConfig:
    """
    Parse a ``TransferConfig`` from a loaded YAML dict.

    Missing sections fall back to schema defaults; the checksum always
    covers the raw document.
    """
    settlement = data.get("settlement", {})
    listing = data.get("listing", {})
    defaults = TransferConfig()
    return TransferConfig(
        config_id=str(data.get("config_id", defaults.config_id)),
        version=int(data.get("version", defaults.version)),
        settlement_term_days=int(
            settlement.get("term_days", defaults.settlement_term_days)
        ),
        numbering=parse_numbering(data.get("numbering", {})),
        default_page_size=int(
            listing.get("default_page_size", defaults.default_page_size)
        ),
        max_page_size=int(listing.get("max_page_size", defaults.max_page_size)),
        checksum=compute_checksum(data),
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 checksum of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()

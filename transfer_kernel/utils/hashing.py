"""
Request fingerprints.

A request key replayed with the same payload must hash to the same digest
even when quantities arrive at a different scale, so Decimals are reduced
to their normalized string form before encoding.
"""

import hashlib
import json
from decimal import Decimal
from typing import Any
from uuid import UUID


def _encode_scalar(obj: Any) -> str:
    if isinstance(obj, Decimal):
        return str(obj.normalize())
    if isinstance(obj, UUID):
        return str(obj)
    raise TypeError(f"cannot fingerprint {type(obj).__name__}")


def canonicalize_json(data: Any) -> str:
    """Sorted keys, compact separators."""
    return json.dumps(data, sort_keys=True, separators=(",", ":"), default=_encode_scalar)


def hash_payload(payload: dict) -> str:
    """Hex SHA-256 of the canonical form of ``payload``."""
    return hashlib.sha256(canonicalize_json(payload).encode("utf-8")).hexdigest()

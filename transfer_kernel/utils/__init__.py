"""Utility modules for the transfer kernel."""

from transfer_kernel.utils.hashing import canonicalize_json, hash_payload
from transfer_kernel.utils.idempotency import generate_idempotency_key

__all__ = [
    "hash_payload",
    "canonicalize_json",
    "generate_idempotency_key",
]

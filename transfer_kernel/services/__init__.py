"""Kernel services (write side, flush-only)."""

from transfer_kernel.services.base import BaseService
from transfer_kernel.services.sequence_service import SequenceCounter, SequenceService

__all__ = [
    "BaseService",
    "SequenceCounter",
    "SequenceService",
]
